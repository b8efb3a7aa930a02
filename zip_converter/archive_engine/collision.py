from __future__ import annotations

import posixpath


class NameAllocator:
    """Hands out unique entry names for the output archive.

    A name already handed out gets a numeric suffix before the extension:
    `IMG_1.jpg`, `IMG_1-1.jpg`, `IMG_1-2.jpg`. Folders are kept as-is.
    """

    def __init__(self) -> None:
        self._used: set[str] = set()

    def allocate(self, desired: str) -> str:
        if desired not in self._used:
            self._used.add(desired)
            return desired

        folder, base = posixpath.split(desired)
        stem, ext = posixpath.splitext(base)
        if not stem:
            stem, ext = base or "file", ""
        n = 1
        while True:
            candidate = posixpath.join(folder, f"{stem}-{n}{ext}")
            if candidate not in self._used:
                self._used.add(candidate)
                return candidate
            n += 1


def with_extension(name: str, ext: str) -> str:
    """Swap the extension of a zip entry name, keeping its folder."""
    folder, base = posixpath.split(name)
    stem, _ = posixpath.splitext(base)
    return posixpath.join(folder, f"{stem or base}{ext}")
