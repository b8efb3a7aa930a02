"""Read-only adapter over a zip container.

All zipfile/zlib failures are mapped to the project's error types so the
pipeline never has to know which low-level exception a broken archive raises.
"""

from __future__ import annotations

import zipfile
import zlib
from dataclasses import dataclass
from pathlib import Path

from zip_converter.errors import ArchiveOpenError, CorruptArchiveError
from zip_converter.logger import get_logger

_logger = get_logger("reader")

_READ_ERRORS = (zipfile.BadZipFile, zlib.error, EOFError, NotImplementedError, RuntimeError, OSError)


@dataclass(frozen=True, slots=True)
class ArchiveEntry:
    index: int
    name: str
    size: int
    is_dir: bool
    date_time: tuple[int, int, int, int, int, int]


class ArchiveReader:
    """Context manager listing and reading the entries of one zip file."""

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)
        self._zip: zipfile.ZipFile | None = None
        self._infos: list[zipfile.ZipInfo] = []

    def open(self) -> ArchiveReader:
        if self._zip is not None:
            return self
        try:
            self._zip = zipfile.ZipFile(self.path, "r")
        except FileNotFoundError as e:
            raise ArchiveOpenError(f"Failed to open input zip file: {self.path.name} not found") from e
        except zipfile.BadZipFile as e:
            raise CorruptArchiveError(f"Failed to read zip archive {self.path.name}: {e}") from e
        except (OSError, zlib.error, EOFError) as e:
            raise ArchiveOpenError(f"Failed to open input zip file {self.path.name}: {e}") from e
        self._infos = self._zip.infolist()
        _logger.debug("opened %s (%d entries)", self.path, len(self._infos))
        return self

    def close(self) -> None:
        if self._zip is not None:
            self._zip.close()
            self._zip = None
            self._infos = []

    def __enter__(self) -> ArchiveReader:
        return self.open()

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def _require_open(self) -> zipfile.ZipFile:
        if self._zip is None:
            raise ArchiveOpenError(f"Archive is not open: {self.path.name}")
        return self._zip

    def list(self) -> list[ArchiveEntry]:
        self._require_open()
        return [
            ArchiveEntry(
                index=i,
                name=info.filename,
                size=int(info.file_size),
                is_dir=info.is_dir(),
                date_time=tuple(info.date_time),  # type: ignore[arg-type]
            )
            for i, info in enumerate(self._infos)
        ]

    def read(self, entry: ArchiveEntry) -> bytes:
        zf = self._require_open()
        try:
            return zf.read(self._infos[entry.index])
        except _READ_ERRORS as e:
            raise CorruptArchiveError(f"Failed to read entry {entry.name}: {e}") from e

    def read_head(self, entry: ArchiveEntry, size: int = 32) -> bytes:
        """First `size` bytes of an entry, for content sniffing."""
        zf = self._require_open()
        try:
            with zf.open(self._infos[entry.index]) as fh:
                return fh.read(size)
        except _READ_ERRORS as e:
            raise CorruptArchiveError(f"Failed to read entry {entry.name}: {e}") from e
