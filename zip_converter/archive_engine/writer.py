"""Incremental zip writer with all-or-nothing output.

Entries go to a hidden `.part` file next to the destination. Leaving the
`with` block normally publishes it with `os.replace`; leaving it through any
exception (cancellation included) removes the partial file.
"""

from __future__ import annotations

import contextlib
import os
import tempfile
import time
import zipfile
from pathlib import Path

from zip_converter.errors import WriteError
from zip_converter.logger import get_logger

_logger = get_logger("writer")

# zip timestamps cannot predate 1980
_ZIP_EPOCH = (1980, 1, 1, 0, 0, 0)
_FILE_MODE = 0o644


class ArchiveWriter:
    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)
        self._tmp_path: Path | None = None
        self._zip: zipfile.ZipFile | None = None
        self._count = 0

    def __enter__(self) -> ArchiveWriter:
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp = tempfile.mkstemp(prefix=f".{self.path.stem}.", suffix=".part", dir=self.path.parent)
            os.close(fd)
            self._tmp_path = Path(tmp)
            self._zip = zipfile.ZipFile(self._tmp_path, "w")
        except OSError as e:
            self._discard()
            raise WriteError(f"Failed to create output zip {self.path}: {e}") from e
        _logger.debug("writing %s via %s", self.path, self._tmp_path)
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        if exc_type is not None:
            self._discard()
            return
        self._commit()

    def write_entry(
        self,
        name: str,
        data: bytes,
        date_time: tuple[int, int, int, int, int, int] | None = None,
        compress: bool = True,
    ) -> None:
        if self._zip is None:
            raise WriteError("Output zip is not open")
        stamp = tuple(date_time) if date_time else time.localtime(time.time())[:6]
        if stamp < _ZIP_EPOCH:
            stamp = _ZIP_EPOCH
        info = zipfile.ZipInfo(name, date_time=stamp)
        info.compress_type = zipfile.ZIP_DEFLATED if compress else zipfile.ZIP_STORED
        info.external_attr = _FILE_MODE << 16
        try:
            self._zip.writestr(info, data)
        except (OSError, ValueError) as e:
            raise WriteError(f"Failed to write {name} to {self.path.name}: {e}") from e
        self._count += 1

    def _commit(self) -> None:
        try:
            if self._zip is not None:
                self._zip.close()
                self._zip = None
            if self._tmp_path is not None:
                os.replace(self._tmp_path, self.path)
                self._tmp_path = None
        except OSError as e:
            self._discard()
            raise WriteError(f"Failed to finalize output zip {self.path}: {e}") from e
        _logger.debug("wrote %s (%d entries)", self.path, self._count)

    def _discard(self) -> None:
        if self._zip is not None:
            with contextlib.suppress(Exception):
                self._zip.close()
            self._zip = None
        if self._tmp_path is not None:
            with contextlib.suppress(OSError):
                self._tmp_path.unlink()
            _logger.debug("discarded partial output %s", self._tmp_path)
            self._tmp_path = None
