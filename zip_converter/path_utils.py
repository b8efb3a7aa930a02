"""Path normalization utilities.

This module centralizes the project's path rules:

- Use absolute paths for everything stored on a Job.
- Only `.zip` files (case-insensitive) are accepted as job inputs.
- Converted archives are written next to the input (or into a configured
  output folder) as `<stem><suffix>.zip`, numbered when that name is taken.

Keep this module free of Qt dependencies.
"""

from __future__ import annotations

from pathlib import Path

from .errors import ValidationError

_DRIVE_PREFIX_LEN = 2
ZIP_SUFFIX = ".zip"
DEFAULT_OUTPUT_SUFFIX = "-converted"


def _normalize_drive_letter(path_str: str) -> str:
    # Normalize drive letter casing on Windows ("c:\\" -> "C:\\").
    if len(path_str) >= _DRIVE_PREFIX_LEN and path_str[1] == ":":
        return path_str[0].upper() + path_str[1:]
    return path_str


def abs_path(path: str | Path) -> Path:
    """Return an absolute path without requiring that it exists."""
    p = Path(path).expanduser()
    try:
        # strict=False avoids exceptions for non-existent paths.
        return p.resolve(strict=False)
    except OSError:
        return p.absolute()


def abs_path_str(path: str | Path) -> str:
    """Absolute, OS-native path string (Windows uses backslashes)."""
    return _normalize_drive_letter(str(abs_path(path)))


def is_zip_path(path: str | Path) -> bool:
    name = str(path or "").strip()
    if not name:
        return False
    return Path(name).suffix.lower() == ZIP_SUFFIX


def validate_zip_path(path: str | Path) -> str:
    """Return the absolute path string for a zip input or raise ValidationError."""
    if not is_zip_path(path):
        raise ValidationError(f"Not a .zip file: {path!s}")
    return abs_path_str(path)


def converted_output_path(
    input_path: str | Path,
    suffix: str = DEFAULT_OUTPUT_SUFFIX,
    output_dir: str | Path | None = None,
    overwrite: bool = False,
) -> Path:
    """Destination for the converted archive of `input_path`.

    `photos.zip` -> `photos-converted.zip`; when that exists and `overwrite` is
    off, `photos-converted-1.zip`, `photos-converted-2.zip`, ...
    """
    src = abs_path(input_path)
    folder = abs_path(output_dir) if output_dir else src.parent
    stem = src.stem or "output"
    candidate = folder / f"{stem}{suffix}{ZIP_SUFFIX}"
    if overwrite:
        return candidate
    n = 1
    while candidate.exists():
        candidate = folder / f"{stem}{suffix}-{n}{ZIP_SUFFIX}"
        n += 1
    return candidate
