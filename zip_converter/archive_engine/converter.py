"""Image entry → JPEG conversion using pyvips.

Entries are decoded straight from memory; nothing is extracted to disk.
JPEG input is copied untouched, as are animated GIF/WebP when
`keep_animated` is set. Everything else is flattened onto the background
colour and re-encoded as JPEG.
"""

from __future__ import annotations

import contextlib
import posixpath
from dataclasses import dataclass
from typing import Any

from zip_converter.errors import ConversionError
from zip_converter.logger import get_logger

_logger = get_logger("converter")

RGB_CHANNELS = 3
JPEG_EXT = ".jpg"

# extension -> canonical format name
_EXT_FORMATS = {
    ".jpg": "jpeg",
    ".jpeg": "jpeg",
    ".png": "png",
    ".gif": "gif",
    ".heic": "heic",
    ".heif": "heif",
    ".webp": "webp",
    ".tiff": "tiff",
    ".tif": "tiff",
    ".bmp": "bmp",
    ".avif": "avif",
}
IMAGE_EXTS = frozenset(_EXT_FORMATS)

_MAGIC: tuple[tuple[bytes, str], ...] = (
    (b"\xff\xd8\xff", "jpeg"),
    (b"\x89PNG\r\n\x1a\n", "png"),
    (b"GIF87a", "gif"),
    (b"GIF89a", "gif"),
    (b"II*\x00", "tiff"),
    (b"MM\x00*", "tiff"),
    (b"BM", "bmp"),
)
_FTYP_BRANDS = {
    b"heic": "heic",
    b"heix": "heic",
    b"hevc": "heic",
    b"mif1": "heif",
    b"msf1": "heif",
    b"avif": "avif",
    b"avis": "avif",
}
SNIFF_BYTES = 32
_ANIMATABLE = frozenset({"gif", "webp"})

_pyvips: Any | None = None


def _get_pyvips_module() -> Any:
    global _pyvips
    if _pyvips is None:
        import pyvips  # type: ignore

        _pyvips = pyvips
    return _pyvips


def format_for_name(name: str) -> str | None:
    ext = posixpath.splitext(name)[1].lower()
    return _EXT_FORMATS.get(ext)


def has_extension(name: str) -> bool:
    return bool(posixpath.splitext(posixpath.basename(name))[1])


def sniff_format(head: bytes) -> str | None:
    """Identify an image format from its leading bytes."""
    if not head:
        return None
    for magic, fmt in _MAGIC:
        if head.startswith(magic):
            return fmt
    if head[:4] == b"RIFF" and head[8:12] == b"WEBP":
        return "webp"
    if head[4:8] == b"ftyp":
        return _FTYP_BRANDS.get(head[8:12])
    return None


@dataclass(frozen=True, slots=True)
class ConversionResult:
    data: bytes
    extension: str
    original_format: str
    converted: bool


class ImageConverter:
    """Decodes one image entry and re-encodes it as JPEG."""

    def __init__(
        self,
        quality: int = 95,
        background: list[int] | tuple[int, int, int] = (255, 255, 255),
        keep_animated: bool = True,
    ) -> None:
        self.quality = int(quality)
        self.background = [int(v) for v in background]
        self.keep_animated = bool(keep_animated)

    def convert(self, name: str, data: bytes, fmt: str | None = None) -> ConversionResult:
        """Return the bytes to store for entry `name`.

        Raises ConversionError when the entry cannot be decoded or encoded.
        """
        fmt = fmt or format_for_name(name) or sniff_format(data[:SNIFF_BYTES])
        if fmt is None:
            raise ConversionError(name, "unrecognized image format")
        original_ext = posixpath.splitext(name)[1]
        if fmt == "jpeg":
            return ConversionResult(data, original_ext, fmt.upper(), converted=False)

        pyvips = _get_pyvips_module()
        try:
            # fail on truncated or damaged pixel data
            image = pyvips.Image.new_from_buffer(data, "", fail_on="error")
            if fmt in _ANIMATABLE and self.keep_animated and self._page_count(image) > 1:
                return ConversionResult(data, original_ext, fmt.upper(), converted=False)
            # decoding is lazy: errors surface here
            out = self._prepare(image).write_to_buffer(JPEG_EXT, Q=self.quality)
        except (pyvips.Error, ValueError) as e:
            _logger.debug("convert failed for %s: %s", name, e)
            raise ConversionError(name, _first_line(str(e))) from e

        if not out:
            raise ConversionError(name, "encoder produced no data")
        return ConversionResult(bytes(out), JPEG_EXT, fmt.upper(), converted=True)

    @staticmethod
    def _page_count(image: Any) -> int:
        with contextlib.suppress(_get_pyvips_module().Error):
            if image.get_typeof("n-pages"):
                return int(image.get("n-pages"))
        return 1

    def _prepare(self, image: Any) -> Any:
        pyvips = _get_pyvips_module()
        with contextlib.suppress(pyvips.Error):
            image = image.colourspace("srgb")
        if image.hasalpha():
            image = image.flatten(background=self.background)
        if image.bands > RGB_CHANNELS:
            image = image.extract_band(0, n=RGB_CHANNELS)
        if image.format != "uchar":
            image = image.cast("uchar")
        return image


def _first_line(message: str) -> str:
    text = (message or "").strip()
    return text.splitlines()[0] if text else "conversion failed"
