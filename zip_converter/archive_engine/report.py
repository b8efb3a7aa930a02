"""`report.json` written at the root of every converted archive."""

from __future__ import annotations

import json
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from zip_converter import __version__
from zip_converter.models import ConversionStats

REPORT_NAME = "report.json"

_EXIF_FORMATS = frozenset({"HEIC", "HEIF", "TIFF", "TIF", "JPEG", "JPG", "WEBP"})
_PRESERVATION_NOTES = {
    "HEIC": "EXIF data preserved where possible via libheif",
    "HEIF": "EXIF data preserved where possible via libheif",
    "TIFF": "EXIF data preserved",
    "TIF": "EXIF data preserved",
    "WEBP": "XMP/EXIF preserved if present in source",
    "BMP": "BMP files do not contain EXIF metadata",
    "AVIF": "Metadata preservation depends on encoder support",
}


def format_has_exif(fmt: str) -> bool:
    return fmt.upper() in _EXIF_FORMATS


def preservation_note(fmt: str) -> str:
    return _PRESERVATION_NOTES.get(fmt.upper(), "Metadata preservation attempted")


class ReportBuilder:
    def __init__(self, input_path: str | Path, jpeg_quality: int = 95) -> None:
        self.input_zip = Path(input_path).name or "unknown.zip"
        self.jpeg_quality = int(jpeg_quality)
        self.stats = ConversionStats()
        self.conversions: list[dict[str, Any]] = []
        self.copied: list[dict[str, str]] = []
        self.skipped: list[dict[str, str]] = []

    def increment_scanned(self) -> None:
        self.stats.files_scanned += 1

    def add_conversion(self, original_path: str, output_path: str, original_format: str) -> None:
        self.conversions.append(
            {
                "originalPath": original_path,
                "outputPath": output_path,
                "originalFormat": original_format,
                "metadataPreserved": format_has_exif(original_format),
            }
        )
        self.stats.files_included += 1
        self.stats.files_converted += 1

    def add_copied(self, original_path: str, output_path: str) -> None:
        """An image stored without re-encoding (JPEG, animated GIF/WebP)."""
        self.copied.append({"originalPath": original_path, "outputPath": output_path})
        self.stats.files_included += 1
        self.stats.files_copied += 1

    def add_passthrough(self) -> None:
        """A non-image entry carried over byte-for-byte."""
        self.stats.files_included += 1

    def add_skipped(self, path: str, reason: str) -> None:
        self.skipped.append({"path": path, "reason": reason})
        self.stats.files_skipped += 1

    def metadata_notes(self) -> list[str]:
        formats = sorted({c["originalFormat"] for c in self.conversions})
        notes = [preservation_note(f) for f in formats]
        if self.stats.files_converted > 0:
            notes.append(f"All converted images encoded as JPEG with quality {self.jpeg_quality}")
        return notes

    def build(self) -> dict[str, Any]:
        return {
            "appVersion": __version__,
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "inputZip": self.input_zip,
            "stats": self.stats.to_dict(),
            "conversions": list(self.conversions),
            "copied": list(self.copied),
            "skipped": list(self.skipped),
            "metadataNotes": self.metadata_notes(),
        }

    def to_json(self) -> str:
        return json.dumps(self.build(), ensure_ascii=False, indent=2)
