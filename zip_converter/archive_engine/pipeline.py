"""Conversion pipeline: one zip in, one converted zip out.

A run goes through three phases:

- scanning:   open the archive, classify entries, count the images
- converting: decode/encode every image entry, buffer kept entries
- packaging:  write the buffered entries (and report.json) to the output

Progress is reported through a plain callback; the caller decides which
thread or signal it ends up on. Cancellation is cooperative: the token is
polled at phase boundaries, between converted entries and between written
entries. A single entry is never interrupted.
"""

from __future__ import annotations

import threading
from collections.abc import Callable
from dataclasses import dataclass, field
from pathlib import Path

from zip_converter.errors import CancelledError, ConversionError, CorruptArchiveError, NoImagesError
from zip_converter.logger import get_logger
from zip_converter.models import ConversionStats, Phase, Progress
from zip_converter.path_utils import DEFAULT_OUTPUT_SUFFIX, ZIP_SUFFIX, converted_output_path
from zip_converter.settings_manager import SettingsManager

from .collision import NameAllocator, with_extension
from .converter import SNIFF_BYTES, ImageConverter, format_for_name, has_extension, sniff_format
from .metrics import metrics
from .reader import ArchiveEntry, ArchiveReader
from .report import REPORT_NAME, ReportBuilder
from .writer import ArchiveWriter

_logger = get_logger("pipeline")

ProgressCallback = Callable[[Progress], None]

_NESTED_ZIP_REASON = "Nested zip files are ignored"


class CancelToken:
    """Cancellation flag shared between the queue and one pipeline run."""

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def is_cancelled(self) -> bool:
        return self._event.is_set()

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise CancelledError()


@dataclass(frozen=True)
class PipelineOptions:
    jpeg_quality: int = 95
    output_suffix: str = DEFAULT_OUTPUT_SUFFIX
    output_dir: str | None = None
    overwrite_output: bool = False
    include_report: bool = True
    skip_nested_archives: bool = True
    keep_animated: bool = True
    background: tuple[int, int, int] = (255, 255, 255)

    @classmethod
    def from_settings(cls, settings: SettingsManager) -> PipelineOptions:
        return cls(
            jpeg_quality=settings.jpeg_quality,
            output_suffix=settings.output_suffix,
            output_dir=settings.output_dir,
            overwrite_output=bool(settings.get("overwrite_output")),
            include_report=bool(settings.get("include_report")),
            skip_nested_archives=bool(settings.get("skip_nested_archives")),
            keep_animated=bool(settings.get("keep_animated")),
            background=tuple(settings.background),  # type: ignore[arg-type]
        )


@dataclass
class PipelineResult:
    output_path: str
    stats: ConversionStats
    skipped: list[dict[str, str]] = field(default_factory=list)

    @property
    def files_skipped(self) -> int:
        return self.stats.files_skipped


@dataclass(slots=True)
class _ScanItem:
    entry: ArchiveEntry
    fmt: str | None  # None => pass-through


@dataclass(slots=True)
class _OutputEntry:
    name: str
    data: bytes
    date_time: tuple[int, int, int, int, int, int]
    compress: bool


class ConversionPipeline:
    def __init__(self, options: PipelineOptions | None = None, converter: ImageConverter | None = None) -> None:
        self.options = options or PipelineOptions()
        self.converter = converter or ImageConverter(
            quality=self.options.jpeg_quality,
            background=self.options.background,
            keep_animated=self.options.keep_animated,
        )

    def run(
        self,
        input_path: str | Path,
        token: CancelToken | None = None,
        on_progress: ProgressCallback | None = None,
    ) -> PipelineResult:
        """Convert one archive; raises PipelineError or CancelledError on abort."""
        token = token or CancelToken()
        emit: ProgressCallback = on_progress or (lambda _p: None)
        report = ReportBuilder(input_path, jpeg_quality=self.options.jpeg_quality)

        with metrics.timed("pipeline.job_duration"), ArchiveReader(input_path) as reader:
            plan = self._scan(reader, report)
            total = sum(1 for item in plan if item.fmt is not None)
            emit(Progress(0, total, "", Phase.SCANNING))
            if total == 0:
                raise NoImagesError(f"No image files found in {Path(input_path).name}")
            _logger.info("scanned %s: %d image(s) of %d entries", input_path, total, report.stats.files_scanned)

            token.raise_if_cancelled()
            names = NameAllocator()
            outputs = self._convert(reader, plan, total, names, report, token, emit)

            token.raise_if_cancelled()
            emit(Progress(total, total, "", Phase.PACKAGING))
            output_path = self._package(input_path, outputs, names, report, token)

        _logger.info(
            "packaged %s: %d converted, %d copied, %d skipped",
            output_path,
            report.stats.files_converted,
            report.stats.files_copied,
            report.stats.files_skipped,
        )
        return PipelineResult(output_path=str(output_path), stats=report.stats, skipped=list(report.skipped))

    # ---- phases ----
    def _scan(self, reader: ArchiveReader, report: ReportBuilder) -> list[_ScanItem]:
        plan: list[_ScanItem] = []
        for entry in reader.list():
            report.increment_scanned()
            if entry.is_dir:
                continue
            if self.options.skip_nested_archives and entry.name.lower().endswith(ZIP_SUFFIX):
                report.add_skipped(entry.name, _NESTED_ZIP_REASON)
                continue
            fmt = format_for_name(entry.name)
            if fmt is None and not has_extension(entry.name):
                try:
                    fmt = sniff_format(reader.read_head(entry, SNIFF_BYTES))
                except CorruptArchiveError as e:
                    _logger.warning("skipping unreadable entry %s: %s", entry.name, e)
                    report.add_skipped(entry.name, str(e))
                    continue
            plan.append(_ScanItem(entry, fmt))
        return plan

    def _convert(  # noqa: PLR0913
        self,
        reader: ArchiveReader,
        plan: list[_ScanItem],
        total: int,
        names: NameAllocator,
        report: ReportBuilder,
        token: CancelToken,
        emit: ProgressCallback,
    ) -> list[_OutputEntry]:
        outputs: list[_OutputEntry] = []
        done = 0
        for item in plan:
            entry = item.entry
            if item.fmt is None:
                try:
                    data = reader.read(entry)
                except CorruptArchiveError as e:
                    _logger.warning("skipping unreadable entry %s: %s", entry.name, e)
                    report.add_skipped(entry.name, str(e))
                    continue
                outputs.append(_OutputEntry(names.allocate(entry.name), data, entry.date_time, compress=True))
                report.add_passthrough()
                continue

            token.raise_if_cancelled()
            done += 1
            try:
                result = self.converter.convert(entry.name, reader.read(entry), item.fmt)
            except (ConversionError, CorruptArchiveError) as e:
                _logger.warning("skipping %s: %s", entry.name, e)
                report.add_skipped(entry.name, getattr(e, "reason", str(e)))
                metrics.inc("pipeline.entries_skipped")
            else:
                if result.converted:
                    out_name = names.allocate(with_extension(entry.name, result.extension))
                    report.add_conversion(entry.name, out_name, result.original_format)
                    metrics.inc("pipeline.entries_converted")
                else:
                    out_name = names.allocate(entry.name)
                    report.add_copied(entry.name, out_name)
                    metrics.inc("pipeline.entries_copied")
                # already-compressed image payloads are stored, not deflated
                outputs.append(_OutputEntry(out_name, result.data, entry.date_time, compress=False))
            emit(Progress(done, total, entry.name, Phase.CONVERTING))
        return outputs

    def _package(
        self,
        input_path: str | Path,
        outputs: list[_OutputEntry],
        names: NameAllocator,
        report: ReportBuilder,
        token: CancelToken,
    ) -> Path:
        destination = converted_output_path(
            input_path,
            suffix=self.options.output_suffix,
            output_dir=self.options.output_dir,
            overwrite=self.options.overwrite_output,
        )
        with ArchiveWriter(destination) as writer:
            for out in outputs:
                token.raise_if_cancelled()
                writer.write_entry(out.name, out.data, out.date_time, compress=out.compress)
            if self.options.include_report:
                writer.write_entry(names.allocate(REPORT_NAME), report.to_json().encode("utf-8"))
        return destination
