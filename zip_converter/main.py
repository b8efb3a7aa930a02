"""Headless entry point: convert the images of one or more zip archives.

    python -m zip_converter photos.zip more.zip --quality 90 --log-level debug
"""

from __future__ import annotations

import argparse
import os
import sys

from PySide6.QtCore import QCoreApplication, QEventLoop

from zip_converter import __version__
from zip_converter.app.backend import EVENT_COMPLETE, EVENT_FAILED, EVENT_PROGRESS, BackendFacade
from zip_converter.archive_engine.metrics import metrics
from zip_converter.logger import get_logger
from zip_converter.models import JobStatus
from zip_converter.settings_manager import SettingsManager

# --- CLI logging options -----------------------------------------------------
# Logging options are parsed first and mirrored into ZIP_CONVERTER_LOG_LEVEL /
# ZIP_CONVERTER_LOG_CATS so every get_logger() call picks them up.


def _apply_cli_logging_options(args: list[str]) -> list[str]:
    parser = argparse.ArgumentParser(add_help=False)
    parser.add_argument("--log-level", help="Set log level")
    parser.add_argument("--log-cats", help="Set log categories")
    known, remaining = parser.parse_known_args(args)
    if known.log_level:
        os.environ["ZIP_CONVERTER_LOG_LEVEL"] = known.log_level
    if known.log_cats:
        os.environ["ZIP_CONVERTER_LOG_CATS"] = known.log_cats
    return remaining


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="zip-converter", description="Convert the images inside zip archives to JPEG")
    parser.add_argument("paths", nargs="+", help=".zip archives to convert (other files are ignored)")
    parser.add_argument("--settings", help="Settings JSON file")
    parser.add_argument("--quality", type=int, help="JPEG quality (1-100)")
    parser.add_argument("--output-dir", help="Write converted archives here instead of next to the input")
    parser.add_argument("--overwrite", action="store_true", help="Replace an existing converted archive")
    parser.add_argument("--no-report", action="store_true", help="Do not add report.json to the output")
    parser.add_argument("--log-level", help="Set log level")
    parser.add_argument("--log-cats", help="Set log categories")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    return parser


def _apply_overrides(settings: SettingsManager, args: argparse.Namespace) -> None:
    # overrides stay in memory; the settings file is not rewritten
    if args.quality is not None:
        settings.data["jpeg_quality"] = args.quality
    if args.output_dir:
        os.makedirs(args.output_dir, exist_ok=True)
        settings.data["output_dir"] = args.output_dir
    if args.overwrite:
        settings.data["overwrite_output"] = True
    if args.no_report:
        settings.data["include_report"] = False


def run(argv: list[str] | None = None) -> int:
    """Application entrypoint; returns 0 when every job succeeded."""
    if argv is None:
        argv = sys.argv
    remaining = _apply_cli_logging_options(list(argv[1:]))
    args = build_parser().parse_args(remaining)
    logger = get_logger("main")

    settings = SettingsManager(args.settings)
    _apply_overrides(settings, args)

    _app = QCoreApplication.instance() or QCoreApplication(list(argv))
    backend = BackendFacade(settings=settings)

    def _log_event(event: dict) -> None:
        name = event.get("name")
        payload = event.get("payload") or {}
        if name == EVENT_PROGRESS:
            logger.debug(
                "[%s] %s %d/%d %s",
                payload.get("jobId", "")[:8],
                payload.get("phase"),
                payload.get("currentFile", 0),
                payload.get("totalFiles", 0),
                payload.get("currentFilename", ""),
            )
        elif name == EVENT_COMPLETE:
            logger.info("done: %s (%d skipped)", payload.get("outputPath"), payload.get("filesSkipped", 0))
        elif name == EVENT_FAILED:
            logger.error("failed: %s", payload.get("error"))

    backend.taskEvent.connect(_log_event)

    loop = QEventLoop()
    backend.job_queue.idle.connect(loop.quit)
    jobs = backend.enqueue_zips(args.paths)
    if not jobs:
        logger.error("no .zip archives given")
        return 2
    loop.exec()
    backend.shutdown()

    results = backend.jobs()
    failed = [j for j in results if j["status"] != JobStatus.SUCCESS.value]
    timing = metrics.summary("pipeline.job_duration")
    logger.info(
        "%d of %d archive(s) converted in %.1fs (longest %.1fs)",
        len(results) - len(failed),
        len(results),
        timing.total,
        timing.longest,
    )
    return 0 if not failed else 1
