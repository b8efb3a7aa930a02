"""Exception taxonomy for the conversion core.

Job-level failures derive from `PipelineError` and end the job as `failed`.
`ConversionError` is per-entry and never leaves the pipeline. `CancelledError`
travels through the same channel as failures but is reported as a cancellation.
"""

from __future__ import annotations


class ZipConverterError(Exception):
    """Base class for all errors raised by zip_converter."""


class ValidationError(ZipConverterError):
    """An input path was rejected before it reached the queue."""


class PipelineError(ZipConverterError):
    """A job-level failure: the job is aborted and reported as failed."""


class ArchiveOpenError(PipelineError):
    """The input archive cannot be opened or is not a zip container."""


class CorruptArchiveError(ArchiveOpenError):
    """The zip container is malformed or an entry cannot be read."""


class NoImagesError(PipelineError):
    """The archive opened fine but contains no image entries."""


class WriteError(PipelineError):
    """The output archive cannot be created or written."""


class ConversionError(ZipConverterError):
    """A single entry could not be decoded or re-encoded."""

    def __init__(self, entry_name: str, reason: str) -> None:
        super().__init__(f"{entry_name}: {reason}")
        self.entry_name = entry_name
        self.reason = reason


class CancelledError(ZipConverterError):
    """Cooperative stop requested through a CancelToken."""

    def __init__(self, message: str = "cancelled by user") -> None:
        super().__init__(message)
