"""Job records shared between the queue, the pipeline and the backend.

`to_dict()` produces the camelCase wire form consumed by the UI layer.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from enum import Enum


class JobStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    SUCCESS = "success"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in _TERMINAL


_TERMINAL = frozenset({JobStatus.SUCCESS, JobStatus.FAILED, JobStatus.CANCELLED})

# Allowed status transitions; terminal states have no outgoing edges.
TRANSITIONS: dict[JobStatus, frozenset[JobStatus]] = {
    JobStatus.PENDING: frozenset({JobStatus.PROCESSING}),
    JobStatus.PROCESSING: _TERMINAL,
    JobStatus.SUCCESS: frozenset(),
    JobStatus.FAILED: frozenset(),
    JobStatus.CANCELLED: frozenset(),
}


class Phase(str, Enum):
    SCANNING = "scanning"
    CONVERTING = "converting"
    PACKAGING = "packaging"


@dataclass(frozen=True, slots=True)
class Progress:
    current_file: int
    total_files: int
    current_filename: str
    phase: Phase

    def to_dict(self) -> dict:
        return {
            "currentFile": self.current_file,
            "totalFiles": self.total_files,
            "currentFilename": self.current_filename,
            "phase": self.phase.value,
        }

    @property
    def percent(self) -> int:
        if self.phase is Phase.PACKAGING:
            return 100
        if self.total_files <= 0:
            return 0
        return int((self.current_file * 100) / self.total_files)


@dataclass(slots=True)
class ConversionStats:
    files_scanned: int = 0
    files_included: int = 0
    files_converted: int = 0
    files_copied: int = 0
    files_skipped: int = 0

    def to_dict(self) -> dict:
        return {
            "filesScanned": self.files_scanned,
            "filesIncluded": self.files_included,
            "filesConverted": self.files_converted,
            "filesCopied": self.files_copied,
            "filesSkipped": self.files_skipped,
        }


@dataclass(slots=True)
class Job:
    id: str
    input_path: str
    status: JobStatus = JobStatus.PENDING
    progress: Progress | None = None
    output_path: str | None = None
    error: str | None = None
    stats: ConversionStats | None = field(default=None)

    def copy(self) -> Job:
        stats = replace(self.stats) if self.stats is not None else None
        return replace(self, stats=stats)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "inputPath": self.input_path,
            "status": self.status.value,
            "progress": self.progress.to_dict() if self.progress else None,
            "outputPath": self.output_path,
            "error": self.error,
            "stats": self.stats.to_dict() if self.stats else None,
        }
