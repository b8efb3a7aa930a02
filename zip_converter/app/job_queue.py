"""Sequential job queue driving the conversion pipeline on a worker thread.

The queue object lives on the command (Qt main) thread. Each job runs in its
own `PipelineWorker` QThread; the worker's signals arrive back here through
queued connections, so progress for a job is always observed before its
single outcome (success, failure or cancellation).

All reads and writes of the job list happen under one lock and callers only
ever receive copies of Job records.
"""

from __future__ import annotations

import threading
from collections.abc import Callable, Iterable
from dataclasses import replace
from pathlib import Path
from typing import Any
from uuid import uuid4

from PySide6.QtCore import QObject, QThread, Signal, Slot

from zip_converter.archive_engine.metrics import metrics
from zip_converter.archive_engine.pipeline import CancelToken, ConversionPipeline, PipelineResult
from zip_converter.errors import CancelledError, ZipConverterError
from zip_converter.logger import get_logger
from zip_converter.models import TRANSITIONS, Job, JobStatus, Progress
from zip_converter.path_utils import abs_path_str, is_zip_path

_logger = get_logger("queue")

CANCELLED_MESSAGE = "cancelled by user"
_WORKER_WAIT_MS = 5000


class PipelineWorker(QThread):
    """Runs one pipeline job; emits exactly one of succeeded/failed/cancelled."""

    progress = Signal(str, object)  # job_id, Progress
    succeeded = Signal(str, object)  # job_id, PipelineResult
    failed = Signal(str, str)  # job_id, message
    cancelled = Signal(str)  # job_id

    def __init__(
        self,
        job_id: str,
        input_path: str,
        pipeline: Any,
        token: CancelToken,
        parent: QObject | None = None,
    ) -> None:
        super().__init__(parent)
        self.job_id = job_id
        self.input_path = input_path
        self._pipeline = pipeline
        self._token = token

    def run(self) -> None:
        job_id = self.job_id
        try:
            result = self._pipeline.run(
                self.input_path,
                self._token,
                on_progress=lambda p: self.progress.emit(job_id, p),
            )
        except CancelledError:
            self.cancelled.emit(job_id)
            return
        except ZipConverterError as e:
            self.failed.emit(job_id, str(e))
            return
        except Exception as e:
            _logger.exception("job %s crashed: %s", job_id, e)
            self.failed.emit(job_id, f"Unexpected error: {e}")
            return
        self.succeeded.emit(job_id, result)

    def cancel(self) -> None:
        self._token.cancel()


class JobQueue(QObject):
    """Ordered job list with a single active slot."""

    job_added = Signal(object)  # Job copy
    job_started = Signal(object)  # Job copy
    progress = Signal(str, object)  # job_id, Progress
    job_complete = Signal(object)  # {"jobId", "outputPath", "filesSkipped", "stats"}
    job_failed = Signal(object)  # {"jobId", "error", "cancelled"}
    jobs_changed = Signal()
    idle = Signal()

    def __init__(
        self,
        pipeline_factory: Callable[[], Any] | None = None,
        parent: QObject | None = None,
    ) -> None:
        super().__init__(parent)
        self._pipeline_factory = pipeline_factory or ConversionPipeline
        self._lock = threading.RLock()
        self._jobs: list[Job] = []
        self._active_id: str | None = None
        self._token: CancelToken | None = None
        self._worker: PipelineWorker | None = None

    # ---- commands ----
    def enqueue(self, paths: Iterable[str | Path]) -> list[Job]:
        created: list[Job] = []
        with self._lock:
            for raw in paths or ():
                if not is_zip_path(raw):
                    _logger.debug("rejected non-zip path: %s", raw)
                    continue
                job = Job(id=str(uuid4()), input_path=abs_path_str(raw))
                self._jobs.append(job)
                created.append(job.copy())
            start = bool(created) and self._active_id is None

        for job in created:
            _logger.info("enqueued job %s: %s", job.id, job.input_path)
            self.job_added.emit(job)
        if created:
            metrics.inc("queue.jobs_enqueued", len(created))
            self.jobs_changed.emit()
        if start:
            self._advance()
        return created

    def cancel_current(self) -> bool:
        """Ask the running job to stop; the status changes once it acknowledges."""
        with self._lock:
            token, job_id = self._token, self._active_id
        if token is None or job_id is None:
            return False
        token.cancel()
        _logger.info("cancel requested for job %s", job_id)
        return True

    def clear_finished(self) -> int:
        with self._lock:
            before = len(self._jobs)
            self._jobs = [j for j in self._jobs if not j.status.is_terminal]
            removed = before - len(self._jobs)
        if removed:
            _logger.debug("cleared %d finished job(s)", removed)
            self.jobs_changed.emit()
        return removed

    def shutdown(self, timeout_ms: int = _WORKER_WAIT_MS) -> None:
        """Cancel the active run and wait for its thread (application exit)."""
        self.cancel_current()
        worker = self._worker
        if worker is not None and worker.isRunning():
            worker.wait(timeout_ms)

    # ---- inspection ----
    def jobs(self) -> list[Job]:
        with self._lock:
            return [j.copy() for j in self._jobs]

    def job(self, job_id: str) -> Job | None:
        with self._lock:
            job = self._find(job_id)
            return job.copy() if job is not None else None

    def active_job(self) -> Job | None:
        with self._lock:
            return self.job(self._active_id) if self._active_id else None

    def is_idle(self) -> bool:
        with self._lock:
            return self._active_id is None

    def pending_count(self) -> int:
        with self._lock:
            return sum(1 for j in self._jobs if j.status is JobStatus.PENDING)

    # ---- internal state transitions ----
    def _find(self, job_id: str | None) -> Job | None:
        for job in self._jobs:
            if job.id == job_id:
                return job
        return None

    @staticmethod
    def _transition(job: Job, status: JobStatus) -> None:
        if status not in TRANSITIONS[job.status]:
            raise RuntimeError(f"illegal transition {job.status.value} -> {status.value} for job {job.id}")
        job.status = status

    def _advance(self) -> None:
        failed: dict | None = None
        with self._lock:
            if self._active_id is not None:
                return
            job = next((j for j in self._jobs if j.status is JobStatus.PENDING), None)
            if job is not None:
                try:
                    pipeline = self._pipeline_factory()
                except Exception as e:
                    _logger.exception("could not create a pipeline for job %s: %s", job.id, e)
                    self._transition(job, JobStatus.PROCESSING)
                    self._transition(job, JobStatus.FAILED)
                    job.error = f"Unexpected error: {e}"
                    failed = {"jobId": job.id, "error": job.error, "cancelled": False}
                else:
                    token = CancelToken()
                    worker = PipelineWorker(job.id, job.input_path, pipeline, token, parent=self)
                    self._transition(job, JobStatus.PROCESSING)
                    self._active_id = job.id
                    self._token = token
                    self._worker = worker
                    snapshot = job.copy()

        if job is None:
            _logger.debug("queue idle")
            self.idle.emit()
            return

        if failed is not None:
            metrics.inc("queue.jobs_failed")
            self.job_failed.emit(failed)
            self._after_outcome()
            return

        worker.progress.connect(self._on_worker_progress)
        worker.succeeded.connect(self._on_worker_succeeded)
        worker.failed.connect(self._on_worker_failed)
        worker.cancelled.connect(self._on_worker_cancelled)

        _logger.info("processing job %s: %s", snapshot.id, snapshot.input_path)
        self.job_started.emit(snapshot)
        self.jobs_changed.emit()
        worker.start()

    def _complete(self, job_id: str, status: JobStatus, **fields: Any) -> bool:
        """Apply the outcome of the active job and release the active slot."""
        with self._lock:
            job = self._find(job_id)
            if job is None or job.status is not JobStatus.PROCESSING:
                _logger.warning("ignoring outcome %s for job %s", status.value, job_id)
                return False
            self._transition(job, status)
            job.progress = None
            for key, value in fields.items():
                setattr(job, key, value)
            if self._active_id == job_id:
                self._active_id = None
                self._token = None
            worker, self._worker = self._worker, None

        if worker is not None:
            # run() returns right after emitting the outcome
            worker.wait(_WORKER_WAIT_MS)
            worker.deleteLater()
        metrics.inc(f"queue.jobs_{status.value}")
        return True

    @Slot(str, object)
    def _on_worker_progress(self, job_id: str, progress: Progress) -> None:
        with self._lock:
            job = self._find(job_id)
            if job is None or job.status is not JobStatus.PROCESSING:
                return
            job.progress = progress
        self.progress.emit(job_id, progress)

    @Slot(str, object)
    def _on_worker_succeeded(self, job_id: str, result: PipelineResult) -> None:
        if not self._complete(job_id, JobStatus.SUCCESS, output_path=result.output_path, stats=replace(result.stats)):
            return
        _logger.info("job %s complete: %s", job_id, result.output_path)
        self.job_complete.emit(
            {
                "jobId": job_id,
                "outputPath": result.output_path,
                "filesSkipped": result.files_skipped,
                "stats": result.stats.to_dict(),
            }
        )
        self._after_outcome()

    @Slot(str, str)
    def _on_worker_failed(self, job_id: str, message: str) -> None:
        if not self._complete(job_id, JobStatus.FAILED, error=message):
            return
        _logger.error("job %s failed: %s", job_id, message)
        self.job_failed.emit({"jobId": job_id, "error": message, "cancelled": False})
        self._after_outcome()

    @Slot(str)
    def _on_worker_cancelled(self, job_id: str) -> None:
        if not self._complete(job_id, JobStatus.CANCELLED, error=CANCELLED_MESSAGE):
            return
        _logger.info("job %s cancelled", job_id)
        self.job_failed.emit({"jobId": job_id, "error": CANCELLED_MESSAGE, "cancelled": True})
        self._after_outcome()

    def _after_outcome(self) -> None:
        self.jobs_changed.emit()
        self._advance()
