from __future__ import annotations

import contextlib
import json
from pathlib import Path
from typing import Any

from PySide6.QtCore import Property, QObject, QUrl, Signal, Slot
from PySide6.QtGui import QDesktopServices

from zip_converter.app.job_queue import JobQueue
from zip_converter.app.state.queue_state import QueueState
from zip_converter.archive_engine.pipeline import ConversionPipeline, PipelineOptions
from zip_converter.logger import get_logger
from zip_converter.models import Progress
from zip_converter.settings_manager import SettingsManager

_logger = get_logger("backend")

EVENT_PROGRESS = "processing-progress"
EVENT_COMPLETE = "job-complete"
EVENT_FAILED = "job-failed"
EVENT_IDLE = "queue-idle"
EVENT_JOBS = "jobs"


def _handle_qjs_value_paths(payload: object) -> list[str] | None:
    """Handle QJSValue (common from QML) into list[str] for file paths."""

    if payload.__class__.__name__ != "QJSValue":
        return None
    js_value: Any = payload
    try:
        if js_value.isArray():
            result: list[str] = []
            length = js_value.property("length").toInt()
            for i in range(length):
                elem = js_value.property(i)
                if elem.isString():
                    result.append(elem.toString())
                elif not elem.isNull() and not elem.isUndefined():
                    result.append(str(elem.toVariant()))
            return result
        if js_value.isString():
            return [js_value.toString()]
        return [str(js_value.toVariant())]
    except (AttributeError, TypeError):
        return None


def _to_local_path(p: str) -> str:
    if p.startswith("file:"):
        url = QUrl(p)
        if url.isLocalFile():
            return url.toLocalFile()
    return p


def _coerce_paths(payload: object) -> list[str]:  # noqa: PLR0911
    """Coerce a UI-provided payload into a list of filesystem paths."""

    if payload is None:
        return []

    result = _handle_qjs_value_paths(payload)
    if result is not None:
        return [_to_local_path(p) for p in result]

    if isinstance(payload, dict):
        return _coerce_paths(payload.get("paths"))

    if isinstance(payload, (list, tuple, set)):
        return [_to_local_path(str(p)) for p in payload if p is not None]

    if isinstance(payload, str):
        s = str(payload)
        with contextlib.suppress(ValueError):
            v = json.loads(s)
            if isinstance(v, (list, tuple)):
                return [_to_local_path(str(p)) for p in v if p is not None]
        return [_to_local_path(s)]

    return [_to_local_path(str(payload))]


def _get_payload_value(payload: object | None, key: str, *, default: Any) -> Any:
    """Extract a value from a UI payload (dict or QJSValue), else `default`."""

    if payload is None:
        return default

    if payload.__class__.__name__ == "QJSValue" and hasattr(payload, "toVariant"):
        with contextlib.suppress(Exception):
            payload = payload.toVariant()  # type: ignore[assignment, attr-defined]

    if isinstance(payload, dict):
        return payload.get(key, default)

    return default


class BackendFacade(QObject):
    """Single backend object exposed to the UI layer.

    UI → Python: backend.dispatch(cmd, payload) or the enqueue_zips /
    cancel_current / clear_finished / open_in_folder methods
    Python → UI: backend.event(dict) for diagnostics, backend.taskEvent(dict)
    for queue events ("processing-progress", "job-complete", "job-failed",
    "queue-idle")
    Bindings: backend.queue (QueueState)
    """

    # QObject already has an .event() handler method, so we must not shadow it.
    event_ = Signal(object, name="event")
    taskEvent = Signal(object, name="taskEvent")

    def __init__(
        self,
        settings: SettingsManager | None = None,
        job_queue: JobQueue | None = None,
        parent: QObject | None = None,
    ) -> None:
        super().__init__(parent)
        self._settings_mgr = settings or SettingsManager()
        self._state = QueueState(self)
        self._queue = job_queue or JobQueue(self._make_pipeline, parent=self)

        self._queue.job_started.connect(self._on_job_started)
        self._queue.progress.connect(self._on_progress)
        self._queue.job_complete.connect(self._on_job_complete)
        self._queue.job_failed.connect(self._on_job_failed)
        self._queue.jobs_changed.connect(self._on_jobs_changed)
        self._queue.idle.connect(self._on_idle)

    def _make_pipeline(self) -> ConversionPipeline:
        # settings are re-read per job so edits apply to the next job
        return ConversionPipeline(PipelineOptions.from_settings(self._settings_mgr))

    def _get_queue_state(self) -> QObject:
        return self._state

    queue = Property(QObject, _get_queue_state, constant=True)  # type: ignore[arg-type]

    @property
    def job_queue(self) -> JobQueue:
        return self._queue

    # ---- boundary operations ----
    def enqueue_zips(self, paths: object) -> list[dict]:
        requested = _coerce_paths(paths)
        jobs = self._queue.enqueue(requested)
        rejected = len(requested) - len(jobs)
        if rejected:
            _logger.info("ignored %d non-zip path(s)", rejected)
        return [job.to_dict() for job in jobs]

    def cancel_current(self) -> None:
        self._queue.cancel_current()

    def clear_finished(self) -> None:
        self._queue.clear_finished()

    def open_in_folder(self, path: str) -> None:
        p = _to_local_path(str(path or ""))
        if not p:
            return
        folder = str(Path(p).parent)
        if not QDesktopServices.openUrl(QUrl.fromLocalFile(folder)):
            _logger.warning("could not reveal %s", folder)

    def jobs(self) -> list[dict]:
        return [job.to_dict() for job in self._queue.jobs()]

    def shutdown(self) -> None:
        self._queue.shutdown()

    # ---- command entry ----
    @Slot(str, "QVariant")  # type: ignore[call-overload]
    def dispatch(self, cmd: str, payload: object | None = None) -> None:
        command = str(cmd or "").strip()
        if not command:
            self.event_.emit({"type": "event", "name": "error", "level": "error", "message": "Empty cmd"})
            return

        if command == "log":
            self._handle_log_cmd(payload)
            return

        if command == "enqueueZips":
            self.enqueue_zips(payload)
            return

        if command == "cancelCurrent":
            self.cancel_current()
            return

        if command == "clearFinished":
            self.clear_finished()
            return

        if command == "openInFolder":
            self.open_in_folder(str(_get_payload_value(payload, "path", default=payload) or ""))
            return

        if command == "listJobs":
            self._emit_task(EVENT_JOBS, {"jobs": self.jobs()})
            return

        self.event_.emit({"type": "event", "name": "error", "level": "error", "message": f"Unknown cmd: {command}"})

    def _handle_log_cmd(self, payload: object | None) -> None:
        level = str(_get_payload_value(payload, "level", default="debug")).lower()
        msg = str(_get_payload_value(payload, "message", default=""))
        if not msg:
            return
        if level == "info":
            _logger.info("[UI] %s", msg)
        elif level in {"warn", "warning"}:
            _logger.warning("[UI] %s", msg)
        elif level == "error":
            _logger.error("[UI] %s", msg)
        else:
            _logger.debug("[UI] %s", msg)

    # ---- queue signals -> taskEvent ----
    def _emit_task(self, name: str, payload: dict) -> None:
        self.taskEvent.emit({"type": "event", "name": name, "payload": payload})

    def _on_job_started(self, job: object) -> None:
        self._state._set_percent(0)
        self._state._set_running(True)

    def _on_progress(self, job_id: str, progress: Progress) -> None:
        self._state._set_percent(progress.percent)
        self._emit_task(EVENT_PROGRESS, {"jobId": job_id, **progress.to_dict()})

    def _on_job_complete(self, payload: dict) -> None:
        self._emit_task(EVENT_COMPLETE, dict(payload))

    def _on_job_failed(self, payload: dict) -> None:
        self._emit_task(EVENT_FAILED, dict(payload))

    def _on_jobs_changed(self) -> None:
        self._state._set_pending_count(self._queue.pending_count())

    def _on_idle(self) -> None:
        self._state._set_running(False)
        self._emit_task(EVENT_IDLE, {})
