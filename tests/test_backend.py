from __future__ import annotations

import json
from pathlib import Path

import pytest

from tests.helpers.fakes import BlockingPipeline, FakePipeline
from zip_converter.app import backend as backend_mod
from zip_converter.app.backend import (
    EVENT_COMPLETE,
    EVENT_FAILED,
    EVENT_IDLE,
    EVENT_JOBS,
    EVENT_PROGRESS,
    BackendFacade,
    _coerce_paths,
)
from zip_converter.app.job_queue import JobQueue
from zip_converter.settings_manager import SettingsManager


@pytest.fixture
def settings(tmp_path: Path) -> SettingsManager:
    return SettingsManager(str(tmp_path / "settings.json"))


def _backend(settings: SettingsManager, pipeline) -> tuple[BackendFacade, list[dict]]:
    backend = BackendFacade(settings=settings, job_queue=JobQueue(lambda: pipeline))
    events: list[dict] = []
    backend.taskEvent.connect(events.append)
    return backend, events


def _names(events: list[dict]) -> list[str]:
    return [e["name"] for e in events]


def test_enqueue_command_emits_progress_then_complete(qtbot, settings):
    backend, events = _backend(settings, FakePipeline())

    with qtbot.waitSignal(backend.job_queue.idle, timeout=5000):
        backend.dispatch("enqueueZips", {"paths": ["a.zip", "notes.txt"]})

    assert _names(events) == [EVENT_PROGRESS] * 4 + [EVENT_COMPLETE, EVENT_IDLE]
    assert all(e["type"] == "event" for e in events)

    job_id = backend.jobs()[0]["id"]
    first = events[0]["payload"]
    assert first == {"jobId": job_id, "currentFile": 0, "totalFiles": 2, "currentFilename": "", "phase": "scanning"}
    complete = events[4]["payload"]
    assert complete["jobId"] == job_id
    assert complete["outputPath"].endswith("a-converted.zip")
    assert complete["filesSkipped"] == 1


def test_queue_state_tracks_the_run(qtbot, settings):
    backend, _ = _backend(settings, FakePipeline())
    state = backend.queue
    running: list[bool] = []
    state.runningChanged.connect(running.append)

    with qtbot.waitSignal(backend.job_queue.idle, timeout=5000):
        backend.enqueue_zips(["one.zip", "two.zip"])

    assert running == [True, False]
    assert state.running is False
    assert state.percent == 100
    assert state.pendingCount == 0


def test_failed_job_event(qtbot, settings):
    backend, events = _backend(settings, FakePipeline())

    with qtbot.waitSignal(backend.job_queue.idle, timeout=5000):
        backend.enqueue_zips(["bad.zip"])

    failed = [e for e in events if e["name"] == EVENT_FAILED]
    assert len(failed) == 1
    assert failed[0]["payload"]["cancelled"] is False
    assert "broken" in failed[0]["payload"]["error"]
    assert backend.jobs()[0]["status"] == "failed"


def test_cancel_command(qtbot, settings):
    backend, events = _backend(settings, BlockingPipeline())

    with qtbot.waitSignal(backend.job_queue.progress, timeout=5000):
        backend.dispatch("enqueueZips", ["slow.zip"])
    with qtbot.waitSignal(backend.job_queue.idle, timeout=5000):
        backend.dispatch("cancelCurrent", None)

    failed = [e["payload"] for e in events if e["name"] == EVENT_FAILED]
    assert failed == [{"jobId": backend.jobs()[0]["id"], "error": "cancelled by user", "cancelled": True}]
    assert backend.jobs()[0]["status"] == "cancelled"


def test_clear_and_list_commands(qtbot, settings):
    backend, events = _backend(settings, FakePipeline())
    with qtbot.waitSignal(backend.job_queue.idle, timeout=5000):
        backend.enqueue_zips(json.dumps(["x.zip", "y.zip"]))

    backend.dispatch("listJobs")
    listed = events[-1]
    assert listed["name"] == EVENT_JOBS
    assert [Path(j["inputPath"]).name for j in listed["payload"]["jobs"]] == ["x.zip", "y.zip"]
    assert {j["status"] for j in listed["payload"]["jobs"]} == {"success"}

    backend.dispatch("clearFinished")
    backend.dispatch("clearFinished")
    assert backend.jobs() == []


def test_unknown_and_empty_commands_report_errors(settings):
    backend, _ = _backend(settings, FakePipeline())
    errors: list[dict] = []
    backend.event_.connect(errors.append)

    backend.dispatch("explode", {})
    backend.dispatch("  ", None)

    assert [e["message"] for e in errors] == ["Unknown cmd: explode", "Empty cmd"]
    assert all(e["level"] == "error" for e in errors)


def test_log_command_forwards_to_logger(settings, caplog):
    backend, _ = _backend(settings, FakePipeline())
    caplog.set_level("INFO", logger="zip_converter")
    logger = backend_mod._logger
    logger.addHandler(caplog.handler)
    try:
        backend.dispatch("log", {"level": "warning", "message": "hello from ui"})
    finally:
        logger.removeHandler(caplog.handler)

    assert any("[UI] hello from ui" in r.getMessage() for r in caplog.records)


def test_open_in_folder_reveals_parent(monkeypatch, settings, tmp_path):
    opened: list[str] = []

    class FakeDesktop:
        @staticmethod
        def openUrl(url):
            opened.append(url.toLocalFile())
            return True

    monkeypatch.setattr(backend_mod, "QDesktopServices", FakeDesktop)
    backend, _ = _backend(settings, FakePipeline())
    target = tmp_path / "photos-converted.zip"

    backend.dispatch("openInFolder", {"path": str(target)})
    backend.open_in_folder("")

    assert [Path(p) for p in opened] == [tmp_path]


def test_pipeline_reads_current_settings(settings):
    backend = BackendFacade(settings=settings)
    settings.data["jpeg_quality"] = 60

    pipeline = backend._make_pipeline()

    assert pipeline.options.jpeg_quality == 60
    assert pipeline.converter.quality == 60


def test_coerce_paths_variants(tmp_path):
    local = tmp_path / "a.zip"
    assert _coerce_paths(None) == []
    assert _coerce_paths({"paths": ["a.zip", None]}) == ["a.zip"]
    assert _coerce_paths('["a.zip", "b.zip"]') == ["a.zip", "b.zip"]
    assert _coerce_paths("plain.zip") == ["plain.zip"]
    assert _coerce_paths([local.as_uri()]) == [str(local)]
