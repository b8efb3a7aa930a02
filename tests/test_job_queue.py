from __future__ import annotations

from pathlib import Path

from tests.helpers.fakes import BlockingPipeline, FakePipeline
from zip_converter.app.job_queue import CANCELLED_MESSAGE, JobQueue
from zip_converter.errors import CancelledError
from zip_converter.models import JobStatus


def _queue(pipeline) -> JobQueue:
    return JobQueue(lambda: pipeline)


def test_enqueue_accepts_only_zip_paths(qtbot):
    queue = _queue(FakePipeline())

    with qtbot.waitSignal(queue.idle, timeout=5000):
        jobs = queue.enqueue(["a.zip", "b.txt", "c.ZIP"])

    assert [Path(j.input_path).name for j in jobs] == ["a.zip", "c.ZIP"]
    assert all(Path(j.input_path).is_absolute() for j in jobs)
    assert [j.status for j in queue.jobs()] == [JobStatus.SUCCESS, JobStatus.SUCCESS]


def test_enqueue_nothing_valid_is_a_noop(qtbot):
    queue = _queue(FakePipeline())
    with qtbot.assertNotEmitted(queue.jobs_changed):
        assert queue.enqueue(["notes.txt", "", "archive.rar"]) == []
    assert queue.jobs() == []
    assert queue.is_idle()


def test_jobs_run_one_at_a_time_in_order(qtbot):
    log: list[str] = []
    tracker = {"active": 0, "max": 0}
    queue = JobQueue(lambda: FakePipeline(log, tracker))
    started: list[str] = []
    queue.job_started.connect(lambda job: started.append(Path(job.input_path).name))

    with qtbot.waitSignal(queue.idle, timeout=5000):
        queue.enqueue(["one.zip", "two.zip"])
        queue.enqueue(["three.zip"])

    assert log == ["one.zip", "two.zip", "three.zip"]
    assert started == log
    assert tracker["max"] == 1
    assert queue.pending_count() == 0


def test_pending_jobs_wait_while_one_is_processing(qtbot):
    queue = _queue(BlockingPipeline())
    with qtbot.waitSignal(queue.progress, timeout=5000):
        queue.enqueue(["first.zip", "second.zip"])

    statuses = [j.status for j in queue.jobs()]
    assert statuses == [JobStatus.PROCESSING, JobStatus.PENDING]
    assert queue.active_job().input_path.endswith("first.zip")
    assert queue.pending_count() == 1

    # cancel both so the test leaves no thread running
    with qtbot.waitSignal(queue.job_started, timeout=5000):
        queue.cancel_current()
    with qtbot.waitSignal(queue.idle, timeout=5000):
        queue.cancel_current()
    assert [j.status for j in queue.jobs()] == [JobStatus.CANCELLED, JobStatus.CANCELLED]


def test_success_records_output_and_emits_payload(qtbot):
    queue = _queue(FakePipeline())

    with qtbot.waitSignal(queue.job_complete, timeout=5000) as blocker:
        (job,) = queue.enqueue(["photos.zip"])
    qtbot.waitUntil(queue.is_idle, timeout=5000)

    payload = blocker.args[0]
    assert payload["jobId"] == job.id
    assert payload["outputPath"].endswith("photos-converted.zip")
    assert payload["filesSkipped"] == 1
    assert payload["stats"]["filesConverted"] == 2

    done = queue.job(job.id)
    assert done.status is JobStatus.SUCCESS
    assert done.output_path == payload["outputPath"]
    assert done.progress is None
    assert done.stats.files_converted == 2


def test_progress_is_delivered_before_outcome(qtbot):
    queue = _queue(FakePipeline())
    seen: list[str] = []
    queue.progress.connect(lambda _id, p: seen.append(p.phase.value))
    queue.job_complete.connect(lambda _p: seen.append("complete"))

    with qtbot.waitSignal(queue.idle, timeout=5000):
        queue.enqueue(["x.zip"])

    assert seen == ["scanning", "converting", "converting", "packaging", "complete"]


def test_failure_does_not_affect_next_job(qtbot):
    queue = _queue(FakePipeline())
    failures: list[dict] = []
    queue.job_failed.connect(failures.append)

    with qtbot.waitSignal(queue.idle, timeout=5000):
        bad, good = queue.enqueue(["bad.zip", "good.zip"])

    assert queue.job(bad.id).status is JobStatus.FAILED
    assert "broken" in queue.job(bad.id).error
    assert queue.job(good.id).status is JobStatus.SUCCESS
    assert failures == [{"jobId": bad.id, "error": queue.job(bad.id).error, "cancelled": False}]


def test_unexpected_exception_fails_the_job(qtbot):
    queue = _queue(FakePipeline())
    with qtbot.waitSignal(queue.idle, timeout=5000):
        (job,) = queue.enqueue(["crash.zip"])

    failed = queue.job(job.id)
    assert failed.status is JobStatus.FAILED
    assert failed.error.startswith("Unexpected error")


def test_cancel_current_stops_the_running_job(qtbot):
    queue = _queue(BlockingPipeline())
    failures: list[dict] = []
    queue.job_failed.connect(failures.append)

    with qtbot.waitSignal(queue.progress, timeout=5000):
        (job,) = queue.enqueue(["slow.zip"])
    with qtbot.waitSignal(queue.idle, timeout=5000):
        assert queue.cancel_current() is True

    cancelled = queue.job(job.id)
    assert cancelled.status is JobStatus.CANCELLED
    assert cancelled.error == CANCELLED_MESSAGE
    assert failures == [{"jobId": job.id, "error": CANCELLED_MESSAGE, "cancelled": True}]


def test_cancel_when_idle_is_a_noop(qtbot):
    queue = _queue(FakePipeline())
    with qtbot.waitSignal(queue.idle, timeout=5000):
        queue.enqueue(["done.zip"])

    with qtbot.assertNotEmitted(queue.job_failed):
        assert queue.cancel_current() is False
    assert [j.status for j in queue.jobs()] == [JobStatus.SUCCESS]


def test_clear_finished_keeps_unfinished_jobs(qtbot):
    queue = _queue(BlockingPipeline())
    with qtbot.waitSignal(queue.idle, timeout=5000):
        queue.enqueue(["a.zip"])
        queue.cancel_current()
    with qtbot.waitSignal(queue.progress, timeout=5000):
        queue.enqueue(["b.zip", "c.zip"])

    assert queue.clear_finished() == 1
    assert queue.clear_finished() == 0
    assert [j.status for j in queue.jobs()] == [JobStatus.PROCESSING, JobStatus.PENDING]

    queue.shutdown()
    qtbot.waitUntil(lambda: queue.job(queue.jobs()[0].id).status is JobStatus.CANCELLED, timeout=5000)
    with qtbot.waitSignal(queue.idle, timeout=5000):
        queue.cancel_current()


def test_returned_jobs_are_copies(qtbot):
    queue = _queue(FakePipeline())
    with qtbot.waitSignal(queue.idle, timeout=5000):
        (job,) = queue.enqueue(["copy.zip"])

    snapshot = queue.jobs()[0]
    snapshot.status = JobStatus.PENDING
    snapshot.error = "edited"
    job.input_path = "elsewhere.zip"

    stored = queue.job(job.id)
    assert stored.status is JobStatus.SUCCESS
    assert stored.error is None
    assert stored.input_path.endswith("copy.zip")


def test_worker_cancelled_error_maps_to_cancelled(qtbot):
    class CancelsItself:
        def run(self, input_path, token, on_progress=None):
            raise CancelledError()

    queue = _queue(CancelsItself())
    with qtbot.waitSignal(queue.idle, timeout=5000):
        (job,) = queue.enqueue(["self.zip"])
    assert queue.job(job.id).status is JobStatus.CANCELLED


def test_pipeline_factory_error_fails_job_and_queue_moves_on(qtbot):
    calls = {"n": 0}

    def factory():
        calls["n"] += 1
        if calls["n"] == 1:
            raise OSError("codec unavailable")
        return FakePipeline()

    queue = JobQueue(factory)
    failures: list[dict] = []
    queue.job_failed.connect(failures.append)

    with qtbot.waitSignal(queue.idle, timeout=5000):
        first, second = queue.enqueue(["first.zip", "second.zip"])

    assert queue.job(first.id).status is JobStatus.FAILED
    assert queue.job(first.id).error == "Unexpected error: codec unavailable"
    assert failures == [{"jobId": first.id, "error": "Unexpected error: codec unavailable", "cancelled": False}]
    assert queue.job(second.id).status is JobStatus.SUCCESS
    assert queue.is_idle()
