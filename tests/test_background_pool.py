import threading
import time

import pytest

from app.db.models.analysis_job import AnalysisJob
from app.db.models.user import User
from app.schemas.analysis_job import AnalysisJobCreate, JobStatus
from app.services.background_task_services import PoolBasedBackgroundTaskManager
from app.services.exceptions import PermanentJobError, RetryableJobError
from app.services.store_services import JobStore


class FakeScheduler:
    """Stands in for APScheduler so timers never fire during tests."""

    instances = []

    def __init__(self):
        self.jobs = []
        self.running = False
        FakeScheduler.instances.append(self)

    def add_job(self, func, **kwargs):
        self.jobs.append((func, kwargs))

    def start(self):
        self.running = True

    def shutdown(self, wait=True):
        self.running = False


class CompletingPipeline:
    """Marks jobs completed, optionally holding each one until released."""

    def __init__(self, job_store, block=False):
        self.job_store = job_store
        self.release = threading.Event()
        if not block:
            self.release.set()
        self.lock = threading.Lock()
        self.started = []
        self.active = 0
        self.max_active = 0

    def run(self, job):
        with self.lock:
            self.started.append(job.id)
            self.active += 1
            self.max_active = max(self.max_active, self.active)
        try:
            if not self.release.wait(timeout=10):
                raise RuntimeError("test pipeline was never released")
            return self.job_store.update_job(job.id, {
                "status": JobStatus.COMPLETED,
                "progress_percent": 100,
                "in_progress": False,
            })
        finally:
            with self.lock:
                self.active -= 1


class RaisingPipeline:
    def __init__(self, error):
        self.error = error
        self.calls = 0

    def run(self, job):
        self.calls += 1
        raise self.error


def _wait_until(predicate, timeout=5.0):
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.01)
    return predicate()


@pytest.fixture
def job_store(session_factory):
    with session_factory() as db:
        db.add(User(id=1, email="owner@example.com", name="Owner", plan="indie"))
        db.commit()
    return JobStore(session_factory, max_retries=2)


@pytest.fixture
def make_manager(job_store):
    managers = []

    def _make(pipeline, max_concurrency=3, **kwargs):
        manager = PoolBasedBackgroundTaskManager(
            job_store=job_store,
            scan_scheduler=kwargs.pop("scan_scheduler", None),
            pipeline=pipeline,
            max_concurrency=max_concurrency,
            max_retries=job_store.max_retries,
            scheduler_factory=FakeScheduler,
            **kwargs,
        )
        managers.append(manager)
        return manager

    yield _make
    for manager in managers:
        manager.shutdown(wait=True)


def _create_jobs(job_store, count):
    return [
        job_store.create_job(AnalysisJobCreate(website_url=f"https://site{i}.example.com", user_id=1)).id
        for i in range(count)
    ]


def _status(session_factory, job_id):
    with session_factory() as db:
        job = db.get(AnalysisJob, job_id)
        return job.status, job.retry_count, job.in_progress


def test_pool_never_exceeds_capacity(job_store, make_manager, session_factory):
    pipeline = CompletingPipeline(job_store, block=True)
    manager = make_manager(pipeline, max_concurrency=3)
    job_ids = _create_jobs(job_store, 5)

    assert manager.run_once() == 3
    assert _wait_until(lambda: len(pipeline.started) == 3)

    status = manager.get_system_status()
    assert status.pool.running == 3
    assert status.pool.pending == 2
    assert status.pool.utilization == 100.0
    # Oldest jobs are admitted first
    assert sorted(pipeline.started) == sorted(job_ids[:3])

    pipeline.release.set()
    assert manager.wait_for_idle(timeout=10)
    # Not started, so releases do not dispatch; the next cycle drains the queue
    assert manager.run_once() == 2
    assert manager.wait_for_idle(timeout=10)

    assert pipeline.max_active <= 3
    for job_id in job_ids:
        assert _status(session_factory, job_id)[0] == "completed"


def test_active_manager_refills_freed_slots(job_store, make_manager, session_factory):
    pipeline = CompletingPipeline(job_store, block=True)
    manager = make_manager(pipeline, max_concurrency=2)
    job_ids = _create_jobs(job_store, 4)

    assert manager.start() is True
    assert manager.run_once() == 2
    assert _wait_until(lambda: len(pipeline.started) == 2)

    pipeline.release.set()
    assert _wait_until(lambda: len(pipeline.started) == 4)
    assert manager.wait_for_idle(timeout=10)
    assert pipeline.max_active <= 2
    for job_id in job_ids:
        assert _status(session_factory, job_id)[0] == "completed"


def test_claimed_job_is_marked_in_progress(job_store, make_manager, session_factory):
    pipeline = CompletingPipeline(job_store, block=True)
    manager = make_manager(pipeline, max_concurrency=1)
    (job_id,) = _create_jobs(job_store, 1)

    manager.run_once()
    assert _wait_until(lambda: len(pipeline.started) == 1)
    status, retry_count, in_progress = _status(session_factory, job_id)
    assert status == "prompt-forming"
    assert in_progress is True

    pipeline.release.set()
    assert manager.wait_for_idle(timeout=10)


def test_retryable_failures_consume_retry_budget(job_store, make_manager, session_factory):
    pipeline = RaisingPipeline(RetryableJobError("provider overloaded"))
    manager = make_manager(pipeline)
    (job_id,) = _create_jobs(job_store, 1)

    manager.run_once()
    assert manager.wait_for_idle(timeout=10)
    assert _status(session_factory, job_id) == ("failed-retryable", 1, False)

    manager.run_once()
    assert manager.wait_for_idle(timeout=10)
    assert _status(session_factory, job_id) == ("failed-retryable", 2, False)

    manager.run_once()
    assert manager.wait_for_idle(timeout=10)
    assert _status(session_factory, job_id) == ("failed-permanent", 2, False)

    # Terminal jobs are never picked up again
    assert manager.run_once() == 0
    assert pipeline.calls == 3

    metrics = manager.get_performance_metrics()
    assert metrics.attempts == 3
    assert metrics.retried == 2
    assert metrics.failed == 1


@pytest.mark.parametrize("error", [PermanentJobError("manual analysis without business"), ValueError("bad payload")])
def test_non_retryable_failure_is_terminal(job_store, make_manager, session_factory, error):
    manager = make_manager(RaisingPipeline(error))
    (job_id,) = _create_jobs(job_store, 1)

    manager.run_once()
    assert manager.wait_for_idle(timeout=10)

    status, retry_count, in_progress = _status(session_factory, job_id)
    assert status == "failed-permanent"
    assert retry_count == 0
    assert in_progress is False


def test_cleanup_requeues_or_fails_orphans(job_store, make_manager, session_factory):
    manager = make_manager(CompletingPipeline(job_store))
    requeue_id, exhausted_id, idle_id = _create_jobs(job_store, 3)
    job_store.update_job(requeue_id, {"status": JobStatus.MODEL_ANALYSIS, "in_progress": True, "retry_count": 0})
    job_store.update_job(exhausted_id, {"status": JobStatus.PROCESSING, "in_progress": True, "retry_count": 2})

    result = manager.force_cleanup()

    assert result.orphans_found == 2
    assert result.reset == 1
    assert result.failed == 1
    assert _status(session_factory, requeue_id) == ("not-started", 1, False)
    assert _status(session_factory, exhausted_id) == ("failed-permanent", 2, False)
    assert _status(session_factory, idle_id) == ("not-started", 0, False)


def test_cleanup_leaves_running_jobs_alone(job_store, make_manager, session_factory):
    pipeline = CompletingPipeline(job_store, block=True)
    manager = make_manager(pipeline, max_concurrency=1)
    (job_id,) = _create_jobs(job_store, 1)

    manager.run_once()
    assert _wait_until(lambda: len(pipeline.started) == 1)

    result = manager.force_cleanup()
    assert result.orphans_found == 0
    assert _status(session_factory, job_id)[2] is True

    pipeline.release.set()
    assert manager.wait_for_idle(timeout=10)
    assert _status(session_factory, job_id)[0] == "completed"


def test_emergency_reset_detaches_executing_jobs(job_store, make_manager, session_factory):
    pipeline = CompletingPipeline(job_store, block=True)
    manager = make_manager(pipeline, max_concurrency=2)
    _create_jobs(job_store, 3)

    manager.run_once()
    assert _wait_until(lambda: len(pipeline.started) == 2)

    cleared = manager.emergency_reset()
    assert cleared["running_cleared"] == 2
    assert cleared["pending_cleared"] == 1
    assert cleared["detached"] == 2

    status = manager.get_system_status()
    assert status.pool.running == 0
    assert status.pool.pending == 0
    assert status.pool.detached == 2
    # Detached jobs still hold their rows; the sweep must not requeue them
    assert manager.force_cleanup().orphans_found == 0

    pipeline.release.set()
    assert manager.wait_for_idle(timeout=10)
    assert manager.get_system_status().pool.detached == 0


def test_start_and_stop_are_idempotent(job_store, make_manager):
    FakeScheduler.instances.clear()
    manager = make_manager(CompletingPipeline(job_store))

    assert manager.start() is True
    assert manager.start() is False
    assert manager.is_active()
    assert manager.timers_active()
    assert len(FakeScheduler.instances) == 1
    job_ids = {kwargs["id"] for _, kwargs in FakeScheduler.instances[0].jobs}
    assert job_ids == {"analysis-job-dispatch", "analysis-job-cleanup"}

    assert manager.stop() is True
    assert manager.stop() is False
    assert not manager.is_active()
    assert not manager.timers_active()

    # Restart builds a fresh scheduler
    assert manager.start() is True
    assert len(FakeScheduler.instances) == 2


def test_start_recovers_orphans_from_previous_process(job_store, make_manager, session_factory):
    (job_id,) = _create_jobs(job_store, 1)
    job_store.update_job(job_id, {"status": JobStatus.PROMPT_FORMING, "in_progress": True})
    manager = make_manager(CompletingPipeline(job_store))

    manager.start()

    assert _status(session_factory, job_id) == ("not-started", 1, False)


def test_health_reflects_lifecycle(job_store, make_manager):
    manager = make_manager(CompletingPipeline(job_store))

    stopped = manager.get_health_report()
    assert stopped.overall == "warning"
    assert "Background processing is stopped" in stopped.issues

    manager.start()
    assert manager.get_health_report().overall == "healthy"

    # Timers died while the manager still thinks it is active
    FakeScheduler.instances[-1].running = False
    report = manager.get_health_report()
    assert report.overall == "critical"
    assert "Scheduler timers are not running" in report.issues


def test_system_status_counts_jobs(job_store, make_manager):
    manager = make_manager(CompletingPipeline(job_store))
    _create_jobs(job_store, 2)

    status = manager.get_system_status()

    assert status.active is False
    assert status.pool.capacity == 3
    assert status.jobs.pending == 2
    assert status.jobs.running == 0
    assert status.scheduler.max_retries == 2
