"""In-process pool that executes analysis jobs with bounded concurrency.

Pool membership is the authority for "is this job executing". The
``in_progress`` column on the job row is only a trace the maintenance sweep
uses to find jobs orphaned by a crash or restart.
"""

from __future__ import annotations

import threading
import time
from collections import deque
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, Deque, Dict, List, Optional, Set

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.interval import IntervalTrigger

from app.schemas.analysis_job import JobStatus
from app.schemas.background_task import (
	CleanupResult,
	HealthReport,
	PerformanceMetrics,
	PoolStatus,
	RunningJobInfo,
	SchedulerConfig,
	SystemStatus,
)
from app.schemas.recurring_scan import ScanBatchResult
from app.services.base import BaseService
from app.services.job_pipeline_services import AnalysisPipeline, is_retryable
from app.services.scan_scheduler_services import ScanSchedulerService
from app.services.store_services import JobStore, utcnow

DISPATCH_JOB_ID = "analysis-job-dispatch"
CLEANUP_JOB_ID = "analysis-job-cleanup"

DURATION_WINDOW = 100
THROUGHPUT_WINDOW = timedelta(hours=1)
BACKLOG_WARNING_SIZE = 50
HIGH_RETRY_RATE = 20.0
HIGH_FAILURE_RATE = 50.0
MIN_SAMPLE_SIZE = 5


@dataclass
class PoolSlot:
	"""A job currently executing in the pool."""
	job_id: str
	started_at: datetime
	stage: str = "claiming"
	future: Optional[Future] = None


class PoolBasedBackgroundTaskManager(BaseService):
	"""Polls for pending jobs and runs at most ``max_concurrency`` of them at once.

	All pool mutations (admission, release, reset) happen under one lock.
	"""

	def __init__(
		self,
		job_store: JobStore,
		scan_scheduler: ScanSchedulerService,
		pipeline: AnalysisPipeline,
		max_concurrency: int = 10,
		max_retries: int = 3,
		poll_interval_seconds: float = 5.0,
		cleanup_interval_seconds: float = 300.0,
		stuck_job_timeout_seconds: float = 300.0,
		max_queue_size: int = 1000,
		scheduler_factory: Callable[[], BackgroundScheduler] = BackgroundScheduler,
		clock: Callable[[], datetime] = utcnow,
		correlation_id: Optional[str] = None,
	):
		super().__init__(correlation_id)
		if max_concurrency < 1:
			raise ValueError("max_concurrency must be at least 1")
		self.job_store = job_store
		self.scan_scheduler = scan_scheduler
		self.pipeline = pipeline
		self.max_concurrency = max_concurrency
		self.max_retries = max_retries
		self.poll_interval_seconds = poll_interval_seconds
		self.cleanup_interval_seconds = cleanup_interval_seconds
		self.stuck_job_timeout_seconds = stuck_job_timeout_seconds
		self.max_queue_size = max_queue_size
		self.scheduler_factory = scheduler_factory
		self.clock = clock

		self._lock = threading.RLock()
		self._changed = threading.Condition(self._lock)
		self._running: Dict[str, PoolSlot] = {}
		self._pending: Deque[str] = deque()
		# Ids cut loose by an emergency reset whose threads are still finishing
		self._detached: Set[str] = set()
		self._active = False
		self._scheduler: Optional[BackgroundScheduler] = None
		# Extra workers leave room for detached threads to finish
		self._executor = ThreadPoolExecutor(max_workers=max_concurrency * 2, thread_name_prefix="analysis-job")

		self._completed = 0
		self._failed = 0
		self._retried = 0
		self._attempts = 0
		self._durations: Deque[float] = deque(maxlen=DURATION_WINDOW)
		self._completions: Deque[datetime] = deque()

	# ------------------------------------------------------------------
	# Lifecycle
	# ------------------------------------------------------------------

	def start(self) -> bool:
		"""Begin periodic polling; returns False when already active."""
		with self._lock:
			if self._active:
				return False
			self._active = True

		# Recover jobs orphaned by a previous process before taking new work
		self._cleanup_cycle()

		scheduler = self.scheduler_factory()
		scheduler.add_job(
			self._poll_cycle,
			trigger=IntervalTrigger(seconds=self.poll_interval_seconds),
			id=DISPATCH_JOB_ID,
			replace_existing=True,
			max_instances=1,
			coalesce=True,
			next_run_time=datetime.now().astimezone(),
		)
		scheduler.add_job(
			self._cleanup_cycle,
			trigger=IntervalTrigger(seconds=self.cleanup_interval_seconds),
			id=CLEANUP_JOB_ID,
			replace_existing=True,
			max_instances=1,
			coalesce=True,
		)
		scheduler.start()
		with self._lock:
			self._scheduler = scheduler
		self.log_operation(
			"start",
			max_concurrency=self.max_concurrency,
			poll_interval_seconds=self.poll_interval_seconds,
			cleanup_interval_seconds=self.cleanup_interval_seconds,
		)
		return True

	def stop(self) -> bool:
		"""Stop scheduling new work; in-flight jobs finish on their own."""
		with self._lock:
			if not self._active:
				return False
			self._active = False
			scheduler, self._scheduler = self._scheduler, None
			self._pending.clear()
			self._changed.notify_all()
		if scheduler is not None:
			scheduler.shutdown(wait=False)
		self.log_operation("stop", running=len(self._running))
		return True

	def shutdown(self, wait: bool = True) -> None:
		"""Stop and release the worker threads; used at process exit."""
		self.stop()
		self._executor.shutdown(wait=wait, cancel_futures=not wait)
		self.log_operation("shutdown", wait=wait)

	def is_active(self) -> bool:
		with self._lock:
			return self._active

	def timers_active(self) -> bool:
		with self._lock:
			return self._scheduler is not None and self._scheduler.running

	def wait_for_idle(self, timeout: Optional[float] = None) -> bool:
		"""Block until no job is executing; returns False on timeout."""
		with self._changed:
			return self._changed.wait_for(lambda: not self._running and not self._detached, timeout=timeout)

	# ------------------------------------------------------------------
	# Dispatch
	# ------------------------------------------------------------------

	def run_once(self) -> int:
		"""One poll-and-dispatch cycle; returns the number of jobs started."""
		with self._lock:
			room = self.max_queue_size - len(self._pending)
			known = set(self._running) | set(self._pending) | self._detached

		if room > 0:
			batch = min(room, max(self.max_concurrency * 2, 10))
			for job in self.job_store.find_pending(batch, exclude_ids=known):
				with self._lock:
					if job.id not in self._running and job.id not in self._detached and job.id not in self._pending:
						self._pending.append(job.id)

		with self._lock:
			started = self._dispatch_locked()
			pending = len(self._pending)
			running = len(self._running)
		if started:
			self.log_operation("run_once", started=started, running=running, pending=pending)
		return started

	def _dispatch_locked(self) -> int:
		started = 0
		while self._pending and len(self._running) < self.max_concurrency:
			job_id = self._pending.popleft()
			if job_id in self._running or job_id in self._detached:
				continue
			slot = PoolSlot(job_id=job_id, started_at=self.clock())
			self._running[job_id] = slot
			try:
				slot.future = self._executor.submit(self._execute, job_id)
			except RuntimeError:
				# Executor already shut down
				del self._running[job_id]
				self._pending.appendleft(job_id)
				break
			started += 1
		return started

	def _execute(self, job_id: str) -> None:
		started = time.monotonic()
		outcome: Optional[str] = None
		try:
			job = self.job_store.claim_job(job_id)
			if job is None:
				self.logger.info(
					"Job no longer eligible, releasing slot",
					extra={"correlation_id": self.correlation_id, "job_id": job_id},
				)
				return

			self._set_stage(job_id, "running")
			with self._lock:
				self._attempts += 1
			try:
				self.pipeline.run(job)
				outcome = "completed"
			except Exception as e:
				retryable = is_retryable(e)
				status = self.job_store.record_failure(job_id, str(e) or type(e).__name__, retryable)
				outcome = "retried" if status == JobStatus.FAILED_RETRYABLE else "failed"
				self.logger.warning(
					"Analysis job failed",
					extra={
						"correlation_id": self.correlation_id,
						"job_id": job_id,
						"retryable": retryable,
						"status": status.value if status else None,
						"error_type": type(e).__name__,
						"error": str(e),
					},
				)
		except Exception as e:
			# Store unavailable while claiming or recording; the sweep reconciles the row later
			self.logger.error(
				"Job bookkeeping failed",
				extra={"correlation_id": self.correlation_id, "job_id": job_id, "error": str(e)},
			)
		finally:
			self._release(job_id, outcome, time.monotonic() - started)

	def _set_stage(self, job_id: str, stage: str) -> None:
		with self._lock:
			slot = self._running.get(job_id)
			if slot is not None:
				slot.stage = stage

	def _release(self, job_id: str, outcome: Optional[str], duration: float) -> None:
		with self._lock:
			self._running.pop(job_id, None)
			self._detached.discard(job_id)
			if outcome is not None:
				self._durations.append(duration)
				if outcome == "completed":
					self._completed += 1
					self._completions.append(self.clock())
				elif outcome == "retried":
					self._retried += 1
				else:
					self._failed += 1
			if self._active:
				self._dispatch_locked()
			self._changed.notify_all()

	# ------------------------------------------------------------------
	# Control actions
	# ------------------------------------------------------------------

	def force_scan(self) -> ScanBatchResult:
		"""Run the recurring scan pass now, then dispatch what it queued."""
		result = self.scan_scheduler.run_due_scans()
		self.run_once()
		return result

	def force_cleanup(self) -> CleanupResult:
		"""Requeue or fail jobs flagged in progress that this pool is not executing."""
		with self._lock:
			owned = set(self._running) | self._detached

		result = CleanupResult()
		for job in self.job_store.find_orphaned(exclude_ids=owned):
			with self._lock:
				if job.id in self._running or job.id in self._detached:
					continue
			result.orphans_found += 1
			try:
				status = self.job_store.reset_orphan(job)
			except Exception as e:
				self.logger.error(
					"Failed to reset orphaned job",
					extra={"correlation_id": self.correlation_id, "job_id": job.id, "error": str(e)},
				)
				continue
			if status == JobStatus.NOT_STARTED:
				result.reset += 1
			elif status == JobStatus.FAILED_PERMANENT:
				result.failed += 1

		if result.orphans_found:
			self.log_operation("force_cleanup", **result.model_dump())
		return result

	def emergency_reset(self) -> Dict[str, int]:
		"""Forget all pool state without touching job rows."""
		with self._lock:
			cancelled = 0
			for job_id, slot in self._running.items():
				if slot.future is not None and slot.future.cancel():
					cancelled += 1
				else:
					self._detached.add(job_id)
			cleared = {
				"running_cleared": len(self._running),
				"pending_cleared": len(self._pending),
				"cancelled": cancelled,
				"detached": len(self._detached),
			}
			self._running.clear()
			self._pending.clear()
			self._changed.notify_all()
		self.logger.warning("Emergency reset of background pool", extra={"correlation_id": self.correlation_id, **cleared})
		return cleared

	def _poll_cycle(self) -> None:
		try:
			self.run_once()
		except Exception as e:
			self.logger.error("Dispatch cycle failed", extra={"correlation_id": self.correlation_id, "error": str(e)})

	def _cleanup_cycle(self) -> None:
		try:
			self.force_cleanup()
		except Exception as e:
			self.logger.error("Maintenance sweep failed", extra={"correlation_id": self.correlation_id, "error": str(e)})

	# ------------------------------------------------------------------
	# Status, metrics and health
	# ------------------------------------------------------------------

	def _running_snapshot(self, now: datetime) -> List[RunningJobInfo]:
		with self._lock:
			slots = list(self._running.values())
		return [
			RunningJobInfo(
				job_id=slot.job_id,
				stage=slot.stage,
				started_at=slot.started_at,
				running_seconds=max(0.0, (now - slot.started_at).total_seconds()),
			)
			for slot in slots
		]

	def _utilization(self) -> float:
		with self._lock:
			return round(len(self._running) / self.max_concurrency * 100, 1)

	def get_system_status(self) -> SystemStatus:
		now = self.clock()
		start_of_day = now.replace(hour=0, minute=0, second=0, microsecond=0)
		counts = self.job_store.count_stats(since=start_of_day)
		with self._lock:
			pool = PoolStatus(
				capacity=self.max_concurrency,
				running=len(self._running),
				pending=len(self._pending),
				detached=len(self._detached),
				utilization=self._utilization(),
			)
			active = self._active
		return SystemStatus(
			active=active,
			pool=pool,
			jobs=counts,
			scheduler=SchedulerConfig(
				timers_active=self.timers_active(),
				poll_interval_seconds=self.poll_interval_seconds,
				cleanup_interval_seconds=self.cleanup_interval_seconds,
				max_retries=self.max_retries,
				stuck_job_timeout_seconds=self.stuck_job_timeout_seconds,
				max_queue_size=self.max_queue_size,
			),
			running_jobs=self._running_snapshot(now),
			timestamp=now,
		)

	def get_performance_metrics(self) -> PerformanceMetrics:
		now = self.clock()
		with self._lock:
			while self._completions and now - self._completions[0] > THROUGHPUT_WINDOW:
				self._completions.popleft()
			recent = len(self._completions)
			durations = list(self._durations)
			completed, failed, retried, attempts = self._completed, self._failed, self._retried, self._attempts
		return PerformanceMetrics(
			throughput_per_minute=round(recent / 60, 3),
			average_job_duration_seconds=round(sum(durations) / len(durations), 3) if durations else 0.0,
			retry_rate=round(retried / attempts * 100, 1) if attempts else 0.0,
			utilization=self._utilization(),
			completed=completed,
			failed=failed,
			retried=retried,
			attempts=attempts,
		)

	def get_health_report(self) -> HealthReport:
		now = self.clock()
		metrics = self.get_performance_metrics()
		with self._lock:
			running = len(self._running)
			pending = len(self._pending)
			active = self._active

		warnings: List[str] = []
		critical: List[str] = []
		recommendations: List[str] = []

		if running >= self.max_concurrency and pending > 0:
			warnings.append(f"Pool saturated: all {self.max_concurrency} slots busy with {pending} jobs waiting")
			recommendations.append("Increase POOL_MAX_CONCURRENCY or investigate slow jobs")
		if pending > BACKLOG_WARNING_SIZE:
			warnings.append(f"Large pending backlog: {pending} jobs queued")
			recommendations.append("Check model provider latency and pool capacity")

		if metrics.attempts >= MIN_SAMPLE_SIZE and metrics.retry_rate > HIGH_RETRY_RATE:
			warnings.append(f"High retry rate: {metrics.retry_rate}% of attempts were retried")
			recommendations.append("Check model provider availability and rate limits")

		stuck = [
			info for info in self._running_snapshot(now)
			if info.running_seconds > self.stuck_job_timeout_seconds
		]
		if stuck:
			warnings.append(f"Stuck jobs detected: {len(stuck)} running longer than {int(self.stuck_job_timeout_seconds)}s")
			recommendations.append("Run emergency-reset if the stuck jobs do not finish, then force-cleanup")

		finished = metrics.completed + metrics.failed
		if finished >= MIN_SAMPLE_SIZE and metrics.failed / finished * 100 > HIGH_FAILURE_RATE:
			critical.append(f"High failure rate: {metrics.failed} of {finished} finished jobs failed permanently")
			recommendations.append("Inspect recent job errors for a systematic failure")

		if active and not self.timers_active():
			critical.append("Scheduler timers are not running")
			recommendations.append("Restart background processing with the start action")
		elif not active:
			warnings.append("Background processing is stopped")
			recommendations.append("Start background processing to pick up pending jobs")

		overall = "critical" if critical else ("warning" if warnings else "healthy")
		return HealthReport(overall=overall, issues=critical + warnings, recommendations=recommendations, timestamp=now)
