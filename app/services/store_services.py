"""Job, business and result stores shared by the scheduler, pool and pipeline.

Each store opens its own session per call and returns pydantic snapshots,
so one instance can be used from the timer thread and every worker thread.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Callable, Dict, Iterable, List, Optional

from sqlalchemy.orm import Session

from app.repositories.analysis_job import AnalysisJobRepository
from app.repositories.business import BusinessRepository
from app.repositories.input_history import InputHistoryRepository
from app.repositories.ranking_history import RankingHistoryRepository
from app.repositories.user import UserRepository
from app.schemas.analysis_job import (
	AnalysisJobCreate,
	AnalysisJobRead,
	JobStatus,
	JobStep,
	ACTIVE_STATUSES,
	PICKUP_STATUSES,
)
from app.schemas.background_task import JobCounts
from app.schemas.business import BusinessOwner, BusinessRead, DueBusiness, LatestInput
from app.services.base import SessionScopedService


def utcnow() -> datetime:
	return datetime.now(timezone.utc)


class JobStore(SessionScopedService):
	"""Durable analysis job records."""

	def __init__(
		self,
		session_factory: Callable[[], Session],
		max_retries: int,
		clock: Callable[[], datetime] = utcnow,
		correlation_id: Optional[str] = None,
	):
		super().__init__(session_factory, correlation_id)
		self.max_retries = max_retries
		self.clock = clock

	def _repo(self, db: Session) -> AnalysisJobRepository:
		return AnalysisJobRepository(db=db, correlation_id=self.correlation_id)

	def create_job(self, job_in: AnalysisJobCreate) -> AnalysisJobRead:
		def op(db: Session) -> AnalysisJobRead:
			now = self.clock()
			job = self._repo(db).create(
				job_in.model_dump(),
				status=JobStatus.NOT_STARTED.value,
				current_step=JobStep.NOT_STARTED.value,
				progress_percent=0,
				retry_count=0,
				in_progress=False,
				# Explicit timestamps keep FIFO order stable below the database clock resolution
				created_at=now,
				updated_at=now,
			)
			return AnalysisJobRead.model_validate(job)
		job = self.execute(op)
		self.log_operation("create_job", job_id=job.id, business_id=job.business_id)
		return job

	def get_job(self, job_id: str) -> Optional[AnalysisJobRead]:
		def op(db: Session) -> Optional[AnalysisJobRead]:
			job = self._repo(db).get_by_id(job_id)
			return AnalysisJobRead.model_validate(job) if job else None
		return self.execute(op)

	def update_job(self, job_id: str, patch: Dict[str, Any]) -> Optional[AnalysisJobRead]:
		def op(db: Session) -> Optional[AnalysisJobRead]:
			fields = {k: (v.value if hasattr(v, "value") else v) for k, v in patch.items()}
			job = self._repo(db).update_fields(job_id, fields)
			return AnalysisJobRead.model_validate(job) if job else None
		return self.execute(op)

	def find_pending(self, limit: int, exclude_ids: Iterable[str] = ()) -> List[AnalysisJobRead]:
		if limit <= 0:
			return []
		excluded = list(exclude_ids)

		def op(db: Session) -> List[AnalysisJobRead]:
			rows = self._repo(db).find_pending(limit, self.max_retries, excluded)
			return [AnalysisJobRead.model_validate(r) for r in rows]
		return self.execute(op)

	def find_orphaned(self, exclude_ids: Iterable[str] = ()) -> List[AnalysisJobRead]:
		excluded = list(exclude_ids)

		def op(db: Session) -> List[AnalysisJobRead]:
			return [AnalysisJobRead.model_validate(r) for r in self._repo(db).find_orphaned(excluded)]
		return self.execute(op)

	def claim_job(self, job_id: str) -> Optional[AnalysisJobRead]:
		"""Flip an eligible job to prompt-forming; None when it is no longer eligible."""
		def op(db: Session) -> Optional[AnalysisJobRead]:
			repo = self._repo(db)
			job = repo.get_by_id(job_id)
			if job is None:
				return None
			manual = bool((job.extracted_info or {}).get("is_manual_analysis"))
			step = JobStep.PROMPT_FORMING if manual else JobStep.WEBSITE_ANALYSIS
			claimed = repo.update_where(
				job_id,
				expected={
					"status": [s.value for s in PICKUP_STATUSES],
					"in_progress": False,
					"retry_count": job.retry_count,
				},
				values={
					"status": JobStatus.PROMPT_FORMING.value,
					"current_step": step.value,
					"progress_percent": 10,
					"progress_message": "Preparing business information" if manual else "Analyzing website",
					"in_progress": True,
					"error": None,
					"started_at": self.clock(),
					"updated_at": self.clock(),
				},
			)
			if not claimed:
				return None
			db.expire(job)
			return AnalysisJobRead.model_validate(repo.get_by_id(job_id))
		return self.execute(op)

	def record_failure(self, job_id: str, error: str, retryable: bool) -> Optional[JobStatus]:
		"""Apply the retry rule to a failed job and return its new status.

		A retryable failure consumes one unit of the retry budget; once the
		budget is spent the failure is terminal.
		"""
		def op(db: Session) -> Optional[JobStatus]:
			repo = self._repo(db)
			job = repo.get_by_id(job_id)
			if job is None:
				return None
			if retryable and job.retry_count < self.max_retries:
				status = JobStatus.FAILED_RETRYABLE
				retry_count = job.retry_count + 1
				message = f"Attempt {retry_count} of {self.max_retries} failed, will retry: {error}"
			else:
				status = JobStatus.FAILED_PERMANENT
				retry_count = job.retry_count
				message = f"Analysis failed: {error}"
			repo.update_fields(job_id, {
				"status": status.value,
				"current_step": JobStep.FAILED.value,
				"retry_count": retry_count,
				"in_progress": False,
				"error": error[:2000],
				"progress_message": message[:255],
				"completed_at": self.clock() if status == JobStatus.FAILED_PERMANENT else None,
			})
			return status
		status = self.execute(op)
		self.log_operation("record_failure", job_id=job_id, retryable=retryable, status=status.value if status else None)
		return status

	def reset_orphan(self, job: AnalysisJobRead) -> Optional[JobStatus]:
		"""Requeue or fail an orphaned job; None when the row changed since it was read."""
		if job.retry_count < self.max_retries:
			status = JobStatus.NOT_STARTED
			values = {
				"status": status.value,
				"current_step": JobStep.NOT_STARTED.value,
				"progress_percent": 0,
				"progress_message": "Requeued after interrupted run",
				"retry_count": job.retry_count + 1,
				"in_progress": False,
			}
		else:
			status = JobStatus.FAILED_PERMANENT
			values = {
				"status": status.value,
				"current_step": JobStep.FAILED.value,
				"progress_message": "Retry budget exhausted after interrupted runs",
				"error": "Job was interrupted and exceeded its retry budget",
				"in_progress": False,
				"completed_at": self.clock(),
			}

		def op(db: Session) -> bool:
			return self._repo(db).update_where(
				job.id,
				expected={
					"in_progress": True,
					"status": [s.value for s in ACTIVE_STATUSES],
					"retry_count": job.retry_count,
				},
				values={**values, "updated_at": self.clock()},
			)
		return status if self.execute(op) else None

	def count_stats(self, since: datetime) -> JobCounts:
		def op(db: Session) -> JobCounts:
			repo = self._repo(db)
			return JobCounts(
				pending=repo.count_by_statuses(PICKUP_STATUSES, in_progress=False),
				running=repo.count_by_statuses(ACTIVE_STATUSES, in_progress=True),
				completed_today=repo.count_by_statuses([JobStatus.COMPLETED], since=since),
				failed_today=repo.count_by_statuses([JobStatus.FAILED_PERMANENT], since=since),
			)
		return self.execute(op)


class BusinessStore(SessionScopedService):
	"""Businesses and their recurring scan schedule."""

	SCHEDULE_FIELDS = ("last_scan_date", "next_scan_date", "recurring_scans", "scan_frequency")

	def find_due_for_scan(self, now: datetime) -> List[DueBusiness]:
		def op(db: Session) -> List[DueBusiness]:
			businesses = BusinessRepository(db, self.correlation_id)
			users = UserRepository(db, self.correlation_id)
			histories = InputHistoryRepository(db, self.correlation_id)

			due: List[DueBusiness] = []
			for business in businesses.find_due(now):
				owner = self._resolve_owner(business, businesses, users)
				latest = histories.latest_for_business(business.id)
				due.append(DueBusiness(
					business=BusinessRead.model_validate(business),
					owner=owner,
					latest_input=LatestInput(
						keywords=list(latest.keywords or []),
						prompts=list(latest.prompts or []),
					) if latest else None,
				))
			return due
		return self.execute(op)

	@staticmethod
	def _resolve_owner(business, businesses: BusinessRepository, users: UserRepository) -> Optional[BusinessOwner]:
		# Business owner first, then the first member of the first linked organization
		user = business.user if business.user is not None and business.user.is_active and not business.user.is_deleted else None
		if user is None:
			organization = businesses.first_linked_organization(business.id)
			if organization is not None:
				user = users.first_in_organization(organization.id)
		if user is None:
			return None
		organization_id = user.organization_id
		if organization_id is None:
			linked = businesses.first_linked_organization(business.id)
			organization_id = linked.id if linked else None
		return BusinessOwner(user_id=user.id, plan=user.plan or "free", organization_id=organization_id)

	def get_business(self, business_id: int) -> Optional[BusinessRead]:
		def op(db: Session) -> Optional[BusinessRead]:
			business = BusinessRepository(db, self.correlation_id).get_by_id(business_id)
			return BusinessRead.model_validate(business) if business else None
		return self.execute(op)

	def update_scan_schedule(self, business_id: int, **fields: Any) -> Optional[BusinessRead]:
		unknown = set(fields) - set(self.SCHEDULE_FIELDS)
		if unknown:
			raise ValueError(f"Not schedule fields: {sorted(unknown)}")

		def op(db: Session) -> Optional[BusinessRead]:
			business = BusinessRepository(db, self.correlation_id).update(business_id, fields)
			return BusinessRead.model_validate(business) if business else None
		return self.execute(op)

	def upsert_from_extraction(
		self,
		website_url: str,
		info: Dict[str, Any],
		user_id: int,
		organization_id: Optional[int],
	) -> BusinessRead:
		"""Create or refresh the business for a website and link it to the organization."""
		def op(db: Session) -> BusinessRead:
			repo = BusinessRepository(db, self.correlation_id)
			fields = {
				"website_name": info.get("business_name") or website_url,
				"industry": info.get("industry"),
				"location": info.get("location"),
				"description": info.get("description"),
			}
			business = repo.get_by_url(website_url)
			if business is None:
				business = repo.create({**fields, "website_url": website_url, "user_id": user_id})
			else:
				business = repo.update(business.id, {k: v for k, v in fields.items() if v})
			if organization_id is not None:
				repo.link_organization(business.id, organization_id)
			return BusinessRead.model_validate(business)
		return self.execute(op)


class AnalysisResultStore(SessionScopedService):
	"""Persists a finished analysis in one transaction."""

	def __init__(
		self,
		session_factory: Callable[[], Session],
		clock: Callable[[], datetime] = utcnow,
		correlation_id: Optional[str] = None,
	):
		super().__init__(session_factory, correlation_id)
		self.clock = clock

	def save_results(
		self,
		job_id: str,
		business_id: int,
		user_id: Optional[int],
		run_uuid: str,
		keywords: List[str],
		prompts: List[str],
		provider_ranks: Dict[str, int],
		average_rank: Optional[int],
		analysis_result: Dict[str, Any],
	) -> AnalysisJobRead:
		def op(db: Session) -> AnalysisJobRead:
			now = self.clock()
			InputHistoryRepository(db, self.correlation_id).record(user_id, business_id, run_uuid, keywords, prompts)
			RankingHistoryRepository(db, self.correlation_id).upsert_for_day(
				business_id, now.date(), run_uuid, provider_ranks, average_rank, user_id=user_id
			)
			BusinessRepository(db, self.correlation_id).update(business_id, {"last_scan_date": now})
			job = AnalysisJobRepository(db, self.correlation_id).update_fields(job_id, {
				"status": JobStatus.COMPLETED.value,
				"current_step": JobStep.COMPLETED.value,
				"progress_percent": 100,
				"progress_message": "Analysis complete",
				"analysis_result": analysis_result,
				"in_progress": False,
				"error": None,
				"completed_at": now,
			})
			return AnalysisJobRead.model_validate(job)
		job = self.execute(op)
		self.log_operation("save_results", job_id=job_id, business_id=business_id, average_rank=average_rank)
		return job
