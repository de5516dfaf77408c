"""Analysis job repository for job-related database operations."""

from datetime import datetime
from typing import Optional, Dict, Any, List, Iterable
from sqlalchemy import func
from sqlalchemy.orm import Session

from app.repositories.base import BaseRepository
from app.db.models.analysis_job import AnalysisJob
from app.schemas.analysis_job import JobStatus, ACTIVE_STATUSES, PICKUP_STATUSES


class AnalysisJobRepository(BaseRepository[AnalysisJob]):
	"""Repository for AnalysisJob entity operations."""

	def __init__(self, db: Session, correlation_id: Optional[str] = None):
		super().__init__(db, AnalysisJob, correlation_id)

	def get_by_id_and_user(self, job_id: str, user_id: int) -> Optional[AnalysisJob]:
		"""Get job by ID ensuring ownership by user."""
		result = self.db.query(self.model).filter(
			self.model.id == job_id,
			self.model.user_id == user_id,
			self.model.is_deleted == False
		).first()
		self._log_operation("get_by_id_and_user", job_id=job_id, user_id=user_id, found=result is not None)
		return result

	def list_for_user(
		self,
		user_id: int,
		business_id: Optional[int] = None,
		status: Optional[JobStatus] = None,
		skip: int = 0,
		limit: int = 50,
	) -> List[AnalysisJob]:
		query = self.db.query(self.model).filter(
			self.model.user_id == user_id,
			self.model.is_deleted == False
		)
		if business_id is not None:
			query = query.filter(self.model.business_id == business_id)
		if status is not None:
			query = query.filter(self.model.status == status.value)
		results = query.order_by(self.model.created_at.desc()).offset(skip).limit(limit).all()
		self._log_operation("list_for_user", user_id=user_id, count=len(results))
		return results

	def update_fields(self, job_id: str, fields: Dict[str, Any]) -> Optional[AnalysisJob]:
		"""Update arbitrary job fields and return the job."""
		job = self.get_by_id(job_id)
		if not job:
			return None
		for k, v in fields.items():
			if hasattr(job, k):
				setattr(job, k, v)
		self.db.flush()
		self.db.refresh(job)
		self._log_operation("update_fields", job_id=job_id, fields=list(fields.keys()))
		return job

	def find_pending(self, limit: int, max_retries: int, exclude_ids: Iterable[str] = ()) -> List[AnalysisJob]:
		"""Jobs eligible for pickup, oldest first."""
		query = self.db.query(self.model).filter(
			self.model.status.in_([s.value for s in PICKUP_STATUSES]),
			self.model.in_progress == False,
			self.model.retry_count <= max_retries,
			self.model.is_deleted == False
		)
		excluded = list(exclude_ids)
		if excluded:
			query = query.filter(self.model.id.notin_(excluded))
		results = query.order_by(self.model.created_at.asc(), self.model.id.asc()).limit(limit).all()
		self._log_operation("find_pending", limit=limit, count=len(results))
		return results

	def find_orphaned(self, exclude_ids: Iterable[str] = ()) -> List[AnalysisJob]:
		"""Jobs flagged in progress by the database but not excluded by the caller."""
		query = self.db.query(self.model).filter(
			self.model.in_progress == True,
			self.model.status.in_([s.value for s in ACTIVE_STATUSES]),
			self.model.is_deleted == False
		)
		excluded = list(exclude_ids)
		if excluded:
			query = query.filter(self.model.id.notin_(excluded))
		results = query.order_by(self.model.created_at.asc()).all()
		self._log_operation("find_orphaned", count=len(results))
		return results

	def count_by_statuses(self, statuses: Iterable[JobStatus], since: Optional[datetime] = None, in_progress: Optional[bool] = None) -> int:
		query = self.db.query(func.count(self.model.id)).filter(
			self.model.status.in_([s.value for s in statuses]),
			self.model.is_deleted == False
		)
		if since is not None:
			query = query.filter(self.model.completed_at >= since)
		if in_progress is not None:
			query = query.filter(self.model.in_progress == in_progress)
		return int(query.scalar() or 0)
