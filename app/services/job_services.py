from __future__ import annotations

from typing import Optional, List

from app.services.base import BaseService
from app.services.exceptions import ResourceNotFoundError
from app.repositories.analysis_job import AnalysisJobRepository
from app.db.models.analysis_job import AnalysisJob
from app.schemas.analysis_job import JobStatus


class AnalysisJobService(BaseService):
	"""Read access to a user's analysis jobs."""

	def __init__(self, job_repo: AnalysisJobRepository, correlation_id: Optional[str] = None):
		super().__init__(correlation_id)
		self._set_repositories(job_repo=job_repo)

	def get_owned(self, job_id: str, user_id: int) -> AnalysisJob:
		job = self.job_repo.get_by_id_and_user(job_id, user_id)
		if not job:
			raise ResourceNotFoundError("AnalysisJob", job_id, user_id, self.correlation_id)
		return job

	def list_owned(
		self,
		user_id: int,
		business_id: Optional[int] = None,
		status: Optional[JobStatus] = None,
		skip: int = 0,
		limit: int = 50,
	) -> List[AnalysisJob]:
		return self.job_repo.list_for_user(user_id, business_id=business_id, status=status, skip=skip, limit=limit)
