import uuid

from sqlalchemy import Column, ForeignKey, Integer, String, Text, SmallInteger, Boolean, DateTime, Index
from sqlalchemy.orm import relationship
from app.db.base_class import AuditMixin, Base, JSONType


def _new_job_id() -> str:
	return str(uuid.uuid4())


class AnalysisJob(Base, AuditMixin):
	__tablename__ = "analysis_jobs"
	__table_args__ = (
		Index("ix_analysis_jobs_status_created_at", "status", "created_at"),
		Index("ix_analysis_jobs_in_progress_status", "in_progress", "status"),
	)

	id = Column(String(36), primary_key=True, default=_new_job_id)
	website_url = Column(String, nullable=False)
	user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
	organization_id = Column(Integer, ForeignKey("organizations.id", ondelete="SET NULL"), nullable=True, index=True)
	business_id = Column(Integer, ForeignKey("businesses.id", ondelete="SET NULL"), nullable=True, index=True)

	status = Column(String, nullable=False, default="not-started", index=True)
	current_step = Column(String, nullable=False, default="not-started")
	progress_percent = Column(SmallInteger, nullable=False, default=0)
	progress_message = Column(String, nullable=True)
	retry_count = Column(Integer, nullable=False, default=0)
	# Crash-detection trace only; pool membership decides whether a job is executing
	in_progress = Column(Boolean, nullable=False, default=False)

	extracted_info = Column(JSONType, nullable=True)
	prompts = Column(JSONType, nullable=True)  # {"queries": [...]}
	analysis_result = Column(JSONType, nullable=True)
	error = Column(Text, nullable=True)
	started_at = Column(DateTime(timezone=True), nullable=True)
	completed_at = Column(DateTime(timezone=True), nullable=True)

	user = relationship("User", back_populates="analysis_jobs")
	business = relationship("Business")
