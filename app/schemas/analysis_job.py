from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Optional, Dict, Any, List
from pydantic import BaseModel, ConfigDict, Field, field_validator
from .mixin import TimestampModel


class JobStatus(str, Enum):
	NOT_STARTED = "not-started"
	PROMPT_FORMING = "prompt-forming"
	MODEL_ANALYSIS = "model-analysis"
	PROCESSING = "processing"
	COMPLETED = "completed"
	FAILED_RETRYABLE = "failed-retryable"
	FAILED_PERMANENT = "failed-permanent"


ACTIVE_STATUSES = (JobStatus.PROMPT_FORMING, JobStatus.MODEL_ANALYSIS, JobStatus.PROCESSING)
PICKUP_STATUSES = (JobStatus.NOT_STARTED, JobStatus.FAILED_RETRYABLE)
TERMINAL_STATUSES = (JobStatus.COMPLETED, JobStatus.FAILED_PERMANENT)


class JobStep(str, Enum):
	NOT_STARTED = "not-started"
	WEBSITE_ANALYSIS = "website-analysis"
	PROMPT_FORMING = "prompt-forming"
	MODEL_ANALYSIS = "model-analysis"
	PROCESSING = "processing"
	COMPLETED = "completed"
	FAILED = "failed"


class AnalysisJobCreate(BaseModel):
	website_url: str
	user_id: int
	organization_id: Optional[int] = None
	business_id: Optional[int] = None
	extracted_info: Optional[Dict[str, Any]] = None
	prompts: Optional[Dict[str, List[str]]] = None


class AnalysisJobRead(TimestampModel):
	id: str
	website_url: str
	user_id: int
	organization_id: Optional[int] = None
	business_id: Optional[int] = None
	status: JobStatus
	current_step: JobStep
	progress_percent: int = Field(ge=0, le=100)
	progress_message: Optional[str] = None
	retry_count: int = 0
	in_progress: bool = False
	extracted_info: Optional[Dict[str, Any]] = None
	prompts: Optional[Dict[str, Any]] = None
	analysis_result: Optional[Dict[str, Any]] = None
	error: Optional[str] = None
	started_at: Optional[datetime] = None
	completed_at: Optional[datetime] = None

	model_config = ConfigDict(from_attributes=True)

	@field_validator("progress_percent", mode="before")
	@classmethod
	def clamp_progress(cls, v: Optional[int]) -> int:
		if v is None or v < 0:
			return 0
		if v > 100:
			return 100
		return v


class AnalysisJobSummary(BaseModel):
	"""Trimmed view for list endpoints and the progress websocket."""
	id: str
	website_url: str
	business_id: Optional[int] = None
	status: JobStatus
	current_step: JobStep
	progress_percent: int
	progress_message: Optional[str] = None
	retry_count: int = 0
	error: Optional[str] = None
	created_at: datetime
	completed_at: Optional[datetime] = None

	model_config = ConfigDict(from_attributes=True)
