from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Optional, List, Literal, Any, Dict
from pydantic import BaseModel, Field


class BackgroundTaskAction(str, Enum):
	START = "start"
	STOP = "stop"
	RUN_ONCE = "run-once"
	FORCE_SCAN = "force-scan"
	FORCE_CLEANUP = "force-cleanup"
	EMERGENCY_RESET = "emergency-reset"


VALID_ACTIONS = [a.value for a in BackgroundTaskAction]


class PoolStatus(BaseModel):
	capacity: int
	running: int
	pending: int
	detached: int = 0
	utilization: float = Field(description="Running slots as a percentage of capacity")


class JobCounts(BaseModel):
	pending: int = 0
	running: int = 0
	completed_today: int = 0
	failed_today: int = 0


class SchedulerConfig(BaseModel):
	timers_active: bool
	poll_interval_seconds: float
	cleanup_interval_seconds: float
	max_retries: int
	stuck_job_timeout_seconds: float
	max_queue_size: int


class RunningJobInfo(BaseModel):
	job_id: str
	stage: str
	started_at: datetime
	running_seconds: float


class SystemStatus(BaseModel):
	active: bool
	pool: PoolStatus
	jobs: JobCounts
	scheduler: SchedulerConfig
	running_jobs: List[RunningJobInfo] = Field(default_factory=list)
	timestamp: datetime


class PerformanceMetrics(BaseModel):
	throughput_per_minute: float = 0.0
	average_job_duration_seconds: float = 0.0
	retry_rate: float = 0.0
	utilization: float = 0.0
	completed: int = 0
	failed: int = 0
	retried: int = 0
	attempts: int = 0


class HealthReport(BaseModel):
	overall: Literal["healthy", "warning", "critical"]
	issues: List[str] = Field(default_factory=list)
	recommendations: List[str] = Field(default_factory=list)
	timestamp: datetime


class CleanupResult(BaseModel):
	orphans_found: int = 0
	reset: int = 0
	failed: int = 0


class BackgroundTaskActionRequest(BaseModel):
	# Plain string so unknown actions reach the handler and get the valid list back
	action: str


class BackgroundTaskOverview(BaseModel):
	running: bool
	message: str
	status: SystemStatus
	performance: PerformanceMetrics
	health: HealthReport


class BackgroundTaskActionResponse(BaseModel):
	success: bool
	message: str
	running: bool
	status: SystemStatus
	result: Optional[Dict[str, Any]] = None
