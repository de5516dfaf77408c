from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Optional, List, Literal
from pydantic import BaseModel, Field


class ScanFrequency(str, Enum):
	DAILY = "daily"
	WEEKLY = "weekly"
	MONTHLY = "monthly"


class RecurringScanSettings(BaseModel):
	business_id: int
	enabled: bool
	frequency: Optional[ScanFrequency] = None
	last_scan_date: Optional[datetime] = None
	next_scan_date: Optional[datetime] = None
	has_access: bool
	plan: str


class RecurringScanUpdate(BaseModel):
	enabled: bool
	frequency: Optional[ScanFrequency] = None


class RecurringScanListItem(BaseModel):
	business_id: int
	business_name: str
	frequency: Optional[ScanFrequency] = None
	last_scan_date: Optional[datetime] = None
	next_scan_date: Optional[datetime] = None
	organization_name: str = "Unknown"


class ScanTriggerResponse(BaseModel):
	success: bool = True
	business_id: int
	next_scan_date: datetime
	message: str = "Scan triggered. It will be picked up by the next scheduler pass."


class ScanBusinessResult(BaseModel):
	business_id: int
	business_name: str
	status: Literal["queued", "skipped", "disabled", "error"]
	job_id: Optional[str] = None
	next_scan_date: Optional[datetime] = None
	reason: Optional[str] = None
	error: Optional[str] = None


class ScanBatchResult(BaseModel):
	total_businesses: int = 0
	queued: int = 0
	errors: int = 0
	skipped: int = 0
	disabled: int = 0
	timestamp: datetime
	results: List[ScanBusinessResult] = Field(default_factory=list)
