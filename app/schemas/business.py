from __future__ import annotations

from datetime import datetime
from typing import Optional, List
from pydantic import BaseModel, ConfigDict


class BusinessRead(BaseModel):
	id: int
	user_id: Optional[int] = None
	website_name: str
	website_url: Optional[str] = None
	industry: Optional[str] = None
	location: Optional[str] = None
	description: Optional[str] = None
	use_location_in_analysis: bool = False
	recurring_scans: bool = False
	scan_frequency: Optional[str] = None
	last_scan_date: Optional[datetime] = None
	next_scan_date: Optional[datetime] = None

	model_config = ConfigDict(from_attributes=True)


class BusinessOwner(BaseModel):
	"""User a scheduled scan is attributed to."""
	user_id: int
	plan: str = "free"
	organization_id: Optional[int] = None


class LatestInput(BaseModel):
	keywords: List[str] = []
	prompts: List[str] = []


class DueBusiness(BaseModel):
	"""A business whose next scan is due, with what the scheduler needs to queue it."""
	business: BusinessRead
	owner: Optional[BusinessOwner] = None
	latest_input: Optional[LatestInput] = None
