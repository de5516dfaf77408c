from __future__ import annotations

from typing import Optional, List, Dict
from pydantic import BaseModel, Field


class ExtractedBusinessInfo(BaseModel):
	business_name: str
	industry: str
	location: Optional[str] = None
	description: str
	keywords: List[str] = Field(default_factory=list)
	confidence: int = Field(default=50, ge=0, le=100)


class GeneratedQueries(BaseModel):
	queries: List[str]


class QueryResult(BaseModel):
	query: str
	response: str
	mentioned: bool = False
	rank_position: int = 0
	relevance_score: int = 0
	error: Optional[str] = None


class ProviderScore(BaseModel):
	provider: str
	aeo_score: int
	visibility: int
	ranking: int
	relevance: int
	accuracy: int
	mentioned_queries: int
	total_queries: int
	analysis: str
	query_results: List[QueryResult] = Field(default_factory=list)


class AnalysisOutcome(BaseModel):
	"""What a finished job stores in ``analysis_result``."""
	run_uuid: str
	business_name: str
	keywords: List[str]
	prompts: List[str]
	providers: List[ProviderScore]
	failed_providers: Dict[str, str] = Field(default_factory=dict)
	average_score: Optional[int] = None
