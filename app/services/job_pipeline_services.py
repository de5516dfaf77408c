"""Stages one worker runs for one analysis job, and failure classification."""

from __future__ import annotations

import uuid
from typing import Any, Dict, List, Optional

import httpx
from google.api_core import exceptions as google_exceptions
from google.genai import errors as genai_errors
from sqlalchemy.exc import OperationalError

from app.schemas.analysis import AnalysisOutcome, ProviderScore, QueryResult
from app.schemas.analysis_job import AnalysisJobRead, JobStatus, JobStep
from app.services.base import BaseService
from app.services.exceptions import JobError, ModelQueryError, PermanentJobError, RetryableJobError
from app.services.model_query_services import ModelQueryClient
from app.services.prompt_services import PromptStrategy
from app.services.ranking_services import average_rank, evaluate_response, score_provider
from app.services.store_services import AnalysisResultStore, BusinessStore, JobStore
from app.services.website_services import WebsiteExtractor

RETRYABLE_ERRORS = (
	google_exceptions.ServiceUnavailable,
	google_exceptions.ResourceExhausted,
	google_exceptions.DeadlineExceeded,
	google_exceptions.InternalServerError,
	genai_errors.ServerError,
	httpx.TransportError,
	httpx.TimeoutException,
	OperationalError,
	TimeoutError,
	ConnectionError,
)


def is_retryable(error: BaseException) -> bool:
	"""Transient network, rate-limit and database availability failures are retried."""
	if isinstance(error, (JobError, ModelQueryError)):
		return bool(error.retryable)
	return isinstance(error, RETRYABLE_ERRORS)


class AnalysisPipeline(BaseService):
	"""Extraction, prompt generation, model analysis and persistence for a claimed job."""

	def __init__(
		self,
		job_store: JobStore,
		business_store: BusinessStore,
		result_store: AnalysisResultStore,
		extractor: WebsiteExtractor,
		prompt_strategy: PromptStrategy,
		model_client: ModelQueryClient,
		max_queries: int,
		correlation_id: Optional[str] = None,
	):
		super().__init__(correlation_id)
		self.job_store = job_store
		self.business_store = business_store
		self.result_store = result_store
		self.extractor = extractor
		self.prompt_strategy = prompt_strategy
		self.model_client = model_client
		self.max_queries = max_queries

	def run(self, job: AnalysisJobRead) -> AnalysisJobRead:
		info: Dict[str, Any] = dict(job.extracted_info or {})
		business_id = self._prepare_business(job, info)
		prompts = self._prepare_prompts(job, info)
		scores, failures = self._analyze(job, info, prompts)

		self._progress(job.id, JobStatus.PROCESSING, JobStep.PROCESSING, 95, "Saving results")
		run_uuid = str(uuid.uuid4())
		keywords = list(info.get("keywords") or [])
		outcome = AnalysisOutcome(
			run_uuid=run_uuid,
			business_name=info["business_name"],
			keywords=keywords,
			prompts=prompts,
			providers=scores,
			failed_providers=failures,
			average_score=average_rank(scores),
		)
		completed = self.result_store.save_results(
			job_id=job.id,
			business_id=business_id,
			user_id=job.user_id,
			run_uuid=run_uuid,
			keywords=keywords,
			prompts=prompts,
			provider_ranks={s.provider: s.aeo_score for s in scores},
			average_rank=outcome.average_score,
			analysis_result=outcome.model_dump(mode="json"),
		)
		self.log_operation("pipeline_completed", job_id=job.id, business_id=business_id, average_score=outcome.average_score)
		return completed

	def _progress(self, job_id: str, status: Optional[JobStatus], step: JobStep, percent: int, message: str, **extra: Any) -> None:
		patch: Dict[str, Any] = {"current_step": step, "progress_percent": percent, "progress_message": message, **extra}
		if status is not None:
			patch["status"] = status
		self.job_store.update_job(job_id, patch)

	def _prepare_business(self, job: AnalysisJobRead, info: Dict[str, Any]) -> int:
		if info.get("is_manual_analysis"):
			if job.business_id is None:
				raise PermanentJobError("Manual analysis requires a business", job_id=job.id)
			if not info.get("business_name"):
				business = self.business_store.get_business(job.business_id)
				if business is None:
					raise PermanentJobError(f"Business {job.business_id} no longer exists", job_id=job.id)
				info["business_name"] = business.website_name
			return job.business_id

		extracted = self.extractor.extract(job.website_url, job_id=job.id)
		info.update(extracted.model_dump(exclude={"confidence"}))
		info["extraction_confidence"] = extracted.confidence
		business = self.business_store.upsert_from_extraction(job.website_url, info, job.user_id, job.organization_id)
		self._progress(
			job.id,
			None,
			JobStep.PROMPT_FORMING,
			30,
			f"Identified {extracted.business_name}",
			extracted_info=info,
			business_id=business.id,
		)
		return business.id

	def _prepare_prompts(self, job: AnalysisJobRead, info: Dict[str, Any]) -> List[str]:
		supplied = [p for p in ((job.prompts or {}).get("queries") or []) if isinstance(p, str) and p.strip()]
		if supplied:
			prompts = supplied
		else:
			prompts = self.prompt_strategy.generate(
				info["business_name"],
				info.get("industry") or "business",
				list(info.get("keywords") or []),
				self.max_queries,
				location=info.get("location"),
				description=info.get("description"),
			)
		if not prompts:
			raise PermanentJobError("No prompts available for analysis", job_id=job.id)

		self._progress(
			job.id,
			JobStatus.MODEL_ANALYSIS,
			JobStep.MODEL_ANALYSIS,
			50,
			f"Querying models with {len(prompts)} prompts",
			prompts={"queries": prompts},
		)
		return prompts

	def _analyze(self, job: AnalysisJobRead, info: Dict[str, Any], prompts: List[str]):
		providers = self.model_client.providers()
		if not providers:
			raise PermanentJobError("No model providers configured", job_id=job.id)

		business_name = info["business_name"]
		scores: List[ProviderScore] = []
		failures: Dict[str, str] = {}
		for index, provider in enumerate(providers):
			self._progress(job.id, None, JobStep.MODEL_ANALYSIS, 60 + (30 * index) // len(providers), f"Analyzing {provider}")
			results: List[QueryResult] = []
			for prompt in prompts:
				try:
					answer = self.model_client.query(provider, prompt, job_id=job.id)
					results.append(evaluate_response(prompt, answer, business_name))
				except ModelQueryError as e:
					results.append(evaluate_response(prompt, "", business_name, error=str(e)))

			if all(r.error is not None for r in results):
				failures[provider] = results[-1].error or "unknown error"
				self.logger.warning(
					"Provider failed every query, skipping",
					extra={"correlation_id": self.correlation_id, "job_id": job.id, "provider": provider},
				)
				continue
			scores.append(score_provider(provider, business_name, results))

		if not scores:
			raise RetryableJobError("All model providers failed", job_id=job.id, details={"failures": failures})
		self._progress(job.id, None, JobStep.MODEL_ANALYSIS, 90, "Model analysis complete")
		return scores, failures
