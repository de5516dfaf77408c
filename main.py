# main.py
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from app.api.endpoints import admin_background_tasks, analysis_jobs, cron, recurring_scans, user
from app.core.config import settings
from app.core.observability import RequestLoggingMiddleware, setup_logging
# Import all models to ensure relationships are properly resolved
from app.db import base  # noqa: F401
from app.db.session import SessionLocal
from app.services.background_task_services import PoolBasedBackgroundTaskManager
from app.services.job_pipeline_services import AnalysisPipeline
from app.services.model_query_services import GeminiModelQueryClient
from app.services.prompt_services import GeminiPromptStrategy, TemplatePromptStrategy
from app.services.scan_scheduler_services import ScanSchedulerService
from app.services.store_services import AnalysisResultStore, BusinessStore, JobStore
from app.services.website_services import WebsiteExtractor

setup_logging()
logger = logging.getLogger("main")


def build_background_components(session_factory=SessionLocal):
	"""Wire the scan scheduler and job pool from settings."""
	job_store = JobStore(session_factory, max_retries=settings.MAX_JOB_RETRIES)
	business_store = BusinessStore(session_factory)
	scan_scheduler = ScanSchedulerService(business_store=business_store, job_store=job_store)
	pipeline = AnalysisPipeline(
		job_store=job_store,
		business_store=business_store,
		result_store=AnalysisResultStore(session_factory),
		extractor=WebsiteExtractor(),
		prompt_strategy=GeminiPromptStrategy(fallback=TemplatePromptStrategy()),
		model_client=GeminiModelQueryClient(),
		max_queries=settings.MAX_AEO_QUERIES,
	)
	manager = PoolBasedBackgroundTaskManager(
		job_store=job_store,
		scan_scheduler=scan_scheduler,
		pipeline=pipeline,
		max_concurrency=settings.POOL_MAX_CONCURRENCY,
		max_retries=settings.MAX_JOB_RETRIES,
		poll_interval_seconds=settings.POLL_INTERVAL_SECONDS,
		cleanup_interval_seconds=settings.CLEANUP_INTERVAL_SECONDS,
		stuck_job_timeout_seconds=settings.STUCK_JOB_TIMEOUT_SECONDS,
		max_queue_size=settings.MAX_PENDING_QUEUE_SIZE,
	)
	return scan_scheduler, manager


@asynccontextmanager
async def lifespan(app: FastAPI):
	scan_scheduler, manager = build_background_components()
	app.state.scan_scheduler = scan_scheduler
	app.state.background_task_manager = manager
	if settings.ENABLE_BACKGROUND_TASKS:
		manager.start()
	else:
		logger.info("Background tasks disabled; pool manager built but not started")
	try:
		yield
	finally:
		manager.shutdown(wait=False)


app = FastAPI(lifespan=lifespan)
app.add_middleware(RequestLoggingMiddleware)

app.include_router(user.router, prefix="/users", tags=["users"])
app.include_router(recurring_scans.router, prefix="/recurring-scans", tags=["recurring-scans"])
app.include_router(analysis_jobs.router, prefix="/analysis-jobs", tags=["analysis-jobs"])
app.include_router(cron.router, prefix="/cron", tags=["cron"])
app.include_router(admin_background_tasks.router, prefix="/admin/background-tasks", tags=["admin"])
