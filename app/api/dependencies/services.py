"""Service dependency providers for FastAPI dependency injection."""

from fastapi import Depends, Request
from sqlalchemy.orm import Session
from typing import Optional

from app.api.dependencies.database import get_db
from app.api.router import http_error
from app.services.exceptions import BackgroundTasksUnavailableError
from app.services.background_task_services import PoolBasedBackgroundTaskManager
from app.services.job_services import AnalysisJobService
from app.services.recurring_scan_services import RecurringScansService
from app.services.scan_scheduler_services import ScanSchedulerService
from app.repositories.user import UserRepository
from app.repositories.business import BusinessRepository
from app.repositories.analysis_job import AnalysisJobRepository


def get_correlation_id(request: Request) -> Optional[str]:
	"""Extract or generate correlation ID for logging and tracing."""
	from app.core.observability import generate_correlation_id
	cid = getattr(request.state, "correlation_id", None)
	if not cid:
		cid = generate_correlation_id(request.headers.get("X-Correlation-ID"))
		setattr(request.state, "correlation_id", cid)
	return cid


# Repository Dependencies
def get_user_repository(
    db: Session = Depends(get_db),
    correlation_id: Optional[str] = Depends(get_correlation_id)
) -> UserRepository:
    """Provide UserRepository instance."""
    return UserRepository(db=db, correlation_id=correlation_id)


def get_business_repository(
    db: Session = Depends(get_db),
    correlation_id: Optional[str] = Depends(get_correlation_id)
) -> BusinessRepository:
    """Provide BusinessRepository instance."""
    return BusinessRepository(db=db, correlation_id=correlation_id)


def get_analysis_job_repository(
    db: Session = Depends(get_db),
    correlation_id: Optional[str] = Depends(get_correlation_id)
) -> AnalysisJobRepository:
    """Provide AnalysisJobRepository instance."""
    return AnalysisJobRepository(db=db, correlation_id=correlation_id)


# Service Dependencies
def get_recurring_scans_service(
    business_repo: BusinessRepository = Depends(get_business_repository),
    user_repo: UserRepository = Depends(get_user_repository),
    correlation_id: Optional[str] = Depends(get_correlation_id)
) -> RecurringScansService:
    """Provide RecurringScansService bound to the request's session.
    
    Args:
        business_repo: Business repository from dependency injection
        user_repo: User repository used to resolve the caller's plan
        correlation_id: Optional correlation ID from request headers
        
    Returns:
        Configured RecurringScansService instance
    """
    return RecurringScansService(
        business_repo=business_repo,
        user_repo=user_repo,
        correlation_id=correlation_id
    )


def get_analysis_job_service(
    job_repo: AnalysisJobRepository = Depends(get_analysis_job_repository),
    correlation_id: Optional[str] = Depends(get_correlation_id)
) -> AnalysisJobService:
    """Provide AnalysisJobService instance with required repository."""
    return AnalysisJobService(job_repo=job_repo, correlation_id=correlation_id)


# Process-wide components built in the application lifespan
def get_background_task_manager(
    request: Request,
    correlation_id: Optional[str] = Depends(get_correlation_id)
) -> PoolBasedBackgroundTaskManager:
    """Return the pool manager attached to the application state.
    
    Raises:
        HTTPException: 503 when the application was built without one
    """
    manager = getattr(request.app.state, "background_task_manager", None)
    if manager is None:
        raise http_error(BackgroundTasksUnavailableError(correlation_id=correlation_id))
    return manager


def get_scan_scheduler(
    request: Request,
    correlation_id: Optional[str] = Depends(get_correlation_id)
) -> ScanSchedulerService:
    """Return the recurring scan scheduler attached to the application state."""
    scheduler = getattr(request.app.state, "scan_scheduler", None)
    if scheduler is None:
        raise http_error(BackgroundTasksUnavailableError(correlation_id=correlation_id))
    return scheduler
