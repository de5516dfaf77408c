import logging
import secrets
from typing import Optional

from fastapi import Depends, Header, HTTPException
from fastapi.responses import JSONResponse

from app.api.router import create_router
from app.api.dependencies.services import get_correlation_id, get_scan_scheduler
from app.core.config import settings
from app.services.exceptions import SchedulerError
from app.services.scan_scheduler_services import ScanSchedulerService
from app.services.store_services import utcnow

logger = logging.getLogger(__name__)

router = create_router(name="cron")


def verify_cron_secret(authorization: Optional[str] = Header(default=None)) -> None:
	"""Require ``Authorization: Bearer <CRON_SECRET>`` when a secret is configured."""
	expected = settings.CRON_SECRET
	if not expected:
		return
	if not authorization or not secrets.compare_digest(authorization, f"Bearer {expected}"):
		raise HTTPException(status_code=401, detail="Unauthorized")


@router.get("/recurring-scans", dependencies=[Depends(verify_cron_secret)])
def run_recurring_scans(
	scheduler: ScanSchedulerService = Depends(get_scan_scheduler),
	correlation_id: Optional[str] = Depends(get_correlation_id),
):
	"""
	Queue an analysis job for every business whose recurring scan is due.
	"""
	try:
		batch = scheduler.run_due_scans()
	except SchedulerError as e:
		logger.error("Recurring scan cron failed", extra={"correlation_id": correlation_id, "error": e.message})
		return JSONResponse(
			status_code=e.http_status.value,
			content={"error": "Cron job failed", "details": e.message, "timestamp": utcnow().isoformat()},
		)

	return {
		"success": True,
		"summary": {
			"total_businesses": batch.total_businesses,
			"queued": batch.queued,
			"skipped": batch.skipped,
			"disabled": batch.disabled,
			"errors": batch.errors,
			"timestamp": batch.timestamp.isoformat(),
		},
		"results": [result.model_dump(mode="json") for result in batch.results],
	}
