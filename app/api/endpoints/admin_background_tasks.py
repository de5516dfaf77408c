import logging
from typing import Any, Dict, Optional, Tuple

from fastapi import Depends
from fastapi.responses import JSONResponse

from app.api.router import create_router
from app.api.dependencies.auth import get_current_admin
from app.api.dependencies.services import get_background_task_manager, get_correlation_id
from app.schemas.background_task import (
	VALID_ACTIONS,
	BackgroundTaskAction,
	BackgroundTaskActionRequest,
	BackgroundTaskActionResponse,
	BackgroundTaskOverview,
)
from app.services.background_task_services import PoolBasedBackgroundTaskManager
from app.services.exceptions import InvalidBackgroundActionError

logger = logging.getLogger(__name__)

router = create_router(name="admin_background_tasks", dependencies=[Depends(get_current_admin)])


def _running_message(manager: PoolBasedBackgroundTaskManager) -> str:
	if manager.is_active():
		return "Background task manager is running"
	return "Background task manager is stopped"


def _apply_action(manager: PoolBasedBackgroundTaskManager, action: BackgroundTaskAction) -> Tuple[str, Optional[Dict[str, Any]]]:
	if action == BackgroundTaskAction.START:
		started = manager.start()
		return ("Background task manager started" if started else "Background task manager already running"), None
	if action == BackgroundTaskAction.STOP:
		stopped = manager.stop()
		return ("Background task manager stopped" if stopped else "Background task manager already stopped"), None
	if action == BackgroundTaskAction.RUN_ONCE:
		started = manager.run_once()
		return f"Dispatch cycle started {started} job(s)", {"started": started}
	if action == BackgroundTaskAction.FORCE_SCAN:
		result = manager.force_scan()
		return f"Recurring scan pass queued {result.queued} of {result.total_businesses} due businesses", result.model_dump(mode="json")
	if action == BackgroundTaskAction.FORCE_CLEANUP:
		result = manager.force_cleanup()
		return f"Maintenance sweep reset {result.reset} and failed {result.failed} orphaned job(s)", result.model_dump(mode="json")
	cleared = manager.emergency_reset()
	return "Pool state cleared", cleared


@router.get("", response_model=BackgroundTaskOverview)
def get_background_tasks(
	manager: PoolBasedBackgroundTaskManager = Depends(get_background_task_manager),
	correlation_id: Optional[str] = Depends(get_correlation_id),
):
	"""
	Pool status, performance metrics and health report in one view.
	"""
	try:
		return BackgroundTaskOverview(
			running=manager.is_active(),
			message=_running_message(manager),
			status=manager.get_system_status(),
			performance=manager.get_performance_metrics(),
			health=manager.get_health_report(),
		)
	except Exception as e:
		logger.error("Failed to read background task status", extra={"correlation_id": correlation_id, "error": str(e)})
		return JSONResponse(
			status_code=500,
			content={"success": False, "error": "Failed to get background task status", "details": str(e)},
		)


@router.post("", response_model=BackgroundTaskActionResponse)
def control_background_tasks(
	body: BackgroundTaskActionRequest,
	manager: PoolBasedBackgroundTaskManager = Depends(get_background_task_manager),
	correlation_id: Optional[str] = Depends(get_correlation_id),
):
	"""
	Run a control action: start, stop, run-once, force-scan, force-cleanup or emergency-reset.
	"""
	try:
		action = BackgroundTaskAction(body.action)
	except ValueError:
		error = InvalidBackgroundActionError(body.action, VALID_ACTIONS, correlation_id)
		return JSONResponse(
			status_code=error.http_status.value,
			content={"success": False, "error": error.user_message, "valid_actions": error.valid_actions},
		)

	try:
		message, result = _apply_action(manager, action)
		logger.info(
			"Background task action executed",
			extra={"correlation_id": correlation_id, "action": action.value, "running": manager.is_active()},
		)
		return BackgroundTaskActionResponse(
			success=True,
			message=message,
			running=manager.is_active(),
			status=manager.get_system_status(),
			result=result,
		)
	except Exception as e:
		logger.error(
			"Background task action failed",
			extra={"correlation_id": correlation_id, "action": action.value, "error": str(e)},
		)
		return JSONResponse(
			status_code=500,
			content={"success": False, "error": f"Failed to execute action: {action.value}", "details": str(e)},
		)
