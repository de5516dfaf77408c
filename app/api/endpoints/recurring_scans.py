from fastapi import Depends
from sqlalchemy.orm import Session

from app.api.router import create_router, http_error
from app.api.dependencies.database import get_db
from app.api.dependencies.auth import get_current_user
from app.api.dependencies.services import get_recurring_scans_service
from app.services.exceptions import ServiceError
from app.services.recurring_scan_services import RecurringScansService
from app.schemas.recurring_scan import (
	RecurringScanListItem,
	RecurringScanSettings,
	RecurringScanUpdate,
	ScanTriggerResponse,
)

router = create_router(name="recurring_scans")


@router.get("", response_model=list[RecurringScanListItem])
def list_recurring_scans(
	current_user=Depends(get_current_user),
	service: RecurringScansService = Depends(get_recurring_scans_service),
):
	"""
	Businesses the current user can reach that have recurring scans enabled.
	"""
	return service.list_for_user(current_user.id)


@router.get("/{business_id}", response_model=RecurringScanSettings)
def get_recurring_scan_settings(
	business_id: int,
	current_user=Depends(get_current_user),
	service: RecurringScansService = Depends(get_recurring_scans_service),
):
	try:
		return service.get_settings(business_id, current_user.id)
	except ServiceError as e:
		raise http_error(e)


@router.put("/{business_id}", response_model=RecurringScanSettings)
def update_recurring_scan_settings(
	business_id: int,
	body: RecurringScanUpdate,
	db: Session = Depends(get_db),
	current_user=Depends(get_current_user),
	service: RecurringScansService = Depends(get_recurring_scans_service),
):
	"""
	Enable or disable recurring scans. Enabling requires a plan with the
	recurring scan capability; daily scans need a plan that allows them.
	"""
	try:
		return service.update_settings(business_id, current_user.id, body, db)
	except ServiceError as e:
		raise http_error(e)


@router.post("/{business_id}/trigger", response_model=ScanTriggerResponse)
def trigger_recurring_scan(
	business_id: int,
	db: Session = Depends(get_db),
	current_user=Depends(get_current_user),
	service: RecurringScansService = Depends(get_recurring_scans_service),
):
	try:
		return service.trigger_immediate_scan(business_id, current_user.id, db)
	except ServiceError as e:
		raise http_error(e)
