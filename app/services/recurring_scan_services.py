from __future__ import annotations

from datetime import datetime
from typing import Callable, List, Optional

from sqlalchemy.orm import Session

from app.core.subscription_tiers import PlanFeature, get_tier, has_feature
from app.repositories.business import BusinessRepository
from app.repositories.user import UserRepository
from app.schemas.recurring_scan import (
	RecurringScanListItem,
	RecurringScanSettings,
	RecurringScanUpdate,
	ScanFrequency,
	ScanTriggerResponse,
)
from app.services.base import BaseService
from app.services.exceptions import AuthenticationError, RecurringScanNotAvailableError, ResourceNotFoundError
from app.services.scan_scheduler_services import compute_next_scan_date
from app.services.store_services import utcnow


class RecurringScansService(BaseService):
	"""Dashboard operations on a business's recurring scan settings."""

	def __init__(
		self,
		business_repo: BusinessRepository,
		user_repo: UserRepository,
		correlation_id: Optional[str] = None,
		clock: Callable[[], datetime] = utcnow,
	):
		super().__init__(correlation_id)
		self._set_repositories(business_repo=business_repo, user_repo=user_repo)
		self.clock = clock

	def _plan_for(self, user_id: int) -> str:
		user = self.user_repo.get_by_id(user_id)
		if user is None:
			raise AuthenticationError("User not found", correlation_id=self.correlation_id)
		return get_tier(user.plan).value

	def _accessible(self, business_id: int, user_id: int):
		business = self.business_repo.get_accessible(business_id, user_id)
		if business is None:
			raise ResourceNotFoundError("Business", business_id, user_id, self.correlation_id)
		return business

	def get_settings(self, business_id: int, user_id: int) -> RecurringScanSettings:
		business = self._accessible(business_id, user_id)
		plan = self._plan_for(user_id)
		return RecurringScanSettings(
			business_id=business.id,
			enabled=bool(business.recurring_scans),
			frequency=business.scan_frequency,
			last_scan_date=business.last_scan_date,
			next_scan_date=business.next_scan_date,
			has_access=has_feature(plan, PlanFeature.RECURRING_SCANS),
			plan=plan,
		)

	def update_settings(self, business_id: int, user_id: int, update: RecurringScanUpdate, db: Session) -> RecurringScanSettings:
		"""Enable, disable or re-time recurring scans for a business.

		Raises:
			ResourceNotFoundError: If the user cannot reach the business
			RecurringScanNotAvailableError: If the plan lacks the capability
		"""
		business = self._accessible(business_id, user_id)
		plan = self._plan_for(user_id)
		frequency = update.frequency or ScanFrequency.WEEKLY

		if update.enabled:
			if not has_feature(plan, PlanFeature.RECURRING_SCANS):
				raise RecurringScanNotAvailableError(plan, PlanFeature.RECURRING_SCANS.value, self.correlation_id)
			if frequency == ScanFrequency.DAILY and not has_feature(plan, PlanFeature.DAILY_SCANS):
				raise RecurringScanNotAvailableError(plan, PlanFeature.DAILY_SCANS.value, self.correlation_id)

		def op():
			if update.enabled:
				fields = {
					"recurring_scans": True,
					"scan_frequency": frequency.value,
					"next_scan_date": compute_next_scan_date(self.clock(), frequency),
				}
			else:
				fields = {"recurring_scans": False, "scan_frequency": None, "next_scan_date": None}
			return self.business_repo.update(business.id, fields)

		self.run_in_transaction(db, op)
		self.log_operation("update_settings", business_id=business_id, user_id=user_id, enabled=update.enabled, frequency=frequency.value)
		return self.get_settings(business_id, user_id)

	def list_for_user(self, user_id: int) -> List[RecurringScanListItem]:
		items = []
		for business in self.business_repo.list_recurring_for_user(user_id):
			organization = self.business_repo.first_linked_organization(business.id)
			items.append(RecurringScanListItem(
				business_id=business.id,
				business_name=business.website_name,
				frequency=business.scan_frequency,
				last_scan_date=business.last_scan_date,
				next_scan_date=business.next_scan_date,
				organization_name=organization.name if organization else "Unknown",
			))
		return items

	def trigger_immediate_scan(self, business_id: int, user_id: int, db: Session) -> ScanTriggerResponse:
		"""Make the business due now so the next scheduler pass queues it."""
		business = self._accessible(business_id, user_id)
		now = self.clock()
		self.run_in_transaction(db, lambda: self.business_repo.update(business.id, {"next_scan_date": now}))
		self.log_operation("trigger_immediate_scan", business_id=business_id, user_id=user_id)
		return ScanTriggerResponse(business_id=business_id, next_scan_date=now)
