from __future__ import annotations

import calendar
from datetime import datetime, timedelta
from typing import Callable, Optional, Union

from app.core.subscription_tiers import PlanFeature, has_feature
from app.schemas.analysis_job import AnalysisJobCreate
from app.schemas.business import BusinessOwner, DueBusiness
from app.schemas.recurring_scan import ScanBatchResult, ScanBusinessResult, ScanFrequency
from app.services.base import BaseService
from app.services.exceptions import SchedulerError
from app.services.store_services import BusinessStore, JobStore, utcnow

DEFAULT_INDUSTRY = "Technology"


def _add_one_month(moment: datetime) -> datetime:
	year = moment.year + moment.month // 12
	month = moment.month % 12 + 1
	# Clamp to the last day of a shorter month (Jan 31 -> Feb 28/29)
	day = min(moment.day, calendar.monthrange(year, month)[1])
	return moment.replace(year=year, month=month, day=day)


def compute_next_scan_date(now: datetime, frequency: Union[ScanFrequency, str, None]) -> datetime:
	"""Next due date for a cadence; unknown or missing cadences are weekly."""
	value = frequency.value if isinstance(frequency, ScanFrequency) else (frequency or "").strip().lower()
	if value == ScanFrequency.DAILY.value:
		return now + timedelta(days=1)
	if value == ScanFrequency.MONTHLY.value:
		return _add_one_month(now)
	return now + timedelta(days=7)


class ScanSchedulerService(BaseService):
	"""Turns businesses that are due for a recurring scan into pending analysis jobs."""

	def __init__(
		self,
		business_store: BusinessStore,
		job_store: JobStore,
		feature_check: Callable[[Optional[str], PlanFeature], bool] = has_feature,
		clock: Callable[[], datetime] = utcnow,
		correlation_id: Optional[str] = None,
	):
		super().__init__(correlation_id)
		self.business_store = business_store
		self.job_store = job_store
		self.feature_check = feature_check
		self.clock = clock

	def run_due_scans(self, now: Optional[datetime] = None) -> ScanBatchResult:
		"""Queue one job per due business and advance each business's schedule.

		A failure for one business is recorded in the result and its schedule
		is still advanced, so a broken business cannot be retried every pass.

		Raises:
			SchedulerError: If the due businesses cannot be loaded at all
		"""
		now = now or self.clock()
		try:
			candidates = self.business_store.find_due_for_scan(now)
		except Exception as e:
			self.logger.error(
				"Failed to load businesses due for scan",
				extra={"correlation_id": self.correlation_id, "service": self.__class__.__name__, "error": str(e)},
			)
			raise SchedulerError(f"Failed to load due businesses: {e}", correlation_id=self.correlation_id) from e

		batch = ScanBatchResult(total_businesses=len(candidates), timestamp=now)
		self.log_operation("run_due_scans_start", candidates=len(candidates), now=now.isoformat())

		for due in candidates:
			result = self._scan_business(due, now)
			batch.results.append(result)
			if result.status == "queued":
				batch.queued += 1
			elif result.status == "skipped":
				batch.skipped += 1
			elif result.status == "disabled":
				batch.disabled += 1
			else:
				batch.errors += 1

		self.log_operation(
			"run_due_scans_complete",
			total=batch.total_businesses,
			queued=batch.queued,
			errors=batch.errors,
			skipped=batch.skipped,
			disabled=batch.disabled,
		)
		return batch

	def _scan_business(self, due: DueBusiness, now: datetime) -> ScanBusinessResult:
		business = due.business
		try:
			if due.owner is None:
				self.logger.warning(
					"No user found for business, skipping recurring scan",
					extra={"correlation_id": self.correlation_id, "business_id": business.id},
				)
				return ScanBusinessResult(
					business_id=business.id,
					business_name=business.website_name,
					status="skipped",
					reason="No owning user",
				)

			if not self.feature_check(due.owner.plan, PlanFeature.RECURRING_SCANS):
				self.business_store.update_scan_schedule(business.id, recurring_scans=False, next_scan_date=None)
				self.log_operation("recurring_scans_disabled", business_id=business.id, plan=due.owner.plan)
				return ScanBusinessResult(
					business_id=business.id,
					business_name=business.website_name,
					status="disabled",
					reason=f"Plan '{due.owner.plan}' does not include recurring scans",
				)

			job = self.job_store.create_job(self._build_job(due, due.owner))
			next_scan = compute_next_scan_date(now, business.scan_frequency)
			self.business_store.update_scan_schedule(business.id, last_scan_date=now, next_scan_date=next_scan)
			self.log_operation("recurring_scan_queued", business_id=business.id, job_id=job.id, next_scan_date=next_scan.isoformat())
			return ScanBusinessResult(
				business_id=business.id,
				business_name=business.website_name,
				status="queued",
				job_id=job.id,
				next_scan_date=next_scan,
			)
		except Exception as e:
			self.logger.error(
				"Failed to queue recurring scan",
				extra={"correlation_id": self.correlation_id, "business_id": business.id, "error": str(e)},
			)
			next_scan = compute_next_scan_date(now, business.scan_frequency)
			try:
				self.business_store.update_scan_schedule(business.id, last_scan_date=now, next_scan_date=next_scan)
			except Exception as update_error:
				self.logger.error(
					"Failed to advance schedule after scan error",
					extra={"correlation_id": self.correlation_id, "business_id": business.id, "error": str(update_error)},
				)
			return ScanBusinessResult(
				business_id=business.id,
				business_name=business.website_name,
				status="error",
				next_scan_date=next_scan,
				error=str(e),
			)

	@staticmethod
	def _build_job(due: DueBusiness, owner: BusinessOwner) -> AnalysisJobCreate:
		business = due.business
		latest = due.latest_input
		keywords = list(latest.keywords) if latest and latest.keywords else [business.website_name, "business", "services"]
		prompts = list(latest.prompts) if latest and latest.prompts else []

		extracted_info = {
			"business_name": business.website_name,
			"industry": business.industry or DEFAULT_INDUSTRY,
			"description": business.description or f"Recurring scan for {business.website_name}",
			"keywords": keywords,
			"is_recurring_scan": True,
			# Business data is already known, so the pipeline skips website extraction
			"is_manual_analysis": True,
		}
		if business.use_location_in_analysis and business.location:
			extracted_info["location"] = business.location

		return AnalysisJobCreate(
			website_url=business.website_url or business.website_name,
			user_id=owner.user_id,
			organization_id=owner.organization_id,
			business_id=business.id,
			extracted_info=extracted_info,
			prompts={"queries": prompts} if prompts else None,
		)
