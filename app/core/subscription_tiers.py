"""Subscription plans and the capabilities each one unlocks."""

from enum import Enum


class PlanTier(str, Enum):
	FREE = "free"
	INDIE = "indie"
	PROFESSIONAL = "professional"
	ENTERPRISE = "enterprise"


class PlanFeature(str, Enum):
	RECURRING_SCANS = "recurring_scans"
	DAILY_SCANS = "daily_scans"
	API_ACCESS = "api_access"


_FEATURE_TIERS = {
	PlanFeature.RECURRING_SCANS: {PlanTier.INDIE, PlanTier.PROFESSIONAL, PlanTier.ENTERPRISE},
	PlanFeature.DAILY_SCANS: {PlanTier.PROFESSIONAL, PlanTier.ENTERPRISE},
	PlanFeature.API_ACCESS: {PlanTier.ENTERPRISE},
}


def get_tier(plan: str | None) -> PlanTier:
	"""Resolve a stored plan name; unknown or missing plans fall back to free."""
	try:
		return PlanTier((plan or "").strip().lower())
	except ValueError:
		return PlanTier.FREE


def has_feature(plan: str | None, feature: PlanFeature | str) -> bool:
	try:
		resolved = PlanFeature(feature)
	except ValueError:
		return False
	return get_tier(plan) in _FEATURE_TIERS[resolved]
