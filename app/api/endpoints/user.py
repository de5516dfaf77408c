from fastapi import Depends
from app.api.router import create_router
from app.api.dependencies.auth import get_current_user
from app.core.subscription_tiers import PlanFeature, get_tier, has_feature
from app.db.models.user import User
from app.schemas.user import PlanFeaturesRead, UserRead

router = create_router(name="user")

@router.get("/me", response_model=UserRead)
def read_users_me(current_user: User = Depends(get_current_user)):
	return current_user

@router.get("/me/features", response_model=PlanFeaturesRead)
def read_my_plan_features(current_user: User = Depends(get_current_user)):
	"""
	Capabilities unlocked by the current user's plan.
	"""
	plan = get_tier(current_user.plan)
	return PlanFeaturesRead(
		plan=plan.value,
		features=[feature.value for feature in PlanFeature if has_feature(plan.value, feature)],
	)
