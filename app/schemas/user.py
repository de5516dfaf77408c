from typing import List, Optional
from pydantic import BaseModel, ConfigDict, EmailStr

class UserBase(BaseModel):
	email: EmailStr
	name: str

class UserRead(UserBase):
	id: int
	plan: str = "free"
	organization_id: Optional[int] = None
	is_superuser: bool = False

	model_config = ConfigDict(from_attributes=True)

class PlanFeaturesRead(BaseModel):
	plan: str
	features: List[str]
