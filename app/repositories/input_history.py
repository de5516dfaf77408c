from typing import Optional, List
from sqlalchemy.orm import Session

from app.repositories.base import BaseRepository
from app.db.models.input_history import InputHistory


class InputHistoryRepository(BaseRepository[InputHistory]):
	"""Keyword and prompt sets used by each analysis run."""

	def __init__(self, db: Session, correlation_id: Optional[str] = None):
		super().__init__(db, InputHistory, correlation_id)

	def latest_for_business(self, business_id: int) -> Optional[InputHistory]:
		result = self.db.query(self.model).filter(
			self.model.business_id == business_id,
			self.model.is_deleted == False
		).order_by(self.model.created_at.desc(), self.model.id.desc()).first()
		self._log_operation("latest_for_business", business_id=business_id, found=result is not None)
		return result

	def record(self, user_id: Optional[int], business_id: int, run_uuid: str, keywords: List[str], prompts: List[str]) -> InputHistory:
		return self.create({
			"user_id": user_id,
			"business_id": business_id,
			"run_uuid": run_uuid,
			"keywords": list(keywords),
			"prompts": list(prompts),
		})
