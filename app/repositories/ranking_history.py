from datetime import date
from typing import Optional, Dict
from sqlalchemy.orm import Session

from app.repositories.base import BaseRepository
from app.db.models.ranking_history import RankingHistory


class RankingHistoryRepository(BaseRepository[RankingHistory]):
	"""One ranking snapshot per business per day."""

	def __init__(self, db: Session, correlation_id: Optional[str] = None):
		super().__init__(db, RankingHistory, correlation_id)

	def get_for_day(self, business_id: int, day: date) -> Optional[RankingHistory]:
		return self.db.query(self.model).filter(
			self.model.business_id == business_id,
			self.model.date == day
		).first()

	def upsert_for_day(
		self,
		business_id: int,
		day: date,
		run_uuid: str,
		provider_ranks: Dict[str, int],
		average_rank: Optional[int],
		user_id: Optional[int] = None,
	) -> RankingHistory:
		"""Insert the day's snapshot, or overwrite it when the business was already scanned today."""
		existing = self.get_for_day(business_id, day)
		if existing is None:
			row = self.create({
				"user_id": user_id,
				"business_id": business_id,
				"date": day,
				"run_uuid": run_uuid,
				"provider_ranks": dict(provider_ranks),
				"average_rank": average_rank,
			})
			self._log_operation("upsert_for_day", business_id=business_id, day=str(day), inserted=True)
			return row

		existing.run_uuid = run_uuid
		existing.provider_ranks = dict(provider_ranks)
		existing.average_rank = average_rank
		if user_id is not None:
			existing.user_id = user_id
		self.db.flush()
		self.db.refresh(existing)
		self._log_operation("upsert_for_day", business_id=business_id, day=str(day), inserted=False)
		return existing
