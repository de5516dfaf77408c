from sqlalchemy import Column, Date, ForeignKey, Integer, String, UniqueConstraint
from app.db.base_class import AuditMixin, Base, JSONType


class RankingHistory(Base, AuditMixin):
	__tablename__ = "ranking_histories"
	__table_args__ = (UniqueConstraint("business_id", "date", name="uq_ranking_history_business_date"),)

	id = Column(Integer, primary_key=True, index=True)
	user_id = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True)
	business_id = Column(Integer, ForeignKey("businesses.id", ondelete="CASCADE"), nullable=False, index=True)
	date = Column(Date, nullable=False)
	run_uuid = Column(String(64), nullable=False)
	provider_ranks = Column(JSONType, nullable=False, default=dict)  # {"gemini-2.5-flash": 72, ...}
	average_rank = Column(Integer, nullable=True)
