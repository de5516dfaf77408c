from sqlalchemy import Column, ForeignKey, Integer, String
from app.db.base_class import AuditMixin, Base, JSONType


class InputHistory(Base, AuditMixin):
	__tablename__ = "input_histories"

	id = Column(Integer, primary_key=True, index=True)
	user_id = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True)
	business_id = Column(Integer, ForeignKey("businesses.id", ondelete="CASCADE"), nullable=False, index=True)
	run_uuid = Column(String(64), nullable=True, index=True)
	keywords = Column(JSONType, nullable=False, default=list)
	prompts = Column(JSONType, nullable=False, default=list)
