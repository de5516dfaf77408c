from sqlalchemy import Column, ForeignKey, Integer, String, Text, Boolean, DateTime
from sqlalchemy.orm import relationship
from app.db.base_class import AuditMixin, Base


class Business(Base, AuditMixin):
	__tablename__ = "businesses"

	id = Column(Integer, primary_key=True, index=True)
	user_id = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True)
	website_name = Column(String, nullable=False)
	website_url = Column(String, unique=True, nullable=True)
	industry = Column(String, nullable=True)
	location = Column(String, nullable=True)
	description = Column(Text, nullable=True)
	use_location_in_analysis = Column(Boolean, nullable=False, default=False)

	# Recurring scan configuration; scan_frequency is daily, weekly or monthly
	recurring_scans = Column(Boolean, nullable=False, default=False, index=True)
	scan_frequency = Column(String, nullable=True)
	last_scan_date = Column(DateTime(timezone=True), nullable=True)
	next_scan_date = Column(DateTime(timezone=True), nullable=True, index=True)

	user = relationship("User", back_populates="businesses")
	organization_links = relationship(
		"OrganizationBusiness",
		back_populates="business",
		cascade="all, delete-orphan",
		order_by="OrganizationBusiness.id",
	)
