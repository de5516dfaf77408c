from sqlalchemy import Column, ForeignKey, Integer, String, UniqueConstraint
from sqlalchemy.orm import relationship
from app.db.base_class import AuditMixin, Base


class Organization(Base, AuditMixin):
	__tablename__ = "organizations"

	id = Column(Integer, primary_key=True, index=True)
	name = Column(String, nullable=False)

	users = relationship("User", back_populates="organization", order_by="User.id")
	business_links = relationship("OrganizationBusiness", back_populates="organization", cascade="all, delete-orphan")


class OrganizationBusiness(Base, AuditMixin):
	__tablename__ = "organization_businesses"
	__table_args__ = (UniqueConstraint("organization_id", "business_id", name="uq_organization_business"),)

	id = Column(Integer, primary_key=True, index=True)
	organization_id = Column(Integer, ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False, index=True)
	business_id = Column(Integer, ForeignKey("businesses.id", ondelete="CASCADE"), nullable=False, index=True)
	role = Column(String, nullable=False, default="owner")

	organization = relationship("Organization", back_populates="business_links")
	business = relationship("Business", back_populates="organization_links")
