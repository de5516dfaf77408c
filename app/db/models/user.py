from sqlalchemy import Column, ForeignKey, Integer, String, Boolean
from sqlalchemy.orm import relationship
from app.db.base_class import AuditMixin, Base

class User(Base, AuditMixin):
	__tablename__ = "users"

	id = Column(Integer, primary_key=True, index=True)
	email = Column(String, unique=True, index=True, nullable=False)
	name = Column(String, nullable=False)
	plan = Column(String, nullable=False, default="free")  # free, indie, professional, enterprise
	organization_id = Column(Integer, ForeignKey("organizations.id", ondelete="SET NULL"), nullable=True, index=True)
	is_active = Column(Boolean, default=True)
	is_superuser = Column(Boolean, default=False)

	organization = relationship("Organization", back_populates="users")
	businesses = relationship("Business", back_populates="user")
	analysis_jobs = relationship("AnalysisJob", back_populates="user")
