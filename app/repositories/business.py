"""Business repository for business and organization-link operations."""

from datetime import datetime
from typing import Optional, List
from sqlalchemy import or_
from sqlalchemy.orm import Session

from app.repositories.base import BaseRepository
from app.db.models.business import Business
from app.db.models.organization import Organization, OrganizationBusiness
from app.db.models.user import User


class BusinessRepository(BaseRepository[Business]):
	"""Repository for Business entity operations."""

	def __init__(self, db: Session, correlation_id: Optional[str] = None):
		super().__init__(db, Business, correlation_id)

	def _visible_to(self, user_id: int):
		# Owned directly, or linked to the user's organization
		org_ids = self.db.query(User.organization_id).filter(
			User.id == user_id,
			User.organization_id.isnot(None)
		)
		linked = self.db.query(OrganizationBusiness.business_id).filter(
			OrganizationBusiness.organization_id.in_(org_ids.scalar_subquery()),
			OrganizationBusiness.is_deleted == False
		)
		return or_(self.model.user_id == user_id, self.model.id.in_(linked.scalar_subquery()))

	def get_accessible(self, business_id: int, user_id: int) -> Optional[Business]:
		"""Get a business the user owns or reaches through their organization."""
		result = self.db.query(self.model).filter(
			self.model.id == business_id,
			self.model.is_deleted == False,
			self._visible_to(user_id)
		).first()
		self._log_operation("get_accessible", business_id=business_id, user_id=user_id, found=result is not None)
		return result

	def list_recurring_for_user(self, user_id: int) -> List[Business]:
		results = self.db.query(self.model).filter(
			self.model.recurring_scans == True,
			self.model.is_deleted == False,
			self._visible_to(user_id)
		).order_by(self.model.next_scan_date.asc(), self.model.id.asc()).all()
		self._log_operation("list_recurring_for_user", user_id=user_id, count=len(results))
		return results

	def find_due(self, now: datetime) -> List[Business]:
		"""Businesses with recurring scans whose next scan is unset or has arrived."""
		results = self.db.query(self.model).filter(
			self.model.recurring_scans == True,
			self.model.is_deleted == False,
			or_(self.model.next_scan_date.is_(None), self.model.next_scan_date <= now)
		).order_by(self.model.id.asc()).all()
		self._log_operation("find_due", count=len(results))
		return results

	def get_by_url(self, website_url: str) -> Optional[Business]:
		result = self.db.query(self.model).filter(
			self.model.website_url == website_url,
			self.model.is_deleted == False
		).first()
		self._log_operation("get_by_url", website_url=website_url, found=result is not None)
		return result

	def first_linked_organization(self, business_id: int) -> Optional[Organization]:
		return self.db.query(Organization).join(
			OrganizationBusiness, OrganizationBusiness.organization_id == Organization.id
		).filter(
			OrganizationBusiness.business_id == business_id,
			OrganizationBusiness.is_deleted == False,
			Organization.is_deleted == False
		).order_by(OrganizationBusiness.id.asc()).first()

	def link_organization(self, business_id: int, organization_id: int, role: str = "owner") -> bool:
		"""Link the business to an organization; returns False when the link already existed."""
		exists = self.db.query(OrganizationBusiness.id).filter(
			OrganizationBusiness.business_id == business_id,
			OrganizationBusiness.organization_id == organization_id
		).first() is not None
		if exists:
			return False
		self.db.add(OrganizationBusiness(business_id=business_id, organization_id=organization_id, role=role))
		self.db.flush()
		self._log_operation("link_organization", business_id=business_id, organization_id=organization_id)
		return True
