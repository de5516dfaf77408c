"""User repository for user-related database operations."""

from typing import Optional
from sqlalchemy.orm import Session

from app.repositories.base import BaseRepository
from app.db.models.user import User


class UserRepository(BaseRepository[User]):
    """Repository for User entity operations."""
    
    def __init__(self, db: Session, correlation_id: Optional[str] = None):
        super().__init__(db, User, correlation_id)
    
    def first_in_organization(self, organization_id: int) -> Optional[User]:
        """Earliest active member of an organization, used as a fallback owner."""
        result = self.db.query(self.model).filter(
            self.model.organization_id == organization_id,
            self.model.is_active == True,
            self.model.is_deleted == False
        ).order_by(self.model.id.asc()).first()
        
        self._log_operation("first_in_organization", organization_id=organization_id, found=result is not None)
        return result
