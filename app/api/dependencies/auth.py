"""Resolve the bearer token on a request to an active user row."""

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from app.api.dependencies.database import get_db
from app.api.router import http_error
from app.core.security import decode_access_token
from app.db.models.user import User
from app.repositories.user import UserRepository
from app.services.exceptions import AuthorizationError, UserInactiveError

bearer_scheme = HTTPBearer(auto_error=False)


def _unauthorized(message: str) -> HTTPException:
	return HTTPException(
		status_code=status.HTTP_401_UNAUTHORIZED,
		detail=message,
		headers={"WWW-Authenticate": "Bearer"},
	)


def get_current_user(
	request: Request,
	credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
	db: Session = Depends(get_db),
) -> User:
	if credentials is None or not credentials.credentials:
		raise _unauthorized("Not authenticated")

	claims = decode_access_token(credentials.credentials)
	if not claims or not claims.get("sub"):
		raise _unauthorized("Could not validate credentials")

	try:
		user_id = int(claims["sub"])
	except (TypeError, ValueError):
		raise _unauthorized("Could not validate credentials")

	correlation_id = getattr(request.state, "correlation_id", None)
	user = UserRepository(db=db, correlation_id=correlation_id).get_by_id(user_id)
	if user is None:
		raise _unauthorized("User not found")
	if not user.is_active:
		raise http_error(UserInactiveError(user.id, correlation_id=correlation_id))

	# Picked up by the request logging middleware
	request.state.user_id = user.id
	return user


def get_current_admin(request: Request, current_user: User = Depends(get_current_user)) -> User:
	if not getattr(current_user, "is_superuser", False):
		raise http_error(AuthorizationError(
			"admin",
			user_id=current_user.id,
			correlation_id=getattr(request.state, "correlation_id", None),
		))
	return current_user
