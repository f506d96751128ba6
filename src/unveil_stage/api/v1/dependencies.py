"""Shared API dependencies for authentication and service access."""

from typing import Annotated

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from unveil_stage.core.security import InvalidTokenError, decode_access_token
from unveil_stage.db.session import get_db
from unveil_stage.models import User
from unveil_stage.services.matches import MatchService
from unveil_stage.services.messaging import MessagingService

# HTTP Bearer scheme for JWT authentication
bearer_scheme = HTTPBearer()

# Type alias for database session dependency
SessionDep = Annotated[Session, Depends(get_db)]


def get_current_user(
    credentials: Annotated[HTTPAuthorizationCredentials, Depends(bearer_scheme)],
    db: SessionDep,
) -> User:
    """Resolve the authenticated member from the bearer token.

    Args:
        credentials: HTTP Bearer token credentials
        db: Database session

    Returns:
        User object for the authenticated member

    Raises:
        HTTPException: If the token is invalid or the member no longer exists
    """
    try:
        user_id = decode_access_token(credentials.credentials)
    except InvalidTokenError as err:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Could not validate credentials",
        ) from err

    user = db.get(User, user_id)
    if user is None or not user.is_active:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="User not found",
        )
    return user


def get_messaging_service(request: Request) -> MessagingService:
    """Return the messaging service created at application startup."""
    return request.app.state.messaging


def get_match_service(request: Request) -> MatchService:
    """Return the match service created at application startup."""
    return request.app.state.matches


# Type aliases for injected dependencies
CurrentUserDep = Annotated[User, Depends(get_current_user)]
MessagingDep = Annotated[MessagingService, Depends(get_messaging_service)]
MatchServiceDep = Annotated[MatchService, Depends(get_match_service)]
