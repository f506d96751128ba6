"""Access-token helpers for the identity collaborator boundary.

Credential storage and login live outside this service; the core only mints
and verifies bearer tokens whose ``sub`` claim is a user id.
"""
from __future__ import annotations

from datetime import timedelta

from jose import JWTError, jwt

from unveil_stage.core.settings import settings
from unveil_stage.db.time import utcnow


class InvalidTokenError(ValueError):
    """Raised when a bearer token cannot be verified."""


def create_access_token(user_id: str, expires_minutes: int | None = None) -> str:
    """Return a signed JWT for ``user_id``.

    Args:
        user_id: Identifier stored in the ``sub`` claim.
        expires_minutes: Optional lifetime override in minutes.
    """
    lifetime = expires_minutes or settings.access_token_expire_minutes
    claims = {
        "sub": user_id,
        "exp": utcnow() + timedelta(minutes=lifetime),
    }
    return jwt.encode(claims, settings.secret_key, algorithm=settings.jwt_algorithm)


def decode_access_token(token: str) -> str:
    """Verify ``token`` and return its subject.

    Raises:
        InvalidTokenError: If the signature, expiry or subject is invalid.
    """
    try:
        payload = jwt.decode(token, settings.secret_key, algorithms=[settings.jwt_algorithm])
    except JWTError as err:
        raise InvalidTokenError("Could not validate credentials") from err

    subject = payload.get("sub")
    if not isinstance(subject, str) or not subject:
        raise InvalidTokenError("Could not validate credentials")
    return subject
