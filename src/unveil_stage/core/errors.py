"""Domain errors raised by the conversation core.

Every error carries a ``kind`` so the HTTP and realtime adapters can render
it without inspecting message text.
"""

from __future__ import annotations

from fastapi import Request, status
from fastapi.responses import JSONResponse

KIND_NOT_FOUND = "not_found"
KIND_UNAUTHORIZED = "unauthorized"
KIND_VALIDATION = "validation"
KIND_CONFLICT = "conflict"


class UnveilError(Exception):
    """Base class for failures surfaced to API callers."""

    kind = "error"
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def to_payload(self) -> dict[str, str]:
        return {"kind": self.kind, "message": self.message}


class ConversationNotFoundError(UnveilError):
    """Referenced conversation does not exist."""

    kind = KIND_NOT_FOUND
    status_code = status.HTTP_404_NOT_FOUND

    def __init__(self, message: str = "Conversation not found") -> None:
        super().__init__(message)


class NotParticipantError(UnveilError):
    """Requester is not one of the conversation's two participants."""

    kind = KIND_UNAUTHORIZED
    status_code = status.HTTP_403_FORBIDDEN

    def __init__(self, message: str = "Unauthorized access to conversation") -> None:
        super().__init__(message)


class MessageValidationError(UnveilError):
    """Input rejected before any database mutation."""

    kind = KIND_VALIDATION
    status_code = status.HTTP_400_BAD_REQUEST


class MatchError(UnveilError):
    """Invalid like/dislike request (self-like, duplicate, unknown user)."""

    kind = KIND_VALIDATION
    status_code = status.HTTP_400_BAD_REQUEST


class GateTimeoutError(UnveilError):
    """A gated send did not finish within the configured timeout."""

    kind = KIND_CONFLICT
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE

    def __init__(self, message: str = "Conversation is busy, try again") -> None:
        super().__init__(message)


class TransactionConflictError(UnveilError):
    """Row-lock contention persisted after all transaction retries."""

    kind = KIND_CONFLICT
    status_code = status.HTTP_409_CONFLICT

    def __init__(self, message: str = "Conversation update conflicted, try again") -> None:
        super().__init__(message)


async def unveil_exception_handler(request: Request, exc: UnveilError) -> JSONResponse:
    """Render an ``UnveilError`` as ``{"detail": ..., "kind": ...}``."""
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.message, "kind": exc.kind},
    )
