# src/unveil_stage/api/v1/endpoints/matches.py
"""Match listing endpoint for the Unveil API."""

from __future__ import annotations

from fastapi import APIRouter

from unveil_stage.api.v1.dependencies import CurrentUserDep, MessagingDep
from unveil_stage.schemas.conversation import MatchOut

router = APIRouter(prefix="/matches", tags=["matches"])


@router.get("", response_model=list[MatchOut])
async def list_matches(current_user: CurrentUserDep, messaging: MessagingDep) -> list[MatchOut]:
    """List the current member's matches, newest first."""
    return await messaging.list_matches(current_user.id)
