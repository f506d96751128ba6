# src/unveil_stage/api/v1/endpoints/discovery.py
"""Like and pass endpoints for the Unveil API."""

from __future__ import annotations

from fastapi import APIRouter, status

from unveil_stage.api.v1.dependencies import CurrentUserDep, MatchServiceDep
from unveil_stage.schemas.discovery import LikeRequest, LikeResult

router = APIRouter(prefix="/discovery", tags=["discovery"])


@router.post("/like", status_code=status.HTTP_201_CREATED, response_model=LikeResult)
async def like_user(
    like_data: LikeRequest,
    current_user: CurrentUserDep,
    matches: MatchServiceDep,
) -> LikeResult:
    """Like a member; a reciprocal like opens a conversation."""
    return await matches.like_user(current_user.id, like_data.to_user_id)


@router.post("/dislike", status_code=status.HTTP_201_CREATED, response_model=LikeResult)
async def dislike_user(
    like_data: LikeRequest,
    current_user: CurrentUserDep,
    matches: MatchServiceDep,
) -> LikeResult:
    """Pass on a member."""
    return await matches.dislike_user(current_user.id, like_data.to_user_id)
