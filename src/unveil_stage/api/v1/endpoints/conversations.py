# src/unveil_stage/api/v1/endpoints/conversations.py
"""Conversation read endpoints for the Unveil API."""

from __future__ import annotations

from fastapi import APIRouter, Query

from unveil_stage.api.v1.dependencies import CurrentUserDep, MessagingDep
from unveil_stage.schemas.conversation import ConversationView
from unveil_stage.schemas.message import MessagePage

router = APIRouter(prefix="/conversations", tags=["conversations"])


@router.get("/{conversation_id}", response_model=ConversationView)
async def get_conversation(
    conversation_id: str,
    current_user: CurrentUserDep,
    messaging: MessagingDep,
) -> ConversationView:
    """Return the conversation, its progression and both gated profiles."""
    return await messaging.get_conversation(conversation_id, current_user.id)


@router.get("/{conversation_id}/messages", response_model=MessagePage)
async def get_messages(
    conversation_id: str,
    current_user: CurrentUserDep,
    messaging: MessagingDep,
    limit: int | None = Query(None, description="Page size, clamped to 1..100"),
    before: str | None = Query(None, description="next_cursor of the previous page"),
    cursor: str | None = Query(None, include_in_schema=False),
) -> MessagePage:
    """Page through history from newest to oldest; each page is in ascending order."""
    return await messaging.get_messages(
        conversation_id,
        current_user.id,
        limit=limit,
        cursor=before if before is not None else cursor,
    )
