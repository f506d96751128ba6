# src/unveil_stage/api/v1/endpoints/messages.py
"""Message send endpoints for the Unveil API."""

from __future__ import annotations

from fastapi import APIRouter, status

from unveil_stage.api.v1.dependencies import CurrentUserDep, MessagingDep
from unveil_stage.schemas.message import (
    MessageOut,
    TextMessageCreate,
    TextMessageEnvelope,
    VoiceMessageCreate,
)

router = APIRouter(prefix="/messages", tags=["messages"])


@router.post("/text", status_code=status.HTTP_201_CREATED, response_model=TextMessageEnvelope)
async def send_text_message(
    message_data: TextMessageCreate,
    current_user: CurrentUserDep,
    messaging: MessagingDep,
) -> TextMessageEnvelope:
    """Send a text message and return the conversation's updated progression."""
    return await messaging.send_text_message(
        message_data.conversation_id,
        current_user.id,
        message_data.content,
    )


@router.post("/voice", status_code=status.HTTP_201_CREATED, response_model=MessageOut)
async def send_voice_message(
    message_data: VoiceMessageCreate,
    current_user: CurrentUserDep,
    messaging: MessagingDep,
) -> MessageOut:
    """Attach an uploaded voice clip to the conversation.

    Voice messages do not count towards the photo reveal.
    """
    return await messaging.send_voice_message(
        message_data.conversation_id,
        current_user.id,
        message_data.audio_url,
        message_data.audio_duration,
    )
