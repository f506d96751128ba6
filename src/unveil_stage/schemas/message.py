# src/unveil_stage/schemas/message.py
"""Message-related Pydantic schemas."""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

from unveil_stage.models.message import MessageType


class TextMessageCreate(BaseModel):
    """Schema for sending a text message."""

    conversation_id: str = Field(..., min_length=1, description="Target conversation")
    content: str = Field(..., description="Message body (1-1000 characters once trimmed)")


class VoiceMessageCreate(BaseModel):
    """Schema for sending a voice message that was uploaded beforehand."""

    conversation_id: str = Field(..., min_length=1, description="Target conversation")
    audio_url: str = Field(..., description="URL returned by the upload collaborator")
    audio_duration: int = Field(..., description="Clip length in seconds")


class MessageOut(BaseModel):
    """Schema for message information returned by the API."""

    id: str
    conversation_id: str
    sender_id: str
    type: MessageType
    content: str | None = None
    audio_url: str | None = None
    audio_duration: int | None = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class TextMessageEnvelope(BaseModel):
    """Result of a text send: the message plus the conversation's new progression."""

    message: MessageOut
    text_message_count: int
    reveal_level: int
    chapter: int
    chapter_changed: bool
    system_message: MessageOut | None = Field(
        None,
        description="Chapter announcement, present only when chapter_changed is true",
    )
    chapter_unlocks: dict[int, datetime | None]


class MessagePage(BaseModel):
    """One page of history in ascending order plus the cursor for older messages."""

    messages: list[MessageOut]
    next_cursor: str | None = Field(
        None,
        description="Pass as `before` to fetch the next older page; null when exhausted",
    )
