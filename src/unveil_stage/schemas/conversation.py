# src/unveil_stage/schemas/conversation.py
"""Conversation and match Pydantic schemas."""

from datetime import datetime

from pydantic import BaseModel, Field


class ParticipantProfile(BaseModel):
    """Public profile of a participant after photo gating."""

    id: str
    name: str
    age: int | None = None
    gender: str | None = None
    city: str | None = None
    photo_url: str | None = None
    photo_hidden: bool = Field(..., description="True when the photo is withheld")


class ConversationView(BaseModel):
    """Conversation metadata and progression as seen by one participant."""

    id: str
    user1_id: str
    user2_id: str
    text_message_count: int
    reveal_level: int
    chapter: int
    chapter_label: str
    chapter_unlocks: dict[int, datetime | None]
    created_at: datetime
    updated_at: datetime
    me: ParticipantProfile
    other_user: ParticipantProfile


class ConversationSummary(BaseModel):
    """Progression summary attached to a match listing."""

    id: str
    text_message_count: int
    reveal_level: int
    updated_at: datetime


class MatchOut(BaseModel):
    """One of the requester's matches."""

    match_id: str
    user: ParticipantProfile
    conversation: ConversationSummary
    created_at: datetime
