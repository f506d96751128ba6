# src/unveil_stage/models/message.py
"""Conversation message model."""

from __future__ import annotations

import enum
from datetime import datetime

from sqlalchemy import CheckConstraint, Enum, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from unveil_stage.db.session import Base
from unveil_stage.db.time import UTCDateTime, utcnow
from unveil_stage.models.user import new_id


class MessageType(str, enum.Enum):
    """Discriminator for message payloads."""

    TEXT = "TEXT"
    VOICE = "VOICE"
    SYSTEM = "SYSTEM"


class Message(Base):
    """A single entry in a conversation.

    ``created_at`` is the pagination key and is strictly increasing within a
    conversation. Only TEXT rows advance the reveal progression.
    """

    __tablename__ = "message"
    __table_args__ = (
        Index("ix_message_conversation_created", "conversation_id", "created_at"),
        CheckConstraint(
            "(type = 'VOICE' AND audio_url IS NOT NULL AND audio_duration > 0)"
            " OR (type != 'VOICE' AND content IS NOT NULL)",
            name="ck_message_payload",
        ),
    )

    id: Mapped[str] = mapped_column(String(80), primary_key=True, default=new_id)
    conversation_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("conversation.id", ondelete="CASCADE"),
        nullable=False,
    )
    sender_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("user_profile.id", ondelete="CASCADE"),
        nullable=False,
    )
    type: Mapped[MessageType] = mapped_column(
        Enum(MessageType, native_enum=False, length=16, name="message_type"),
        nullable=False,
    )
    content: Mapped[str | None] = mapped_column(Text, nullable=True)
    audio_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    audio_duration: Mapped[int | None] = mapped_column(Integer, nullable=True)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False, default=utcnow)
