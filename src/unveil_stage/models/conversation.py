# src/unveil_stage/models/conversation.py
"""Models for matched pairs and their conversations."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import CheckConstraint, ForeignKey, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from unveil_stage.db.session import Base
from unveil_stage.db.time import UTCDateTime, utcnow
from unveil_stage.models.user import User, new_id

CHAPTER_NUMBERS = (1, 2, 3, 4)


def canonical_pair(user_a: str, user_b: str) -> tuple[str, str]:
    """Order two user ids so the same pair always maps to one row."""
    return (user_a, user_b) if user_a < user_b else (user_b, user_a)


class Conversation(Base):
    """Per-match conversation and its reveal progression counters.

    ``text_message_count`` and ``reveal_level`` only ever grow; each
    ``chapterN_unlocked_at`` is written once, the first time the level reaches N.
    """

    __tablename__ = "conversation"
    __table_args__ = (
        UniqueConstraint("user1_id", "user2_id", name="uq_conversation_pair"),
        CheckConstraint("user1_id < user2_id", name="ck_conversation_pair_order"),
        CheckConstraint("reveal_level BETWEEN 0 AND 4", name="ck_conversation_reveal_level"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    user1_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("user_profile.id", ondelete="CASCADE"), nullable=False
    )
    user2_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("user_profile.id", ondelete="CASCADE"), nullable=False
    )

    text_message_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    reveal_level: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    chapter1_unlocked_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)
    chapter2_unlocked_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)
    chapter3_unlocked_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)
    chapter4_unlocked_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)

    # Newest message timestamp; new rows are stamped strictly after it.
    last_message_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)

    created_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime(), nullable=False, default=utcnow, onupdate=utcnow
    )

    user1: Mapped[User] = relationship("User", foreign_keys=[user1_id])
    user2: Mapped[User] = relationship("User", foreign_keys=[user2_id])

    @property
    def participant_ids(self) -> tuple[str, str]:
        return (self.user1_id, self.user2_id)

    def is_participant(self, user_id: str) -> bool:
        return user_id in self.participant_ids

    def other_participant_id(self, user_id: str) -> str:
        """Return the id of the participant who is not ``user_id``."""
        return self.user2_id if user_id == self.user1_id else self.user1_id

    def chapter_unlocked_at(self, chapter: int) -> datetime | None:
        return getattr(self, f"chapter{chapter}_unlocked_at")

    def chapter_unlocks(self) -> dict[int, datetime | None]:
        return {chapter: self.chapter_unlocked_at(chapter) for chapter in CHAPTER_NUMBERS}


class Match(Base):
    """Reciprocal like between two members, created with its conversation."""

    __tablename__ = "user_match"
    __table_args__ = (
        UniqueConstraint("user1_id", "user2_id", name="uq_match_pair"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    user1_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("user_profile.id", ondelete="CASCADE"), nullable=False
    )
    user2_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("user_profile.id", ondelete="CASCADE"), nullable=False
    )
    conversation_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("conversation.id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
    )
    created_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False, default=utcnow)

    conversation: Mapped[Conversation] = relationship("Conversation")
