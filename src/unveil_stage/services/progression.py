"""Conversation progression store.

The counters on a conversation row are advanced with a locked
read-modify-write inside the same transaction that inserts the message, so
concurrent writers (in this process or another) queue on the row lock and no
two of them can observe the same stale count.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass
from datetime import datetime

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from unveil_stage.core.errors import ConversationNotFoundError, NotParticipantError
from unveil_stage.db.time import utcnow
from unveil_stage.models import Conversation, Message, MessageType
from unveil_stage.models.conversation import CHAPTER_NUMBERS
from unveil_stage.services.reveal import compute_reveal_level

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ProgressionSnapshot:
    """Stored progression state of one conversation."""

    conversation_id: str
    text_message_count: int
    reveal_level: int
    chapter_unlocks: dict[int, datetime | None]

    @property
    def chapter(self) -> int:
        return self.reveal_level

    @classmethod
    def from_conversation(cls, conversation: Conversation) -> ProgressionSnapshot:
        return cls(
            conversation_id=conversation.id,
            text_message_count=conversation.text_message_count,
            reveal_level=conversation.reveal_level,
            chapter_unlocks=conversation.chapter_unlocks(),
        )


@dataclass(frozen=True)
class ProgressionUpdate(ProgressionSnapshot):
    """Progression after one TEXT message was counted."""

    previous_reveal_level: int
    chapter_changed: bool


def load_conversation(
    db: Session,
    conversation_id: str,
    user_id: str | None = None,
    *,
    for_update: bool = False,
) -> Conversation:
    """Fetch a conversation, optionally locking it and checking membership.

    Args:
        db: Session bound to the current transaction.
        conversation_id: Conversation to load.
        user_id: When given, must be one of the two participants.
        for_update: Take a row-level exclusive lock until the transaction ends.

    Raises:
        ConversationNotFoundError: If no such conversation exists.
        NotParticipantError: If ``user_id`` is not a participant.
    """
    stmt = select(Conversation).where(Conversation.id == conversation_id)
    if for_update:
        stmt = stmt.with_for_update()
    conversation = db.execute(stmt).scalar_one_or_none()
    if conversation is None:
        raise ConversationNotFoundError()
    if user_id is not None and not conversation.is_participant(user_id):
        raise NotParticipantError()
    return conversation


def advance_progression(
    db: Session,
    conversation_id: str,
    sender_id: str,
    message_created_at: datetime,
    *,
    thresholds: Sequence[int] | None = None,
) -> ProgressionUpdate:
    """Count one new TEXT message and ratchet the reveal state.

    Must run inside the transaction that inserted the message; the caller
    commits or rolls back. The stored level never decreases and each chapter
    timestamp keeps its first value.

    Args:
        db: Session bound to the message-insert transaction.
        conversation_id: Conversation receiving the message.
        sender_id: Author of the message; must be a participant.
        message_created_at: Timestamp of the message, used for first unlocks.
        thresholds: Reveal table to apply; the process-wide table when omitted.

    Raises:
        ConversationNotFoundError: If the conversation does not exist.
        NotParticipantError: If ``sender_id`` is not a participant.
    """
    conversation = load_conversation(db, conversation_id, sender_id, for_update=True)

    previous_level = conversation.reveal_level
    new_count = conversation.text_message_count + 1
    new_level = compute_reveal_level(new_count, thresholds)

    conversation.text_message_count = new_count
    conversation.reveal_level = max(previous_level, new_level)

    for chapter in CHAPTER_NUMBERS:
        if previous_level < chapter <= new_level and conversation.chapter_unlocked_at(chapter) is None:
            setattr(conversation, f"chapter{chapter}_unlocked_at", message_created_at)
            logger.info("Conversation %s unlocked chapter %d", conversation_id, chapter)

    db.flush()

    return ProgressionUpdate(
        conversation_id=conversation.id,
        text_message_count=conversation.text_message_count,
        reveal_level=conversation.reveal_level,
        chapter_unlocks=conversation.chapter_unlocks(),
        previous_reveal_level=previous_level,
        chapter_changed=new_level > previous_level,
    )


def get_progression(db: Session, conversation_id: str) -> ProgressionSnapshot:
    """Return the stored progression without recomputing or writing anything."""
    return ProgressionSnapshot.from_conversation(load_conversation(db, conversation_id))


def reconcile_progression(
    db: Session,
    conversation_id: str,
    now: datetime | None = None,
    *,
    thresholds: Sequence[int] | None = None,
) -> ProgressionSnapshot:
    """Repair a conversation whose counters fell behind its TEXT rows.

    Counts the persisted TEXT messages and moves the stored count, level and
    missing chapter timestamps up to match. Nothing is ever lowered, so a
    stale or partial recount cannot un-reveal a photo.
    """
    conversation = load_conversation(db, conversation_id, for_update=True)
    counted = db.execute(
        select(func.count(Message.id)).where(
            Message.conversation_id == conversation_id,
            Message.type == MessageType.TEXT,
        )
    ).scalar_one()

    stamp = now or utcnow()
    conversation.text_message_count = max(conversation.text_message_count, counted)
    conversation.reveal_level = max(
        conversation.reveal_level,
        compute_reveal_level(conversation.text_message_count, thresholds),
    )
    for chapter in CHAPTER_NUMBERS:
        if chapter <= conversation.reveal_level and conversation.chapter_unlocked_at(chapter) is None:
            setattr(conversation, f"chapter{chapter}_unlocked_at", stamp)

    db.flush()
    return ProgressionSnapshot.from_conversation(conversation)
