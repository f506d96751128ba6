"""Message append and pagination engine.

Sends pass through the per-conversation gate and commit the message together
with its progression update in one transaction; the realtime publish happens
only after that commit. Reads bypass the gate.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from datetime import datetime
from typing import Any, TypeVar

from sqlalchemy import or_, select
from sqlalchemy.orm import Session, sessionmaker

from unveil_stage.core.errors import MessageValidationError
from unveil_stage.core.settings import Settings, settings
from unveil_stage.db.time import TIMESTAMP_RESOLUTION, ensure_utc, utcnow
from unveil_stage.db.transactions import run_transaction
from unveil_stage.models import Conversation, Match, Message, MessageType, User
from unveil_stage.models.user import new_id
from unveil_stage.schemas.conversation import (
    ConversationSummary,
    ConversationView,
    MatchOut,
    ParticipantProfile,
)
from unveil_stage.schemas.message import MessageOut, MessagePage, TextMessageEnvelope
from unveil_stage.services.gate import ConversationGate
from unveil_stage.services.progression import (
    ProgressionSnapshot,
    advance_progression,
    load_conversation,
)
from unveil_stage.services.reveal import apply_reveal, chapter_label

logger = logging.getLogger(__name__)

EVENT_MESSAGE_NEW = "message:new"

T = TypeVar("T")

Publisher = Callable[[str, str, dict[str, Any]], Awaitable[Any]]


def format_cursor(value: datetime) -> str:
    """Render a message timestamp as a pagination cursor (fixed-width ISO-8601, UTC)."""
    return ensure_utc(value).strftime("%Y-%m-%dT%H:%M:%S.%fZ")


def parse_cursor(value: str) -> datetime:
    """Parse a cursor back into an aware UTC datetime.

    Raises:
        MessageValidationError: If ``value`` is not an ISO-8601 timestamp.
    """
    try:
        parsed = datetime.fromisoformat(value.strip())
    except (TypeError, ValueError) as err:
        raise MessageValidationError("Invalid cursor") from err
    return ensure_utc(parsed)


def next_message_timestamp(conversation: Conversation, now: datetime | None = None) -> datetime:
    """Return a timestamp strictly after the newest message of ``conversation``.

    The caller must hold the conversation row lock and record the value in
    ``last_message_at`` before committing.
    """
    stamp = ensure_utc(now or utcnow())
    last = conversation.last_message_at
    if last is not None and stamp <= last:
        stamp = last + TIMESTAMP_RESOLUTION
    return stamp


def _profile(user: User, reveal_level: int, *, is_self: bool) -> ParticipantProfile:
    return ParticipantProfile(**apply_reveal(user.public_profile(), reveal_level, is_self=is_self))


class MessagingService:
    """Creates and reads conversation messages."""

    def __init__(
        self,
        session_factory: sessionmaker[Session],
        gate: ConversationGate,
        publisher: Publisher | None = None,
        *,
        config: Settings = settings,
    ) -> None:
        self.session_factory = session_factory
        self.gate = gate
        self.publisher = publisher
        self.config = config

    def set_publisher(self, publisher: Publisher | None) -> None:
        """Attach the realtime fan-out used after successful sends."""
        self.publisher = publisher

    # ------------------------------------------------------------------ sends

    async def send_text_message(
        self,
        conversation_id: str,
        sender_id: str,
        content: str,
    ) -> TextMessageEnvelope:
        """Append a TEXT message and advance the conversation's progression.

        Args:
            conversation_id: Target conversation.
            sender_id: Author; must be a participant.
            content: Message body, trimmed before validation and storage.

        Returns:
            The stored message with the progression it produced. When the
            message crossed a reveal threshold the envelope also carries the
            persisted SYSTEM chapter announcement.

        Raises:
            MessageValidationError: Empty or over-long content (nothing is written).
            ConversationNotFoundError: Unknown conversation.
            NotParticipantError: Sender is not a participant.
        """
        body = (content or "").strip()
        if not body:
            raise MessageValidationError("Message content cannot be empty")
        if len(body) > self.config.max_text_length:
            raise MessageValidationError(
                f"Message content exceeds {self.config.max_text_length} characters"
            )

        async def task() -> TextMessageEnvelope:
            envelope = await self._commit(
                lambda db: self._append_text(db, conversation_id, sender_id, body)
            )
            await self._publish(conversation_id, envelope.model_dump(mode="json"))
            return envelope

        return await self.gate.run_exclusive(conversation_id, task)

    def _append_text(
        self,
        db: Session,
        conversation_id: str,
        sender_id: str,
        body: str,
    ) -> TextMessageEnvelope:
        conversation = load_conversation(db, conversation_id, sender_id, for_update=True)
        created_at = next_message_timestamp(conversation)

        message = Message(
            id=new_id(),
            conversation_id=conversation_id,
            sender_id=sender_id,
            type=MessageType.TEXT,
            content=body,
            created_at=created_at,
        )
        db.add(message)
        update = advance_progression(
            db,
            conversation_id,
            sender_id,
            created_at,
            thresholds=self.config.reveal_thresholds,
        )

        system_message = None
        newest = created_at
        if update.chapter_changed:
            newest = created_at + TIMESTAMP_RESOLUTION
            system_message = Message(
                id=f"{message.id}:chapter-{update.reveal_level}",
                conversation_id=conversation_id,
                sender_id=sender_id,
                type=MessageType.SYSTEM,
                content=chapter_label(update.reveal_level),
                created_at=newest,
            )
            db.add(system_message)

        conversation.last_message_at = newest
        db.flush()
        logger.info(
            "Stored text message %s in %s (count=%d, level=%d)",
            message.id,
            conversation_id,
            update.text_message_count,
            update.reveal_level,
        )

        return TextMessageEnvelope(
            message=MessageOut.model_validate(message),
            text_message_count=update.text_message_count,
            reveal_level=update.reveal_level,
            chapter=update.chapter,
            chapter_changed=update.chapter_changed,
            system_message=MessageOut.model_validate(system_message) if system_message else None,
            chapter_unlocks=update.chapter_unlocks,
        )

    async def send_voice_message(
        self,
        conversation_id: str,
        sender_id: str,
        audio_url: str,
        audio_duration: int,
    ) -> MessageOut:
        """Append a VOICE message; the text-message count is left untouched.

        Raises:
            MessageValidationError: Missing URL or non-positive duration.
            ConversationNotFoundError: Unknown conversation.
            NotParticipantError: Sender is not a participant.
        """
        url = (audio_url or "").strip()
        if not url:
            raise MessageValidationError("Audio URL is required")
        if isinstance(audio_duration, bool) or not isinstance(audio_duration, int) or audio_duration <= 0:
            raise MessageValidationError("Audio duration must be a positive number of seconds")

        async def task() -> MessageOut:
            message = await self._commit(
                lambda db: self._append_voice(db, conversation_id, sender_id, url, audio_duration)
            )
            await self._publish(conversation_id, {"message": message.model_dump(mode="json")})
            return message

        return await self.gate.run_exclusive(conversation_id, task)

    def _append_voice(
        self,
        db: Session,
        conversation_id: str,
        sender_id: str,
        audio_url: str,
        audio_duration: int,
    ) -> MessageOut:
        conversation = load_conversation(db, conversation_id, sender_id, for_update=True)
        created_at = next_message_timestamp(conversation)
        message = Message(
            id=new_id(),
            conversation_id=conversation_id,
            sender_id=sender_id,
            type=MessageType.VOICE,
            audio_url=audio_url,
            audio_duration=audio_duration,
            created_at=created_at,
        )
        db.add(message)
        conversation.last_message_at = created_at
        db.flush()
        logger.info("Stored voice message %s in %s", message.id, conversation_id)
        return MessageOut.model_validate(message)

    async def _commit(self, work: Callable[[Session], T]) -> T:
        """Run ``work`` in a worker-thread transaction bounded by the gate's deadline.

        A database thread cannot be interrupted, so if the gate gives up on the
        calling task this still waits for the thread to settle and reports what
        it actually did: the committed result, or the error that rolled it back.
        """
        worker = asyncio.ensure_future(
            asyncio.to_thread(
                run_transaction,
                self.session_factory,
                work,
                deadline=self.gate.deadline(),
            )
        )
        try:
            return await asyncio.shield(worker)
        except asyncio.CancelledError:
            await asyncio.wait([worker])
            result = worker.result()
            logger.warning("Send outlived the gate timeout but was committed")
            return result

    async def _publish(self, conversation_id: str, payload: dict[str, Any]) -> None:
        if self.publisher is None:
            return
        delivery = asyncio.ensure_future(self.publisher(conversation_id, EVENT_MESSAGE_NEW, payload))
        try:
            await asyncio.shield(delivery)
        except asyncio.CancelledError:
            # The message is already committed; the fan-out is bounded by the
            # gateway send timeout, so let it finish before the gate reopens.
            await asyncio.wait([delivery])
            if not delivery.cancelled() and delivery.exception() is not None:
                logger.warning("Publishing to %s failed: %s", conversation_id, delivery.exception())

    # ------------------------------------------------------------------ reads

    async def get_messages(
        self,
        conversation_id: str,
        requester_id: str,
        limit: int | None = None,
        cursor: str | None = None,
    ) -> MessagePage:
        """Return one page of history older than ``cursor``, oldest first.

        Args:
            conversation_id: Conversation to read.
            requester_id: Must be a participant.
            limit: Page size, clamped to ``[1, message_page_max]``.
            cursor: ``next_cursor`` from the previous page; omitted for the newest page.

        Raises:
            MessageValidationError: Malformed cursor.
            ConversationNotFoundError: Unknown conversation.
            NotParticipantError: Requester is not a participant.
        """
        page_size = self.clamp_limit(limit)
        before = parse_cursor(cursor) if cursor else None
        return await asyncio.to_thread(
            self._read_messages, conversation_id, requester_id, page_size, before
        )

    def clamp_limit(self, limit: int | None) -> int:
        if limit is None:
            return self.config.message_page_default
        return max(1, min(self.config.message_page_max, limit))

    def _read_messages(
        self,
        conversation_id: str,
        requester_id: str,
        page_size: int,
        before: datetime | None,
    ) -> MessagePage:
        with self.session_factory() as db:
            load_conversation(db, conversation_id, requester_id)
            stmt = select(Message).where(Message.conversation_id == conversation_id)
            if before is not None:
                stmt = stmt.where(Message.created_at < before)
            stmt = stmt.order_by(Message.created_at.desc(), Message.id.desc()).limit(page_size + 1)
            rows = list(db.execute(stmt).scalars())

        has_more = len(rows) > page_size
        page = rows[:page_size]
        page.reverse()
        next_cursor = format_cursor(page[0].created_at) if has_more and page else None
        return MessagePage(
            messages=[MessageOut.model_validate(row) for row in page],
            next_cursor=next_cursor,
        )

    async def get_conversation(self, conversation_id: str, requester_id: str) -> ConversationView:
        """Return conversation metadata, progression and both gated profiles.

        Raises:
            ConversationNotFoundError: Unknown conversation.
            NotParticipantError: Requester is not a participant.
        """
        return await asyncio.to_thread(self._read_conversation, conversation_id, requester_id)

    def _read_conversation(self, conversation_id: str, requester_id: str) -> ConversationView:
        with self.session_factory() as db:
            conversation = load_conversation(db, conversation_id, requester_id)
            progression = ProgressionSnapshot.from_conversation(conversation)
            me, other = (
                (conversation.user1, conversation.user2)
                if conversation.user1_id == requester_id
                else (conversation.user2, conversation.user1)
            )
            level = progression.reveal_level
            return ConversationView(
                id=conversation.id,
                user1_id=conversation.user1_id,
                user2_id=conversation.user2_id,
                text_message_count=progression.text_message_count,
                reveal_level=level,
                chapter=progression.chapter,
                chapter_label=chapter_label(level),
                chapter_unlocks=progression.chapter_unlocks,
                created_at=conversation.created_at,
                updated_at=conversation.updated_at,
                me=_profile(me, level, is_self=True),
                other_user=_profile(other, level, is_self=False),
            )

    async def list_matches(self, user_id: str) -> list[MatchOut]:
        """Return the user's matches, newest first, with gated counterpart profiles."""
        return await asyncio.to_thread(self._read_matches, user_id)

    def _read_matches(self, user_id: str) -> list[MatchOut]:
        with self.session_factory() as db:
            stmt = (
                select(Match)
                .where(or_(Match.user1_id == user_id, Match.user2_id == user_id))
                .order_by(Match.created_at.desc())
            )
            results = []
            for match in db.execute(stmt).scalars():
                conversation = match.conversation
                other_id = conversation.other_participant_id(user_id)
                other = db.get(User, other_id)
                if other is None:
                    continue
                results.append(
                    MatchOut(
                        match_id=match.id,
                        user=_profile(other, conversation.reveal_level, is_self=False),
                        conversation=ConversationSummary(
                            id=conversation.id,
                            text_message_count=conversation.text_message_count,
                            reveal_level=conversation.reveal_level,
                            updated_at=conversation.updated_at,
                        ),
                        created_at=match.created_at,
                    )
                )
            return results
