# tests/services/test_messaging.py
"""Tests for the message append and pagination engine."""

import asyncio
import time

import pytest
from sqlalchemy import func, select
from sqlalchemy.orm import Session, sessionmaker

from unveil_stage.core.errors import (
    ConversationNotFoundError,
    GateTimeoutError,
    MessageValidationError,
    NotParticipantError,
)
from unveil_stage.core.settings import settings
from unveil_stage.models import Conversation, Message, MessageType, User
from unveil_stage.services.gate import ConversationGate
from unveil_stage.services.messaging import (
    MessagingService,
    format_cursor,
    next_message_timestamp,
    parse_cursor,
)


def _message_count(session_factory: sessionmaker[Session], conversation_id: str) -> int:
    with session_factory() as db:
        return db.execute(
            select(func.count(Message.id)).where(Message.conversation_id == conversation_id)
        ).scalar_one()


def _set_progress(session_factory: sessionmaker[Session], conversation_id: str, count: int, level: int) -> None:
    with session_factory() as db:
        stored = db.get(Conversation, conversation_id)
        stored.text_message_count = count
        stored.reveal_level = level
        db.commit()


@pytest.mark.asyncio
async def test_send_text_returns_progression(messaging: MessagingService, conversation: Conversation, alice: User) -> None:
    envelope = await messaging.send_text_message(conversation.id, alice.id, "  Hello Bob  ")

    assert envelope.message.content == "Hello Bob"
    assert envelope.message.type == MessageType.TEXT
    assert envelope.message.sender_id == alice.id
    assert envelope.text_message_count == 1
    assert envelope.reveal_level == 0
    assert envelope.chapter == 0
    assert envelope.chapter_changed is False
    assert envelope.system_message is None


@pytest.mark.asyncio
async def test_tenth_and_eleventh_messages(
    messaging: MessagingService,
    session_factory: sessionmaker[Session],
    conversation: Conversation,
    alice: User,
    bob: User,
) -> None:
    _set_progress(session_factory, conversation.id, 9, 0)

    tenth = await messaging.send_text_message(conversation.id, alice.id, "tenth")
    assert tenth.text_message_count == 10
    assert tenth.reveal_level == 1
    assert tenth.chapter_changed is True
    assert tenth.system_message is not None
    assert tenth.system_message.type == MessageType.SYSTEM
    assert tenth.system_message.content == "Chapter 1 - The beginning"
    assert tenth.system_message.id == f"{tenth.message.id}:chapter-1"
    assert tenth.system_message.created_at > tenth.message.created_at
    assert tenth.chapter_unlocks[1] == tenth.message.created_at

    eleventh = await messaging.send_text_message(conversation.id, bob.id, "eleventh")
    assert eleventh.text_message_count == 11
    assert eleventh.reveal_level == 1
    assert eleventh.chapter_changed is False
    assert eleventh.system_message is None
    assert eleventh.chapter_unlocks[1] == tenth.chapter_unlocks[1]


@pytest.mark.asyncio
async def test_eightieth_message_reveals(
    messaging: MessagingService,
    session_factory: sessionmaker[Session],
    conversation: Conversation,
    alice: User,
) -> None:
    _set_progress(session_factory, conversation.id, 79, 3)

    envelope = await messaging.send_text_message(conversation.id, alice.id, "eighty")
    assert envelope.reveal_level == 4
    assert envelope.chapter_changed is True
    assert envelope.system_message.content == "Chapter 4 - Reveal"


@pytest.mark.asyncio
async def test_system_message_is_persisted_and_paginated(
    messaging: MessagingService,
    session_factory: sessionmaker[Session],
    conversation: Conversation,
    alice: User,
) -> None:
    _set_progress(session_factory, conversation.id, 9, 0)
    envelope = await messaging.send_text_message(conversation.id, alice.id, "tenth")

    page = await messaging.get_messages(conversation.id, alice.id)
    assert [m.id for m in page.messages] == [envelope.message.id, envelope.system_message.id]


@pytest.mark.asyncio
async def test_voice_messages_do_not_count(
    messaging: MessagingService,
    session_factory: sessionmaker[Session],
    conversation: Conversation,
    bob: User,
) -> None:
    _set_progress(session_factory, conversation.id, 9, 0)

    voice = await messaging.send_voice_message(conversation.id, bob.id, "https://cdn.example.com/v.m4a", 12)
    assert voice.type == MessageType.VOICE
    assert voice.audio_duration == 12

    view = await messaging.get_conversation(conversation.id, bob.id)
    assert view.text_message_count == 9
    assert view.reveal_level == 0


@pytest.mark.asyncio
@pytest.mark.parametrize("content", ["", "   ", "x" * 1001])
async def test_invalid_text_is_rejected_before_writing(
    messaging: MessagingService,
    session_factory: sessionmaker[Session],
    conversation: Conversation,
    alice: User,
    content: str,
) -> None:
    with pytest.raises(MessageValidationError):
        await messaging.send_text_message(conversation.id, alice.id, content)
    assert _message_count(session_factory, conversation.id) == 0
    assert conversation.id not in messaging.gate


@pytest.mark.asyncio
async def test_max_length_text_is_accepted(messaging: MessagingService, conversation: Conversation, alice: User) -> None:
    envelope = await messaging.send_text_message(conversation.id, alice.id, "x" * 1000)
    assert len(envelope.message.content) == 1000


@pytest.mark.asyncio
@pytest.mark.parametrize(("url", "duration"), [("", 5), ("https://cdn.example.com/v.m4a", 0), ("https://cdn.example.com/v.m4a", -3)])
async def test_invalid_voice_is_rejected(
    messaging: MessagingService,
    session_factory: sessionmaker[Session],
    conversation: Conversation,
    alice: User,
    url: str,
    duration: int,
) -> None:
    with pytest.raises(MessageValidationError):
        await messaging.send_voice_message(conversation.id, alice.id, url, duration)
    assert _message_count(session_factory, conversation.id) == 0


@pytest.mark.asyncio
async def test_outsider_cannot_send_or_read(
    messaging: MessagingService,
    session_factory: sessionmaker[Session],
    conversation: Conversation,
    carol: User,
) -> None:
    with pytest.raises(NotParticipantError):
        await messaging.send_text_message(conversation.id, carol.id, "hi")
    with pytest.raises(NotParticipantError):
        await messaging.send_voice_message(conversation.id, carol.id, "https://cdn.example.com/v.m4a", 3)
    with pytest.raises(NotParticipantError):
        await messaging.get_messages(conversation.id, carol.id)
    with pytest.raises(NotParticipantError):
        await messaging.get_conversation(conversation.id, carol.id)

    assert _message_count(session_factory, conversation.id) == 0
    with session_factory() as db:
        assert db.get(Conversation, conversation.id).text_message_count == 0


@pytest.mark.asyncio
async def test_unknown_conversation(messaging: MessagingService, alice: User) -> None:
    with pytest.raises(ConversationNotFoundError):
        await messaging.send_text_message("missing", alice.id, "hi")
    with pytest.raises(ConversationNotFoundError):
        await messaging.get_messages("missing", alice.id)


@pytest.mark.asyncio
async def test_concurrent_sends_are_all_counted(
    messaging: MessagingService,
    session_factory: sessionmaker[Session],
    conversation: Conversation,
    alice: User,
    bob: User,
) -> None:
    senders = [alice, bob] * 6
    envelopes = await asyncio.gather(
        *(
            messaging.send_text_message(conversation.id, sender.id, f"message {index}")
            for index, sender in enumerate(senders)
        )
    )

    counts = sorted(envelope.text_message_count for envelope in envelopes)
    assert counts == list(range(1, 13))
    assert len({envelope.message.id for envelope in envelopes}) == 12
    # Exactly one of them crossed the first threshold.
    assert sum(envelope.chapter_changed for envelope in envelopes) == 1

    view = await messaging.get_conversation(conversation.id, alice.id)
    assert view.text_message_count == 12
    assert view.reveal_level == 1


@pytest.mark.asyncio
async def test_row_lock_serializes_writers_without_shared_gate(
    session_factory: sessionmaker[Session],
    conversation: Conversation,
    alice: User,
    bob: User,
) -> None:
    # Two services with their own gates behave like two server processes.
    first = MessagingService(session_factory, ConversationGate(min_interval=0))
    second = MessagingService(session_factory, ConversationGate(min_interval=0))

    await asyncio.gather(
        *(first.send_text_message(conversation.id, alice.id, f"a{index}") for index in range(5)),
        *(second.send_text_message(conversation.id, bob.id, f"b{index}") for index in range(5)),
    )

    view = await first.get_conversation(conversation.id, alice.id)
    assert view.text_message_count == 10
    assert view.reveal_level == 1
    # 10 TEXT rows plus the chapter announcement.
    assert _message_count(session_factory, conversation.id) == 11


@pytest.mark.asyncio
async def test_pagination_visits_every_message_once(
    messaging: MessagingService,
    session_factory: sessionmaker[Session],
    conversation: Conversation,
    alice: User,
    bob: User,
) -> None:
    sent_ids = []
    for index in range(23):
        sender = alice if index % 2 == 0 else bob
        envelope = await messaging.send_text_message(conversation.id, sender.id, f"m{index}")
        sent_ids.append(envelope.message.id)
        if envelope.system_message:
            sent_ids.append(envelope.system_message.id)

    collected: list[str] = []
    timestamps = []
    cursor = None
    pages = 0
    while True:
        page = await messaging.get_messages(conversation.id, alice.id, limit=5, cursor=cursor)
        pages += 1
        assert len(page.messages) <= 5
        # Each page is in ascending order and strictly older than the previous one.
        collected = [m.id for m in page.messages] + collected
        timestamps = [m.created_at for m in page.messages] + timestamps
        cursor = page.next_cursor
        if cursor is None:
            break

    assert collected == sent_ids
    assert len(set(collected)) == 24
    assert timestamps == sorted(timestamps)
    assert len(set(timestamps)) == len(timestamps)
    assert pages == 5


@pytest.mark.asyncio
async def test_exact_page_has_no_next_cursor(messaging: MessagingService, conversation: Conversation, alice: User) -> None:
    for index in range(3):
        await messaging.send_text_message(conversation.id, alice.id, f"m{index}")

    page = await messaging.get_messages(conversation.id, alice.id, limit=3)
    assert len(page.messages) == 3
    assert page.next_cursor is None


@pytest.mark.asyncio
async def test_empty_conversation_page(messaging: MessagingService, conversation: Conversation, alice: User) -> None:
    page = await messaging.get_messages(conversation.id, alice.id)
    assert page.messages == []
    assert page.next_cursor is None


@pytest.mark.asyncio
async def test_malformed_cursor_is_rejected(messaging: MessagingService, conversation: Conversation, alice: User) -> None:
    with pytest.raises(MessageValidationError):
        await messaging.get_messages(conversation.id, alice.id, cursor="not-a-timestamp")


def test_limit_is_clamped(messaging: MessagingService) -> None:
    assert messaging.clamp_limit(None) == 50
    assert messaging.clamp_limit(0) == 1
    assert messaging.clamp_limit(-5) == 1
    assert messaging.clamp_limit(20) == 20
    assert messaging.clamp_limit(1000) == 100


def test_cursor_round_trip_preserves_microseconds() -> None:
    stamp = parse_cursor("2026-01-02T03:04:05.000123+00:00")
    assert format_cursor(stamp) == "2026-01-02T03:04:05.000123Z"
    assert parse_cursor(format_cursor(stamp)) == stamp
    # Naive timestamps are read as UTC.
    assert parse_cursor("2026-01-02T03:04:05.000123") == stamp


def test_timestamps_strictly_increase(conversation: Conversation) -> None:
    first = next_message_timestamp(conversation)
    conversation.last_message_at = first
    second = next_message_timestamp(conversation, now=first)
    assert second > first


@pytest.mark.asyncio
async def test_get_conversation_gates_counterpart_photo(
    messaging: MessagingService,
    session_factory: sessionmaker[Session],
    conversation: Conversation,
    alice: User,
) -> None:
    view = await messaging.get_conversation(conversation.id, alice.id)
    assert view.me.id == alice.id
    assert view.me.photo_hidden is False
    assert view.me.photo_url == alice.photo_url
    assert view.other_user.photo_hidden is True
    assert view.other_user.photo_url is None
    assert view.chapter_label == "Chapter 0 - Locked"

    _set_progress(session_factory, conversation.id, 10, 1)
    view = await messaging.get_conversation(conversation.id, alice.id)
    assert view.other_user.photo_hidden is False
    assert view.other_user.photo_url == "https://cdn.example.com/bob.jpg"
    assert view.chapter_label == "Chapter 1 - The beginning"


@pytest.mark.asyncio
async def test_sends_are_published_after_commit(
    messaging: MessagingService,
    session_factory: sessionmaker[Session],
    conversation: Conversation,
    alice: User,
    mocker,
) -> None:
    seen_counts: list[int] = []

    async def publisher(conversation_id: str, event: str, payload: dict) -> None:
        # The message must already be visible to other sessions.
        seen_counts.append(_message_count(session_factory, conversation_id))

    spy = mocker.AsyncMock(side_effect=publisher)
    messaging.set_publisher(spy)

    envelope = await messaging.send_text_message(conversation.id, alice.id, "hello")
    await messaging.send_voice_message(conversation.id, alice.id, "https://cdn.example.com/v.m4a", 4)

    assert spy.await_count == 2
    first_call = spy.await_args_list[0]
    assert first_call.args[0] == conversation.id
    assert first_call.args[1] == "message:new"
    assert first_call.args[2]["message"]["id"] == envelope.message.id
    assert first_call.args[2]["text_message_count"] == 1
    assert seen_counts == [1, 2]


@pytest.mark.asyncio
async def test_failed_send_is_not_published(
    messaging: MessagingService,
    conversation: Conversation,
    carol: User,
    mocker,
) -> None:
    spy = mocker.AsyncMock()
    messaging.set_publisher(spy)
    with pytest.raises(NotParticipantError):
        await messaging.send_text_message(conversation.id, carol.id, "hi")
    spy.assert_not_awaited()


@pytest.mark.asyncio
async def test_list_matches(messaging: MessagingService, conversation: Conversation, alice: User, bob: User) -> None:
    matches = await messaging.list_matches(alice.id)
    assert len(matches) == 1
    assert matches[0].user.id == bob.id
    assert matches[0].user.photo_hidden is True
    assert matches[0].conversation.id == conversation.id
    assert matches[0].conversation.text_message_count == 0


@pytest.mark.asyncio
async def test_throttled_sends_complete_min_interval_apart(
    session_factory: sessionmaker[Session],
    conversation: Conversation,
    alice: User,
    bob: User,
) -> None:
    service = MessagingService(session_factory, ConversationGate(min_interval=0.1))
    finished: dict[str, float] = {}

    async def send(user: User, text: str) -> None:
        await service.send_text_message(conversation.id, user.id, text)
        finished[text] = time.monotonic()

    await asyncio.gather(send(alice, "first"), send(bob, "second"))

    assert finished["second"] - finished["first"] >= 0.1
    assert _message_count(session_factory, conversation.id) == 2


@pytest.mark.asyncio
async def test_send_past_gate_timeout_is_rolled_back_and_holds_gate(
    session_factory: sessionmaker[Session],
    conversation: Conversation,
    alice: User,
    mocker,
) -> None:
    gate = ConversationGate(min_interval=0, task_timeout=0.1)
    service = MessagingService(session_factory, gate)
    append_text = service._append_text
    spans: list[tuple[str, float, float]] = []

    def slow_append(db: Session, conversation_id: str, sender_id: str, body: str):
        started = time.monotonic()
        if body == "too slow":
            time.sleep(0.4)
        try:
            return append_text(db, conversation_id, sender_id, body)
        finally:
            spans.append((body, started, time.monotonic()))

    mocker.patch.object(service, "_append_text", side_effect=slow_append)

    async def follow_up():
        # Arrives after the gate has already given up on the slow send.
        await asyncio.sleep(0.2)
        return await service.send_text_message(conversation.id, alice.id, "next")

    slow, follow = await asyncio.gather(
        service.send_text_message(conversation.id, alice.id, "too slow"),
        follow_up(),
        return_exceptions=True,
    )

    assert isinstance(slow, GateTimeoutError)
    assert follow.text_message_count == 1
    assert follow.message.content == "next"
    (slow_body, _, slow_end), (next_body, next_start, _) = sorted(spans, key=lambda span: span[1])
    assert (slow_body, next_body) == ("too slow", "next")
    assert next_start >= slow_end
    assert _message_count(session_factory, conversation.id) == 1
    assert gate.pending(conversation.id) == 0


@pytest.mark.asyncio
async def test_send_committed_after_gate_timeout_reports_success(
    session_factory: sessionmaker[Session],
    conversation: Conversation,
    alice: User,
    mocker,
) -> None:
    gate = ConversationGate(min_interval=0, task_timeout=0.05)
    mocker.patch.object(gate, "deadline", return_value=None)
    service = MessagingService(session_factory, gate)
    append_text = service._append_text

    def slow_append(db: Session, *args):
        time.sleep(0.2)
        return append_text(db, *args)

    mocker.patch.object(service, "_append_text", side_effect=slow_append)
    publisher = mocker.AsyncMock()
    service.set_publisher(publisher)

    envelope = await service.send_text_message(conversation.id, alice.id, "made it")

    assert envelope.text_message_count == 1
    assert _message_count(session_factory, conversation.id) == 1
    publisher.assert_awaited_once()


@pytest.mark.asyncio
async def test_injected_config_thresholds_drive_progression(
    session_factory: sessionmaker[Session],
    conversation: Conversation,
    alice: User,
    bob: User,
) -> None:
    config = settings.model_copy(update={"reveal_thresholds": (1, 2, 3, 4)})
    service = MessagingService(session_factory, ConversationGate(min_interval=0), config=config)

    first = await service.send_text_message(conversation.id, alice.id, "one")
    second = await service.send_text_message(conversation.id, bob.id, "two")

    assert (first.reveal_level, first.chapter_changed) == (1, True)
    assert first.system_message is not None
    assert second.reveal_level == 2
