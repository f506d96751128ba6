"""Realtime fan-out: one room per conversation.

Rooms live in this process only. A connection sits in at most one room at a
time and only after the messaging service has confirmed it belongs to a
participant.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable, Mapping
from typing import TYPE_CHECKING, Any

from unveil_stage.core.errors import MessageValidationError, UnveilError
from unveil_stage.core.settings import settings
from unveil_stage.realtime.connections import ClientConnection
from unveil_stage.schemas.conversation import ConversationView

if TYPE_CHECKING:
    from unveil_stage.services.messaging import MessagingService

logger = logging.getLogger(__name__)

EVENT_JOIN = "join:conversation"
EVENT_JOINED = "conversation:joined"
EVENT_LEAVE = "leave:conversation"
EVENT_TYPING_START = "typing:start"
EVENT_TYPING_STOP = "typing:stop"
EVENT_TYPING_USER = "typing:user"
EVENT_MESSAGE_SEND = "message:send"
EVENT_ERROR = "error"


def _conversation_id(data: Mapping[str, Any]) -> str:
    raw = data.get("conversation_id") or data.get("conversationId") or ""
    return str(raw).strip()


class ConversationGateway:
    """Tracks connections per conversation room and delivers events to them."""

    def __init__(
        self,
        messaging: MessagingService,
        typing_interval: float | None = None,
        *,
        send_timeout: float | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.messaging = messaging
        self.typing_interval = settings.typing_min_interval if typing_interval is None else typing_interval
        self.send_timeout = settings.realtime_send_timeout_seconds if send_timeout is None else send_timeout
        self._clock = clock
        self._rooms: dict[str, set[ClientConnection]] = {}
        self._connections: dict[str, ClientConnection] = {}
        self._lock = asyncio.Lock()

    def room_members(self, conversation_id: str) -> set[ClientConnection]:
        """Return a snapshot of the connections in a room."""
        return set(self._rooms.get(conversation_id, ()))

    @property
    def connection_count(self) -> int:
        return len(self._connections)

    async def connect(self, connection: ClientConnection) -> None:
        async with self._lock:
            self._connections[connection.connection_id] = connection
        logger.info("Client %s connected (user %s)", connection.connection_id, connection.user_id)

    async def disconnect(self, connection: ClientConnection) -> None:
        """Forget ``connection`` and drop it from its room, if any."""
        async with self._lock:
            self._connections.pop(connection.connection_id, None)
            self._remove_from_room(connection)
        logger.info("Client %s disconnected (user %s)", connection.connection_id, connection.user_id)

    def _remove_from_room(self, connection: ClientConnection) -> None:
        room_id = connection.conversation_id
        connection.conversation_id = None
        if room_id is None:
            return
        members = self._rooms.get(room_id)
        if members is None:
            return
        members.discard(connection)
        if not members:
            del self._rooms[room_id]

    async def join(self, connection: ClientConnection, conversation_id: str) -> ConversationView:
        """Move ``connection`` into the room of ``conversation_id``.

        Raises:
            MessageValidationError: Blank conversation id.
            ConversationNotFoundError: Unknown conversation.
            NotParticipantError: The connection's user is not a participant.
        """
        conversation_id = conversation_id.strip()
        if not conversation_id:
            raise MessageValidationError("Invalid conversation")

        view = await self.messaging.get_conversation(conversation_id, connection.user_id)

        async with self._lock:
            self._remove_from_room(connection)
            self._rooms.setdefault(conversation_id, set()).add(connection)
            connection.conversation_id = conversation_id

        await connection.send(EVENT_JOINED, view.model_dump(mode="json"))
        logger.info("User %s joined conversation %s", connection.user_id, conversation_id)
        return view

    async def leave(self, connection: ClientConnection, conversation_id: str) -> None:
        conversation_id = conversation_id.strip()
        if not conversation_id or connection.conversation_id != conversation_id:
            return
        async with self._lock:
            self._remove_from_room(connection)
        logger.info("User %s left conversation %s", connection.user_id, conversation_id)

    async def publish(
        self,
        conversation_id: str,
        event: str,
        payload: Any,
        *,
        exclude: ClientConnection | None = None,
    ) -> int:
        """Send ``event`` once to every connection in the room.

        Connections whose send fails or does not finish within ``send_timeout``
        are dropped from the gateway; the event is not retried. Callers hold the
        conversation gate while publishing, so one stalled socket can delay a
        send by at most ``send_timeout``.

        Returns:
            Number of connections the event reached.
        """
        async with self._lock:
            targets = [conn for conn in self._rooms.get(conversation_id, ()) if conn is not exclude]

        if not targets:
            return 0

        results = await asyncio.gather(
            *(self._safe_send(conn, event, payload) for conn in targets)
        )
        dead = [conn for conn, ok in zip(targets, results) if not ok]
        if dead:
            async with self._lock:
                for conn in dead:
                    self._connections.pop(conn.connection_id, None)
                    self._remove_from_room(conn)
        return len(targets) - len(dead)

    async def _safe_send(self, connection: ClientConnection, event: str, payload: Any) -> bool:
        try:
            await asyncio.wait_for(connection.send(event, payload), self.send_timeout)
            return True
        except TimeoutError:
            logger.warning(
                "Dropping client %s: send did not finish within %.2fs",
                connection.connection_id,
                self.send_timeout,
            )
            return False
        except Exception as exc:
            logger.warning("Dropping client %s after failed send: %s", connection.connection_id, exc)
            return False

    async def typing(self, connection: ClientConnection, conversation_id: str, is_typing: bool) -> bool:
        """Relay a typing indicator to the rest of the room.

        Indicators are best effort: they are ignored unless the connection sits
        in that room and its previous indicator is older than the typing interval.

        Returns:
            True when the indicator was broadcast.
        """
        conversation_id = conversation_id.strip()
        if not conversation_id or connection.conversation_id != conversation_id:
            return False
        now = self._clock()
        if connection.last_typing_at is not None and now - connection.last_typing_at < self.typing_interval:
            return False
        connection.last_typing_at = now
        await self.publish(
            conversation_id,
            EVENT_TYPING_USER,
            {"conversation_id": conversation_id, "user_id": connection.user_id, "is_typing": is_typing},
            exclude=connection,
        )
        return True

    async def handle(self, connection: ClientConnection, frame: Any) -> None:
        """Dispatch one client frame; domain failures go back as an ``error`` event."""
        try:
            await self._dispatch(connection, frame)
        except UnveilError as err:
            await connection.send(EVENT_ERROR, err.to_payload())

    async def _dispatch(self, connection: ClientConnection, frame: Any) -> None:
        if not isinstance(frame, Mapping):
            raise MessageValidationError("Frames must be JSON objects")
        event = frame.get("event")
        data = frame.get("data") or {}
        if not isinstance(data, Mapping):
            raise MessageValidationError("Frame data must be a JSON object")

        if event == EVENT_JOIN:
            await self.join(connection, _conversation_id(data))
        elif event == EVENT_LEAVE:
            await self.leave(connection, _conversation_id(data))
        elif event in (EVENT_TYPING_START, EVENT_TYPING_STOP):
            await self.typing(connection, _conversation_id(data), event == EVENT_TYPING_START)
        elif event == EVENT_MESSAGE_SEND:
            await self.messaging.send_text_message(
                _conversation_id(data),
                connection.user_id,
                str(data.get("content") or ""),
            )
        else:
            raise MessageValidationError(f"Unknown event: {event}")
