"""Websocket client wrapper used by the conversation gateway."""

from __future__ import annotations

import uuid
from typing import Any

from fastapi import WebSocket


class ClientConnection:
    """One authenticated websocket and the room it currently sits in."""

    def __init__(self, websocket: WebSocket, user_id: str, connection_id: str | None = None) -> None:
        self.websocket = websocket
        self.user_id = user_id
        self.connection_id = connection_id or uuid.uuid4().hex
        self.conversation_id: str | None = None
        self.last_typing_at: float | None = None

    def __repr__(self) -> str:
        return f"ClientConnection(id={self.connection_id!r}, user={self.user_id!r})"

    async def send(self, event: str, data: Any) -> None:
        """Send one ``{"event", "data"}`` frame."""
        await self.websocket.send_json({"event": event, "data": data})
