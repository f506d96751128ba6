"""Websocket endpoint for conversation rooms."""

from __future__ import annotations

import json
import logging

from fastapi import APIRouter, Query, WebSocket, WebSocketDisconnect, status

from unveil_stage.core.errors import MessageValidationError
from unveil_stage.core.security import InvalidTokenError, decode_access_token
from unveil_stage.realtime.connections import ClientConnection
from unveil_stage.realtime.gateway import EVENT_ERROR, ConversationGateway

logger = logging.getLogger(__name__)

router = APIRouter(tags=["realtime"])


@router.websocket("/ws")
async def conversation_socket(websocket: WebSocket, token: str | None = Query(None)) -> None:
    """Authenticate with ``?token=<jwt>`` and exchange ``{"event", "data"}`` frames."""
    try:
        user_id = decode_access_token(token or "")
    except InvalidTokenError:
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return

    gateway: ConversationGateway = websocket.app.state.gateway
    await websocket.accept()
    connection = ClientConnection(websocket, user_id)
    await gateway.connect(connection)
    try:
        while True:
            raw = await websocket.receive_text()
            try:
                frame = json.loads(raw)
            except json.JSONDecodeError:
                await connection.send(
                    EVENT_ERROR, MessageValidationError("Frames must be JSON").to_payload()
                )
                continue
            await gateway.handle(connection, frame)
    except WebSocketDisconnect:
        pass
    finally:
        await gateway.disconnect(connection)
