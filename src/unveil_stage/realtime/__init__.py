"""Websocket fan-out for conversation rooms."""

from .connections import ClientConnection
from .gateway import ConversationGateway

__all__ = ["ClientConnection", "ConversationGateway"]
