# src/unveil_stage/models/__init__.py
"""SQLAlchemy models for the Unveil application."""

from .conversation import Conversation, Match
from .like import Like
from .message import Message, MessageType
from .user import User

__all__ = [
    "Conversation", "Match",
    "Like",
    "Message", "MessageType",
    "User",
]
