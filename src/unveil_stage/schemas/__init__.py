# src/unveil_stage/schemas/__init__.py
"""
Pydantic schemas for API request/response models.

These schemas define the structure of API data for serialization and validation.
"""

from .conversation import ConversationSummary, ConversationView, MatchOut, ParticipantProfile
from .discovery import LikeRequest, LikeResult
from .message import (
    MessageOut,
    MessagePage,
    TextMessageCreate,
    TextMessageEnvelope,
    VoiceMessageCreate,
)

__all__ = [
    "ConversationSummary", "ConversationView", "MatchOut", "ParticipantProfile",
    "LikeRequest", "LikeResult",
    "MessageOut", "MessagePage", "TextMessageCreate", "TextMessageEnvelope", "VoiceMessageCreate",
]
