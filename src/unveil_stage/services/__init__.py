# src/unveil_stage/services/__init__.py
"""Business logic services for the Unveil application."""

from .gate import ConversationGate
from .matches import MatchService
from .messaging import MessagingService

__all__ = [
    "ConversationGate",
    "MatchService",
    "MessagingService",
]
