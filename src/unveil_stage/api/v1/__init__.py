# src/unveil_stage/api/v1/__init__.py
"""Version 1 API endpoints."""

from .endpoints import (
    conversations_router,
    discovery_router,
    matches_router,
    messages_router,
    realtime_router,
    system_router,
)

__all__ = [
    "conversations_router",
    "discovery_router",
    "matches_router",
    "messages_router",
    "realtime_router",
    "system_router",
]
