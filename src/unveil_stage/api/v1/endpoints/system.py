"""System endpoints for the Unveil API."""

from __future__ import annotations

import logging
import time

from fastapi import APIRouter, Request
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from unveil_stage.api.v1.dependencies import SessionDep
from unveil_stage.core.settings import settings
from unveil_stage.services.reveal import CHAPTER_LABELS

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/system", tags=["system"])


@router.get("/config")
async def get_public_config() -> dict[str, object]:
    """Return the public knobs clients need to render progression.

    Excludes secrets and connection strings.
    """
    return {
        "app": {
            "name": settings.app_name,
            "version": settings.app_version,
        },
        "reveal": {
            "thresholds": list(settings.reveal_thresholds),
            "chapters": CHAPTER_LABELS,
        },
        "messaging": {
            "max_text_length": settings.max_text_length,
            "page_default": settings.message_page_default,
            "page_max": settings.message_page_max,
            "send_min_interval_ms": settings.send_min_interval_ms,
            "typing_min_interval_ms": settings.typing_min_interval_ms,
        },
    }


@router.get("/health")
async def get_system_health(request: Request, db: SessionDep) -> dict[str, object]:
    """Health check covering the database and the realtime gateway.

    Args:
        request: Incoming request, used to reach application state
        db: Database session

    Returns:
        Dictionary with overall status, component health and version info
    """
    try:
        db.execute(text("SELECT 1"))
        db_status = "healthy"
    except SQLAlchemyError as e:
        logger.warning("Database health check failed: %s", e)
        db_status = f"unhealthy: {e}"

    gateway = getattr(request.app.state, "gateway", None)
    gate = getattr(request.app.state, "gate", None)

    return {
        "status": "healthy" if db_status == "healthy" else "unhealthy",
        "timestamp": int(time.time()),
        "components": {
            "database": db_status,
            "realtime_connections": gateway.connection_count if gateway else 0,
            "active_conversation_gates": len(gate) if gate else 0,
        },
        "version": settings.app_version,
    }
