# src/unveil_stage/main.py
"""Main entry point for the Unveil application."""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from sqlalchemy.orm import Session, sessionmaker

from unveil_stage.api.v1 import (
    conversations_router,
    discovery_router,
    matches_router,
    messages_router,
    realtime_router,
    system_router,
)
from unveil_stage.core.errors import UnveilError, unveil_exception_handler
from unveil_stage.core.logging import setup_logging
from unveil_stage.core.settings import settings
from unveil_stage.db.session import SessionLocal
from unveil_stage.realtime.gateway import ConversationGateway
from unveil_stage.services.gate import ConversationGate
from unveil_stage.services.matches import MatchService
from unveil_stage.services.messaging import MessagingService

logger = logging.getLogger(__name__)


def create_app(session_factory: sessionmaker[Session] | None = None) -> FastAPI:
    """Build the API application.

    Args:
        session_factory: Sessions used by the services; defaults to the
            configured ``SessionLocal``.
    """
    factory = session_factory or SessionLocal

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        setup_logging()
        # Locks bind to the serving loop, so the stateful services are built here.
        gate = ConversationGate(task_timeout=settings.gate_task_timeout_seconds)
        messaging = MessagingService(factory, gate)
        gateway = ConversationGateway(messaging)
        messaging.set_publisher(gateway.publish)

        app.state.gate = gate
        app.state.messaging = messaging
        app.state.matches = MatchService(factory)
        app.state.gateway = gateway
        logger.info("%s %s started", settings.app_name, settings.app_version)
        yield
        messaging.set_publisher(None)
        logger.info("%s stopped", settings.app_name)

    app = FastAPI(
        title="Unveil API",
        description="Text-first dating API with progressive photo reveal",
        version=settings.app_version,
        lifespan=lifespan,
    )

    # Add CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=settings.cors_allow_credentials,
        allow_methods=settings.cors_allow_methods,
        allow_headers=settings.cors_allow_headers,
    )

    # Add GZip middleware for compression
    app.add_middleware(GZipMiddleware)

    # Include API routers
    app.include_router(conversations_router, prefix="/api/v1")
    app.include_router(messages_router, prefix="/api/v1")
    app.include_router(discovery_router, prefix="/api/v1")
    app.include_router(matches_router, prefix="/api/v1")
    app.include_router(system_router, prefix="/api/v1")
    app.include_router(realtime_router)

    app.add_exception_handler(UnveilError, unveil_exception_handler)

    @app.get("/health")
    async def health_check() -> dict[str, str]:
        """Health check endpoint to verify the service is running."""
        return {"status": "ok"}

    @app.get("/")
    async def root() -> dict[str, str]:
        """Root endpoint with basic information about the API."""
        return {
            "name": "Unveil API",
            "version": settings.app_version,
            "description": "Text-first dating API with progressive photo reveal",
            "docs": "/docs",
            "redoc": "/redoc",
        }

    return app


app = create_app()

if __name__ == "__main__":
    import uvicorn
    uvicorn.run("unveil_stage.main:app", host="0.0.0.0", port=8000, reload=settings.debug)
