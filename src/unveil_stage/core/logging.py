"""Logging configuration for the service process."""

from __future__ import annotations

import logging
from logging.config import dictConfig

from unveil_stage.core.settings import settings

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def setup_logging(level: str | None = None) -> None:
    """Configure root and package loggers once at startup.

    Args:
        level: Optional override for ``settings.log_level``.
    """
    resolved = (level or settings.log_level).upper()
    dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "formatters": {
                "default": {"format": LOG_FORMAT},
            },
            "handlers": {
                "console": {
                    "class": "logging.StreamHandler",
                    "formatter": "default",
                },
            },
            "loggers": {
                "unveil_stage": {
                    "handlers": ["console"],
                    "level": resolved,
                    "propagate": False,
                },
                "sqlalchemy.engine": {
                    "level": logging.INFO if settings.sql_debug else logging.WARNING,
                },
            },
            "root": {"handlers": ["console"], "level": logging.WARNING},
        }
    )
