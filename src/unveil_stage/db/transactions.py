"""Transaction runner with retry on row-lock contention."""

from __future__ import annotations

import logging
import random
import time
from collections.abc import Callable
from typing import TypeVar

from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session, sessionmaker

from unveil_stage.core.errors import GateTimeoutError, TransactionConflictError
from unveil_stage.core.settings import settings
from unveil_stage.db.session import SQLITE_BEGIN_OPTION

logger = logging.getLogger(__name__)

T = TypeVar("T")

# deadlock_detected, lock_not_available, serialization_failure
_RETRYABLE_SQLSTATES = frozenset({"40P01", "55P03", "40001"})
_RETRYABLE_MESSAGES = ("database is locked", "database table is locked", "deadlock", "lock wait timeout")
_MAX_BACKOFF_SECONDS = 2.0


def is_lock_contention(err: OperationalError) -> bool:
    """Return True when ``err`` is transient lock contention rather than a real fault."""
    sqlstate = getattr(err.orig, "sqlstate", None) or getattr(err.orig, "pgcode", None)
    if sqlstate in _RETRYABLE_SQLSTATES:
        return True
    text = str(err.orig).lower()
    return any(marker in text for marker in _RETRYABLE_MESSAGES)


def _backoff(attempt: int, base_delay: float) -> float:
    delay = min(base_delay * (2 ** attempt), _MAX_BACKOFF_SECONDS)
    return delay + random.uniform(0, 0.1 * delay)


def _expired(deadline: float | None) -> bool:
    return deadline is not None and time.monotonic() >= deadline


def run_transaction(
    session_factory: sessionmaker[Session],
    work: Callable[[Session], T],
    *,
    max_retries: int | None = None,
    base_delay: float | None = None,
    deadline: float | None = None,
) -> T:
    """Run ``work`` in a fresh session and commit it.

    The whole unit is re-executed from scratch when the database reports lock
    contention; a unit that committed is never run again. Any other error rolls
    the transaction back and propagates unchanged.

    Args:
        session_factory: Factory producing short-lived sessions.
        work: Callable doing the reads and writes; its result is returned.
        max_retries: Overrides ``settings.transaction_max_retries``.
        base_delay: Overrides ``settings.transaction_retry_base_delay``.
        deadline: ``time.monotonic`` instant after which the unit is rolled
            back instead of committed, and no further attempt is made.

    Raises:
        TransactionConflictError: If contention persists after all retries.
        GateTimeoutError: If ``deadline`` passed before the commit.
    """
    retries = settings.transaction_max_retries if max_retries is None else max_retries
    delay = settings.transaction_retry_base_delay if base_delay is None else base_delay

    attempt = 0
    while True:
        with session_factory() as db:
            try:
                db.connection(execution_options={SQLITE_BEGIN_OPTION: "IMMEDIATE"})
                result = work(db)
                if _expired(deadline):
                    raise GateTimeoutError()
                db.commit()
                return result
            except OperationalError as err:
                db.rollback()
                if not is_lock_contention(err):
                    raise
                if attempt >= retries:
                    logger.warning("Giving up after %d transaction retries: %s", attempt, err.orig)
                    raise TransactionConflictError() from err
                if _expired(deadline):
                    raise GateTimeoutError() from err
                logger.warning("Lock contention on attempt %d, retrying: %s", attempt + 1, err.orig)
            except Exception:
                db.rollback()
                raise
        time.sleep(_backoff(attempt, delay))
        attempt += 1
