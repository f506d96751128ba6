"""Per-conversation serialization gate.

At most one mutating task per conversation id runs at a time inside this
process, waiters are admitted in FIFO order, and successive sends into the
same conversation are spaced by a minimum interval. Row locks in the database
still guard against writers in other processes.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable
from typing import TypeVar

from unveil_stage.core.errors import GateTimeoutError
from unveil_stage.core.settings import settings

logger = logging.getLogger(__name__)

T = TypeVar("T")


class _GateEntry:
    """Lock, waiter count and last activity for one conversation id."""

    __slots__ = ("lock", "pending", "last_sent_at")

    def __init__(self) -> None:
        self.lock = asyncio.Lock()
        self.pending = 0
        self.last_sent_at: float | None = None


class ConversationGate:
    """FIFO mutex plus send throttle keyed by conversation id.

    Entries with no queued work are dropped once they have been idle for
    ``idle_ttl`` seconds, so the map only holds recently active conversations.
    """

    def __init__(
        self,
        min_interval: float | None = None,
        *,
        idle_ttl: float | None = None,
        task_timeout: float | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """Initialize the gate.

        Args:
            min_interval: Seconds between two sends into one conversation.
            idle_ttl: Seconds an idle entry is kept before eviction.
            task_timeout: Optional upper bound on a single gated task.
            clock: Monotonic clock, injectable for tests.
        """
        self.min_interval = settings.send_min_interval if min_interval is None else min_interval
        self.idle_ttl = settings.gate_idle_ttl_seconds if idle_ttl is None else idle_ttl
        self.task_timeout = task_timeout
        self._clock = clock
        self._entries: dict[str, _GateEntry] = {}
        self._last_prune = clock()

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, conversation_id: object) -> bool:
        return conversation_id in self._entries

    def pending(self, conversation_id: str) -> int:
        """Return how many tasks are running or queued for ``conversation_id``."""
        entry = self._entries.get(conversation_id)
        return entry.pending if entry else 0

    async def run_exclusive(self, conversation_id: str, task: Callable[[], Awaitable[T]]) -> T:
        """Run ``task`` once every earlier task for ``conversation_id`` has finished.

        Args:
            conversation_id: Serialization key.
            task: Zero-argument coroutine factory, invoked only after admission.

        Returns:
            Whatever ``task`` returns.

        Raises:
            GateTimeoutError: If ``task_timeout`` is set and the task gave up
                after exceeding it. A task that finished its work anyway
                returns normally.
            Exception: Anything raised by ``task``, after the gate is released.
        """
        self._maybe_prune()
        entry = self._entries.get(conversation_id)
        if entry is None:
            entry = self._entries[conversation_id] = _GateEntry()

        entry.pending += 1
        try:
            async with entry.lock:
                await self._throttle(conversation_id, entry)
                entry.last_sent_at = self._clock()
                try:
                    return await self._run(task)
                finally:
                    entry.last_sent_at = self._clock()
        finally:
            entry.pending -= 1

    def deadline(self) -> float | None:
        """Return the ``time.monotonic`` instant a task admitted now must finish by.

        Tasks that hand work to a thread should pass this down so the work
        itself gives up before committing; ``None`` means no bound.
        """
        if self.task_timeout is None:
            return None
        return time.monotonic() + self.task_timeout

    async def _run(self, task: Callable[[], Awaitable[T]]) -> T:
        if self.task_timeout is None:
            return await task()
        future = asyncio.ensure_future(task())
        try:
            return await asyncio.wait_for(asyncio.shield(future), self.task_timeout)
        except TimeoutError:
            future.cancel()
        except asyncio.CancelledError:
            future.cancel()
            await asyncio.wait([future])
            raise
        # The gate stays held until the task has settled; a task that shields
        # committed work may still return its result here.
        try:
            return await future
        except asyncio.CancelledError as err:
            raise GateTimeoutError() from err

    async def _throttle(self, conversation_id: str, entry: _GateEntry) -> None:
        if entry.last_sent_at is None or self.min_interval <= 0:
            return
        wait = entry.last_sent_at + self.min_interval - self._clock()
        if wait > 0:
            logger.debug("Throttling send to %s for %.3fs", conversation_id, wait)
            await asyncio.sleep(wait)

    def prune(self) -> int:
        """Drop idle entries and return how many were removed."""
        now = self._clock()
        horizon = max(self.idle_ttl, self.min_interval)
        stale = [
            key
            for key, entry in self._entries.items()
            if entry.pending == 0
            and (entry.last_sent_at is None or now - entry.last_sent_at >= horizon)
        ]
        for key in stale:
            del self._entries[key]
        self._last_prune = now
        return len(stale)

    def _maybe_prune(self) -> None:
        if self._clock() - self._last_prune >= self.idle_ttl:
            removed = self.prune()
            if removed:
                logger.debug("Evicted %d idle gate entries", removed)
