"""Session collector: periodic eviction of sessions older than a fixed lifetime."""

from __future__ import annotations

import asyncio
import logging
from datetime import timedelta
from typing import TYPE_CHECKING

from seance.clock import now
from seance.log_context import ctx_session_id, set_log_context

if TYPE_CHECKING:
    from seance.backend.base import SessionBackend

logger = logging.getLogger(__name__)


def _to_seconds(value: float | timedelta) -> float:
    if isinstance(value, timedelta):
        return value.total_seconds()
    return float(value)


class SessionCollectorHandle:
    """Sending end of the collector's single-slot shutdown channel."""

    def __init__(self, channel: asyncio.Queue[None]) -> None:
        self._channel = channel

    async def shutdown(self) -> None:
        """Ask the collector loop to stop at the start of its next cycle.

        A sweep already in progress runs to completion. Repeated calls are
        harmless: one pending signal is enough.
        """
        if not self._channel.full():
            self._channel.put_nowait(None)


class SessionCollector:
    """Removes whole sessions once ``now - created_at >= lifetime``.

    Works purely on session age and ignores per-key TTLs. Sessions created
    after a sweep has listed the backend are picked up on the next cycle.

    Run it either by awaiting `run()` in a task of your own and stopping it
    through a handle from `get_handle()`, or with `start()` / `stop()`.
    """

    def __init__(
        self,
        backend: SessionBackend,
        period: float | timedelta,
        lifetime: float | timedelta,
    ) -> None:
        self._backend = backend
        self._period = _to_seconds(period)
        self._lifetime = _to_seconds(lifetime)
        if self._period <= 0:
            msg = f"collector period must be positive, got {self._period}"
            raise ValueError(msg)
        if self._lifetime < 0:
            msg = f"session lifetime must not be negative, got {self._lifetime}"
            raise ValueError(msg)
        self._shutdown: asyncio.Queue[None] = asyncio.Queue(maxsize=1)
        self._task: asyncio.Task[None] | None = None

    @property
    def period(self) -> float:
        return self._period

    @property
    def lifetime(self) -> float:
        return self._lifetime

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def get_handle(self) -> SessionCollectorHandle:
        return SessionCollectorHandle(self._shutdown)

    async def start(self) -> None:
        """Spawn `run()` as a background task."""
        if self.running:
            return
        self._task = asyncio.create_task(self.run())
        self._task.add_done_callback(_log_task_crash)

    async def stop(self) -> None:
        """Signal shutdown and wait for the loop to notice it (no cancellation)."""
        task = self._task
        self._task = None
        if task is None or task.done():
            return
        await self.get_handle().shutdown()
        await task

    async def run(self) -> None:
        """Wait -> sweep -> repeat, until a shutdown signal is received.

        Ticks follow an interval timer: the first sweep happens immediately,
        later ones every ``period`` seconds measured from the previous tick.
        """
        set_log_context(operation="gc")
        loop = asyncio.get_running_loop()
        next_tick = loop.time()
        logger.info(
            "Session collector started (period=%.1fs, lifetime=%.1fs)",
            self._period,
            self._lifetime,
        )
        while True:
            if not self._shutdown.empty():
                self._shutdown.get_nowait()
                break
            if await self._wait_for_shutdown(next_tick - loop.time()):
                break
            next_tick = max(next_tick + self._period, loop.time())
            await self.collect()
        logger.info("Session collector stopped")

    async def _wait_for_shutdown(self, timeout: float) -> bool:
        """Sleep up to *timeout* seconds; True if a shutdown signal arrived."""
        if timeout <= 0:
            return False
        try:
            await asyncio.wait_for(self._shutdown.get(), timeout)
        except TimeoutError:
            return False
        return True

    async def collect(self) -> int:
        """Run one sweep and return the number of evicted sessions.

        Failures never propagate: a failed listing ends this sweep, a failure
        on one session skips that session.
        """
        try:
            session_ids = await self._backend.list_sessions()
            timestamp = now()
        except Exception:
            logger.exception("Session sweep failed (retrying next cycle)")
            return 0

        evicted = 0
        for session_id in sorted(session_ids):
            token = ctx_session_id.set(session_id)
            try:
                age = await self._backend.session_age(session_id)
                if age is None or timestamp - age < self._lifetime:
                    continue
                await self._backend.remove_session(session_id)
                evicted += 1
                logger.debug("Evicted session %s (age %ds)", session_id, timestamp - age)
            except Exception:
                logger.exception("Failed to collect session %s (skipping)", session_id)
            finally:
                ctx_session_id.reset(token)

        if evicted:
            logger.info("Session sweep evicted %d of %d session(s)", evicted, len(session_ids))
        else:
            logger.debug("Session sweep: nothing to evict (%d session(s))", len(session_ids))
        return evicted


def _log_task_crash(task: asyncio.Task[None]) -> None:
    """Log if the collector background task crashes unexpectedly."""
    if task.cancelled():
        return
    exc = task.exception()
    if exc is not None:
        logger.error("Session collector crashed: %s", exc, exc_info=exc)
