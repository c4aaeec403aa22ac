"""Stale-session eviction, run once a day."""

from __future__ import annotations

import asyncio
import time
from typing import Callable

from portalbot.log import logger
from portalbot.sessions.store import SessionStore

_DAY_SECONDS = 24 * 60 * 60


class SessionReaper:
    """Removes sessions that are empty or idle past the retention window."""

    def __init__(self, store: SessionStore, interval_seconds: float = _DAY_SECONDS,
                 retention_days: float = 7, clock: Callable[[], float] = time.time) -> None:
        self._store = store
        self._interval = interval_seconds
        self._retention_ms = int(retention_days * _DAY_SECONDS * 1000)
        self._clock = clock
        self._task: asyncio.Task[None] | None = None
        self._running = False

    def sweep(self) -> int:
        """Evict stale sessions once. Returns how many were removed."""
        cutoff = int(self._clock() * 1000) - self._retention_ms
        removed = self._store.evict_stale(cutoff)
        logger.info(
            "Cleaned up old conversations (%d removed). Current count: %d",
            len(removed), len(self._store),
        )
        return len(removed)

    async def start(self) -> None:
        if self._running:
            return
        self._running = True
        self._task = asyncio.create_task(self._reap_loop())

    async def stop(self) -> None:
        self._running = False
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None

    async def _reap_loop(self) -> None:
        while self._running:
            await asyncio.sleep(self._interval)
            try:
                self.sweep()
            except Exception:
                logger.warning("Session reaper sweep failed", exc_info=True)
