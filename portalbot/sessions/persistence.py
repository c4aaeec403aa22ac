"""Conversation persistence -- JSON snapshot of the session store.

Loads once at startup (best effort), saves on a fixed interval from an
asyncio task, and saves once more when stopped at shutdown.
"""

from __future__ import annotations

import asyncio
import json
import time
from pathlib import Path

from portalbot.log import logger
from portalbot.sessions.store import SessionStore

_DEFAULT_SAVE_INTERVAL = 300.0  # 5 minutes


class PersistenceManager:
    """Owns the on-disk copy of a SessionStore."""

    def __init__(self, store: SessionStore, path: str | Path,
                 interval_seconds: float = _DEFAULT_SAVE_INTERVAL) -> None:
        self._store = store
        self._path = Path(path)
        self._interval = interval_seconds
        self._task: asyncio.Task[None] | None = None
        self._running = False
        self.last_saved: float | None = None
        self.save_count = 0

    @property
    def path(self) -> Path:
        return self._path

    def load(self) -> int:
        """Hydrate the store from disk. Returns sessions loaded, 0 on any problem."""
        if not self._path.exists():
            logger.info("No conversation file at %s, starting empty", self._path)
            return 0
        try:
            with open(self._path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, ValueError):
            logger.warning("Could not read conversation file %s, starting empty", self._path, exc_info=True)
            return 0

        if not isinstance(data, dict):
            logger.warning("Conversation file %s is not an object, starting empty", self._path)
            return 0

        count = self._store.load_dict(data)
        logger.info("Loaded %d existing conversations", count)
        return count

    def save(self) -> bool:
        """Write the whole store to disk. Errors are logged, never raised."""
        try:
            payload = self._store.to_dict()
            self._path.parent.mkdir(parents=True, exist_ok=True)
            with open(self._path, "w", encoding="utf-8") as f:
                json.dump(payload, f, indent=2, ensure_ascii=False)
        except (OSError, TypeError, ValueError):
            logger.warning("Failed to save conversation history to %s", self._path, exc_info=True)
            return False
        self.last_saved = time.time()
        self.save_count += 1
        logger.debug("Conversation history saved (%d sessions)", len(payload))
        return True

    async def start(self) -> None:
        """Start the periodic save task. Idempotent."""
        if self._running:
            return
        self._running = True
        self._task = asyncio.create_task(self._save_loop())
        logger.info("Persistence started, saving every %.0fs to %s", self._interval, self._path)

    async def stop(self) -> None:
        """Cancel the periodic task and write a final snapshot."""
        self._running = False
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        self.save()
        logger.info("Persistence stopped")

    async def _save_loop(self) -> None:
        while self._running:
            await asyncio.sleep(self._interval)
            self.save()
