"""Connection handler -- binds a live channel to a session and answers messages.

Inbound events: send_message, clear_conversation, disconnect.
Outbound events: bot_typing, receive_message, conversation_cleared.

Duplicate suppression and the user-message append happen synchronously
when a message arrives; the reply (thinking delay, resolution, append,
emit) runs afterwards and is serialised per session so replies go out in
arrival order. Other sessions are never blocked by the delay.
A clear discards any reply still pending for the history it emptied.
"""

from __future__ import annotations

import asyncio
import random
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable

from portalbot.intelligence.fallback import hard_fallback
from portalbot.intelligence.resolver import QueryResolver
from portalbot.intelligence.topics import SessionContext
from portalbot.knowledge.base import welcome_message
from portalbot.log import logger
from portalbot.sessions.store import ROLE_ASSISTANT, ROLE_USER, Message, SessionStore

Emitter = Callable[[str, Any], Awaitable[None]]


def _as_bool(value) -> bool:
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() == "true"


def _iso_now() -> str:
    return datetime.now(timezone.utc).isoformat()


class Connection:
    """One live channel and the session context it carries."""

    def __init__(self, connection_id: str, session: SessionContext, emit: Emitter) -> None:
        self.id = connection_id
        self.session = session
        self._emit = emit
        self.connected = True

    @property
    def session_id(self) -> str:
        return self.session.session_id

    async def emit(self, event: str, data: Any = None) -> None:
        """Send an event to this connection only. A closed channel is a no-op."""
        try:
            await self._emit(event, data)
        except Exception:
            logger.debug("Emit %s to connection %s failed (channel closed?)", event, self.id, exc_info=True)


class ConnectionHandler:
    """Dispatches channel events to the session store and query resolver."""

    def __init__(
        self,
        store: SessionStore,
        resolver: QueryResolver,
        rng: random.Random | None = None,
        min_delay: float = 0.3,
        max_delay: float = 1.5,
        duplicate_window: float = 3.0,
        welcome_delay: float = 0.5,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        if max_delay < min_delay:
            raise ValueError("max_delay must be >= min_delay")
        self._store = store
        self._resolver = resolver
        self._rng = rng or random.Random()
        self._min_delay = min_delay
        self._max_delay = max_delay
        self._duplicate_window_ms = int(duplicate_window * 1000)
        self._welcome_delay = welcome_delay
        self._sleep = sleep
        self._locks: dict[str, asyncio.Lock] = {}
        self._pending: set[asyncio.Task] = set()
        self.connections: dict[str, Connection] = {}

    # -----------------------------------------------------------------------
    # Lifecycle
    # -----------------------------------------------------------------------

    def connect(self, connection_id: str, metadata: dict | None, emit: Emitter) -> Connection:
        """Register a connection; its session is created if it doesn't exist."""
        metadata = metadata or {}
        session = SessionContext(
            session_id=str(metadata.get("sessionId") or connection_id),
            username=metadata.get("username") or None,
            is_logged_in=_as_bool(metadata.get("isLoggedIn", False)),
            user_role=metadata.get("userRole") or None,
        )
        conn = Connection(connection_id, session, emit)
        self._store.ensure(session.session_id)
        self.connections[connection_id] = conn
        logger.info("A user connected: %s (session %s)", connection_id, session.session_id)
        return conn

    def disconnect(self, conn: Connection) -> None:
        """Forget the channel. The session stays until the reaper removes it."""
        conn.connected = False
        self.connections.pop(conn.id, None)
        logger.info("User disconnected: %s", conn.id)

    # -----------------------------------------------------------------------
    # Messages
    # -----------------------------------------------------------------------

    def thinking_delay(self) -> float:
        """Random pause in [min_delay, max_delay)."""
        return self._min_delay + self._rng.random() * (self._max_delay - self._min_delay)

    def submit(self, conn: Connection, payload: dict) -> asyncio.Task | None:
        """Accept a message now and schedule its reply. None if it was dropped."""
        accepted = self._accept(conn, payload)
        if accepted is None:
            return None
        return self.spawn(self._reply(conn, *accepted))

    async def handle_message(self, conn: Connection, payload: dict) -> bool:
        """Accept a message and wait for its reply. False if it was dropped."""
        accepted = self._accept(conn, payload)
        if accepted is None:
            return False
        await self._reply(conn, *accepted)
        return True

    def _accept(self, conn: Connection, payload) -> tuple[list[Message], SessionContext, int] | None:
        if not isinstance(payload, dict):
            logger.debug("Ignoring send_message with non-object payload from %s", conn.id)
            return None
        text = payload.get("message")
        if not isinstance(text, str) or not text.strip():
            logger.debug("Ignoring empty send_message from %s", conn.id)
            return None

        sid = conn.session_id
        now = self._store.now_ms()
        if self._store.is_duplicate(sid, text, now, self._duplicate_window_ms):
            logger.info("Duplicate message detected, ignoring: %.80s", text)
            return None

        self._store.append(sid, ROLE_USER, text, now)
        logger.debug("Message received from user: %s", conn.id)
        return (
            self._store.history(sid),
            conn.session.with_context(payload.get("context")),
            self._store.epoch(sid),
        )

    async def _reply(self, conn: Connection, history: list[Message], session: SessionContext, epoch: int) -> None:
        sid = conn.session_id
        lock = self._locks.setdefault(sid, asyncio.Lock())
        async with lock:
            if self._store.epoch(sid) != epoch:
                logger.debug("Conversation %s cleared before reply started, dropping it", sid)
                return
            await conn.emit("bot_typing", True)
            try:
                await self._sleep(self.thinking_delay())
                reply = await self._resolver.resolve(history, session)
            except Exception:
                logger.error("Error in message handling for session %s", sid, exc_info=True)
                reply = hard_fallback(history)

            if self._store.epoch(sid) != epoch:
                logger.debug("Conversation %s cleared while replying, dropping reply", sid)
                await conn.emit("bot_typing", False)
                return

            self._store.append(sid, ROLE_ASSISTANT, reply)
            await conn.emit("bot_typing", False)
            await conn.emit("receive_message", {
                "sender": "bot",
                "message": reply,
                "timestamp": _iso_now(),
            })

    # -----------------------------------------------------------------------
    # Clearing
    # -----------------------------------------------------------------------

    async def clear_conversation(self, conn: Connection) -> None:
        """Empty the history, confirm, then send a role-aware welcome."""
        self._store.clear(conn.session_id)
        await conn.emit("conversation_cleared")
        await self._sleep(self._welcome_delay)
        await conn.emit("receive_message", {
            "sender": "bot",
            "message": welcome_message(conn.session.role),
            "timestamp": _iso_now(),
        })

    # -----------------------------------------------------------------------
    # Task bookkeeping
    # -----------------------------------------------------------------------

    def spawn(self, coro: Awaitable[None]) -> asyncio.Task:
        """Run coro in the background, keeping a reference until it finishes."""
        task = asyncio.ensure_future(coro)
        self._pending.add(task)
        task.add_done_callback(self._task_done)
        return task

    def _task_done(self, task: asyncio.Task) -> None:
        self._pending.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.warning("Background chat task failed", exc_info=task.exception())

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    async def drain(self) -> None:
        """Wait for every outstanding reply to finish."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)
