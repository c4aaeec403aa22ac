"""Per-connection conversation state.

A SessionStore is an explicitly owned mapping of session id -> Session.
The server creates one and hands it to the connection handler, the
persistence manager and the reaper; tests build their own.

All mutation happens on the event loop thread, so there is no locking.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Callable

from portalbot.log import logger

ROLE_USER = "user"
ROLE_ASSISTANT = "assistant"
_VALID_ROLES = (ROLE_USER, ROLE_ASSISTANT)

DEFAULT_MAX_MESSAGES = 20


@dataclass(frozen=True)
class Message:
    role: str
    content: str
    timestamp: int  # epoch millis

    def to_dict(self) -> dict:
        return {"role": self.role, "content": self.content, "timestamp": self.timestamp}

    @classmethod
    def from_dict(cls, data: dict) -> "Message":
        """Build a Message from its persisted form. Raises ValueError if malformed."""
        if not isinstance(data, dict):
            raise ValueError("message must be an object")
        role = data.get("role")
        content = data.get("content")
        if role not in _VALID_ROLES:
            raise ValueError(f"invalid role: {role!r}")
        if not isinstance(content, str):
            raise ValueError("content must be a string")
        try:
            timestamp = int(data.get("timestamp") or 0)
        except (TypeError, ValueError):
            raise ValueError("timestamp must be a number") from None
        return cls(role=role, content=content, timestamp=timestamp)


@dataclass
class Session:
    id: str
    messages: list[Message] = field(default_factory=list)
    last_activity: int | None = None
    epoch: int = 0  # bumped on every clear

    def __len__(self) -> int:
        return len(self.messages)


class SessionStore:
    """Bounded conversation histories keyed by session id."""

    def __init__(self, max_messages: int = DEFAULT_MAX_MESSAGES,
                 clock: Callable[[], float] = time.time) -> None:
        if max_messages < 1:
            raise ValueError("max_messages must be at least 1")
        self._max_messages = max_messages
        self._clock = clock
        self._sessions: dict[str, Session] = {}

    @property
    def max_messages(self) -> int:
        return self._max_messages

    def now_ms(self) -> int:
        return int(self._clock() * 1000)

    def __len__(self) -> int:
        return len(self._sessions)

    def __contains__(self, session_id: object) -> bool:
        return session_id in self._sessions

    def ids(self) -> list[str]:
        return list(self._sessions)

    def get(self, session_id: str) -> Session | None:
        return self._sessions.get(session_id)

    def ensure(self, session_id: str) -> Session:
        """Return the session, creating an empty one if absent."""
        session = self._sessions.get(session_id)
        if session is None:
            session = Session(id=session_id)
            self._sessions[session_id] = session
        return session

    def history(self, session_id: str) -> list[Message]:
        """Copy of the session's messages (empty if unknown)."""
        session = self._sessions.get(session_id)
        return list(session.messages) if session else []

    def append(self, session_id: str, role: str, content: str, timestamp: int | None = None) -> Message:
        """Append a message, trimming the oldest beyond the cap."""
        if role not in _VALID_ROLES:
            raise ValueError(f"invalid role: {role!r}")
        message = Message(
            role=role,
            content=content,
            timestamp=self.now_ms() if timestamp is None else int(timestamp),
        )
        session = self.ensure(session_id)
        session.messages.append(message)
        overflow = len(session.messages) - self._max_messages
        if overflow > 0:
            del session.messages[:overflow]
        session.last_activity = message.timestamp
        return message

    def clear(self, session_id: str) -> None:
        """Empty the session's history, keeping the session itself."""
        session = self.ensure(session_id)
        session.messages.clear()
        session.epoch += 1

    def epoch(self, session_id: str) -> int:
        """How many times the session has been cleared (0 if unknown)."""
        session = self._sessions.get(session_id)
        return session.epoch if session else 0

    def remove(self, session_id: str) -> bool:
        return self._sessions.pop(session_id, None) is not None

    def is_duplicate(self, session_id: str, content: str, now_ms: int, window_ms: int) -> bool:
        """Whether content repeats the previous user turn within window_ms.

        Only the last two entries are considered: the previous user turn is
        either the latest entry (reply still pending) or the one before the
        assistant's reply.
        """
        session = self._sessions.get(session_id)
        if session is None:
            return False
        for message in reversed(session.messages[-2:]):
            if message.role == ROLE_USER:
                return message.content == content and now_ms - message.timestamp < window_ms
        return False

    def evict_stale(self, cutoff_ms: int) -> list[str]:
        """Remove empty sessions and sessions idle since before cutoff_ms."""
        stale = [
            sid for sid, session in self._sessions.items()
            if not session.messages
            or (session.last_activity is not None and session.last_activity < cutoff_ms)
        ]
        for sid in stale:
            del self._sessions[sid]
        return stale

    def to_dict(self) -> dict[str, list[dict]]:
        """Persistable form: session id -> ordered message dicts."""
        return {
            sid: [m.to_dict() for m in session.messages]
            for sid, session in self._sessions.items()
        }

    def load_dict(self, data: dict) -> int:
        """Replace contents from the persisted form. Returns sessions loaded.

        Malformed messages are skipped. last_activity is re-derived from the
        last message's timestamp.
        """
        loaded: dict[str, Session] = {}
        for sid, raw_messages in data.items():
            if not isinstance(sid, str) or not isinstance(raw_messages, list):
                continue
            messages = []
            for raw in raw_messages:
                try:
                    messages.append(Message.from_dict(raw))
                except ValueError as exc:
                    logger.debug("Skipping malformed message in session %s: %s", sid, exc)
            messages = messages[-self._max_messages:]
            loaded[sid] = Session(
                id=sid,
                messages=messages,
                last_activity=messages[-1].timestamp if messages else None,
            )
        self._sessions = loaded
        return len(loaded)
