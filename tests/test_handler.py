"""Tests for the connection handler event flow.

Uses a recording emitter and a no-op sleep so no real channel or delay
is involved.
"""

from __future__ import annotations

import asyncio
import random

import pytest

from portalbot.handler import ConnectionHandler
from portalbot.intelligence.resolver import QueryResolver
from portalbot.knowledge.base import FAQS, WELCOME_MESSAGES
from portalbot.sessions.store import SessionStore

_NOW = 1_700_000_000.0


class _Clock:
    def __init__(self) -> None:
        self.now = _NOW

    def __call__(self) -> float:
        return self.now


class _Recorder:
    """Collects (event, data) pairs emitted to one connection."""

    def __init__(self) -> None:
        self.events: list[tuple[str, object]] = []

    async def __call__(self, event, data=None) -> None:
        self.events.append((event, data))

    def names(self) -> list[str]:
        return [e for e, _ in self.events]

    def replies(self) -> list[str]:
        return [d["message"] for e, d in self.events if e == "receive_message"]


async def _no_sleep(_delay) -> None:
    await asyncio.sleep(0)


@pytest.fixture
def clock():
    return _Clock()


@pytest.fixture
def store(clock):
    return SessionStore(clock=clock)


@pytest.fixture
def handler(store):
    return ConnectionHandler(
        store,
        QueryResolver(rng=random.Random(0)),
        rng=random.Random(0),
        min_delay=0,
        max_delay=0,
        sleep=_no_sleep,
    )


def _connect(handler, metadata=None, connection_id="c1"):
    recorder = _Recorder()
    conn = handler.connect(connection_id, metadata or {}, recorder)
    return conn, recorder


# ---------------------------------------------------------------------------
# Connect / disconnect
# ---------------------------------------------------------------------------

class TestConnect:
    def test_metadata_becomes_session_context(self, handler, store):
        conn, _ = _connect(handler, {
            "sessionId": "s1", "username": "Kofi", "isLoggedIn": "true", "userRole": "employer",
        })
        assert conn.session_id == "s1"
        assert conn.session.username == "Kofi"
        assert conn.session.is_logged_in is True
        assert conn.session.role == "employer"
        assert "s1" in store
        assert "c1" in handler.connections

    def test_connection_id_is_default_session(self, handler):
        conn, _ = _connect(handler, {}, connection_id="abc")
        assert conn.session_id == "abc"
        assert conn.session.is_logged_in is False

    def test_disconnect_keeps_session(self, handler, store):
        conn, _ = _connect(handler, {"sessionId": "s1"})
        handler.disconnect(conn)
        assert "c1" not in handler.connections
        assert "s1" in store
        assert conn.connected is False

    def test_invalid_delay_range(self, store):
        with pytest.raises(ValueError):
            ConnectionHandler(store, QueryResolver(), min_delay=2, max_delay=1)


def test_thinking_delay_within_bounds(store):
    handler = ConnectionHandler(store, QueryResolver(), rng=random.Random(5), min_delay=0.3, max_delay=1.5)
    for _ in range(50):
        assert 0.3 <= handler.thinking_delay() < 1.5


# ---------------------------------------------------------------------------
# Messages
# ---------------------------------------------------------------------------

class TestMessages:
    def test_event_order(self, handler, store):
        conn, rec = _connect(handler, {"sessionId": "s1", "username": "Ama"})
        assert asyncio.run(handler.handle_message(conn, {"message": "Hello"})) is True
        assert rec.names() == ["bot_typing", "bot_typing", "receive_message"]
        assert rec.events[0][1] is True
        assert rec.events[1][1] is False
        reply = rec.events[2][1]
        assert reply["sender"] == "bot"
        assert reply["message"].startswith("Hello Ama!")
        assert "T" in reply["timestamp"]

    def test_history_records_both_turns(self, handler, store):
        conn, _ = _connect(handler, {"sessionId": "s1"})
        asyncio.run(handler.handle_message(conn, {"message": "How much does it cost to register?"}))
        history = store.history("s1")
        assert [m.role for m in history] == ["user", "assistant"]
        assert history[1].content == FAQS[1].answer

    def test_message_context_role_is_used(self, handler):
        conn, rec = _connect(handler, {"sessionId": "s1", "userRole": "job_seeker"})
        payload = {"message": "hello", "context": {"user": {"role": "employer"}}}
        asyncio.run(handler.handle_message(conn, payload))
        assert "hiring" in rec.replies()[0]

    @pytest.mark.parametrize("payload", [
        None,
        "hello",
        {},
        {"message": ""},
        {"message": "   "},
        {"message": 42},
    ])
    def test_invalid_payload_is_dropped(self, handler, store, payload):
        conn, rec = _connect(handler, {"sessionId": "s1"})
        assert asyncio.run(handler.handle_message(conn, payload)) is False
        assert rec.events == []
        assert store.history("s1") == []

    def test_duplicate_within_window_is_dropped(self, handler, store):
        conn, rec = _connect(handler, {"sessionId": "s1"})

        async def _run():
            first = await handler.handle_message(conn, {"message": "hello"})
            second = await handler.handle_message(conn, {"message": "hello"})
            return first, second

        assert asyncio.run(_run()) == (True, False)
        assert len(rec.replies()) == 1
        assert len(store.history("s1")) == 2

    def test_duplicate_after_window_is_answered(self, handler, store, clock):
        conn, rec = _connect(handler, {"sessionId": "s1"})
        asyncio.run(handler.handle_message(conn, {"message": "hello"}))
        clock.now += 4
        assert asyncio.run(handler.handle_message(conn, {"message": "hello"})) is True
        assert len(rec.replies()) == 2

    def test_resolver_failure_still_replies(self, store):
        class _Broken(QueryResolver):
            async def resolve(self, history, session=None):
                raise RuntimeError("boom")

        handler = ConnectionHandler(store, _Broken(), min_delay=0, max_delay=0, sleep=_no_sleep)
        conn, rec = _connect(handler, {"sessionId": "s1"})
        asyncio.run(handler.handle_message(conn, {"message": "my cv"}))
        assert "upload your resume" in rec.replies()[0]
        assert rec.names()[-2:] == ["bot_typing", "receive_message"]

    def test_closed_channel_does_not_break_reply(self, handler, store):
        async def _closed(event, data=None):
            raise ConnectionError("gone")

        conn = handler.connect("c1", {"sessionId": "s1"}, _closed)
        assert asyncio.run(handler.handle_message(conn, {"message": "hello"})) is True
        assert len(store.history("s1")) == 2


class TestOrdering:
    def test_replies_follow_arrival_order(self, store):
        delays = iter([0.05, 0.0])

        async def _uneven_sleep(_delay):
            await asyncio.sleep(next(delays, 0.0))

        handler = ConnectionHandler(
            store, QueryResolver(rng=random.Random(0)), min_delay=0, max_delay=0, sleep=_uneven_sleep,
        )
        conn, rec = _connect(handler, {"sessionId": "s1", "username": "Ama"})

        async def _run():
            handler.submit(conn, {"message": "hello"})
            handler.submit(conn, {"message": "How much does it cost to register?"})
            await handler.drain()

        asyncio.run(_run())
        replies = rec.replies()
        assert replies[0].startswith("Hello Ama!")
        assert replies[1] == FAQS[1].answer
        assert [m.role for m in store.history("s1")] == ["user", "user", "assistant", "assistant"]
        assert handler.pending_count == 0

    def test_sessions_do_not_block_each_other(self, store):
        handler = ConnectionHandler(
            store, QueryResolver(rng=random.Random(0)), min_delay=0, max_delay=0, sleep=_no_sleep,
        )
        a, rec_a = _connect(handler, {"sessionId": "a"}, connection_id="ca")
        b, rec_b = _connect(handler, {"sessionId": "b"}, connection_id="cb")

        async def _run():
            handler.submit(a, {"message": "hello"})
            handler.submit(b, {"message": "hello"})
            await handler.drain()

        asyncio.run(_run())
        assert len(rec_a.replies()) == 1
        assert len(rec_b.replies()) == 1

    def test_submit_drops_duplicate_immediately(self, handler):
        conn, _ = _connect(handler, {"sessionId": "s1"})

        async def _run():
            first = handler.submit(conn, {"message": "hello"})
            second = handler.submit(conn, {"message": "hello"})
            await handler.drain()
            return first, second

        first, second = asyncio.run(_run())
        assert first is not None
        assert second is None


# ---------------------------------------------------------------------------
# Clearing
# ---------------------------------------------------------------------------

class TestClear:
    def test_clear_then_welcome(self, handler, store):
        conn, rec = _connect(handler, {"sessionId": "s1", "userRole": "employer"})
        asyncio.run(handler.handle_message(conn, {"message": "hello"}))
        rec.events.clear()

        asyncio.run(handler.clear_conversation(conn))
        assert rec.names() == ["conversation_cleared", "receive_message"]
        assert rec.replies() == [WELCOME_MESSAGES["employer"]]
        assert store.history("s1") == []
        assert "s1" in store

    def test_default_welcome_without_role(self, handler):
        conn, rec = _connect(handler, {"sessionId": "s1"})
        asyncio.run(handler.clear_conversation(conn))
        assert rec.replies() == ["Our conversation has been cleared. How can I help you now?"]

    def test_clear_after_five_messages(self, handler, store):
        conn, rec = _connect(handler, {"sessionId": "s1"})
        for i in range(5):
            store.append("s1", "user" if i % 2 == 0 else "assistant", f"m{i}")

        asyncio.run(handler.clear_conversation(conn))
        assert store.history("s1") == []
        assert rec.names().count("conversation_cleared") == 1
        assert rec.names() == ["conversation_cleared", "receive_message"]
        assert len(rec.replies()) == 1

    def test_clear_discards_pending_reply(self, store):
        delays = iter([0.05])

        async def _slow_first(_delay):
            await asyncio.sleep(next(delays, 0.0))

        handler = ConnectionHandler(
            store, QueryResolver(rng=random.Random(0)), min_delay=0, max_delay=0, sleep=_slow_first,
        )
        conn, rec = _connect(handler, {"sessionId": "s1"})

        async def _run():
            handler.submit(conn, {"message": "hello"})
            await asyncio.sleep(0)  # reply is now waiting out its delay
            await handler.clear_conversation(conn)
            await handler.drain()

        asyncio.run(_run())
        assert store.history("s1") == []
        assert rec.replies() == ["Our conversation has been cleared. How can I help you now?"]
        assert rec.names() == ["bot_typing", "conversation_cleared", "receive_message", "bot_typing"]

    def test_clear_discards_queued_reply(self, store):
        delays = iter([0.05])

        async def _slow_first(_delay):
            await asyncio.sleep(next(delays, 0.0))

        handler = ConnectionHandler(
            store, QueryResolver(rng=random.Random(0)), min_delay=0, max_delay=0, sleep=_slow_first,
        )
        conn, rec = _connect(handler, {"sessionId": "s1"})

        async def _run():
            handler.submit(conn, {"message": "hello"})
            handler.submit(conn, {"message": "How much does it cost to register?"})
            await asyncio.sleep(0)
            await handler.clear_conversation(conn)
            await handler.drain()

        asyncio.run(_run())
        assert store.history("s1") == []
        assert len(rec.replies()) == 1
        assert rec.names().count("bot_typing") == 2

    def test_messages_after_clear_are_answered(self, handler, store):
        conn, rec = _connect(handler, {"sessionId": "s1"})

        async def _run():
            await handler.clear_conversation(conn)
            await handler.handle_message(conn, {"message": "hello"})

        asyncio.run(_run())
        assert [m.role for m in store.history("s1")] == ["user", "assistant"]
        assert rec.replies()[-1].startswith("Hello")


class TestReconnect:
    def test_reconnect_reuses_session_lock(self, handler, store):
        conn, _ = _connect(handler, {"sessionId": "s1"}, connection_id="c1")
        asyncio.run(handler.handle_message(conn, {"message": "hello"}))
        lock = handler._locks["s1"]

        handler.disconnect(conn)
        again, rec = _connect(handler, {"sessionId": "s1"}, connection_id="c2")
        asyncio.run(handler.handle_message(again, {"message": "How much does it cost to register?"}))

        assert handler._locks["s1"] is lock
        assert rec.replies() == [FAQS[1].answer]

    def test_replies_stay_serialised_across_reconnect(self, store):
        delays = iter([0.05, 0.0, 0.0])

        async def _uneven_sleep(_delay):
            await asyncio.sleep(next(delays, 0.0))

        handler = ConnectionHandler(
            store, QueryResolver(rng=random.Random(0)), min_delay=0, max_delay=0, sleep=_uneven_sleep,
        )
        first, rec_first = _connect(handler, {"sessionId": "s1"}, connection_id="c1")

        async def _run():
            handler.submit(first, {"message": "hello"})
            handler.submit(first, {"message": "How do I verify my email address?"})
            await asyncio.sleep(0)
            handler.disconnect(first)
            second, _ = _connect(handler, {"sessionId": "s1"}, connection_id="c2")
            handler.submit(second, {"message": "How much does it cost to register?"})
            await handler.drain()

        asyncio.run(_run())
        roles = [m.role for m in store.history("s1")]
        assert roles == ["user", "user", "user", "assistant", "assistant", "assistant"]
        contents = [m.content for m in store.history("s1") if m.role == "assistant"]
        assert contents[1] == FAQS[11].answer
        assert contents[2] == FAQS[1].answer
