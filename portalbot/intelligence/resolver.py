"""Query resolver -- FAQ first, then topic rules, then a generic reply.

The pipeline is pure: it reads the knowledge base and rule table and never
touches session state. Any unexpected error degrades to ``hard_fallback``.
"""

from __future__ import annotations

import random
from typing import Iterable

from portalbot.intelligence.fallback import fallback, hard_fallback
from portalbot.intelligence.matching import match_faq, normalize
from portalbot.intelligence.topics import TOPIC_RULES, SessionContext, TopicRule, find_rule
from portalbot.knowledge.base import FAQS, KnowledgeEntry
from portalbot.log import logger


def _field(msg, name: str):
    if isinstance(msg, dict):
        return msg.get(name)
    return getattr(msg, name, None)


def latest_user_content(history) -> str | None:
    """Content of the most recent user turn, or None."""
    for msg in reversed(list(history or [])):
        if _field(msg, "role") == "user":
            return _field(msg, "content")
    return None


class QueryResolver:
    """Tiered resolution over a fixed knowledge base and rule table."""

    def __init__(
        self,
        faqs: Iterable[KnowledgeEntry] = FAQS,
        rules: Iterable[TopicRule] = TOPIC_RULES,
        rng: random.Random | None = None,
        max_message_length: int = 2000,
    ) -> None:
        self._faqs = tuple(faqs)
        self._rules = tuple(rules)
        self._rng = rng or random.Random()
        self._max_length = max_message_length

    async def resolve(self, history, session: SessionContext | None = None) -> str:
        """Reply to the latest user message in history. Never raises."""
        session = session or SessionContext()
        try:
            content = latest_user_content(history)
            if not content:
                return fallback(session, self._rng)
            return self._resolve_query(content, session)["response"]
        except Exception:
            logger.warning("Resolution failed, using degraded reply", exc_info=True)
            return hard_fallback(history)

    def resolve_text(self, message: str, session: SessionContext | None = None) -> dict:
        """Resolve a single message and report which tier answered.

        Returns:
            {
                "source": "faq" | "topic" | "fallback" | "degraded",
                "topic": str | None,
                "response": str,
            }
        """
        session = session or SessionContext()
        try:
            return self._resolve_query(message, session)
        except Exception:
            logger.warning("Resolution failed for single message", exc_info=True)
            return {
                "source": "degraded",
                "topic": None,
                "response": hard_fallback([{"role": "user", "content": message}]),
            }

    def _resolve_query(self, content: str, session: SessionContext) -> dict:
        if len(content) > self._max_length:
            logger.debug("Chat message truncated from %d to %d chars", len(content), self._max_length)
            content = content[:self._max_length]

        query = normalize(content)

        answer = match_faq(query, self._faqs)
        if answer is not None:
            return {"source": "faq", "topic": None, "response": answer}

        rule = find_rule(query, self._rules)
        if rule is not None:
            reply = rule.responder(query, session, self._rng)
            if reply:
                return {"source": "topic", "topic": rule.name, "response": reply}

        return {"source": "fallback", "topic": None, "response": fallback(session, self._rng)}
