"""Lexical matching primitives -- normalisation, overlap similarity, FAQ lookup."""

from __future__ import annotations

import re
from typing import Callable, Iterable, TypeVar

from portalbot.knowledge.base import FAQS, KnowledgeEntry

T = TypeVar("T")

_STRIP_RE = re.compile(r"[^\w\s]")

_DIRECT_THRESHOLD = 0.6
_KEY_PART_THRESHOLD = 0.3
_KEY_PART_MIN_LEN = 4


def normalize(raw: str | None) -> str:
    """Lowercase and drop everything that is not a word character or whitespace."""
    if not raw:
        return ""
    return _STRIP_RE.sub("", str(raw).lower())


def similarity(a: str, b: str) -> float:
    """Share of a's tokens that also appear in b, over the longer token count.

    Not symmetric: the overlap count always comes from ``a``.
    """
    words_a = a.split()
    words_b = b.split()
    longest = max(len(words_a), len(words_b))
    if longest == 0:
        return 0.0
    members = set(words_b)
    matching = sum(1 for word in words_a if word in members)
    return matching / longest


def first_match(items: Iterable[T], predicate: Callable[[T], bool]) -> T | None:
    """Return the first item satisfying predicate, in iteration order."""
    for item in items:
        if predicate(item):
            return item
    return None


def faq_matches(normalized_query: str, entry: KnowledgeEntry) -> bool:
    """Whether one FAQ entry answers the query (direct hit or key-part hit)."""
    question = normalize(entry.question)
    score = similarity(normalized_query, question)

    if normalized_query in question or question in normalized_query or score > _DIRECT_THRESHOLD:
        return True

    parts = question.split()
    if len(parts) > 2:
        key_parts = [p for p in parts if len(p) >= _KEY_PART_MIN_LEN]
        if any(p in normalized_query for p in key_parts) and score > _KEY_PART_THRESHOLD:
            return True
    return False


def match_faq(normalized_query: str, faqs: Iterable[KnowledgeEntry] = FAQS) -> str | None:
    """Answer of the first FAQ entry matching the query, or None."""
    if not normalized_query.strip():
        return None
    entry = first_match(faqs, lambda e: faq_matches(normalized_query, e))
    return entry.answer if entry is not None else None
