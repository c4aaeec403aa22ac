"""Conversation state -- store, persistence and stale-session reaping."""

from portalbot.sessions.persistence import PersistenceManager
from portalbot.sessions.reaper import SessionReaper
from portalbot.sessions.store import Message, Session, SessionStore

__all__ = ["Message", "PersistenceManager", "Session", "SessionReaper", "SessionStore"]
