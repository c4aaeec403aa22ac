"""PortalBot resolution pipeline -- normaliser, FAQ matcher, topic router, fallbacks."""

from portalbot.intelligence.matching import match_faq, normalize, similarity
from portalbot.intelligence.resolver import QueryResolver
from portalbot.intelligence.topics import SessionContext, route

__all__ = ["QueryResolver", "SessionContext", "match_faq", "normalize", "route", "similarity"]
