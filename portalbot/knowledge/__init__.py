from portalbot.knowledge.base import FAQS, PLATFORM_INFO, ROLES, KnowledgeEntry, normalize_role

__all__ = ["FAQS", "PLATFORM_INFO", "ROLES", "KnowledgeEntry", "normalize_role"]
