"""Fallback replies -- used when neither the FAQ nor a topic rule answers."""

from __future__ import annotations

import random

GENERIC_RESPONSES: tuple[str, ...] = (
    "I'm here to help with the job portal. You can ask about finding jobs, choosing a role, "
    "registration payments, or your resume.",
    "Our platform connects job seekers, employers, trainers and trainees. Ask me how any part "
    "of it works.",
    "You can search the Avenue job board, save favorites, and track your applications all in one place.",
    "Need help with something specific about your account or our platform? I'm happy to assist.",
    "Whether you're looking for your first job, hiring, or running a training programme, our "
    "platform has tools to help you succeed.",
)

# Reduced keyword set for the degraded path, checked in order
_HARD_FALLBACKS: tuple[tuple[tuple[str, ...], str], ...] = (
    (("job", "work", "career"),
     "I can help you find jobs that match your skills and experience. Try the search feature "
     "or browse the Avenue job board."),
    (("resume", "cv"),
     "You can upload your resume from your dashboard so employers can see it when you apply."),
    (("interview", "hire"),
     "Preparing for interviews is important. Research the company, practice common questions, "
     "and present yourself professionally."),
    (("salary", "pay"),
     "Salary information is available on most job listings, and registration payments are "
     "handled from the Payments section of your dashboard."),
    (("profile", "account"),
     "You can update your profile information from the dashboard. A complete profile improves "
     "your chances of being noticed by employers."),
)

_HARD_DEFAULT = (
    "I'm here to help with your job search. You can ask about job listings, creating a "
    "profile, or application tips."
)


def fallback(session=None, rng: random.Random | None = None) -> str:
    """One of the generic platform-overview replies, chosen uniformly."""
    return (rng or random).choice(GENERIC_RESPONSES)


def hard_fallback(history) -> str:
    """Reply derived only from the latest user message. Never raises."""
    text = ""
    try:
        for msg in reversed(list(history or [])):
            role = msg.get("role") if isinstance(msg, dict) else getattr(msg, "role", None)
            if role == "user":
                content = msg.get("content") if isinstance(msg, dict) else getattr(msg, "content", "")
                text = str(content or "").lower()
                break
    except TypeError:
        text = ""

    for keywords, reply in _HARD_FALLBACKS:
        if any(k in text for k in keywords):
            return reply
    return _HARD_DEFAULT
