"""PortalBot -- rule-based assistant for a role-based job portal."""

from __future__ import annotations

__version__ = "0.1.0"
