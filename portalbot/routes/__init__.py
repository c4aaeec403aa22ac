"""PortalBot API sub-routers.

Shared helpers and router modules for the FastAPI application.
"""

from __future__ import annotations

from fastapi.responses import JSONResponse


def error_response(status_code: int, message: str, detail: str | None = None) -> JSONResponse:
    """Build a consistent JSON error response."""
    body: dict = {"error": message}
    if detail:
        body["detail"] = detail
    return JSONResponse(status_code=status_code, content=body)
