"""Chat endpoints -- one-shot resolution and stored session history."""

from __future__ import annotations

from fastapi import APIRouter, Path, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from portalbot.intelligence.topics import SessionContext
from portalbot.routes import error_response

router = APIRouter(tags=["chat"])


class ChatMessage(BaseModel):
    """Validated schema for one-shot chat messages."""
    message: str = Field(default="", max_length=10000)
    role: str | None = Field(default=None, max_length=64)
    username: str | None = Field(default=None, max_length=256)


@router.post("/chat")
def chat_endpoint(body: ChatMessage, request: Request) -> dict:
    """Resolve a single message without touching any session."""
    if not body.message.strip():
        return {"source": "empty", "topic": None, "response": "Ask me anything about the job portal."}
    session = SessionContext(username=body.username, user_role=body.role)
    return request.app.state.resolver.resolve_text(body.message, session)


@router.get("/sessions/{session_id}", response_model=None)
def session_history(request: Request, session_id: str = Path(max_length=256)) -> dict | JSONResponse:
    """Stored conversation history for one session."""
    store = request.app.state.store
    session = store.get(session_id)
    if session is None:
        return error_response(404, "Session not found", f"Session '{session_id}' does not exist")
    return {
        "session_id": session_id,
        "last_activity": session.last_activity,
        "count": len(session.messages),
        "messages": [m.to_dict() for m in session.messages],
    }
