"""Realtime chat channel.

Each WebSocket frame is a JSON object ``{"event": str, "data": ...}``.
Connection metadata (sessionId, username, isLoggedIn, userRole) comes from
the query string, the way the web client passes it on connect.
"""

from __future__ import annotations

import uuid
from typing import Any

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from portalbot.log import logger

router = APIRouter(tags=["socket"])

_METADATA_KEYS = ("sessionId", "username", "isLoggedIn", "userRole")


@router.websocket("/ws")
async def chat_socket(websocket: WebSocket) -> None:
    handler = websocket.app.state.handler
    await websocket.accept()

    async def emit(event: str, data: Any = None) -> None:
        await websocket.send_json({"event": event, "data": data})

    metadata = {k: websocket.query_params.get(k) for k in _METADATA_KEYS}
    conn = handler.connect(uuid.uuid4().hex, metadata, emit)

    try:
        while True:
            try:
                frame = await websocket.receive_json()
            except ValueError:
                logger.debug("Ignoring non-JSON frame from %s", conn.id)
                continue

            if not isinstance(frame, dict):
                logger.debug("Ignoring non-object frame from %s", conn.id)
                continue

            event = frame.get("event")
            if event == "send_message":
                handler.submit(conn, frame.get("data"))
            elif event == "clear_conversation":
                handler.spawn(handler.clear_conversation(conn))
            elif event == "disconnect":
                await websocket.close()
                break
            else:
                logger.debug("Ignoring unknown event %r from %s", event, conn.id)
    except WebSocketDisconnect:
        pass
    finally:
        handler.disconnect(conn)
