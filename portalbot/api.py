"""PortalBot service -- REST health/status, one-shot chat, and the realtime channel.

``create_app()`` wires one SessionStore into the connection handler, the
persistence manager and the reaper. ``app`` is the default instance served
by ``uvicorn portalbot.api:app``.
"""

from __future__ import annotations

import os
import random
import time
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from portalbot import __version__
from portalbot.config.loader import get_config, merge_config, resolve_state_file
from portalbot.handler import ConnectionHandler
from portalbot.intelligence.resolver import QueryResolver
from portalbot.log import configure_logging, logger
from portalbot.routes import error_response
from portalbot.sessions.persistence import PersistenceManager
from portalbot.sessions.reaper import SessionReaper
from portalbot.sessions.store import SessionStore


def create_app(config: dict | None = None) -> FastAPI:
    """Build the application. ``config`` is deep-merged over get_config()."""
    cfg = merge_config(get_config(), config or {})
    sessions_cfg = cfg.get("sessions", {})
    chat_cfg = cfg.get("chat", {})
    server_cfg = cfg.get("server", {})
    configure_logging(cfg.get("logging"))

    rng = random.Random()
    store = SessionStore(max_messages=int(sessions_cfg.get("max_messages", 20)))
    resolver = QueryResolver(rng=rng, max_message_length=int(chat_cfg.get("max_message_length", 2000)))
    handler = ConnectionHandler(
        store,
        resolver,
        rng=rng,
        min_delay=float(chat_cfg.get("min_delay_seconds", 0.3)),
        max_delay=float(chat_cfg.get("max_delay_seconds", 1.5)),
        duplicate_window=float(sessions_cfg.get("duplicate_window_seconds", 3)),
        welcome_delay=float(chat_cfg.get("welcome_delay_seconds", 0.5)),
    )
    persistence = PersistenceManager(
        store,
        resolve_state_file(cfg),
        interval_seconds=float(sessions_cfg.get("save_interval_seconds", 300)),
    )
    reaper = SessionReaper(
        store,
        interval_seconds=float(sessions_cfg.get("reap_interval_seconds", 86400)),
        retention_days=float(sessions_cfg.get("retention_days", 7)),
    )

    @asynccontextmanager
    async def _lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        app.state.started_at = time.time()
        persistence.load()
        await persistence.start()
        await reaper.start()
        logger.info("PortalBot started with %d sessions", len(store))

        yield

        try:
            await handler.drain()
        except Exception:
            logger.warning("Failed to drain pending replies on shutdown", exc_info=True)
        await reaper.stop()
        await persistence.stop()
        logger.info("PortalBot stopped")

    app = FastAPI(
        title="PortalBot",
        description="Rule-based job portal assistant -- FAQ matching, topic routing, realtime chat",
        version=__version__,
        lifespan=_lifespan,
    )
    app.state.config = cfg
    app.state.store = store
    app.state.resolver = resolver
    app.state.handler = handler
    app.state.persistence = persistence
    app.state.reaper = reaper
    app.state.started_at = time.time()

    app.add_middleware(
        CORSMiddleware,
        allow_origins=list(server_cfg.get("cors_origins", [])),
        allow_methods=["GET", "POST"],
        allow_headers=["*"],
    )

    from portalbot.routes.chat import router as chat_router
    from portalbot.routes.socket import router as socket_router

    app.include_router(chat_router)
    app.include_router(socket_router)

    @app.exception_handler(Exception)
    async def _global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        """Catch unhandled exceptions and return structured JSON instead of HTML 500."""
        logger.error("Unhandled exception on %s %s: %s", request.method, request.url.path, exc, exc_info=True)
        return error_response(500, "Internal server error")

    @app.exception_handler(404)
    async def _not_found_handler(request: Request, exc: Exception) -> JSONResponse:
        return error_response(404, "Not found", f"{request.url.path} does not exist")

    @app.get("/health")
    def health() -> dict:
        return {"status": "ok"}

    @app.get("/status")
    def status(request: Request) -> dict:
        """Service status plus the process's own resource footprint."""
        import psutil

        proc = psutil.Process(os.getpid())
        with proc.oneshot():
            mem = proc.memory_info()
            threads = proc.num_threads()

        state = request.app.state
        return {
            "service": "portalbot",
            "version": __version__,
            "uptime_seconds": round(time.time() - state.started_at, 1),
            "sessions": len(state.store),
            "connections": len(state.handler.connections),
            "pending_replies": state.handler.pending_count,
            "last_saved": state.persistence.last_saved,
            "state_file": str(state.persistence.path),
            "memory_rss_mb": round(mem.rss / (1024 * 1024), 1),
            "threads": threads,
        }

    return app


app = create_app()
