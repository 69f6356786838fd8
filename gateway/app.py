"""FastAPI application wiring the session manager to the HTTP routers."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware

from gateway import __version__
from gateway.api import chats_router, groups_router, sessions_router
from gateway.config import GatewaySettings, get_settings
from gateway.engine import build_client_factory
from gateway.http import install_error_handlers
from gateway.notifier import DownstreamNotifier
from gateway.sessions import SessionManager
from gateway.storage import FileCredentialStore

LOGGER = logging.getLogger(__name__)


def build_manager(settings: GatewaySettings) -> SessionManager:
    return SessionManager(
        settings=settings,
        store=FileCredentialStore(settings.sessions_dir),
        notifier=DownstreamNotifier.from_settings(settings),
        client_factory=build_client_factory(settings),
    )


def create_app(
    manager: Optional[SessionManager] = None,
    settings: Optional[GatewaySettings] = None,
    *,
    restore_on_startup: bool = True,
) -> FastAPI:
    settings = settings or (manager.settings if manager is not None else get_settings())
    manager = manager or build_manager(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        if restore_on_startup:
            await manager.restore_sessions()
        LOGGER.info("Session gateway ready with %s session(s)", len(manager.registry))
        try:
            yield
        finally:
            await manager.shutdown()
            manager.notifier.close()
            LOGGER.info("Session gateway stopped")

    app = FastAPI(title="WhatsApp Session Gateway", version=__version__, lifespan=lifespan)
    app.state.manager = manager
    app.state.settings = settings

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_allow_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    install_error_handlers(app)

    app.include_router(sessions_router)
    app.include_router(chats_router)
    app.include_router(groups_router)

    @app.get("/healthz", tags=["Health"], summary="Liveness and session counts")
    async def healthz(request: Request) -> dict[str, int]:
        current: SessionManager = request.app.state.manager
        return {"sessions": len(current.registry), "pendingReconnects": len(current.pending_reconnects)}

    return app
