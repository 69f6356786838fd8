"""FastAPI dependencies shared by the routers."""

from __future__ import annotations

from fastapi import Depends, Path, Query, Request

from gateway.config import GatewaySettings
from gateway.http import not_found
from gateway.sessions import Session, SessionManager


def get_manager(request: Request) -> SessionManager:
    return request.app.state.manager


def get_gateway_settings(request: Request) -> GatewaySettings:
    return request.app.state.settings


def session_from_query(
    id: str = Query(..., description="Session identifier."),
    manager: SessionManager = Depends(get_manager),
) -> Session:
    session = manager.get_session(id)
    if session is None:
        raise not_found("Session not found.")
    return session


def session_from_path(
    id: str = Path(..., description="Session identifier."),
    manager: SessionManager = Depends(get_manager),
) -> Session:
    session = manager.get_session(id)
    if session is None:
        raise not_found("Session not found.")
    return session
