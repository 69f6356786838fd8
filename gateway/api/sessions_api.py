# coding: utf-8

from __future__ import annotations

import asyncio
import logging

from fastapi import APIRouter, Body, Depends, status
from fastapi.responses import JSONResponse

from gateway.api.dependencies import get_gateway_settings, get_manager, session_from_path
from gateway.api.models import AddSessionRequest
from gateway.config import GatewaySettings
from gateway.errors import CreationFailedError, SessionExistsError
from gateway.http import conflict, gateway_timeout, internal_error, respond
from gateway.sessions import CreationRequest, Session, SessionManager

LOGGER = logging.getLogger(__name__)

router = APIRouter(prefix="/sessions")

SESSION_EXISTS_MESSAGE = "Session already exists, please use another id."


@router.get(
    "/find/{id}",
    tags=["Sessions"],
    summary="Check that a session is live",
)
async def find_session(session: Session = Depends(session_from_path)) -> JSONResponse:
    return respond(status.HTTP_200_OK, True, "Session found.")


@router.get(
    "/status/{id}",
    tags=["Sessions"],
    summary="Report a session's connection state",
)
async def session_status(session: Session = Depends(session_from_path)) -> JSONResponse:
    return respond(status.HTTP_200_OK, True, "", {"status": session.status})


@router.post(
    "/add",
    tags=["Sessions"],
    summary="Create a session and wait for its first outcome",
)
async def add_session(
    body: AddSessionRequest = Body(...),
    manager: SessionManager = Depends(get_manager),
    settings: GatewaySettings = Depends(get_gateway_settings),
) -> JSONResponse:
    if manager.is_session_exists(body.id):
        raise conflict(SESSION_EXISTS_MESSAGE)
    requester = CreationRequest()
    try:
        await manager.create_session(body.id, legacy=body.is_legacy, requester=requester)
    except SessionExistsError as exc:
        raise conflict(SESSION_EXISTS_MESSAGE) from exc
    except Exception as exc:  # noqa: BLE001
        LOGGER.warning("Session %s could not be created: %s", body.id, exc)
        raise internal_error("Unable to create session.") from exc

    try:
        result = await requester.wait(settings.create_timeout_seconds)
    except asyncio.TimeoutError as exc:
        requester.cancel()
        raise gateway_timeout("Session creation timed out.") from exc
    except CreationFailedError as exc:
        raise internal_error("Unable to create session.") from exc

    if result.qr is not None:
        return respond(
            status.HTTP_200_OK,
            True,
            "QR code received, please scan the QR code.",
            {"qr": result.qr},
        )
    return respond(status.HTTP_200_OK, True, "Session connected.")


@router.delete(
    "/delete/{id}",
    tags=["Sessions"],
    summary="Log out and delete a session",
)
async def delete_session(
    session: Session = Depends(session_from_path),
    manager: SessionManager = Depends(get_manager),
) -> JSONResponse:
    await manager.logout_session(session.id)
    return respond(status.HTTP_200_OK, True, "The session has been successfully deleted.")
