# coding: utf-8

from __future__ import annotations

import logging

from fastapi import APIRouter, Body, Depends, Path, status
from fastapi.responses import JSONResponse

from gateway.api.dependencies import session_from_query
from gateway.api.models import SendMessageRequest
from gateway.errors import SendMessageError
from gateway.http import bad_request, internal_error, respond
from gateway.sessions import Session
from gateway.sessions.outbound import send_message
from gateway.sessions.queries import format_group, get_chat_list, get_group_metadata, is_exists

LOGGER = logging.getLogger(__name__)

router = APIRouter(prefix="/groups")


@router.get(
    "",
    tags=["Groups"],
    summary="List cached group chats",
)
async def list_groups(session: Session = Depends(session_from_query)) -> JSONResponse:
    return respond(status.HTTP_200_OK, True, "", get_chat_list(session, is_group=True))


@router.get(
    "/meta/{jid}",
    tags=["Groups"],
    summary="Fetch a group's metadata",
)
async def group_metadata(
    jid: str = Path(..., description="Group address or id."),
    session: Session = Depends(session_from_query),
) -> JSONResponse:
    address = format_group(jid)
    try:
        data = await get_group_metadata(session.client, address)
    except Exception as exc:  # noqa: BLE001
        LOGGER.warning("Group metadata lookup failed session=%s group=%s: %s", session.id, address, exc)
        raise internal_error("Failed to get group metadata.") from exc
    if not data or not data.get("id"):
        raise bad_request("The group is not exists.")
    return respond(status.HTTP_200_OK, True, "", data)


@router.post(
    "/send",
    tags=["Groups"],
    summary="Send a message to a group",
)
async def send_group(
    body: SendMessageRequest = Body(...),
    session: Session = Depends(session_from_query),
) -> JSONResponse:
    receiver = format_group(body.receiver)
    if not await is_exists(session.client, receiver, is_group=True):
        raise bad_request("The group is not exists.")
    try:
        await send_message(session.client, receiver, body.message, delay_ms=0)
    except SendMessageError as exc:
        raise internal_error("Failed to send the message.") from exc
    return respond(status.HTTP_200_OK, True, "The message has been successfully sent.")
