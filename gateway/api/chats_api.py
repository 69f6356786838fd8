# coding: utf-8

from __future__ import annotations

import logging
from typing import List

from fastapi import APIRouter, Body, Depends, status
from fastapi.responses import JSONResponse

from gateway.api.dependencies import get_gateway_settings, session_from_query
from gateway.api.models import BulkMessage, SendMessageRequest
from gateway.config import GatewaySettings
from gateway.errors import SendMessageError
from gateway.http import bad_request, internal_error, respond
from gateway.sessions import Session
from gateway.sessions.outbound import send_message
from gateway.sessions.queries import format_phone, get_chat_list, is_exists

LOGGER = logging.getLogger(__name__)

router = APIRouter(prefix="/chats")


@router.get(
    "",
    tags=["Chats"],
    summary="List cached direct chats",
)
async def list_chats(session: Session = Depends(session_from_query)) -> JSONResponse:
    return respond(status.HTTP_200_OK, True, "", get_chat_list(session))


@router.post(
    "/send",
    tags=["Chats"],
    summary="Send a message to one phone number",
)
async def send_chat(
    body: SendMessageRequest = Body(...),
    session: Session = Depends(session_from_query),
) -> JSONResponse:
    receiver = format_phone(body.receiver)
    if not await is_exists(session.client, receiver):
        raise bad_request("The receiver number is not exists.")
    try:
        await send_message(session.client, receiver, body.message, delay_ms=0)
    except SendMessageError as exc:
        raise internal_error("Failed to send the message.") from exc
    return respond(status.HTTP_200_OK, True, "The message has been successfully sent.")


@router.post(
    "/send-bulk",
    tags=["Chats"],
    summary="Send several messages, paced by each item's delay",
)
async def send_bulk(
    body: List[BulkMessage] = Body(...),
    session: Session = Depends(session_from_query),
    settings: GatewaySettings = Depends(get_gateway_settings),
) -> JSONResponse:
    sent: List[int] = []
    failed: List[int] = []
    for index, item in enumerate(body):
        if not item.receiver or not item.message:
            failed.append(index)
            continue
        delay_ms = item.delay if item.delay else settings.default_send_delay_ms
        receiver = format_phone(item.receiver)
        if not await is_exists(session.client, receiver):
            failed.append(index)
            continue
        try:
            await send_message(session.client, receiver, item.message, delay_ms=delay_ms)
        except SendMessageError:
            LOGGER.warning("Bulk item %s to %s failed for session=%s", index, receiver, session.id)
            failed.append(index)
            continue
        sent.append(index)

    data = {"success": sent, "failed": failed}
    if not failed:
        return respond(status.HTTP_200_OK, True, "All messages has been successfully sent.", data)
    if not sent:
        return respond(status.HTTP_500_INTERNAL_SERVER_ERROR, False, "Failed to send all messages.", data)
    return respond(status.HTTP_200_OK, True, "Some messages has been successfully sent.", data)
