"""Paced outbound sends."""

from __future__ import annotations

import asyncio
import logging
from typing import Any

from gateway.engine.base import ProtocolClient
from gateway.errors import SendMessageError

LOGGER = logging.getLogger(__name__)


async def send_message(client: ProtocolClient, address: str, payload: Any, *, delay_ms: int = 1000) -> Any:
    """Wait ``delay_ms`` then hand the payload to the engine.

    Engine failures surface as a bare ``SendMessageError``; they never touch
    the session's connection state.
    """

    await asyncio.sleep(max(0, int(delay_ms)) / 1000)
    try:
        return await client.send(address, payload)
    except Exception:  # noqa: BLE001
        LOGGER.debug("Engine rejected send to %s", address, exc_info=True)
        raise SendMessageError() from None
