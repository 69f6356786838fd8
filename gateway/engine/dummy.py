"""Offline protocol client for local runs and tests."""

from __future__ import annotations

import logging
import secrets
from typing import Any

from gateway.engine.base import AddressLookup, ClientOptions, ProtocolClient
from gateway.engine.events import GROUP_SUFFIX, ConnectionUpdate, PairingCode

LOGGER = logging.getLogger(__name__)


class DummyProtocolClient(ProtocolClient):
    """Engine stand-in: pairs when credentials are empty, otherwise opens."""

    def __init__(self, credentials: dict[str, Any], options: ClientOptions) -> None:
        super().__init__(credentials, options)
        self.sent: list[tuple[str, Any]] = []
        self.logged_out = False

    async def connect(self) -> None:
        LOGGER.debug("Dummy client connect() session=%s", self.options.session_name)
        if not self.credentials.get("me"):
            await self.emit(PairingCode(code=secrets.token_urlsafe(24)))
            return
        await self.emit(ConnectionUpdate(state="open"))

    async def send(self, address: str, payload: Any) -> Any:
        LOGGER.debug("Dummy client send() to=%s payload=%s", address, payload)
        self.sent.append((address, payload))
        return {"key": {"remoteJid": address, "id": secrets.token_hex(8), "fromMe": True}}

    async def logout(self) -> None:
        LOGGER.debug("Dummy client logout() session=%s", self.options.session_name)
        self.logged_out = True

    async def lookup_address(self, address: str) -> AddressLookup:
        return AddressLookup(exists=not address.endswith(GROUP_SUFFIX), address=address)

    async def group_metadata(self, address: str) -> dict[str, Any]:
        return {"id": address, "subject": "", "participants": []}

    async def close(self) -> None:
        LOGGER.debug("Dummy client close() session=%s", self.options.session_name)
