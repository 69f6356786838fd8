"""Protocol engine clients and the events they emit."""

from __future__ import annotations

from typing import Any

from gateway.config import GatewaySettings
from gateway.engine.base import AddressLookup, ClientFactory, ClientOptions, ProtocolClient
from gateway.engine.dummy import DummyProtocolClient
from gateway.engine.events import (
    ChatsSet,
    ConnectionUpdate,
    CredentialsChanged,
    DisconnectReason,
    EngineError,
    EngineEvent,
    InboundMessage,
    PairingCode,
)
from gateway.engine.websocket import WebSocketProtocolClient


def build_client_factory(settings: GatewaySettings) -> ClientFactory:
    """Return the client constructor selected by ``settings.engine``."""

    if settings.engine == "dummy":
        return DummyProtocolClient
    url = str(settings.engine_ws_url)

    def _factory(credentials: dict[str, Any], options: ClientOptions) -> ProtocolClient:
        return WebSocketProtocolClient(credentials, options, url=url)

    return _factory


def client_options(settings: GatewaySettings, *, session_name: str, legacy: bool) -> ClientOptions:
    return ClientOptions(
        session_name=session_name,
        legacy=legacy,
        version=tuple(settings.engine_version),
        browser=tuple(settings.browser),
        connect_timeout_ms=settings.connect_timeout_ms,
        default_query_timeout_ms=settings.default_query_timeout_ms,
        retry_request_delay_ms=settings.retry_request_delay_ms,
        max_msg_retries=settings.max_msg_retries,
        mutex_timeout_ms=settings.mutex_timeout_ms,
    )


__all__ = [
    "AddressLookup",
    "ChatsSet",
    "ClientFactory",
    "ClientOptions",
    "ConnectionUpdate",
    "CredentialsChanged",
    "DisconnectReason",
    "DummyProtocolClient",
    "EngineError",
    "EngineEvent",
    "InboundMessage",
    "PairingCode",
    "ProtocolClient",
    "WebSocketProtocolClient",
    "build_client_factory",
    "client_options",
]
