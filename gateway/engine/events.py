"""Typed events emitted by protocol clients."""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import Any, Optional, Union

DIRECT_SUFFIX = "@s.whatsapp.net"
GROUP_SUFFIX = "@g.us"


class DisconnectReason(enum.IntEnum):
    """Close codes reported by the engine alongside a close event."""

    LOGGED_OUT = 401
    CONNECTION_LOST = 408
    MULTIDEVICE_MISMATCH = 411
    CONNECTION_CLOSED = 428
    CONNECTION_REPLACED = 440
    BAD_SESSION = 500
    RESTART_REQUIRED = 515

    # 408 doubles as the engine's timeout code
    TIMED_OUT = 408


@dataclass(frozen=True)
class PairingCode:
    code: str


@dataclass(frozen=True)
class ConnectionUpdate:
    """Connection state change; ``status_code`` is only meaningful on close."""

    state: str
    status_code: Optional[int] = None

    @property
    def is_open(self) -> bool:
        return self.state == "open"

    @property
    def is_close(self) -> bool:
        return self.state == "close"

    @property
    def logged_out(self) -> bool:
        return self.status_code == DisconnectReason.LOGGED_OUT


@dataclass(frozen=True)
class CredentialsChanged:
    credentials: dict[str, Any]


@dataclass(frozen=True)
class InboundMessage:
    remote_address: str
    message_id: str
    payload: Any
    from_me: bool = False
    kind: str = "notify"

    @property
    def is_group(self) -> bool:
        return self.remote_address.endswith(GROUP_SUFFIX)


@dataclass(frozen=True)
class ChatsSet:
    chats: list[dict[str, Any]] = field(default_factory=list)


@dataclass(frozen=True)
class EngineError:
    error: Any


EngineEvent = Union[PairingCode, ConnectionUpdate, CredentialsChanged, InboundMessage, ChatsSet, EngineError]


def event_from_frame(frame: dict[str, Any]) -> Optional[EngineEvent]:
    """Decode a JSON frame from the engine sidecar into an event."""

    kind = frame.get("event")
    if kind == "qr":
        return PairingCode(code=str(frame.get("code") or ""))
    if kind == "connection":
        status_code = frame.get("statusCode")
        return ConnectionUpdate(
            state=str(frame.get("state") or ""),
            status_code=int(status_code) if status_code is not None else None,
        )
    if kind == "creds":
        return CredentialsChanged(credentials=dict(frame.get("credentials") or {}))
    if kind == "message":
        key = frame.get("key") or {}
        return InboundMessage(
            remote_address=str(key.get("remoteJid") or ""),
            message_id=str(key.get("id") or ""),
            from_me=bool(key.get("fromMe")),
            payload=frame.get("message"),
            kind=str(frame.get("type") or "notify"),
        )
    if kind == "chats":
        return ChatsSet(chats=list(frame.get("chats") or []))
    if kind == "error":
        return EngineError(error=frame.get("error"))
    return None


__all__ = [
    "ChatsSet",
    "ConnectionUpdate",
    "CredentialsChanged",
    "DIRECT_SUFFIX",
    "DisconnectReason",
    "EngineError",
    "EngineEvent",
    "GROUP_SUFFIX",
    "InboundMessage",
    "PairingCode",
    "event_from_frame",
]
