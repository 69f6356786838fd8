"""Protocol client abstraction consumed by the session manager."""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any, Optional

from gateway.engine.events import EngineEvent

EventHandler = Callable[[EngineEvent], Awaitable[None] | None]


@dataclass(frozen=True)
class ClientOptions:
    """Engine options handed to every client instance."""

    session_name: str
    legacy: bool = False
    version: tuple[int, ...] = (2, 3000, 64123515)
    browser: tuple[str, ...] = ("Ubuntu", "Chrome", "22.04.4")
    connect_timeout_ms: int = 60_000
    default_query_timeout_ms: int = 60_000
    retry_request_delay_ms: int = 250
    max_msg_retries: int = 2
    mutex_timeout_ms: int = 60_000
    extra: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class AddressLookup:
    exists: bool
    address: Optional[str] = None


class ProtocolClient(ABC):
    """One engine connection for one messaging account."""

    def __init__(self, credentials: dict[str, Any], options: ClientOptions) -> None:
        self.credentials = credentials
        self.options = options
        self._handlers: list[EventHandler] = []

    @property
    def legacy(self) -> bool:
        return self.options.legacy

    def subscribe(self, handler: EventHandler) -> None:
        """Register an event handler; must happen before ``connect``."""

        self._handlers.append(handler)

    async def emit(self, event: EngineEvent) -> None:
        for handler in list(self._handlers):
            result = handler(event)
            if result is not None:
                await result

    @abstractmethod
    async def connect(self) -> None:
        ...

    @abstractmethod
    async def send(self, address: str, payload: Any) -> Any:
        ...

    @abstractmethod
    async def logout(self) -> None:
        ...

    @abstractmethod
    async def lookup_address(self, address: str) -> AddressLookup:
        ...

    @abstractmethod
    async def group_metadata(self, address: str) -> dict[str, Any]:
        ...

    @abstractmethod
    async def close(self) -> None:
        ...


ClientFactory = Callable[[dict[str, Any], ClientOptions], ProtocolClient]
