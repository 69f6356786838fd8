"""Session data model."""

from __future__ import annotations

import asyncio
import enum
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any, Dict, Iterable, List, Optional

from gateway.engine.base import ProtocolClient
from gateway.errors import CreationFailedError

if TYPE_CHECKING:
    from gateway.sessions.machine import SessionMachine


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class SessionMode(enum.Enum):
    LEGACY = "legacy"
    MULTI_DEVICE = "md"

    @classmethod
    def from_flag(cls, legacy: bool) -> SessionMode:
        return cls.LEGACY if legacy else cls.MULTI_DEVICE

    @property
    def legacy(self) -> bool:
        return self is SessionMode.LEGACY


class ChatCache:
    """Chats known for one account, keyed by chat address."""

    def __init__(self, chats: Optional[Iterable[Dict[str, Any]]] = None) -> None:
        self._chats: Dict[str, Dict[str, Any]] = {}
        if chats:
            self.upsert(chats)

    def insert_if_absent(self, chats: Iterable[Dict[str, Any]]) -> int:
        added = 0
        for chat in chats:
            chat_id = chat.get("id")
            if chat_id and chat_id not in self._chats:
                self._chats[chat_id] = dict(chat)
                added += 1
        return added

    def upsert(self, chats: Iterable[Dict[str, Any]]) -> None:
        for chat in chats:
            chat_id = chat.get("id")
            if chat_id:
                self._chats.setdefault(chat_id, {}).update(chat)

    def filter(self, suffix: str) -> List[Dict[str, Any]]:
        return [dict(chat) for chat_id, chat in self._chats.items() if chat_id.endswith(suffix)]

    def to_state(self) -> Dict[str, Any]:
        return {"chats": [dict(chat) for chat in self._chats.values()]}

    @classmethod
    def from_state(cls, state: Dict[str, Any]) -> ChatCache:
        return cls(state.get("chats") or [])

    def __len__(self) -> int:
        return len(self._chats)


@dataclass(frozen=True)
class CreationResult:
    """What a waiting requester receives once creation settles."""

    connected: bool = False
    qr: Optional[str] = None


def _consume_outcome(future: asyncio.Future[CreationResult]) -> None:
    # nobody may be waiting any more; mark the exception as retrieved
    if not future.cancelled():
        future.exception()


class CreationRequest:
    """A caller waiting synchronously for the first outcome of a creation.

    The outcome is delivered at most once; later outcomes are ignored.
    """

    def __init__(self) -> None:
        self._future: asyncio.Future[CreationResult] = asyncio.get_running_loop().create_future()
        self._future.add_done_callback(_consume_outcome)

    @property
    def pending(self) -> bool:
        return not self._future.done()

    def resolve_pairing(self, qr: str) -> bool:
        return self._settle(CreationResult(qr=qr))

    def resolve_ready(self) -> bool:
        return self._settle(CreationResult(connected=True))

    def fail(self) -> bool:
        if not self.pending:
            return False
        self._future.set_exception(CreationFailedError("Unable to create session."))
        return True

    def cancel(self) -> None:
        if self.pending:
            self._future.cancel()

    async def wait(self, timeout: Optional[float] = None) -> CreationResult:
        return await asyncio.wait_for(asyncio.shield(self._future), timeout=timeout)

    def _settle(self, result: CreationResult) -> bool:
        if not self.pending:
            return False
        self._future.set_result(result)
        return True


@dataclass
class Session:
    """One live client instance for one account."""

    id: str
    mode: SessionMode
    client: ProtocolClient
    cache: ChatCache = field(default_factory=ChatCache)
    machine: Optional[SessionMachine] = field(default=None, repr=False)
    created_at: datetime = field(default_factory=_utcnow)

    @property
    def legacy(self) -> bool:
        return self.mode.legacy

    @property
    def status(self) -> str:
        if self.machine is None:
            return "connecting"
        return self.machine.state.value
