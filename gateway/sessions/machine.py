"""Runs the connection state machine for one protocol-client instance."""

from __future__ import annotations

import asyncio
import contextlib
import logging
from typing import TYPE_CHECKING, Any, Optional, Protocol

from gateway.engine.events import (
    ChatsSet,
    ConnectionUpdate,
    CredentialsChanged,
    EngineError,
    EngineEvent,
    InboundMessage,
    PairingCode,
)
from gateway.sessions.state import (
    FINAL_STATES,
    Effect,
    InvalidTransitionError,
    SessionState,
    ensure_transition,
    step,
)

if TYPE_CHECKING:
    from gateway.sessions.models import CreationRequest, Session

LOGGER = logging.getLogger(__name__)


class SessionHooks(Protocol):
    """Side effects the machine delegates to the lifecycle manager."""

    def retry_attempts(self, session_id: str) -> int: ...

    def clear_retries(self, session_id: str) -> None: ...

    async def notify_status(self, session_id: str, online: bool) -> None: ...

    async def persist_credentials(self, session: Session, credentials: dict[str, Any]) -> None: ...

    def forward_message(self, session: Session, message: InboundMessage) -> None: ...

    def merge_chats(self, session: Session, chats: list[dict[str, Any]]) -> None: ...

    async def render_pairing(self, code: str) -> str: ...

    def schedule_reconnect(self, session: Session, requester: Optional[CreationRequest]) -> None: ...

    def teardown(self, session: Session) -> None: ...


class SessionMachine:
    """Feeds engine events, in emission order, through ``handle``.

    One machine exists per client instance. Once it reaches ``RECONNECTING``
    or ``TERMINATED`` it ignores further events; the next instance gets a
    fresh machine.
    """

    def __init__(
        self,
        session: Session,
        hooks: SessionHooks,
        *,
        max_retries: int,
        requester: Optional[CreationRequest] = None,
    ) -> None:
        self.session = session
        self.requester = requester
        self.state = SessionState.INITIALIZING
        self._hooks = hooks
        self._max_retries = max_retries
        self._queue: asyncio.Queue[EngineEvent] = asyncio.Queue()
        self._pump_task: Optional[asyncio.Task[None]] = None

    @property
    def done(self) -> bool:
        return self.state in FINAL_STATES

    def feed(self, event: EngineEvent) -> None:
        """Client subscription callback; never blocks the engine."""

        if self.done:
            LOGGER.debug("Dropping %s for finished session=%s", type(event).__name__, self.session.id)
            return
        self._queue.put_nowait(event)

    def start(self) -> None:
        if self._pump_task is None or self._pump_task.done():
            self._pump_task = asyncio.create_task(self._pump(), name=f"session-events-{self.session.id}")

    async def stop(self) -> None:
        self.halt()
        task = self._pump_task
        if task and task is not asyncio.current_task():
            with contextlib.suppress(asyncio.CancelledError):
                await task

    def halt(self) -> None:
        """Force the machine to ``TERMINATED`` without running effects."""

        if self.state is not SessionState.TERMINATED:
            self._move(SessionState.TERMINATED, force=True)
        task = self._pump_task
        if task and not task.done() and task is not asyncio.current_task():
            task.cancel()

    async def handle(self, event: EngineEvent) -> None:
        if self.done:
            return
        result = step(
            self.state,
            event,
            attempts=self._hooks.retry_attempts(self.session.id),
            max_retries=self._max_retries,
        )
        try:
            if isinstance(event, ConnectionUpdate) and event.is_close and result.target is not None:
                self._move(SessionState.DISCONNECTED)
            if result.target is not None and result.target is not self.state:
                self._move(result.target)
        except InvalidTransitionError:
            LOGGER.warning(
                "Ignoring %s for session=%s in state %s",
                type(event).__name__,
                self.session.id,
                self.state.value,
            )
            return
        for effect in result.effects:
            await self._apply(effect, event)

    async def _pump(self) -> None:
        while not self.done:
            event = await self._queue.get()
            try:
                await self.handle(event)
            except asyncio.CancelledError:
                raise
            except Exception:  # noqa: BLE001
                LOGGER.exception(
                    "Session event handler failed session=%s event=%s",
                    self.session.id,
                    type(event).__name__,
                )

    def _move(self, target: SessionState, *, force: bool = False) -> None:
        previous = self.state
        self.state = target if force else ensure_transition(previous, target)
        LOGGER.info("Session transition session=%s from=%s to=%s", self.session.id, previous.value, target.value)

    async def _apply(self, effect: Effect, event: EngineEvent) -> None:
        session = self.session
        hooks = self._hooks
        if effect is Effect.CLEAR_RETRIES:
            hooks.clear_retries(session.id)
        elif effect is Effect.NOTIFY_ONLINE:
            await hooks.notify_status(session.id, True)
        elif effect is Effect.NOTIFY_OFFLINE:
            if isinstance(event, EngineError):
                LOGGER.error("Session %s engine error: %s", session.id, event.error)
            await hooks.notify_status(session.id, False)
        elif effect is Effect.RESOLVE_READY:
            if self.requester is not None:
                self.requester.resolve_ready()
        elif effect is Effect.RESOLVE_PAIRING:
            assert isinstance(event, PairingCode)
            await self._deliver_pairing(event.code)
        elif effect is Effect.FAIL_REQUESTER:
            if self.requester is not None and self.requester.fail():
                LOGGER.info("Session %s creation failed; requester notified", session.id)
        elif effect is Effect.LOGOUT:
            try:
                await session.client.logout()
            except Exception:  # noqa: BLE001
                LOGGER.debug("Suppress logout error session=%s", session.id, exc_info=True)
        elif effect is Effect.TEARDOWN:
            if self.state is not SessionState.TERMINATED:
                self._move(SessionState.TERMINATED)
            hooks.teardown(session)
        elif effect is Effect.SCHEDULE_RECONNECT:
            hooks.schedule_reconnect(session, self.requester)
        elif effect is Effect.PERSIST_CREDENTIALS:
            assert isinstance(event, CredentialsChanged)
            await hooks.persist_credentials(session, event.credentials)
        elif effect is Effect.FORWARD_MESSAGE:
            assert isinstance(event, InboundMessage)
            hooks.forward_message(session, event)
        elif effect is Effect.MERGE_CHATS:
            assert isinstance(event, ChatsSet)
            hooks.merge_chats(session, event.chats)

    async def _deliver_pairing(self, code: str) -> None:
        requester = self.requester
        if requester is None or not requester.pending:
            LOGGER.info("Pairing code issued for session=%s with no waiting requester", self.session.id)
            LOGGER.debug("Pairing code session=%s code=%s", self.session.id, code)
            return
        try:
            artifact = await self._hooks.render_pairing(code)
        except Exception:  # noqa: BLE001
            LOGGER.exception("Unable to render pairing code for session=%s", self.session.id)
            requester.fail()
            return
        requester.resolve_pairing(artifact)
