"""Session lifecycle orchestration: create, reconnect, delete, restore, drain."""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import Awaitable, Callable, Coroutine
from typing import Any, Dict, Optional, Set

from gateway.config import GatewaySettings
from gateway.engine import ClientFactory, ConnectionUpdate, InboundMessage, client_options
from gateway.errors import (
    CreationFailedError,
    InvalidSessionIdError,
    SendMessageError,
    SessionExistsError,
    SessionNotFoundError,
)
from gateway.notifier import DownstreamNotifier
from gateway.pairing import render_pairing_data_url
from gateway.sessions.machine import SessionMachine
from gateway.sessions.models import ChatCache, CreationRequest, Session, SessionMode
from gateway.sessions.outbound import send_message
from gateway.sessions.registry import SessionRegistry
from gateway.sessions.retry import BackoffPolicy, RetryLedger
from gateway.storage import (
    CredentialStore,
    cache_storage_name,
    parse_session_entry,
    session_storage_name,
)

LOGGER = logging.getLogger(__name__)

Sleep = Callable[[float], Awaitable[None]]


class SessionManager:
    """Owns every session instance and the reconnection schedule.

    The registry and retry ledger are injected so several managers can run
    side by side (tests build one per case). Only this class mutates them.
    """

    def __init__(
        self,
        *,
        settings: GatewaySettings,
        store: CredentialStore,
        notifier: DownstreamNotifier,
        client_factory: ClientFactory,
        registry: Optional[SessionRegistry] = None,
        ledger: Optional[RetryLedger] = None,
        backoff: Optional[BackoffPolicy] = None,
        pairing_renderer: Callable[[str], str] = render_pairing_data_url,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self.settings = settings
        self.store = store
        self.notifier = notifier
        self.registry = registry if registry is not None else SessionRegistry()
        self.ledger = ledger if ledger is not None else RetryLedger()
        self.backoff = backoff or BackoffPolicy(
            base=settings.reconnect_base_delay_seconds,
            cap=settings.reconnect_max_delay_seconds,
        )
        self._client_factory = client_factory
        self._pairing_renderer = pairing_renderer
        self._sleep = sleep
        self._creating: Set[str] = set()
        self._aborted: Set[str] = set()
        self._pending_reconnects: Dict[str, asyncio.Task[None]] = {}
        self._tasks: Set[asyncio.Task[Any]] = set()

    # ------------------------------------------------------------------ lookup

    def is_session_exists(self, session_id: str) -> bool:
        return self.registry.contains(session_id)

    def get_session(self, session_id: str) -> Optional[Session]:
        return self.registry.get(session_id)

    def require_session(self, session_id: str) -> Session:
        session = self.registry.get(session_id)
        if session is None:
            raise SessionNotFoundError(session_id)
        return session

    def is_reconnect_pending(self, session_id: str) -> bool:
        task = self._pending_reconnects.get(session_id)
        return task is not None and not task.done()

    @property
    def pending_reconnects(self) -> list[str]:
        return [session_id for session_id in self._pending_reconnects if self.is_reconnect_pending(session_id)]

    # ---------------------------------------------------------------- creation

    async def create_session(
        self,
        session_id: str,
        *,
        legacy: bool = False,
        requester: Optional[CreationRequest] = None,
    ) -> Session:
        """Instantiate a client for ``session_id`` and start its state machine.

        An id that is live or mid-creation is rejected. A reconnection still
        sleeping in backoff is superseded by this call.
        """

        if not session_id or not session_id.strip():
            raise InvalidSessionIdError("Session id must not be empty.")
        if self.registry.contains(session_id) or session_id in self._creating:
            raise SessionExistsError(session_id)
        self._cancel_reconnect(session_id)
        return await self._instantiate(session_id, SessionMode.from_flag(legacy), requester)

    async def _instantiate(
        self,
        session_id: str,
        mode: SessionMode,
        requester: Optional[CreationRequest],
    ) -> Session:
        self._creating.add(session_id)
        try:
            name = session_storage_name(session_id, legacy=mode.legacy)
            credentials = await asyncio.to_thread(self.store.load, name)
            cache = ChatCache()
            if not mode.legacy:
                cache = ChatCache.from_state(await asyncio.to_thread(self.store.load, cache_storage_name(session_id)))
            client = self._client_factory(
                credentials,
                client_options(self.settings, session_name=name, legacy=mode.legacy),
            )
            if session_id in self._aborted:
                raise CreationFailedError(f"Session {session_id} was deleted during creation.")
            session = Session(id=session_id, mode=mode, client=client, cache=cache)
            machine = SessionMachine(
                session,
                self,
                max_retries=self.settings.effective_max_retries,
                requester=requester,
            )
            session.machine = machine
            client.subscribe(machine.feed)
            self.registry.put(session_id, session)
        except Exception:
            LOGGER.exception("Error creating session %s", session_id)
            await self.notify_status(session_id, False)
            if requester is not None:
                requester.fail()
            raise
        finally:
            self._creating.discard(session_id)
            self._aborted.discard(session_id)

        machine.start()
        try:
            await client.connect()
        except Exception as exc:  # noqa: BLE001
            LOGGER.warning("Session %s failed to connect: %s", session_id, exc)
            machine.feed(ConnectionUpdate(state="close", status_code=None))
        return session

    # ----------------------------------------------------------- reconnection

    def schedule_reconnect(self, session: Session, requester: Optional[CreationRequest]) -> None:
        attempt = self.ledger.increment(session.id)
        delay = self.backoff.delay(attempt)
        self.registry.remove(session.id, expected=session)
        self._close_client(session)
        LOGGER.info("Reconnecting session=%s attempt=%s delay=%.2fs", session.id, attempt, delay)
        self._cancel_reconnect(session.id)
        task = self._spawn(
            self._reconnect_later(session.id, session.mode, requester, delay),
            name=f"session-reconnect-{session.id}",
        )
        self._pending_reconnects[session.id] = task

    async def _reconnect_later(
        self,
        session_id: str,
        mode: SessionMode,
        requester: Optional[CreationRequest],
        delay: float,
    ) -> None:
        await self._sleep(delay)
        if self._pending_reconnects.get(session_id) is not asyncio.current_task():
            return
        self._pending_reconnects.pop(session_id, None)
        if not self.ledger.contains(session_id):
            LOGGER.debug("Reconnect for session=%s skipped; session was deleted", session_id)
            return
        if self.registry.contains(session_id) or session_id in self._creating:
            LOGGER.debug("Reconnect for session=%s skipped; session already live", session_id)
            return
        try:
            await self._instantiate(session_id, mode, requester)
        except Exception:  # noqa: BLE001
            LOGGER.warning("Reconnect for session=%s failed; deleting session", session_id)
            self.delete_session(session_id, legacy=mode.legacy)

    def _cancel_reconnect(self, session_id: str) -> None:
        task = self._pending_reconnects.pop(session_id, None)
        if task and not task.done() and task is not asyncio.current_task():
            task.cancel()

    # ---------------------------------------------------------------- deletion

    def delete_session(self, session_id: str, *, legacy: Optional[bool] = None) -> None:
        """Drop every trace of ``session_id``: registry, ledger, storage.

        Runs without awaiting so observers never see a half-deleted session;
        safe to call from inside an event handler.
        """

        self._cancel_reconnect(session_id)
        if session_id in self._creating:
            self._aborted.add(session_id)
        session = self.registry.remove(session_id)
        if legacy is None and session is not None:
            legacy = session.legacy
        modes = (True, False) if legacy is None else (legacy,)
        for mode in modes:
            self.store.delete(session_storage_name(session_id, legacy=mode))
        self.store.delete(cache_storage_name(session_id))
        self.ledger.clear(session_id)
        if session is not None:
            if session.machine is not None:
                session.machine.halt()
            self._close_client(session)
        LOGGER.info("Session %s deleted", session_id)
        self._spawn(self.notify_status(session_id, False), name=f"session-status-{session_id}")

    def teardown(self, session: Session) -> None:
        self.delete_session(session.id, legacy=session.legacy)

    async def logout_session(self, session_id: str) -> None:
        session = self.require_session(session_id)
        try:
            await session.client.logout()
        except Exception:  # noqa: BLE001
            LOGGER.debug("Suppress logout error session=%s", session_id, exc_info=True)
        self.delete_session(session_id, legacy=session.legacy)

    # ------------------------------------------------------------ machine hooks

    def retry_attempts(self, session_id: str) -> int:
        return self.ledger.attempts(session_id)

    def clear_retries(self, session_id: str) -> None:
        self.ledger.clear(session_id)

    async def notify_status(self, session_id: str, online: bool) -> None:
        await self.notifier.set_device_status(session_id, 1 if online else 0)

    async def persist_credentials(self, session: Session, credentials: dict[str, Any]) -> None:
        session.client.credentials = credentials
        name = session_storage_name(session.id, legacy=session.legacy)
        await asyncio.to_thread(self.store.save, name, credentials)

    def merge_chats(self, session: Session, chats: list[dict[str, Any]]) -> None:
        if session.legacy:
            session.cache.insert_if_absent(chats)
        else:
            session.cache.upsert(chats)

    async def render_pairing(self, code: str) -> str:
        return await asyncio.to_thread(self._pairing_renderer, code)

    def forward_message(self, session: Session, message: InboundMessage) -> None:
        self._spawn(self._forward(session.id, message), name=f"session-webhook-{session.id}")

    async def _forward(self, session_id: str, message: InboundMessage) -> None:
        reply = await self.notifier.send_webhook(
            session_id,
            sender=message.remote_address,
            message_id=message.message_id,
            message=message.payload,
        )
        if reply is None:
            return
        target = self.registry.get(reply.session_id)
        if target is None:
            LOGGER.warning("Webhook reply for unknown session=%s dropped", reply.session_id)
            return
        try:
            await send_message(target.client, reply.receiver, reply.message, delay_ms=0)
        except SendMessageError:
            LOGGER.warning("Auto-reply from session=%s to %s failed", reply.session_id, reply.receiver)

    # ------------------------------------------------------- startup/shutdown

    async def restore_sessions(self) -> list[str]:
        """Recreate every session found in storage, without a requester."""

        entries = await asyncio.to_thread(self.store.list_entries)
        restored: list[str] = []
        for entry in entries:
            parsed = parse_session_entry(entry)
            if parsed is None:
                continue
            session_id, legacy = parsed
            try:
                await self.create_session(session_id, legacy=legacy)
            except Exception:  # noqa: BLE001
                LOGGER.exception("Failed to restore session %s", session_id)
                continue
            restored.append(session_id)
        LOGGER.info("Restored %s session(s) from storage", len(restored))
        return restored

    async def drain(self, timeout: Optional[float] = None) -> int:
        """Persist every live multi-device chat cache within ``timeout`` seconds."""

        budget = self.settings.shutdown_drain_timeout_seconds if timeout is None else timeout
        writes = [
            asyncio.to_thread(self.store.save, cache_storage_name(session_id), session.cache.to_state())
            for session_id, session in self.registry.snapshot()
            if not session.legacy
        ]
        if not writes:
            return 0
        LOGGER.info("Running cleanup before exit; persisting %s chat cache(s)", len(writes))
        results = await asyncio.wait_for(asyncio.gather(*writes, return_exceptions=True), timeout=budget)
        failures = [result for result in results if isinstance(result, Exception)]
        for failure in failures:
            LOGGER.warning("Chat cache persistence failed: %s", failure)
        return len(writes) - len(failures)

    async def shutdown(self) -> None:
        try:
            await self.drain()
        except asyncio.TimeoutError:
            LOGGER.warning("Chat cache drain exceeded its time budget")
        for session_id in list(self._pending_reconnects):
            self._cancel_reconnect(session_id)
        for _, session in self.registry.snapshot():
            if session.machine is not None:
                session.machine.halt()
        tasks = [task for task in self._tasks if not task.done()]
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    # ----------------------------------------------------------------- helpers

    def _close_client(self, session: Session) -> None:
        async def _close() -> None:
            with contextlib.suppress(Exception):
                await session.client.close()

        self._spawn(_close(), name=f"session-close-{session.id}")

    def _spawn(self, coro: Coroutine[Any, Any, Any], *, name: str) -> asyncio.Task[Any]:
        task = asyncio.create_task(coro, name=name)
        self._tasks.add(task)
        task.add_done_callback(self._task_done)
        return task

    def _task_done(self, task: asyncio.Task[Any]) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            LOGGER.error("Background task %s failed", task.get_name(), exc_info=exc)