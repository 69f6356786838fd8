"""Protocol client that bridges to an engine sidecar over WebSocket."""

from __future__ import annotations

import asyncio
import contextlib
import json
import logging
import uuid
from typing import Any, Optional

import websockets
from websockets.exceptions import ConnectionClosed

from gateway.engine.base import AddressLookup, ClientOptions, ProtocolClient
from gateway.engine.events import ConnectionUpdate, event_from_frame

LOGGER = logging.getLogger(__name__)


class EngineRequestError(RuntimeError):
    """Raised when the engine answers a request with ``ok: false``."""


class WebSocketProtocolClient(ProtocolClient):
    """Speaks JSON frames with the engine sidecar, one socket per session."""

    def __init__(self, credentials: dict[str, Any], options: ClientOptions, *, url: str) -> None:
        super().__init__(credentials, options)
        self._url = url
        self._ws: Optional[Any] = None
        self._recv_task: Optional[asyncio.Task[None]] = None
        self._pending: dict[str, asyncio.Future[Any]] = {}
        self._closing = False
        self._close_emitted = False

    async def connect(self) -> None:
        LOGGER.info("Connecting session=%s to engine at %s", self.options.session_name, self._url)
        self._ws = await websockets.connect(self._url)
        await self._send_frame(
            {
                "op": "start",
                "session": self.options.session_name,
                "legacy": self.options.legacy,
                "credentials": self.credentials,
                "options": {
                    "version": list(self.options.version),
                    "browser": list(self.options.browser),
                    "connectTimeoutMs": self.options.connect_timeout_ms,
                    "defaultQueryTimeoutMs": self.options.default_query_timeout_ms,
                    "retryRequestDelayMs": self.options.retry_request_delay_ms,
                    "maxMsgRetries": self.options.max_msg_retries,
                    "mutexTimeoutMs": self.options.mutex_timeout_ms,
                    **self.options.extra,
                },
            }
        )
        self._recv_task = asyncio.create_task(
            self._receive_loop(), name=f"engine-recv-{self.options.session_name}"
        )

    async def send(self, address: str, payload: Any) -> Any:
        return await self._request("send", address=address, payload=payload)

    async def logout(self) -> None:
        await self._request("logout")

    async def lookup_address(self, address: str) -> AddressLookup:
        result = await self._request("lookup", address=address)
        if isinstance(result, list):
            result = result[0] if result else {}
        result = result or {}
        return AddressLookup(exists=bool(result.get("exists")), address=result.get("jid"))

    async def group_metadata(self, address: str) -> dict[str, Any]:
        return dict(await self._request("group_metadata", address=address) or {})

    async def close(self) -> None:
        self._closing = True
        if self._recv_task:
            self._recv_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._recv_task
        self._recv_task = None
        if self._ws:
            LOGGER.info("Closing engine socket session=%s", self.options.session_name)
            await self._ws.close()
            self._ws = None
        self._fail_pending(ConnectionError("engine connection closed"))

    async def _request(self, op: str, **fields: Any) -> Any:
        request_id = uuid.uuid4().hex
        future: asyncio.Future[Any] = asyncio.get_running_loop().create_future()
        self._pending[request_id] = future
        try:
            await self._send_frame({"op": op, "id": request_id, **fields})
            timeout = self.options.default_query_timeout_ms / 1000
            return await asyncio.wait_for(future, timeout=timeout)
        finally:
            self._pending.pop(request_id, None)

    async def _send_frame(self, frame: dict[str, Any]) -> None:
        if not self._ws:
            raise ConnectionError("engine socket not connected")
        await self._ws.send(json.dumps(frame, default=str))

    async def _receive_loop(self) -> None:
        assert self._ws is not None
        try:
            async for raw in self._ws:
                if isinstance(raw, bytes):
                    raw = raw.decode("utf-8")
                try:
                    frame = json.loads(raw)
                except ValueError:
                    LOGGER.warning("Dropping malformed engine frame session=%s", self.options.session_name)
                    continue
                if not isinstance(frame, dict):
                    LOGGER.warning("Dropping non-object engine frame session=%s", self.options.session_name)
                    continue
                if frame.get("event") == "result":
                    self._resolve(frame)
                    continue
                try:
                    event = event_from_frame(frame)
                except (TypeError, ValueError):
                    LOGGER.warning(
                        "Dropping undecodable %s frame session=%s",
                        frame.get("event"),
                        self.options.session_name,
                    )
                    continue
                if event is None:
                    LOGGER.debug("Ignoring engine frame %s", frame.get("event"))
                    continue
                if isinstance(event, ConnectionUpdate) and event.is_close:
                    self._close_emitted = True
                await self.emit(event)
        except asyncio.CancelledError:
            raise
        except ConnectionClosed as exc:
            LOGGER.warning("Engine socket dropped session=%s: %s", self.options.session_name, exc)
        except Exception:  # noqa: BLE001
            LOGGER.exception("Engine receive loop failed session=%s", self.options.session_name)
        finally:
            self._fail_pending(ConnectionError("engine connection closed"))
        if not self._closing and not self._close_emitted:
            # socket loss without an explicit close frame counts as a transient close
            self._close_emitted = True
            await self.emit(ConnectionUpdate(state="close", status_code=None))

    def _resolve(self, frame: dict[str, Any]) -> None:
        future = self._pending.get(str(frame.get("id")))
        if future is None or future.done():
            return
        if frame.get("ok", True):
            future.set_result(frame.get("data"))
        else:
            future.set_exception(EngineRequestError(str(frame.get("error") or "engine request failed")))

    def _fail_pending(self, exc: Exception) -> None:
        for future in self._pending.values():
            if not future.done():
                future.set_exception(exc)
