import asyncio
from typing import Any, Callable, Optional

import pytest

from gateway.config import GatewaySettings
from gateway.engine import AddressLookup, ClientOptions, ProtocolClient
from gateway.notifier import WebhookReply
from gateway.sessions import SessionManager
from gateway.storage import CredentialStore
from gateway.storage.base import CACHE_SUFFIX, MULTI_DEVICE_PREFIX


class FakeClient(ProtocolClient):
    """Protocol client driven by the test through ``emit``."""

    def __init__(self, credentials: dict[str, Any], options: ClientOptions) -> None:
        super().__init__(credentials, options)
        self.sent: list[tuple[str, Any]] = []
        self.missing: set[str] = set()
        self.groups: dict[str, dict[str, Any]] = {}
        self.connect_error: Optional[Exception] = None
        self.fail_send = False
        self.connected = False
        self.logged_out = False
        self.closed = False

    async def connect(self) -> None:
        if self.connect_error is not None:
            raise self.connect_error
        self.connected = True

    async def send(self, address: str, payload: Any) -> Any:
        if self.fail_send:
            raise RuntimeError("engine rejected the message")
        self.sent.append((address, payload))
        return {"status": "sent"}

    async def logout(self) -> None:
        self.logged_out = True

    async def lookup_address(self, address: str) -> AddressLookup:
        return AddressLookup(exists=address not in self.missing, address=address)

    async def group_metadata(self, address: str) -> dict[str, Any]:
        if address not in self.groups:
            raise RuntimeError("item-not-found")
        return self.groups[address]

    async def close(self) -> None:
        self.closed = True


class ClientRecorder:
    """Client factory remembering every instance it built."""

    def __init__(self, client_cls: type[FakeClient] = FakeClient) -> None:
        self.client_cls = client_cls
        self.clients: list[FakeClient] = []
        self.connect_failures = 0

    def __call__(self, credentials: dict[str, Any], options: ClientOptions) -> FakeClient:
        client = self.client_cls(credentials, options)
        if self.connect_failures > 0:
            self.connect_failures -= 1
            client.connect_error = ConnectionError("engine unreachable")
        self.clients.append(client)
        return client

    @property
    def latest(self) -> FakeClient:
        return self.clients[-1]

    def __len__(self) -> int:
        return len(self.clients)


class MemoryStore(CredentialStore):
    def __init__(self) -> None:
        self.data: dict[str, dict[str, Any]] = {}
        self.deleted: list[str] = []
        self.load_error: Optional[Exception] = None

    def load(self, name: str) -> dict[str, Any]:
        if self.load_error is not None:
            raise self.load_error
        return dict(self.data.get(name, {}))

    def save(self, name: str, state: dict[str, Any]) -> None:
        self.data[name] = dict(state)

    def delete(self, name: str) -> None:
        self.deleted.append(name)
        self.data.pop(name, None)

    def list_entries(self) -> list[str]:
        entries = []
        for name in self.data:
            if name.startswith(MULTI_DEVICE_PREFIX) and not name.endswith(CACHE_SUFFIX):
                entries.append(name)
            else:
                entries.append(f"{name}.json")
        return sorted(entries)


class RecordingNotifier:
    def __init__(self) -> None:
        self.statuses: list[tuple[str, int]] = []
        self.webhooks: list[dict[str, Any]] = []
        self.reply: Optional[WebhookReply] = None
        self.closed = False

    async def set_device_status(self, session_id: str, status: int) -> None:
        self.statuses.append((session_id, status))

    async def send_webhook(self, session_id: str, *, sender: str, message_id: str, message: Any):
        self.webhooks.append(
            {"session_id": session_id, "from": sender, "message_id": message_id, "message": message}
        )
        return self.reply

    def close(self) -> None:
        self.closed = True


class GatedSleep:
    """Records backoff delays; blocks until released when ``hold`` is set."""

    def __init__(self) -> None:
        self.delays: list[float] = []
        self.hold = False
        self._gate: Optional[asyncio.Event] = None

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)
        if self.hold:
            if self._gate is None:
                self._gate = asyncio.Event()
            await self._gate.wait()

    def release(self) -> None:
        self.hold = False
        if self._gate is not None:
            self._gate.set()


async def eventually(predicate: Callable[[], bool], timeout: float = 2.0) -> None:
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not met before timeout")
        await asyncio.sleep(0.005)


class Harness:
    def __init__(self, settings: GatewaySettings, client_cls: type[FakeClient] = FakeClient) -> None:
        self.settings = settings
        self.clients = ClientRecorder(client_cls)
        self.store = MemoryStore()
        self.notifier = RecordingNotifier()
        self.sleep = GatedSleep()
        self.manager = SessionManager(
            settings=settings,
            store=self.store,
            notifier=self.notifier,
            client_factory=self.clients,
            pairing_renderer=lambda code: f"qr:{code}",
            sleep=self.sleep,
        )
        self.eventually = eventually


@pytest.fixture
def gateway_settings(tmp_path) -> GatewaySettings:
    return GatewaySettings(
        sessions_dir=tmp_path / "sessions",
        max_retries=2,
        create_timeout_seconds=2.0,
        shutdown_drain_timeout_seconds=2.0,
        default_send_delay_ms=0,
        engine="dummy",
    )


@pytest.fixture
def harness(gateway_settings) -> Harness:
    return Harness(gateway_settings)
