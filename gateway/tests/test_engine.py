import asyncio
import json

import pytest

from gateway.engine import (
    ChatsSet,
    ClientOptions,
    ConnectionUpdate,
    CredentialsChanged,
    DummyProtocolClient,
    InboundMessage,
    PairingCode,
    WebSocketProtocolClient,
)
from gateway.engine import websocket as websocket_module
from gateway.engine.events import event_from_frame
from gateway.engine.websocket import EngineRequestError


class _FakeSocket:
    def __init__(self) -> None:
        self.sent = []
        self.incoming: asyncio.Queue = asyncio.Queue()
        self.closed = False
        self.replies = {}

    async def send(self, data: str) -> None:
        frame = json.loads(data)
        self.sent.append(frame)
        reply = self.replies.get(frame.get("op"))
        if reply is not None:
            self.push({"event": "result", "id": frame["id"], **reply})

    def push(self, frame) -> None:
        self.incoming.put_nowait(json.dumps(frame))

    def drop(self) -> None:
        self.incoming.put_nowait(None)

    def __aiter__(self):
        return self

    async def __anext__(self):
        item = await self.incoming.get()
        if item is None:
            raise StopAsyncIteration
        return item

    async def close(self) -> None:
        self.closed = True


async def _connected_client(monkeypatch, credentials=None):
    socket = _FakeSocket()

    async def _connect(url):
        return socket

    monkeypatch.setattr(websocket_module.websockets, "connect", _connect)
    client = WebSocketProtocolClient(
        credentials or {},
        ClientOptions(session_name="md_s1", default_query_timeout_ms=1000),
        url="ws://engine.test/engine",
    )
    events = []
    client.subscribe(events.append)
    await client.connect()
    return client, socket, events


async def _wait_for(predicate):
    for _ in range(200):
        if predicate():
            return
        await asyncio.sleep(0.005)
    raise AssertionError("condition not met")


def test_event_from_frame_decodes_known_frames():
    assert event_from_frame({"event": "qr", "code": "abc"}) == PairingCode(code="abc")
    assert event_from_frame({"event": "connection", "state": "close", "statusCode": 401}) == ConnectionUpdate(
        state="close", status_code=401
    )
    assert event_from_frame({"event": "creds", "credentials": {"me": 1}}) == CredentialsChanged(credentials={"me": 1})
    assert event_from_frame({"event": "chats", "chats": [{"id": "x"}]}) == ChatsSet(chats=[{"id": "x"}])
    message = event_from_frame(
        {
            "event": "message",
            "type": "append",
            "key": {"remoteJid": "1@s.whatsapp.net", "id": "m1", "fromMe": True},
            "message": {"text": "hi"},
        }
    )
    assert message == InboundMessage(
        remote_address="1@s.whatsapp.net", message_id="m1", payload={"text": "hi"}, from_me=True, kind="append"
    )
    assert event_from_frame({"event": "presence"}) is None


@pytest.mark.asyncio
async def test_dummy_client_pairs_without_credentials_and_opens_with_them():
    fresh = DummyProtocolClient({}, ClientOptions(session_name="md_a"))
    known = DummyProtocolClient({"me": {"id": "1"}}, ClientOptions(session_name="md_b"))
    fresh_events, known_events = [], []
    fresh.subscribe(fresh_events.append)
    known.subscribe(known_events.append)

    await fresh.connect()
    await known.connect()

    assert isinstance(fresh_events[0], PairingCode)
    assert known_events == [ConnectionUpdate(state="open")]


@pytest.mark.asyncio
async def test_websocket_client_starts_session_and_emits_events(monkeypatch):
    client, socket, events = await _connected_client(monkeypatch, {"me": {"id": "1"}})

    socket.push({"event": "connection", "state": "open"})
    socket.push({"event": "qr", "code": "ignored-later"})
    await _wait_for(lambda: len(events) == 2)

    start = socket.sent[0]
    assert start["op"] == "start"
    assert start["session"] == "md_s1"
    assert start["credentials"] == {"me": {"id": "1"}}
    assert events == [ConnectionUpdate(state="open"), PairingCode(code="ignored-later")]
    await client.close()
    assert socket.closed


@pytest.mark.asyncio
async def test_websocket_requests_resolve_from_result_frames(monkeypatch):
    client, socket, _ = await _connected_client(monkeypatch)
    socket.replies["send"] = {"ok": True, "data": {"status": "sent"}}
    socket.replies["lookup"] = {"ok": True, "data": [{"exists": True, "jid": "1@s.whatsapp.net"}]}
    socket.replies["group_metadata"] = {"ok": False, "error": "item-not-found"}

    assert await client.send("1@s.whatsapp.net", {"text": "hi"}) == {"status": "sent"}
    lookup = await client.lookup_address("1@s.whatsapp.net")
    assert lookup.exists and lookup.address == "1@s.whatsapp.net"
    with pytest.raises(EngineRequestError):
        await client.group_metadata("1-2@g.us")
    await client.close()


@pytest.mark.asyncio
async def test_websocket_drop_surfaces_as_transient_close(monkeypatch):
    client, socket, events = await _connected_client(monkeypatch)

    socket.drop()

    await _wait_for(lambda: len(events) == 1)
    assert events == [ConnectionUpdate(state="close", status_code=None)]
    await client.close()


@pytest.mark.asyncio
async def test_websocket_explicit_close_is_not_duplicated(monkeypatch):
    client, socket, events = await _connected_client(monkeypatch)

    socket.push({"event": "connection", "state": "close", "statusCode": 401})
    socket.drop()

    await _wait_for(lambda: len(events) >= 1)
    await asyncio.sleep(0.02)
    assert events == [ConnectionUpdate(state="close", status_code=401)]
    await client.close()


@pytest.mark.asyncio
async def test_websocket_skips_frames_it_cannot_decode(monkeypatch):
    client, socket, events = await _connected_client(monkeypatch)

    socket.push([1, 2, 3])
    socket.push({"event": "connection", "state": "close", "statusCode": "not-a-number"})
    socket.incoming.put_nowait("{broken")
    socket.push({"event": "connection", "state": "open"})

    await _wait_for(lambda: len(events) == 1)
    assert events == [ConnectionUpdate(state="open")]
    assert not client._recv_task.done()
    await client.close()


@pytest.mark.asyncio
async def test_websocket_receive_failure_surfaces_as_transient_close(monkeypatch):
    client, socket, events = await _connected_client(monkeypatch)

    def _explode(frame):
        raise RuntimeError("decoder bug")

    monkeypatch.setattr(websocket_module, "event_from_frame", _explode)
    socket.push({"event": "chats", "chats": []})

    await _wait_for(lambda: len(events) == 1)
    assert events == [ConnectionUpdate(state="close", status_code=None)]
    await client.close()
