import asyncio

import pytest

from gateway.engine import ClientOptions
from gateway.errors import SendMessageError
from gateway.sessions import ChatCache, Session, SessionMode
from gateway.sessions.outbound import send_message
from gateway.sessions.queries import format_group, format_phone, get_chat_list, get_group_metadata, is_exists

from conftest import FakeClient


def _client() -> FakeClient:
    return FakeClient({}, ClientOptions(session_name="md_s1"))


def test_format_phone_and_group():
    assert format_phone("+62 812-3456") == "628123456@s.whatsapp.net"
    assert format_phone("62812@s.whatsapp.net") == "62812@s.whatsapp.net"
    assert format_group("1234-5678") == "1234-5678@g.us"
    assert format_group("1234-5678@g.us") == "1234-5678@g.us"


def test_chat_list_filters_by_address_kind():
    cache = ChatCache([{"id": "1@s.whatsapp.net"}, {"id": "9-9@g.us"}])
    session = Session(id="s1", mode=SessionMode.MULTI_DEVICE, client=_client(), cache=cache)

    assert get_chat_list(session) == [{"id": "1@s.whatsapp.net"}]
    assert get_chat_list(session, is_group=True) == [{"id": "9-9@g.us"}]


@pytest.mark.asyncio
async def test_is_exists_for_direct_and_group_addresses():
    client = _client()
    client.missing.add("2@s.whatsapp.net")
    client.groups["9-9@g.us"] = {"id": "9-9@g.us", "subject": "team"}

    assert await is_exists(client, "1@s.whatsapp.net")
    assert not await is_exists(client, "2@s.whatsapp.net")
    assert await is_exists(client, "9-9@g.us", is_group=True)
    assert not await is_exists(client, "0-0@g.us", is_group=True)
    assert (await get_group_metadata(client, "9-9@g.us"))["subject"] == "team"


@pytest.mark.asyncio
async def test_send_message_waits_then_sends():
    loop = asyncio.get_running_loop()
    client = _client()
    started = loop.time()

    result = await send_message(client, "1@s.whatsapp.net", {"text": "hi"}, delay_ms=30)

    assert result == {"status": "sent"}
    assert loop.time() - started >= 0.025
    assert client.sent == [("1@s.whatsapp.net", {"text": "hi"})]


@pytest.mark.asyncio
async def test_send_failure_carries_no_details():
    client = _client()
    client.fail_send = True

    with pytest.raises(SendMessageError) as excinfo:
        await send_message(client, "1@s.whatsapp.net", "hi", delay_ms=0)

    assert str(excinfo.value) == ""
    assert excinfo.value.__cause__ is None
