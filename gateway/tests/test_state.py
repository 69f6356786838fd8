import pytest

from gateway.engine import ChatsSet, ConnectionUpdate, CredentialsChanged, DisconnectReason, EngineError, InboundMessage, PairingCode
from gateway.sessions.state import (
    Effect,
    InvalidTransitionError,
    SessionState,
    ensure_transition,
    is_valid_transition,
    resolve_disconnect,
    should_forward,
    step,
)


def test_open_connects_and_clears_retries():
    result = step(SessionState.INITIALIZING, ConnectionUpdate(state="open"))

    assert result.target is SessionState.CONNECTED
    assert result.effects == (Effect.CLEAR_RETRIES, Effect.NOTIFY_ONLINE, Effect.RESOLVE_READY)


def test_pairing_code_is_delivered_then_session_torn_down():
    result = step(SessionState.INITIALIZING, PairingCode(code="abc"))

    assert result.target is SessionState.AWAITING_PAIRING
    assert result.effects == (Effect.RESOLVE_PAIRING, Effect.LOGOUT, Effect.TEARDOWN)


def test_pairing_code_after_connect_is_ignored():
    assert step(SessionState.CONNECTED, PairingCode(code="abc")).target is None


@pytest.mark.parametrize(
    "attempts, max_retries, expected",
    [
        (0, 0, SessionState.RECONNECTING),
        (1, 0, SessionState.TERMINATED),
        (1, 2, SessionState.RECONNECTING),
        (2, 2, SessionState.TERMINATED),
    ],
)
def test_resolve_disconnect_honours_retry_limit(attempts, max_retries, expected):
    assert resolve_disconnect(logged_out=False, attempts=attempts, max_retries=max_retries) is expected


def test_logged_out_always_terminates():
    assert resolve_disconnect(logged_out=True, attempts=0, max_retries=10) is SessionState.TERMINATED


def test_transient_close_schedules_reconnect():
    result = step(
        SessionState.CONNECTED,
        ConnectionUpdate(state="close", status_code=DisconnectReason.RESTART_REQUIRED),
        attempts=0,
        max_retries=3,
    )

    assert result.target is SessionState.RECONNECTING
    assert result.effects == (Effect.NOTIFY_OFFLINE, Effect.SCHEDULE_RECONNECT)


def test_close_without_code_is_transient():
    result = step(SessionState.CONNECTED, ConnectionUpdate(state="close"), attempts=0, max_retries=1)

    assert result.target is SessionState.RECONNECTING


def test_terminal_close_fails_requester_and_tears_down():
    result = step(
        SessionState.CONNECTED,
        ConnectionUpdate(state="close", status_code=DisconnectReason.LOGGED_OUT),
    )

    assert result.target is SessionState.TERMINATED
    assert result.effects == (Effect.NOTIFY_OFFLINE, Effect.FAIL_REQUESTER, Effect.TEARDOWN)


def test_connecting_update_changes_nothing():
    result = step(SessionState.INITIALIZING, ConnectionUpdate(state="connecting"))

    assert result.target is None
    assert result.effects == ()


def test_final_states_ignore_events():
    for state in (SessionState.RECONNECTING, SessionState.TERMINATED):
        result = step(state, ConnectionUpdate(state="open"))
        assert result.target is None
        assert result.effects == ()


def test_data_events_map_to_effects():
    assert step(SessionState.CONNECTED, CredentialsChanged(credentials={})).effects == (Effect.PERSIST_CREDENTIALS,)
    assert step(SessionState.CONNECTED, ChatsSet()).effects == (Effect.MERGE_CHATS,)
    assert step(SessionState.CONNECTED, EngineError(error="boom")).effects == (Effect.NOTIFY_OFFLINE,)


def test_should_forward_filters_own_group_and_history_messages():
    direct = InboundMessage(remote_address="1@s.whatsapp.net", message_id="1", payload={})

    assert should_forward(direct)
    assert not should_forward(InboundMessage(remote_address="1@s.whatsapp.net", message_id="1", payload={}, from_me=True))
    assert not should_forward(InboundMessage(remote_address="1-2@g.us", message_id="1", payload={}))
    assert not should_forward(InboundMessage(remote_address="1@s.whatsapp.net", message_id="1", payload={}, kind="append"))
    assert step(SessionState.CONNECTED, direct).effects == (Effect.FORWARD_MESSAGE,)


def test_transition_table():
    assert is_valid_transition(SessionState.CONNECTED, SessionState.DISCONNECTED)
    assert not is_valid_transition(SessionState.TERMINATED, SessionState.CONNECTED)
    with pytest.raises(InvalidTransitionError):
        ensure_transition(SessionState.RECONNECTING, SessionState.CONNECTED)
