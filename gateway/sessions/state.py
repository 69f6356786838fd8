"""Per-session connection state machine expressed as data.

The transition table and the decision functions below are pure: they never
touch the registry, the retry ledger, the store or the event loop.
``SessionMachine`` asks them what to do and then executes the returned
effects in order.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import Optional

from gateway.engine.events import (
    ChatsSet,
    ConnectionUpdate,
    CredentialsChanged,
    EngineError,
    EngineEvent,
    InboundMessage,
    PairingCode,
)


class SessionState(enum.Enum):
    INITIALIZING = "connecting"
    AWAITING_PAIRING = "awaiting_pairing"
    CONNECTED = "connected"
    DISCONNECTED = "disconnected"
    RECONNECTING = "reconnecting"
    TERMINATED = "terminated"


class Effect(enum.Enum):
    CLEAR_RETRIES = "clear_retries"
    NOTIFY_ONLINE = "notify_online"
    NOTIFY_OFFLINE = "notify_offline"
    RESOLVE_READY = "resolve_ready"
    RESOLVE_PAIRING = "resolve_pairing"
    FAIL_REQUESTER = "fail_requester"
    LOGOUT = "logout"
    TEARDOWN = "teardown"
    SCHEDULE_RECONNECT = "schedule_reconnect"
    PERSIST_CREDENTIALS = "persist_credentials"
    FORWARD_MESSAGE = "forward_message"
    MERGE_CHATS = "merge_chats"


TRANSITIONS: dict[SessionState, frozenset[SessionState]] = {
    # a close before the first open is an ordinary disconnect
    SessionState.INITIALIZING: frozenset(
        {
            SessionState.AWAITING_PAIRING,
            SessionState.CONNECTED,
            SessionState.DISCONNECTED,
            SessionState.TERMINATED,
        }
    ),
    SessionState.AWAITING_PAIRING: frozenset({SessionState.CONNECTED, SessionState.TERMINATED}),
    SessionState.CONNECTED: frozenset({SessionState.DISCONNECTED, SessionState.TERMINATED}),
    SessionState.DISCONNECTED: frozenset({SessionState.RECONNECTING, SessionState.TERMINATED}),
    SessionState.RECONNECTING: frozenset({SessionState.INITIALIZING, SessionState.TERMINATED}),
    SessionState.TERMINATED: frozenset(),
}

FINAL_STATES = frozenset({SessionState.RECONNECTING, SessionState.TERMINATED})


class InvalidTransitionError(ValueError):
    """Raised when a transition is not present in ``TRANSITIONS``."""


def is_valid_transition(current: SessionState, nxt: SessionState) -> bool:
    return nxt in TRANSITIONS.get(current, frozenset())


def ensure_transition(current: SessionState, nxt: SessionState) -> SessionState:
    if not is_valid_transition(current, nxt):
        raise InvalidTransitionError(f"Invalid transition {current.value} → {nxt.value}")
    return nxt


@dataclass(frozen=True)
class Step:
    """Outcome of feeding one event to the machine."""

    target: Optional[SessionState]
    effects: tuple[Effect, ...] = ()


def should_forward(message: InboundMessage) -> bool:
    """Only live direct messages from other accounts reach the downstream consumer."""

    if message.from_me or message.kind != "notify":
        return False
    if not message.remote_address or message.is_group:
        return False
    return True


def resolve_disconnect(*, logged_out: bool, attempts: int, max_retries: int) -> SessionState:
    """Decide between retrying and giving up after a close event."""

    if logged_out or attempts >= max(1, max_retries):
        return SessionState.TERMINATED
    return SessionState.RECONNECTING


def step(
    state: SessionState,
    event: EngineEvent,
    *,
    attempts: int = 0,
    max_retries: int = 1,
) -> Step:
    """Return the target state and the ordered effects for ``event``.

    ``target`` is ``None`` when the event does not change state.
    """

    if state in FINAL_STATES:
        return Step(target=None)

    if isinstance(event, ConnectionUpdate):
        if event.is_open:
            return Step(
                target=SessionState.CONNECTED,
                effects=(Effect.CLEAR_RETRIES, Effect.NOTIFY_ONLINE, Effect.RESOLVE_READY),
            )
        if event.is_close:
            outcome = resolve_disconnect(
                logged_out=event.logged_out,
                attempts=attempts,
                max_retries=max_retries,
            )
            if outcome is SessionState.TERMINATED:
                return Step(
                    target=outcome,
                    effects=(Effect.NOTIFY_OFFLINE, Effect.FAIL_REQUESTER, Effect.TEARDOWN),
                )
            return Step(target=outcome, effects=(Effect.NOTIFY_OFFLINE, Effect.SCHEDULE_RECONNECT))
        return Step(target=None)

    if isinstance(event, PairingCode):
        if state is not SessionState.INITIALIZING:
            return Step(target=None)
        return Step(
            target=SessionState.AWAITING_PAIRING,
            effects=(Effect.RESOLVE_PAIRING, Effect.LOGOUT, Effect.TEARDOWN),
        )

    if isinstance(event, CredentialsChanged):
        return Step(target=None, effects=(Effect.PERSIST_CREDENTIALS,))

    if isinstance(event, InboundMessage):
        if should_forward(event):
            return Step(target=None, effects=(Effect.FORWARD_MESSAGE,))
        return Step(target=None)

    if isinstance(event, ChatsSet):
        return Step(target=None, effects=(Effect.MERGE_CHATS,))

    if isinstance(event, EngineError):
        return Step(target=None, effects=(Effect.NOTIFY_OFFLINE,))

    return Step(target=None)


__all__ = [
    "Effect",
    "FINAL_STATES",
    "InvalidTransitionError",
    "SessionState",
    "Step",
    "TRANSITIONS",
    "ensure_transition",
    "is_valid_transition",
    "resolve_disconnect",
    "should_forward",
    "step",
]
