"""Session lifecycle: registry, retry ledger, state machine and manager."""

from gateway.sessions.machine import SessionMachine
from gateway.sessions.manager import SessionManager
from gateway.sessions.models import ChatCache, CreationRequest, CreationResult, Session, SessionMode
from gateway.sessions.registry import SessionRegistry
from gateway.sessions.retry import BackoffPolicy, RetryLedger
from gateway.sessions.state import SessionState

__all__ = [
    "BackoffPolicy",
    "ChatCache",
    "CreationRequest",
    "CreationResult",
    "RetryLedger",
    "Session",
    "SessionMachine",
    "SessionManager",
    "SessionMode",
    "SessionRegistry",
    "SessionState",
]
