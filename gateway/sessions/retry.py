"""Reconnection attempt accounting and backoff policy."""

from __future__ import annotations

import threading
from dataclasses import dataclass
from typing import Dict


@dataclass(frozen=True)
class BackoffPolicy:
    """Exponential backoff ``min(base * 2**attempt, cap)`` in seconds."""

    base: float = 1.0
    cap: float = 30.0

    def delay(self, attempt: int) -> float:
        return min(self.base * (2 ** max(0, attempt)), self.cap)


class RetryLedger:
    """Per-session reconnection counters.

    Entries appear on the first disconnect, vanish on a successful open and
    are dropped on terminal deletion.
    """

    def __init__(self) -> None:
        self._attempts: Dict[str, int] = {}
        self._lock = threading.RLock()

    def attempts(self, session_id: str) -> int:
        with self._lock:
            return self._attempts.get(session_id, 0)

    def increment(self, session_id: str) -> int:
        with self._lock:
            attempt = self._attempts.get(session_id, 0) + 1
            self._attempts[session_id] = attempt
            return attempt

    def clear(self, session_id: str) -> None:
        with self._lock:
            self._attempts.pop(session_id, None)

    def contains(self, session_id: str) -> bool:
        with self._lock:
            return session_id in self._attempts

    def snapshot(self) -> Dict[str, int]:
        with self._lock:
            return dict(self._attempts)
