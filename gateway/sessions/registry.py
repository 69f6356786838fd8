"""Process-wide mapping from session id to the live session."""

from __future__ import annotations

import threading
from typing import TYPE_CHECKING, Callable, Dict, Iterator, List, Optional, Tuple

if TYPE_CHECKING:
    from gateway.sessions.models import Session


class SessionRegistry:
    """Tracks sessions whose protocol client is currently instantiated.

    Every operation holds the lock only for the dictionary access, so no call
    waits on disk or network I/O.
    """

    def __init__(self) -> None:
        self._sessions: Dict[str, Session] = {}
        self._lock = threading.RLock()

    def put(self, session_id: str, session: Session) -> None:
        with self._lock:
            self._sessions[session_id] = session

    def get(self, session_id: str) -> Optional[Session]:
        with self._lock:
            return self._sessions.get(session_id)

    def remove(self, session_id: str, expected: Optional[Session] = None) -> Optional[Session]:
        """Drop ``session_id``; with ``expected`` only if it is still that session."""

        with self._lock:
            current = self._sessions.get(session_id)
            if current is None:
                return None
            if expected is not None and current is not expected:
                return None
            return self._sessions.pop(session_id)

    def contains(self, session_id: str) -> bool:
        with self._lock:
            return session_id in self._sessions

    def snapshot(self) -> List[Tuple[str, Session]]:
        with self._lock:
            return list(self._sessions.items())

    def for_each(self, fn: Callable[[str, Session], None]) -> None:
        """Call ``fn`` over a snapshot; removals during iteration are safe."""

        for session_id, session in self.snapshot():
            fn(session_id, session)

    def ids(self) -> List[str]:
        with self._lock:
            return list(self._sessions)

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)

    def __iter__(self) -> Iterator[str]:
        return iter(self.ids())
