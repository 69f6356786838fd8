"""Credential and chat-cache persistence contract."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Optional

LEGACY_PREFIX = "legacy_"
MULTI_DEVICE_PREFIX = "md_"
CACHE_SUFFIX = "_store"


def session_storage_name(session_id: str, *, legacy: bool) -> str:
    return f"{LEGACY_PREFIX if legacy else MULTI_DEVICE_PREFIX}{session_id}"


def cache_storage_name(session_id: str) -> str:
    return f"{session_id}{CACHE_SUFFIX}"


def parse_session_entry(entry: str) -> Optional[tuple[str, bool]]:
    """Map a storage directory entry back to ``(session_id, legacy)``.

    Cache files and unrelated entries yield ``None``.
    """

    if not entry.startswith((MULTI_DEVICE_PREFIX, LEGACY_PREFIX)):
        return None
    if entry.endswith(f"{CACHE_SUFFIX}.json"):
        return None
    name = entry[: -len(".json")] if entry.endswith(".json") else entry
    legacy = not name.startswith(MULTI_DEVICE_PREFIX)
    session_id = name[len(LEGACY_PREFIX) :] if legacy else name[len(MULTI_DEVICE_PREFIX) :]
    if not session_id:
        return None
    return session_id, legacy


class CredentialStore(ABC):
    """Load/save/delete opaque state addressed by a storage name."""

    @abstractmethod
    def load(self, name: str) -> dict[str, Any]:
        """Return the saved state, or a fresh empty mapping."""

    @abstractmethod
    def save(self, name: str, state: dict[str, Any]) -> None:
        ...

    @abstractmethod
    def delete(self, name: str) -> None:
        """Remove the named state; missing names are not an error."""

    @abstractmethod
    def list_entries(self) -> list[str]:
        ...


__all__ = [
    "CACHE_SUFFIX",
    "CredentialStore",
    "LEGACY_PREFIX",
    "MULTI_DEVICE_PREFIX",
    "cache_storage_name",
    "parse_session_entry",
    "session_storage_name",
]
