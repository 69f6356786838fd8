"""Credential and chat-cache persistence."""

from gateway.storage.base import (
    CredentialStore,
    cache_storage_name,
    parse_session_entry,
    session_storage_name,
)
from gateway.storage.files import FileCredentialStore

__all__ = [
    "CredentialStore",
    "FileCredentialStore",
    "cache_storage_name",
    "parse_session_entry",
    "session_storage_name",
]
