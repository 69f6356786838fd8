"""Exception hierarchy shared by the gateway layers."""

from __future__ import annotations


class GatewayError(Exception):
    """Base error for gateway operations."""


class InvalidSessionIdError(GatewayError, ValueError):
    """Raised when a session id is empty or blank."""


class SessionExistsError(GatewayError):
    """Raised when a session id is already live or being created."""


class SessionNotFoundError(GatewayError):
    """Raised when a session id is not present in the registry."""


class CreationFailedError(GatewayError):
    """Raised to a waiting requester when session creation fails."""


class SendMessageError(GatewayError):
    """Raised when the engine rejects an outbound send."""


class StorageError(GatewayError):
    """Raised for credential or cache persistence failures."""


class NotifierError(GatewayError):
    """Base error for downstream notifier calls."""


class NotifierNotConfiguredError(NotifierError):
    """Raised when the downstream base URL is missing."""


__all__ = [
    "CreationFailedError",
    "GatewayError",
    "InvalidSessionIdError",
    "NotifierError",
    "NotifierNotConfiguredError",
    "SendMessageError",
    "SessionExistsError",
    "SessionNotFoundError",
    "StorageError",
]
