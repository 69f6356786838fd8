"""HTTP plumbing shared by the API routers."""

from gateway.http.errors import (
    bad_request,
    conflict,
    gateway_timeout,
    install_error_handlers,
    internal_error,
    not_found,
)
from gateway.http.responses import respond

__all__ = [
    "bad_request",
    "conflict",
    "gateway_timeout",
    "install_error_handlers",
    "internal_error",
    "not_found",
    "respond",
]
