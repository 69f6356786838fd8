"""Shared error helpers for the HTTP API."""

from __future__ import annotations

from typing import Any, Optional

from fastapi import FastAPI, HTTPException, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from gateway.http.responses import envelope_payload, respond


def http_error(
    status_code: int,
    message: str,
    *,
    data: Optional[Any] = None,
) -> HTTPException:
    return HTTPException(status_code=status_code, detail=envelope_payload(False, message, data))


def bad_request(message: str, *, data: Optional[Any] = None) -> HTTPException:
    return http_error(status.HTTP_400_BAD_REQUEST, message, data=data)


def not_found(message: str, *, data: Optional[Any] = None) -> HTTPException:
    return http_error(status.HTTP_404_NOT_FOUND, message, data=data)


def conflict(message: str, *, data: Optional[Any] = None) -> HTTPException:
    return http_error(status.HTTP_409_CONFLICT, message, data=data)


def internal_error(message: str, *, data: Optional[Any] = None) -> HTTPException:
    return http_error(status.HTTP_500_INTERNAL_SERVER_ERROR, message, data=data)


def gateway_timeout(message: str, *, data: Optional[Any] = None) -> HTTPException:
    return http_error(status.HTTP_504_GATEWAY_TIMEOUT, message, data=data)


async def _http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    if isinstance(exc.detail, dict) and "success" in exc.detail:
        return JSONResponse(status_code=exc.status_code, content=exc.detail)
    return respond(exc.status_code, False, str(exc.detail))


async def _validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = [{"loc": list(err.get("loc", ())), "msg": err.get("msg", "")} for err in exc.errors()]
    return respond(status.HTTP_400_BAD_REQUEST, False, "The given data was invalid.", {"errors": errors})


def install_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(HTTPException, _http_exception_handler)
    app.add_exception_handler(RequestValidationError, _validation_exception_handler)


__all__ = [
    "bad_request",
    "conflict",
    "gateway_timeout",
    "http_error",
    "install_error_handlers",
    "internal_error",
    "not_found",
]
