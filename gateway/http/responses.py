"""Uniform JSON envelope for every gateway response."""

from __future__ import annotations

from typing import Any, Optional

from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse


def envelope_payload(success: bool, message: str = "", data: Optional[Any] = None) -> dict[str, Any]:
    return {"success": success, "message": message, "data": data if data is not None else {}}


def respond(status_code: int, success: bool, message: str = "", data: Optional[Any] = None) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=jsonable_encoder(envelope_payload(success, message, data)),
    )


__all__ = ["envelope_payload", "respond"]
