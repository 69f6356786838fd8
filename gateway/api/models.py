"""Request bodies accepted by the gateway API."""

from __future__ import annotations

from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, StrictStr


class AddSessionRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: StrictStr = Field(..., min_length=1, description="Session identifier chosen by the caller.")
    is_legacy: bool = Field(default=False, alias="isLegacy", description="Create a legacy-mode session.")


class SendMessageRequest(BaseModel):
    receiver: StrictStr = Field(..., min_length=1)
    message: Any = Field(...)


class BulkMessage(BaseModel):
    receiver: Optional[StrictStr] = None
    message: Any = None
    delay: Optional[int] = Field(default=None, ge=0, description="Pacing delay in milliseconds.")


__all__ = ["AddSessionRequest", "BulkMessage", "SendMessageRequest"]
