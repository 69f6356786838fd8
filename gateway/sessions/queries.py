"""Read-only helpers over a session's cache and client."""

from __future__ import annotations

import logging
import re
from typing import Any, Dict, List

from gateway.engine.base import ProtocolClient
from gateway.engine.events import DIRECT_SUFFIX, GROUP_SUFFIX
from gateway.sessions.models import Session

LOGGER = logging.getLogger(__name__)

_NON_DIGITS = re.compile(r"\D")
_NON_GROUP_CHARS = re.compile(r"[^\d-]")


def get_chat_list(session: Session, *, is_group: bool = False) -> List[Dict[str, Any]]:
    return session.cache.filter(GROUP_SUFFIX if is_group else DIRECT_SUFFIX)


async def is_exists(client: ProtocolClient, address: str, *, is_group: bool = False) -> bool:
    """Ask the engine whether ``address`` exists; any engine error means no."""

    try:
        if is_group:
            metadata = await client.group_metadata(address)
            return bool(metadata.get("id"))
        result = await client.lookup_address(address)
        return bool(result.exists)
    except Exception:  # noqa: BLE001
        LOGGER.debug("Existence check failed for %s", address, exc_info=True)
        return False


async def get_group_metadata(client: ProtocolClient, address: str) -> Dict[str, Any]:
    return await client.group_metadata(address)


def format_phone(phone: str) -> str:
    if phone.endswith(DIRECT_SUFFIX):
        return phone
    return f"{_NON_DIGITS.sub('', phone)}{DIRECT_SUFFIX}"


def format_group(group: str) -> str:
    if group.endswith(GROUP_SUFFIX):
        return group
    return f"{_NON_GROUP_CHARS.sub('', group)}{GROUP_SUFFIX}"


__all__ = ["format_group", "format_phone", "get_chat_list", "get_group_metadata", "is_exists"]
