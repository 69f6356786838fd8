"""HTTP client for the downstream application (device status + webhooks)."""

from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import dataclass
from typing import Any, Optional
from urllib.parse import quote, urljoin

import requests
from requests import Response

from gateway.config import GatewaySettings
from gateway.errors import NotifierError, NotifierNotConfiguredError

LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True)
class WebhookReply:
    """Auto-reply the downstream consumer asks the gateway to send."""

    session_id: str
    receiver: str
    message: Any


class DownstreamNotifier:
    """Reports device status and forwards inbound messages.

    Every public call swallows transport and HTTP failures after logging
    them; the session manager never sees a notifier error.
    """

    def __init__(
        self,
        *,
        base_url: Optional[str],
        timeout_seconds: float,
        session: Optional[requests.Session] = None,
    ) -> None:
        self._base_url = base_url.rstrip("/") if base_url else None
        self._timeout_seconds = timeout_seconds
        self._http = session or requests.Session()

    @classmethod
    def from_settings(cls, settings: GatewaySettings) -> DownstreamNotifier:
        base_url = f"{str(settings.app_url).rstrip('/')}/api" if settings.app_url else None
        return cls(base_url=base_url, timeout_seconds=float(settings.notifier_timeout_seconds))

    async def set_device_status(self, session_id: str, status: int) -> None:
        LOGGER.info("Setting device status for session=%s status=%s", session_id, status)
        try:
            await asyncio.to_thread(
                self._request,
                "POST",
                f"/set-device-status/{quote(session_id, safe='')}/{int(status)}",
            )
        except NotifierError as exc:
            LOGGER.warning("Failed to set device status: %s", exc)

    async def send_webhook(
        self,
        session_id: str,
        *,
        sender: str,
        message_id: str,
        message: Any,
    ) -> Optional[WebhookReply]:
        body = {"from": sender, "message_id": message_id, "message": message}
        try:
            response = await asyncio.to_thread(
                self._request,
                "POST",
                f"/send-webhook/{quote(session_id, safe='')}",
                json_body=body,
            )
        except NotifierError as exc:
            LOGGER.warning("Webhook error: %s", exc)
            return None
        if response.status_code != 200:
            return None
        return self._parse_reply(response)

    def close(self) -> None:
        self._http.close()

    def _request(
        self,
        method: str,
        path: str,
        *,
        json_body: Optional[dict[str, Any]] = None,
    ) -> Response:
        if not self._base_url:
            raise NotifierNotConfiguredError("Downstream base URL is not configured.")
        url = urljoin(f"{self._base_url}/", path.lstrip("/"))
        try:
            response = self._http.request(
                method,
                url,
                headers={"Accept": "application/json"},
                json=json_body,
                timeout=self._timeout_seconds,
            )
        except requests.RequestException as exc:
            raise NotifierError(str(exc)) from exc
        if response.status_code >= 400:
            raise NotifierError(f"Downstream request failed with status {response.status_code}.")
        return response

    @staticmethod
    def _parse_reply(response: Response) -> Optional[WebhookReply]:
        if not response.content:
            return None
        try:
            data = response.json()
        except (json.JSONDecodeError, ValueError):
            return None
        if not isinstance(data, dict):
            return None
        session_id = data.get("session_id")
        receiver = data.get("receiver")
        if not session_id or not receiver or "message" not in data:
            return None
        return WebhookReply(session_id=str(session_id), receiver=str(receiver), message=data["message"])


__all__ = ["DownstreamNotifier", "WebhookReply"]
