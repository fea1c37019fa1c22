"""SMS transport backed by the Africa's Talking messaging API."""

from __future__ import annotations

import contextlib
import logging
from typing import Any

import httpx

from clinic_notify.config import Settings, get_settings

from .base import SendFailure, TransportUnavailable

logger = logging.getLogger(__name__)

MIN_SERVER_ERROR_STATUS = 500
# Africa's Talking per-recipient codes: 100 processed, 101 sent, 102 queued.
_ACCEPTED_STATUS_CODES = {100, 101, 102}


class AfricasTalkingSmsClient:
    """Send text messages through ``POST {base_url}/messaging``."""

    def __init__(
        self,
        settings: Settings | None = None,
        *,
        http_client: httpx.Client | None = None,
        timeout: float | None = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._http_client = http_client
        self._timeout = timeout or self._settings.delivery_send_timeout_seconds

    def send_sms(self, *, to: str, message: str) -> None:
        if not to or not message:
            raise SendFailure("SMS requires recipient phone number and message", retryable=False)

        settings = self._settings
        if not (settings.at_username and settings.at_api_key):
            raise TransportUnavailable("Africa's Talking credentials not configured")

        form = {"username": settings.at_username, "to": to, "message": message}
        if settings.at_sender_id:
            form["from"] = settings.at_sender_id
        headers = {"apiKey": settings.at_api_key, "Accept": "application/json"}
        url = f"{settings.at_base_url.rstrip('/')}/messaging"

        try:
            if self._http_client is not None:
                response = self._http_client.post(url, data=form, headers=headers)
            else:
                with httpx.Client(timeout=self._timeout) as client:
                    response = client.post(url, data=form, headers=headers)
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            body: Any = None
            with contextlib.suppress(Exception):
                body = exc.response.json()
            status_code = exc.response.status_code
            logger.error("Africa's Talking responded with status %s: %s", status_code, body)
            raise SendFailure(
                f"Africa's Talking error: HTTP {status_code}",
                retryable=status_code >= MIN_SERVER_ERROR_STATUS,
                provider_response=body,
            ) from exc
        except httpx.HTTPError as exc:
            raise SendFailure(f"Africa's Talking request failed: {exc!s}") from exc

        self._check_recipients(response, to)

    @staticmethod
    def _check_recipients(response: httpx.Response, to: str) -> None:
        try:
            payload = response.json()
        except ValueError:
            return
        recipients = (payload.get("SMSMessageData") or {}).get("Recipients") or []
        for recipient in recipients:
            code = recipient.get("statusCode")
            if code is None or int(code) in _ACCEPTED_STATUS_CODES:
                continue
            raise SendFailure(
                f"SMS to {to} rejected: {recipient.get('status')}",
                retryable=int(code) >= MIN_SERVER_ERROR_STATUS,
                provider_response=payload,
            )


__all__ = ["AfricasTalkingSmsClient"]
