"""Email transport that delivers notification messages via SendGrid."""

from __future__ import annotations

import json
import logging
from html import escape
from typing import Any

from sendgrid import SendGridAPIClient
from sendgrid.helpers.mail import Mail

from clinic_notify.config import Settings, get_settings

from .base import SendFailure, TransportUnavailable

logger = logging.getLogger(__name__)

MIN_SERVER_ERROR_STATUS = 500
_RATE_LIMITED_STATUS = 429


def extract_sendgrid_error_details(body: Any) -> str | None:
    """Return a human readable description for a SendGrid error payload."""

    if body in (None, "", b""):
        return None
    if isinstance(body, bytes):
        try:
            body = body.decode("utf-8")
        except UnicodeDecodeError:
            return None
    if isinstance(body, str):
        body = body.strip()
        try:
            parsed = json.loads(body)
        except json.JSONDecodeError:
            return body or None
    else:
        parsed = body

    if isinstance(parsed, dict):
        messages = []
        for item in parsed.get("errors") or []:
            if not isinstance(item, dict) or not item.get("message"):
                continue
            if item.get("help"):
                messages.append(f"{item['message']} (help: {item['help']})")
            else:
                messages.append(str(item["message"]))
        if messages:
            return "; ".join(messages)
    try:
        return json.dumps(parsed)
    except (TypeError, ValueError):
        return None


def _is_retryable(status_code: int | None) -> bool:
    if status_code is None:
        return True
    return status_code >= MIN_SERVER_ERROR_STATUS or status_code == _RATE_LIMITED_STATUS


def _describe_failure(status_code: int | None, details: str | None) -> str:
    if status_code and details:
        return f"SendGrid API request failed with status {status_code}: {details}"
    if status_code:
        return f"SendGrid API request failed with status {status_code}"
    if details:
        return f"SendGrid API request failed: {details}"
    return "SendGrid API request failed"


class SendGridEmailClient:
    """Send notification emails with the configured SendGrid credentials."""

    def __init__(self, settings: Settings | None = None, *, timeout: float | None = None) -> None:
        self._settings = settings or get_settings()
        self._timeout = timeout or self._settings.delivery_send_timeout_seconds

    def send_email(
        self, *, to: str, subject: str, body: str, html_body: str | None = None
    ) -> None:
        settings = self._settings
        if not (settings.sendgrid_api_key and settings.sendgrid_sender):
            raise TransportUnavailable("SendGrid configuration incomplete")

        message = Mail(
            from_email=settings.sendgrid_sender,
            to_emails=to,
            subject=subject,
            plain_text_content=body,
            html_content=html_body or f"<p>{escape(body)}</p>",
        )

        try:
            client = SendGridAPIClient(settings.sendgrid_api_key)
            client.client.timeout = self._timeout
            response = client.send(message)
        except Exception as exc:
            status_code = getattr(exc, "status_code", None)
            details = extract_sendgrid_error_details(getattr(exc, "body", None))
            description = _describe_failure(status_code, details)
            logger.error(description)
            raise SendFailure(description, retryable=_is_retryable(status_code)) from exc

        status_code = getattr(response, "status_code", None)
        if not isinstance(status_code, int) or not 200 <= status_code < 300:
            details = extract_sendgrid_error_details(getattr(response, "body", None))
            logger.error("SendGrid API responded with status %s: %s", status_code, details)
            raise SendFailure(
                _describe_failure(status_code, details),
                retryable=_is_retryable(status_code if isinstance(status_code, int) else None),
            )


__all__ = ["SendGridEmailClient", "extract_sendgrid_error_details"]
