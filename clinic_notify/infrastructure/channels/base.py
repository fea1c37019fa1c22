"""Shared errors and sender wrappers for outbound delivery channels."""

from __future__ import annotations

from typing import Any, Callable

from clinic_notify.domain.entities import Notification
from clinic_notify.domain.ports import EmailTransport, SmsTransport


class ChannelError(Exception):
    """Base exception for a failed channel delivery attempt."""

    def __init__(
        self,
        message: str,
        *,
        retryable: bool = True,
        provider_response: Any | None = None,
    ) -> None:
        super().__init__(message)
        self.retryable = retryable
        self.provider_response = provider_response


class TransportUnavailable(ChannelError):
    """The channel transport is not configured (for example missing credentials)."""


class SendFailure(ChannelError):
    """The provider rejected the message or the request errored."""


ChannelSender = Callable[[Notification], None]


class SmsSender:
    """Deliver an SMS notification to the phone number in its ``data``."""

    def __init__(self, transport: SmsTransport) -> None:
        self._transport = transport

    def __call__(self, notification: Notification) -> None:
        phone = notification.phone
        if not phone:
            raise SendFailure("SMS recipient phone number not provided", retryable=False)
        self._transport.send_sms(to=phone, message=notification.message)


class EmailSender:
    """Deliver an email notification to the address in its ``data``."""

    def __init__(self, transport: EmailTransport) -> None:
        self._transport = transport

    def __call__(self, notification: Notification) -> None:
        email = notification.email
        if not email:
            raise SendFailure("Email recipient address not provided", retryable=False)
        html_body = (notification.data or {}).get("html_body")
        self._transport.send_email(
            to=email,
            subject=notification.title,
            body=notification.message,
            html_body=str(html_body) if html_body else None,
        )


__all__ = [
    "ChannelError",
    "TransportUnavailable",
    "SendFailure",
    "ChannelSender",
    "SmsSender",
    "EmailSender",
]
