"""Interfaces the notification core exposes to, and consumes from, collaborators."""

from __future__ import annotations

from typing import Protocol

from clinic_notify.domain.entities import Notification, NotificationRequest


class NotificationPort(Protocol):
    """Entry point domain collaborators use to raise notifications."""

    def create_notification(
        self,
        request: NotificationRequest,
        *,
        defer_send: bool = False,
        delay: int = 0,
    ) -> Notification:
        ...

    def schedule_notification(self, notification_id: str, channel: str, delay: int) -> None:
        ...


class SmsTransport(Protocol):
    """Capability to send a text message to a phone number."""

    def send_sms(self, *, to: str, message: str) -> None:
        ...


class EmailTransport(Protocol):
    """Capability to send an email message."""

    def send_email(
        self, *, to: str, subject: str, body: str, html_body: str | None = None
    ) -> None:
        ...


__all__ = ["NotificationPort", "SmsTransport", "EmailTransport"]
