"""Domain entity representing a notification addressed to one recipient."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

RECIPIENT_EMPLOYEE = "EMPLOYEE"
RECIPIENT_PATIENT = "PATIENT"
RECIPIENT_TYPES = (RECIPIENT_EMPLOYEE, RECIPIENT_PATIENT)

CHANNEL_IN_APP = "IN_APP"
CHANNEL_SMS = "SMS"
CHANNEL_EMAIL = "EMAIL"
CHANNELS = (CHANNEL_IN_APP, CHANNEL_SMS, CHANNEL_EMAIL)
QUEUED_CHANNELS = (CHANNEL_SMS, CHANNEL_EMAIL)

STATUS_PENDING = "PENDING"
STATUS_SENT = "SENT"
STATUS_READ = "READ"
STATUS_FAILED = "FAILED"
NOTIFICATION_STATUSES = (STATUS_PENDING, STATUS_SENT, STATUS_READ, STATUS_FAILED)
# Statuses a recipient can still mark as read or delete.
OPEN_STATUSES = (STATUS_PENDING, STATUS_SENT)

TYPE_APPOINTMENT_CREATED = "APPOINTMENT_CREATED"
TYPE_APPOINTMENT_CANCELLED = "APPOINTMENT_CANCELLED"
TYPE_APPOINTMENT_REMINDER = "APPOINTMENT_REMINDER"
TYPE_PAYMENT_CONFIRMATION = "PAYMENT_CONFIRMATION"
TYPE_LOW_STOCK_ALERT = "LOW_STOCK_ALERT"
TYPE_PRESCRIPTION_READY = "PRESCRIPTION_READY"
TYPE_LAB_RESULT_READY = "LAB_RESULT_READY"
NOTIFICATION_TYPES = (
    TYPE_APPOINTMENT_CREATED,
    TYPE_APPOINTMENT_CANCELLED,
    TYPE_APPOINTMENT_REMINDER,
    TYPE_PAYMENT_CONFIRMATION,
    TYPE_LOW_STOCK_ALERT,
    TYPE_PRESCRIPTION_READY,
    TYPE_LAB_RESULT_READY,
)


@dataclass
class NotificationRequest:
    """Fields a domain collaborator supplies to create a notification."""

    recipient_id: str | None
    recipient_type: str | None
    type: str | None
    title: str
    message: str
    channel: str | None
    data: dict[str, Any] = field(default_factory=dict)


@dataclass
class Notification:
    """Persisted message delivered to one recipient over one channel."""

    id: str | None
    recipient_id: str
    recipient_type: str
    type: str
    title: str
    message: str
    channel: str
    data: dict[str, Any] = field(default_factory=dict)
    status: str = STATUS_PENDING
    created_at: datetime | None = None
    sent_at: datetime | None = None
    read_at: datetime | None = None

    @property
    def phone(self) -> str | None:
        return _address(self.data, "phone")

    @property
    def email(self) -> str | None:
        return _address(self.data, "email")


def _address(data: dict[str, Any] | None, key: str) -> str | None:
    value = (data or {}).get(key)
    if value is None:
        return None
    value = str(value).strip()
    return value or None


__all__ = [
    "Notification",
    "NotificationRequest",
    "RECIPIENT_EMPLOYEE",
    "RECIPIENT_PATIENT",
    "RECIPIENT_TYPES",
    "CHANNEL_IN_APP",
    "CHANNEL_SMS",
    "CHANNEL_EMAIL",
    "CHANNELS",
    "QUEUED_CHANNELS",
    "STATUS_PENDING",
    "STATUS_SENT",
    "STATUS_READ",
    "STATUS_FAILED",
    "NOTIFICATION_STATUSES",
    "OPEN_STATUSES",
    "TYPE_APPOINTMENT_CREATED",
    "TYPE_APPOINTMENT_CANCELLED",
    "TYPE_APPOINTMENT_REMINDER",
    "TYPE_PAYMENT_CONFIRMATION",
    "TYPE_LOW_STOCK_ALERT",
    "TYPE_PRESCRIPTION_READY",
    "TYPE_LAB_RESULT_READY",
    "NOTIFICATION_TYPES",
]
