"""Typed payloads carried in the ``data`` object of each notification type.

Every event type has one payload dataclass. Collaborators build the payload,
and :func:`serialize_payload` flattens it into the JSON object persisted on
the notification, so the wire shape stays a flexible key/value bag while the
fields for each type remain explicit.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass
from datetime import datetime
from typing import Any, Union

from clinic_notify.domain.exceptions import InvalidRequest

from .notification import (
    TYPE_APPOINTMENT_CANCELLED,
    TYPE_APPOINTMENT_CREATED,
    TYPE_APPOINTMENT_REMINDER,
    TYPE_LAB_RESULT_READY,
    TYPE_LOW_STOCK_ALERT,
    TYPE_PAYMENT_CONFIRMATION,
    TYPE_PRESCRIPTION_READY,
)


@dataclass
class AppointmentPayload:
    appointment_id: str
    patient_id: str | None = None
    doctor_id: str | None = None
    scheduled_for: datetime | None = None
    reason: str | None = None
    phone: str | None = None


@dataclass
class PaymentPayload:
    billing_id: str
    amount: str | None = None
    outstanding_balance: str | None = None
    phone: str | None = None


@dataclass
class StockPayload:
    item_id: str
    stock: int
    reorder_level: int | None = None
    email: str | None = None


@dataclass
class PrescriptionPayload:
    prescription_id: str
    patient_id: str | None = None
    phone: str | None = None


@dataclass
class LabResultPayload:
    lab_order_id: str
    patient_id: str | None = None
    test_name: str | None = None
    phone: str | None = None


NotificationPayload = Union[
    AppointmentPayload,
    PaymentPayload,
    StockPayload,
    PrescriptionPayload,
    LabResultPayload,
]

PAYLOAD_TYPES: dict[str, type] = {
    TYPE_APPOINTMENT_CREATED: AppointmentPayload,
    TYPE_APPOINTMENT_CANCELLED: AppointmentPayload,
    TYPE_APPOINTMENT_REMINDER: AppointmentPayload,
    TYPE_PAYMENT_CONFIRMATION: PaymentPayload,
    TYPE_LOW_STOCK_ALERT: StockPayload,
    TYPE_PRESCRIPTION_READY: PrescriptionPayload,
    TYPE_LAB_RESULT_READY: LabResultPayload,
}


def serialize_payload(
    notification_type: str, payload: NotificationPayload, **extra: Any
) -> dict[str, Any]:
    """Return the ``data`` object for ``payload`` after checking it fits the type."""

    expected = PAYLOAD_TYPES.get(notification_type)
    if expected is None:
        raise InvalidRequest(f"Unknown notification type '{notification_type}'")
    if not isinstance(payload, expected):
        raise InvalidRequest(
            f"{notification_type} expects {expected.__name__}, got {type(payload).__name__}"
        )

    data = {key: value for key, value in asdict(payload).items() if value is not None}
    data.update({key: value for key, value in extra.items() if value is not None})
    for key, value in data.items():
        if isinstance(value, datetime):
            data[key] = value.isoformat()
    return data


__all__ = [
    "AppointmentPayload",
    "PaymentPayload",
    "StockPayload",
    "PrescriptionPayload",
    "LabResultPayload",
    "NotificationPayload",
    "PAYLOAD_TYPES",
    "serialize_payload",
]
