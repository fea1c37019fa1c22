"""Domain entities exposed by the application."""

from .delivery_job import DeliveryJob
from .identity import Identity
from .notification import (
    CHANNEL_EMAIL,
    CHANNEL_IN_APP,
    CHANNEL_SMS,
    CHANNELS,
    NOTIFICATION_STATUSES,
    NOTIFICATION_TYPES,
    OPEN_STATUSES,
    QUEUED_CHANNELS,
    RECIPIENT_EMPLOYEE,
    RECIPIENT_PATIENT,
    RECIPIENT_TYPES,
    STATUS_FAILED,
    STATUS_PENDING,
    STATUS_READ,
    STATUS_SENT,
    TYPE_APPOINTMENT_CANCELLED,
    TYPE_APPOINTMENT_CREATED,
    TYPE_APPOINTMENT_REMINDER,
    TYPE_LAB_RESULT_READY,
    TYPE_LOW_STOCK_ALERT,
    TYPE_PAYMENT_CONFIRMATION,
    TYPE_PRESCRIPTION_READY,
    Notification,
    NotificationRequest,
)
from .payloads import (
    PAYLOAD_TYPES,
    AppointmentPayload,
    LabResultPayload,
    NotificationPayload,
    PaymentPayload,
    PrescriptionPayload,
    StockPayload,
    serialize_payload,
)

__all__ = [
    "DeliveryJob",
    "Identity",
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
    "AppointmentPayload",
    "PaymentPayload",
    "StockPayload",
    "PrescriptionPayload",
    "LabResultPayload",
    "NotificationPayload",
    "PAYLOAD_TYPES",
    "serialize_payload",
]
