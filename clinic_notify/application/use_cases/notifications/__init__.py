"""Public helpers for creating, delivering and reading notifications."""

from .dispatcher import NotificationDispatcher, validate_request
from .events import (
    REMINDER_LEAD_TIME,
    PatientContact,
    StaffContact,
    notify_appointment_cancelled,
    notify_appointment_created,
    notify_lab_result_ready,
    notify_low_stock,
    notify_payment_received,
    notify_prescription_ready,
    schedule_appointment_reminder,
)
from .inbox import (
    delete_notification,
    get_notifications,
    get_unread_count,
    mark_all_as_read,
    mark_as_read,
    unread_statuses,
)

__all__ = [
    "NotificationDispatcher",
    "validate_request",
    "PatientContact",
    "StaffContact",
    "REMINDER_LEAD_TIME",
    "notify_appointment_created",
    "schedule_appointment_reminder",
    "notify_appointment_cancelled",
    "notify_payment_received",
    "notify_low_stock",
    "notify_prescription_ready",
    "notify_lab_result_ready",
    "get_notifications",
    "get_unread_count",
    "mark_as_read",
    "mark_all_as_read",
    "delete_notification",
    "unread_statuses",
]
