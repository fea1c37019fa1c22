"""Helpers domain collaborators call to raise notifications for clinic events."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, Iterable

from sqlalchemy.exc import SQLAlchemyError

from clinic_notify.domain.entities import (
    CHANNEL_EMAIL,
    CHANNEL_IN_APP,
    CHANNEL_SMS,
    RECIPIENT_EMPLOYEE,
    RECIPIENT_PATIENT,
    TYPE_APPOINTMENT_CANCELLED,
    TYPE_APPOINTMENT_CREATED,
    TYPE_APPOINTMENT_REMINDER,
    TYPE_LAB_RESULT_READY,
    TYPE_LOW_STOCK_ALERT,
    TYPE_PAYMENT_CONFIRMATION,
    TYPE_PRESCRIPTION_READY,
    AppointmentPayload,
    LabResultPayload,
    Notification,
    NotificationPayload,
    NotificationRequest,
    PaymentPayload,
    PrescriptionPayload,
    StockPayload,
    serialize_payload,
)
from clinic_notify.domain.exceptions import InvalidRequest
from clinic_notify.domain.ports import NotificationPort
from clinic_notify.utils import ensure_app_timezone, ensure_utc, now_in_app_timezone

logger = logging.getLogger(__name__)

REMINDER_LEAD_TIME = timedelta(hours=24)


@dataclass
class PatientContact:
    id: str
    full_name: str
    phone: str | None = None


@dataclass
class StaffContact:
    id: str
    role: str
    full_name: str | None = None
    email: str | None = None


def _request(
    *,
    recipient_id: str,
    recipient_type: str,
    notification_type: str,
    channel: str,
    title: str,
    message: str,
    payload: NotificationPayload,
) -> NotificationRequest:
    return NotificationRequest(
        recipient_id=recipient_id,
        recipient_type=recipient_type,
        type=notification_type,
        title=title,
        message=message,
        channel=channel,
        data=serialize_payload(notification_type, payload),
    )


def _send_sms_now(port: NotificationPort, request: NotificationRequest) -> Notification:
    """Create an SMS record without sending, then queue it with no delay."""

    notification = port.create_notification(request, defer_send=True)
    port.schedule_notification(notification.id, CHANNEL_SMS, 0)
    return notification


def _each_recipient(
    recipients: Iterable[StaffContact],
    notify: Callable[[StaffContact], list[Notification]],
) -> list[Notification]:
    created: list[Notification] = []
    for recipient in recipients:
        try:
            created.extend(notify(recipient))
        except (InvalidRequest, SQLAlchemyError):
            logger.exception("Failed to notify staff member %s", recipient.id)
    return created


def _format_when(value: datetime) -> str:
    localized = ensure_app_timezone(value) or value
    return localized.strftime("%d %b %Y at %H:%M")


def notify_appointment_created(
    port: NotificationPort,
    *,
    doctor_id: str,
    patient: PatientContact,
    appointment_id: str,
    scheduled_for: datetime,
) -> Notification:
    """Tell the doctor in-app that an appointment was booked with them."""

    return port.create_notification(
        _request(
            recipient_id=doctor_id,
            recipient_type=RECIPIENT_EMPLOYEE,
            notification_type=TYPE_APPOINTMENT_CREATED,
            channel=CHANNEL_IN_APP,
            title="New Appointment",
            message=(
                f"New appointment with {patient.full_name} on {_format_when(scheduled_for)}."
            ),
            payload=AppointmentPayload(
                appointment_id=appointment_id,
                patient_id=patient.id,
                doctor_id=doctor_id,
                scheduled_for=scheduled_for,
            ),
        )
    )


def schedule_appointment_reminder(
    port: NotificationPort,
    *,
    patient: PatientContact,
    appointment_id: str,
    scheduled_for: datetime,
    now: datetime | None = None,
) -> Notification | None:
    """Register an SMS reminder that fires 24 hours before the appointment.

    Appointments less than a day away are reminded immediately. Patients
    without a phone number get no reminder.
    """

    if not patient.phone:
        return None

    current = ensure_utc(now or now_in_app_timezone())
    trigger = ensure_utc(scheduled_for) - REMINDER_LEAD_TIME
    delay = max(int((trigger - current).total_seconds() * 1000), 0)

    notification = port.create_notification(
        _request(
            recipient_id=patient.id,
            recipient_type=RECIPIENT_PATIENT,
            notification_type=TYPE_APPOINTMENT_REMINDER,
            channel=CHANNEL_SMS,
            title="Appointment Reminder",
            message=(
                f"Dear {patient.full_name}, you have an appointment on "
                f"{_format_when(scheduled_for)}."
            ),
            payload=AppointmentPayload(
                appointment_id=appointment_id,
                patient_id=patient.id,
                scheduled_for=scheduled_for,
                phone=patient.phone,
            ),
        ),
        defer_send=True,
    )
    port.schedule_notification(notification.id, CHANNEL_SMS, delay)
    return notification


def notify_appointment_cancelled(
    port: NotificationPort,
    *,
    doctor_id: str,
    patient: PatientContact,
    appointment_id: str,
    scheduled_for: datetime,
    reason: str | None = None,
) -> list[Notification]:
    """Text the patient (when reachable) and tell the doctor in-app."""

    created: list[Notification] = []
    when = _format_when(scheduled_for)
    if patient.phone:
        created.append(
            _send_sms_now(
                port,
                _request(
                    recipient_id=patient.id,
                    recipient_type=RECIPIENT_PATIENT,
                    notification_type=TYPE_APPOINTMENT_CANCELLED,
                    channel=CHANNEL_SMS,
                    title="Appointment Cancelled",
                    message=f"Your appointment scheduled for {when} has been cancelled.",
                    payload=AppointmentPayload(
                        appointment_id=appointment_id,
                        patient_id=patient.id,
                        scheduled_for=scheduled_for,
                        reason=reason,
                        phone=patient.phone,
                    ),
                ),
            )
        )

    created.append(
        port.create_notification(
            _request(
                recipient_id=doctor_id,
                recipient_type=RECIPIENT_EMPLOYEE,
                notification_type=TYPE_APPOINTMENT_CANCELLED,
                channel=CHANNEL_IN_APP,
                title="Appointment Cancelled",
                message=f"Appointment with {patient.full_name} on {when} was cancelled.",
                payload=AppointmentPayload(
                    appointment_id=appointment_id,
                    patient_id=patient.id,
                    doctor_id=doctor_id,
                    scheduled_for=scheduled_for,
                    reason=reason,
                ),
            )
        )
    )
    return created


def notify_payment_received(
    port: NotificationPort,
    *,
    patient: PatientContact,
    billing_id: str,
    amount: str,
    outstanding_balance: str,
    fully_paid: bool = False,
    currency: str = "KES",
) -> list[Notification]:
    """Confirm a payment by SMS and in-app, with an SMS receipt once fully paid."""

    created: list[Notification] = []
    if patient.phone:
        created.append(
            _send_sms_now(
                port,
                _request(
                    recipient_id=patient.id,
                    recipient_type=RECIPIENT_PATIENT,
                    notification_type=TYPE_PAYMENT_CONFIRMATION,
                    channel=CHANNEL_SMS,
                    title="Payment Received",
                    message=(
                        f"Payment of {currency} {amount} received. "
                        f"Outstanding balance is {currency} {outstanding_balance}."
                    ),
                    payload=PaymentPayload(
                        billing_id=billing_id,
                        amount=amount,
                        outstanding_balance=outstanding_balance,
                        phone=patient.phone,
                    ),
                ),
            )
        )

    created.append(
        port.create_notification(
            _request(
                recipient_id=patient.id,
                recipient_type=RECIPIENT_PATIENT,
                notification_type=TYPE_PAYMENT_CONFIRMATION,
                channel=CHANNEL_IN_APP,
                title="Payment Confirmation",
                message=f"Your payment of {currency} {amount} has been recorded. Thank you!",
                payload=PaymentPayload(billing_id=billing_id, amount=amount),
            )
        )
    )

    if fully_paid and patient.phone:
        created.append(
            _send_sms_now(
                port,
                _request(
                    recipient_id=patient.id,
                    recipient_type=RECIPIENT_PATIENT,
                    notification_type=TYPE_PAYMENT_CONFIRMATION,
                    channel=CHANNEL_SMS,
                    title="Receipt Ready",
                    message=(
                        f"Billing {billing_id} is fully paid. "
                        "A receipt is available for collection."
                    ),
                    payload=PaymentPayload(billing_id=billing_id, phone=patient.phone),
                ),
            )
        )
    return created


def notify_low_stock(
    port: NotificationPort,
    *,
    item_id: str,
    item_name: str,
    stock: int,
    reorder_level: int,
    recipients: Iterable[StaffContact],
) -> list[Notification]:
    """Alert pharmacists and admins in-app, and by email when they have one."""

    if reorder_level <= 0 or stock > reorder_level:
        return []

    def notify(recipient: StaffContact) -> list[Notification]:
        created = [
            port.create_notification(
                _request(
                    recipient_id=recipient.id,
                    recipient_type=RECIPIENT_EMPLOYEE,
                    notification_type=TYPE_LOW_STOCK_ALERT,
                    channel=CHANNEL_IN_APP,
                    title="Low Stock Alert",
                    message=f"Item {item_name} is low on stock ({stock} remaining).",
                    payload=StockPayload(
                        item_id=item_id, stock=stock, reorder_level=reorder_level
                    ),
                )
            )
        ]
        if recipient.email:
            created.append(
                port.create_notification(
                    _request(
                        recipient_id=recipient.id,
                        recipient_type=RECIPIENT_EMPLOYEE,
                        notification_type=TYPE_LOW_STOCK_ALERT,
                        channel=CHANNEL_EMAIL,
                        title="Low Stock Alert",
                        message=f"Item {item_name} stock has fallen to {stock}.",
                        payload=StockPayload(
                            item_id=item_id,
                            stock=stock,
                            reorder_level=reorder_level,
                            email=recipient.email,
                        ),
                    )
                )
            )
        return created

    return _each_recipient(recipients, notify)


def notify_prescription_ready(
    port: NotificationPort,
    *,
    patient: PatientContact,
    prescription_id: str,
    prescriber_name: str,
    pharmacists: Iterable[StaffContact] = (),
) -> list[Notification]:
    """Ask pharmacists to dispense and tell the patient the prescription is ready."""

    def notify(pharmacist: StaffContact) -> list[Notification]:
        return [
            port.create_notification(
                _request(
                    recipient_id=pharmacist.id,
                    recipient_type=RECIPIENT_EMPLOYEE,
                    notification_type=TYPE_PRESCRIPTION_READY,
                    channel=CHANNEL_IN_APP,
                    title="Prescription Ready for Dispensing",
                    message=(
                        f"New prescription for patient {patient.full_name} requires dispensing."
                    ),
                    payload=PrescriptionPayload(
                        prescription_id=prescription_id, patient_id=patient.id
                    ),
                )
            )
        ]

    created = _each_recipient(pharmacists, notify)
    if patient.phone:
        created.append(
            _send_sms_now(
                port,
                _request(
                    recipient_id=patient.id,
                    recipient_type=RECIPIENT_PATIENT,
                    notification_type=TYPE_PRESCRIPTION_READY,
                    channel=CHANNEL_SMS,
                    title="Prescription Ready",
                    message=(
                        f"Your prescription from Dr. {prescriber_name} is ready for pickup "
                        "at the pharmacy."
                    ),
                    payload=PrescriptionPayload(
                        prescription_id=prescription_id, phone=patient.phone
                    ),
                ),
            )
        )
    return created


def notify_lab_result_ready(
    port: NotificationPort,
    *,
    patient: PatientContact,
    lab_order_id: str,
    test_name: str,
    ordered_by: str | None = None,
) -> list[Notification]:
    """Tell the ordering employee in-app and the patient by SMS that results are in."""

    created: list[Notification] = []
    if ordered_by:
        created.append(
            port.create_notification(
                _request(
                    recipient_id=ordered_by,
                    recipient_type=RECIPIENT_EMPLOYEE,
                    notification_type=TYPE_LAB_RESULT_READY,
                    channel=CHANNEL_IN_APP,
                    title="Lab Result Ready",
                    message=(
                        f"Lab results for patient {patient.full_name} ({test_name}) are ready."
                    ),
                    payload=LabResultPayload(
                        lab_order_id=lab_order_id, patient_id=patient.id, test_name=test_name
                    ),
                )
            )
        )

    if patient.phone:
        created.append(
            _send_sms_now(
                port,
                _request(
                    recipient_id=patient.id,
                    recipient_type=RECIPIENT_PATIENT,
                    notification_type=TYPE_LAB_RESULT_READY,
                    channel=CHANNEL_SMS,
                    title="Lab Result Ready",
                    message=(
                        f"Your lab results for {test_name} are ready. Please contact the clinic."
                    ),
                    payload=LabResultPayload(
                        lab_order_id=lab_order_id, test_name=test_name, phone=patient.phone
                    ),
                ),
            )
        )
    return created


__all__ = [
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
]
