"""Recipient-scoped queries and status changes over stored notifications."""

from __future__ import annotations

from collections.abc import Sequence

from sqlalchemy.orm import Session

from clinic_notify.config import get_settings
from clinic_notify.domain.entities import STATUS_PENDING, STATUS_SENT, Notification
from clinic_notify.infrastructure.repositories import NotificationRepository


def get_notifications(
    session: Session, recipient_id: str, *, skip: int = 0, take: int = 20
) -> Sequence[Notification]:
    """Return the recipient's notifications, newest first."""

    return NotificationRepository(session).list_for_recipient(
        recipient_id, skip=max(skip, 0), take=max(take, 0)
    )


def unread_statuses() -> tuple[str, ...]:
    if get_settings().unread_includes_sent:
        return (STATUS_PENDING, STATUS_SENT)
    return (STATUS_PENDING,)


def get_unread_count(session: Session, recipient_id: str) -> int:
    return NotificationRepository(session).count_for_recipient(
        recipient_id, statuses=unread_statuses()
    )


def mark_as_read(
    session: Session, notification_id: str, recipient_id: str
) -> Notification | None:
    """Mark one notification read; ``None`` when the recipient does not own it."""

    repository = NotificationRepository(session)
    repository.mark_as_read(notification_id, recipient_id=recipient_id)
    return repository.get_for_recipient(notification_id, recipient_id=recipient_id)


def mark_all_as_read(session: Session, recipient_id: str) -> int:
    return NotificationRepository(session).mark_all_as_read(recipient_id)


def delete_notification(session: Session, notification_id: str, recipient_id: str) -> int:
    return NotificationRepository(session).delete(notification_id, recipient_id=recipient_id)


__all__ = [
    "get_notifications",
    "get_unread_count",
    "mark_as_read",
    "mark_all_as_read",
    "delete_notification",
    "unread_statuses",
]
