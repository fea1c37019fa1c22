"""Errors raised by the notification core."""

from __future__ import annotations


class NotificationError(Exception):
    """Base class for notification domain errors."""


class InvalidRequest(NotificationError, ValueError):
    """A creation or scheduling request is missing or contradicts required fields."""


class NotificationNotFound(NotificationError, LookupError):
    """The referenced notification does not exist for the caller."""

    def __init__(self, notification_id: str) -> None:
        super().__init__(f"Notification {notification_id} not found")
        self.notification_id = notification_id


__all__ = ["NotificationError", "InvalidRequest", "NotificationNotFound"]
