"""Create notifications and decide how each one is delivered."""

from __future__ import annotations

import logging

from sqlalchemy.orm import Session

from clinic_notify.domain.entities import (
    CHANNEL_EMAIL,
    CHANNEL_IN_APP,
    CHANNEL_SMS,
    CHANNELS,
    NOTIFICATION_TYPES,
    QUEUED_CHANNELS,
    RECIPIENT_EMPLOYEE,
    RECIPIENT_TYPES,
    Notification,
    NotificationRequest,
)
from clinic_notify.domain.exceptions import InvalidRequest, NotificationNotFound
from clinic_notify.infrastructure.notifications import PushRegistry
from clinic_notify.infrastructure.queue import Clock, DeliveryQueue
from clinic_notify.infrastructure.repositories import NotificationRepository
from clinic_notify.utils import now_in_app_timezone

logger = logging.getLogger(__name__)


def validate_request(request: NotificationRequest, delay: int = 0) -> None:
    """Raise :class:`InvalidRequest` when ``request`` cannot be delivered."""

    missing = [
        name
        for name in ("recipient_id", "recipient_type", "type", "channel")
        if not getattr(request, name)
    ]
    if missing:
        raise InvalidRequest(f"Missing required fields: {', '.join(missing)}")
    if request.recipient_type not in RECIPIENT_TYPES:
        raise InvalidRequest(f"Unknown recipient type '{request.recipient_type}'")
    if request.type not in NOTIFICATION_TYPES:
        raise InvalidRequest(f"Unknown notification type '{request.type}'")
    if request.channel not in CHANNELS:
        raise InvalidRequest(f"Unknown channel '{request.channel}'")

    data = request.data or {}
    if request.channel == CHANNEL_SMS and not str(data.get("phone") or "").strip():
        raise InvalidRequest("SMS notifications require a phone number in data")
    if request.channel == CHANNEL_EMAIL and not str(data.get("email") or "").strip():
        raise InvalidRequest("Email notifications require an email address in data")
    if delay is None or delay < 0:
        raise InvalidRequest("delay must be a non-negative number of milliseconds")


class NotificationDispatcher:
    """Persist notifications and route them to in-app push or the delivery queue.

    Implements :class:`~clinic_notify.domain.ports.NotificationPort`. The
    dispatcher works on the caller's session; it never talks to SMS or email
    providers, which only the queue worker does.
    """

    def __init__(
        self,
        session: Session,
        registry: PushRegistry,
        *,
        clock: Clock = now_in_app_timezone,
    ) -> None:
        self._repository = NotificationRepository(session)
        self._queue = DeliveryQueue(session, clock=clock)
        self._registry = registry
        self._clock = clock

    def create_notification(
        self,
        request: NotificationRequest,
        *,
        defer_send: bool = False,
        delay: int = 0,
    ) -> Notification:
        validate_request(request, delay)

        notification = self._repository.create(
            Notification(
                id=None,
                recipient_id=str(request.recipient_id),
                recipient_type=request.recipient_type,
                type=request.type,
                title=request.title,
                message=request.message,
                channel=request.channel,
                data=dict(request.data or {}),
                created_at=self._clock(),
            )
        )

        if defer_send:
            return notification
        if notification.channel == CHANNEL_IN_APP:
            return self.send_in_app(notification)

        self._queue.enqueue(notification.id, notification.channel, delay)
        return notification

    def schedule_notification(self, notification_id: str, channel: str, delay: int) -> None:
        """Queue delivery of an existing notification ``delay`` ms from now."""

        if channel not in QUEUED_CHANNELS:
            raise InvalidRequest(f"Channel '{channel}' cannot be scheduled")
        if delay is None or delay < 0:
            raise InvalidRequest("delay must be a non-negative number of milliseconds")

        notification = self._repository.get(notification_id)
        if notification is None:
            raise NotificationNotFound(notification_id)
        if notification.channel != channel:
            raise InvalidRequest(
                f"Notification {notification_id} targets {notification.channel}, not {channel}"
            )
        self._queue.enqueue(notification_id, channel, delay)

    def send_in_app(self, notification: Notification) -> Notification:
        """Push ``notification`` to live sessions and mark it SENT."""

        if notification.recipient_type == RECIPIENT_EMPLOYEE:
            delivered = self._registry.emit_to_user(notification.recipient_id, notification)
            logger.debug(
                "In-app notification %s pushed to %s connection(s)",
                notification.id,
                delivered,
            )

        self._repository.mark_sent(notification.id, sent_at=self._clock())
        return self._repository.get(notification.id) or notification

    def broadcast_to_role(self, role: str, notification: Notification) -> int:
        """Push ``notification`` to every live session of ``role``; nothing is stored."""

        return self._registry.emit_to_role(role, notification)


__all__ = ["NotificationDispatcher", "validate_request"]
