"""JSON representation of notifications shared by HTTP and websocket payloads."""

from __future__ import annotations

from typing import Any

from clinic_notify.domain.entities import Notification


def serialize_notification(notification: Notification) -> dict[str, Any]:
    """Return a JSON-serializable representation of ``notification``."""

    return {
        "id": notification.id,
        "recipient_id": notification.recipient_id,
        "recipient_type": notification.recipient_type,
        "type": notification.type,
        "title": notification.title,
        "message": notification.message,
        "channel": notification.channel,
        "data": dict(notification.data or {}),
        "status": notification.status,
        "created_at": _iso_or_none(notification.created_at),
        "sent_at": _iso_or_none(notification.sent_at),
        "read_at": _iso_or_none(notification.read_at),
    }


def _iso_or_none(value) -> str | None:
    return value.isoformat() if value else None


__all__ = ["serialize_notification"]
