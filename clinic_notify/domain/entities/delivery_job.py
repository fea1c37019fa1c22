"""Domain entity describing a queued channel delivery."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime


@dataclass
class DeliveryJob:
    """Unit of work asking a worker to deliver a notification over a channel."""

    id: str | None
    notification_id: str
    channel: str
    available_at: datetime
    attempt: int = 0
    lease_owner: str | None = None
    lease_expires_at: datetime | None = None
    last_error: str | None = None
    created_at: datetime | None = None


__all__ = ["DeliveryJob"]
