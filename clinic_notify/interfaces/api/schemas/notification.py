"""Pydantic models describing notification payloads."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field


class NotificationRead(BaseModel):
    """Representation of a notification delivered to the client."""

    id: str
    recipient_id: str
    recipient_type: str
    type: str
    title: str
    message: str
    channel: str
    data: dict[str, Any] = Field(default_factory=dict)
    status: str
    created_at: datetime
    sent_at: datetime | None = None
    read_at: datetime | None = None


class Pagination(BaseModel):
    page: int
    page_size: int


class NotificationPage(BaseModel):
    """One page of the recipient's notifications plus the unread counter."""

    data: list[NotificationRead]
    pagination: Pagination
    unread_count: int


class UnreadCount(BaseModel):
    unread: int


class UnreadCountResponse(BaseModel):
    data: UnreadCount


class NotificationResponse(BaseModel):
    data: NotificationRead


class UpdatedCount(BaseModel):
    updated: int


class UpdatedCountResponse(BaseModel):
    data: UpdatedCount


__all__ = [
    "NotificationRead",
    "NotificationPage",
    "Pagination",
    "UnreadCount",
    "UnreadCountResponse",
    "NotificationResponse",
    "UpdatedCount",
    "UpdatedCountResponse",
]
