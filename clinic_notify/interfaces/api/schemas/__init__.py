from .notification import (
    NotificationPage,
    NotificationRead,
    NotificationResponse,
    Pagination,
    UnreadCount,
    UnreadCountResponse,
    UpdatedCount,
    UpdatedCountResponse,
)

__all__ = [
    "NotificationPage",
    "NotificationRead",
    "NotificationResponse",
    "Pagination",
    "UnreadCount",
    "UnreadCountResponse",
    "UpdatedCount",
    "UpdatedCountResponse",
]
