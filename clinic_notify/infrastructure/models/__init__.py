"""ORM models used by the application infrastructure."""

from .delivery_job import DeliveryJobModel
from .notification import NotificationModel

__all__ = [
    "DeliveryJobModel",
    "NotificationModel",
]
