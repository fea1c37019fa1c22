"""Realtime notification helpers for the infrastructure layer."""

from .registry import PushConnection, PushRegistry, role_key, user_key
from .serialization import serialize_notification

__all__ = [
    "PushConnection",
    "PushRegistry",
    "role_key",
    "user_key",
    "serialize_notification",
]
