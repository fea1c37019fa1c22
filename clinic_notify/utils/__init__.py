"""Utility helpers for reusable functionality."""

from .datetime import (
    ensure_app_timezone,
    ensure_utc,
    from_storage_datetime,
    get_app_timezone,
    milliseconds_after,
    now_in_app_timezone,
    to_storage_datetime,
    utc_now_naive,
)

__all__ = [
    "ensure_app_timezone",
    "ensure_utc",
    "from_storage_datetime",
    "get_app_timezone",
    "milliseconds_after",
    "now_in_app_timezone",
    "to_storage_datetime",
    "utc_now_naive",
]
