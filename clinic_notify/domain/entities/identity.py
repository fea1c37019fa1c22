"""Authenticated identity attached to API requests and websocket connections."""

from dataclasses import dataclass


@dataclass(frozen=True)
class Identity:
    """User id and role extracted from a verified access token."""

    user_id: str
    role: str


__all__ = ["Identity"]
