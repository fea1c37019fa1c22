"""Outbound delivery channels used by the queue worker."""

from .base import (
    ChannelError,
    ChannelSender,
    EmailSender,
    SendFailure,
    SmsSender,
    TransportUnavailable,
)
from .email import SendGridEmailClient, extract_sendgrid_error_details
from .sms import AfricasTalkingSmsClient

__all__ = [
    "ChannelError",
    "ChannelSender",
    "EmailSender",
    "SendFailure",
    "SmsSender",
    "TransportUnavailable",
    "SendGridEmailClient",
    "extract_sendgrid_error_details",
    "AfricasTalkingSmsClient",
]
