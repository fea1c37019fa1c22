"""Construction and lifecycle of the notification services."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass

from sqlalchemy.orm import Session

from clinic_notify.application.use_cases.notifications import NotificationDispatcher
from clinic_notify.config import Settings, get_settings
from clinic_notify.domain.entities import CHANNEL_EMAIL, CHANNEL_SMS
from clinic_notify.domain.ports import EmailTransport, SmsTransport
from clinic_notify.infrastructure.channels import (
    AfricasTalkingSmsClient,
    EmailSender,
    SendGridEmailClient,
    SmsSender,
)
from clinic_notify.infrastructure.notifications import PushRegistry
from clinic_notify.infrastructure.queue import Clock, QueueWorker, RetryPolicy
from clinic_notify.utils import now_in_app_timezone

logger = logging.getLogger(__name__)


@dataclass
class NotificationServices:
    """Process-wide notification services, started on boot and stopped on shutdown."""

    settings: Settings
    session_factory: Callable[[], Session]
    registry: PushRegistry
    worker: QueueWorker
    clock: Clock = now_in_app_timezone

    def dispatcher(self, session: Session) -> NotificationDispatcher:
        return NotificationDispatcher(session, self.registry, clock=self.clock)

    def start(self, loop: asyncio.AbstractEventLoop | None = None) -> None:
        self.registry.bind_loop(loop)
        if self.settings.delivery_worker_enabled:
            self.worker.start()
        else:
            logger.info("Delivery workers disabled by configuration")

    def stop(self) -> None:
        self.worker.stop()
        self.registry.bind_loop(None)


def build_services(
    settings: Settings | None = None,
    *,
    session_factory: Callable[[], Session] | None = None,
    sms_transport: SmsTransport | None = None,
    email_transport: EmailTransport | None = None,
    registry: PushRegistry | None = None,
    clock: Clock = now_in_app_timezone,
) -> NotificationServices:
    """Wire the registry, channel senders and delivery worker from ``settings``."""

    settings = settings or get_settings()
    if session_factory is None:
        from clinic_notify.infrastructure.database import SessionLocal

        session_factory = SessionLocal

    senders = {
        CHANNEL_SMS: SmsSender(sms_transport or AfricasTalkingSmsClient(settings)),
        CHANNEL_EMAIL: EmailSender(email_transport or SendGridEmailClient(settings)),
    }
    worker = QueueWorker(
        session_factory,
        senders,
        policy=RetryPolicy.from_settings(settings),
        lease_ms=settings.delivery_lease_ms,
        send_timeout=settings.delivery_send_timeout_seconds,
        poll_interval=settings.delivery_poll_interval_seconds,
        worker_count=settings.delivery_worker_count,
        clock=clock,
    )
    return NotificationServices(
        settings=settings,
        session_factory=session_factory,
        registry=registry or PushRegistry(),
        worker=worker,
        clock=clock,
    )


__all__ = ["NotificationServices", "build_services"]
