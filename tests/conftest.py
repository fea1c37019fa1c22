"""Shared fixtures for the notification engine tests."""

from __future__ import annotations

import os
import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

os.environ.setdefault("SECRET_KEY", "test-secret")
os.environ.setdefault("APP_TIMEZONE", "UTC")
os.environ.setdefault("DELIVERY_WORKER_ENABLED", "false")
os.environ.setdefault("DATABASE_URL", f"sqlite:///{ROOT / 'tests' / 'default.db'}")

from clinic_notify.config import Settings  # noqa: E402
from clinic_notify.container import build_services  # noqa: E402
from clinic_notify.domain.entities import NotificationRequest  # noqa: E402
from clinic_notify.infrastructure.database import (  # noqa: E402
    build_engine,
    build_session_factory,
    initialize_database,
)
from clinic_notify.infrastructure.notifications import PushRegistry  # noqa: E402


class FakeClock:
    """Controllable replacement for ``now_in_app_timezone``."""

    def __init__(self, start: datetime) -> None:
        self.current = start

    def __call__(self) -> datetime:
        return self.current

    def advance(self, milliseconds: int = 0, **kwargs) -> None:
        self.current += timedelta(milliseconds=milliseconds, **kwargs)


class RecordingSms:
    """SMS transport that records messages and fails while ``failures`` remain."""

    def __init__(self) -> None:
        self.sent: list[dict[str, str]] = []
        self.calls = 0
        self.failures = 0
        self.error: Exception = RuntimeError("SMS gateway unavailable")
        self.on_send = None

    def send_sms(self, *, to: str, message: str) -> None:
        self.calls += 1
        if self.on_send is not None:
            self.on_send()
        if self.failures:
            self.failures -= 1
            raise self.error
        self.sent.append({"to": to, "message": message})


class RecordingEmail:
    def __init__(self) -> None:
        self.sent: list[dict[str, str | None]] = []
        self.failures = 0

    def send_email(
        self, *, to: str, subject: str, body: str, html_body: str | None = None
    ) -> None:
        if self.failures:
            self.failures -= 1
            raise RuntimeError("SMTP relay down")
        self.sent.append({"to": to, "subject": subject, "body": body, "html_body": html_body})


class RecordingConnection:
    """Stand-in for a websocket connection."""

    def __init__(self, fail: bool = False) -> None:
        self.messages: list[dict] = []
        self.fail = fail

    async def send_json(self, data) -> None:
        if self.fail:
            raise ConnectionError("socket closed")
        self.messages.append(data)


@pytest.fixture()
def settings(tmp_path: Path) -> Settings:
    return Settings(
        _env_file=None,
        secret_key="test-secret",
        database_url=f"sqlite:///{tmp_path / 'notifications.db'}",
        app_timezone="UTC",
        delivery_worker_enabled=False,
        delivery_poll_interval_seconds=0.01,
        delivery_send_timeout_seconds=2,
    )


@pytest.fixture()
def session_factory(settings: Settings):
    engine = build_engine(settings.database_url)
    initialize_database(bind=engine)
    yield build_session_factory(engine)
    engine.dispose()


@pytest.fixture()
def session(session_factory):
    db = session_factory()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock(datetime(2026, 3, 2, 8, 0, tzinfo=timezone.utc))


@pytest.fixture()
def sms() -> RecordingSms:
    return RecordingSms()


@pytest.fixture()
def email() -> RecordingEmail:
    return RecordingEmail()


@pytest.fixture()
def registry() -> PushRegistry:
    return PushRegistry()


@pytest.fixture()
def services(settings, session_factory, sms, email, registry, clock):
    return build_services(
        settings,
        session_factory=session_factory,
        sms_transport=sms,
        email_transport=email,
        registry=registry,
        clock=clock,
    )


@pytest.fixture()
def dispatcher(services, session):
    return services.dispatcher(session)


@pytest.fixture()
def worker(services):
    yield services.worker
    services.worker.stop(timeout=1)


@pytest.fixture()
def make_request():
    def factory(**overrides) -> NotificationRequest:
        values = {
            "recipient_id": "doc1",
            "recipient_type": "EMPLOYEE",
            "type": "APPOINTMENT_CREATED",
            "title": "New appt",
            "message": "You have a new appointment.",
            "channel": "IN_APP",
            "data": {},
        }
        values.update(overrides)
        return NotificationRequest(**values)

    return factory


@pytest.fixture()
def connection_factory():
    return RecordingConnection


@pytest.fixture()
def new_york(monkeypatch):
    """Run the test with the application timezone set to America/New_York."""

    from zoneinfo import ZoneInfo

    from clinic_notify.utils import datetime as datetime_utils

    tz = ZoneInfo("America/New_York")
    monkeypatch.setattr(datetime_utils, "get_app_timezone", lambda: tz)
    return tz
