"""Tests for the live connection registry used for in-app pushes."""

from __future__ import annotations

import asyncio
import logging
import threading
import time
from datetime import datetime, timezone

from anyio import to_thread

from clinic_notify.domain.entities import Identity, Notification
from clinic_notify.infrastructure.notifications import (
    PushRegistry,
    role_key,
    serialize_notification,
    user_key,
)


def _notification(recipient_id="doc1") -> Notification:
    return Notification(
        id="n-1",
        recipient_id=recipient_id,
        recipient_type="EMPLOYEE",
        type="APPOINTMENT_CREATED",
        title="New appt",
        message="Patient booked for 09:00",
        channel="IN_APP",
        data={"appointment_id": "a-1"},
        status="SENT",
        created_at=datetime(2026, 3, 2, 8, 0, tzinfo=timezone.utc),
        sent_at=datetime(2026, 3, 2, 8, 0, tzinfo=timezone.utc),
    )


def test_register_indexes_by_user_and_role(registry, connection_factory):
    connection = connection_factory()
    registry.register(connection, Identity(user_id="doc1", role="DOCTOR"))

    assert registry.connections_for(user_key("doc1")) == [connection]
    assert registry.connections_for(role_key("DOCTOR")) == [connection]

    registry.unregister(connection, Identity(user_id="doc1", role="DOCTOR"))

    assert registry.connections_for(user_key("doc1")) == []
    assert registry.connections_for(role_key("DOCTOR")) == []


def test_multiple_sessions_for_one_user_all_receive(registry, connection_factory):
    laptop, tablet = connection_factory(), connection_factory()
    registry.register(laptop, Identity(user_id="doc1", role="DOCTOR"))
    registry.register(tablet, Identity(user_id="doc1", role="DOCTOR"))

    async def scenario():
        targeted = registry.emit_to_user("doc1", _notification())
        await asyncio.sleep(0)
        return targeted

    assert asyncio.run(scenario()) == 2
    assert laptop.messages == tablet.messages
    assert laptop.messages[0] == {
        "type": "notification",
        "data": serialize_notification(_notification()),
    }


def test_emit_without_connections_returns_zero(registry):
    assert registry.emit_to_user("nobody", _notification("nobody")) == 0
    assert registry.emit_to_role("ACCOUNTANT", _notification()) == 0


def test_emit_without_any_event_loop_is_dropped(registry, connection_factory, caplog):
    connection = connection_factory()
    registry.register(connection, Identity(user_id="doc1", role="DOCTOR"))

    with caplog.at_level(logging.DEBUG, logger="clinic_notify.infrastructure.notifications.registry"):
        assert registry.emit_to_user("doc1", _notification()) == 1

    assert connection.messages == []
    assert any("skipped" in record.getMessage() for record in caplog.records)


def test_emit_from_worker_thread_uses_bound_loop(registry, connection_factory):
    loop = asyncio.new_event_loop()
    runner = threading.Thread(target=loop.run_forever, daemon=True)
    runner.start()
    while not loop.is_running():
        time.sleep(0.001)
    connection = connection_factory()
    registry.register(connection, Identity(user_id="doc1", role="DOCTOR"))
    registry.bind_loop(loop)

    try:
        assert registry.emit_to_user("doc1", _notification()) == 1
        deadline = time.monotonic() + 2
        while not connection.messages and time.monotonic() < deadline:
            time.sleep(0.01)
    finally:
        loop.call_soon_threadsafe(loop.stop)
        runner.join(2)
        loop.close()

    assert len(connection.messages) == 1


class SlowConnection:
    def __init__(self, delay: float) -> None:
        self.delay = delay
        self.messages: list[dict] = []

    async def send_json(self, data) -> None:
        await asyncio.sleep(self.delay)
        self.messages.append(data)


def test_pending_pushes_are_tracked_until_done(registry):
    connection = SlowConnection(0.05)
    registry.register(connection, Identity(user_id="doc1", role="DOCTOR"))

    async def scenario():
        registry.emit_to_user("doc1", _notification())
        assert len(registry._tasks) == 1
        await asyncio.gather(*registry._tasks)
        await asyncio.sleep(0)

    asyncio.run(scenario())

    assert len(connection.messages) == 1
    assert registry._tasks == set()


def test_emit_from_anyio_worker_thread_does_not_wait_for_delivery(registry):
    connection = SlowConnection(0.2)
    registry.register(connection, Identity(user_id="doc1", role="DOCTOR"))

    async def scenario():
        started = time.monotonic()
        targeted = await to_thread.run_sync(registry.emit_to_user, "doc1", _notification())
        elapsed = time.monotonic() - started
        assert connection.messages == []
        await asyncio.sleep(0.4)
        return targeted, elapsed

    targeted, elapsed = asyncio.run(scenario())

    assert targeted == 1
    assert elapsed < 0.15
    assert len(connection.messages) == 1


def test_failing_connection_is_removed(registry, connection_factory):
    broken = connection_factory(fail=True)
    healthy = connection_factory()
    registry.register(broken, Identity(user_id="ph1", role="PHARMACIST"))
    registry.register(healthy, Identity(user_id="ph2", role="PHARMACIST"))

    asyncio.run(registry.send_to_key(role_key("PHARMACIST"), {"type": "notification"}))

    assert registry.connections_for(role_key("PHARMACIST")) == [healthy]
    assert registry.connections_for(user_key("ph1")) == []
    assert healthy.messages == [{"type": "notification"}]


def test_connections_spread_over_shards(connection_factory):
    registry = PushRegistry(shards=4)
    connections = {}
    for index in range(40):
        connection = connection_factory()
        connections[f"user{index}"] = connection
        registry.register(connection, Identity(user_id=f"user{index}", role="NURSE"))

    assert len(registry.connections_for(role_key("NURSE"))) == 40
    for user_id, connection in connections.items():
        assert registry.connections_for(user_key(user_id)) == [connection]


def test_serialize_notification_uses_iso_timestamps():
    payload = serialize_notification(_notification())

    assert payload["id"] == "n-1"
    assert payload["recipient_id"] == "doc1"
    assert payload["created_at"] == "2026-03-02T08:00:00+00:00"
    assert payload["read_at"] is None
    assert payload["data"] == {"appointment_id": "a-1"}
