"""Tests for the delivery queue and the worker that drains it."""

from __future__ import annotations

import threading
import time
from datetime import datetime, timedelta, timezone

import pytest

from clinic_notify.infrastructure.channels import SendFailure
from clinic_notify.infrastructure.queue import DeliveryQueue, QueueWorker, RetryPolicy
from clinic_notify.infrastructure.repositories import NotificationRepository

PHONE = {"phone": "+254700000001"}


def _sms_request(make_request, **overrides):
    values = {
        "recipient_id": "pat1",
        "recipient_type": "PATIENT",
        "channel": "SMS",
        "data": PHONE,
    }
    values.update(overrides)
    return make_request(**values)


def _status(session, notification_id):
    notification = NotificationRepository(session).get(notification_id)
    return notification.status if notification is not None else None


def test_retry_policy_backoff_grows_exponentially():
    policy = RetryPolicy()

    assert [policy.delay_for(attempt) for attempt in (1, 2, 3)] == [5000, 10000, 20000]


def test_retry_policy_reads_settings(settings):
    tuned = settings.model_copy(
        update={"delivery_max_attempts": 5, "delivery_backoff_base_ms": 100}
    )

    policy = RetryPolicy.from_settings(tuned)

    assert policy.max_attempts == 5
    assert policy.delay_for(2) == 200


def test_successful_delivery_marks_sent_and_clears_job(
    dispatcher, worker, session, clock, sms, make_request
):
    notification = dispatcher.create_notification(_sms_request(make_request))

    assert worker.run_pending() == 1

    stored = NotificationRepository(session).get(notification.id)
    assert stored.status == "SENT"
    assert stored.sent_at == clock()
    assert sms.sent == [{"to": "+254700000001", "message": "You have a new appointment."}]
    assert DeliveryQueue(session, clock=clock).list_jobs() == []


def test_email_delivery_uses_title_as_subject(dispatcher, worker, session, email, make_request):
    notification = dispatcher.create_notification(
        make_request(channel="EMAIL", data={"email": "nurse@clinic.test"})
    )

    worker.run_pending()

    assert _status(session, notification.id) == "SENT"
    assert email.sent == [
        {
            "to": "nurse@clinic.test",
            "subject": "New appt",
            "body": "You have a new appointment.",
            "html_body": None,
        }
    ]


def test_job_for_already_sent_notification_is_dropped(
    dispatcher, worker, session, clock, sms, make_request
):
    notification = dispatcher.create_notification(_sms_request(make_request))
    dispatcher.schedule_notification(notification.id, "SMS", 0)

    assert worker.run_pending() == 2

    assert sms.calls == 1
    assert _status(session, notification.id) == "SENT"
    assert DeliveryQueue(session, clock=clock).list_jobs() == []


def test_failures_are_retried_with_backoff_then_marked_failed(
    dispatcher, worker, session, clock, sms, make_request
):
    sms.failures = 3
    notification = dispatcher.create_notification(_sms_request(make_request))
    queue = DeliveryQueue(session, clock=clock)

    assert worker.run_pending() == 1
    (job,) = queue.list_jobs(notification.id)
    assert job.attempt == 1
    assert (job.available_at - clock()).total_seconds() == 5
    assert "SMS gateway unavailable" in job.last_error
    assert _status(session, notification.id) == "PENDING"

    clock.advance(4999)
    assert worker.run_pending() == 0

    clock.advance(1)
    assert worker.run_pending() == 1
    (job,) = queue.list_jobs(notification.id)
    assert job.attempt == 2
    assert (job.available_at - clock()).total_seconds() == 10

    clock.advance(10000)
    assert worker.run_pending() == 1

    assert sms.calls == 3
    assert _status(session, notification.id) == "FAILED"
    assert queue.list_jobs(notification.id) == []


def test_failure_then_success_marks_sent(dispatcher, worker, session, clock, sms, make_request):
    sms.failures = 1
    notification = dispatcher.create_notification(_sms_request(make_request))

    worker.run_pending()
    clock.advance(5000)
    worker.run_pending()

    assert sms.calls == 2
    assert _status(session, notification.id) == "SENT"


def test_failed_notification_logs_error(
    dispatcher, worker, session, clock, sms, make_request, caplog
):
    sms.failures = 3
    notification = dispatcher.create_notification(_sms_request(make_request))

    with caplog.at_level("WARNING", logger="clinic_notify.infrastructure.queue.worker"):
        for delay in (0, 5000, 10000):
            clock.advance(delay)
            worker.run_pending()

    assert _status(session, notification.id) == "FAILED"
    errors = [record for record in caplog.records if record.levelname == "ERROR"]
    assert len(errors) == 1
    assert notification.id in errors[0].getMessage()


def test_notification_deleted_before_delivery_is_skipped(
    dispatcher, worker, session, clock, sms, make_request
):
    notification = dispatcher.create_notification(_sms_request(make_request))
    NotificationRepository(session).delete(notification.id, recipient_id="pat1")

    assert worker.run_pending() == 1

    assert sms.calls == 0
    assert DeliveryQueue(session, clock=clock).list_jobs() == []


def test_notification_deleted_during_send_is_not_resurrected(
    dispatcher, worker, session_factory, session, clock, sms, make_request
):
    notification = dispatcher.create_notification(_sms_request(make_request))

    def delete_while_sending():
        with session_factory() as other:
            NotificationRepository(other).delete(notification.id, recipient_id="pat1")

    sms.on_send = delete_while_sending

    assert worker.run_pending() == 1

    assert sms.calls == 1
    assert NotificationRepository(session).get(notification.id) is None
    assert DeliveryQueue(session, clock=clock).list_jobs() == []


def test_notification_read_during_send_stays_read(
    dispatcher, worker, session_factory, session, sms, make_request
):
    notification = dispatcher.create_notification(_sms_request(make_request))

    def read_while_sending():
        with session_factory() as other:
            NotificationRepository(other).mark_as_read(notification.id, recipient_id="pat1")

    sms.on_send = read_while_sending
    worker.run_pending()

    assert _status(session, notification.id) == "READ"


def test_send_timeout_counts_as_failed_attempt(
    dispatcher, session_factory, session, clock, make_request
):
    def slow_sender(_notification):
        time.sleep(0.2)

    worker = QueueWorker(
        session_factory,
        {"SMS": slow_sender},
        policy=RetryPolicy(max_attempts=1),
        send_timeout=0.05,
        clock=clock,
    )
    notification = dispatcher.create_notification(_sms_request(make_request))

    try:
        assert worker.run_pending() == 1
    finally:
        worker.stop(timeout=1)

    assert _status(session, notification.id) == "FAILED"


def test_timed_out_send_keeps_the_job_until_it_returns(
    dispatcher, session_factory, session, clock, make_request
):
    started = threading.Event()
    release = threading.Event()
    lock = threading.Lock()
    state = {"calls": 0, "in_flight": 0, "peak": 0}

    def stuck_sender(_notification):
        with lock:
            state["calls"] += 1
            state["in_flight"] += 1
            state["peak"] = max(state["peak"], state["in_flight"])
        started.set()
        try:
            release.wait(5)
        finally:
            with lock:
                state["in_flight"] -= 1

    worker = QueueWorker(
        session_factory,
        {"SMS": stuck_sender},
        policy=RetryPolicy(max_attempts=3, base_delay_ms=1),
        lease_ms=1000,
        send_timeout=0.05,
        clock=clock,
    )
    notification = dispatcher.create_notification(_sms_request(make_request))
    queue = DeliveryQueue(session, clock=clock)
    first = threading.Thread(target=worker.process_next)

    try:
        first.start()
        assert started.wait(2)
        time.sleep(0.2)
        clock.advance(5000)
        time.sleep(0.2)

        assert queue.claim("other-worker", lease_ms=1000) is None
        (job,) = queue.list_jobs(notification.id)
        assert job.attempt == 0

        release.set()
        first.join(2)
        (job,) = queue.list_jobs(notification.id)
        assert job.attempt == 1
        assert "timed out" in job.last_error

        clock.advance(10)
        assert worker.process_next() is True
    finally:
        release.set()
        first.join(2)
        worker.stop(timeout=1)

    assert state["calls"] == 2
    assert state["peak"] == 1
    assert _status(session, notification.id) == "SENT"


def test_missing_sender_counts_as_failed_attempt(
    dispatcher, session_factory, session, clock, make_request
):
    worker = QueueWorker(session_factory, {}, policy=RetryPolicy(max_attempts=2), clock=clock)
    notification = dispatcher.create_notification(_sms_request(make_request))

    worker.run_pending()
    (job,) = DeliveryQueue(session, clock=clock).list_jobs(notification.id)

    assert job.attempt == 1
    assert "TransportUnavailable" in job.last_error
    worker.stop(timeout=1)


def test_enqueue_rejects_negative_delay(session, clock):
    with pytest.raises(ValueError):
        DeliveryQueue(session, clock=clock).enqueue("n1", "SMS", -5)


def test_claim_is_exclusive_until_lease_expires(session, clock):
    queue = DeliveryQueue(session, clock=clock)
    queue.enqueue("n1", "SMS")

    first = queue.claim("worker-a", lease_ms=60000)
    assert first is not None
    assert first.lease_owner == "worker-a"
    assert queue.claim("worker-b", lease_ms=60000) is None

    clock.advance(60000)
    second = queue.claim("worker-b", lease_ms=60000)
    assert second is not None
    assert second.id == first.id
    assert second.lease_owner == "worker-b"

    assert queue.complete(first) is False
    assert queue.complete(second) is True
    assert queue.list_jobs() == []


def test_sibling_job_waits_for_live_lease(session, clock):
    queue = DeliveryQueue(session, clock=clock)
    queue.enqueue("n1", "SMS")
    queue.enqueue("n1", "SMS")
    queue.enqueue("n2", "SMS")

    first = queue.claim("worker-a", lease_ms=60000)
    other = queue.claim("worker-b", lease_ms=60000)

    assert first.notification_id == "n1"
    assert other.notification_id == "n2"
    assert queue.claim("worker-c", lease_ms=60000) is None

    queue.complete(first)
    sibling = queue.claim("worker-c", lease_ms=60000)
    assert sibling is not None
    assert sibling.notification_id == "n1"
    assert sibling.id != first.id


def test_release_for_retry_frees_the_lease(session, clock):
    queue = DeliveryQueue(session, clock=clock)
    queue.enqueue("n1", "EMAIL")
    job = queue.claim("worker-a", lease_ms=60000)

    assert queue.release_for_retry(job, attempt=1, delay=2000, error="boom") is True

    assert queue.claim("worker-b", lease_ms=60000) is None
    clock.advance(2000)
    retried = queue.claim("worker-b", lease_ms=60000)
    assert retried.attempt == 1
    assert retried.last_error == "boom"


def test_channel_errors_carry_retryable_flag():
    error = SendFailure("rejected", retryable=False, provider_response={"status": 400})

    assert error.retryable is False
    assert error.provider_response == {"status": 400}


def test_background_workers_deliver_queued_notifications(
    dispatcher, worker, session, sms, make_request
):
    notification = dispatcher.create_notification(_sms_request(make_request))

    worker.start()
    assert worker.running
    deadline = time.monotonic() + 5
    while time.monotonic() < deadline and _status(session, notification.id) != "SENT":
        time.sleep(0.02)
    worker.stop(timeout=2)

    assert _status(session, notification.id) == "SENT"
    assert sms.calls == 1
    assert not worker.running


def test_delay_is_honoured_across_fall_back(new_york, session, clock):
    # 01:50 EDT; clocks fall back to 01:00 EST at 06:00 UTC.
    clock.current = datetime(2026, 11, 1, 5, 50, tzinfo=timezone.utc)
    queue = DeliveryQueue(session, clock=clock)

    queued = queue.enqueue("n1", "SMS", delay=20 * 60 * 1000)

    due = datetime(2026, 11, 1, 6, 10, tzinfo=timezone.utc)
    assert queued.available_at == due
    assert queued.available_at.utcoffset() == timedelta(hours=-5)

    clock.advance(minutes=1)
    assert queue.claim("worker-a", lease_ms=60000) is None

    clock.advance(minutes=18, seconds=59)
    assert queue.claim("worker-a", lease_ms=60000) is None

    clock.advance(seconds=1)
    job = queue.claim("worker-a", lease_ms=60000)
    assert job is not None
    assert job.available_at == due
    assert job.lease_expires_at == due + timedelta(minutes=1)
