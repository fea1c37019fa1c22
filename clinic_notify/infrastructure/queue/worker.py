"""Background worker that drains due delivery jobs."""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable, Mapping
from concurrent.futures import ThreadPoolExecutor, wait
from concurrent.futures import TimeoutError as FutureTimeoutError
from dataclasses import dataclass
from uuid import uuid4

from sqlalchemy.orm import Session

from clinic_notify.config import Settings
from clinic_notify.domain.entities import STATUS_PENDING, DeliveryJob, Notification
from clinic_notify.infrastructure.channels import (
    ChannelError,
    ChannelSender,
    SendFailure,
    TransportUnavailable,
)
from clinic_notify.infrastructure.repositories import NotificationRepository
from clinic_notify.utils import now_in_app_timezone

from .delivery_queue import Clock, DeliveryQueue

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RetryPolicy:
    """Attempt cap and exponential backoff between delivery attempts."""

    max_attempts: int = 3
    base_delay_ms: int = 5000
    multiplier: float = 2.0

    @classmethod
    def from_settings(cls, settings: Settings) -> "RetryPolicy":
        return cls(
            max_attempts=settings.delivery_max_attempts,
            base_delay_ms=settings.delivery_backoff_base_ms,
            multiplier=settings.delivery_backoff_multiplier,
        )

    def delay_for(self, attempt: int) -> int:
        """Milliseconds to wait after failed attempt number ``attempt`` (1-based)."""

        return int(self.base_delay_ms * self.multiplier ** max(attempt - 1, 0))


class QueueWorker:
    """Claim due jobs, invoke the channel sender and settle notification status.

    Each call to :meth:`process_next` handles one job to completion in its
    own session. :meth:`start` runs ``worker_count`` threads that poll the
    queue until :meth:`stop` is called.
    """

    def __init__(
        self,
        session_factory: Callable[[], Session],
        senders: Mapping[str, ChannelSender],
        *,
        policy: RetryPolicy | None = None,
        lease_ms: int = 60000,
        send_timeout: float = 30.0,
        poll_interval: float = 1.0,
        worker_count: int = 1,
        clock: Clock = now_in_app_timezone,
    ) -> None:
        self._session_factory = session_factory
        self._senders = dict(senders)
        self._policy = policy or RetryPolicy()
        self._lease_ms = lease_ms
        self._send_timeout = send_timeout
        self._poll_interval = poll_interval
        self._worker_count = worker_count
        self._clock = clock
        self._stop_event = threading.Event()
        self._threads: list[threading.Thread] = []
        self._executor = self._new_executor()

    @property
    def policy(self) -> RetryPolicy:
        return self._policy

    @property
    def running(self) -> bool:
        return any(thread.is_alive() for thread in self._threads)

    def start(self) -> None:
        if self.running:
            return
        self._stop_event.clear()
        self._threads = [
            threading.Thread(
                target=self._run,
                args=(f"worker-{index}-{uuid4().hex[:8]}",),
                name=f"notification-worker-{index}",
                daemon=True,
            )
            for index in range(self._worker_count)
        ]
        for thread in self._threads:
            thread.start()
        logger.info("Started %s notification delivery worker(s)", len(self._threads))

    def stop(self, timeout: float | None = 5.0) -> None:
        """Signal the workers to finish their current job and wait for them."""

        self._stop_event.set()
        for thread in self._threads:
            thread.join(timeout)
        self._threads = []
        self._executor.shutdown(wait=False, cancel_futures=True)
        self._executor = self._new_executor()
        logger.info("Notification delivery workers stopped")

    def _new_executor(self) -> ThreadPoolExecutor:
        return ThreadPoolExecutor(
            max_workers=max(2, self._worker_count * 2),
            thread_name_prefix="notification-send",
        )

    def run_pending(self, max_jobs: int | None = None) -> int:
        """Process due jobs in the calling thread until none is left."""

        processed = 0
        while max_jobs is None or processed < max_jobs:
            if not self.process_next():
                break
            processed += 1
        return processed

    def process_next(self, owner: str | None = None) -> bool:
        """Handle one due job; ``False`` when nothing was eligible."""

        owner = owner or f"inline-{uuid4().hex[:8]}"
        with self._session_factory() as session:
            queue = DeliveryQueue(session, clock=self._clock)
            job = queue.claim(owner, lease_ms=self._lease_ms)
            if job is None:
                return False
            self._handle(session, queue, job)
            return True

    def _run(self, owner: str) -> None:
        while not self._stop_event.is_set():
            try:
                worked = self.process_next(owner)
            except Exception:
                logger.exception("Delivery worker %s failed while processing a job", owner)
                worked = False
            if not worked:
                self._stop_event.wait(self._poll_interval)

    def _handle(self, session: Session, queue: DeliveryQueue, job: DeliveryJob) -> None:
        repository = NotificationRepository(session)
        notification = repository.get(job.notification_id)
        if notification is None:
            logger.debug("Notification %s no longer exists; dropping job", job.notification_id)
            queue.complete(job)
            return
        if notification.status != STATUS_PENDING:
            logger.debug(
                "Notification %s already %s; dropping job", notification.id, notification.status
            )
            queue.complete(job)
            return

        attempt = job.attempt + 1
        try:
            self._send(queue, job, notification)
        except Exception as exc:  # noqa: BLE001 - every delivery failure counts as an attempt
            self._record_failure(repository, queue, job, attempt, exc)
            return

        if repository.mark_sent(notification.id, sent_at=self._clock()):
            logger.info(
                "Delivered %s notification %s on attempt %s", job.channel, notification.id, attempt
            )
        else:
            logger.info(
                "Notification %s changed during delivery; status left untouched", notification.id
            )
        queue.complete(job)

    def _send(self, queue: DeliveryQueue, job: DeliveryJob, notification: Notification) -> None:
        """Run the channel sender under the send timeout.

        A sender that overruns the timeout cannot be interrupted, so the job
        keeps its lease until the call returns and only then is the attempt
        recorded as failed. No second attempt for the job starts meanwhile.
        """

        sender = self._senders.get(job.channel)
        if sender is None:
            raise TransportUnavailable(f"No sender configured for channel {job.channel}")
        future = self._executor.submit(sender, notification)
        try:
            future.result(timeout=self._send_timeout)
        except FutureTimeoutError as exc:
            logger.warning(
                "%s send for notification %s exceeded %ss; holding the job until it returns",
                job.channel,
                notification.id,
                self._send_timeout,
            )
            while not future.done():
                if not queue.extend_lease(job, lease_ms=self._lease_ms):
                    logger.warning("Lost the lease on delivery job %s", job.id)
                wait([future], timeout=self._send_timeout)
            raise SendFailure(
                f"{job.channel} send timed out after {self._send_timeout}s"
            ) from exc

    def _record_failure(
        self,
        repository: NotificationRepository,
        queue: DeliveryQueue,
        job: DeliveryJob,
        attempt: int,
        exc: Exception,
    ) -> None:
        error = f"{type(exc).__name__}: {exc}"
        retryable = exc.retryable if isinstance(exc, ChannelError) else True

        if attempt >= self._policy.max_attempts:
            repository.mark_failed(job.notification_id)
            queue.complete(job)
            logger.error(
                "Giving up on %s notification %s after %s attempt(s): %s",
                job.channel,
                job.notification_id,
                attempt,
                error,
            )
            return

        delay = self._policy.delay_for(attempt)
        queue.release_for_retry(job, attempt=attempt, delay=delay, error=error)
        logger.warning(
            "Attempt %s for %s notification %s failed (%s, retryable=%s); retrying in %sms",
            attempt,
            job.channel,
            job.notification_id,
            error,
            retryable,
            delay,
        )


__all__ = ["QueueWorker", "RetryPolicy"]
