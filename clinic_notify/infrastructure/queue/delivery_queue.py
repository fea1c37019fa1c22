"""Durable delayed queue of channel deliveries backed by the ``delivery_job`` table."""

from __future__ import annotations

import logging
from collections.abc import Callable, Sequence
from datetime import datetime

from sqlalchemy import delete, exists, or_, select, update
from sqlalchemy.orm import Session, aliased

from clinic_notify.domain.entities import DeliveryJob
from clinic_notify.infrastructure.models import DeliveryJobModel
from clinic_notify.utils import (
    from_storage_datetime,
    milliseconds_after,
    now_in_app_timezone,
    to_storage_datetime,
)

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]

_CLAIM_BATCH = 10


class DeliveryQueue:
    """Enqueue, lease and settle :class:`DeliveryJob` rows.

    A job becomes eligible once ``available_at`` has passed. Workers take a
    time-bounded lease before processing; a lease that expires (for example
    because the worker crashed) makes the job claimable again. A job is never
    leased while another job for the same notification and channel holds a
    live lease.
    """

    def __init__(self, session: Session, *, clock: Clock = now_in_app_timezone) -> None:
        self.session = session
        self._clock = clock

    def enqueue(self, notification_id: str, channel: str, delay: int = 0) -> DeliveryJob:
        """Append a job that becomes eligible ``delay`` milliseconds from now."""

        if delay < 0:
            raise ValueError("delay must be non-negative")
        now = self._clock()
        model = DeliveryJobModel(
            notification_id=notification_id,
            channel=channel,
            available_at=to_storage_datetime(milliseconds_after(now, delay)),
            attempt=0,
            created_at=to_storage_datetime(now),
        )
        self.session.add(model)
        self.session.commit()
        self.session.refresh(model)
        logger.info(
            "Queued %s delivery for notification %s (delay %sms)",
            channel,
            notification_id,
            delay,
        )
        return self._to_entity(model)

    def claim(self, owner: str, *, lease_ms: int) -> DeliveryJob | None:
        """Lease the oldest due job for ``owner`` or return ``None``."""

        now = to_storage_datetime(self._clock())
        lease_free = or_(
            DeliveryJobModel.lease_expires_at.is_(None),
            DeliveryJobModel.lease_expires_at <= now,
        )
        candidates = self.session.scalars(
            select(DeliveryJobModel)
            .where(DeliveryJobModel.available_at <= now, lease_free)
            .order_by(DeliveryJobModel.available_at, DeliveryJobModel.created_at)
            .limit(_CLAIM_BATCH)
            .execution_options(populate_existing=True)
        ).all()

        sibling = aliased(DeliveryJobModel)
        lease_expires_at = milliseconds_after(now, lease_ms)
        for candidate in candidates:
            sibling_leased = exists().where(
                sibling.notification_id == candidate.notification_id,
                sibling.channel == candidate.channel,
                sibling.id != candidate.id,
                sibling.lease_expires_at > now,
            )
            result = self.session.execute(
                update(DeliveryJobModel)
                .where(DeliveryJobModel.id == candidate.id, lease_free, ~sibling_leased)
                .values(
                    {
                        DeliveryJobModel.lease_owner: owner,
                        DeliveryJobModel.lease_expires_at: lease_expires_at,
                    }
                )
                .execution_options(synchronize_session=False)
            )
            self.session.commit()
            if result.rowcount:
                job = self._to_entity(candidate)
                job.lease_owner = owner
                job.lease_expires_at = from_storage_datetime(lease_expires_at)
                return job
        return None

    def extend_lease(self, job: DeliveryJob, *, lease_ms: int) -> bool:
        """Push the lease held on ``job`` to ``lease_ms`` from now."""

        lease_expires_at = to_storage_datetime(milliseconds_after(self._clock(), lease_ms))
        result = self.session.execute(
            update(DeliveryJobModel)
            .where(
                DeliveryJobModel.id == job.id,
                DeliveryJobModel.lease_owner == job.lease_owner,
            )
            .values({DeliveryJobModel.lease_expires_at: lease_expires_at})
            .execution_options(synchronize_session=False)
        )
        self.session.commit()
        if result.rowcount:
            job.lease_expires_at = from_storage_datetime(lease_expires_at)
        return bool(result.rowcount)

    def complete(self, job: DeliveryJob) -> bool:
        """Remove ``job`` for good; ``False`` when the lease was lost meanwhile."""

        result = self.session.execute(
            delete(DeliveryJobModel)
            .where(
                DeliveryJobModel.id == job.id,
                DeliveryJobModel.lease_owner == job.lease_owner,
            )
            .execution_options(synchronize_session=False)
        )
        self.session.commit()
        return bool(result.rowcount)

    def release_for_retry(
        self, job: DeliveryJob, *, attempt: int, delay: int, error: str | None
    ) -> bool:
        """Record a failed attempt and make ``job`` eligible again after ``delay`` ms."""

        available_at = milliseconds_after(self._clock(), delay)
        result = self.session.execute(
            update(DeliveryJobModel)
            .where(
                DeliveryJobModel.id == job.id,
                DeliveryJobModel.lease_owner == job.lease_owner,
            )
            .values(
                {
                    DeliveryJobModel.attempt: attempt,
                    DeliveryJobModel.available_at: to_storage_datetime(available_at),
                    DeliveryJobModel.lease_owner: None,
                    DeliveryJobModel.lease_expires_at: None,
                    DeliveryJobModel.last_error: error,
                }
            )
            .execution_options(synchronize_session=False)
        )
        self.session.commit()
        return bool(result.rowcount)

    def list_jobs(self, notification_id: str | None = None) -> Sequence[DeliveryJob]:
        query = select(DeliveryJobModel).order_by(DeliveryJobModel.available_at)
        if notification_id is not None:
            query = query.where(DeliveryJobModel.notification_id == notification_id)
        query = query.execution_options(populate_existing=True)
        return [self._to_entity(model) for model in self.session.scalars(query).all()]

    @staticmethod
    def _to_entity(model: DeliveryJobModel) -> DeliveryJob:
        return DeliveryJob(
            id=model.id,
            notification_id=model.notification_id,
            channel=model.channel,
            available_at=from_storage_datetime(model.available_at),
            attempt=model.attempt or 0,
            lease_owner=model.lease_owner,
            lease_expires_at=from_storage_datetime(model.lease_expires_at),
            last_error=model.last_error,
            created_at=from_storage_datetime(model.created_at),
        )


__all__ = ["Clock", "DeliveryQueue"]
