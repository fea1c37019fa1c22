"""Persistence helpers for notification entities."""

from __future__ import annotations

from collections.abc import Sequence
from datetime import datetime
from typing import Iterable

from sqlalchemy import delete, func, select, update
from sqlalchemy.orm import Session

from clinic_notify.domain.entities import (
    OPEN_STATUSES,
    STATUS_FAILED,
    STATUS_PENDING,
    STATUS_READ,
    STATUS_SENT,
    Notification,
)
from clinic_notify.infrastructure.models import NotificationModel
from clinic_notify.utils import (
    from_storage_datetime,
    now_in_app_timezone,
    to_storage_datetime,
)


class NotificationRepository:
    """Provide storage operations for :class:`Notification` objects.

    Status changes are conditional updates filtered by the allowed source
    statuses (and by recipient for recipient-facing operations), so a worker
    marking a record as sent and a recipient deleting it never overwrite
    each other.
    """

    def __init__(self, session: Session) -> None:
        self.session = session

    def create(self, notification: Notification) -> Notification:
        model = NotificationModel(
            recipient_id=notification.recipient_id,
            recipient_type=notification.recipient_type,
            type=notification.type,
            title=notification.title,
            message=notification.message,
            channel=notification.channel,
            data=dict(notification.data or {}),
            status=STATUS_PENDING,
            created_at=to_storage_datetime(
                notification.created_at or now_in_app_timezone()
            ),
        )
        if notification.id is not None:
            model.id = notification.id
        self.session.add(model)
        self.session.commit()
        self.session.refresh(model)
        return self._to_entity(model)

    def get(self, notification_id: str) -> Notification | None:
        model = self.session.scalars(
            select(NotificationModel)
            .where(NotificationModel.id == notification_id)
            .execution_options(populate_existing=True)
        ).first()
        return self._to_entity(model) if model is not None else None

    def get_for_recipient(
        self, notification_id: str, *, recipient_id: str
    ) -> Notification | None:
        model = self.session.scalars(
            select(NotificationModel).where(
                NotificationModel.id == notification_id,
                NotificationModel.recipient_id == recipient_id,
            )
            .execution_options(populate_existing=True)
        ).first()
        return self._to_entity(model) if model is not None else None

    def list_for_recipient(
        self,
        recipient_id: str,
        *,
        skip: int = 0,
        take: int | None = 20,
        statuses: Iterable[str] | None = None,
    ) -> Sequence[Notification]:
        query = (
            select(NotificationModel)
            .where(NotificationModel.recipient_id == recipient_id)
            .order_by(NotificationModel.created_at.desc(), NotificationModel.id.desc())
            .execution_options(populate_existing=True)
        )
        if statuses is not None:
            query = query.where(NotificationModel.status.in_(list(statuses)))
        if skip:
            query = query.offset(skip)
        if take is not None:
            query = query.limit(take)
        return [self._to_entity(model) for model in self.session.scalars(query).all()]

    def count_for_recipient(self, recipient_id: str, *, statuses: Iterable[str]) -> int:
        query = select(func.count(NotificationModel.id)).where(
            NotificationModel.recipient_id == recipient_id,
            NotificationModel.status.in_(list(statuses)),
        )
        return int(self.session.scalar(query) or 0)

    def mark_sent(self, notification_id: str, *, sent_at: datetime | None = None) -> bool:
        """Move a PENDING notification to SENT; ``False`` when nothing changed."""

        return self._transition(
            notification_id,
            from_statuses=(STATUS_PENDING,),
            values={
                NotificationModel.status: STATUS_SENT,
                NotificationModel.sent_at: to_storage_datetime(
                    sent_at or now_in_app_timezone()
                ),
            },
        )

    def mark_failed(self, notification_id: str) -> bool:
        """Move a PENDING notification to FAILED; ``False`` when nothing changed."""

        return self._transition(
            notification_id,
            from_statuses=(STATUS_PENDING,),
            values={NotificationModel.status: STATUS_FAILED},
        )

    def mark_as_read(
        self,
        notification_id: str,
        *,
        recipient_id: str,
        read_at: datetime | None = None,
    ) -> int:
        result = self.session.execute(
            update(NotificationModel)
            .where(
                NotificationModel.id == notification_id,
                NotificationModel.recipient_id == recipient_id,
                NotificationModel.status.in_(OPEN_STATUSES),
            )
            .values(
                {
                    NotificationModel.status: STATUS_READ,
                    NotificationModel.read_at: to_storage_datetime(
                        read_at or now_in_app_timezone()
                    ),
                }
            )
            .execution_options(synchronize_session=False)
        )
        self.session.commit()
        return result.rowcount or 0

    def mark_all_as_read(
        self, recipient_id: str, *, read_at: datetime | None = None
    ) -> int:
        result = self.session.execute(
            update(NotificationModel)
            .where(
                NotificationModel.recipient_id == recipient_id,
                NotificationModel.status.in_(OPEN_STATUSES),
            )
            .values(
                {
                    NotificationModel.status: STATUS_READ,
                    NotificationModel.read_at: to_storage_datetime(
                        read_at or now_in_app_timezone()
                    ),
                }
            )
            .execution_options(synchronize_session=False)
        )
        self.session.commit()
        return result.rowcount or 0

    def delete(self, notification_id: str, *, recipient_id: str) -> int:
        result = self.session.execute(
            delete(NotificationModel)
            .where(
                NotificationModel.id == notification_id,
                NotificationModel.recipient_id == recipient_id,
            )
            .execution_options(synchronize_session=False)
        )
        self.session.commit()
        return result.rowcount or 0

    def _transition(
        self,
        notification_id: str,
        *,
        from_statuses: Iterable[str],
        values: dict,
    ) -> bool:
        result = self.session.execute(
            update(NotificationModel)
            .where(
                NotificationModel.id == notification_id,
                NotificationModel.status.in_(list(from_statuses)),
            )
            .values(values)
            .execution_options(synchronize_session=False)
        )
        self.session.commit()
        return bool(result.rowcount)

    @staticmethod
    def _to_entity(model: NotificationModel) -> Notification:
        return Notification(
            id=model.id,
            recipient_id=model.recipient_id,
            recipient_type=model.recipient_type,
            type=model.type,
            title=model.title,
            message=model.message,
            channel=model.channel,
            data=dict(model.data or {}),
            status=model.status,
            created_at=from_storage_datetime(model.created_at),
            sent_at=from_storage_datetime(model.sent_at),
            read_at=from_storage_datetime(model.read_at),
        )


__all__ = ["NotificationRepository"]
