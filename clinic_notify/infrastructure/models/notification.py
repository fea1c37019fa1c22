"""SQLAlchemy model for persisted notifications."""

from uuid import uuid4

from sqlalchemy import JSON, Column, DateTime, Index, String, Text

from clinic_notify.infrastructure.database import Base
from clinic_notify.utils import utc_now_naive


def _new_id() -> str:
    return str(uuid4())


class NotificationModel(Base):
    """Database representation for recipient notifications."""

    __tablename__ = "notification"
    __table_args__ = (
        Index("ix_notification_recipient_created", "recipient_id", "created_at"),
        Index("ix_notification_recipient_status", "recipient_id", "status"),
    )

    id = Column(String(36), primary_key=True, default=_new_id)
    recipient_id = Column(String(64), nullable=False)
    recipient_type = Column(String(20), nullable=False)
    type = Column(String(40), nullable=False)
    title = Column(String(200), nullable=False)
    message = Column(Text, nullable=False)
    channel = Column(String(20), nullable=False)
    data = Column(JSON, nullable=False, default=dict)
    status = Column(String(20), nullable=False, default="PENDING")
    created_at = Column(DateTime(), nullable=False, default=utc_now_naive)
    sent_at = Column(DateTime(), nullable=True)
    read_at = Column(DateTime(), nullable=True)


__all__ = ["NotificationModel"]
