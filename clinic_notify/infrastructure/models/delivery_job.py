"""SQLAlchemy model for queued channel deliveries."""

from uuid import uuid4

from sqlalchemy import Column, DateTime, Index, Integer, String, Text

from clinic_notify.infrastructure.database import Base
from clinic_notify.utils import utc_now_naive


class DeliveryJobModel(Base):
    """Durable queue row; a job lives until its delivery succeeds or fails for good."""

    __tablename__ = "delivery_job"
    __table_args__ = (
        Index("ix_delivery_job_due", "available_at", "lease_expires_at"),
        Index("ix_delivery_job_notification", "notification_id", "channel"),
    )

    id = Column(String(36), primary_key=True, default=lambda: str(uuid4()))
    # No foreign key: the recipient may delete the notification while a job is queued.
    notification_id = Column(String(36), nullable=False)
    channel = Column(String(20), nullable=False)
    available_at = Column(DateTime(), nullable=False)
    attempt = Column(Integer, nullable=False, default=0)
    lease_owner = Column(String(64), nullable=True)
    lease_expires_at = Column(DateTime(), nullable=True)
    last_error = Column(Text, nullable=True)
    created_at = Column(DateTime(), nullable=False, default=utc_now_naive)


__all__ = ["DeliveryJobModel"]
