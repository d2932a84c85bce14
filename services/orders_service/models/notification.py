import uuid
from datetime import datetime
from typing import Optional

from libs.common.datetime_utils import utc_now
from libs.db.base import Base
from services.orders_service.models.enums import NotificationType, enum_values
from sqlalchemy import Boolean, DateTime
from sqlalchemy import Enum as SAEnum
from sqlalchemy import Index, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column


class Notification(Base):
    """Durable notification record; the live push only mirrors it."""

    __tablename__ = "notifications"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    sender_id: Mapped[str] = mapped_column(String(64), nullable=False)
    recipient_id: Mapped[str] = mapped_column(String(64), nullable=False)
    type: Mapped[NotificationType] = mapped_column(
        SAEnum(
            NotificationType,
            values_callable=enum_values,
            name="notification_type_enum",
        ),
        nullable=False,
    )
    message: Mapped[str] = mapped_column(Text, nullable=False)
    post_id: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid, nullable=True)
    order_id: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid, nullable=True)
    read: Mapped[bool] = mapped_column(Boolean, default=False, server_default="false")
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now
    )

    __table_args__ = (
        Index("ix_notifications_recipient_created", "recipient_id", "created_at"),
    )

    def __repr__(self):
        return f"<Notification {self.type} -> {self.recipient_id}>"
