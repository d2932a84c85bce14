"""Delivery agent aggregate and its owned order sets."""

import uuid
from datetime import datetime
from decimal import Decimal
from typing import Optional

from libs.common.datetime_utils import utc_now
from libs.db.base import Base
from services.orders_service.models.enums import AgentOrderKind, enum_values
from sqlalchemy import Boolean, DateTime
from sqlalchemy import Enum as SAEnum
from sqlalchemy import (
    Float,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    UniqueConstraint,
    Uuid,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship


class DeliveryAgent(Base):
    """A user registered to deliver orders."""

    __tablename__ = "delivery_agents"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id: Mapped[str] = mapped_column(
        String(64), unique=True, index=True, nullable=False
    )

    vehicle_type: Mapped[str] = mapped_column(String(30), nullable=False)
    vehicle_number: Mapped[Optional[str]] = mapped_column(String(30), nullable=True)

    is_available: Mapped[bool] = mapped_column(
        Boolean, default=True, server_default="true", nullable=False
    )
    # New agents wait for admin approval
    is_verified: Mapped[bool] = mapped_column(
        Boolean, default=False, server_default="false", nullable=False
    )

    current_longitude: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    current_latitude: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    location_updated_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    rating: Mapped[Decimal] = mapped_column(
        Numeric(3, 2), default=0, server_default="0"
    )
    total_ratings: Mapped[int] = mapped_column(Integer, default=0, server_default="0")

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now, onupdate=utc_now
    )

    order_links = relationship(
        "DeliveryAgentOrder",
        back_populates="agent",
        cascade="all, delete-orphan",
        order_by="DeliveryAgentOrder.created_at",
        lazy="selectin",
    )
    user = relationship(
        "UserRef",
        primaryjoin="foreign(DeliveryAgent.user_id) == UserRef.id",
        viewonly=True,
        lazy="selectin",
    )

    def order_ids(self, kind: AgentOrderKind) -> list[uuid.UUID]:
        """Order ids of one owned set, in insertion order."""
        return [link.order_id for link in self.order_links if link.kind == kind]

    @property
    def active_order_ids(self) -> list[uuid.UUID]:
        return self.order_ids(AgentOrderKind.ACTIVE)

    @property
    def rejected_order_ids(self) -> list[uuid.UUID]:
        return self.order_ids(AgentOrderKind.REJECTED)

    @property
    def completed_order_ids(self) -> list[uuid.UUID]:
        return self.order_ids(AgentOrderKind.COMPLETED)

    def __repr__(self):
        return f"<DeliveryAgent {self.id} user={self.user_id}>"


class DeliveryAgentOrder(Base):
    """Membership of an order in one of an agent's sets (active/rejected/completed).

    Rows are only written by the transition helpers in
    ``services.orders_service.services.agent_directory``.
    """

    __tablename__ = "delivery_agent_orders"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    agent_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("delivery_agents.id", ondelete="CASCADE"), nullable=False
    )
    order_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True
    )
    kind: Mapped[AgentOrderKind] = mapped_column(
        SAEnum(
            AgentOrderKind,
            values_callable=enum_values,
            name="agent_order_kind_enum",
        ),
        nullable=False,
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now
    )

    __table_args__ = (
        UniqueConstraint("agent_id", "order_id", "kind", name="uq_agent_order_kind"),
        # An order is active for at most one agent
        Index(
            "uq_delivery_agent_orders_active_order",
            "order_id",
            unique=True,
            postgresql_where=text("kind = 'active'"),
            sqlite_where=text("kind = 'active'"),
        ),
    )

    agent = relationship("DeliveryAgent", back_populates="order_links")

    def __repr__(self):
        return f"<DeliveryAgentOrder agent={self.agent_id} order={self.order_id} {self.kind}>"
