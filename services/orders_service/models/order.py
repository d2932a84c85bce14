"""Order aggregate: order, line items and the append-only status history."""

import uuid
from datetime import datetime
from decimal import Decimal
from typing import Optional

from libs.common.datetime_utils import utc_now
from libs.db.base import Base
from services.orders_service.models.enums import (
    DeliveryMethod,
    OrderStatus,
    PaymentStatus,
    enum_values,
)
from sqlalchemy import Boolean, CheckConstraint, DateTime
from sqlalchemy import Enum as SAEnum
from sqlalchemy import (
    Float,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    Uuid,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

# ============================================================================
# ORDER
# ============================================================================


class Order(Base):
    """Customer orders."""

    __tablename__ = "orders"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)

    # Customer
    customer_id: Mapped[str] = mapped_column(String(64), index=True, nullable=False)
    contact_number: Mapped[str] = mapped_column(String(50), nullable=False)

    # Fulfilling restaurant, when the dishes come from one
    restaurant_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid, ForeignKey("restaurants.id", ondelete="SET NULL"), nullable=True
    )

    # Fulfillment
    delivery_method: Mapped[DeliveryMethod] = mapped_column(
        SAEnum(
            DeliveryMethod,
            values_callable=enum_values,
            name="order_delivery_method_enum",
        ),
        default=DeliveryMethod.STANDARD,
        nullable=False,
    )
    delivery_address: Mapped[str] = mapped_column(Text, nullable=False)
    delivery_instructions: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # Geo points; (0, 0) or NULL means "unknown"
    pickup_longitude: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    pickup_latitude: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    delivery_longitude: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    delivery_latitude: Mapped[Optional[float]] = mapped_column(Float, nullable=True)

    # Status
    status: Mapped[OrderStatus] = mapped_column(
        SAEnum(
            OrderStatus,
            values_callable=enum_values,
            name="order_status_enum",
        ),
        default=OrderStatus.PROCESSING,
        nullable=False,
        index=True,
    )

    # Dispatch (set once, never reassigned)
    delivery_agent_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid, ForeignKey("delivery_agents.id"), nullable=True, index=True
    )
    estimated_delivery_time: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    actual_delivery_time: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    # Self-pickup credential
    pickup_code: Mapped[Optional[str]] = mapped_column(String(4), nullable=True)
    pickup_code_expires_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    is_pickup_completed: Mapped[bool] = mapped_column(
        Boolean, default=False, server_default="false", nullable=False
    )

    # Pricing
    subtotal: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    tax: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=0, server_default="0")
    delivery_fee: Mapped[Decimal] = mapped_column(
        Numeric(12, 2), default=0, server_default="0"
    )
    discount: Mapped[Decimal] = mapped_column(
        Numeric(12, 2), default=0, server_default="0"
    )
    total: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    promo_code_applied: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)

    # Payment
    payment_method: Mapped[str] = mapped_column(String(30), nullable=False)
    payment_status: Mapped[PaymentStatus] = mapped_column(
        SAEnum(
            PaymentStatus,
            values_callable=enum_values,
            name="order_payment_status_enum",
        ),
        default=PaymentStatus.PENDING,
        nullable=False,
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now, onupdate=utc_now
    )

    __table_args__ = (
        CheckConstraint(
            "(delivery_method = 'pickup') = (pickup_code IS NOT NULL)",
            name="order_pickup_code_iff_pickup",
        ),
        Index("ix_orders_status_agent", "status", "delivery_agent_id"),
    )

    # Relationships
    items = relationship(
        "OrderItem",
        back_populates="order",
        cascade="all, delete-orphan",
        order_by="OrderItem.position",
        lazy="selectin",
    )
    status_history = relationship(
        "OrderStatusHistory",
        back_populates="order",
        cascade="all, delete-orphan",
        order_by="OrderStatusHistory.id",
        lazy="selectin",
    )
    customer = relationship(
        "UserRef",
        primaryjoin="foreign(Order.customer_id) == UserRef.id",
        viewonly=True,
        lazy="selectin",
    )
    restaurant = relationship("RestaurantRef", lazy="selectin")
    delivery_agent = relationship("DeliveryAgent", lazy="selectin")

    @property
    def is_pickup(self) -> bool:
        return self.delivery_method == DeliveryMethod.PICKUP

    @property
    def latest_status(self) -> Optional["OrderStatusHistory"]:
        return self.status_history[-1] if self.status_history else None

    def __repr__(self):
        return f"<Order {self.id} status={self.status}>"


class OrderItem(Base):
    """Order line items (snapshot at order time)."""

    __tablename__ = "order_items"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    order_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True
    )
    product_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("posts.id"), nullable=False
    )
    position: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    # Snapshot at order time (dishes may change)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    unit_price: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)

    __table_args__ = (CheckConstraint("quantity > 0", name="order_item_positive_quantity"),)

    # Relationships
    order = relationship("Order", back_populates="items")
    product = relationship("ProductRef", lazy="joined")

    def __repr__(self):
        return f"<OrderItem {self.name} qty={self.quantity}>"


class OrderStatusHistory(Base):
    """Append-only record of every status an order has entered."""

    __tablename__ = "order_status_history"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    order_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True
    )
    status: Mapped[OrderStatus] = mapped_column(
        SAEnum(
            OrderStatus,
            values_callable=enum_values,
            name="order_status_enum",
        ),
        nullable=False,
    )
    note: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # Where the actor was when the status changed (agent transitions only)
    location_longitude: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    location_latitude: Mapped[Optional[float]] = mapped_column(Float, nullable=True)

    timestamp: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now, nullable=False
    )

    order = relationship("Order", back_populates="status_history")

    def __repr__(self):
        return f"<OrderStatusHistory {self.order_id} {self.status}>"
