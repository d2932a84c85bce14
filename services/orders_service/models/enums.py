"""Enum definitions for orders service models."""

import enum


def enum_values(enum_cls):
    """Return persistent DB values for SAEnum mappings."""
    return [member.value for member in enum_cls]


class OrderStatus(str, enum.Enum):
    PROCESSING = "processing"
    CONFIRMED = "confirmed"
    PREPARING = "preparing"
    OUT_FOR_DELIVERY = "out_for_delivery"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES


TERMINAL_STATUSES = frozenset({OrderStatus.DELIVERED, OrderStatus.CANCELLED})


class DeliveryMethod(str, enum.Enum):
    STANDARD = "standard"
    EXPRESS = "express"
    PICKUP = "pickup"


class PaymentStatus(str, enum.Enum):
    PENDING = "pending"
    PAID = "paid"
    REFUNDED = "refunded"


class AgentOrderKind(str, enum.Enum):
    ACTIVE = "active"
    REJECTED = "rejected"
    COMPLETED = "completed"


class NotificationType(str, enum.Enum):
    ORDER = "order"
    ORDER_STATUS = "order_status"
