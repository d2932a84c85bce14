"""Orders Service models package."""

from services.orders_service.models.agent import DeliveryAgent, DeliveryAgentOrder
from services.orders_service.models.enums import (
    TERMINAL_STATUSES,
    AgentOrderKind,
    DeliveryMethod,
    NotificationType,
    OrderStatus,
    PaymentStatus,
)
from services.orders_service.models.notification import Notification
from services.orders_service.models.order import Order, OrderItem, OrderStatusHistory
from services.orders_service.models.refs import ProductRef, RestaurantRef, UserRef

__all__ = [
    "AgentOrderKind",
    "DeliveryAgent",
    "DeliveryAgentOrder",
    "DeliveryMethod",
    "Notification",
    "NotificationType",
    "Order",
    "OrderItem",
    "OrderStatus",
    "OrderStatusHistory",
    "PaymentStatus",
    "ProductRef",
    "RestaurantRef",
    "TERMINAL_STATUSES",
    "UserRef",
]
