"""Pydantic schemas for the Orders Service API."""

import uuid
from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, StrictBool
from services.orders_service.models import (
    DeliveryMethod,
    NotificationType,
    OrderStatus,
    PaymentStatus,
)

# ============================================================================
# SHARED
# ============================================================================


class GeoPointSchema(BaseModel):
    longitude: float = Field(..., ge=-180, le=180)
    latitude: float = Field(..., ge=-90, le=90)


class DistanceResponse(BaseModel):
    value: Optional[float] = None
    unit: str = "meters"
    text: str


class ActionResponse(BaseModel):
    success: bool = True
    message: str


# ============================================================================
# ORDERS
# ============================================================================


class OrderItemCreate(BaseModel):
    product_id: uuid.UUID
    quantity: int = Field(..., ge=1)
    # Price and name default to the dish's current listing
    unit_price: Optional[Decimal] = Field(None, ge=0)
    name: Optional[str] = Field(None, max_length=255)


class OrderCreate(BaseModel):
    items: list[OrderItemCreate]
    delivery_method: DeliveryMethod = DeliveryMethod.STANDARD
    delivery_address: Optional[str] = None
    delivery_instructions: Optional[str] = None
    contact_number: str = Field(..., max_length=50)
    payment_method: str = Field("cash", max_length=30)
    restaurant_id: Optional[uuid.UUID] = None
    pickup_location: Optional[GeoPointSchema] = None
    delivery_location: Optional[GeoPointSchema] = None
    tax: Decimal = Field(Decimal("0"), ge=0)
    delivery_fee: Decimal = Field(Decimal("0"), ge=0)
    discount: Decimal = Field(Decimal("0"), ge=0)
    promo_code: Optional[str] = Field(None, max_length=50)


class OrderItemResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    product_id: uuid.UUID
    name: str
    quantity: int
    unit_price: Decimal


class StatusHistoryResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    status: OrderStatus
    note: Optional[str] = None
    location_longitude: Optional[float] = None
    location_latitude: Optional[float] = None
    timestamp: datetime


class CustomerSummary(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    username: str
    avatar: Optional[str] = None
    contact_number: Optional[str] = None


class AgentSummary(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    user_id: str
    vehicle_type: str
    vehicle_number: Optional[str] = None
    current_longitude: Optional[float] = None
    current_latitude: Optional[float] = None
    rating: Decimal = Decimal("0")


class OrderResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    customer_id: str
    restaurant_id: Optional[uuid.UUID] = None
    contact_number: str
    delivery_method: DeliveryMethod
    delivery_address: str
    delivery_instructions: Optional[str] = None
    pickup_longitude: Optional[float] = None
    pickup_latitude: Optional[float] = None
    delivery_longitude: Optional[float] = None
    delivery_latitude: Optional[float] = None
    status: OrderStatus
    delivery_agent_id: Optional[uuid.UUID] = None
    estimated_delivery_time: Optional[datetime] = None
    actual_delivery_time: Optional[datetime] = None
    pickup_code: Optional[str] = None
    pickup_code_expires_at: Optional[datetime] = None
    is_pickup_completed: bool = False
    subtotal: Decimal
    tax: Decimal
    delivery_fee: Decimal
    discount: Decimal
    total: Decimal
    promo_code_applied: Optional[str] = None
    payment_method: str
    payment_status: PaymentStatus
    items: list[OrderItemResponse] = []
    status_history: list[StatusHistoryResponse] = []
    latest_status: Optional[StatusHistoryResponse] = None
    delivery_agent: Optional[AgentSummary] = None
    created_at: datetime
    updated_at: datetime


class OrderDetailResponse(OrderResponse):
    customer: Optional[CustomerSummary] = None


class OrderActionResponse(ActionResponse):
    order: OrderResponse


class OrderListResponse(BaseModel):
    orders: list[OrderResponse]
    total: int
    page: int
    limit: int
    total_pages: int


class OrderStatusUpdate(BaseModel):
    # Plain string so unknown values get a domain error listing the valid ones
    status: str
    note: Optional[str] = None


class AssignAgentRequest(BaseModel):
    agent_id: uuid.UUID


# ============================================================================
# PICKUP
# ============================================================================


class PickupCodeRequest(BaseModel):
    order_id: uuid.UUID
    code: str = Field(..., min_length=1, max_length=8)


class PickupVerifyResponse(BaseModel):
    success: bool = True
    message: str = "Pickup code verified"
    order_id: uuid.UUID
    customer: Optional[CustomerSummary] = None
    items: list[OrderItemResponse]
    total: Decimal
    created_at: datetime


# ============================================================================
# DELIVERY AGENTS
# ============================================================================


class AgentRegisterRequest(BaseModel):
    vehicle_type: str = Field(..., max_length=30)
    vehicle_number: Optional[str] = Field(None, max_length=30)


class AvailabilityUpdate(BaseModel):
    is_available: StrictBool


class AgentVerifyRequest(BaseModel):
    is_verified: StrictBool = True


class AgentResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    user_id: str
    vehicle_type: str
    vehicle_number: Optional[str] = None
    is_available: bool
    is_verified: bool
    current_longitude: Optional[float] = None
    current_latitude: Optional[float] = None
    location_updated_at: Optional[datetime] = None
    rating: Decimal = Decimal("0")
    total_ratings: int = 0
    created_at: datetime


class AgentStats(BaseModel):
    active_orders: int
    completed_orders: int
    rejected_orders: int
    rating: float
    total_ratings: int


class AgentProfileResponse(BaseModel):
    agent: AgentResponse
    stats: AgentStats


class AgentActionResponse(ActionResponse):
    agent: AgentResponse


class DispatchOrderResponse(OrderResponse):
    pickup_location: Optional[GeoPointSchema] = None
    delivery_location: Optional[GeoPointSchema] = None
    distance: DistanceResponse
    within_delivery_range: bool


class DispatchOrderListResponse(BaseModel):
    success: bool = True
    count: int
    orders: list[DispatchOrderResponse]


# ============================================================================
# NOTIFICATIONS
# ============================================================================


class NotificationResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    sender_id: str
    recipient_id: str
    type: NotificationType
    message: str
    post_id: Optional[uuid.UUID] = None
    order_id: Optional[uuid.UUID] = None
    read: bool
    created_at: datetime


class NotificationListResponse(BaseModel):
    notifications: list[NotificationResponse]
    unread_count: int
