"""Self-pickup handover routes used by the seller."""

from fastapi import APIRouter, Depends, Request
from libs.auth.dependencies import get_current_user
from libs.auth.models import AuthUser
from libs.common.rate_limit import pickup_verify_limit
from libs.db.session import get_async_db
from services.orders_service.dependencies import get_fanout
from services.orders_service.schemas import (
    CustomerSummary,
    OrderActionResponse,
    OrderItemResponse,
    OrderResponse,
    PickupCodeRequest,
    PickupVerifyResponse,
)
from services.orders_service.services import pickup
from services.orders_service.services.fanout import NotificationFanout
from sqlalchemy.ext.asyncio import AsyncSession

router = APIRouter(tags=["pickup"])


@router.post("/pickup/verify", response_model=PickupVerifyResponse)
@pickup_verify_limit
async def verify_pickup_code(
    request: Request,
    payload: PickupCodeRequest,
    current_user: AuthUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_db),
):
    """Check a pickup code before handing the order over. Nothing is changed."""
    order = await pickup.verify_pickup_code(
        db, current_user, order_id=payload.order_id, code=payload.code
    )
    return PickupVerifyResponse(
        order_id=order.id,
        customer=CustomerSummary.model_validate(order.customer)
        if order.customer
        else None,
        items=[OrderItemResponse.model_validate(item) for item in order.items],
        total=order.total,
        created_at=order.created_at,
    )


@router.post("/pickup/complete", response_model=OrderActionResponse)
@pickup_verify_limit
async def complete_pickup(
    request: Request,
    payload: PickupCodeRequest,
    current_user: AuthUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_db),
    fanout: NotificationFanout = Depends(get_fanout),
):
    order = await pickup.complete_pickup(
        db,
        current_user,
        order_id=payload.order_id,
        code=payload.code,
        fanout=fanout,
    )
    response = OrderResponse.model_validate(order).model_copy(
        update={"pickup_code": None}
    )
    return OrderActionResponse(message="Order picked up successfully", order=response)
