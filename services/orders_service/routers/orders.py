"""Customer order routes: place, view, cancel and reorder."""

import uuid

from fastapi import APIRouter, Depends, status
from libs.auth.dependencies import get_current_user
from libs.auth.models import AuthUser
from libs.db.session import get_async_db
from services.orders_service.dependencies import get_fanout
from services.orders_service.routers._helpers import order_detail
from services.orders_service.schemas import (
    OrderActionResponse,
    OrderCreate,
    OrderDetailResponse,
    OrderResponse,
)
from services.orders_service.services import order_store
from services.orders_service.services.fanout import NotificationFanout
from sqlalchemy.ext.asyncio import AsyncSession

router = APIRouter(tags=["orders"])


@router.post(
    "", response_model=OrderActionResponse, status_code=status.HTTP_201_CREATED
)
async def create_order(
    payload: OrderCreate,
    current_user: AuthUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_db),
    fanout: NotificationFanout = Depends(get_fanout),
):
    """Place an order. Pickup orders come back with their 4-digit pickup code."""
    order = await order_store.create_order(db, current_user, payload, fanout=fanout)
    return OrderActionResponse(
        message="Order placed successfully",
        order=OrderResponse.model_validate(order),
    )


@router.get("", response_model=list[OrderResponse])
async def list_my_orders(
    current_user: AuthUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_db),
):
    """List the current user's orders, newest first."""
    return await order_store.list_customer_orders(db, current_user)


@router.get("/{order_id}", response_model=OrderDetailResponse)
async def get_order(
    order_id: uuid.UUID,
    current_user: AuthUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_db),
):
    order, show_customer = await order_store.get_order(db, current_user, order_id)
    return order_detail(order, current_user, show_customer)


@router.put("/{order_id}/cancel", response_model=OrderActionResponse)
async def cancel_order(
    order_id: uuid.UUID,
    current_user: AuthUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_db),
):
    order = await order_store.cancel_order(db, current_user, order_id)
    return OrderActionResponse(
        message="Order cancelled successfully",
        order=OrderResponse.model_validate(order),
    )


@router.post(
    "/{order_id}/reorder",
    response_model=OrderActionResponse,
    status_code=status.HTTP_201_CREATED,
)
async def reorder(
    order_id: uuid.UUID,
    current_user: AuthUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_db),
    fanout: NotificationFanout = Depends(get_fanout),
):
    """Place a new order with the same items as an earlier one."""
    order = await order_store.reorder(db, current_user, order_id, fanout=fanout)
    return OrderActionResponse(
        message="Order placed successfully",
        order=OrderResponse.model_validate(order),
    )
