"""Admin routes: order oversight, status overrides and agent management."""

import math
import uuid
from typing import Optional

from fastapi import APIRouter, Depends, Query
from libs.auth.dependencies import require_admin
from libs.auth.models import AuthUser
from libs.db.session import get_async_db
from services.orders_service.dependencies import get_fanout
from services.orders_service.models import OrderStatus
from services.orders_service.schemas import (
    AgentActionResponse,
    AgentResponse,
    AgentVerifyRequest,
    AssignAgentRequest,
    OrderActionResponse,
    OrderListResponse,
    OrderResponse,
    OrderStatusUpdate,
    StatusHistoryResponse,
)
from services.orders_service.services import agent_directory, dispatch, order_store
from services.orders_service.services.fanout import NotificationFanout
from sqlalchemy.ext.asyncio import AsyncSession

router = APIRouter(tags=["admin"])


# ============================================================================
# ORDERS
# ============================================================================


@router.get("/orders", response_model=OrderListResponse)
async def list_orders(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    status: Optional[OrderStatus] = None,
    search: Optional[str] = Query(None, max_length=100),
    sort_by: str = "created_at",
    sort_order: str = "desc",
    _admin: AuthUser = Depends(require_admin),
    db: AsyncSession = Depends(get_async_db),
):
    """List all orders with filtering, search and pagination."""
    orders, total = await order_store.list_all_orders(
        db,
        page=page,
        limit=limit,
        status=status,
        search=search,
        sort_by=sort_by,
        sort_order=sort_order,
    )
    return OrderListResponse(
        orders=[OrderResponse.model_validate(order) for order in orders],
        total=total,
        page=page,
        limit=limit,
        total_pages=math.ceil(total / limit) if total else 0,
    )


@router.get("/orders/stats")
async def get_order_stats(
    _admin: AuthUser = Depends(require_admin),
    db: AsyncSession = Depends(get_async_db),
):
    """Order counts and revenue by status, payment status and day."""
    return await order_store.order_stats(db)


@router.get(
    "/orders/{order_id}/status-history", response_model=list[StatusHistoryResponse]
)
async def get_status_history(
    order_id: uuid.UUID,
    _admin: AuthUser = Depends(require_admin),
    db: AsyncSession = Depends(get_async_db),
):
    return await order_store.status_history(db, order_id)


@router.put("/orders/{order_id}/status", response_model=OrderActionResponse)
async def update_order_status(
    order_id: uuid.UUID,
    payload: OrderStatusUpdate,
    admin: AuthUser = Depends(require_admin),
    db: AsyncSession = Depends(get_async_db),
    fanout: NotificationFanout = Depends(get_fanout),
):
    order = await order_store.update_order_status(
        db,
        admin,
        order_id,
        new_status=payload.status,
        note=payload.note,
        fanout=fanout,
    )
    return OrderActionResponse(
        message="Order status updated successfully",
        order=OrderResponse.model_validate(order),
    )


@router.put("/orders/{order_id}/assign-agent", response_model=OrderActionResponse)
async def assign_agent(
    order_id: uuid.UUID,
    payload: AssignAgentRequest,
    admin: AuthUser = Depends(require_admin),
    db: AsyncSession = Depends(get_async_db),
    fanout: NotificationFanout = Depends(get_fanout),
):
    order = await dispatch.assign_agent_by_admin(
        db, admin, order_id, payload.agent_id, fanout=fanout
    )
    return OrderActionResponse(
        message="Delivery agent assigned successfully",
        order=OrderResponse.model_validate(order),
    )


# ============================================================================
# DELIVERY AGENTS
# ============================================================================


@router.get("/delivery/agents", response_model=list[AgentResponse])
async def list_agents(
    _admin: AuthUser = Depends(require_admin),
    db: AsyncSession = Depends(get_async_db),
):
    return await agent_directory.list_agents(db)


@router.put("/delivery/agents/{agent_id}/verify", response_model=AgentActionResponse)
async def verify_agent(
    agent_id: uuid.UUID,
    payload: Optional[AgentVerifyRequest] = None,
    _admin: AuthUser = Depends(require_admin),
    db: AsyncSession = Depends(get_async_db),
):
    """Approve (or revoke) a delivery agent."""
    is_verified = payload.is_verified if payload else True
    agent = await agent_directory.verify_agent(db, agent_id, is_verified=is_verified)
    return AgentActionResponse(
        message="Delivery agent verified successfully"
        if is_verified
        else "Delivery agent verification revoked",
        agent=AgentResponse.model_validate(agent),
    )
