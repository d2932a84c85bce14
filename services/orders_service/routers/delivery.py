"""Delivery agent routes: registration, availability, location and dispatch."""

import uuid

from fastapi import APIRouter, Depends, Query, status
from libs.auth.dependencies import get_current_user
from libs.auth.models import AuthUser
from libs.db.session import get_async_db
from services.orders_service.dependencies import get_connection_directory, get_fanout
from services.orders_service.routers._helpers import dispatch_order
from services.orders_service.schemas import (
    ActionResponse,
    AgentActionResponse,
    AgentProfileResponse,
    AgentRegisterRequest,
    AgentResponse,
    AgentStats,
    AvailabilityUpdate,
    DispatchOrderListResponse,
    GeoPointSchema,
    OrderActionResponse,
    OrderResponse,
)
from services.orders_service.services import agent_directory, dispatch
from services.orders_service.services.fanout import NotificationFanout
from services.orders_service.services.live import ConnectionDirectory
from sqlalchemy.ext.asyncio import AsyncSession

router = APIRouter(tags=["delivery"])


# ============================================================================
# AGENT PROFILE
# ============================================================================


@router.post(
    "/register",
    response_model=AgentActionResponse,
    status_code=status.HTTP_201_CREATED,
)
async def register_agent(
    payload: AgentRegisterRequest,
    current_user: AuthUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_db),
):
    """Register the current user as a delivery agent (pending verification)."""
    agent = await agent_directory.register_agent(
        db,
        current_user,
        vehicle_type=payload.vehicle_type,
        vehicle_number=payload.vehicle_number,
    )
    return AgentActionResponse(
        message="Registered as delivery agent. Awaiting verification.",
        agent=AgentResponse.model_validate(agent),
    )


@router.get("/profile", response_model=AgentProfileResponse)
async def get_profile(
    current_user: AuthUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_db),
):
    agent, stats = await agent_directory.agent_profile(db, current_user)
    return AgentProfileResponse(
        agent=AgentResponse.model_validate(agent), stats=AgentStats(**stats)
    )


@router.put("/availability", response_model=AgentActionResponse)
async def set_availability(
    payload: AvailabilityUpdate,
    current_user: AuthUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_db),
):
    agent = await agent_directory.set_availability(
        db, current_user, is_available=payload.is_available
    )
    return AgentActionResponse(
        message="You are now available" if agent.is_available else "You are now offline",
        agent=AgentResponse.model_validate(agent),
    )


@router.put("/location", response_model=AgentActionResponse)
async def update_location(
    payload: GeoPointSchema,
    current_user: AuthUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_db),
    directory: ConnectionDirectory = Depends(get_connection_directory),
):
    agent = await agent_directory.update_location(
        db,
        current_user,
        longitude=payload.longitude,
        latitude=payload.latitude,
        directory=directory,
    )
    return AgentActionResponse(
        message="Location updated", agent=AgentResponse.model_validate(agent)
    )


# ============================================================================
# DISPATCH
# ============================================================================


@router.get("/nearby-orders", response_model=DispatchOrderListResponse)
async def list_nearby_orders(
    include_all_confirmed: bool = Query(False),
    current_user: AuthUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_db),
):
    """Open orders around the agent, nearest first, then the agent's own
    deliveries in progress."""
    candidates = await dispatch.list_nearby_orders(
        db, current_user, include_all_confirmed=include_all_confirmed
    )
    orders = [dispatch_order(candidate) for candidate in candidates]
    return DispatchOrderListResponse(count=len(orders), orders=orders)


@router.get("/confirmed-orders", response_model=DispatchOrderListResponse)
async def list_confirmed_orders(
    current_user: AuthUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_db),
):
    candidates = await dispatch.list_confirmed_orders(db, current_user)
    orders = [dispatch_order(candidate) for candidate in candidates]
    return DispatchOrderListResponse(count=len(orders), orders=orders)


@router.post("/orders/{order_id}/accept", response_model=OrderActionResponse)
async def accept_order(
    order_id: uuid.UUID,
    current_user: AuthUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_db),
    fanout: NotificationFanout = Depends(get_fanout),
):
    order = await dispatch.accept_order(db, current_user, order_id, fanout=fanout)
    return OrderActionResponse(
        message="Order accepted successfully",
        order=OrderResponse.model_validate(order).model_copy(
            update={"pickup_code": None}
        ),
    )


@router.post("/orders/{order_id}/reject", response_model=ActionResponse)
async def reject_order(
    order_id: uuid.UUID,
    current_user: AuthUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_db),
):
    await dispatch.reject_order(db, current_user, order_id)
    return ActionResponse(message="Order rejected")


@router.post("/orders/{order_id}/complete", response_model=OrderActionResponse)
async def complete_delivery(
    order_id: uuid.UUID,
    current_user: AuthUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_db),
    fanout: NotificationFanout = Depends(get_fanout),
):
    order = await dispatch.complete_delivery(db, current_user, order_id, fanout=fanout)
    return OrderActionResponse(
        message="Order marked as delivered",
        order=OrderResponse.model_validate(order).model_copy(
            update={"pickup_code": None}
        ),
    )
