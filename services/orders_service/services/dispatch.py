"""Delivery dispatch: nearby-order discovery and exclusive assignment.

An order is claimed with a single conditional UPDATE
(``delivery_agent_id IS NULL AND status = 'confirmed'``); the row count decides
the winner when several agents accept at once.
"""

import uuid
from dataclasses import dataclass
from datetime import timedelta
from typing import Optional

from libs.auth.models import AuthUser
from libs.common.config import get_settings
from libs.common.datetime_utils import utc_now
from libs.common.errors import AuthorizationError, ConflictError, NotFoundError
from libs.common.logging import get_logger
from services.orders_service.geo import (
    GeoPoint,
    bounding_box,
    haversine_distance,
    make_point,
    resolve_location,
    sort_nearest,
)
from services.orders_service.models import (
    TERMINAL_STATUSES,
    DeliveryAgent,
    Order,
    OrderStatus,
)
from services.orders_service.permissions import is_assigned_agent
from services.orders_service.services._helpers import (
    append_history,
    get_order_or_404,
    load_order,
)
from services.orders_service.services.agent_directory import (
    add_active,
    add_rejected,
    complete_active,
    get_agent,
    require_agent,
)
from services.orders_service.services.fanout import NotificationFanout
from sqlalchemy import and_, or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

logger = get_logger(__name__)


@dataclass
class DispatchCandidate:
    """An order as seen by a delivery agent."""

    order: Order
    pickup_location: Optional[GeoPoint]
    delivery_location: Optional[GeoPoint]
    distance_meters: Optional[float]
    within_delivery_range: bool


# ---------------------------------------------------------------------------
# Location resolution
# ---------------------------------------------------------------------------


def pickup_location_for(order: Order) -> Optional[GeoPoint]:
    """Order pickup point, else the restaurant, else the first dish author."""
    restaurant = order.restaurant
    author = None
    if order.items and order.items[0].product is not None:
        author = order.items[0].product.author
    return resolve_location(
        make_point(order.pickup_longitude, order.pickup_latitude),
        make_point(restaurant.longitude, restaurant.latitude) if restaurant else None,
        make_point(author.longitude, author.latitude) if author else None,
    )


def delivery_location_for(order: Order) -> Optional[GeoPoint]:
    """Order delivery point, else the customer's stored location."""
    customer = order.customer
    return resolve_location(
        make_point(order.delivery_longitude, order.delivery_latitude),
        make_point(customer.longitude, customer.latitude) if customer else None,
    )


def agent_location(agent: DeliveryAgent) -> Optional[GeoPoint]:
    return make_point(agent.current_longitude, agent.current_latitude)


def _candidate(
    order: Order, origin: Optional[GeoPoint], radius: float
) -> DispatchCandidate:
    pickup = pickup_location_for(order)
    distance = None
    if origin is not None and pickup is not None:
        distance = haversine_distance(origin, pickup)
    return DispatchCandidate(
        order=order,
        pickup_location=pickup,
        delivery_location=delivery_location_for(order),
        distance_meters=distance,
        within_delivery_range=distance is not None and distance <= radius,
    )


# ---------------------------------------------------------------------------
# Agent gates
# ---------------------------------------------------------------------------


def ensure_can_dispatch(agent: DeliveryAgent) -> None:
    if not agent.is_verified:
        raise AuthorizationError("Delivery agent is not verified yet")
    if not agent.is_available:
        raise AuthorizationError("Delivery agent is not available")


async def _dispatchable_agent(db: AsyncSession, actor: AuthUser) -> DeliveryAgent:
    agent = await require_agent(db, actor)
    ensure_can_dispatch(agent)
    return agent


# ---------------------------------------------------------------------------
# Listings
# ---------------------------------------------------------------------------


def _open_orders_query(exclude: list[uuid.UUID]):
    query = select(Order).where(
        Order.status == OrderStatus.CONFIRMED,
        Order.delivery_agent_id.is_(None),
    )
    if exclude:
        query = query.where(Order.id.notin_(exclude))
    return query.order_by(Order.created_at)


async def list_nearby_orders(
    db: AsyncSession, actor: AuthUser, *, include_all_confirmed: bool = False
) -> list[DispatchCandidate]:
    """Unassigned confirmed orders near the agent, nearest first, followed by
    the agent's own orders that are out for delivery."""
    agent = await _dispatchable_agent(db, actor)
    radius = get_settings().DELIVERY_RADIUS_METERS
    origin = agent_location(agent)

    query = _open_orders_query(agent.rejected_order_ids)
    if origin is not None and not include_all_confirmed:
        # Coarse box on stored pickup points; orders without one are resolved
        # through their fallbacks below.
        min_lon, min_lat, max_lon, max_lat = bounding_box(origin, radius)
        query = query.where(
            or_(
                Order.pickup_longitude.is_(None),
                Order.pickup_latitude.is_(None),
                and_(Order.pickup_longitude == 0, Order.pickup_latitude == 0),
                and_(
                    Order.pickup_longitude.between(min_lon, max_lon),
                    Order.pickup_latitude.between(min_lat, max_lat),
                ),
            )
        )

    candidates: list[DispatchCandidate] = []
    if origin is not None or include_all_confirmed:
        orders = (await db.execute(query)).scalars().all()
        for order in orders:
            candidate = _candidate(order, origin, radius)
            if include_all_confirmed or candidate.within_delivery_range:
                candidates.append(candidate)
        candidates = sort_nearest(candidates, lambda c: c.distance_meters)

    own = (
        await db.execute(
            select(Order)
            .where(
                Order.delivery_agent_id == agent.id,
                Order.status == OrderStatus.OUT_FOR_DELIVERY,
            )
            .order_by(Order.created_at)
        )
    ).scalars()
    candidates.extend(_candidate(order, origin, radius) for order in own)
    return candidates


async def list_confirmed_orders(
    db: AsyncSession, actor: AuthUser
) -> list[DispatchCandidate]:
    """Every unassigned confirmed order, without radius filtering."""
    agent = await require_agent(db, actor)
    radius = get_settings().DELIVERY_RADIUS_METERS
    origin = agent_location(agent)

    orders = (await db.execute(_open_orders_query([]))).scalars().all()
    return [_candidate(order, origin, radius) for order in orders]


# ---------------------------------------------------------------------------
# Assignment
# ---------------------------------------------------------------------------


async def _claim(
    db: AsyncSession,
    order_id: uuid.UUID,
    agent: DeliveryAgent,
    *,
    only_confirmed: bool,
) -> bool:
    """Conditionally set the agent on an unassigned order; True if this call won."""
    now = utc_now()
    conditions = [Order.id == order_id, Order.delivery_agent_id.is_(None)]
    if only_confirmed:
        conditions.append(Order.status == OrderStatus.CONFIRMED)
    else:
        conditions.append(Order.status.notin_(list(TERMINAL_STATUSES)))

    result = await db.execute(
        update(Order)
        .where(*conditions)
        .values(
            delivery_agent_id=agent.id,
            status=OrderStatus.OUT_FOR_DELIVERY,
            estimated_delivery_time=now
            + timedelta(minutes=get_settings().ESTIMATED_DELIVERY_MINUTES),
            updated_at=now,
        )
        .execution_options(synchronize_session=False)
    )
    return result.rowcount == 1


async def accept_order(
    db: AsyncSession,
    actor: AuthUser,
    order_id: uuid.UUID,
    *,
    fanout: Optional[NotificationFanout] = None,
) -> Order:
    agent = await _dispatchable_agent(db, actor)
    order = await get_order_or_404(db, order_id)
    if order.delivery_agent_id is not None:
        raise ConflictError("Order has already been assigned to a delivery agent")
    if order.status != OrderStatus.CONFIRMED:
        raise ConflictError("Order is not ready for delivery")

    if not await _claim(db, order_id, agent, only_confirmed=True):
        await db.rollback()
        raise ConflictError("Order has already been assigned to a delivery agent")

    append_history(
        db,
        order_id,
        OrderStatus.OUT_FOR_DELIVERY,
        f"Order accepted by delivery agent {agent.id}",
        agent_location(agent),
    )
    add_active(agent, order_id)
    await db.commit()
    logger.info("Order %s accepted by agent %s", order_id, agent.id)

    order = await load_order(db, order_id)
    if fanout is not None:
        await fanout.notify_status_change(order, sender_id=actor.user_id)
    return order


async def reject_order(db: AsyncSession, actor: AuthUser, order_id: uuid.UUID) -> bool:
    """Hide an unassigned order from this agent. Repeating it is a no-op.

    Returns True when a new rejection was recorded.
    """
    agent = await _dispatchable_agent(db, actor)
    order = await get_order_or_404(db, order_id)
    if order.delivery_agent_id is not None:
        raise ConflictError("Order has already been assigned to a delivery agent")

    if not add_rejected(agent, order_id):
        return False
    try:
        await db.commit()
    except IntegrityError:
        # A concurrent call recorded the same rejection
        await db.rollback()
        return False

    logger.info("Order %s rejected by agent %s", order_id, agent.id)
    return True


async def complete_delivery(
    db: AsyncSession,
    actor: AuthUser,
    order_id: uuid.UUID,
    *,
    fanout: Optional[NotificationFanout] = None,
) -> Order:
    agent = await require_agent(db, actor)
    order = await get_order_or_404(db, order_id)
    if not is_assigned_agent(agent, order):
        raise AuthorizationError("Order is not assigned to you")
    if order.status != OrderStatus.OUT_FOR_DELIVERY:
        raise ConflictError("Order is not out for delivery")

    now = utc_now()
    result = await db.execute(
        update(Order)
        .where(
            Order.id == order_id,
            Order.delivery_agent_id == agent.id,
            Order.status == OrderStatus.OUT_FOR_DELIVERY,
        )
        .values(status=OrderStatus.DELIVERED, actual_delivery_time=now, updated_at=now)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 0:
        await db.rollback()
        raise ConflictError("Order is not out for delivery")

    append_history(
        db,
        order_id,
        OrderStatus.DELIVERED,
        f"Order delivered by delivery agent {agent.id}",
        agent_location(agent),
    )
    complete_active(agent, order_id)
    await db.commit()
    logger.info("Order %s delivered by agent %s", order_id, agent.id)

    order = await load_order(db, order_id)
    if fanout is not None:
        await fanout.notify_status_change(order, sender_id=actor.user_id)
    return order


async def assign_agent_by_admin(
    db: AsyncSession,
    actor: AuthUser,
    order_id: uuid.UUID,
    agent_id: uuid.UUID,
    *,
    fanout: Optional[NotificationFanout] = None,
) -> Order:
    """Admin assignment, through the same conditional claim as ``accept_order``.

    Any non-terminal unassigned order can be assigned; it moves to
    out_for_delivery.
    """
    order = await get_order_or_404(db, order_id)
    agent = await get_agent(db, agent_id)
    if order.delivery_agent_id is not None:
        raise ConflictError("Order has already been assigned to a delivery agent")
    if order.status.is_terminal:
        raise ConflictError(f"Cannot assign an agent to an order that is {order.status.value}")

    if not await _claim(db, order_id, agent, only_confirmed=False):
        await db.rollback()
        raise ConflictError("Order has already been assigned to a delivery agent")

    append_history(
        db,
        order_id,
        OrderStatus.OUT_FOR_DELIVERY,
        f"Assigned to delivery agent {agent.id} by admin",
    )
    add_active(agent, order_id)
    await db.commit()
    logger.info("Order %s assigned to agent %s by %s", order_id, agent.id, actor.user_id)

    order = await load_order(db, order_id)
    if fanout is not None:
        await fanout.notify_status_change(order, sender_id=actor.user_id)
    return order
