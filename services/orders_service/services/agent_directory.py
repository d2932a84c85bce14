"""Delivery agent registration, self-service updates and owned order sets.

Membership of an order in an agent's active / rejected / completed set is only
changed through the ``add_active``, ``add_rejected`` and ``complete_active``
transitions below.
"""

import uuid
from typing import Optional

from libs.auth.models import AuthUser
from libs.common.datetime_utils import utc_now
from libs.common.errors import ConflictError, NotFoundError, ValidationError
from libs.common.logging import get_logger
from services.orders_service.models import (
    AgentOrderKind,
    DeliveryAgent,
    DeliveryAgentOrder,
    Order,
    OrderStatus,
)
from services.orders_service.services.live import ConnectionDirectory, push_event
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

logger = get_logger(__name__)


# ---------------------------------------------------------------------------
# Order set transitions
# ---------------------------------------------------------------------------


def _find_link(
    agent: DeliveryAgent, order_id: uuid.UUID, kind: AgentOrderKind
) -> Optional[DeliveryAgentOrder]:
    for link in agent.order_links:
        if link.order_id == order_id and link.kind == kind:
            return link
    return None


def add_active(agent: DeliveryAgent, order_id: uuid.UUID) -> None:
    if _find_link(agent, order_id, AgentOrderKind.ACTIVE) is None:
        agent.order_links.append(
            DeliveryAgentOrder(order_id=order_id, kind=AgentOrderKind.ACTIVE)
        )


def add_rejected(agent: DeliveryAgent, order_id: uuid.UUID) -> bool:
    """Record a rejection. Returns False when the order was already rejected."""
    if _find_link(agent, order_id, AgentOrderKind.REJECTED) is not None:
        return False
    agent.order_links.append(
        DeliveryAgentOrder(order_id=order_id, kind=AgentOrderKind.REJECTED)
    )
    return True


def complete_active(agent: DeliveryAgent, order_id: uuid.UUID) -> None:
    """Move an order from the active set to the completed set."""
    active = _find_link(agent, order_id, AgentOrderKind.ACTIVE)
    if active is not None:
        agent.order_links.remove(active)
    if _find_link(agent, order_id, AgentOrderKind.COMPLETED) is None:
        agent.order_links.append(
            DeliveryAgentOrder(order_id=order_id, kind=AgentOrderKind.COMPLETED)
        )


# ---------------------------------------------------------------------------
# Lookups
# ---------------------------------------------------------------------------


async def get_agent_by_user(db: AsyncSession, user_id: str) -> Optional[DeliveryAgent]:
    result = await db.execute(
        select(DeliveryAgent).where(DeliveryAgent.user_id == user_id)
    )
    return result.scalar_one_or_none()


async def require_agent(db: AsyncSession, actor: AuthUser) -> DeliveryAgent:
    agent = await get_agent_by_user(db, actor.user_id)
    if agent is None:
        raise NotFoundError("Delivery agent profile not found")
    return agent


async def get_agent(db: AsyncSession, agent_id: uuid.UUID) -> DeliveryAgent:
    agent = await db.get(DeliveryAgent, agent_id)
    if agent is None:
        raise NotFoundError("Delivery agent not found")
    return agent


async def list_agents(db: AsyncSession) -> list[DeliveryAgent]:
    result = await db.execute(
        select(DeliveryAgent).order_by(DeliveryAgent.created_at.desc())
    )
    return list(result.scalars().all())


async def agent_profile(db: AsyncSession, actor: AuthUser) -> tuple[DeliveryAgent, dict]:
    """Agent record plus counts of its order sets."""
    agent = await require_agent(db, actor)
    stats = {
        "active_orders": len(agent.active_order_ids),
        "completed_orders": len(agent.completed_order_ids),
        "rejected_orders": len(agent.rejected_order_ids),
        "rating": float(agent.rating or 0),
        "total_ratings": agent.total_ratings or 0,
    }
    return agent, stats


# ---------------------------------------------------------------------------
# Self-service
# ---------------------------------------------------------------------------


async def register_agent(
    db: AsyncSession,
    actor: AuthUser,
    *,
    vehicle_type: str,
    vehicle_number: Optional[str] = None,
) -> DeliveryAgent:
    """Create an agent profile for the actor; new agents start unverified."""
    if not vehicle_type or not vehicle_type.strip():
        raise ValidationError("Vehicle type is required")

    if await get_agent_by_user(db, actor.user_id) is not None:
        raise ConflictError("User is already registered as a delivery agent")

    agent = DeliveryAgent(
        user_id=actor.user_id,
        vehicle_type=vehicle_type.strip(),
        vehicle_number=vehicle_number,
        is_available=True,
        is_verified=False,
        order_links=[],
    )
    db.add(agent)
    try:
        await db.commit()
    except IntegrityError:
        # Two registrations raced past the lookup above
        await db.rollback()
        raise ConflictError("User is already registered as a delivery agent")

    logger.info("Registered delivery agent %s for user %s", agent.id, actor.user_id)
    return agent


async def set_availability(
    db: AsyncSession, actor: AuthUser, *, is_available: bool
) -> DeliveryAgent:
    if not isinstance(is_available, bool):
        raise ValidationError("is_available must be a boolean")

    agent = await require_agent(db, actor)
    agent.is_available = is_available
    await db.commit()

    logger.info("Agent %s availability set to %s", agent.id, is_available)
    return agent


async def update_location(
    db: AsyncSession,
    actor: AuthUser,
    *,
    longitude: float,
    latitude: float,
    directory: Optional[ConnectionDirectory] = None,
) -> DeliveryAgent:
    """Store the agent's current position and tell customers of active orders."""
    if not -180 <= longitude <= 180 or not -90 <= latitude <= 90:
        raise ValidationError("Invalid coordinates")

    agent = await require_agent(db, actor)
    agent.current_longitude = longitude
    agent.current_latitude = latitude
    agent.location_updated_at = utc_now()
    await db.commit()

    if directory is not None:
        await broadcast_location(db, agent, directory)
    return agent


async def broadcast_location(
    db: AsyncSession, agent: DeliveryAgent, directory: ConnectionDirectory
) -> None:
    """Live-only push of the agent position; failures are logged and dropped."""
    try:
        active_ids = agent.active_order_ids
        if not active_ids:
            return
        result = await db.execute(
            select(Order.id, Order.customer_id).where(
                Order.id.in_(active_ids),
                Order.status == OrderStatus.OUT_FOR_DELIVERY,
            )
        )
        for order_id, customer_id in result.all():
            await push_event(
                directory,
                customer_id,
                "deliveryLocationUpdate",
                {
                    "order_id": str(order_id),
                    "agent_id": str(agent.id),
                    "location": {
                        "longitude": agent.current_longitude,
                        "latitude": agent.current_latitude,
                    },
                    "updated_at": agent.location_updated_at.isoformat()
                    if agent.location_updated_at
                    else None,
                },
            )
    except Exception:
        logger.exception("Failed to broadcast location for agent %s", agent.id)


# ---------------------------------------------------------------------------
# Admin
# ---------------------------------------------------------------------------


async def verify_agent(
    db: AsyncSession, agent_id: uuid.UUID, *, is_verified: bool = True
) -> DeliveryAgent:
    agent = await get_agent(db, agent_id)
    agent.is_verified = is_verified
    await db.commit()

    logger.info("Agent %s verification set to %s", agent.id, is_verified)
    return agent
