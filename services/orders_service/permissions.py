"""Capability predicates shared by every order operation."""

from typing import Optional

from libs.auth.models import AuthUser
from services.orders_service.models import DeliveryAgent, Order


def is_owner(actor: AuthUser, order: Order) -> bool:
    return order.customer_id == actor.user_id


def is_assigned_agent(agent: Optional[DeliveryAgent], order: Order) -> bool:
    return agent is not None and order.delivery_agent_id == agent.id


def is_item_author(actor: AuthUser, order: Order) -> bool:
    """True when the actor listed at least one of the ordered dishes."""
    return any(
        item.product is not None and item.product.author_id == actor.user_id
        for item in order.items
    )


def can_view_order(actor: AuthUser, order: Order) -> bool:
    if is_owner(actor, order) or actor.has_admin_rights:
        return True
    return order.is_pickup and is_item_author(actor, order)
