"""Response builders shared by the order routers."""

from libs.auth.models import AuthUser
from services.orders_service.geo import distance_info
from services.orders_service.models import Order
from services.orders_service.permissions import is_owner
from services.orders_service.schemas import (
    DispatchOrderResponse,
    OrderDetailResponse,
    OrderResponse,
)
from services.orders_service.services.dispatch import DispatchCandidate


def order_detail(order: Order, actor: AuthUser, show_customer: bool) -> OrderDetailResponse:
    """Order as seen by ``actor``; the pickup code is only shown to the buyer
    and admins, never to the seller who has to be told it."""
    response = OrderDetailResponse.model_validate(order)
    updates = {}
    if not show_customer:
        updates["customer"] = None
    if not (is_owner(actor, order) or actor.has_admin_rights):
        updates["pickup_code"] = None
    return response.model_copy(update=updates)


def dispatch_order(candidate: DispatchCandidate) -> DispatchOrderResponse:
    base = OrderResponse.model_validate(candidate.order).model_dump()
    # Agents never need the handover code
    base["pickup_code"] = None
    return DispatchOrderResponse(
        **base,
        pickup_location=candidate.pickup_location.as_dict()
        if candidate.pickup_location
        else None,
        delivery_location=candidate.delivery_location.as_dict()
        if candidate.delivery_location
        else None,
        distance=distance_info(candidate.distance_meters),
        within_delivery_range=candidate.within_delivery_range,
    )
