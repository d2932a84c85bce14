"""Self-pickup credential: issue, verify and redeem the 4-digit handover code."""

import secrets
import uuid
from datetime import datetime, timedelta
from typing import Optional

from libs.auth.models import AuthUser
from libs.common.config import get_settings
from libs.common.datetime_utils import ensure_utc, utc_now
from libs.common.errors import (
    AuthorizationError,
    ConflictError,
    ExpiredError,
    ValidationError,
)
from libs.common.logging import get_logger
from services.orders_service.models import (
    TERMINAL_STATUSES,
    DeliveryMethod,
    Order,
    OrderStatus,
)
from services.orders_service.permissions import is_item_author
from services.orders_service.services._helpers import (
    append_history,
    get_order_or_404,
    load_order,
)
from services.orders_service.services.fanout import NotificationFanout
from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession

logger = get_logger(__name__)


def generate_pickup_code() -> str:
    return str(secrets.randbelow(9000) + 1000)


def pickup_code_expiry(created_at: datetime) -> datetime:
    return ensure_utc(created_at) + timedelta(hours=get_settings().PICKUP_CODE_TTL_HOURS)


def check_pickup(
    order: Order, code: str, actor: AuthUser, now: Optional[datetime] = None
) -> None:
    """Raise unless ``actor`` may hand over ``order`` using ``code`` right now.

    Expiry is checked before the code so an expired credential fails the same
    way whatever code is supplied.
    """
    if not order.is_pickup or order.pickup_code is None:
        raise ValidationError("This order is not a pickup order")

    now = now or utc_now()
    if order.pickup_code_expires_at is None or now > ensure_utc(
        order.pickup_code_expires_at
    ):
        raise ExpiredError("Pickup code has expired")

    code = str(code)
    if not (code.isascii() and secrets.compare_digest(code, order.pickup_code)):
        raise ValidationError("Invalid pickup code")

    if order.is_pickup_completed:
        raise ConflictError("Order has already been picked up")

    if order.status.is_terminal:
        raise ConflictError(f"Order is already {order.status.value}")

    if not is_item_author(actor, order):
        raise AuthorizationError("Only the seller of this order can hand it over")


async def verify_pickup_code(
    db: AsyncSession, actor: AuthUser, *, order_id: uuid.UUID, code: str
) -> Order:
    """Pre-check before the handover; nothing is written."""
    order = await get_order_or_404(db, order_id)
    check_pickup(order, code, actor)
    return order


async def complete_pickup(
    db: AsyncSession,
    actor: AuthUser,
    *,
    order_id: uuid.UUID,
    code: str,
    fanout: Optional[NotificationFanout] = None,
) -> Order:
    order = await get_order_or_404(db, order_id)
    check_pickup(order, code, actor)

    now = utc_now()
    result = await db.execute(
        update(Order)
        .where(
            Order.id == order_id,
            Order.delivery_method == DeliveryMethod.PICKUP,
            Order.is_pickup_completed.is_(False),
            Order.status.notin_(list(TERMINAL_STATUSES)),
        )
        .values(
            is_pickup_completed=True,
            status=OrderStatus.DELIVERED,
            actual_delivery_time=now,
            updated_at=now,
        )
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 0:
        await db.rollback()
        raise ConflictError("Order has already been picked up")

    append_history(db, order_id, OrderStatus.DELIVERED, "Order picked up by customer")
    await db.commit()

    order = await load_order(db, order_id)
    logger.info("Pickup completed for order %s by %s", order_id, actor.user_id)

    if fanout is not None:
        await fanout.notify_pickup_completed(order, sender_id=actor.user_id)
    return order
