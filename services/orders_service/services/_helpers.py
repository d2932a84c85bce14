"""Shared order lookups and history writes for the order services."""

import uuid
from typing import Optional

from libs.common.errors import NotFoundError
from services.orders_service.geo import GeoPoint
from services.orders_service.models import Order, OrderStatus, OrderStatusHistory
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession


async def load_order(db: AsyncSession, order_id: uuid.UUID) -> Optional[Order]:
    """Fetch an order with its items, history and parties, replacing any stale
    copy already in the session (conditional UPDATEs bypass the identity map)."""
    result = await db.execute(
        select(Order)
        .where(Order.id == order_id)
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def get_order_or_404(db: AsyncSession, order_id: uuid.UUID) -> Order:
    order = await load_order(db, order_id)
    if order is None:
        raise NotFoundError("Order not found")
    return order


def append_history(
    db: AsyncSession,
    order_id: uuid.UUID,
    status: OrderStatus,
    note: str,
    location: Optional[GeoPoint] = None,
) -> OrderStatusHistory:
    entry = OrderStatusHistory(
        order_id=order_id,
        status=status,
        note=note,
        location_longitude=location.longitude if location else None,
        location_latitude=location.latitude if location else None,
    )
    db.add(entry)
    return entry
