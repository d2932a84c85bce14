"""Order lifecycle: creation, status state machine, cancellation and reorder.

Status moves are written as conditional UPDATEs against the status the caller
observed, so two concurrent writers cannot both move the same order.
"""

import uuid
from collections import Counter, defaultdict
from datetime import timedelta
from decimal import Decimal
from typing import Iterable, Optional

from libs.auth.models import AuthUser
from libs.common.datetime_utils import ensure_utc, utc_now
from libs.common.errors import (
    AuthorizationError,
    ConflictError,
    NotFoundError,
    ValidationError,
)
from libs.common.logging import get_logger
from services.orders_service.models import (
    TERMINAL_STATUSES,
    DeliveryMethod,
    Order,
    OrderItem,
    OrderStatus,
    OrderStatusHistory,
    PaymentStatus,
    ProductRef,
    UserRef,
)
from services.orders_service.permissions import can_view_order, is_item_author, is_owner
from services.orders_service.schemas import OrderCreate
from services.orders_service.services._helpers import (
    append_history,
    get_order_or_404,
    load_order,
)
from services.orders_service.services.fanout import NotificationFanout
from services.orders_service.services.pickup import (
    generate_pickup_code,
    pickup_code_expiry,
)
from sqlalchemy import String, asc, case, cast, desc, func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

logger = get_logger(__name__)

CENT = Decimal("0.01")
CASH_PAYMENT_METHOD = "cash"
SORTABLE_FIELDS = {
    "created_at": Order.created_at,
    "total": Order.total,
    "status": Order.status,
}


def _money(value) -> Decimal:
    return Decimal(str(value or 0)).quantize(CENT)


def _payment_status_for(payment_method: str) -> PaymentStatus:
    if payment_method.lower() == CASH_PAYMENT_METHOD:
        return PaymentStatus.PENDING
    return PaymentStatus.PAID


# ============================================================================
# INVENTORY
# ============================================================================


async def adjust_inventory(
    db: AsyncSession, lines: Iterable[tuple[uuid.UUID, int]], *, restore: bool = False
) -> None:
    """Decrement (or restore) dish stock for the given (product_id, quantity) lines.

    A decrement never takes a listing below 1. Runs after the order commit;
    failures are logged and the order stands.
    """
    lines = list(lines)
    try:
        for product_id, quantity in lines:
            if restore:
                new_quantity = ProductRef.quantity + quantity
            else:
                new_quantity = case(
                    (ProductRef.quantity - quantity < 1, 1),
                    else_=ProductRef.quantity - quantity,
                )
            await db.execute(
                update(ProductRef)
                .where(ProductRef.id == product_id)
                .values(quantity=new_quantity)
                .execution_options(synchronize_session=False)
            )
        await db.commit()
    except Exception:
        await db.rollback()
        logger.exception(
            "Inventory %s failed for products %s",
            "restore" if restore else "decrement",
            [str(product_id) for product_id, _ in lines],
        )


def _lines(order: Order) -> list[tuple[uuid.UUID, int]]:
    return [(item.product_id, item.quantity) for item in order.items]


# ============================================================================
# CREATE / REORDER
# ============================================================================


def _issue_pickup_credential(order: Order) -> None:
    order.pickup_code = generate_pickup_code()
    order.pickup_code_expires_at = pickup_code_expiry(order.created_at)


async def create_order(
    db: AsyncSession,
    actor: AuthUser,
    payload: OrderCreate,
    *,
    fanout: Optional[NotificationFanout] = None,
) -> Order:
    """Place a new order for the actor."""
    if not payload.items:
        raise ValidationError("Order must contain at least one item")
    if not payload.contact_number or not payload.contact_number.strip():
        raise ValidationError("Contact number is required")

    is_pickup = payload.delivery_method == DeliveryMethod.PICKUP
    delivery_address = (payload.delivery_address or "").strip()
    if not delivery_address:
        if not is_pickup:
            raise ValidationError("Delivery address is required")
        delivery_address = "Pickup"

    product_ids = {line.product_id for line in payload.items}
    result = await db.execute(select(ProductRef).where(ProductRef.id.in_(product_ids)))
    products = {product.id: product for product in result.scalars().all()}

    items = []
    subtotal = Decimal("0")
    for position, line in enumerate(payload.items):
        if line.quantity <= 0:
            raise ValidationError("Item quantity must be greater than zero")
        product = products.get(line.product_id)
        if product is None:
            raise NotFoundError(f"Product {line.product_id} not found")
        unit_price = _money(line.unit_price if line.unit_price is not None else product.price)
        subtotal += unit_price * line.quantity
        items.append(
            OrderItem(
                product_id=product.id,
                position=position,
                name=line.name or product.caption,
                quantity=line.quantity,
                unit_price=unit_price,
            )
        )

    tax = _money(payload.tax)
    delivery_fee = _money(payload.delivery_fee)
    discount = _money(payload.discount)
    total = max(subtotal + tax + delivery_fee - discount, Decimal("0"))

    now = utc_now()
    order = Order(
        customer_id=actor.user_id,
        contact_number=payload.contact_number.strip(),
        restaurant_id=payload.restaurant_id,
        delivery_method=payload.delivery_method,
        delivery_address=delivery_address,
        delivery_instructions=payload.delivery_instructions,
        pickup_longitude=payload.pickup_location.longitude
        if payload.pickup_location
        else None,
        pickup_latitude=payload.pickup_location.latitude
        if payload.pickup_location
        else None,
        delivery_longitude=payload.delivery_location.longitude
        if payload.delivery_location
        else None,
        delivery_latitude=payload.delivery_location.latitude
        if payload.delivery_location
        else None,
        status=OrderStatus.PROCESSING,
        subtotal=subtotal.quantize(CENT),
        tax=tax,
        delivery_fee=delivery_fee,
        discount=discount,
        total=total.quantize(CENT),
        promo_code_applied=payload.promo_code,
        payment_method=payload.payment_method,
        payment_status=_payment_status_for(payload.payment_method),
        created_at=now,
        updated_at=now,
        items=items,
        status_history=[
            OrderStatusHistory(status=OrderStatus.PROCESSING, note="Order received")
        ],
    )
    if is_pickup:
        _issue_pickup_credential(order)

    db.add(order)
    await db.commit()
    order_id = order.id
    logger.info(
        "Order %s created by %s (%d items, total=%s)",
        order_id,
        actor.user_id,
        len(items),
        order.total,
    )

    await adjust_inventory(db, _lines(order))
    order = await load_order(db, order_id)

    if fanout is not None:
        await fanout.notify_order_placed(order)
    return order


async def reorder(
    db: AsyncSession,
    actor: AuthUser,
    order_id: uuid.UUID,
    *,
    fanout: Optional[NotificationFanout] = None,
) -> Order:
    """Place a fresh copy of one of the actor's earlier orders."""
    original = await get_order_or_404(db, order_id)
    if not is_owner(actor, original):
        raise AuthorizationError("You can only reorder your own orders")

    now = utc_now()
    subtotal = _money(original.subtotal)
    tax = _money(original.tax)
    delivery_fee = _money(original.delivery_fee)

    order = Order(
        customer_id=original.customer_id,
        contact_number=original.contact_number,
        restaurant_id=original.restaurant_id,
        delivery_method=original.delivery_method,
        delivery_address=original.delivery_address,
        delivery_instructions=original.delivery_instructions,
        pickup_longitude=original.pickup_longitude,
        pickup_latitude=original.pickup_latitude,
        delivery_longitude=original.delivery_longitude,
        delivery_latitude=original.delivery_latitude,
        status=OrderStatus.PROCESSING,
        subtotal=subtotal,
        tax=tax,
        delivery_fee=delivery_fee,
        # Promotions are not carried over
        discount=Decimal("0.00"),
        total=subtotal + tax + delivery_fee,
        payment_method=original.payment_method,
        payment_status=_payment_status_for(original.payment_method),
        created_at=now,
        updated_at=now,
        items=[
            OrderItem(
                product_id=item.product_id,
                position=item.position,
                name=item.name,
                quantity=item.quantity,
                unit_price=item.unit_price,
            )
            for item in original.items
        ],
        status_history=[
            OrderStatusHistory(status=OrderStatus.PROCESSING, note="Order received")
        ],
    )
    if order.is_pickup:
        _issue_pickup_credential(order)

    db.add(order)
    await db.commit()
    new_id = order.id
    logger.info("Order %s reordered as %s by %s", order_id, new_id, actor.user_id)

    await adjust_inventory(db, _lines(order))
    order = await load_order(db, new_id)

    if fanout is not None:
        await fanout.notify_order_placed(order)
    return order


# ============================================================================
# READ
# ============================================================================


async def get_order(
    db: AsyncSession, actor: AuthUser, order_id: uuid.UUID
) -> tuple[Order, bool]:
    """Return the order and whether the customer's contact details may be shown.

    Dish authors see pickup orders they are part of, with the buyer's contact.
    """
    order = await get_order_or_404(db, order_id)
    if not can_view_order(actor, order):
        raise AuthorizationError("You are not allowed to view this order")

    show_customer = (
        is_owner(actor, order)
        or actor.has_admin_rights
        or (order.is_pickup and is_item_author(actor, order))
    )
    return order, show_customer


async def list_customer_orders(db: AsyncSession, actor: AuthUser) -> list[Order]:
    result = await db.execute(
        select(Order)
        .where(Order.customer_id == actor.user_id)
        .order_by(Order.created_at.desc())
    )
    return list(result.scalars().all())


async def list_all_orders(
    db: AsyncSession,
    *,
    page: int = 1,
    limit: int = 20,
    status: Optional[OrderStatus] = None,
    search: Optional[str] = None,
    sort_by: str = "created_at",
    sort_order: str = "desc",
) -> tuple[list[Order], int]:
    """Admin listing with filter, free-text search, sort and pagination."""
    if sort_by not in SORTABLE_FIELDS:
        raise ValidationError(
            f"sort_by must be one of: {', '.join(sorted(SORTABLE_FIELDS))}"
        )
    if sort_order not in ("asc", "desc"):
        raise ValidationError("sort_order must be 'asc' or 'desc'")

    query = select(Order)
    if status is not None:
        query = query.where(Order.status == status)
    if search:
        pattern = f"%{search.strip()}%"
        item_match = (
            select(OrderItem.id)
            .where(OrderItem.order_id == Order.id, OrderItem.name.ilike(pattern))
            .exists()
        )
        customer_match = (
            select(UserRef.id)
            .where(UserRef.id == Order.customer_id, UserRef.username.ilike(pattern))
            .exists()
        )
        query = query.where(
            or_(
                cast(Order.id, String).ilike(pattern),
                Order.contact_number.ilike(pattern),
                Order.delivery_address.ilike(pattern),
                item_match,
                customer_match,
            )
        )

    total = await db.scalar(select(func.count()).select_from(query.subquery()))

    direction = asc if sort_order == "asc" else desc
    query = (
        query.order_by(direction(SORTABLE_FIELDS[sort_by]), Order.id)
        .offset((page - 1) * limit)
        .limit(limit)
    )
    result = await db.execute(query)
    return list(result.scalars().all()), total or 0


async def order_stats(db: AsyncSession, *, days: int = 7) -> dict:
    """Counts and revenue by status and payment status, plus daily volume."""
    rows = (
        await db.execute(
            select(
                Order.status,
                Order.payment_status,
                func.count(Order.id),
                func.coalesce(func.sum(Order.total), 0),
            ).group_by(Order.status, Order.payment_status)
        )
    ).all()

    by_status: dict[str, dict] = defaultdict(lambda: {"count": 0, "revenue": 0.0})
    by_payment: dict[str, dict] = defaultdict(lambda: {"count": 0, "revenue": 0.0})
    total_orders = 0
    for status, payment_status, count, revenue in rows:
        by_status[status.value]["count"] += count
        by_status[status.value]["revenue"] += float(revenue)
        by_payment[payment_status.value]["count"] += count
        by_payment[payment_status.value]["revenue"] += float(revenue)
        total_orders += count

    since = utc_now() - timedelta(days=days)
    created = (
        await db.execute(select(Order.created_at).where(Order.created_at >= since))
    ).scalars()
    per_day = Counter(ensure_utc(value).date().isoformat() for value in created)
    today = utc_now().date()
    daily = [
        {"date": day.isoformat(), "count": per_day.get(day.isoformat(), 0)}
        for day in (today - timedelta(days=offset) for offset in range(days - 1, -1, -1))
    ]

    return {
        "total_orders": total_orders,
        "total_revenue": by_status[OrderStatus.DELIVERED.value]["revenue"],
        "by_status": dict(by_status),
        "by_payment_status": dict(by_payment),
        "daily": daily,
    }


async def status_history(
    db: AsyncSession, order_id: uuid.UUID
) -> list[OrderStatusHistory]:
    order = await get_order_or_404(db, order_id)
    return list(order.status_history)


# ============================================================================
# STATUS CHANGES
# ============================================================================


def _parse_status(value) -> OrderStatus:
    try:
        return OrderStatus(value)
    except ValueError:
        raise ValidationError(
            f"Invalid status. Must be one of: {', '.join(s.value for s in OrderStatus)}"
        )


async def update_order_status(
    db: AsyncSession,
    actor: AuthUser,
    order_id: uuid.UUID,
    *,
    new_status,
    note: Optional[str] = None,
    fanout: Optional[NotificationFanout] = None,
) -> Order:
    """Admin override of the order status."""
    target = _parse_status(new_status)
    order = await get_order_or_404(db, order_id)
    current = order.status

    if current.is_terminal:
        raise ConflictError(f"Order is already {current.value}")
    if target == current:
        raise ConflictError(f"Order is already {current.value}")

    now = utc_now()
    values = {"status": target, "updated_at": now}
    if target == OrderStatus.DELIVERED:
        values["actual_delivery_time"] = now
    if target == OrderStatus.CANCELLED and order.payment_status == PaymentStatus.PAID:
        values["payment_status"] = PaymentStatus.REFUNDED

    result = await db.execute(
        update(Order)
        .where(Order.id == order_id, Order.status == current)
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 0:
        await db.rollback()
        raise ConflictError("Order status changed concurrently, please retry")

    append_history(
        db,
        order_id,
        target,
        note or f"Status changed from {current.value} to {target.value}",
    )
    await db.commit()
    logger.info(
        "Order %s status %s -> %s by %s",
        order_id,
        current.value,
        target.value,
        actor.user_id,
    )

    if target == OrderStatus.CANCELLED:
        await adjust_inventory(db, _lines(order), restore=True)

    order = await load_order(db, order_id)
    if fanout is not None:
        await fanout.notify_status_change(order, sender_id=actor.user_id)
    return order


async def cancel_order(
    db: AsyncSession, actor: AuthUser, order_id: uuid.UUID
) -> Order:
    """Customer cancellation; stock for the items is put back."""
    order = await get_order_or_404(db, order_id)
    if not is_owner(actor, order):
        raise AuthorizationError("You can only cancel your own orders")
    if order.status in TERMINAL_STATUSES:
        raise ConflictError(f"Cannot cancel an order that is {order.status.value}")

    values = {"status": OrderStatus.CANCELLED, "updated_at": utc_now()}
    if order.payment_status == PaymentStatus.PAID:
        values["payment_status"] = PaymentStatus.REFUNDED

    result = await db.execute(
        update(Order)
        .where(Order.id == order_id, Order.status.notin_(list(TERMINAL_STATUSES)))
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 0:
        await db.rollback()
        raise ConflictError("Order can no longer be cancelled")

    append_history(db, order_id, OrderStatus.CANCELLED, "Cancelled by customer")
    await db.commit()
    logger.info("Order %s cancelled by customer %s", order_id, actor.user_id)

    await adjust_inventory(db, _lines(order), restore=True)
    return await load_order(db, order_id)
