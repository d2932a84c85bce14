"""Order lifecycle notifications: a durable record plus a best-effort live push.

Fanout always runs after the triggering operation has committed, in its own
session, and swallows (logs) every failure so it can never undo or fail the
operation that caused it.
"""

import uuid
from typing import Optional

from libs.auth.models import AuthUser
from libs.common.datetime_utils import utc_now
from libs.common.logging import get_logger
from services.orders_service.models import (
    Notification,
    NotificationType,
    Order,
    OrderStatus,
    UserRef,
)
from services.orders_service.services.live import ConnectionDirectory, push_event
from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

logger = get_logger(__name__)

STATUS_MESSAGES = {
    OrderStatus.PROCESSING: "Your order is being processed",
    OrderStatus.CONFIRMED: "Your order has been confirmed",
    OrderStatus.PREPARING: "Your order is being prepared",
    OrderStatus.OUT_FOR_DELIVERY: "Your order is out for delivery",
    OrderStatus.DELIVERED: "Your order has been delivered",
    OrderStatus.CANCELLED: "Your order has been cancelled",
}


def order_summary(order: Order) -> dict:
    return {
        "id": str(order.id),
        "total": float(order.total),
        "status": order.status.value,
        "delivery_method": order.delivery_method.value,
        "delivery_agent_id": str(order.delivery_agent_id)
        if order.delivery_agent_id
        else None,
    }


async def _user_summary(session: AsyncSession, user_id: str) -> dict:
    user = await session.get(UserRef, user_id)
    if user is None:
        return {"id": user_id, "username": None, "avatar": None}
    return {"id": user.id, "username": user.username, "avatar": user.avatar}


class NotificationFanout:
    """Delivers lifecycle events to the interested users.

    ``session_factory`` opens the session used for the durable record;
    ``directory`` maps user ids to open sockets.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker,
        directory: ConnectionDirectory,
    ):
        self.session_factory = session_factory
        self.directory = directory

    async def notify_order_placed(self, order: Order) -> None:
        """Tell each distinct dish author (other than the buyer) about a new order."""
        try:
            seen: set[str] = set()
            for item in order.items:
                product = item.product
                if product is None:
                    continue
                author_id = product.author_id
                if author_id == order.customer_id or author_id in seen:
                    continue
                seen.add(author_id)
                await self._deliver(
                    sender_id=order.customer_id,
                    recipient_id=author_id,
                    type=NotificationType.ORDER,
                    message=f"New order received for {product.caption}",
                    order=order,
                    post_id=product.id,
                    post={
                        "id": str(product.id),
                        "caption": product.caption,
                        "image": product.image,
                    },
                )
        except Exception:
            logger.exception("Order placed fanout failed for order %s", order.id)

    async def notify_status_change(
        self, order: Order, *, sender_id: str, message: Optional[str] = None
    ) -> None:
        """Tell the customer their order moved to a new status."""
        try:
            await self._deliver(
                sender_id=sender_id,
                recipient_id=order.customer_id,
                type=NotificationType.ORDER_STATUS,
                message=message or STATUS_MESSAGES[order.status],
                order=order,
                status_event=True,
            )
        except Exception:
            logger.exception("Status fanout failed for order %s", order.id)

    async def notify_pickup_completed(self, order: Order, *, sender_id: str) -> None:
        await self.notify_status_change(
            order,
            sender_id=sender_id,
            message="Your order has been picked up. Enjoy your meal!",
        )

    async def _deliver(
        self,
        *,
        sender_id: str,
        recipient_id: str,
        type: NotificationType,
        message: str,
        order: Order,
        post: Optional[dict] = None,
        post_id: Optional[uuid.UUID] = None,
        status_event: bool = False,
    ) -> None:
        summary = order_summary(order)
        created_at = utc_now()
        sender = {"id": sender_id, "username": None, "avatar": None}

        # Durable record
        try:
            async with self.session_factory() as session:
                sender = await _user_summary(session, sender_id)
                session.add(
                    Notification(
                        sender_id=sender_id,
                        recipient_id=recipient_id,
                        type=type,
                        message=message,
                        post_id=post_id,
                        order_id=order.id,
                        read=False,
                        created_at=created_at,
                    )
                )
                await session.commit()
        except Exception:
            logger.exception(
                "Failed to store %s notification for %s", type.value, recipient_id
            )

        # Live push, independent of the record above
        payload = {
            "type": type.value,
            "sender": sender,
            "recipient": recipient_id,
            "order": summary,
            "message": message,
            "created_at": created_at.isoformat(),
            "read": False,
        }
        if post is not None:
            payload["post"] = post
        try:
            pushed = await push_event(
                self.directory, recipient_id, "newNotification", payload
            )
            if pushed and status_event:
                await push_event(
                    self.directory, recipient_id, "orderStatusUpdate", summary
                )
        except Exception:
            logger.exception("Live push to %s failed", recipient_id)


# ---------------------------------------------------------------------------
# Inbox
# ---------------------------------------------------------------------------


async def list_notifications(
    db: AsyncSession, actor: AuthUser, *, limit: int = 50
) -> tuple[list[Notification], int]:
    """Newest notifications for the actor and their unread count."""
    result = await db.execute(
        select(Notification)
        .where(Notification.recipient_id == actor.user_id)
        .order_by(Notification.created_at.desc())
        .limit(limit)
    )
    notifications = list(result.scalars().all())

    unread = await db.scalar(
        select(func.count(Notification.id)).where(
            Notification.recipient_id == actor.user_id,
            Notification.read.is_(False),
        )
    )
    return notifications, unread or 0


async def mark_notifications_read(db: AsyncSession, actor: AuthUser) -> int:
    result = await db.execute(
        update(Notification)
        .where(
            Notification.recipient_id == actor.user_id,
            Notification.read.is_(False),
        )
        .values(read=True)
    )
    await db.commit()
    return result.rowcount or 0
