"""Unit tests for notification fanout and the live-connection directory."""

import pytest
from services.orders_service.models import Notification, NotificationType, OrderItem
from services.orders_service.services._helpers import load_order
from services.orders_service.services.fanout import (
    NotificationFanout,
    list_notifications,
    mark_notifications_read,
)
from services.orders_service.services.live import InMemoryConnectionDirectory, push_event
from sqlalchemy import select
from tests.factories import OrderFactory, ProductFactory, UserFactory
from tests.helpers import BrokenSocket, FakeSocket, make_user

CUSTOMER = make_user("customer-1")


async def _seed_order(db, *authors):
    """An order with one line per author (authors may repeat)."""
    users = {a: UserFactory.create(id=a) for a in {CUSTOMER.user_id, *authors}}
    db.add_all(users.values())
    dishes = [ProductFactory.create(a, caption=f"Dish {i}") for i, a in enumerate(authors)]
    db.add_all(dishes)
    order = OrderFactory.create(CUSTOMER.user_id, dishes[0])
    db.add(order)
    await db.commit()
    for position, dish in enumerate(dishes[1:], start=1):
        order.items.append(
            OrderItem(
                product_id=dish.id,
                position=position,
                name=dish.caption,
                quantity=1,
                unit_price=dish.price,
            )
        )
    await db.commit()
    return await load_order(db, order.id)


async def _inbox(db, user_id):
    result = await db.execute(
        select(Notification).where(Notification.recipient_id == user_id)
    )
    return list(result.scalars().all())


# ---------------------------------------------------------------------------
# Directory
# ---------------------------------------------------------------------------


@pytest.mark.unit
def test_latest_connection_wins():
    directory = InMemoryConnectionDirectory()
    old, new = FakeSocket(), FakeSocket()
    directory.register("u1", old)
    directory.register("u1", new)

    # A stale socket closing leaves the newer one in place
    directory.unregister("u1", old)
    assert directory.lookup("u1") is new

    directory.unregister("u1", new)
    assert directory.lookup("u1") is None
    assert len(directory) == 0


@pytest.mark.asyncio
@pytest.mark.unit
async def test_push_event_without_connection():
    assert await push_event(InMemoryConnectionDirectory(), "nobody", "ping", {}) is False


# ---------------------------------------------------------------------------
# Order placed
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
@pytest.mark.unit
async def test_order_placed_notifies_distinct_authors(db_session, fanout, directory):
    order = await _seed_order(db_session, "cook-a", "cook-b", "cook-a")
    socket = FakeSocket()
    directory.register("cook-a", socket)

    await fanout.notify_order_placed(order)

    cook_a = await _inbox(db_session, "cook-a")
    cook_b = await _inbox(db_session, "cook-b")
    assert len(cook_a) == 1 and len(cook_b) == 1
    assert cook_a[0].type == NotificationType.ORDER
    assert cook_a[0].order_id == order.id
    assert cook_a[0].sender_id == CUSTOMER.user_id

    assert socket.events() == ["newNotification"]
    payload = socket.sent[0]["data"]
    assert payload["post"]["caption"] == "Dish 0"
    assert payload["order"]["id"] == str(order.id)


@pytest.mark.asyncio
@pytest.mark.unit
async def test_customer_buying_own_dish_gets_no_order_notification(db_session, fanout):
    order = await _seed_order(db_session, CUSTOMER.user_id)

    await fanout.notify_order_placed(order)

    assert await _inbox(db_session, CUSTOMER.user_id) == []


# ---------------------------------------------------------------------------
# Failure isolation
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
@pytest.mark.unit
async def test_broken_socket_keeps_durable_record(db_session, fanout, directory):
    order = await _seed_order(db_session, "cook-a")
    directory.register(CUSTOMER.user_id, BrokenSocket())

    await fanout.notify_status_change(order, sender_id="cook-a")

    inbox = await _inbox(db_session, CUSTOMER.user_id)
    assert [n.type for n in inbox] == [NotificationType.ORDER_STATUS]


@pytest.mark.asyncio
@pytest.mark.unit
async def test_storage_failure_still_pushes_live(db_session, directory):
    order = await _seed_order(db_session, "cook-a")

    def broken_factory():
        raise RuntimeError("database unavailable")

    fanout = NotificationFanout(broken_factory, directory)
    socket = FakeSocket()
    directory.register(CUSTOMER.user_id, socket)

    await fanout.notify_status_change(order, sender_id="cook-a", message="Hello")

    assert socket.events() == ["newNotification", "orderStatusUpdate"]
    assert socket.sent[0]["data"]["message"] == "Hello"
    assert await _inbox(db_session, CUSTOMER.user_id) == []


# ---------------------------------------------------------------------------
# Inbox
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
@pytest.mark.unit
async def test_list_and_mark_read(db_session, fanout):
    order = await _seed_order(db_session, "cook-a")
    await fanout.notify_status_change(order, sender_id="cook-a")
    await fanout.notify_status_change(order, sender_id="cook-a", message="Again")

    notifications, unread = await list_notifications(db_session, CUSTOMER)
    assert len(notifications) == 2
    assert unread == 2

    assert await mark_notifications_read(db_session, CUSTOMER) == 2
    _, unread = await list_notifications(db_session, CUSTOMER)
    assert unread == 0
