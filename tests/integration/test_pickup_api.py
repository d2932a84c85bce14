"""Integration tests for the pickup handover endpoints."""

from datetime import timedelta

import pytest
from libs.common.datetime_utils import utc_now
from tests.factories import OrderFactory, ProductFactory, UserFactory
from tests.helpers import make_user, override_auth

SELLER = make_user("cook-1")


async def _seed_pickup(db_session, **overrides):
    cook = UserFactory.create(id="cook-1")
    customer = UserFactory.create(id="customer-1", contact_number="+15559990000")
    dish = ProductFactory.create(cook.id)
    order = OrderFactory.create_pickup("customer-1", dish, **overrides)
    db_session.add_all([cook, customer, dish, order])
    await db_session.commit()
    return order


@pytest.mark.asyncio
@pytest.mark.integration
async def test_verify_pickup_code(client, orders_app, db_session):
    """POST /orders/pickup/verify — seller checks the buyer's code."""
    order = await _seed_pickup(db_session)

    with override_auth(orders_app, SELLER):
        response = await client.post(
            "/orders/pickup/verify", json={"order_id": str(order.id), "code": "4321"}
        )

    assert response.status_code == 200, response.text
    data = response.json()
    assert data["success"] is True
    assert data["order_id"] == str(order.id)
    assert data["customer"]["contact_number"] == "+15559990000"
    assert len(data["items"]) == 1


@pytest.mark.asyncio
@pytest.mark.integration
async def test_verify_wrong_code(client, orders_app, db_session):
    order = await _seed_pickup(db_session)

    with override_auth(orders_app, SELLER):
        response = await client.post(
            "/orders/pickup/verify", json={"order_id": str(order.id), "code": "9999"}
        )

    assert response.status_code == 400
    assert response.json()["code"] == "VALIDATION_ERROR"


@pytest.mark.asyncio
@pytest.mark.integration
async def test_verify_expired_code(client, orders_app, db_session):
    order = await _seed_pickup(db_session, created_at=utc_now() - timedelta(days=2))

    with override_auth(orders_app, SELLER):
        response = await client.post(
            "/orders/pickup/verify", json={"order_id": str(order.id), "code": "4321"}
        )

    assert response.status_code == 400
    assert response.json()["code"] == "EXPIRED"


@pytest.mark.asyncio
@pytest.mark.integration
async def test_buyer_cannot_hand_over_own_order(client, db_session):
    order = await _seed_pickup(db_session)

    response = await client.post(
        "/orders/pickup/complete", json={"order_id": str(order.id), "code": "4321"}
    )

    assert response.status_code == 403


@pytest.mark.asyncio
@pytest.mark.integration
async def test_complete_pickup(client, orders_app, db_session):
    """POST /orders/pickup/complete — marks delivered exactly once."""
    order = await _seed_pickup(db_session)
    body = {"order_id": str(order.id), "code": "4321"}

    with override_auth(orders_app, SELLER):
        response = await client.post("/orders/pickup/complete", json=body)
        again = await client.post("/orders/pickup/complete", json=body)

    assert response.status_code == 200, response.text
    data = response.json()["order"]
    assert data["status"] == "delivered"
    assert data["is_pickup_completed"] is True
    assert data["pickup_code"] is None

    assert again.status_code == 409

    # The buyer got one notification
    inbox = await client.get("/notifications")
    assert inbox.json()["unread_count"] == 1


@pytest.mark.asyncio
@pytest.mark.integration
async def test_pickup_attempts_are_throttled(client, orders_app, db_session):
    order = await _seed_pickup(db_session)
    body = {"order_id": str(order.id), "code": "0000"}

    with override_auth(orders_app, SELLER):
        statuses = [
            (await client.post("/orders/pickup/verify", json=body)).status_code
            for _ in range(11)
        ]
        limited = await client.post("/orders/pickup/verify", json=body)

    assert statuses[:10] == [400] * 10
    assert statuses[10] == 429
    assert limited.json()["code"] == "RATE_LIMIT_EXCEEDED"
