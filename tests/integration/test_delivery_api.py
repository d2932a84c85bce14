"""Integration tests for the delivery agent endpoints."""

import pytest
from tests.factories import (
    FAR_POINT,
    DeliveryAgentFactory,
    OrderFactory,
    ProductFactory,
    UserFactory,
)
from tests.helpers import FakeSocket, make_user, override_auth

RIDER = make_user("rider-1")
OTHER_RIDER = make_user("rider-2")


async def _seed(db_session, **agent_overrides):
    cook = UserFactory.create(id="cook-1")
    customer = UserFactory.create(id="customer-1")
    dish = ProductFactory.create(cook.id)
    agent = DeliveryAgentFactory.create(RIDER.user_id, **agent_overrides)
    db_session.add_all([cook, customer, dish, agent])
    await db_session.commit()
    return dish, agent


# ---------------------------------------------------------------------------
# Profile
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
@pytest.mark.integration
async def test_register_and_profile(client, orders_app):
    """POST /delivery/register then GET /delivery/profile."""
    with override_auth(orders_app, RIDER):
        response = await client.post(
            "/delivery/register", json={"vehicle_type": "scooter"}
        )
        assert response.status_code == 201, response.text
        assert response.json()["agent"]["is_verified"] is False

        duplicate = await client.post(
            "/delivery/register", json={"vehicle_type": "scooter"}
        )
        assert duplicate.status_code == 409

        profile = await client.get("/delivery/profile")

    assert profile.status_code == 200
    assert profile.json()["stats"]["active_orders"] == 0


@pytest.mark.asyncio
@pytest.mark.integration
async def test_profile_without_registration(client):
    response = await client.get("/delivery/profile")

    assert response.status_code == 404
    assert response.json()["detail"] == "Delivery agent profile not found"


@pytest.mark.asyncio
@pytest.mark.integration
async def test_availability_requires_boolean(client, orders_app, db_session):
    await _seed(db_session)

    with override_auth(orders_app, RIDER):
        bad = await client.put("/delivery/availability", json={"is_available": "yes"})
        good = await client.put("/delivery/availability", json={"is_available": False})

    assert bad.status_code == 400
    assert good.status_code == 200
    assert good.json()["agent"]["is_available"] is False


@pytest.mark.asyncio
@pytest.mark.integration
async def test_location_update_reaches_customer(
    client, orders_app, db_session, directory
):
    """PUT /delivery/location — customers of active orders get a live update."""
    dish, agent = await _seed(db_session)
    order = OrderFactory.create("customer-1", dish)
    db_session.add(order)
    await db_session.commit()
    socket = FakeSocket()
    directory.register("customer-1", socket)

    with override_auth(orders_app, RIDER):
        accepted = await client.post(f"/delivery/orders/{order.id}/accept")
        assert accepted.status_code == 200, accepted.text
        response = await client.put(
            "/delivery/location", json={"longitude": 72.805, "latitude": 19.005}
        )

    assert response.status_code == 200, response.text
    assert socket.events()[-1] == "deliveryLocationUpdate"
    assert socket.sent[-1]["data"]["location"] == {
        "longitude": 72.805,
        "latitude": 19.005,
    }


@pytest.mark.asyncio
@pytest.mark.integration
async def test_location_rejects_out_of_range(client, orders_app, db_session):
    await _seed(db_session)

    with override_auth(orders_app, RIDER):
        response = await client.put(
            "/delivery/location", json={"longitude": 181, "latitude": 0}
        )

    assert response.status_code == 400


# ---------------------------------------------------------------------------
# Dispatch
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
@pytest.mark.integration
async def test_nearby_orders(client, orders_app, db_session):
    """GET /delivery/nearby-orders — radius filter and distance info."""
    dish, _ = await _seed(db_session)
    near = OrderFactory.create_pickup("customer-1", dish)
    far = OrderFactory.create(
        "customer-1", dish, pickup_longitude=FAR_POINT[0], pickup_latitude=FAR_POINT[1]
    )
    db_session.add_all([near, far])
    await db_session.commit()

    with override_auth(orders_app, RIDER):
        response = await client.get("/delivery/nearby-orders")
        everything = await client.get(
            "/delivery/nearby-orders", params={"include_all_confirmed": True}
        )

    assert response.status_code == 200, response.text
    data = response.json()
    assert data["success"] is True
    assert data["count"] == 1
    found = data["orders"][0]
    assert found["id"] == str(near.id)
    assert found["pickup_code"] is None
    assert found["within_delivery_range"] is True
    assert found["distance"]["unit"] == "meters"
    assert found["distance"]["text"].endswith("km")

    assert everything.json()["count"] == 2
    assert everything.json()["orders"][1]["within_delivery_range"] is False


@pytest.mark.asyncio
@pytest.mark.integration
async def test_unverified_agent_cannot_browse(client, orders_app, db_session):
    await _seed(db_session, is_verified=False)

    with override_auth(orders_app, RIDER):
        response = await client.get("/delivery/nearby-orders")
        confirmed = await client.get("/delivery/confirmed-orders")

    assert response.status_code == 403
    assert response.json()["code"] == "FORBIDDEN"
    assert confirmed.status_code == 200


@pytest.mark.asyncio
@pytest.mark.integration
async def test_accept_then_conflict(client, orders_app, db_session):
    """POST /delivery/orders/{id}/accept — second agent is refused."""
    dish, _ = await _seed(db_session)
    db_session.add(DeliveryAgentFactory.create(OTHER_RIDER.user_id))
    order = OrderFactory.create("customer-1", dish)
    db_session.add(order)
    await db_session.commit()

    with override_auth(orders_app, RIDER):
        first = await client.post(f"/delivery/orders/{order.id}/accept")
    with override_auth(orders_app, OTHER_RIDER):
        second = await client.post(f"/delivery/orders/{order.id}/accept")

    assert first.status_code == 200, first.text
    assert first.json()["order"]["status"] == "out_for_delivery"
    assert second.status_code == 409


@pytest.mark.asyncio
@pytest.mark.integration
async def test_reject_twice_is_fine(client, orders_app, db_session):
    dish, _ = await _seed(db_session)
    order = OrderFactory.create("customer-1", dish)
    db_session.add(order)
    await db_session.commit()

    with override_auth(orders_app, RIDER):
        first = await client.post(f"/delivery/orders/{order.id}/reject")
        second = await client.post(f"/delivery/orders/{order.id}/reject")
        nearby = await client.get("/delivery/nearby-orders")

    assert first.status_code == 200
    assert second.status_code == 200
    assert nearby.json()["count"] == 0


@pytest.mark.asyncio
@pytest.mark.integration
async def test_complete_delivery(client, orders_app, db_session):
    dish, _ = await _seed(db_session)
    order = OrderFactory.create("customer-1", dish)
    db_session.add(order)
    await db_session.commit()

    with override_auth(orders_app, RIDER):
        await client.post(f"/delivery/orders/{order.id}/accept")
        response = await client.post(f"/delivery/orders/{order.id}/complete")
        profile = await client.get("/delivery/profile")

    assert response.status_code == 200, response.text
    assert response.json()["order"]["status"] == "delivered"
    stats = profile.json()["stats"]
    assert stats["active_orders"] == 0
    assert stats["completed_orders"] == 1
