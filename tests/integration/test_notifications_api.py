"""Integration tests for the notification inbox and live socket."""

import time

import pytest
from jose import jwt
from libs.common.config import get_settings
from starlette.testclient import TestClient
from starlette.websockets import WebSocketDisconnect
from tests.factories import ProductFactory, UserFactory
from tests.helpers import make_user, override_auth


def _token(user_id: str) -> str:
    settings = get_settings()
    return jwt.encode(
        {"sub": user_id, "email": f"{user_id}@example.com"},
        settings.AUTH_JWT_SECRET,
        algorithm=settings.AUTH_JWT_ALGORITHM,
    )


@pytest.mark.asyncio
@pytest.mark.integration
async def test_seller_inbox_after_order(client, orders_app, db_session):
    """Placing an order lands in the seller's inbox; POST /read clears it."""
    cook = UserFactory.create(id="cook-1")
    dish = ProductFactory.create(cook.id)
    db_session.add_all([cook, UserFactory.create(id="customer-1"), dish])
    await db_session.commit()

    placed = await client.post(
        "/orders",
        json={
            "items": [{"product_id": str(dish.id), "quantity": 1}],
            "delivery_address": "22 Harbour Road",
            "contact_number": "+15551234567",
        },
    )
    assert placed.status_code == 201, placed.text

    with override_auth(orders_app, make_user("cook-1")):
        inbox = await client.get("/notifications")
        marked = await client.post("/notifications/read")
        after = await client.get("/notifications")

    assert inbox.status_code == 200
    data = inbox.json()
    assert data["unread_count"] == 1
    notification = data["notifications"][0]
    assert notification["type"] == "order"
    assert notification["order_id"] == placed.json()["order"]["id"]

    assert marked.json()["message"] == "1 notifications marked as read"
    assert after.json()["unread_count"] == 0


@pytest.mark.integration
def test_socket_rejects_bad_token():
    from services.orders_service.app.main import create_app

    app = create_app()
    with TestClient(app) as http:
        with pytest.raises(WebSocketDisconnect) as exc_info:
            with http.websocket_connect("/notifications/ws?token=not-a-token") as ws:
                ws.receive_text()

    assert exc_info.value.code == 1008


@pytest.mark.integration
def test_socket_registers_and_unregisters():
    from services.orders_service.app.main import create_app

    app = create_app()
    with TestClient(app) as http:
        directory = app.state.directory
        with http.websocket_connect(f"/notifications/ws?token={_token('customer-1')}"):
            for _ in range(100):
                if directory.lookup("customer-1") is not None:
                    break
                time.sleep(0.01)
            assert directory.lookup("customer-1") is not None

        for _ in range(100):
            if directory.lookup("customer-1") is None:
                break
            time.sleep(0.01)

    assert directory.lookup("customer-1") is None


@pytest.mark.integration
def test_live_directory_lives_with_the_app():
    """The directory and fanout exist only while the app is running."""
    from services.orders_service.app.main import create_app
    from services.orders_service.services.fanout import NotificationFanout
    from services.orders_service.services.live import InMemoryConnectionDirectory

    app = create_app()
    assert not hasattr(app.state, "directory")

    with TestClient(app):
        assert isinstance(app.state.directory, InMemoryConnectionDirectory)
        assert isinstance(app.state.fanout, NotificationFanout)

    assert not hasattr(app.state, "directory")
    assert not hasattr(app.state, "fanout")
