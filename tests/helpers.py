"""Actors and socket doubles shared by the test modules."""

from contextlib import contextmanager

from fastapi import Request

from libs.auth.dependencies import get_current_user
from libs.auth.models import AuthUser

# ---------------------------------------------------------------------------
# Actors
# ---------------------------------------------------------------------------


def make_user(user_id: str = "customer-1", **overrides) -> AuthUser:
    return AuthUser(user_id=user_id, email=f"{user_id}@example.com", **overrides)


def make_admin_user(user_id: str = "admin-1") -> AuthUser:
    return AuthUser(user_id=user_id, email=f"{user_id}@example.com", is_admin=True)


@contextmanager
def override_auth(app, user: AuthUser):
    """Temporarily authenticate every request as ``user``."""
    previous = app.dependency_overrides.get(get_current_user)

    async def _current_user(request: Request) -> AuthUser:
        request.state.user = user
        return user

    app.dependency_overrides[get_current_user] = _current_user
    try:
        yield
    finally:
        if previous is None:
            app.dependency_overrides.pop(get_current_user, None)
        else:
            app.dependency_overrides[get_current_user] = previous


# ---------------------------------------------------------------------------
# Live sockets
# ---------------------------------------------------------------------------


class FakeSocket:
    """Stands in for a WebSocket in the live-connection directory."""

    def __init__(self):
        self.sent: list[dict] = []

    async def send_json(self, message: dict) -> None:
        self.sent.append(message)

    def events(self) -> list[str]:
        return [message["event"] for message in self.sent]


class BrokenSocket:
    async def send_json(self, message: dict) -> None:
        raise ConnectionResetError("socket closed")
