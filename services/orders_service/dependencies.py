"""FastAPI dependencies for objects kept on the app state."""

from fastapi import Request
from services.orders_service.services.fanout import NotificationFanout
from services.orders_service.services.live import ConnectionDirectory


def get_fanout(request: Request) -> NotificationFanout:
    return request.app.state.fanout


def get_connection_directory(request: Request) -> ConnectionDirectory:
    return request.app.state.directory
