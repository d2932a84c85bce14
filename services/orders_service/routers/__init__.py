"""Orders service routers package."""

from services.orders_service.routers.admin import router as admin_router
from services.orders_service.routers.delivery import router as delivery_router
from services.orders_service.routers.notifications import (
    router as notifications_router,
)
from services.orders_service.routers.orders import router as orders_router
from services.orders_service.routers.pickup import router as pickup_router

__all__ = [
    "admin_router",
    "delivery_router",
    "notifications_router",
    "orders_router",
    "pickup_router",
]
