"""FastAPI application for the Orders Service."""

from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from libs.common.config import get_settings
from libs.common.error_handler import add_exception_handlers
from libs.common.logging import get_logger
from libs.common.middleware import add_observability_middleware
from libs.common.rate_limit import limiter, rate_limit_exceeded_handler
from libs.db.config import AsyncSessionLocal, engine
from services.orders_service.routers import (
    admin_router,
    delivery_router,
    notifications_router,
    orders_router,
    pickup_router,
)
from services.orders_service.services.fanout import NotificationFanout
from services.orders_service.services.live import InMemoryConnectionDirectory
from slowapi.errors import RateLimitExceeded

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Orders service starting")
    # Live sockets and the fanout that writes to them
    app.state.directory = InMemoryConnectionDirectory()
    app.state.fanout = NotificationFanout(AsyncSessionLocal, app.state.directory)
    yield
    del app.state.fanout
    del app.state.directory
    await engine.dispose()
    logger.info("Orders service stopped")


def create_app() -> FastAPI:
    """Create and configure the Orders Service FastAPI app."""
    settings = get_settings()
    app = FastAPI(
        title="Orders Service",
        version="0.1.0",
        description="Order lifecycle and delivery dispatch: orders, pickup handover, "
        "delivery agents and order notifications.",
        lifespan=lifespan,
    )

    # Add rate limiter state to app
    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, rate_limit_exceeded_handler)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.ALLOWED_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Add observability (structured logging + request tracing)
    add_observability_middleware(app)

    # Add global exception handlers for consistent error responses
    add_exception_handlers(app)

    @app.get("/health", tags=["system"])
    async def health_check() -> dict[str, str]:
        """Health check endpoint."""
        return {"status": "ok", "service": "orders"}

    # Pickup routes first so /orders/pickup/* never reaches /orders/{order_id}
    app.include_router(pickup_router, prefix="/orders")
    app.include_router(orders_router, prefix="/orders")
    app.include_router(delivery_router, prefix="/delivery")
    app.include_router(notifications_router, prefix="/notifications")
    app.include_router(admin_router, prefix="/admin")

    return app


app = create_app()
