from typing import AsyncGenerator

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from libs.db.base import Base

# Import all models so metadata includes every table
from services.orders_service import models as _order_models  # noqa: F401
from services.orders_service.services.fanout import NotificationFanout
from services.orders_service.services.live import InMemoryConnectionDirectory
from tests.helpers import make_user, override_auth

# ---------------------------------------------------------------------------
# Database
# ---------------------------------------------------------------------------


@pytest_asyncio.fixture
async def test_engine(tmp_path):
    """
    A fresh SQLite file per test. A file (not :memory:) so that separate
    sessions get separate connections, as they would against Postgres.
    """
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'orders.db'}",
        future=True,
        connect_args={"timeout": 30},
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_factory(test_engine) -> async_sessionmaker:
    return async_sessionmaker(
        bind=test_engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


@pytest_asyncio.fixture
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session


@pytest.fixture
def directory() -> InMemoryConnectionDirectory:
    return InMemoryConnectionDirectory()


@pytest.fixture
def fanout(session_factory, directory) -> NotificationFanout:
    return NotificationFanout(session_factory, directory)


# ---------------------------------------------------------------------------
# HTTP
# ---------------------------------------------------------------------------


@pytest.fixture
def orders_app(session_factory, fanout, directory):
    """The orders app wired to the per-test database and fanout."""
    from libs.common.rate_limit import limiter
    from libs.db.session import get_async_db
    from services.orders_service.app.main import app

    async def _get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_async_db] = _get_db
    app.state.fanout = fanout
    app.state.directory = directory
    limiter.reset()

    yield app

    app.dependency_overrides.clear()


@pytest_asyncio.fixture
async def client(orders_app) -> AsyncGenerator[AsyncClient, None]:
    """
    Yield an AsyncClient authenticated as the default customer.
    Use ``override_auth`` to act as someone else.
    """
    with override_auth(orders_app, make_user()):
        async with AsyncClient(
            transport=ASGITransport(app=orders_app), base_url="http://test"
        ) as ac:
            yield ac
