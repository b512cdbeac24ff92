import contextlib
import uuid
from decimal import Decimal
from typing import AsyncGenerator, Optional

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from libs.auth.dependencies import get_current_user
from libs.auth.models import AuthUser
from libs.common.idempotency_cache import get_idempotency_cache
from libs.common.notifications import NotificationEvent, get_notifier
from libs.db.base import Base
from libs.db.session import get_async_db
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

# Import all models so metadata includes every table
from services.payments_service import models as _payment_models  # noqa: F401
from services.store_service import models as _store_models  # noqa: F401
from tests.factories import PartFactory, VendorFactory

# ---------------------------------------------------------------------------
# Database
# ---------------------------------------------------------------------------


@pytest_asyncio.fixture
async def test_engine(tmp_path):
    """
    A fresh SQLite file per test. A file (not :memory:) lets several
    sessions share the database, which the concurrency tests rely on.
    """
    db_path = tmp_path / "market.db"
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{db_path}", connect_args={"timeout": 10}
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_factory(test_engine):
    return async_sessionmaker(
        bind=test_engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


@pytest_asyncio.fixture
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    session = session_factory()
    try:
        yield session
    finally:
        await session.close()


# ---------------------------------------------------------------------------
# Collaborator fakes
# ---------------------------------------------------------------------------


class FakeCache:
    """In-memory IdempotencyCache that records writes."""

    def __init__(self):
        self.store: dict[str, dict] = {}
        self.writes: list[tuple[str, int]] = []
        self.reads: list[str] = []

    async def get(self, key):
        self.reads.append(key)
        return self.store.get(key)

    async def set(self, key, value, ttl_seconds):
        self.store[key] = value
        self.writes.append((key, ttl_seconds))
        return True

    async def delete(self, key):
        return self.store.pop(key, None) is not None


class BrokenCache:
    """Cache whose backend is down."""

    async def get(self, key):
        raise ConnectionError("redis unavailable")

    async def set(self, key, value, ttl_seconds):
        raise ConnectionError("redis unavailable")

    async def delete(self, key):
        raise ConnectionError("redis unavailable")


class RecordingNotifier:
    def __init__(self):
        self.events: list[NotificationEvent] = []

    def send(self, event: NotificationEvent) -> None:
        self.events.append(event)

    @property
    def kinds(self) -> list[str]:
        return [event.kind.value for event in self.events]


class FailingNotifier:
    def __init__(self):
        self.calls = 0

    def send(self, event: NotificationEvent) -> None:
        self.calls += 1
        raise RuntimeError("notification backend down")


@pytest.fixture
def fake_cache() -> FakeCache:
    return FakeCache()


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


# ---------------------------------------------------------------------------
# Seed helpers
# ---------------------------------------------------------------------------


async def seed_part(
    db: AsyncSession,
    *,
    stock: int = 10,
    price: str = "25.00",
    title: Optional[str] = None,
    vendor_id: Optional[uuid.UUID] = None,
):
    """Insert a part (and a vendor if none is given) and return it."""
    if vendor_id is None:
        vendor = VendorFactory.create()
        db.add(vendor)
        vendor_id = vendor.id
    overrides = {"stock": stock, "price": Decimal(price)}
    if title:
        overrides["title"] = title
    part = PartFactory.create(vendor_id=vendor_id, **overrides)
    db.add(part)
    await db.commit()
    # Detached, so a later rollback in the same session cannot expire it
    db.expunge(part)
    return part


# ---------------------------------------------------------------------------
# Auth
# ---------------------------------------------------------------------------


def make_member_user(user_id: str = "user-1", **overrides) -> AuthUser:
    defaults = {"user_id": user_id, "email": f"{user_id}@example.com", "role": "member"}
    defaults.update(overrides)
    return AuthUser(**defaults)


def make_admin_user(user_id: str = "admin-1") -> AuthUser:
    return make_member_user(user_id=user_id, role="admin")


@contextlib.contextmanager
def override_auth(app, user: AuthUser):
    """Temporarily authenticate every request to ``app`` as ``user``."""
    previous = app.dependency_overrides.get(get_current_user)
    app.dependency_overrides[get_current_user] = lambda: user
    try:
        yield
    finally:
        if previous is None:
            app.dependency_overrides.pop(get_current_user, None)
        else:
            app.dependency_overrides[get_current_user] = previous


# ---------------------------------------------------------------------------
# HTTP clients
# ---------------------------------------------------------------------------


def _wire_app(app, session_factory, notifier, cache=None):
    async def _get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_async_db] = _get_db
    app.dependency_overrides[get_notifier] = lambda: notifier
    app.dependency_overrides[get_current_user] = lambda: make_member_user()
    if cache is not None:
        app.dependency_overrides[get_idempotency_cache] = lambda: cache


@pytest_asyncio.fixture
async def store_client(session_factory, notifier) -> AsyncGenerator[AsyncClient, None]:
    """Store service client authenticated as ``user-1`` by default."""
    from services.store_service.app.main import app

    _wire_app(app, session_factory, notifier)
    async with AsyncClient(
        transport=ASGITransport(app=app), base_url="http://test"
    ) as ac:
        yield ac
    app.dependency_overrides.clear()


@pytest_asyncio.fixture
async def payments_client(
    session_factory, notifier, fake_cache
) -> AsyncGenerator[AsyncClient, None]:
    """Payments service client authenticated as ``user-1`` by default."""
    from services.payments_service.app.main import app

    _wire_app(app, session_factory, notifier, cache=fake_cache)
    async with AsyncClient(
        transport=ASGITransport(app=app), base_url="http://test"
    ) as ac:
        yield ac
    app.dependency_overrides.clear()
