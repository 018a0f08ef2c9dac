"""
Shared test configuration and fixtures.

Every test gets its own SQLite database (via aiosqlite) with foreign keys on,
so reminder cascades behave as they do on Postgres.
"""

import os

os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("JWT_SECRET_KEY", "test-secret")
os.environ.setdefault("APP_TIMEZONE", "UTC")

from datetime import date

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy import event
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from vaxtracker.auth import AuthSession, SessionBridge, UserPrincipal, create_token, hash_password
from vaxtracker.database import Base, get_db
from vaxtracker.main import app
from vaxtracker.models import Profile
from vaxtracker.services.dashboard import DashboardViewModel
from vaxtracker.services.notifications import Notifier
from vaxtracker.services.record_store import RecordStore

TODAY = date(2024, 6, 1)


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture
async def engine(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'vaxtracker.db'}", poolclass=NullPool)

    @event.listens_for(engine.sync_engine, "connect")
    def _enable_foreign_keys(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, expire_on_commit=False)


@pytest.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


PASSWORD = "correct-horse"


async def add_profile(db, email: str, role: str = "user", full_name: str = "") -> UserPrincipal:
    profile = Profile(email=email, full_name=full_name, role=role, password_hash=hash_password(PASSWORD))
    db.add(profile)
    await db.commit()
    return UserPrincipal(id=profile.id, email=email, display_name=full_name, role=role)


@pytest.fixture
async def admin(db):
    return await add_profile(db, "admin@example.com", role="admin", full_name="Ada Admin")


@pytest.fixture
async def user(db):
    return await add_profile(db, "jane@example.com", full_name="Jane Doe")


@pytest.fixture
async def other_user(db):
    return await add_profile(db, "sam@example.com", full_name="Sam Smith")


def make_dashboard(db, principal=None, today=TODAY) -> DashboardViewModel:
    """View-model wired to the test database, signed in as ``principal``."""
    session = SessionBridge(AuthSession(access_token="test", user=principal)) if principal else SessionBridge()
    return DashboardViewModel(
        store_factory=lambda p: RecordStore(db, p),
        session=session,
        notifier=Notifier(),
        today=lambda: today,
    )


def auth_headers(principal: UserPrincipal) -> dict:
    return {"Authorization": f"Bearer {create_token(principal)}"}


@pytest.fixture
async def client(session_factory):
    """HTTP client against the app, with get_db bound to the test database."""
    async def override_get_db():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = override_get_db
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()
