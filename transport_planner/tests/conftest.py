"""
Centralized Test Configuration.
"""

import pytest
from datetime import date, datetime, time
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncSession
from sqlalchemy.pool import StaticPool

from transport_planner.app.main import app
from transport_planner.app.db.session import get_db, Base
from transport_planner.app.core.jwt import token_for_user
from transport_planner.app.core.redis_client import get_redis
import transport_planner.app.core.redis_client as redis_client_module
from transport_planner.app.models.user import User
from transport_planner.app.models.enums import UserRole
from transport_planner.app.models.driver import Driver
from transport_planner.app.models.fleet_vehicle import Vehicle
from transport_planner.app.models.fleet_route import Route
from transport_planner.app.models.route_template import RouteTemplate
from transport_planner.app.models.route_responsibility import RouteResponsibility
from transport_planner.app.models.schedule_enums import TemplateStatus
from transport_planner.app.models.team_enums import ResponsibilityRole

# Setup In-Memory Test Database
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

# Event handler to enable foreign keys for SQLite
from sqlalchemy import event
from sqlalchemy.pool import Pool

@event.listens_for(Pool, "connect")
def set_sqlite_pragma(dbapi_conn, connection_record):
    """Enable foreign key constraints for SQLite."""
    if 'sqlite' in str(type(dbapi_conn)):
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

engine = create_async_engine(
    TEST_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)

TestingSessionLocal = async_sessionmaker(
    engine, class_=AsyncSession, expire_on_commit=False
)

# Mock Redis for reliability in CI/CD
class MockRedis:
    def __init__(self):
        self.store = {}
        self._closed = False

    async def ping(self):
        if self._closed:
            return False
        return True

    async def get(self, key):
        if self._closed:
            return None
        return self.store.get(key)

    async def set(self, key, value, ex=None):
        if self._closed:
            return False
        self.store[key] = value
        return True

    async def incr(self, key):
        value = int(self.store.get(key, 0)) + 1
        self.store[key] = str(value)
        return value

    async def delete(self, key):
        if self._closed:
            return 0
        if key in self.store:
            del self.store[key]
            return 1
        return 0

    async def flushdb(self):
        if not self._closed:
            self.store = {}

    async def aclose(self):
        self._closed = True
        self.store = {}

# Redis Fixture (Session Scope)
@pytest.fixture(scope="session")
def redis_client_session():
    return MockRedis()

@pytest.fixture(scope="session", autouse=True)
def apply_overrides(redis_client_session):
    """Apply overrides once for the session.
    Global override is safer here than per-test override to avoid app state flux.
    """

    # Patch the global redis client used by the occurrence cache
    original_client = redis_client_module.redis_client
    redis_client_module.redis_client = redis_client_session

    async def override_get_db():
        async with TestingSessionLocal() as session:
            yield session

    async def override_get_redis():
        return redis_client_session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_redis] = override_get_redis
    yield

    # Restore and clear
    app.dependency_overrides = {}
    redis_client_module.redis_client = original_client

@pytest.fixture(autouse=True)
async def setup_database(redis_client_session):
    """Create tables before each test function and drop after."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    await redis_client_session.flushdb()

    yield

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

@pytest.fixture
async def client():
    """Async client for testing."""
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac

# Shared session for fixture data creation
@pytest.fixture
async def db_session():
    async with TestingSessionLocal() as session:
        yield session

# Second session for simulating a concurrent writer
@pytest.fixture
async def other_session():
    async with TestingSessionLocal() as session:
        yield session


# --- Domain fixtures ---

@pytest.fixture
async def users(db_session):
    """One user per role plus a second planner."""
    created = {
        "admin": User(email="admin@test.local", username="admin", role=UserRole.ADMIN),
        "planner": User(email="planner@test.local", username="planner", role=UserRole.PLANNER),
        "planner2": User(email="planner2@test.local", username="planner2", role=UserRole.PLANNER),
        "viewer": User(email="viewer@test.local", username="viewer", role=UserRole.VIEWER),
    }
    db_session.add_all(created.values())
    await db_session.commit()
    for user in created.values():
        await db_session.refresh(user)
    return created


@pytest.fixture
def auth_headers(users):
    def _headers(name: str) -> dict:
        return {"Authorization": f"Bearer {token_for_user(users[name])}"}
    return _headers


@pytest.fixture
def actor(users):
    """Token-shaped actor for service calls."""
    planner = users["planner"]
    return {"user_id": planner.id, "sub": planner.username, "email": planner.email, "role": planner.role.value}


@pytest.fixture
def make_driver(db_session):
    async def _make(name="Driver", **kwargs):
        driver = Driver(name=name, **kwargs)
        db_session.add(driver)
        await db_session.commit()
        await db_session.refresh(driver)
        return driver
    return _make


@pytest.fixture
def make_vehicle(db_session):
    counter = {"n": 0}

    async def _make(**kwargs):
        counter["n"] += 1
        vehicle = Vehicle(plate_number=kwargs.pop("plate_number", f"TEST-{counter['n']:03d}"), **kwargs)
        db_session.add(vehicle)
        await db_session.commit()
        await db_session.refresh(vehicle)
        return vehicle
    return _make


@pytest.fixture
def make_route(db_session):
    async def _make(route_code: str, **kwargs):
        kwargs.setdefault("name", f"Route {route_code}")
        route = Route(route_code=route_code, **kwargs)
        db_session.add(route)
        await db_session.commit()
        await db_session.refresh(route)
        return route
    return _make


@pytest.fixture
def make_template(db_session):
    async def _make(route, **kwargs):
        kwargs.setdefault("schedule_name", f"{route.route_code} daily")
        kwargs.setdefault("days_of_week", [1, 2, 3, 4, 5, 6, 7])
        kwargs.setdefault("start_date", date(2025, 1, 1))
        kwargs.setdefault("status", TemplateStatus.CONFIRMED)
        kwargs.setdefault("standby_time", time(7, 30))
        kwargs.setdefault("departure_time", time(8, 0))
        template = RouteTemplate(route_id=route.id, **kwargs)
        db_session.add(template)
        await db_session.commit()
        await db_session.refresh(template)
        return template
    return _make


@pytest.fixture
def make_responsibility(db_session):
    async def _make(route, user, role=ResponsibilityRole.PRIMARY, is_active=True):
        grant = RouteResponsibility(
            route_id=route.id, user_id=user.id, role=role,
            assigned_at=datetime(2025, 1, 1), is_active=is_active,
        )
        db_session.add(grant)
        await db_session.commit()
        await db_session.refresh(grant)
        return grant
    return _make
