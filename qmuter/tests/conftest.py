"""
Centralized Test Configuration.
"""

import pytest
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncSession
from sqlalchemy.pool import StaticPool

from qmuter.app.main import app
from qmuter.app.db.session import get_db, Base
from qmuter.app.core.redis_client import get_redis
from qmuter.app.core.jwt import create_access_token
from qmuter.app.schemas.tracking import GeoLocation
from qmuter.app.services.live_tracking_service import LiveTrackingService

# Setup In-Memory Test Database
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

engine = create_async_engine(
    TEST_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)

TestingSessionLocal = async_sessionmaker(
    engine, class_=AsyncSession, expire_on_commit=False
)

# Auckland CBD pickup used across tests
PICKUP = GeoLocation(address="Queen Street, Auckland CBD", lat=-36.85, lng=174.76)
DROPOFF = GeoLocation(address="Newmarket, Auckland", lat=-36.90, lng=174.80)


# Mock Redis for reliability in CI/CD
class MockRedis:
    def __init__(self):
        self.store = {}
        self.ttls = {}
        self._closed = False
    
    async def ping(self):
        return not self._closed
    
    async def get(self, key):
        return self.store.get(key)
        
    async def set(self, key, value, ex=None):
        self.store[key] = value
        return True
    
    async def incr(self, key):
        self.store[key] = int(self.store.get(key, 0)) + 1
        return self.store[key]
    
    async def expire(self, key, seconds):
        self.ttls[key] = seconds
        return key in self.store
    
    async def delete(self, key):
        if key in self.store:
            del self.store[key]
            return 1
        return 0
        
    async def flushdb(self):
        self.store = {}
        self.ttls = {}
        
    async def aclose(self):
        self._closed = True
        self.store = {}


# Redis Fixture (Session Scope)
@pytest.fixture(scope="session")
def redis_client_session():
    return MockRedis()


@pytest.fixture(scope="session", autouse=True)
def apply_overrides(redis_client_session):
    """Apply dependency overrides once for the session."""
    
    async def override_get_db():
        async with TestingSessionLocal() as session:
            yield session

    async def override_get_redis():
        return redis_client_session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_redis] = override_get_redis
    yield
    
    app.dependency_overrides = {}


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


@pytest.fixture
def session_factory():
    return TestingSessionLocal


@pytest.fixture
def service():
    """Fresh engine instance with its own lock registry."""
    return LiveTrackingService()


@pytest.fixture
def pickup():
    return PICKUP


@pytest.fixture
def dropoff():
    return DROPOFF


@pytest.fixture
def auth_headers():
    """Build a Bearer header for a user id."""
    def _headers(user_id: str) -> dict:
        token = create_access_token(data={"sub": user_id, "user_id": user_id})
        return {"Authorization": f"Bearer {token}"}
    return _headers
