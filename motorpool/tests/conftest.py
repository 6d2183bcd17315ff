"""
Centralized Test Configuration.
"""

import pytest
from typing import Any, Dict, List, Optional, Tuple

from httpx import AsyncClient, ASGITransport
from sqlalchemy import event
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncSession
from sqlalchemy.pool import Pool, StaticPool

from motorpool.app.main import app
from motorpool.app.db.session import get_db, Base
from motorpool.app.models.enums import UserRole
from motorpool.app.services.notification_service import NotificationDispatcher, get_dispatcher
from motorpool.tests.factories import make_driver, make_user, make_vehicle

# Setup In-Memory Test Database
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


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
    engine, class_=AsyncSession, expire_on_commit=False, autoflush=False
)


class FakeMessagingClient:
    """Records pushes instead of calling the messaging API."""
    
    def __init__(self):
        self.sent: List[Tuple[str, List[Dict[str, Any]]]] = []
        self.fail_with: Optional[str] = None
    
    async def send(self, recipient: str, messages: List[Dict[str, Any]]) -> Tuple[bool, Optional[str]]:
        if self.fail_with:
            return False, self.fail_with
        self.sent.append((recipient, messages))
        return True, None
    
    def texts_for(self, recipient: str) -> List[str]:
        return [m["text"] for r, msgs in self.sent if r == recipient for m in msgs]


@pytest.fixture
def messaging_client():
    return FakeMessagingClient()


@pytest.fixture
def test_dispatcher(messaging_client):
    return NotificationDispatcher(session_factory=TestingSessionLocal, client=messaging_client)


@pytest.fixture(autouse=True)
def apply_overrides(test_dispatcher):
    async def override_get_db():
        async with TestingSessionLocal() as session:
            try:
                yield session
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_dispatcher] = lambda: test_dispatcher
    yield
    app.dependency_overrides = {}


@pytest.fixture(autouse=True)
async def setup_database():
    """Create tables before each test function and drop after."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    
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
async def people(db_session):
    """Admin, requester, and three drivers (Alice, Bob, Carol) with messaging ids."""
    alice = await make_driver(db_session, "Alice", 1, external_identity="U-alice")
    bob = await make_driver(db_session, "Bob", 2, external_identity="U-bob")
    carol = await make_driver(db_session, "Carol", 3, external_identity="U-carol")
    admin = await make_user(db_session, "admin", UserRole.ADMIN)
    requester = await make_user(db_session, "requester", UserRole.REQUESTER)
    alice_account = await make_user(db_session, "alice", UserRole.DRIVER, driver_id=alice.id)
    vehicle = await make_vehicle(db_session)
    await db_session.commit()
    return {
        "alice": alice,
        "bob": bob,
        "carol": carol,
        "admin": admin,
        "requester": requester,
        "alice_account": alice_account,
        "vehicle": vehicle,
    }
