"""
Centralized Test Configuration.
"""

import pytest
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from httpx import AsyncClient, ASGITransport
from sqlalchemy import event
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncSession
from sqlalchemy.pool import Pool, StaticPool

from booking_backend.app.main import app
from booking_backend.app.core.config import Settings
from booking_backend.app.core.dependencies import get_booking_service
from booking_backend.app.core.jwt import create_access_token
from booking_backend.app.db.audit_store import SqlAuditStore
from booking_backend.app.db.booking_store import SqlBookingStore
from booking_backend.app.db.session import Base
from booking_backend.app.domain.bookings.booking_service import BookingService
from booking_backend.app.domain.ports import Clock
from booking_backend.app.domain.records import Principal
from booking_backend.app.models.enums import UserRole
from booking_backend.app.services.audit import AuditTrail

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
    engine, class_=AsyncSession, expire_on_commit=False
)

START = datetime(2026, 3, 1, 9, 0, tzinfo=timezone.utc)
SCHEDULED = datetime(2026, 4, 1, 10, 0, tzinfo=timezone.utc)


class ManualClock(Clock):
    """Clock that only moves when told to."""

    def __init__(self, start: datetime = START):
        self.current = start

    def now(self) -> datetime:
        return self.current

    def advance(self, seconds: float = 60) -> None:
        self.current = self.current + timedelta(seconds=seconds)

    def rewind(self, seconds: float) -> None:
        self.current = self.current - timedelta(seconds=seconds)


def make_token(principal: Principal) -> str:
    return create_access_token({"sub": principal.id, "role": principal.role.value})


def auth_headers(principal: Principal) -> dict:
    return {"Authorization": f"Bearer {make_token(principal)}"}


@pytest.fixture(autouse=True)
async def setup_database():
    """Create tables before each test function and drop after."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


@pytest.fixture
def clock():
    return ManualClock()


@pytest.fixture
def test_settings():
    return Settings(
        storage_backend="sql",
        persistence_timeout_seconds=2.0,
        audit_timeout_seconds=1.0,
        audit_denials=True,
        denial_audit_mode="best_effort",
        default_page_size=20,
        max_page_size=100,
    )


@pytest.fixture
def booking_store():
    return SqlBookingStore(TestingSessionLocal)


@pytest.fixture
def audit_store():
    return SqlAuditStore(TestingSessionLocal)


@pytest.fixture
def audit_trail(audit_store, clock, test_settings):
    return AuditTrail(audit_store, clock, timeout_seconds=test_settings.audit_timeout_seconds)


@pytest.fixture
def service(booking_store, audit_trail, clock, test_settings):
    return BookingService(
        bookings=booking_store,
        audit_trail=audit_trail,
        clock=clock,
        settings=test_settings,
    )


# Principals
@pytest.fixture
def customer():
    return Principal(id="user-1", role=UserRole.USER)


@pytest.fixture
def other_customer():
    return Principal(id="user-2", role=UserRole.USER)


@pytest.fixture
def agent():
    return Principal(id="agent-1", role=UserRole.AGENT)


@pytest.fixture
def other_agent():
    return Principal(id="agent-2", role=UserRole.AGENT)


@pytest.fixture
def admin():
    return Principal(id="admin-1", role=UserRole.ADMIN)


@pytest.fixture
def super_admin():
    return Principal(id="root-1", role=UserRole.SUPER_ADMIN)


@pytest.fixture
async def pending_booking(service, customer, clock):
    """A PENDING booking of customer user-1, assigned to agent-1."""
    booking = await service.create_booking(
        customer,
        user_id="user-1",
        agent_id="agent-1",
        service_id="svc-1",
        scheduled_date=SCHEDULED,
        amount=Decimal("150.00"),
        notes="Ring the bell",
    )
    clock.advance()
    return booking


@pytest.fixture
async def client(service):
    """Async client for testing, wired to the test BookingService."""
    app.dependency_overrides[get_booking_service] = lambda: service
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
    app.dependency_overrides = {}


@pytest.fixture
def auth():
    """Build bearer headers for a principal."""
    return auth_headers


@pytest.fixture
def scheduled():
    return SCHEDULED
