"""
Pytest fixtures for the test database, engine collaborators and HTTP client.

Each test gets a fresh SQLite database file, so the suite needs neither
PostgreSQL nor Redis. Tier lookup and push delivery are replaced with
in-memory fakes injected through constructors.
"""

import os

# Must be set before app modules read settings
os.environ["DATABASE_URL"] = "sqlite+aiosqlite://"
os.environ["REDIS_ENABLED"] = "false"
os.environ["SWEEP_ENABLED"] = "false"
os.environ["PUSH_ENABLED"] = "false"
os.environ["EVENT_STREAM_ENABLED"] = "false"
os.environ["INTERNAL_API_TOKEN"] = ""

from datetime import date, datetime, timezone
from typing import AsyncGenerator, Optional

import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker

from app.core.config import Settings
from app.db.base import Base
from app.db.session import get_db
from app.main import app
from app.models import Booking, WaitlistEntry
from app.schemas.booking import BookingSnapshot, BookingUpdateEvent
from app.services.allocation_service import WaitlistAllocator
from app.services.engine_factory import get_allocator, get_sweeper
from app.services.interfaces.notification_transport import NotificationTransport
from app.services.interfaces.tier_lookup import TIER_PRIORITY
from app.services.notification_service import NotificationDispatcher
from app.services.sweeper_service import ExpirationSweeper
from app.services.tier_service import StaticTierLookup

SLOT_RESOURCE = "court-1"
SLOT_DATE = date(2024, 2, 15)


class RecordingTransport(NotificationTransport):
    """Collects messages instead of delivering them; can fail for chosen users."""

    def __init__(self, fail_for: Optional[set] = None):
        self.sent: list[dict] = []
        self.fail_for = fail_for or set()

    async def send_to_user(self, user_id, title, body, data):
        if user_id in self.fail_for:
            raise RuntimeError(f"push gateway rejected {user_id}")
        self.sent.append({"user_id": user_id, "title": title, "body": body, "data": data})

    def recipients(self, message_type: str) -> list[str]:
        return [m["user_id"] for m in self.sent if m["data"]["type"] == message_type]


async def no_sleep(_delay: float) -> None:
    return None


def at(hour: int, minute: int = 0) -> datetime:
    return datetime(2024, 2, 10, hour, minute, tzinfo=timezone.utc)


@pytest.fixture
def settings() -> Settings:
    return Settings(
        WAITLIST_CANDIDATE_LIMIT=20,
        ALLOCATION_MAX_ATTEMPTS=3,
        ALLOCATION_BACKOFF_BASE_SECONDS=0.0,
        ALLOCATION_BACKOFF_MAX_SECONDS=0.0,
        SWEEP_PAGE_SIZE=100,
        REDIS_ENABLED=False,
    )


@pytest_asyncio.fixture(scope="function")
async def session_factory(tmp_path) -> AsyncGenerator[async_sessionmaker[AsyncSession], None]:
    """Create tables in a throwaway database file, yield a session factory, dispose."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'waitlist.db'}", echo=False)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    await engine.dispose()


@pytest.fixture
def transport() -> RecordingTransport:
    return RecordingTransport()


@pytest.fixture
def make_allocator(session_factory, transport, settings):
    def _make(tier_lookup=None, **kwargs) -> WaitlistAllocator:
        return WaitlistAllocator(
            session_factory,
            tier_lookup or StaticTierLookup({}),
            NotificationDispatcher(transport),
            settings=kwargs.pop("settings", settings),
            sleep=kwargs.pop("sleep", no_sleep),
            **kwargs,
        )
    return _make


@pytest.fixture
def sweeper(session_factory, settings) -> ExpirationSweeper:
    return ExpirationSweeper(session_factory, settings=settings)


async def add_entry(
    session_factory,
    user_id: str,
    created_at: datetime,
    *,
    resource_id: str = SLOT_RESOURCE,
    slot_date: date = SLOT_DATE,
    status: str = "waiting",
) -> WaitlistEntry:
    entry = WaitlistEntry(
        user_id=user_id,
        user_display_name=user_id.upper(),
        resource_id=resource_id,
        date=slot_date,
        status=status,
        created_at=created_at,
        updated_at=created_at,
    )
    async with session_factory() as session:
        session.add(entry)
        await session.commit()
    return entry


async def add_booking(
    session_factory,
    user_id: str,
    *,
    status: str = "confirmed",
    origin: str = "direct",
    start_time: str = "10:00",
    end_time: str = "11:00",
) -> Booking:
    booking = Booking(
        resource_id=SLOT_RESOURCE,
        sub_resource_id="court-1a",
        date=SLOT_DATE,
        start_time=start_time,
        end_time=end_time,
        user_id=user_id,
        user_display_name=user_id.upper(),
        status=status,
        payment_status="paid",
        origin=origin,
    )
    async with session_factory() as session:
        session.add(booking)
        await session.commit()
    return booking


def cancellation_event(booking: Booking, before_status: str = "confirmed") -> BookingUpdateEvent:
    after = BookingSnapshot.model_validate(booking)
    after = after.model_copy(update={"status": "cancelled"})
    before = after.model_copy(update={"status": before_status})
    return BookingUpdateEvent(booking_id=booking.id, before=before, after=after)


@pytest_asyncio.fixture
async def cancelled_booking(session_factory) -> Booking:
    """The 10:00-11:00 booking on court-1 that was just cancelled."""
    return await add_booking(session_factory, "original-holder", status="cancelled")


@pytest_asyncio.fixture
async def scenario_entries(session_factory) -> dict:
    """S1 (standard, 09:00), P1 (priority, 10:00), P2 (priority, 10:05)."""
    return {
        "s1": await add_entry(session_factory, "s1", at(9, 0)),
        "p1": await add_entry(session_factory, "p1", at(10, 0)),
        "p2": await add_entry(session_factory, "p2", at(10, 5)),
    }


@pytest.fixture
def scenario_tiers() -> StaticTierLookup:
    return StaticTierLookup({"p1": TIER_PRIORITY, "p2": TIER_PRIORITY})


@pytest_asyncio.fixture(scope="function")
async def client(session_factory, make_allocator, scenario_tiers, sweeper) -> AsyncGenerator[AsyncClient, None]:
    """HTTP client wired to the test database and fakes."""

    async def override_get_db():
        async with session_factory() as session:
            yield session
            await session.commit()

    allocator = make_allocator(scenario_tiers)
    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_allocator] = lambda: allocator
    app.dependency_overrides[get_sweeper] = lambda: sweeper

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()
