"""
Test fixtures for the reservation engine.

Provides:
- A controllable clock for expiry tests
- A dict-backed inventory oracle
- A fresh in-memory SQLite database per test (aiosqlite + StaticPool)
- `store` / `service` fixtures parametrized over the memory and sql stores
"""
# IMPORTANT: Set environment variables BEFORE any other imports
import os

os.environ.setdefault("ENVIRONMENT", "development")
os.environ.setdefault("STORE_BACKEND", "memory")

import itertools
from datetime import datetime, timedelta, timezone
from typing import AsyncGenerator, Optional

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from stockhold.app.core.base import Base
import stockhold.app.models.inventory  # noqa: F401  register InventoryLevel with Base.metadata
import stockhold.app.models.reservation  # noqa: F401
from stockhold.app.schemas import Reservation, ReservationStatus
from stockhold.app.services.inventory import StaticInventoryOracle
from stockhold.app.services.reservations import ReservationService
from stockhold.app.services.sql_store import SqlReservationStore
from stockhold.app.services.store import InMemoryReservationStore


# Test database URL - SQLite in-memory
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

START = datetime(2026, 1, 15, 12, 0, tzinfo=timezone.utc)

PRODUCT = "prod-1"
LOCATION = "loc-1"


class FrozenClock:
    """Clock that only moves when told to."""

    def __init__(self, start: datetime = START):
        self.current = start

    def now(self) -> datetime:
        return self.current

    def advance(self, **kwargs) -> None:
        self.current += timedelta(**kwargs)


class FailingOracle:
    """Oracle whose backing system is down."""

    async def get_on_hand_quantity(self, product_id, variant_id, location_id):
        raise ConnectionError("inventory database unreachable")


def sequential_ids(prefix: str = "res"):
    counter = itertools.count(1)
    return lambda: f"{prefix}-{next(counter)}"


@pytest.fixture
def clock() -> FrozenClock:
    return FrozenClock()


@pytest.fixture
def oracle() -> StaticInventoryOracle:
    """On-hand 10 for (prod-1, no variant, loc-1)."""
    oracle = StaticInventoryOracle()
    oracle.set_on_hand(PRODUCT, None, LOCATION, 10)
    return oracle


@pytest.fixture
async def session_factory() -> AsyncGenerator[async_sessionmaker, None]:
    """
    Fresh in-memory database for each test.
    The engine lives inside the test's event loop and is disposed afterwards.
    """
    engine = create_async_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        echo=False,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield async_sessionmaker(bind=engine, class_=AsyncSession, expire_on_commit=False)

    await engine.dispose()


@pytest.fixture(params=["memory", "sql"])
def store(request, session_factory):
    """Both store implementations must honor the same contract."""
    if request.param == "memory":
        return InMemoryReservationStore()
    return SqlReservationStore(session_factory)


@pytest.fixture
def service(store, oracle, clock) -> ReservationService:
    return ReservationService(store, oracle, clock=clock, id_generator=sequential_ids())


@pytest.fixture
def make_reservation():
    """Factory for Reservation objects with sensible defaults."""

    def _make(
        id: str = "res-1",
        quantity: int = 2,
        session_id: str = "cart-1",
        product_id: str = PRODUCT,
        variant_id: Optional[str] = None,
        location_id: str = LOCATION,
        created_at: datetime = START,
        minutes: int = 15,
        status: ReservationStatus = ReservationStatus.ACTIVE,
    ) -> Reservation:
        return Reservation(
            id=id,
            product_id=product_id,
            variant_id=variant_id,
            location_id=location_id,
            quantity=quantity,
            session_id=session_id,
            created_at=created_at,
            expires_at=created_at + timedelta(minutes=minutes),
            status=status,
        )

    return _make


@pytest.fixture
def failing_oracle() -> FailingOracle:
    return FailingOracle()


@pytest.fixture
def id_generator():
    return sequential_ids()
