"""Tests for ReservationEngine wiring."""
import pytest

from stockhold.app.core.settings import Settings
from stockhold.app.engine import ReservationEngine
from stockhold.app.models.inventory import InventoryLevel
from stockhold.app.services.sql_store import SqlReservationStore
from stockhold.app.services.store import InMemoryReservationStore


PRODUCT = "prod-1"
LOCATION = "loc-1"


def make_settings(**overrides) -> Settings:
    values = {"ENVIRONMENT": "development", "STORE_BACKEND": "memory"}
    values.update(overrides)
    return Settings(_env_file=None, **values)


@pytest.mark.asyncio
async def test_memory_engine_lifecycle(oracle, clock):
    engine = ReservationEngine(oracle, settings=make_settings(RESERVATION_TTL_MINUTES=5), clock=clock)

    async with engine:
        assert isinstance(engine.store, InMemoryReservationStore)
        assert engine.sweeper.is_running
        result = await engine.service.reserve_inventory(PRODUCT, None, LOCATION, 3, "cart-1")
        assert result.success is True
        assert (result.reservation.expires_at - result.reservation.created_at).total_seconds() == 300

    assert not engine.sweeper.is_running
    assert engine.service is None


@pytest.mark.asyncio
async def test_memory_engine_requires_oracle():
    engine = ReservationEngine(settings=make_settings())
    with pytest.raises(ValueError, match="oracle"):
        await engine.start()


@pytest.mark.asyncio
async def test_sql_engine_reads_inventory_levels(clock):
    settings = make_settings(STORE_BACKEND="sql", DATABASE_URL="sqlite+aiosqlite:///:memory:")
    engine = ReservationEngine(settings=settings, clock=clock)

    async with engine:
        assert isinstance(engine.store, SqlReservationStore)
        async with engine.session_factory() as session:
            session.add(InventoryLevel(product_id=PRODUCT, variant_key="", location_id=LOCATION, on_hand=4))
            await session.commit()

        service = engine.service
        first = await service.reserve_inventory(PRODUCT, None, LOCATION, 3, "cart-1")
        second = await service.reserve_inventory(PRODUCT, None, LOCATION, 3, "cart-2")
        assert first.success is True
        assert second.success is False
        assert second.available_quantity == 1
        assert await service.complete_reservation(first.reservation.id) is True
