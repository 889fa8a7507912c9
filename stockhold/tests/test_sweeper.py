"""Tests for the periodic expiry sweeper."""
import asyncio

import pytest

from stockhold.app.schemas import ReservationStatus
from stockhold.app.services.reservations import ReservationService
from stockhold.app.services.store import InMemoryReservationStore
from stockhold.app.services.sweeper import ReservationSweeper


PRODUCT = "prod-1"
LOCATION = "loc-1"


class FlakyService:
    """Stands in for ReservationService: first sweep hits a dead database."""

    def __init__(self):
        self.calls = 0

    async def release_expired_reservations(self):
        self.calls += 1
        if self.calls == 1:
            raise ConnectionError("database unreachable")
        return 0


@pytest.fixture
def memory_service(oracle, clock) -> ReservationService:
    return ReservationService(InMemoryReservationStore(), oracle, clock=clock)


@pytest.mark.asyncio
async def test_run_once_releases_expired(memory_service, clock):
    await memory_service.reserve_inventory(PRODUCT, None, LOCATION, 2, "cart-1", duration_minutes=1)
    clock.advance(seconds=61)

    sweeper = ReservationSweeper(memory_service, interval_seconds=60)
    assert await sweeper.run_once() == 1
    assert await sweeper.run_once() == 0


@pytest.mark.asyncio
async def test_background_sweep_expires_holds(memory_service, clock):
    result = await memory_service.reserve_inventory(PRODUCT, None, LOCATION, 2, "cart-1", duration_minutes=1)
    clock.advance(minutes=2)

    sweeper = ReservationSweeper(memory_service, interval_seconds=0.01)
    sweeper.start()
    assert sweeper.is_running
    await asyncio.sleep(0.05)
    await sweeper.stop()

    assert not sweeper.is_running
    reservation = await memory_service.get_reservation(result.reservation.id)
    assert reservation.status is ReservationStatus.EXPIRED


@pytest.mark.asyncio
async def test_sweep_failure_does_not_stop_the_loop():
    service = FlakyService()
    async with ReservationSweeper(service, interval_seconds=0.01) as sweeper:
        await asyncio.sleep(0.05)
        assert sweeper.is_running
    assert service.calls >= 2
    assert not sweeper.is_running


@pytest.mark.asyncio
async def test_start_twice_keeps_one_task(memory_service):
    sweeper = ReservationSweeper(memory_service, interval_seconds=60)
    sweeper.start()
    task = sweeper._task
    sweeper.start()
    assert sweeper._task is task
    await sweeper.stop()


@pytest.mark.asyncio
async def test_stop_without_start(memory_service):
    sweeper = ReservationSweeper(memory_service)
    await sweeper.stop()
    assert not sweeper.is_running


def test_interval_must_be_positive(memory_service):
    with pytest.raises(ValueError):
        ReservationSweeper(memory_service, interval_seconds=0)
