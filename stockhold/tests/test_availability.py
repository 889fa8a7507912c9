"""Tests for AvailabilityCalculator."""
import pytest

from stockhold.app.schemas import ReservationStatus
from stockhold.app.services.availability import AvailabilityCalculator, UnknownInventoryError


PRODUCT = "prod-1"
LOCATION = "loc-1"


@pytest.mark.asyncio
async def test_compute_available_without_reservations(store, oracle):
    calculator = AvailabilityCalculator(store, oracle)
    assert await calculator.compute_available(PRODUCT, None, LOCATION) == 10


@pytest.mark.asyncio
async def test_compute_available_subtracts_only_active(store, oracle, make_reservation):
    await store.insert(make_reservation(id="a", quantity=3))
    await store.insert(make_reservation(id="b", quantity=2))
    await store.insert(make_reservation(id="c", quantity=4))
    await store.update_status("c", ReservationStatus.COMPLETED)

    calculator = AvailabilityCalculator(store, oracle)
    snapshot = await calculator.snapshot(PRODUCT, None, LOCATION)
    assert snapshot.on_hand == 10
    assert snapshot.reserved == 5
    assert snapshot.available == 5


@pytest.mark.asyncio
async def test_compute_available_never_negative(store, oracle, make_reservation):
    await store.insert(make_reservation(quantity=8))
    # stock written off elsewhere after the hold was taken
    oracle.set_on_hand(PRODUCT, None, LOCATION, 3)

    calculator = AvailabilityCalculator(store, oracle)
    assert await calculator.compute_available(PRODUCT, None, LOCATION) == 0


@pytest.mark.asyncio
async def test_compute_available_reads_oracle_every_time(store, oracle):
    calculator = AvailabilityCalculator(store, oracle)
    assert await calculator.compute_available(PRODUCT, None, LOCATION) == 10
    oracle.set_on_hand(PRODUCT, None, LOCATION, 4)
    assert await calculator.compute_available(PRODUCT, None, LOCATION) == 4


@pytest.mark.asyncio
async def test_compute_available_per_variant(store, oracle, make_reservation):
    oracle.set_on_hand(PRODUCT, "red", LOCATION, 5)
    await store.insert(make_reservation(variant_id="red", quantity=5))

    calculator = AvailabilityCalculator(store, oracle)
    assert await calculator.compute_available(PRODUCT, "red", LOCATION) == 0
    assert await calculator.compute_available(PRODUCT, None, LOCATION) == 10


@pytest.mark.asyncio
async def test_unknown_inventory_fails_loudly(store, oracle):
    calculator = AvailabilityCalculator(store, oracle)
    with pytest.raises(UnknownInventoryError) as exc_info:
        await calculator.compute_available("no-such-product", None, LOCATION)
    assert exc_info.value.status_code == 404


@pytest.mark.asyncio
async def test_oracle_failure_propagates(store, failing_oracle):
    calculator = AvailabilityCalculator(store, failing_oracle)
    with pytest.raises(ConnectionError):
        await calculator.compute_available(PRODUCT, None, LOCATION)
