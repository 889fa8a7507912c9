"""Availability = on-hand (from the oracle) minus active holds (from the store)."""
from typing import NamedTuple, Optional

from stockhold.app.core.exceptions import ReservationServiceError
from stockhold.app.core.logging import get_logger
from stockhold.app.schemas import InventoryKey
from stockhold.app.services.ports import InventoryOracle
from stockhold.app.services.store import ReservationStore

logger = get_logger(__name__)


class UnknownInventoryError(ReservationServiceError):
    """The oracle has no inventory entry for the tuple: a caller bug, not a stock-out."""

    def __init__(self, key: InventoryKey):
        self.key = key
        super().__init__(f"No inventory entry for {key}", 404)


class AvailabilitySnapshot(NamedTuple):
    on_hand: int
    reserved: int

    @property
    def available(self) -> int:
        # active holds may exceed on-hand after an external stock decrement
        return max(0, self.on_hand - self.reserved)


class AvailabilityCalculator:
    """
    Read-only. Every call re-reads the oracle; on-hand quantity is never cached
    because other sessions change it between calls.
    """

    def __init__(self, store: ReservationStore, oracle: InventoryOracle):
        self.store = store
        self.oracle = oracle

    async def snapshot(
        self,
        product_id: str,
        variant_id: Optional[str],
        location_id: str,
    ) -> AvailabilitySnapshot:
        on_hand = await self.oracle.get_on_hand_quantity(product_id, variant_id, location_id)
        if on_hand is None:
            raise UnknownInventoryError(InventoryKey(product_id, variant_id, location_id))
        active = await self.store.list_active_for_tuple(product_id, variant_id, location_id)
        snapshot = AvailabilitySnapshot(on_hand=on_hand, reserved=sum(r.quantity for r in active))
        if snapshot.reserved > snapshot.on_hand:
            logger.warning(
                "Active reservations exceed on-hand quantity",
                product_id=product_id,
                variant_id=variant_id,
                location_id=location_id,
                on_hand=snapshot.on_hand,
                reserved=snapshot.reserved,
            )
        return snapshot

    async def compute_available(
        self,
        product_id: str,
        variant_id: Optional[str],
        location_id: str,
    ) -> int:
        snapshot = await self.snapshot(product_id, variant_id, location_id)
        return snapshot.available
