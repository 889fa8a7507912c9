"""Collaborators the embedding application supplies to the engine."""
import uuid
from datetime import datetime, timezone
from typing import Callable, Optional, Protocol


class InventoryOracle(Protocol):
    async def get_on_hand_quantity(
        self,
        product_id: str,
        variant_id: Optional[str],
        location_id: str,
    ) -> Optional[int]:
        """
        Committed (non-reserved) stock for the tuple at call time.
        Returns None when the tuple has no inventory entry at all.
        """
        ...


class Clock(Protocol):
    def now(self) -> datetime:
        """Current time, timezone-aware."""
        ...


IdGenerator = Callable[[], str]


class SystemClock:
    def now(self) -> datetime:
        return datetime.now(timezone.utc)


def new_reservation_id() -> str:
    return str(uuid.uuid4())
