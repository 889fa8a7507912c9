from datetime import datetime
from enum import Enum
from typing import NamedTuple, Optional

from pydantic import BaseModel, ConfigDict, Field


class ReservationStatus(str, Enum):
    ACTIVE = "active"
    COMPLETED = "completed"
    EXPIRED = "expired"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self is not ReservationStatus.ACTIVE


# active is the only state with outgoing edges
ALLOWED_TRANSITIONS: dict[ReservationStatus, frozenset[ReservationStatus]] = {
    ReservationStatus.ACTIVE: frozenset({
        ReservationStatus.COMPLETED,
        ReservationStatus.EXPIRED,
        ReservationStatus.CANCELLED,
    }),
    ReservationStatus.COMPLETED: frozenset(),
    ReservationStatus.EXPIRED: frozenset(),
    ReservationStatus.CANCELLED: frozenset(),
}


def can_transition(current: ReservationStatus, new: ReservationStatus) -> bool:
    return new in ALLOWED_TRANSITIONS[current]


class InventoryKey(NamedTuple):
    """The (product, variant, location) pool a reservation draws from."""
    product_id: str
    variant_id: Optional[str]
    location_id: str

    def __str__(self) -> str:
        return f"{self.product_id}/{self.variant_id or '-'}/{self.location_id}"


# --- Reservations ---
class Reservation(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    product_id: str
    variant_id: Optional[str] = None
    location_id: str
    quantity: int = Field(gt=0)
    session_id: str
    created_at: datetime
    expires_at: datetime
    status: ReservationStatus = ReservationStatus.ACTIVE

    @property
    def key(self) -> InventoryKey:
        return InventoryKey(self.product_id, self.variant_id, self.location_id)

    @property
    def is_active(self) -> bool:
        return self.status is ReservationStatus.ACTIVE


class ReservationResult(BaseModel):
    """
    Outcome of reserve_inventory.
    Insufficient stock is a normal outcome: success=False with the quantity
    that could still be promised, so the checkout can say "only N left".
    """
    success: bool
    reservation: Optional[Reservation] = None
    error: Optional[str] = None
    available_quantity: Optional[int] = None

    @classmethod
    def reserved(cls, reservation: Reservation) -> "ReservationResult":
        return cls(success=True, reservation=reservation)

    @classmethod
    def insufficient(cls, available: int) -> "ReservationResult":
        return cls(success=False, error="Insufficient inventory", available_quantity=available)
