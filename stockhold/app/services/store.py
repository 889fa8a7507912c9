"""
Reservation store contract and the in-process implementation.

Stores only enforce invariants (unique ids, the status state machine, expiry
edits on active records, the optional capacity ceiling on insert); deciding
whether a reservation should exist is the ReservationService's job.
"""
import asyncio
from datetime import datetime
from typing import Dict, List, Optional, Protocol

from stockhold.app.core.exceptions import ReservationServiceError
from stockhold.app.schemas import (
    InventoryKey,
    Reservation,
    ReservationStatus,
    can_transition,
)


class ReservationStoreError(ReservationServiceError):
    """Base exception for store-level errors."""
    pass


class DuplicateIdError(ReservationStoreError):
    def __init__(self, reservation_id: str):
        self.reservation_id = reservation_id
        super().__init__(f"Reservation {reservation_id} already exists", 409)


class ReservationNotFoundError(ReservationStoreError):
    def __init__(self, reservation_id: str):
        self.reservation_id = reservation_id
        super().__init__(f"Reservation {reservation_id} not found", 404)


class InvalidTransitionError(ReservationStoreError):
    def __init__(self, reservation_id: str, current: ReservationStatus, new: ReservationStatus):
        self.reservation_id = reservation_id
        self.current = current
        self.new = new
        super().__init__(
            f"Reservation {reservation_id} cannot move from {current.value} to {new.value}", 409
        )


class InvalidStateError(ReservationStoreError):
    def __init__(self, reservation_id: str, status: ReservationStatus):
        self.reservation_id = reservation_id
        self.status = status
        super().__init__(f"Reservation {reservation_id} is {status.value}, expected active", 409)


class CapacityExceededError(ReservationStoreError):
    """Guarded insert found less headroom than the reservation needs."""

    def __init__(self, key: InventoryKey, requested: int, available: int):
        self.key = key
        self.requested = requested
        self.available = max(0, available)
        super().__init__(
            f"Only {self.available} of {key} left, {requested} requested", 409
        )


class ReservationStore(Protocol):
    async def insert(self, reservation: Reservation, ceiling: Optional[int] = None) -> Reservation: ...

    async def get_by_id(self, reservation_id: str) -> Reservation: ...

    async def list_active_for_tuple(
        self, product_id: str, variant_id: Optional[str], location_id: str
    ) -> List[Reservation]: ...

    async def list_active_for_session(self, session_id: str) -> List[Reservation]: ...

    async def list_expired_active(self, as_of: datetime) -> List[Reservation]: ...

    async def update_status(self, reservation_id: str, new_status: ReservationStatus) -> Reservation: ...

    async def update_expiry(self, reservation_id: str, new_expires_at: datetime) -> Reservation: ...


class InMemoryReservationStore:
    """Lock-guarded dict of reservations for single-process deployments and tests."""

    def __init__(self):
        self._records: Dict[str, Reservation] = {}
        self._lock = asyncio.Lock()

    def __len__(self) -> int:
        return len(self._records)

    def _active_for_key(self, key: InventoryKey) -> List[Reservation]:
        return [r for r in self._records.values() if r.is_active and r.key == key]

    async def insert(self, reservation: Reservation, ceiling: Optional[int] = None) -> Reservation:
        """
        Add an active record. With `ceiling` set, the active sum for the tuple
        plus this quantity must fit under it, checked under the store lock.
        """
        record = reservation.model_copy(update={"status": ReservationStatus.ACTIVE})
        async with self._lock:
            if record.id in self._records:
                raise DuplicateIdError(record.id)
            if ceiling is not None:
                reserved = sum(r.quantity for r in self._active_for_key(record.key))
                if reserved + record.quantity > ceiling:
                    raise CapacityExceededError(record.key, record.quantity, ceiling - reserved)
            self._records[record.id] = record
            return record.model_copy()

    async def get_by_id(self, reservation_id: str) -> Reservation:
        async with self._lock:
            record = self._records.get(reservation_id)
            if record is None:
                raise ReservationNotFoundError(reservation_id)
            return record.model_copy()

    async def list_active_for_tuple(
        self, product_id: str, variant_id: Optional[str], location_id: str
    ) -> List[Reservation]:
        key = InventoryKey(product_id, variant_id, location_id)
        async with self._lock:
            return [r.model_copy() for r in self._active_for_key(key)]

    async def list_active_for_session(self, session_id: str) -> List[Reservation]:
        async with self._lock:
            return [
                r.model_copy() for r in self._records.values()
                if r.is_active and r.session_id == session_id
            ]

    async def list_expired_active(self, as_of: datetime) -> List[Reservation]:
        async with self._lock:
            return [
                r.model_copy() for r in self._records.values()
                if r.is_active and r.expires_at < as_of
            ]

    async def update_status(self, reservation_id: str, new_status: ReservationStatus) -> Reservation:
        async with self._lock:
            record = self._records.get(reservation_id)
            if record is None:
                raise ReservationNotFoundError(reservation_id)
            if not can_transition(record.status, new_status):
                raise InvalidTransitionError(reservation_id, record.status, new_status)
            record = record.model_copy(update={"status": new_status})
            self._records[reservation_id] = record
            return record.model_copy()

    async def update_expiry(self, reservation_id: str, new_expires_at: datetime) -> Reservation:
        async with self._lock:
            record = self._records.get(reservation_id)
            if record is None:
                raise ReservationNotFoundError(reservation_id)
            if not record.is_active:
                raise InvalidStateError(reservation_id, record.status)
            record = record.model_copy(update={"expires_at": new_expires_at})
            self._records[reservation_id] = record
            return record.model_copy()
