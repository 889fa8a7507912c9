"""
Inventory reservation lifecycle: hold stock for in-flight carts, convert or
release the hold, and expire abandoned ones.

Expected races (missing id, reservation no longer active) and insufficient
stock are reported through return values. Malformed input raises
InvalidReservationRequestError. Store and oracle failures propagate as-is.
"""
import asyncio
from contextlib import asynccontextmanager
from datetime import datetime, timedelta
from typing import AsyncIterator, Dict, Hashable, List, Optional, Union

from stockhold.app.core.exceptions import ReservationServiceError
from stockhold.app.core.logging import get_logger
from stockhold.app.core.metrics import (
    reservation_locks_held,
    reservation_transitions_total,
    reservations_created_total,
    reservations_expired_total,
    reservations_rejected_total,
)
from stockhold.app.schemas import (
    InventoryKey,
    Reservation,
    ReservationResult,
    ReservationStatus,
)
from stockhold.app.services.availability import AvailabilityCalculator
from stockhold.app.services.ports import Clock, IdGenerator, InventoryOracle, SystemClock, new_reservation_id
from stockhold.app.services.store import (
    CapacityExceededError,
    InvalidStateError,
    InvalidTransitionError,
    ReservationNotFoundError,
    ReservationStore,
)

logger = get_logger(__name__)

DEFAULT_RESERVATION_TTL_MINUTES = 15

Minutes = Union[int, float]


class InvalidReservationRequestError(ReservationServiceError):
    def __init__(self, message: str):
        super().__init__(message, 400)


class KeyedLocks:
    """One asyncio.Lock per key, discarded once nobody holds or waits for it."""

    def __init__(self):
        self._locks: Dict[Hashable, asyncio.Lock] = {}
        self._users: Dict[Hashable, int] = {}

    def __len__(self) -> int:
        return len(self._locks)

    @asynccontextmanager
    async def hold(self, key: Hashable) -> AsyncIterator[None]:
        lock = self._locks.setdefault(key, asyncio.Lock())
        self._users[key] = self._users.get(key, 0) + 1
        try:
            async with lock:
                reservation_locks_held.inc()
                try:
                    yield
                finally:
                    reservation_locks_held.dec()
        finally:
            self._users[key] -= 1
            if self._users[key] == 0:
                del self._users[key]
                del self._locks[key]


def _require_id(name: str, value) -> None:
    if not isinstance(value, str) or not value.strip():
        raise InvalidReservationRequestError(f"{name} must be a non-empty string")


def _require_positive_quantity(quantity) -> None:
    if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity < 1:
        raise InvalidReservationRequestError("Quantity must be >= 1")


def _require_positive_minutes(name: str, minutes) -> None:
    if isinstance(minutes, bool) or not isinstance(minutes, (int, float)) or minutes <= 0:
        raise InvalidReservationRequestError(f"{name} must be > 0")


class ReservationService:
    def __init__(
        self,
        store: ReservationStore,
        oracle: InventoryOracle,
        *,
        clock: Optional[Clock] = None,
        id_generator: Optional[IdGenerator] = None,
        default_duration_minutes: Minutes = DEFAULT_RESERVATION_TTL_MINUTES,
        max_lifetime_minutes: Optional[Minutes] = None,
    ):
        _require_positive_minutes("default_duration_minutes", default_duration_minutes)
        if max_lifetime_minutes is not None:
            _require_positive_minutes("max_lifetime_minutes", max_lifetime_minutes)
        self.store = store
        self.availability = AvailabilityCalculator(store, oracle)
        self.clock = clock or SystemClock()
        self.id_generator = id_generator or new_reservation_id
        self.default_duration_minutes = default_duration_minutes
        self.max_lifetime_minutes = max_lifetime_minutes
        self._tuple_locks = KeyedLocks()
        self._record_locks = KeyedLocks()

    async def reserve_inventory(
        self,
        product_id: str,
        variant_id: Optional[str],
        location_id: str,
        quantity: int,
        session_id: str,
        duration_minutes: Optional[Minutes] = None,
    ) -> ReservationResult:
        """
        Hold `quantity` units of the tuple for the cart session.

        The availability read and the insert run under a per-tuple lock, and
        the store re-checks the on-hand ceiling inside its own critical
        section, so concurrent checkouts cannot jointly over-commit.
        """
        _require_id("product_id", product_id)
        _require_id("location_id", location_id)
        _require_id("session_id", session_id)
        if variant_id is not None:
            _require_id("variant_id", variant_id)
        _require_positive_quantity(quantity)
        if duration_minutes is None:
            duration_minutes = self.default_duration_minutes
        _require_positive_minutes("duration_minutes", duration_minutes)

        key = InventoryKey(product_id, variant_id, location_id)
        async with self._tuple_locks.hold(key):
            snapshot = await self.availability.snapshot(product_id, variant_id, location_id)
            if snapshot.available < quantity:
                return self._rejected(key, quantity, snapshot.available, session_id)

            now = self.clock.now()
            reservation = Reservation(
                id=self.id_generator(),
                product_id=product_id,
                variant_id=variant_id,
                location_id=location_id,
                quantity=quantity,
                session_id=session_id,
                created_at=now,
                expires_at=now + timedelta(minutes=duration_minutes),
                status=ReservationStatus.ACTIVE,
            )
            try:
                created = await self.store.insert(reservation, ceiling=snapshot.on_hand)
            except CapacityExceededError as e:
                # another process sharing the database got there first
                return self._rejected(key, quantity, e.available, session_id)

        reservations_created_total.inc()
        logger.info(
            "Reservation created",
            reservation_id=created.id,
            inventory=str(key),
            quantity=quantity,
            session_id=session_id,
            expires_at=created.expires_at.isoformat(),
        )
        return ReservationResult.reserved(created)

    def _rejected(self, key: InventoryKey, quantity: int, available: int, session_id: str) -> ReservationResult:
        reservations_rejected_total.inc()
        logger.info(
            "Reservation rejected: insufficient inventory",
            inventory=str(key),
            requested=quantity,
            available=available,
            session_id=session_id,
        )
        return ReservationResult.insufficient(available)

    async def _transition(self, reservation_id: str, new_status: ReservationStatus) -> bool:
        try:
            await self.store.update_status(reservation_id, new_status)
        except (ReservationNotFoundError, InvalidTransitionError) as e:
            logger.debug("Reservation transition skipped", reservation_id=reservation_id,
                         target=new_status.value, reason=e.message)
            return False
        reservation_transitions_total.labels(status=new_status.value).inc()
        return True

    async def complete_reservation(self, reservation_id: str) -> bool:
        """
        Mark the hold as converted into a committed sale. Decrementing real
        stock is the caller's job. False if missing or no longer active.
        """
        _require_id("reservation_id", reservation_id)
        completed = await self._transition(reservation_id, ReservationStatus.COMPLETED)
        if completed:
            logger.info("Reservation completed", reservation_id=reservation_id)
        return completed

    async def cancel_reservation(self, reservation_id: str) -> bool:
        """Release the hold. False if missing or no longer active."""
        _require_id("reservation_id", reservation_id)
        cancelled = await self._transition(reservation_id, ReservationStatus.CANCELLED)
        if cancelled:
            logger.info("Reservation cancelled", reservation_id=reservation_id)
        return cancelled

    async def extend_reservation(self, reservation_id: str, additional_minutes: Minutes) -> bool:
        _require_id("reservation_id", reservation_id)
        _require_positive_minutes("additional_minutes", additional_minutes)

        async with self._record_locks.hold(reservation_id):
            try:
                reservation = await self.store.get_by_id(reservation_id)
            except ReservationNotFoundError:
                return False
            if not reservation.is_active:
                return False

            new_expires_at = reservation.expires_at + timedelta(minutes=additional_minutes)
            if self.max_lifetime_minutes is not None and \
                    new_expires_at - reservation.created_at > timedelta(minutes=self.max_lifetime_minutes):
                logger.info(
                    "Reservation extension refused: lifetime cap reached",
                    reservation_id=reservation_id,
                    max_lifetime_minutes=self.max_lifetime_minutes,
                )
                return False

            try:
                await self.store.update_expiry(reservation_id, new_expires_at)
            except (ReservationNotFoundError, InvalidStateError):
                return False

        logger.info("Reservation extended", reservation_id=reservation_id,
                    expires_at=new_expires_at.isoformat())
        return True

    async def check_availability(
        self,
        product_id: str,
        variant_id: Optional[str],
        location_id: str,
        quantity: int,
    ) -> bool:
        """Whether `quantity` could be reserved right now. Not a guarantee."""
        _require_positive_quantity(quantity)
        available = await self.availability.compute_available(product_id, variant_id, location_id)
        return available >= quantity

    async def compute_available(self, product_id: str, variant_id: Optional[str], location_id: str) -> int:
        return await self.availability.compute_available(product_id, variant_id, location_id)

    async def get_reservation(self, reservation_id: str) -> Optional[Reservation]:
        try:
            return await self.store.get_by_id(reservation_id)
        except ReservationNotFoundError:
            return None

    async def get_session_reservations(self, session_id: str) -> List[Reservation]:
        """Active holds of a cart session."""
        _require_id("session_id", session_id)
        return await self.store.list_active_for_session(session_id)

    async def cancel_session_reservations(self, session_id: str) -> int:
        """Release every active hold of an abandoned cart. Returns the count released."""
        _require_id("session_id", session_id)
        released = 0
        for reservation in await self.store.list_active_for_session(session_id):
            if await self._transition(reservation.id, ReservationStatus.CANCELLED):
                released += 1
        if released:
            logger.info("Session reservations cancelled", session_id=session_id, count=released)
        return released

    async def release_expired_reservations(self, as_of: Optional[datetime] = None) -> int:
        """
        Expire every active reservation whose deadline is before `as_of`
        (default: now). Records transitioned concurrently by someone else are
        skipped, so a second call with nothing new to expire returns 0.
        """
        as_of = as_of or self.clock.now()
        released = 0
        for reservation in await self.store.list_expired_active(as_of):
            if await self._transition(reservation.id, ReservationStatus.EXPIRED):
                released += 1
        if released:
            reservations_expired_total.inc(released)
            logger.info("Releasing expired reservations", count=released, as_of=as_of.isoformat())
        return released
