# stockhold/app/services/__init__.py
"""
Services layer: the reservation lifecycle, availability, stores and the sweeper.
"""

from stockhold.app.services.availability import (
    AvailabilityCalculator,
    AvailabilitySnapshot,
    UnknownInventoryError,
)
from stockhold.app.services.inventory import SqlInventoryOracle, StaticInventoryOracle
from stockhold.app.services.ports import Clock, IdGenerator, InventoryOracle, SystemClock
from stockhold.app.services.reservations import (
    InvalidReservationRequestError,
    ReservationService,
)
from stockhold.app.services.sql_store import SqlReservationStore
from stockhold.app.services.store import (
    CapacityExceededError,
    DuplicateIdError,
    InMemoryReservationStore,
    InvalidStateError,
    InvalidTransitionError,
    ReservationNotFoundError,
    ReservationStore,
    ReservationStoreError,
)
from stockhold.app.services.sweeper import ReservationSweeper

__all__ = [
    # Lifecycle
    "ReservationService",
    "InvalidReservationRequestError",
    "ReservationSweeper",
    # Availability
    "AvailabilityCalculator",
    "AvailabilitySnapshot",
    "UnknownInventoryError",
    # Stores
    "ReservationStore",
    "InMemoryReservationStore",
    "SqlReservationStore",
    "ReservationStoreError",
    "DuplicateIdError",
    "ReservationNotFoundError",
    "InvalidTransitionError",
    "InvalidStateError",
    "CapacityExceededError",
    # Collaborators
    "InventoryOracle",
    "Clock",
    "IdGenerator",
    "SystemClock",
    "StaticInventoryOracle",
    "SqlInventoryOracle",
]
