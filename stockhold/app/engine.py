"""
Engine wiring: picks the reservation store from settings, builds the
ReservationService and owns the expiry sweeper's lifetime.

    async with ReservationEngine(oracle) as engine:
        result = await engine.service.reserve_inventory(...)
"""
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncEngine, async_sessionmaker

from stockhold.app.core.database import create_engine, create_session_factory, create_tables
from stockhold.app.core.logging import get_logger, setup_logging
from stockhold.app.core.settings import Settings, get_settings
from stockhold.app.services.inventory import SqlInventoryOracle
from stockhold.app.services.ports import Clock, IdGenerator, InventoryOracle
from stockhold.app.services.reservations import ReservationService
from stockhold.app.services.sql_store import SqlReservationStore
from stockhold.app.services.store import InMemoryReservationStore, ReservationStore
from stockhold.app.services.sweeper import ReservationSweeper

logger = get_logger(__name__)


class ReservationEngine:
    def __init__(
        self,
        oracle: Optional[InventoryOracle] = None,
        *,
        settings: Optional[Settings] = None,
        clock: Optional[Clock] = None,
        id_generator: Optional[IdGenerator] = None,
        configure_logging: bool = False,
    ):
        self.settings = settings or get_settings()
        self._oracle = oracle
        self._clock = clock
        self._id_generator = id_generator
        self._configure_logging = configure_logging
        self._db_engine: Optional[AsyncEngine] = None
        self.session_factory: Optional[async_sessionmaker] = None
        self.store: Optional[ReservationStore] = None
        self.service: Optional[ReservationService] = None
        self.sweeper: Optional[ReservationSweeper] = None

    async def _build_store(self) -> ReservationStore:
        if self.settings.STORE_BACKEND == "memory":
            return InMemoryReservationStore()
        self._db_engine = create_engine(self.settings)
        self.session_factory = create_session_factory(self._db_engine)
        await create_tables(self._db_engine)
        return SqlReservationStore(self.session_factory)

    async def start(self) -> ReservationService:
        if self.service is not None:
            return self.service
        if self._configure_logging:
            setup_logging(log_level=self.settings.LOG_LEVEL, json_format=self.settings.is_production)

        self.store = await self._build_store()
        oracle = self._oracle
        if oracle is None:
            if self.session_factory is None:
                raise ValueError("An inventory oracle is required with the memory store")
            oracle = SqlInventoryOracle(self.session_factory)

        self.service = ReservationService(
            self.store,
            oracle,
            clock=self._clock,
            id_generator=self._id_generator,
            default_duration_minutes=self.settings.RESERVATION_TTL_MINUTES,
            max_lifetime_minutes=self.settings.MAX_RESERVATION_LIFETIME_MINUTES,
        )
        self.sweeper = ReservationSweeper(self.service, self.settings.SWEEP_INTERVAL_SECONDS)
        self.sweeper.start()
        logger.info(
            "Reservation engine started",
            store_backend=self.settings.STORE_BACKEND,
            ttl_minutes=self.settings.RESERVATION_TTL_MINUTES,
            sweep_interval_seconds=self.settings.SWEEP_INTERVAL_SECONDS,
        )
        return self.service

    async def stop(self) -> None:
        if self.sweeper is not None:
            await self.sweeper.stop()
        if self._db_engine is not None:
            await self._db_engine.dispose()
            self._db_engine = None
        self.service = None
        logger.info("Reservation engine stopped")

    async def __aenter__(self) -> "ReservationEngine":
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.stop()
