"""
SQLAlchemy-backed reservation store.

Every status or expiry change is a conditional UPDATE (`... WHERE status =
'active'`), so when two writers race on one reservation exactly one row update
succeeds and the loser sees an error instead of overwriting. Guarded inserts
lock the tuple's reservation_pools row (SELECT ... FOR UPDATE) for the
duration of the sum-and-insert transaction.
"""
from datetime import datetime
from typing import List, Optional

from sqlalchemy import and_, func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from stockhold.app.models.reservation import ReservationPool, ReservationRecord
from stockhold.app.schemas import (
    InventoryKey,
    Reservation,
    ReservationStatus,
    can_transition,
)
from stockhold.app.services.store import (
    CapacityExceededError,
    DuplicateIdError,
    InvalidStateError,
    InvalidTransitionError,
    ReservationNotFoundError,
)

ACTIVE = ReservationStatus.ACTIVE.value


def _tuple_filter(product_id: str, variant_id: Optional[str], location_id: str):
    if variant_id is None:
        variant_clause = ReservationRecord.variant_id.is_(None)
    else:
        variant_clause = ReservationRecord.variant_id == variant_id
    return and_(
        ReservationRecord.product_id == product_id,
        variant_clause,
        ReservationRecord.location_id == location_id,
    )


def _pool_pk(key: InventoryKey) -> tuple:
    return (key.product_id, key.variant_id or '', key.location_id)


class SqlReservationStore:
    def __init__(self, session_factory: async_sessionmaker):
        self._session_factory = session_factory

    @staticmethod
    def _to_schema(record: ReservationRecord) -> Reservation:
        return Reservation.model_validate(record)

    async def _current_status(self, session: AsyncSession, reservation_id: str) -> ReservationStatus:
        status = await session.scalar(
            select(ReservationRecord.status).where(ReservationRecord.id == reservation_id)
        )
        if status is None:
            raise ReservationNotFoundError(reservation_id)
        return ReservationStatus(status)

    async def _ensure_pool(self, key: InventoryKey) -> None:
        async with self._session_factory() as session:
            if await session.get(ReservationPool, _pool_pk(key)) is not None:
                return
            product_id, variant_key, location_id = _pool_pk(key)
            session.add(ReservationPool(product_id=product_id, variant_key=variant_key, location_id=location_id))
            try:
                await session.commit()
            except IntegrityError:
                # created concurrently by another writer
                await session.rollback()

    async def insert(self, reservation: Reservation, ceiling: Optional[int] = None) -> Reservation:
        key = reservation.key
        if ceiling is not None:
            await self._ensure_pool(key)
        try:
            async with self._session_factory() as session:
                async with session.begin():
                    if ceiling is not None:
                        product_id, variant_key, location_id = _pool_pk(key)
                        await session.execute(
                            select(ReservationPool)
                            .where(
                                ReservationPool.product_id == product_id,
                                ReservationPool.variant_key == variant_key,
                                ReservationPool.location_id == location_id,
                            )
                            .with_for_update()
                        )
                        reserved = await session.scalar(
                            select(func.coalesce(func.sum(ReservationRecord.quantity), 0)).where(
                                _tuple_filter(*key),
                                ReservationRecord.status == ACTIVE,
                            )
                        )
                        if reserved + reservation.quantity > ceiling:
                            raise CapacityExceededError(key, reservation.quantity, ceiling - reserved)

                    if await session.get(ReservationRecord, reservation.id) is not None:
                        raise DuplicateIdError(reservation.id)
                    record = ReservationRecord(
                        id=reservation.id,
                        product_id=reservation.product_id,
                        variant_id=reservation.variant_id,
                        location_id=reservation.location_id,
                        quantity=reservation.quantity,
                        session_id=reservation.session_id,
                        created_at=reservation.created_at,
                        expires_at=reservation.expires_at,
                        status=ACTIVE,
                    )
                    session.add(record)
                    created = self._to_schema(record)
        except IntegrityError as e:
            # primary key collision that slipped past the existence check
            raise DuplicateIdError(reservation.id) from e
        return created

    async def get_by_id(self, reservation_id: str) -> Reservation:
        async with self._session_factory() as session:
            record = await session.get(ReservationRecord, reservation_id)
            if record is None:
                raise ReservationNotFoundError(reservation_id)
            return self._to_schema(record)

    async def _list(self, *criteria) -> List[Reservation]:
        async with self._session_factory() as session:
            result = await session.execute(
                select(ReservationRecord)
                .where(*criteria)
                .order_by(ReservationRecord.created_at, ReservationRecord.id)
            )
            return [self._to_schema(r) for r in result.scalars().all()]

    async def list_active_for_tuple(
        self, product_id: str, variant_id: Optional[str], location_id: str
    ) -> List[Reservation]:
        return await self._list(
            _tuple_filter(product_id, variant_id, location_id),
            ReservationRecord.status == ACTIVE,
        )

    async def list_active_for_session(self, session_id: str) -> List[Reservation]:
        return await self._list(
            ReservationRecord.session_id == session_id,
            ReservationRecord.status == ACTIVE,
        )

    async def list_expired_active(self, as_of: datetime) -> List[Reservation]:
        return await self._list(
            ReservationRecord.status == ACTIVE,
            ReservationRecord.expires_at < as_of,
        )

    async def update_status(self, reservation_id: str, new_status: ReservationStatus) -> Reservation:
        async with self._session_factory() as session:
            async with session.begin():
                record = await session.get(ReservationRecord, reservation_id)
                if record is None:
                    raise ReservationNotFoundError(reservation_id)
                current = ReservationStatus(record.status)
                if not can_transition(current, new_status):
                    raise InvalidTransitionError(reservation_id, current, new_status)
                snapshot = self._to_schema(record)

                result = await session.execute(
                    update(ReservationRecord)
                    .where(ReservationRecord.id == reservation_id, ReservationRecord.status == current.value)
                    .values(status=new_status.value)
                    .execution_options(synchronize_session=False)
                )
                if result.rowcount != 1:
                    # another writer transitioned it between our read and write
                    current = await self._current_status(session, reservation_id)
                    raise InvalidTransitionError(reservation_id, current, new_status)
        return snapshot.model_copy(update={"status": new_status})

    async def update_expiry(self, reservation_id: str, new_expires_at: datetime) -> Reservation:
        async with self._session_factory() as session:
            async with session.begin():
                record = await session.get(ReservationRecord, reservation_id)
                if record is None:
                    raise ReservationNotFoundError(reservation_id)
                snapshot = self._to_schema(record)
                if not snapshot.is_active:
                    raise InvalidStateError(reservation_id, snapshot.status)

                result = await session.execute(
                    update(ReservationRecord)
                    .where(ReservationRecord.id == reservation_id, ReservationRecord.status == ACTIVE)
                    .values(expires_at=new_expires_at)
                    .execution_options(synchronize_session=False)
                )
                if result.rowcount != 1:
                    raise InvalidStateError(reservation_id, await self._current_status(session, reservation_id))
        return snapshot.model_copy(update={"expires_at": new_expires_at})
