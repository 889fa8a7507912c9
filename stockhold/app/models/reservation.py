"""Reservation tables for the sql store."""
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import DateTime, Index, Integer, String, CheckConstraint
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.types import TypeDecorator

from stockhold.app.core.base import Base


class UTCDateTime(TypeDecorator):
    """Stores naive UTC, returns aware UTC (SQLite drops tzinfo otherwise)."""
    impl = DateTime
    cache_ok = True

    def process_bind_param(self, value: Optional[datetime], dialect):
        if value is None:
            return None
        if value.tzinfo is None:
            raise ValueError("naive datetime passed to a UTC column")
        return value.astimezone(timezone.utc).replace(tzinfo=None)

    def process_result_value(self, value: Optional[datetime], dialect):
        if value is None:
            return None
        return value.replace(tzinfo=timezone.utc)


class ReservationRecord(Base):
    __tablename__ = 'inventory_reservations'
    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    product_id: Mapped[str] = mapped_column(String(64), nullable=False)
    variant_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    location_id: Mapped[str] = mapped_column(String(64), nullable=False)
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    session_id: Mapped[str] = mapped_column(String(128), nullable=False)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    expires_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    status: Mapped[str] = mapped_column(String(16), nullable=False, default='active')

    __table_args__ = (
        CheckConstraint('quantity > 0', name='quantity_positive'),
        Index('ix_reservations_tuple_status', 'product_id', 'variant_id', 'location_id', 'status'),
        Index('ix_reservations_session_id', 'session_id'),
        Index('ix_reservations_status_expires', 'status', 'expires_at'),  # expiry sweep
    )


class ReservationPool(Base):
    """One row per inventory tuple; locked FOR UPDATE while a guarded insert runs."""
    __tablename__ = 'reservation_pools'
    product_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    variant_key: Mapped[str] = mapped_column(String(64), primary_key=True)  # '' when no variant
    location_id: Mapped[str] = mapped_column(String(64), primary_key=True)
