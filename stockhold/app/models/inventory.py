from sqlalchemy import Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from stockhold.app.core.base import Base


class InventoryLevel(Base):
    """Committed on-hand stock per tuple, read by SqlInventoryOracle."""
    __tablename__ = 'inventory_levels'
    product_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    variant_key: Mapped[str] = mapped_column(String(64), primary_key=True, default='')  # '' when no variant
    location_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    on_hand: Mapped[int] = mapped_column(Integer, default=0)
