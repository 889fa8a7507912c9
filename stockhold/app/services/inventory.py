"""Ready-made inventory oracles."""
from typing import Dict, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import async_sessionmaker

from stockhold.app.models.inventory import InventoryLevel
from stockhold.app.schemas import InventoryKey


class StaticInventoryOracle:
    """Dict-backed on-hand quantities. Unknown tuples report None."""

    def __init__(self, levels: Optional[Dict[InventoryKey, int]] = None):
        self._levels: Dict[InventoryKey, int] = dict(levels or {})

    def set_on_hand(
        self,
        product_id: str,
        variant_id: Optional[str],
        location_id: str,
        quantity: int,
    ) -> None:
        self._levels[InventoryKey(product_id, variant_id, location_id)] = quantity

    async def get_on_hand_quantity(
        self,
        product_id: str,
        variant_id: Optional[str],
        location_id: str,
    ) -> Optional[int]:
        return self._levels.get(InventoryKey(product_id, variant_id, location_id))


class SqlInventoryOracle:
    """Reads committed stock from the inventory_levels table."""

    def __init__(self, session_factory: async_sessionmaker):
        self._session_factory = session_factory

    async def get_on_hand_quantity(
        self,
        product_id: str,
        variant_id: Optional[str],
        location_id: str,
    ) -> Optional[int]:
        async with self._session_factory() as session:
            result = await session.execute(
                select(InventoryLevel.on_hand).where(
                    InventoryLevel.product_id == product_id,
                    InventoryLevel.variant_key == (variant_id or ''),
                    InventoryLevel.location_id == location_id,
                )
            )
            return result.scalar_one_or_none()
