from abc import ABC, abstractmethod
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from app.core.exceptions import ItemNotAvailable
from app.models.inventory import InventoryItem


class InventoryLookup(ABC):
    @abstractmethod
    async def get_item(self, item_id: int) -> InventoryItem:
        """Active item with its warehouse offers loaded, or ItemNotAvailable."""


class DatabaseInventory(InventoryLookup):
    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_item(self, item_id: int) -> InventoryItem:
        res = await self.db.execute(select(InventoryItem).where(InventoryItem.id == item_id))
        item: Optional[InventoryItem] = res.scalars().first()
        if item is None or not item.is_active:
            raise ItemNotAvailable(item_id)
        return item
