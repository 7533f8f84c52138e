"""Repository for generic key/value data entries."""

from typing import Any

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from tollgate.db.models import DataEntry
from tollgate.db.repositories.base import BaseRepository


class DataRepository(BaseRepository[DataEntry]):
    """Repository for data entry operations."""

    def __init__(self, session: AsyncSession):
        super().__init__(session, DataEntry)

    async def get_by_key(self, key: str) -> DataEntry | None:
        """Get entry by key."""
        stmt = select(DataEntry).where(DataEntry.key == key)
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def upsert(self, key: str, value: Any) -> DataEntry:
        """Insert or replace the value stored under a key."""
        entry = await self.get_by_key(key)

        if entry:
            entry.value = {"value": value}
        else:
            entry = DataEntry(key=key, value={"value": value})
            self.session.add(entry)

        await self.session.flush()
        await self.session.refresh(entry)
        return entry
