"""Repository for relay endpoint operations."""

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from tollgate.db.models import Relay
from tollgate.db.repositories.base import BaseRepository


class RelayRepository(BaseRepository[Relay]):
    """Repository for relay endpoint operations."""

    def __init__(self, session: AsyncSession):
        super().__init__(session, Relay)

    async def get_by_key(self, key: str) -> Relay | None:
        """Get relay by key."""
        stmt = select(Relay).where(Relay.key == key)
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def add(self, key: str, url: str) -> Relay:
        """Append a relay."""
        return await self.create(Relay(key=key, url=url))

    async def delete_by_key(self, key: str) -> bool:
        """Delete a relay by key.

        Returns:
            True if a relay was removed.
        """
        relay = await self.get_by_key(key)
        if relay is None:
            return False
        await self.delete(relay)
        return True
