"""Repository for remembered approval decisions."""

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from tollgate.db.models import Permission
from tollgate.db.repositories.base import BaseRepository


class PermissionRepository(BaseRepository[Permission]):
    """Repository for permission operations. Rows are append-only."""

    def __init__(self, session: AsyncSession):
        super().__init__(session, Permission)

    async def latest_for(self, task_type: str) -> Permission | None:
        """Get the most recently appended decision for a task type."""
        stmt = (
            select(Permission)
            .where(Permission.task_type == task_type)
            .order_by(Permission.id.desc())
            .limit(1)
        )
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def append(self, key: str, task_type: str, approved: bool, remember: bool) -> Permission:
        """Append a new decision."""
        return await self.create(
            Permission(key=key, task_type=task_type, approved=approved, remember=remember)
        )
