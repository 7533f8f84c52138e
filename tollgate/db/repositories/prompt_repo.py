"""Repository for outstanding prompts."""

from typing import Any

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from tollgate.db.models import PendingPrompt
from tollgate.db.repositories.base import BaseRepository


class PromptRepository(BaseRepository[PendingPrompt]):
    """Repository for pending prompt operations."""

    def __init__(self, session: AsyncSession):
        super().__init__(session, PendingPrompt)

    async def get_by_prompt_id(self, prompt_id: str) -> PendingPrompt | None:
        """Get pending prompt by correlation id."""
        stmt = select(PendingPrompt).where(PendingPrompt.prompt_id == prompt_id)
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def upsert(self, prompt_id: str, task_type: str, task: dict[str, Any]) -> PendingPrompt:
        """Record a pending prompt, replacing any previous row for the same id."""
        row = await self.get_by_prompt_id(prompt_id)

        if row:
            row.task_type = task_type
            row.task = task
        else:
            row = PendingPrompt(prompt_id=prompt_id, task_type=task_type, task=task)
            self.session.add(row)

        await self.session.flush()
        await self.session.refresh(row)
        return row

    async def delete_by_prompt_id(self, prompt_id: str) -> bool:
        """Delete a pending prompt.

        Returns:
            True if a row was removed.
        """
        row = await self.get_by_prompt_id(prompt_id)
        if row is None:
            return False
        await self.delete(row)
        return True
