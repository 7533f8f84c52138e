"""SQLite-backed store implementations.

Each operation runs in its own transaction. SQLAlchemy failures surface
as StorageError so callers never depend on the engine's exception types.
"""

import logging
import uuid
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from datetime import UTC
from typing import Any

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from tollgate.db.database import DatabaseManager
from tollgate.db.models import PendingPrompt, Permission
from tollgate.db.repositories import (
    DataRepository,
    PermissionRepository,
    PromptRepository,
    RelayRepository,
)
from tollgate.model.records import PendingPromptRecord, PermissionRecord, StoreEntry
from tollgate.stores.base import StorageError

logger = logging.getLogger(__name__)


class _SqlStore:
    def __init__(self, db: DatabaseManager):
        self._db = db

    @asynccontextmanager
    async def _transaction(self, action: str) -> AsyncGenerator[AsyncSession, None]:
        try:
            async with self._db.session() as session:
                yield session
        except SQLAlchemyError as e:
            logger.error(f"Failed to {action}: {e}")
            raise StorageError(f"Failed to {action}: {e}") from e


class SqlDataStore(_SqlStore):
    """Key/value data and relay endpoints."""

    async def get(self, key: str) -> Any | None:
        async with self._transaction("get data") as session:
            entry = await DataRepository(session).get_by_key(key)
            return entry.value.get("value") if entry else None

    async def get_all(self) -> list[StoreEntry]:
        async with self._transaction("get all data") as session:
            entries = await DataRepository(session).list_all()
            return [StoreEntry(key=e.key, value=e.value.get("value")) for e in entries]

    async def put(self, value: Any, key: str | None = None) -> str:
        final_key = key or str(uuid.uuid4())
        async with self._transaction("update data") as session:
            await DataRepository(session).upsert(final_key, value)
        logger.debug(f"Data updated: {final_key}")
        return final_key

    async def list_relays(self) -> list[StoreEntry]:
        async with self._transaction("get relays") as session:
            relays = await RelayRepository(session).list_all()
            return [StoreEntry(key=r.key, value=r.url) for r in relays]

    async def add_relay(self, url: str, key: str | None = None) -> str:
        final_key = key or str(uuid.uuid4())
        async with self._transaction("add relay") as session:
            await RelayRepository(session).add(final_key, url)
        logger.info(f"Relay added: {final_key} -> {url}")
        return final_key

    async def remove_relay(self, key: str) -> bool:
        async with self._transaction("remove relay") as session:
            removed = await RelayRepository(session).delete_by_key(key)
        if removed:
            logger.info(f"Relay removed: {key}")
        return removed


def _to_permission_record(row: Permission) -> PermissionRecord:
    return PermissionRecord(
        key=row.key,
        task_type=row.task_type,
        approved=row.approved,
        remember=row.remember,
        created_at=row.created_at.replace(tzinfo=UTC),
    )


class SqlPermissionStore(_SqlStore):
    """Remembered approval decisions."""

    async def list(self) -> list[PermissionRecord]:
        async with self._transaction("get permissions") as session:
            rows = await PermissionRepository(session).list_all()
            return [_to_permission_record(row) for row in rows]

    async def lookup(self, task_type: str) -> PermissionRecord | None:
        async with self._transaction("get permission") as session:
            row = await PermissionRepository(session).latest_for(task_type)
            return _to_permission_record(row) if row else None

    async def append(self, task_type: str, approved: bool, remember: bool) -> str:
        key = str(uuid.uuid4())
        async with self._transaction("set permission") as session:
            await PermissionRepository(session).append(key, task_type, approved, remember)
        logger.info(f"Permission stored for '{task_type}': approved={approved} remember={remember}")
        return key


def _to_prompt_record(row: PendingPrompt) -> PendingPromptRecord:
    return PendingPromptRecord(
        prompt_id=row.prompt_id,
        task_type=row.task_type,
        task=row.task,
        created_at=row.created_at.replace(tzinfo=UTC),
    )


class SqlPromptLedger(_SqlStore):
    """Outstanding prompts, reconciled at startup."""

    async def record(self, record: PendingPromptRecord) -> None:
        async with self._transaction("record pending prompt") as session:
            await PromptRepository(session).upsert(record.prompt_id, record.task_type, record.task)

    async def discard(self, prompt_id: str) -> None:
        async with self._transaction("discard pending prompt") as session:
            await PromptRepository(session).delete_by_prompt_id(prompt_id)

    async def outstanding(self) -> list[PendingPromptRecord]:
        async with self._transaction("list pending prompts") as session:
            rows = await PromptRepository(session).list_all()
            return [_to_prompt_record(row) for row in rows]
