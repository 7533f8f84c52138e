"""Tests for database manager and repositories."""

import tempfile
from pathlib import Path

import pytest
from sqlalchemy import text

from tollgate.db.database import DatabaseManager
from tollgate.db.repositories import DataRepository, PermissionRepository, PromptRepository, RelayRepository


@pytest.fixture
async def db_manager():
    """Provide a temporary database manager."""
    with tempfile.TemporaryDirectory() as tmpdir:
        manager = DatabaseManager(Path(tmpdir) / "test.db")
        await manager.init_db()
        yield manager
        await manager.close()


class TestDatabaseManager:
    """Test DatabaseManager functionality."""

    async def test_init_creates_tables(self):
        """init_db creates the file, parent directory and every table."""
        with tempfile.TemporaryDirectory() as tmpdir:
            db_path = Path(tmpdir) / "nested" / "test.db"
            manager = DatabaseManager(db_path)
            await manager.init_db()

            assert db_path.exists()
            async with manager.session() as session:
                result = await session.execute(text("SELECT name FROM sqlite_master WHERE type='table'"))
                tables = {row[0] for row in result.fetchall()}

            assert {"data_entries", "relays", "permissions", "pending_prompts"}.issubset(tables)
            await manager.close()

    async def test_session_rolls_back_on_error(self, db_manager):
        """A failing session leaves no partial writes."""
        with pytest.raises(RuntimeError):
            async with db_manager.session() as session:
                await DataRepository(session).upsert("k", 1)
                raise RuntimeError("abort")

        async with db_manager.session() as session:
            assert await DataRepository(session).get_by_key("k") is None


class TestDataRepository:
    """Test DataRepository methods."""

    async def test_upsert_replaces(self, db_manager):
        """Upserting an existing key replaces its value."""
        async with db_manager.session() as session:
            await DataRepository(session).upsert("theme", "dark")
        async with db_manager.session() as session:
            await DataRepository(session).upsert("theme", "light")

        async with db_manager.session() as session:
            repo = DataRepository(session)
            entry = await repo.get_by_key("theme")
            assert entry.value == {"value": "light"}
            assert len(await repo.list_all()) == 1


class TestRelayRepository:
    """Test RelayRepository methods."""

    async def test_insertion_order(self, db_manager):
        """Relays list in insertion order."""
        async with db_manager.session() as session:
            repo = RelayRepository(session)
            await repo.add("b", "wss://b")
            await repo.add("a", "wss://a")

        async with db_manager.session() as session:
            relays = await RelayRepository(session).list_all()
            assert [r.key for r in relays] == ["b", "a"]

    async def test_delete_by_key(self, db_manager):
        """delete_by_key reports whether a row was removed."""
        async with db_manager.session() as session:
            repo = RelayRepository(session)
            await repo.add("a", "wss://a")
            assert await repo.delete_by_key("a") is True
            assert await repo.delete_by_key("a") is False


class TestPermissionRepository:
    """Test PermissionRepository methods."""

    async def test_latest_for(self, db_manager):
        """latest_for returns the most recent row for the type only."""
        async with db_manager.session() as session:
            repo = PermissionRepository(session)
            await repo.append("p1", "settings", False, True)
            await repo.append("p2", "other", True, True)
            await repo.append("p3", "settings", True, True)

        async with db_manager.session() as session:
            repo = PermissionRepository(session)
            latest = await repo.latest_for("settings")
            assert latest.key == "p3"
            assert latest.approved is True
            assert await repo.latest_for("missing") is None
            assert len(await repo.list_all()) == 3


class TestPromptRepository:
    """Test PromptRepository methods."""

    async def test_upsert_and_delete(self, db_manager):
        """Upserting the same prompt id keeps one row."""
        async with db_manager.session() as session:
            repo = PromptRepository(session)
            await repo.upsert("p-1", "default", {"a": 1})
            await repo.upsert("p-1", "default", {"a": 2})

        async with db_manager.session() as session:
            repo = PromptRepository(session)
            rows = await repo.list_all()
            assert [(r.prompt_id, r.task) for r in rows] == [("p-1", {"a": 2})]
            assert await repo.delete_by_prompt_id("p-1") is True
            assert await repo.get_by_prompt_id("p-1") is None
