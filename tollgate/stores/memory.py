"""In-memory store implementations for tests and ephemeral runs."""

import uuid
from typing import Any

from tollgate.model.records import PendingPromptRecord, PermissionRecord, StoreEntry


class InMemoryDataStore:
    """Key/value data and relays held in dicts (insertion ordered)."""

    def __init__(self) -> None:
        self._data: dict[str, Any] = {}
        self._relays: dict[str, str] = {}

    async def get(self, key: str) -> Any | None:
        return self._data.get(key)

    async def get_all(self) -> list[StoreEntry]:
        return [StoreEntry(key=k, value=v) for k, v in self._data.items()]

    async def put(self, value: Any, key: str | None = None) -> str:
        final_key = key or str(uuid.uuid4())
        self._data[final_key] = value
        return final_key

    async def list_relays(self) -> list[StoreEntry]:
        return [StoreEntry(key=k, value=v) for k, v in self._relays.items()]

    async def add_relay(self, url: str, key: str | None = None) -> str:
        final_key = key or str(uuid.uuid4())
        self._relays[final_key] = url
        return final_key

    async def remove_relay(self, key: str) -> bool:
        return self._relays.pop(key, None) is not None


class InMemoryPermissionStore:
    """Append-only list of decisions."""

    def __init__(self) -> None:
        self.records: list[PermissionRecord] = []

    async def list(self) -> list[PermissionRecord]:
        return list(self.records)

    async def lookup(self, task_type: str) -> PermissionRecord | None:
        for record in reversed(self.records):
            if record.task_type == task_type:
                return record
        return None

    async def append(self, task_type: str, approved: bool, remember: bool) -> str:
        key = str(uuid.uuid4())
        self.records.append(
            PermissionRecord(key=key, task_type=task_type, approved=approved, remember=remember)
        )
        return key


class InMemoryPromptLedger:
    """Pending prompts keyed by prompt id."""

    def __init__(self) -> None:
        self.records: dict[str, PendingPromptRecord] = {}

    async def record(self, record: PendingPromptRecord) -> None:
        self.records[record.prompt_id] = record

    async def discard(self, prompt_id: str) -> None:
        self.records.pop(prompt_id, None)

    async def outstanding(self) -> list[PendingPromptRecord]:
        return list(self.records.values())
