"""Store contracts consumed by the orchestrator."""

from typing import Any, Protocol

from tollgate.model.records import PendingPromptRecord, PermissionRecord, StoreEntry


class StorageError(Exception):
    """A store operation was rejected by the persistence engine."""


class DataStore(Protocol):
    """Durable key/value store plus the ordered list of relay endpoints."""

    async def get(self, key: str) -> Any | None: ...

    async def get_all(self) -> list[StoreEntry]: ...

    async def put(self, value: Any, key: str | None = None) -> str:
        """Store a value, generating a key when none is given. Returns the key."""
        ...

    async def list_relays(self) -> list[StoreEntry]:
        """Relays in insertion order as ``{key, value: url}`` entries."""
        ...

    async def add_relay(self, url: str, key: str | None = None) -> str: ...

    async def remove_relay(self, key: str) -> bool: ...


class PermissionStore(Protocol):
    """Append-only log of remembered approval decisions."""

    async def list(self) -> list[PermissionRecord]: ...

    async def lookup(self, task_type: str) -> PermissionRecord | None:
        """Most recent decision recorded for a task type."""
        ...

    async def append(self, task_type: str, approved: bool, remember: bool) -> str: ...


class PromptLedger(Protocol):
    """Durable record of prompts awaiting an answer."""

    async def record(self, record: PendingPromptRecord) -> None: ...

    async def discard(self, prompt_id: str) -> None: ...

    async def outstanding(self) -> list[PendingPromptRecord]: ...
