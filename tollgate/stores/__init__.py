"""Persistence adapters for Tollgate.

- DataStore: key/value data and relay endpoints
- PermissionStore: remembered approval decisions
- PromptLedger: prompts awaiting an answer, reconciled on restart
"""

from tollgate.stores.base import DataStore, PermissionStore, PromptLedger, StorageError
from tollgate.stores.memory import InMemoryDataStore, InMemoryPermissionStore, InMemoryPromptLedger
from tollgate.stores.sql import SqlDataStore, SqlPermissionStore, SqlPromptLedger

__all__ = [
    # Contracts
    "DataStore",
    "PermissionStore",
    "PromptLedger",
    "StorageError",
    # SQLite
    "SqlDataStore",
    "SqlPermissionStore",
    "SqlPromptLedger",
    # In-memory
    "InMemoryDataStore",
    "InMemoryPermissionStore",
    "InMemoryPromptLedger",
]
