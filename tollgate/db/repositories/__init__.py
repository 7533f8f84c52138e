"""Repository package for database operations."""

from tollgate.db.repositories.base import BaseRepository
from tollgate.db.repositories.data_repo import DataRepository
from tollgate.db.repositories.permission_repo import PermissionRepository
from tollgate.db.repositories.prompt_repo import PromptRepository
from tollgate.db.repositories.relay_repo import RelayRepository

__all__ = [
    "BaseRepository",
    "DataRepository",
    "PermissionRepository",
    "PromptRepository",
    "RelayRepository",
]
