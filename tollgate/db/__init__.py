"""Database package for Tollgate persistence."""

from tollgate.db.database import DatabaseManager

__all__ = [
    "DatabaseManager",
]
