"""SQLAlchemy ORM models for the Tollgate database."""

from datetime import UTC, datetime
from typing import Any

from sqlalchemy import JSON, Boolean, DateTime, Index, String, Text
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


def _utcnow() -> datetime:
    return datetime.now(UTC)


class Base(DeclarativeBase):
    """SQLAlchemy declarative base."""

    pass


# ============================================================================
# Data Store
# ============================================================================


class DataEntry(Base):
    """Generic key/value entry written by executed tasks and settings updates.

    Values are wrapped as ``{"value": ...}`` so JSON null stays distinguishable
    from a missing row.
    """

    __tablename__ = "data_entries"

    id: Mapped[int] = mapped_column(primary_key=True)
    key: Mapped[str] = mapped_column(String(255), unique=True, index=True)
    value: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=_utcnow, onupdate=_utcnow)


class Relay(Base):
    """Configured outbound relay endpoint. Insertion order defines priority."""

    __tablename__ = "relays"

    id: Mapped[int] = mapped_column(primary_key=True)
    key: Mapped[str] = mapped_column(String(255), unique=True, index=True)
    url: Mapped[str] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=_utcnow)


# ============================================================================
# Permission Store
# ============================================================================


class Permission(Base):
    """Remembered approval decision. Rows are appended, never updated."""

    __tablename__ = "permissions"

    id: Mapped[int] = mapped_column(primary_key=True)
    key: Mapped[str] = mapped_column(String(64), unique=True, index=True)
    task_type: Mapped[str] = mapped_column(String(255))
    approved: Mapped[bool] = mapped_column(Boolean)
    remember: Mapped[bool] = mapped_column(Boolean, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=_utcnow)

    __table_args__ = (Index("ix_permissions_task_type_id", "task_type", "id"),)


# ============================================================================
# Prompt Ledger
# ============================================================================


class PendingPrompt(Base):
    """A prompt shown to the human and not yet answered."""

    __tablename__ = "pending_prompts"

    id: Mapped[int] = mapped_column(primary_key=True)
    prompt_id: Mapped[str] = mapped_column(String(64), unique=True, index=True)
    task_type: Mapped[str] = mapped_column(String(255))
    task: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=_utcnow)
