"""Records exchanged between the orchestrator and its stores."""

from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any


@dataclass
class StoreEntry:
    """A ``{key, value}`` pair read back from a store."""

    key: str
    value: Any

    def to_dict(self) -> dict[str, Any]:
        return {"key": self.key, "value": self.value}


@dataclass
class PermissionRecord:
    """A remembered human decision for a task type."""

    task_type: str
    approved: bool
    remember: bool
    key: str | None = None
    created_at: datetime = field(default_factory=lambda: datetime.now(UTC))

    def to_entry(self) -> StoreEntry:
        """Wire form: ``{key, value: {taskType, approved, remember}}``."""
        return StoreEntry(
            key=self.key or "",
            value={
                "taskType": self.task_type,
                "approved": self.approved,
                "remember": self.remember,
            },
        )


@dataclass
class PendingPromptRecord:
    """Durable trace of a prompt that has been shown but not yet answered."""

    prompt_id: str
    task_type: str
    task: dict[str, Any]
    created_at: datetime = field(default_factory=lambda: datetime.now(UTC))
