"""Domain models for tasks and their approval lifecycle."""

import logging
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict

logger = logging.getLogger(__name__)

DEFAULT_TASK_TYPE = "default"


class Task(BaseModel):
    """Opaque unit of work submitted by a frontend context.

    Unknown fields are kept as-is. ``type`` classifies the task for
    remembered permissions; ``key`` is the optional storage key. Both
    accept any JSON value and are read through ``task_type()`` and
    ``storage_key`` so the stored payload stays exactly as submitted.
    """

    model_config = ConfigDict(extra="allow")

    type: Any = None
    key: Any = None

    def task_type(self, default: str = DEFAULT_TASK_TYPE) -> str:
        """Permission classifier for this task."""
        return str(self.type) if self.type else default

    @property
    def storage_key(self) -> str | None:
        """Key the task is stored under, or None to generate one."""
        return str(self.key) if self.key else None

    def payload(self) -> dict[str, Any]:
        """The task exactly as submitted, JSON-ready."""
        return self.model_dump(mode="json", exclude_unset=True)


class SettingsTask(Task):
    """A task that writes a named settings entry."""

    type: Literal["settings"] = "settings"
    value: Any = None


_KNOWN_TASKS: dict[str, type[Task]] = {
    "settings": SettingsTask,
}


def parse_task(raw: dict[str, Any] | Task) -> Task:
    """Validate a raw task payload into its known kind, or the opaque fallback."""
    if isinstance(raw, Task):
        return raw
    kind = raw.get("type")
    task_class = _KNOWN_TASKS.get(kind, Task) if isinstance(kind, str) else Task
    return task_class.model_validate(raw)


class TaskState(StrEnum):
    """States of the approval handshake.

    Lifecycle flow:
        received -> permission_check -> cached_approve -> executing -> done
        received -> permission_check -> cached_deny -> dropped
        received -> permission_check -> prompt_pending -> acquire_lock
            -> prompt_sent -> await_response -> approved|denied|aborted
            -> release_lock -> executing|dropped
        executing -> failed (storage rejected the write)
    """

    RECEIVED = "received"
    PERMISSION_CHECK = "permission_check"
    CACHED_APPROVE = "cached_approve"
    CACHED_DENY = "cached_deny"
    PROMPT_PENDING = "prompt_pending"
    ACQUIRE_LOCK = "acquire_lock"
    PROMPT_SENT = "prompt_sent"
    AWAIT_RESPONSE = "await_response"
    APPROVED = "approved"
    DENIED = "denied"
    ABORTED = "aborted"
    RELEASE_LOCK = "release_lock"
    EXECUTING = "executing"
    DONE = "done"
    DROPPED = "dropped"
    FAILED = "failed"


TERMINAL_STATES = frozenset({TaskState.DONE, TaskState.DROPPED, TaskState.ABORTED, TaskState.FAILED})


@dataclass
class TaskFlow:
    """Tracks one task through the approval handshake.

    Attributes:
        task: The submitted task.
        task_type: Permission classifier in effect.
        state: Current handshake state.
        history: Every state entered, in order.
        prompt_id: Correlation id when a live prompt was shown.
        key: Storage key once executed.
    """

    task: Task
    task_type: str
    state: TaskState = TaskState.RECEIVED
    history: list[TaskState] = field(default_factory=lambda: [TaskState.RECEIVED])
    prompt_id: str | None = None
    key: str | None = None

    @property
    def finished(self) -> bool:
        return self.state in TERMINAL_STATES

    def advance(self, state: TaskState) -> None:
        """Enter a new state."""
        logger.debug(f"Task [{self.task_type}] {self.state} -> {state}")
        self.state = state
        self.history.append(state)
