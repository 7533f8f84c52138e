"""Tollgate domain models.

Wire messages, tasks with their approval lifecycle, and the records
exchanged with stores. No dependencies on infrastructure.
"""

from tollgate.model.message import (
    MessageType,
    PromptOutcome,
    PromptResponse,
    dump_message,
    parse_message,
)
from tollgate.model.records import PendingPromptRecord, PermissionRecord, StoreEntry
from tollgate.model.task import (
    DEFAULT_TASK_TYPE,
    SettingsTask,
    Task,
    TaskFlow,
    TaskState,
    parse_task,
)

__all__ = [
    # Messages
    "MessageType",
    "PromptOutcome",
    "PromptResponse",
    "dump_message",
    "parse_message",
    # Tasks
    "DEFAULT_TASK_TYPE",
    "SettingsTask",
    "Task",
    "TaskFlow",
    "TaskState",
    "parse_task",
    # Records
    "PendingPromptRecord",
    "PermissionRecord",
    "StoreEntry",
]
