"""Data models for tasklanes."""

from tasklanes.models.task import (
    Task,
    TaskStatus,
    TaskCategory,
    TaskPriority,
    TaskTag,
    TaskAttachment,
    HistoryEntry,
    HistoryAction,
    TaskDraft,
    TaskUpdate,
)
from tasklanes.models.user import CurrentUser

__all__ = [
    "Task",
    "TaskStatus",
    "TaskCategory",
    "TaskPriority",
    "TaskTag",
    "TaskAttachment",
    "HistoryEntry",
    "HistoryAction",
    "TaskDraft",
    "TaskUpdate",
    "CurrentUser",
]
