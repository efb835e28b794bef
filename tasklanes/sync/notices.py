"""User-facing notifications for task mutations."""

import inspect
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, List, Optional, Union

from tasklanes.errors import TaskLanesError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Notice:
    """Outcome of one mutation, ready to show as a toast."""

    operation: str
    ok: bool
    message: str
    error_kind: Optional[str] = None


NoticeListener = Callable[[Notice], Union[None, Awaitable[None]]]

SUCCESS_MESSAGES = {
    "create": "Task created successfully",
    "update": "Task updated successfully",
    "delete": "Task deleted successfully",
    "delete_batch": "{count} tasks deleted successfully",
    "complete": "Task marked as completed",
    "move": "Task moved to {status}",
    "reorder": "Task order updated",
}

FAILURE_MESSAGES = {
    "create": "Failed to create task",
    "update": "Failed to update task",
    "delete": "Failed to delete task",
    "delete_batch": "Failed to delete tasks",
    "complete": "Failed to complete task",
    "move": "Failed to move task",
    "reorder": "Failed to reorder tasks",
    "subscribe": "Failed to load tasks",
}


def success_notice(operation: str, **details) -> Notice:
    message = SUCCESS_MESSAGES.get(operation, "Done").format(**details)
    return Notice(operation=operation, ok=True, message=message)


def failure_notice(operation: str, error: TaskLanesError) -> Notice:
    return Notice(
        operation=operation,
        ok=False,
        message=FAILURE_MESSAGES.get(operation, "Operation failed"),
        error_kind=error.kind,
    )


class NoticeBus:
    """Fans notices out to registered listeners (sync or async)."""

    def __init__(self):
        self._listeners: List[NoticeListener] = []

    def add(self, listener: NoticeListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def remove() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return remove

    async def publish(self, notice: Notice) -> None:
        if notice.ok:
            logger.debug(f"{notice.operation}: {notice.message}")
        else:
            logger.warning(f"{notice.operation} failed ({notice.error_kind}): {notice.message}")
        for listener in list(self._listeners):
            result = listener(notice)
            if inspect.isawaitable(result):
                await result
