"""Error taxonomy for tasklanes.

Every error carries a short machine-readable ``kind`` and the name of the
operation that failed, so a presentation layer can render a notification
without parsing messages.
"""

from typing import Any, Dict, List, Optional


class TaskLanesError(Exception):
    """Base class for all errors raised by the sync engine."""

    kind = "error"

    def __init__(self, message: str, *, operation: Optional[str] = None):
        super().__init__(message)
        self.operation = operation

    def to_dict(self) -> Dict[str, Any]:
        return {
            "error": self.kind,
            "operation": self.operation,
            "detail": str(self),
        }


class ValidationError(TaskLanesError, ValueError):
    """Input rejected locally, before any remote call."""

    kind = "validation_error"

    def __init__(self, message: str, *, operation: Optional[str] = None, fields: Optional[List[str]] = None):
        super().__init__(message, operation=operation)
        self.fields = fields or []

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data["fields"] = self.fields
        return data


class Unauthenticated(TaskLanesError):
    """No current owner is established."""

    kind = "unauthenticated"


class NotFound(TaskLanesError, LookupError):
    """Operation references an id absent from the current snapshot."""

    kind = "not_found"

    def __init__(self, message: str, *, operation: Optional[str] = None, task_id: Optional[str] = None):
        super().__init__(message, operation=operation)
        self.task_id = task_id


class SyncFailed(TaskLanesError):
    """The remote store rejected a write or the subscription failed."""

    kind = "sync_failed"


class StoreError(Exception):
    """Raised by document store adapters when a write or read is rejected."""
