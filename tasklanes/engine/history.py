"""History recording for tasklanes.

Every accepted mutation appends exactly one entry, written in the same store
operation as the mutation itself. Entries are never edited or removed.
"""

import uuid
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional, Sequence, Union

from tasklanes.models.task import HistoryAction, HistoryEntry, TaskStatus, enum_to_value


def new_history_entry(
    action: Union[HistoryAction, str],
    details: Optional[str] = None,
    *,
    now: Optional[datetime] = None,
) -> HistoryEntry:
    """Create a history entry stamped with the client clock at issue time."""
    return HistoryEntry(
        id=uuid.uuid4().hex,
        timestamp=now or datetime.now(timezone.utc),
        action=HistoryAction(enum_to_value(action)),
        details=details,
    )


def append_history(history: Sequence[HistoryEntry], entry: HistoryEntry) -> List[HistoryEntry]:
    """Return a new history list with ``entry`` at the end."""
    return [*history, entry]


def move_details(source: Union[TaskStatus, str], destination: Union[TaskStatus, str]) -> str:
    return f"from {enum_to_value(source)} to {enum_to_value(destination)}"


def changed_fields_details(fields: Iterable[str]) -> str:
    return ", ".join(fields)


def history_payload(history: Sequence[HistoryEntry]) -> List[Dict[str, Any]]:
    """Serialize a history list for a document write."""
    return [entry.model_dump() for entry in history]
