"""Boundary between raw store documents and typed Task models.

Timestamps reach us in several shapes depending on the backend and on whether
the server has resolved them yet. Each raw value is classified first and then
decoded explicitly, so nothing past this module ever sees an ambiguous
timestamp.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ValidationError as PydanticValidationError

from tasklanes.models.task import HistoryEntry, Task, TaskAttachment, TaskTag, ensure_utc
from tasklanes.store.ports import SERVER_TIMESTAMP, Document


class DecodeError(ValueError):
    """A stored document cannot be turned into a Task."""

    def __init__(self, message: str, *, doc_id: Optional[str] = None):
        super().__init__(message)
        self.doc_id = doc_id


class TimestampKind(str, Enum):
    """Shapes a stored timestamp can take."""
    MISSING = "missing"
    PENDING = "pending"            # server timestamp not resolved yet
    DATETIME = "datetime"
    ISO_STRING = "iso_string"
    EPOCH = "epoch"
    SECONDS_NANOS = "seconds_nanos"  # {"seconds": ..., "nanoseconds": ...}
    INVALID = "invalid"


def classify_timestamp(value: Any) -> TimestampKind:
    if value is None:
        return TimestampKind.MISSING
    if value is SERVER_TIMESTAMP:
        return TimestampKind.PENDING
    if isinstance(value, datetime):
        return TimestampKind.DATETIME
    if isinstance(value, str):
        return TimestampKind.ISO_STRING
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return TimestampKind.EPOCH
    if isinstance(value, dict) and "seconds" in value:
        return TimestampKind.SECONDS_NANOS
    return TimestampKind.INVALID


def decode_timestamp(value: Any, *, fallback: Optional[datetime] = None, field: str = "timestamp") -> datetime:
    """Decode one stored timestamp into an aware UTC datetime.

    Args:
        value: Raw stored value
        fallback: Used when the value is missing or still pending on the server
        field: Field name, for error messages

    Returns:
        Aware UTC datetime

    Raises:
        DecodeError: If the value is malformed, or missing with no fallback
    """
    kind = classify_timestamp(value)
    try:
        if kind in (TimestampKind.MISSING, TimestampKind.PENDING):
            if fallback is None:
                raise DecodeError(f"{field} is {kind.value}")
            return ensure_utc(fallback)
        if kind == TimestampKind.DATETIME:
            return ensure_utc(value)
        if kind == TimestampKind.ISO_STRING:
            return ensure_utc(datetime.fromisoformat(value.replace("Z", "+00:00")))
        if kind == TimestampKind.EPOCH:
            return datetime.fromtimestamp(value, tz=timezone.utc)
        if kind == TimestampKind.SECONDS_NANOS:
            seconds = value["seconds"] + value.get("nanoseconds", 0) / 1_000_000_000
            return datetime.fromtimestamp(seconds, tz=timezone.utc)
    except (ValueError, TypeError, OverflowError, OSError) as e:
        if isinstance(e, DecodeError):
            raise
        raise DecodeError(f"{field} could not be decoded: {e}") from e
    raise DecodeError(f"{field} has unsupported type {type(value).__name__}")


def decode_optional_timestamp(value: Any, *, field: str) -> Optional[datetime]:
    if classify_timestamp(value) == TimestampKind.MISSING:
        return None
    return decode_timestamp(value, field=field)


def decode_task(document: Document, *, received_at: datetime) -> Task:
    """Decode a stored task document.

    Server timestamps that are still pending fall back to the moment the
    snapshot was received.
    """
    data = document.data
    try:
        created_at = decode_timestamp(data.get("created_at"), fallback=received_at, field="created_at")
        updated_at = decode_timestamp(data.get("updated_at"), fallback=created_at, field="updated_at")
        history = [
            HistoryEntry(
                id=str(entry.get("id", "")),
                timestamp=decode_timestamp(entry.get("timestamp"), fallback=received_at, field="history.timestamp"),
                action=entry.get("action"),
                details=entry.get("details"),
            )
            for entry in data.get("history") or []
        ]
        attachments = [
            TaskAttachment(
                id=item.get("id"),
                name=item.get("name"),
                url=item.get("url"),
                type=item.get("type"),
                uploaded_at=decode_timestamp(item.get("uploaded_at"), fallback=received_at, field="attachments.uploaded_at"),
            )
            for item in data.get("attachments") or []
        ]
        return Task(
            id=document.id,
            user_id=data.get("user_id"),
            title=data.get("title"),
            description=data.get("description"),
            category=data.get("category"),
            priority=data.get("priority"),
            status=data.get("status"),
            due_date=decode_optional_timestamp(data.get("due_date"), field="due_date"),
            created_at=created_at,
            updated_at=updated_at,
            tags=[TaskTag(**tag) for tag in data.get("tags") or []],
            history=history,
            attachments=attachments,
            order=data.get("order", 0),
        )
    except DecodeError as e:
        e.doc_id = document.id
        raise
    except (PydanticValidationError, TypeError, AttributeError) as e:
        raise DecodeError(f"Task {document.id} is malformed: {e}", doc_id=document.id) from e


def encode_value(value: Any) -> Any:
    """Plain store representation of a model value (enums, models, lists)."""
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, BaseModel):
        return {k: encode_value(v) for k, v in value.model_dump().items()}
    if isinstance(value, list):
        return [encode_value(v) for v in value]
    if isinstance(value, dict):
        return {k: encode_value(v) for k, v in value.items()}
    return value


def encode_fields(fields: Dict[str, Any]) -> Dict[str, Any]:
    return {key: encode_value(value) for key, value in fields.items()}


def to_document_list(tasks: List[Task]) -> List[Dict[str, Any]]:
    """JSON-ready task dicts, for API responses and WebSocket payloads."""
    return [task.model_dump(mode="json") for task in tasks]
