"""Task data model for tasklanes."""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Union, TypeVar

from pydantic import BaseModel, Field, PrivateAttr, field_validator, model_validator

T = TypeVar("T")


class TaskStatus(str, Enum):
    """Lane a task renders in."""
    TODO = "todo"
    IN_PROGRESS = "in-progress"
    COMPLETED = "completed"


class TaskCategory(str, Enum):
    """Task category enumeration."""
    WORK = "work"
    PERSONAL = "personal"
    EDUCATION = "education"
    HEALTH = "health"
    FINANCE = "finance"
    OTHER = "other"


class TaskPriority(str, Enum):
    """Task priority enumeration."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class HistoryAction(str, Enum):
    """Kinds of mutation recorded in a task's history."""
    CREATED = "created"
    UPDATED = "updated"
    COMPLETED = "completed"
    DELETED = "deleted"
    MOVED = "moved"


# Fields a TaskUpdate may never touch.
PROTECTED_FIELDS = frozenset({"id", "user_id", "created_at", "updated_at", "history", "order"})


def enum_to_value(enum_obj: Union[str, T]) -> str:
    """Convert enum to string value (handles both enum and string)."""
    if hasattr(enum_obj, "value"):
        return enum_obj.value
    return str(enum_obj)


def ensure_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Treat naive datetimes as UTC so every instant is comparable."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _dedupe_tags(tags: List["TaskTag"]) -> List["TaskTag"]:
    # Deduplicate by id but preserve order (first occurrence wins)
    seen = set()
    out: List[TaskTag] = []
    for tag in tags:
        if tag.id not in seen:
            seen.add(tag.id)
            out.append(tag)
    return out


def _require_title(value: Optional[str]) -> str:
    if not isinstance(value, str) or not value.strip():
        raise ValueError("title must not be empty")
    return value


class TaskTag(BaseModel):
    """A colored label attached to tasks."""

    id: str = Field(..., description="Tag identifier (unique per tag)")
    name: str = Field(..., min_length=1, description="Display name")
    color: str = Field(..., description="Display color, e.g. '#4285F4'")

    class Config:
        """Pydantic configuration."""
        frozen = True


class HistoryEntry(BaseModel):
    """One immutable fact about a mutation of a task."""

    id: str = Field(..., description="History entry identifier")
    timestamp: datetime = Field(..., description="When the mutation was issued (client clock)")
    action: HistoryAction = Field(..., description="What happened")
    details: Optional[str] = Field(None, description="Free text, e.g. 'from todo to in-progress'")

    class Config:
        """Pydantic configuration."""
        use_enum_values = True
        frozen = True

    @field_validator("timestamp")
    @classmethod
    def _validate_timestamp(cls, v):
        return ensure_utc(v)


class TaskAttachment(BaseModel):
    """Attachment metadata; the content itself lives elsewhere."""

    id: str
    name: str
    url: str
    type: str
    uploaded_at: datetime

    class Config:
        """Pydantic configuration."""
        frozen = True

    @field_validator("uploaded_at")
    @classmethod
    def _validate_uploaded_at(cls, v):
        return ensure_utc(v)


class Task(BaseModel):
    """Canonical Task model, as decoded from an authoritative snapshot."""

    id: str = Field(..., description="Store-assigned identifier")
    user_id: str = Field(..., description="Owner of this task")
    title: str = Field(..., description="Task title")
    description: Optional[str] = Field(None, description="Task description")
    category: TaskCategory = Field(TaskCategory.WORK, description="Task category")
    priority: TaskPriority = Field(TaskPriority.MEDIUM, description="Task priority")
    status: TaskStatus = Field(TaskStatus.TODO, description="Lane")
    due_date: Optional[datetime] = Field(None, description="Optional due date")
    created_at: datetime = Field(..., description="Server-assigned creation timestamp")
    updated_at: datetime = Field(..., description="Server-assigned last mutation timestamp")
    tags: List[TaskTag] = Field(default_factory=list, description="Tags, unique by id")
    history: List[HistoryEntry] = Field(default_factory=list, description="Append-only change history")
    attachments: List[TaskAttachment] = Field(default_factory=list, description="Attachment metadata")
    order: int = Field(0, description="Position within the lane (ascending)")

    class Config:
        """Pydantic configuration."""
        use_enum_values = True
        frozen = True

    @field_validator("due_date", "created_at", "updated_at")
    @classmethod
    def _validate_instants(cls, v):
        return ensure_utc(v)

    @field_validator("tags")
    @classmethod
    def _validate_tags(cls, v):
        return _dedupe_tags(v)


class TaskDraft(BaseModel):
    """Input for creating a task (no id, owner, timestamps, history or order)."""

    title: str
    description: Optional[str] = None
    category: TaskCategory = TaskCategory.WORK
    priority: TaskPriority = TaskPriority.MEDIUM
    status: TaskStatus = TaskStatus.TODO
    due_date: Optional[datetime] = None
    tags: List[TaskTag] = Field(default_factory=list)
    attachments: List[TaskAttachment] = Field(default_factory=list)

    class Config:
        """Pydantic configuration."""
        use_enum_values = True
        extra = "forbid"

    @field_validator("title")
    @classmethod
    def _validate_title(cls, v):
        return _require_title(v)

    @field_validator("due_date")
    @classmethod
    def _validate_due_date(cls, v):
        return ensure_utc(v)

    @field_validator("tags")
    @classmethod
    def _validate_tags(cls, v):
        return _dedupe_tags(v)


class TaskUpdate(BaseModel):
    """Partial update. Only explicitly provided fields are written."""

    title: Optional[str] = None
    description: Optional[str] = None
    category: Optional[TaskCategory] = None
    priority: Optional[TaskPriority] = None
    status: Optional[TaskStatus] = None
    due_date: Optional[datetime] = None
    tags: Optional[List[TaskTag]] = None
    attachments: Optional[List[TaskAttachment]] = None

    # Field names in the order the caller supplied them
    _supplied_order: List[str] = PrivateAttr(default_factory=list)

    class Config:
        """Pydantic configuration."""
        use_enum_values = True
        extra = "forbid"

    @model_validator(mode="wrap")
    @classmethod
    def _remember_key_order(cls, data, handler):
        update = handler(data)
        if isinstance(data, dict):
            update._supplied_order = [key for key in data if key in cls.model_fields]
        return update

    @field_validator("title", mode="before")
    @classmethod
    def _validate_title(cls, v):
        return _require_title(v)

    @field_validator("category", "priority", "status", "tags", "attachments", mode="before")
    @classmethod
    def _reject_null(cls, v, info):
        if v is None:
            raise ValueError(f"{info.field_name} cannot be cleared")
        return v

    @field_validator("due_date")
    @classmethod
    def _validate_due_date(cls, v):
        return ensure_utc(v)

    @field_validator("tags")
    @classmethod
    def _validate_tags(cls, v):
        return _dedupe_tags(v)

    def changes(self) -> Dict[str, Any]:
        """Fields the caller actually set, in the order they were supplied."""
        names = [name for name in self._supplied_order if name in self.model_fields_set]
        names += [name for name in type(self).model_fields if name in self.model_fields_set and name not in names]
        return {name: getattr(self, name) for name in names}
