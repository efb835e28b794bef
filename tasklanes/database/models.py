"""SQLAlchemy database models for tasklanes."""

from datetime import date, datetime, timezone
from typing import Any, Dict

from sqlalchemy import Column, String, DateTime, JSON

from tasklanes.database.database import Base
from tasklanes.models.constants import OWNER_FIELD
from tasklanes.store.ports import Document


def to_json_value(value: Any) -> Any:
    """Convert a field value into something the JSON column can hold.

    Datetimes are stored as ISO-8601 strings in UTC.
    """
    if isinstance(value, datetime):
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc).isoformat()
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, dict):
        return {key: to_json_value(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [to_json_value(item) for item in value]
    return value


def naive_utc(value: datetime) -> datetime:
    """Naive UTC datetime for DateTime columns."""
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


class DocumentDB(Base):
    """Database model for one stored document."""

    __tablename__ = "documents"

    # Composite primary key: a document id is unique within its collection
    collection = Column(String, primary_key=True)
    id = Column(String, primary_key=True)

    # Owner scoping, copied out of the JSON payload so it can be indexed
    user_id = Column(String, nullable=True, index=True)

    data = Column(JSON, nullable=False, default=dict)

    # Timestamps (naive UTC)
    created_at = Column(DateTime, nullable=False)
    updated_at = Column(DateTime, nullable=False)

    def to_document(self) -> Document:
        return Document(id=self.id, data=dict(self.data or {}))

    @classmethod
    def from_fields(cls, collection: str, doc_id: str, data: Dict[str, Any], now: datetime) -> "DocumentDB":
        return cls(
            collection=collection,
            id=doc_id,
            user_id=data.get(OWNER_FIELD),
            data=data,
            created_at=naive_utc(now),
            updated_at=naive_utc(now),
        )
