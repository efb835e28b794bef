"""Document store contract consumed by the sync engine.

The engine never talks to a concrete backend. It depends on the
``DocumentStore`` protocol below: point writes, atomic batches and a
subscription that re-delivers the full filtered result set on every change.
"""

from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Dict, List, Optional, Protocol


class ServerTimestamp:
    """Sentinel replaced by the store's clock when a write is committed."""

    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "SERVER_TIMESTAMP"

    def __deepcopy__(self, memo):
        return self


SERVER_TIMESTAMP = ServerTimestamp()


@dataclass(frozen=True)
class Document:
    """One stored record: its id plus raw field data."""

    id: str
    data: Dict[str, Any]


@dataclass(frozen=True)
class WriteOp:
    """A single write inside a batch."""

    kind: str  # "insert" | "update" | "delete"
    collection: str
    doc_id: str
    fields: Dict[str, Any] = field(default_factory=dict)


class Subscription(Protocol):
    """Async iterator of full result sets for one (collection, filters) query."""

    def __aiter__(self) -> AsyncIterator[List[Document]]: ...
    async def __anext__(self) -> List[Document]: ...
    async def close(self) -> None: ...


class WriteBatch(Protocol):
    """Accumulates writes; ``commit`` applies all of them or none."""

    def insert(self, collection: str, fields: Dict[str, Any], doc_id: Optional[str] = None) -> str: ...
    def update(self, collection: str, doc_id: str, fields: Dict[str, Any]) -> None: ...
    def delete(self, collection: str, doc_id: str) -> None: ...
    async def commit(self) -> None: ...


class DocumentStore(Protocol):
    """Abstract real-time document store."""

    async def query(self, collection: str, filters: Dict[str, Any]) -> List[Document]: ...

    def subscribe(self, collection: str, filters: Dict[str, Any]) -> Subscription: ...

    async def insert(self, collection: str, fields: Dict[str, Any], doc_id: Optional[str] = None) -> str: ...

    async def update(self, collection: str, doc_id: str, fields: Dict[str, Any]) -> None: ...

    async def delete(self, collection: str, doc_id: str) -> None: ...

    def batch(self) -> WriteBatch: ...


def matches(data: Dict[str, Any], filters: Dict[str, Any]) -> bool:
    """Equality filter shared by the store implementations."""
    return all(data.get(key) == value for key, value in filters.items())
