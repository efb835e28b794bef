"""Document store contract and reference implementation."""

from tasklanes.store.ports import (
    SERVER_TIMESTAMP,
    Document,
    DocumentStore,
    Subscription,
    WriteBatch,
    WriteOp,
)
from tasklanes.store.memory import InMemoryDocumentStore

__all__ = [
    "SERVER_TIMESTAMP",
    "Document",
    "DocumentStore",
    "Subscription",
    "WriteBatch",
    "WriteOp",
    "InMemoryDocumentStore",
]
