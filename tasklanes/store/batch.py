"""Write batching and commit-time helpers shared by the store implementations."""

import copy
import uuid
from datetime import datetime, timedelta, timezone
from typing import Any, Awaitable, Callable, Dict, List, Optional

from tasklanes.store.ports import SERVER_TIMESTAMP, WriteOp


def new_document_id() -> str:
    return uuid.uuid4().hex


class ServerClock:
    """Commit clock that never goes backwards, even if the wall clock does."""

    def __init__(self, clock: Optional[Callable[[], datetime]] = None):
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._last: Optional[datetime] = None

    def now(self) -> datetime:
        now = self._clock()
        if self._last is not None and now <= self._last:
            now = self._last + timedelta(microseconds=1)
        self._last = now
        return now


def resolve_server_timestamps(fields: Dict[str, Any], now: datetime) -> Dict[str, Any]:
    """Copy of ``fields`` with every top-level SERVER_TIMESTAMP replaced by ``now``."""
    return {
        key: now if value is SERVER_TIMESTAMP else copy.deepcopy(value)
        for key, value in fields.items()
    }


class BufferedWriteBatch:
    """Collects insert/update/delete operations and hands them to the store on commit.

    The store applies the whole list in one transaction, so either every
    operation lands or none does.
    """

    def __init__(self, apply: Callable[[List[WriteOp]], Awaitable[None]]):
        self._apply = apply
        self._ops: List[WriteOp] = []
        self._committed = False

    @property
    def ops(self) -> List[WriteOp]:
        return list(self._ops)

    def __len__(self) -> int:
        return len(self._ops)

    def insert(self, collection: str, fields: Dict[str, Any], doc_id: Optional[str] = None) -> str:
        doc_id = doc_id or new_document_id()
        self._ops.append(WriteOp("insert", collection, doc_id, dict(fields)))
        return doc_id

    def update(self, collection: str, doc_id: str, fields: Dict[str, Any]) -> None:
        self._ops.append(WriteOp("update", collection, doc_id, dict(fields)))

    def delete(self, collection: str, doc_id: str) -> None:
        self._ops.append(WriteOp("delete", collection, doc_id))

    def add(self, op: WriteOp) -> None:
        self._ops.append(op)

    async def commit(self) -> None:
        if self._committed:
            raise RuntimeError("Batch already committed")
        self._committed = True
        if self._ops:
            await self._apply(list(self._ops))
