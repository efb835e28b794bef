"""In-memory document store.

Reference implementation of the ``DocumentStore`` protocol: transactional
batches over a staged copy, a non-decreasing server clock and full-snapshot
subscriptions. Used for local development and tests.
"""

import copy
import logging
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

from tasklanes.errors import StoreError
from tasklanes.store.batch import BufferedWriteBatch, ServerClock, resolve_server_timestamps
from tasklanes.store.hub import QuerySubscription, SnapshotHub
from tasklanes.store.ports import Document, WriteOp, matches

logger = logging.getLogger(__name__)

Collections = Dict[str, Dict[str, Dict[str, Any]]]


class InMemoryDocumentStore:
    """Dictionary-backed store with atomic batches and live subscriptions."""

    def __init__(self, clock: Optional[Callable[[], datetime]] = None):
        self._collections: Collections = {}
        self._hub = SnapshotHub()
        self._clock = ServerClock(clock)

    def server_now(self) -> datetime:
        return self._clock.now()

    # ---- reads ----

    async def _load(self, collection: str, filters: Dict[str, Any]) -> List[Document]:
        docs = self._collections.get(collection, {})
        return [
            Document(id=doc_id, data=copy.deepcopy(data))
            for doc_id, data in docs.items()
            if matches(data, filters)
        ]

    async def query(self, collection: str, filters: Dict[str, Any]) -> List[Document]:
        return await self._load(collection, filters)

    def subscribe(self, collection: str, filters: Dict[str, Any]) -> QuerySubscription:
        return self._hub.open(collection, filters, self._load)

    def subscription_count(self) -> int:
        return self._hub.count()

    # ---- writes ----

    def batch(self) -> BufferedWriteBatch:
        return BufferedWriteBatch(self._commit)

    async def insert(self, collection: str, fields: Dict[str, Any], doc_id: Optional[str] = None) -> str:
        batch = self.batch()
        doc_id = batch.insert(collection, fields, doc_id)
        await batch.commit()
        return doc_id

    async def update(self, collection: str, doc_id: str, fields: Dict[str, Any]) -> None:
        batch = self.batch()
        batch.update(collection, doc_id, fields)
        await batch.commit()

    async def delete(self, collection: str, doc_id: str) -> None:
        batch = self.batch()
        batch.delete(collection, doc_id)
        await batch.commit()

    async def _commit(self, ops: List[WriteOp]) -> None:
        now = self.server_now()
        staged = copy.deepcopy(self._collections)
        for op in ops:
            self._apply_op(staged, op, now)
        self._collections = staged
        logger.debug(f"Committed {len(ops)} write(s) at {now.isoformat()}")
        await self._hub.broadcast({op.collection for op in ops}, self._load)

    def _apply_op(self, staged: Collections, op: WriteOp, now: datetime) -> None:
        docs = staged.setdefault(op.collection, {})
        if op.kind == "insert":
            if op.doc_id in docs:
                raise StoreError(f"Document already exists: {op.collection}/{op.doc_id}")
            docs[op.doc_id] = resolve_server_timestamps(op.fields, now)
        elif op.kind == "update":
            if op.doc_id not in docs:
                raise StoreError(f"No document to update: {op.collection}/{op.doc_id}")
            docs[op.doc_id].update(resolve_server_timestamps(op.fields, now))
        elif op.kind == "delete":
            docs.pop(op.doc_id, None)
        else:
            raise StoreError(f"Unknown write kind: {op.kind}")
