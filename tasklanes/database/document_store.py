"""SQLAlchemy-backed document store.

Documents live in a single ``documents`` table as JSON payloads. Blocking
SQLAlchemy work runs on one dedicated worker thread, so the event loop never
blocks and at most one session is active at a time.
"""

import asyncio
import functools
import logging
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from tasklanes.database.database import init_db, make_engine, make_session_factory
from tasklanes.database.models import DocumentDB, naive_utc, to_json_value
from tasklanes.errors import StoreError
from tasklanes.models.constants import OWNER_FIELD
from tasklanes.store.batch import BufferedWriteBatch, ServerClock, resolve_server_timestamps
from tasklanes.store.hub import QuerySubscription, SnapshotHub
from tasklanes.store.ports import Document, WriteOp, matches

logger = logging.getLogger(__name__)


class SqlDocumentStore:
    """Document store over a relational database, with live subscriptions."""

    def __init__(self, session_factory: sessionmaker, *, clock: Optional[Callable[[], datetime]] = None):
        self._session_factory = session_factory
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="tasklanes-db")
        self._hub = SnapshotHub()
        self._clock = ServerClock(clock)

    @classmethod
    def from_url(cls, database_url: str, **kwargs) -> "SqlDocumentStore":
        """Build a store for ``database_url``, creating the schema if needed."""
        engine = make_engine(database_url)
        init_db(engine)
        return cls(make_session_factory(engine), **kwargs)

    def server_now(self) -> datetime:
        return self._clock.now()

    async def _run(self, fn, *args):
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(self._executor, functools.partial(fn, *args))

    def close(self) -> None:
        self._executor.shutdown(wait=True)

    # ---- reads ----

    def _load_sync(self, collection: str, filters: Dict[str, Any]) -> List[Document]:
        session: Session = self._session_factory()
        try:
            query = session.query(DocumentDB).filter(DocumentDB.collection == collection)
            if OWNER_FIELD in filters:
                query = query.filter(DocumentDB.user_id == filters[OWNER_FIELD])
            return [row.to_document() for row in query.all() if matches(row.data or {}, filters)]
        except SQLAlchemyError as e:
            logger.error(f"Failed to read {collection}: {type(e).__name__}: {str(e)}")
            raise StoreError(f"Failed to read {collection}: {e}") from e
        finally:
            session.close()

    async def _load(self, collection: str, filters: Dict[str, Any]) -> List[Document]:
        return await self._run(self._load_sync, collection, filters)

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
        await self._run(self._commit_sync, ops, now)
        logger.debug(f"Committed {len(ops)} write(s) at {now.isoformat()}")
        await self._hub.broadcast({op.collection for op in ops}, self._load)

    def _commit_sync(self, ops: List[WriteOp], now: datetime) -> None:
        session: Session = self._session_factory()
        try:
            for op in ops:
                self._apply_op(session, op, now)
                session.flush()
            session.commit()
        except StoreError as e:
            session.rollback()
            logger.error(f"Rolled back batch of {len(ops)} write(s): {str(e)}")
            raise
        except SQLAlchemyError as e:
            session.rollback()
            logger.error(f"Failed to commit batch of {len(ops)} write(s): {type(e).__name__}: {str(e)}")
            raise StoreError(f"Failed to commit batch: {e}") from e
        finally:
            session.close()

    def _apply_op(self, session: Session, op: WriteOp, now: datetime) -> None:
        row = session.get(DocumentDB, (op.collection, op.doc_id))
        if op.kind == "insert":
            if row is not None:
                raise StoreError(f"Document already exists: {op.collection}/{op.doc_id}")
            data = to_json_value(resolve_server_timestamps(op.fields, now))
            session.add(DocumentDB.from_fields(op.collection, op.doc_id, data, now))
        elif op.kind == "update":
            if row is None:
                raise StoreError(f"No document to update: {op.collection}/{op.doc_id}")
            # Assign a new dict so the JSON column is marked dirty
            data = {**(row.data or {}), **to_json_value(resolve_server_timestamps(op.fields, now))}
            row.data = data
            row.user_id = data.get(OWNER_FIELD)
            row.updated_at = naive_utc(now)
        elif op.kind == "delete":
            if row is not None:
                session.delete(row)
        else:
            raise StoreError(f"Unknown write kind: {op.kind}")
