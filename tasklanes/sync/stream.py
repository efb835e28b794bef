"""Owner-scoped task stream over a document store subscription."""

import logging
from datetime import datetime, timezone
from typing import AsyncIterator, Callable, Iterable, List, Optional

from tasklanes.engine.ordering import duplicate_orders, sort_tasks
from tasklanes.models.constants import OWNER_FIELD, TASKS_COLLECTION
from tasklanes.models.task import Task
from tasklanes.store.ports import Document, DocumentStore
from tasklanes.sync.codec import DecodeError, decode_task

logger = logging.getLogger(__name__)


def decode_snapshot(documents: Iterable[Document], *, received_at: datetime) -> List[Task]:
    """Decode, sort and sanity-check one full result set.

    Undecodable documents are skipped so that one bad record cannot hide the
    rest of the owner's tasks.
    """
    tasks: List[Task] = []
    for document in documents:
        try:
            tasks.append(decode_task(document, received_at=received_at))
        except DecodeError as e:
            logger.warning(f"Skipping undecodable task {document.id}: {e}")
    tasks = sort_tasks(tasks)

    duplicates = duplicate_orders(tasks)
    if duplicates:
        logger.warning(f"Duplicate order values in snapshot: {duplicates}")
    return tasks


async def watch_tasks(
    store: DocumentStore,
    owner_id: str,
    *,
    clock: Optional[Callable[[], datetime]] = None,
) -> AsyncIterator[List[Task]]:
    """Yield the owner's full, sorted task collection on every change.

    The first item is the current collection. The underlying subscription is
    closed when the consumer stops iterating or is cancelled.
    """
    subscription = store.subscribe(TASKS_COLLECTION, {OWNER_FIELD: owner_id})
    logger.info(f"Task subscription started for user {owner_id}")
    try:
        async for documents in subscription:
            received_at = clock() if clock else datetime.now(timezone.utc)
            yield decode_snapshot(documents, received_at=received_at)
    finally:
        await subscription.close()
        logger.info(f"Task subscription stopped for user {owner_id}")
