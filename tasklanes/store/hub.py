"""Subscription fan-out shared by the document store implementations.

Each open subscription holds at most one undelivered result set. Every
notification is a complete, filtered read of the collection, so a newer
result set simply replaces an older one that nobody consumed yet.
"""

import asyncio
import logging
from typing import Any, Awaitable, Callable, Dict, List, Optional

from tasklanes.errors import StoreError
from tasklanes.store.ports import Document

logger = logging.getLogger(__name__)

Loader = Callable[[str, Dict[str, Any]], Awaitable[List[Document]]]


class QuerySubscription:
    """Async iterator over full result sets for one (collection, filters) query.

    The first iteration reads the current result set; later iterations wait
    for the store to push a refreshed one after a commit.
    """

    def __init__(self, hub: "SnapshotHub", collection: str, filters: Dict[str, Any], loader: Loader):
        self.collection = collection
        self.filters = dict(filters)
        self._hub = hub
        self._loader = loader
        self._pending: Optional[List[Document]] = None
        self._error: Optional[BaseException] = None
        self._primed = False
        self._closed = False
        self._ready = asyncio.Event()

    @property
    def closed(self) -> bool:
        return self._closed

    def push(self, documents: List[Document]) -> None:
        """Queue a fresh result set, replacing any undelivered one."""
        if self._closed:
            return
        self._pending = documents
        self._primed = True
        self._ready.set()

    def fail(self, error: BaseException) -> None:
        """Report a stream error; it is raised after pending results drain."""
        if self._closed:
            return
        self._error = error
        self._ready.set()

    def __aiter__(self):
        return self

    async def __anext__(self) -> List[Document]:
        if not self._primed and not self._closed:
            self._primed = True
            try:
                return await self._loader(self.collection, self.filters)
            except StoreError:
                self._hub.remove(self)
                raise

        while True:
            if self._pending is not None:
                documents, self._pending = self._pending, None
                return documents
            if self._error is not None:
                error, self._error = self._error, None
                self._hub.remove(self)
                self._closed = True
                raise error
            if self._closed:
                raise StopAsyncIteration
            self._ready.clear()
            await self._ready.wait()

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._pending = None
        self._hub.remove(self)
        self._ready.set()


class SnapshotHub:
    """Registry of open subscriptions with per-collection broadcast."""

    def __init__(self):
        self._subscriptions: List[QuerySubscription] = []

    def open(self, collection: str, filters: Dict[str, Any], loader: Loader) -> QuerySubscription:
        subscription = QuerySubscription(self, collection, filters, loader)
        self._subscriptions.append(subscription)
        logger.debug(f"Subscription opened on {collection} {filters}. Total: {len(self._subscriptions)}")
        return subscription

    def remove(self, subscription: QuerySubscription) -> None:
        if subscription in self._subscriptions:
            self._subscriptions.remove(subscription)
            logger.debug(f"Subscription closed on {subscription.collection}. Total: {len(self._subscriptions)}")

    def count(self) -> int:
        return len(self._subscriptions)

    async def broadcast(self, collections, loader: Loader) -> None:
        """Re-read and push the result set of every subscription on the given collections."""
        targets = [s for s in list(self._subscriptions) if s.collection in collections and not s.closed]
        for subscription in targets:
            try:
                documents = await loader(subscription.collection, subscription.filters)
            except StoreError as e:
                logger.error(f"Failed to refresh subscription on {subscription.collection}: {e}")
                subscription.fail(e)
                continue
            subscription.push(documents)
        if targets:
            logger.debug(f"Broadcast completed: {len(targets)} subscription(s) refreshed")

    def fail_all(self, collection: str, error: BaseException) -> None:
        """Push an error into every subscription on a collection."""
        for subscription in [s for s in self._subscriptions if s.collection == collection]:
            subscription.fail(error)
