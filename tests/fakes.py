"""Test doubles and async helpers for tasklanes tests."""

import asyncio
from typing import Callable, List, Optional

from tasklanes.auth.session import AuthSession
from tasklanes.errors import StoreError
from tasklanes.models.user import CurrentUser
from tasklanes.store.memory import InMemoryDocumentStore
from tasklanes.store.ports import WriteOp
from tasklanes.sync.controller import TaskSnapshot, TaskSyncController

WAIT_TIMEOUT = 2.0


class RecordingDocumentStore(InMemoryDocumentStore):
    """In-memory store that records every committed batch and query."""

    def __init__(self, **kwargs):
        super().__init__(**kwargs)
        self.commits: List[List[WriteOp]] = []
        self.queries: List[str] = []

    async def query(self, collection, filters):
        self.queries.append(collection)
        return await super().query(collection, filters)

    async def _commit(self, ops):
        self.commits.append(list(ops))
        await super()._commit(ops)

    @property
    def write_count(self) -> int:
        return len(self.commits)


class FailingDocumentStore(RecordingDocumentStore):
    """Store whose next commit fails at a chosen operation index."""

    def __init__(self, **kwargs):
        super().__init__(**kwargs)
        self._fail_at: Optional[int] = None
        self._op_index = 0

    def fail_next_commit(self, at_op: int = 0) -> None:
        self._fail_at = at_op

    async def _commit(self, ops):
        self._op_index = 0
        await super()._commit(ops)

    def _apply_op(self, staged, op, now):
        if self._fail_at is not None and self._op_index == self._fail_at:
            self._fail_at = None
            raise StoreError(f"injected failure at {op.kind} {op.doc_id}")
        self._op_index += 1
        super()._apply_op(staged, op, now)

    def break_subscriptions(self, collection: str, message: str = "stream lost") -> None:
        self._hub.fail_all(collection, StoreError(message))


class StalledDocumentStore(RecordingDocumentStore):
    """Store whose subscriptions never deliver their first result set."""

    def subscribe(self, collection, filters):
        return self._hub.open(collection, filters, self._never_loads)

    async def _never_loads(self, collection, filters):
        await asyncio.Event().wait()


async def signed_in_controller(store, user: CurrentUser, **kwargs) -> TaskSyncController:
    """Controller following a session already signed in as ``user``, with its first snapshot loaded."""
    controller = TaskSyncController(store, AuthSession(user), **kwargs)
    await controller.start()
    await controller.wait_for(lambda s: not s.loading, timeout=WAIT_TIMEOUT)
    return controller


async def settle(controller: TaskSyncController, predicate: Callable[[TaskSnapshot], bool]) -> TaskSnapshot:
    return await controller.wait_for(predicate, timeout=WAIT_TIMEOUT)
