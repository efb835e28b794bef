"""Synchronization controller.

Owns the signed-in user's task collection as an immutable, versioned
snapshot. Mutations are validated against the current snapshot, written to
the store, and become visible only when the store's subscription delivers
the next authoritative snapshot. Nothing is merged optimistically.
"""

import asyncio
import functools
import logging
from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import (
    Any,
    AsyncIterator,
    Callable,
    Dict,
    Iterable,
    List,
    Optional,
    Tuple,
    Type,
    TypeVar,
    Union,
)

from pydantic import BaseModel, ValidationError as PydanticValidationError

from tasklanes.auth.session import AuthSession
from tasklanes.engine.ordering import lane_tasks
from tasklanes.engine.transactions import (
    build_complete_op,
    build_create_fields,
    build_delete_ops,
    build_move_op,
    build_reorder_ops,
    build_update_op,
)
from tasklanes.engine.views import collect_tags
from tasklanes.errors import (
    NotFound,
    StoreError,
    SyncFailed,
    TaskLanesError,
    Unauthenticated,
    ValidationError,
)
from tasklanes.models.constants import TASKS_COLLECTION
from tasklanes.models.task import (
    PROTECTED_FIELDS,
    Task,
    TaskDraft,
    TaskStatus,
    TaskTag,
    TaskUpdate,
    enum_to_value,
)
from tasklanes.models.user import CurrentUser
from tasklanes.store.ports import DocumentStore, WriteOp
from tasklanes.sync.notices import (
    NoticeBus,
    NoticeListener,
    failure_notice,
    success_notice,
)
from tasklanes.sync.stream import watch_tasks

logger = logging.getLogger(__name__)

M = TypeVar("M", bound=BaseModel)

SnapshotPredicate = Callable[["TaskSnapshot"], bool]

# Upper bound on waiting for this controller's previous write to come back
# through the subscription before the next mutation reads the snapshot
CATCH_UP_TIMEOUT_SEC = 5.0


@dataclass(frozen=True)
class TaskSnapshot:
    """Authoritative view of one owner's tasks at one point in time."""

    version: int = 0
    owner_id: Optional[str] = None
    tasks: Tuple[Task, ...] = field(default_factory=tuple)
    loading: bool = False
    error: Optional[TaskLanesError] = None

    def get(self, task_id: str) -> Optional[Task]:
        for task in self.tasks:
            if task.id == task_id:
                return task
        return None

    def by_status(self, status: Union[TaskStatus, str]) -> List[Task]:
        return lane_tasks(self.tasks, status)


def _reports(operation: str):
    """Run a mutation on a caught-up snapshot and publish a notice for any error.

    Mutations of one controller run one at a time. Store errors are
    translated into ``SyncFailed``.
    """
    def decorator(method):
        @functools.wraps(method)
        async def wrapper(self: "TaskSyncController", *args, **kwargs):
            async with self._write_lock:
                await self._catch_up(operation)
                try:
                    return await method(self, *args, **kwargs)
                except StoreError as e:
                    logger.error(f"Store rejected {operation}: {type(e).__name__}: {str(e)}")
                    error = SyncFailed(f"Store rejected {operation}: {e}", operation=operation)
                    await self._notices.publish(failure_notice(operation, error))
                    raise error from e
                except TaskLanesError as e:
                    await self._notices.publish(failure_notice(operation, e))
                    raise
        return wrapper
    return decorator


def _present(task_id: str) -> SnapshotPredicate:
    return lambda snapshot: snapshot.get(task_id) is not None


def _absent(task_ids: Iterable[str]) -> SnapshotPredicate:
    task_ids = list(task_ids)
    return lambda snapshot: all(snapshot.get(task_id) is None for task_id in task_ids)


def _rewritten(task: Task) -> SnapshotPredicate:
    """True once the snapshot holds a newer write of ``task`` (or no longer holds it)."""
    def predicate(snapshot: TaskSnapshot) -> bool:
        current = snapshot.get(task.id)
        return current is None or current.updated_at != task.updated_at
    return predicate


def _parse(model: Type[M], data: Any, operation: str) -> M:
    if isinstance(data, model):
        return data
    try:
        return model.model_validate(data)
    except PydanticValidationError as e:
        fields = [".".join(str(part) for part in err["loc"]) for err in e.errors()]
        protected = sorted(PROTECTED_FIELDS.intersection(fields))
        if protected:
            message = f"Fields cannot be written directly: {', '.join(protected)}"
        else:
            message = "; ".join(f"{loc or 'input'}: {err['msg']}" for loc, err in zip(fields, e.errors()))
        raise ValidationError(message, operation=operation, fields=fields) from e


def _parse_status(value: Any, operation: str, name: str = "status") -> str:
    try:
        return TaskStatus(enum_to_value(value)).value
    except ValueError as e:
        raise ValidationError(f"Unknown {name}: {value!r}", operation=operation, fields=[name]) from e


def _as_unique_ids(task_ids: Iterable[str]) -> List[str]:
    """Deduplicate while preserving order."""
    seen = set()
    unique: List[str] = []
    for task_id in task_ids:
        if task_id not in seen:
            seen.add(task_id)
            unique.append(task_id)
    return unique


class TaskSyncController:
    """Keeps a local snapshot of the current owner's tasks in sync with the store."""

    def __init__(
        self,
        store: DocumentStore,
        session: Optional[AuthSession] = None,
        *,
        clock: Optional[Callable[[], datetime]] = None,
        catch_up_timeout: float = CATCH_UP_TIMEOUT_SEC,
    ):
        self._store = store
        self._session = session
        self._clock = clock
        self._catch_up_timeout = catch_up_timeout
        self._write_lock = asyncio.Lock()
        # Holds once the snapshot reflects the last write this controller committed
        self._last_write: Optional[SnapshotPredicate] = None
        self._snapshot = TaskSnapshot()
        self._changed = asyncio.Condition()
        self._watch: Optional[asyncio.Task] = None
        self._notices = NoticeBus()
        self._remove_session_listener: Optional[Callable[[], None]] = None

    # ---- snapshot access ----

    @property
    def snapshot(self) -> TaskSnapshot:
        return self._snapshot

    @property
    def tasks(self) -> Tuple[Task, ...]:
        return self._snapshot.tasks

    @property
    def owner_id(self) -> Optional[str]:
        return self._snapshot.owner_id

    @property
    def loading(self) -> bool:
        return self._snapshot.loading

    @property
    def error(self) -> Optional[TaskLanesError]:
        return self._snapshot.error

    def get(self, task_id: str) -> Optional[Task]:
        return self._snapshot.get(task_id)

    def get_tasks_by_status(self, status: Union[TaskStatus, str]) -> List[Task]:
        return self._snapshot.by_status(_parse_status(status, "get_tasks_by_status"))

    def get_tags(self) -> List[TaskTag]:
        return collect_tags(self._snapshot.tasks)

    def on_notice(self, listener: NoticeListener) -> Callable[[], None]:
        return self._notices.add(listener)

    async def wait_for(
        self,
        predicate: Callable[[TaskSnapshot], bool],
        timeout: Optional[float] = None,
    ) -> TaskSnapshot:
        """Suspend until the current snapshot satisfies ``predicate``."""
        async def _wait() -> TaskSnapshot:
            async with self._changed:
                await self._changed.wait_for(lambda: predicate(self._snapshot))
                return self._snapshot

        return await asyncio.wait_for(_wait(), timeout)

    async def snapshots(self) -> AsyncIterator[TaskSnapshot]:
        """Yield the current snapshot, then every newer one.

        A slow consumer sees only the latest snapshot, never a backlog.
        """
        version = None
        while True:
            async with self._changed:
                await self._changed.wait_for(lambda: self._snapshot.version != version)
                snapshot = self._snapshot
            version = snapshot.version
            yield snapshot

    def subscribe(self, owner_id: str) -> AsyncIterator[List[Task]]:
        """Stream of full task collections for ``owner_id``, independent of the session."""
        return watch_tasks(self._store, owner_id, clock=self._clock)

    # ---- lifecycle ----

    async def start(self) -> None:
        """Follow the auth session, if any."""
        if self._session is None:
            return
        self._remove_session_listener = self._session.add_listener(self.set_user)
        if self._session.resolved:
            await self.set_user(self._session.current_user)
        else:
            await self._publish(loading=True)

    async def stop(self) -> None:
        if self._remove_session_listener is not None:
            self._remove_session_listener()
            self._remove_session_listener = None
        await self._cancel_watch()

    async def set_user(self, user: Optional[CurrentUser]) -> None:
        """Switch the owner whose tasks are tracked; None signs out."""
        owner_id = user.id if user is not None else None
        if owner_id is not None and owner_id == self._snapshot.owner_id and self._watch is not None and not self._watch.done():
            return
        await self._cancel_watch()
        self._last_write = None

        if owner_id is None:
            await self._publish(owner_id=None, tasks=(), loading=False, error=None)
            logger.info("Task sync stopped: no signed-in user")
            return

        await self._publish(owner_id=owner_id, tasks=(), loading=True, error=None)
        self._watch = asyncio.create_task(self._run_watch(owner_id))
        logger.info(f"Task sync started for user {owner_id}")

    async def _cancel_watch(self) -> None:
        watch, self._watch = self._watch, None
        if watch is None or watch.done():
            return
        watch.cancel()
        try:
            await watch
        except asyncio.CancelledError:
            pass

    async def _run_watch(self, owner_id: str) -> None:
        try:
            async for tasks in watch_tasks(self._store, owner_id, clock=self._clock):
                await self._publish(tasks=tuple(tasks), loading=False, error=None)
        except StoreError as e:
            logger.error(f"Task subscription failed for user {owner_id}: {type(e).__name__}: {str(e)}")
            error = SyncFailed(f"Task subscription failed: {e}", operation="subscribe")
            # Last known-good tasks stay visible.
            await self._publish(loading=False, error=error)
            await self._notices.publish(failure_notice("subscribe", error))

    async def _publish(self, **changes) -> None:
        async with self._changed:
            self._snapshot = replace(self._snapshot, version=self._snapshot.version + 1, **changes)
            self._changed.notify_all()

    # ---- guards ----

    def _require_owner(self, operation: str) -> str:
        owner_id = self._snapshot.owner_id
        if owner_id is None:
            raise Unauthenticated("No user is signed in", operation=operation)
        return owner_id

    def _require_task(self, task_id: str, operation: str) -> Task:
        task = self._snapshot.get(task_id)
        if task is None:
            raise NotFound(f"Task {task_id} not found", operation=operation, task_id=task_id)
        return task

    async def _catch_up(self, operation: str) -> None:
        """Wait until the snapshot has loaded and includes the last acknowledged write.

        Without this, a mutation issued right after another would compute
        orders and history from a snapshot that predates its predecessor.
        """
        owner_id = self._snapshot.owner_id
        last_write = self._last_write
        if owner_id is None or (last_write is None and not self._snapshot.loading):
            return

        def caught_up(snapshot: TaskSnapshot) -> bool:
            if snapshot.owner_id != owner_id or snapshot.error is not None:
                return True
            return not snapshot.loading and (last_write is None or last_write(snapshot))

        try:
            await self.wait_for(caught_up, timeout=self._catch_up_timeout)
        except asyncio.TimeoutError:
            logger.warning(
                f"Snapshot for user {owner_id} did not catch up within {self._catch_up_timeout}s "
                f"before {operation}; using version {self._snapshot.version}"
            )
        self._last_write = None

    async def _commit(self, ops: List[WriteOp]) -> None:
        batch = self._store.batch()
        for op in ops:
            if op.kind == "update":
                batch.update(op.collection, op.doc_id, op.fields)
            elif op.kind == "delete":
                batch.delete(op.collection, op.doc_id)
            else:
                batch.insert(op.collection, op.fields, op.doc_id)
        await batch.commit()

    # ---- mutations ----

    @_reports("create")
    async def create(self, draft: Union[TaskDraft, Dict[str, Any]]) -> str:
        """Create a task at the end of its lane.

        Returns:
            The store-assigned task id
        """
        owner_id = self._require_owner("create")
        draft = _parse(TaskDraft, draft, "create")
        fields = build_create_fields(draft, owner_id, self._snapshot.tasks)
        task_id = await self._store.insert(TASKS_COLLECTION, fields)
        self._last_write = _present(task_id)
        logger.debug(f"Created task {task_id} in {draft.status} at order {fields['order']}")
        await self._notices.publish(success_notice("create"))
        return task_id

    @_reports("update")
    async def update(self, task_id: str, fields: Union[TaskUpdate, Dict[str, Any]]) -> None:
        self._require_owner("update")
        update = _parse(TaskUpdate, fields, "update")
        if not update.changes():
            raise ValidationError("No fields to update", operation="update")
        task = self._require_task(task_id, "update")
        op = build_update_op(task, update, self._snapshot.tasks)
        await self._store.update(op.collection, op.doc_id, op.fields)
        self._last_write = _rewritten(task)
        logger.debug(f"Updated task {task_id}: {', '.join(update.changes())}")
        await self._notices.publish(success_notice("update"))

    @_reports("complete")
    async def complete(self, task_id: str) -> None:
        self._require_owner("complete")
        task = self._require_task(task_id, "complete")
        op = build_complete_op(task, self._snapshot.tasks)
        await self._store.update(op.collection, op.doc_id, op.fields)
        self._last_write = _rewritten(task)
        logger.debug(f"Completed task {task_id}")
        await self._notices.publish(success_notice("complete"))

    @_reports("delete")
    async def delete(self, task_id: str) -> None:
        self._require_owner("delete")
        self._require_task(task_id, "delete")
        await self._store.delete(TASKS_COLLECTION, task_id)
        self._last_write = _absent([task_id])
        logger.debug(f"Deleted task {task_id}")
        await self._notices.publish(success_notice("delete"))

    @_reports("delete_batch")
    async def delete_batch(self, task_ids: Iterable[str]) -> int:
        """Delete several tasks in one atomic write.

        Returns:
            Number of tasks deleted
        """
        self._require_owner("delete_batch")
        if isinstance(task_ids, str):
            raise ValidationError("task_ids must be a list of ids", operation="delete_batch", fields=["task_ids"])
        task_ids = list(task_ids)
        if not all(isinstance(t, str) for t in task_ids):
            raise ValidationError("task_ids must be a list of ids", operation="delete_batch", fields=["task_ids"])
        unique_ids = _as_unique_ids(task_ids)
        if not unique_ids:
            return 0
        missing = [task_id for task_id in unique_ids if self._snapshot.get(task_id) is None]
        if missing:
            raise NotFound(
                f"Tasks not found: {', '.join(missing)}",
                operation="delete_batch",
                task_id=missing[0],
            )
        await self._commit(build_delete_ops(unique_ids))
        self._last_write = _absent(unique_ids)
        logger.debug(f"Deleted {len(unique_ids)} tasks in one batch")
        await self._notices.publish(success_notice("delete_batch", count=len(unique_ids)))
        return len(unique_ids)

    @_reports("move")
    async def move(self, task_id: str, new_status: Union[TaskStatus, str]) -> None:
        """Move a task to the end of another lane."""
        self._require_owner("move")
        destination = _parse_status(new_status, "move")
        task = self._require_task(task_id, "move")
        op = build_move_op(task, destination, self._snapshot.tasks)
        await self._store.update(op.collection, op.doc_id, op.fields)
        self._last_write = _rewritten(task)
        logger.debug(f"Moved task {task_id} from {task.status} to {destination} at order {op.fields['order']}")
        await self._notices.publish(success_notice("move", status=destination))

    @_reports("reorder")
    async def reorder(
        self,
        task_id: str,
        source_status: Union[TaskStatus, str],
        destination_status: Union[TaskStatus, str],
        new_order: int,
    ) -> None:
        """Place a task at ``new_order`` in the destination lane.

        The moved task and every shifted neighbour are written in one atomic
        batch.
        """
        self._require_owner("reorder")
        source = _parse_status(source_status, "reorder", "source_status")
        destination = _parse_status(destination_status, "reorder", "destination_status")
        if isinstance(new_order, bool) or not isinstance(new_order, int) or new_order < 0:
            raise ValidationError(
                f"new_order must be a non-negative integer, got {new_order!r}",
                operation="reorder",
                fields=["new_order"],
            )
        task = self._require_task(task_id, "reorder")
        ops = build_reorder_ops(task, source, destination, new_order, self._snapshot.tasks)
        await self._commit(ops)
        self._last_write = _rewritten(task)
        logger.debug(f"Reordered task {task_id} to {destination}[{new_order}], shifted {len(ops) - 1}")
        await self._notices.publish(success_notice("reorder"))
