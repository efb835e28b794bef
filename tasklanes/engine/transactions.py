"""Write builders for task mutations.

Builders are pure: they read the current snapshot and return the fields or
write operations a mutation must commit, including its history entry. The
caller decides how to send them to the store.
"""

import logging
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional, Sequence, Union

from tasklanes.engine.history import (
    append_history,
    changed_fields_details,
    history_payload,
    move_details,
    new_history_entry,
)
from tasklanes.engine.ordering import entry_order, next_order
from tasklanes.models.constants import OWNER_FIELD, TASKS_COLLECTION
from tasklanes.models.task import (
    HistoryAction,
    Task,
    TaskDraft,
    TaskStatus,
    TaskUpdate,
    enum_to_value,
)
from tasklanes.store.ports import SERVER_TIMESTAMP, WriteOp
from tasklanes.sync.codec import encode_fields

logger = logging.getLogger(__name__)


def build_create_fields(
    draft: TaskDraft,
    owner_id: str,
    tasks: Iterable[Task],
    *,
    now: Optional[datetime] = None,
) -> Dict[str, Any]:
    """Fields for a new task document, appended to the end of its lane."""
    entry = new_history_entry(HistoryAction.CREATED, now=now)
    fields = encode_fields(draft.model_dump())
    fields.update({
        OWNER_FIELD: owner_id,
        "order": next_order(draft.status, tasks),
        "created_at": SERVER_TIMESTAMP,
        "updated_at": SERVER_TIMESTAMP,
        "history": history_payload([entry]),
    })
    return fields


def _stamped(task: Task, action: HistoryAction, details: Optional[str], now: Optional[datetime]) -> Dict[str, Any]:
    entry = new_history_entry(action, details, now=now)
    return {
        "updated_at": SERVER_TIMESTAMP,
        "history": history_payload(append_history(task.history, entry)),
    }


def build_update_op(
    task: Task,
    update: TaskUpdate,
    tasks: Iterable[Task],
    *,
    now: Optional[datetime] = None,
) -> WriteOp:
    """Partial update carrying only the supplied fields.

    A status change re-seats the task in its new lane with ``entry_order``.
    """
    changes = update.changes()
    fields = encode_fields(changes)
    status = fields.get("status")
    if status is not None and status != task.status:
        fields["order"] = entry_order(task, status, tasks)
    fields.update(_stamped(task, HistoryAction.UPDATED, changed_fields_details(changes), now))
    return WriteOp("update", TASKS_COLLECTION, task.id, fields)


def build_complete_op(task: Task, tasks: Iterable[Task], *, now: Optional[datetime] = None) -> WriteOp:
    fields: Dict[str, Any] = {"status": TaskStatus.COMPLETED.value}
    if task.status != TaskStatus.COMPLETED.value:
        fields["order"] = entry_order(task, TaskStatus.COMPLETED, tasks)
    fields.update(_stamped(task, HistoryAction.COMPLETED, None, now))
    return WriteOp("update", TASKS_COLLECTION, task.id, fields)


def build_move_op(
    task: Task,
    new_status: Union[TaskStatus, str],
    tasks: Iterable[Task],
    *,
    now: Optional[datetime] = None,
) -> WriteOp:
    """Move a task to the end of ``new_status``.

    The order is computed over the destination lane excluding the task itself.
    """
    destination = enum_to_value(new_status)
    others = [t for t in tasks if t.id != task.id]
    fields: Dict[str, Any] = {
        "status": destination,
        "order": next_order(destination, others),
    }
    fields.update(_stamped(task, HistoryAction.MOVED, move_details(task.status, destination), now))
    return WriteOp("update", TASKS_COLLECTION, task.id, fields)


def build_reorder_ops(
    task: Task,
    source_status: Union[TaskStatus, str],
    destination_status: Union[TaskStatus, str],
    new_order: int,
    tasks: Sequence[Task],
    *,
    now: Optional[datetime] = None,
) -> List[WriteOp]:
    """Operations for one atomic reorder.

    The moved task takes ``new_order``; every other task in the destination
    lane at or after that position shifts up by one. Tasks before it and
    tasks in other lanes are untouched. Returns the moved task's write first.
    """
    source = enum_to_value(source_status)
    destination = enum_to_value(destination_status)
    if source != task.status:
        logger.warning(
            f"Reorder of task {task.id} claims source lane {source} but task is in {task.status}"
        )

    if source != destination:
        fields: Dict[str, Any] = {"status": destination, "order": new_order}
        fields.update(_stamped(task, HistoryAction.MOVED, move_details(source, destination), now))
    else:
        fields = {"order": new_order, "updated_at": SERVER_TIMESTAMP}
    ops = [WriteOp("update", TASKS_COLLECTION, task.id, fields)]

    for other in tasks:
        if other.id == task.id or other.status != destination or other.order < new_order:
            continue
        ops.append(WriteOp(
            "update",
            TASKS_COLLECTION,
            other.id,
            {"order": other.order + 1, "updated_at": SERVER_TIMESTAMP},
        ))
    return ops


def build_delete_ops(task_ids: Iterable[str]) -> List[WriteOp]:
    return [WriteOp("delete", TASKS_COLLECTION, task_id, {}) for task_id in task_ids]
