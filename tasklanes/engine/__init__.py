"""Ordering, history and transaction engine for tasklanes."""

from tasklanes.engine.ordering import (
    duplicate_orders,
    entry_order,
    lane_tasks,
    next_order,
    sort_tasks,
)
from tasklanes.engine.history import new_history_entry, move_details
from tasklanes.engine.transactions import (
    build_complete_op,
    build_create_fields,
    build_delete_ops,
    build_move_op,
    build_reorder_ops,
    build_update_op,
)

__all__ = [
    "duplicate_orders",
    "entry_order",
    "lane_tasks",
    "next_order",
    "sort_tasks",
    "new_history_entry",
    "move_details",
    "build_complete_op",
    "build_create_fields",
    "build_delete_ops",
    "build_move_op",
    "build_reorder_ops",
    "build_update_op",
]
