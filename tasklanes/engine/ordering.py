"""Order index allocation for tasklanes.

Each lane is totally ordered by ascending ``order``. Values are unique within
a lane but not contiguous; only relative order is meaningful.
"""

from collections import defaultdict
from typing import Dict, Iterable, List, Union

from tasklanes.models.constants import FIRST_ORDER, LANE_ORDER
from tasklanes.models.task import Task, TaskStatus, enum_to_value


def _lane_key(task: Task) -> tuple:
    # created_at and id only break ties left behind by concurrent writers
    return (task.order, task.created_at, task.id)


def lane_tasks(tasks: Iterable[Task], status: Union[TaskStatus, str]) -> List[Task]:
    """Tasks of one lane in render order."""
    lane = enum_to_value(status)
    return sorted((t for t in tasks if t.status == lane), key=_lane_key)


def next_order(status: Union[TaskStatus, str], tasks: Iterable[Task]) -> int:
    """Order value that appends a task to the end of a lane.

    Only tasks in the target lane are considered; nothing is mutated.

    Args:
        status: Target lane
        tasks: Current snapshot of the owner's tasks

    Returns:
        One greater than the highest order in the lane, or 0 for an empty lane
    """
    lane = enum_to_value(status)
    orders = [t.order for t in tasks if t.status == lane]
    if not orders:
        return FIRST_ORDER
    return max(orders) + 1


def entry_order(task: Task, destination: Union[TaskStatus, str], tasks: Iterable[Task]) -> int:
    """Order a task keeps when it changes lane without an explicit position.

    The current value is kept unless another task in the destination lane
    already holds it, in which case the task is appended.
    """
    lane = enum_to_value(destination)
    others = [t for t in tasks if t.id != task.id]
    taken = {t.order for t in others if t.status == lane}
    if task.order not in taken:
        return task.order
    return next_order(lane, others)


def sort_tasks(tasks: Iterable[Task]) -> List[Task]:
    """Whole collection grouped by lane, each lane in ascending order."""
    return sorted(tasks, key=lambda t: (LANE_ORDER.get(t.status, len(LANE_ORDER)),) + _lane_key(t))


def duplicate_orders(tasks: Iterable[Task]) -> Dict[str, List[int]]:
    """Order values shared by more than one task, per lane.

    Concurrent writers can leave duplicates behind until the next reorder
    touches the lane; an empty result means every lane is consistent.
    """
    seen: Dict[str, Dict[int, int]] = defaultdict(lambda: defaultdict(int))
    for task in tasks:
        seen[task.status][task.order] += 1
    return {
        lane: sorted(order for order, count in counts.items() if count > 1)
        for lane, counts in seen.items()
        if any(count > 1 for count in counts.values())
    }
