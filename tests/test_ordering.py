"""Tests for order index allocation and lane sorting."""

from tasklanes.engine.ordering import (
    duplicate_orders,
    entry_order,
    lane_tasks,
    next_order,
    sort_tasks,
)
from tasklanes.models.task import TaskStatus


class TestNextOrder:
    """Test appending to a lane."""

    def test_empty_lane_starts_at_zero(self, make_task):
        tasks = [make_task("A", status="in-progress", order=7)]
        assert next_order(TaskStatus.TODO, tasks) == 0

    def test_appends_after_lane_max(self, make_task):
        tasks = [
            make_task("A", order=0),
            make_task("B", order=4),
            make_task("C", order=2),
        ]
        assert next_order("todo", tasks) == 5

    def test_other_lanes_ignored(self, make_task):
        tasks = [
            make_task("A", order=1),
            make_task("B", status="completed", order=40),
        ]
        assert next_order(TaskStatus.TODO, tasks) == 2

    def test_does_not_mutate_input(self, make_task):
        tasks = [make_task("A", order=3)]
        next_order("todo", tasks)
        assert [t.order for t in tasks] == [3]


class TestEntryOrder:
    """Test the order kept when a task changes lane without a target position."""

    def test_keeps_order_when_free(self, make_task):
        task = make_task("X", order=3)
        tasks = [task, make_task("Y", status="completed", order=0)]
        assert entry_order(task, "completed", tasks) == 3

    def test_appends_on_collision(self, make_task):
        task = make_task("X", order=1)
        tasks = [
            task,
            make_task("Y", status="completed", order=1),
            make_task("Z", status="completed", order=4),
        ]
        assert entry_order(task, "completed", tasks) == 5


class TestSorting:
    """Test lane and collection ordering."""

    def test_lane_tasks_sorted_by_order(self, make_task):
        tasks = [
            make_task("C", order=9),
            make_task("A", order=0),
            make_task("Other", status="completed", order=1),
            make_task("B", order=3),
        ]
        assert [t.title for t in lane_tasks(tasks, "todo")] == ["A", "B", "C"]

    def test_sort_tasks_groups_lanes(self, make_task):
        tasks = [
            make_task("Done", status="completed", order=0),
            make_task("Doing", status="in-progress", order=0),
            make_task("Todo 2", order=1),
            make_task("Todo 1", order=0),
        ]
        assert [t.title for t in sort_tasks(tasks)] == ["Todo 1", "Todo 2", "Doing", "Done"]

    def test_duplicate_orders_reported_per_lane(self, make_task):
        tasks = [
            make_task("A", order=1),
            make_task("B", order=1),
            make_task("C", status="completed", order=1),
        ]
        assert duplicate_orders(tasks) == {"todo": [1]}
        assert duplicate_orders(tasks[1:]) == {}
