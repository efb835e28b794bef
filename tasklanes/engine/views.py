"""Read-only views over a task snapshot: tags, search, dashboard, calendar."""

import uuid
from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone
from typing import Dict, Iterable, List, Optional

from tasklanes.models.constants import (
    LANE_ORDER,
    PREDEFINED_TAGS,
    RECENTLY_COMPLETED_LIMIT,
    TAG_COLORS,
    UPCOMING_LIMIT,
    UPCOMING_WINDOW_DAYS,
)
from tasklanes.models.task import Task, TaskStatus, TaskTag

_FAR_FUTURE = datetime.max.replace(tzinfo=timezone.utc)


@dataclass(frozen=True)
class DashboardStats:
    """Counts shown on the dashboard."""
    total: int
    todo: int
    in_progress: int
    completed: int
    upcoming: int
    overdue: int

    def to_dict(self) -> Dict[str, int]:
        return {
            "total": self.total,
            "todo": self.todo,
            "in_progress": self.in_progress,
            "completed": self.completed,
            "upcoming": self.upcoming,
            "overdue": self.overdue,
        }


def collect_tags(tasks: Iterable[Task]) -> List[TaskTag]:
    """Distinct tags across all tasks, unique by id, first occurrence wins."""
    seen = set()
    tags: List[TaskTag] = []
    for task in tasks:
        for tag in task.tags:
            if tag.id not in seen:
                seen.add(tag.id)
                tags.append(tag)
    return tags


def available_tags(tasks: Iterable[Task]) -> List[TaskTag]:
    """Predefined tags followed by any custom tags found on tasks."""
    predefined = list(PREDEFINED_TAGS)
    known = {tag.id for tag in predefined}
    return predefined + [tag for tag in collect_tags(tasks) if tag.id not in known]


def make_tag(name: str, *, existing: Iterable[TaskTag] = ()) -> TaskTag:
    """New custom tag, colored by cycling through the palette."""
    name = name.strip()
    if not name:
        raise ValueError("tag name must not be empty")
    count = len(list(existing))
    return TaskTag(id=f"tag-{uuid.uuid4().hex[:12]}", name=name, color=TAG_COLORS[count % len(TAG_COLORS)])


def search_tasks(tasks: Iterable[Task], query: Optional[str]) -> List[Task]:
    """Case-insensitive substring match on title and description."""
    if not query or not query.strip():
        return list(tasks)
    needle = query.strip().lower()
    return [
        t for t in tasks
        if needle in t.title.lower() or (t.description and needle in t.description.lower())
    ]


def sort_for_listing(tasks: Iterable[Task]) -> List[Task]:
    """List view order: lane, then due date (undated last), then creation time."""
    return sorted(
        tasks,
        key=lambda t: (
            LANE_ORDER.get(t.status, len(LANE_ORDER)),
            t.due_date is None,
            t.due_date or _FAR_FUTURE,
            t.created_at,
        ),
    )


def dashboard_stats(tasks: Iterable[Task], *, now: Optional[datetime] = None) -> DashboardStats:
    now = now or datetime.now(timezone.utc)
    tasks = list(tasks)
    by_status: Dict[str, int] = {status.value: 0 for status in TaskStatus}
    upcoming = overdue = 0
    for task in tasks:
        by_status[task.status] = by_status.get(task.status, 0) + 1
        if task.due_date is None or task.status == TaskStatus.COMPLETED.value:
            continue
        if task.due_date > now:
            upcoming += 1
        else:
            overdue += 1
    return DashboardStats(
        total=len(tasks),
        todo=by_status[TaskStatus.TODO.value],
        in_progress=by_status[TaskStatus.IN_PROGRESS.value],
        completed=by_status[TaskStatus.COMPLETED.value],
        upcoming=upcoming,
        overdue=overdue,
    )


def upcoming_tasks(
    tasks: Iterable[Task],
    *,
    now: Optional[datetime] = None,
    days: int = UPCOMING_WINDOW_DAYS,
    limit: int = UPCOMING_LIMIT,
) -> List[Task]:
    """Unfinished tasks due between now and ``days`` from now, soonest first."""
    now = now or datetime.now(timezone.utc)
    horizon = now + timedelta(days=days)
    due = [
        t for t in tasks
        if t.due_date is not None
        and t.status != TaskStatus.COMPLETED.value
        and now <= t.due_date <= horizon
    ]
    return sorted(due, key=lambda t: t.due_date)[:limit]


def recently_completed(tasks: Iterable[Task], *, limit: int = RECENTLY_COMPLETED_LIMIT) -> List[Task]:
    done = [t for t in tasks if t.status == TaskStatus.COMPLETED.value]
    return sorted(done, key=lambda t: t.updated_at, reverse=True)[:limit]


def tasks_due_on(tasks: Iterable[Task], day: date) -> List[Task]:
    """Tasks whose due date falls on ``day`` (UTC), for the calendar view."""
    return [t for t in tasks if t.due_date is not None and t.due_date.date() == day]
