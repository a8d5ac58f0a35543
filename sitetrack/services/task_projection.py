"""
Task Projection & Performance Engine.

Flattens non-deleted Activities (and, on request, their outstanding
required WorkItems) into a uniform Task view and computes the performance
block shown on the task board.

Pipeline (order matters):
    1. read non-deleted activities      (soft-delete exclusion first)
    2. project to Task rows
    3. apply filters                    (module / status / assignee / search)
    4. compute metrics                  (scoped to the filtered set)
    5. slice the requested page         (tasks list only)

Status buckets:
    draft / planned / not-started                    → pending
    in-progress / in_progress / dismantling / ...    → in-progress
    completed                                        → completed
    anything else                                    → pending

Due date of a task is the activity's ``planned_end``. A task is overdue
when its due date is before today and it is not completed; it is due today
when the due date is today's calendar day and it is not completed. A task
due today is never overdue.
"""

import logging
import math
from dataclasses import asdict, dataclass, field
from datetime import date, datetime, timezone

from sitetrack.core.exceptions import ValidationError
from sitetrack.models.activity import ACTIVITY_KINDS, Activity
from sitetrack.models.site import Site
from sitetrack.services.helpers.active_queries import list_active
from sitetrack.services.work_item_evaluator import CONTRIBUTION, normalize_work_status
from sitetrack.utils.helpers import as_utc, isoformat_utc

logger = logging.getLogger(__name__)

PENDING = "pending"
IN_PROGRESS = "in-progress"
COMPLETED = "completed"
TASK_STATUSES = (PENDING, IN_PROGRESS, COMPLETED)
GRANULARITIES = ("activity", "work_item")

_STATUS_BUCKETS = {
    "draft": PENDING,
    "planned": PENDING,
    "not-started": PENDING,
    "in-progress": IN_PROGRESS,
    "in_progress": IN_PROGRESS,
    "dismantling": IN_PROGRESS,
    "surveying": IN_PROGRESS,
    "dispatching": IN_PROGRESS,
    "completed": COMPLETED,
}


def bucket_status(raw) -> str:
    """Map any stored status string to pending / in-progress / completed."""
    if not isinstance(raw, str):
        return PENDING
    return _STATUS_BUCKETS.get(raw.strip().lower(), PENDING)


def _timestamp(value):
    """Stored timestamps are datetimes (columns) or ISO strings (WorkItem JSON)."""
    if value is None or value == "":
        return None
    if isinstance(value, str):
        try:
            value = datetime.fromisoformat(value)
        except ValueError:
            logger.warning("Unparseable timestamp %r ignored", value)
            return None
    return as_utc(value)


# ── Task rows ────────────────────────────────────────────────────────────────


@dataclass
class Task:
    id: str
    title: str
    module: str
    status: str
    assigned_to: list = field(default_factory=list)
    due_date: date | None = None
    activity_id: int | None = None
    site_id: int | None = None
    site_name: str | None = None
    work_type: str | None = None
    raw_status: str | None = None
    completion_percentage: int = 0
    actual_start: datetime | None = None
    actual_end: datetime | None = None
    phase: str | None = None
    type_label: str = ""
    description: str | None = None

    def to_dict(self) -> dict:
        data = asdict(self)
        data["due_date"] = self.due_date.isoformat() if self.due_date else None
        data["actual_start"] = isoformat_utc(self.actual_start)
        data["actual_end"] = isoformat_utc(self.actual_end)
        return data


def _activity_task(activity: Activity, site_name: str | None) -> Task:
    return Task(
        id=f"{activity.kind}:{activity.id}",
        title=activity.display_title(),
        module=activity.kind,
        status=bucket_status(activity.overall_status),
        assigned_to=activity.assigned_users(),
        due_date=activity.planned_end,
        activity_id=activity.id,
        site_id=activity.site_id,
        site_name=site_name,
        raw_status=activity.overall_status,
        completion_percentage=activity.completion_percentage or 0,
        actual_start=_timestamp(activity.actual_start),
        actual_end=_timestamp(activity.actual_end),
        phase=activity.current_phase(),
        type_label=activity.type_label,
        description=activity.description,
    )


def _work_item_tasks(activity: Activity, site_name: str | None) -> list[Task]:
    """One task per required WorkItem that is not completed yet."""
    fallback_users = [str(u) for u in (activity.assignment or {}).get("assigned_to") or [] if u]
    tasks = []
    for item in activity.iter_work_items():
        if not item.required:
            continue
        status = normalize_work_status(item.status)
        if status == COMPLETED:
            continue
        tasks.append(Task(
            id=f"{activity.kind}:{activity.id}:{item.key}",
            title=f"{activity.display_title()} - {item.work_type}",
            module=activity.kind,
            status=bucket_status(status),
            assigned_to=list(item.assigned_users) or fallback_users,
            due_date=activity.planned_end,
            activity_id=activity.id,
            site_id=activity.site_id,
            site_name=site_name,
            work_type=item.work_type,
            raw_status=item.status if isinstance(item.status, str) else None,
            completion_percentage=CONTRIBUTION[status],
            actual_start=_timestamp(item.start_time),
            actual_end=_timestamp(item.end_time),
            type_label=activity.type_label,
            description=activity.description,
        ))
    return tasks


def build_tasks(activities, site_names: dict, *, granularity: str = "activity") -> list[Task]:
    """Project activities to Task rows. Pure."""
    tasks = []
    for activity in activities:
        site_name = site_names.get(activity.site_id)
        tasks.append(_activity_task(activity, site_name))
        if granularity == "work_item":
            tasks.extend(_work_item_tasks(activity, site_name))
    return tasks


# ── Filters ──────────────────────────────────────────────────────────────────


@dataclass
class TaskFilters:
    module: str | None = None
    status: str | None = None
    assignee: str | None = None
    search: str | None = None
    granularity: str = "activity"

    @classmethod
    def from_dict(cls, data: dict | None) -> "TaskFilters":
        data = data or {}
        filters = cls(
            module=data.get("module") or None,
            status=data.get("status") or None,
            assignee=str(data["assignee"]) if data.get("assignee") else None,
            search=(data.get("search") or "").strip() or None,
            granularity=data.get("granularity") or "activity",
        )
        filters.validate()
        return filters

    def validate(self) -> None:
        errors = {}
        if self.module and self.module not in ACTIVITY_KINDS:
            errors["module"] = f"must be one of {', '.join(ACTIVITY_KINDS)}"
        if self.status and self.status not in TASK_STATUSES:
            errors["status"] = f"must be one of {', '.join(TASK_STATUSES)}"
        if self.granularity not in GRANULARITIES:
            errors["granularity"] = f"must be one of {', '.join(GRANULARITIES)}"
        if errors:
            raise ValidationError("Invalid task filters", details=errors)

    def matches(self, task: Task) -> bool:
        if self.module and task.module != self.module:
            return False
        if self.status and task.status != self.status:
            return False
        if self.assignee and self.assignee not in task.assigned_to:
            return False
        if self.search:
            needle = self.search.lower()
            haystack = (task.site_name, task.type_label, task.description)
            if not any(needle in (text or "").lower() for text in haystack):
                return False
        return True


@dataclass
class Pagination:
    page: int = 1
    per_page: int = 20

    def __post_init__(self):
        if self.page < 1 or self.per_page < 1:
            raise ValidationError(
                "page and per_page must be positive",
                details={"page": self.page, "per_page": self.per_page},
            )

    def slice(self, items: list) -> list:
        start = (self.page - 1) * self.per_page
        return items[start:start + self.per_page]

    def to_dict(self, total: int) -> dict:
        return {
            "page": self.page,
            "per_page": self.per_page,
            "total": total,
            "total_pages": math.ceil(total / self.per_page) if total else 0,
        }


# ── Metrics ──────────────────────────────────────────────────────────────────


def compute_performance(tasks: list[Task]) -> dict:
    """Completion rate and mean completion time (days) over a task set. Pure."""
    total = len(tasks)
    completed = [t for t in tasks if t.status == COMPLETED]
    durations = [
        (t.actual_end - t.actual_start).total_seconds() / 86400
        for t in completed
        if t.actual_start is not None and t.actual_end is not None
    ]
    return {
        "total_tasks": total,
        "completed_tasks": len(completed),
        "completion_rate": round(len(completed) / total, 4) if total else 0,
        "avg_completion_time_days": round(sum(durations) / len(durations), 2) if durations else 0,
    }


def count_due(tasks: list[Task], *, today: date) -> tuple[int, int]:
    """Return ``(overdue, due_today)`` counts. Completed tasks count for neither."""
    overdue = due_today = 0
    for task in tasks:
        if task.status == COMPLETED or task.due_date is None:
            continue
        if task.due_date < today:
            overdue += 1
        elif task.due_date == today:
            due_today += 1
    return overdue, due_today


def _count_by(tasks: list[Task], attr: str) -> dict:
    counts: dict[str, int] = {}
    for task in tasks:
        key = getattr(task, attr)
        counts[key] = counts.get(key, 0) + 1
    return counts


# ── Entry point ──────────────────────────────────────────────────────────────


def project_tasks(filters=None, pagination=None, *, now: datetime | None = None) -> dict:
    """Build the task board for the current state of the database.

    Args:
        filters: ``TaskFilters`` or a plain dict with the same keys.
        pagination: ``Pagination`` or a dict ``{page, per_page}``.
        now: Reference time for overdue / due-today (defaults to UTC now).

    Returns:
        {tasks, pagination, performance, overdue_tasks, due_today_tasks,
         by_status, by_module}
    """
    if not isinstance(filters, TaskFilters):
        filters = TaskFilters.from_dict(filters)
    if not isinstance(pagination, Pagination):
        pagination = Pagination(**(pagination or {}))
    now = _timestamp(now) or datetime.now(timezone.utc)

    query_filters = {"kind": filters.module} if filters.module else {}
    activities = list_active(Activity, order_by=Activity.id.desc(), **query_filters)
    site_ids = {a.site_id for a in activities}
    site_names = (
        {s.id: s.name for s in list_active(Site, id=list(site_ids))} if site_ids else {}
    )

    tasks = [
        t for t in build_tasks(activities, site_names, granularity=filters.granularity)
        if filters.matches(t)
    ]
    overdue, due_today = count_due(tasks, today=now.date())

    logger.debug(
        "Task projection: %d activities -> %d tasks (filters=%s)",
        len(activities), len(tasks), filters,
    )
    return {
        "tasks": [t.to_dict() for t in pagination.slice(tasks)],
        "pagination": pagination.to_dict(len(tasks)),
        "performance": compute_performance(tasks),
        "overdue_tasks": overdue,
        "due_today_tasks": due_today,
        "by_status": _count_by(tasks, "status"),
        "by_module": _count_by(tasks, "module"),
    }
