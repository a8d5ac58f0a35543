"""
Activity Aggregator — WorkItems → Activity status and completion.

Rules (required WorkItems only; non-required ones are ignored entirely):
  - completion_percentage = round(mean(contributions)), 0 when nothing is required
  - all required completed (and at least one required) → "completed"
  - any required in-progress or completed              → "in-progress"
  - otherwise                                          → the variant's initial
                                                         status ("planned" / "draft"),
                                                         or "on-hold" if a user parked it
  - actual_start is stamped the first time the activity leaves its initial state,
    actual_end the first time it becomes completed; neither is ever overwritten
  - each required WorkItem gets a set-once completion date in stage_completion

Variants (Dismantling / COW / Relocation) only differ in which WorkItems
they expose (``Activity.iter_work_items``) and in ``INITIAL_STATUS``.

Usage:
    from sitetrack.services.activity_aggregator import recompute_activity
    result = recompute_activity(activity_id)
"""

import logging
import math
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Iterable

from sitetrack.models.activity import Activity
from sitetrack.models.work_item import WorkItem
from sitetrack.services.helpers.active_queries import apply_updates, get_active
from sitetrack.services.work_item_evaluator import (
    COMPLETED,
    IN_PROGRESS,
    evaluate_work_item,
)
from sitetrack.utils.helpers import isoformat_utc

logger = logging.getLogger(__name__)

ON_HOLD = "on-hold"


@dataclass
class ActivityRollup:
    overall_status: str
    completion_percentage: int
    actual_start: datetime | None
    actual_end: datetime | None
    stage_completion: dict = field(default_factory=dict)
    stats: dict = field(default_factory=dict)

    def as_result(self) -> dict:
        return {
            "overall_status": self.overall_status,
            "completion_percentage": self.completion_percentage,
            "actual_start": isoformat_utc(self.actual_start),
            "actual_end": isoformat_utc(self.actual_end),
        }


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def aggregate_activity(
    work_items: Iterable[WorkItem | dict],
    *,
    initial_status: str,
    current_status: str | None = None,
    actual_start: datetime | None = None,
    actual_end: datetime | None = None,
    stage_completion: dict | None = None,
    now: datetime | None = None,
) -> ActivityRollup:
    """Compute an activity's derived fields from its WorkItems. Pure."""
    now = now or datetime.now(timezone.utc)
    stages = dict(stage_completion or {})

    required = []
    for item in work_items:
        score = evaluate_work_item(item)
        if not score.required:
            continue
        required.append(score)
        key = item.key if isinstance(item, WorkItem) else None
        if key and score.status == COMPLETED and not stages.get(key):
            stages[key] = now.isoformat()

    completed = sum(1 for s in required if s.status == COMPLETED)
    in_progress = sum(1 for s in required if s.status == IN_PROGRESS)

    if required:
        completion = _round_half_up(sum(s.contribution for s in required) / len(required))
    else:
        completion = 0

    if required and completed == len(required):
        status = COMPLETED
    elif completed or in_progress:
        status = IN_PROGRESS
    elif current_status == ON_HOLD:
        status = ON_HOLD
    else:
        status = initial_status

    if status in (IN_PROGRESS, COMPLETED) and actual_start is None:
        actual_start = now
    if status == COMPLETED and actual_end is None:
        actual_end = now

    return ActivityRollup(
        overall_status=status,
        completion_percentage=completion,
        actual_start=actual_start,
        actual_end=actual_end,
        stage_completion=stages,
        stats={
            "total_work_items": len(required),
            "completed_work_items": completed,
            "in_progress_work_items": in_progress,
            "pending_work_items": len(required) - completed - in_progress,
        },
    )


def refresh_activity(activity: Activity, *, now: datetime | None = None, commit: bool = True) -> ActivityRollup:
    """Recompute and persist the derived fields of an already-loaded activity."""
    rollup = aggregate_activity(
        activity.iter_work_items(),
        initial_status=activity.INITIAL_STATUS,
        current_status=activity.overall_status,
        actual_start=activity.actual_start,
        actual_end=activity.actual_end,
        stage_completion=activity.stage_completion,
        now=now,
    )

    changes = {}
    if activity.overall_status != rollup.overall_status:
        changes["overall_status"] = rollup.overall_status
    if activity.completion_percentage != rollup.completion_percentage:
        changes["completion_percentage"] = rollup.completion_percentage
    if activity.actual_start is None and rollup.actual_start is not None:
        changes["actual_start"] = rollup.actual_start
    if activity.actual_end is None and rollup.actual_end is not None:
        changes["actual_end"] = rollup.actual_end
    if (activity.stage_completion or {}) != rollup.stage_completion:
        changes["stage_completion"] = rollup.stage_completion

    if changes:
        logger.info(
            "Activity %s recomputed: %s -> %s (%s%%)",
            activity.id, activity.overall_status, rollup.overall_status,
            rollup.completion_percentage,
            extra={"activity_id": activity.id, "site_id": activity.site_id,
                   "transition": f"{activity.overall_status}->{rollup.overall_status}"},
        )
        apply_updates(activity, changes, commit=commit)
    else:
        logger.debug("Activity %s unchanged (%s)", activity.id, rollup.overall_status,
                     extra={"activity_id": activity.id})
    return rollup


def recompute_activity(activity_id: int, *, now: datetime | None = None) -> dict:
    """Recompute one activity by id.

    Returns:
        {overall_status, completion_percentage, actual_start, actual_end}

    Raises:
        NotFoundError: If the id does not resolve to a non-deleted activity.
        PersistenceError: If the write fails.
    """
    activity = get_active(Activity, activity_id)
    return refresh_activity(activity, now=now).as_result()


def activity_stats(activity: Activity) -> dict:
    """Work item counts for display, without touching the database."""
    return aggregate_activity(
        activity.iter_work_items(),
        initial_status=activity.INITIAL_STATUS,
        current_status=activity.overall_status,
        actual_start=activity.actual_start,
        actual_end=activity.actual_end,
        stage_completion=activity.stage_completion,
    ).stats
