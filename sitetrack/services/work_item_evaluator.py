"""
WorkItem Evaluator — leaf of the status cascade.

Maps one WorkItem's recorded state to a normalised status and a 0–100
contribution score:

    required = false            → contribution 0 (excluded from completion math)
    required, completed         → 100
    required, in-progress       → 50
    required, anything else     → 0

Pure and total: malformed or absent records are treated as
``{required: false}`` and unknown status strings are normalised rather
than rejected.
"""

import logging
from typing import Any, NamedTuple

from sitetrack.models.work_item import WorkItem

logger = logging.getLogger(__name__)

NOT_STARTED = "not-started"
IN_PROGRESS = "in-progress"
COMPLETED = "completed"

CONTRIBUTION = {COMPLETED: 100, IN_PROGRESS: 50, NOT_STARTED: 0}

# Spellings seen in stored work records. COW transportation work moves
# through loading / in-transit / unloading before it completes.
_STATUS_ALIASES = {
    "completed": COMPLETED,
    "complete": COMPLETED,
    "done": COMPLETED,
    "in-progress": IN_PROGRESS,
    "in_progress": IN_PROGRESS,
    "active": IN_PROGRESS,
    "loading": IN_PROGRESS,
    "in-transit": IN_PROGRESS,
    "unloading": IN_PROGRESS,
    "not-started": NOT_STARTED,
    "not_started": NOT_STARTED,
    "pending": NOT_STARTED,
}


class WorkItemScore(NamedTuple):
    status: str
    contribution: int
    required: bool


def normalize_work_status(value: Any) -> str:
    """Return one of not-started / in-progress / completed for any input."""
    if value is None or value == "":
        return NOT_STARTED
    if not isinstance(value, str):
        logger.warning("Non-string work item status %r treated as %s", value, NOT_STARTED)
        return NOT_STARTED
    normalized = _STATUS_ALIASES.get(value.strip().lower())
    if normalized is None:
        logger.warning("Unrecognised work item status %r treated as %s", value, NOT_STARTED)
        return NOT_STARTED
    return normalized


def evaluate_work_item(item: WorkItem | dict | None) -> WorkItemScore:
    """Score one WorkItem (or raw record). Never raises."""
    if not isinstance(item, WorkItem):
        item = WorkItem.from_record(item)
    status = normalize_work_status(item.status)
    if not item.required:
        return WorkItemScore(status=status, contribution=0, required=False)
    return WorkItemScore(status=status, contribution=CONTRIBUTION[status], required=True)
