"""
Project Status Cascader — Site set → Project.status + actual timeline.

Rules over the project's non-deleted Sites (read fresh on every run):
  - no sites                    → "planning"
  - every site completed        → "completed", actual_end stamped once
  - any site in progress        → "active",    actual_start stamped once
  - otherwise                   → status left as it is (no regression from
                                  active/completed back to planning)

Soft-deleted projects are never touched: their status is frozen at the
moment of deletion. A cancelled project is frozen the same way.

The cascade runs:
  1. automatically, from a ``before_flush`` session hook, for every
     persistent non-deleted Project about to be written;
  2. explicitly, via ``recompute_project(project_id)``.

It is NOT transactionally tied to the Site level: a Site whose own
recomputation has not been committed yet is seen with its previous status.
That staleness window is accepted; re-running ``recompute_project`` after
the Site commits converges.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Iterable

from sqlalchemy import event
from sqlalchemy.orm import Session

from sitetrack.models.project import Project
from sitetrack.models.site import Site
from sitetrack.services.helpers.active_queries import apply_updates, get_active, list_active

logger = logging.getLogger(__name__)

FROZEN_STATUSES = frozenset({"cancelled"})


@dataclass
class ProjectCascade:
    status: str
    actual_start: datetime | None
    actual_end: datetime | None


def cascade_project_status(
    site_statuses: Iterable[str | None],
    *,
    current_status: str,
    actual_start: datetime | None = None,
    actual_end: datetime | None = None,
    now: datetime | None = None,
) -> ProjectCascade:
    """Derive a project's status and actual timeline from its sites. Pure."""
    statuses = list(site_statuses)
    now = now or datetime.now(timezone.utc)

    if current_status in FROZEN_STATUSES:
        return ProjectCascade(current_status, actual_start, actual_end)

    if not statuses:
        return ProjectCascade("planning", actual_start, actual_end)

    if all(s == "completed" for s in statuses):
        return ProjectCascade("completed", actual_start, actual_end or now)

    if any(s == "in-progress" for s in statuses):
        return ProjectCascade("active", actual_start or now, actual_end)

    return ProjectCascade(current_status, actual_start, actual_end)


def _apply_cascade(project: Project, *, now: datetime | None = None) -> dict:
    """Compute the cascade for a project and return the changed fields only."""
    sites = list_active(Site, project_id=project.id)
    result = cascade_project_status(
        (s.overall_status for s in sites),
        current_status=project.status,
        actual_start=project.actual_start,
        actual_end=project.actual_end,
        now=now,
    )
    changes = {}
    if project.status != result.status:
        changes["status"] = result.status
    if project.actual_start is None and result.actual_start is not None:
        changes["actual_start"] = result.actual_start
    if project.actual_end is None and result.actual_end is not None:
        changes["actual_end"] = result.actual_end
    if changes:
        logger.info(
            "Project %s recomputed: %s -> %s (%d sites)",
            project.id, project.status, result.status, len(sites),
            extra={"project_id": project.id, "transition": f"{project.status}->{result.status}"},
        )
    return changes


def refresh_project(project: Project, *, now: datetime | None = None, commit: bool = True) -> Project:
    """Recompute and persist the derived fields of an already-loaded project."""
    if project.is_deleted:
        logger.debug("Project %s is deleted; status frozen at %s", project.id, project.status)
        return project
    changes = _apply_cascade(project, now=now)
    if changes:
        apply_updates(project, changes, commit=commit)
    return project


def recompute_project(project_id: int, *, now: datetime | None = None) -> dict:
    """Recompute one project by id.

    Returns:
        {status, timeline}

    Raises:
        NotFoundError: If the id does not resolve to a non-deleted project.
    """
    project = get_active(Project, project_id)
    refresh_project(project, now=now)
    return {"status": project.status, "timeline": project.timeline_dict()}


# ── Pre-commit hook ─────────────────────────────────────────────────────────


def _cascade_before_flush(session, flush_context, instances):
    """Run the cascade for every persistent, non-deleted Project being flushed.

    New projects keep the status they were created with until their first
    update; they cannot have sites yet.
    """
    projects = [
        obj for obj in session.dirty
        if isinstance(obj, Project) and not obj.is_deleted
    ]
    if not projects:
        return
    with session.no_autoflush:
        for project in projects:
            for field, value in _apply_cascade(project).items():
                setattr(project, field, value)


def register_project_status_hook() -> None:
    """Attach the pre-flush cascade to every SQLAlchemy session (idempotent)."""
    if not event.contains(Session, "before_flush", _cascade_before_flush):
        event.listen(Session, "before_flush", _cascade_before_flush)
