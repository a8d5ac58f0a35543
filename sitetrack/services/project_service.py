"""Project CRUD service: create, update, cancel, cascading soft delete, restore.

Transaction policy: every public function commits through
``commit_or_raise`` before it returns, then runs the recompute chain for
whatever it touched. ``status`` and the actual timeline are derived and
cannot be written through ``update_project``.
"""

import logging

from sitetrack.core.exceptions import ValidationError
from sitetrack.models import db
from sitetrack.models.activity import Activity
from sitetrack.models.project import PROJECT_STATUSES, Project
from sitetrack.models.site import Site
from sitetrack.services.cascade_service import cascade_after_write
from sitetrack.services.helpers.active_queries import (
    commit_or_raise,
    flush_or_raise,
    get_active,
    list_active,
)
from sitetrack.services.site_status import refresh_site
from sitetrack.utils.helpers import parse_date_input

logger = logging.getLogger(__name__)

CREATION_STATUSES = ("planning", "active")
DERIVED_FIELDS = ("status", "actual_start", "actual_end")


def _check_dates(start_date, end_date) -> None:
    if end_date is None:
        raise ValidationError("end_date is required", details={"end_date": "required"})
    if start_date and end_date < start_date:
        raise ValidationError(
            "end_date must not be before start_date",
            details={"end_date": "before start_date"},
        )


def list_projects(*, status=None, manager_id=None, include_deleted=False) -> list[Project]:
    filters = {}
    if status:
        if status not in PROJECT_STATUSES:
            raise ValidationError(f"Invalid status: {status}", details={"status": status})
        filters["status"] = status
    if manager_id:
        filters["manager_id"] = str(manager_id)
    return list_active(
        Project, include_deleted=include_deleted,
        order_by=Project.created_at.desc(), **filters,
    )


def create_project(data: dict, *, created_by: str | None = None) -> Project:
    """Create a project. Only ``planning`` or ``active`` may be given as status."""
    name = str(data.get("name", "") or "").strip()
    manager_id = str(data.get("manager_id", "") or "").strip()
    if not name:
        raise ValidationError("name is required", details={"name": "required"})
    if not manager_id:
        raise ValidationError("manager_id is required", details={"manager_id": "required"})

    status = data.get("status") or "planning"
    if status not in CREATION_STATUSES:
        raise ValidationError(
            f"status must be one of {', '.join(CREATION_STATUSES)} at creation",
            details={"status": status},
        )

    start_date = parse_date_input(data.get("start_date"), "start_date")
    end_date = parse_date_input(data.get("end_date"), "end_date")
    _check_dates(start_date, end_date)

    project = Project(
        name=name,
        description=data.get("description", ""),
        manager_id=manager_id,
        status=status,
        start_date=start_date,
        end_date=end_date,
        created_by=created_by,
    )
    db.session.add(project)
    commit_or_raise()
    logger.info("Project %s created by %s", project.id, created_by, extra={"project_id": project.id})
    return project


def update_project(project_id: int, data: dict) -> Project:
    """Field-level update. Derived fields are rejected."""
    project = get_active(Project, project_id)

    derived = [f for f in DERIVED_FIELDS if f in data]
    if derived:
        raise ValidationError(
            f"{', '.join(derived)} cannot be set directly",
            details={f: "derived" for f in derived},
        )

    if "name" in data:
        name = str(data.get("name") or "").strip()
        if not name:
            raise ValidationError("name cannot be empty", details={"name": "required"})
        project.name = name
    if "description" in data:
        project.description = data.get("description")
    if "manager_id" in data:
        manager_id = str(data.get("manager_id") or "").strip()
        if not manager_id:
            raise ValidationError("manager_id cannot be empty", details={"manager_id": "required"})
        project.manager_id = manager_id

    start_date = project.start_date
    end_date = project.end_date
    if "start_date" in data:
        start_date = parse_date_input(data.get("start_date"), "start_date")
    if "end_date" in data:
        end_date = parse_date_input(data.get("end_date"), "end_date")
    _check_dates(start_date, end_date)
    project.start_date = start_date
    project.end_date = end_date

    # The before_flush hook re-derives status on this commit.
    commit_or_raise()
    return project


def cancel_project(project_id: int) -> Project:
    """Move a project to ``cancelled``. The cascade never moves it again."""
    project = get_active(Project, project_id)
    if project.status == "completed":
        raise ValidationError("A completed project cannot be cancelled", details={"status": project.status})
    project.status = "cancelled"
    commit_or_raise()
    logger.info("Project %s cancelled", project.id, extra={"project_id": project.id})
    return project


def delete_project(project_id: int, *, deleted_by: str | None = None) -> Project:
    """Soft-delete a project together with its sites and their activities."""
    project = get_active(Project, project_id)
    project.soft_delete(deleted_by)
    sites = list_active(Site, project_id=project.id)
    activities = list_active(Activity, site_id=[s.id for s in sites]) if sites else []
    for entity in (*sites, *activities):
        entity.soft_delete(deleted_by, at=project.deleted_at)
    commit_or_raise()
    logger.info(
        "Project %s deleted with %d sites and %d activities",
        project.id, len(sites), len(activities),
        extra={"project_id": project.id},
    )
    return project


def restore_project(project_id: int) -> Project:
    """Administrative recovery: restore a project and what was deleted with it."""
    project = get_active(Project, project_id, include_deleted=True)
    if not project.is_deleted:
        return project

    sites = [
        s for s in list_active(Site, include_deleted=True, project_id=project.id)
        if s.deleted_with(project)
    ]
    activities = [
        a for a in list_active(Activity, include_deleted=True, site_id=[s.id for s in sites])
        if a.deleted_with(project)
    ] if sites else []

    # Children are flushed first so the pre-flush project cascade sees them;
    # one commit keeps the whole restore atomic.
    for entity in (*sites, *activities):
        entity.restore()
    flush_or_raise()
    project.restore()
    commit_or_raise()

    for site in sites:
        refresh_site(site)
    cascade_after_write(project_id=project.id)
    logger.info(
        "Project %s restored with %d sites and %d activities",
        project.id, len(sites), len(activities),
        extra={"project_id": project.id},
    )
    return project


def project_statistics(project_id: int) -> dict:
    """Site counts by status and activity counts by kind over non-deleted records."""
    project = get_active(Project, project_id)
    sites = list_active(Site, project_id=project.id)
    activities = list_active(Activity, site_id=[s.id for s in sites]) if sites else []

    sites_by_status: dict[str, int] = {}
    for site in sites:
        sites_by_status[site.overall_status] = sites_by_status.get(site.overall_status, 0) + 1
    by_kind: dict[str, int] = {}
    by_status: dict[str, int] = {}
    for activity in activities:
        by_kind[activity.kind] = by_kind.get(activity.kind, 0) + 1
        by_status[activity.overall_status] = by_status.get(activity.overall_status, 0) + 1

    completions = [a.completion_percentage or 0 for a in activities]
    return {
        "project_id": project.id,
        "status": project.status,
        "sites": {"total": len(sites), "by_status": sites_by_status},
        "activities": {
            "total": len(activities),
            "by_kind": by_kind,
            "by_status": by_status,
            "average_completion": round(sum(completions) / len(completions), 1) if completions else 0,
        },
    }
