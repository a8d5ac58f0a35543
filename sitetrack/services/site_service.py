"""Site CRUD service.

A site belongs to the project it was created under. Deleting a site
soft-deletes its activities in the same operation and removes it from
every project read; the project is recomputed afterwards.
"""

import logging

from sitetrack.core.exceptions import ConflictError, ValidationError
from sitetrack.models import db
from sitetrack.models.activity import Activity
from sitetrack.models.project import Project
from sitetrack.models.site import SITE_STATUSES, SITE_WORK_TYPES, Site
from sitetrack.models.work_item import new_work_record
from sitetrack.services.cascade_service import cascade_after_write
from sitetrack.services.helpers.active_queries import (
    commit_or_raise,
    get_active,
    get_active_or_none,
    list_active,
)

logger = logging.getLogger(__name__)

_EDITABLE = ("region", "site_manager_id", "notes")


def _validate_work_types(work_types) -> list[str]:
    if work_types is None:
        return []
    if not isinstance(work_types, (list, tuple)):
        raise ValidationError("work_types must be a list", details={"work_types": "list"})
    unknown = [w for w in work_types if w not in SITE_WORK_TYPES]
    if unknown:
        raise ValidationError(
            f"Unknown work types: {', '.join(map(str, unknown))}",
            details={"work_types": unknown},
        )
    return list(dict.fromkeys(work_types))


def _build_work_items(work_types: list[str], existing: dict | None = None) -> dict:
    existing = existing or {}
    return {
        wt: dict(existing[wt]) if isinstance(existing.get(wt), dict) else new_work_record()
        for wt in work_types
    }


def _next_position(project_id: int) -> int:
    live = list_active(Site, project_id=project_id)
    return max((s.position for s in live), default=-1) + 1


def _ensure_code_free(code: str, *, exclude_id: int | None = None) -> None:
    clash = [s for s in list_active(Site, code=code) if s.id != exclude_id]
    if clash:
        raise ConflictError("Site", "code", code)


def list_sites(*, project_id=None, status=None, include_deleted=False) -> list[Site]:
    filters = {}
    if project_id is not None:
        filters["project_id"] = project_id
    if status:
        if status not in SITE_STATUSES:
            raise ValidationError(f"Invalid status: {status}", details={"status": status})
        filters["overall_status"] = status
    return list_active(
        Site, include_deleted=include_deleted,
        order_by=(Site.position, Site.id), **filters,
    )


def create_site(project_id: int, data: dict, *, created_by: str | None = None) -> Site:
    project = get_active(Project, project_id)

    code = str(data.get("code", "") or "").strip()
    name = str(data.get("name", "") or "").strip()
    if not code:
        raise ValidationError("code is required", details={"code": "required"})
    if not name:
        raise ValidationError("name is required", details={"name": "required"})
    _ensure_code_free(code)

    work_types = _validate_work_types(data.get("work_types"))
    site = Site(
        code=code,
        name=name,
        region=data.get("region"),
        project_id=project.id,
        position=_next_position(project.id),
        site_manager_id=data.get("site_manager_id"),
        work_types=work_types,
        work_items=_build_work_items(work_types),
        notes=data.get("notes"),
        created_by=created_by,
    )
    db.session.add(site)
    commit_or_raise()
    logger.info(
        "Site %s (%s) added to project %s", site.id, site.code, project.id,
        extra={"site_id": site.id, "project_id": project.id},
    )
    cascade_after_write(site_id=site.id)
    return site


def update_site(site_id: int, data: dict) -> Site:
    site = get_active(Site, site_id)

    if "overall_status" in data:
        raise ValidationError(
            "overall_status is derived from the site's activities",
            details={"overall_status": "derived"},
        )
    if "project_id" in data and data["project_id"] != site.project_id:
        raise ValidationError("A site cannot move between projects", details={"project_id": "immutable"})

    if "code" in data:
        code = str(data.get("code") or "").strip()
        if not code:
            raise ValidationError("code cannot be empty", details={"code": "required"})
        if code != site.code:
            _ensure_code_free(code, exclude_id=site.id)
        site.code = code
    if "name" in data:
        name = str(data.get("name") or "").strip()
        if not name:
            raise ValidationError("name cannot be empty", details={"name": "required"})
        site.name = name

    for attr in _EDITABLE:
        if attr in data:
            setattr(site, attr, data[attr])
    if "position" in data:
        try:
            site.position = int(data["position"])
        except (TypeError, ValueError) as exc:
            raise ValidationError("position must be an integer", details={"position": "int"}) from exc
    if "work_types" in data:
        work_types = _validate_work_types(data["work_types"])
        site.work_types = work_types
        site.work_items = _build_work_items(work_types, site.work_items)

    commit_or_raise()
    return site


def delete_site(site_id: int, *, deleted_by: str | None = None) -> Site:
    """Soft-delete a site and its activities, then recompute the project."""
    site = get_active(Site, site_id)
    site.soft_delete(deleted_by)
    activities = list_active(Activity, site_id=site.id)
    for activity in activities:
        activity.soft_delete(deleted_by, at=site.deleted_at)
    commit_or_raise()
    logger.info(
        "Site %s deleted with %d activities", site.id, len(activities),
        extra={"site_id": site.id, "project_id": site.project_id},
    )
    if get_active_or_none(Project, site.project_id) is not None:
        cascade_after_write(project_id=site.project_id)
    return site


def restore_site(site_id: int) -> Site:
    """Administrative recovery: restore a site and the activities deleted with it."""
    site = get_active(Site, site_id, include_deleted=True)
    if not site.is_deleted:
        return site
    if get_active_or_none(Project, site.project_id) is None:
        raise ValidationError(
            "Cannot restore a site whose project is deleted",
            details={"project_id": site.project_id},
        )
    _ensure_code_free(site.code)

    activities = [
        a for a in list_active(Activity, include_deleted=True, site_id=site.id)
        if a.deleted_with(site)
    ]
    for entity in (site, *activities):
        entity.restore()
    commit_or_raise()
    logger.info(
        "Site %s restored with %d activities", site.id, len(activities),
        extra={"site_id": site.id, "project_id": site.project_id},
    )
    cascade_after_write(site_id=site.id)
    return site
