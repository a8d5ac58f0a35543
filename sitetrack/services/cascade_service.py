"""
Recompute chain — runs the levels bottom-up after a write.

    activity  →  site  →  project

Each step re-reads its children and commits its own record before the
next level runs, so a parent always sees the child's new value. The
chain starts at the lowest level it is given. A parent that no longer
resolves (soft-deleted or gone) is skipped and reported as ``None``.

``CASCADE_ON_WRITE = False`` turns the automatic chain off for CRUD
writes; explicit recomputes and ``flask recompute-all`` still work.
"""

import logging
import time
from datetime import datetime

from flask import current_app

from sitetrack.models.activity import Activity
from sitetrack.models.project import Project
from sitetrack.models.site import Site
from sitetrack.services.activity_aggregator import refresh_activity
from sitetrack.services.helpers.active_queries import get_active, get_active_or_none, list_active
from sitetrack.services.project_status import refresh_project
from sitetrack.services.site_status import refresh_site

logger = logging.getLogger(__name__)


def cascade_enabled() -> bool:
    return bool(current_app.config.get("CASCADE_ON_WRITE", True))


def recompute_chain(*, activity_id: int | None = None, site_id: int | None = None,
                    project_id: int | None = None, now: datetime | None = None) -> dict:
    """Recompute from the lowest given level up to the project.

    Raises:
        NotFoundError: If the starting entity does not resolve.
    """
    result = {"activity": None, "site": None, "project": None}

    site = project = None
    if activity_id is not None:
        activity = get_active(Activity, activity_id)
        result["activity"] = refresh_activity(activity, now=now).as_result()
        site = get_active_or_none(Site, activity.site_id)
    elif site_id is not None:
        site = get_active(Site, site_id)
    elif project_id is not None:
        project = get_active(Project, project_id)

    if site is not None:
        result["site"] = {"overall_status": refresh_site(site)}
        project = get_active_or_none(Project, site.project_id)

    if project is not None:
        refresh_project(project, now=now)
        result["project"] = {"status": project.status, "timeline": project.timeline_dict()}

    return result


def cascade_after_write(**ids) -> dict | None:
    """Run the chain if automatic cascading is enabled."""
    if not cascade_enabled():
        logger.debug("Cascade on write disabled; skipping %s", ids)
        return None
    return recompute_chain(**ids)


def recompute_all(*, now: datetime | None = None) -> dict:
    """Re-run every level bottom-up over all non-deleted records.

    Used by the ``flask recompute-all`` command to re-synchronise parents
    that drifted during a staleness window.
    """
    t0 = time.perf_counter()
    activities = list_active(Activity)
    for activity in activities:
        refresh_activity(activity, now=now)
    sites = list_active(Site)
    for site in sites:
        refresh_site(site)
    projects = list_active(Project)
    for project in projects:
        refresh_project(project, now=now)

    counts = {"activities": len(activities), "sites": len(sites), "projects": len(projects)}
    logger.info(
        "Recomputed %d activities, %d sites, %d projects",
        counts["activities"], counts["sites"], counts["projects"],
        extra={"duration_ms": round((time.perf_counter() - t0) * 1000, 1)},
    )
    return counts
