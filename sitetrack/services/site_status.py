"""
Site Status Resolver — Activity set → Site.overall_status.

Rules over the non-deleted Activities whose site_id is this site:
  - no activities                              → "not-started"
  - every activity completed                   → "completed"
  - any activity in progress (including the
    dismantling stages surveying / dismantling /
    dispatching)                               → "in-progress"
  - otherwise                                  → "not-started"

A single outstanding activity blocks completion. The resolver always
re-reads the full activity set, so concurrent edits to sibling activities
cannot leave the site in a state that only reflects one of them.
"""

import logging
from typing import Iterable

from sitetrack.models.activity import Activity
from sitetrack.models.site import Site
from sitetrack.services.helpers.active_queries import apply_updates, get_active, list_active

logger = logging.getLogger(__name__)

IN_PROGRESS_ACTIVITY_STATUSES = frozenset({"in-progress", "dismantling", "dispatching", "surveying"})


def resolve_site_status(activity_statuses: Iterable[str | None]) -> str:
    """Derive a site status from its activities' statuses. Pure."""
    statuses = list(activity_statuses)
    if not statuses:
        return "not-started"
    if all(s == "completed" for s in statuses):
        return "completed"
    if any(s in IN_PROGRESS_ACTIVITY_STATUSES for s in statuses):
        return "in-progress"
    return "not-started"


def refresh_site(site: Site, *, commit: bool = True) -> str:
    """Recompute and persist the status of an already-loaded site."""
    activities = list_active(Activity, site_id=site.id)
    status = resolve_site_status(a.overall_status for a in activities)
    if site.overall_status != status:
        logger.info(
            "Site %s recomputed: %s -> %s (%d activities)",
            site.id, site.overall_status, status, len(activities),
            extra={"site_id": site.id, "project_id": site.project_id,
                   "transition": f"{site.overall_status}->{status}"},
        )
        apply_updates(site, {"overall_status": status}, commit=commit)
    else:
        logger.debug("Site %s unchanged (%s)", site.id, status, extra={"site_id": site.id})
    return status


def recompute_site(site_id: int) -> dict:
    """Recompute one site by id.

    Returns:
        {overall_status}

    Raises:
        NotFoundError: If the id does not resolve to a non-deleted site.
    """
    site = get_active(Site, site_id)
    return {"overall_status": refresh_site(site)}
