"""Activity CRUD service and WorkItem updates.

Every write ends by running the recompute chain for the activity, so the
activity's derived fields, its site and its project are refreshed in that
order. ``overall_status`` can only be set by a user to park an activity
(``on-hold``) or to release it back to its initial status; everything else
is derived from the WorkItems.
"""

import copy
import logging
from datetime import datetime, timezone

from sitetrack.core.exceptions import NotFoundError, ValidationError
from sitetrack.models import db
from sitetrack.models.activity import (
    ACTIVITY_KINDS,
    ASSIGNMENT_STATUSES,
    Activity,
    COWActivity,
    DismantlingActivity,
    RelocationActivity,
    get_activity_model,
)
from sitetrack.models.site import Site
from sitetrack.models.work_item import build_sub_site
from sitetrack.services.cascade_service import cascade_after_write
from sitetrack.services.helpers.active_queries import (
    commit_or_raise,
    get_active,
    get_active_or_none,
    list_active,
)
from sitetrack.services.work_item_evaluator import COMPLETED, IN_PROGRESS, normalize_work_status
from sitetrack.utils.helpers import parse_date_input

logger = logging.getLogger(__name__)

ON_HOLD = "on-hold"

# kind-specific column -> allowed values (None = free text)
_KIND_FIELDS = {
    "dismantling": {
        "dismantling_type": DismantlingActivity.DISMANTLING_TYPES,
        "location_city": None,
    },
    "cow": {"activity_name": None, "purpose": COWActivity.PURPOSES},
    "relocation": {"relocation_type": RelocationActivity.RELOCATION_TYPES},
}


def _model_for(kind: str) -> type[Activity]:
    try:
        return get_activity_model(kind)
    except KeyError as exc:
        raise ValidationError(
            f"kind must be one of {', '.join(ACTIVITY_KINDS)}", details={"kind": kind},
        ) from exc


def _sub_site_doc(model: type[Activity], key: str, payload, existing: dict | None = None) -> dict:
    """Validate a sub-site payload and build the stored document."""
    if payload is None:
        payload = {}
    if not isinstance(payload, dict):
        raise ValidationError(f"{key} must be an object", details={key: "object"})
    existing = existing or {}
    work_types = payload.get("work_types", existing.get("work_types", list(model.WORK_TYPES)))
    if not isinstance(work_types, (list, tuple)):
        raise ValidationError(f"{key}.work_types must be a list", details={key: "work_types"})
    unknown = [w for w in work_types if w not in model.WORK_TYPES]
    if unknown:
        raise ValidationError(
            f"Unknown work types for {model.MODULE_LABEL}: {', '.join(map(str, unknown))}",
            details={key: unknown},
        )
    return build_sub_site(
        list(dict.fromkeys(work_types)),
        site_required=payload.get("site_required", existing.get("site_required", True)) is not False,
        address=payload.get("address", existing.get("address")),
        existing_work=existing.get("work"),
    )


def _kind_fields(kind: str, data: dict) -> dict:
    values = {}
    for column, allowed in _KIND_FIELDS.get(kind, {}).items():
        if column not in data:
            continue
        value = data[column]
        if allowed is not None and value is not None and value not in allowed:
            raise ValidationError(
                f"{column} must be one of {', '.join(allowed)}", details={column: value},
            )
        values[column] = value
    return values


def _assignment(data: dict, *, assigned_by: str | None, current: dict | None = None) -> dict:
    assignment = dict(current or {})
    users = data.get("assigned_to")
    if users is not None:
        if not isinstance(users, (list, tuple)):
            raise ValidationError("assigned_to must be a list", details={"assigned_to": "list"})
        assignment["assigned_to"] = [str(u) for u in users if u]
        assignment["assigned_by"] = assigned_by
        assignment["assigned_date"] = datetime.now(timezone.utc).isoformat()
        assignment.setdefault("status", "assigned")
    if "assignment_status" in data:
        if data["assignment_status"] not in ASSIGNMENT_STATUSES:
            raise ValidationError(
                f"assignment_status must be one of {', '.join(ASSIGNMENT_STATUSES)}",
                details={"assignment_status": data["assignment_status"]},
            )
        assignment["status"] = data["assignment_status"]
    return assignment


def _planned_dates(data: dict, start=None, end=None):
    if "planned_start" in data:
        start = parse_date_input(data.get("planned_start"), "planned_start")
    if "planned_end" in data:
        end = parse_date_input(data.get("planned_end"), "planned_end")
    if start and end and end < start:
        raise ValidationError(
            "planned_end must not be before planned_start",
            details={"planned_end": "before planned_start"},
        )
    return start, end


# ── Reads ────────────────────────────────────────────────────────────────


def list_activities(*, site_id=None, kind=None, status=None, include_deleted=False) -> list[Activity]:
    filters = {}
    if site_id is not None:
        filters["site_id"] = site_id
    if kind:
        _model_for(kind)
        filters["kind"] = kind
    if status:
        filters["overall_status"] = status
    return list_active(
        Activity, include_deleted=include_deleted,
        order_by=Activity.created_at.desc(), **filters,
    )


# ── Writes ───────────────────────────────────────────────────────────────


def create_activity(kind: str, data: dict, *, created_by: str | None = None) -> Activity:
    """Create an activity of ``kind`` against a non-deleted site."""
    model = _model_for(kind)
    if data.get("site_id") is None:
        raise ValidationError("site_id is required", details={"site_id": "required"})
    site = get_active(Site, data["site_id"])

    planned_start, planned_end = _planned_dates(data)
    sub_sites = {key: _sub_site_doc(model, key, data.get(key)) for key in model.SUB_SITES}

    activity = model(
        site_id=site.id,
        overall_status=model.INITIAL_STATUS,
        completion_percentage=0,
        assignment=_assignment(data, assigned_by=created_by),
        planned_start=planned_start,
        planned_end=planned_end,
        stage_completion={},
        description=data.get("description"),
        notes=data.get("notes"),
        created_by=created_by,
        updated_by=created_by,
        **sub_sites,
        **_kind_fields(kind, data),
    )
    db.session.add(activity)
    commit_or_raise()
    logger.info(
        "%s activity %s created on site %s", kind, activity.id, site.id,
        extra={"activity_id": activity.id, "site_id": site.id},
    )
    cascade_after_write(activity_id=activity.id)
    return activity


def update_activity(activity_id: int, data: dict, *, updated_by: str | None = None) -> Activity:
    """Field-level update of an activity; derived fields are rejected."""
    activity = get_active(Activity, activity_id)
    model = type(activity)

    for derived in ("completion_percentage", "actual_start", "actual_end", "stage_completion"):
        if derived in data:
            raise ValidationError(f"{derived} cannot be set directly", details={derived: "derived"})
    if "kind" in data and data["kind"] != activity.kind:
        raise ValidationError("kind cannot be changed", details={"kind": "immutable"})
    if "site_id" in data and data["site_id"] != activity.site_id:
        raise ValidationError("An activity cannot move between sites", details={"site_id": "immutable"})

    if "overall_status" in data:
        status = data["overall_status"]
        if status not in (ON_HOLD, model.INITIAL_STATUS):
            raise ValidationError(
                f"overall_status can only be set to {ON_HOLD} or {model.INITIAL_STATUS}",
                details={"overall_status": status},
            )
        activity.overall_status = status

    for key in model.SUB_SITES:
        if key in data:
            setattr(activity, key, _sub_site_doc(model, key, data[key], getattr(activity, key)))

    activity.planned_start, activity.planned_end = _planned_dates(
        data, activity.planned_start, activity.planned_end,
    )
    for attr in ("description", "notes"):
        if attr in data:
            setattr(activity, attr, data[attr])
    for column, value in _kind_fields(activity.kind, data).items():
        setattr(activity, column, value)
    if "assigned_to" in data or "assignment_status" in data:
        activity.assignment = _assignment(data, assigned_by=updated_by, current=activity.assignment)

    activity.updated_by = updated_by
    commit_or_raise()
    cascade_after_write(activity_id=activity.id)
    return activity


def update_work_item(activity_id: int, sub_site: str, work_type: str, data: dict,
                     *, updated_by: str | None = None) -> dict:
    """Update one WorkItem and run the chain.

    ``start_time`` is stamped the first time the item is in progress (or
    completed) and ``end_time`` the first time it is completed. Neither is
    ever overwritten.

    Returns:
        {activity, cascade}
    """
    activity = get_active(Activity, activity_id)
    model = type(activity)
    if sub_site not in model.SUB_SITES:
        raise ValidationError(
            f"{model.MODULE_LABEL} has no sub-site {sub_site}",
            details={"sub_site": sub_site},
        )

    doc = copy.deepcopy(getattr(activity, sub_site) or {})
    work = doc.get("work") if isinstance(doc.get("work"), dict) else {}
    record = work.get(work_type)
    if not isinstance(record, dict):
        raise NotFoundError(resource="WorkItem", resource_id=f"{sub_site}.{work_type}")

    if "status" in data:
        if data["status"] not in model.WORK_ITEM_STATUSES:
            raise ValidationError(
                f"status must be one of {', '.join(model.WORK_ITEM_STATUSES)}",
                details={"status": data["status"]},
            )
        record["status"] = data["status"]
    if "required" in data:
        if not isinstance(data["required"], bool):
            raise ValidationError("required must be a boolean", details={"required": "bool"})
        record["required"] = data["required"]
    if "notes" in data:
        record["notes"] = data["notes"]
    if "assigned_users" in data:
        users = data["assigned_users"]
        if not isinstance(users, (list, tuple)):
            raise ValidationError("assigned_users must be a list", details={"assigned_users": "list"})
        record["assigned_users"] = list(users)

    now = datetime.now(timezone.utc).isoformat()
    normalized = normalize_work_status(record.get("status"))
    if normalized in (IN_PROGRESS, COMPLETED) and not record.get("start_time"):
        record["start_time"] = now
    if normalized == COMPLETED and not record.get("end_time"):
        record["end_time"] = now

    work[work_type] = record
    doc["work"] = work
    setattr(activity, sub_site, doc)
    activity.updated_by = updated_by
    commit_or_raise()
    logger.info(
        "WorkItem %s.%s on activity %s -> %s", sub_site, work_type, activity.id, record.get("status"),
        extra={"activity_id": activity.id, "site_id": activity.site_id},
    )
    cascade = cascade_after_write(activity_id=activity.id)
    return {"activity": activity.to_dict(), "cascade": cascade}


def delete_activity(activity_id: int, *, deleted_by: str | None = None) -> Activity:
    """Soft-delete an activity, then recompute its site and project."""
    activity = get_active(Activity, activity_id)
    activity.soft_delete(deleted_by)
    commit_or_raise()
    logger.info(
        "Activity %s deleted", activity.id,
        extra={"activity_id": activity.id, "site_id": activity.site_id},
    )
    if get_active_or_none(Site, activity.site_id) is not None:
        cascade_after_write(site_id=activity.site_id)
    return activity


def restore_activity(activity_id: int) -> Activity:
    """Administrative recovery of a soft-deleted activity."""
    activity = get_active(Activity, activity_id, include_deleted=True)
    if not activity.is_deleted:
        return activity
    if get_active_or_none(Site, activity.site_id) is None:
        raise ValidationError(
            "Cannot restore an activity whose site is deleted",
            details={"site_id": activity.site_id},
        )
    activity.restore()
    commit_or_raise()
    cascade_after_write(activity_id=activity.id)
    return activity
