"""WorkItem: the per-work-type record embedded in a Site or Activity sub-site.

WorkItems are not rows. They live inside the JSON sub-site documents of
their owning Activity (or Site) and are created and destroyed with it.

Sub-site document shape::

    {
        "site_required": true,
        "work_types": ["civil", "telecom"],
        "work": {
            "civil":   {"required": true, "status": "in-progress",
                        "assigned_users": ["u-1"], "notes": ""},
            "telecom": {"required": true, "status": "not-started",
                        "assigned_users": [], "notes": ""}
        },
        "address": {"city": "Riyadh"}
    }
"""

from dataclasses import dataclass, field
from typing import Any

WORK_ITEM_STATUSES = ("not-started", "in-progress", "completed")


@dataclass(frozen=True)
class WorkItem:
    """Read-only view of one WorkItem record."""

    work_type: str
    sub_site: str
    required: bool = False
    status: Any = None
    assigned_users: tuple = field(default_factory=tuple)
    notes: str | None = None
    start_time: str | None = None
    end_time: str | None = None

    @classmethod
    def from_record(cls, record: Any, *, work_type: str = "", sub_site: str = "") -> "WorkItem":
        """Build a WorkItem from a stored dict; anything malformed is non-required."""
        if not isinstance(record, dict):
            return cls(work_type=work_type, sub_site=sub_site)
        users = record.get("assigned_users") or ()
        if not isinstance(users, (list, tuple)):
            users = ()
        return cls(
            work_type=work_type,
            sub_site=sub_site,
            required=record.get("required") is True,
            status=record.get("status"),
            assigned_users=tuple(_user_ref(u) for u in users if _user_ref(u)),
            notes=record.get("notes"),
            start_time=record.get("start_time"),
            end_time=record.get("end_time"),
        )

    @property
    def key(self) -> str:
        return f"{self.sub_site}.{self.work_type}" if self.sub_site else self.work_type


def _user_ref(value: Any) -> str | None:
    """Accept either a bare user id or an assignment dict ``{"user_id": ...}``."""
    if isinstance(value, dict):
        value = value.get("user_id")
    if value is None or value == "":
        return None
    return str(value)


def new_work_record(*, required: bool = True, status: str = "not-started") -> dict:
    """Return a fresh WorkItem document for a newly configured work type."""
    return {
        "required": required,
        "status": status,
        "assigned_users": [],
        "notes": "",
    }


def build_sub_site(work_types, *, site_required: bool = True, address: dict | None = None,
                   existing_work: dict | None = None) -> dict:
    """Return a sub-site document with one required WorkItem per work type."""
    existing_work = existing_work or {}
    work = {}
    for work_type in work_types or ():
        record = existing_work.get(work_type)
        work[work_type] = dict(record) if isinstance(record, dict) else new_work_record()
    return {
        "site_required": site_required,
        "work_types": list(work_types or ()),
        "work": work,
        "address": dict(address or {}),
    }
