"""
Activity domain models — field work executed against a Site.

Single-table polymorphic hierarchy on ``kind``:

    DismantlingActivity  kind="dismantling"  source sub-site only
    COWActivity          kind="cow"          source + destination sub-sites
    RelocationActivity   kind="relocation"   source + destination sub-sites

All three share the status/completion contract. The only per-variant
behaviour the aggregation engine relies on is ``iter_work_items()`` (which
WorkItems exist) and ``INITIAL_STATUS`` (what "nothing started" looks like).
"""

from datetime import datetime, timezone

from sitetrack.models import db
from sitetrack.models.soft_delete import SoftDeleteMixin
from sitetrack.models.work_item import WORK_ITEM_STATUSES, WorkItem
from sitetrack.services.work_item_evaluator import normalize_work_status
from sitetrack.utils.helpers import isoformat_utc

ACTIVITY_KINDS = ("dismantling", "cow", "relocation")
SUB_SITE_KEYS = ("source_site", "destination_site")
ASSIGNMENT_STATUSES = ("assigned", "accepted", "in-progress", "completed")


class Activity(SoftDeleteMixin, db.Model):
    """Common columns and capability surface for every activity kind."""

    __tablename__ = "activities"

    INITIAL_STATUS = "planned"
    STATUSES = ("planned", "in-progress", "completed", "on-hold")
    SUB_SITES = ("source_site",)
    WORK_TYPES = ()
    WORK_ITEM_STATUSES = WORK_ITEM_STATUSES
    MODULE_LABEL = "activity"

    id = db.Column(db.Integer, primary_key=True)
    kind = db.Column(db.String(20), nullable=False, index=True)
    site_id = db.Column(
        db.Integer,
        db.ForeignKey("sites.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    overall_status = db.Column(db.String(30), nullable=False, default="planned")
    completion_percentage = db.Column(db.Integer, nullable=False, default=0)

    source_site = db.Column(db.JSON, nullable=True)
    destination_site = db.Column(db.JSON, nullable=True)
    assignment = db.Column(
        db.JSON, nullable=False, default=dict,
        comment="{assigned_to: [..], assigned_by, assigned_date, status}",
    )

    # ── Timeline ──
    planned_start = db.Column(db.Date, nullable=True)
    planned_end = db.Column(db.Date, nullable=True)
    actual_start = db.Column(db.DateTime(timezone=True), nullable=True)
    actual_end = db.Column(db.DateTime(timezone=True), nullable=True)
    stage_completion = db.Column(
        db.JSON, nullable=False, default=dict,
        comment="'<sub_site>.<work_type>' -> ISO completion timestamp",
    )

    description = db.Column(db.Text, nullable=True)
    notes = db.Column(db.Text, nullable=True)

    # ── Kind-specific columns ──
    dismantling_type = db.Column(db.String(30), nullable=True)
    location_city = db.Column(db.String(100), nullable=True)
    activity_name = db.Column(db.String(200), nullable=True)
    purpose = db.Column(db.String(50), nullable=True)
    relocation_type = db.Column(db.String(30), nullable=True)

    created_by = db.Column(db.String(64), nullable=True)
    updated_by = db.Column(db.String(64), nullable=True)
    created_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    __table_args__ = (
        db.Index("ix_activities_site_deleted", "site_id", "is_deleted"),
    )
    __mapper_args__ = {"polymorphic_on": kind}

    # ── Capability surface ────────────────────────────────────────────────

    def iter_sub_sites(self):
        """Yield ``(key, document)`` for every sub-site that takes part in the work."""
        for key in self.SUB_SITES:
            doc = getattr(self, key, None)
            if not isinstance(doc, dict):
                continue
            if doc.get("site_required") is False:
                continue
            yield key, doc

    def iter_work_items(self):
        """Yield every WorkItem across this activity's participating sub-sites."""
        for key, doc in self.iter_sub_sites():
            work = doc.get("work")
            if not isinstance(work, dict):
                continue
            for work_type, record in work.items():
                yield WorkItem.from_record(record, work_type=work_type, sub_site=key)

    def assigned_users(self) -> list[str]:
        """Every user referenced by the assignment block or any WorkItem, deduplicated."""
        seen: list[str] = []
        assigned = (self.assignment or {}).get("assigned_to") or []
        for user in assigned:
            if user and str(user) not in seen:
                seen.append(str(user))
        for item in self.iter_work_items():
            for user in item.assigned_users:
                if user not in seen:
                    seen.append(user)
        return seen

    def display_title(self) -> str:
        return f"{self.MODULE_LABEL.title()} #{self.id}"

    @property
    def type_label(self) -> str:
        """Free-text "activity type" used by task search."""
        return self.kind

    def current_phase(self) -> str:
        return self.overall_status or self.INITIAL_STATUS

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "kind": self.kind,
            "site_id": self.site_id,
            "overall_status": self.overall_status,
            "completion_percentage": self.completion_percentage,
            "source_site": self.source_site,
            "destination_site": self.destination_site,
            "assignment": dict(self.assignment or {}),
            "timeline": {
                "planned_start": self.planned_start.isoformat() if self.planned_start else None,
                "planned_end": self.planned_end.isoformat() if self.planned_end else None,
                "actual_start": isoformat_utc(self.actual_start),
                "actual_end": isoformat_utc(self.actual_end),
                "stage_completion": dict(self.stage_completion or {}),
            },
            "description": self.description,
            "notes": self.notes,
            "created_by": self.created_by,
            "updated_by": self.updated_by,
            "created_at": isoformat_utc(self.created_at),
            "updated_at": isoformat_utc(self.updated_at),
            **self.soft_delete_dict(),
        }

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.id} site={self.site_id}>"


class DismantlingActivity(Activity):
    """Decommissioning of equipment: survey, dismantle, dispatch to store."""

    INITIAL_STATUS = "planned"
    STATUSES = (
        "planned", "in-progress", "surveying", "dismantling",
        "dispatching", "completed", "on-hold",
    )
    SUB_SITES = ("source_site",)
    WORK_TYPES = ("survey", "dismantling", "dispatch")
    MODULE_LABEL = "dismantling"
    DISMANTLING_TYPES = ("B2S", "StandAlone", "OMO", "Custom")

    __mapper_args__ = {"polymorphic_identity": "dismantling"}

    def display_title(self) -> str:
        return f"{self.dismantling_type or 'Dismantling'} - {self.location_city or 'Unknown Location'}"

    @property
    def type_label(self) -> str:
        return " ".join(filter(None, ("dismantling", self.dismantling_type)))

    def current_phase(self) -> str:
        """Stage label derived from the survey -> dismantling -> dispatch chain."""
        statuses = {item.work_type: normalize_work_status(item.status) for item in self.iter_work_items()}
        if statuses.get("dispatch") == "completed":
            return "Completed"
        if statuses.get("dismantling") == "completed":
            return "Dispatching"
        if statuses.get("survey") == "completed":
            return "Dismantling"
        if statuses.get("survey") == "in-progress":
            return "Surveying"
        return "Planned"


class COWActivity(Activity):
    """Cell-on-wheels deployment: temporary coverage moved between sites."""

    INITIAL_STATUS = "planned"
    STATUSES = ("planned", "in-progress", "completed", "on-hold")
    SUB_SITES = ("source_site", "destination_site")
    WORK_TYPES = ("survey", "inventory", "transportation", "installation")
    # Transportation work passes through these before it completes.
    WORK_ITEM_STATUSES = WORK_ITEM_STATUSES + ("loading", "in-transit", "unloading")
    MODULE_LABEL = "cow"
    PURPOSES = ("event-coverage", "disaster-recovery", "network-expansion", "maintenance", "other")

    __mapper_args__ = {"polymorphic_identity": "cow"}

    def display_title(self) -> str:
        return self.activity_name or f"COW Activity #{self.id}"

    @property
    def type_label(self) -> str:
        return " ".join(filter(None, ("cow", self.purpose)))


class RelocationActivity(Activity):
    """Equipment relocation from a source site to a destination site."""

    INITIAL_STATUS = "draft"
    STATUSES = ("draft", "in-progress", "completed", "on-hold")
    SUB_SITES = ("source_site", "destination_site")
    WORK_TYPES = ("civil", "telecom", "survey", "dismantling", "storeOperator")
    MODULE_LABEL = "relocation"
    RELOCATION_TYPES = ("B2S", "OMO", "StandAlone", "Custom")

    __mapper_args__ = {"polymorphic_identity": "relocation"}

    def display_title(self) -> str:
        return f"{self.relocation_type or 'Custom'} Relocation"

    @property
    def type_label(self) -> str:
        return " ".join(filter(None, ("relocation", self.relocation_type)))


ACTIVITY_MODELS: dict[str, type[Activity]] = {
    "dismantling": DismantlingActivity,
    "cow": COWActivity,
    "relocation": RelocationActivity,
}


def get_activity_model(kind: str) -> type[Activity]:
    """Resolve an activity kind to its model class (raises KeyError)."""
    return ACTIVITY_MODELS[kind]
