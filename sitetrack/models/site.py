"""Site domain model: a physical telecom site belonging to a Project."""

from datetime import datetime, timezone

from sitetrack.models import db
from sitetrack.models.soft_delete import SoftDeleteMixin
from sitetrack.utils.helpers import isoformat_utc

SITE_STATUSES = ("not-started", "in-progress", "completed", "on-hold")
SITE_WORK_TYPES = ("civil", "telecom", "survey", "dismantling", "storeOperator")


class Site(SoftDeleteMixin, db.Model):
    """A site under a Project.

    ``overall_status`` is derived from the non-deleted Activities whose
    ``site_id`` points here (see services.site_status).
    """

    __tablename__ = "sites"

    id = db.Column(db.Integer, primary_key=True)
    code = db.Column(db.String(50), nullable=False, comment="External site identifier")
    name = db.Column(db.String(200), nullable=False)
    region = db.Column(db.String(100), nullable=True)
    project_id = db.Column(
        db.Integer,
        db.ForeignKey("projects.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    position = db.Column(db.Integer, nullable=False, default=0, comment="Order within project")
    site_manager_id = db.Column(db.String(64), nullable=True)
    overall_status = db.Column(
        db.String(20), nullable=False, default="not-started",
        comment="not-started | in-progress | completed | on-hold",
    )
    work_types = db.Column(db.JSON, nullable=False, default=list)
    work_items = db.Column(
        db.JSON, nullable=False, default=dict,
        comment="work type -> {required, status, assigned_users, notes}",
    )
    notes = db.Column(db.Text, nullable=True)

    created_by = db.Column(db.String(64), nullable=True)
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
        db.Index("ix_sites_project_deleted", "project_id", "is_deleted"),
        db.Index(
            "uq_sites_code_active",
            "code",
            unique=True,
            postgresql_where=db.text("is_deleted IS FALSE"),
            sqlite_where=db.text("is_deleted = 0"),
        ),
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "code": self.code,
            "name": self.name,
            "region": self.region,
            "project_id": self.project_id,
            "position": self.position,
            "site_manager_id": self.site_manager_id,
            "overall_status": self.overall_status,
            "work_types": list(self.work_types or []),
            "work_items": dict(self.work_items or {}),
            "notes": self.notes,
            "created_at": isoformat_utc(self.created_at),
            "updated_at": isoformat_utc(self.updated_at),
            **self.soft_delete_dict(),
        }

    def __repr__(self) -> str:
        return f"<Site {self.id}: {self.code}>"
