"""Project domain model: top of the Project -> Site -> Activity hierarchy."""

from datetime import datetime, timezone

from sitetrack.models import db
from sitetrack.models.soft_delete import SoftDeleteMixin
from sitetrack.utils.helpers import isoformat_utc

PROJECT_STATUSES = ("planning", "active", "completed", "cancelled")


class Project(SoftDeleteMixin, db.Model):
    """A body of site work owned by one manager.

    ``status``, ``actual_start`` and ``actual_end`` are derived from the
    project's non-deleted Sites (see services.project_status) and are
    refreshed every time the project is flushed.
    """

    __tablename__ = "projects"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(200), nullable=False)
    description = db.Column(db.Text, nullable=True)
    manager_id = db.Column(db.String(64), nullable=False, index=True)
    status = db.Column(
        db.String(20), nullable=False, default="planning",
        comment="planning | active | completed | cancelled",
    )

    # ── Timeline ──
    start_date = db.Column(db.Date, nullable=True)
    end_date = db.Column(db.Date, nullable=False)
    actual_start = db.Column(db.DateTime(timezone=True), nullable=True)
    actual_end = db.Column(db.DateTime(timezone=True), nullable=True)

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
        db.Index("ix_projects_manager_deleted", "manager_id", "is_deleted"),
    )

    def timeline_dict(self) -> dict:
        return {
            "start_date": self.start_date.isoformat() if self.start_date else None,
            "end_date": self.end_date.isoformat() if self.end_date else None,
            "actual_start": isoformat_utc(self.actual_start),
            "actual_end": isoformat_utc(self.actual_end),
        }

    def to_dict(self) -> dict:
        """Serialize core project fields for API responses."""
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "manager_id": self.manager_id,
            "status": self.status,
            "timeline": self.timeline_dict(),
            "created_by": self.created_by,
            "created_at": isoformat_utc(self.created_at),
            "updated_at": isoformat_utc(self.updated_at),
            **self.soft_delete_dict(),
        }

    def __repr__(self) -> str:
        return f"<Project {self.id}: {self.name}>"
