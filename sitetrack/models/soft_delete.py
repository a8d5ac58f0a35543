"""
Soft Delete Mixin

Adds `is_deleted`, `deleted_at` and `deleted_by` columns plus query helpers.
Models that include this mixin are marked as deleted rather than physically
removed, and every default read in the service layer filters them out.

Usage:
    class Site(SoftDeleteMixin, db.Model):
        ...

    # Soft delete
    site.soft_delete(deleted_by="u-42")
    db.session.commit()

    # Query only active records
    Site.query_active().all()

    # Include deleted (administrative recovery)
    Site.query_with_deleted().all()

    # Restore
    site.restore()
    db.session.commit()
"""

from datetime import datetime, timezone

from sitetrack.models import db
from sitetrack.utils.helpers import as_utc, isoformat_utc


class SoftDeleteMixin:
    """Mixin that adds soft delete support to any SQLAlchemy model."""

    is_deleted = db.Column(db.Boolean, nullable=False, default=False, index=True)
    deleted_at = db.Column(db.DateTime(timezone=True), nullable=True, default=None)
    deleted_by = db.Column(db.String(64), nullable=True)

    def soft_delete(self, deleted_by: str | None = None, *, at: datetime | None = None):
        """Mark this record as deleted.

        Cascading deletes pass the parent's ``deleted_at`` as ``at`` so the
        children can be restored together with it.
        """
        self.is_deleted = True
        self.deleted_at = at or datetime.now(timezone.utc)
        self.deleted_by = deleted_by

    def deleted_with(self, other) -> bool:
        """True if this record was soft-deleted in the same operation as ``other``."""
        if not (self.is_deleted and other.deleted_at and self.deleted_at):
            return False
        return as_utc(self.deleted_at) == as_utc(other.deleted_at)

    def restore(self):
        """Restore a soft-deleted record."""
        self.is_deleted = False
        self.deleted_at = None
        self.deleted_by = None

    @classmethod
    def query_active(cls):
        """Return a query that excludes soft-deleted records."""
        return cls.query.filter(cls.is_deleted.is_(False))

    @classmethod
    def query_deleted(cls):
        """Return only soft-deleted records."""
        return cls.query.filter(cls.is_deleted.is_(True))

    @classmethod
    def query_with_deleted(cls):
        """Return every record, deleted or not."""
        return cls.query

    def soft_delete_dict(self) -> dict:
        return {
            "is_deleted": bool(self.is_deleted),
            "deleted_at": isoformat_utc(self.deleted_at),
            "deleted_by": self.deleted_by,
        }
