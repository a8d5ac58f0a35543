"""
Soft-delete-aware read and write helpers.

Every read in the platform MUST go through these helpers instead of
Model.query.get(pk) or db.session.get(Model, pk). Direct lookups return
soft-deleted rows, and a deleted Activity that leaks into a Site
recomputation silently corrupts the derived status of the whole chain.

Contract:
  1. Deleted rows are excluded by default on every read.
  2. ``include_deleted=True`` is the only way to see them, and is reserved
     for administrative recovery (restore) paths.
  3. Aggregation code never checks ``is_deleted`` itself: it simply never
     receives deleted records.

Usage:
    site = get_active(Site, site_id)                       # NotFoundError if missing/deleted
    acts = list_active(Activity, site_id=site.id)          # deleted rows filtered out
    gone = get_active(Site, site_id, include_deleted=True) # admin recovery only

    apply_updates(activity, {"overall_status": "completed"})  # partial update + commit
"""

import logging
from typing import Any

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from sitetrack.core.exceptions import NotFoundError, PersistenceError
from sitetrack.models import db

logger = logging.getLogger(__name__)


def _active_stmt(model, *, include_deleted: bool):
    stmt = select(model)
    if not include_deleted:
        stmt = stmt.where(model.is_deleted.is_(False))
    return stmt


def get_active(model, pk: int, *, include_deleted: bool = False):
    """Fetch one entity by PK, excluding soft-deleted rows.

    Raises:
        NotFoundError: If the entity does not exist or is soft-deleted
                       (and ``include_deleted`` is False).
    """
    stmt = _active_stmt(model, include_deleted=include_deleted).where(model.id == pk)
    result = db.session.execute(stmt).scalar_one_or_none()
    if result is None:
        logger.debug("get_active: %s id=%s not found (include_deleted=%s)",
                     model.__name__, pk, include_deleted)
        raise NotFoundError(resource=model.__name__, resource_id=pk)
    return result


def get_active_or_none(model, pk: int | None, *, include_deleted: bool = False):
    """Same as get_active but returns None instead of raising NotFoundError."""
    if pk is None:
        return None
    try:
        return get_active(model, pk, include_deleted=include_deleted)
    except NotFoundError:
        return None


def list_active(model, *, include_deleted: bool = False, order_by=None, **filters: Any) -> list:
    """List entities matching column filters, excluding soft-deleted rows.

    Each keyword maps to a column on the model. A list/tuple/set value is
    applied as ``IN``. Unknown column names raise ValueError so a typo
    never turns into an unfiltered read.
    """
    stmt = _active_stmt(model, include_deleted=include_deleted)
    for field, value in filters.items():
        column = getattr(model, field, None)
        if column is None:
            raise ValueError(f"{model.__name__} has no column '{field}' to filter on")
        if isinstance(value, (list, tuple, set, frozenset)):
            stmt = stmt.where(column.in_(list(value)))
        else:
            stmt = stmt.where(column == value)
    if order_by is not None:
        stmt = stmt.order_by(*order_by) if isinstance(order_by, (list, tuple)) else stmt.order_by(order_by)
    else:
        stmt = stmt.order_by(model.id)
    return list(db.session.execute(stmt).scalars().all())


# ── Persistence interface ────────────────────────────────────────────────────


def _persist(op, label: str) -> None:
    try:
        op()
    except IntegrityError as exc:
        db.session.rollback()
        logger.warning("Integrity error on %s: %s", label, exc.orig)
        raise PersistenceError("Duplicate or constraint violation", cause=exc) from exc
    except SQLAlchemyError as exc:
        db.session.rollback()
        logger.exception("Database error on %s", label)
        raise PersistenceError("Database error", cause=exc) from exc


def commit_or_raise() -> None:
    """Commit the current session; on failure roll back and raise PersistenceError.

    Never retries. A retry inside the engine could stamp a set-once
    timestamp twice, so conflicts are surfaced to the calling layer.
    """
    _persist(db.session.commit, "commit")


def flush_or_raise() -> None:
    """Flush pending changes without committing; same failure handling as commit."""
    _persist(db.session.flush, "flush")


def apply_updates(entity, fields: dict[str, Any], *, commit: bool = True):
    """Apply a partial field update to one entity and persist it.

    Only mapped columns are accepted; unknown keys raise ValueError.
    Returns the entity.
    """
    mapper_columns = {c.key for c in entity.__mapper__.column_attrs}
    unknown = set(fields) - mapper_columns
    if unknown:
        raise ValueError(f"{type(entity).__name__} has no column(s) {sorted(unknown)}")
    for field, value in fields.items():
        setattr(entity, field, value)
    if commit:
        commit_or_raise()
    else:
        db.session.flush()
    return entity
