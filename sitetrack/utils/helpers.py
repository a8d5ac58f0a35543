"""Shared parsing helpers for service inputs and query strings.

parse_date:          returns None on bad input (lenient, for optional fields)
parse_date_input:    raises ValidationError on bad input (strict, for required fields)
parse_bool:          query-string / JSON truthiness
get_page_args:       page / per_page from the request, capped by config
as_utc:              naive datetimes from SQLite treated as UTC
"""
import logging
from datetime import date, datetime, timezone

from flask import current_app, request

from sitetrack.core.exceptions import ValidationError

logger = logging.getLogger(__name__)


def as_utc(value):
    """Return an aware UTC datetime. Naive values (SQLite) are taken as UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def isoformat_utc(value):
    return as_utc(value).isoformat() if value else None


def parse_date(value):
    """Parse a date string (ISO or DD.MM.YYYY) to a date object.

    Returns None for empty/invalid input. Supports:
    - YYYY-MM-DD (ISO format)
    - YYYY-MM-DDTHH:MM:SS (datetime ISO → .date())
    - DD.MM.YYYY
    """
    if not value:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value))
    except (ValueError, TypeError):
        pass
    try:
        return datetime.fromisoformat(str(value)).date()
    except (ValueError, TypeError):
        pass
    try:
        return datetime.strptime(str(value), "%d.%m.%Y").date()
    except (ValueError, TypeError):
        return None


def parse_date_input(value, field: str):
    """Parse a date, raising ValidationError naming ``field`` on bad input.

    Empty input returns None; callers decide whether the field is required.
    """
    if value in (None, ""):
        return None
    parsed = parse_date(value)
    if parsed is None:
        raise ValidationError(
            f"Invalid date for {field}. Use YYYY-MM-DD or DD.MM.YYYY.",
            details={field: "invalid date"},
        )
    return parsed


def parse_bool(value, default: bool = False) -> bool:
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in ("1", "true", "yes", "on")


def get_page_args() -> dict:
    """Read ``page`` / ``per_page`` from the query string.

    Invalid values fall back to the defaults; ``per_page`` is capped at
    ``TASK_PAGE_SIZE_MAX``.
    """
    default_size = current_app.config.get("TASK_PAGE_SIZE", 20)
    max_size = current_app.config.get("TASK_PAGE_SIZE_MAX", 100)
    try:
        page = max(int(request.args.get("page", 1)), 1)
    except (ValueError, TypeError):
        page = 1
    try:
        per_page = int(request.args.get("per_page", default_size))
    except (ValueError, TypeError):
        per_page = default_size
    per_page = min(max(per_page, 1), max_size)
    return {"page": page, "per_page": per_page}
