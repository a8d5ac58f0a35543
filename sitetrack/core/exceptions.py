"""
Platform-wide exception hierarchy.

Services raise these; blueprints register handlers against them once and
get consistent HTTP status codes everywhere.

Usage:
    from sitetrack.core.exceptions import NotFoundError, ValidationError

    raise NotFoundError(resource="Site", resource_id=42)
    raise ValidationError("name is required", details={"name": "required"})

Unrecognised status strings on WorkItems or Activities are NOT errors: the
aggregation engine normalises them to the most conservative bucket and
logs a warning. Stale parents (a Project recomputed before one of its
Sites) are an accepted eventual-consistency window, not an exception.
"""


class NotFoundError(Exception):
    """Raised when an id does not resolve to a non-deleted record.

    Args:
        resource: Human-readable entity name (e.g. "Project", "Activity").
        resource_id: The PK that was looked up.
    """

    def __init__(self, resource: str, resource_id: int | str | None = None) -> None:
        self.resource = resource
        self.resource_id = resource_id
        msg = f"{resource}"
        if resource_id is not None:
            msg += f" id={resource_id}"
        msg += " not found"
        super().__init__(msg)


class ValidationError(Exception):
    """Raised when input fails business-rule validation in the service layer.

    Maps to HTTP 422 in blueprint error handlers.

    Args:
        message: Human-readable explanation of what failed.
        details: Optional field-level breakdown for structured API responses.
    """

    def __init__(self, message: str, details: dict | None = None) -> None:
        self.details = details or {}
        super().__init__(message)


class ConflictError(Exception):
    """Raised when an operation would create a duplicate unique value.

    Maps to HTTP 409.
    """

    def __init__(self, resource: str, field: str, value: str | None = None) -> None:
        self.resource = resource
        self.field = field
        self.value = value
        msg = f"{resource} with {field}={value!r} already exists"
        super().__init__(msg)


class PersistenceError(Exception):
    """Raised when a commit fails (write conflict, constraint, lost connection).

    The session has already been rolled back when this is raised. Callers
    retry at their own layer; the aggregation engine never retries, so a
    set-once timestamp is never stamped twice by an internal retry.
    """

    def __init__(self, message: str, *, cause: Exception | None = None) -> None:
        self.cause = cause
        super().__init__(message)
