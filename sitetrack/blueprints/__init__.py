"""
Site Work Tracker
Blueprint registry and shared request helpers.
"""

import logging

from flask import request

from sitetrack.core.exceptions import ConflictError, NotFoundError, PersistenceError, ValidationError
from sitetrack.utils.errors import E, api_error

logger = logging.getLogger(__name__)


def current_actor() -> str | None:
    """User reference of the caller, as forwarded by the auth proxy."""
    return request.headers.get("X-User-Id") or None


def json_body() -> dict:
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else {}


def register_error_handlers(bp) -> None:
    """Map the service-layer exceptions to JSON errors on ``bp``."""

    @bp.errorhandler(NotFoundError)
    def _handle_not_found(error: NotFoundError):
        return api_error(E.NOT_FOUND, str(error))

    @bp.errorhandler(ValidationError)
    def _handle_validation(error: ValidationError):
        return api_error(E.VALIDATION_INVALID, str(error), details=error.details)

    @bp.errorhandler(ConflictError)
    def _handle_conflict(error: ConflictError):
        return api_error(E.CONFLICT_DUPLICATE, str(error), details={error.field: error.value})

    @bp.errorhandler(PersistenceError)
    def _handle_persistence(error: PersistenceError):
        logger.warning("Persistence error in %s: %s", request.endpoint, error)
        return api_error(E.CONFLICT_STATE, str(error))


def register_blueprints(app) -> None:
    from sitetrack.blueprints.activity_bp import activity_bp
    from sitetrack.blueprints.health_bp import health_bp
    from sitetrack.blueprints.project_bp import project_bp
    from sitetrack.blueprints.site_bp import site_bp
    from sitetrack.blueprints.task_bp import task_bp

    for bp in (project_bp, site_bp, activity_bp, task_bp, health_bp):
        app.register_blueprint(bp)
