"""
Structured logging configuration.

- Development: human-readable colored format
- Production: JSON format (log aggregator compatible)
- Log level: LOG_LEVEL for everything, CASCADE_LOG_LEVEL for the
  status engine (``sitetrack.services``) on its own

Recompute logs carry the ids of the entity they touched as ``extra``
fields (``project_id``, ``site_id``, ``activity_id``) and, when a status
changed, a ``transition`` such as ``"planned->in-progress"``. The JSON
formatter nests the ids under ``scope`` so one project's cascade can be
followed across levels in the aggregator:

    {"message": "Site 40 recomputed: ...", "transition": "not-started->in-progress",
     "scope": {"project_id": 12, "site_id": 40}}
"""

import json
import logging
import os
import sys
from datetime import datetime, timezone

# Request attributes set by the timing middleware.
REQUEST_FIELDS = (
    "method",
    "path",
    "status",
    "duration_ms",
    "remote_addr",
    "request_id",
)

# Outermost first: project -> site -> activity.
SCOPE_FIELDS = ("project_id", "site_id", "activity_id")
_SCOPE_TAGS = {"project_id": "p", "site_id": "s", "activity_id": "a"}

ENGINE_LOGGER = "sitetrack.services"


def record_scope(record: logging.LogRecord) -> dict:
    """Entity ids attached to a record, outermost level first."""
    return {
        key: getattr(record, key)
        for key in SCOPE_FIELDS
        if getattr(record, key, None) is not None
    }


def scope_path(record: logging.LogRecord) -> str:
    """Compact ``p12/s40/a7`` form of the record's scope; empty when unscoped."""
    return "/".join(f"{_SCOPE_TAGS[key]}{val}" for key, val in record_scope(record).items())


class JSONFormatter(logging.Formatter):
    """JSON log formatter for production / log aggregation."""

    def format(self, record: logging.LogRecord) -> str:
        log_entry = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }
        if record.exc_info and record.exc_info[0] is not None:
            log_entry["exception"] = self.formatException(record.exc_info)
        for key in REQUEST_FIELDS:
            val = getattr(record, key, None)
            if val is not None:
                log_entry[key] = val
        transition = getattr(record, "transition", None)
        if transition:
            log_entry["transition"] = transition
        scope = record_scope(record)
        if scope:
            log_entry["scope"] = scope
        return json.dumps(log_entry, ensure_ascii=False, default=str)


class ReadableFormatter(logging.Formatter):
    """Human-readable colored formatter for development.

    ``12:00:01 INFO     sitetrack.services.site_status [p12/s40]: Site 40 recomputed ...``
    """

    COLORS = {
        "DEBUG": "\033[36m",      # cyan
        "INFO": "\033[32m",       # green
        "WARNING": "\033[33m",    # yellow
        "ERROR": "\033[31m",      # red
        "CRITICAL": "\033[35m",   # magenta
    }
    RESET = "\033[0m"

    def __init__(self, *, color: bool = True):
        super().__init__()
        self.color = color

    def format(self, record: logging.LogRecord) -> str:
        color, reset = (self.COLORS.get(record.levelname, ""), self.RESET) if self.color else ("", "")
        ts = datetime.now().strftime("%H:%M:%S")
        path = scope_path(record)
        where = f"{record.name} [{path}]" if path else record.name
        duration = getattr(record, "duration_ms", None)
        dur_str = f" [{duration:.0f}ms]" if duration is not None else ""
        base = f"{color}{ts} {record.levelname:<8}{reset} {where}: {record.getMessage()}{dur_str}"
        if record.exc_info and record.exc_info[0] is not None:
            base += "\n" + self.formatException(record.exc_info)
        return base


def _level(name: str | None, default: int) -> int:
    if not name:
        return default
    return getattr(logging, name.upper(), default)


def configure_logging(app):
    """
    Set up structured logging for the Flask app.

    Reads LOG_LEVEL from env (default: DEBUG in dev, INFO in prod) and
    CASCADE_LOG_LEVEL for the status engine (default: same as LOG_LEVEL).
    Development  → ReadableFormatter on stderr (no color when not a tty)
    Production   → JSONFormatter on stderr
    """
    is_testing = app.config.get("TESTING", False)
    is_prod = not app.config.get("DEBUG", False) and not is_testing

    level_name = os.getenv("LOG_LEVEL", "INFO" if is_prod else "DEBUG")
    level = _level(level_name, logging.INFO)
    engine_level = _level(os.getenv("CASCADE_LOG_LEVEL"), level)

    if is_prod:
        formatter = JSONFormatter()
    else:
        formatter = ReadableFormatter(color=sys.stderr.isatty())

    # Single stream handler on the root logger; cleared first so repeated
    # create_app() calls in tests do not stack handlers.
    root = logging.getLogger()
    root.handlers.clear()
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(formatter)
    handler.setLevel(min(level, engine_level))
    root.addHandler(handler)
    root.setLevel(level)

    logging.getLogger(ENGINE_LOGGER).setLevel(engine_level)
    for noisy in ("urllib3", "werkzeug", "sqlalchemy.engine"):
        logging.getLogger(noisy).setLevel(logging.WARNING)

    app.logger.setLevel(level)

    if not is_testing:
        app.logger.info("Logging configured: level=%s cascade=%s format=%s",
                        level_name, logging.getLevelName(engine_level),
                        "JSON" if is_prod else "readable")
