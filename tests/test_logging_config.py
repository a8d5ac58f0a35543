"""
Tests for sitetrack/middleware/logging_config.py

Recompute logs are followed across levels by their entity scope, so the
formatters must carry project / site / activity ids and the status
transition; the engine logger level is tunable on its own.
"""

import json
import logging

import pytest
from flask import Flask

from sitetrack.middleware.logging_config import (
    ENGINE_LOGGER,
    JSONFormatter,
    ReadableFormatter,
    configure_logging,
    record_scope,
    scope_path,
)


def _record(msg="Site 40 recomputed", level=logging.INFO, **extra):
    record = logging.LogRecord(
        name="sitetrack.services.site_status", level=level, pathname=__file__,
        lineno=1, msg=msg, args=(), exc_info=None,
    )
    record.__dict__.update(extra)
    return record


class TestScope:
    def test_ids_are_ordered_outermost_first(self):
        record = _record(activity_id=7, project_id=12, site_id=40)
        assert list(record_scope(record)) == ["project_id", "site_id", "activity_id"]
        assert scope_path(record) == "p12/s40/a7"

    def test_partial_scope(self):
        assert scope_path(_record(site_id=40)) == "s40"

    def test_unscoped_record(self):
        record = _record()
        assert record_scope(record) == {}
        assert scope_path(record) == ""


class TestJSONFormatter:
    def test_scope_and_transition(self):
        record = _record(project_id=12, site_id=40, transition="not-started->in-progress")
        entry = json.loads(JSONFormatter().format(record))

        assert entry["message"] == "Site 40 recomputed"
        assert entry["scope"] == {"project_id": 12, "site_id": 40}
        assert entry["transition"] == "not-started->in-progress"
        assert "project_id" not in entry

    def test_request_fields_stay_flat(self):
        record = _record(msg="GET /api/v1/tasks", method="GET", path="/api/v1/tasks",
                         status=200, duration_ms=12.5, request_id="abc")
        entry = json.loads(JSONFormatter().format(record))

        assert entry["method"] == "GET"
        assert entry["duration_ms"] == 12.5
        assert entry["request_id"] == "abc"
        assert "scope" not in entry
        assert "transition" not in entry


class TestReadableFormatter:
    def test_scope_path_follows_logger_name(self):
        line = ReadableFormatter(color=False).format(_record(project_id=12, site_id=40))
        assert "sitetrack.services.site_status [p12/s40]: Site 40 recomputed" in line
        assert "\033[" not in line

    def test_duration_suffix(self):
        line = ReadableFormatter(color=False).format(_record(msg="GET /", duration_ms=41.7))
        assert line.endswith("GET / [42ms]")

    def test_color_codes(self):
        line = ReadableFormatter().format(_record(level=logging.WARNING))
        assert ReadableFormatter.COLORS["WARNING"] in line


@pytest.fixture()
def restore_logging():
    root = logging.getLogger()
    engine = logging.getLogger(ENGINE_LOGGER)
    saved = (list(root.handlers), root.level, engine.level)
    yield
    root.handlers[:] = saved[0]
    root.setLevel(saved[1])
    engine.setLevel(saved[2])


class TestConfigureLogging:
    def test_cascade_level_is_separate(self, monkeypatch, restore_logging):
        monkeypatch.setenv("LOG_LEVEL", "INFO")
        monkeypatch.setenv("CASCADE_LOG_LEVEL", "WARNING")
        app = Flask("sitetrack_logging_check")
        app.config["TESTING"] = True

        configure_logging(app)

        assert logging.getLogger().level == logging.INFO
        assert logging.getLogger(ENGINE_LOGGER).level == logging.WARNING
        assert not logging.getLogger("sitetrack.services.site_status").isEnabledFor(logging.INFO)
        assert len(logging.getLogger().handlers) == 1

    def test_cascade_level_defaults_to_log_level(self, monkeypatch, restore_logging):
        monkeypatch.setenv("LOG_LEVEL", "DEBUG")
        monkeypatch.delenv("CASCADE_LOG_LEVEL", raising=False)
        app = Flask("sitetrack_logging_check")
        app.config["TESTING"] = True

        configure_logging(app)

        assert logging.getLogger(ENGINE_LOGGER).level == logging.DEBUG
        assert isinstance(logging.getLogger().handlers[0].formatter, ReadableFormatter)
