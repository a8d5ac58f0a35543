"""
Tests for sitetrack/services/work_item_evaluator.py

The evaluator is the leaf of the cascade: every record shape it can meet in
stored JSON must map to a status and a contribution without raising.
"""

import logging

import pytest

from sitetrack.models.work_item import WorkItem
from sitetrack.services.work_item_evaluator import (
    COMPLETED,
    IN_PROGRESS,
    NOT_STARTED,
    evaluate_work_item,
    normalize_work_status,
)


class TestContribution:
    @pytest.mark.parametrize("status, expected", [
        ("completed", 100),
        ("in-progress", 50),
        ("not-started", 0),
    ])
    def test_required_item_scores_by_status(self, status, expected):
        score = evaluate_work_item({"required": True, "status": status})
        assert score.contribution == expected
        assert score.required is True

    def test_non_required_item_contributes_nothing(self):
        score = evaluate_work_item({"required": False, "status": "completed"})
        assert score.contribution == 0
        assert score.required is False
        assert score.status == COMPLETED

    def test_required_must_be_literal_true(self):
        """A truthy string is not a required flag."""
        assert evaluate_work_item({"required": "yes", "status": "completed"}).required is False

    def test_accepts_workitem_view(self):
        item = WorkItem(work_type="civil", sub_site="source_site", required=True, status="in-progress")
        assert evaluate_work_item(item).contribution == 50


class TestMalformedRecords:
    @pytest.mark.parametrize("record", [None, "completed", 42, [], {}])
    def test_absent_or_malformed_is_non_required(self, record):
        score = evaluate_work_item(record)
        assert score.required is False
        assert score.contribution == 0

    def test_missing_status_is_not_started(self):
        score = evaluate_work_item({"required": True})
        assert score.status == NOT_STARTED
        assert score.contribution == 0


class TestNormalization:
    @pytest.mark.parametrize("raw, expected", [
        ("completed", COMPLETED),
        ("in_progress", IN_PROGRESS),
        ("active", IN_PROGRESS),
        ("In-Progress", IN_PROGRESS),
        ("loading", IN_PROGRESS),
        ("in-transit", IN_PROGRESS),
        ("unloading", IN_PROGRESS),
        ("", NOT_STARTED),
        (None, NOT_STARTED),
    ])
    def test_known_spellings(self, raw, expected):
        assert normalize_work_status(raw) == expected

    def test_unknown_status_is_not_started_and_logged(self, caplog):
        with caplog.at_level(logging.WARNING, logger="sitetrack.services.work_item_evaluator"):
            assert normalize_work_status("blocked-by-customer") == NOT_STARTED
        assert "blocked-by-customer" in caplog.text

    def test_unknown_status_on_required_item_scores_zero(self):
        score = evaluate_work_item({"required": True, "status": "paused"})
        assert score.status == NOT_STARTED
        assert score.contribution == 0
