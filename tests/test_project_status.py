"""
Tests for sitetrack/services/project_status.py

Scenarios covered:
  1. Pure cascade rules and set-once timeline stamps
  2. recompute_project through the ORM
  3. The before_flush hook re-deriving status on any project write
  4. Cancelled and soft-deleted projects stay frozen
"""

from datetime import datetime, timedelta, timezone

import pytest

from sitetrack.core.exceptions import NotFoundError
from sitetrack.models import db
from sitetrack.models.project import Project
from sitetrack.models.site import Site
from sitetrack.services.project_status import (
    cascade_project_status,
    recompute_project,
    refresh_project,
)

T0 = datetime(2025, 5, 10, 9, 30, tzinfo=timezone.utc)
T1 = T0 + timedelta(days=14)


class TestCascadeRules:
    def test_no_sites_is_planning(self):
        result = cascade_project_status([], current_status="active", now=T0)
        assert result.status == "planning"

    def test_all_completed(self):
        result = cascade_project_status(["completed", "completed"], current_status="active", now=T0)
        assert result.status == "completed"
        assert result.actual_end == T0

    def test_any_in_progress_is_active(self):
        result = cascade_project_status(
            ["completed", "in-progress", "not-started"], current_status="planning", now=T0,
        )
        assert result.status == "active"
        assert result.actual_start == T0
        assert result.actual_end is None

    def test_otherwise_status_is_kept(self):
        result = cascade_project_status(
            ["not-started", "completed"], current_status="active", now=T0,
        )
        assert result.status == "active"

    def test_on_hold_sites_keep_planning(self):
        result = cascade_project_status(["on-hold"], current_status="planning", now=T0)
        assert result.status == "planning"

    def test_timestamps_are_set_once(self):
        result = cascade_project_status(
            ["completed"], current_status="active", actual_start=T0, actual_end=T0, now=T1,
        )
        assert (result.actual_start, result.actual_end) == (T0, T0)

    def test_cancelled_is_frozen(self):
        result = cascade_project_status(["in-progress"], current_status="cancelled", now=T0)
        assert result.status == "cancelled"
        assert result.actual_start is None


class TestRecomputeProject:
    def test_in_progress_site_activates_project(self, factory):
        project = factory.project()
        factory.site(project, overall_status="in-progress")
        factory.site(project, overall_status="not-started")

        result = recompute_project(project.id, now=T0)

        assert result["status"] == "active"
        assert result["timeline"]["actual_start"] == T0.isoformat()
        assert result["timeline"]["actual_end"] is None

    def test_completed_then_set_once(self, factory):
        project = factory.project()
        site = factory.site(project, overall_status="in-progress")
        recompute_project(project.id, now=T0)

        site.overall_status = "completed"
        db.session.commit()
        result = recompute_project(project.id, now=T1)

        assert result["status"] == "completed"
        assert result["timeline"]["actual_start"] == T0.isoformat()
        assert result["timeline"]["actual_end"] == T1.isoformat()

        again = recompute_project(project.id, now=T1 + timedelta(days=1))
        assert again == result

    def test_deleted_sites_are_ignored(self, factory):
        project = factory.project()
        factory.site(project, overall_status="completed")
        stale = factory.site(project, overall_status="in-progress")
        stale.soft_delete("u-1")
        db.session.commit()

        assert recompute_project(project.id, now=T0)["status"] == "completed"

    def test_only_deleted_sites_is_planning(self, factory):
        project = factory.project(status="active")
        site = factory.site(project, overall_status="in-progress")
        site.soft_delete("u-1")
        db.session.commit()

        assert recompute_project(project.id, now=T0)["status"] == "planning"

    def test_unknown_project_raises(self):
        with pytest.raises(NotFoundError):
            recompute_project(31337)

    def test_deleted_project_raises(self, factory):
        project = factory.project()
        project.soft_delete("u-1")
        db.session.commit()
        with pytest.raises(NotFoundError):
            recompute_project(project.id)


class TestFlushHook:
    def test_project_write_rederives_status(self, factory):
        project = factory.project()
        factory.site(project, overall_status="in-progress")

        project.description = "phase 2 rollout"
        db.session.commit()

        stored = db.session.get(Project, project.id)
        assert stored.status == "active"
        assert stored.actual_start is not None

    def test_new_project_keeps_creation_status(self, factory):
        project = factory.project(status="active")
        assert db.session.get(Project, project.id).status == "active"

    def test_direct_status_write_is_overridden(self, factory):
        project = factory.project()
        factory.site(project, overall_status="completed")

        project.status = "active"
        db.session.commit()

        assert db.session.get(Project, project.id).status == "completed"

    def test_cancelled_project_is_frozen(self, factory):
        project = factory.project(status="cancelled")
        factory.site(project, overall_status="in-progress")

        project.description = "still cancelled"
        db.session.commit()
        refresh_project(project, now=T0)

        stored = db.session.get(Project, project.id)
        assert stored.status == "cancelled"
        assert stored.actual_start is None

    def test_deleted_project_is_frozen(self, factory):
        project = factory.project()
        site = factory.site(project, overall_status="not-started")
        project.soft_delete("u-1")
        db.session.commit()

        site.overall_status = "completed"
        db.session.commit()
        project.description = "archived"
        db.session.commit()
        refresh_project(project, now=T0)

        stored = db.session.get(Project, project.id)
        assert stored.status == "planning"
        assert stored.actual_end is None
        assert db.session.get(Site, site.id).overall_status == "completed"
