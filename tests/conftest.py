"""
Shared pytest fixtures for the Site Work Tracker test suite.

Provides:
    - app: Flask application (session-scoped)
    - _setup_db: Database table creation/teardown (session-scoped)
    - session: Per-test DB cleanup w/ rollback + recreate (autouse)
    - client: Flask test client (function-scoped)
    - factory: ORM seeding helpers (Project / Site / Activity)
"""

from datetime import date, timedelta

import pytest

from sitetrack import create_app
from sitetrack.models import db as _db
from sitetrack.models.activity import COWActivity, DismantlingActivity, RelocationActivity
from sitetrack.models.project import Project
from sitetrack.models.site import Site
from sitetrack.models.work_item import build_sub_site


# ── App & DB fixtures ────────────────────────────────────────────────────


@pytest.fixture(scope="session")
def app():
    """Create the Flask application once per test session."""
    application = create_app("testing")
    return application


@pytest.fixture(scope="session")
def _setup_db(app):
    """Create all tables at session start, drop at end."""
    with app.app_context():
        _db.create_all()
    yield
    with app.app_context():
        _db.drop_all()


@pytest.fixture(autouse=True)
def session(app, _setup_db):
    """Per-test: open app context, rollback after test, recreate tables."""
    with app.app_context():
        yield
        _db.session.rollback()
        _db.drop_all()
        _db.create_all()


@pytest.fixture()
def client(app):
    """Flask test client."""
    return app.test_client()


# ── Seeding helpers ──────────────────────────────────────────────────────


class Factory:
    """Direct ORM seeding. Bypasses the services so tests control every field."""

    _codes = 0

    def project(self, **kw):
        kw.setdefault("name", "Riyadh Swap")
        kw.setdefault("manager_id", "mgr-1")
        kw.setdefault("end_date", date.today() + timedelta(days=90))
        project = Project(**kw)
        _db.session.add(project)
        _db.session.commit()
        return project

    def site(self, project, **kw):
        Factory._codes += 1
        kw.setdefault("code", f"RYD-{Factory._codes:04d}")
        kw.setdefault("name", f"Site {Factory._codes}")
        kw.setdefault("overall_status", "not-started")
        site = Site(project_id=project.id, **kw)
        _db.session.add(site)
        _db.session.commit()
        return site

    def _activity(self, model, site, source_work, destination_work=None, **kw):
        kw.setdefault("overall_status", model.INITIAL_STATUS)
        kw.setdefault("assignment", {})
        kw.setdefault("stage_completion", {})
        source = kw.pop("source_site", None) or build_sub_site(
            list(source_work or {}), existing_work=source_work,
        )
        if destination_work is not None and "destination_site" in model.SUB_SITES:
            kw.setdefault(
                "destination_site",
                build_sub_site(list(destination_work), existing_work=destination_work),
            )
        activity = model(site_id=site.id, source_site=source, **kw)
        _db.session.add(activity)
        _db.session.commit()
        return activity

    def dismantling(self, site, source_work=None, **kw):
        return self._activity(DismantlingActivity, site, source_work, **kw)

    def cow(self, site, source_work=None, destination_work=None, **kw):
        return self._activity(COWActivity, site, source_work, destination_work, **kw)

    def relocation(self, site, source_work=None, destination_work=None, **kw):
        return self._activity(RelocationActivity, site, source_work, destination_work, **kw)


@pytest.fixture()
def factory():
    return Factory()
