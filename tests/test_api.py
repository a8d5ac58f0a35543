"""
HTTP tests for the REST blueprints.

Covers the happy path of each resource, the error mapping
(404 / 409 / 422), soft-delete visibility over HTTP, the task board and
the health probes.
"""

import pytest

HEADERS = {"X-User-Id": "u-42"}


def _project(client, **overrides):
    payload = {"name": "Jeddah Rollout", "manager_id": "mgr-1", "end_date": "2025-12-31", **overrides}
    res = client.post("/api/v1/projects", json=payload, headers=HEADERS)
    assert res.status_code == 201, res.get_json()
    return res.get_json()


def _site(client, project_id, code="JED-0001", **overrides):
    payload = {"code": code, "name": f"Site {code}", **overrides}
    res = client.post(f"/api/v1/projects/{project_id}/sites", json=payload, headers=HEADERS)
    assert res.status_code == 201, res.get_json()
    return res.get_json()


def _activity(client, site_id, kind="dismantling", **overrides):
    payload = {"kind": kind, "site_id": site_id, **overrides}
    res = client.post("/api/v1/activities", json=payload, headers=HEADERS)
    assert res.status_code == 201, res.get_json()
    return res.get_json()


@pytest.fixture()
def seeded(client):
    project = _project(client)
    site = _site(client, project["id"])
    activity = _activity(client, site["id"], dismantling_type="StandAlone", location_city="Jeddah")
    return project, site, activity


# ── Projects ─────────────────────────────────────────────────────────────────


class TestProjectsApi:
    def test_create_and_get(self, client):
        project = _project(client, description="Phase 1")
        assert project["status"] == "planning"
        assert project["created_by"] == "u-42"
        assert project["timeline"]["end_date"] == "2025-12-31"

        res = client.get(f"/api/v1/projects/{project['id']}")
        assert res.status_code == 200
        assert res.get_json()["sites"] == []

    def test_create_validation_error(self, client):
        res = client.post("/api/v1/projects", json={"manager_id": "mgr-1", "end_date": "2025-12-31"})
        assert res.status_code == 422
        body = res.get_json()
        assert body["code"] == "ERR_VALIDATION_INVALID"
        assert body["details"] == {"name": "required"}

    def test_unknown_project_is_404(self, client):
        res = client.get("/api/v1/projects/9999")
        assert res.status_code == 404
        assert res.get_json()["code"] == "ERR_NOT_FOUND"

    def test_status_cannot_be_written(self, client):
        project = _project(client)
        res = client.put(f"/api/v1/projects/{project['id']}", json={"status": "completed"})
        assert res.status_code == 422

    def test_list(self, client):
        _project(client)
        _project(client, manager_id="mgr-2")
        res = client.get("/api/v1/projects?manager_id=mgr-2")
        assert res.get_json()["total"] == 1

    def test_delete_hides_and_restore_returns(self, client, seeded):
        project, site, activity = seeded

        assert client.delete(f"/api/v1/projects/{project['id']}", headers=HEADERS).status_code == 200
        assert client.get(f"/api/v1/projects/{project['id']}").status_code == 404
        assert client.get(f"/api/v1/sites/{site['id']}").status_code == 404
        assert client.get(f"/api/v1/activities/{activity['id']}").status_code == 404
        assert client.get("/api/v1/projects").get_json()["total"] == 0

        recovered = client.get(f"/api/v1/projects/{project['id']}?include_deleted=true").get_json()
        assert recovered["is_deleted"] is True
        assert recovered["deleted_by"] == "u-42"
        assert [s["id"] for s in recovered["sites"]] == [site["id"]]

        res = client.post(f"/api/v1/projects/{project['id']}/restore")
        assert res.status_code == 200
        assert res.get_json()["is_deleted"] is False
        assert client.get(f"/api/v1/activities/{activity['id']}").status_code == 200

    def test_cancel(self, client):
        project = _project(client)
        res = client.post(f"/api/v1/projects/{project['id']}/cancel")
        assert res.get_json()["status"] == "cancelled"

    def test_statistics_and_recompute(self, client, seeded):
        project, _, _ = seeded
        stats = client.get(f"/api/v1/projects/{project['id']}/statistics").get_json()
        assert stats["sites"]["total"] == 1
        assert stats["activities"]["by_kind"] == {"dismantling": 1}

        res = client.post(f"/api/v1/projects/{project['id']}/recompute")
        assert res.status_code == 200
        assert res.get_json()["status"] == "planning"


# ── Sites ────────────────────────────────────────────────────────────────────


class TestSitesApi:
    def test_duplicate_code_is_409(self, client, seeded):
        project, _, _ = seeded
        res = client.post(
            f"/api/v1/projects/{project['id']}/sites", json={"code": "JED-0001", "name": "Copy"},
        )
        assert res.status_code == 409
        assert res.get_json()["code"] == "ERR_CONFLICT_DUPLICATE"

    def test_list_for_unknown_project_is_404(self, client):
        assert client.get("/api/v1/projects/404/sites").status_code == 404

    def test_detail_includes_live_activities(self, client, seeded):
        _, site, activity = seeded
        extra = _activity(client, site["id"], kind="cow")
        client.delete(f"/api/v1/activities/{extra['id']}")

        body = client.get(f"/api/v1/sites/{site['id']}").get_json()
        assert [a["id"] for a in body["activities"]] == [activity["id"]]

    def test_update_and_recompute(self, client, seeded):
        _, site, _ = seeded
        res = client.put(f"/api/v1/sites/{site['id']}", json={"region": "Makkah"})
        assert res.get_json()["region"] == "Makkah"

        res = client.put(f"/api/v1/sites/{site['id']}", json={"overall_status": "completed"})
        assert res.status_code == 422

        res = client.post(f"/api/v1/sites/{site['id']}/recompute")
        assert res.get_json() == {"overall_status": "not-started"}

    def test_delete_and_restore(self, client, seeded):
        _, site, _ = seeded
        assert client.delete(f"/api/v1/sites/{site['id']}").status_code == 200
        assert client.post(f"/api/v1/sites/{site['id']}/recompute").status_code == 404
        assert client.post(f"/api/v1/sites/{site['id']}/restore").status_code == 200


# ── Activities ───────────────────────────────────────────────────────────────


class TestActivitiesApi:
    def test_create_detail(self, client, seeded):
        _, _, activity = seeded
        assert activity["kind"] == "dismantling"
        assert activity["overall_status"] == "planned"
        assert activity["title"] == "StandAlone - Jeddah"
        assert activity["phase"] == "Planned"
        assert activity["stats"]["total_work_items"] == 3
        assert activity["created_by"] == "u-42"

    def test_unknown_kind_is_422(self, client, seeded):
        _, site, _ = seeded
        res = client.post("/api/v1/activities", json={"kind": "crane", "site_id": site["id"]})
        assert res.status_code == 422

    def test_work_item_patch_cascades(self, client, seeded):
        project, site, activity = seeded
        res = client.patch(
            f"/api/v1/activities/{activity['id']}/work-items/source_site/survey",
            json={"status": "completed"}, headers=HEADERS,
        )
        assert res.status_code == 200
        body = res.get_json()
        assert body["activity"]["overall_status"] == "in-progress"
        assert body["cascade"]["site"]["overall_status"] == "in-progress"
        assert body["cascade"]["project"]["status"] == "active"

        detail = client.get(f"/api/v1/activities/{activity['id']}").get_json()
        assert detail["phase"] == "Dismantling"
        assert detail["completion_percentage"] == 33

    def test_work_item_errors(self, client, seeded):
        _, _, activity = seeded
        base = f"/api/v1/activities/{activity['id']}/work-items"
        assert client.patch(f"{base}/source_site/painting", json={"status": "completed"}).status_code == 404
        assert client.patch(f"{base}/source_site/survey", json={"status": "finished"}).status_code == 422

    def test_list_filters(self, client, seeded):
        _, site, _ = seeded
        _activity(client, site["id"], kind="cow")
        res = client.get(f"/api/v1/activities?site_id={site['id']}&kind=cow")
        assert res.get_json()["total"] == 1

    def test_delete_restore_recompute(self, client, seeded):
        _, _, activity = seeded
        url = f"/api/v1/activities/{activity['id']}"
        assert client.delete(url).status_code == 200
        assert client.post(f"{url}/recompute").status_code == 404
        assert client.post(f"{url}/restore").status_code == 200
        assert client.post(f"{url}/recompute").get_json()["overall_status"] == "planned"


# ── Tasks ────────────────────────────────────────────────────────────────────


class TestTasksApi:
    def test_board(self, client, seeded):
        _, site, _ = seeded
        _activity(client, site["id"], kind="cow", activity_name="Hajj coverage")

        res = client.get("/api/v1/tasks")
        assert res.status_code == 200
        body = res.get_json()
        assert body["pagination"]["total"] == 2
        assert body["performance"]["total_tasks"] == 2
        assert set(body) == {
            "tasks", "pagination", "performance", "overdue_tasks",
            "due_today_tasks", "by_status", "by_module",
        }

    def test_filters_and_paging(self, client, seeded):
        _, site, _ = seeded
        _activity(client, site["id"], kind="cow", activity_name="Hajj coverage")

        body = client.get("/api/v1/tasks?module=cow&per_page=1").get_json()
        assert [t["title"] for t in body["tasks"]] == ["Hajj coverage"]
        assert body["pagination"]["per_page"] == 1

    def test_per_page_is_capped(self, client):
        body = client.get("/api/v1/tasks?per_page=5000&page=-3").get_json()
        assert body["pagination"]["per_page"] == 100
        assert body["pagination"]["page"] == 1

    def test_invalid_filter_is_422(self, client):
        res = client.get("/api/v1/tasks?status=blocked")
        assert res.status_code == 422
        assert "status" in res.get_json()["details"]


# ── Health / fallbacks ───────────────────────────────────────────────────────


class TestHealth:
    def test_ready(self, client):
        assert client.get("/api/v1/health/ready").get_json() == {"status": "ok"}

    def test_live(self, client):
        res = client.get("/api/v1/health/live")
        assert res.status_code == 200
        body = res.get_json()
        assert body["status"] == "healthy"
        assert body["checks"]["database"]["status"] == "ok"

    def test_unknown_route(self, client):
        res = client.get("/api/v1/nothing-here")
        assert res.status_code == 404
        assert res.get_json()["error"] == "Not found"
