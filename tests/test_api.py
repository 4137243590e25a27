import pytest
from fastapi.testclient import TestClient

import api
from config import Config
from task_pipeline import TaskResultProcessor

HEADERS = {"X-User-Id": "user_a"}

RAW_RESULTS = {
    "results": [
        {"organizationName": "Alpha", "email": "info@alpha.pt", "country": "Portugal"},
        {"organizationName": "Beta", "website": "https://beta.pt"},
        {"organizationName": "Gamma", "phone": "+351 21 000 0000", "country": "Spain"},
    ]
}


@pytest.fixture
def client(tmp_path, store):
    config = Config(str(tmp_path / "missing.json"))
    config.set_setting('output_dir', str(tmp_path / "exports"))

    api.app.dependency_overrides[api.get_config] = lambda: config
    api.app.dependency_overrides[api.get_store] = lambda: store
    api.app.dependency_overrides[api.get_processor] = lambda: TaskResultProcessor(store, [])
    yield TestClient(api.app)
    api.app.dependency_overrides.clear()


def _submit(client, task_id="task_1", headers=HEADERS):
    return client.post(
        f"/api/tasks/{task_id}/results",
        json={"task_name": "Clinics", "original_query": "clinics in Lisbon", "results": RAW_RESULTS},
        headers=headers,
    )


def test_health(client):
    assert client.get("/api/health").json() == {"status": "healthy"}


def test_requires_user_header(client):
    assert client.get("/api/results").status_code == 401
    assert _submit(client, headers={}).status_code == 401


def test_submit_results(client):
    response = _submit(client)

    assert response.status_code == 200
    data = response.json()
    assert data["accepted_count"] == 2
    assert data["rejected_count"] == 1
    assert data["total_count"] == 3
    assert data["saved_count"] == 2
    assert data["kind"] == "contacts_found"
    assert data["message"] == "Found 2 organizations with contact details (out of 3 analyzed)"
    assert not data["duplicate"]


def test_submit_twice_is_duplicate(client):
    _submit(client)
    data = _submit(client).json()

    assert data["duplicate"]
    assert len(client.get("/api/tasks/task_1/results", headers=HEADERS).json()["data"]) == 2


def test_resubmission_reports_stored_counts(client):
    client.post("/api/tasks/task_1/results", headers=HEADERS, json={
        "task_name": "Clinics", "results": [{"name": "Only", "email": "only@a.pt"}],
    })

    data = _submit(client).json()
    saved = client.get("/api/tasks/task_1/results", headers=HEADERS).json()["data"]

    assert data["duplicate"]
    assert data["accepted_count"] == len(saved) == 1
    assert data["total_count"] == 1
    assert data["message"] == "Found 1 organizations with contact details (out of 1 analyzed)"


def test_task_id_owned_by_other_user(client):
    _submit(client)

    response = _submit(client, headers={"X-User-Id": "user_b"})

    assert response.status_code == 409


def test_submit_unsupported_shape(client):
    response = client.post("/api/tasks/t9/results", json={"results": "oops"}, headers=HEADERS)
    assert response.status_code == 400


def test_results_are_scoped_to_user(client):
    _submit(client)

    mine = client.get("/api/results", headers=HEADERS).json()
    theirs = client.get("/api/results", headers={"X-User-Id": "user_b"}).json()

    assert mine["count"] == 2
    assert theirs["count"] == 0


def test_default_limits_come_from_settings(client):
    _submit(client)
    config = api.app.dependency_overrides[api.get_config]()
    config.set_setting('recent_results_limit', 1)
    config.set_setting('search_limit', 1)

    assert client.get("/api/results", headers=HEADERS).json()["count"] == 1
    assert client.get("/api/results/search", headers=HEADERS).json()["count"] == 1
    assert client.get("/api/results", params={"limit": 5}, headers=HEADERS).json()["count"] == 2


def test_history_and_lookups(client):
    _submit(client)

    tasks = client.get("/api/tasks", headers=HEADERS).json()["data"]
    assert tasks[0]["task_id"] == "task_1"
    assert tasks[0]["total_count"] == 3
    assert client.get("/api/task-names", headers=HEADERS).json()["data"] == ["Clinics"]
    assert client.get("/api/countries", headers=HEADERS).json()["data"] == ["Portugal", "Spain"]
    assert client.get("/api/results/by-task/Clinics", headers=HEADERS).json()["count"] == 2


def test_search(client):
    _submit(client)

    response = client.get("/api/results/search", params={"q": "alpha"}, headers=HEADERS)
    assert [r["organization_name"] for r in response.json()["data"]] == ["Alpha"]

    response = client.get("/api/results/search", params={"has_email": "false"}, headers=HEADERS)
    assert [r["organization_name"] for r in response.json()["data"]] == ["Gamma"]


def test_update_and_delete(client):
    _submit(client)
    result_id = client.get("/api/tasks/task_1/results", headers=HEADERS).json()["data"][0]["id"]

    response = client.patch(f"/api/results/{result_id}", json={"phone": "+351 900"}, headers=HEADERS)
    assert response.status_code == 200
    assert response.json()["data"]["phone"] == "+351 900"

    assert client.patch(f"/api/results/{result_id}", json={}, headers=HEADERS).status_code == 400
    assert client.patch(f"/api/results/{result_id}", json={"phone": "1"},
                        headers={"X-User-Id": "user_b"}).status_code == 404

    assert client.delete(f"/api/results/{result_id}", headers=HEADERS).status_code == 200
    assert client.delete(f"/api/results/{result_id}", headers=HEADERS).status_code == 404


def test_categories(client):
    created = client.post("/api/categories", json={"name": "Clinics"}, headers=HEADERS)
    assert created.status_code == 200
    category_id = created.json()["data"]["id"]

    assert client.post("/api/categories", json={"name": "Clinics"}, headers=HEADERS).status_code == 400
    assert client.get("/api/categories", headers=HEADERS).json()["count"] == 1
    assert client.delete(f"/api/categories/{category_id}", headers=HEADERS).status_code == 200
    assert client.delete(f"/api/categories/{category_id}", headers=HEADERS).status_code == 404


def test_stats(client):
    _submit(client)

    stats = client.get("/api/stats", headers=HEADERS).json()["data"]

    assert stats["total_results"] == 2
    assert stats["organizations_analyzed"] == 3


def test_export(client):
    _submit(client)

    response = client.get("/api/tasks/task_1/export", params={"format": "csv"}, headers=HEADERS)
    assert response.status_code == 200
    assert "Alpha" in response.text

    assert client.get("/api/tasks/missing/export", headers=HEADERS).status_code == 404
    assert client.get("/api/tasks/task_1/export", params={"format": "pdf"},
                      headers=HEADERS).status_code == 400


def test_attachment_plan(client):
    mb = 1024 * 1024
    response = client.post("/api/attachments/plan", json={"files": [
        {"name": "a.pdf", "size": 20 * mb, "upload_status": "uploaded"},
        {"name": "b.pdf", "size": 10 * mb, "upload_status": "uploaded"},
    ]})

    data = response.json()
    assert [a["route"] for a in data["attachments"]] == ["inline", "drive_link"]
    assert data["attachments"][1]["reason"] == "cumulative_size"
    assert data["inline_size"] == 20 * mb
    assert len(data["problems"]) == 1
