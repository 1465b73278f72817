"""
Tests for the FastAPI web application.
"""

import hashlib
import os
import tempfile
from datetime import date, datetime, timedelta, timezone
from pathlib import Path
from unittest.mock import patch

import pytest
from fastapi.testclient import TestClient

from task_activity.app import app
from task_activity.importer import import_tasks
from task_activity.storage import StorageError, TaskStorage

AUTH = {"Authorization": "Bearer s3cret"}


@pytest.fixture
def db_path():
    """Point the app at a temporary database."""
    with tempfile.TemporaryDirectory() as tmpdir:
        path = Path(tmpdir) / "tasks.db"
        with patch.dict(os.environ, {"TASK_ACTIVITY_DB_PATH": str(path)}):
            yield path


@pytest.fixture
def client(db_path):
    """Create a test client with an import secret configured."""
    with patch("task_activity.app.IMPORT_API_SECRET", "s3cret"):
        yield TestClient(app)


@pytest.fixture
def sample_tasks():
    """Sample export records."""
    recent = (datetime.now(timezone.utc) - timedelta(days=10)).isoformat()
    return [
        {"externalId": "a", "name": "Write report", "status": "completed", "completionDate": recent},
        {"externalId": "b", "name": "Call bank", "status": "active"},
    ]


class TestHealthEndpoint:
    """Tests for the /health endpoint."""

    def test_health_returns_ok(self, client):
        """Health endpoint should return status ok."""
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json() == {"status": "ok"}


class TestImportAuthorization:
    """Tests for /api/import authorization."""

    def test_missing_token_is_unauthorized(self, client, sample_tasks):
        response = client.post("/api/import", json={"tasks": sample_tasks})

        assert response.status_code == 401
        assert response.headers["www-authenticate"] == "Bearer"

    def test_wrong_token_is_unauthorized(self, client, sample_tasks):
        response = client.post(
            "/api/import",
            json={"tasks": sample_tasks},
            headers={"Authorization": "Bearer nope"},
        )
        assert response.status_code == 401

    def test_unconfigured_secret_fails_closed(self, db_path, sample_tasks):
        """Without a server secret the endpoint refuses every request."""
        with patch("task_activity.app.IMPORT_API_SECRET", None):
            response = TestClient(app).post(
                "/api/import", json={"tasks": sample_tasks}, headers=AUTH
            )

        assert response.status_code == 500
        assert "Configuration error" in response.json()["detail"]
        assert not db_path.exists()


class TestImportEndpoint:
    """Tests for the /api/import endpoint."""

    def test_import_returns_written_count(self, client, db_path, sample_tasks):
        response = client.post("/api/import", json={"tasks": sample_tasks}, headers=AUTH)

        assert response.status_code == 200
        assert response.json()["imported"] == 2
        assert TaskStorage(db_path).count_tasks() == 2

    def test_import_twice_is_idempotent(self, client, db_path, sample_tasks):
        """A repeated batch is all updates: same count, same rows."""
        client.post("/api/import", json={"tasks": sample_tasks}, headers=AUTH)
        response = client.post("/api/import", json={"tasks": sample_tasks}, headers=AUTH)

        assert response.json()["imported"] == 2
        assert TaskStorage(db_path).count_tasks() == 2

    def test_empty_batch(self, client, db_path):
        """Zero records succeed and nothing is written."""
        response = client.post("/api/import", json={"tasks": []}, headers=AUTH)

        assert response.status_code == 200
        assert response.json()["imported"] == 0
        assert not db_path.exists()

    def test_invalid_record_rejects_batch(self, client, db_path, sample_tasks):
        """One bad record rejects the whole batch with details."""
        bad = sample_tasks + [{"externalId": "c", "completionDate": "yesterday"}]

        response = client.post("/api/import", json={"tasks": bad}, headers=AUTH)

        assert response.status_code == 400
        detail = response.json()["detail"]
        assert detail["error"] == "Invalid request body"
        assert {d["index"] for d in detail["details"]} == {2}
        assert all(d["external_id"] == "c" for d in detail["details"])
        assert TaskStorage(db_path).count_tasks() == 0

    def test_out_of_range_timestamp_rejects_batch(self, client, db_path, sample_tasks):
        bad = sample_tasks + [
            {"externalId": "c", "name": "Late", "dueDate": "9999-12-31T23:00:00-05:00"},
        ]

        response = client.post("/api/import", json={"tasks": bad}, headers=AUTH)

        assert response.status_code == 400
        details = response.json()["detail"]["details"]
        assert [(d["index"], d["external_id"]) for d in details] == [(2, "c")]
        assert TaskStorage(db_path).count_tasks() == 0

    def test_missing_tasks_array(self, client):
        response = client.post("/api/import", json={"items": []}, headers=AUTH)

        assert response.status_code == 400
        assert response.json()["detail"]["error"] == "Invalid request body"

    def test_storage_failure_is_server_error(self, client, sample_tasks):
        with patch("task_activity.app.import_tasks", side_effect=StorageError("disk full")):
            response = client.post("/api/import", json={"tasks": sample_tasks}, headers=AUTH)

        assert response.status_code == 500
        assert response.json()["detail"] == "Internal Server Error"

    def test_pseudonymized_names(self, client, db_path, sample_tasks):
        with patch("task_activity.app.PSEUDONYMIZE_NAMES", True):
            client.post("/api/import", json={"tasks": sample_tasks}, headers=AUTH)

        stored = TaskStorage(db_path).get_task("a")
        assert stored["name"] == hashlib.sha256(b"Write report").hexdigest()


class TestReadEndpoints:
    """Tests for the display read path."""

    def test_tasks_empty(self, client):
        response = client.get("/api/tasks")

        assert response.status_code == 200
        assert response.json() == {"tasks": [], "count": 0}

    def test_tasks_after_import(self, client, sample_tasks):
        client.post("/api/import", json={"tasks": sample_tasks}, headers=AUTH)

        data = client.get("/api/tasks").json()

        assert data["count"] == 2
        task = next(t for t in data["tasks"] if t["external_id"] == "a")
        assert task["raw_data"] == sample_tasks[0]
        assert isinstance(task["imported_at"], str)

    def test_tasks_latest_batch(self, client, db_path):
        storage = TaskStorage(db_path)
        import_tasks(
            [{"externalId": "a", "name": "A"}, {"externalId": "b", "name": "B"}],
            storage,
            now=datetime(2024, 1, 1, tzinfo=timezone.utc),
        )
        import_tasks(
            [{"externalId": "b", "name": "B2"}, {"externalId": "c", "name": "C"}],
            storage,
            now=datetime(2024, 2, 1, tzinfo=timezone.utc),
        )

        latest = client.get("/api/tasks", params={"latest": "true"}).json()
        everything = client.get("/api/tasks").json()

        assert sorted(t["external_id"] for t in latest["tasks"]) == ["b", "c"]
        assert latest["count"] == 2
        assert everything["count"] == 3

    def test_heatmap_skips_out_of_range_completion(self, client, sample_tasks):
        far_future = {
            "externalId": "z",
            "name": "Someday",
            "status": "completed",
            "completionDate": "9999-12-31T23:00:00Z",
        }
        client.post("/api/import", json={"tasks": sample_tasks + [far_future]}, headers=AUTH)

        tokyo = timezone(timedelta(hours=9))
        with patch("task_activity.app.get_reference_timezone", return_value=tokyo):
            response = client.get("/api/heatmap")
            page = client.get("/")

        assert response.status_code == 200
        assert response.json()["total_completed"] == 1
        assert page.status_code == 200

    def test_heatmap_structure(self, client, sample_tasks):
        client.post("/api/import", json={"tasks": sample_tasks}, headers=AUTH)

        data = client.get("/api/heatmap").json()

        assert len(data["days"]) == 366
        assert all(len(week) == 7 for week in data["weeks"])
        assert data["month_labels"]
        assert data["total_completed"] == 1

    def test_stats(self, client, sample_tasks):
        client.post("/api/import", json={"tasks": sample_tasks}, headers=AUTH)

        data = client.get("/api/stats").json()

        assert data["stats"]["total_tasks"] == 2
        assert data["stats"]["completed_tasks"] == 1
        assert data["stats"]["completion_rate"] == 50
        assert data["last_imported_at"] is not None

    def test_read_storage_error(self, client):
        with patch("task_activity.app.TaskStorage", side_effect=StorageError("locked")):
            response = client.get("/api/tasks")

        assert response.status_code == 500

    def test_bad_timezone_is_configuration_error(self, client):
        with patch("task_activity.config.DASHBOARD_TIMEZONE", "Nowhere/Special"):
            response = client.get("/api/heatmap")

        assert response.status_code == 500
        assert "Configuration error" in response.json()["detail"]


class TestEndToEnd:
    """Import then aggregate."""

    def test_rename_then_heatmap(self, client, db_path):
        first = {"externalId": "a", "name": "T1", "status": "completed",
                 "completionDate": "2024-01-10T00:00:00Z"}
        second = dict(first, name="T1-renamed")

        client.post("/api/import", json={"tasks": [first]}, headers=AUTH)
        client.post("/api/import", json={"tasks": [second]}, headers=AUTH)

        storage = TaskStorage(db_path)
        tasks = storage.get_all_tasks()
        assert len(tasks) == 1
        assert tasks[0]["name"] == "T1-renamed"

        from task_activity.heatmap import calculate_heatmap

        heatmap = calculate_heatmap(tasks, today=date(2024, 6, 1))
        day = next(d for d in heatmap["days"] if d["date"] == "2024-01-10")
        assert day["count"] == 1
        assert day["level"] == 1


class TestUserEndpoint:
    """Tests for /api/user."""

    def test_not_authenticated(self, client):
        response = client.get("/api/user")

        assert response.status_code == 401
        assert response.json()["detail"] == "Not authenticated"

    def test_user_from_proxy_headers(self, client):
        response = client.get(
            "/api/user",
            headers={"X-Forwarded-Email": "ada@example.com", "X-Forwarded-User": "Ada"},
        )

        assert response.status_code == 200
        assert response.json() == {"name": "Ada", "email": "ada@example.com", "image": None}


class TestIndexEndpoint:
    """Tests for the / (index) HTML endpoint."""

    def test_index_returns_html(self, client, sample_tasks):
        client.post("/api/import", json={"tasks": sample_tasks}, headers=AUTH)

        response = client.get("/")

        assert response.status_code == 200
        assert "text/html" in response.headers["content-type"]
        assert "Task Completion Activity" in response.text
        assert "Completion Rate" in response.text
        assert "Last updated" in response.text

    def test_index_empty_database(self, client):
        response = client.get("/")

        assert response.status_code == 200
        assert "No tasks imported yet" in response.text

    def test_index_survives_storage_error(self, client):
        """A broken store renders an empty dashboard instead of failing."""
        with patch("task_activity.app.TaskStorage", side_effect=StorageError("locked")):
            response = client.get("/")

        assert response.status_code == 200
        assert "Total Tasks" in response.text

    def test_index_shows_signed_in_user(self, client):
        response = client.get("/", headers={"X-Forwarded-User": "Ada Lovelace"})
        assert "Ada Lovelace" in response.text
