"""Tests for the JSON API."""

import os
import tempfile
from pathlib import Path

import pytest
from starlette.testclient import TestClient

from project_tracker.core import projects as projects_mod
from project_tracker.core import proposals as proposals_mod
from project_tracker.core import tasks as tasks_mod
from project_tracker.core.changes import feed
from project_tracker.db.engine import init_db
from project_tracker.web.app import create_app


@pytest.fixture
def web_env():
    """Set up a temp environment for web API testing."""
    with tempfile.TemporaryDirectory() as tmp:
        db_path = Path(tmp) / "test.db"
        env = {"PT_DB_PATH": str(db_path)}
        old_env = {}
        for k, v in env.items():
            old_env[k] = os.environ.get(k)
            os.environ[k] = v

        # Seed data
        db = init_db(db_path)
        projects_mod.create_project(db, "Demo Project", project_id="demo")
        tasks_mod.create_task(db, "Setup database", "demo", description="Create tables", status="completed")
        tasks_mod.create_task(
            db, "Build API", "demo", status="in_progress",
            start_date="2024-03-05", due_date="2024-03-12",
        )
        tasks_mod.create_task(db, "Write tests", "demo", due_date="2024-03-18", priority="high")
        proposals_mod.create_proposal(db, "Phase two", client_name="Acme", value=8000.0, today=None)
        db.close()

        app = create_app()
        with TestClient(app) as client:
            yield client

        for k, v in old_env.items():
            if v is None:
                os.environ.pop(k, None)
            else:
                os.environ[k] = v


class TestProjectsAPI:
    def test_list_projects(self, web_env):
        resp = web_env.get("/api/projects")
        assert resp.status_code == 200
        assert [p["id"] for p in resp.json()] == ["demo"]

    def test_create_project(self, web_env):
        resp = web_env.post("/api/projects", json={"name": "New One", "start_date": "2024-04-01"})
        assert resp.status_code == 201
        data = resp.json()
        assert data["id"] == "new-one"
        assert data["start_date"] == "2024-04-01"

    def test_create_project_missing_name(self, web_env):
        resp = web_env.post("/api/projects", json={"description": "nameless"})
        assert resp.status_code == 422
        assert resp.json()["error"] == "validation_error"

    def test_project_not_found(self, web_env):
        resp = web_env.get("/api/projects/nope")
        assert resp.status_code == 404
        assert resp.json() == {"error": "not_found", "message": "Project not found: nope"}

    def test_update_project_unknown_field(self, web_env):
        resp = web_env.patch("/api/projects/demo", json={"name": "Renamed", "project_id": "other"})
        assert resp.status_code == 422
        assert web_env.get("/api/projects/demo").json()["name"] == "Demo Project"

    def test_project_stats(self, web_env):
        resp = web_env.get("/api/projects/demo/stats?today=2024-03-15")
        data = resp.json()
        assert data["total"] == 3
        assert data["completed"] == 1
        assert data["overdue"] == 1
        assert data["progress_pct"] == 33.3


class TestTasksAPI:
    def test_list_tasks(self, web_env):
        resp = web_env.get("/api/tasks?project_id=demo")
        assert resp.status_code == 200
        assert len(resp.json()) == 3

    def test_filter_by_status(self, web_env):
        resp = web_env.get("/api/tasks?status=in_progress")
        assert [t["id"] for t in resp.json()] == ["build-api"]

    def test_invalid_status_filter(self, web_env):
        resp = web_env.get("/api/tasks?status=done")
        assert resp.status_code == 422

    def test_create_task(self, web_env):
        resp = web_env.post("/api/tasks", json={"title": "Deploy", "due_date": "2024-03-30"})
        assert resp.status_code == 201
        assert resp.json()["due_date"] == "2024-03-30"

    def test_create_task_unknown_field(self, web_env):
        resp = web_env.post("/api/tasks", json={"title": "Deploy", "pr_url": "x"})
        assert resp.status_code == 422

    def test_get_task_with_comments(self, web_env):
        web_env.post("/api/tasks/build-api/comments", json={"content": "Halfway", "author": "sam"})
        resp = web_env.get("/api/tasks/build-api")
        data = resp.json()
        assert data["title"] == "Build API"
        assert data["comments"][0]["content"] == "Halfway"

    def test_complete_and_reopen(self, web_env):
        resp = web_env.patch("/api/tasks/build-api", json={"status": "completed"})
        assert resp.json()["completed_at"] is not None
        resp = web_env.patch("/api/tasks/build-api", json={"status": "review"})
        assert resp.json()["completed_at"] is None

    def test_update_is_all_or_nothing(self, web_env):
        resp = web_env.patch("/api/tasks/build-api", json={"title": "Renamed", "priority": "bogus"})
        assert resp.status_code == 422
        assert web_env.get("/api/tasks/build-api").json()["title"] == "Build API"

    def test_move_task(self, web_env):
        resp = web_env.post("/api/tasks/write-tests/move", json={"status": "review"})
        assert resp.json()["status"] == "review"

    def test_move_task_bad_position(self, web_env):
        resp = web_env.post("/api/tasks/write-tests/move", json={"status": "review", "position": "last"})
        assert resp.status_code == 422
        assert web_env.get("/api/tasks/write-tests").json()["status"] == "not_started"

    def test_non_integer_position_rejected(self, web_env):
        resp = web_env.patch("/api/tasks/build-api", json={"position": "top"})
        assert resp.status_code == 422
        assert resp.json()["error"] == "validation_error"
        assert web_env.get("/api/kanban").status_code == 200

    def test_non_numeric_hours_rejected(self, web_env):
        resp = web_env.patch("/api/tasks/build-api", json={"estimated_hours": "5"})
        assert resp.status_code == 422
        resp = web_env.post("/api/tasks", json={"title": "Deploy", "actual_hours": "two"})
        assert resp.status_code == 422

    def test_update_rejects_non_field_keys(self, web_env):
        resp = web_env.patch("/api/tasks/build-api", json={"status": "completed", "now": "x"})
        assert resp.status_code == 422
        assert web_env.get("/api/tasks/build-api").json()["status"] == "in_progress"

    def test_tags(self, web_env):
        tag = web_env.post("/api/tags", json={"name": "backend"}).json()
        resp = web_env.put(f"/api/tasks/build-api/tags/{tag['id']}")
        assert [t["name"] for t in resp.json()] == ["backend"]
        resp = web_env.delete(f"/api/tasks/build-api/tags/{tag['id']}")
        assert resp.json() == []

    def test_delete_task(self, web_env):
        assert web_env.delete("/api/tasks/write-tests").status_code == 204
        assert web_env.get("/api/tasks/write-tests").status_code == 404

    def test_task_activity(self, web_env):
        web_env.patch("/api/tasks/build-api", json={"priority": "critical"})
        entries = web_env.get("/api/tasks/build-api/activity").json()
        assert entries[0]["action"] == "UPDATE"
        assert entries[-1]["summary"] == 'task "Build API" created'

    def test_invalid_body(self, web_env):
        resp = web_env.post("/api/tasks", content=b"not json", headers={"content-type": "application/json"})
        assert resp.status_code == 422


class TestProposalsAPI:
    def test_get_with_progress(self, web_env):
        data = web_env.get("/api/proposals/phase-two").json()
        assert data["stage"] == "draft"
        assert data["next_stage"] == "sent_to_client"
        assert [s["state"] for s in data["progress"]][:2] == ["current", "upcoming"]

    def test_advance(self, web_env):
        resp = web_env.post("/api/proposals/phase-two/advance?today=2024-03-15")
        data = resp.json()
        assert data["stage"] == "sent_to_client"
        assert data["sent_date"] == "2024-03-15"

    def test_advance_terminal_conflict(self, web_env):
        web_env.patch("/api/proposals/phase-two", json={"stage": "contract_signed"})
        resp = web_env.post("/api/proposals/phase-two/advance")
        assert resp.status_code == 409
        assert resp.json()["error"] == "invalid_transition"

    def test_create_stamps_draft_date(self, web_env):
        resp = web_env.post("/api/proposals?today=2024-03-15", json={"title": "Audit"})
        assert resp.status_code == 201
        assert resp.json()["draft_date"] == "2024-03-15"

    def test_summary(self, web_env):
        data = web_env.get("/api/proposals/summary").json()
        assert data["total"] == 1
        assert data["total_value"] == 8000.0

    def test_update_proposal_unknown_field(self, web_env):
        resp = web_env.patch("/api/proposals/phase-two", json={"value": 9000.0, "proposal_id": "other"})
        assert resp.status_code == 422
        assert web_env.get("/api/proposals/phase-two").json()["value"] == 8000.0


class TestViewsAPI:
    def test_metrics(self, web_env):
        data = web_env.get("/api/metrics?today=2024-03-15").json()
        assert data["total_projects"] == 1
        assert data["active_tasks"] == 2
        assert data["completed_tasks"] == 1
        assert data["overdue_tasks"] == 1
        assert [t["id"] for t in data["upcoming_deadlines"]] == ["write-tests"]
        assert len(data["tasks_by_priority"]) == 4
        assert len(data["tasks_by_status"]) == 5
        assert data["proposal_conversion_rate"] == 0

    def test_metrics_refresh_after_write(self, web_env):
        assert web_env.get("/api/metrics?today=2024-03-15").json()["completed_tasks"] == 1
        web_env.patch("/api/tasks/build-api", json={"status": "completed"})
        assert web_env.get("/api/metrics?today=2024-03-15").json()["completed_tasks"] == 2

    def test_analytics(self, web_env):
        data = web_env.get("/api/analytics?today=2024-03-15").json()
        assert data["status"][-1] == {"key": "completed", "name": "Completed", "value": 1}
        assert data["total_tasks"] == 3

    def test_gantt(self, web_env):
        data = web_env.get("/api/gantt?year=2024&month=3").json()
        assert data["days"] == 31
        assert [r["task_id"] for r in data["rows"]] == ["build-api", "write-tests"]
        assert data["rows"][0]["span_days"] == 8

    def test_gantt_bad_month(self, web_env):
        assert web_env.get("/api/gantt?year=2024&month=13").status_code == 422

    def test_calendar(self, web_env):
        days = web_env.get("/api/calendar?year=2024&month=3").json()
        assert len(days) == 31
        assert [t["id"] for t in days[17]["tasks"]] == ["write-tests"]

    def test_kanban(self, web_env):
        columns = web_env.get("/api/kanban").json()
        assert [c["status"] for c in columns] == ["not_started", "in_progress", "review", "completed"]
        assert [t["id"] for t in columns[1]["tasks"]] == ["build-api"]

    def test_activity(self, web_env):
        entries = web_env.get("/api/activity?limit=2").json()
        assert len(entries) == 2
        assert entries[0]["entity_type"] == "proposal"


class TestAppLifespan:
    def test_metrics_cache_released_on_shutdown(self, web_env):
        baseline = feed.subscriber_count()
        with TestClient(create_app()) as client:
            assert feed.subscriber_count() == baseline + 1
            assert client.get("/api/metrics?today=2024-03-15").status_code == 200
        assert feed.subscriber_count() == baseline

    def test_no_subscription_without_startup(self, web_env):
        baseline = feed.subscriber_count()
        create_app()
        assert feed.subscriber_count() == baseline
