"""Tests for projects, tags and comments."""

import tempfile
from datetime import date
from pathlib import Path

import pytest

from project_tracker.core import comments as comments_mod
from project_tracker.core import projects as projects_mod
from project_tracker.core import tags as tags_mod
from project_tracker.core import tasks as tasks_mod
from project_tracker.core.errors import NotFound, ValidationError
from project_tracker.db.engine import init_db


@pytest.fixture
def db():
    with tempfile.TemporaryDirectory() as tmp:
        conn = init_db(Path(tmp) / "test.db")
        yield conn
        conn.close()


class TestProjects:
    def test_create(self, db):
        p = projects_mod.create_project(db, "Client Portal", "Customer-facing app", start_date="2024-03-01")
        assert p.id == "client-portal"
        assert p.color == "#3b82f6"
        assert p.is_active is True
        assert p.start_date == date(2024, 3, 1)

    def test_explicit_id(self, db):
        assert projects_mod.create_project(db, "Anything", project_id="custom").id == "custom"

    def test_name_required(self, db):
        with pytest.raises(ValidationError):
            projects_mod.create_project(db, "")

    def test_list_active_only(self, db):
        projects_mod.create_project(db, "Live")
        projects_mod.create_project(db, "Archived", is_active=False)
        assert [p.id for p in projects_mod.list_projects(db, active_only=True)] == ["live"]
        assert len(projects_mod.list_projects(db)) == 2

    def test_update(self, db):
        projects_mod.create_project(db, "Portal")
        p = projects_mod.update_project(db, "portal", name="Portal v2", is_active=False)
        assert p.name == "Portal v2"
        assert p.is_active is False

    def test_update_unknown_field(self, db):
        projects_mod.create_project(db, "Portal")
        with pytest.raises(ValidationError):
            projects_mod.update_project(db, "portal", repo_path="/tmp")

    def test_delete_missing(self, db):
        with pytest.raises(NotFound):
            projects_mod.delete_project(db, "ghost")

    def test_stats(self, db):
        projects_mod.create_project(db, "Portal")
        tasks_mod.create_task(db, "A", "portal", status="completed")
        tasks_mod.create_task(db, "B", "portal", status="in_progress", due_date="2024-03-01")
        tasks_mod.create_task(db, "C", "portal")
        tasks_mod.create_task(db, "Elsewhere")
        stats = projects_mod.project_stats(tasks_mod.list_tasks(db), "portal", date(2024, 3, 15))
        assert stats == {
            "project_id": "portal",
            "total": 3,
            "completed": 1,
            "in_progress": 1,
            "overdue": 1,
            "progress_pct": 33.3,
        }

    def test_stats_empty(self, db):
        stats = projects_mod.project_stats([], "portal", date(2024, 3, 15))
        assert stats["progress_pct"] == 0.0


class TestTags:
    def test_create_and_list_by_name(self, db):
        tags_mod.create_tag(db, "urgent-fix", "#ef4444")
        tags_mod.create_tag(db, "backend")
        assert [t.name for t in tags_mod.list_tags(db)] == ["backend", "urgent-fix"]

    def test_attach_twice_is_noop(self, db):
        tasks_mod.create_task(db, "Task")
        tag = tags_mod.create_tag(db, "backend")
        tags_mod.add_tag_to_task(db, "task", tag.id)
        tags = tags_mod.add_tag_to_task(db, "task", tag.id)
        assert [t.name for t in tags] == ["backend"]
        assert [t.name for t in tasks_mod.get_task(db, "task").tags] == ["backend"]

    def test_detach(self, db):
        tasks_mod.create_task(db, "Task")
        tag = tags_mod.create_tag(db, "backend")
        tags_mod.add_tag_to_task(db, "task", tag.id)
        assert tags_mod.remove_tag_from_task(db, "task", tag.id) == []

    def test_attach_to_missing_task(self, db):
        tag = tags_mod.create_tag(db, "backend")
        with pytest.raises(NotFound):
            tags_mod.add_tag_to_task(db, "ghost", tag.id)

    def test_attach_missing_tag(self, db):
        tasks_mod.create_task(db, "Task")
        with pytest.raises(NotFound):
            tags_mod.add_tag_to_task(db, "task", 999)

    def test_update_and_delete(self, db):
        tag = tags_mod.create_tag(db, "backend")
        assert tags_mod.update_tag(db, tag.id, color="#000000").color == "#000000"
        tags_mod.delete_tag(db, tag.id)
        with pytest.raises(NotFound):
            tags_mod.get_tag(db, tag.id)


class TestComments:
    def test_newest_first(self, db):
        tasks_mod.create_task(db, "Task")
        comments_mod.create_comment(db, "task", "first", author="sam")
        comments_mod.create_comment(db, "task", "second")
        assert [c.content for c in comments_mod.list_comments(db, "task")] == ["second", "first"]

    def test_missing_task(self, db):
        with pytest.raises(NotFound):
            comments_mod.create_comment(db, "ghost", "hello")

    def test_content_required(self, db):
        tasks_mod.create_task(db, "Task")
        with pytest.raises(ValidationError):
            comments_mod.create_comment(db, "task", "  ")

    def test_update_and_delete(self, db):
        tasks_mod.create_task(db, "Task")
        c = comments_mod.create_comment(db, "task", "typo")
        assert comments_mod.update_comment(db, c.id, "fixed").content == "fixed"
        comments_mod.delete_comment(db, c.id)
        assert comments_mod.list_comments(db, "task") == []
