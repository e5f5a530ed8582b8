"""Tests for dashboard metrics."""

import asyncio
import tempfile
from datetime import date, timedelta
from pathlib import Path

import pytest

from project_tracker.core import changes
from project_tracker.core import projects as projects_mod
from project_tracker.core import proposals as proposals_mod
from project_tracker.core import tasks as tasks_mod
from project_tracker.core.errors import CollaboratorFailure
from project_tracker.core.metrics import MetricsCache, analytics_breakdown, compute_metrics, load_metrics
from project_tracker.db.engine import init_db
from project_tracker.db.models import Project, Proposal, Task

TODAY = date(2024, 3, 15)


def _tasks(n, completed=0, **kwargs):
    return [
        Task(id=f"t{i}", title=f"Task {i}", status="completed" if i < completed else "not_started", **kwargs)
        for i in range(n)
    ]


def _proposals(n, signed=0):
    return [
        Proposal(id=f"p{i}", title=f"Proposal {i}", stage="contract_signed" if i < signed else "draft")
        for i in range(n)
    ]


@pytest.fixture
def db_path():
    with tempfile.TemporaryDirectory() as tmp:
        path = Path(tmp) / "test.db"
        init_db(path).close()
        yield path


class TestComputeMetrics:
    def test_empty_inputs(self):
        m = compute_metrics([], [], [], TODAY)
        assert m.total_projects == 0
        assert m.completion_rate == 0
        assert m.proposal_conversion_rate == 0
        assert m.tasks_by_priority == [("low", 0), ("medium", 0), ("high", 0), ("critical", 0)]
        assert m.tasks_by_status == [
            ("not_started", 0),
            ("in_progress", 0),
            ("on_hold", 0),
            ("review", 0),
            ("completed", 0),
        ]
        assert m.upcoming_deadlines == []

    def test_completion_rate(self):
        m = compute_metrics([], _tasks(10, completed=3), [], TODAY)
        assert m.completion_rate == pytest.approx(30.0)
        assert m.completed_tasks == 3
        assert m.active_tasks == 7

    def test_conversion_rate(self):
        m = compute_metrics([], [], _proposals(5, signed=1), TODAY)
        assert m.proposal_conversion_rate == pytest.approx(20.0)

    def test_project_count(self):
        projects = [Project(id="a", name="A"), Project(id="b", name="B", is_active=False)]
        assert compute_metrics(projects, [], [], TODAY).total_projects == 2

    def test_priority_and_status_buckets(self):
        tasks = [
            Task(id="a", title="A", priority="high", status="in_progress"),
            Task(id="b", title="B", priority="high", status="review"),
            Task(id="c", title="C", priority="low", status="in_progress"),
        ]
        m = compute_metrics([], tasks, [], TODAY)
        assert dict(m.tasks_by_priority) == {"low": 1, "medium": 0, "high": 2, "critical": 0}
        assert dict(m.tasks_by_status)["in_progress"] == 2
        assert len(m.tasks_by_status) == 5

    def test_overdue_ignores_completed(self):
        yesterday = TODAY - timedelta(days=1)
        tasks = [
            Task(id="a", title="A", due_date=yesterday),
            Task(id="b", title="B", due_date=yesterday, status="completed"),
            Task(id="c", title="C", due_date=TODAY),
        ]
        assert compute_metrics([], tasks, [], TODAY).overdue_tasks == 1

    def test_upcoming_capped_and_soonest_first(self):
        tasks = [
            Task(id=f"t{d}", title=f"Due in {d}", due_date=TODAY + timedelta(days=d))
            for d in (6, 5, 4, 3, 2, 1)
        ]
        m = compute_metrics([], tasks, [], TODAY)
        assert [t.id for t in m.upcoming_deadlines] == ["t1", "t2", "t3", "t4", "t5"]

    def test_upcoming_limit_and_horizon(self):
        tasks = [Task(id="a", title="A", due_date=TODAY + timedelta(days=10))]
        assert compute_metrics([], tasks, [], TODAY).upcoming_deadlines == []
        m = compute_metrics([], tasks, [], TODAY, horizon_days=14, upcoming_limit=1)
        assert [t.id for t in m.upcoming_deadlines] == ["a"]

    def test_analytics_breakdown_labels(self):
        m = compute_metrics([], _tasks(2, completed=1), [], TODAY)
        data = analytics_breakdown(m)
        assert data["status"][-1] == {"key": "completed", "name": "Completed", "value": 1}
        assert [p["name"] for p in data["priority"]] == ["Low", "Medium", "High", "Critical"]


class TestLoadMetrics:
    def test_reads_all_sources(self, db_path):
        db = init_db(db_path)
        projects_mod.create_project(db, "Website")
        tasks_mod.create_task(db, "Design", project_id="website", status="completed")
        tasks_mod.create_task(db, "Build", project_id="website", due_date=TODAY - timedelta(days=2))
        proposals_mod.create_proposal(db, "Retainer", stage="contract_signed")
        db.close()

        m = asyncio.run(load_metrics(db_path, TODAY))
        assert m.total_projects == 1
        assert m.completed_tasks == 1
        assert m.overdue_tasks == 1
        assert m.completion_rate == pytest.approx(50.0)
        assert m.proposal_conversion_rate == pytest.approx(100.0)
        assert m.computed_for == TODAY

    def test_fails_as_a_whole(self, db_path, monkeypatch):
        def broken(db):
            raise CollaboratorFailure("store unavailable")

        monkeypatch.setattr(proposals_mod, "list_proposals", broken)
        with pytest.raises(CollaboratorFailure):
            asyncio.run(load_metrics(db_path, TODAY))


class TestMetricsCache:
    def test_reuses_snapshot_until_invalidated(self, db_path):
        feed = changes.ChangeFeed()
        cache = MetricsCache(db_path, change_feed=feed)

        first = asyncio.run(cache.get(TODAY))
        assert not cache.is_stale
        assert asyncio.run(cache.get(TODAY)) is first

        feed.publish("task")
        assert cache.is_stale
        second = asyncio.run(cache.get(TODAY))
        assert second is not first
        assert not cache.is_stale
        cache.close()

    def test_ignores_unwatched_types(self, db_path):
        feed = changes.ChangeFeed()
        cache = MetricsCache(db_path, change_feed=feed)
        asyncio.run(cache.get(TODAY))
        feed.publish("tag")
        assert not cache.is_stale
        cache.close()
        assert feed.subscriber_count() == 0

    def test_new_day_recomputes(self, db_path):
        cache = MetricsCache(db_path, change_feed=changes.ChangeFeed())
        first = asyncio.run(cache.get(TODAY))
        second = asyncio.run(cache.get(TODAY + timedelta(days=1)))
        assert second is not first
        assert second.computed_for == TODAY + timedelta(days=1)

    def test_local_write_invalidates(self, db_path):
        cache = MetricsCache(db_path)
        try:
            assert asyncio.run(cache.get(TODAY)).total_tasks == 0
            db = init_db(db_path)
            tasks_mod.create_task(db, "Fresh task")
            db.close()
            assert cache.is_stale
            assert asyncio.run(cache.get(TODAY)).total_tasks == 1
        finally:
            cache.close()

    def test_failed_recompute_keeps_last_snapshot(self, db_path, monkeypatch):
        feed = changes.ChangeFeed()
        cache = MetricsCache(db_path, change_feed=feed)
        good = asyncio.run(cache.get(TODAY))

        def broken(db, *args, **kwargs):
            raise CollaboratorFailure("store unavailable")

        monkeypatch.setattr(tasks_mod, "list_tasks", broken)
        feed.publish("task")
        with pytest.raises(CollaboratorFailure):
            asyncio.run(cache.get(TODAY))
        assert cache.snapshot is good
        assert cache.is_stale
