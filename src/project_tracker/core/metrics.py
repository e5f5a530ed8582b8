"""Dashboard and analytics figures derived from the current entity sets.

``compute_metrics`` is a pure function of its inputs and is recomputed
wholesale on every call. ``load_metrics`` reads the three sources
concurrently and fails as a whole if any read fails. ``MetricsCache`` keeps
the last good snapshot and drops it whenever the change feed signals.
"""

import asyncio
import logging
import threading
from dataclasses import dataclass
from datetime import date
from functools import partial
from pathlib import Path

from project_tracker.core import changes
from project_tracker.core import projects as projects_mod
from project_tracker.core import proposals as proposals_mod
from project_tracker.core import tasks as tasks_mod
from project_tracker.core.schedule import DEFAULT_HORIZON_DAYS, is_overdue, is_upcoming
from project_tracker.db.engine import get_db
from project_tracker.db.models import (
    PRIORITIES,
    PRIORITY_LABELS,
    STATUS_LABELS,
    STATUSES,
    Project,
    Proposal,
    Task,
)

logger = logging.getLogger(__name__)

DEFAULT_UPCOMING_LIMIT = 5

WATCHED_TYPES = ("project", "task", "proposal")


@dataclass
class DashboardMetrics:
    total_projects: int
    active_tasks: int
    completed_tasks: int
    overdue_tasks: int
    upcoming_deadlines: list[Task]
    tasks_by_priority: list[tuple[str, int]]
    tasks_by_status: list[tuple[str, int]]
    completion_rate: float
    proposal_conversion_rate: float
    computed_for: date | None = None
    total_tasks: int = 0
    total_proposals: int = 0


def _rate(part: int, whole: int) -> float:
    return (part / whole) * 100 if whole > 0 else 0.0


def compute_metrics(
    projects: list[Project],
    tasks: list[Task],
    proposals: list[Proposal],
    today: date,
    horizon_days: int = DEFAULT_HORIZON_DAYS,
    upcoming_limit: int = DEFAULT_UPCOMING_LIMIT,
) -> DashboardMetrics:
    """Roll up dashboard figures for the given day."""
    completed = sum(1 for t in tasks if t.status == "completed")

    upcoming = [t for t in tasks if is_upcoming(t, today, horizon_days)]
    upcoming.sort(key=lambda t: t.due_date)

    priority_counts = {p: 0 for p in PRIORITIES}
    status_counts = {s: 0 for s in STATUSES}
    for t in tasks:
        if t.priority in priority_counts:
            priority_counts[t.priority] += 1
        if t.status in status_counts:
            status_counts[t.status] += 1

    signed = sum(1 for p in proposals if p.stage == "contract_signed")

    return DashboardMetrics(
        total_projects=len(projects),
        active_tasks=len(tasks) - completed,
        completed_tasks=completed,
        overdue_tasks=sum(1 for t in tasks if is_overdue(t, today)),
        upcoming_deadlines=upcoming[:upcoming_limit],
        tasks_by_priority=list(priority_counts.items()),
        tasks_by_status=list(status_counts.items()),
        completion_rate=_rate(completed, len(tasks)),
        proposal_conversion_rate=_rate(signed, len(proposals)),
        computed_for=today,
        total_tasks=len(tasks),
        total_proposals=len(proposals),
    )


def analytics_breakdown(metrics: DashboardMetrics) -> dict:
    """Chart-ready priority and status series with display labels."""
    return {
        "priority": [
            {"key": p, "name": PRIORITY_LABELS[p], "value": n}
            for p, n in metrics.tasks_by_priority
        ],
        "status": [
            {"key": s, "name": STATUS_LABELS[s], "value": n}
            for s, n in metrics.tasks_by_status
        ],
    }


def _read(db_path: Path, reader):
    with get_db(db_path) as db:
        return reader(db)


async def load_metrics(
    db_path: Path,
    today: date,
    horizon_days: int = DEFAULT_HORIZON_DAYS,
    upcoming_limit: int = DEFAULT_UPCOMING_LIMIT,
) -> DashboardMetrics:
    """Read projects, tasks and proposals concurrently, then compute.

    Each read uses its own connection. If any read fails the error
    propagates and no metrics are produced.
    """
    projects, tasks, proposals = await asyncio.gather(
        asyncio.to_thread(_read, db_path, projects_mod.list_projects),
        asyncio.to_thread(_read, db_path, partial(tasks_mod.list_tasks, with_tags=False)),
        asyncio.to_thread(_read, db_path, proposals_mod.list_proposals),
    )
    return compute_metrics(projects, tasks, proposals, today, horizon_days, upcoming_limit)


class MetricsCache:
    """Last successfully computed metrics, invalidated by the change feed."""

    def __init__(
        self,
        db_path: Path,
        change_feed: changes.ChangeFeed | None = None,
        horizon_days: int = DEFAULT_HORIZON_DAYS,
        upcoming_limit: int = DEFAULT_UPCOMING_LIMIT,
    ):
        self.db_path = db_path
        self.horizon_days = horizon_days
        self.upcoming_limit = upcoming_limit
        self._lock = threading.Lock()
        self._generation = 0
        self._snapshot: DashboardMetrics | None = None
        self._snapshot_generation = -1
        self._unsubscribe = (change_feed or changes.feed).subscribe(
            WATCHED_TYPES, self.invalidate
        )

    @property
    def snapshot(self) -> DashboardMetrics | None:
        return self._snapshot

    @property
    def is_stale(self) -> bool:
        with self._lock:
            return self._snapshot_generation != self._generation

    def invalidate(self, entity_type: str | None = None):
        with self._lock:
            self._generation += 1
        logger.debug("Metrics invalidated by %s change", entity_type or "manual")

    async def get(self, today: date) -> DashboardMetrics:
        """Current metrics, recomputed if anything changed since the last read."""
        with self._lock:
            generation = self._generation
            fresh = (
                self._snapshot is not None
                and self._snapshot_generation == generation
                and self._snapshot.computed_for == today
            )
            if fresh:
                return self._snapshot

        metrics = await load_metrics(
            self.db_path, today, self.horizon_days, self.upcoming_limit
        )
        with self._lock:
            self._snapshot = metrics
            # A signal that arrived mid-read leaves the cache stale.
            self._snapshot_generation = generation
        logger.info("Metrics recomputed for %s", today)
        return metrics

    def close(self):
        self._unsubscribe()
