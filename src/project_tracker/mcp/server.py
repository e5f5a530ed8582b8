"""MCP server exposing project tracker tools."""

from __future__ import annotations

import sqlite3
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import date

from mcp.server.fastmcp import Context, FastMCP

from project_tracker.config import Config, get_config
from project_tracker.core import activity as activity_mod
from project_tracker.core import comments as comments_mod
from project_tracker.core import projects as projects_mod
from project_tracker.core import proposals as proposals_mod
from project_tracker.core import tasks as tasks_mod
from project_tracker.core.errors import TrackerError
from project_tracker.core.metrics import load_metrics
from project_tracker.core.schedule import gantt_rows, month_window, parse_local_date
from project_tracker.db.engine import init_db
from project_tracker.web import serializers as ser


@dataclass
class AppContext:
    db: sqlite3.Connection
    config: Config


@asynccontextmanager
async def app_lifespan(server: FastMCP) -> AsyncIterator[AppContext]:
    """Initialize DB connection on startup, close on shutdown."""
    config = get_config()
    db = init_db(config.db_path)
    try:
        yield AppContext(db=db, config=config)
    finally:
        db.close()


mcp = FastMCP("project-tracker", lifespan=app_lifespan)


def _ctx(ctx: Context) -> AppContext:
    """Extract AppContext from MCP Context."""
    return ctx.request_context.lifespan_context


def _today(today: str | None) -> date:
    return parse_local_date(today) or date.today()


# ── Project Tools ─────────────────────────────────────────────────────────────


@mcp.tool()
def list_projects(ctx: Context, active_only: bool = False) -> list[dict]:
    """List all projects."""
    return [ser.project_dict(p) for p in projects_mod.list_projects(_ctx(ctx).db, active_only)]


@mcp.tool()
def create_project(
    ctx: Context,
    name: str,
    description: str = "",
    start_date: str | None = None,
    end_date: str | None = None,
) -> dict:
    """Create a new project. Dates are YYYY-MM-DD."""
    try:
        project = projects_mod.create_project(
            _ctx(ctx).db, name, description or None, start_date=start_date, end_date=end_date
        )
    except TrackerError as e:
        return e.to_dict()
    return ser.project_dict(project)


@mcp.tool()
def project_stats(ctx: Context, project_id: str, today: str | None = None) -> dict:
    """Task counts and completion percentage for a project."""
    app = _ctx(ctx)
    try:
        projects_mod.get_project(app.db, project_id)
        tasks = tasks_mod.list_tasks(app.db, project_id, with_tags=False)
        return projects_mod.project_stats(tasks, project_id, _today(today))
    except TrackerError as e:
        return e.to_dict()


# ── Task Tools ────────────────────────────────────────────────────────────────


@mcp.tool()
def create_task(
    ctx: Context,
    title: str,
    project_id: str | None = None,
    description: str = "",
    priority: str = "medium",
    start_date: str | None = None,
    due_date: str | None = None,
    assigned_to: str | None = None,
    depends_on: str | None = None,
) -> dict:
    """Create a new task. Priority: low, medium, high or critical. Dates are YYYY-MM-DD."""
    try:
        task = tasks_mod.create_task(
            _ctx(ctx).db,
            title,
            project_id=project_id,
            description=description or None,
            priority=priority,
            start_date=start_date,
            due_date=due_date,
            assigned_to=assigned_to,
            depends_on=depends_on,
        )
    except TrackerError as e:
        return e.to_dict()
    return ser.task_dict(task)


@mcp.tool()
def list_tasks(
    ctx: Context,
    project_id: str | None = None,
    status: str | None = None,
) -> list[dict]:
    """List tasks, optionally filtered by project and status."""
    try:
        tasks = tasks_mod.list_tasks(_ctx(ctx).db, project_id, status=status)
    except TrackerError as e:
        return [e.to_dict()]
    return [ser.task_dict(t) for t in tasks]


@mcp.tool()
def get_task(ctx: Context, task_id: str) -> dict:
    """Get full details of a task including comments."""
    app = _ctx(ctx)
    try:
        task = tasks_mod.get_task(app.db, task_id)
    except TrackerError as e:
        return e.to_dict()
    result = ser.task_dict(task)
    result["comments"] = [ser.comment_dict(c) for c in comments_mod.list_comments(app.db, task_id)]
    return result


@mcp.tool()
def update_task(
    ctx: Context,
    task_id: str,
    title: str | None = None,
    priority: str | None = None,
    status: str | None = None,
    start_date: str | None = None,
    due_date: str | None = None,
    assigned_to: str | None = None,
) -> dict:
    """Update task fields. Status: not_started, in_progress, on_hold, review or completed.

    Moving a task to completed records completed_at; moving it out clears it.
    """
    fields = {
        "title": title,
        "priority": priority,
        "status": status,
        "start_date": start_date,
        "due_date": due_date,
        "assigned_to": assigned_to,
    }
    try:
        task = tasks_mod.update_task(
            _ctx(ctx).db, task_id, **{k: v for k, v in fields.items() if v is not None}
        )
    except TrackerError as e:
        return e.to_dict()
    return ser.task_dict(task)


@mcp.tool()
def delete_task(ctx: Context, task_id: str) -> dict:
    """Delete a task and its comments."""
    try:
        tasks_mod.delete_task(_ctx(ctx).db, task_id)
    except TrackerError as e:
        return e.to_dict()
    return {"deleted": task_id}


@mcp.tool()
def add_comment(ctx: Context, task_id: str, content: str, author: str | None = None) -> dict:
    """Add a comment to a task."""
    try:
        comment = comments_mod.create_comment(_ctx(ctx).db, task_id, content, author)
    except TrackerError as e:
        return e.to_dict()
    return ser.comment_dict(comment)


# ── Proposal Tools ────────────────────────────────────────────────────────────


@mcp.tool()
def create_proposal(
    ctx: Context,
    title: str,
    client_name: str | None = None,
    client_email: str | None = None,
    value: float | None = None,
    probability_to_close: int = 0,
    project_id: str | None = None,
) -> dict:
    """Create a new proposal. It starts in the draft stage."""
    try:
        proposal = proposals_mod.create_proposal(
            _ctx(ctx).db,
            title,
            project_id=project_id,
            client_name=client_name,
            client_email=client_email,
            value=value,
            probability_to_close=probability_to_close,
            today=date.today(),
        )
    except TrackerError as e:
        return e.to_dict()
    return ser.proposal_dict(proposal)


@mcp.tool()
def list_proposals(ctx: Context, stage: str | None = None) -> list[dict]:
    """List proposals, optionally filtered by stage."""
    try:
        proposals = proposals_mod.list_proposals(_ctx(ctx).db, stage=stage)
    except TrackerError as e:
        return [e.to_dict()]
    return [ser.proposal_dict(p) for p in proposals]


@mcp.tool()
def get_proposal(ctx: Context, proposal_id: str) -> dict:
    """Get a proposal with its stage timeline."""
    try:
        proposal = proposals_mod.get_proposal(_ctx(ctx).db, proposal_id)
    except TrackerError as e:
        return e.to_dict()
    result = ser.proposal_dict(proposal)
    result["progress"] = ser.progress_list(proposal)
    return result


@mcp.tool()
def advance_proposal(ctx: Context, proposal_id: str, today: str | None = None) -> dict:
    """Move a proposal to its next stage and record the date reached.

    Stages: draft, sent_to_client, client_review, negotiation, revision,
    approved, contract_signed. Contract signed is final.
    """
    try:
        proposal = proposals_mod.advance_proposal(_ctx(ctx).db, proposal_id, _today(today))
    except TrackerError as e:
        return e.to_dict()
    return ser.proposal_dict(proposal)


@mcp.tool()
def pipeline_summary(ctx: Context) -> dict:
    """Proposal counts and value by stage."""
    return proposals_mod.pipeline_summary(proposals_mod.list_proposals(_ctx(ctx).db))


# ── Dashboard Tools ───────────────────────────────────────────────────────────


@mcp.tool()
async def dashboard_metrics(ctx: Context, today: str | None = None) -> dict:
    """Dashboard summary: task counts, overdue, upcoming deadlines and rates."""
    config = _ctx(ctx).config
    try:
        metrics = await load_metrics(
            config.db_path, _today(today), config.upcoming_days, config.upcoming_limit
        )
    except TrackerError as e:
        return e.to_dict()
    return ser.metrics_dict(metrics)


@mcp.tool()
def gantt(
    ctx: Context,
    year: int | None = None,
    month: int | None = None,
    project_id: str | None = None,
) -> dict:
    """Timeline bars for tasks with dates in a month. Defaults to the current month."""
    current = date.today()
    try:
        window_start, window_end = month_window(year or current.year, month or current.month)
        tasks = tasks_mod.list_tasks(_ctx(ctx).db, project_id, with_tags=False)
        rows = gantt_rows(tasks, window_start, window_end)
    except TrackerError as e:
        return e.to_dict()
    return {
        "window_start": window_start.isoformat(),
        "window_end": window_end.isoformat(),
        "rows": [ser.gantt_dict(bar) for bar in rows],
    }


@mcp.tool()
def recent_activity(ctx: Context, limit: int = 20) -> list[dict]:
    """Most recent changes across projects, tasks and proposals."""
    return [ser.activity_dict(e) for e in activity_mod.list_recent(_ctx(ctx).db, limit)]
