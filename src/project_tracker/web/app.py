"""JSON API for the project tracker."""

import json
import logging
from contextlib import asynccontextmanager
from datetime import date

import uvicorn
from starlette.applications import Starlette
from starlette.requests import Request
from starlette.responses import JSONResponse, Response
from starlette.routing import Route

from project_tracker.config import get_config
from project_tracker.core import activity as activity_mod
from project_tracker.core import comments as comments_mod
from project_tracker.core import projects as projects_mod
from project_tracker.core import proposals as proposals_mod
from project_tracker.core import store
from project_tracker.core import tags as tags_mod
from project_tracker.core import tasks as tasks_mod
from project_tracker.core.changes import ActivityWatcher
from project_tracker.core.errors import TrackerError, ValidationError
from project_tracker.core.metrics import MetricsCache, analytics_breakdown
from project_tracker.core.schedule import calendar_month, gantt_rows, month_window, parse_local_date
from project_tracker.db.engine import init_db
from project_tracker.web import serializers as ser

logger = logging.getLogger(__name__)

STATUS_CODES = {
    "not_found": 404,
    "invalid_transition": 409,
    "validation_error": 422,
    "collaborator_failure": 503,
}


def _get_db():
    config = get_config()
    return init_db(config.db_path)


def _today(request: Request) -> date:
    return parse_local_date(request.query_params.get("today")) or date.today()


def _month(request: Request) -> tuple[int, int]:
    today = _today(request)
    try:
        year = int(request.query_params.get("year", today.year))
        month = int(request.query_params.get("month", today.month))
    except ValueError:
        raise ValidationError("year and month must be integers") from None
    return year, month


async def _body(request: Request) -> dict:
    try:
        data = await request.json()
    except json.JSONDecodeError:
        raise ValidationError("Request body must be valid JSON") from None
    if not isinstance(data, dict):
        raise ValidationError("Request body must be a JSON object")
    return data


async def tracker_error_handler(request: Request, exc: TrackerError):
    return JSONResponse(exc.to_dict(), status_code=STATUS_CODES.get(exc.kind, 400))


# ── Projects ──────────────────────────────────────────────────────────────────


async def api_list_projects(request: Request):
    db = _get_db()
    try:
        projects = projects_mod.list_projects(db)
        return JSONResponse([ser.project_dict(p) for p in projects])
    finally:
        db.close()


async def api_create_project(request: Request):
    data = await _body(request)
    db = _get_db()
    try:
        store.check_fields(data, projects_mod.UPDATABLE_FIELDS, "project")
        project = projects_mod.create_project(db, data.pop("name", None), **data)
        return JSONResponse(ser.project_dict(project), status_code=201)
    finally:
        db.close()


async def api_get_project(request: Request):
    project_id = request.path_params["project_id"]
    db = _get_db()
    try:
        return JSONResponse(ser.project_dict(projects_mod.get_project(db, project_id)))
    finally:
        db.close()


async def api_update_project(request: Request):
    project_id = request.path_params["project_id"]
    data = await _body(request)
    db = _get_db()
    try:
        store.check_fields(data, projects_mod.UPDATABLE_FIELDS, "project")
        project = projects_mod.update_project(db, project_id, **data)
        return JSONResponse(ser.project_dict(project))
    finally:
        db.close()


async def api_delete_project(request: Request):
    project_id = request.path_params["project_id"]
    db = _get_db()
    try:
        projects_mod.delete_project(db, project_id)
        return Response(status_code=204)
    finally:
        db.close()


async def api_project_stats(request: Request):
    project_id = request.path_params["project_id"]
    db = _get_db()
    try:
        projects_mod.get_project(db, project_id)
        tasks = tasks_mod.list_tasks(db, project_id, with_tags=False)
        return JSONResponse(projects_mod.project_stats(tasks, project_id, _today(request)))
    finally:
        db.close()


# ── Tasks ─────────────────────────────────────────────────────────────────────


async def api_list_tasks(request: Request):
    db = _get_db()
    try:
        tasks = tasks_mod.list_tasks(
            db,
            project_id=request.query_params.get("project_id"),
            status=request.query_params.get("status"),
        )
        return JSONResponse([ser.task_dict(t) for t in tasks])
    finally:
        db.close()


async def api_create_task(request: Request):
    data = await _body(request)
    db = _get_db()
    try:
        store.check_fields(data, tasks_mod.UPDATABLE_FIELDS, "task")
        task = tasks_mod.create_task(db, data.pop("title", None), **data)
        return JSONResponse(ser.task_dict(task), status_code=201)
    finally:
        db.close()


async def api_get_task(request: Request):
    task_id = request.path_params["task_id"]
    db = _get_db()
    try:
        td = ser.task_dict(tasks_mod.get_task(db, task_id))
        td["comments"] = [ser.comment_dict(c) for c in comments_mod.list_comments(db, task_id)]
        return JSONResponse(td)
    finally:
        db.close()


async def api_update_task(request: Request):
    task_id = request.path_params["task_id"]
    data = await _body(request)
    db = _get_db()
    try:
        store.check_fields(data, tasks_mod.UPDATABLE_FIELDS, "task")
        task = tasks_mod.update_task(db, task_id, **data)
        return JSONResponse(ser.task_dict(task))
    finally:
        db.close()


async def api_move_task(request: Request):
    task_id = request.path_params["task_id"]
    data = await _body(request)
    if "status" not in data:
        raise ValidationError("status is required", field="status")
    db = _get_db()
    try:
        task = tasks_mod.move_task(db, task_id, data["status"], data.get("position"))
        return JSONResponse(ser.task_dict(task))
    finally:
        db.close()


async def api_delete_task(request: Request):
    task_id = request.path_params["task_id"]
    db = _get_db()
    try:
        tasks_mod.delete_task(db, task_id)
        return Response(status_code=204)
    finally:
        db.close()


async def api_task_activity(request: Request):
    task_id = request.path_params["task_id"]
    db = _get_db()
    try:
        entries = activity_mod.list_for_entity(db, "task", task_id)
        return JSONResponse([ser.activity_dict(e) for e in entries])
    finally:
        db.close()


async def api_list_comments(request: Request):
    task_id = request.path_params["task_id"]
    db = _get_db()
    try:
        tasks_mod.get_task(db, task_id)
        return JSONResponse([ser.comment_dict(c) for c in comments_mod.list_comments(db, task_id)])
    finally:
        db.close()


async def api_create_comment(request: Request):
    task_id = request.path_params["task_id"]
    data = await _body(request)
    db = _get_db()
    try:
        comment = comments_mod.create_comment(
            db, task_id, data.get("content"), author=data.get("author")
        )
        return JSONResponse(ser.comment_dict(comment), status_code=201)
    finally:
        db.close()


async def api_delete_comment(request: Request):
    comment_id = request.path_params["comment_id"]
    db = _get_db()
    try:
        comments_mod.delete_comment(db, comment_id)
        return Response(status_code=204)
    finally:
        db.close()


async def api_add_task_tag(request: Request):
    task_id = request.path_params["task_id"]
    tag_id = request.path_params["tag_id"]
    db = _get_db()
    try:
        tags = tags_mod.add_tag_to_task(db, task_id, tag_id)
        return JSONResponse([ser.tag_dict(t) for t in tags])
    finally:
        db.close()


async def api_remove_task_tag(request: Request):
    task_id = request.path_params["task_id"]
    tag_id = request.path_params["tag_id"]
    db = _get_db()
    try:
        tags = tags_mod.remove_tag_from_task(db, task_id, tag_id)
        return JSONResponse([ser.tag_dict(t) for t in tags])
    finally:
        db.close()


# ── Tags ──────────────────────────────────────────────────────────────────────


async def api_list_tags(request: Request):
    db = _get_db()
    try:
        return JSONResponse([ser.tag_dict(t) for t in tags_mod.list_tags(db)])
    finally:
        db.close()


async def api_create_tag(request: Request):
    data = await _body(request)
    db = _get_db()
    try:
        store.check_fields(data, tags_mod.UPDATABLE_FIELDS, "tag")
        tag = tags_mod.create_tag(db, data.pop("name", None), **data)
        return JSONResponse(ser.tag_dict(tag), status_code=201)
    finally:
        db.close()


async def api_delete_tag(request: Request):
    tag_id = request.path_params["tag_id"]
    db = _get_db()
    try:
        tags_mod.delete_tag(db, tag_id)
        return Response(status_code=204)
    finally:
        db.close()


# ── Proposals ─────────────────────────────────────────────────────────────────


async def api_list_proposals(request: Request):
    db = _get_db()
    try:
        proposals = proposals_mod.list_proposals(
            db,
            project_id=request.query_params.get("project_id"),
            stage=request.query_params.get("stage"),
        )
        return JSONResponse([ser.proposal_dict(p) for p in proposals])
    finally:
        db.close()


async def api_create_proposal(request: Request):
    data = await _body(request)
    db = _get_db()
    try:
        store.check_fields(data, proposals_mod.UPDATABLE_FIELDS, "proposal")
        proposal = proposals_mod.create_proposal(
            db, data.pop("title", None), today=_today(request), **data
        )
        return JSONResponse(ser.proposal_dict(proposal), status_code=201)
    finally:
        db.close()


async def api_proposal_summary(request: Request):
    db = _get_db()
    try:
        return JSONResponse(proposals_mod.pipeline_summary(proposals_mod.list_proposals(db)))
    finally:
        db.close()


async def api_get_proposal(request: Request):
    proposal_id = request.path_params["proposal_id"]
    db = _get_db()
    try:
        proposal = proposals_mod.get_proposal(db, proposal_id)
        pd = ser.proposal_dict(proposal)
        pd["progress"] = ser.progress_list(proposal)
        return JSONResponse(pd)
    finally:
        db.close()


async def api_update_proposal(request: Request):
    proposal_id = request.path_params["proposal_id"]
    data = await _body(request)
    db = _get_db()
    try:
        store.check_fields(data, proposals_mod.UPDATABLE_FIELDS, "proposal")
        proposal = proposals_mod.update_proposal(db, proposal_id, **data)
        return JSONResponse(ser.proposal_dict(proposal))
    finally:
        db.close()


async def api_advance_proposal(request: Request):
    proposal_id = request.path_params["proposal_id"]
    db = _get_db()
    try:
        proposal = proposals_mod.advance_proposal(db, proposal_id, _today(request))
        return JSONResponse(ser.proposal_dict(proposal))
    finally:
        db.close()


async def api_delete_proposal(request: Request):
    proposal_id = request.path_params["proposal_id"]
    db = _get_db()
    try:
        proposals_mod.delete_proposal(db, proposal_id)
        return Response(status_code=204)
    finally:
        db.close()


# ── Views ─────────────────────────────────────────────────────────────────────


async def api_metrics(request: Request):
    metrics = await request.app.state.metrics.get(_today(request))
    return JSONResponse(ser.metrics_dict(metrics))


async def api_analytics(request: Request):
    metrics = await request.app.state.metrics.get(_today(request))
    data = analytics_breakdown(metrics)
    data["total_tasks"] = metrics.total_tasks
    data["completion_rate"] = metrics.completion_rate
    return JSONResponse(data)


async def api_gantt(request: Request):
    year, month = _month(request)
    window_start, window_end = month_window(year, month)
    db = _get_db()
    try:
        tasks = tasks_mod.list_tasks(
            db, project_id=request.query_params.get("project_id"), with_tags=False
        )
        bars = gantt_rows(tasks, window_start, window_end)
        return JSONResponse({
            "window_start": window_start.isoformat(),
            "window_end": window_end.isoformat(),
            "days": (window_end - window_start).days + 1,
            "rows": [ser.gantt_dict(b) for b in bars],
        })
    finally:
        db.close()


async def api_calendar(request: Request):
    year, month = _month(request)
    db = _get_db()
    try:
        tasks = tasks_mod.list_tasks(db, with_tags=False)
        days = calendar_month(tasks, year, month)
        return JSONResponse([
            {"date": day.isoformat(), "tasks": [ser.task_dict(t) for t in day_tasks]}
            for day, day_tasks in days.items()
        ])
    finally:
        db.close()


async def api_kanban(request: Request):
    db = _get_db()
    try:
        tasks = tasks_mod.list_tasks(db, project_id=request.query_params.get("project_id"))
        return JSONResponse([
            {
                "status": col["status"],
                "title": col["title"],
                "tasks": [ser.task_dict(t) for t in col["tasks"]],
            }
            for col in tasks_mod.kanban_columns(tasks)
        ])
    finally:
        db.close()


async def api_activity(request: Request):
    try:
        limit = int(request.query_params.get("limit", 50))
    except ValueError:
        raise ValidationError("limit must be an integer", field="limit") from None
    db = _get_db()
    try:
        entries = activity_mod.list_recent(db, limit=limit)
        return JSONResponse([ser.activity_dict(e) for e in entries])
    finally:
        db.close()


# ── App ───────────────────────────────────────────────────────────────────────


def create_app(watch_activity: bool = False) -> Starlette:
    config = get_config()

    @asynccontextmanager
    async def lifespan(app: Starlette):
        app.state.metrics = MetricsCache(
            config.db_path,
            horizon_days=config.upcoming_days,
            upcoming_limit=config.upcoming_limit,
        )
        watcher = None
        try:
            if watch_activity:
                watcher = ActivityWatcher(config.db_path, poll_interval=config.activity_poll_interval)
                watcher.start()
            yield
        finally:
            if watcher:
                watcher.stop()
            app.state.metrics.close()

    routes = [
        Route("/api/projects", api_list_projects, methods=["GET"]),
        Route("/api/projects", api_create_project, methods=["POST"]),
        Route("/api/projects/{project_id}", api_get_project, methods=["GET"]),
        Route("/api/projects/{project_id}", api_update_project, methods=["PATCH"]),
        Route("/api/projects/{project_id}", api_delete_project, methods=["DELETE"]),
        Route("/api/projects/{project_id}/stats", api_project_stats, methods=["GET"]),
        Route("/api/tasks", api_list_tasks, methods=["GET"]),
        Route("/api/tasks", api_create_task, methods=["POST"]),
        Route("/api/tasks/{task_id}", api_get_task, methods=["GET"]),
        Route("/api/tasks/{task_id}", api_update_task, methods=["PATCH"]),
        Route("/api/tasks/{task_id}", api_delete_task, methods=["DELETE"]),
        Route("/api/tasks/{task_id}/move", api_move_task, methods=["POST"]),
        Route("/api/tasks/{task_id}/activity", api_task_activity, methods=["GET"]),
        Route("/api/tasks/{task_id}/comments", api_list_comments, methods=["GET"]),
        Route("/api/tasks/{task_id}/comments", api_create_comment, methods=["POST"]),
        Route("/api/tasks/{task_id}/tags/{tag_id:int}", api_add_task_tag, methods=["PUT"]),
        Route("/api/tasks/{task_id}/tags/{tag_id:int}", api_remove_task_tag, methods=["DELETE"]),
        Route("/api/comments/{comment_id:int}", api_delete_comment, methods=["DELETE"]),
        Route("/api/tags", api_list_tags, methods=["GET"]),
        Route("/api/tags", api_create_tag, methods=["POST"]),
        Route("/api/tags/{tag_id:int}", api_delete_tag, methods=["DELETE"]),
        Route("/api/proposals", api_list_proposals, methods=["GET"]),
        Route("/api/proposals", api_create_proposal, methods=["POST"]),
        Route("/api/proposals/summary", api_proposal_summary, methods=["GET"]),
        Route("/api/proposals/{proposal_id}", api_get_proposal, methods=["GET"]),
        Route("/api/proposals/{proposal_id}", api_update_proposal, methods=["PATCH"]),
        Route("/api/proposals/{proposal_id}", api_delete_proposal, methods=["DELETE"]),
        Route("/api/proposals/{proposal_id}/advance", api_advance_proposal, methods=["POST"]),
        Route("/api/metrics", api_metrics, methods=["GET"]),
        Route("/api/analytics", api_analytics, methods=["GET"]),
        Route("/api/gantt", api_gantt, methods=["GET"]),
        Route("/api/calendar", api_calendar, methods=["GET"]),
        Route("/api/kanban", api_kanban, methods=["GET"]),
        Route("/api/activity", api_activity, methods=["GET"]),
    ]
    app = Starlette(
        routes=routes,
        exception_handlers={TrackerError: tracker_error_handler},
        lifespan=lifespan,
    )
    return app


def run_server(host: str = "127.0.0.1", port: int = 8787):
    app = create_app(watch_activity=True)
    uvicorn.run(app, host=host, port=port)
