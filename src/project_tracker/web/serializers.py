"""JSON-ready dicts for entities and read models."""

from datetime import date, datetime

from project_tracker.core import stages
from project_tracker.core.activity import describe
from project_tracker.core.metrics import DashboardMetrics
from project_tracker.core.schedule import GanttBar
from project_tracker.db.models import STAGE_LABELS


def _iso(value: date | datetime | None) -> str | None:
    return value.isoformat() if value else None


def project_dict(p) -> dict:
    return {
        "id": p.id,
        "name": p.name,
        "description": p.description,
        "color": p.color,
        "start_date": _iso(p.start_date),
        "end_date": _iso(p.end_date),
        "is_active": p.is_active,
        "created_at": _iso(p.created_at),
        "updated_at": _iso(p.updated_at),
    }


def tag_dict(t) -> dict:
    return {"id": t.id, "name": t.name, "color": t.color}


def task_dict(t) -> dict:
    return {
        "id": t.id,
        "project_id": t.project_id,
        "title": t.title,
        "description": t.description,
        "priority": t.priority,
        "status": t.status,
        "start_date": _iso(t.start_date),
        "due_date": _iso(t.due_date),
        "completed_at": _iso(t.completed_at),
        "assigned_to": t.assigned_to,
        "depends_on": t.depends_on,
        "estimated_hours": t.estimated_hours,
        "actual_hours": t.actual_hours,
        "position": t.position,
        "tags": [tag_dict(tag) for tag in t.tags],
        "created_at": _iso(t.created_at),
        "updated_at": _iso(t.updated_at),
    }


def proposal_dict(p) -> dict:
    d = {
        "id": p.id,
        "project_id": p.project_id,
        "title": p.title,
        "description": p.description,
        "client_name": p.client_name,
        "client_email": p.client_email,
        "value": p.value,
        "stage": p.stage,
        "stage_label": STAGE_LABELS[p.stage],
        "next_stage": stages.next_stage(p.stage),
        "probability_to_close": p.probability_to_close,
        "notes": p.notes,
        "created_at": _iso(p.created_at),
        "updated_at": _iso(p.updated_at),
    }
    for field in stages.STAGE_DATE_FIELDS.values():
        d[field] = _iso(getattr(p, field))
    return d


def progress_list(p) -> list[dict]:
    return [
        {
            "stage": step.stage,
            "label": step.label,
            "state": step.state,
            "date_field": step.date_field,
            "date": _iso(step.stage_date),
        }
        for step in stages.stage_progress(p.stage, p)
    ]


def comment_dict(c) -> dict:
    return {
        "id": c.id,
        "task_id": c.task_id,
        "content": c.content,
        "author": c.author,
        "created_at": _iso(c.created_at),
        "updated_at": _iso(c.updated_at),
    }


def activity_dict(e) -> dict:
    return {
        "id": e.id,
        "entity_type": e.entity_type,
        "entity_id": e.entity_id,
        "action": e.action,
        "details": e.details,
        "actor": e.actor,
        "summary": describe(e),
        "created_at": _iso(e.created_at),
    }


def metrics_dict(m: DashboardMetrics) -> dict:
    return {
        "total_projects": m.total_projects,
        "active_tasks": m.active_tasks,
        "completed_tasks": m.completed_tasks,
        "overdue_tasks": m.overdue_tasks,
        "upcoming_deadlines": [task_dict(t) for t in m.upcoming_deadlines],
        "tasks_by_priority": [{"priority": p, "count": n} for p, n in m.tasks_by_priority],
        "tasks_by_status": [{"status": s, "count": n} for s, n in m.tasks_by_status],
        "completion_rate": m.completion_rate,
        "proposal_conversion_rate": m.proposal_conversion_rate,
        "computed_for": _iso(m.computed_for),
    }


def gantt_dict(bar: GanttBar) -> dict:
    return {
        "task_id": bar.task.id,
        "title": bar.task.title,
        "priority": bar.task.priority,
        "status": bar.task.status,
        "project_id": bar.task.project_id,
        "start": _iso(bar.start),
        "end": _iso(bar.end),
        "visible_start": _iso(bar.visible_start),
        "visible_end": _iso(bar.visible_end),
        "clamped_start": bar.clamped_start,
        "clamped_end": bar.clamped_end,
        "offset_days": bar.offset_days,
        "span_days": bar.span_days,
    }
