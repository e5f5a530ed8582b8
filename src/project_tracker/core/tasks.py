"""Task management operations."""

import logging
import sqlite3
from datetime import datetime

from project_tracker.core import store
from project_tracker.core import tags as tags_mod
from project_tracker.core.errors import NotFound, ValidationError
from project_tracker.db.models import PRIORITIES, STATUSES, Task

logger = logging.getLogger(__name__)

UPDATABLE_FIELDS = {
    "title",
    "description",
    "project_id",
    "priority",
    "status",
    "start_date",
    "due_date",
    "assigned_to",
    "depends_on",
    "estimated_hours",
    "actual_hours",
    "position",
}

KANBAN_COLUMNS = [
    ("not_started", "Backlog"),
    ("in_progress", "In Progress"),
    ("review", "Review"),
    ("completed", "Completed"),
]


def create_task(
    db: sqlite3.Connection,
    title: str,
    project_id: str | None = None,
    description: str | None = None,
    priority: str = "medium",
    status: str = "not_started",
    start_date=None,
    due_date=None,
    assigned_to: str | None = None,
    depends_on: str | None = None,
    estimated_hours: float | None = None,
    actual_hours: float | None = None,
    position: int = 0,
    now: datetime | None = None,
) -> Task:
    """Create a new task."""
    title = store.require_text(title, "title")
    store.require_choice(priority, PRIORITIES, "priority")
    store.require_choice(status, STATUSES, "status")
    _check_hours(estimated_hours, "estimated_hours")
    _check_hours(actual_hours, "actual_hours")
    _check_position(position)

    task_id = store.unique_id(db, "tasks", store.slugify(title) or "task")
    completed_at = (now or datetime.now()).isoformat() if status == "completed" else None
    store.insert_row(
        db,
        "tasks",
        {
            "id": task_id,
            "project_id": project_id,
            "title": title,
            "description": description,
            "priority": priority,
            "status": status,
            "start_date": store.to_db_date(start_date),
            "due_date": store.to_db_date(due_date),
            "completed_at": completed_at,
            "assigned_to": assigned_to,
            "depends_on": depends_on,
            "estimated_hours": estimated_hours,
            "actual_hours": actual_hours,
            "position": position,
        },
        "task",
    )
    return get_task(db, task_id)


def get_task(db: sqlite3.Connection, task_id: str) -> Task:
    """Get a task by ID with its tags."""
    row = store.fetch_one(db, "SELECT * FROM tasks WHERE id = ?", (task_id,))
    if not row:
        raise NotFound("task", task_id)
    task = _row_to_task(row)
    task.tags = tags_mod.list_task_tags(db, task_id)
    return task


def list_tasks(
    db: sqlite3.Connection,
    project_id: str | None = None,
    status: str | None = None,
    with_tags: bool = True,
) -> list[Task]:
    """List tasks in manual order, with optional filters."""
    query = "SELECT * FROM tasks WHERE 1=1"
    params: list = []

    if project_id is not None:
        query += " AND project_id = ?"
        params.append(project_id)

    if status:
        store.require_choice(status, STATUSES, "status")
        query += " AND status = ?"
        params.append(status)

    query += " ORDER BY position ASC, created_at ASC, rowid ASC"
    tasks = [_row_to_task(r) for r in store.fetch_all(db, query, params)]
    if with_tags:
        for task in tasks:
            task.tags = tags_mod.list_task_tags(db, task.id)
    return tasks


def completion_fields(
    old_status: str,
    new_status: str,
    now: datetime,
) -> dict:
    """completed_at changes implied by a status change.

    Entering completed stamps completed_at; leaving it clears the stamp.
    Staying completed keeps the original stamp.
    """
    if new_status == old_status:
        return {}
    if new_status == "completed":
        return {"completed_at": now.isoformat()}
    if old_status == "completed":
        return {"completed_at": None}
    return {}


def update_task(
    db: sqlite3.Connection,
    task_id: str,
    now: datetime | None = None,
    **fields,
) -> Task:
    """Apply a partial update. All supplied fields land together or not at all."""
    store.check_fields(fields, UPDATABLE_FIELDS, "task")
    task = get_task(db, task_id)

    updates = dict(fields)
    if "title" in updates:
        updates["title"] = store.require_text(updates["title"], "title")
    if "priority" in updates:
        store.require_choice(updates["priority"], PRIORITIES, "priority")
    for key in ("start_date", "due_date"):
        if key in updates:
            updates[key] = store.to_db_date(updates[key])
    for key in ("estimated_hours", "actual_hours"):
        if key in updates:
            _check_hours(updates[key], key)
    if "position" in updates:
        _check_position(updates["position"])
    if "status" in updates:
        store.require_choice(updates["status"], STATUSES, "status")
        updates.update(completion_fields(task.status, updates["status"], now or datetime.now()))
    if not updates:
        return task

    store.update_row(db, "tasks", task_id, updates, "task")
    if "status" in updates and updates["status"] != task.status:
        logger.debug("Task %s status: %s → %s", task_id, task.status, updates["status"])
    return get_task(db, task_id)


def update_task_status(
    db: sqlite3.Connection,
    task_id: str,
    status: str,
    now: datetime | None = None,
) -> Task:
    """Update a task's status. Returns the updated task."""
    return update_task(db, task_id, now=now, status=status)


def move_task(
    db: sqlite3.Connection,
    task_id: str,
    status: str,
    position: int | None = None,
    now: datetime | None = None,
) -> Task:
    """Drop a task into a board column, at the end unless a position is given."""
    store.require_choice(status, STATUSES, "status")
    if position is None:
        row = store.fetch_one(
            db,
            "SELECT MAX(position) AS max_pos FROM tasks WHERE status = ? AND id != ?",
            (status, task_id),
        )
        position = (row["max_pos"] + 1) if row and row["max_pos"] is not None else 0
    return update_task(db, task_id, now=now, status=status, position=position)


def delete_task(db: sqlite3.Connection, task_id: str):
    """Delete a task. Its comments and tag links go with it."""
    store.delete_row(db, "tasks", task_id, "task")


def kanban_columns(tasks: list[Task]) -> list[dict]:
    """Board columns with their tasks in manual order. On-hold tasks are not shown."""
    columns = []
    for status, title in KANBAN_COLUMNS:
        column_tasks = sorted(
            (t for t in tasks if t.status == status), key=lambda t: t.position
        )
        columns.append({"status": status, "title": title, "tasks": column_tasks})
    return columns


def _check_hours(value, field: str):
    if value is None:
        return
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValidationError(f"{field} must be a number", field=field)
    if value < 0:
        raise ValidationError(f"{field} cannot be negative", field=field)


def _check_position(value):
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError("position must be an integer", field="position")


def _row_to_task(row: sqlite3.Row) -> Task:
    return Task(
        id=row["id"],
        project_id=row["project_id"],
        title=row["title"],
        description=row["description"],
        priority=row["priority"],
        status=row["status"],
        start_date=store.parse_date(row["start_date"]),
        due_date=store.parse_date(row["due_date"]),
        completed_at=store.parse_dt(row["completed_at"]),
        assigned_to=row["assigned_to"],
        depends_on=row["depends_on"],
        estimated_hours=row["estimated_hours"],
        actual_hours=row["actual_hours"],
        position=row["position"] if row["position"] is not None else 0,
        created_at=store.parse_dt(row["created_at"]),
        updated_at=store.parse_dt(row["updated_at"]),
    )
