"""Project management operations."""

import sqlite3
from datetime import date

from project_tracker.core import store
from project_tracker.core.errors import NotFound
from project_tracker.core.schedule import is_overdue
from project_tracker.db.models import Project, Task

UPDATABLE_FIELDS = {"name", "description", "color", "start_date", "end_date", "is_active"}


def create_project(
    db: sqlite3.Connection,
    name: str,
    description: str | None = None,
    color: str = "#3b82f6",
    start_date=None,
    end_date=None,
    is_active: bool = True,
    project_id: str | None = None,
) -> Project:
    """Create a new project."""
    name = store.require_text(name, "name")
    project_id = project_id or store.unique_id(db, "projects", store.slugify(name) or "project")
    store.insert_row(
        db,
        "projects",
        {
            "id": project_id,
            "name": name,
            "description": description,
            "color": color,
            "start_date": store.to_db_date(start_date),
            "end_date": store.to_db_date(end_date),
            "is_active": 1 if is_active else 0,
        },
        "project",
    )
    return get_project(db, project_id)


def get_project(db: sqlite3.Connection, project_id: str) -> Project:
    """Get a project by ID."""
    row = store.fetch_one(db, "SELECT * FROM projects WHERE id = ?", (project_id,))
    if not row:
        raise NotFound("project", project_id)
    return _row_to_project(row)


def list_projects(db: sqlite3.Connection, active_only: bool = False) -> list[Project]:
    """List all projects, newest first."""
    sql = "SELECT * FROM projects"
    if active_only:
        sql += " WHERE is_active = 1"
    sql += " ORDER BY created_at DESC, rowid DESC"
    return [_row_to_project(r) for r in store.fetch_all(db, sql)]


def update_project(db: sqlite3.Connection, project_id: str, **fields) -> Project:
    """Update project fields."""
    store.check_fields(fields, UPDATABLE_FIELDS, "project")
    updates = dict(fields)
    if "name" in updates:
        updates["name"] = store.require_text(updates["name"], "name")
    for key in ("start_date", "end_date"):
        if key in updates:
            updates[key] = store.to_db_date(updates[key])
    if "is_active" in updates:
        updates["is_active"] = 1 if updates["is_active"] else 0
    if not updates:
        return get_project(db, project_id)

    store.update_row(db, "projects", project_id, updates, "project")
    return get_project(db, project_id)


def delete_project(db: sqlite3.Connection, project_id: str):
    """Delete a project. Its tasks and proposals become unaffiliated."""
    store.delete_row(db, "projects", project_id, "project")


def project_stats(tasks: list[Task], project_id: str, today: date) -> dict:
    """Task counts and progress for one project."""
    project_tasks = [t for t in tasks if t.project_id == project_id]
    total = len(project_tasks)
    completed = sum(1 for t in project_tasks if t.status == "completed")
    progress = (completed / total * 100) if total > 0 else 0.0
    return {
        "project_id": project_id,
        "total": total,
        "completed": completed,
        "in_progress": sum(1 for t in project_tasks if t.status == "in_progress"),
        "overdue": sum(1 for t in project_tasks if is_overdue(t, today)),
        "progress_pct": round(progress, 1),
    }


def _row_to_project(row: sqlite3.Row) -> Project:
    return Project(
        id=row["id"],
        name=row["name"],
        description=row["description"],
        color=row["color"],
        start_date=store.parse_date(row["start_date"]),
        end_date=store.parse_date(row["end_date"]),
        is_active=bool(row["is_active"]),
        created_at=store.parse_dt(row["created_at"]),
        updated_at=store.parse_dt(row["updated_at"]),
    )
