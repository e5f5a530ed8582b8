"""Tags and their many-to-many link to tasks."""

import sqlite3

from project_tracker.core import store
from project_tracker.core.errors import NotFound
from project_tracker.db.models import Tag

UPDATABLE_FIELDS = {"name", "color"}


def create_tag(db: sqlite3.Connection, name: str, color: str = "#6b7280") -> Tag:
    """Create a tag. Names are not required to be unique."""
    name = store.require_text(name, "name")
    tag_id = store.insert_row(db, "tags", {"name": name, "color": color}, "tag")
    return get_tag(db, tag_id)


def get_tag(db: sqlite3.Connection, tag_id: int) -> Tag:
    row = store.fetch_one(db, "SELECT * FROM tags WHERE id = ?", (tag_id,))
    if not row:
        raise NotFound("tag", tag_id)
    return _row_to_tag(row)


def list_tags(db: sqlite3.Connection) -> list[Tag]:
    """List all tags by name."""
    rows = store.fetch_all(db, "SELECT * FROM tags ORDER BY name ASC")
    return [_row_to_tag(r) for r in rows]


def update_tag(db: sqlite3.Connection, tag_id: int, **fields) -> Tag:
    store.check_fields(fields, UPDATABLE_FIELDS, "tag")
    if "name" in fields:
        fields["name"] = store.require_text(fields["name"], "name")
    if fields:
        store.update_row(db, "tags", tag_id, fields, "tag", touch=False)
    return get_tag(db, tag_id)


def delete_tag(db: sqlite3.Connection, tag_id: int):
    store.delete_row(db, "tags", tag_id, "tag")


def list_task_tags(db: sqlite3.Connection, task_id: str) -> list[Tag]:
    """Tags attached to a task."""
    rows = store.fetch_all(
        db,
        """SELECT t.* FROM tags t
           JOIN task_tags tt ON tt.tag_id = t.id
           WHERE tt.task_id = ?
           ORDER BY t.name ASC""",
        (task_id,),
    )
    return [_row_to_tag(r) for r in rows]


def add_tag_to_task(db: sqlite3.Connection, task_id: str, tag_id: int) -> list[Tag]:
    """Attach a tag to a task. Attaching twice is a no-op."""
    _require_task(db, task_id)
    get_tag(db, tag_id)
    with store.write(db, f"tag task {task_id}", "task"):
        db.execute(
            "INSERT OR IGNORE INTO task_tags (task_id, tag_id) VALUES (?, ?)",
            (task_id, tag_id),
        )
    return list_task_tags(db, task_id)


def remove_tag_from_task(db: sqlite3.Connection, task_id: str, tag_id: int) -> list[Tag]:
    _require_task(db, task_id)
    with store.write(db, f"untag task {task_id}", "task"):
        db.execute(
            "DELETE FROM task_tags WHERE task_id = ? AND tag_id = ?",
            (task_id, tag_id),
        )
    return list_task_tags(db, task_id)


def _require_task(db: sqlite3.Connection, task_id: str):
    if not store.fetch_one(db, "SELECT id FROM tasks WHERE id = ?", (task_id,)):
        raise NotFound("task", task_id)


def _row_to_tag(row: sqlite3.Row) -> Tag:
    return Tag(
        id=row["id"],
        name=row["name"],
        color=row["color"],
        created_at=store.parse_dt(row["created_at"]),
    )
