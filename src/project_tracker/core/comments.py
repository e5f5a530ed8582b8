"""Task comments."""

import sqlite3

from project_tracker.core import store
from project_tracker.core.errors import NotFound
from project_tracker.db.models import Comment


def create_comment(
    db: sqlite3.Connection,
    task_id: str,
    content: str,
    author: str | None = None,
) -> Comment:
    """Add a comment to a task."""
    content = store.require_text(content, "content")
    if not store.fetch_one(db, "SELECT id FROM tasks WHERE id = ?", (task_id,)):
        raise NotFound("task", task_id)
    comment_id = store.insert_row(
        db,
        "task_comments",
        {"task_id": task_id, "content": content, "author": author},
        "comment",
    )
    return get_comment(db, comment_id)


def get_comment(db: sqlite3.Connection, comment_id: int) -> Comment:
    row = store.fetch_one(db, "SELECT * FROM task_comments WHERE id = ?", (comment_id,))
    if not row:
        raise NotFound("comment", comment_id)
    return _row_to_comment(row)


def list_comments(db: sqlite3.Connection, task_id: str) -> list[Comment]:
    """Comments on a task, newest first."""
    rows = store.fetch_all(
        db,
        "SELECT * FROM task_comments WHERE task_id = ? ORDER BY created_at DESC, id DESC",
        (task_id,),
    )
    return [_row_to_comment(r) for r in rows]


def update_comment(db: sqlite3.Connection, comment_id: int, content: str) -> Comment:
    content = store.require_text(content, "content")
    store.update_row(db, "task_comments", comment_id, {"content": content}, "comment")
    return get_comment(db, comment_id)


def delete_comment(db: sqlite3.Connection, comment_id: int):
    store.delete_row(db, "task_comments", comment_id, "comment")


def _row_to_comment(row: sqlite3.Row) -> Comment:
    return Comment(
        id=row["id"],
        task_id=row["task_id"],
        content=row["content"],
        author=row["author"],
        created_at=store.parse_dt(row["created_at"]),
        updated_at=store.parse_dt(row["updated_at"]),
    )
