"""Read access to the activity feed.

Entries are appended by store triggers on every tracked insert, update and
delete. Nothing here writes to the log.
"""

import json
import sqlite3

from project_tracker.core import store
from project_tracker.db.models import ActivityLog


def list_recent(db: sqlite3.Connection, limit: int = 50) -> list[ActivityLog]:
    """Most recent entries first."""
    rows = store.fetch_all(
        db,
        "SELECT * FROM activity_logs ORDER BY created_at DESC, id DESC LIMIT ?",
        (limit,),
    )
    return [_row_to_log(r) for r in rows]


def list_for_entity(
    db: sqlite3.Connection,
    entity_type: str,
    entity_id,
) -> list[ActivityLog]:
    """History of one entity, most recent first."""
    rows = store.fetch_all(
        db,
        """SELECT * FROM activity_logs
           WHERE entity_type = ? AND entity_id = ?
           ORDER BY created_at DESC, id DESC""",
        (entity_type, str(entity_id)),
    )
    return [_row_to_log(r) for r in rows]


def describe(entry: ActivityLog) -> str:
    """One-line summary, e.g. 'task "Write docs" updated'."""
    details = entry.details or {}
    label = details.get("title") or details.get("name")
    verb = {"INSERT": "created", "UPDATE": "updated", "DELETE": "deleted"}.get(
        entry.action, entry.action.lower()
    )
    subject = f'{entry.entity_type} "{label}"' if label else f"{entry.entity_type} {entry.entity_id}"
    return f"{subject} {verb}"


def _row_to_log(row: sqlite3.Row) -> ActivityLog:
    return ActivityLog(
        id=row["id"],
        entity_type=row["entity_type"],
        entity_id=row["entity_id"],
        action=row["action"],
        details=json.loads(row["details"]) if row["details"] else None,
        actor=row["actor"],
        created_at=store.parse_dt(row["created_at"]),
    )
