"""Row-level access to the SQLite store shared by the entity modules.

Writes run inside a transaction and are rolled back on failure, so a
multi-field update lands completely or not at all. Successful writes are
published on the change feed after commit.
"""

import logging
import re
import sqlite3
from contextlib import contextmanager
from datetime import date, datetime

from project_tracker.core import changes
from project_tracker.core.errors import CollaboratorFailure, NotFound, ValidationError
from project_tracker.core.schedule import parse_local_date

logger = logging.getLogger(__name__)


def slugify(title: str) -> str:
    """Convert a title to a URL-friendly slug."""
    slug = title.lower().strip()
    slug = re.sub(r"[^\w\s-]", "", slug)
    slug = re.sub(r"[\s_]+", "-", slug)
    slug = re.sub(r"-+", "-", slug)
    return slug.strip("-")[:60]


def unique_id(db: sqlite3.Connection, table: str, base_slug: str) -> str:
    """Generate a unique row ID from a slug, appending a number if needed."""
    if not _exists(db, table, base_slug):
        return base_slug

    i = 2
    while True:
        candidate = f"{base_slug}-{i}"
        if not _exists(db, table, candidate):
            return candidate
        i += 1


def _exists(db: sqlite3.Connection, table: str, row_id: str) -> bool:
    return fetch_one(db, f"SELECT id FROM {table} WHERE id = ?", (row_id,)) is not None


@contextmanager
def translate_errors(action: str):
    """Map sqlite failures onto the tracker error taxonomy."""
    try:
        yield
    except sqlite3.IntegrityError as e:
        raise ValidationError(f"Cannot {action}: {e}") from e
    except sqlite3.Error as e:
        logger.error("Store failure while trying to %s: %s", action, e)
        raise CollaboratorFailure(f"Cannot {action}: {e}", cause=e) from e


def fetch_one(db: sqlite3.Connection, sql: str, params=()) -> sqlite3.Row | None:
    with translate_errors("read from the store"):
        return db.execute(sql, params).fetchone()


def fetch_all(db: sqlite3.Connection, sql: str, params=()) -> list[sqlite3.Row]:
    with translate_errors("read from the store"):
        return db.execute(sql, params).fetchall()


@contextmanager
def write(db: sqlite3.Connection, action: str, entity_type: str):
    """Run statements as one transaction, then publish the change."""
    try:
        with translate_errors(action):
            yield db
            db.commit()
    except Exception:
        db.rollback()
        raise
    logger.debug("Committed: %s", action)
    changes.feed.publish(entity_type)


def insert_row(
    db: sqlite3.Connection,
    table: str,
    values: dict,
    entity_type: str,
) -> int:
    """Insert a row and return its rowid."""
    columns = ", ".join(values)
    placeholders = ", ".join("?" for _ in values)
    with write(db, f"create {entity_type}", entity_type):
        cur = db.execute(
            f"INSERT INTO {table} ({columns}) VALUES ({placeholders})",
            list(values.values()),
        )
    return cur.lastrowid


def update_row(
    db: sqlite3.Connection,
    table: str,
    row_id,
    values: dict,
    entity_type: str,
    touch: bool = True,
):
    """Apply all ``values`` to one row in a single statement."""
    set_parts = [f"{k} = ?" for k in values]
    if touch:
        set_parts.append("updated_at = datetime('now')")
    if not set_parts:
        return
    with write(db, f"update {entity_type} {row_id}", entity_type):
        cur = db.execute(
            f"UPDATE {table} SET {', '.join(set_parts)} WHERE id = ?",
            list(values.values()) + [row_id],
        )
        if cur.rowcount == 0:
            raise NotFound(entity_type, row_id)


def delete_row(db: sqlite3.Connection, table: str, row_id, entity_type: str):
    with write(db, f"delete {entity_type} {row_id}", entity_type):
        cur = db.execute(f"DELETE FROM {table} WHERE id = ?", (row_id,))
        if cur.rowcount == 0:
            raise NotFound(entity_type, row_id)


def check_fields(fields: dict, allowed: set[str], entity_type: str):
    """Reject update fields the entity does not have."""
    unknown = sorted(set(fields) - allowed)
    if unknown:
        raise ValidationError(
            f"Unknown {entity_type} field(s): {', '.join(unknown)}",
            field=unknown[0],
        )


def require_text(value, field: str) -> str:
    """Strip a required text field, rejecting missing or blank values."""
    if value is None or not str(value).strip():
        raise ValidationError(f"{field.capitalize()} is required", field=field)
    return str(value).strip()


def require_choice(value: str, choices, field: str) -> str:
    if value not in choices:
        raise ValidationError(
            f"Invalid {field} {value!r}. Expected one of: {', '.join(choices)}",
            field=field,
        )
    return value


def to_db_date(value) -> str | None:
    """Normalize a calendar date for storage as YYYY-MM-DD."""
    day = parse_local_date(value)
    return day.isoformat() if day else None


def parse_date(val: str | None) -> date | None:
    if val is None:
        return None
    return parse_local_date(val)


def parse_dt(val: str | None) -> datetime | None:
    if val is None:
        return None
    return datetime.fromisoformat(val)
