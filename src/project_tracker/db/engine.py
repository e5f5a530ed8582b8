"""SQLite database connection management and schema initialization."""

import sqlite3
from contextlib import contextmanager
from pathlib import Path

SCHEMA = """
CREATE TABLE IF NOT EXISTS projects (
    id TEXT PRIMARY KEY,
    name TEXT NOT NULL,
    description TEXT,
    color TEXT DEFAULT '#3b82f6',
    start_date TEXT,
    end_date TEXT,
    is_active INTEGER DEFAULT 1,
    created_at TEXT DEFAULT (datetime('now')),
    updated_at TEXT DEFAULT (datetime('now'))
);

CREATE TABLE IF NOT EXISTS tasks (
    id TEXT PRIMARY KEY,
    project_id TEXT REFERENCES projects(id) ON DELETE SET NULL,
    title TEXT NOT NULL,
    description TEXT,
    priority TEXT DEFAULT 'medium' CHECK (priority IN ('low', 'medium', 'high', 'critical')),
    status TEXT DEFAULT 'not_started'
        CHECK (status IN ('not_started', 'in_progress', 'on_hold', 'review', 'completed')),
    start_date TEXT,
    due_date TEXT,
    completed_at TEXT,
    assigned_to TEXT,
    depends_on TEXT,
    estimated_hours REAL,
    actual_hours REAL,
    position INTEGER DEFAULT 0,
    created_at TEXT DEFAULT (datetime('now')),
    updated_at TEXT DEFAULT (datetime('now'))
);

CREATE TABLE IF NOT EXISTS proposals (
    id TEXT PRIMARY KEY,
    project_id TEXT REFERENCES projects(id) ON DELETE SET NULL,
    title TEXT NOT NULL,
    description TEXT,
    client_name TEXT,
    client_email TEXT,
    value REAL,
    stage TEXT DEFAULT 'draft' CHECK (stage IN (
        'draft', 'sent_to_client', 'client_review', 'negotiation',
        'revision', 'approved', 'contract_signed'
    )),
    probability_to_close INTEGER DEFAULT 0
        CHECK (probability_to_close BETWEEN 0 AND 100),
    draft_date TEXT,
    sent_date TEXT,
    review_date TEXT,
    negotiation_date TEXT,
    revision_date TEXT,
    approval_date TEXT,
    signed_date TEXT,
    notes TEXT,
    created_at TEXT DEFAULT (datetime('now')),
    updated_at TEXT DEFAULT (datetime('now'))
);

CREATE TABLE IF NOT EXISTS tags (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    name TEXT NOT NULL,
    color TEXT DEFAULT '#6b7280',
    created_at TEXT DEFAULT (datetime('now'))
);

CREATE TABLE IF NOT EXISTS task_tags (
    task_id TEXT NOT NULL REFERENCES tasks(id) ON DELETE CASCADE,
    tag_id INTEGER NOT NULL REFERENCES tags(id) ON DELETE CASCADE,
    PRIMARY KEY (task_id, tag_id)
);

CREATE TABLE IF NOT EXISTS task_comments (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    task_id TEXT NOT NULL REFERENCES tasks(id) ON DELETE CASCADE,
    content TEXT NOT NULL,
    author TEXT,
    created_at TEXT DEFAULT (datetime('now')),
    updated_at TEXT DEFAULT (datetime('now'))
);

CREATE TABLE IF NOT EXISTS activity_logs (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    entity_type TEXT NOT NULL,
    entity_id TEXT NOT NULL,
    action TEXT NOT NULL CHECK (action IN ('INSERT', 'UPDATE', 'DELETE')),
    details TEXT,
    actor TEXT,
    created_at TEXT DEFAULT (datetime('now'))
);

CREATE INDEX IF NOT EXISTS idx_activity_entity ON activity_logs(entity_type, entity_id);
"""

# (table, entity_type, expression describing the row for the details snapshot)
_TRACKED_TABLES = [
    ("projects", "project", "json_object('name', {row}.name)"),
    ("tasks", "task", "json_object('title', {row}.title, 'status', {row}.status)"),
    ("proposals", "proposal", "json_object('title', {row}.title, 'stage', {row}.stage)"),
    ("tags", "tag", "json_object('name', {row}.name)"),
    ("task_comments", "comment", "json_object('task_id', {row}.task_id)"),
]


def _activity_triggers() -> str:
    """Build the triggers that append to activity_logs on every tracked write."""
    parts = []
    for table, entity_type, details in _TRACKED_TABLES:
        for action, suffix, row in (
            ("INSERT", "ai", "new"),
            ("UPDATE", "au", "new"),
            ("DELETE", "ad", "old"),
        ):
            parts.append(
                f"""
CREATE TRIGGER IF NOT EXISTS {table}_activity_{suffix} AFTER {action} ON {table} BEGIN
    INSERT INTO activity_logs (entity_type, entity_id, action, details)
    VALUES ('{entity_type}', CAST({row}.id AS TEXT), '{action}', {details.format(row=row)});
END;
"""
            )
    return "".join(parts)


ACTIVITY_SCHEMA = _activity_triggers()


def init_db(db_path: Path) -> sqlite3.Connection:
    """Initialize the database, creating tables if needed."""
    db_path.parent.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(str(db_path))
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA journal_mode=WAL")
    conn.execute("PRAGMA foreign_keys=ON")
    conn.executescript(SCHEMA)
    conn.executescript(ACTIVITY_SCHEMA)
    conn.commit()
    return conn


@contextmanager
def get_db(db_path: Path):
    """Context manager for database connections."""
    conn = init_db(db_path)
    try:
        yield conn
    finally:
        conn.close()
