"""Proposal management operations."""

import logging
import sqlite3
from dataclasses import fields as dc_fields
from datetime import date

from project_tracker.core import stages
from project_tracker.core import store
from project_tracker.core.errors import NotFound, ValidationError
from project_tracker.db.models import STAGE_ORDER, Proposal

logger = logging.getLogger(__name__)

DATE_FIELDS = set(stages.STAGE_DATE_FIELDS.values())

UPDATABLE_FIELDS = {
    "title",
    "description",
    "project_id",
    "client_name",
    "client_email",
    "value",
    "stage",
    "probability_to_close",
    "notes",
} | DATE_FIELDS


def create_proposal(
    db: sqlite3.Connection,
    title: str,
    project_id: str | None = None,
    description: str | None = None,
    client_name: str | None = None,
    client_email: str | None = None,
    value: float | None = None,
    stage: str = "draft",
    probability_to_close: int = 0,
    notes: str | None = None,
    today: date | None = None,
    **stage_dates,
) -> Proposal:
    """Create a new proposal.

    When ``today`` is given and no date was supplied for the starting stage,
    the starting stage is stamped with it.
    """
    title = store.require_text(title, "title")
    store.check_fields(stage_dates, DATE_FIELDS, "proposal")
    stages.stage_index(stage)
    _check_probability(probability_to_close)

    dates = {k: store.to_db_date(v) for k, v in stage_dates.items()}
    entry_field = stages.STAGE_DATE_FIELDS[stage]
    if today is not None and not dates.get(entry_field):
        dates[entry_field] = today.isoformat()

    proposal_id = store.unique_id(db, "proposals", store.slugify(title) or "proposal")
    store.insert_row(
        db,
        "proposals",
        {
            "id": proposal_id,
            "project_id": project_id,
            "title": title,
            "description": description,
            "client_name": client_name,
            "client_email": client_email,
            "value": value,
            "stage": stage,
            "probability_to_close": probability_to_close,
            "notes": notes,
            **dates,
        },
        "proposal",
    )
    return get_proposal(db, proposal_id)


def get_proposal(db: sqlite3.Connection, proposal_id: str) -> Proposal:
    row = store.fetch_one(db, "SELECT * FROM proposals WHERE id = ?", (proposal_id,))
    if not row:
        raise NotFound("proposal", proposal_id)
    return _row_to_proposal(row)


def list_proposals(
    db: sqlite3.Connection,
    project_id: str | None = None,
    stage: str | None = None,
) -> list[Proposal]:
    """List proposals, newest first."""
    query = "SELECT * FROM proposals WHERE 1=1"
    params: list = []
    if project_id is not None:
        query += " AND project_id = ?"
        params.append(project_id)
    if stage:
        stages.stage_index(stage)
        query += " AND stage = ?"
        params.append(stage)
    query += " ORDER BY created_at DESC, rowid DESC"
    return [_row_to_proposal(r) for r in store.fetch_all(db, query, params)]


def update_proposal(db: sqlite3.Connection, proposal_id: str, **fields) -> Proposal:
    """Apply a partial update.

    Setting ``stage`` here is a direct assignment: any stage may be chosen,
    backward and skipping included, and no dates are stamped.
    """
    store.check_fields(fields, UPDATABLE_FIELDS, "proposal")
    updates = dict(fields)
    if "title" in updates:
        updates["title"] = store.require_text(updates["title"], "title")
    if "stage" in updates:
        stages.stage_index(updates["stage"])
    if "probability_to_close" in updates:
        _check_probability(updates["probability_to_close"])
    for key in DATE_FIELDS & set(updates):
        updates[key] = store.to_db_date(updates[key])
    if not updates:
        return get_proposal(db, proposal_id)

    store.update_row(db, "proposals", proposal_id, updates, "proposal")
    return get_proposal(db, proposal_id)


def delete_proposal(db: sqlite3.Connection, proposal_id: str):
    store.delete_row(db, "proposals", proposal_id, "proposal")


def advance_proposal(db: sqlite3.Connection, proposal_id: str, today: date) -> Proposal:
    """Move a proposal one stage forward and record today's date on it."""
    proposal = get_proposal(db, proposal_id)
    advanced = stages.advance(proposal, today)
    field = stages.STAGE_DATE_FIELDS[advanced.stage]
    updated = update_proposal(
        db, proposal_id, stage=advanced.stage, **{field: getattr(advanced, field)}
    )
    logger.info("Proposal %s advanced to %s", proposal_id, updated.stage)
    return updated


def set_proposal_stage(
    db: sqlite3.Connection,
    proposal_id: str,
    stage: str,
    today: date | None = None,
) -> Proposal:
    """Jump a proposal to any stage. Stamps the stage's date only if ``today`` is given."""
    proposal = get_proposal(db, proposal_id)
    assigned = stages.assign_stage(proposal, stage, today)
    changes = {"stage": assigned.stage}
    if today is not None:
        field = stages.STAGE_DATE_FIELDS[stage]
        changes[field] = getattr(assigned, field)
    return update_proposal(db, proposal_id, **changes)


def pipeline_summary(proposals: list[Proposal]) -> dict:
    """Headline figures for the proposal pipeline."""
    total = len(proposals)
    by_stage = {stage: 0 for stage in STAGE_ORDER}
    for p in proposals:
        by_stage[p.stage] += 1
    return {
        "total": total,
        "open": sum(1 for p in proposals if p.stage != stages.TERMINAL_STAGE),
        "total_value": sum(p.value or 0 for p in proposals),
        "average_probability": (
            sum(p.probability_to_close for p in proposals) / total if total > 0 else 0.0
        ),
        "by_stage": [{"stage": s, "count": c} for s, c in by_stage.items()],
    }


def _check_probability(value):
    if not isinstance(value, int) or isinstance(value, bool) or not 0 <= value <= 100:
        raise ValidationError(
            "probability_to_close must be an integer between 0 and 100",
            field="probability_to_close",
        )


_PROPOSAL_COLUMNS = [f.name for f in dc_fields(Proposal)]


def _row_to_proposal(row: sqlite3.Row) -> Proposal:
    values = {name: row[name] for name in _PROPOSAL_COLUMNS}
    for name in DATE_FIELDS:
        values[name] = store.parse_date(values[name])
    values["created_at"] = store.parse_dt(values["created_at"])
    values["updated_at"] = store.parse_dt(values["updated_at"])
    return Proposal(**values)
