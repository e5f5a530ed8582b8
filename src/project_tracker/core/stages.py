"""Proposal stage machine.

Proposals move through a fixed, totally ordered sequence of stages:

    draft → sent_to_client → client_review → negotiation → revision
          → approved → contract_signed

``advance`` is the sanctioned forward step: it moves exactly one stage and
stamps the new stage's date. ``assign_stage`` is the correction path and may
jump to any stage, backward included. Each stage owns one date field on the
proposal; those dates are a historical record and are never cleared by a
stage change.
"""
import logging
from dataclasses import dataclass, replace
from datetime import date

from project_tracker.core.errors import InvalidTransition, ValidationError
from project_tracker.db.models import STAGE_LABELS, STAGE_ORDER, Proposal

logger = logging.getLogger(__name__)

STAGE_INDEX: dict[str, int] = {stage: i for i, stage in enumerate(STAGE_ORDER)}

INITIAL_STAGE = STAGE_ORDER[0]
TERMINAL_STAGE = STAGE_ORDER[-1]

# Stage → proposal date field. Names do not follow a pattern
# (sent_to_client → sent_date), so always go through this table.
STAGE_DATE_FIELDS: dict[str, str] = {
    "draft": "draft_date",
    "sent_to_client": "sent_date",
    "client_review": "review_date",
    "negotiation": "negotiation_date",
    "revision": "revision_date",
    "approved": "approval_date",
    "contract_signed": "signed_date",
}

STAGE_DATE_LABELS: dict[str, str] = {
    "draft_date": "Draft Date",
    "sent_date": "Sent to Client",
    "review_date": "Client Review",
    "negotiation_date": "Negotiations",
    "revision_date": "Revision",
    "approval_date": "Approval",
    "signed_date": "Contract Signed",
}


def stage_index(stage: str) -> int:
    """Position of a stage in STAGE_ORDER."""
    try:
        return STAGE_INDEX[stage]
    except KeyError:
        raise ValidationError(
            f"Unknown stage {stage!r}. Expected one of: {', '.join(STAGE_ORDER)}",
            field="stage",
        ) from None


def next_stage(stage: str) -> str | None:
    """The stage after ``stage``, or None at the terminal stage."""
    i = stage_index(stage)
    if i + 1 >= len(STAGE_ORDER):
        return None
    return STAGE_ORDER[i + 1]


def date_field_for(stage: str) -> str:
    stage_index(stage)
    return STAGE_DATE_FIELDS[stage]


def advance(proposal: Proposal, today: date) -> Proposal:
    """Move a proposal to the next stage and stamp that stage's date.

    Args:
        proposal: Proposal to advance (left unmodified)
        today: Calendar date recorded on the new stage

    Returns:
        A copy of the proposal at the next stage

    Raises:
        InvalidTransition: If the proposal is already at the terminal stage
    """
    target = next_stage(proposal.stage)
    if target is None:
        msg = (
            f"Proposal '{proposal.id}' is already at "
            f"'{STAGE_LABELS[proposal.stage]}' and cannot advance further."
        )
        logger.warning("Blocked transition: %s", msg)
        raise InvalidTransition(msg, current_stage=proposal.stage)

    logger.debug("Advancing proposal %s: %s → %s", proposal.id, proposal.stage, target)
    return replace(proposal, stage=target, **{STAGE_DATE_FIELDS[target]: today})


def assign_stage(proposal: Proposal, stage: str, today: date | None = None) -> Proposal:
    """Put a proposal at any stage, forward or backward.

    No ordering is enforced. When ``today`` is given the target stage's date
    is stamped; otherwise all dates are left as they are.
    """
    stage_index(stage)
    changes = {"stage": stage}
    if today is not None:
        changes[STAGE_DATE_FIELDS[stage]] = today
    if stage_index(stage) < stage_index(proposal.stage):
        logger.info("Proposal %s moved back: %s → %s", proposal.id, proposal.stage, stage)
    return replace(proposal, **changes)


@dataclass
class StageStep:
    stage: str
    label: str
    state: str  # "completed", "current" or "upcoming"
    date_field: str
    stage_date: date | None = None


def stage_progress(stage: str, proposal: Proposal | None = None) -> list[StageStep]:
    """Completion state of every stage relative to ``stage``."""
    current = stage_index(stage)
    steps = []
    for i, s in enumerate(STAGE_ORDER):
        if i < current:
            state = "completed"
        elif i == current:
            state = "current"
        else:
            state = "upcoming"
        field = STAGE_DATE_FIELDS[s]
        steps.append(
            StageStep(
                stage=s,
                label=STAGE_LABELS[s],
                state=state,
                date_field=field,
                stage_date=getattr(proposal, field) if proposal is not None else None,
            )
        )
    return steps


def advance_prompt(stage: str) -> str | None:
    """Label for the advance action, e.g. "Advance to Client Review"."""
    target = next_stage(stage)
    if target is None:
        return None
    return f"Advance to {STAGE_LABELS[target]}"
