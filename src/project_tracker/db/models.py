"""Data models for the project tracker."""

from dataclasses import dataclass, field
from datetime import date, datetime

PRIORITIES = ("low", "medium", "high", "critical")

STATUSES = ("not_started", "in_progress", "on_hold", "review", "completed")

STAGE_ORDER = (
    "draft",
    "sent_to_client",
    "client_review",
    "negotiation",
    "revision",
    "approved",
    "contract_signed",
)

PRIORITY_LABELS = {
    "low": "Low",
    "medium": "Medium",
    "high": "High",
    "critical": "Critical",
}

STATUS_LABELS = {
    "not_started": "Not Started",
    "in_progress": "In Progress",
    "on_hold": "On Hold",
    "review": "Review",
    "completed": "Completed",
}

STAGE_LABELS = {
    "draft": "Draft",
    "sent_to_client": "Sent to Client",
    "client_review": "Client Review",
    "negotiation": "Negotiation",
    "revision": "Revision",
    "approved": "Approved",
    "contract_signed": "Contract Signed",
}


@dataclass
class Project:
    id: str
    name: str
    description: str | None = None
    color: str = "#3b82f6"
    start_date: date | None = None
    end_date: date | None = None
    is_active: bool = True
    created_at: datetime | None = None
    updated_at: datetime | None = None


@dataclass
class Tag:
    id: int | None = None
    name: str = ""
    color: str = "#6b7280"
    created_at: datetime | None = None


@dataclass
class Task:
    id: str
    title: str
    project_id: str | None = None
    description: str | None = None
    priority: str = "medium"
    status: str = "not_started"
    start_date: date | None = None
    due_date: date | None = None
    completed_at: datetime | None = None
    assigned_to: str | None = None
    depends_on: str | None = None
    estimated_hours: float | None = None
    actual_hours: float | None = None
    position: int = 0
    created_at: datetime | None = None
    updated_at: datetime | None = None
    tags: list[Tag] = field(default_factory=list)


@dataclass
class Proposal:
    id: str
    title: str
    project_id: str | None = None
    description: str | None = None
    client_name: str | None = None
    client_email: str | None = None
    value: float | None = None
    stage: str = "draft"
    probability_to_close: int = 0
    draft_date: date | None = None
    sent_date: date | None = None
    review_date: date | None = None
    negotiation_date: date | None = None
    revision_date: date | None = None
    approval_date: date | None = None
    signed_date: date | None = None
    notes: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None


@dataclass
class Comment:
    id: int | None = None
    task_id: str = ""
    content: str = ""
    author: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None


@dataclass
class ActivityLog:
    id: int | None = None
    entity_type: str = ""
    entity_id: str = ""
    action: str = ""
    details: dict | None = None
    actor: str | None = None
    created_at: datetime | None = None
