"""Typed errors raised by core operations.

Every error carries a machine-readable ``kind`` and a human-readable
message so callers can render a notification without inspecting internals.
"""


class TrackerError(Exception):
    """Base class for all project tracker errors."""

    kind = "error"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict:
        return {"error": self.kind, "message": self.message}


class NotFound(TrackerError):
    """Raised when an entity id has no row."""

    kind = "not_found"

    def __init__(self, entity_type: str, entity_id):
        super().__init__(f"{entity_type.capitalize()} not found: {entity_id}")
        self.entity_type = entity_type
        self.entity_id = entity_id


class InvalidTransition(TrackerError):
    """Raised when a proposal cannot move to the requested stage."""

    kind = "invalid_transition"

    def __init__(self, message: str, current_stage: str):
        super().__init__(message)
        self.current_stage = current_stage


class ValidationError(TrackerError):
    """Raised when supplied fields are missing or out of range."""

    kind = "validation_error"

    def __init__(self, message: str, field: str | None = None):
        super().__init__(message)
        self.field = field


class CollaboratorFailure(TrackerError):
    """Raised when the underlying store or an external service fails."""

    kind = "collaborator_failure"

    def __init__(self, message: str, cause: Exception | None = None):
        super().__init__(message)
        self.cause = cause
