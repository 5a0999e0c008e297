"""Typed failures raised by the transition executor and lifecycle operations.

The validator and the SLA evaluator never raise; they return result values.
Everything that writes raises one of these, and the HTTP layer maps them to
status codes (see ``planner_crm.app``).
"""

from __future__ import annotations


class PipelineError(Exception):
    """Base class for pipeline engine failures."""

    status_code = 400
    default_code = "pipeline_error"

    def __init__(self, message: str, *, code: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.code = code or self.default_code

    def to_dict(self) -> dict[str, str]:
        return {"error": self.code, "detail": self.message}


class ValidationError(PipelineError):
    """Missing or invalid input: proposal value, lost reason, foreign stage."""

    status_code = 422
    default_code = "validation_error"


class ConcurrencyConflictError(PipelineError):
    """The opportunity changed since the caller read it; refetch and retry."""

    status_code = 409
    default_code = "concurrency_conflict"


class NotFoundError(PipelineError):
    """Opportunity, stage, funnel or contact id does not resolve."""

    status_code = 404
    default_code = "not_found"


class AlreadyExistsError(PipelineError):
    """A funnel name, stage position or lost reason id is already taken."""

    status_code = 409
    default_code = "already_exists"
