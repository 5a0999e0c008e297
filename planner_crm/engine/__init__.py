"""Pure decision logic for the opportunity pipeline (no I/O, no clock reads)."""

from .sla import SlaStatus, evaluate_sla, hours_in_stage
from .transitions import (
    TransitionDecision,
    TransitionOutcome,
    can_clear_proposal_value,
    can_transition,
    find_proposal_stage,
    requires_proposal_value,
)

__all__ = [
    "SlaStatus",
    "evaluate_sla",
    "hours_in_stage",
    "TransitionDecision",
    "TransitionOutcome",
    "can_clear_proposal_value",
    "can_transition",
    "find_proposal_stage",
    "requires_proposal_value",
]
