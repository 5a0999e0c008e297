"""Stage transition rules.

One decision function serves every entry point that moves an opportunity
(kanban drop, stage click, the executor's own re-check), so the rules cannot
drift between them. Functions here accept ORM rows or any object exposing
the same attributes, and never raise.
"""

from __future__ import annotations

import math
import uuid
from dataclasses import dataclass
from enum import Enum
from typing import Any, Iterable, Sequence

from ..config import settings

REASON_NOT_ACTIVE = "not_active"
REASON_STAGE_NOT_IN_FUNNEL = "stage_not_in_funnel"
REASON_ALREADY_IN_STAGE = "already_in_stage"


class TransitionOutcome(Enum):
    ALLOWED = "allowed"
    REQUIRES_PROPOSAL_VALUE = "requires_proposal_value"
    REJECTED = "rejected"


@dataclass(frozen=True)
class TransitionDecision:
    outcome: TransitionOutcome
    reason: str | None = None
    target_stage: Any = None

    @property
    def allowed(self) -> bool:
        return self.outcome is TransitionOutcome.ALLOWED

    @property
    def requires_proposal_value(self) -> bool:
        return self.outcome is TransitionOutcome.REQUIRES_PROPOSAL_VALUE

    @property
    def rejected(self) -> bool:
        return self.outcome is TransitionOutcome.REJECTED

    def to_dict(self) -> dict[str, Any]:
        return {
            "outcome": self.outcome.value,
            "reason": self.reason,
            "target_stage_id": str(self.target_stage.id) if self.target_stage is not None else None,
        }


def _funnel_stages(stages: Iterable[Any], funnel_id: uuid.UUID) -> list[Any]:
    return sorted(
        (s for s in stages if s.funnel_id == funnel_id),
        key=lambda s: s.order_position,
    )


def _is_milestone(stage: Any, milestone_name: str) -> bool:
    if getattr(stage, "is_proposal_milestone", False):
        return True
    name = (stage.name or "").strip().casefold()
    return bool(milestone_name) and name == milestone_name.strip().casefold()


def find_proposal_stage(stages: Iterable[Any], milestone_name: str | None = None) -> Any | None:
    """Return the lowest-ordered stage marking the proposal milestone, if any.

    A stage qualifies when it carries ``is_proposal_milestone`` or its name
    matches the configured milestone name (case-insensitive).
    """
    if milestone_name is None:
        milestone_name = settings.proposal_stage_name
    candidates = [s for s in stages if _is_milestone(s, milestone_name)]
    if not candidates:
        return None
    return min(candidates, key=lambda s: s.order_position)


def requires_proposal_value(stage: Any, stages: Sequence[Any], milestone_name: str | None = None) -> bool:
    """True when ``stage`` sits at or after its funnel's proposal milestone.

    Funnels without a milestone never require a proposal value.
    """
    milestone = find_proposal_stage(_funnel_stages(stages, stage.funnel_id), milestone_name)
    if milestone is None:
        return False
    return stage.order_position >= milestone.order_position


def has_proposal_value(value: float | None) -> bool:
    return value is not None and math.isfinite(value) and value > 0


def can_transition(
    opportunity: Any,
    target_stage_id: uuid.UUID,
    stages: Sequence[Any],
    *,
    milestone_name: str | None = None,
) -> TransitionDecision:
    """Decide whether ``opportunity`` may move to ``target_stage_id``."""
    if opportunity.status != "active":
        return TransitionDecision(TransitionOutcome.REJECTED, REASON_NOT_ACTIVE)

    funnel_stages = _funnel_stages(stages, opportunity.current_funnel_id)
    target = next((s for s in funnel_stages if s.id == target_stage_id), None)
    if target is None:
        return TransitionDecision(TransitionOutcome.REJECTED, REASON_STAGE_NOT_IN_FUNNEL)

    if requires_proposal_value(target, funnel_stages, milestone_name) and not has_proposal_value(
        opportunity.proposal_value
    ):
        return TransitionDecision(TransitionOutcome.REQUIRES_PROPOSAL_VALUE, target_stage=target)

    if target.id == opportunity.current_stage_id:
        return TransitionDecision(TransitionOutcome.REJECTED, REASON_ALREADY_IN_STAGE, target)

    return TransitionDecision(TransitionOutcome.ALLOWED, target_stage=target)


def can_clear_proposal_value(
    opportunity: Any,
    stages: Sequence[Any],
    *,
    milestone_name: str | None = None,
) -> bool:
    """False once the opportunity's current stage is at or after the proposal milestone."""
    funnel_stages = _funnel_stages(stages, opportunity.current_funnel_id)
    current = next((s for s in funnel_stages if s.id == opportunity.current_stage_id), None)
    if current is None:
        return True
    return not requires_proposal_value(current, funnel_stages, milestone_name)
