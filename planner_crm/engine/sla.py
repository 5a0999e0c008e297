"""SLA health of an opportunity in its current stage.

Display-only and recomputed on every read; the current time is always
passed in by the caller.
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any

from ..config import settings


class SlaStatus(Enum):
    OK = "ok"
    WARNING = "warning"
    OVERDUE = "overdue"


def as_utc(value: datetime) -> datetime:
    """Treat naive timestamps (SQLite returns these) as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def hours_in_stage(opportunity: Any, now: datetime) -> float:
    """Fractional hours since the opportunity entered its stage, floored at zero."""
    elapsed = as_utc(now) - as_utc(opportunity.stage_entered_at)
    return max(0.0, elapsed.total_seconds() / 3600)


def evaluate_sla(
    opportunity: Any,
    stage: Any,
    now: datetime,
    *,
    warning_ratio: float | None = None,
) -> SlaStatus | None:
    """Return ok / warning / overdue, or None when the stage tracks no SLA."""
    sla_hours = stage.sla_hours
    if not sla_hours or sla_hours <= 0:
        return None
    if warning_ratio is None:
        warning_ratio = settings.sla_warning_ratio

    elapsed = hours_in_stage(opportunity, now)
    if elapsed > sla_hours:
        return SlaStatus.OVERDUE
    if elapsed > sla_hours * warning_ratio:
        return SlaStatus.WARNING
    return SlaStatus.OK
