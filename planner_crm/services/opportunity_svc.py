"""Opportunity service - creation, stage transitions and won/lost/reactivate.

Every write is a compare-and-swap on ``row_version`` (plus the status and
stage the caller last saw) and commits together with its history row.
"""

from __future__ import annotations

import logging
import math
import uuid
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from ..engine.transitions import (
    REASON_STAGE_NOT_IN_FUNNEL,
    can_clear_proposal_value,
    can_transition,
    has_proposal_value,
    requires_proposal_value,
)
from ..errors import ConcurrencyConflictError, NotFoundError, ValidationError
from ..models.history import (
    ACTION_CREATED,
    ACTION_LOST,
    ACTION_REACTIVATED,
    ACTION_STAGE_CHANGE,
    ACTION_WON,
)
from ..models.opportunity import (
    STATUS_ACTIVE,
    STATUS_LOST,
    STATUS_WON,
    Opportunity,
)
from . import contact_svc, funnel_svc, history_svc

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _check_positive(value: float | None, field: str) -> None:
    if value is not None and (not math.isfinite(value) or value <= 0):
        raise ValidationError(f"{field} must be a finite amount greater than zero", code=f"invalid_{field}")


@asynccontextmanager
async def _transaction(db: AsyncSession):
    """Commit on success; roll back everything (state and history) on any error."""
    try:
        yield
        await db.commit()
    except Exception:
        await db.rollback()
        raise


# ── Reads ──────────────────────────────────────────────────────────────────

async def get_opportunity(db: AsyncSession, opp_id: uuid.UUID) -> Opportunity | None:
    stmt = (
        select(Opportunity)
        .where(Opportunity.id == opp_id)
        .options(
            selectinload(Opportunity.contact),
            selectinload(Opportunity.current_stage),
            selectinload(Opportunity.lost_reason),
        )
        .execution_options(populate_existing=True)
    )
    result = await db.execute(stmt)
    return result.scalar_one_or_none()


async def require_opportunity(db: AsyncSession, opp_id: uuid.UUID) -> Opportunity:
    opp = await get_opportunity(db, opp_id)
    if opp is None:
        raise NotFoundError(f"Opportunity {opp_id} not found", code="opportunity_not_found")
    return opp


async def list_opportunities(
    db: AsyncSession,
    *,
    funnel_id: uuid.UUID | None = None,
    status: str | None = None,
    contact_id: uuid.UUID | None = None,
) -> list[Opportunity]:
    stmt = select(Opportunity).options(
        selectinload(Opportunity.contact),
        selectinload(Opportunity.current_stage),
        selectinload(Opportunity.lost_reason),
    )
    if funnel_id:
        stmt = stmt.where(Opportunity.current_funnel_id == funnel_id)
    if status:
        stmt = stmt.where(Opportunity.status == status)
    if contact_id:
        stmt = stmt.where(Opportunity.contact_id == contact_id)
    stmt = stmt.order_by(Opportunity.stage_entered_at.desc())
    result = await db.execute(stmt)
    return list(result.scalars().all())


# ── Write helpers ──────────────────────────────────────────────────────────

def _check_expected(
    opp: Opportunity,
    *,
    status: str,
    stage_id: uuid.UUID | None = None,
    version: int | None = None,
) -> None:
    """Reject when the row no longer matches what the caller last read."""
    if opp.status != status:
        raise ConcurrencyConflictError(
            f"Opportunity is {opp.status}, expected {status}; refetch and retry",
            code="status_changed",
        )
    if stage_id is not None and opp.current_stage_id != stage_id:
        raise ConcurrencyConflictError(
            "Opportunity was moved by someone else; refetch and retry",
            code="stage_changed",
        )
    if version is not None and opp.row_version != version:
        raise ConcurrencyConflictError(
            "Opportunity was modified by someone else; refetch and retry",
            code="version_changed",
        )


async def _compare_and_swap(
    db: AsyncSession,
    opp: Opportunity,
    values: dict[str, Any],
    *,
    status: str | None = None,
    stage_id: uuid.UUID | None = None,
) -> None:
    """Apply ``values`` only if the row still carries the version we read."""
    conditions = [Opportunity.id == opp.id, Opportunity.row_version == opp.row_version]
    if status is not None:
        conditions.append(Opportunity.status == status)
    if stage_id is not None:
        conditions.append(Opportunity.current_stage_id == stage_id)

    stmt = (
        update(Opportunity)
        .where(*conditions)
        .values(**values, row_version=Opportunity.row_version + 1)
        .execution_options(synchronize_session=False)
    )
    result = await db.execute(stmt)
    if result.rowcount != 1:
        raise ConcurrencyConflictError(
            "Opportunity was modified concurrently; refetch and retry",
            code="write_conflict",
        )


def _stage_in(stages: list, stage_id: uuid.UUID | None):
    return next((s for s in stages if s.id == stage_id), None)


def _require_value_for(stage, stages: list, proposal_value: float | None) -> None:
    if requires_proposal_value(stage, stages) and not has_proposal_value(proposal_value):
        raise ValidationError(
            f"A proposal value is required to enter stage '{stage.name}'",
            code="proposal_value_required",
        )


# ── Creation ───────────────────────────────────────────────────────────────

async def create_opportunity(
    db: AsyncSession,
    contact_id: uuid.UUID,
    funnel_id: uuid.UUID,
    stage_id: uuid.UUID | None = None,
    *,
    proposal_value: float | None = None,
    notes: str | None = None,
    actor_id: str | None = None,
    now: datetime | None = None,
) -> Opportunity:
    """Open an opportunity for a contact, by default in the funnel's first stage."""
    now = now or _utcnow()
    if await contact_svc.get_contact(db, contact_id) is None:
        raise NotFoundError(f"Contact {contact_id} not found", code="contact_not_found")
    await funnel_svc.require_funnel(db, funnel_id)

    stages = await funnel_svc.get_stages(db, funnel_id)
    if not stages:
        raise ValidationError("Funnel has no stages", code="funnel_without_stages")
    stage = funnel_svc.first_stage(stages) if stage_id is None else _stage_in(stages, stage_id)
    if stage is None:
        raise ValidationError("Stage does not belong to the funnel", code=REASON_STAGE_NOT_IN_FUNNEL)

    _check_positive(proposal_value, "proposal_value")
    _require_value_for(stage, stages, proposal_value)

    opp = Opportunity(
        id=uuid.uuid4(),
        contact_id=contact_id,
        current_funnel_id=funnel_id,
        current_stage_id=stage.id,
        stage_entered_at=now,
        status=STATUS_ACTIVE,
        proposal_value=proposal_value,
        notes=notes,
        created_by=actor_id,
        row_version=1,
    )
    async with _transaction(db):
        db.add(opp)
        await db.flush()
        await history_svc.append_history(
            db, opp.id, ACTION_CREATED,
            to_stage_id=stage.id, changed_by=actor_id,
            notes="Opportunity created", created_at=now,
        )
    logger.info("Opportunity %s created in stage %s", opp.id, stage.name)
    return await require_opportunity(db, opp.id)


# ── Transition executor ────────────────────────────────────────────────────

class _ProposalView:
    """Read-through view of an opportunity with a pending proposal value applied."""

    def __init__(self, opp: Opportunity, proposal_value: float) -> None:
        self._opp = opp
        self.proposal_value = proposal_value

    def __getattr__(self, name: str):
        return getattr(self._opp, name)


async def move_stage(
    db: AsyncSession,
    opp_id: uuid.UUID,
    from_stage_id: uuid.UUID,
    to_stage_id: uuid.UUID,
    *,
    proposal_value: float | None = None,
    actor_id: str | None = None,
    notes: str | None = None,
    expected_version: int | None = None,
    now: datetime | None = None,
) -> Opportunity:
    """Move an active opportunity from ``from_stage_id`` to ``to_stage_id``.

    ``proposal_value`` satisfies a ``requires_proposal_value`` decision; it is
    stored when given. Raises NotFoundError, ConcurrencyConflictError or
    ValidationError; nothing is persisted on failure.
    """
    now = now or _utcnow()
    opp = await require_opportunity(db, opp_id)
    if await funnel_svc.get_stage(db, to_stage_id) is None:
        raise NotFoundError(f"Stage {to_stage_id} not found", code="stage_not_found")

    _check_expected(opp, status=STATUS_ACTIVE, stage_id=from_stage_id, version=expected_version)
    _check_positive(proposal_value, "proposal_value")

    stages = await funnel_svc.get_stages(db, opp.current_funnel_id)
    candidate = opp if proposal_value is None else _ProposalView(opp, proposal_value)
    decision = can_transition(candidate, to_stage_id, stages)
    if decision.requires_proposal_value:
        raise ValidationError(
            f"A proposal value is required to enter stage '{decision.target_stage.name}'",
            code="proposal_value_required",
        )
    if decision.rejected:
        raise ValidationError(f"Transition rejected: {decision.reason}", code=decision.reason)

    values: dict[str, Any] = {"current_stage_id": to_stage_id, "stage_entered_at": now}
    if proposal_value is not None:
        values["proposal_value"] = proposal_value

    async with _transaction(db):
        await _compare_and_swap(db, opp, values, status=STATUS_ACTIVE, stage_id=from_stage_id)
        await history_svc.append_history(
            db, opp.id, ACTION_STAGE_CHANGE,
            from_stage_id=from_stage_id, to_stage_id=to_stage_id,
            changed_by=actor_id, notes=notes, created_at=now,
        )
    logger.info("Opportunity %s moved %s -> %s", opp.id, from_stage_id, to_stage_id)
    return await require_opportunity(db, opp.id)


# ── Lifecycle operations ───────────────────────────────────────────────────

async def mark_lost(
    db: AsyncSession,
    opp_id: uuid.UUID,
    from_stage_id: uuid.UUID,
    lost_reason_id: str | None,
    *,
    actor_id: str | None = None,
    notes: str | None = None,
    expected_version: int | None = None,
    now: datetime | None = None,
) -> Opportunity:
    """Close an active opportunity as lost; its stage is frozen for reporting."""
    now = now or _utcnow()
    if not lost_reason_id or not lost_reason_id.strip():
        raise ValidationError("A lost reason is required", code="lost_reason_required")

    opp = await require_opportunity(db, opp_id)
    _check_expected(opp, status=STATUS_ACTIVE, stage_id=from_stage_id, version=expected_version)

    reason = await funnel_svc.get_lost_reason(db, lost_reason_id)
    if reason is None or not reason.is_active:
        raise ValidationError(f"Unknown lost reason '{lost_reason_id}'", code="invalid_lost_reason")

    values = {
        "status": STATUS_LOST,
        "lost_at": now,
        "lost_reason_id": reason.id,
        "lost_from_stage_id": from_stage_id,
    }
    async with _transaction(db):
        await _compare_and_swap(db, opp, values, status=STATUS_ACTIVE, stage_id=from_stage_id)
        await history_svc.append_history(
            db, opp.id, ACTION_LOST,
            from_stage_id=from_stage_id, changed_by=actor_id,
            notes=notes, created_at=now,
        )
    logger.info("Opportunity %s marked lost (%s)", opp.id, reason.id)
    return await require_opportunity(db, opp.id)


async def mark_won(
    db: AsyncSession,
    opp_id: uuid.UUID,
    from_stage_id: uuid.UUID,
    *,
    proposal_value: float | None = None,
    contract_value: float | None = None,
    create_follow_up: bool = True,
    actor_id: str | None = None,
    notes: str | None = None,
    expected_version: int | None = None,
    now: datetime | None = None,
) -> tuple[Opportunity, Opportunity | None]:
    """Close an active opportunity as won.

    The opportunity lands on its funnel's terminal stage. When the funnel
    cascades into a successor, a linked opportunity is opened in the
    successor's first stage within the same transaction. Returns the won
    opportunity and the follow-up (or None).
    """
    now = now or _utcnow()
    opp = await require_opportunity(db, opp_id)
    _check_expected(opp, status=STATUS_ACTIVE, stage_id=from_stage_id, version=expected_version)
    _check_positive(proposal_value, "proposal_value")
    _check_positive(contract_value, "contract_value")

    stages = await funnel_svc.get_stages(db, opp.current_funnel_id)
    terminal = funnel_svc.terminal_stage(stages)
    if terminal is None:
        raise ValidationError("Funnel has no stages", code="funnel_without_stages")
    effective_value = proposal_value if proposal_value is not None else opp.proposal_value
    _require_value_for(terminal, stages, effective_value)

    moved = terminal.id != opp.current_stage_id
    values: dict[str, Any] = {"status": STATUS_WON, "converted_at": now}
    if moved:
        values.update(current_stage_id=terminal.id, stage_entered_at=now)
    if proposal_value is not None:
        values["proposal_value"] = proposal_value
    if contract_value is not None:
        values["total_contract_value"] = contract_value

    follow_up_id: uuid.UUID | None = None
    next_step = await funnel_svc.get_next_funnel_and_first_stage(db, opp.current_funnel_id) if create_follow_up else None

    async with _transaction(db):
        await _compare_and_swap(db, opp, values, status=STATUS_ACTIVE, stage_id=from_stage_id)
        await history_svc.append_history(
            db, opp.id, ACTION_WON,
            from_stage_id=from_stage_id, to_stage_id=terminal.id if moved else None,
            changed_by=actor_id, notes=notes or "Opportunity won", created_at=now,
        )
        if next_step is not None:
            next_funnel, next_stage = next_step
            follow_up = Opportunity(
                id=uuid.uuid4(),
                contact_id=opp.contact_id,
                current_funnel_id=next_funnel.id,
                current_stage_id=next_stage.id,
                stage_entered_at=now,
                status=STATUS_ACTIVE,
                created_by=actor_id,
                row_version=1,
            )
            db.add(follow_up)
            await db.flush()
            await history_svc.append_history(
                db, follow_up.id, ACTION_CREATED,
                to_stage_id=next_stage.id, changed_by=actor_id,
                notes="Opportunity created after conversion", created_at=now,
            )
            follow_up_id = follow_up.id

    logger.info("Opportunity %s marked won (follow-up: %s)", opp.id, follow_up_id)
    won = await require_opportunity(db, opp.id)
    follow = await require_opportunity(db, follow_up_id) if follow_up_id else None
    return won, follow


async def reactivate(
    db: AsyncSession,
    opp_id: uuid.UUID,
    *,
    to_stage_id: uuid.UUID | None = None,
    proposal_value: float | None = None,
    actor_id: str | None = None,
    notes: str | None = None,
    expected_version: int | None = None,
    now: datetime | None = None,
) -> Opportunity:
    """Return a lost opportunity to active, re-entering at ``to_stage_id``.

    Without an explicit stage it re-enters where it was lost, falling back to
    the funnel's first stage.
    """
    now = now or _utcnow()
    opp = await require_opportunity(db, opp_id)
    _check_expected(opp, status=STATUS_LOST, version=expected_version)
    _check_positive(proposal_value, "proposal_value")

    stages = await funnel_svc.get_stages(db, opp.current_funnel_id)
    if to_stage_id is not None:
        stage = _stage_in(stages, to_stage_id)
        if stage is None:
            raise ValidationError("Stage does not belong to the funnel", code=REASON_STAGE_NOT_IN_FUNNEL)
    else:
        stage = (
            _stage_in(stages, opp.lost_from_stage_id)
            or _stage_in(stages, opp.current_stage_id)
            or funnel_svc.first_stage(stages)
        )
        if stage is None:
            raise ValidationError("Funnel has no stages", code="funnel_without_stages")

    effective_value = proposal_value if proposal_value is not None else opp.proposal_value
    _require_value_for(stage, stages, effective_value)

    values: dict[str, Any] = {
        "status": STATUS_ACTIVE,
        "current_stage_id": stage.id,
        "stage_entered_at": now,
        "lost_at": None,
        "lost_reason_id": None,
        "lost_from_stage_id": None,
    }
    if proposal_value is not None:
        values["proposal_value"] = proposal_value

    async with _transaction(db):
        await _compare_and_swap(db, opp, values, status=STATUS_LOST)
        await history_svc.append_history(
            db, opp.id, ACTION_REACTIVATED,
            to_stage_id=stage.id, changed_by=actor_id,
            notes=notes or "Opportunity reactivated", created_at=now,
        )
    logger.info("Opportunity %s reactivated into stage %s", opp.id, stage.name)
    return await require_opportunity(db, opp.id)


# ── Field edits ────────────────────────────────────────────────────────────

async def update_proposal_value(
    db: AsyncSession,
    opp_id: uuid.UUID,
    value: float | None,
    *,
    expected_version: int | None = None,
) -> Opportunity:
    """Edit the proposal value; clearing it is refused past the proposal milestone."""
    opp = await require_opportunity(db, opp_id)
    if expected_version is not None and opp.row_version != expected_version:
        raise ConcurrencyConflictError(
            "Opportunity was modified by someone else; refetch and retry",
            code="version_changed",
        )
    _check_positive(value, "proposal_value")
    if value is None:
        stages = await funnel_svc.get_stages(db, opp.current_funnel_id)
        if not can_clear_proposal_value(opp, stages):
            raise ValidationError(
                "The proposal value can no longer be cleared at this stage",
                code="proposal_value_locked",
            )

    async with _transaction(db):
        await _compare_and_swap(db, opp, {"proposal_value": value})
    return await require_opportunity(db, opp.id)


async def update_notes(
    db: AsyncSession,
    opp_id: uuid.UUID,
    notes: str | None,
    *,
    expected_version: int | None = None,
) -> Opportunity:
    opp = await require_opportunity(db, opp_id)
    if expected_version is not None and opp.row_version != expected_version:
        raise ConcurrencyConflictError(
            "Opportunity was modified by someone else; refetch and retry",
            code="version_changed",
        )
    async with _transaction(db):
        await _compare_and_swap(db, opp, {"notes": notes})
    return await require_opportunity(db, opp.id)
