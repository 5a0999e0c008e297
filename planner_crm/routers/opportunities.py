"""Opportunity routes - creation, transition checks, moves and lifecycle.

Kanban drops and stage clicks both post to ``/move``; the UI calls
``/check-transition`` first to decide whether to prompt for a proposal value.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from ..database import get_db
from ..deps import get_actor_id
from ..engine.transitions import can_transition
from ..errors import ValidationError
from ..models.opportunity import STATUSES
from ..schemas.opportunity import (
    HistoryRead,
    MarkLost,
    MarkWon,
    NotesUpdate,
    OpportunityCreate,
    OpportunityRead,
    ProposalValueUpdate,
    Reactivate,
    StageMove,
    TransitionCheck,
)
from ..services import board_svc, funnel_svc, history_svc, opportunity_svc

router = APIRouter(prefix="/api/opportunities", tags=["opportunities"])


async def _detail(db: AsyncSession, opp) -> dict:
    health = await board_svc.opportunity_health(db, opp, datetime.now(timezone.utc))
    return {**OpportunityRead.model_validate(opp).model_dump(mode="json"), **health}


@router.post("", status_code=201)
async def create_opportunity(
    data: OpportunityCreate,
    actor_id: str | None = Depends(get_actor_id),
    db: AsyncSession = Depends(get_db),
):
    opp = await opportunity_svc.create_opportunity(
        db,
        data.contact_id,
        data.funnel_id,
        data.stage_id,
        proposal_value=data.proposal_value,
        notes=data.notes,
        actor_id=actor_id,
    )
    return await _detail(db, opp)


@router.get("", response_model=list[OpportunityRead])
async def list_opportunities(
    funnel_id: uuid.UUID | None = None,
    status: str | None = None,
    contact_id: uuid.UUID | None = None,
    db: AsyncSession = Depends(get_db),
):
    if status and status not in STATUSES:
        raise ValidationError(f"Unknown status '{status}'", code="invalid_status")
    return await opportunity_svc.list_opportunities(
        db, funnel_id=funnel_id, status=status, contact_id=contact_id
    )


@router.get("/{opp_id}")
async def get_opportunity(opp_id: uuid.UUID, db: AsyncSession = Depends(get_db)):
    opp = await opportunity_svc.require_opportunity(db, opp_id)
    return await _detail(db, opp)


@router.get("/{opp_id}/history", response_model=list[HistoryRead])
async def opportunity_history(
    opp_id: uuid.UUID,
    limit: int = 100,
    db: AsyncSession = Depends(get_db),
):
    await opportunity_svc.require_opportunity(db, opp_id)
    return await history_svc.list_history(db, opp_id, limit=limit)


@router.post("/{opp_id}/check-transition")
async def check_transition(
    opp_id: uuid.UUID,
    data: TransitionCheck,
    db: AsyncSession = Depends(get_db),
):
    opp = await opportunity_svc.require_opportunity(db, opp_id)
    stages = await funnel_svc.get_stages(db, opp.current_funnel_id)
    return can_transition(opp, data.to_stage_id, stages).to_dict()


@router.post("/{opp_id}/move")
async def move_opportunity(
    opp_id: uuid.UUID,
    data: StageMove,
    actor_id: str | None = Depends(get_actor_id),
    db: AsyncSession = Depends(get_db),
):
    opp = await opportunity_svc.move_stage(
        db,
        opp_id,
        data.from_stage_id,
        data.to_stage_id,
        proposal_value=data.proposal_value,
        actor_id=actor_id,
        notes=data.notes,
        expected_version=data.row_version,
    )
    return await _detail(db, opp)


@router.post("/{opp_id}/lost")
async def mark_lost(
    opp_id: uuid.UUID,
    data: MarkLost,
    actor_id: str | None = Depends(get_actor_id),
    db: AsyncSession = Depends(get_db),
):
    opp = await opportunity_svc.mark_lost(
        db,
        opp_id,
        data.from_stage_id,
        data.lost_reason_id,
        actor_id=actor_id,
        notes=data.notes,
        expected_version=data.row_version,
    )
    return await _detail(db, opp)


@router.post("/{opp_id}/won")
async def mark_won(
    opp_id: uuid.UUID,
    data: MarkWon,
    actor_id: str | None = Depends(get_actor_id),
    db: AsyncSession = Depends(get_db),
):
    won, follow_up = await opportunity_svc.mark_won(
        db,
        opp_id,
        data.from_stage_id,
        proposal_value=data.proposal_value,
        contract_value=data.contract_value,
        create_follow_up=data.create_follow_up,
        actor_id=actor_id,
        notes=data.notes,
        expected_version=data.row_version,
    )
    return {
        "opportunity": await _detail(db, won),
        "follow_up": await _detail(db, follow_up) if follow_up else None,
    }


@router.post("/{opp_id}/reactivate")
async def reactivate(
    opp_id: uuid.UUID,
    data: Reactivate,
    actor_id: str | None = Depends(get_actor_id),
    db: AsyncSession = Depends(get_db),
):
    opp = await opportunity_svc.reactivate(
        db,
        opp_id,
        to_stage_id=data.to_stage_id,
        proposal_value=data.proposal_value,
        actor_id=actor_id,
        notes=data.notes,
        expected_version=data.row_version,
    )
    return await _detail(db, opp)


@router.patch("/{opp_id}/proposal-value")
async def update_proposal_value(
    opp_id: uuid.UUID,
    data: ProposalValueUpdate,
    db: AsyncSession = Depends(get_db),
):
    opp = await opportunity_svc.update_proposal_value(
        db, opp_id, data.proposal_value, expected_version=data.row_version
    )
    return await _detail(db, opp)


@router.patch("/{opp_id}/notes")
async def update_notes(
    opp_id: uuid.UUID,
    data: NotesUpdate,
    db: AsyncSession = Depends(get_db),
):
    opp = await opportunity_svc.update_notes(
        db, opp_id, data.notes, expected_version=data.row_version
    )
    return await _detail(db, opp)
