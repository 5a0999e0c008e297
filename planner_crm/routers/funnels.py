"""Funnel catalog routes - funnels, stages, lost reasons, kanban board."""

from __future__ import annotations

import uuid
from datetime import datetime, timezone

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from ..database import get_db
from ..schemas.funnel import (
    FunnelCreate,
    FunnelRead,
    LostReasonCreate,
    LostReasonRead,
    StageCreate,
    StageRead,
)
from ..schemas.opportunity import OpportunityRead
from ..services import board_svc, funnel_svc

router = APIRouter(prefix="/api", tags=["funnels"])


@router.get("/funnels", response_model=list[FunnelRead])
async def list_funnels(
    include_inactive: bool = False,
    db: AsyncSession = Depends(get_db),
):
    return await funnel_svc.list_funnels(db, include_inactive=include_inactive)


@router.post("/funnels", response_model=FunnelRead, status_code=201)
async def create_funnel(data: FunnelCreate, db: AsyncSession = Depends(get_db)):
    funnel = await funnel_svc.create_funnel(db, **data.model_dump())
    return await funnel_svc.get_funnel(db, funnel.id)


@router.get("/funnels/{funnel_id}", response_model=FunnelRead)
async def get_funnel(funnel_id: uuid.UUID, db: AsyncSession = Depends(get_db)):
    return await funnel_svc.require_funnel(db, funnel_id)


@router.post("/funnels/{funnel_id}/stages", response_model=StageRead, status_code=201)
async def add_stage(
    funnel_id: uuid.UUID,
    data: StageCreate,
    db: AsyncSession = Depends(get_db),
):
    await funnel_svc.require_funnel(db, funnel_id)
    return await funnel_svc.add_stage(db, funnel_id, **data.model_dump())


@router.get("/funnels/{funnel_id}/stages", response_model=list[StageRead])
async def list_stages(funnel_id: uuid.UUID, db: AsyncSession = Depends(get_db)):
    await funnel_svc.require_funnel(db, funnel_id)
    return await funnel_svc.get_stages(db, funnel_id)


@router.get("/funnels/{funnel_id}/next")
async def next_funnel(funnel_id: uuid.UUID, db: AsyncSession = Depends(get_db)):
    """Where a won opportunity of this funnel continues, if anywhere."""
    await funnel_svc.require_funnel(db, funnel_id)
    found = await funnel_svc.get_next_funnel_and_first_stage(db, funnel_id)
    if not found:
        return {"next_funnel_id": None, "first_stage_id": None}
    funnel, stage = found
    return {"next_funnel_id": str(funnel.id), "first_stage_id": str(stage.id)}


@router.get("/funnels/{funnel_id}/board")
async def funnel_board(funnel_id: uuid.UUID, db: AsyncSession = Depends(get_db)):
    board = await board_svc.build_board(db, funnel_id, datetime.now(timezone.utc))
    return {
        "funnel": FunnelRead.model_validate(board.funnel).model_dump(mode="json"),
        "columns": [
            {
                "stage": StageRead.model_validate(column.stage).model_dump(mode="json"),
                "count": len(column.cards),
                "cards": [
                    {
                        "opportunity": OpportunityRead.model_validate(card.opportunity).model_dump(mode="json"),
                        "contact_name": card.opportunity.contact.full_name if card.opportunity.contact else None,
                        "sla_status": card.sla_status.value if card.sla_status else None,
                        "hours_in_stage": round(card.hours_in_stage, 2),
                    }
                    for card in column.cards
                ],
            }
            for column in board.columns
        ],
        "lost": [OpportunityRead.model_validate(o).model_dump(mode="json") for o in board.lost],
    }


@router.get("/lost-reasons", response_model=list[LostReasonRead])
async def list_lost_reasons(
    include_inactive: bool = False,
    db: AsyncSession = Depends(get_db),
):
    return await funnel_svc.list_lost_reasons(db, include_inactive=include_inactive)


@router.post("/lost-reasons", response_model=LostReasonRead, status_code=201)
async def create_lost_reason(data: LostReasonCreate, db: AsyncSession = Depends(get_db)):
    return await funnel_svc.create_lost_reason(db, data.id, data.name)
