"""Kanban board view: active opportunities per stage with SLA health."""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime

from sqlalchemy.ext.asyncio import AsyncSession

from ..engine.sla import SlaStatus, evaluate_sla, hours_in_stage
from ..engine.transitions import can_clear_proposal_value
from ..models.funnel import Funnel, FunnelStage
from ..models.opportunity import STATUS_ACTIVE, STATUS_LOST, Opportunity
from . import funnel_svc, opportunity_svc


@dataclass
class BoardCard:
    opportunity: Opportunity
    sla_status: SlaStatus | None
    hours_in_stage: float


@dataclass
class BoardColumn:
    stage: FunnelStage
    cards: list[BoardCard] = field(default_factory=list)


@dataclass
class Board:
    funnel: Funnel
    columns: list[BoardColumn]
    lost: list[Opportunity]


def card_for(opp: Opportunity, stage: FunnelStage, now: datetime) -> BoardCard:
    return BoardCard(
        opportunity=opp,
        sla_status=evaluate_sla(opp, stage, now),
        hours_in_stage=hours_in_stage(opp, now),
    )


async def build_board(db: AsyncSession, funnel_id: uuid.UUID, now: datetime) -> Board:
    funnel = await funnel_svc.require_funnel(db, funnel_id)
    stages = await funnel_svc.get_stages(db, funnel_id)
    opps = await opportunity_svc.list_opportunities(db, funnel_id=funnel_id)

    columns = {stage.id: BoardColumn(stage=stage) for stage in stages}
    lost: list[Opportunity] = []
    for opp in opps:
        if opp.status == STATUS_LOST:
            lost.append(opp)
        elif opp.status == STATUS_ACTIVE and opp.current_stage_id in columns:
            column = columns[opp.current_stage_id]
            column.cards.append(card_for(opp, column.stage, now))

    return Board(funnel=funnel, columns=list(columns.values()), lost=lost)


async def opportunity_health(
    db: AsyncSession, opp: Opportunity, now: datetime
) -> dict:
    """SLA status and proposal-value lock state for the detail view."""
    stages = await funnel_svc.get_stages(db, opp.current_funnel_id)
    stage = next((s for s in stages if s.id == opp.current_stage_id), None)
    sla_status = None
    if stage is not None and opp.status == STATUS_ACTIVE:
        sla_status = evaluate_sla(opp, stage, now)
    return {
        "sla_status": sla_status.value if sla_status else None,
        "hours_in_stage": round(hours_in_stage(opp, now), 2),
        "can_clear_proposal_value": can_clear_proposal_value(opp, stages),
    }
