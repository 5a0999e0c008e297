"""Funnel, stage and lost-reason catalog service."""

from __future__ import annotations

import uuid

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from ..errors import AlreadyExistsError, NotFoundError
from ..models.funnel import Funnel, FunnelStage
from ..models.lost_reason import LostReason


async def _commit_new(db: AsyncSession, message: str, code: str) -> None:
    """Commit a catalog insert; a unique-constraint hit becomes AlreadyExistsError."""
    try:
        await db.commit()
    except IntegrityError:
        await db.rollback()
        raise AlreadyExistsError(message, code=code) from None


# ── Funnels ────────────────────────────────────────────────────────────────

async def list_funnels(db: AsyncSession, *, include_inactive: bool = False) -> list[Funnel]:
    stmt = select(Funnel).options(selectinload(Funnel.stages)).order_by(Funnel.order_position)
    if not include_inactive:
        stmt = stmt.where(Funnel.is_active.is_(True))
    result = await db.execute(stmt)
    return list(result.scalars().unique().all())


async def get_funnel(db: AsyncSession, funnel_id: uuid.UUID) -> Funnel | None:
    stmt = select(Funnel).where(Funnel.id == funnel_id).options(selectinload(Funnel.stages))
    result = await db.execute(stmt)
    return result.scalar_one_or_none()


async def require_funnel(db: AsyncSession, funnel_id: uuid.UUID) -> Funnel:
    funnel = await get_funnel(db, funnel_id)
    if funnel is None:
        raise NotFoundError(f"Funnel {funnel_id} not found", code="funnel_not_found")
    return funnel


async def create_funnel(
    db: AsyncSession,
    name: str,
    *,
    order_position: int | None = None,
    generates_contract: bool = False,
    auto_create_next: bool = True,
    contract_prompt_text: str | None = None,
) -> Funnel:
    if order_position is None:
        # Append after the last funnel
        result = await db.execute(select(func.max(Funnel.order_position)))
        max_pos = result.scalar()
        order_position = (max_pos + 1) if max_pos is not None else 1

    funnel = Funnel(
        name=name,
        order_position=order_position,
        generates_contract=generates_contract,
        auto_create_next=auto_create_next,
        contract_prompt_text=contract_prompt_text,
    )
    db.add(funnel)
    await _commit_new(db, f"A funnel named '{name}' already exists", "funnel_name_taken")
    await db.refresh(funnel)
    return funnel


# ── Stages ─────────────────────────────────────────────────────────────────

async def get_stages(db: AsyncSession, funnel_id: uuid.UUID) -> list[FunnelStage]:
    """Stages of a funnel in order."""
    stmt = (
        select(FunnelStage)
        .where(FunnelStage.funnel_id == funnel_id)
        .order_by(FunnelStage.order_position)
    )
    result = await db.execute(stmt)
    return list(result.scalars().all())


async def get_stage(db: AsyncSession, stage_id: uuid.UUID) -> FunnelStage | None:
    result = await db.execute(select(FunnelStage).where(FunnelStage.id == stage_id))
    return result.scalar_one_or_none()


async def add_stage(
    db: AsyncSession,
    funnel_id: uuid.UUID,
    name: str,
    *,
    order_position: int | None = None,
    color: str = "gray",
    sla_hours: int | None = None,
    is_proposal_milestone: bool = False,
) -> FunnelStage:
    if order_position is None:
        # Auto-assign next position
        stmt = select(func.max(FunnelStage.order_position)).where(
            FunnelStage.funnel_id == funnel_id
        )
        result = await db.execute(stmt)
        max_pos = result.scalar()
        order_position = (max_pos + 1) if max_pos is not None else 1

    stage = FunnelStage(
        funnel_id=funnel_id,
        name=name,
        order_position=order_position,
        color=color,
        sla_hours=sla_hours,
        is_proposal_milestone=is_proposal_milestone,
    )
    db.add(stage)
    await _commit_new(
        db, f"Position {order_position} is already taken in this funnel", "stage_position_taken"
    )
    await db.refresh(stage)
    return stage


def first_stage(stages: list[FunnelStage]) -> FunnelStage | None:
    return min(stages, key=lambda s: s.order_position) if stages else None


def terminal_stage(stages: list[FunnelStage]) -> FunnelStage | None:
    return max(stages, key=lambda s: s.order_position) if stages else None


async def get_next_funnel_and_first_stage(
    db: AsyncSession, current_funnel_id: uuid.UUID
) -> tuple[Funnel, FunnelStage] | None:
    """Successor funnel (next ``order_position``) and its first stage.

    None when the current funnel does not cascade, has no active successor,
    or the successor has no stages.
    """
    current = await get_funnel(db, current_funnel_id)
    if current is None or not current.auto_create_next:
        return None

    stmt = select(Funnel).where(
        Funnel.order_position == current.order_position + 1,
        Funnel.is_active.is_(True),
    )
    next_funnel = (await db.execute(stmt)).scalars().first()
    if next_funnel is None:
        return None

    stage = first_stage(await get_stages(db, next_funnel.id))
    if stage is None:
        return None
    return next_funnel, stage


# ── Lost reasons ───────────────────────────────────────────────────────────

async def list_lost_reasons(db: AsyncSession, *, include_inactive: bool = False) -> list[LostReason]:
    stmt = select(LostReason).order_by(LostReason.name)
    if not include_inactive:
        stmt = stmt.where(LostReason.is_active.is_(True))
    result = await db.execute(stmt)
    return list(result.scalars().all())


async def get_lost_reason(db: AsyncSession, reason_id: str) -> LostReason | None:
    result = await db.execute(select(LostReason).where(LostReason.id == reason_id))
    return result.scalar_one_or_none()


async def create_lost_reason(db: AsyncSession, reason_id: str, name: str) -> LostReason:
    if await get_lost_reason(db, reason_id) is not None:
        raise AlreadyExistsError(f"Lost reason '{reason_id}' already exists", code="lost_reason_exists")
    reason = LostReason(id=reason_id, name=name)
    db.add(reason)
    await _commit_new(db, f"Lost reason '{reason_id}' already exists", "lost_reason_exists")
    await db.refresh(reason)
    return reason
