"""Opportunity history service - append-only audit trail.

Rows are added inside the caller's transaction so a state change and its
history entry commit or roll back together. There is no update or delete.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ..models.history import OpportunityHistory


async def append_history(
    db: AsyncSession,
    opportunity_id: uuid.UUID,
    action: str,
    *,
    from_stage_id: uuid.UUID | None = None,
    to_stage_id: uuid.UUID | None = None,
    changed_by: str | None = None,
    notes: str | None = None,
    created_at: datetime | None = None,
) -> OpportunityHistory:
    entry = OpportunityHistory(
        opportunity_id=opportunity_id,
        action=action,
        from_stage_id=from_stage_id,
        to_stage_id=to_stage_id,
        changed_by=changed_by,
        notes=notes,
        created_at=created_at or datetime.now(timezone.utc),
    )
    db.add(entry)
    await db.flush()
    return entry


async def list_history(
    db: AsyncSession,
    opportunity_id: uuid.UUID,
    *,
    action: str | None = None,
    limit: int = 100,
) -> list[OpportunityHistory]:
    """History rows for an opportunity, newest first."""
    stmt = select(OpportunityHistory).where(OpportunityHistory.opportunity_id == opportunity_id)
    if action:
        stmt = stmt.where(OpportunityHistory.action == action)
    stmt = stmt.order_by(
        OpportunityHistory.created_at.desc(), OpportunityHistory.id.desc()
    ).limit(limit)
    result = await db.execute(stmt)
    return list(result.scalars().all())
