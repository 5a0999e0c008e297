"""SLA breach scanning - notifies contact owners of overdue opportunities."""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from ..config import settings
from ..engine.sla import SlaStatus, as_utc, evaluate_sla, hours_in_stage
from ..models.funnel import FunnelStage
from ..models.notification import Notification
from ..models.opportunity import STATUS_ACTIVE, Opportunity

logger = logging.getLogger(__name__)

NOTIFICATION_SLA_BREACH = "sla_breach"


def _day_start(now: datetime) -> datetime:
    return as_utc(now).replace(hour=0, minute=0, second=0, microsecond=0)


async def _already_notified(db: AsyncSession, user_id: str, link: str, since: datetime) -> bool:
    stmt = (
        select(Notification.id)
        .where(
            Notification.user_id == user_id,
            Notification.type == NOTIFICATION_SLA_BREACH,
            Notification.link == link,
            Notification.created_at >= since,
        )
        .limit(1)
    )
    return (await db.execute(stmt)).first() is not None


async def scan_sla_breaches(db: AsyncSession, now: datetime | None = None) -> int:
    """Create one breach notification per owner per opportunity per day.

    Returns the number of notifications created.
    """
    now = as_utc(now or datetime.now(timezone.utc))
    stages_stmt = (
        select(FunnelStage)
        .where(FunnelStage.sla_hours.is_not(None), FunnelStage.sla_hours > 0)
        .options(selectinload(FunnelStage.funnel))
    )
    stages = {s.id: s for s in (await db.execute(stages_stmt)).scalars().all()}
    if not stages:
        logger.debug("No stages with SLA configured")
        return 0

    opps_stmt = (
        select(Opportunity)
        .where(Opportunity.status == STATUS_ACTIVE, Opportunity.current_stage_id.in_(list(stages)))
        .options(selectinload(Opportunity.contact))
    )
    opportunities = list((await db.execute(opps_stmt)).scalars().all())

    created = 0
    day_start = _day_start(now)
    for opp in opportunities:
        stage = stages[opp.current_stage_id]
        if evaluate_sla(opp, stage, now) is not SlaStatus.OVERDUE:
            continue
        owner_id = opp.contact.owner_id if opp.contact else None
        if not owner_id:
            continue

        link = f"{settings.notification_link_prefix}/{opp.id}"
        if await _already_notified(db, owner_id, link, day_start):
            continue

        contact_name = opp.contact.full_name or "Contact"
        hours = hours_in_stage(opp, now)
        db.add(Notification(
            user_id=owner_id,
            type=NOTIFICATION_SLA_BREACH,
            title=f"SLA breached: {contact_name}",
            message=(
                f"{contact_name} has been {round(hours)}h in stage \"{stage.name}\" "
                f"of funnel \"{stage.funnel.name}\" (SLA: {stage.sla_hours}h, "
                f"exceeded by {round(hours - stage.sla_hours)}h)."
            ),
            link=link,
            is_read=False,
            created_at=now,
        ))
        created += 1

    await db.commit()
    logger.info("SLA scan created %d notification(s)", created)
    return created


async def list_notifications(
    db: AsyncSession, user_id: str, *, unread_only: bool = False, limit: int = 50
) -> list[Notification]:
    stmt = select(Notification).where(Notification.user_id == user_id)
    if unread_only:
        stmt = stmt.where(Notification.is_read.is_(False))
    stmt = stmt.order_by(Notification.created_at.desc()).limit(limit)
    result = await db.execute(stmt)
    return list(result.scalars().all())
