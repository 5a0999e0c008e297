"""Notification routes - SLA breach alerts for the acting user."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from ..database import get_db
from ..deps import get_actor_id
from ..services import sla_svc

router = APIRouter(prefix="/api", tags=["notifications"])


@router.get("/notifications")
async def list_notifications(
    unread_only: bool = False,
    actor_id: str | None = Depends(get_actor_id),
    db: AsyncSession = Depends(get_db),
):
    if not actor_id:
        raise HTTPException(status_code=401, detail="Actor header required")
    notifications = await sla_svc.list_notifications(db, actor_id, unread_only=unread_only)
    return [
        {
            "id": str(n.id),
            "type": n.type,
            "title": n.title,
            "message": n.message,
            "link": n.link,
            "is_read": n.is_read,
            "created_at": n.created_at.isoformat() if n.created_at else None,
        }
        for n in notifications
    ]


@router.post("/sla/scan")
async def run_sla_scan(db: AsyncSession = Depends(get_db)):
    created = await sla_svc.scan_sla_breaches(db)
    return {"created": created}
