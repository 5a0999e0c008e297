"""Liveness and readiness checks."""

from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from ..config import settings
from ..database import get_db
from ..worker import sla_worker

router = APIRouter(tags=["system"])


@router.get("/health")
async def health_check():
    return {
        "status": "healthy",
        "service": "planner_crm",
        "environment": settings.environment,
    }


@router.get("/ready")
async def readiness_check(db: AsyncSession = Depends(get_db)):
    """Ready once the database answers; also reports the SLA scanner state."""
    await db.execute(text("SELECT 1"))
    return {
        "status": "ready",
        "database": db.get_bind().dialect.name,
        "sla_scanner": "running" if sla_worker.running else "stopped",
        "sla_last_scan_at": sla_worker.last_scan_at.isoformat() if sla_worker.last_scan_at else None,
    }
