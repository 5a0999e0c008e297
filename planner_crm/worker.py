"""Background worker that periodically scans for SLA breaches."""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from typing import Optional

from .config import settings
from .database import async_session_factory
from .services.sla_svc import scan_sla_breaches

logger = logging.getLogger(__name__)


class SlaScanWorker:
    """Runs ``scan_sla_breaches`` every ``sla_scan_interval_seconds``.

    Started by the app lifespan when ``sla_scan_enabled`` is set; the CLI
    calls ``run_once`` directly.
    """

    def __init__(self) -> None:
        self._task: Optional[asyncio.Task] = None
        self._stop_event = asyncio.Event()
        self.last_scan_at: Optional[datetime] = None
        self.last_created = 0

    @property
    def running(self) -> bool:
        return self._task is not None

    def start(self) -> None:
        if self._task is not None or not settings.sla_scan_enabled:
            return
        self._stop_event.clear()
        self._task = asyncio.create_task(self._run_loop(), name="sla-scan-worker")
        logger.info("SLA scan worker started (every %ss)", settings.sla_scan_interval_seconds)

    async def stop(self) -> None:
        if self._task is None:
            return
        self._stop_event.set()
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        finally:
            self._task = None

    async def run_once(self) -> int:
        async with async_session_factory() as db:
            return await scan_sla_breaches(db)

    async def _run_loop(self) -> None:
        while not self._stop_event.is_set():
            try:
                self.last_created = await self.run_once()
                self.last_scan_at = datetime.now(timezone.utc)
            except asyncio.CancelledError:
                raise
            except Exception:  # pragma: no cover - logged, retried next tick
                logger.exception("SLA scan failed")

            try:
                await asyncio.wait_for(
                    self._stop_event.wait(), timeout=settings.sla_scan_interval_seconds
                )
            except asyncio.TimeoutError:
                pass


sla_worker = SlaScanWorker()
