"""FastAPI application factory for Planner CRM."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from .config import settings
from .database import create_all, dispose_engine, uses_sqlite
from .errors import PipelineError
from .worker import sla_worker

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Auto-create tables for SQLite (local dev); PostgreSQL uses Alembic migrations
    if uses_sqlite():
        await create_all()
    sla_worker.start()
    try:
        yield
    finally:
        await sla_worker.stop()
        await dispose_engine()


app = FastAPI(title=settings.app_title, lifespan=lifespan)


@app.exception_handler(PipelineError)
async def pipeline_error_handler(request: Request, exc: PipelineError):
    logger.info("%s %s rejected: %s (%s)", request.method, request.url.path, exc.code, exc.message)
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    # The rejected input is not echoed back; NaN or Infinity cannot be rendered as JSON.
    errors = [
        {
            "loc": [str(part) for part in err.get("loc", ())],
            "msg": err.get("msg", "Invalid value"),
            "type": err.get("type"),
        }
        for err in exc.errors()
    ]
    return JSONResponse(status_code=422, content={"error": "invalid_request", "detail": errors})


# Import and register routers
from .routers import funnels, health, notifications, opportunities  # noqa: E402

app.include_router(funnels.router)
app.include_router(opportunities.router)
app.include_router(notifications.router)
app.include_router(health.router)
