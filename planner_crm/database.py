"""Async engine, session factory and the ``get_db`` dependency."""

from __future__ import annotations

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from .config import settings


def uses_sqlite(url: str | None = None) -> bool:
    return (url or settings.database_url).startswith("sqlite")


def _engine_options(url: str) -> dict:
    if uses_sqlite(url):
        return {}
    return {"pool_pre_ping": True, "pool_size": 5, "max_overflow": 10}


engine = create_async_engine(
    settings.database_url,
    echo=settings.echo_sql,
    **_engine_options(settings.database_url),
)
async_session_factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


async def get_db():
    """FastAPI dependency that yields one session per request."""
    async with async_session_factory() as session:
        yield session


async def create_all() -> None:
    """Create every pipeline table on the configured engine (local SQLite)."""
    from .models import Base

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def dispose_engine() -> None:
    await engine.dispose()
