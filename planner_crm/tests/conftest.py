"""Async test fixtures for Planner CRM tests using SQLite."""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from planner_crm.database import get_db
from planner_crm.models.base import Base
from planner_crm.services import contact_svc, funnel_svc


@dataclass
class SalesPipeline:
    """Ids of the seeded sales funnel, its onboarding successor and a contact."""

    funnel_id: uuid.UUID
    onboarding_funnel_id: uuid.UUID
    contact_id: uuid.UUID
    stages: dict[str, uuid.UUID] = field(default_factory=dict)
    onboarding_stages: dict[str, uuid.UUID] = field(default_factory=dict)


@pytest.fixture(scope="session")
def anyio_backend():
    return "asyncio"


@pytest_asyncio.fixture
async def engine():
    eng = create_async_engine("sqlite+aiosqlite:///:memory:", echo=False)
    async with eng.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield eng
    await eng.dispose()


@pytest_asyncio.fixture
async def db(engine):
    session_factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    async with session_factory() as session:
        yield session


@pytest_asyncio.fixture
async def pipeline(db: AsyncSession) -> SalesPipeline:
    sales = await funnel_svc.create_funnel(db, "Venda Planejamento", generates_contract=True)
    onboarding = await funnel_svc.create_funnel(db, "Onboarding")
    contact = await contact_svc.create_contact(
        db, "Maria Souza", phone="+55 11 99999-0000", owner_id="planner-1"
    )
    result = SalesPipeline(
        funnel_id=sales.id, onboarding_funnel_id=onboarding.id, contact_id=contact.id
    )

    for name, sla_hours in [
        ("Novo", 24), ("Qualificado", 48), ("Proposta Feita", 72), ("Fechamento", None),
    ]:
        stage = await funnel_svc.add_stage(db, sales.id, name, sla_hours=sla_hours)
        result.stages[name] = stage.id
    for name, sla_hours in [("Boas-vindas", 48), ("Concluído", None)]:
        stage = await funnel_svc.add_stage(db, onboarding.id, name, sla_hours=sla_hours)
        result.onboarding_stages[name] = stage.id

    await funnel_svc.create_lost_reason(db, "price", "Preço")
    return result


@pytest_asyncio.fixture
async def client(engine):
    """HTTPX async test client against the Planner CRM app."""
    from planner_crm.app import app

    session_factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    async def override_get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as c:
        yield c

    app.dependency_overrides.clear()
