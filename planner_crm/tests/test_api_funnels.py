"""API tests for funnels, stages, lost reasons, board and notifications."""

from __future__ import annotations

import uuid
from datetime import datetime, timedelta, timezone

import pytest

from planner_crm.services import opportunity_svc, sla_svc


@pytest.mark.asyncio
async def test_create_funnel_with_stages(client):
    resp = await client.post("/api/funnels", json={"name": "Venda Planejamento", "generates_contract": True})
    assert resp.status_code == 201
    funnel = resp.json()
    assert funnel["order_position"] == 1
    assert funnel["auto_create_next"] is True
    assert funnel["stages"] == []

    for name in ["Novo", "Proposta Feita"]:
        resp = await client.post(f"/api/funnels/{funnel['id']}/stages", json={"name": name, "sla_hours": 24})
        assert resp.status_code == 201

    resp = await client.get(f"/api/funnels/{funnel['id']}")
    assert [s["name"] for s in resp.json()["stages"]] == ["Novo", "Proposta Feita"]

    resp = await client.get(f"/api/funnels/{funnel['id']}/stages")
    assert [s["order_position"] for s in resp.json()] == [1, 2]


@pytest.mark.asyncio
async def test_stage_validation_and_missing_funnel(client):
    funnel = (await client.post("/api/funnels", json={"name": "Venda"})).json()
    resp = await client.post(f"/api/funnels/{funnel['id']}/stages", json={"name": "Novo", "sla_hours": 0})
    assert resp.status_code == 422

    resp = await client.get(f"/api/funnels/{uuid.uuid4()}")
    assert resp.status_code == 404
    assert resp.json()["error"] == "funnel_not_found"


@pytest.mark.asyncio
async def test_duplicate_stage_position_and_funnel_name(client):
    funnel = (await client.post("/api/funnels", json={"name": "Venda"})).json()
    resp = await client.post(f"/api/funnels/{funnel['id']}/stages", json={"name": "Novo"})
    assert resp.status_code == 201

    resp = await client.post(
        f"/api/funnels/{funnel['id']}/stages", json={"name": "Dup", "order_position": 1}
    )
    assert resp.status_code == 409
    assert resp.json()["error"] == "stage_position_taken"

    resp = await client.get(f"/api/funnels/{funnel['id']}/stages")
    assert [s["name"] for s in resp.json()] == ["Novo"]

    resp = await client.post("/api/funnels", json={"name": "Venda"})
    assert resp.status_code == 409
    assert resp.json()["error"] == "funnel_name_taken"

    resp = await client.get("/api/funnels")
    assert [f["name"] for f in resp.json()] == ["Venda"]


@pytest.mark.asyncio
async def test_lost_reasons(client):
    resp = await client.post("/api/lost-reasons", json={"id": "price", "name": "Preço"})
    assert resp.status_code == 201
    resp = await client.post("/api/lost-reasons", json={"id": "price", "name": "Preço"})
    assert resp.status_code == 409
    assert resp.json()["error"] == "lost_reason_exists"

    resp = await client.get("/api/lost-reasons")
    assert [r["id"] for r in resp.json()] == ["price"]


@pytest.mark.asyncio
async def test_board(client, db, pipeline):
    await opportunity_svc.create_opportunity(db, pipeline.contact_id, pipeline.funnel_id)

    resp = await client.get(f"/api/funnels/{pipeline.funnel_id}/board")
    assert resp.status_code == 200
    board = resp.json()
    assert [c["stage"]["name"] for c in board["columns"]] == [
        "Novo", "Qualificado", "Proposta Feita", "Fechamento",
    ]
    novo = board["columns"][0]
    assert novo["count"] == 1
    assert novo["cards"][0]["contact_name"] == "Maria Souza"
    assert novo["cards"][0]["sla_status"] == "ok"
    assert board["lost"] == []


@pytest.mark.asyncio
async def test_notifications_require_actor(client):
    resp = await client.get("/api/notifications")
    assert resp.status_code == 401


@pytest.mark.asyncio
async def test_notifications_for_actor(client, db, pipeline):
    await opportunity_svc.create_opportunity(db, pipeline.contact_id, pipeline.funnel_id)
    await sla_svc.scan_sla_breaches(db, datetime.now(timezone.utc) + timedelta(hours=25))

    resp = await client.get("/api/notifications", headers={"X-Actor-Id": "planner-1"})
    assert resp.status_code == 200
    notifications = resp.json()
    assert len(notifications) == 1
    assert notifications[0]["type"] == "sla_breach"

    resp = await client.post("/api/sla/scan")
    assert resp.json() == {"created": 0}
