"""Tests for the transition executor and field edits."""

from __future__ import annotations

import uuid
from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import update

from planner_crm.engine.sla import SlaStatus, as_utc, evaluate_sla
from planner_crm.engine.transitions import can_transition
from planner_crm.errors import ConcurrencyConflictError, NotFoundError, ValidationError
from planner_crm.models.history import ACTION_CREATED, ACTION_STAGE_CHANGE
from planner_crm.models.opportunity import Opportunity
from planner_crm.services import funnel_svc, history_svc, opportunity_svc

T0 = datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc)


async def _new_opp(db, pipeline, **kwargs):
    return await opportunity_svc.create_opportunity(
        db, pipeline.contact_id, pipeline.funnel_id, actor_id="planner-1", now=T0, **kwargs
    )


@pytest.mark.asyncio
async def test_create_defaults_to_first_stage(db, pipeline):
    opp = await _new_opp(db, pipeline)
    assert opp.status == "active"
    assert opp.current_stage_id == pipeline.stages["Novo"]
    assert opp.row_version == 1
    assert as_utc(opp.stage_entered_at) == T0

    history = await history_svc.list_history(db, opp.id)
    assert [h.action for h in history] == [ACTION_CREATED]
    assert history[0].to_stage_id == pipeline.stages["Novo"]
    assert history[0].changed_by == "planner-1"


@pytest.mark.asyncio
async def test_create_in_milestone_requires_value(db, pipeline):
    with pytest.raises(ValidationError) as exc:
        await _new_opp(db, pipeline, stage_id=pipeline.stages["Proposta Feita"])
    assert exc.value.code == "proposal_value_required"

    opp = await _new_opp(db, pipeline, stage_id=pipeline.stages["Proposta Feita"], proposal_value=900.0)
    assert opp.current_stage_id == pipeline.stages["Proposta Feita"]


@pytest.mark.asyncio
async def test_create_rejects_unknown_contact_and_foreign_stage(db, pipeline):
    with pytest.raises(NotFoundError):
        await opportunity_svc.create_opportunity(db, uuid.uuid4(), pipeline.funnel_id)
    with pytest.raises(ValidationError) as exc:
        await _new_opp(db, pipeline, stage_id=pipeline.onboarding_stages["Boas-vindas"])
    assert exc.value.code == "stage_not_in_funnel"


@pytest.mark.asyncio
async def test_proposal_gate_then_move_and_sla(db, pipeline):
    opp = await _new_opp(db, pipeline)
    opp_id = opp.id
    stages = await funnel_svc.get_stages(db, pipeline.funnel_id)
    target = pipeline.stages["Proposta Feita"]

    assert can_transition(opp, target, stages).requires_proposal_value
    with pytest.raises(ValidationError) as exc:
        await opportunity_svc.move_stage(
            db, opp_id, pipeline.stages["Novo"], target, now=T0 + timedelta(hours=1)
        )
    assert exc.value.code == "proposal_value_required"

    opp = await opportunity_svc.move_stage(
        db, opp_id, pipeline.stages["Novo"], target,
        proposal_value=5000.0, actor_id="planner-1", now=T0 + timedelta(hours=1),
    )
    assert opp.current_stage_id == target
    assert opp.proposal_value == 5000.0
    assert opp.row_version == 2
    assert as_utc(opp.stage_entered_at) == T0 + timedelta(hours=1)

    changes = await history_svc.list_history(db, opp_id, action=ACTION_STAGE_CHANGE)
    assert len(changes) == 1
    assert changes[0].from_stage_id == pipeline.stages["Novo"]
    assert changes[0].to_stage_id == target

    stage = await funnel_svc.get_stage(db, target)
    assert evaluate_sla(opp, stage, T0 + timedelta(hours=50)) is SlaStatus.OK


@pytest.mark.asyncio
async def test_round_trip_writes_two_history_rows(db, pipeline):
    opp = await _new_opp(db, pipeline)
    novo, qualificado = pipeline.stages["Novo"], pipeline.stages["Qualificado"]

    await opportunity_svc.move_stage(db, opp.id, novo, qualificado, now=T0 + timedelta(hours=1))
    opp = await opportunity_svc.move_stage(db, opp.id, qualificado, novo, now=T0 + timedelta(hours=2))

    assert opp.current_stage_id == novo
    changes = await history_svc.list_history(db, opp.id, action=ACTION_STAGE_CHANGE)
    assert [(h.from_stage_id, h.to_stage_id) for h in changes] == [
        (qualificado, novo),
        (novo, qualificado),
    ]


@pytest.mark.asyncio
async def test_stale_from_stage_is_rejected(db, pipeline):
    opp = await _new_opp(db, pipeline)
    opp_id = opp.id
    novo, qualificado = pipeline.stages["Novo"], pipeline.stages["Qualificado"]

    await opportunity_svc.move_stage(db, opp_id, novo, qualificado, now=T0 + timedelta(hours=1))
    with pytest.raises(ConcurrencyConflictError) as exc:
        await opportunity_svc.move_stage(db, opp_id, novo, qualificado, now=T0 + timedelta(hours=2))
    assert exc.value.code == "stage_changed"

    opp = await opportunity_svc.require_opportunity(db, opp_id)
    assert opp.current_stage_id == qualificado
    assert as_utc(opp.stage_entered_at) == T0 + timedelta(hours=1)
    assert len(await history_svc.list_history(db, opp_id, action=ACTION_STAGE_CHANGE)) == 1


@pytest.mark.asyncio
async def test_same_stage_move_is_rejected(db, pipeline):
    opp = await _new_opp(db, pipeline)
    novo = pipeline.stages["Novo"]
    with pytest.raises(ValidationError) as exc:
        await opportunity_svc.move_stage(db, opp.id, novo, novo)
    assert exc.value.code == "already_in_stage"


@pytest.mark.asyncio
async def test_move_to_foreign_or_unknown_stage(db, pipeline):
    opp = await _new_opp(db, pipeline)
    opp_id = opp.id
    novo = pipeline.stages["Novo"]

    with pytest.raises(ValidationError) as exc:
        await opportunity_svc.move_stage(db, opp_id, novo, pipeline.onboarding_stages["Boas-vindas"])
    assert exc.value.code == "stage_not_in_funnel"

    with pytest.raises(NotFoundError):
        await opportunity_svc.move_stage(db, opp_id, novo, uuid.uuid4())
    with pytest.raises(NotFoundError):
        await opportunity_svc.move_stage(db, uuid.uuid4(), novo, pipeline.stages["Qualificado"])


@pytest.mark.asyncio
@pytest.mark.parametrize("value", [0, -250.0])
async def test_non_positive_proposal_value_is_invalid(db, pipeline, value):
    opp = await _new_opp(db, pipeline)
    with pytest.raises(ValidationError) as exc:
        await opportunity_svc.move_stage(
            db, opp.id, pipeline.stages["Novo"], pipeline.stages["Proposta Feita"],
            proposal_value=value,
        )
    assert exc.value.code == "invalid_proposal_value"


@pytest.mark.asyncio
async def test_expected_version_mismatch(db, pipeline):
    opp = await _new_opp(db, pipeline)
    opp_id = opp.id
    await opportunity_svc.update_notes(db, opp_id, "first call done", expected_version=1)

    with pytest.raises(ConcurrencyConflictError) as exc:
        await opportunity_svc.move_stage(
            db, opp_id, pipeline.stages["Novo"], pipeline.stages["Qualificado"],
            expected_version=1,
        )
    assert exc.value.code == "version_changed"


@pytest.mark.asyncio
async def test_concurrent_write_between_read_and_swap(db, pipeline, monkeypatch):
    opp = await _new_opp(db, pipeline)
    opp_id = opp.id
    novo, qualificado = pipeline.stages["Novo"], pipeline.stages["Qualificado"]
    original_get_stages = funnel_svc.get_stages

    async def get_stages_after_foreign_write(session, funnel_id):
        # Another writer commits after the executor has read the row.
        await session.execute(
            update(Opportunity)
            .where(Opportunity.id == opp_id)
            .values(notes="edited elsewhere", row_version=Opportunity.row_version + 1)
            .execution_options(synchronize_session=False)
        )
        await session.commit()
        return await original_get_stages(session, funnel_id)

    monkeypatch.setattr(funnel_svc, "get_stages", get_stages_after_foreign_write)
    with pytest.raises(ConcurrencyConflictError) as exc:
        await opportunity_svc.move_stage(db, opp_id, novo, qualificado)
    assert exc.value.code == "write_conflict"
    monkeypatch.undo()

    opp = await opportunity_svc.require_opportunity(db, opp_id)
    assert opp.current_stage_id == novo
    assert opp.notes == "edited elsewhere"
    assert opp.row_version == 2
    assert await history_svc.list_history(db, opp_id, action=ACTION_STAGE_CHANGE) == []


@pytest.mark.asyncio
async def test_proposal_value_locks_past_milestone(db, pipeline):
    opp = await _new_opp(db, pipeline, proposal_value=1200.0)
    opp_id = opp.id

    opp = await opportunity_svc.update_proposal_value(db, opp_id, None)
    assert opp.proposal_value is None
    opp = await opportunity_svc.update_proposal_value(db, opp_id, 1500.0)

    await opportunity_svc.move_stage(
        db, opp_id, pipeline.stages["Novo"], pipeline.stages["Proposta Feita"]
    )
    with pytest.raises(ValidationError) as exc:
        await opportunity_svc.update_proposal_value(db, opp_id, None)
    assert exc.value.code == "proposal_value_locked"

    opp = await opportunity_svc.update_proposal_value(db, opp_id, 1800.0)
    assert opp.proposal_value == 1800.0


@pytest.mark.asyncio
async def test_list_opportunities_filters(db, pipeline):
    first = await _new_opp(db, pipeline)
    await _new_opp(db, pipeline)
    await opportunity_svc.mark_lost(db, first.id, pipeline.stages["Novo"], "price")

    assert len(await opportunity_svc.list_opportunities(db, funnel_id=pipeline.funnel_id)) == 2
    lost = await opportunity_svc.list_opportunities(db, status="lost")
    assert [o.id for o in lost] == [first.id]
    assert await opportunity_svc.list_opportunities(db, funnel_id=pipeline.onboarding_funnel_id) == []


@pytest.mark.asyncio
@pytest.mark.parametrize("value", [float("nan"), float("inf"), float("-inf")])
async def test_non_finite_amounts_are_invalid(db, pipeline, value):
    opp = await _new_opp(db, pipeline)
    opp_id = opp.id
    novo, proposta = pipeline.stages["Novo"], pipeline.stages["Proposta Feita"]

    with pytest.raises(ValidationError) as exc:
        await opportunity_svc.move_stage(db, opp_id, novo, proposta, proposal_value=value)
    assert exc.value.code == "invalid_proposal_value"

    await opportunity_svc.move_stage(db, opp_id, novo, proposta, proposal_value=5000.0)

    # Past the milestone the stored value must survive a non-finite overwrite.
    with pytest.raises(ValidationError) as exc:
        await opportunity_svc.update_proposal_value(db, opp_id, value)
    assert exc.value.code == "invalid_proposal_value"

    with pytest.raises(ValidationError) as exc:
        await opportunity_svc.mark_won(db, opp_id, proposta, contract_value=value)
    assert exc.value.code == "invalid_contract_value"
    with pytest.raises(ValidationError) as exc:
        await opportunity_svc.mark_won(db, opp_id, proposta, proposal_value=value)
    assert exc.value.code == "invalid_proposal_value"

    opp = await opportunity_svc.require_opportunity(db, opp_id)
    assert opp.status == "active"
    assert opp.proposal_value == 5000.0
    assert opp.total_contract_value is None


@pytest.mark.asyncio
async def test_history_with_equal_timestamps_has_stable_order(db, pipeline):
    opp = await _new_opp(db, pipeline)
    for _ in range(3):
        await history_svc.append_history(db, opp.id, ACTION_STAGE_CHANGE, created_at=T0)
    await db.commit()

    rows = await history_svc.list_history(db, opp.id)
    ids = [row.id for row in rows]
    assert len(ids) == 4
    assert ids == sorted(ids, key=lambda i: i.hex, reverse=True)
    assert [row.id for row in await history_svc.list_history(db, opp.id)] == ids
