"""Opportunity request and response schemas."""

from __future__ import annotations

import uuid
from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field


class OpportunityCreate(BaseModel):
    contact_id: uuid.UUID
    funnel_id: uuid.UUID
    stage_id: uuid.UUID | None = None
    proposal_value: float | None = Field(default=None, gt=0, allow_inf_nan=False)
    notes: str | None = None


class TransitionCheck(BaseModel):
    to_stage_id: uuid.UUID


class StageMove(BaseModel):
    from_stage_id: uuid.UUID
    to_stage_id: uuid.UUID
    proposal_value: float | None = Field(default=None, gt=0, allow_inf_nan=False)
    notes: str | None = None
    row_version: int | None = None


class MarkLost(BaseModel):
    from_stage_id: uuid.UUID
    lost_reason_id: str | None = None
    notes: str | None = None
    row_version: int | None = None


class MarkWon(BaseModel):
    from_stage_id: uuid.UUID
    proposal_value: float | None = Field(default=None, gt=0, allow_inf_nan=False)
    contract_value: float | None = Field(default=None, gt=0, allow_inf_nan=False)
    create_follow_up: bool = True
    notes: str | None = None
    row_version: int | None = None


class Reactivate(BaseModel):
    to_stage_id: uuid.UUID | None = None
    proposal_value: float | None = Field(default=None, gt=0, allow_inf_nan=False)
    notes: str | None = None
    row_version: int | None = None


class ProposalValueUpdate(BaseModel):
    proposal_value: float | None = Field(default=None, gt=0, allow_inf_nan=False)
    row_version: int | None = None


class NotesUpdate(BaseModel):
    notes: str | None = None
    row_version: int | None = None


class OpportunityRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    contact_id: uuid.UUID
    current_funnel_id: uuid.UUID
    current_stage_id: uuid.UUID
    stage_entered_at: datetime
    status: str
    proposal_value: float | None
    total_contract_value: float | None
    lost_reason_id: str | None
    lost_at: datetime | None
    lost_from_stage_id: uuid.UUID | None
    converted_at: datetime | None
    notes: str | None
    created_by: str | None
    row_version: int


class HistoryRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    opportunity_id: uuid.UUID
    action: str
    from_stage_id: uuid.UUID | None
    to_stage_id: uuid.UUID | None
    changed_by: str | None
    notes: str | None
    created_at: datetime
