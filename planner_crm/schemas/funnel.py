"""Funnel, stage and lost-reason schemas."""

from __future__ import annotations

import uuid

from pydantic import BaseModel, ConfigDict, Field


class FunnelCreate(BaseModel):
    name: str = Field(min_length=1, max_length=200)
    order_position: int | None = None
    generates_contract: bool = False
    auto_create_next: bool = True
    contract_prompt_text: str | None = None


class StageCreate(BaseModel):
    name: str = Field(min_length=1, max_length=200)
    order_position: int | None = None
    color: str = "gray"
    sla_hours: int | None = Field(default=None, gt=0)
    is_proposal_milestone: bool = False


class StageRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    funnel_id: uuid.UUID
    name: str
    color: str
    order_position: int
    sla_hours: int | None
    is_proposal_milestone: bool


class FunnelRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    name: str
    order_position: int
    is_active: bool
    generates_contract: bool
    auto_create_next: bool
    contract_prompt_text: str | None
    stages: list[StageRead] = []


class LostReasonCreate(BaseModel):
    id: str = Field(min_length=1, max_length=100)
    name: str = Field(min_length=1, max_length=200)


class LostReasonRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    is_active: bool
