"""Funnel and FunnelStage models."""

from __future__ import annotations

import uuid

from sqlalchemy import Boolean, ForeignKey, Integer, String, Text, UniqueConstraint, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import Base, UUIDMixin, TimestampMixin


class Funnel(UUIDMixin, TimestampMixin, Base):
    __tablename__ = "funnel"

    name: Mapped[str] = mapped_column(String(200), unique=True)
    order_position: Mapped[int] = mapped_column(Integer, default=1, index=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    generates_contract: Mapped[bool] = mapped_column(Boolean, default=False)
    auto_create_next: Mapped[bool] = mapped_column(Boolean, default=True)
    contract_prompt_text: Mapped[str | None] = mapped_column(Text, default=None)

    # Relationships
    stages: Mapped[list["FunnelStage"]] = relationship(
        back_populates="funnel", cascade="all, delete-orphan",
        order_by="FunnelStage.order_position"
    )

    def __repr__(self) -> str:
        return f"<Funnel {self.name!r}>"


class FunnelStage(UUIDMixin, TimestampMixin, Base):
    __tablename__ = "funnel_stage"
    __table_args__ = (
        UniqueConstraint("funnel_id", "order_position", name="uq_stage_funnel_position"),
    )

    funnel_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("funnel.id", ondelete="CASCADE"), index=True
    )
    name: Mapped[str] = mapped_column(String(200))
    color: Mapped[str] = mapped_column(String(30), default="gray")
    order_position: Mapped[int] = mapped_column(Integer, default=1)
    sla_hours: Mapped[int | None] = mapped_column(Integer, default=None)  # None = no SLA tracked
    is_proposal_milestone: Mapped[bool] = mapped_column(Boolean, default=False)

    # Relationships
    funnel: Mapped["Funnel"] = relationship(back_populates="stages")

    def __repr__(self) -> str:
        return f"<FunnelStage {self.name!r} #{self.order_position}>"
