"""Opportunity model - one deal moving through a funnel's stages."""

from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy import CheckConstraint, DateTime, Float, ForeignKey, String, Text, Uuid, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import Base, TimestampMixin, UUIDMixin, VersionedMixin

STATUS_ACTIVE = "active"
STATUS_WON = "won"
STATUS_LOST = "lost"
STATUSES = (STATUS_ACTIVE, STATUS_WON, STATUS_LOST)


class Opportunity(UUIDMixin, TimestampMixin, VersionedMixin, Base):
    __tablename__ = "opportunity"
    __table_args__ = (
        CheckConstraint("proposal_value IS NULL OR proposal_value >= 0", name="ck_opportunity_proposal_value"),
        CheckConstraint(
            "(status = 'lost') = (lost_reason_id IS NOT NULL AND lost_at IS NOT NULL)",
            name="ck_opportunity_lost_fields",
        ),
    )

    contact_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("contact.id", ondelete="RESTRICT"), index=True
    )
    current_funnel_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("funnel.id", ondelete="RESTRICT"), index=True
    )
    current_stage_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("funnel_stage.id", ondelete="RESTRICT"), index=True
    )
    stage_entered_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    status: Mapped[str] = mapped_column(String(20), default=STATUS_ACTIVE, index=True)  # active, won, lost
    proposal_value: Mapped[float | None] = mapped_column(Float, default=None)
    total_contract_value: Mapped[float | None] = mapped_column(Float, default=None)
    lost_reason_id: Mapped[str | None] = mapped_column(
        String(100), ForeignKey("lost_reason.id", ondelete="RESTRICT"), default=None
    )
    lost_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), default=None)
    lost_from_stage_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("funnel_stage.id", ondelete="SET NULL"), default=None
    )
    converted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), default=None)
    notes: Mapped[str | None] = mapped_column(Text, default=None)
    created_by: Mapped[str | None] = mapped_column(String(100), default=None)

    # Relationships
    contact: Mapped["Contact"] = relationship(back_populates="opportunities")  # noqa: F821
    current_stage: Mapped["FunnelStage"] = relationship(  # noqa: F821
        foreign_keys=[current_stage_id]
    )
    lost_reason: Mapped["LostReason | None"] = relationship()  # noqa: F821

    def __repr__(self) -> str:
        return f"<Opportunity {self.id} {self.status}>"
