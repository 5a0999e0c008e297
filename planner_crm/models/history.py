"""OpportunityHistory model - append-only audit trail of opportunity changes."""

from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, String, Text, Uuid, func
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base, UUIDMixin

ACTION_CREATED = "created"
ACTION_STAGE_CHANGE = "stage_change"
ACTION_LOST = "lost"
ACTION_WON = "won"
ACTION_REACTIVATED = "reactivated"


class OpportunityHistory(UUIDMixin, Base):
    __tablename__ = "opportunity_history"

    opportunity_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("opportunity.id", ondelete="RESTRICT"), index=True
    )
    action: Mapped[str] = mapped_column(String(30))
    from_stage_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("funnel_stage.id", ondelete="SET NULL"), default=None
    )
    to_stage_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("funnel_stage.id", ondelete="SET NULL"), default=None
    )
    changed_by: Mapped[str | None] = mapped_column(String(100), default=None)
    notes: Mapped[str | None] = mapped_column(Text, default=None)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), index=True
    )

    def __repr__(self) -> str:
        return f"<OpportunityHistory {self.action} {self.opportunity_id}>"
