"""LostReason model - catalog of reasons an opportunity can be lost for."""

from __future__ import annotations

from sqlalchemy import Boolean, String
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base, TimestampMixin


class LostReason(TimestampMixin, Base):
    __tablename__ = "lost_reason"

    id: Mapped[str] = mapped_column(String(100), primary_key=True)  # short key, e.g. "price"
    name: Mapped[str] = mapped_column(String(200))
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)

    def __repr__(self) -> str:
        return f"<LostReason {self.id!r}>"
