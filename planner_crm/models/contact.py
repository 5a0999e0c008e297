"""Contact model - the person an opportunity is tracked for."""

from __future__ import annotations

from sqlalchemy import String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import Base, UUIDMixin, TimestampMixin


class Contact(UUIDMixin, TimestampMixin, Base):
    __tablename__ = "contact"

    full_name: Mapped[str] = mapped_column(String(200))
    phone: Mapped[str | None] = mapped_column(String(50), default=None)
    email: Mapped[str | None] = mapped_column(String(255), default=None, index=True)
    owner_id: Mapped[str | None] = mapped_column(String(100), default=None, index=True)

    # Relationships
    opportunities: Mapped[list["Opportunity"]] = relationship(  # noqa: F821
        back_populates="contact"
    )

    def __repr__(self) -> str:
        return f"<Contact {self.full_name!r}>"
