"""Contact lookups needed by the pipeline (full contact CRUD lives elsewhere)."""

from __future__ import annotations

import uuid

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ..models.contact import Contact


async def get_contact(db: AsyncSession, contact_id: uuid.UUID) -> Contact | None:
    result = await db.execute(select(Contact).where(Contact.id == contact_id))
    return result.scalar_one_or_none()


async def create_contact(
    db: AsyncSession,
    full_name: str,
    *,
    phone: str | None = None,
    email: str | None = None,
    owner_id: str | None = None,
) -> Contact:
    contact = Contact(full_name=full_name, phone=phone, email=email, owner_id=owner_id)
    db.add(contact)
    await db.commit()
    await db.refresh(contact)
    return contact
