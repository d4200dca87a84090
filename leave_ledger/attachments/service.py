"""Attachment reference checks used by leave submission and editing."""

from __future__ import annotations

import uuid
from typing import Iterable

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from leave_ledger.attachments.models import Attachment


async def attachment_exists(db: AsyncSession, ref: uuid.UUID) -> bool:
    result = await db.execute(select(Attachment.id).where(Attachment.id == ref))
    return result.scalar() is not None


async def find_missing_attachments(
    db: AsyncSession,
    refs: Iterable[uuid.UUID],
) -> list[uuid.UUID]:
    """Return the refs that do not resolve to a stored attachment, in input order."""
    wanted = list(dict.fromkeys(refs))
    if not wanted:
        return []

    result = await db.execute(select(Attachment.id).where(Attachment.id.in_(wanted)))
    found = set(result.scalars().all())
    return [ref for ref in wanted if ref not in found]
