"""Persistence helpers for leave requests.

Keeps the locking and conditional-update queries in one place so the
workflow code reads as a sequence of steps.
"""

from __future__ import annotations

import uuid
from typing import Any, Optional

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from leave_ledger.auth.models import User
from leave_ledger.common.audit import utcnow
from leave_ledger.common.constants import LeaveStatus
from leave_ledger.common.filters import apply_filters
from leave_ledger.leave.models import LeaveRequest


class LeaveRequestRepository:

    @staticmethod
    async def get(
        db: AsyncSession,
        request_id: uuid.UUID,
        *,
        for_update: bool = False,
        with_ledger: bool = False,
    ) -> Optional[LeaveRequest]:
        """Fetch one request.

        ``for_update`` locks the row and reloads any copy already held by
        the session, so callers see the latest committed values.
        """
        query = select(LeaveRequest).where(LeaveRequest.id == request_id)
        if for_update:
            query = query.with_for_update().execution_options(populate_existing=True)
        if with_ledger:
            query = query.options(selectinload(LeaveRequest.ledger_entries))
        result = await db.execute(query)
        return result.scalars().first()

    @staticmethod
    async def lock_user(db: AsyncSession, user_id: uuid.UUID) -> Optional[User]:
        """Take a row lock on the owning user for the rest of the transaction.

        Serialises check-then-write sequences (overlap check + insert, floor
        check + ledger posting) per user. Databases without ``FOR UPDATE``
        support fall back to the transaction's own isolation.
        """
        result = await db.execute(
            select(User).where(User.id == user_id).with_for_update()
        )
        return result.scalars().first()

    @staticmethod
    async def add(db: AsyncSession, leave_request: LeaveRequest) -> LeaveRequest:
        db.add(leave_request)
        await db.flush()
        return leave_request

    @staticmethod
    async def delete(db: AsyncSession, leave_request: LeaveRequest) -> None:
        await db.delete(leave_request)
        await db.flush()

    @staticmethod
    async def transition(
        db: AsyncSession,
        request_id: uuid.UUID,
        from_status: LeaveStatus,
        to_status: LeaveStatus,
        **values: Any,
    ) -> bool:
        """Conditionally move a request between states.

        Issues ``UPDATE ... WHERE id = :id AND status = :from_status`` and
        reports whether a row matched. A concurrent caller that already moved
        the request makes this return False. Loaded instances are not
        synchronised; refresh them after a successful transition.
        """
        stmt = (
            update(LeaveRequest)
            .where(
                LeaveRequest.id == request_id,
                LeaveRequest.status == from_status,
            )
            .values(status=to_status, updated_at=utcnow(), **values)
            .execution_options(synchronize_session=False)
        )
        result = await db.execute(stmt)
        return result.rowcount == 1

    @staticmethod
    async def count(db: AsyncSession, **criteria: Any) -> int:
        query = apply_filters(
            select(func.count()).select_from(LeaveRequest), LeaveRequest, criteria,
        )
        return (await db.execute(query)).scalar_one()
