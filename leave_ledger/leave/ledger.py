"""Append-only leave ledger.

Every change to a leave balance is a signed ``LedgerEntry``: grants are
positive, consumption is negative, and corrections are new offsetting
entries. Rows are never updated or deleted, so the balance of a
``(user, leave_type)`` partition is always the plain sum of its entries.
"""

from __future__ import annotations

import logging
import uuid
from decimal import Decimal
from typing import Iterable, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from leave_ledger.common.audit import create_audit_entry
from leave_ledger.common.constants import LeaveStatus, LeaveType, LedgerAction
from leave_ledger.common.exceptions import (
    NotFoundException,
    StateConflictError,
    ValidationException,
)
from leave_ledger.common.pagination import PaginatedResponse, PaginationParams, paginate
from leave_ledger.leave.models import LeaveRequest, LedgerEntry
from leave_ledger.leave.schemas import LedgerEntryOut

logger = logging.getLogger(__name__)


def net_amount(entries: Iterable[LedgerEntry]) -> Decimal:
    return sum((entry.amount for entry in entries), Decimal("0"))


class LedgerStore:
    """Async ledger operations: append, read, partition totals, reversals."""

    @staticmethod
    async def append(
        db: AsyncSession,
        *,
        user_id: uuid.UUID,
        leave_type: LeaveType,
        amount: Decimal,
        action: LedgerAction,
        leave_request_id: Optional[uuid.UUID] = None,
        note: Optional[str] = None,
        created_by: Optional[uuid.UUID] = None,
    ) -> LedgerEntry:
        """Insert one posting and flush it. The only write path to the ledger."""

        entry = LedgerEntry(
            user_id=user_id,
            leave_type=leave_type,
            amount=amount,
            action=action,
            leave_request_id=leave_request_id,
            note=note,
            created_by=created_by,
        )
        db.add(entry)
        await db.flush()

        logger.info(
            "Ledger %s %s for user=%s type=%s request=%s",
            action.value, amount, user_id, leave_type.value, leave_request_id,
        )
        return entry

    @staticmethod
    async def entries_for_user(
        db: AsyncSession,
        user_id: uuid.UUID,
        leave_type: Optional[LeaveType] = None,
    ) -> list[LedgerEntry]:
        query = select(LedgerEntry).where(LedgerEntry.user_id == user_id)
        if leave_type is not None:
            query = query.where(LedgerEntry.leave_type == leave_type)

        result = await db.execute(query)
        return list(result.scalars().all())

    @staticmethod
    async def net_balance(
        db: AsyncSession,
        user_id: uuid.UUID,
        leave_type: LeaveType,
    ) -> Decimal:
        """Signed sum of one partition, recomputed from the entries."""
        entries = await LedgerStore.entries_for_user(db, user_id, leave_type)
        return net_amount(entries)

    # ─────────────────────────────────────────────────────────────────
    # HR postings
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    async def grant(
        db: AsyncSession,
        user_id: uuid.UUID,
        leave_type: LeaveType,
        amount: Decimal,
        *,
        actor_id: Optional[uuid.UUID] = None,
        note: Optional[str] = None,
    ) -> LedgerEntryOut:
        """Credit ``amount`` units of ``leave_type`` to the user."""

        if amount <= 0:
            raise ValidationException({"amount": ["Grant amount must be positive."]})

        entry = await LedgerStore.append(
            db,
            user_id=user_id,
            leave_type=leave_type,
            amount=amount,
            action=LedgerAction.grant,
            note=note,
            created_by=actor_id,
        )
        await create_audit_entry(
            db,
            action="grant",
            entity_type="ledger_entry",
            entity_id=entry.id,
            actor_id=actor_id,
            new_values={
                "user_id": str(user_id),
                "leave_type": leave_type.value,
                "amount": str(amount),
            },
        )
        return LedgerEntryOut.model_validate(entry)

    @staticmethod
    async def adjust(
        db: AsyncSession,
        user_id: uuid.UUID,
        leave_type: LeaveType,
        amount: Decimal,
        *,
        actor_id: Optional[uuid.UUID] = None,
        note: Optional[str] = None,
    ) -> LedgerEntryOut:
        """Append a signed correction to the partition."""

        if amount == 0:
            raise ValidationException({"amount": ["Adjustment must not be zero."]})

        entry = await LedgerStore.append(
            db,
            user_id=user_id,
            leave_type=leave_type,
            amount=amount,
            action=LedgerAction.adjustment,
            note=note,
            created_by=actor_id,
        )
        await create_audit_entry(
            db,
            action="adjust",
            entity_type="ledger_entry",
            entity_id=entry.id,
            actor_id=actor_id,
            new_values={
                "user_id": str(user_id),
                "leave_type": leave_type.value,
                "amount": str(amount),
                "note": note,
            },
        )
        return LedgerEntryOut.model_validate(entry)

    @staticmethod
    async def reverse_request(
        db: AsyncSession,
        request_id: uuid.UUID,
        *,
        actor_id: Optional[uuid.UUID] = None,
        note: Optional[str] = None,
    ) -> LedgerEntryOut:
        """Give back the units consumed by an approved request.

        Posts a ``cancel`` entry offsetting the request's ``request``
        posting. The request itself keeps its APPROVED status; the ledger
        alone carries the reversal.
        """

        result = await db.execute(
            select(LeaveRequest).where(LeaveRequest.id == request_id)
        )
        leave_req = result.scalars().first()
        if leave_req is None:
            raise NotFoundException("LeaveRequest", str(request_id))

        if leave_req.status != LeaveStatus.approved:
            raise StateConflictError("leave request", leave_req.status, "reverse")

        postings = await db.execute(
            select(LedgerEntry).where(LedgerEntry.leave_request_id == request_id)
        )
        by_action = {entry.action: entry for entry in postings.scalars().all()}

        consumed = by_action.get(LedgerAction.request)
        if consumed is None:
            raise StateConflictError("leave request", "not yet posted", "reverse")
        if LedgerAction.cancel in by_action:
            raise StateConflictError("leave request", "already reversed", "reverse")

        entry = await LedgerStore.append(
            db,
            user_id=leave_req.user_id,
            leave_type=consumed.leave_type,
            amount=-consumed.amount,
            action=LedgerAction.cancel,
            leave_request_id=request_id,
            note=note,
            created_by=actor_id,
        )
        await create_audit_entry(
            db,
            action="reverse",
            entity_type="leave_request",
            entity_id=request_id,
            actor_id=actor_id,
            new_values={"ledger_entry_id": str(entry.id), "amount": str(entry.amount)},
        )
        return LedgerEntryOut.model_validate(entry)

    # ─────────────────────────────────────────────────────────────────
    # Audit listing
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    async def list_entries(
        db: AsyncSession,
        user_id: uuid.UUID,
        params: PaginationParams,
        *,
        leave_type: Optional[LeaveType] = None,
    ) -> PaginatedResponse[LedgerEntryOut]:
        """Paginated postings for a user, newest first unless sorted otherwise."""

        query = select(LedgerEntry).where(LedgerEntry.user_id == user_id)
        if leave_type is not None:
            query = query.where(LedgerEntry.leave_type == leave_type)

        page = await paginate(
            db, query, params, model=LedgerEntry, default_sort="-created_at",
        )
        return PaginatedResponse[LedgerEntryOut](
            data=[LedgerEntryOut.model_validate(e) for e in page.data],
            meta=page.meta,
        )
