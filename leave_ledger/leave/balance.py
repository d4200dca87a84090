"""Balance reporting — reduce the ledger into per-type totals.

Balances are never stored. Each report is recomputed from the entries, and
the reduction is a plain sum, so it does not depend on the order in which
entries were appended.
"""

from __future__ import annotations

import uuid
from decimal import Decimal
from typing import Iterable

from sqlalchemy.ext.asyncio import AsyncSession

from leave_ledger.common.constants import LeaveType
from leave_ledger.leave.ledger import LedgerStore
from leave_ledger.leave.models import LedgerEntry
from leave_ledger.leave.schemas import LeaveBalanceOut


def aggregate_balances(entries: Iterable[LedgerEntry]) -> dict[LeaveType, LeaveBalanceOut]:
    """Fold ledger entries into ``{leave_type: {total, used, remaining}}``.

    Non-negative amounts count towards ``total`` and the magnitude of
    negative amounts towards ``used``. Every leave type is present in the
    result, with zeros when it has no entries.
    """
    totals: dict[LeaveType, Decimal] = {lt: Decimal("0") for lt in LeaveType}
    used: dict[LeaveType, Decimal] = {lt: Decimal("0") for lt in LeaveType}

    for entry in entries:
        leave_type = LeaveType(entry.leave_type)
        if entry.amount >= 0:
            totals[leave_type] += entry.amount
        else:
            used[leave_type] += -entry.amount

    return {
        lt: LeaveBalanceOut(
            total=totals[lt],
            used=used[lt],
            remaining=totals[lt] - used[lt],
        )
        for lt in LeaveType
    }


async def get_balance(
    db: AsyncSession,
    user_id: uuid.UUID,
) -> dict[LeaveType, LeaveBalanceOut]:
    """Current balance report for a user, computed fresh from the ledger."""
    entries = await LedgerStore.entries_for_user(db, user_id)
    return aggregate_balances(entries)
