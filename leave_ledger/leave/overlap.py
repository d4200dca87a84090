"""Overlap checks for leave time ranges.

Ranges are half-open ``[start, end)``: a leave ending at 12:00 and another
starting at 12:00 do not collide.
"""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from leave_ledger.common.constants import NON_BLOCKING_STATUSES
from leave_ledger.leave.models import LeaveRequest


def ranges_overlap(
    start_a: datetime,
    end_a: datetime,
    start_b: datetime,
    end_b: datetime,
) -> bool:
    return start_a < end_b and start_b < end_a


async def check_overlap(
    db: AsyncSession,
    user_id: uuid.UUID,
    start: datetime,
    end: datetime,
    exclude_request_id: Optional[uuid.UUID] = None,
) -> bool:
    """Return True when one of the user's live requests intersects ``[start, end)``.

    Rejected and cancelled requests never block; pending and approved ones do.
    """
    query = (
        select(func.count())
        .select_from(LeaveRequest)
        .where(
            LeaveRequest.user_id == user_id,
            LeaveRequest.status.not_in(list(NON_BLOCKING_STATUSES)),
            LeaveRequest.start_date < end,
            LeaveRequest.end_date > start,
        )
    )
    if exclude_request_id is not None:
        query = query.where(LeaveRequest.id != exclude_request_id)

    result = await db.execute(query)
    return result.scalar_one() > 0
