"""Leave routers — requests, approvals, balances, and HR ledger postings.

All endpoints require authentication. Approval endpoints check approver
authority in the service; ledger endpoints require ``leave:configure``.
"""

import uuid
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request, Response, status
from pydantic import ValidationError
from sqlalchemy.ext.asyncio import AsyncSession

from leave_ledger.auth.dependencies import get_current_user, require_permission
from leave_ledger.auth.models import User
from leave_ledger.auth.service import APPROVE_PERMISSION
from leave_ledger.common.constants import LeaveStatus, LeaveType
from leave_ledger.common.exceptions import ValidationException
from leave_ledger.common.pagination import PaginatedResponse, PaginationParams
from leave_ledger.common.rate_limit import limiter
from leave_ledger.config import settings
from leave_ledger.database import get_db
from leave_ledger.leave import balance
from leave_ledger.leave.ledger import LedgerStore
from leave_ledger.leave.schemas import (
    ApprovalStatsOut,
    LedgerAdjustmentCreate,
    LedgerEntryOut,
    LedgerGrantCreate,
    LedgerReversalRequest,
    LeaveBalanceOut,
    LeaveDecisionRequest,
    LeaveRequestCreate,
    LeaveRequestDetailOut,
    LeaveRequestFilters,
    LeaveRequestOut,
    LeaveRequestUpdate,
)
from leave_ledger.leave.service import LeaveService

CONFIGURE_PERMISSION = "leave:configure"

leaves_router = APIRouter(prefix="", tags=["leaves"])
ledger_router = APIRouter(prefix="", tags=["ledger"])


def _leave_filters(
    type: Optional[LeaveType] = Query(None),
    status: Optional[LeaveStatus] = Query(None),
    user_id: Optional[uuid.UUID] = Query(None),
    start_date: Optional[str] = Query(None, description="yyyy-MM-dd HH:mm:ss"),
    end_date: Optional[str] = Query(None, description="yyyy-MM-dd HH:mm:ss"),
) -> LeaveRequestFilters:
    try:
        return LeaveRequestFilters(
            type=type,
            status=status,
            user_id=user_id,
            start_date=start_date,
            end_date=end_date,
        )
    except ValidationError as exc:
        errors: dict[str, list[str]] = {}
        for err in exc.errors():
            field = ".".join(str(p) for p in err.get("loc", ())) or "query"
            errors.setdefault(field, []).append(err.get("msg", "Invalid value"))
        raise ValidationException(errors)


# ═════════════════════════════════════════════════════════════════════
# /leaves
# ═════════════════════════════════════════════════════════════════════


# ── POST / ──────────────────────────────────────────────────────────

@leaves_router.post(
    "/",
    response_model=LeaveRequestOut,
    status_code=status.HTTP_201_CREATED,
)
@limiter.limit(settings.RATE_LIMIT_SUBMIT)
async def submit_leave(
    request: Request,
    body: LeaveRequestCreate,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Submit a leave request. Validates range, attachments, and overlap."""
    return await LeaveService.submit_leave(db, user.id, body)


# ── GET / ───────────────────────────────────────────────────────────

@leaves_router.get("/", response_model=PaginatedResponse[LeaveRequestOut])
async def list_leaves(
    filters: LeaveRequestFilters = Depends(_leave_filters),
    params: PaginationParams = Depends(),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """List leave requests with filters and pagination."""
    return await LeaveService.list_leaves(db, filters, params)


# ── GET /balance ────────────────────────────────────────────────────

@leaves_router.get("/balance", response_model=dict[LeaveType, LeaveBalanceOut])
async def my_balance(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Caller's balance per leave type, recomputed from the ledger."""
    return await LeaveService.get_balance(db, user.id)


# ── GET /approvals/stats ────────────────────────────────────────────

@leaves_router.get("/approvals/stats", response_model=ApprovalStatsOut)
async def approval_stats(
    user: User = Depends(require_permission(APPROVE_PERMISSION)),
    db: AsyncSession = Depends(get_db),
):
    """Pending queue size and the caller's own decision counts."""
    return await LeaveService.get_approval_stats(db, user.id)


# ── GET /{id} ───────────────────────────────────────────────────────

@leaves_router.get("/{request_id}", response_model=LeaveRequestDetailOut)
async def get_leave(
    request_id: uuid.UUID,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await LeaveService.get_leave(db, request_id)


# ── PUT /{id} ───────────────────────────────────────────────────────

@leaves_router.put("/{request_id}", response_model=LeaveRequestOut)
async def edit_leave(
    request_id: uuid.UUID,
    body: LeaveRequestUpdate,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Edit the caller's own pending request."""
    return await LeaveService.edit_leave(db, request_id, user.id, body)


# ── DELETE /{id} ────────────────────────────────────────────────────

@leaves_router.delete("/{request_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_leave(
    request_id: uuid.UUID,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Delete the caller's own pending request."""
    await LeaveService.delete_leave(db, request_id, user.id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# ── PUT /{id}/approve ───────────────────────────────────────────────

@leaves_router.put("/{request_id}/approve", response_model=LeaveRequestOut)
async def approve_leave(
    request_id: uuid.UUID,
    body: LeaveDecisionRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Approve a pending request. Posts the consumption to the ledger."""
    return await LeaveService.approve_leave(
        db, request_id, user.id, comment=body.comment,
    )


# ── PUT /{id}/reject ────────────────────────────────────────────────

@leaves_router.put("/{request_id}/reject", response_model=LeaveRequestOut)
async def reject_leave(
    request_id: uuid.UUID,
    body: LeaveDecisionRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Reject a pending request."""
    return await LeaveService.reject_leave(
        db, request_id, user.id, comment=body.comment,
    )


# ═════════════════════════════════════════════════════════════════════
# /ledger
# ═════════════════════════════════════════════════════════════════════


# ── POST /grants ────────────────────────────────────────────────────

@ledger_router.post(
    "/grants",
    response_model=LedgerEntryOut,
    status_code=status.HTTP_201_CREATED,
)
async def grant_leave(
    body: LedgerGrantCreate,
    user: User = Depends(require_permission(CONFIGURE_PERMISSION)),
    db: AsyncSession = Depends(get_db),
):
    """Credit leave units to a user."""
    return await LedgerStore.grant(
        db, body.user_id, body.leave_type, body.amount,
        actor_id=user.id, note=body.note,
    )


# ── POST /adjustments ───────────────────────────────────────────────

@ledger_router.post(
    "/adjustments",
    response_model=LedgerEntryOut,
    status_code=status.HTTP_201_CREATED,
)
async def adjust_balance(
    body: LedgerAdjustmentCreate,
    user: User = Depends(require_permission(CONFIGURE_PERMISSION)),
    db: AsyncSession = Depends(get_db),
):
    """Post a signed correction to a user's balance."""
    return await LedgerStore.adjust(
        db, body.user_id, body.leave_type, body.amount,
        actor_id=user.id, note=body.note,
    )


# ── POST /reversals/{request_id} ────────────────────────────────────

@ledger_router.post(
    "/reversals/{request_id}",
    response_model=LedgerEntryOut,
    status_code=status.HTTP_201_CREATED,
)
async def reverse_request(
    request_id: uuid.UUID,
    body: LedgerReversalRequest,
    user: User = Depends(require_permission(CONFIGURE_PERMISSION)),
    db: AsyncSession = Depends(get_db),
):
    """Give back the units consumed by an approved request."""
    return await LedgerStore.reverse_request(
        db, request_id, actor_id=user.id, note=body.note,
    )


# ── GET /users/{user_id}/entries ────────────────────────────────────

@ledger_router.get(
    "/users/{user_id}/entries",
    response_model=PaginatedResponse[LedgerEntryOut],
)
async def list_entries(
    user_id: uuid.UUID,
    leave_type: Optional[LeaveType] = Query(None),
    params: PaginationParams = Depends(),
    user: User = Depends(require_permission(CONFIGURE_PERMISSION)),
    db: AsyncSession = Depends(get_db),
):
    return await LedgerStore.list_entries(db, user_id, params, leave_type=leave_type)


# ── GET /users/{user_id}/balance ────────────────────────────────────

@ledger_router.get(
    "/users/{user_id}/balance",
    response_model=dict[LeaveType, LeaveBalanceOut],
)
async def user_balance(
    user_id: uuid.UUID,
    user: User = Depends(require_permission(CONFIGURE_PERMISSION)),
    db: AsyncSession = Depends(get_db),
):
    return await balance.get_balance(db, user_id)
