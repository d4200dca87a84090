"""Leave service layer — submission, approval workflow, statistics.

Business logic:
  - Submit / edit with half-open overlap checks against the user's live requests
  - Approval state machine driven by an explicit transition table
  - Approval posts a consumption entry to the append-only ledger, guarded by
    the configured balance floor
  - Listing with filters and pagination; approval queue statistics
"""

from __future__ import annotations

import logging
import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from leave_ledger.attachments.service import find_missing_attachments
from leave_ledger.auth.service import is_approver
from leave_ledger.common.audit import create_audit_entry, utcnow
from leave_ledger.common.constants import (
    LEAVE_TRANSITIONS,
    LeaveStatus,
    LeaveTransition,
    LeaveType,
    LedgerAction,
)
from leave_ledger.common.exceptions import (
    ConflictError,
    ForbiddenException,
    NotFoundException,
    StateConflictError,
    ValidationException,
)
from leave_ledger.common.filters import apply_filters
from leave_ledger.common.pagination import PaginatedResponse, PaginationParams, paginate
from leave_ledger.config import settings
from leave_ledger.leave import balance
from leave_ledger.leave.ledger import LedgerStore
from leave_ledger.leave.models import LeaveRequest
from leave_ledger.leave.overlap import check_overlap
from leave_ledger.leave.repository import LeaveRequestRepository
from leave_ledger.leave.schemas import (
    ApprovalStatsOut,
    LeaveBalanceOut,
    LeaveRequestCreate,
    LeaveRequestDetailOut,
    LeaveRequestFilters,
    LeaveRequestOut,
    LeaveRequestUpdate,
)

logger = logging.getLogger(__name__)

_OVERLAP_MESSAGE = "A leave request already exists in this time range."


# ═════════════════════════════════════════════════════════════════════
# LeaveService
# ═════════════════════════════════════════════════════════════════════


class LeaveService:
    """Async leave operations: submit, edit, delete, approve, reject, report."""

    # ─────────────────────────────────────────────────────────────────
    # Helpers
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    def _target_status(
        transition: LeaveTransition,
        leave_req: LeaveRequest,
    ) -> Optional[LeaveStatus]:
        """Look up the transition table; refuse anything not listed."""
        key = (transition, leave_req.status)
        if key not in LEAVE_TRANSITIONS:
            logger.warning(
                "Refused %s on leave request %s in status %s",
                transition.value, leave_req.id, leave_req.status.value,
            )
            raise StateConflictError("leave request", leave_req.status, transition.value)
        return LEAVE_TRANSITIONS[key]

    @staticmethod
    def _ensure_valid_range(start: datetime, end: datetime) -> None:
        if start >= end:
            raise ValidationException(
                {"start_date": ["start_date must be strictly before end_date."]}
            )

    @staticmethod
    async def _ensure_attachments(
        db: AsyncSession,
        refs: list[uuid.UUID],
    ) -> None:
        missing = await find_missing_attachments(db, refs)
        if missing:
            raise ValidationException(
                {"attachment_refs": [f"Attachment '{ref}' does not exist." for ref in missing]}
            )

    @staticmethod
    async def _load(
        db: AsyncSession,
        request_id: uuid.UUID,
        *,
        lock: bool = False,
    ) -> LeaveRequest:
        leave_req = await LeaveRequestRepository.get(db, request_id, for_update=lock)
        if leave_req is None:
            raise NotFoundException("LeaveRequest", str(request_id))
        return leave_req

    @staticmethod
    async def _ensure_approver(db: AsyncSession, approver_id: uuid.UUID, action: str) -> None:
        if not await is_approver(db, approver_id):
            raise ForbiddenException(
                f"You are not authorized to {action} leave requests."
            )

    @staticmethod
    async def _ensure_floor(
        db: AsyncSession,
        leave_req: LeaveRequest,
    ) -> None:
        """Refuse a posting that would push the partition below the floor."""
        if not settings.ENFORCE_BALANCE_FLOOR:
            return

        available = await LedgerStore.net_balance(db, leave_req.user_id, leave_req.type)
        if available - leave_req.amount < settings.LEAVE_BALANCE_FLOOR:
            raise ValidationException(
                {"balance": [
                    f"Insufficient {leave_req.type.value} balance. "
                    f"Available: {available}, Requested: {leave_req.amount}."
                ]}
            )

    # ─────────────────────────────────────────────────────────────────
    # Submit
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    async def submit_leave(
        db: AsyncSession,
        user_id: uuid.UUID,
        data: LeaveRequestCreate,
    ) -> LeaveRequestOut:
        """Create a PENDING leave request.

        - start_date strictly before end_date
        - attachment references must exist
        - no pending/approved request of the user intersects the range
        Nothing is posted to the ledger until approval.
        """

        LeaveService._ensure_valid_range(data.start_date, data.end_date)
        await LeaveService._ensure_attachments(db, data.attachment_refs)

        # Overlap check and insert run under the user's row lock
        await LeaveRequestRepository.lock_user(db, user_id)
        if await check_overlap(db, user_id, data.start_date, data.end_date):
            raise ConflictError(
                _OVERLAP_MESSAGE,
                errors={"start_date": [_OVERLAP_MESSAGE]},
            )

        leave_req = await LeaveRequestRepository.add(
            db,
            LeaveRequest(
                user_id=user_id,
                type=data.type,
                start_date=data.start_date,
                end_date=data.end_date,
                amount=data.amount,
                reason=data.reason,
                attachment_refs=[str(ref) for ref in data.attachment_refs],
                status=LeaveStatus.pending,
            ),
        )

        await create_audit_entry(
            db,
            action="submit",
            entity_type="leave_request",
            entity_id=leave_req.id,
            actor_id=user_id,
            new_values={
                "type": data.type.value,
                "start_date": data.start_date.isoformat(),
                "end_date": data.end_date.isoformat(),
                "amount": str(data.amount),
                "status": LeaveStatus.pending.value,
            },
        )

        logger.info("Leave request %s submitted by user %s", leave_req.id, user_id)
        return LeaveRequestOut.model_validate(leave_req)

    # ─────────────────────────────────────────────────────────────────
    # Edit
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    async def edit_leave(
        db: AsyncSession,
        request_id: uuid.UUID,
        user_id: uuid.UUID,
        data: LeaveRequestUpdate,
    ) -> LeaveRequestOut:
        """Change fields of the caller's own PENDING request.

        The merged range is re-validated and re-checked for overlap,
        ignoring the request itself.
        """

        leave_req = await LeaveService._load(db, request_id)

        if leave_req.user_id != user_id:
            raise ForbiddenException("You can only edit your own leave requests.")

        LeaveService._target_status(LeaveTransition.edit, leave_req)

        await LeaveRequestRepository.lock_user(db, leave_req.user_id)
        leave_req = await LeaveService._load(db, request_id, lock=True)
        LeaveService._target_status(LeaveTransition.edit, leave_req)

        changes = data.model_dump(exclude_unset=True, exclude_none=True)
        start = changes.get("start_date", leave_req.start_date)
        end = changes.get("end_date", leave_req.end_date)
        LeaveService._ensure_valid_range(start, end)

        if "attachment_refs" in changes:
            await LeaveService._ensure_attachments(db, data.attachment_refs)
            changes["attachment_refs"] = [str(ref) for ref in data.attachment_refs]

        if await check_overlap(
            db, leave_req.user_id, start, end, exclude_request_id=leave_req.id,
        ):
            raise ConflictError(
                _OVERLAP_MESSAGE,
                errors={"start_date": [_OVERLAP_MESSAGE]},
            )

        old_values = {
            key: str(getattr(getattr(leave_req, key), "value", getattr(leave_req, key)))
            for key in changes
        }

        updated = await LeaveRequestRepository.transition(
            db,
            leave_req.id,
            LeaveStatus.pending,
            LeaveStatus.pending,
            **changes,
        )
        if not updated:
            await db.refresh(leave_req)
            raise StateConflictError("leave request", leave_req.status, "edit")

        await db.refresh(leave_req)

        await create_audit_entry(
            db,
            action="edit",
            entity_type="leave_request",
            entity_id=leave_req.id,
            actor_id=user_id,
            old_values=old_values,
            new_values={
                key: str(getattr(value, "value", value)) for key, value in changes.items()
            },
        )

        logger.info("Leave request %s edited by user %s", leave_req.id, user_id)
        return LeaveRequestOut.model_validate(leave_req)

    # ─────────────────────────────────────────────────────────────────
    # Delete
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    async def delete_leave(
        db: AsyncSession,
        request_id: uuid.UUID,
        user_id: uuid.UUID,
    ) -> None:
        """Remove the caller's own PENDING request. No ledger effect."""

        leave_req = await LeaveRequestRepository.get(db, request_id, for_update=True)
        if leave_req is None:
            raise NotFoundException("LeaveRequest", str(request_id))

        if leave_req.user_id != user_id:
            raise ForbiddenException("You can only delete your own leave requests.")

        LeaveService._target_status(LeaveTransition.delete, leave_req)

        snapshot = {
            "type": leave_req.type.value,
            "start_date": leave_req.start_date.isoformat(),
            "end_date": leave_req.end_date.isoformat(),
            "amount": str(leave_req.amount),
            "status": leave_req.status.value,
        }
        await LeaveRequestRepository.delete(db, leave_req)

        await create_audit_entry(
            db,
            action="delete",
            entity_type="leave_request",
            entity_id=request_id,
            actor_id=user_id,
            old_values=snapshot,
        )

        logger.info("Leave request %s deleted by user %s", request_id, user_id)

    # ─────────────────────────────────────────────────────────────────
    # Approve
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    async def approve_leave(
        db: AsyncSession,
        request_id: uuid.UUID,
        approver_id: uuid.UUID,
        comment: Optional[str] = None,
    ) -> LeaveRequestOut:
        """Approve a PENDING request and post its consumption to the ledger.

        The status precondition, the status write, and the ledger insert
        share one transaction; the status write only succeeds if the row is
        still PENDING, so a concurrent second approval fails with
        StateConflictError instead of posting twice.
        """

        leave_req = await LeaveService._load(db, request_id)
        LeaveService._target_status(LeaveTransition.approve, leave_req)
        await LeaveService._ensure_approver(db, approver_id, "approve")

        await LeaveRequestRepository.lock_user(db, leave_req.user_id)
        # Amount and type may have been edited before the lock was granted.
        leave_req = await LeaveService._load(db, request_id, lock=True)
        target = LeaveService._target_status(LeaveTransition.approve, leave_req)
        await LeaveService._ensure_floor(db, leave_req)

        now = utcnow()
        updated = await LeaveRequestRepository.transition(
            db,
            leave_req.id,
            LeaveStatus.pending,
            target,
            approver_id=approver_id,
            decided_at=now,
            comment=comment,
        )
        if not updated:
            await db.refresh(leave_req)
            logger.warning("Concurrent decision on leave request %s", leave_req.id)
            raise StateConflictError("leave request", leave_req.status, "approve")

        await LedgerStore.append(
            db,
            user_id=leave_req.user_id,
            leave_type=leave_req.type,
            amount=-leave_req.amount,
            action=LedgerAction.request,
            leave_request_id=leave_req.id,
            created_by=approver_id,
        )

        await db.refresh(leave_req)

        await create_audit_entry(
            db,
            action="approve",
            entity_type="leave_request",
            entity_id=leave_req.id,
            actor_id=approver_id,
            old_values={"status": LeaveStatus.pending.value},
            new_values={"status": target.value, "comment": comment},
        )

        logger.info("Leave request %s approved by %s", leave_req.id, approver_id)
        return LeaveRequestOut.model_validate(leave_req)

    # ─────────────────────────────────────────────────────────────────
    # Reject
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    async def reject_leave(
        db: AsyncSession,
        request_id: uuid.UUID,
        approver_id: uuid.UUID,
        comment: Optional[str] = None,
    ) -> LeaveRequestOut:
        """Reject a PENDING request. Nothing was consumed, so no ledger entry."""

        leave_req = await LeaveService._load(db, request_id)
        target = LeaveService._target_status(LeaveTransition.reject, leave_req)
        await LeaveService._ensure_approver(db, approver_id, "reject")

        updated = await LeaveRequestRepository.transition(
            db,
            leave_req.id,
            LeaveStatus.pending,
            target,
            approver_id=approver_id,
            decided_at=utcnow(),
            comment=comment,
        )
        if not updated:
            await db.refresh(leave_req)
            logger.warning("Concurrent decision on leave request %s", leave_req.id)
            raise StateConflictError("leave request", leave_req.status, "reject")

        await db.refresh(leave_req)

        await create_audit_entry(
            db,
            action="reject",
            entity_type="leave_request",
            entity_id=leave_req.id,
            actor_id=approver_id,
            old_values={"status": LeaveStatus.pending.value},
            new_values={"status": target.value, "comment": comment},
        )

        logger.info("Leave request %s rejected by %s", leave_req.id, approver_id)
        return LeaveRequestOut.model_validate(leave_req)

    # ─────────────────────────────────────────────────────────────────
    # Read
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    async def get_leave(
        db: AsyncSession,
        request_id: uuid.UUID,
    ) -> LeaveRequestDetailOut:
        """Single request with its ledger postings."""
        leave_req = await LeaveRequestRepository.get(db, request_id, with_ledger=True)
        if leave_req is None:
            raise NotFoundException("LeaveRequest", str(request_id))
        return LeaveRequestDetailOut.model_validate(leave_req)

    @staticmethod
    async def list_leaves(
        db: AsyncSession,
        filters: LeaveRequestFilters,
        params: PaginationParams,
    ) -> PaginatedResponse[LeaveRequestOut]:
        """List leave requests, most recently updated first by default."""

        query = apply_filters(
            select(LeaveRequest),
            LeaveRequest,
            {
                "type": filters.type,
                "status": filters.status,
                "user_id": filters.user_id,
            },
        )

        # Window filter: drop requests entirely before or after the window
        if filters.start_date is not None:
            query = query.where(LeaveRequest.end_date >= filters.start_date)
        if filters.end_date is not None:
            query = query.where(LeaveRequest.start_date <= filters.end_date)

        page = await paginate(
            db, query, params, model=LeaveRequest, default_sort="-updated_at",
        )
        return PaginatedResponse[LeaveRequestOut](
            data=[LeaveRequestOut.model_validate(r) for r in page.data],
            meta=page.meta,
        )

    # ─────────────────────────────────────────────────────────────────
    # Reporting
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    async def get_balance(
        db: AsyncSession,
        user_id: uuid.UUID,
    ) -> dict[LeaveType, LeaveBalanceOut]:
        return await balance.get_balance(db, user_id)

    @staticmethod
    async def get_approval_stats(
        db: AsyncSession,
        approver_id: uuid.UUID,
    ) -> ApprovalStatsOut:
        """Pending is the shared queue; approved/rejected are the caller's own decisions."""

        pending = await LeaveRequestRepository.count(db, status=LeaveStatus.pending)
        approved = await LeaveRequestRepository.count(
            db, status=LeaveStatus.approved, approver_id=approver_id,
        )
        rejected = await LeaveRequestRepository.count(
            db, status=LeaveStatus.rejected, approver_id=approver_id,
        )
        return ApprovalStatsOut(
            pending_count=pending,
            approved_by_me_count=approved,
            rejected_by_me_count=rejected,
            decided_by_me_count=approved + rejected,
        )
