"""Enums and constants for the leave ledger — matching PostgreSQL ENUM types."""

from __future__ import annotations

import enum


# ── Auth / Roles ────────────────────────────────────────────────────

class UserRole(str, enum.Enum):
    employee = "employee"
    approver = "approver"
    hr_admin = "hr_admin"
    system_admin = "system_admin"


# ── Leave ───────────────────────────────────────────────────────────

class LeaveType(str, enum.Enum):
    compensatory = "compensatory"
    annual = "annual"
    sick = "sick"
    personal = "personal"


class LeaveStatus(str, enum.Enum):
    pending = "pending"
    approved = "approved"
    rejected = "rejected"
    cancelled = "cancelled"


class LedgerAction(str, enum.Enum):
    request = "request"        # consumption posted on approval
    cancel = "cancel"          # reversal of an approved request
    grant = "grant"
    adjustment = "adjustment"


class LeaveTransition(str, enum.Enum):
    approve = "approve"
    reject = "reject"
    edit = "edit"
    delete = "delete"


# Statuses that no longer block the same time range for new requests.
NON_BLOCKING_STATUSES: frozenset[LeaveStatus] = frozenset(
    {LeaveStatus.rejected, LeaveStatus.cancelled}
)

# (transition, from) → to. ``None`` target means the record is removed.
LEAVE_TRANSITIONS: dict[tuple[LeaveTransition, LeaveStatus], LeaveStatus | None] = {
    (LeaveTransition.approve, LeaveStatus.pending): LeaveStatus.approved,
    (LeaveTransition.reject, LeaveStatus.pending): LeaveStatus.rejected,
    (LeaveTransition.edit, LeaveStatus.pending): LeaveStatus.pending,
    (LeaveTransition.delete, LeaveStatus.pending): None,
}


# ── Role-based permissions ──────────────────────────────────────────

PERMISSIONS: dict[UserRole, list[str]] = {
    UserRole.employee: [],
    UserRole.approver: [
        "leave:approve",
    ],
    UserRole.hr_admin: [
        "leave:approve",
        "leave:configure",
    ],
    UserRole.system_admin: [
        "leave:approve",
        "leave:configure",
    ],
}

# ── Misc constants ──────────────────────────────────────────────────

DATETIME_FORMAT = "%Y-%m-%d %H:%M:%S"      # 2025-06-01 09:00:00
DATETIME_PATTERN = r"^\d{4}-\d{2}-\d{2} \d{2}:\d{2}:\d{2}$"
AMOUNT_PATTERN = r"^\d{1,8}(\.\d{1,2})?$"          # fits NUMERIC(10,2)
SIGNED_AMOUNT_PATTERN = r"^-?\d{1,8}(\.\d{1,2})?$"
MAX_PAGE_SIZE = 100
DEFAULT_PAGE_SIZE = 10
