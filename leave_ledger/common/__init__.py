"""Common module — shared utilities for the leave ledger service."""

from leave_ledger.common.audit import AuditTrail, TimestampMixin, create_audit_entry
from leave_ledger.common.constants import (
    DATETIME_FORMAT,
    DEFAULT_PAGE_SIZE,
    LEAVE_TRANSITIONS,
    MAX_PAGE_SIZE,
    PERMISSIONS,
    LeaveStatus,
    LeaveTransition,
    LeaveType,
    LedgerAction,
    UserRole,
)
from leave_ledger.common.exceptions import (
    AppException,
    AuthenticationException,
    ConflictError,
    ForbiddenException,
    NotFoundException,
    StateConflictError,
    ValidationException,
    register_exception_handlers,
)
from leave_ledger.common.filters import apply_filters, apply_sorting
from leave_ledger.common.pagination import (
    PaginatedResponse,
    PaginationMeta,
    PaginationParams,
    paginate,
)

__all__ = [
    # Audit
    "AuditTrail",
    "TimestampMixin",
    "create_audit_entry",
    # Constants / Enums
    "LeaveStatus",
    "LeaveTransition",
    "LeaveType",
    "LedgerAction",
    "UserRole",
    "LEAVE_TRANSITIONS",
    "PERMISSIONS",
    "DATETIME_FORMAT",
    "DEFAULT_PAGE_SIZE",
    "MAX_PAGE_SIZE",
    # Exceptions
    "AppException",
    "AuthenticationException",
    "ConflictError",
    "ForbiddenException",
    "NotFoundException",
    "StateConflictError",
    "ValidationException",
    "register_exception_handlers",
    # Filters
    "apply_filters",
    "apply_sorting",
    # Pagination
    "PaginatedResponse",
    "PaginationMeta",
    "PaginationParams",
    "paginate",
]
