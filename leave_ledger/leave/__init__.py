"""Leave module — requests, approval workflow, ledger, and balances."""

from leave_ledger.leave.models import LeaveRequest, LedgerEntry

__all__ = ["LeaveRequest", "LedgerEntry"]
