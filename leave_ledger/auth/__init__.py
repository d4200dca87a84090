"""Auth module — users, sessions, role assignments, and caller resolution."""

from leave_ledger.auth.models import RoleAssignment, User, UserSession

__all__ = ["User", "UserSession", "RoleAssignment"]
