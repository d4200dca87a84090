"""RBAC lookups — which roles a user holds and what they may do.

Role and user administration live outside this service; these helpers only
answer membership questions against the role_assignments table.
"""

from __future__ import annotations

import uuid

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from leave_ledger.auth.models import RoleAssignment, User
from leave_ledger.common.constants import PERMISSIONS, UserRole

APPROVE_PERMISSION = "leave:approve"


async def get_active_roles(db: AsyncSession, user_id: uuid.UUID) -> set[UserRole]:
    """Return the set of active roles assigned to an active user."""
    result = await db.execute(
        select(RoleAssignment.role)
        .join(User, User.id == RoleAssignment.user_id)
        .where(
            RoleAssignment.user_id == user_id,
            RoleAssignment.is_active.is_(True),
            User.is_active.is_(True),
        )
    )
    return set(result.scalars().all())


def permissions_for(roles: set[UserRole]) -> set[str]:
    granted: set[str] = set()
    for role in roles:
        granted.update(PERMISSIONS.get(role, []))
    return granted


async def has_permission(
    db: AsyncSession,
    user_id: uuid.UUID,
    permission: str,
) -> bool:
    roles = await get_active_roles(db, user_id)
    return permission in permissions_for(roles)


async def is_approver(db: AsyncSession, user_id: uuid.UUID) -> bool:
    """True when any active role of the user grants ``leave:approve``."""
    return await has_permission(db, user_id, APPROVE_PERMISSION)
