"""Leave ORM models: LeaveRequest, LedgerEntry."""

from __future__ import annotations

import uuid
from datetime import datetime
from decimal import Decimal
from typing import Optional

import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import JSONB, UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from leave_ledger.auth.models import User
from leave_ledger.common.audit import TimestampMixin, utcnow
from leave_ledger.common.constants import LeaveStatus, LeaveType, LedgerAction
from leave_ledger.database import Base


class LeaveRequest(Base, TimestampMixin):
    __tablename__ = "leave_requests"
    __table_args__ = (
        sa.CheckConstraint("start_date < end_date", name="ck_leave_request_range"),
        sa.CheckConstraint("amount >= 0", name="ck_leave_request_amount"),
        sa.Index("ix_leave_requests_user_range", "user_id", "start_date", "end_date"),
        sa.Index("ix_leave_requests_status", "status"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    user_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), sa.ForeignKey("users.id"), nullable=False
    )
    type: Mapped[LeaveType] = mapped_column(
        sa.Enum(LeaveType, name="leave_type"), nullable=False
    )
    # Wall-clock times as entered, second precision
    start_date: Mapped[datetime] = mapped_column(sa.DateTime, nullable=False)
    end_date: Mapped[datetime] = mapped_column(sa.DateTime, nullable=False)
    amount: Mapped[Decimal] = mapped_column(sa.Numeric(10, 2), nullable=False)
    reason: Mapped[str] = mapped_column(sa.Text, nullable=False)
    attachment_refs: Mapped[list] = mapped_column(JSONB, nullable=False, default=list)
    status: Mapped[LeaveStatus] = mapped_column(
        sa.Enum(LeaveStatus, name="leave_status"),
        nullable=False,
        default=LeaveStatus.pending,
        server_default="pending",
    )
    approver_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True), sa.ForeignKey("users.id")
    )
    comment: Mapped[Optional[str]] = mapped_column(sa.Text)
    decided_at: Mapped[Optional[datetime]] = mapped_column(
        sa.DateTime(timezone=True)
    )

    # Relationships
    user: Mapped[User] = relationship(
        foreign_keys=[user_id]
    )
    approver: Mapped[Optional[User]] = relationship(
        foreign_keys=[approver_id]
    )
    ledger_entries: Mapped[list[LedgerEntry]] = relationship(
        back_populates="leave_request",
        order_by="LedgerEntry.created_at",
        passive_deletes=True,
    )


class LedgerEntry(Base):
    """Append-only signed posting against a (user, leave type) balance."""

    __tablename__ = "leave_ledger_entries"
    __table_args__ = (
        sa.UniqueConstraint(
            "leave_request_id", "action", name="uq_ledger_request_action"
        ),
        sa.Index("ix_ledger_partition", "user_id", "leave_type"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    user_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), sa.ForeignKey("users.id"), nullable=False
    )
    leave_type: Mapped[LeaveType] = mapped_column(
        sa.Enum(LeaveType, name="leave_type"), nullable=False
    )
    amount: Mapped[Decimal] = mapped_column(sa.Numeric(10, 2), nullable=False)
    action: Mapped[LedgerAction] = mapped_column(
        sa.Enum(LedgerAction, name="ledger_action"), nullable=False
    )
    leave_request_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True), sa.ForeignKey("leave_requests.id")
    )
    note: Mapped[Optional[str]] = mapped_column(sa.Text)
    created_by: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True), sa.ForeignKey("users.id")
    )
    created_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), nullable=False, default=utcnow
    )

    # Relationships
    leave_request: Mapped[Optional[LeaveRequest]] = relationship(
        back_populates="ledger_entries"
    )
