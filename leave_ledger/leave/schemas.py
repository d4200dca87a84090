"""Leave Pydantic v2 schemas — request / response validation.

Naming conventions:
  - *Create / *Update / *Request  → request bodies (write)
  - *Out                          → response bodies (read)

Date/time values cross the boundary as ``yyyy-MM-dd HH:mm:ss`` strings and
amounts as decimal strings with at most eight integer and two fractional digits.
"""

from __future__ import annotations

import re
import uuid
from datetime import datetime
from decimal import Decimal
from typing import Any, Optional

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    field_serializer,
    field_validator,
    model_validator,
)

from leave_ledger.common.constants import (
    AMOUNT_PATTERN,
    DATETIME_FORMAT,
    DATETIME_PATTERN,
    SIGNED_AMOUNT_PATTERN,
    LeaveStatus,
    LeaveType,
    LedgerAction,
)
from leave_ledger.config import settings


# ═════════════════════════════════════════════════════════════════════
# Boundary parsing helpers
# ═════════════════════════════════════════════════════════════════════


def parse_datetime(value: Any, field: str = "value") -> datetime:
    """Parse a ``yyyy-MM-dd HH:mm:ss`` string; datetimes pass through."""
    if isinstance(value, datetime):
        return value.replace(microsecond=0)
    if not isinstance(value, str) or not re.match(DATETIME_PATTERN, value):
        raise ValueError(f"{field} must use the format yyyy-MM-dd HH:mm:ss.")
    try:
        return datetime.strptime(value, DATETIME_FORMAT)
    except ValueError:
        raise ValueError(f"{field} is not a valid calendar date/time.")


def parse_amount(value: Any, *, signed: bool = False) -> Decimal:
    """Parse a decimal string of up to eight integer and two fractional digits."""
    pattern = SIGNED_AMOUNT_PATTERN if signed else AMOUNT_PATTERN
    if isinstance(value, (int, Decimal)) and not isinstance(value, bool):
        value = str(value)
    if not isinstance(value, str) or not re.match(pattern, value):
        raise ValueError(
            "amount must be a decimal string with at most eight integer "
            "and two fractional digits."
        )
    return Decimal(value)


def format_datetime(value: Optional[datetime]) -> Optional[str]:
    return value.strftime(DATETIME_FORMAT) if value is not None else None


# ═════════════════════════════════════════════════════════════════════
# Leave Request — Create / Update
# ═════════════════════════════════════════════════════════════════════


class LeaveRequestCreate(BaseModel):
    """Payload for submitting a leave request."""

    type: LeaveType
    start_date: datetime = Field(..., description="yyyy-MM-dd HH:mm:ss, inclusive")
    end_date: datetime = Field(..., description="yyyy-MM-dd HH:mm:ss, exclusive")
    amount: Decimal = Field(..., description="Units of leave consumed, e.g. \"1.5\"")
    reason: str = Field(..., max_length=1000)
    attachment_refs: list[uuid.UUID] = Field(default_factory=list)

    @field_validator("start_date", "end_date", mode="before")
    @classmethod
    def parse_timestamps(cls, v: Any, info) -> datetime:
        return parse_datetime(v, info.field_name)

    @field_validator("amount", mode="before")
    @classmethod
    def parse_amount_string(cls, v: Any) -> Decimal:
        return parse_amount(v)

    @field_validator("reason")
    @classmethod
    def reason_min_length(cls, v: str) -> str:
        if len(v.strip()) < settings.LEAVE_REASON_MIN_LENGTH:
            raise ValueError(
                f"reason must be at least {settings.LEAVE_REASON_MIN_LENGTH} characters."
            )
        return v

    @model_validator(mode="after")
    def validate_range(self) -> "LeaveRequestCreate":
        if self.start_date >= self.end_date:
            raise ValueError("start_date must be strictly before end_date.")
        return self


class LeaveRequestUpdate(BaseModel):
    """Partial payload for editing a pending leave request.

    The merged range is re-validated by the service, since either bound may
    be omitted here.
    """

    type: Optional[LeaveType] = None
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    amount: Optional[Decimal] = None
    reason: Optional[str] = Field(None, max_length=1000)
    attachment_refs: Optional[list[uuid.UUID]] = None

    @field_validator("start_date", "end_date", mode="before")
    @classmethod
    def parse_timestamps(cls, v: Any, info) -> Optional[datetime]:
        if v is None:
            return None
        return parse_datetime(v, info.field_name)

    @field_validator("amount", mode="before")
    @classmethod
    def parse_amount_string(cls, v: Any) -> Optional[Decimal]:
        if v is None:
            return None
        return parse_amount(v)

    @field_validator("reason")
    @classmethod
    def reason_min_length(cls, v: Optional[str]) -> Optional[str]:
        if v is not None and len(v.strip()) < settings.LEAVE_REASON_MIN_LENGTH:
            raise ValueError(
                f"reason must be at least {settings.LEAVE_REASON_MIN_LENGTH} characters."
            )
        return v


# ═════════════════════════════════════════════════════════════════════
# Approve / Reject
# ═════════════════════════════════════════════════════════════════════


class LeaveDecisionRequest(BaseModel):
    """Payload for approving or rejecting a leave request."""

    comment: Optional[str] = Field(None, max_length=500)


# ═════════════════════════════════════════════════════════════════════
# Leave Request — Response
# ═════════════════════════════════════════════════════════════════════


class LeaveRequestOut(BaseModel):
    """Full leave request response."""

    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    user_id: uuid.UUID
    type: LeaveType
    start_date: datetime
    end_date: datetime
    amount: Decimal
    reason: str
    attachment_refs: list[uuid.UUID] = Field(default_factory=list)
    status: LeaveStatus
    approver_id: Optional[uuid.UUID] = None
    comment: Optional[str] = None
    decided_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime

    @field_serializer("start_date", "end_date", "decided_at", "created_at", "updated_at")
    def serialize_timestamp(self, value: Optional[datetime]) -> Optional[str]:
        return format_datetime(value)

    @field_serializer("amount")
    def serialize_amount(self, value: Decimal) -> str:
        return f"{value:.2f}"


class LedgerEntryOut(BaseModel):
    """Single ledger posting."""

    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    user_id: uuid.UUID
    leave_type: LeaveType
    amount: Decimal
    action: LedgerAction
    leave_request_id: Optional[uuid.UUID] = None
    note: Optional[str] = None
    created_by: Optional[uuid.UUID] = None
    created_at: datetime

    @field_serializer("created_at")
    def serialize_timestamp(self, value: datetime) -> str:
        return format_datetime(value)

    @field_serializer("amount")
    def serialize_amount(self, value: Decimal) -> str:
        return f"{value:.2f}"


class LeaveRequestDetailOut(LeaveRequestOut):
    """Leave request with the ledger postings that reference it."""

    ledger_entries: list[LedgerEntryOut] = Field(default_factory=list)


# ═════════════════════════════════════════════════════════════════════
# Listing filters
# ═════════════════════════════════════════════════════════════════════


class LeaveRequestFilters(BaseModel):
    """Query filters for listing leave requests.

    ``start_date``/``end_date`` select requests whose range touches the
    window: anything ending before ``start_date`` or starting after
    ``end_date`` is excluded.
    """

    type: Optional[LeaveType] = None
    status: Optional[LeaveStatus] = None
    user_id: Optional[uuid.UUID] = None
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None

    @field_validator("start_date", "end_date", mode="before")
    @classmethod
    def parse_timestamps(cls, v: Any, info) -> Optional[datetime]:
        if v is None or v == "":
            return None
        return parse_datetime(v, info.field_name)


# ═════════════════════════════════════════════════════════════════════
# Balance / Stats
# ═════════════════════════════════════════════════════════════════════


class LeaveBalanceOut(BaseModel):
    """Totals for one leave type, derived from the ledger."""

    total: Decimal = Decimal("0")
    used: Decimal = Decimal("0")
    remaining: Decimal = Decimal("0")

    @field_serializer("total", "used", "remaining")
    def serialize_amount(self, value: Decimal) -> str:
        return f"{value:.2f}"


class ApprovalStatsOut(BaseModel):
    """Approval queue and per-approver decision counts."""

    pending_count: int
    approved_by_me_count: int
    rejected_by_me_count: int
    decided_by_me_count: int


# ═════════════════════════════════════════════════════════════════════
# Ledger postings (HR)
# ═════════════════════════════════════════════════════════════════════


class LedgerGrantCreate(BaseModel):
    """Credit leave units to a user's balance."""

    user_id: uuid.UUID
    leave_type: LeaveType
    amount: Decimal
    note: Optional[str] = Field(None, max_length=500)

    @field_validator("amount", mode="before")
    @classmethod
    def parse_amount_string(cls, v: Any) -> Decimal:
        return parse_amount(v)

    @field_validator("amount")
    @classmethod
    def amount_positive(cls, v: Decimal) -> Decimal:
        if v <= 0:
            raise ValueError("amount must be greater than zero.")
        return v


class LedgerAdjustmentCreate(BaseModel):
    """Signed correction; positive credits, negative debits."""

    user_id: uuid.UUID
    leave_type: LeaveType
    amount: Decimal
    note: str = Field(..., min_length=5, max_length=500)

    @field_validator("amount", mode="before")
    @classmethod
    def parse_amount_string(cls, v: Any) -> Decimal:
        return parse_amount(v, signed=True)

    @field_validator("amount")
    @classmethod
    def amount_non_zero(cls, v: Decimal) -> Decimal:
        if v == 0:
            raise ValueError("amount must not be zero.")
        return v


class LedgerReversalRequest(BaseModel):
    """Reverse the consumption posted for an approved leave request."""

    note: Optional[str] = Field(None, max_length=500)
