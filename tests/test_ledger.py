"""Ledger test suite — balance aggregation, HR postings, reversals, listing."""

from __future__ import annotations

import itertools
import uuid
from decimal import Decimal

import pytest
from pydantic import ValidationError
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from leave_ledger.common.constants import LeaveStatus, LeaveType, LedgerAction
from leave_ledger.common.exceptions import (
    NotFoundException,
    StateConflictError,
    ValidationException,
)
from leave_ledger.common.pagination import PaginationParams
from leave_ledger.leave.balance import aggregate_balances, get_balance
from leave_ledger.leave.ledger import LedgerStore, net_amount
from leave_ledger.leave.models import LeaveRequest, LedgerEntry
from leave_ledger.leave.schemas import LedgerAdjustmentCreate, LedgerGrantCreate
from leave_ledger.leave.service import LeaveService
from tests.conftest import seed_grant, seed_leave_request


def _entry(amount: str, leave_type: LeaveType = LeaveType.annual) -> LedgerEntry:
    return LedgerEntry(
        id=uuid.uuid4(),
        user_id=uuid.uuid4(),
        leave_type=leave_type,
        amount=Decimal(amount),
        action=LedgerAction.adjustment,
    )


# ═════════════════════════════════════════════════════════════════════
# Pure aggregation
# ═════════════════════════════════════════════════════════════════════


class TestAggregateBalances:

    def test_empty_ledger_reports_every_type_as_zero(self):
        report = aggregate_balances([])

        assert set(report) == set(LeaveType)
        for item in report.values():
            assert item.total == item.used == item.remaining == Decimal("0")

    def test_positive_total_negative_used(self):
        report = aggregate_balances([_entry("10"), _entry("-3"), _entry("-1.5")])

        annual = report[LeaveType.annual]
        assert annual.total == Decimal("10")
        assert annual.used == Decimal("4.5")
        assert annual.remaining == Decimal("5.5")

    def test_partitions_by_leave_type(self):
        report = aggregate_balances([
            _entry("10", LeaveType.annual),
            _entry("4", LeaveType.sick),
            _entry("-1", LeaveType.sick),
        ])

        assert report[LeaveType.annual].remaining == Decimal("10")
        assert report[LeaveType.sick].remaining == Decimal("3")
        assert report[LeaveType.personal].remaining == Decimal("0")

    def test_order_independent(self):
        """Every permutation of interleaved grants and consumptions agrees."""
        entries = [
            _entry("5"),
            _entry("-2"),
            _entry("3", LeaveType.compensatory),
            _entry("-0.25"),
            _entry("1.75"),
            _entry("-1", LeaveType.compensatory),
        ]
        expected = aggregate_balances(entries)

        for perm in itertools.permutations(entries):
            report = aggregate_balances(perm)
            assert report == expected
            for item in report.values():
                assert item.remaining == item.total - item.used

    def test_net_amount_is_signed_sum(self):
        assert net_amount([_entry("2"), _entry("-0.5")]) == Decimal("1.5")
        assert net_amount([]) == Decimal("0")


# ═════════════════════════════════════════════════════════════════════
# HR postings
# ═════════════════════════════════════════════════════════════════════


class TestLedgerPostings:

    async def test_grant_credits_partition(self, db: AsyncSession, employee, hr_admin):
        out = await LedgerStore.grant(
            db, employee.id, LeaveType.compensatory, Decimal("1.5"),
            actor_id=hr_admin.id, note="Weekend release",
        )

        assert out.action == LedgerAction.grant
        assert out.created_by == hr_admin.id
        assert await LedgerStore.net_balance(
            db, employee.id, LeaveType.compensatory,
        ) == Decimal("1.5")

    async def test_grant_rejects_non_positive(self, db: AsyncSession, employee):
        with pytest.raises(ValidationException):
            await LedgerStore.grant(db, employee.id, LeaveType.annual, Decimal("0"))

    async def test_adjust_negative(self, db: AsyncSession, employee, hr_admin):
        await seed_grant(db, employee.id, "10")

        await LedgerStore.adjust(
            db, employee.id, LeaveType.annual, Decimal("-2"),
            actor_id=hr_admin.id, note="Correction for March",
        )

        report = await get_balance(db, employee.id)
        assert report[LeaveType.annual].total == Decimal("10")
        assert report[LeaveType.annual].used == Decimal("2")

    async def test_adjust_rejects_zero(self, db: AsyncSession, employee):
        with pytest.raises(ValidationException):
            await LedgerStore.adjust(db, employee.id, LeaveType.annual, Decimal("0"))


class TestPostingSchemas:

    @pytest.mark.parametrize("amount", ["123456789", "123456789.50"])
    def test_grant_amount_beyond_column_rejected(self, amount):
        with pytest.raises(ValidationError):
            LedgerGrantCreate(user_id=uuid.uuid4(), leave_type=LeaveType.annual, amount=amount)

    @pytest.mark.parametrize("amount", ["123456789", "-123456789"])
    def test_adjustment_amount_beyond_column_rejected(self, amount):
        with pytest.raises(ValidationError):
            LedgerAdjustmentCreate(
                user_id=uuid.uuid4(), leave_type=LeaveType.annual,
                amount=amount, note="Year-end correction",
            )

    def test_largest_signed_adjustment_accepted(self):
        payload = LedgerAdjustmentCreate(
            user_id=uuid.uuid4(), leave_type=LeaveType.annual,
            amount="-12345678.99", note="Year-end correction",
        )
        assert payload.amount == Decimal("-12345678.99")


# ═════════════════════════════════════════════════════════════════════
# Reversal of approved requests
# ═════════════════════════════════════════════════════════════════════


class TestReverseRequest:

    async def _approved_request(self, db, employee, approver, amount="3"):
        await seed_grant(db, employee.id, "10")
        leave_req = await seed_leave_request(db, employee.id, amount=amount)
        await LeaveService.approve_leave(db, leave_req.id, approver.id)
        return leave_req

    async def test_reversal_offsets_consumption(
        self, db: AsyncSession, employee, approver, hr_admin,
    ):
        leave_req = await self._approved_request(db, employee, approver)

        out = await LedgerStore.reverse_request(
            db, leave_req.id, actor_id=hr_admin.id, note="Trip cancelled",
        )

        assert out.action == LedgerAction.cancel
        assert out.amount == Decimal("3")
        assert await LedgerStore.net_balance(
            db, employee.id, LeaveType.annual,
        ) == Decimal("10")

    async def test_reversal_keeps_request_status(
        self, db: AsyncSession, employee, approver, hr_admin,
    ):
        leave_req = await self._approved_request(db, employee, approver)
        await LedgerStore.reverse_request(db, leave_req.id, actor_id=hr_admin.id)

        result = await db.execute(
            select(LeaveRequest.status).where(LeaveRequest.id == leave_req.id)
        )
        assert result.scalar_one() == LeaveStatus.approved

    async def test_double_reversal_conflicts(
        self, db: AsyncSession, employee, approver, hr_admin,
    ):
        leave_req = await self._approved_request(db, employee, approver)
        await LedgerStore.reverse_request(db, leave_req.id, actor_id=hr_admin.id)

        with pytest.raises(StateConflictError):
            await LedgerStore.reverse_request(db, leave_req.id, actor_id=hr_admin.id)

    async def test_pending_request_cannot_be_reversed(
        self, db: AsyncSession, employee, hr_admin,
    ):
        leave_req = await seed_leave_request(db, employee.id)

        with pytest.raises(StateConflictError):
            await LedgerStore.reverse_request(db, leave_req.id, actor_id=hr_admin.id)

    async def test_missing_request(self, db: AsyncSession, hr_admin):
        with pytest.raises(NotFoundException):
            await LedgerStore.reverse_request(db, uuid.uuid4(), actor_id=hr_admin.id)


# ═════════════════════════════════════════════════════════════════════
# Listing
# ═════════════════════════════════════════════════════════════════════


class TestListEntries:

    async def test_lists_only_the_users_entries(self, db: AsyncSession, employee, approver):
        await seed_grant(db, employee.id, "4")
        await seed_grant(db, employee.id, "2", leave_type=LeaveType.sick)
        await seed_grant(db, approver.id, "9")

        params = PaginationParams(page=1, page_size=10, sort=None)
        page = await LedgerStore.list_entries(db, employee.id, params)

        assert page.meta.total == 2
        assert {e.user_id for e in page.data} == {employee.id}

    async def test_filters_by_leave_type(self, db: AsyncSession, employee):
        await seed_grant(db, employee.id, "4")
        await seed_grant(db, employee.id, "2", leave_type=LeaveType.sick)

        params = PaginationParams(page=1, page_size=10, sort="amount")
        page = await LedgerStore.list_entries(
            db, employee.id, params, leave_type=LeaveType.sick,
        )

        assert [e.amount for e in page.data] == [Decimal("2")]
