"""
Tests for the leave ledger and leave service.

Tests cover:
- Request creation: day counting, reservation, attachment and type checks
- Insufficient balance: typed error, balance and ledger left untouched
- Approve / reject / cancel transitions and their balance effects
- Cancellation refused once leave has started
- Administrative adjustments (reason required, always audited)
- Scheduled accrual and non-mutating projections
- Overview and calendar read models
"""

from datetime import date
from decimal import Decimal

import pytest

from payroll_kernel.domain.audit import AuditAction
from payroll_kernel.exceptions import (
    InsufficientBalanceError,
    InvalidLeaveRequestError,
    InvalidTransitionError,
    LeaveBalanceExistsError,
    LeaveBalanceNotFoundError,
    LeaveRequestNotFoundError,
    LeaveTypeNotFoundError,
)
from payroll_modules.leave.models import LeaveRequestStatus, LedgerEntryKind


def _request_two_weeks(leave_service, context, employee_id="EMP-001"):
    # Monday 2 March .. Friday 13 March 2026: 10 working days
    return leave_service.create_request(
        employee_id, "annual", date(2026, 3, 2), date(2026, 3, 13), context,
    )


# =========================================================================
# Request creation
# =========================================================================


class TestCreateRequest:

    def test_reserves_working_days(self, leave_service, context, open_annual_balance):
        open_annual_balance()
        request = _request_two_weeks(leave_service, context)

        assert request.status is LeaveRequestStatus.PENDING
        assert request.days == Decimal("10")
        balance = leave_service.ledger.get_balance("EMP-001", "annual")
        assert balance.pending == Decimal("10")
        assert balance.available == Decimal("5")

    def test_insufficient_balance_leaves_state_untouched(
        self, leave_service, context, open_annual_balance,
    ):
        open_annual_balance(days="15")
        before = leave_service.ledger.get_balance("EMP-001", "annual")
        entries_before = leave_service.ledger.entries("EMP-001")

        with pytest.raises(InsufficientBalanceError) as exc_info:
            # Four full weeks: 20 working days
            leave_service.create_request(
                "EMP-001", "annual", date(2026, 3, 2), date(2026, 3, 27), context,
            )

        assert exc_info.value.code == "INSUFFICIENT_BALANCE"
        assert exc_info.value.requested == "20.0000"
        assert leave_service.ledger.get_balance("EMP-001", "annual") == before
        assert leave_service.ledger.entries("EMP-001") == entries_before
        assert leave_service.list_requests() == ()

    def test_negative_balance_type_may_overdraw(self, leave_service, context):
        leave_service.open_balance("EMP-001", "unpaid", date(2026, 1, 1), context)
        leave_service.create_request(
            "EMP-001", "unpaid", date(2026, 3, 2), date(2026, 3, 4), context,
        )
        balance = leave_service.ledger.get_balance("EMP-001", "unpaid")
        assert balance.available == Decimal("-3")

    def test_attachment_required(self, leave_service, context):
        leave_service.open_balance("EMP-001", "sick", date(2026, 1, 1), context)
        leave_service.accrue("EMP-001", "sick", date(2026, 1, 15), context)

        with pytest.raises(InvalidLeaveRequestError, match="attachment"):
            leave_service.create_request(
                "EMP-001", "sick", date(2026, 3, 2), date(2026, 3, 3), context,
            )

        request = leave_service.create_request(
            "EMP-001", "sick", date(2026, 3, 2), date(2026, 3, 3), context,
            attachment_url="https://docs.example.com/note.pdf",
        )
        assert request.days == Decimal("2")

    def test_partial_day(self, leave_service, context, open_annual_balance):
        open_annual_balance()
        request = leave_service.create_request(
            "EMP-001", "annual", date(2026, 3, 4), date(2026, 3, 4), context,
            is_partial_day=True, partial_hours=Decimal("4"),
        )
        assert request.days == Decimal("0.5")

    def test_weekend_only_request_rejected(self, leave_service, context, open_annual_balance):
        open_annual_balance()
        with pytest.raises(InvalidLeaveRequestError, match="no working days"):
            leave_service.create_request(
                "EMP-001", "annual", date(2026, 3, 7), date(2026, 3, 8), context,
            )

    def test_unknown_leave_type(self, leave_service, context):
        with pytest.raises(LeaveTypeNotFoundError):
            leave_service.create_request(
                "EMP-001", "sabbatical", date(2026, 3, 2), date(2026, 3, 3), context,
            )

    def test_inactive_leave_type_rejected(self, leave_service, context, annual_leave, open_annual_balance):
        open_annual_balance()
        leave_service.register_leave_type(annual_leave.with_changes(is_active=False))
        with pytest.raises(InvalidLeaveRequestError, match="inactive"):
            _request_two_weeks(leave_service, context)

    def test_no_balance(self, leave_service, context):
        with pytest.raises(LeaveBalanceNotFoundError):
            _request_two_weeks(leave_service, context)

    def test_balance_opened_twice(self, leave_service, context, open_annual_balance):
        open_annual_balance()
        with pytest.raises(LeaveBalanceExistsError):
            open_annual_balance()

    def test_unknown_request(self, leave_service, context):
        with pytest.raises(LeaveRequestNotFoundError):
            leave_service.approve("missing", context)


# =========================================================================
# Transitions
# =========================================================================


class TestTransitions:

    def test_approve_moves_pending_to_taken(
        self, leave_service, context, manager_context, open_annual_balance,
    ):
        open_annual_balance()
        request = _request_two_weeks(leave_service, context)

        approved = leave_service.approve(request.id, manager_context)

        assert approved.status is LeaveRequestStatus.APPROVED
        assert approved.approved_by == "line-manager"
        balance = leave_service.ledger.get_balance("EMP-001", "annual")
        assert balance.taken == Decimal("10")
        assert balance.pending == Decimal("0")
        assert balance.available == Decimal("5")

    def test_reject_releases_pending(
        self, leave_service, context, manager_context, open_annual_balance,
    ):
        open_annual_balance()
        request = _request_two_weeks(leave_service, context)

        rejected = leave_service.reject(request.id, "Team at minimum staffing", manager_context)

        assert rejected.status is LeaveRequestStatus.REJECTED
        assert rejected.rejection_reason == "Team at minimum staffing"
        assert leave_service.ledger.get_balance("EMP-001", "annual").available == Decimal("15")

    def test_reject_requires_reason(self, leave_service, context, open_annual_balance):
        open_annual_balance()
        request = _request_two_weeks(leave_service, context)
        with pytest.raises(InvalidLeaveRequestError):
            leave_service.reject(request.id, " ", context)
        assert leave_service.get_request(request.id).status is LeaveRequestStatus.PENDING

    def test_cancel_approved_restores_balance(
        self, leave_service, context, manager_context, open_annual_balance,
    ):
        open_annual_balance()
        request = _request_two_weeks(leave_service, context)
        leave_service.approve(request.id, manager_context)

        cancelled = leave_service.cancel(request.id, context)

        assert cancelled.status is LeaveRequestStatus.CANCELLED
        balance = leave_service.ledger.get_balance("EMP-001", "annual")
        assert balance.taken == Decimal("0")
        assert balance.available == Decimal("15")

    def test_cancelled_carried_days_remain_subject_to_expiry(
        self, leave_service, context, manager_context,
    ):
        leave_service.open_balance(
            "EMP-001", "annual", date(2025, 12, 1), context, opening_accrued=Decimal("6.75"),
        )
        leave_service.accrue("EMP-001", "annual", date(2026, 1, 1), context)
        # Monday 2 .. Wednesday 4 March, drawn from the 5 carried days
        request = leave_service.create_request(
            "EMP-001", "annual", date(2026, 3, 2), date(2026, 3, 4), context,
        )
        leave_service.approve(request.id, manager_context)
        leave_service.cancel(request.id, context)

        restored = leave_service.ledger.get_balance("EMP-001", "annual")
        assert restored.carry_over_remaining == Decimal("5")

        balance = leave_service.accrue("EMP-001", "annual", date(2026, 4, 1), context)
        assert balance.available == Decimal("3.75")
        expiries = [
            e for e in leave_service.ledger.entries("EMP-001", "annual")
            if e.kind is LedgerEntryKind.CARRY_OVER_EXPIRY
        ]
        assert [e.amount for e in expiries] == [Decimal("-5")]

    def test_cancel_pending_releases(self, leave_service, context, open_annual_balance):
        open_annual_balance()
        request = _request_two_weeks(leave_service, context)
        leave_service.cancel(request.id, context)
        assert leave_service.ledger.get_balance("EMP-001", "annual").pending == Decimal("0")

    def test_cancel_after_start_refused(
        self, leave_service, context, manager_context, open_annual_balance,
    ):
        open_annual_balance()
        # Monday 12 .. Wednesday 14 January; today is Thursday 15 January
        request = leave_service.create_request(
            "EMP-001", "annual", date(2026, 1, 12), date(2026, 1, 14), context,
        )
        leave_service.approve(request.id, manager_context)

        with pytest.raises(InvalidTransitionError, match="adjustment"):
            leave_service.cancel(request.id, context)

        assert leave_service.get_request(request.id).status is LeaveRequestStatus.APPROVED
        assert leave_service.ledger.get_balance("EMP-001", "annual").taken == Decimal("3")

    def test_terminal_states_refuse_transitions(
        self, leave_service, context, manager_context, open_annual_balance,
    ):
        open_annual_balance()
        request = _request_two_weeks(leave_service, context)
        leave_service.reject(request.id, "No cover", manager_context)

        with pytest.raises(InvalidTransitionError):
            leave_service.approve(request.id, manager_context)
        with pytest.raises(InvalidTransitionError):
            leave_service.cancel(request.id, context)

    def test_double_approve_refused(
        self, leave_service, context, manager_context, open_annual_balance,
    ):
        open_annual_balance()
        request = _request_two_weeks(leave_service, context)
        leave_service.approve(request.id, manager_context)

        with pytest.raises(InvalidTransitionError):
            leave_service.approve(request.id, manager_context)
        assert leave_service.ledger.get_balance("EMP-001", "annual").taken == Decimal("10")

    def test_one_audit_event_per_transition(
        self, leave_service, auditor, context, manager_context, open_annual_balance,
    ):
        open_annual_balance()
        request = _request_two_weeks(leave_service, context)
        leave_service.approve(request.id, manager_context)
        leave_service.cancel(request.id, context)

        trace = auditor.get_trace("LeaveRequest", request.id)
        assert trace.actions == (
            AuditAction.LEAVE_REQUESTED,
            AuditAction.LEAVE_APPROVED,
            AuditAction.LEAVE_CANCELLED,
        )
        assert trace.entries[1].actor_id == "line-manager"
        assert auditor.validate_chain()

    def test_ledger_entries_reconcile(
        self, leave_service, context, manager_context, open_annual_balance,
    ):
        open_annual_balance()
        request = _request_two_weeks(leave_service, context)
        leave_service.approve(request.id, manager_context)

        entries = leave_service.ledger.entries("EMP-001", "annual")
        assert [e.kind for e in entries] == [
            LedgerEntryKind.OPENING, LedgerEntryKind.RESERVE, LedgerEntryKind.COMMIT,
        ]
        assert entries[-1].available_after == Decimal("5")
        assert all(e.reference_id == request.id for e in entries[1:])


# =========================================================================
# Adjustments and accrual
# =========================================================================


class TestAdjustments:

    def test_adjustment_requires_reason(self, leave_service, context, open_annual_balance):
        open_annual_balance()
        with pytest.raises(ValueError, match="reason"):
            leave_service.adjust_balance("EMP-001", "annual", Decimal("2"), "", context)

    def test_adjustment_applied_and_audited(
        self, leave_service, auditor, context, open_annual_balance,
    ):
        open_annual_balance()
        balance = leave_service.adjust_balance(
            "EMP-001", "annual", Decimal("-16"), "Leave taken before migration", context,
        )

        # Adjustments may drive a balance negative
        assert balance.available == Decimal("-1")
        assert auditor.events[-1].action is AuditAction.LEAVE_ADJUSTED
        assert auditor.events[-1].payload["reason"] == "Leave taken before migration"
        entry = leave_service.ledger.entries("EMP-001", "annual")[-1]
        assert entry.kind is LedgerEntryKind.ADJUSTMENT
        assert entry.note == "Leave taken before migration"


class TestAccrual:

    def test_accrue_all_is_idempotent(self, leave_service, context, open_annual_balance):
        open_annual_balance("EMP-001")
        open_annual_balance("EMP-002", days="0")

        leave_service.accrue_all(date(2026, 3, 1), context)
        first = leave_service.list_balances()
        leave_service.accrue_all(date(2026, 3, 1), context)

        assert leave_service.list_balances() == first
        # 15 Jan start: 17/31 of 1.25 for January, then February in full
        assert leave_service.ledger.get_balance("EMP-002", "annual").accrued == Decimal("1.9355")

    def test_projection_does_not_mutate(self, leave_service, context, open_annual_balance):
        open_annual_balance()
        projected = dict(
            (lt.id, balance)
            for lt, balance in leave_service.projected_balances("EMP-001", date(2026, 3, 1))
        )

        assert projected["annual"].accrued == Decimal("16.9355")
        assert leave_service.ledger.get_balance("EMP-001", "annual").accrued == Decimal("15")


# =========================================================================
# Read models
# =========================================================================


class TestReadModels:

    def test_overview(self, leave_service, context, manager_context, open_annual_balance):
        open_annual_balance("EMP-001")
        open_annual_balance("EMP-002")
        first = _request_two_weeks(leave_service, context, "EMP-001")
        _request_two_weeks(leave_service, context, "EMP-002")
        leave_service.approve(first.id, manager_context)
        leave_service.open_balance("EMP-003", "unpaid", date(2026, 1, 1), context)
        leave_service.create_request(
            "EMP-003", "unpaid", date(2026, 2, 2), date(2026, 2, 3), context,
        )

        upcoming = leave_service.overview(as_of=date(2026, 2, 20))
        assert upcoming.pending_approval_count == 2
        assert [r.id for r in upcoming.upcoming_leave] == [first.id]
        assert [b.employee_id for b in upcoming.negative_balances] == ["EMP-003"]

        during = leave_service.overview(as_of=date(2026, 3, 3))
        assert during.employees_on_leave == ("EMP-001",)

    def test_calendar(self, leave_service, context, manager_context, open_annual_balance):
        open_annual_balance()
        request = _request_two_weeks(leave_service, context)
        leave_service.approve(request.id, manager_context)

        march = leave_service.calendar(2026, 3)
        assert len(march) == 1
        assert march[0].leave_type_name == "Annual Leave"
        assert march[0].days == Decimal("10")
        assert leave_service.calendar(2026, 4) == ()
