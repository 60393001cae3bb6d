"""
Tests for the termination service.

Tests cover:
- Creation defaults and the non-persisting preview
- Leave payout from balances projected to the termination date
- Skipping deductions on a draft (required deductions refused)
- Submission: blocking validation errors vs. returned warnings
- Completion gated on a finalized payrun, document issue, frozen figures
- Detail view audit log
"""

from datetime import date
from decimal import Decimal

import pytest

from payroll_engines.payslip import PAYE_LINE_ID
from payroll_engines.settlement import RecoveryLine, TerminationReason
from payroll_kernel.domain.audit import AuditAction
from payroll_kernel.exceptions import (
    InvalidLineModificationError,
    InvalidTransitionError,
    TerminationNotFoundError,
    ValidationFailedError,
)
from payroll_modules.termination.models import (
    DocumentType,
    EmployeeProfile,
    TerminationStatus,
)
from payroll_modules.termination.service import TerminationService


@pytest.fixture
def profile() -> EmployeeProfile:
    return EmployeeProfile(
        employee_id="EMP-001",
        employee_name="Thandi Nkosi",
        employee_number="E001",
        monthly_salary=Decimal("15000.00"),
        hire_date=date(2020, 3, 1),
        daily_rate=Decimal("500.00"),
        recoveries=(RecoveryLine("loan-1", "LOAN", "Staff Loan", Decimal("1000.00")),),
    )


@pytest.fixture
def retrenchment(termination_service, profile, context, open_annual_balance):
    open_annual_balance("EMP-001", days="10")
    return termination_service.create_termination(
        profile,
        termination_date=date(2026, 1, 31),
        last_working_day=date(2026, 1, 31),
        reason=TerminationReason.RETRENCHMENT,
        paid_in_lieu=True,
        context=context,
    )


@pytest.fixture
def finalized_payrun(payrun_service, create_payrun, context, make_payslip_input):
    payrun = create_payrun()
    payrun_service.run(payrun.id, [make_payslip_input("EMP-001", basic="15000.00")], context)
    return payrun_service.finalize(payrun.id, context).payrun


# =========================================================================
# Creation and preview
# =========================================================================


class TestCreateAndPreview:

    def test_defaults(self, retrenchment):
        assert retrenchment.status is TerminationStatus.DRAFT
        assert retrenchment.notice_period_days == 30
        assert retrenchment.final_pay_period == "2026-01"

    def test_preview_figures(self, termination_service, retrenchment):
        preview = termination_service.preview(retrenchment.id)
        earnings = preview.pay_components.earnings
        summary = preview.pay_components.summary

        assert earnings.final_salary == Decimal("15000.00")
        assert earnings.notice_pay == Decimal("15000.00")
        assert earnings.severance_pay == Decimal("12500.00")
        assert earnings.leave_payout_days == Decimal("10")
        assert earnings.leave_payout_amount == Decimal("5000.00")
        assert summary.gross_pay == Decimal("47500.00")
        assert summary.total_deductions == Decimal("13052.12")
        assert summary.net_pay == Decimal("34447.88")
        assert preview.validation.is_valid
        assert preview.validation.warning_codes == ("LEAVE_PAYOUT",)

    def test_preview_records_nothing(self, termination_service, retrenchment, auditor):
        before = len(auditor.events)
        termination_service.preview(retrenchment.id)
        assert len(auditor.events) == before

    def test_no_leave_service_means_no_payout(self, auditor, clock, profile, context):
        service = TerminationService(auditor, is_employee_finalized=lambda p, e: True, clock=clock)
        termination = service.create_termination(
            profile, date(2026, 1, 31), date(2026, 1, 31),
            TerminationReason.RESIGNATION, False, context,
        )
        earnings = service.preview(termination.id).pay_components.earnings
        assert earnings.leave_payout_amount == Decimal("0.00")
        assert earnings.notice_pay == Decimal("0.00")
        assert earnings.severance_pay == Decimal("0.00")

    def test_unknown_termination(self, termination_service):
        with pytest.raises(TerminationNotFoundError):
            termination_service.preview("missing")


# =========================================================================
# Deductions
# =========================================================================


class TestDeductionSkips:

    def test_skip_and_restore_recovery(self, termination_service, retrenchment, context):
        skipped = termination_service.set_deduction_skip(retrenchment.id, "loan-1", True, context)
        assert skipped.summary.net_pay == Decimal("35447.88")
        assert termination_service.get_termination(retrenchment.id).skipped_deductions == {"loan-1"}

        restored = termination_service.set_deduction_skip(retrenchment.id, "loan-1", False, context)
        assert restored.summary.net_pay == Decimal("34447.88")

    def test_required_deduction_refused(self, termination_service, retrenchment, context):
        with pytest.raises(InvalidLineModificationError):
            termination_service.set_deduction_skip(retrenchment.id, PAYE_LINE_ID, True, context)
        assert termination_service.get_termination(retrenchment.id).skipped_deductions == frozenset()


# =========================================================================
# Submission and completion
# =========================================================================


class TestSubmission:

    def test_submit_returns_warnings(self, termination_service, retrenchment, context):
        submission = termination_service.submit(retrenchment.id, context)

        assert submission.termination.status is TerminationStatus.PENDING_PAYROLL
        assert submission.termination.submitted_at is not None
        assert [w.code for w in submission.warnings] == ["LEAVE_PAYOUT"]

    def test_blocking_errors_keep_draft(self, termination_service, profile, context):
        termination = termination_service.create_termination(
            profile,
            termination_date=date(2026, 1, 30),
            last_working_day=date(2026, 1, 31),
            reason=TerminationReason.RESIGNATION,
            paid_in_lieu=False,
            context=context,
        )
        with pytest.raises(ValidationFailedError) as exc_info:
            termination_service.submit(termination.id, context)

        assert exc_info.value.rule_codes == ("TERMINATION_BEFORE_LAST_WORKING_DAY",)
        assert termination_service.get_termination(termination.id).status is TerminationStatus.DRAFT

    def test_deductions_locked_after_submit(self, termination_service, retrenchment, context):
        termination_service.submit(retrenchment.id, context)
        with pytest.raises(InvalidTransitionError):
            termination_service.set_deduction_skip(retrenchment.id, "loan-1", True, context)


class TestCompletion:

    def test_requires_finalized_payrun(
        self, termination_service, retrenchment, payrun_service, create_payrun, context,
        make_payslip_input,
    ):
        termination_service.submit(retrenchment.id, context)
        payrun = create_payrun()
        payrun_service.run(payrun.id, [make_payslip_input("EMP-001")], context)

        with pytest.raises(InvalidTransitionError, match="not finalized"):
            termination_service.complete(retrenchment.id, payrun.id, context)
        assert termination_service.get_termination(retrenchment.id).status is (
            TerminationStatus.PENDING_PAYROLL
        )

    def test_draft_cannot_complete(self, termination_service, retrenchment, finalized_payrun, context):
        with pytest.raises(InvalidTransitionError):
            termination_service.complete(retrenchment.id, finalized_payrun.id, context)

    def test_complete_issues_documents(
        self, termination_service, retrenchment, finalized_payrun, manager_context, context,
    ):
        termination_service.submit(retrenchment.id, context)
        completed = termination_service.complete(retrenchment.id, finalized_payrun.id, manager_context)

        assert completed.status is TerminationStatus.COMPLETED
        assert completed.final_payrun_id == finalized_payrun.id
        assert completed.finalized_by == "line-manager"

        detail = termination_service.get_detail(retrenchment.id)
        assert {d.type for d in detail.documents} == set(DocumentType)
        assert all(d.storage_key.startswith(f"terminations/{retrenchment.id}/") for d in detail.documents)

    def test_completed_figures_frozen(
        self, termination_service, leave_service, retrenchment, finalized_payrun, context,
    ):
        termination_service.submit(retrenchment.id, context)
        termination_service.complete(retrenchment.id, finalized_payrun.id, context)

        leave_service.adjust_balance("EMP-001", "annual", Decimal("5"), "Late correction", context)

        assert termination_service.get_detail(retrenchment.id).net_pay == Decimal("34447.88")
        with pytest.raises(InvalidTransitionError):
            termination_service.complete(retrenchment.id, finalized_payrun.id, context)

    def test_draft_preview_follows_leave_balance(
        self, termination_service, leave_service, retrenchment, context,
    ):
        leave_service.adjust_balance("EMP-001", "annual", Decimal("2"), "Service award", context)
        preview = termination_service.preview(retrenchment.id)
        assert preview.pay_components.earnings.leave_payout_amount == Decimal("6000.00")

    def test_detail_audit_log(
        self, termination_service, retrenchment, finalized_payrun, auditor, context,
    ):
        termination_service.set_deduction_skip(retrenchment.id, "loan-1", True, context)
        termination_service.submit(retrenchment.id, context)
        termination_service.complete(retrenchment.id, finalized_payrun.id, context)

        detail = termination_service.get_detail(retrenchment.id)
        assert [e.action for e in detail.audit_log] == [
            AuditAction.TERMINATION_CREATED.value,
            AuditAction.TERMINATION_DEDUCTION_UPDATED.value,
            AuditAction.TERMINATION_SUBMITTED.value,
            AuditAction.TERMINATION_COMPLETED.value,
        ]
        assert detail.audit_log[0].notes == "Termination initiated"
        assert detail.audit_log[-1].notes == "Finalized"
        assert auditor.validate_chain()

    def test_list_by_status(self, termination_service, retrenchment, context):
        termination_service.submit(retrenchment.id, context)
        pending = termination_service.list_terminations(TerminationStatus.PENDING_PAYROLL)
        assert [t.id for t in pending] == [retrenchment.id]
        assert termination_service.list_terminations(TerminationStatus.DRAFT) == ()
