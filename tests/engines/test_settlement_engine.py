"""
Tests for the termination settlement calculator.

Tests cover:
- Final salary proration and the paid-through cut-off
- Notice pay in lieu and severance per reason
- Leave payout over paid leave types only
- Recovery deductions and skip rules
- The settlement net pay identity
"""

from datetime import date
from decimal import Decimal

import pytest

from payroll_engines.payslip import PAYE_LINE_ID
from payroll_engines.settlement import (
    Allowance,
    LeaveEntitlement,
    RecoveryLine,
    SettlementInput,
    TerminationReason,
    WeeksPerYearSeverance,
    calculate_settlement,
    completed_years,
)
from payroll_engines.statutory import FlatRateStatutoryRules
from payroll_kernel.exceptions import InvalidLineModificationError

RULES = FlatRateStatutoryRules()
SEVERANCE = WeeksPerYearSeverance()


def _settlement_input(**overrides) -> SettlementInput:
    values = dict(
        employee_id="EMP-001",
        employee_name="Thandi Nkosi",
        employee_number="E001",
        termination_date=date(2026, 1, 31),
        last_working_day=date(2026, 1, 31),
        reason=TerminationReason.RETRENCHMENT,
        monthly_salary=Decimal("15000.00"),
        notice_period_days=30,
        paid_in_lieu=True,
        hire_date=date(2020, 3, 1),
        daily_rate=Decimal("500.00"),
    )
    values.update(overrides)
    return SettlementInput(**values)


class TestEarnings:

    def test_retrenchment_pays_notice_and_severance(self):
        result = calculate_settlement(_settlement_input(), RULES, SEVERANCE)

        assert result.earnings.final_salary == Decimal("15000.00")
        assert result.earnings.notice_pay == Decimal("15000.00")
        # Five completed years at one week (5 x 500) each
        assert result.earnings.severance_pay == Decimal("12500.00")

    def test_resignation_has_no_notice_pay_or_severance(self):
        result = calculate_settlement(
            _settlement_input(reason=TerminationReason.RESIGNATION, paid_in_lieu=False),
            RULES, SEVERANCE,
        )
        assert result.earnings.notice_pay == Decimal("0.00")
        assert result.earnings.severance_pay == Decimal("0.00")

    def test_final_salary_after_paid_through(self):
        result = calculate_settlement(
            _settlement_input(paid_through=date(2026, 1, 15)), RULES, SEVERANCE,
        )
        # 16 of 31 days unpaid
        assert result.earnings.final_salary == Decimal("7741.94")

    def test_fully_paid_month_has_no_final_salary(self):
        result = calculate_settlement(
            _settlement_input(paid_through=date(2026, 1, 31)), RULES, SEVERANCE,
        )
        assert result.earnings.final_salary == Decimal("0.00")

    def test_daily_rate_derived_from_salary(self):
        result = calculate_settlement(
            _settlement_input(daily_rate=None), RULES, SEVERANCE,
        )
        # 15000 / 21.67
        assert result.daily_rate == Decimal("692.20")

    def test_allowances_prorated(self):
        car = Allowance(code="CAR", name="Car Allowance", monthly_amount=Decimal("3100.00"))
        result = calculate_settlement(
            _settlement_input(last_working_day=date(2026, 1, 10), allowances=(car,)),
            RULES, SEVERANCE,
        )
        assert result.earnings.pro_rata_earnings == Decimal("1000.00")

    def test_leave_payout_counts_paid_positive_balances(self):
        entitlements = (
            LeaveEntitlement("annual", "Annual Leave", Decimal("10")),
            LeaveEntitlement("study", "Study Leave", Decimal("-2")),
            LeaveEntitlement("unpaid", "Unpaid Leave", Decimal("4"), is_paid=False),
        )
        result = calculate_settlement(
            _settlement_input(leave_entitlements=entitlements), RULES, SEVERANCE,
        )
        assert result.earnings.leave_payout_days == Decimal("10")
        assert result.earnings.leave_payout_amount == Decimal("5000.00")

    def test_completed_years(self):
        assert completed_years(date(2020, 3, 1), date(2026, 2, 28)) == 5
        assert completed_years(date(2020, 3, 1), date(2026, 3, 1)) == 6
        assert completed_years(date(2026, 3, 1), date(2020, 3, 1)) == 0


class TestDeductions:

    def test_net_identity(self):
        loan = RecoveryLine("loan-1", "LOAN", "Staff Loan", Decimal("1000.00"))
        result = calculate_settlement(
            _settlement_input(recoveries=(loan,)), RULES, SEVERANCE,
        )
        summary = result.summary
        assert summary.gross_pay == Decimal("42500.00")
        assert summary.paye == Decimal("10625.00")
        assert summary.uif == Decimal("177.12")
        assert summary.total_deductions == Decimal("11802.12")
        assert summary.net_pay == summary.gross_pay - summary.total_deductions

    def test_skipping_recovery_excludes_it(self):
        loan = RecoveryLine("loan-1", "LOAN", "Staff Loan", Decimal("1000.00"))
        result = calculate_settlement(
            _settlement_input(recoveries=(loan,)), RULES, SEVERANCE,
            skipped_deductions=frozenset({"loan-1"}),
        )
        skipped = [d for d in result.deductions if d.id == "loan-1"][0]
        assert skipped.skip
        assert result.summary.total_deductions == Decimal("10802.12")

    def test_skipping_required_deduction_raises(self):
        with pytest.raises(InvalidLineModificationError):
            calculate_settlement(
                _settlement_input(), RULES, SEVERANCE,
                skipped_deductions=frozenset({PAYE_LINE_ID}),
            )

    def test_skipping_required_recovery_raises(self):
        garnishee = RecoveryLine("court-1", "GARNISHEE", "Court Order", Decimal("500.00"),
                                 is_required=True)
        with pytest.raises(InvalidLineModificationError):
            calculate_settlement(
                _settlement_input(recoveries=(garnishee,)), RULES, SEVERANCE,
                skipped_deductions=frozenset({"court-1"}),
            )

    def test_skipping_unknown_deduction_raises(self):
        with pytest.raises(InvalidLineModificationError):
            calculate_settlement(
                _settlement_input(), RULES, SEVERANCE,
                skipped_deductions=frozenset({"missing"}),
            )
