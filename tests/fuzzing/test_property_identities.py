"""
Hypothesis-based property tests.

Properties checked:
- Leave balance identity: available == accrued - taken - pending after any
  sequence of reservations, approvals and releases
- A leave type that disallows negatives never goes below zero
- Payslip net identity: net == gross - sum(non-skipped deductions)
- Settlement net identity for arbitrary salaries and recoveries
"""

from datetime import date
from decimal import Decimal

import pytest
from hypothesis import HealthCheck, given, settings
from hypothesis import strategies as st

from payroll_engines.leave_accrual import (
    AccrualMethod,
    LeaveType,
    commit_days,
    opening_balance,
    reserve_days,
)
from payroll_engines.payslip import DeductionLine, EarningLine, PayslipInput, calculate_payslip
from payroll_engines.settlement import (
    RecoveryLine,
    SettlementInput,
    TerminationReason,
    WeeksPerYearSeverance,
    calculate_settlement,
)
from payroll_engines.statutory import FlatRateStatutoryRules
from payroll_kernel.exceptions import InsufficientBalanceError

pytestmark = pytest.mark.fuzzing

FUZZ_SETTINGS = settings(
    max_examples=150,
    deadline=None,
    suppress_health_check=[HealthCheck.too_slow],
)

ANNUAL = LeaveType(
    id="annual",
    name="Annual Leave",
    code="ANNUAL",
    accrual_method=AccrualMethod.NONE,
)

day_counts = st.decimals(
    min_value=Decimal("0.25"), max_value=Decimal("10"), places=2,
    allow_nan=False, allow_infinity=False,
)
money = st.decimals(
    min_value=Decimal("0"), max_value=Decimal("250000"), places=2,
    allow_nan=False, allow_infinity=False,
)
operations = st.lists(
    st.tuples(st.sampled_from(["reserve", "approve", "release"]), day_counts),
    max_size=40,
)


@FUZZ_SETTINGS
@given(opening=st.integers(min_value=0, max_value=40), ops=operations)
def test_balance_identity_holds(opening, ops):
    balance = opening_balance("EMP-001", ANNUAL, date(2026, 1, 1), Decimal(opening))
    outstanding: list[Decimal] = []

    for op, days in ops:
        if op == "reserve":
            try:
                balance = reserve_days(balance, ANNUAL, days)
            except InsufficientBalanceError:
                continue
            outstanding.append(days)
        elif outstanding:
            held = outstanding.pop(0)
            balance = commit_days(balance, held, approved=(op == "approve"))

        assert balance.available == balance.accrued - balance.taken - balance.pending
        assert balance.available >= 0
        assert balance.pending == sum(outstanding, Decimal("0"))
        assert balance.taken >= 0


@FUZZ_SETTINGS
@given(
    basic=money,
    bonus=money,
    voluntary=st.lists(st.tuples(money, st.booleans()), max_size=5),
)
def test_payslip_net_identity(basic, bonus, voluntary):
    payslip_input = PayslipInput(
        employee_id="EMP-001",
        employee_name="Fuzz",
        employee_number="E001",
        period_start=date(2026, 1, 1),
        period_end=date(2026, 1, 31),
        pay_date=date(2026, 1, 25),
        earnings=(
            EarningLine(id="basic", code="BASIC", name="Basic", amount=basic),
            EarningLine(id="bonus", code="BONUS", name="Bonus", amount=bonus, taxable=False),
        ),
        deductions=tuple(
            DeductionLine(id=f"ded-{i}", code=f"VOL{i}", name="Voluntary",
                          amount=amount, is_skipped=skipped)
            for i, (amount, skipped) in enumerate(voluntary)
        ),
    )
    calc = calculate_payslip(payslip_input, FlatRateStatutoryRules())

    counted = sum((d.amount for d in calc.deductions if not d.is_skipped), Decimal("0"))
    assert calc.gross_pay == basic + bonus
    assert calc.taxable_gross == basic
    assert calc.total_deductions == counted
    assert calc.net_pay == calc.gross_pay - calc.total_deductions
    if calc.net_pay < 0:
        assert any("Net pay is negative" in e for e in calc.errors)


@FUZZ_SETTINGS
@given(
    salary=money,
    recoveries=st.lists(money, max_size=4),
    reason=st.sampled_from(list(TerminationReason)),
    paid_in_lieu=st.booleans(),
)
def test_settlement_net_identity(salary, recoveries, reason, paid_in_lieu):
    settlement_input = SettlementInput(
        employee_id="EMP-001",
        employee_name="Fuzz",
        employee_number="E001",
        termination_date=date(2026, 1, 31),
        last_working_day=date(2026, 1, 31),
        reason=reason,
        monthly_salary=salary,
        notice_period_days=30,
        paid_in_lieu=paid_in_lieu,
        hire_date=date(2018, 6, 1),
        recoveries=tuple(
            RecoveryLine(f"rec-{i}", "LOAN", "Recovery", amount)
            for i, amount in enumerate(recoveries)
        ),
    )
    result = calculate_settlement(settlement_input, FlatRateStatutoryRules(), WeeksPerYearSeverance())

    summary = result.summary
    assert summary.net_pay == summary.gross_pay - summary.total_deductions
    assert summary.total_deductions == sum(
        (d.amount for d in result.deductions if not d.skip), Decimal("0"),
    )
