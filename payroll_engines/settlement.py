"""
payroll_engines.settlement -- Termination final-pay calculator.

Responsibility:
    Compose the final payout for a departing employee: prorated final
    salary, notice pay in lieu, severance, prorated allowances, leave
    payout, statutory deductions on the combined gross and outstanding
    debt recoveries.

Architecture position:
    Engines -- pure calculation layer, zero I/O. Leave entitlements arrive
    already projected to the termination date by the Leave Ledger; the
    statutory and severance capabilities are injected.

Rules:
    daily rate       monthly salary / 21.67 working days, unless an
                     explicit daily rate is supplied.
    final salary     monthly salary x calendar days worked in the final
                     month / days in that month, counted from the later of
                     the month start and the day after ``paid_through``.
    notice pay       notice days x daily rate when paid in lieu, else 0.
    severance        ``SeveranceFormula``; the reference formula pays one
                     week per completed year of service on retrenchment.
    pro-rata         each monthly allowance prorated like final salary.
    leave payout     sum of positive available days over paid leave
                     types x daily rate.

Invariants enforced:
    - ``summary.net_pay == summary.gross_pay - summary.total_deductions``.
    - Required deductions (PAYE, UIF) cannot be skipped
      (``InvalidLineModificationError``).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, timedelta
from decimal import Decimal
from enum import Enum
from typing import Protocol, runtime_checkable

from payroll_kernel.domain.money import (
    DEFAULT_CURRENCY_PLACES,
    ZERO,
    round_days,
    round_money,
    sum_money,
)
from payroll_kernel.exceptions import InvalidLineModificationError
from payroll_engines.leave_accrual import days_between, month_end, month_start
from payroll_engines.payslip import PAYE_LINE_ID, UIF_LINE_ID, YearToDate
from payroll_engines.statutory import PAYE_CODE, UIF_CODE, StatutoryRules
from payroll_engines.tracer import traced_engine


class TerminationReason(Enum):
    RESIGNATION = "resignation"
    DISMISSAL = "dismissal"
    RETRENCHMENT = "retrenchment"
    CONTRACT_END = "contract_end"
    DEATH = "death"


@runtime_checkable
class SeveranceFormula(Protocol):
    """Jurisdiction-specific severance capability."""

    def compute(
        self,
        reason: TerminationReason,
        hire_date: date | None,
        termination_date: date,
        weekly_rate: Decimal,
    ) -> Decimal:
        ...


def completed_years(start: date, end: date) -> int:
    """Whole years of service from ``start`` to ``end``."""
    years = end.year - start.year
    if (end.month, end.day) < (start.month, start.day):
        years -= 1
    return max(years, 0)


@dataclass(frozen=True)
class WeeksPerYearSeverance:
    """``weeks_per_year`` weeks of pay per completed year, for qualifying reasons."""
    weeks_per_year: Decimal = Decimal("1")
    qualifying_reasons: frozenset[TerminationReason] = frozenset({TerminationReason.RETRENCHMENT})

    def compute(
        self,
        reason: TerminationReason,
        hire_date: date | None,
        termination_date: date,
        weekly_rate: Decimal,
    ) -> Decimal:
        if reason not in self.qualifying_reasons or hire_date is None:
            return ZERO
        years = completed_years(hire_date, termination_date)
        return weekly_rate * self.weeks_per_year * years


@dataclass(frozen=True)
class Allowance:
    """A periodic (monthly) allowance to prorate into the final pay."""
    code: str
    name: str
    monthly_amount: Decimal
    taxable: bool = True


@dataclass(frozen=True)
class LeaveEntitlement:
    """A leave balance projected to the termination date."""
    leave_type_id: str
    name: str
    available: Decimal
    is_paid: bool = True


@dataclass(frozen=True)
class RecoveryLine:
    """Outstanding debt to recover from the settlement (loan, advance, equipment)."""
    id: str
    code: str
    name: str
    amount: Decimal
    is_required: bool = False


@dataclass(frozen=True)
class SettlementInput:
    employee_id: str
    employee_name: str
    employee_number: str
    termination_date: date
    last_working_day: date
    reason: TerminationReason
    monthly_salary: Decimal
    notice_period_days: int
    paid_in_lieu: bool
    hire_date: date | None = None
    paid_through: date | None = None
    daily_rate: Decimal | None = None
    allowances: tuple[Allowance, ...] = ()
    leave_entitlements: tuple[LeaveEntitlement, ...] = ()
    recoveries: tuple[RecoveryLine, ...] = ()
    ytd: YearToDate = field(default_factory=YearToDate)


@dataclass(frozen=True)
class SettlementRules:
    working_days_per_month: Decimal = Decimal("21.67")
    working_days_per_week: Decimal = Decimal("5")
    currency_places: int = DEFAULT_CURRENCY_PLACES

    def __post_init__(self) -> None:
        if self.working_days_per_month <= 0:
            raise ValueError("working_days_per_month must be positive")
        if self.working_days_per_week <= 0:
            raise ValueError("working_days_per_week must be positive")


@dataclass(frozen=True)
class TerminationEarnings:
    final_salary: Decimal
    notice_pay: Decimal
    severance_pay: Decimal
    pro_rata_earnings: Decimal
    leave_payout_days: Decimal
    leave_payout_amount: Decimal

    @property
    def total(self) -> Decimal:
        return (
            self.final_salary + self.notice_pay + self.severance_pay
            + self.pro_rata_earnings + self.leave_payout_amount
        )


@dataclass(frozen=True)
class TerminationDeduction:
    id: str
    code: str
    name: str
    amount: Decimal
    skip: bool = False
    is_required: bool = False


@dataclass(frozen=True)
class TerminationSummary:
    gross_pay: Decimal
    total_deductions: Decimal
    net_pay: Decimal
    paye: Decimal
    uif: Decimal


@dataclass(frozen=True)
class TerminationPayComponents:
    earnings: TerminationEarnings
    deductions: tuple[TerminationDeduction, ...]
    summary: TerminationSummary
    daily_rate: Decimal


def daily_rate_for(settlement_input: SettlementInput, rules: SettlementRules) -> Decimal:
    if settlement_input.daily_rate is not None:
        return settlement_input.daily_rate
    return round_money(
        settlement_input.monthly_salary / rules.working_days_per_month, rules.currency_places,
    )


def final_month_fraction(last_working_day: date, paid_through: date | None) -> Decimal:
    """Share of the final month's calendar days not yet paid by regular payroll."""
    start = month_start(last_working_day)
    if paid_through is not None and paid_through + timedelta(days=1) > start:
        start = paid_through + timedelta(days=1)
    if start > last_working_day:
        return ZERO
    worked = days_between(start, last_working_day)
    in_month = days_between(month_start(last_working_day), month_end(last_working_day))
    return Decimal(worked) / Decimal(in_month)


@traced_engine("settlement", "1.0", fingerprint_fields=("settlement_input", "skipped_deductions"))
def calculate_settlement(
    settlement_input: SettlementInput,
    statutory_rules: StatutoryRules,
    severance_formula: SeveranceFormula,
    rules: SettlementRules = SettlementRules(),
    skipped_deductions: frozenset[str] = frozenset(),
) -> TerminationPayComponents:
    """
    Compute termination pay components.

    Raises:
        InvalidLineModificationError: if ``skipped_deductions`` names a
            required deduction.
    """
    places = rules.currency_places
    daily_rate = daily_rate_for(settlement_input, rules)
    fraction = final_month_fraction(settlement_input.last_working_day, settlement_input.paid_through)

    final_salary = round_money(settlement_input.monthly_salary * fraction, places)
    notice_pay = (
        round_money(Decimal(settlement_input.notice_period_days) * daily_rate, places)
        if settlement_input.paid_in_lieu else round_money(ZERO, places)
    )
    severance_pay = round_money(
        severance_formula.compute(
            settlement_input.reason,
            settlement_input.hire_date,
            settlement_input.termination_date,
            daily_rate * rules.working_days_per_week,
        ),
        places,
    )
    pro_rata_lines = [
        (a, round_money(a.monthly_amount * fraction, places))
        for a in settlement_input.allowances
    ]
    pro_rata = sum_money((amount for _, amount in pro_rata_lines), places)

    payout_days = round_days(sum(
        (max(e.available, ZERO) for e in settlement_input.leave_entitlements if e.is_paid),
        ZERO,
    ))
    payout_amount = round_money(payout_days * daily_rate, places)

    earnings = TerminationEarnings(
        final_salary=final_salary,
        notice_pay=notice_pay,
        severance_pay=severance_pay,
        pro_rata_earnings=pro_rata,
        leave_payout_days=payout_days,
        leave_payout_amount=payout_amount,
    )
    gross_pay = sum_money((
        final_salary, notice_pay, severance_pay, pro_rata, payout_amount,
    ), places)
    non_taxable = sum_money((amount for a, amount in pro_rata_lines if not a.taxable), places)

    statutory = statutory_rules.compute(
        gross_pay=gross_pay,
        taxable_gross=gross_pay - non_taxable,
        ytd_gross=settlement_input.ytd.gross,
        ytd_tax=settlement_input.ytd.tax,
    )

    deductions = [
        TerminationDeduction(PAYE_LINE_ID, PAYE_CODE, "PAYE",
                             round_money(statutory.paye, places), is_required=True),
        TerminationDeduction(UIF_LINE_ID, UIF_CODE, "UIF",
                             round_money(statutory.uif_employee, places), is_required=True),
    ]
    for line in settlement_input.recoveries:
        deductions.append(TerminationDeduction(
            line.id, line.code, line.name, round_money(line.amount, places),
            is_required=line.is_required,
        ))

    known_ids = {d.id for d in deductions}
    for deduction_id in sorted(skipped_deductions):
        if deduction_id not in known_ids:
            raise InvalidLineModificationError(deduction_id, "no such deduction on this settlement")
    resolved = []
    for d in deductions:
        if d.id in skipped_deductions:
            if d.is_required:
                raise InvalidLineModificationError(d.code, "required deductions cannot be skipped")
            d = TerminationDeduction(d.id, d.code, d.name, d.amount, skip=True, is_required=False)
        resolved.append(d)

    total_deductions = sum_money((d.amount for d in resolved if not d.skip), places)
    summary = TerminationSummary(
        gross_pay=gross_pay,
        total_deductions=total_deductions,
        net_pay=round_money(gross_pay - total_deductions, places),
        paye=resolved[0].amount,
        uif=resolved[1].amount,
    )
    return TerminationPayComponents(
        earnings=earnings,
        deductions=tuple(resolved),
        summary=summary,
        daily_rate=daily_rate,
    )
