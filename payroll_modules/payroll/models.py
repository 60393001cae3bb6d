"""
Payroll Domain Models (``payroll_modules.payroll.models``).

Responsibility
--------------
Frozen dataclass value objects for the nouns of a payroll run: the
payrun itself, each employee's stored payslip, the per-employee summary
row, the run-level summary and the EFT payment batch.

Architecture position
---------------------
**Modules layer** -- pure data definitions with ZERO I/O. Consumed by
``PayrunService`` and returned to callers. Line-level payslip types
(``PayslipEarning``, ``PayslipDeduction``, ``EmployerContribution``) are
defined by ``payroll_engines.payslip`` and reused unchanged.

Invariants enforced
-------------------
* All models are ``frozen=True`` (immutable after construction).
* All monetary fields use ``Decimal`` -- NEVER ``float``.
* ``EmployeePayslip.net_pay == gross_pay - total_deductions``.

Audit relevance
---------------
* A finalized payrun's payslips are the record of what was paid.
* EFT batches support payment reconciliation against run totals.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from enum import Enum

from payroll_engines.payslip import (
    EmployerContribution,
    PayslipCalculation,
    PayslipDeduction,
    PayslipEarning,
)
from payroll_engines.statutory import PAYE_CODE, SDL_CODE, UIF_CODE, UIF_EMPLOYER_CODE
from payroll_engines.validation import ValidationIssue
from payroll_kernel.domain.money import ZERO
from payroll_kernel.logging_config import get_logger

logger = get_logger("modules.payroll.models")


class PayrunStatus(Enum):
    """Payrun lifecycle states."""
    DRAFT = "draft"
    CALCULATING = "calculating"
    READY = "ready"
    FINALIZED = "finalized"


@dataclass(frozen=True)
class Payrun:
    """One payroll run for a pay period."""
    id: str
    pay_period: str
    period_start: date
    period_end: date
    pay_date: date
    pay_frequency_id: str
    pay_frequency_name: str
    created_at: datetime
    created_by: str
    pay_point_ids: tuple[str, ...] = ()
    status: PayrunStatus = PayrunStatus.DRAFT
    employee_count: int = 0
    total_gross: Decimal = ZERO
    total_deductions: Decimal = ZERO
    total_net: Decimal = ZERO
    employees_with_errors: int = 0
    updated_at: datetime | None = None
    finalized_at: datetime | None = None
    finalized_by: str | None = None

    def __post_init__(self):
        if self.period_end < self.period_start:
            raise ValueError(
                f"period_end {self.period_end} is before period_start {self.period_start}"
            )

    @property
    def is_finalized(self) -> bool:
        return self.status is PayrunStatus.FINALIZED

    def includes_pay_point(self, pay_point_id: str | None) -> bool:
        """A run without a pay point subset covers every pay point."""
        return not self.pay_point_ids or pay_point_id in self.pay_point_ids


@dataclass(frozen=True)
class EmployeePayslip:
    """A computed payslip stored on a payrun."""
    id: str
    payrun_id: str
    employee_id: str
    employee_name: str
    employee_number: str
    period_start: date
    period_end: date
    pay_date: date
    earnings: tuple[PayslipEarning, ...]
    deductions: tuple[PayslipDeduction, ...]
    employer_contributions: tuple[EmployerContribution, ...]
    gross_pay: Decimal
    taxable_gross: Decimal
    total_deductions: Decimal
    net_pay: Decimal
    errors: tuple[str, ...]
    ytd_gross: Decimal
    ytd_tax: Decimal
    ytd_net: Decimal
    calculated_at: datetime
    is_edited: bool = False

    @property
    def has_errors(self) -> bool:
        return bool(self.errors)

    def deduction_amount(self, code: str) -> Decimal:
        return sum(
            (d.amount for d in self.deductions if d.code == code and not d.is_skipped),
            ZERO,
        )

    def contribution_amount(self, code: str) -> Decimal:
        return sum((c.amount for c in self.employer_contributions if c.code == code), ZERO)

    @classmethod
    def from_calculation(
        cls,
        payslip_id: str,
        payrun_id: str,
        calculation: PayslipCalculation,
        calculated_at: datetime,
        is_edited: bool = False,
    ) -> EmployeePayslip:
        return cls(
            id=payslip_id,
            payrun_id=payrun_id,
            employee_id=calculation.employee_id,
            employee_name=calculation.employee_name,
            employee_number=calculation.employee_number,
            period_start=calculation.period_start,
            period_end=calculation.period_end,
            pay_date=calculation.pay_date,
            earnings=calculation.earnings,
            deductions=calculation.deductions,
            employer_contributions=calculation.employer_contributions,
            gross_pay=calculation.gross_pay,
            taxable_gross=calculation.taxable_gross,
            total_deductions=calculation.total_deductions,
            net_pay=calculation.net_pay,
            errors=calculation.errors,
            ytd_gross=calculation.ytd_gross,
            ytd_tax=calculation.ytd_tax,
            ytd_net=calculation.ytd_net,
            calculated_at=calculated_at,
            is_edited=is_edited,
        )


@dataclass(frozen=True)
class PayrunEmployee:
    """Per-employee summary row of a payrun."""
    employee_id: str
    employee_name: str
    employee_number: str
    payslip_id: str
    gross_pay: Decimal
    total_deductions: Decimal
    net_pay: Decimal
    has_errors: bool
    errors: tuple[str, ...] = ()

    @classmethod
    def from_payslip(cls, payslip: EmployeePayslip) -> PayrunEmployee:
        return cls(
            employee_id=payslip.employee_id,
            employee_name=payslip.employee_name,
            employee_number=payslip.employee_number,
            payslip_id=payslip.id,
            gross_pay=payslip.gross_pay,
            total_deductions=payslip.total_deductions,
            net_pay=payslip.net_pay,
            has_errors=payslip.has_errors,
            errors=payslip.errors,
        )


@dataclass(frozen=True)
class PayrunSummary:
    """Run-level statutory and cost totals."""
    payrun_id: str
    employee_count: int
    total_gross: Decimal
    total_paye: Decimal
    total_uif: Decimal
    total_sdl: Decimal
    total_other_deductions: Decimal
    total_deductions: Decimal
    total_net: Decimal
    employer_uif: Decimal
    employer_sdl: Decimal

    @property
    def total_cost_to_company(self) -> Decimal:
        return self.total_gross + self.employer_uif + self.employer_sdl

    @classmethod
    def from_payslips(cls, payrun_id: str, payslips: tuple[EmployeePayslip, ...]) -> PayrunSummary:
        total_deductions = sum((p.total_deductions for p in payslips), ZERO)
        total_paye = sum((p.deduction_amount(PAYE_CODE) for p in payslips), ZERO)
        total_uif = sum((p.deduction_amount(UIF_CODE) for p in payslips), ZERO)
        return cls(
            payrun_id=payrun_id,
            employee_count=len(payslips),
            total_gross=sum((p.gross_pay for p in payslips), ZERO),
            total_paye=total_paye,
            total_uif=total_uif,
            total_sdl=sum((p.contribution_amount(SDL_CODE) for p in payslips), ZERO),
            total_other_deductions=total_deductions - total_paye - total_uif,
            total_deductions=total_deductions,
            total_net=sum((p.net_pay for p in payslips), ZERO),
            employer_uif=sum((p.contribution_amount(UIF_EMPLOYER_CODE) for p in payslips), ZERO),
            employer_sdl=sum((p.contribution_amount(SDL_CODE) for p in payslips), ZERO),
        )


@dataclass(frozen=True)
class PayrunFinalization:
    """A finalized payrun plus the non-blocking findings raised on the way."""
    payrun: Payrun
    warnings: tuple[ValidationIssue, ...] = ()


@dataclass(frozen=True)
class EftPayment:
    """One direct-deposit instruction."""
    employee_id: str
    employee_name: str
    bank_name: str
    branch_code: str
    account_number: str
    amount: Decimal


@dataclass(frozen=True)
class EftBatch:
    """A bank payment file for a finalized payrun."""
    payrun_id: str
    effective_date: date
    payments: tuple[EftPayment, ...]
    total: Decimal
    content: str

    @property
    def payment_count(self) -> int:
        return len(self.payments)
