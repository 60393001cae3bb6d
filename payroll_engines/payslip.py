"""
payroll_engines.payslip -- Deterministic gross-to-net for one employee.

Responsibility:
    Turn a ``PayslipInput`` (compensation lines, period, prior year-to-date
    snapshot, banking/tax identity) plus editor ``PayslipOverrides`` into a
    ``PayslipCalculation``: ordered earnings and deductions, employer
    contributions, gross, taxable gross, total deductions, net, error flags
    and updated year-to-date figures.

Architecture position:
    Engines -- pure calculation layer, zero I/O. The statutory capability
    (``StatutoryRules``) is injected. Called concurrently by
    ``PayrunService`` for every employee in a run.

Invariants enforced:
    - ``net_pay == gross_pay - total_deductions`` exactly; every line is
      quantized to currency precision (round-half-even) before summing.
    - Required lines are never skipped: an override that tries raises
      ``InvalidLineModificationError``; a required line marked skipped in
      the input is counted and flagged in ``errors``.
    - Purity: identical inputs produce identical (equal) output.
    - Faulty data (missing required line, negative amount, excessive
      hours, missing tax number or bank details, negative net) is recorded
      in ``errors`` with best-effort totals. It is never raised and never
      silently corrected.

Failure modes:
    - InvalidLineModificationError for illegal overrides.
    - PayslipLineNotFoundError when an override names an unknown line.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal

from payroll_kernel.domain.money import DEFAULT_CURRENCY_PLACES, ZERO, round_money, sum_money
from payroll_kernel.exceptions import (
    InvalidLineModificationError,
    PayslipLineNotFoundError,
)
from payroll_engines.statutory import (
    PAYE_CODE,
    SDL_CODE,
    UIF_CODE,
    UIF_EMPLOYER_CODE,
    StatutoryRules,
)
from payroll_engines.tracer import traced_engine

PAYE_LINE_ID = "statutory-paye"
UIF_LINE_ID = "statutory-uif"


# ---------------------------------------------------------------------------
# Inputs
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class BankAccount:
    bank_name: str | None = None
    account_number: str | None = None
    branch_code: str | None = None
    account_holder: str | None = None

    @property
    def is_complete(self) -> bool:
        return all((self.bank_name, self.account_number, self.branch_code, self.account_holder))


@dataclass(frozen=True)
class EarningLine:
    """
    An earning definition for the period.

    ``amount`` is explicit; when it is None the amount is ``hours * rate``.
    """
    id: str
    code: str
    name: str
    amount: Decimal | None = None
    hours: Decimal | None = None
    rate: Decimal | None = None
    taxable: bool = True
    is_required: bool = False
    note: str | None = None


@dataclass(frozen=True)
class DeductionLine:
    """A voluntary or recovery deduction definition for the period."""
    id: str
    code: str
    name: str
    amount: Decimal
    is_required: bool = False
    is_skipped: bool = False
    note: str | None = None


@dataclass(frozen=True)
class YearToDate:
    gross: Decimal = ZERO
    tax: Decimal = ZERO
    net: Decimal = ZERO


@dataclass(frozen=True)
class PayslipInput:
    """Snapshot of one employee's pay data for one period."""
    employee_id: str
    employee_name: str
    employee_number: str
    period_start: date
    period_end: date
    pay_date: date
    earnings: tuple[EarningLine, ...]
    deductions: tuple[DeductionLine, ...] = ()
    ytd: YearToDate = field(default_factory=YearToDate)
    tax_number: str | None = None
    bank_account: BankAccount | None = None
    pay_point_id: str | None = None
    is_active: bool = True


@dataclass(frozen=True)
class LineOverride:
    """Editor change to one line. ``None`` fields are left as computed."""
    line_id: str
    amount: Decimal | None = None
    hours: Decimal | None = None
    rate: Decimal | None = None
    is_skipped: bool | None = None
    note: str | None = None

    def merged_with(self, newer: "LineOverride") -> "LineOverride":
        return LineOverride(
            line_id=self.line_id,
            amount=newer.amount if newer.amount is not None else self.amount,
            hours=newer.hours if newer.hours is not None else self.hours,
            rate=newer.rate if newer.rate is not None else self.rate,
            is_skipped=newer.is_skipped if newer.is_skipped is not None else self.is_skipped,
            note=newer.note if newer.note is not None else self.note,
        )


@dataclass(frozen=True)
class PayslipOverrides:
    lines: tuple[LineOverride, ...] = ()

    def get(self, line_id: str) -> LineOverride | None:
        for o in self.lines:
            if o.line_id == line_id:
                return o
        return None

    def with_override(self, override: LineOverride) -> "PayslipOverrides":
        existing = self.get(override.line_id)
        merged = existing.merged_with(override) if existing else override
        others = tuple(o for o in self.lines if o.line_id != override.line_id)
        return PayslipOverrides(lines=others + (merged,))

    @property
    def is_empty(self) -> bool:
        return not self.lines


@dataclass(frozen=True)
class PayslipRules:
    """Organization-level payslip policy."""
    required_earning_codes: tuple[str, ...] = ("BASIC",)
    required_deduction_codes: tuple[str, ...] = (PAYE_CODE, UIF_CODE)
    max_hours: Decimal = Decimal("300")
    require_tax_number: bool = True
    require_bank_details: bool = True
    currency_places: int = DEFAULT_CURRENCY_PLACES


# ---------------------------------------------------------------------------
# Outputs
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class PayslipEarning:
    id: str
    code: str
    name: str
    amount: Decimal
    hours: Decimal | None = None
    rate: Decimal | None = None
    taxable: bool = True
    is_required: bool = False
    note: str | None = None


@dataclass(frozen=True)
class PayslipDeduction:
    id: str
    code: str
    name: str
    amount: Decimal
    is_skipped: bool = False
    is_required: bool = False
    is_statutory: bool = False
    note: str | None = None


@dataclass(frozen=True)
class EmployerContribution:
    code: str
    name: str
    amount: Decimal


@dataclass(frozen=True)
class PayslipCalculation:
    """Computed payslip figures. Equal inputs give equal values."""
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

    @property
    def has_errors(self) -> bool:
        return bool(self.errors)

    def deduction_amount(self, code: str) -> Decimal:
        """Sum of non-skipped deductions with ``code``."""
        return sum(
            (d.amount for d in self.deductions if d.code == code and not d.is_skipped),
            ZERO,
        )

    def contribution_amount(self, code: str) -> Decimal:
        return sum((c.amount for c in self.employer_contributions if c.code == code), ZERO)


# ---------------------------------------------------------------------------
# Override validation
# ---------------------------------------------------------------------------


def validate_override(
    payslip_input: PayslipInput,
    override: LineOverride,
    rules: PayslipRules = PayslipRules(),
) -> None:
    """
    Check an editor override against required/skip rules.

    Raises:
        PayslipLineNotFoundError: unknown line id.
        InvalidLineModificationError: skipping a required or earning line,
            or setting hours/rate on a deduction.
    """
    for line in payslip_input.earnings:
        if line.id == override.line_id:
            if override.is_skipped:
                raise InvalidLineModificationError(
                    line.code, "earnings cannot be skipped; adjust the amount instead",
                )
            return

    statutory_ids = {PAYE_LINE_ID: PAYE_CODE, UIF_LINE_ID: UIF_CODE}
    if override.line_id in statutory_ids:
        code = statutory_ids[override.line_id]
        _check_deduction_override(code, code in rules.required_deduction_codes, override)
        return

    for line in payslip_input.deductions:
        if line.id == override.line_id:
            required = line.is_required or line.code in rules.required_deduction_codes
            _check_deduction_override(line.code, required, override)
            return

    raise PayslipLineNotFoundError(payslip_input.employee_id, override.line_id)


def _check_deduction_override(code: str, is_required: bool, override: LineOverride) -> None:
    if override.hours is not None or override.rate is not None:
        raise InvalidLineModificationError(code, "deductions have no hours or rate")
    if override.is_skipped and is_required:
        raise InvalidLineModificationError(code, "required deductions cannot be skipped")


# ---------------------------------------------------------------------------
# Calculation
# ---------------------------------------------------------------------------


def _earning(line: EarningLine, override: LineOverride | None, rules: PayslipRules,
             errors: list[str]) -> PayslipEarning:
    hours = line.hours
    rate = line.rate
    amount = line.amount
    note = line.note
    if override is not None:
        if override.hours is not None or override.rate is not None:
            hours = override.hours if override.hours is not None else hours
            rate = override.rate if override.rate is not None else rate
            # Edited hours/rate recompute the amount unless it is also overridden
            amount = None
        if override.amount is not None:
            amount = override.amount
        if override.note is not None:
            note = override.note

    if amount is None:
        if hours is not None and rate is not None:
            amount = hours * rate
        else:
            errors.append(f"Earning {line.code} has no amount")
            amount = ZERO
    amount = round_money(amount, rules.currency_places)

    if amount < 0:
        errors.append(f"Earning {line.code} has a negative amount ({amount})")
    if hours is not None and hours < 0:
        errors.append(f"Earning {line.code} has negative hours ({hours})")
    if hours is not None and hours > rules.max_hours:
        errors.append(
            f"Earning {line.code} hours {hours} exceed the maximum of {rules.max_hours}"
        )

    return PayslipEarning(
        id=line.id,
        code=line.code,
        name=line.name,
        amount=amount,
        hours=hours,
        rate=rate,
        taxable=line.taxable,
        is_required=line.is_required or line.code in rules.required_earning_codes,
        note=note,
    )


def _deduction(
    line_id: str,
    code: str,
    name: str,
    amount: Decimal,
    is_required: bool,
    is_statutory: bool,
    is_skipped: bool,
    note: str | None,
    override: LineOverride | None,
    rules: PayslipRules,
    errors: list[str],
) -> PayslipDeduction:
    if override is not None:
        _check_deduction_override(code, is_required, override)
        if override.amount is not None:
            amount = override.amount
        if override.is_skipped is not None:
            is_skipped = override.is_skipped
        if override.note is not None:
            note = override.note
    if is_skipped and is_required:
        # Editor overrides were rejected above; a skipped required line here
        # came from the employee data and is reported on the payslip.
        errors.append(f"Required deduction {code} is marked skipped")
        is_skipped = False

    amount = round_money(amount, rules.currency_places)
    if amount < 0:
        errors.append(f"Deduction {code} has a negative amount ({amount})")
    return PayslipDeduction(
        id=line_id,
        code=code,
        name=name,
        amount=amount,
        is_skipped=is_skipped,
        is_required=is_required,
        is_statutory=is_statutory,
        note=note,
    )


def failed_calculation(
    payslip_input: PayslipInput,
    error: str,
    rules: PayslipRules = PayslipRules(),
) -> PayslipCalculation:
    """An empty payslip carrying ``error``, used when calculation could not finish."""
    zero = round_money(ZERO, rules.currency_places)
    ytd = payslip_input.ytd
    return PayslipCalculation(
        employee_id=payslip_input.employee_id,
        employee_name=payslip_input.employee_name,
        employee_number=payslip_input.employee_number,
        period_start=payslip_input.period_start,
        period_end=payslip_input.period_end,
        pay_date=payslip_input.pay_date,
        earnings=(),
        deductions=(),
        employer_contributions=(),
        gross_pay=zero,
        taxable_gross=zero,
        total_deductions=zero,
        net_pay=zero,
        errors=(error,),
        ytd_gross=round_money(ytd.gross, rules.currency_places),
        ytd_tax=round_money(ytd.tax, rules.currency_places),
        ytd_net=round_money(ytd.net, rules.currency_places),
    )


@traced_engine("payslip", "1.0", fingerprint_fields=("payslip_input", "overrides"))
def calculate_payslip(
    payslip_input: PayslipInput,
    statutory_rules: StatutoryRules,
    rules: PayslipRules = PayslipRules(),
    overrides: PayslipOverrides = PayslipOverrides(),
) -> PayslipCalculation:
    """Compute one employee's payslip for one period."""
    places = rules.currency_places
    errors: list[str] = []

    earnings = tuple(
        _earning(line, overrides.get(line.id), rules, errors)
        for line in payslip_input.earnings
    )
    present_earning_codes = {e.code for e in earnings}
    for code in rules.required_earning_codes:
        if code not in present_earning_codes:
            errors.append(f"Missing required earning {code}")

    gross_pay = sum_money((e.amount for e in earnings), places)
    taxable_gross = sum_money((e.amount for e in earnings if e.taxable), places)

    statutory = statutory_rules.compute(
        gross_pay=gross_pay,
        taxable_gross=taxable_gross,
        ytd_gross=payslip_input.ytd.gross,
        ytd_tax=payslip_input.ytd.tax,
    )

    deductions: list[PayslipDeduction] = [
        _deduction(
            PAYE_LINE_ID, PAYE_CODE, "PAYE", statutory.paye,
            is_required=PAYE_CODE in rules.required_deduction_codes,
            is_statutory=True, is_skipped=False, note=None,
            override=overrides.get(PAYE_LINE_ID), rules=rules, errors=errors,
        ),
        _deduction(
            UIF_LINE_ID, UIF_CODE, "UIF", statutory.uif_employee,
            is_required=UIF_CODE in rules.required_deduction_codes,
            is_statutory=True, is_skipped=False, note=None,
            override=overrides.get(UIF_LINE_ID), rules=rules, errors=errors,
        ),
    ]
    for line in payslip_input.deductions:
        deductions.append(_deduction(
            line.id, line.code, line.name, line.amount,
            is_required=line.is_required or line.code in rules.required_deduction_codes,
            is_statutory=False, is_skipped=line.is_skipped, note=line.note,
            override=overrides.get(line.id), rules=rules, errors=errors,
        ))

    present_deduction_codes = {d.code for d in deductions}
    for code in rules.required_deduction_codes:
        if code not in present_deduction_codes:
            errors.append(f"Missing required deduction {code}")

    employer_contributions = (
        EmployerContribution(UIF_EMPLOYER_CODE, "UIF (employer)",
                             round_money(statutory.uif_employer, places)),
        EmployerContribution(SDL_CODE, "Skills Development Levy",
                             round_money(statutory.sdl, places)),
    )

    total_deductions = sum_money((d.amount for d in deductions if not d.is_skipped), places)
    net_pay = round_money(gross_pay - total_deductions, places)

    if net_pay < 0:
        errors.append(f"Net pay is negative ({net_pay})")
    if rules.require_tax_number and not payslip_input.tax_number:
        errors.append("Missing tax number")
    if rules.require_bank_details and (
        payslip_input.bank_account is None or not payslip_input.bank_account.is_complete
    ):
        errors.append("Bank details incomplete")

    paye_deducted = sum(
        (d.amount for d in deductions if d.code == PAYE_CODE and not d.is_skipped), ZERO,
    )
    ytd = payslip_input.ytd

    return PayslipCalculation(
        employee_id=payslip_input.employee_id,
        employee_name=payslip_input.employee_name,
        employee_number=payslip_input.employee_number,
        period_start=payslip_input.period_start,
        period_end=payslip_input.period_end,
        pay_date=payslip_input.pay_date,
        earnings=earnings,
        deductions=tuple(deductions),
        employer_contributions=employer_contributions,
        gross_pay=gross_pay,
        taxable_gross=taxable_gross,
        total_deductions=total_deductions,
        net_pay=net_pay,
        errors=tuple(errors),
        ytd_gross=round_money(ytd.gross + gross_pay, places),
        ytd_tax=round_money(ytd.tax + paye_deducted, places),
        ytd_net=round_money(ytd.net + net_pay, places),
    )

