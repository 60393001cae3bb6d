"""
payroll_engines.validation -- Shared blocking/non-blocking rule checker.

Responsibility:
    Evaluate a set of independent rules against a context object and
    return ``ValidationResult(errors, warnings)``. Payrun finalization and
    termination submission both consult this engine and use the same
    ``{code, message}`` issue contract.

Architecture position:
    Engines -- pure calculation layer, zero I/O.

Invariants enforced:
    - Rules are independent and order-insensitive: the result is sorted by
      code and does not depend on the order rules are supplied in.
    - Results are deduplicated by rule code. A code reported as both an
      error and a warning is reported as an error only.
    - Warnings never raise. Callers decide whether errors block.

Failure modes:
    - A rule whose check raises propagates the exception; a broken rule
      must not be mistaken for a passing one.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from enum import Enum
from typing import Any

from payroll_kernel.logging_config import get_logger

logger = get_logger("engines.validation")


class Severity(str, Enum):
    ERROR = "error"
    WARNING = "warning"


@dataclass(frozen=True)
class ValidationIssue:
    """A single ``{code, message}`` finding."""
    code: str
    message: str

    def to_dict(self) -> dict[str, str]:
        return {"code": self.code, "message": self.message}


@dataclass(frozen=True)
class ValidationResult:
    errors: tuple[ValidationIssue, ...] = ()
    warnings: tuple[ValidationIssue, ...] = ()

    @property
    def is_valid(self) -> bool:
        return not self.errors

    @property
    def error_codes(self) -> tuple[str, ...]:
        return tuple(i.code for i in self.errors)

    @property
    def warning_codes(self) -> tuple[str, ...]:
        return tuple(i.code for i in self.warnings)

    def to_dict(self) -> dict[str, list[dict[str, str]]]:
        return {
            "errors": [i.to_dict() for i in self.errors],
            "warnings": [i.to_dict() for i in self.warnings],
        }


@dataclass(frozen=True)
class ValidationRule:
    """
    One independent rule.

    ``check`` returns a failure message, or None when the rule passes.
    """
    code: str
    severity: Severity
    check: Callable[[Any], str | None]
    description: str = ""


def validate(context: Any, rules: Iterable[ValidationRule]) -> ValidationResult:
    """Run every rule against ``context`` and collect deduplicated issues."""
    errors: dict[str, ValidationIssue] = {}
    warnings: dict[str, ValidationIssue] = {}

    for rule in sorted(rules, key=lambda r: (r.code, r.severity.value)):
        message = rule.check(context)
        if message is None:
            continue
        issue = ValidationIssue(code=rule.code, message=message)
        target = errors if rule.severity is Severity.ERROR else warnings
        # First message per code wins; sorting above makes that deterministic.
        target.setdefault(rule.code, issue)

    for code in errors:
        warnings.pop(code, None)

    result = ValidationResult(
        errors=tuple(errors[c] for c in sorted(errors)),
        warnings=tuple(warnings[c] for c in sorted(warnings)),
    )
    if result.errors or result.warnings:
        logger.info(
            "validation_completed",
            extra={
                "error_codes": list(result.error_codes),
                "warning_codes": list(result.warning_codes),
            },
        )
    return result


# ---------------------------------------------------------------------------
# Payrun finalization
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class PayrunValidationContext:
    """What the finalization rules look at."""
    payrun_id: str
    employee_count: int
    employees_with_errors: int
    payslips_with_zero_net: int = 0
    error_employee_ids: tuple[str, ...] = ()


def _payslip_errors(ctx: PayrunValidationContext) -> str | None:
    if ctx.employees_with_errors > 0:
        ids = ", ".join(ctx.error_employee_ids)
        suffix = f" ({ids})" if ids else ""
        return f"{ctx.employees_with_errors} payslip(s) have errors{suffix}"
    return None


def _empty_payrun(ctx: PayrunValidationContext) -> str | None:
    if ctx.employee_count == 0:
        return "Payrun contains no payslips"
    return None


def _zero_net(ctx: PayrunValidationContext) -> str | None:
    if ctx.payslips_with_zero_net > 0:
        return f"{ctx.payslips_with_zero_net} payslip(s) have zero net pay"
    return None


PAYRUN_FINALIZATION_RULES: tuple[ValidationRule, ...] = (
    ValidationRule("PAYSLIP_ERRORS", Severity.ERROR, _payslip_errors,
                   "Every payslip must be free of errors"),
    ValidationRule("EMPTY_PAYRUN", Severity.ERROR, _empty_payrun,
                   "A payrun must contain at least one payslip"),
    ValidationRule("ZERO_NET_PAY", Severity.WARNING, _zero_net,
                   "Payslips paying nothing are usually a data problem"),
)


# ---------------------------------------------------------------------------
# Termination settlement
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class TerminationValidationContext:
    """What the termination rules look at."""
    termination_date: date | None
    last_working_day: date | None
    hire_date: date | None
    notice_period_days: int
    leave_payout_days: Decimal
    net_pay: Decimal
    high_leave_payout_days: Decimal = Decimal("30")


def _missing_termination_date(ctx: TerminationValidationContext) -> str | None:
    return "Termination date is required" if ctx.termination_date is None else None


def _missing_last_working_day(ctx: TerminationValidationContext) -> str | None:
    return "Last working day is required" if ctx.last_working_day is None else None


def _termination_before_last_day(ctx: TerminationValidationContext) -> str | None:
    if ctx.termination_date is None or ctx.last_working_day is None:
        return None
    if ctx.termination_date < ctx.last_working_day:
        return (
            f"Termination date {ctx.termination_date.isoformat()} is before "
            f"last working day {ctx.last_working_day.isoformat()}"
        )
    return None


def _last_day_before_hire(ctx: TerminationValidationContext) -> str | None:
    if ctx.hire_date is None or ctx.last_working_day is None:
        return None
    if ctx.last_working_day < ctx.hire_date:
        return "Last working day is before the hire date"
    return None


def _negative_notice(ctx: TerminationValidationContext) -> str | None:
    if ctx.notice_period_days < 0:
        return "Notice period cannot be negative"
    return None


def _negative_net(ctx: TerminationValidationContext) -> str | None:
    if ctx.net_pay < 0:
        return f"Settlement net pay is negative ({ctx.net_pay})"
    return None


def _leave_payout(ctx: TerminationValidationContext) -> str | None:
    if ctx.leave_payout_days > 0:
        return "Leave balance will be paid out"
    return None


def _high_leave_payout(ctx: TerminationValidationContext) -> str | None:
    if ctx.leave_payout_days > ctx.high_leave_payout_days:
        return (
            f"Leave payout of {ctx.leave_payout_days} days exceeds "
            f"{ctx.high_leave_payout_days} days"
        )
    return None


TERMINATION_RULES: tuple[ValidationRule, ...] = (
    ValidationRule("MISSING_TERMINATION_DATE", Severity.ERROR, _missing_termination_date),
    ValidationRule("MISSING_LAST_WORKING_DAY", Severity.ERROR, _missing_last_working_day),
    ValidationRule("TERMINATION_BEFORE_LAST_WORKING_DAY", Severity.ERROR,
                   _termination_before_last_day),
    ValidationRule("LAST_WORKING_DAY_BEFORE_HIRE", Severity.ERROR, _last_day_before_hire),
    ValidationRule("NEGATIVE_NOTICE_PERIOD", Severity.ERROR, _negative_notice),
    ValidationRule("NEGATIVE_NET_PAY", Severity.ERROR, _negative_net),
    ValidationRule("LEAVE_PAYOUT", Severity.WARNING, _leave_payout),
    ValidationRule("HIGH_LEAVE_PAYOUT", Severity.WARNING, _high_leave_payout),
)
