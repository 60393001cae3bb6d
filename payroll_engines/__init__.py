"""
Module: payroll_engines
Responsibility:
    Package entrypoint that re-exports the public symbols of the pure
    calculation engines. This is the canonical import surface for
    ``payroll_modules``.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    May only import payroll_kernel (domain, exceptions, logging) and
    sibling engine modules. MUST NOT import payroll_modules or
    payroll_config.

Invariants enforced:
    - Purity: engines NEVER read the clock. Dates are explicit parameters.
    - Decimal-only arithmetic for money and leave days.
    - Determinism: identical inputs always produce identical outputs.

Audit relevance:
    Engine entry points are wrapped with ``@traced_engine`` and emit
    PAYROLL_ENGINE_TRACE log records carrying an input fingerprint.
"""

from payroll_engines.leave_accrual import (
    AccrualMethod,
    AccrualResult,
    BalanceMovement,
    LeaveBalance,
    LeaveType,
    LedgerEntryKind,
    apply_accrual,
    count_leave_days,
)
from payroll_engines.payslip import (
    BankAccount,
    DeductionLine,
    EarningLine,
    EmployerContribution,
    LineOverride,
    PayslipCalculation,
    PayslipDeduction,
    PayslipEarning,
    PayslipInput,
    PayslipOverrides,
    PayslipRules,
    YearToDate,
    calculate_payslip,
    validate_override,
)
from payroll_engines.settlement import (
    Allowance,
    LeaveEntitlement,
    RecoveryLine,
    SettlementInput,
    SettlementRules,
    SeveranceFormula,
    TerminationPayComponents,
    TerminationReason,
    WeeksPerYearSeverance,
    calculate_settlement,
)
from payroll_engines.statutory import (
    FlatRateStatutoryRules,
    StatutoryResult,
    StatutoryRules,
)
from payroll_engines.validation import (
    PAYRUN_FINALIZATION_RULES,
    TERMINATION_RULES,
    Severity,
    ValidationIssue,
    ValidationResult,
    ValidationRule,
    validate,
)

__all__ = [
    "AccrualMethod",
    "AccrualResult",
    "Allowance",
    "BalanceMovement",
    "BankAccount",
    "DeductionLine",
    "EarningLine",
    "EmployerContribution",
    "FlatRateStatutoryRules",
    "LeaveBalance",
    "LeaveEntitlement",
    "LeaveType",
    "LedgerEntryKind",
    "LineOverride",
    "PAYRUN_FINALIZATION_RULES",
    "PayslipCalculation",
    "PayslipDeduction",
    "PayslipEarning",
    "PayslipInput",
    "PayslipOverrides",
    "PayslipRules",
    "RecoveryLine",
    "SettlementInput",
    "SettlementRules",
    "Severity",
    "SeveranceFormula",
    "StatutoryResult",
    "StatutoryRules",
    "TERMINATION_RULES",
    "TerminationPayComponents",
    "TerminationReason",
    "ValidationIssue",
    "ValidationResult",
    "ValidationRule",
    "WeeksPerYearSeverance",
    "YearToDate",
    "apply_accrual",
    "calculate_payslip",
    "calculate_settlement",
    "count_leave_days",
    "validate",
]
