"""
Payroll Module (``payroll_modules.payroll``).

Responsibility
--------------
Payruns for a pay period: employee snapshot, concurrent payslip
calculation, payslip edits, finalization, run summaries and the EFT
direct-deposit batch.

Architecture position
---------------------
**Modules layer** -- models, workflow, config schema and a service
facade that delegates gross-to-net to ``payroll_engines.payslip`` and
finalization checks to ``payroll_engines.validation``.

Invariants enforced
-------------------
* total_net = sum of payslip net pay; employees_with_errors = count of
  payslips with errors.
* Only READY runs with no payslip errors finalize; FINALIZED is terminal.

Failure modes
-------------
* ``InvalidTransitionError`` -- illegal status change or edit.
* ``ValidationFailedError`` -- finalization blocked by payslip errors.
"""

from payroll_modules.payroll.config import PayrollConfig, StatutoryRatesConfig
from payroll_modules.payroll.models import (
    EftBatch,
    EftPayment,
    EmployeePayslip,
    Payrun,
    PayrunEmployee,
    PayrunFinalization,
    PayrunStatus,
    PayrunSummary,
)
from payroll_modules.payroll.service import PayrunService
from payroll_modules.payroll.workflows import PAYRUN_WORKFLOW

__all__ = [
    "EftBatch",
    "EftPayment",
    "EmployeePayslip",
    "PAYRUN_WORKFLOW",
    "PayrollConfig",
    "Payrun",
    "PayrunEmployee",
    "PayrunFinalization",
    "PayrunService",
    "PayrunStatus",
    "PayrunSummary",
    "StatutoryRatesConfig",
]
