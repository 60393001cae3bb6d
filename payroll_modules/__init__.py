"""
Payroll Modules.

Stateful orchestration layers over the payroll kernel and engines.
Each module contains:
- Domain models (the nouns)
- Workflows (state machines)
- Configuration schemas (policy and settings)
- A service facade

Modules:
- Leave: leave types, balances, accrual and the leave request lifecycle
- Payroll: payruns, payslips, finalization and EFT export
- Termination: settlement preview, submission and completion

Actual calculation logic lives in the engines.
"""

from payroll_modules import leave, payroll, termination

__all__ = ["leave", "payroll", "termination"]
