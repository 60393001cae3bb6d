"""
Payroll Helpers (``payroll_modules.payroll.helpers``).

Responsibility
--------------
Pure functions for the payroll module: selecting the employees a run
covers, and building the EFT direct-deposit batch for a finalized run.

Architecture position
---------------------
**Modules layer** -- pure helper functions. No I/O, no clock. Called by
``PayrunService`` or from tests.

Invariants enforced
-------------------
* All amounts are ``Decimal`` -- NEVER ``float``.
* The batch control total equals the sum of the entry amounts.

Failure modes
-------------
* Empty payment list -> batch contains only header and control lines.
* A payslip without complete bank details is excluded from the batch and
  reported back to the caller; it is never silently paid elsewhere.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from datetime import date
from decimal import Decimal

from payroll_engines.payslip import PayslipInput
from payroll_kernel.domain.money import ZERO
from payroll_modules.payroll.models import EftPayment, EmployeePayslip, Payrun


def eligible_inputs(payrun: Payrun, inputs: Iterable[PayslipInput]) -> tuple[PayslipInput, ...]:
    """
    Active employees in the run's pay points, one input per employee.

    Raises:
        ValueError: the snapshot contains the same employee twice.
    """
    selected: dict[str, PayslipInput] = {}
    for item in inputs:
        if not item.is_active or not payrun.includes_pay_point(item.pay_point_id):
            continue
        if item.employee_id in selected:
            raise ValueError(f"Duplicate payslip input for employee {item.employee_id}")
        selected[item.employee_id] = item
    return tuple(selected[k] for k in sorted(selected))


def build_eft_payments(
    payslips: Sequence[EmployeePayslip],
    inputs: dict[str, PayslipInput],
) -> tuple[tuple[EftPayment, ...], tuple[str, ...]]:
    """
    Pair each payslip's net pay with the employee's bank account.

    Returns (payments, employee ids skipped for missing bank details).
    Payslips with zero net pay are not paid.
    """
    payments: list[EftPayment] = []
    skipped: list[str] = []
    for payslip in payslips:
        if payslip.net_pay <= 0:
            continue
        source = inputs.get(payslip.employee_id)
        account = source.bank_account if source is not None else None
        if account is None or not account.is_complete:
            skipped.append(payslip.employee_id)
            continue
        payments.append(EftPayment(
            employee_id=payslip.employee_id,
            employee_name=account.account_holder or payslip.employee_name,
            bank_name=account.bank_name,
            branch_code=account.branch_code,
            account_number=account.account_number,
            amount=payslip.net_pay,
        ))
    return tuple(payments), tuple(skipped)


def generate_eft_batch(
    payments: Sequence[EftPayment],
    company_name: str,
    company_id: str,
    effective_date: date,
    reference: str,
) -> str:
    """
    Generate a pipe-delimited EFT batch for payroll direct deposits.

    Preconditions:
        - ``company_name`` and ``company_id`` are non-empty strings.
    Postconditions:
        - Returns a newline-delimited string with header, entry, and
          control lines.
        - Control line total equals sum of all payment amounts.
    """
    lines: list[str] = []
    lines.append(
        f"PAYROLL_BATCH_HEADER|EFT|{company_name}|{company_id}|"
        f"{effective_date.isoformat()}|{reference}"
    )

    total = ZERO
    for i, payment in enumerate(payments, 1):
        total += payment.amount
        lines.append(
            f"PAYROLL_ENTRY|{i}|{payment.branch_code}|{payment.account_number}|"
            f"{payment.amount}|{payment.employee_name}"
        )

    lines.append(f"PAYROLL_BATCH_CONTROL|{len(payments)}|{total}")
    return "\n".join(lines)


def batch_total(payments: Sequence[EftPayment]) -> Decimal:
    return sum((p.amount for p in payments), ZERO)
