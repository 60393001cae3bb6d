"""
Typed Exception Hierarchy for the Payroll Kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Payroll figures end up on payslips, in tax filings and in bank files. Callers
must be able to react to a failure precisely, without parsing message text:

    try:
        payruns.finalize(payrun_id, context)
    except ValidationFailedError as e:      # Typed catch
        show_blockers(e.rule_codes)         # Structured data
    except InvalidTransitionError as e:
        api_response(code=e.code, state=e.from_state)

Every exception:
  1. Has a CODE class attribute (machine-readable, API-safe).
  2. Carries structured attributes (not just a message string).

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    PayrollKernelError (base)
    |
    +-- WorkflowError
    |   +-- InvalidTransitionError
    |
    +-- ValidationFailedError
    |
    +-- LeaveError
    |   +-- InsufficientBalanceError
    |   +-- InvalidLeaveRequestError
    |   +-- LeaveTypeNotFoundError
    |   +-- LeaveBalanceNotFoundError
    |   +-- LeaveBalanceExistsError
    |   +-- LeaveRequestNotFoundError
    |
    +-- PayslipError
    |   +-- InvalidLineModificationError
    |   +-- PayslipLineNotFoundError
    |   +-- PayslipNotFoundError
    |
    +-- PayrunError
    |   +-- PayrunNotFoundError
    |
    +-- TerminationError
    |   +-- TerminationNotFoundError
    |
    +-- ImmutabilityError
    |   +-- ImmutabilityViolationError
    |
    +-- AuditError
        +-- AuditChainBrokenError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category     | Code                        | When Raised
-------------|-----------------------------|------------------------------------------
Workflow     | INVALID_TRANSITION          | Illegal state-machine move
Validation   | VALIDATION_FAILED           | Blocking rule errors present
Leave        | INSUFFICIENT_BALANCE        | Reservation would drive balance negative
             | INVALID_LEAVE_REQUEST       | Bad dates, hours or missing attachment
             | LEAVE_TYPE_NOT_FOUND        | Unknown leave type id
             | LEAVE_BALANCE_NOT_FOUND     | No balance opened for employee/type
             | LEAVE_BALANCE_EXISTS        | Balance opened twice
             | LEAVE_REQUEST_NOT_FOUND     | Unknown leave request id
Payslip      | INVALID_LINE_MODIFICATION   | Skip/remove a required line
             | PAYSLIP_LINE_NOT_FOUND      | Edit references an unknown line
             | PAYSLIP_NOT_FOUND           | Employee not part of the run
Payrun       | PAYRUN_NOT_FOUND            | Unknown payrun id
Termination  | TERMINATION_NOT_FOUND       | Unknown termination id
Immutability | IMMUTABILITY_VIOLATION      | Mutating finalized/completed figures
Audit        | AUDIT_CHAIN_BROKEN          | Hash chain validation failed

===============================================================================
DESIGN DECISIONS
===============================================================================

1. Validation *warnings* are never raised. They travel on successful
   results for the caller to surface.

2. Per-employee calculation problems (missing required line, negative
   amount) are recorded on the payslip, not raised. Only finalization and
   termination completion hard-fail on validation errors.

3. Exceptions inherit from Exception, not ValueError, so that domain
   errors can be caught as a group without catching programming errors.
"""

from __future__ import annotations


class PayrollKernelError(Exception):
    """
    Base exception for all payroll kernel errors.

    All subclasses must have a `code` class attribute for machine-readable
    error identification.
    """

    code: str = "PAYROLL_KERNEL_ERROR"


# Workflow exceptions


class WorkflowError(PayrollKernelError):
    """Base exception for state-machine errors."""

    code: str = "WORKFLOW_ERROR"


class InvalidTransitionError(WorkflowError):
    """
    Requested state transition is not permitted from the current state.

    The entity is left exactly as it was before the attempt.
    """

    code: str = "INVALID_TRANSITION"

    def __init__(
        self,
        entity_type: str,
        entity_id: str,
        from_state: str,
        action: str,
        reason: str | None = None,
    ):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.from_state = from_state
        self.action = action
        self.reason = reason
        message = (
            f"Cannot '{action}' {entity_type} {entity_id} "
            f"from state '{from_state}'"
        )
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)


# Validation exceptions


class ValidationFailedError(PayrollKernelError):
    """
    One or more blocking validation rules failed.

    Carries the failed rule codes and the full issue list so callers can
    surface them without re-running validation.
    """

    code: str = "VALIDATION_FAILED"

    def __init__(
        self,
        entity_type: str,
        entity_id: str,
        errors: tuple,
        warnings: tuple = (),
    ):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.errors = tuple(errors)
        self.warnings = tuple(warnings)
        self.rule_codes = tuple(issue.code for issue in self.errors)
        super().__init__(
            f"Validation failed for {entity_type} {entity_id}: "
            f"{', '.join(self.rule_codes)}"
        )


# Leave exceptions


class LeaveError(PayrollKernelError):
    """Base exception for leave ledger errors."""

    code: str = "LEAVE_ERROR"


class InsufficientBalanceError(LeaveError):
    """
    Leave reservation would drive available balance below zero.

    Raised only when the leave type disallows negative balances. The
    balance is unchanged.
    """

    code: str = "INSUFFICIENT_BALANCE"

    def __init__(
        self,
        employee_id: str,
        leave_type_id: str,
        requested: str,
        available: str,
    ):
        self.employee_id = employee_id
        self.leave_type_id = leave_type_id
        self.requested = requested
        self.available = available
        super().__init__(
            f"Insufficient {leave_type_id} balance for employee {employee_id}: "
            f"requested {requested}, available {available}"
        )


class InvalidLeaveRequestError(LeaveError):
    """Leave request input is malformed (dates, hours, attachment)."""

    code: str = "INVALID_LEAVE_REQUEST"

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(f"Invalid leave request: {reason}")


class LeaveTypeNotFoundError(LeaveError):
    """Leave type with given ID was not found."""

    code: str = "LEAVE_TYPE_NOT_FOUND"

    def __init__(self, leave_type_id: str):
        self.leave_type_id = leave_type_id
        super().__init__(f"Leave type not found: {leave_type_id}")


class LeaveBalanceNotFoundError(LeaveError):
    """No balance has been opened for the employee and leave type."""

    code: str = "LEAVE_BALANCE_NOT_FOUND"

    def __init__(self, employee_id: str, leave_type_id: str):
        self.employee_id = employee_id
        self.leave_type_id = leave_type_id
        super().__init__(
            f"No {leave_type_id} balance for employee {employee_id}"
        )


class LeaveBalanceExistsError(LeaveError):
    """A balance for the employee and leave type is already open."""

    code: str = "LEAVE_BALANCE_EXISTS"

    def __init__(self, employee_id: str, leave_type_id: str):
        self.employee_id = employee_id
        self.leave_type_id = leave_type_id
        super().__init__(
            f"{leave_type_id} balance already open for employee {employee_id}"
        )


class LeaveRequestNotFoundError(LeaveError):
    """Leave request with given ID was not found."""

    code: str = "LEAVE_REQUEST_NOT_FOUND"

    def __init__(self, request_id: str):
        self.request_id = request_id
        super().__init__(f"Leave request not found: {request_id}")


# Payslip exceptions


class PayslipError(PayrollKernelError):
    """Base exception for payslip errors."""

    code: str = "PAYSLIP_ERROR"


class InvalidLineModificationError(PayslipError):
    """
    Attempted to skip or remove a required earning or deduction.

    Required lines may only have their amount adjusted.
    """

    code: str = "INVALID_LINE_MODIFICATION"

    def __init__(self, line_code: str, reason: str):
        self.line_code = line_code
        self.reason = reason
        super().__init__(f"Invalid modification of line {line_code}: {reason}")


class PayslipLineNotFoundError(PayslipError):
    """Edit references an earning or deduction line that does not exist."""

    code: str = "PAYSLIP_LINE_NOT_FOUND"

    def __init__(self, employee_id: str, line_id: str):
        self.employee_id = employee_id
        self.line_id = line_id
        super().__init__(
            f"Payslip line {line_id} not found for employee {employee_id}"
        )


class PayslipNotFoundError(PayslipError):
    """Employee has no payslip in the payrun."""

    code: str = "PAYSLIP_NOT_FOUND"

    def __init__(self, payrun_id: str, employee_id: str):
        self.payrun_id = payrun_id
        self.employee_id = employee_id
        super().__init__(
            f"No payslip for employee {employee_id} in payrun {payrun_id}"
        )


# Payrun exceptions


class PayrunError(PayrollKernelError):
    """Base exception for payrun errors."""

    code: str = "PAYRUN_ERROR"


class PayrunNotFoundError(PayrunError):
    """Payrun with given ID was not found."""

    code: str = "PAYRUN_NOT_FOUND"

    def __init__(self, payrun_id: str):
        self.payrun_id = payrun_id
        super().__init__(f"Payrun not found: {payrun_id}")


# Termination exceptions


class TerminationError(PayrollKernelError):
    """Base exception for termination errors."""

    code: str = "TERMINATION_ERROR"


class TerminationNotFoundError(TerminationError):
    """Termination with given ID was not found."""

    code: str = "TERMINATION_NOT_FOUND"

    def __init__(self, termination_id: str):
        self.termination_id = termination_id
        super().__init__(f"Termination not found: {termination_id}")


# Immutability exceptions


class ImmutabilityError(PayrollKernelError):
    """Base exception for immutability violations."""

    code: str = "IMMUTABILITY_ERROR"


class ImmutabilityViolationError(ImmutabilityError):
    """
    Attempted to modify figures that have been frozen.

    Finalized payruns and completed terminations are immutable.
    """

    code: str = "IMMUTABILITY_VIOLATION"

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(
            f"Cannot modify {entity_type} {entity_id}: {reason}"
        )


# Audit exceptions


class AuditError(PayrollKernelError):
    """Base exception for audit trail errors."""

    code: str = "AUDIT_ERROR"


class AuditChainBrokenError(AuditError):
    """Audit hash chain validation failed."""

    code: str = "AUDIT_CHAIN_BROKEN"

    def __init__(self, seq: int, expected_hash: str, actual_hash: str):
        self.seq = seq
        self.expected_hash = expected_hash
        self.actual_hash = actual_hash
        super().__init__(
            f"Audit chain broken at seq {seq}: "
            f"expected {expected_hash}, got {actual_hash}"
        )
