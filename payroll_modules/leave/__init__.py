"""
Leave Module (``payroll_modules.leave``).

Responsibility
--------------
Leave type catalogue, per-employee balances with accrual, carry-over and
expiry, and the leave request lifecycle (pending, approved, rejected,
cancelled) with reservation against the balance.

Architecture position
---------------------
**Modules layer** -- the ``LeaveLedger`` serializes balance mutations and
keeps the append-only entry log; ``LeaveService`` drives requests through
``LEAVE_REQUEST_WORKFLOW``. Arithmetic comes from
``payroll_engines.leave_accrual``.

Invariants enforced
-------------------
* available = accrued - taken - pending, never below zero unless the
  leave type allows negative balances (adjustments excepted, and logged).
* Every request status change records one audit event.

Failure modes
-------------
* ``InsufficientBalanceError`` -- a reservation would overdraw.
* ``InvalidLeaveRequestError`` -- bad dates, hours, attachment or type.
* ``InvalidTransitionError`` -- illegal status change, or cancelling
  leave that has already started.
"""

from payroll_modules.leave.config import LeaveConfig
from payroll_modules.leave.ledger import LeaveLedger
from payroll_modules.leave.models import (
    AccrualMethod,
    LeaveBalance,
    LeaveBalanceAdjustment,
    LeaveCalendarEvent,
    LeaveLedgerEntry,
    LeaveOverview,
    LeaveRequest,
    LeaveRequestStatus,
    LeaveType,
    LedgerEntryKind,
)
from payroll_modules.leave.service import LeaveService
from payroll_modules.leave.workflows import LEAVE_REQUEST_WORKFLOW

__all__ = [
    "AccrualMethod",
    "LEAVE_REQUEST_WORKFLOW",
    "LeaveBalance",
    "LeaveBalanceAdjustment",
    "LeaveCalendarEvent",
    "LeaveConfig",
    "LeaveLedger",
    "LeaveLedgerEntry",
    "LeaveOverview",
    "LeaveRequest",
    "LeaveRequestStatus",
    "LeaveService",
    "LeaveType",
    "LedgerEntryKind",
]
