"""
Leave Domain Models (``payroll_modules.leave.models``).

Responsibility
--------------
Frozen dataclass value objects for the nouns of leave management: leave
requests and their status, administrative balance adjustments, ledger
entries, and the overview/calendar read models. ``LeaveType`` and
``LeaveBalance`` are defined next to the accrual arithmetic in
``payroll_engines.leave_accrual`` and re-exported here.

Invariants enforced
-------------------
* All models are ``frozen=True`` (immutable after construction).
* Leave-day quantities use ``Decimal`` -- NEVER ``float``.
* An adjustment always carries a non-empty reason.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from enum import Enum

from payroll_engines.leave_accrual import (
    AccrualMethod,
    LeaveBalance,
    LeaveType,
    LedgerEntryKind,
)
from payroll_kernel.logging_config import get_logger

logger = get_logger("modules.leave.models")

__all__ = [
    "AccrualMethod",
    "LeaveBalance",
    "LeaveBalanceAdjustment",
    "LeaveCalendarEvent",
    "LeaveLedgerEntry",
    "LeaveOverview",
    "LeaveRequest",
    "LeaveRequestStatus",
    "LeaveType",
    "LedgerEntryKind",
]


class LeaveRequestStatus(Enum):
    """Leave request lifecycle states."""
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    CANCELLED = "cancelled"


@dataclass(frozen=True)
class LeaveRequest:
    """An employee's request for leave over a date range."""
    id: str
    employee_id: str
    leave_type_id: str
    start_date: date
    end_date: date
    days: Decimal
    created_at: datetime
    created_by: str
    is_partial_day: bool = False
    partial_hours: Decimal | None = None
    status: LeaveRequestStatus = LeaveRequestStatus.PENDING
    reason: str | None = None
    attachment_url: str | None = None
    approved_by: str | None = None
    approved_at: datetime | None = None
    rejected_by: str | None = None
    rejected_at: datetime | None = None
    rejection_reason: str | None = None
    cancelled_by: str | None = None
    cancelled_at: datetime | None = None

    def overlaps(self, start: date, end: date) -> bool:
        return self.start_date <= end and self.end_date >= start


@dataclass(frozen=True)
class LeaveBalanceAdjustment:
    """Administrative signed change to accrued days."""
    employee_id: str
    leave_type_id: str
    amount: Decimal
    reason: str

    def __post_init__(self):
        if not self.reason or not self.reason.strip():
            logger.warning(
                "leave_adjustment_missing_reason",
                extra={
                    "employee_id": self.employee_id,
                    "leave_type_id": self.leave_type_id,
                    "amount": str(self.amount),
                },
            )
            raise ValueError("A balance adjustment requires a reason")
        if self.amount == 0:
            raise ValueError("A balance adjustment amount cannot be zero")


@dataclass(frozen=True)
class LeaveLedgerEntry:
    """Append-only record of one balance movement."""
    seq: int
    employee_id: str
    leave_type_id: str
    kind: LedgerEntryKind
    amount: Decimal
    effective_date: date
    recorded_at: datetime
    actor_id: str
    accrued_after: Decimal
    taken_after: Decimal
    pending_after: Decimal
    reference_id: str | None = None
    note: str = ""

    @property
    def available_after(self) -> Decimal:
        return self.accrued_after - self.taken_after - self.pending_after


@dataclass(frozen=True)
class LeaveOverview:
    """Dashboard read model for leave administrators."""
    as_of: date
    pending_requests: tuple[LeaveRequest, ...]
    negative_balances: tuple[LeaveBalance, ...]
    expiring_balances: tuple[LeaveBalance, ...]
    on_leave: tuple[LeaveRequest, ...]
    upcoming_leave: tuple[LeaveRequest, ...]

    @property
    def pending_approval_count(self) -> int:
        return len(self.pending_requests)

    @property
    def employees_on_leave(self) -> tuple[str, ...]:
        return tuple(sorted({r.employee_id for r in self.on_leave}))


@dataclass(frozen=True)
class LeaveCalendarEvent:
    """An approved request shown on the leave calendar."""
    request_id: str
    employee_id: str
    leave_type_id: str
    leave_type_name: str
    start_date: date
    end_date: date
    days: Decimal
    is_partial_day: bool = False
