"""
payroll_engines.leave_accrual -- Pure leave balance arithmetic.

Responsibility:
    Everything the Leave Ledger computes, without the ledger's locking,
    storage or audit: accrual (monthly / annual / none), cycle-boundary
    carry-over, carry-over expiry, reservation, commit, reversal,
    administrative adjustment and request day-counting.

Architecture position:
    Engines -- pure calculation layer, zero I/O. Every function takes a
    ``LeaveBalance`` value and returns a new one plus the movements that
    produced it. ``payroll_modules.leave.ledger`` owns the mutable state.

Invariants enforced:
    - ``available == accrued - taken - pending`` by construction (derived).
    - A reservation never drives ``available`` below zero unless the leave
      type allows negative balances.
    - Accrual is idempotent for a given ``as_of``: progress is tracked by
      the ``accrued_through`` marker, never recomputed from history.
    - Carry-over limit ``None`` means unlimited, ``0`` means strict.
    - Leave-day quantities are quantized to 4 places, round-half-even.

Accrual semantics:
    MONTHLY  ``accrued_through`` is the first day not yet credited. Every
             calendar month that has fully elapsed by ``as_of`` earns
             ``accrual_rate``; a month entered part-way (accrual start
             mid-month) earns the calendar-day fraction.
    ANNUAL   ``accrued_through`` is the next cycle start to grant. The cycle
             containing ``accrual_start`` is granted on the first pass; each
             later grant happens when ``as_of`` reaches the 1st of
             ``cycle_start_month``.
    NONE     Balance moves only through adjustments.

    At every cycle boundary (1st of ``cycle_start_month``) positive
    ``available`` above ``carry_over_limit`` is forfeited. When the type
    has ``carry_over_expire_months`` the carried days are tracked and any
    still unused on or after the expiry date are forfeited by the next
    accrual pass. Leave taken consumes carried days first.

Failure modes:
    - InsufficientBalanceError from ``reserve_days`` (balance unchanged).
    - InvalidLeaveRequestError from ``count_leave_days`` for bad input.
"""

from __future__ import annotations

from calendar import monthrange
from dataclasses import dataclass, replace
from datetime import date, timedelta
from decimal import Decimal
from enum import Enum

from payroll_kernel.domain.calendar import WorkCalendar, iter_days
from payroll_kernel.domain.money import ZERO, round_days
from payroll_kernel.exceptions import (
    InsufficientBalanceError,
    InvalidLeaveRequestError,
)
from payroll_engines.tracer import traced_engine


class AccrualMethod(Enum):
    """How a leave type earns days."""
    MONTHLY = "monthly"
    ANNUAL = "annual"
    NONE = "none"


class LedgerEntryKind(Enum):
    """Every way a leave balance can move."""
    OPENING = "opening"
    ACCRUAL = "accrual"
    CARRY_OVER_FORFEIT = "carry_over_forfeit"
    CARRY_OVER_EXPIRY = "carry_over_expiry"
    RESERVE = "reserve"
    COMMIT = "commit"
    RELEASE = "release"
    REVERSAL = "reversal"
    ADJUSTMENT = "adjustment"


@dataclass(frozen=True)
class LeaveType:
    """
    Leave type configuration for one organization.

    Immutable: editing a type produces a new value (``with_changes``) and
    never rewrites balances that already exist.
    """
    id: str
    name: str
    code: str
    accrual_method: AccrualMethod
    accrual_rate: Decimal = ZERO
    cycle_start_month: int = 1
    carry_over_limit: Decimal | None = None
    carry_over_expire_months: int | None = None
    allow_negative_balance: bool = False
    requires_attachment: bool = False
    is_paid: bool = True
    is_active: bool = True
    description: str = ""

    def __post_init__(self) -> None:
        if not self.id:
            raise ValueError("LeaveType.id is required")
        if not 1 <= self.cycle_start_month <= 12:
            raise ValueError(
                f"cycle_start_month must be 1..12, got {self.cycle_start_month}"
            )
        if self.accrual_rate < 0:
            raise ValueError("accrual_rate cannot be negative")
        if self.carry_over_limit is not None and self.carry_over_limit < 0:
            raise ValueError("carry_over_limit cannot be negative")
        if self.carry_over_expire_months is not None and self.carry_over_expire_months < 0:
            raise ValueError("carry_over_expire_months cannot be negative")

    def with_changes(self, **changes) -> "LeaveType":
        return replace(self, **changes)


@dataclass(frozen=True)
class LeaveBalance:
    """Per (employee, leave type) balance plus accrual bookkeeping."""
    employee_id: str
    leave_type_id: str
    accrual_start: date
    accrued_through: date
    accrued: Decimal = ZERO
    taken: Decimal = ZERO
    pending: Decimal = ZERO
    carry_over_remaining: Decimal = ZERO
    carry_over_expires_on: date | None = None
    forfeited: Decimal = ZERO

    @property
    def available(self) -> Decimal:
        return self.accrued - self.taken - self.pending

    @property
    def is_negative(self) -> bool:
        return self.available < 0


@dataclass(frozen=True)
class BalanceMovement:
    """One signed change to a balance, before the ledger stamps it."""
    kind: LedgerEntryKind
    amount: Decimal
    effective_date: date
    note: str = ""


@dataclass(frozen=True)
class AccrualResult:
    balance: LeaveBalance
    movements: tuple[BalanceMovement, ...] = ()

    @property
    def changed(self) -> bool:
        return bool(self.movements)


# ---------------------------------------------------------------------------
# Date helpers
# ---------------------------------------------------------------------------


def _month_start(day: date) -> date:
    return day.replace(day=1)


def _next_month_start(day: date) -> date:
    if day.month == 12:
        return date(day.year + 1, 1, 1)
    return date(day.year, day.month + 1, 1)


def add_months(day: date, months: int) -> date:
    """Same day ``months`` later, clamped to the month's last day."""
    index = day.year * 12 + (day.month - 1) + months
    year, month = divmod(index, 12)
    month += 1
    return date(year, month, min(day.day, monthrange(year, month)[1]))


def next_cycle_start(day: date, cycle_start_month: int) -> date:
    """First cycle start strictly after ``day``."""
    candidate = date(day.year, cycle_start_month, 1)
    if candidate <= day:
        candidate = date(day.year + 1, cycle_start_month, 1)
    return candidate


def _is_cycle_boundary(day: date, leave_type: LeaveType) -> bool:
    return day.day == 1 and day.month == leave_type.cycle_start_month


# ---------------------------------------------------------------------------
# Carry-over
# ---------------------------------------------------------------------------


def _expire_carry_over(
    balance: LeaveBalance,
    on: date,
) -> tuple[LeaveBalance, BalanceMovement | None]:
    """Forfeit carried days still unused once ``on`` reaches their expiry."""
    expires = balance.carry_over_expires_on
    if expires is None or on < expires:
        return balance, None
    unused = min(balance.carry_over_remaining, max(balance.available, ZERO))
    updated = replace(
        balance,
        accrued=balance.accrued - unused,
        forfeited=balance.forfeited + unused,
        carry_over_remaining=ZERO,
        carry_over_expires_on=None,
    )
    if unused == 0:
        return updated, None
    return updated, BalanceMovement(
        kind=LedgerEntryKind.CARRY_OVER_EXPIRY,
        amount=-unused,
        effective_date=expires,
        note=f"Carried days expired on {expires.isoformat()}",
    )


def _apply_cycle_boundary(
    balance: LeaveBalance,
    leave_type: LeaveType,
    boundary: date,
) -> tuple[LeaveBalance, BalanceMovement | None]:
    """Cap carried balance at the limit and start the expiry clock."""
    unused = max(balance.available, ZERO)
    limit = leave_type.carry_over_limit
    forfeit = max(unused - limit, ZERO) if limit is not None else ZERO
    carried = unused - forfeit

    if leave_type.carry_over_expire_months is not None and carried > 0:
        remaining = carried
        expires_on = add_months(boundary, leave_type.carry_over_expire_months)
    else:
        remaining = ZERO
        expires_on = None

    updated = replace(
        balance,
        accrued=balance.accrued - forfeit,
        forfeited=balance.forfeited + forfeit,
        carry_over_remaining=remaining,
        carry_over_expires_on=expires_on,
    )
    if forfeit == 0:
        return updated, None
    return updated, BalanceMovement(
        kind=LedgerEntryKind.CARRY_OVER_FORFEIT,
        amount=-forfeit,
        effective_date=boundary,
        note=f"Unused balance above carry-over limit {limit}",
    )


# ---------------------------------------------------------------------------
# Accrual
# ---------------------------------------------------------------------------


def _accrue_monthly(
    balance: LeaveBalance,
    leave_type: LeaveType,
    as_of: date,
    movements: list[BalanceMovement],
) -> LeaveBalance:
    marker = balance.accrued_through
    while _next_month_start(marker) <= as_of:
        month_end = _next_month_start(marker)
        days_in_month = monthrange(marker.year, marker.month)[1]
        if marker.day == 1:
            amount = leave_type.accrual_rate
        else:
            worked = Decimal(days_in_month - marker.day + 1)
            amount = round_days(leave_type.accrual_rate * worked / Decimal(days_in_month))
        balance = replace(balance, accrued=balance.accrued + amount, accrued_through=month_end)
        if amount:
            movements.append(BalanceMovement(
                kind=LedgerEntryKind.ACCRUAL,
                amount=amount,
                effective_date=month_end,
                note=f"Monthly accrual for {marker.strftime('%Y-%m')}",
            ))

        balance, expiry = _expire_carry_over(balance, month_end)
        if expiry is not None:
            movements.append(expiry)
        if _is_cycle_boundary(month_end, leave_type):
            balance, forfeit = _apply_cycle_boundary(balance, leave_type, month_end)
            if forfeit is not None:
                movements.append(forfeit)
        marker = month_end
    return balance


def _accrue_annual(
    balance: LeaveBalance,
    leave_type: LeaveType,
    as_of: date,
    movements: list[BalanceMovement],
) -> LeaveBalance:
    marker = balance.accrued_through
    while marker <= as_of:
        balance, expiry = _expire_carry_over(balance, marker)
        if expiry is not None:
            movements.append(expiry)
        if marker > balance.accrual_start and _is_cycle_boundary(marker, leave_type):
            balance, forfeit = _apply_cycle_boundary(balance, leave_type, marker)
            if forfeit is not None:
                movements.append(forfeit)

        amount = leave_type.accrual_rate
        next_marker = next_cycle_start(marker, leave_type.cycle_start_month)
        balance = replace(balance, accrued=balance.accrued + amount, accrued_through=next_marker)
        if amount:
            movements.append(BalanceMovement(
                kind=LedgerEntryKind.ACCRUAL,
                amount=amount,
                effective_date=marker,
                note=f"Annual grant for cycle starting {marker.isoformat()}",
            ))
        marker = next_marker
    return balance


@traced_engine("leave_accrual", "1.0", fingerprint_fields=("balance", "leave_type", "as_of"))
def apply_accrual(
    balance: LeaveBalance,
    leave_type: LeaveType,
    as_of: date,
) -> AccrualResult:
    """
    Bring ``balance`` up to date as of ``as_of``.

    Re-running with the same (or an earlier) ``as_of`` returns the balance
    unchanged with no movements.
    """
    if balance.leave_type_id != leave_type.id:
        raise ValueError(
            f"Balance is for leave type {balance.leave_type_id}, not {leave_type.id}"
        )
    if as_of < balance.accrual_start:
        return AccrualResult(balance=balance)

    movements: list[BalanceMovement] = []
    match leave_type.accrual_method:
        case AccrualMethod.MONTHLY:
            balance = _accrue_monthly(balance, leave_type, as_of, movements)
        case AccrualMethod.ANNUAL:
            balance = _accrue_annual(balance, leave_type, as_of, movements)
        case AccrualMethod.NONE:
            pass
        case _:
            raise ValueError(f"Unknown accrual method: {leave_type.accrual_method}")

    balance, expiry = _expire_carry_over(balance, as_of)
    if expiry is not None:
        movements.append(expiry)
    return AccrualResult(balance=balance, movements=tuple(movements))


def opening_balance(
    employee_id: str,
    leave_type: LeaveType,
    accrual_start: date,
    opening_accrued: Decimal = ZERO,
) -> LeaveBalance:
    """A fresh balance whose accrual begins on ``accrual_start``."""
    return LeaveBalance(
        employee_id=employee_id,
        leave_type_id=leave_type.id,
        accrual_start=accrual_start,
        accrued_through=accrual_start,
        accrued=round_days(opening_accrued),
    )


# ---------------------------------------------------------------------------
# Transactions
# ---------------------------------------------------------------------------


def reserve_days(balance: LeaveBalance, leave_type: LeaveType, days: Decimal) -> LeaveBalance:
    """
    Add ``days`` to pending.

    Raises:
        InsufficientBalanceError: if available would go negative and the
            leave type disallows it.
    """
    if days <= 0:
        raise InvalidLeaveRequestError(f"days must be positive, got {days}")
    if not leave_type.allow_negative_balance and balance.available - days < 0:
        raise InsufficientBalanceError(
            employee_id=balance.employee_id,
            leave_type_id=balance.leave_type_id,
            requested=str(days),
            available=str(balance.available),
        )
    return replace(balance, pending=balance.pending + days)


def commit_days(balance: LeaveBalance, days: Decimal, approved: bool) -> LeaveBalance:
    """Resolve a reservation: approved moves pending to taken, otherwise release."""
    if days > balance.pending:
        raise ValueError(
            f"Cannot resolve {days} days; only {balance.pending} pending"
        )
    if not approved:
        return replace(balance, pending=balance.pending - days)
    return replace(
        balance,
        pending=balance.pending - days,
        taken=balance.taken + days,
        carry_over_remaining=max(balance.carry_over_remaining - days, ZERO),
    )


def reverse_days(balance: LeaveBalance, days: Decimal, carried: Decimal = ZERO) -> LeaveBalance:
    """
    Return approved days to the balance (cancellation before the leave starts).

    ``carried`` is the part of ``days`` that was drawn from carried-over
    days when the leave was approved. While the carry-over window is open
    it is put back under the expiry clock; once the window has closed it
    is forfeited straight away, as it would have been at expiry.
    """
    if days > balance.taken:
        raise ValueError(f"Cannot reverse {days} days; only {balance.taken} taken")
    carried = min(max(carried, ZERO), days)
    balance = replace(balance, taken=balance.taken - days)
    if carried == 0:
        return balance
    if balance.carry_over_expires_on is not None:
        return replace(balance, carry_over_remaining=balance.carry_over_remaining + carried)
    return replace(
        balance,
        accrued=balance.accrued - carried,
        forfeited=balance.forfeited + carried,
    )


def adjust_accrued(balance: LeaveBalance, amount: Decimal) -> LeaveBalance:
    """Administrative signed delta to accrued. Always permitted."""
    return replace(balance, accrued=balance.accrued + amount)


# ---------------------------------------------------------------------------
# Day counting
# ---------------------------------------------------------------------------


def count_leave_days(
    employee_id: str,
    start: date,
    end: date,
    calendar: WorkCalendar,
    is_partial_day: bool = False,
    partial_hours: Decimal | None = None,
    standard_day_hours: Decimal = Decimal("8"),
) -> Decimal:
    """
    Working days in [start, end] inclusive per the employee's calendar.

    A partial-day request covers a single day and counts
    ``partial_hours / standard_day_hours`` (zero if that day is not a
    working day).

    Raises:
        InvalidLeaveRequestError: end before start, or malformed partial day.
    """
    if end < start:
        raise InvalidLeaveRequestError(
            f"end date {end.isoformat()} is before start date {start.isoformat()}"
        )
    if standard_day_hours <= 0:
        raise InvalidLeaveRequestError("standard_day_hours must be positive")

    if is_partial_day:
        if start != end:
            raise InvalidLeaveRequestError("a partial-day request must start and end on the same day")
        if partial_hours is None or partial_hours <= 0:
            raise InvalidLeaveRequestError("partial_hours must be positive for a partial-day request")
        if partial_hours > standard_day_hours:
            raise InvalidLeaveRequestError(
                f"partial_hours {partial_hours} exceed a standard day of {standard_day_hours}"
            )
        if not calendar.is_working_day(employee_id, start):
            return round_days(ZERO)
        return round_days(partial_hours / standard_day_hours)

    if partial_hours is not None:
        raise InvalidLeaveRequestError("partial_hours given for a full-day request")

    working = sum(1 for d in iter_days(start, end) if calendar.is_working_day(employee_id, d))
    return round_days(Decimal(working))


def days_between(start: date, end: date) -> int:
    """Calendar days in [start, end] inclusive."""
    return (end - start).days + 1


def month_end(day: date) -> date:
    return _next_month_start(day) - timedelta(days=1)


def month_start(day: date) -> date:
    return _month_start(day)
