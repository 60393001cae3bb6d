"""
Leave Ledger (``payroll_modules.leave.ledger``).

Responsibility
--------------
Owns every per-employee, per-leave-type balance and applies accrual,
carry-over, expiry, reservation, commit, reversal and adjustment. The
arithmetic lives in ``payroll_engines.leave_accrual``; the ledger adds
single-writer serialization, the append-only entry log and audit events.

Concurrency
-----------
Each (employee, leave type) key has its own ``threading.Lock``. A mutation
reads the balance, computes the new value and stores it while holding that
lock, so concurrent reservations against one balance are processed in
arrival order and a loser fails with ``InsufficientBalanceError`` instead
of overdrawing. Different keys never contend.

Invariants enforced
-------------------
* ``available == accrued - taken - pending`` (derived on ``LeaveBalance``).
* A failed operation leaves the balance and entry log untouched.
* Accrual for an already-processed ``as_of`` is a no-op.
"""

from __future__ import annotations

import threading
from dataclasses import replace
from datetime import date
from decimal import Decimal

from payroll_engines.leave_accrual import (
    BalanceMovement,
    LeaveBalance,
    LeaveType,
    LedgerEntryKind,
    adjust_accrued,
    apply_accrual,
    commit_days,
    opening_balance,
    reserve_days,
    reverse_days,
)
from payroll_kernel.domain.audit import AuditAction
from payroll_kernel.domain.clock import Clock, SystemClock
from payroll_kernel.domain.context import EngineContext
from payroll_kernel.domain.money import ZERO
from payroll_kernel.exceptions import (
    LeaveBalanceExistsError,
    LeaveBalanceNotFoundError,
)
from payroll_kernel.logging_config import get_logger
from payroll_kernel.services.auditor_service import AuditorService
from payroll_modules.leave.models import (
    LeaveBalanceAdjustment,
    LeaveLedgerEntry,
    LeaveRequest,
    LeaveRequestStatus,
)

logger = get_logger("modules.leave.ledger")

BalanceKey = tuple[str, str]

ENTITY_TYPE = "LeaveBalance"


class LeaveLedger:
    """
    Thread-safe store of leave balances.

    Contract:
        Balances are mutated only through the methods below. Readers get
        immutable ``LeaveBalance`` snapshots.
    """

    def __init__(self, auditor: AuditorService, clock: Clock | None = None):
        self._auditor = auditor
        self._clock = clock or SystemClock()
        self._balances: dict[BalanceKey, LeaveBalance] = {}
        self._entries: list[LeaveLedgerEntry] = []
        # request id -> days of an approved request drawn from carried-over days
        self._carried_by_request: dict[str, Decimal] = {}
        self._locks: dict[BalanceKey, threading.Lock] = {}
        self._registry_lock = threading.Lock()
        self._entries_lock = threading.Lock()

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _lock_for(self, key: BalanceKey) -> threading.Lock:
        with self._registry_lock:
            lock = self._locks.get(key)
            if lock is None:
                lock = threading.Lock()
                self._locks[key] = lock
            return lock

    def _require(self, key: BalanceKey) -> LeaveBalance:
        balance = self._balances.get(key)
        if balance is None:
            raise LeaveBalanceNotFoundError(employee_id=key[0], leave_type_id=key[1])
        return balance

    def _append_entry(
        self,
        balance: LeaveBalance,
        kind: LedgerEntryKind,
        amount: Decimal,
        effective_date: date,
        context: EngineContext,
        reference_id: str | None = None,
        note: str = "",
    ) -> None:
        with self._entries_lock:
            self._entries.append(LeaveLedgerEntry(
                seq=len(self._entries) + 1,
                employee_id=balance.employee_id,
                leave_type_id=balance.leave_type_id,
                kind=kind,
                amount=amount,
                effective_date=effective_date,
                recorded_at=self._clock.now(),
                actor_id=context.actor_id,
                accrued_after=balance.accrued,
                taken_after=balance.taken,
                pending_after=balance.pending,
                reference_id=reference_id,
                note=note,
            ))

    def _append_movements(
        self,
        before: LeaveBalance,
        after: LeaveBalance,
        movements: tuple[BalanceMovement, ...],
        context: EngineContext,
    ) -> None:
        # Accrual movements all act on ``accrued``; replay them for running totals.
        running = before
        for movement in movements:
            running = replace(running, accrued=running.accrued + movement.amount)
            self._append_entry(
                running, movement.kind, movement.amount, movement.effective_date,
                context, note=movement.note,
            )
        assert running.accrued == after.accrued, "accrual movements must reconcile to the new balance"

    # ------------------------------------------------------------------
    # Balances
    # ------------------------------------------------------------------

    def open_balance(
        self,
        employee_id: str,
        leave_type: LeaveType,
        accrual_start: date,
        context: EngineContext,
        opening_accrued: Decimal = ZERO,
    ) -> LeaveBalance:
        """Start tracking a balance. Accrual begins on ``accrual_start``."""
        key = (employee_id, leave_type.id)
        with self._lock_for(key):
            if key in self._balances:
                raise LeaveBalanceExistsError(employee_id, leave_type.id)
            balance = opening_balance(employee_id, leave_type, accrual_start, opening_accrued)
            self._balances[key] = balance
            self._append_entry(
                balance, LedgerEntryKind.OPENING, balance.accrued, accrual_start, context,
                note="Opening balance",
            )

        self._auditor.record(
            ENTITY_TYPE, f"{employee_id}:{leave_type.id}", AuditAction.LEAVE_BALANCE_OPENED,
            context,
            payload={
                "employee_id": employee_id,
                "leave_type_id": leave_type.id,
                "accrual_start": accrual_start,
                "opening_accrued": balance.accrued,
            },
        )
        logger.info(
            "leave_balance_opened",
            extra={
                "employee_id": employee_id,
                "leave_type_id": leave_type.id,
                "accrual_start": accrual_start.isoformat(),
                "opening_accrued": str(balance.accrued),
            },
        )
        return balance

    def get_balance(self, employee_id: str, leave_type_id: str) -> LeaveBalance:
        return self._require((employee_id, leave_type_id))

    def balances(
        self,
        employee_id: str | None = None,
        leave_type_id: str | None = None,
    ) -> tuple[LeaveBalance, ...]:
        selected = [
            b for b in list(self._balances.values())
            if (employee_id is None or b.employee_id == employee_id)
            and (leave_type_id is None or b.leave_type_id == leave_type_id)
        ]
        return tuple(sorted(selected, key=lambda b: (b.employee_id, b.leave_type_id)))

    def entries(
        self,
        employee_id: str | None = None,
        leave_type_id: str | None = None,
    ) -> tuple[LeaveLedgerEntry, ...]:
        with self._entries_lock:
            snapshot = tuple(self._entries)
        return tuple(
            e for e in snapshot
            if (employee_id is None or e.employee_id == employee_id)
            and (leave_type_id is None or e.leave_type_id == leave_type_id)
        )

    # ------------------------------------------------------------------
    # Accrual
    # ------------------------------------------------------------------

    def accrue(
        self,
        leave_type: LeaveType,
        employee_id: str,
        as_of: date,
        context: EngineContext,
    ) -> LeaveBalance:
        """Apply accrual, carry-over and expiry up to ``as_of``. Idempotent."""
        key = (employee_id, leave_type.id)
        with self._lock_for(key):
            before = self._require(key)
            result = apply_accrual(before, leave_type, as_of)
            if not result.changed and result.balance == before:
                return before
            self._balances[key] = result.balance
            self._append_movements(before, result.balance, result.movements, context)

        if result.changed:
            self._auditor.record(
                ENTITY_TYPE, f"{employee_id}:{leave_type.id}", AuditAction.LEAVE_ACCRUED,
                context,
                payload={
                    "employee_id": employee_id,
                    "leave_type_id": leave_type.id,
                    "as_of": as_of,
                    "movements": [
                        {"kind": m.kind, "amount": m.amount, "effective_date": m.effective_date}
                        for m in result.movements
                    ],
                    "accrued_after": result.balance.accrued,
                },
            )
            logger.info(
                "leave_accrued",
                extra={
                    "employee_id": employee_id,
                    "leave_type_id": leave_type.id,
                    "as_of": as_of.isoformat(),
                    "movement_count": len(result.movements),
                    "available": str(result.balance.available),
                },
            )
        return result.balance

    def project(self, leave_type: LeaveType, employee_id: str, as_of: date) -> LeaveBalance:
        """The balance as it would be after accruing to ``as_of``. No mutation."""
        before = self._require((employee_id, leave_type.id))
        return apply_accrual(before, leave_type, as_of).balance

    # ------------------------------------------------------------------
    # Transactions
    # ------------------------------------------------------------------

    def reserve(
        self,
        request: LeaveRequest,
        leave_type: LeaveType,
        context: EngineContext,
    ) -> LeaveBalance:
        """
        Hold ``request.days`` as pending.

        Raises:
            InsufficientBalanceError: balance unchanged.
        """
        key = (request.employee_id, request.leave_type_id)
        with self._lock_for(key):
            before = self._require(key)
            try:
                after = reserve_days(before, leave_type, request.days)
            except Exception:
                logger.warning(
                    "leave_reservation_refused",
                    extra={
                        "employee_id": request.employee_id,
                        "leave_type_id": request.leave_type_id,
                        "requested": str(request.days),
                        "available": str(before.available),
                    },
                )
                raise
            self._balances[key] = after
            self._append_entry(
                after, LedgerEntryKind.RESERVE, request.days, request.start_date, context,
                reference_id=request.id,
            )
        logger.info(
            "leave_reserved",
            extra={
                "employee_id": request.employee_id,
                "leave_type_id": request.leave_type_id,
                "days": str(request.days),
                "available": str(after.available),
            },
        )
        return after

    def commit(
        self,
        request: LeaveRequest,
        outcome: LeaveRequestStatus,
        context: EngineContext,
    ) -> LeaveBalance:
        """Resolve a reservation: APPROVED takes the days, REJECTED/CANCELLED releases them."""
        match outcome:
            case LeaveRequestStatus.APPROVED:
                approved = True
                kind = LedgerEntryKind.COMMIT
            case LeaveRequestStatus.REJECTED | LeaveRequestStatus.CANCELLED:
                approved = False
                kind = LedgerEntryKind.RELEASE
            case _:
                raise ValueError(f"Cannot commit a reservation with outcome {outcome}")

        key = (request.employee_id, request.leave_type_id)
        with self._lock_for(key):
            before = self._require(key)
            after = commit_days(before, request.days, approved=approved)
            self._balances[key] = after
            carried = before.carry_over_remaining - after.carry_over_remaining
            if carried > 0:
                self._carried_by_request[request.id] = carried
            self._append_entry(
                after, kind, request.days, request.start_date, context,
                reference_id=request.id, note=outcome.value,
            )
        logger.info(
            "leave_committed",
            extra={
                "employee_id": request.employee_id,
                "leave_type_id": request.leave_type_id,
                "days": str(request.days),
                "outcome": outcome.value,
            },
        )
        return after

    def reverse(self, request: LeaveRequest, context: EngineContext) -> LeaveBalance:
        """
        Return an approved request's days from taken.

        Days the request drew from carried-over leave go back under the
        carry-over expiry, or are forfeited if that window has closed.
        """
        key = (request.employee_id, request.leave_type_id)
        with self._lock_for(key):
            before = self._require(key)
            carried = self._carried_by_request.pop(request.id, ZERO)
            after = reverse_days(before, request.days, carried=carried)
            self._balances[key] = after
            self._append_entry(
                after, LedgerEntryKind.REVERSAL, request.days, request.start_date, context,
                reference_id=request.id,
            )
            expired = after.forfeited - before.forfeited
            if expired > 0:
                self._append_entry(
                    after, LedgerEntryKind.CARRY_OVER_EXPIRY, -expired, self._clock.today(),
                    context, reference_id=request.id, note="Reversed carried days already expired",
                )
        logger.info(
            "leave_reversed",
            extra={
                "employee_id": request.employee_id,
                "leave_type_id": request.leave_type_id,
                "days": str(request.days),
            },
        )
        return after

    def adjust(
        self,
        adjustment: LeaveBalanceAdjustment,
        leave_type: LeaveType,
        context: EngineContext,
    ) -> LeaveBalance:
        """Administrative delta to accrued. Always permitted, always audited."""
        key = (adjustment.employee_id, adjustment.leave_type_id)
        with self._lock_for(key):
            after = adjust_accrued(self._require(key), adjustment.amount)
            self._balances[key] = after
            self._append_entry(
                after, LedgerEntryKind.ADJUSTMENT, adjustment.amount, self._clock.today(),
                context, note=adjustment.reason,
            )

        self._auditor.record(
            ENTITY_TYPE, f"{adjustment.employee_id}:{adjustment.leave_type_id}",
            AuditAction.LEAVE_ADJUSTED, context,
            payload={
                "employee_id": adjustment.employee_id,
                "leave_type_id": adjustment.leave_type_id,
                "amount": adjustment.amount,
                "reason": adjustment.reason,
                "available_after": after.available,
                "is_negative": after.is_negative,
            },
        )
        logger.info(
            "leave_balance_adjusted",
            extra={
                "employee_id": adjustment.employee_id,
                "leave_type_id": adjustment.leave_type_id,
                "amount": str(adjustment.amount),
                "reason": adjustment.reason,
                "available": str(after.available),
            },
        )
        if after.is_negative and not leave_type.allow_negative_balance:
            logger.warning(
                "leave_balance_negative_after_adjustment",
                extra={
                    "employee_id": adjustment.employee_id,
                    "leave_type_id": adjustment.leave_type_id,
                    "available": str(after.available),
                },
            )
        return after
