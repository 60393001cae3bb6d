"""
Leave Module Service (``payroll_modules.leave.service``).

Responsibility
--------------
Entry point for leave operations: the leave type catalogue, request
creation (day counting, attachment and active-type checks, ledger
reservation), approval, rejection, cancellation, balance adjustment,
scheduled accrual, and the overview and calendar read models.

Architecture position
---------------------
**Modules layer** -- composes the pure ``count_leave_days`` engine, the
``LeaveLedger`` and the kernel ``AuditorService``. Every request status
change goes through ``LEAVE_REQUEST_WORKFLOW`` and records exactly one
audit event.

Invariants enforced
-------------------
* A request is stored only after its days are reserved on the ledger.
* Cancellation is refused once the leave period has started; a past-dated
  correction is an explicit balance adjustment instead.
* Illegal transitions raise ``InvalidTransitionError`` and change nothing.

Usage::

    service = LeaveService(ledger, auditor, clock=clock, leave_types=types)
    request = service.create_request(
        employee_id="EMP-001", leave_type_id="annual",
        start_date=date(2026, 3, 2), end_date=date(2026, 3, 6),
        context=EngineContext("ORG-1", "user-7"),
    )
    service.approve(request.id, manager_context)
"""

from __future__ import annotations

import threading
from collections.abc import Iterable
from dataclasses import replace
from datetime import date, timedelta
from decimal import Decimal
from uuid import uuid4

from payroll_engines.leave_accrual import count_leave_days, month_end
from payroll_kernel.domain.audit import AuditAction
from payroll_kernel.domain.calendar import WeekdayCalendar, WorkCalendar
from payroll_kernel.domain.clock import Clock, SystemClock
from payroll_kernel.domain.context import EngineContext
from payroll_kernel.domain.money import ZERO
from payroll_kernel.exceptions import (
    InvalidLeaveRequestError,
    InvalidTransitionError,
    LeaveRequestNotFoundError,
    LeaveTypeNotFoundError,
)
from payroll_kernel.logging_config import get_logger
from payroll_kernel.services.auditor_service import AuditorService
from payroll_modules.leave.config import LeaveConfig
from payroll_modules.leave.ledger import LeaveLedger
from payroll_modules.leave.models import (
    LeaveBalance,
    LeaveBalanceAdjustment,
    LeaveCalendarEvent,
    LeaveOverview,
    LeaveRequest,
    LeaveRequestStatus,
    LeaveType,
)
from payroll_modules.leave.workflows import LEAVE_REQUEST_WORKFLOW

logger = get_logger("modules.leave.service")

ENTITY_TYPE = "LeaveRequest"


class LeaveService:
    """
    Leave request lifecycle and balance administration.

    Contract:
        Leave types are immutable values; registering a type under an
        existing id replaces the catalogue entry for future operations only.
    """

    def __init__(
        self,
        ledger: LeaveLedger,
        auditor: AuditorService,
        calendar: WorkCalendar | None = None,
        clock: Clock | None = None,
        config: LeaveConfig | None = None,
        leave_types: Iterable[LeaveType] = (),
    ):
        self._ledger = ledger
        self._auditor = auditor
        self._calendar = calendar or WeekdayCalendar()
        self._clock = clock or SystemClock()
        self._config = config or LeaveConfig.with_defaults()
        self._leave_types: dict[str, LeaveType] = {lt.id: lt for lt in leave_types}
        self._requests: dict[str, LeaveRequest] = {}
        self._lock = threading.RLock()

    @property
    def ledger(self) -> LeaveLedger:
        return self._ledger

    # ------------------------------------------------------------------
    # Leave types
    # ------------------------------------------------------------------

    def register_leave_type(self, leave_type: LeaveType) -> LeaveType:
        with self._lock:
            replaced = leave_type.id in self._leave_types
            self._leave_types[leave_type.id] = leave_type
        logger.info(
            "leave_type_registered",
            extra={
                "leave_type_id": leave_type.id,
                "accrual_method": leave_type.accrual_method.value,
                "replaced": replaced,
            },
        )
        return leave_type

    def get_leave_type(self, leave_type_id: str) -> LeaveType:
        leave_type = self._leave_types.get(leave_type_id)
        if leave_type is None:
            raise LeaveTypeNotFoundError(leave_type_id)
        return leave_type

    def list_leave_types(self, active_only: bool = False) -> tuple[LeaveType, ...]:
        types = sorted(self._leave_types.values(), key=lambda lt: lt.id)
        return tuple(lt for lt in types if lt.is_active or not active_only)

    # ------------------------------------------------------------------
    # Balances
    # ------------------------------------------------------------------

    def open_balance(
        self,
        employee_id: str,
        leave_type_id: str,
        accrual_start: date,
        context: EngineContext,
        opening_accrued: Decimal = ZERO,
    ) -> LeaveBalance:
        with context.bind(employee_id=employee_id):
            return self._ledger.open_balance(
                employee_id, self.get_leave_type(leave_type_id), accrual_start, context,
                opening_accrued=opening_accrued,
            )

    def adjust_balance(
        self,
        employee_id: str,
        leave_type_id: str,
        amount: Decimal,
        reason: str,
        context: EngineContext,
    ) -> LeaveBalance:
        """Administrative signed change to accrued days. Always logged."""
        leave_type = self.get_leave_type(leave_type_id)
        adjustment = LeaveBalanceAdjustment(
            employee_id=employee_id,
            leave_type_id=leave_type_id,
            amount=amount,
            reason=reason,
        )
        with context.bind(employee_id=employee_id):
            return self._ledger.adjust(adjustment, leave_type, context)

    def accrue(
        self,
        employee_id: str,
        leave_type_id: str,
        as_of: date,
        context: EngineContext,
    ) -> LeaveBalance:
        with context.bind(employee_id=employee_id):
            return self._ledger.accrue(self.get_leave_type(leave_type_id), employee_id, as_of, context)

    def accrue_all(self, as_of: date, context: EngineContext) -> tuple[LeaveBalance, ...]:
        """Run the accrual pass for every open balance of an active leave type."""
        results = []
        for balance in self._ledger.balances():
            leave_type = self._leave_types.get(balance.leave_type_id)
            if leave_type is None or not leave_type.is_active:
                continue
            results.append(self.accrue(balance.employee_id, leave_type.id, as_of, context))
        logger.info(
            "leave_accrual_pass_completed",
            extra={"as_of": as_of.isoformat(), "balance_count": len(results)},
        )
        return tuple(results)

    def list_balances(self, employee_id: str | None = None) -> tuple[LeaveBalance, ...]:
        return self._ledger.balances(employee_id=employee_id)

    def projected_balances(self, employee_id: str, as_of: date) -> tuple[tuple[LeaveType, LeaveBalance], ...]:
        """Every balance of ``employee_id`` accrued to ``as_of`` without mutation."""
        projected = []
        for balance in self._ledger.balances(employee_id=employee_id):
            leave_type = self._leave_types.get(balance.leave_type_id)
            if leave_type is None:
                continue
            projected.append((leave_type, self._ledger.project(leave_type, employee_id, as_of)))
        return tuple(projected)

    # ------------------------------------------------------------------
    # Requests
    # ------------------------------------------------------------------

    def create_request(
        self,
        employee_id: str,
        leave_type_id: str,
        start_date: date,
        end_date: date,
        context: EngineContext,
        is_partial_day: bool = False,
        partial_hours: Decimal | None = None,
        reason: str | None = None,
        attachment_url: str | None = None,
    ) -> LeaveRequest:
        """
        Create a pending request and reserve its days.

        Raises:
            LeaveTypeNotFoundError, InvalidLeaveRequestError,
            LeaveBalanceNotFoundError, InsufficientBalanceError.
        """
        leave_type = self.get_leave_type(leave_type_id)
        if not leave_type.is_active:
            raise InvalidLeaveRequestError(f"leave type {leave_type_id} is inactive")
        if leave_type.requires_attachment and not attachment_url:
            raise InvalidLeaveRequestError(f"{leave_type.name} requires an attachment")
        if not self._config.allow_backdated_requests and start_date < self._clock.today():
            raise InvalidLeaveRequestError("backdated leave requests are not allowed")

        days = count_leave_days(
            employee_id,
            start_date,
            end_date,
            self._calendar,
            is_partial_day=is_partial_day,
            partial_hours=partial_hours,
            standard_day_hours=self._config.standard_day_hours,
        )
        if days <= 0:
            raise InvalidLeaveRequestError("request covers no working days")
        if days > self._config.max_request_days:
            raise InvalidLeaveRequestError(
                f"request of {days} days exceeds the maximum of {self._config.max_request_days}"
            )

        request = LeaveRequest(
            id=str(uuid4()),
            employee_id=employee_id,
            leave_type_id=leave_type_id,
            start_date=start_date,
            end_date=end_date,
            days=days,
            created_at=self._clock.now(),
            created_by=context.actor_id,
            is_partial_day=is_partial_day,
            partial_hours=partial_hours,
            reason=reason,
            attachment_url=attachment_url,
        )

        with context.bind(employee_id=employee_id):
            self._ledger.reserve(request, leave_type, context)
            with self._lock:
                self._requests[request.id] = request
            self._auditor.record(
                ENTITY_TYPE, request.id, AuditAction.LEAVE_REQUESTED, context,
                payload={
                    "employee_id": employee_id,
                    "leave_type_id": leave_type_id,
                    "start_date": start_date,
                    "end_date": end_date,
                    "days": days,
                },
            )
            logger.info(
                "leave_request_created",
                extra={
                    "request_id": request.id,
                    "leave_type_id": leave_type_id,
                    "days": str(days),
                    "is_partial_day": is_partial_day,
                },
            )
        return request

    def get_request(self, request_id: str) -> LeaveRequest:
        request = self._requests.get(request_id)
        if request is None:
            raise LeaveRequestNotFoundError(request_id)
        return request

    def list_requests(
        self,
        employee_id: str | None = None,
        status: LeaveRequestStatus | None = None,
        leave_type_id: str | None = None,
    ) -> tuple[LeaveRequest, ...]:
        with self._lock:
            requests = list(self._requests.values())
        selected = [
            r for r in requests
            if (employee_id is None or r.employee_id == employee_id)
            and (status is None or r.status is status)
            and (leave_type_id is None or r.leave_type_id == leave_type_id)
        ]
        return tuple(sorted(selected, key=lambda r: (r.start_date, r.created_at, r.id)))

    def approve(self, request_id: str, context: EngineContext) -> LeaveRequest:
        with self._lock, context.bind():
            request = self.get_request(request_id)
            LEAVE_REQUEST_WORKFLOW.require(request.status, "approve", ENTITY_TYPE, request_id)
            self._ledger.commit(request, LeaveRequestStatus.APPROVED, context)
            updated = replace(
                request,
                status=LeaveRequestStatus.APPROVED,
                approved_by=context.actor_id,
                approved_at=self._clock.now(),
            )
            self._requests[request_id] = updated
            self._record(updated, AuditAction.LEAVE_APPROVED, context, request.status)
        return updated

    def reject(self, request_id: str, reason: str, context: EngineContext) -> LeaveRequest:
        with self._lock, context.bind():
            request = self.get_request(request_id)
            LEAVE_REQUEST_WORKFLOW.require(request.status, "reject", ENTITY_TYPE, request_id)
            if not reason or not reason.strip():
                raise InvalidLeaveRequestError("a rejection requires a reason")
            self._ledger.commit(request, LeaveRequestStatus.REJECTED, context)
            updated = replace(
                request,
                status=LeaveRequestStatus.REJECTED,
                rejected_by=context.actor_id,
                rejected_at=self._clock.now(),
                rejection_reason=reason,
            )
            self._requests[request_id] = updated
            self._record(updated, AuditAction.LEAVE_REJECTED, context, request.status,
                         extra={"rejection_reason": reason})
        return updated

    def cancel(self, request_id: str, context: EngineContext) -> LeaveRequest:
        """
        Cancel a pending or approved request before its start date.

        Pending days are released; approved days are returned from taken.

        Raises:
            InvalidTransitionError: the request is rejected/cancelled, or
                its leave period has already started.
        """
        with self._lock, context.bind():
            request = self.get_request(request_id)
            LEAVE_REQUEST_WORKFLOW.require(request.status, "cancel", ENTITY_TYPE, request_id)
            if self._clock.today() >= request.start_date:
                raise InvalidTransitionError(
                    entity_type=ENTITY_TYPE,
                    entity_id=request_id,
                    from_state=request.status.value,
                    action="cancel",
                    reason="leave has started; correct the balance with an adjustment",
                )

            match request.status:
                case LeaveRequestStatus.PENDING:
                    self._ledger.commit(request, LeaveRequestStatus.CANCELLED, context)
                case LeaveRequestStatus.APPROVED:
                    self._ledger.reverse(request, context)
                case _:
                    raise ValueError(f"Unexpected cancellable status {request.status}")

            updated = replace(
                request,
                status=LeaveRequestStatus.CANCELLED,
                cancelled_by=context.actor_id,
                cancelled_at=self._clock.now(),
            )
            self._requests[request_id] = updated
            self._record(updated, AuditAction.LEAVE_CANCELLED, context, request.status)
        return updated

    def _record(
        self,
        request: LeaveRequest,
        action: AuditAction,
        context: EngineContext,
        from_status: LeaveRequestStatus,
        extra: dict | None = None,
    ) -> None:
        payload = {
            "employee_id": request.employee_id,
            "leave_type_id": request.leave_type_id,
            "days": request.days,
            "from_status": from_status,
            "to_status": request.status,
        }
        payload.update(extra or {})
        self._auditor.record(ENTITY_TYPE, request.id, action, context, payload=payload)
        logger.info(
            "leave_request_transitioned",
            extra={
                "request_id": request.id,
                "employee_id": request.employee_id,
                "from_status": from_status.value,
                "to_status": request.status.value,
            },
        )

    # ------------------------------------------------------------------
    # Read models
    # ------------------------------------------------------------------

    def overview(self, as_of: date | None = None) -> LeaveOverview:
        as_of = as_of or self._clock.today()
        expiring_until = as_of + timedelta(days=self._config.expiring_horizon_days)
        upcoming_until = as_of + timedelta(days=self._config.upcoming_horizon_days)
        approved = self.list_requests(status=LeaveRequestStatus.APPROVED)
        balances = self._ledger.balances()

        return LeaveOverview(
            as_of=as_of,
            pending_requests=self.list_requests(status=LeaveRequestStatus.PENDING),
            negative_balances=tuple(b for b in balances if b.is_negative),
            expiring_balances=tuple(
                b for b in balances
                if b.carry_over_remaining > 0
                and b.carry_over_expires_on is not None
                and as_of <= b.carry_over_expires_on <= expiring_until
            ),
            on_leave=tuple(r for r in approved if r.start_date <= as_of <= r.end_date),
            upcoming_leave=tuple(r for r in approved if as_of < r.start_date <= upcoming_until),
        )

    def calendar(self, year: int, month: int) -> tuple[LeaveCalendarEvent, ...]:
        """Approved requests overlapping the given month."""
        first = date(year, month, 1)
        last = month_end(first)
        events = []
        for r in self.list_requests(status=LeaveRequestStatus.APPROVED):
            if not r.overlaps(first, last):
                continue
            leave_type = self._leave_types.get(r.leave_type_id)
            events.append(LeaveCalendarEvent(
                request_id=r.id,
                employee_id=r.employee_id,
                leave_type_id=r.leave_type_id,
                leave_type_name=leave_type.name if leave_type else r.leave_type_id,
                start_date=r.start_date,
                end_date=r.end_date,
                days=r.days,
                is_partial_day=r.is_partial_day,
            ))
        return tuple(sorted(events, key=lambda e: (e.start_date, e.employee_id, e.request_id)))
