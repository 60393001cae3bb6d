"""
Payroll Module Service (``payroll_modules.payroll.service``).

Responsibility
--------------
Drives payruns through ``PAYRUN_WORKFLOW``: creation, the calculation
fan-out over eligible employees, payslip edits, recalculation of run
totals, cancellation of an in-flight calculation, finalization, deletion,
and the read models (employees, payslips, summary, EFT batch).

Architecture position
---------------------
**Modules layer** -- composes the pure ``calculate_payslip`` engine, the
shared validation engine and the kernel ``AuditorService``. Payslip
computation runs on a ``ThreadPoolExecutor``; everything else happens
under the run's lock.

Invariants enforced
-------------------
* Every transition is checked with ``PAYRUN_WORKFLOW.require`` under the
  run lock; a refused transition leaves the run unchanged.
* Run totals are always the sums of the stored payslips.
* Each calculation carries a generation number. Results from a cancelled
  (or superseded) calculation are discarded, never stored.
* Finalization is compare-and-set: the second of two concurrent
  finalizations observes ``FINALIZED`` and raises ``InvalidTransitionError``.
* A finalized run's payslips are immutable.
* A kernel error while calculating one employee is stored as that
  employee's payslip error; the rest of the run still completes.

Failure modes
-------------
* ``InvalidTransitionError`` -- illegal action for the current status.
* ``ValidationFailedError`` -- finalization with payslip errors.
* ``PayrunNotFoundError`` / ``PayslipNotFoundError``.
* ``InvalidLineModificationError`` / ``PayslipLineNotFoundError`` --
  an edit violates the required/skip rules.

Audit relevance
---------------
One audit event per transition, on entity type ``Payrun``. Structured
log events carry the payrun id, status change and run totals.

Usage::

    service = PayrunService(auditor, clock=clock)
    payrun = service.create_run(
        "2026-03", date(2026, 3, 1), date(2026, 3, 31), date(2026, 3, 25), context,
    )
    service.run(payrun.id, payslip_inputs, context)
    service.finalize(payrun.id, context)
"""

from __future__ import annotations

import threading
from collections.abc import Iterable
from concurrent.futures import ThreadPoolExecutor
from contextvars import copy_context
from dataclasses import dataclass, field, replace
from datetime import date
from uuid import uuid4

from payroll_engines.payslip import (
    LineOverride,
    PayslipCalculation,
    PayslipInput,
    PayslipOverrides,
    calculate_payslip,
    failed_calculation,
    validate_override,
)
from payroll_engines.statutory import StatutoryRules
from payroll_engines.validation import (
    PAYRUN_FINALIZATION_RULES,
    PayrunValidationContext,
    validate,
)
from payroll_kernel.domain.audit import AuditAction
from payroll_kernel.domain.clock import Clock, SystemClock
from payroll_kernel.domain.context import EngineContext
from payroll_kernel.domain.money import sum_money
from payroll_kernel.exceptions import (
    InvalidTransitionError,
    PayrollKernelError,
    PayrunNotFoundError,
    PayslipNotFoundError,
    ValidationFailedError,
)
from payroll_kernel.logging_config import LogContext, get_logger
from payroll_kernel.services.auditor_service import AuditorService
from payroll_modules.payroll.config import PayrollConfig
from payroll_modules.payroll.helpers import (
    batch_total,
    build_eft_payments,
    eligible_inputs,
    generate_eft_batch,
)
from payroll_modules.payroll.models import (
    EftBatch,
    EmployeePayslip,
    Payrun,
    PayrunEmployee,
    PayrunFinalization,
    PayrunStatus,
    PayrunSummary,
)
from payroll_modules.payroll.workflows import PAYRUN_WORKFLOW

logger = get_logger("modules.payroll.service")

ENTITY_TYPE = "Payrun"


@dataclass
class _RunState:
    """Mutable bookkeeping for one payrun. Guarded by ``lock``."""
    payrun: Payrun
    lock: threading.Lock = field(default_factory=threading.Lock)
    generation: int = 0
    inputs: dict[str, PayslipInput] = field(default_factory=dict)
    overrides: dict[str, PayslipOverrides] = field(default_factory=dict)
    payslips: dict[str, EmployeePayslip] = field(default_factory=dict)

    def ordered_payslips(self) -> tuple[EmployeePayslip, ...]:
        return tuple(self.payslips[k] for k in sorted(self.payslips))


class PayrunService:
    """
    Payrun lifecycle and payslip storage.

    Contract:
        ``run`` blocks until the calculation completes or is cancelled by
        another thread. Inputs passed to ``run`` are snapshotted; later
        changes to employee data do not affect a calculated run.
    """

    def __init__(
        self,
        auditor: AuditorService,
        statutory_rules: StatutoryRules | None = None,
        clock: Clock | None = None,
        config: PayrollConfig | None = None,
    ):
        self._auditor = auditor
        self._clock = clock or SystemClock()
        self._config = config or PayrollConfig.with_defaults()
        self._statutory = statutory_rules or self._config.statutory_rules()
        self._rules = self._config.payslip_rules()
        self._runs: dict[str, _RunState] = {}
        self._registry_lock = threading.Lock()

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _state(self, payrun_id: str) -> _RunState:
        with self._registry_lock:
            state = self._runs.get(payrun_id)
        if state is None:
            raise PayrunNotFoundError(payrun_id)
        return state

    def _with_totals(self, state: _RunState, status: PayrunStatus) -> Payrun:
        payslips = state.ordered_payslips()
        places = self._config.currency_places
        return replace(
            state.payrun,
            status=status,
            employee_count=len(payslips),
            total_gross=sum_money((p.gross_pay for p in payslips), places),
            total_deductions=sum_money((p.total_deductions for p in payslips), places),
            total_net=sum_money((p.net_pay for p in payslips), places),
            employees_with_errors=sum(1 for p in payslips if p.has_errors),
            updated_at=self._clock.now(),
        )

    def _calculate_one(
        self,
        payslip_input: PayslipInput,
        overrides: PayslipOverrides,
    ) -> PayslipCalculation:
        with LogContext.bind(employee_id=payslip_input.employee_id):
            try:
                return calculate_payslip(payslip_input, self._statutory, self._rules, overrides)
            except PayrollKernelError as exc:
                # One employee's bad data is recorded on that payslip only.
                logger.warning(
                    "payslip_calculation_failed",
                    extra={
                        "employee_id": payslip_input.employee_id,
                        "error_code": exc.code,
                        "error": str(exc),
                    },
                )
                return failed_calculation(payslip_input, f"{exc.code}: {exc}", self._rules)

    def _calculate_all(
        self,
        inputs: tuple[PayslipInput, ...],
        overrides: dict[str, PayslipOverrides],
    ) -> list[PayslipCalculation]:
        if not inputs:
            return []
        workers = min(self._config.max_workers, len(inputs))
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="payslip") as executor:
            # Each task gets its own context copy so log fields follow it.
            futures = [
                executor.submit(
                    copy_context().run, self._calculate_one, item,
                    overrides.get(item.employee_id, PayslipOverrides()),
                )
                for item in inputs
            ]
            return [f.result() for f in futures]

    def _record(
        self,
        payrun: Payrun,
        action: AuditAction,
        context: EngineContext,
        **payload,
    ) -> None:
        payload.setdefault("status", payrun.status)
        self._auditor.record(ENTITY_TYPE, payrun.id, action, context, payload=payload)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def create_run(
        self,
        pay_period: str,
        period_start: date,
        period_end: date,
        pay_date: date,
        context: EngineContext,
        pay_frequency_id: str | None = None,
        pay_frequency_name: str | None = None,
        pay_point_ids: Iterable[str] = (),
    ) -> Payrun:
        """Create a DRAFT payrun for a pay period."""
        frequency = pay_frequency_id or self._config.default_pay_frequency
        payrun = Payrun(
            id=str(uuid4()),
            pay_period=pay_period,
            period_start=period_start,
            period_end=period_end,
            pay_date=pay_date,
            pay_frequency_id=frequency,
            pay_frequency_name=pay_frequency_name or frequency.title(),
            created_at=self._clock.now(),
            created_by=context.actor_id,
            pay_point_ids=tuple(sorted(pay_point_ids)),
        )
        with self._registry_lock:
            self._runs[payrun.id] = _RunState(payrun=payrun)

        with context.bind(payrun_id=payrun.id):
            self._record(
                payrun, AuditAction.PAYRUN_CREATED, context,
                pay_period=pay_period,
                period_start=period_start,
                period_end=period_end,
                pay_point_ids=list(payrun.pay_point_ids),
            )
            logger.info(
                "payrun_created",
                extra={
                    "payrun_id": payrun.id,
                    "pay_period": pay_period,
                    "pay_frequency_id": frequency,
                    "pay_point_count": len(payrun.pay_point_ids),
                },
            )
        return payrun

    def run(
        self,
        payrun_id: str,
        inputs: Iterable[PayslipInput],
        context: EngineContext,
    ) -> Payrun:
        """
        Snapshot eligible inputs and compute every payslip.

        DRAFT -> CALCULATING -> READY. Per-employee data problems are
        recorded on the payslip and never abort the run. Overrides made
        on an earlier calculation are kept for employees still in the run.

        Returns the run as stored after the calculation; that is DRAFT
        when another thread cancelled it while payslips were computing.
        """
        state = self._state(payrun_id)
        with context.bind(payrun_id=payrun_id):
            with state.lock:
                PAYRUN_WORKFLOW.require(state.payrun.status, "run", ENTITY_TYPE, payrun_id)
                snapshot = eligible_inputs(state.payrun, inputs)
                state.generation += 1
                generation = state.generation
                state.inputs = {i.employee_id: i for i in snapshot}
                state.overrides = {
                    k: v for k, v in state.overrides.items() if k in state.inputs
                }
                overrides = dict(state.overrides)
                state.payslips = {}
                state.payrun = replace(
                    state.payrun, status=PayrunStatus.CALCULATING, updated_at=self._clock.now(),
                )
                self._record(
                    state.payrun, AuditAction.PAYRUN_CALCULATION_STARTED, context,
                    employee_count=len(snapshot), generation=generation,
                )
            logger.info(
                "payrun_calculation_started",
                extra={"payrun_id": payrun_id, "employee_count": len(snapshot)},
            )

            try:
                calculations = self._calculate_all(snapshot, overrides)
            except Exception:
                with state.lock:
                    if state.generation == generation and state.payrun.status is PayrunStatus.CALCULATING:
                        state.generation += 1
                        state.payrun = replace(
                            state.payrun, status=PayrunStatus.DRAFT, updated_at=self._clock.now(),
                        )
                        self._record(
                            state.payrun, AuditAction.PAYRUN_CALCULATION_CANCELLED, context,
                            reason="calculation_failed",
                        )
                logger.exception("payrun_calculation_failed", extra={"payrun_id": payrun_id})
                raise

            with state.lock:
                if state.generation != generation or state.payrun.status is not PayrunStatus.CALCULATING:
                    logger.info(
                        "payrun_results_discarded",
                        extra={
                            "payrun_id": payrun_id,
                            "generation": generation,
                            "current_generation": state.generation,
                            "status": state.payrun.status.value,
                        },
                    )
                    return state.payrun

                PAYRUN_WORKFLOW.require(
                    state.payrun.status, "complete_calculation", ENTITY_TYPE, payrun_id,
                )
                now = self._clock.now()
                state.payslips = {
                    c.employee_id: EmployeePayslip.from_calculation(
                        str(uuid4()), payrun_id, c, now,
                        is_edited=c.employee_id in overrides,
                    )
                    for c in calculations
                }
                state.payrun = self._with_totals(state, PayrunStatus.READY)
                payrun = state.payrun
                self._record(
                    payrun, AuditAction.PAYRUN_READY, context,
                    employee_count=payrun.employee_count,
                    total_gross=payrun.total_gross,
                    total_net=payrun.total_net,
                    employees_with_errors=payrun.employees_with_errors,
                )

            logger.info(
                "payrun_calculation_completed",
                extra={
                    "payrun_id": payrun_id,
                    "employee_count": payrun.employee_count,
                    "employees_with_errors": payrun.employees_with_errors,
                    "total_gross": str(payrun.total_gross),
                    "total_net": str(payrun.total_net),
                },
            )
        return payrun

    def cancel(self, payrun_id: str, context: EngineContext) -> Payrun:
        """CALCULATING -> DRAFT. In-flight results are discarded."""
        state = self._state(payrun_id)
        with context.bind(payrun_id=payrun_id), state.lock:
            PAYRUN_WORKFLOW.require(state.payrun.status, "cancel", ENTITY_TYPE, payrun_id)
            state.generation += 1
            state.payslips = {}
            state.payrun = self._with_totals(state, PayrunStatus.DRAFT)
            self._record(state.payrun, AuditAction.PAYRUN_CALCULATION_CANCELLED, context,
                         reason="cancelled")
            logger.info("payrun_calculation_cancelled", extra={"payrun_id": payrun_id})
            return state.payrun

    def edit_payslip(
        self,
        payrun_id: str,
        employee_id: str,
        override: LineOverride,
        context: EngineContext,
    ) -> EmployeePayslip:
        """
        Apply a line edit and recompute that employee's payslip.

        A READY run reverts to DRAFT; other payslips are untouched.

        Raises:
            InvalidTransitionError: run is CALCULATING or FINALIZED.
            PayslipNotFoundError: employee has no payslip on this run.
            InvalidLineModificationError, PayslipLineNotFoundError.
        """
        state = self._state(payrun_id)
        with context.bind(payrun_id=payrun_id, employee_id=employee_id), state.lock:
            from_status = state.payrun.status
            PAYRUN_WORKFLOW.require(from_status, "edit", ENTITY_TYPE, payrun_id)
            source = state.inputs.get(employee_id)
            current = state.payslips.get(employee_id)
            if source is None or current is None:
                raise PayslipNotFoundError(payrun_id, employee_id)

            validate_override(source, override, self._rules)
            overrides = state.overrides.get(employee_id, PayslipOverrides()).with_override(override)
            calculation = calculate_payslip(source, self._statutory, self._rules, overrides)
            updated = EmployeePayslip.from_calculation(
                current.id, payrun_id, calculation, self._clock.now(), is_edited=True,
            )
            state.overrides[employee_id] = overrides
            state.payslips[employee_id] = updated
            state.payrun = self._with_totals(state, PayrunStatus.DRAFT)

            action = (
                AuditAction.PAYRUN_REOPENED if from_status is PayrunStatus.READY
                else AuditAction.PAYSLIP_EDITED
            )
            self._record(
                state.payrun, action, context,
                employee_id=employee_id,
                line_id=override.line_id,
                amount=override.amount,
                hours=override.hours,
                rate=override.rate,
                is_skipped=override.is_skipped,
                net_pay=updated.net_pay,
            )
            logger.info(
                "payslip_edited",
                extra={
                    "payrun_id": payrun_id,
                    "employee_id": employee_id,
                    "line_id": override.line_id,
                    "from_status": from_status.value,
                    "net_pay": str(updated.net_pay),
                    "has_errors": updated.has_errors,
                },
            )
        return updated

    def recalculate(self, payrun_id: str, context: EngineContext) -> Payrun:
        """
        DRAFT -> READY after edits.

        Only edited payslips are recomputed; unaffected payslips and the
        employee snapshot are reused as stored.
        """
        state = self._state(payrun_id)
        with context.bind(payrun_id=payrun_id), state.lock:
            PAYRUN_WORKFLOW.require(state.payrun.status, "recalculate", ENTITY_TYPE, payrun_id)
            if not state.payslips:
                raise InvalidTransitionError(
                    entity_type=ENTITY_TYPE,
                    entity_id=payrun_id,
                    from_state=state.payrun.status.value,
                    action="recalculate",
                    reason="payrun has not been calculated; use run",
                )

            now = self._clock.now()
            edited = sorted(k for k in state.overrides if k in state.payslips)
            for employee_id in edited:
                calculation = self._calculate_one(
                    state.inputs[employee_id], state.overrides[employee_id],
                )
                state.payslips[employee_id] = EmployeePayslip.from_calculation(
                    state.payslips[employee_id].id, payrun_id, calculation, now, is_edited=True,
                )
            state.payrun = self._with_totals(state, PayrunStatus.READY)
            payrun = state.payrun
            self._record(
                payrun, AuditAction.PAYRUN_READY, context,
                recalculated_employees=edited,
                total_gross=payrun.total_gross,
                total_net=payrun.total_net,
                employees_with_errors=payrun.employees_with_errors,
            )
        logger.info(
            "payrun_recalculated",
            extra={
                "payrun_id": payrun_id,
                "recalculated_count": len(edited),
                "employees_with_errors": payrun.employees_with_errors,
            },
        )
        return payrun

    def finalize(self, payrun_id: str, context: EngineContext) -> PayrunFinalization:
        """
        READY -> FINALIZED. Irreversible.

        Raises:
            InvalidTransitionError: run is not READY (including already
                finalized by a concurrent caller).
            ValidationFailedError: blocking finalization rules failed;
                status unchanged.
        """
        state = self._state(payrun_id)
        with context.bind(payrun_id=payrun_id), state.lock:
            PAYRUN_WORKFLOW.require(state.payrun.status, "finalize", ENTITY_TYPE, payrun_id)
            payslips = state.ordered_payslips()
            result = validate(
                PayrunValidationContext(
                    payrun_id=payrun_id,
                    employee_count=len(payslips),
                    employees_with_errors=state.payrun.employees_with_errors,
                    payslips_with_zero_net=sum(1 for p in payslips if p.net_pay == 0),
                    error_employee_ids=tuple(p.employee_id for p in payslips if p.has_errors),
                ),
                PAYRUN_FINALIZATION_RULES,
            )
            if not result.is_valid:
                logger.warning(
                    "payrun_finalization_blocked",
                    extra={
                        "payrun_id": payrun_id,
                        "error_codes": list(result.error_codes),
                        "employees_with_errors": state.payrun.employees_with_errors,
                    },
                )
                raise ValidationFailedError(
                    ENTITY_TYPE, payrun_id, result.errors, result.warnings,
                )

            now = self._clock.now()
            state.payrun = replace(
                state.payrun,
                status=PayrunStatus.FINALIZED,
                finalized_at=now,
                finalized_by=context.actor_id,
                updated_at=now,
            )
            payrun = state.payrun
            self._record(
                payrun, AuditAction.PAYRUN_FINALIZED, context,
                employee_count=payrun.employee_count,
                total_gross=payrun.total_gross,
                total_deductions=payrun.total_deductions,
                total_net=payrun.total_net,
                warning_codes=list(result.warning_codes),
            )
        logger.info(
            "payrun_finalized",
            extra={
                "payrun_id": payrun_id,
                "employee_count": payrun.employee_count,
                "total_net": str(payrun.total_net),
                "warning_codes": list(result.warning_codes),
            },
        )
        return PayrunFinalization(payrun=payrun, warnings=result.warnings)

    def delete_run(self, payrun_id: str, context: EngineContext) -> None:
        """Remove a DRAFT or READY run."""
        state = self._state(payrun_id)
        with context.bind(payrun_id=payrun_id), state.lock:
            status = state.payrun.status
            if status in (PayrunStatus.CALCULATING, PayrunStatus.FINALIZED):
                raise InvalidTransitionError(
                    entity_type=ENTITY_TYPE,
                    entity_id=payrun_id,
                    from_state=status.value,
                    action="delete",
                    reason="only draft or ready payruns can be deleted",
                )
            state.generation += 1
            with self._registry_lock:
                del self._runs[payrun_id]
            self._record(state.payrun, AuditAction.PAYRUN_DELETED, context,
                         employee_count=state.payrun.employee_count)
            logger.info("payrun_deleted", extra={"payrun_id": payrun_id, "status": status.value})

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_run(self, payrun_id: str) -> Payrun:
        return self._state(payrun_id).payrun

    def list_runs(self, status: PayrunStatus | None = None) -> tuple[Payrun, ...]:
        with self._registry_lock:
            runs = [s.payrun for s in self._runs.values()]
        selected = [r for r in runs if status is None or r.status is status]
        return tuple(sorted(selected, key=lambda r: (r.period_start, r.created_at, r.id)))

    def payslips(self, payrun_id: str) -> tuple[EmployeePayslip, ...]:
        state = self._state(payrun_id)
        with state.lock:
            return state.ordered_payslips()

    def employees(self, payrun_id: str) -> tuple[PayrunEmployee, ...]:
        return tuple(PayrunEmployee.from_payslip(p) for p in self.payslips(payrun_id))

    def get_payslip(self, payrun_id: str, employee_id: str) -> EmployeePayslip:
        state = self._state(payrun_id)
        payslip = state.payslips.get(employee_id)
        if payslip is None:
            raise PayslipNotFoundError(payrun_id, employee_id)
        return payslip

    def summary(self, payrun_id: str) -> PayrunSummary:
        return PayrunSummary.from_payslips(payrun_id, self.payslips(payrun_id))

    def is_employee_finalized(self, payrun_id: str, employee_id: str) -> bool:
        """True when ``payrun_id`` is finalized and holds a payslip for the employee."""
        with self._registry_lock:
            state = self._runs.get(payrun_id)
        if state is None:
            return False
        with state.lock:
            return state.payrun.is_finalized and employee_id in state.payslips

    def export_eft(self, payrun_id: str, context: EngineContext) -> EftBatch:
        """
        Build the EFT batch for a finalized run.

        Raises:
            InvalidTransitionError: run is not finalized.
        """
        state = self._state(payrun_id)
        with context.bind(payrun_id=payrun_id), state.lock:
            payrun = state.payrun
            if not payrun.is_finalized:
                raise InvalidTransitionError(
                    entity_type=ENTITY_TYPE,
                    entity_id=payrun_id,
                    from_state=payrun.status.value,
                    action="export_eft",
                    reason="only finalized payruns can be paid",
                )
            payments, skipped = build_eft_payments(state.ordered_payslips(), state.inputs)

        content = generate_eft_batch(
            payments,
            company_name=self._config.company_name,
            company_id=self._config.company_id,
            effective_date=payrun.pay_date,
            reference=payrun.pay_period,
        )
        batch = EftBatch(
            payrun_id=payrun_id,
            effective_date=payrun.pay_date,
            payments=payments,
            total=batch_total(payments),
            content=content,
        )
        if skipped:
            logger.warning(
                "eft_payments_skipped",
                extra={"payrun_id": payrun_id, "employee_ids": list(skipped)},
            )
        logger.info(
            "eft_batch_generated",
            extra={
                "payrun_id": payrun_id,
                "payment_count": batch.payment_count,
                "total": str(batch.total),
            },
        )
        return batch
