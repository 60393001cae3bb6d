"""
Termination Module Service (``payroll_modules.termination.service``).

Responsibility
--------------
Creates terminations, previews the settlement, toggles skippable
deductions, submits to payroll after validation and completes the
termination once the final payrun is finalized for the employee.
Completion freezes the settlement and issues the document descriptors.

Architecture position
---------------------
**Modules layer** -- composes ``payroll_engines.settlement``, the shared
validation engine, the leave service (for balances projected to the
termination date) and the kernel ``AuditorService``. The payrun is an
external collaborator reached through the injected
``is_employee_finalized(payrun_id, employee_id)`` callable.

Invariants enforced
-------------------
* ``summary.net_pay == summary.gross_pay - summary.total_deductions``.
* Required deductions are never skipped.
* DRAFT -> PENDING_PAYROLL only with no validation errors; warnings are
  returned to the caller.
* PENDING_PAYROLL -> COMPLETED only when the final payrun is finalized
  for the employee. A completed termination never changes.

Failure modes
-------------
* ``ValidationFailedError`` -- submission with blocking errors.
* ``InvalidTransitionError`` -- illegal status change, or completion
  before the final payrun is finalized.
* ``InvalidLineModificationError`` -- skipping a required or unknown
  deduction.
* ``TerminationNotFoundError``.

Audit relevance
---------------
One audit event per transition on entity type ``Termination``; the
detail view's audit log is read back from the audit trail.
"""

from __future__ import annotations

import threading
from collections.abc import Callable
from dataclasses import dataclass, replace
from datetime import date
from uuid import uuid4

from payroll_engines.settlement import (
    LeaveEntitlement,
    SettlementInput,
    SeveranceFormula,
    TerminationPayComponents,
    TerminationReason,
    calculate_settlement,
)
from payroll_engines.statutory import StatutoryRules
from payroll_engines.validation import (
    TERMINATION_RULES,
    TerminationValidationContext,
    ValidationResult,
    validate,
)
from payroll_kernel.domain.audit import AuditAction
from payroll_kernel.domain.clock import Clock, SystemClock
from payroll_kernel.domain.context import EngineContext
from payroll_kernel.exceptions import (
    InvalidTransitionError,
    TerminationNotFoundError,
    ValidationFailedError,
)
from payroll_kernel.logging_config import get_logger
from payroll_kernel.services.auditor_service import AuditorService
from payroll_modules.leave.service import LeaveService
from payroll_modules.payroll.config import PayrollConfig
from payroll_modules.termination.config import TerminationConfig
from payroll_modules.termination.models import (
    DOCUMENT_NAMES,
    EmployeeProfile,
    Termination,
    TerminationAuditEntry,
    TerminationDetail,
    TerminationDocument,
    TerminationPreview,
    TerminationStatus,
    TerminationSubmission,
)
from payroll_modules.termination.workflows import TERMINATION_WORKFLOW

logger = get_logger("modules.termination.service")

ENTITY_TYPE = "Termination"

FinalizationCheck = Callable[[str, str], bool]


@dataclass
class _TerminationState:
    termination: Termination
    profile: EmployeeProfile
    components: TerminationPayComponents | None = None
    documents: tuple[TerminationDocument, ...] = ()


class TerminationService:
    """
    Termination settlement lifecycle.

    Contract:
        Settlement figures are recomputed on demand until completion; the
        completed settlement is stored and returned unchanged afterwards.
    """

    def __init__(
        self,
        auditor: AuditorService,
        is_employee_finalized: FinalizationCheck,
        leave_service: LeaveService | None = None,
        statutory_rules: StatutoryRules | None = None,
        severance_formula: SeveranceFormula | None = None,
        clock: Clock | None = None,
        config: TerminationConfig | None = None,
    ):
        self._auditor = auditor
        self._is_employee_finalized = is_employee_finalized
        self._leave_service = leave_service
        self._config = config or TerminationConfig.with_defaults()
        self._statutory = statutory_rules or PayrollConfig.with_defaults().statutory_rules()
        self._severance = severance_formula or self._config.severance_formula()
        self._rules = self._config.settlement_rules()
        self._clock = clock or SystemClock()
        self._terminations: dict[str, _TerminationState] = {}
        self._lock = threading.RLock()

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _state(self, termination_id: str) -> _TerminationState:
        state = self._terminations.get(termination_id)
        if state is None:
            raise TerminationNotFoundError(termination_id)
        return state

    def _leave_entitlements(self, employee_id: str, as_of: date) -> tuple[LeaveEntitlement, ...]:
        if self._leave_service is None:
            return ()
        return tuple(
            LeaveEntitlement(
                leave_type_id=leave_type.id,
                name=leave_type.name,
                available=balance.available,
                is_paid=leave_type.is_paid and leave_type.is_active,
            )
            for leave_type, balance in self._leave_service.projected_balances(employee_id, as_of)
        )

    def _compute(
        self,
        termination: Termination,
        profile: EmployeeProfile,
        skipped: frozenset[str],
    ) -> TerminationPayComponents:
        settlement_input = SettlementInput(
            employee_id=termination.employee_id,
            employee_name=termination.employee_name,
            employee_number=termination.employee_number,
            termination_date=termination.termination_date,
            last_working_day=termination.last_working_day,
            reason=termination.reason,
            monthly_salary=profile.monthly_salary,
            notice_period_days=termination.notice_period_days,
            paid_in_lieu=termination.paid_in_lieu,
            hire_date=profile.hire_date,
            paid_through=profile.paid_through,
            daily_rate=profile.daily_rate,
            allowances=profile.allowances,
            leave_entitlements=self._leave_entitlements(
                termination.employee_id, termination.termination_date,
            ),
            recoveries=profile.recoveries,
            ytd=profile.ytd,
        )
        return calculate_settlement(
            settlement_input,
            self._statutory,
            self._severance,
            self._rules,
            skipped_deductions=skipped,
        )

    def _validate(
        self,
        termination: Termination,
        profile: EmployeeProfile,
        components: TerminationPayComponents,
    ) -> ValidationResult:
        return validate(
            TerminationValidationContext(
                termination_date=termination.termination_date,
                last_working_day=termination.last_working_day,
                hire_date=profile.hire_date,
                notice_period_days=termination.notice_period_days,
                leave_payout_days=components.earnings.leave_payout_days,
                net_pay=components.summary.net_pay,
                high_leave_payout_days=self._config.high_leave_payout_days,
            ),
            TERMINATION_RULES,
        )

    def _record(
        self,
        termination: Termination,
        action: AuditAction,
        context: EngineContext,
        **payload,
    ) -> None:
        payload.setdefault("status", termination.status)
        payload.setdefault("employee_id", termination.employee_id)
        self._auditor.record(ENTITY_TYPE, termination.id, action, context, payload=payload)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def create_termination(
        self,
        profile: EmployeeProfile,
        termination_date: date,
        last_working_day: date,
        reason: TerminationReason,
        paid_in_lieu: bool,
        context: EngineContext,
        notice_period_days: int | None = None,
        final_pay_period: str | None = None,
    ) -> Termination:
        """Create a DRAFT termination. Validation runs at submission."""
        now = self._clock.now()
        termination = Termination(
            id=str(uuid4()),
            employee_id=profile.employee_id,
            employee_name=profile.employee_name,
            employee_number=profile.employee_number,
            termination_date=termination_date,
            last_working_day=last_working_day,
            reason=reason,
            notice_period_days=(
                self._config.default_notice_period_days
                if notice_period_days is None else notice_period_days
            ),
            paid_in_lieu=paid_in_lieu,
            final_pay_period=final_pay_period or f"{termination_date:%Y-%m}",
            created_at=now,
            created_by=context.actor_id,
            updated_at=now,
        )
        with self._lock:
            self._terminations[termination.id] = _TerminationState(termination, profile)

        with context.bind(employee_id=profile.employee_id):
            self._record(
                termination, AuditAction.TERMINATION_CREATED, context,
                reason=reason,
                termination_date=termination_date,
                last_working_day=last_working_day,
                paid_in_lieu=paid_in_lieu,
                notes="Termination initiated",
            )
            logger.info(
                "termination_created",
                extra={
                    "termination_id": termination.id,
                    "reason": reason.value,
                    "termination_date": termination_date.isoformat(),
                    "paid_in_lieu": paid_in_lieu,
                },
            )
        return termination

    def preview(self, termination_id: str) -> TerminationPreview:
        """Settlement and validation as of now. Nothing is stored."""
        with self._lock:
            state = self._state(termination_id)
            termination = state.termination
            components = state.components or self._compute(
                termination, state.profile, termination.skipped_deductions,
            )
            validation = self._validate(termination, state.profile, components)
        return TerminationPreview(
            employee_name=termination.employee_name,
            employee_number=termination.employee_number,
            termination_date=termination.termination_date,
            reason=termination.reason,
            pay_components=components,
            validation=validation,
        )

    def set_deduction_skip(
        self,
        termination_id: str,
        deduction_id: str,
        skip: bool,
        context: EngineContext,
    ) -> TerminationPayComponents:
        """
        Skip or restore one deduction on a draft settlement.

        Raises:
            InvalidTransitionError: termination is not a draft.
            InvalidLineModificationError: deduction is required or unknown.
        """
        with self._lock:
            state = self._state(termination_id)
            termination = state.termination
            TERMINATION_WORKFLOW.require(
                termination.status, "update_deduction", ENTITY_TYPE, termination_id,
            )
            skipped = (
                termination.skipped_deductions | {deduction_id} if skip
                else termination.skipped_deductions - {deduction_id}
            )
            # Computing first rejects required or unknown deductions.
            components = self._compute(termination, state.profile, frozenset(skipped))
            state.termination = replace(
                termination, skipped_deductions=frozenset(skipped), updated_at=self._clock.now(),
            )
            self._record(
                state.termination, AuditAction.TERMINATION_DEDUCTION_UPDATED, context,
                deduction_id=deduction_id,
                skip=skip,
                net_pay=components.summary.net_pay,
            )
        logger.info(
            "termination_deduction_updated",
            extra={
                "termination_id": termination_id,
                "deduction_id": deduction_id,
                "skip": skip,
                "net_pay": str(components.summary.net_pay),
            },
        )
        return components

    def submit(self, termination_id: str, context: EngineContext) -> TerminationSubmission:
        """
        DRAFT -> PENDING_PAYROLL.

        Raises:
            ValidationFailedError: blocking rules failed; status unchanged.
        """
        with self._lock:
            state = self._state(termination_id)
            termination = state.termination
            TERMINATION_WORKFLOW.require(termination.status, "submit", ENTITY_TYPE, termination_id)
            components = self._compute(termination, state.profile, termination.skipped_deductions)
            result = self._validate(termination, state.profile, components)
            if not result.is_valid:
                logger.warning(
                    "termination_submission_blocked",
                    extra={
                        "termination_id": termination_id,
                        "error_codes": list(result.error_codes),
                    },
                )
                raise ValidationFailedError(
                    ENTITY_TYPE, termination_id, result.errors, result.warnings,
                )

            now = self._clock.now()
            state.termination = replace(
                termination,
                status=TerminationStatus.PENDING_PAYROLL,
                submitted_at=now,
                updated_at=now,
            )
            self._record(
                state.termination, AuditAction.TERMINATION_SUBMITTED, context,
                gross_pay=components.summary.gross_pay,
                net_pay=components.summary.net_pay,
                warning_codes=list(result.warning_codes),
                notes="Submitted to payroll",
            )
        logger.info(
            "termination_submitted",
            extra={
                "termination_id": termination_id,
                "net_pay": str(components.summary.net_pay),
                "warning_codes": list(result.warning_codes),
            },
        )
        return TerminationSubmission(termination=state.termination, warnings=result.warnings)

    def complete(self, termination_id: str, payrun_id: str, context: EngineContext) -> Termination:
        """
        PENDING_PAYROLL -> COMPLETED once ``payrun_id`` is finalized for the employee.

        Freezes the settlement and generates the termination documents.
        """
        with self._lock:
            state = self._state(termination_id)
            termination = state.termination
            TERMINATION_WORKFLOW.require(termination.status, "complete", ENTITY_TYPE, termination_id)
            if not self._is_employee_finalized(payrun_id, termination.employee_id):
                raise InvalidTransitionError(
                    entity_type=ENTITY_TYPE,
                    entity_id=termination_id,
                    from_state=termination.status.value,
                    action="complete",
                    reason=f"payrun {payrun_id} is not finalized for employee {termination.employee_id}",
                )

            components = self._compute(termination, state.profile, termination.skipped_deductions)
            now = self._clock.now()
            state.components = components
            state.documents = tuple(
                TerminationDocument(
                    id=str(uuid4()),
                    type=doc_type,
                    name=DOCUMENT_NAMES[doc_type],
                    generated_at=now,
                    storage_key=f"terminations/{termination_id}/{doc_type.value}.pdf",
                )
                for doc_type in self._config.document_types
            )
            state.termination = replace(
                termination,
                status=TerminationStatus.COMPLETED,
                final_payrun_id=payrun_id,
                finalized_at=now,
                finalized_by=context.actor_id,
                updated_at=now,
            )
            self._record(
                state.termination, AuditAction.TERMINATION_COMPLETED, context,
                payrun_id=payrun_id,
                gross_pay=components.summary.gross_pay,
                net_pay=components.summary.net_pay,
                documents=[d.type for d in state.documents],
                notes="Finalized",
            )
        logger.info(
            "termination_completed",
            extra={
                "termination_id": termination_id,
                "payrun_id": payrun_id,
                "net_pay": str(components.summary.net_pay),
                "document_count": len(state.documents),
            },
        )
        return state.termination

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_termination(self, termination_id: str) -> Termination:
        return self._state(termination_id).termination

    def list_terminations(self, status: TerminationStatus | None = None) -> tuple[Termination, ...]:
        with self._lock:
            terminations = [s.termination for s in self._terminations.values()]
        selected = [t for t in terminations if status is None or t.status is status]
        return tuple(sorted(selected, key=lambda t: (t.created_at, t.id), reverse=True))

    def get_detail(self, termination_id: str) -> TerminationDetail:
        with self._lock:
            state = self._state(termination_id)
            termination = state.termination
            components = state.components or self._compute(
                termination, state.profile, termination.skipped_deductions,
            )
            documents = state.documents
        trace = self._auditor.get_trace(ENTITY_TYPE, termination_id)
        audit_log = tuple(
            TerminationAuditEntry(
                seq=e.seq,
                action=e.action.value,
                actor_id=e.actor_id,
                occurred_at=e.occurred_at,
                notes=e.payload.get("notes"),
            )
            for e in trace.entries
        )
        return TerminationDetail(
            termination=termination,
            pay_components=components,
            documents=documents,
            audit_log=audit_log,
        )
