"""
Termination Domain Models (``payroll_modules.termination.models``).

Responsibility
--------------
Frozen dataclass value objects for employee terminations: the departing
employee's pay profile, the termination record and its status, the
preview and detail read models, generated documents and the audit log
view.

Architecture position
---------------------
**Modules layer** -- pure data definitions with ZERO I/O. Settlement
figures (``TerminationPayComponents``) come from
``payroll_engines.settlement``.

Invariants enforced
-------------------
* All models are ``frozen=True`` (immutable after construction).
* All monetary fields use ``Decimal`` -- NEVER ``float``.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from enum import Enum

from payroll_engines.payslip import YearToDate
from payroll_engines.settlement import (
    Allowance,
    RecoveryLine,
    TerminationPayComponents,
    TerminationReason,
)
from payroll_engines.validation import ValidationIssue, ValidationResult
from payroll_kernel.logging_config import get_logger

logger = get_logger("modules.termination.models")

__all__ = [
    "DocumentType",
    "EmployeeProfile",
    "Termination",
    "TerminationAuditEntry",
    "TerminationDetail",
    "TerminationDocument",
    "TerminationPreview",
    "TerminationReason",
    "TerminationStatus",
    "TerminationSubmission",
]


class TerminationStatus(Enum):
    """Termination lifecycle states."""
    DRAFT = "draft"
    PENDING_PAYROLL = "pending_payroll"
    COMPLETED = "completed"


class DocumentType(Enum):
    """Documents issued when a termination completes."""
    FINAL_PAYSLIP = "final_payslip"
    IRP5 = "irp5"
    UIF_UI19 = "uif_ui19"
    UIF_UI27 = "uif_ui27"
    CONFIRMATION_LETTER = "confirmation_letter"


DOCUMENT_NAMES: dict[DocumentType, str] = {
    DocumentType.FINAL_PAYSLIP: "Final Payslip.pdf",
    DocumentType.IRP5: "IRP5 Tax Certificate.pdf",
    DocumentType.UIF_UI19: "UI-19 Declaration.pdf",
    DocumentType.UIF_UI27: "UI-2.7 Declaration.pdf",
    DocumentType.CONFIRMATION_LETTER: "Confirmation of Employment Letter.pdf",
}


@dataclass(frozen=True)
class EmployeeProfile:
    """Pay data of the departing employee, captured when the termination is created."""
    employee_id: str
    employee_name: str
    employee_number: str
    monthly_salary: Decimal
    hire_date: date | None = None
    paid_through: date | None = None
    daily_rate: Decimal | None = None
    allowances: tuple[Allowance, ...] = ()
    recoveries: tuple[RecoveryLine, ...] = ()
    ytd: YearToDate = field(default_factory=YearToDate)

    def __post_init__(self):
        if self.monthly_salary < 0:
            raise ValueError("monthly_salary cannot be negative")


@dataclass(frozen=True)
class Termination:
    """A termination of employment and its settlement status."""
    id: str
    employee_id: str
    employee_name: str
    employee_number: str
    termination_date: date
    last_working_day: date
    reason: TerminationReason
    notice_period_days: int
    paid_in_lieu: bool
    final_pay_period: str
    created_at: datetime
    created_by: str
    updated_at: datetime
    status: TerminationStatus = TerminationStatus.DRAFT
    skipped_deductions: frozenset[str] = frozenset()
    submitted_at: datetime | None = None
    final_payrun_id: str | None = None
    finalized_at: datetime | None = None
    finalized_by: str | None = None


@dataclass(frozen=True)
class TerminationPreview:
    """Settlement figures and validation findings, not persisted."""
    employee_name: str
    employee_number: str
    termination_date: date
    reason: TerminationReason
    pay_components: TerminationPayComponents
    validation: ValidationResult


@dataclass(frozen=True)
class TerminationSubmission:
    """A termination moved to pending payroll, plus non-blocking findings."""
    termination: Termination
    warnings: tuple[ValidationIssue, ...] = ()


@dataclass(frozen=True)
class TerminationDocument:
    """Descriptor of a generated document. Rendering and storage are external."""
    id: str
    type: DocumentType
    name: str
    generated_at: datetime
    storage_key: str


@dataclass(frozen=True)
class TerminationAuditEntry:
    seq: int
    action: str
    actor_id: str
    occurred_at: datetime
    notes: str | None = None


@dataclass(frozen=True)
class TerminationDetail:
    """Termination with its settlement, documents and audit history."""
    termination: Termination
    pay_components: TerminationPayComponents
    documents: tuple[TerminationDocument, ...]
    audit_log: tuple[TerminationAuditEntry, ...]

    @property
    def net_pay(self) -> Decimal:
        return self.pay_components.summary.net_pay
