"""
Termination Module (``payroll_modules.termination``).

Responsibility
--------------
Termination of employment: settlement preview (final salary, notice pay,
severance, pro-rata allowances, leave payout, statutory deductions and
recoveries), submission to payroll and completion once the final payrun
is finalized.

Architecture position
---------------------
**Modules layer** -- models, workflow, config schema and a service
facade over ``payroll_engines.settlement`` and
``payroll_engines.validation``.

Failure modes
-------------
* ``ValidationFailedError`` -- submission blocked by validation errors.
* ``InvalidTransitionError`` -- illegal status change.
"""

from payroll_modules.termination.config import TerminationConfig
from payroll_modules.termination.models import (
    DocumentType,
    EmployeeProfile,
    Termination,
    TerminationAuditEntry,
    TerminationDetail,
    TerminationDocument,
    TerminationPreview,
    TerminationReason,
    TerminationStatus,
    TerminationSubmission,
)
from payroll_modules.termination.service import TerminationService
from payroll_modules.termination.workflows import TERMINATION_WORKFLOW

__all__ = [
    "DocumentType",
    "EmployeeProfile",
    "TERMINATION_WORKFLOW",
    "Termination",
    "TerminationAuditEntry",
    "TerminationConfig",
    "TerminationDetail",
    "TerminationDocument",
    "TerminationPreview",
    "TerminationReason",
    "TerminationService",
    "TerminationStatus",
    "TerminationSubmission",
]
