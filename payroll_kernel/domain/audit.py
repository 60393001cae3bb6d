"""
Audit event value objects.

Every payrun, leave and termination state transition produces exactly one
``AuditEvent``. Events are append-only and hash-chained: each event's hash
covers its own content plus the previous event's hash, so any retroactive
edit is detectable by ``AuditorService.validate_chain``.

Storage is not the engine's concern. Events are handed to ``AuditSink``
implementations (in-memory list, SQLAlchemy table, message bus).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Protocol, runtime_checkable


class AuditAction(str, Enum):
    """Types of auditable actions."""

    # Payrun lifecycle
    PAYRUN_CREATED = "payrun_created"
    PAYRUN_CALCULATION_STARTED = "payrun_calculation_started"
    PAYRUN_READY = "payrun_ready"
    PAYRUN_REOPENED = "payrun_reopened"
    PAYRUN_CALCULATION_CANCELLED = "payrun_calculation_cancelled"
    PAYRUN_FINALIZED = "payrun_finalized"
    PAYRUN_DELETED = "payrun_deleted"
    PAYSLIP_EDITED = "payslip_edited"

    # Leave ledger
    LEAVE_BALANCE_OPENED = "leave_balance_opened"
    LEAVE_ACCRUED = "leave_accrued"
    LEAVE_ADJUSTED = "leave_adjusted"
    LEAVE_REQUESTED = "leave_requested"
    LEAVE_APPROVED = "leave_approved"
    LEAVE_REJECTED = "leave_rejected"
    LEAVE_CANCELLED = "leave_cancelled"

    # Termination lifecycle
    TERMINATION_CREATED = "termination_created"
    TERMINATION_DEDUCTION_UPDATED = "termination_deduction_updated"
    TERMINATION_SUBMITTED = "termination_submitted"
    TERMINATION_COMPLETED = "termination_completed"


@dataclass(frozen=True)
class AuditEvent:
    """
    One hash-chained audit record.

    Guarantees:
        - ``seq`` is strictly increasing within one AuditorService.
        - ``hash = H(entity_type | entity_id | action | payload_hash | prev_hash)``.
        - ``prev_hash`` is None only for the genesis event.
    """
    seq: int
    entity_type: str
    entity_id: str
    action: AuditAction
    actor_id: str
    organization_id: str
    occurred_at: datetime
    payload_hash: str
    hash: str
    prev_hash: str | None = None
    payload: dict[str, Any] = field(default_factory=dict)

    @property
    def is_genesis(self) -> bool:
        return self.prev_hash is None


@runtime_checkable
class AuditSink(Protocol):
    """Receives every audit event after it has been chained."""

    def append(self, event: AuditEvent) -> None:
        ...
