"""
ORM-level immutability enforcement for audit records.

SQLAlchemy fires mapper events before UPDATE/DELETE statements reach the
database. The listeners registered here intercept those events for
``AuditEventRecord`` and abort the flush:

    session.flush()
         |
         v
    [before_update] --> _check_audit_record_update() --> ImmutabilityViolationError
    [before_delete] --> _check_audit_record_delete() --> ImmutabilityViolationError

If a check fails the transaction is aborted and the database is never
modified. Registration is idempotent.
"""

from sqlalchemy import event

from payroll_kernel.exceptions import ImmutabilityViolationError
from payroll_kernel.logging_config import get_logger

logger = get_logger("db.immutability")


def _blocked(target, operation: str, reason: str) -> ImmutabilityViolationError:
    logger.error(
        "immutability_violation_blocked",
        extra={
            "entity_type": "AuditEvent",
            "entity_id": str(target.id),
            "seq": target.seq,
            "operation": operation,
        },
    )
    return ImmutabilityViolationError(
        entity_type="AuditEvent",
        entity_id=str(target.id),
        reason=reason,
    )


def _check_audit_record_update(mapper, connection, target):
    """Audit records are immutable from creation."""
    raise _blocked(target, "UPDATE", "Audit events are immutable and cannot be modified")


def _check_audit_record_delete(mapper, connection, target):
    """Audit records cannot be deleted."""
    raise _blocked(target, "DELETE", "Audit events cannot be deleted")


def register_immutability_listeners() -> None:
    """Register the audit record UPDATE/DELETE guards."""
    from payroll_kernel.models.audit_event import AuditEventRecord

    if not event.contains(AuditEventRecord, "before_update", _check_audit_record_update):
        event.listen(AuditEventRecord, "before_update", _check_audit_record_update)
    if not event.contains(AuditEventRecord, "before_delete", _check_audit_record_delete):
        event.listen(AuditEventRecord, "before_delete", _check_audit_record_delete)


def unregister_immutability_listeners() -> None:
    """
    Remove the guards.

    WARNING: Only use this in tests that deliberately tamper with stored
    records to verify chain validation detects it.
    """
    from payroll_kernel.models.audit_event import AuditEventRecord

    for name, fn in (
        ("before_update", _check_audit_record_update),
        ("before_delete", _check_audit_record_delete),
    ):
        if event.contains(AuditEventRecord, name, fn):
            event.remove(AuditEventRecord, name, fn)
