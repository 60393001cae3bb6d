"""SQLAlchemy ORM models for the payroll kernel."""

from payroll_kernel.models.audit_event import AuditEventRecord

__all__ = ["AuditEventRecord"]
