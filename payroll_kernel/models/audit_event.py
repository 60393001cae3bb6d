"""
Module: payroll_kernel.models.audit_event
Responsibility: ORM persistence for the tamper-evident audit hash chain.
Architecture position: Kernel > Models. May import from db/base.py only.

Invariants enforced:
    - Audit records are append-only; UPDATE and DELETE are blocked by the
      listeners in db/immutability.py.
    - hash = H(entity_type | entity_id | action | payload_hash | prev_hash).
      Validated by SqlAlchemyAuditSink.validate_chain().
    - seq is unique and monotonically increasing.
"""

from datetime import datetime

from sqlalchemy import JSON, BigInteger, DateTime, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from payroll_kernel.db.base import Base


class AuditEventRecord(Base):
    """
    Persisted audit event.

    Non-goals:
        - Does NOT enforce hash correctness at INSERT time; that is the
          responsibility of AuditorService.
    """

    __tablename__ = "payroll_audit_events"

    __table_args__ = (
        Index("idx_payroll_audit_entity", "entity_type", "entity_id"),
        Index("idx_payroll_audit_action", "action"),
    )

    seq: Mapped[int] = mapped_column(BigInteger, nullable=False, unique=True)
    entity_type: Mapped[str] = mapped_column(String(50), nullable=False)
    entity_id: Mapped[str] = mapped_column(String(100), nullable=False)
    action: Mapped[str] = mapped_column(String(50), nullable=False)
    actor_id: Mapped[str] = mapped_column(String(100), nullable=False)
    organization_id: Mapped[str] = mapped_column(String(100), nullable=False)
    occurred_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    payload: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    payload_hash: Mapped[str] = mapped_column(String(64), nullable=False)
    # Null only for the genesis event
    prev_hash: Mapped[str | None] = mapped_column(String(64), nullable=True)
    hash: Mapped[str] = mapped_column(String(64), nullable=False)

    def __repr__(self) -> str:
        return f"<AuditEventRecord {self.seq} {self.action} on {self.entity_type}:{self.entity_id}>"

    @property
    def is_genesis(self) -> bool:
        return self.prev_hash is None
