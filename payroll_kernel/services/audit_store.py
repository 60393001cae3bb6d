"""
SqlAlchemyAuditSink -- persists audit events through SQLAlchemy.

Each ``append`` writes one ``AuditEventRecord`` in its own transaction.
Payloads are stored in their canonical JSON form, which hashes identically
to the in-memory payload, so ``validate_chain`` can re-verify the stored
chain without the original Python objects.
"""

from __future__ import annotations

import json

from sqlalchemy import select
from sqlalchemy.orm import Session, sessionmaker

from payroll_kernel.db.engine import get_session_factory
from payroll_kernel.domain.audit import AuditAction, AuditEvent
from payroll_kernel.logging_config import get_logger
from payroll_kernel.models.audit_event import AuditEventRecord
from payroll_kernel.services.auditor_service import validate_events
from payroll_kernel.utils.hashing import canonicalize_json

logger = get_logger("services.audit_store")


def _to_record(event: AuditEvent) -> AuditEventRecord:
    return AuditEventRecord(
        seq=event.seq,
        entity_type=event.entity_type,
        entity_id=event.entity_id,
        action=event.action.value,
        actor_id=event.actor_id,
        organization_id=event.organization_id,
        occurred_at=event.occurred_at,
        payload=json.loads(canonicalize_json(event.payload)),
        payload_hash=event.payload_hash,
        prev_hash=event.prev_hash,
        hash=event.hash,
    )


def _from_record(record: AuditEventRecord) -> AuditEvent:
    return AuditEvent(
        seq=record.seq,
        entity_type=record.entity_type,
        entity_id=record.entity_id,
        action=AuditAction(record.action),
        actor_id=record.actor_id,
        organization_id=record.organization_id,
        occurred_at=record.occurred_at,
        payload=record.payload or {},
        payload_hash=record.payload_hash,
        prev_hash=record.prev_hash,
        hash=record.hash,
    )


class SqlAlchemyAuditSink:
    """AuditSink backed by the ``payroll_audit_events`` table."""

    def __init__(self, session_factory: sessionmaker[Session] | None = None):
        self._session_factory = session_factory or get_session_factory()

    def append(self, event: AuditEvent) -> None:
        session = self._session_factory()
        try:
            session.add(_to_record(event))
            session.commit()
        except Exception:
            session.rollback()
            logger.error(
                "audit_event_persist_failed",
                extra={"seq": event.seq, "action": event.action.value},
                exc_info=True,
            )
            raise
        finally:
            session.close()

    def load(self, entity_id: object | None = None) -> list[AuditEvent]:
        """Stored events in seq order, optionally for one entity."""
        stmt = select(AuditEventRecord).order_by(AuditEventRecord.seq)
        if entity_id is not None:
            stmt = stmt.where(AuditEventRecord.entity_id == str(entity_id))
        session = self._session_factory()
        try:
            records = session.execute(stmt).scalars().all()
            return [_from_record(r) for r in records]
        finally:
            session.close()

    def validate_chain(self) -> bool:
        """
        Re-verify the stored chain.

        Raises:
            AuditChainBrokenError: on the first mismatching record.
        """
        return validate_events(self.load())
