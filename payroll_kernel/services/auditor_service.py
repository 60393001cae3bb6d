"""
AuditorService -- tamper-evident audit trail and hash chain maintenance.

Responsibility:
    Creates immutable, hash-chained audit events for every payrun, leave
    and termination state transition. Provides chain validation for tamper
    detection and per-entity trace queries.

Architecture position:
    Kernel > Services -- imperative shell, called by LeaveLedger,
    LeaveService, PayrunService and TerminationService.

Invariants enforced:
    - Sequence monotonicity: ``seq`` is allocated under the service lock.
    - Chain integrity: ``hash = H(entity_type | entity_id | action |
      payload_hash | prev_hash)``. Every event links to its predecessor.
    - Append-only: events are frozen dataclasses; sinks only ever receive
      ``append`` calls.

Failure modes:
    - AuditChainBrokenError: recomputed hash does not match stored hash,
      or prev_hash does not match the predecessor's hash.
    - Any exception raised by a sink propagates to the caller. The event
      is still part of the in-memory chain.

Audit relevance:
    This IS the audit service. Storage is delegated to ``AuditSink``
    implementations (see ``services/audit_store.py`` for SQLAlchemy).
"""

from __future__ import annotations

import threading
from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from typing import Any

from payroll_kernel.domain.audit import AuditAction, AuditEvent, AuditSink
from payroll_kernel.domain.clock import Clock, SystemClock
from payroll_kernel.domain.context import EngineContext
from payroll_kernel.exceptions import AuditChainBrokenError
from payroll_kernel.logging_config import get_logger
from payroll_kernel.utils.hashing import hash_audit_event, hash_payload

logger = get_logger("services.auditor")


@dataclass(frozen=True)
class AuditTrace:
    """All audit events for one entity, in sequence order."""

    entity_type: str
    entity_id: str
    entries: tuple[AuditEvent, ...]

    @property
    def is_empty(self) -> bool:
        return len(self.entries) == 0

    @property
    def actions(self) -> tuple[AuditAction, ...]:
        return tuple(e.action for e in self.entries)

    @property
    def last_action(self) -> AuditAction | None:
        return self.entries[-1].action if self.entries else None


def validate_events(events: Sequence[AuditEvent]) -> bool:
    """
    Validate a sequence of audit events ordered by ``seq``.

    Raises:
        AuditChainBrokenError: at the first event whose hash or linkage
        does not match.
    """
    if not events:
        return True

    if events[0].prev_hash is not None:
        logger.critical("audit_chain_broken", extra={"seq": events[0].seq})
        raise AuditChainBrokenError(events[0].seq, "None", events[0].prev_hash)

    for i, event in enumerate(events):
        expected_payload_hash = hash_payload(event.payload)
        if event.payload_hash != expected_payload_hash:
            logger.critical("audit_chain_broken", extra={"seq": event.seq})
            raise AuditChainBrokenError(
                event.seq, expected_payload_hash, event.payload_hash,
            )

        expected_hash = hash_audit_event(
            entity_type=event.entity_type,
            entity_id=event.entity_id,
            action=AuditAction(event.action).value,
            payload_hash=event.payload_hash,
            prev_hash=event.prev_hash,
        )
        if event.hash != expected_hash:
            logger.critical("audit_chain_broken", extra={"seq": event.seq})
            raise AuditChainBrokenError(event.seq, expected_hash, event.hash)

        if i > 0:
            expected_prev = events[i - 1].hash
            if event.prev_hash != expected_prev:
                logger.critical("audit_chain_broken", extra={"seq": event.seq})
                raise AuditChainBrokenError(
                    event.seq, expected_prev, event.prev_hash or "None",
                )

    logger.info("audit_chain_valid", extra={"event_count": len(events)})
    return True


class AuditorService:
    """
    Creates and validates hash-chained audit events.

    Contract:
        Every call to ``record`` appends exactly one event, links it to the
        previous event, and forwards it to every registered sink.

    Guarantees:
        - ``seq`` starts at 1 and increases by exactly 1 per event.
        - Safe to call from multiple threads (payrun fan-out, concurrent
          leave requests).

    Non-goals:
        - Does NOT interpret audit events.
        - Does NOT decide *when* to audit; callers record one event per
          workflow transition.
    """

    def __init__(
        self,
        clock: Clock | None = None,
        sinks: Iterable[AuditSink] = (),
    ):
        self._clock = clock or SystemClock()
        self._sinks: list[AuditSink] = list(sinks)
        self._events: list[AuditEvent] = []
        self._lock = threading.Lock()

    def record(
        self,
        entity_type: str,
        entity_id: object,
        action: AuditAction,
        context: EngineContext,
        payload: dict[str, Any] | None = None,
    ) -> AuditEvent:
        """
        Append one audit event to the chain.

        Postconditions:
            ``event.hash == H(entity_type, entity_id, action, payload_hash,
            prev_hash)`` and ``event.prev_hash`` is the previous event's hash.
        """
        payload_data = dict(payload or {})
        computed_payload_hash = hash_payload(payload_data)

        with self._lock:
            prev_hash = self._events[-1].hash if self._events else None
            seq = len(self._events) + 1
            event_hash = hash_audit_event(
                entity_type=entity_type,
                entity_id=str(entity_id),
                action=action.value,
                payload_hash=computed_payload_hash,
                prev_hash=prev_hash,
            )
            event = AuditEvent(
                seq=seq,
                entity_type=entity_type,
                entity_id=str(entity_id),
                action=action,
                actor_id=context.actor_id,
                organization_id=context.organization_id,
                occurred_at=self._clock.now(),
                payload=payload_data,
                payload_hash=computed_payload_hash,
                prev_hash=prev_hash,
                hash=event_hash,
            )
            self._events.append(event)
            # Sinks are called under the lock so they observe seq order.
            for sink in self._sinks:
                sink.append(event)

        logger.info(
            "audit_event_created",
            extra={
                "seq": seq,
                "entity_type": entity_type,
                "entity_id": str(entity_id),
                "action": action.value,
                "hash_prefix": event_hash[:16],
            },
        )
        return event

    @property
    def events(self) -> tuple[AuditEvent, ...]:
        with self._lock:
            return tuple(self._events)

    def get_trace(self, entity_type: str, entity_id: object) -> AuditTrace:
        key = str(entity_id)
        entries = tuple(
            e for e in self.events
            if e.entity_type == entity_type and e.entity_id == key
        )
        return AuditTrace(entity_type=entity_type, entity_id=key, entries=entries)

    def validate_chain(self) -> bool:
        """
        Validate the entire in-memory chain.

        Raises:
            AuditChainBrokenError: If chain validation fails at any point.
        """
        return validate_events(self.events)
