"""
EngineContext -- explicit caller context for every engine operation.

The engine keeps no process-wide "current company" or "current user".
Every service call receives the organization and acting user explicitly;
the context binds them into ``LogContext`` for the duration of the call and
stamps them on audit events.
"""

from __future__ import annotations

from dataclasses import dataclass

from payroll_kernel.logging_config import LogContext


@dataclass(frozen=True)
class EngineContext:
    """Organization and acting user for one engine call."""
    organization_id: str
    actor_id: str
    correlation_id: str | None = None

    def __post_init__(self) -> None:
        if not self.organization_id:
            raise ValueError("organization_id is required")
        if not self.actor_id:
            raise ValueError("actor_id is required")

    def bind(self, **extra: str | None):
        """Bind this context (plus ``extra`` fields) into LogContext."""
        return LogContext.bind(
            organization_id=self.organization_id,
            actor_id=self.actor_id,
            correlation_id=self.correlation_id,
            **extra,
        )
