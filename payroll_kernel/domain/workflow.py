"""
Canonical workflow types (``payroll_kernel.domain.workflow``).

Responsibility
--------------
Pure value objects for state machines. Used by the payrun, leave request
and termination lifecycles so that Guard, Transition and Workflow are
defined once, and so that every legality check goes through a single
lookup (``Workflow.require``).

Architecture position
---------------------
**Kernel domain layer** -- pure value objects. ZERO I/O.

Invariants enforced
-------------------
* Transitions reference only states in ``Workflow.states``.
* ``initial_state`` is a member of ``states``.
* An illegal (state, action) pair raises ``InvalidTransitionError`` and
  never returns a partially-applied transition.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from payroll_kernel.exceptions import InvalidTransitionError


@dataclass(frozen=True)
class Guard:
    """A condition that must be satisfied before a transition fires.

    Contract: frozen, descriptive only.
    Non-goals: does not evaluate the condition -- the owning service does.
    """
    name: str
    description: str


@dataclass(frozen=True)
class Transition:
    """A valid state transition in a workflow.

    ``emits_event=True`` (the default) means the owning service records one
    audit event when the transition fires.
    """
    from_state: Enum
    to_state: Enum
    action: str
    guard: Guard | None = None
    emits_event: bool = True


@dataclass(frozen=True)
class Workflow:
    """A state machine definition for a document lifecycle.

    Contract: frozen; ``transitions`` reference only states in ``states``.
    ``terminal_states`` are states with no outgoing transitions.
    """
    name: str
    description: str
    initial_state: Enum
    states: tuple[Enum, ...]
    transitions: tuple[Transition, ...]
    terminal_states: tuple[Enum, ...] = ()

    def __post_init__(self) -> None:
        if self.initial_state not in self.states:
            raise ValueError(
                f"Workflow {self.name}: initial state {self.initial_state} "
                "is not a declared state"
            )
        for t in self.transitions:
            if t.from_state not in self.states or t.to_state not in self.states:
                raise ValueError(
                    f"Workflow {self.name}: transition '{t.action}' references "
                    f"undeclared state ({t.from_state} -> {t.to_state})"
                )
            if t.from_state in self.terminal_states:
                raise ValueError(
                    f"Workflow {self.name}: terminal state {t.from_state} "
                    f"has outgoing transition '{t.action}'"
                )

    def find(self, from_state: Enum, action: str) -> Transition | None:
        """Return the transition for (from_state, action), or None."""
        for t in self.transitions:
            if t.from_state == from_state and t.action == action:
                return t
        return None

    def actions_from(self, state: Enum) -> tuple[str, ...]:
        """Actions available from ``state`` in declaration order."""
        return tuple(t.action for t in self.transitions if t.from_state == state)

    def require(
        self,
        from_state: Enum,
        action: str,
        entity_type: str,
        entity_id: object,
    ) -> Transition:
        """Return the transition or raise ``InvalidTransitionError``."""
        transition = self.find(from_state, action)
        if transition is None:
            raise InvalidTransitionError(
                entity_type=entity_type,
                entity_id=str(entity_id),
                from_state=from_state.value,
                action=action,
                reason=f"allowed actions: {', '.join(self.actions_from(from_state)) or 'none'}",
            )
        return transition
