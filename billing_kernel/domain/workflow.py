"""
Canonical workflow types (``billing_kernel.domain.workflow``).

Responsibility
--------------
Pure value objects for status state machines, plus the lookup helpers
every module uses to validate a status change.  Invoice, proposal and
recurring-schedule lifecycles are all declared as ``Workflow`` tables so
that the allowed (from, to) pairs live in data rather than in branches.

Architecture position
---------------------
**Kernel domain layer** -- pure value objects.  ZERO I/O.

Invariants enforced
-------------------
* Transitions reference only states in ``Workflow.states``.
* ``initial_state`` is a member of ``states``.
* Terminal states have no outgoing transitions.
* ``require_transition`` raises ``InvalidTransitionError`` for any pair not
  in the table, so callers can validate before mutating anything.
"""

from __future__ import annotations

from dataclasses import dataclass

from billing_kernel.exceptions import InvalidTransitionError


@dataclass(frozen=True)
class Guard:
    """A condition that must be satisfied before a transition fires.

    Descriptive only: the owning service evaluates it.
    """
    name: str
    description: str


@dataclass(frozen=True)
class Transition:
    """A valid state transition in a workflow.

    ``stamps`` names the timestamp field the service sets when the
    transition fires (e.g. ``sent_at``), or None.
    """
    from_state: str
    to_state: str
    action: str
    guard: Guard | None = None
    stamps: str | None = None


@dataclass(frozen=True)
class Workflow:
    """A state machine definition for a document lifecycle."""
    name: str
    description: str
    initial_state: str
    states: tuple[str, ...]
    transitions: tuple[Transition, ...]
    terminal_states: tuple[str, ...] = ()

    def __post_init__(self):
        if self.initial_state not in self.states:
            raise ValueError(
                f"Workflow {self.name}: initial state {self.initial_state!r} not in states"
            )
        for t in self.transitions:
            if t.from_state not in self.states or t.to_state not in self.states:
                raise ValueError(
                    f"Workflow {self.name}: transition {t.from_state}->{t.to_state} "
                    "references an unknown state"
                )
            if t.from_state in self.terminal_states:
                raise ValueError(
                    f"Workflow {self.name}: terminal state {t.from_state!r} has an "
                    "outgoing transition"
                )

    def find(self, from_state: str, to_state: str) -> Transition | None:
        """Return the transition for the pair, or None."""
        for t in self.transitions:
            if t.from_state == from_state and t.to_state == to_state:
                return t
        return None

    def targets(self, from_state: str) -> tuple[str, ...]:
        """States reachable in one step from ``from_state``."""
        return tuple(t.to_state for t in self.transitions if t.from_state == from_state)

    def is_terminal(self, state: str) -> bool:
        return state in self.terminal_states


def _state_value(state: object) -> str:
    # Accept str-valued Enum members as well as plain strings
    return getattr(state, "value", state)


def can_transition(workflow: Workflow, from_state: object, to_state: object) -> bool:
    """True if ``from_state -> to_state`` is in the workflow table."""
    return workflow.find(_state_value(from_state), _state_value(to_state)) is not None


def require_transition(workflow: Workflow, from_state: object, to_state: object) -> Transition:
    """
    Return the transition for the pair or raise.

    Raises:
        InvalidTransitionError: If the pair is not in the workflow table.
    """
    src, dst = _state_value(from_state), _state_value(to_state)
    transition = workflow.find(src, dst)
    if transition is None:
        raise InvalidTransitionError(workflow.name, src, dst)
    return transition
