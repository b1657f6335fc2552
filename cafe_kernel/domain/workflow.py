"""
Canonical workflow types (``cafe_kernel.domain.workflow``).

Responsibility
--------------
Pure value objects for request state machines.  Trades, drops, time off,
payroll periods and payroll entries all declare their lifecycle as a
``Workflow`` so that legal transitions are defined once and checked the
same way everywhere.

Architecture position
---------------------
**Kernel domain layer** -- pure value objects.  ZERO I/O.

Invariants enforced
-------------------
* Transitions reference only states in ``Workflow.states``.
* ``initial_state`` is a member of ``states``.
* Terminal states have no outgoing transitions, so no state is re-entered
  once a request is resolved.
* Each action maps to exactly one target state.
"""

from __future__ import annotations

from dataclasses import dataclass

from cafe_kernel.exceptions import InvalidTransitionError


@dataclass(frozen=True)
class Guard:
    """A condition that must hold before a transition fires.

    Descriptive only; the owning service evaluates it.
    """
    name: str
    description: str


@dataclass(frozen=True)
class Transition:
    """A valid state transition in a workflow.

    ``manager_only=True`` marks transitions that require the manager role.
    """
    from_state: str
    to_state: str
    action: str
    guard: Guard | None = None
    manager_only: bool = False


@dataclass(frozen=True)
class Workflow:
    """A state machine definition for a request lifecycle."""
    name: str
    description: str
    initial_state: str
    states: tuple[str, ...]
    transitions: tuple[Transition, ...]
    terminal_states: tuple[str, ...] = ()

    def __post_init__(self) -> None:
        if self.initial_state not in self.states:
            raise ValueError(f"{self.name}: initial state {self.initial_state!r} not in states")
        targets: dict[str, str] = {}
        for t in self.transitions:
            if t.from_state not in self.states or t.to_state not in self.states:
                raise ValueError(f"{self.name}: transition {t.action!r} references unknown state")
            if t.from_state in self.terminal_states:
                raise ValueError(f"{self.name}: terminal state {t.from_state!r} has outgoing transition")
            if targets.setdefault(t.action, t.to_state) != t.to_state:
                raise ValueError(f"{self.name}: action {t.action!r} has more than one target")

    def sources_for(self, action: str) -> tuple[str, ...]:
        """States from which ``action`` is legal."""
        return tuple(t.from_state for t in self.transitions if t.action == action)

    def target_of(self, action: str) -> str:
        for t in self.transitions:
            if t.action == action:
                return t.to_state
        raise ValueError(f"{self.name}: unknown action {action!r}")

    def transition_for(self, state: str, action: str) -> Transition | None:
        for t in self.transitions:
            if t.from_state == state and t.action == action:
                return t
        return None

    def require(self, state: str, action: str) -> Transition:
        """Return the transition or raise ``InvalidTransitionError``."""
        transition = self.transition_for(state, action)
        if transition is None:
            raise InvalidTransitionError(self.name, state, action)
        return transition

    def is_terminal(self, state: str) -> bool:
        return state in self.terminal_states
