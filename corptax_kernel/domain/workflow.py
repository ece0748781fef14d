"""
Lifecycle state machines (``corptax_kernel.domain.workflow``).

A ``Workflow`` lists the states an entity can be in and the actions that
move it between them.  Guards name the business condition a transition
depends on; the owning service evaluates them.  Pure value objects, no I/O.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class Guard:
    """Named precondition of a transition.  Descriptive only."""
    name: str
    description: str


@dataclass(frozen=True)
class Transition:
    from_state: str
    to_state: str
    action: str
    guard: Guard | None = None


@dataclass(frozen=True)
class Workflow:
    """
    A state machine definition.

    Raises ValueError at construction when the initial state, a terminal
    state or a transition endpoint is not one of ``states``, or when the
    same action is defined twice from one state.
    """
    name: str
    description: str
    initial_state: str
    states: tuple[str, ...]
    transitions: tuple[Transition, ...]
    terminal_states: tuple[str, ...] = ()

    def __post_init__(self) -> None:
        if self.initial_state not in self.states:
            raise ValueError(f"initial_state {self.initial_state!r} not in states of {self.name}")
        for state in self.terminal_states:
            if state not in self.states:
                raise ValueError(f"terminal state {state!r} not in states of {self.name}")
        seen: set[tuple[str, str]] = set()
        for t in self.transitions:
            if t.from_state not in self.states or t.to_state not in self.states:
                raise ValueError(f"Transition {t.action!r} references unknown state in {self.name}")
            if (t.from_state, t.action) in seen:
                raise ValueError(
                    f"Action {t.action!r} defined twice from {t.from_state!r} in {self.name}"
                )
            seen.add((t.from_state, t.action))

    def find_transition(self, from_state: str, action: str) -> Transition | None:
        for t in self.transitions:
            if t.from_state == from_state and t.action == action:
                return t
        return None

    def actions_from(self, state: str) -> tuple[str, ...]:
        """Actions allowed from ``state``, in definition order."""
        return tuple(t.action for t in self.transitions if t.from_state == state)

    def is_terminal(self, state: str) -> bool:
        return state in self.terminal_states
