"""
Tradeflow Workflow Primitive — Generic State Machine
=====================================================
Engine: Core Primitives

The Workflow Primitive provides a deterministic state machine used by
every document that tracks lifecycle state.

Used by:
    Order            — NEW → PROCESSING → COMPLETED | CANCELLED
    PurchaseOrder    — PENDING → PROCESSING → READY_FOR_DELIVERY → COMPLETED
    Invoice          — DRAFT → SENT → PAID | OVERDUE (+ preparation axis)
    DeliveryNote     — PENDING → IN_TRANSIT → DELIVERED
    Payment          — PENDING → CLEARED | CANCELED

RULES (NON-NEGOTIABLE):
- State transitions are deterministic (same input → same output)
- Invalid transitions REJECTED — no silent state skips
- Terminal states have no outgoing transitions
- Every state of a definition appears in its transition table
- State machine definition is immutable (frozen)

This file contains NO persistence logic.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, FrozenSet

from core.commands.errors import InvalidTransition


def _state(value) -> str:
    # TextChoices / str-Enum members compare equal to their value
    return getattr(value, "value", value)


# ══════════════════════════════════════════════════════════════
# WORKFLOW DEFINITION (state machine schema)
# ══════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class WorkflowDefinition:
    """
    Defines the valid states and transitions for a workflow type.

    This is the STATE MACHINE SCHEMA, shared across all documents
    of a given type (e.g. all Invoices).

    Fields:
        name:            Identifier for this workflow type (e.g. "Invoice")
        initial_state:   Starting state for new documents
        terminal_states: States from which no further transitions are allowed
        transitions:     Dict of {from_state → frozenset(allowed_to_states)}
    """
    name: str
    initial_state: str
    terminal_states: FrozenSet[str]
    transitions: Dict[str, FrozenSet[str]]

    def __post_init__(self):
        if not self.name:
            raise ValueError("Workflow name must be non-empty.")
        if not self.initial_state:
            raise ValueError("initial_state must be non-empty.")
        if self.initial_state not in self.transitions:
            raise ValueError(
                f"initial_state '{self.initial_state}' not in transitions."
            )
        for state in self.terminal_states:
            if self.transitions.get(state):
                raise ValueError(
                    f"terminal state '{state}' must have no outgoing transitions."
                )
        for targets in self.transitions.values():
            unknown = set(targets) - set(self.transitions)
            if unknown:
                raise ValueError(
                    f"transition targets {sorted(unknown)} are not declared states."
                )

    @property
    def states(self) -> FrozenSet[str]:
        return frozenset(self.transitions)

    def is_valid_transition(self, from_state, to_state) -> bool:
        """Check if a transition is allowed by this definition."""
        allowed = self.transitions.get(_state(from_state), frozenset())
        return _state(to_state) in allowed

    def is_terminal(self, state) -> bool:
        return _state(state) in self.terminal_states

    def allowed_next_states(self, from_state) -> FrozenSet[str]:
        return self.transitions.get(_state(from_state), frozenset())

    def assert_transition(self, from_state, to_state) -> None:
        """Raise InvalidTransition unless from_state → to_state is legal."""
        if not self.is_valid_transition(from_state, to_state):
            raise InvalidTransition(self.name, _state(from_state), _state(to_state))
