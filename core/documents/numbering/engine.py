"""
Tradeflow Documents - Numbering Engine
========================================
Deterministic code generation from a NumberingPolicy + sequence state.

Doctrine:
- Stateless engine: given the same inputs, always produces the same output.
- Sequence state is managed externally (in-memory or CodeSequence rows).
- Time is passed explicitly — never read from system clock here.
"""

from __future__ import annotations

from datetime import datetime, timezone

from core.documents.numbering.models import NumberingPolicy


# ---------------------------------------------------------------------------
# Period key helpers
# ---------------------------------------------------------------------------

def period_key(issued_at: datetime) -> str:
    """
    Return the monthly reset key for issued_at, e.g. "2026-03".
    """
    if issued_at.tzinfo is None:
        issued_at = issued_at.replace(tzinfo=timezone.utc)
    else:
        issued_at = issued_at.astimezone(timezone.utc)
    return issued_at.strftime("%Y-%m")


# ---------------------------------------------------------------------------
# Sequence state
# ---------------------------------------------------------------------------

class SequenceState:
    """
    Tracks the sequence counter for one document type.

    - current_period_key: the period key when the counter was last updated
    - current_sequence: the next sequence number to issue
    """

    def __init__(
        self,
        policy: NumberingPolicy,
        *,
        current_period_key: str = "",
        current_sequence: int | None = None,
    ):
        self._policy = policy
        self._current_period_key = current_period_key
        self._current_sequence = current_sequence if current_sequence is not None else policy.start_at

    @property
    def policy(self) -> NumberingPolicy:
        return self._policy

    @property
    def current_sequence(self) -> int:
        return self._current_sequence

    @property
    def current_period_key(self) -> str:
        return self._current_period_key

    def next_number(self, issued_at: datetime) -> tuple[str, "SequenceState"]:
        """
        Return (code, new_state) for issued_at.

        Resets counter if the month has changed.
        Returns a new SequenceState (immutable pattern).
        """
        new_period_key = period_key(issued_at)
        if new_period_key != self._current_period_key:
            next_seq = self._policy.start_at
        else:
            next_seq = self._current_sequence

        code = self._policy.format_number(next_seq, issued_at)
        new_state = SequenceState(
            self._policy,
            current_period_key=new_period_key,
            current_sequence=next_seq + 1,
        )
        return code, new_state
