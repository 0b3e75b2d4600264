"""
Tradeflow Documents - Code Allocators
=======================================
Protocol + InMemory + DB implementations for business code allocation.

Doctrine:
- Allocator is a dependency injection point (testable, swappable).
- InMemory allocator is deterministic and used in unit tests.
- DB allocator locks its CodeSequence row, so two concurrent
  transactions can never receive the same code.
"""

from __future__ import annotations

import logging
import threading
from datetime import datetime
from typing import Optional, Protocol

from core.documents.numbering.engine import SequenceState, period_key
from core.documents.numbering.models import NumberingPolicy

logger = logging.getLogger("tradeflow.numbering")


# ---------------------------------------------------------------------------
# Protocol
# ---------------------------------------------------------------------------

class CodeAllocator(Protocol):
    def allocate(self, doc_type: str, issued_at: datetime) -> str:
        """
        Atomically return the next code for doc_type and advance the sequence.
        """
        ...


def _resolve_policy(
    policies: dict[str, NumberingPolicy],
    doc_type: str,
) -> NumberingPolicy:
    policy = policies.get(doc_type)
    if policy is None:
        policy = NumberingPolicy.default_for(doc_type)
        policies[doc_type] = policy
    return policy


# ---------------------------------------------------------------------------
# InMemory Allocator (deterministic, thread-safe for tests)
# ---------------------------------------------------------------------------

class InMemoryCodeAllocator:
    """
    Thread-safe in-memory code allocator.

    Policies default to the standard prefixes and can be overridden
    at construction time.
    """

    def __init__(self, policies: tuple[NumberingPolicy, ...] = ()):
        self._lock = threading.Lock()
        self._policies: dict[str, NumberingPolicy] = {p.doc_type: p for p in policies}
        self._states: dict[str, SequenceState] = {}

    def allocate(self, doc_type: str, issued_at: datetime) -> str:
        with self._lock:
            policy = _resolve_policy(self._policies, doc_type)
            state = self._states.get(doc_type) or SequenceState(policy)
            code, new_state = state.next_number(issued_at)
            self._states[doc_type] = new_state
            return code

    def current_sequence(self, doc_type: str) -> int:
        """Inspect the next sequence number for a doc type (test helper)."""
        with self._lock:
            state = self._states.get(doc_type)
            if state is None:
                return 1
            return state.current_sequence


# ---------------------------------------------------------------------------
# DB Allocator
# ---------------------------------------------------------------------------

class DbCodeAllocator:
    """
    Allocates codes from CodeSequence rows, one row per (doc_type, month).

    Must run inside the caller's transaction so the row lock and the
    document insert commit together.
    """

    def __init__(self, policies: tuple[NumberingPolicy, ...] = ()):
        self._policies: dict[str, NumberingPolicy] = {p.doc_type: p for p in policies}

    def allocate(self, doc_type: str, issued_at: datetime) -> str:
        from django.db import transaction

        from core.numbering_store.models import CodeSequence

        policy = _resolve_policy(self._policies, doc_type)
        key = period_key(issued_at)

        with transaction.atomic():
            row, _ = CodeSequence.objects.get_or_create(
                doc_type=doc_type,
                period_key=key,
                defaults={"next_value": policy.start_at},
            )
            row = CodeSequence.objects.select_for_update().get(pk=row.pk)
            sequence = row.next_value
            row.next_value = sequence + 1
            row.save(update_fields=["next_value", "updated_at"])

        code = policy.format_number(sequence, issued_at)
        logger.debug("Allocated code %s for %s", code, doc_type)
        return code

    def peek(self, doc_type: str, issued_at: datetime) -> Optional[int]:
        """Next sequence number for the month of issued_at, or None if unused."""
        from core.numbering_store.models import CodeSequence

        row = CodeSequence.objects.filter(
            doc_type=doc_type, period_key=period_key(issued_at),
        ).first()
        return row.next_value if row is not None else None
