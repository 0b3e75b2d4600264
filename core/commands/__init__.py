"""
Tradeflow Command Layer — Rejections and Errors
=================================================
Every refused operation raises a WorkflowError carrying a structured
RejectionReason. Callers branch on `error.code` and show
`error.reason.message`.
"""

from core.commands.errors import (
    ConcurrencyConflict,
    ConsistencyRejected,
    DocumentNotFound,
    InvalidTransition,
    ValidationRejected,
    WorkflowError,
)
from core.commands.rejection import (
    ReasonCode,
    RejectionReason,
)

__all__ = [
    # ── Rejection ─────────────────────────────────────────────
    "RejectionReason",
    "ReasonCode",
    # ── Errors ────────────────────────────────────────────────
    "WorkflowError",
    "ValidationRejected",
    "ConsistencyRejected",
    "DocumentNotFound",
    "InvalidTransition",
    "ConcurrencyConflict",
]
