"""
Tradeflow Command Layer — Error Taxonomy
==========================================
Every refusal raised by the core is a WorkflowError carrying a
RejectionReason.

    WorkflowError
    ├── ValidationRejected     input is malformed (no state was read)
    ├── ConsistencyRejected    input conflicts with current state
    │   ├── DocumentNotFound
    │   └── InvalidTransition
    └── ConcurrencyConflict    another writer won the race (retryable)

Validation and consistency errors are raised before any write, or inside
the operation's atomic block so that the transaction rolls back.
The core never retries a ConcurrencyConflict itself.
"""

from __future__ import annotations

from core.commands.rejection import ReasonCode, RejectionReason


class WorkflowError(Exception):
    """Base error for every rejected core operation."""

    retryable = False

    def __init__(self, reason: RejectionReason):
        self.reason = reason
        super().__init__(f"[{reason.code}] {reason.message}")

    @property
    def code(self) -> str:
        return self.reason.code

    def to_dict(self) -> dict:
        payload = self.reason.to_dict()
        payload["retryable"] = self.retryable
        return payload


class ValidationRejected(WorkflowError):
    """Malformed input: missing field, bad quantity, unknown unit."""

    def __init__(self, code: str, message: str, policy_name: str = "validation"):
        super().__init__(
            RejectionReason(code=code, message=message, policy_name=policy_name)
        )


class ConsistencyRejected(WorkflowError):
    """Input is well-formed but conflicts with the stored state."""

    def __init__(self, code: str, message: str, policy_name: str = "consistency"):
        super().__init__(
            RejectionReason(code=code, message=message, policy_name=policy_name)
        )


class DocumentNotFound(ConsistencyRejected):
    def __init__(self, document_type: str, identifier):
        self.document_type = document_type
        self.identifier = identifier
        super().__init__(
            ReasonCode.NOT_FOUND,
            f"{document_type} '{identifier}' not found.",
            policy_name="document_must_exist",
        )


class InvalidTransition(ConsistencyRejected):
    def __init__(self, workflow: str, from_state: str, to_state: str):
        self.workflow = workflow
        self.from_state = from_state
        self.to_state = to_state
        super().__init__(
            ReasonCode.INVALID_TRANSITION,
            f"{workflow}: transition {from_state} → {to_state} is not allowed.",
            policy_name="transition_must_be_legal",
        )


class ConcurrencyConflict(WorkflowError):
    """Stale read of a product or document. Retry the whole operation."""

    retryable = True

    def __init__(self, message: str, policy_name: str = "optimistic_lock"):
        super().__init__(
            RejectionReason(
                code=ReasonCode.CONCURRENT_MODIFICATION,
                message=message,
                policy_name=policy_name,
            )
        )
