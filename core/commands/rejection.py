"""
Tradeflow Command Layer — Rejection Model
===========================================
Structured reasons for operations the core refuses to perform.

A RejectionReason is not an exception by itself. It is the explanation
carried by every WorkflowError so that callers (forms, dashboards, API
adapters) can show a message and branch on a stable machine code.

Every rejection must be:
- Deterministic (same input → same rejection)
- Auditable (code + message + policy)
- Machine-readable (code)
- Human-readable (message)
"""

from __future__ import annotations

from dataclasses import dataclass


# ══════════════════════════════════════════════════════════════
# REJECTION REASON (frozen explanation structure)
# ══════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class RejectionReason:
    """
    Structured reason for a rejected operation.

    Fields:
        code:        Machine-readable rejection code (e.g. 'INVALID_QUANTITY').
        message:     Human-readable explanation.
        policy_name: Name of the check that caused the rejection.
    """

    code: str
    message: str
    policy_name: str

    def __post_init__(self):
        if not self.code or not isinstance(self.code, str):
            raise ValueError("code must be a non-empty string.")

        if not self.message or not isinstance(self.message, str):
            raise ValueError("message must be a non-empty string.")

        if not self.policy_name or not isinstance(self.policy_name, str):
            raise ValueError("policy_name must be a non-empty string.")

    def to_dict(self) -> dict:
        return {
            "code": self.code,
            "message": self.message,
            "policy_name": self.policy_name,
        }


# ══════════════════════════════════════════════════════════════
# STANDARD REJECTION CODES
# ══════════════════════════════════════════════════════════════

class ReasonCode:
    """
    Known rejection codes.

    Convention: SCREAMING_SNAKE_CASE.
    """

    # ── Validation ────────────────────────────────────────────
    MISSING_FIELD = "MISSING_FIELD"
    INVALID_QUANTITY = "INVALID_QUANTITY"
    INVALID_PRICE = "INVALID_PRICE"
    INVALID_AMOUNT = "INVALID_AMOUNT"
    INVALID_DISCOUNT = "INVALID_DISCOUNT"
    INVALID_DISCOUNT_UNIT = "INVALID_DISCOUNT_UNIT"
    DISCOUNT_EXCEEDS_PRICE = "DISCOUNT_EXCEEDS_PRICE"
    DISCOUNT_EXCEEDS_SUBTOTAL = "DISCOUNT_EXCEEDS_SUBTOTAL"
    INVALID_TAX = "INVALID_TAX"
    INVALID_SHIPPING_COST = "INVALID_SHIPPING_COST"
    INVALID_MOVEMENT = "INVALID_MOVEMENT"
    INSUFFICIENT_STOCK = "INSUFFICIENT_STOCK"
    OVERPAYMENT = "OVERPAYMENT"
    INVALID_DELIVERED_QUANTITY = "INVALID_DELIVERED_QUANTITY"
    INVALID_PAYMENT_METHOD = "INVALID_PAYMENT_METHOD"
    INACTIVE_PRODUCT = "INACTIVE_PRODUCT"

    # ── Consistency ───────────────────────────────────────────
    NOT_FOUND = "NOT_FOUND"
    INVALID_TRANSITION = "INVALID_TRANSITION"
    DOCUMENT_TERMINAL = "DOCUMENT_TERMINAL"
    DOCUMENT_CANCELLED = "DOCUMENT_CANCELLED"
    NOT_EDITABLE = "NOT_EDITABLE"
    INVOICE_NOT_PAID = "INVOICE_NOT_PAID"
    INVOICE_NOT_READY = "INVOICE_NOT_READY"
    INVOICE_NOT_OPEN = "INVOICE_NOT_OPEN"
    INVOICE_HAS_PAYMENTS = "INVOICE_HAS_PAYMENTS"
    DUPLICATE_CODE = "DUPLICATE_CODE"

    # ── Concurrency ───────────────────────────────────────────
    CONCURRENT_MODIFICATION = "CONCURRENT_MODIFICATION"
