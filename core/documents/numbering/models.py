"""
Tradeflow Documents - Numbering Policy
========================================
Defines the NumberingPolicy dataclass: how business codes are formatted.

Code format: {PREFIX}/{MM}/{YYYY}/{NNNN}
    ORD/03/2026/0001   sales order
    DPO/03/2026/0001   purchase order
    INV/03/2026/0001   invoice
    SJN/03/2026/0001   delivery note
    PAY/03/2026/0001   payment
    PDK/03/2026/0001   product

Doctrine:
- Same policy + period + sequence position → same code (deterministic).
- The sequence resets at the start of each calendar month.
- No random() or current time inside code formatting.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone

# ---------------------------------------------------------------------------
# Document type identifiers
# ---------------------------------------------------------------------------

DOC_ORDER = "ORDER"
DOC_PURCHASE_ORDER = "PURCHASE_ORDER"
DOC_INVOICE = "INVOICE"
DOC_DELIVERY_NOTE = "DELIVERY_NOTE"
DOC_PAYMENT = "PAYMENT"
DOC_PRODUCT = "PRODUCT"

DEFAULT_PREFIXES = {
    DOC_ORDER: "ORD",
    DOC_PURCHASE_ORDER: "DPO",
    DOC_INVOICE: "INV",
    DOC_DELIVERY_NOTE: "SJN",
    DOC_PAYMENT: "PAY",
    DOC_PRODUCT: "PDK",
}

VALID_DOC_TYPES = frozenset(DEFAULT_PREFIXES)


# ---------------------------------------------------------------------------
# NumberingPolicy
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class NumberingPolicy:
    """
    Declares how codes of one document type are formatted.

    Fields:
        doc_type: one of VALID_DOC_TYPES
        prefix: leading abbreviation (e.g. "INV")
        padding: minimum digit width for the sequence number (4 → "0001")
        start_at: first sequence number of every period (default 1)
    """
    doc_type: str
    prefix: str
    padding: int = 4
    start_at: int = 1

    def __post_init__(self):
        if self.doc_type not in VALID_DOC_TYPES:
            raise ValueError(
                f"doc_type '{self.doc_type}' is not valid. "
                f"Must be one of: {sorted(VALID_DOC_TYPES)}"
            )
        if not self.prefix or not isinstance(self.prefix, str) or "/" in self.prefix:
            raise ValueError("prefix must be a non-empty string without '/'.")
        if not isinstance(self.padding, int) or self.padding < 1:
            raise ValueError("padding must be int >= 1.")
        if not isinstance(self.start_at, int) or self.start_at < 1:
            raise ValueError("start_at must be int >= 1.")

    @classmethod
    def default_for(cls, doc_type: str) -> NumberingPolicy:
        if doc_type not in DEFAULT_PREFIXES:
            raise ValueError(f"No default numbering policy for '{doc_type}'.")
        return cls(doc_type=doc_type, prefix=DEFAULT_PREFIXES[doc_type])

    def format_number(self, sequence: int, issued_at: datetime) -> str:
        """
        Format a code from a sequence position and issue time.

        Returns:
            e.g. "INV/03/2026/0042"
        """
        if not isinstance(sequence, int) or sequence < 1:
            raise ValueError("sequence must be int >= 1.")
        if not isinstance(issued_at, datetime):
            raise ValueError("issued_at must be datetime.")
        if issued_at.tzinfo is not None:
            issued_at = issued_at.astimezone(timezone.utc)
        padded = str(sequence).zfill(self.padding)
        return f"{self.prefix}/{issued_at:%m}/{issued_at:%Y}/{padded}"
