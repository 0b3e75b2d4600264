"""
Tradeflow Documents - Numbering Public API
============================================
"""

from core.documents.numbering.engine import (
    SequenceState,
    period_key,
)
from core.documents.numbering.models import (
    DEFAULT_PREFIXES,
    DOC_DELIVERY_NOTE,
    DOC_INVOICE,
    DOC_ORDER,
    DOC_PAYMENT,
    DOC_PRODUCT,
    DOC_PURCHASE_ORDER,
    VALID_DOC_TYPES,
    NumberingPolicy,
)
from core.documents.numbering.provider import (
    CodeAllocator,
    DbCodeAllocator,
    InMemoryCodeAllocator,
)

__all__ = [
    "NumberingPolicy",
    "DEFAULT_PREFIXES",
    "VALID_DOC_TYPES",
    "DOC_ORDER",
    "DOC_PURCHASE_ORDER",
    "DOC_INVOICE",
    "DOC_DELIVERY_NOTE",
    "DOC_PAYMENT",
    "DOC_PRODUCT",
    "SequenceState",
    "period_key",
    "CodeAllocator",
    "InMemoryCodeAllocator",
    "DbCodeAllocator",
]
