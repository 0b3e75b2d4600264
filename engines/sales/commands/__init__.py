"""
Tradeflow Sales Engine — Request Commands
===========================================
Typed requests for creating priced documents. Malformed input raises
ValidationRejected at construction, before any row is read.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import Optional, Tuple

from core.commands.errors import ValidationRejected
from core.commands.rejection import ReasonCode
from core.primitives.pricing import ZERO, DiscountUnit, coerce_discount_unit, to_decimal


# ══════════════════════════════════════════════════════════════
# LINE INPUT
# ══════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class LineInput:
    """
    One requested line.

    price is the unit price snapshot; None means "use the product's
    current price".
    """
    product_id: int
    quantity: int
    price: Optional[Decimal] = None
    discount: Decimal = ZERO
    discount_unit: DiscountUnit = DiscountUnit.AMOUNT

    def __post_init__(self):
        if self.product_id is None:
            raise ValidationRejected(ReasonCode.MISSING_FIELD, "product_id is required.")
        if isinstance(self.quantity, bool) or not isinstance(self.quantity, int) \
                or self.quantity <= 0:
            raise ValidationRejected(
                ReasonCode.INVALID_QUANTITY, "quantity must be positive integer.",
            )
        if self.price is not None:
            price = to_decimal(self.price, field_name="price")
            if price <= 0:
                raise ValidationRejected(ReasonCode.INVALID_PRICE, "price must be > 0.")
            object.__setattr__(self, "price", price)
        object.__setattr__(self, "discount", to_decimal(self.discount, field_name="discount"))
        object.__setattr__(self, "discount_unit", coerce_discount_unit(self.discount_unit))


def _coerce_lines(lines) -> Tuple[LineInput, ...]:
    lines = tuple(lines or ())
    if not lines:
        raise ValidationRejected(
            ReasonCode.MISSING_FIELD, "at least one line is required.",
        )
    for line in lines:
        if not isinstance(line, LineInput):
            raise ValidationRejected(
                ReasonCode.MISSING_FIELD, "lines must be LineInput instances.",
            )
    return lines


@dataclass(frozen=True)
class PricingTerms:
    """Header-level discount, tax and shipping of one document."""
    discount: Decimal = ZERO
    discount_unit: DiscountUnit = DiscountUnit.AMOUNT
    tax_percentage: Decimal = ZERO
    shipping_cost: Decimal = ZERO

    def __post_init__(self):
        object.__setattr__(self, "discount", to_decimal(self.discount, field_name="discount"))
        object.__setattr__(self, "discount_unit", coerce_discount_unit(self.discount_unit))
        object.__setattr__(
            self, "tax_percentage",
            to_decimal(self.tax_percentage, field_name="tax_percentage"),
        )
        object.__setattr__(
            self, "shipping_cost",
            to_decimal(self.shipping_cost, field_name="shipping_cost"),
        )


# ══════════════════════════════════════════════════════════════
# REQUEST COMMANDS
# ══════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class CreateOrderRequest:
    """Request to open a sales order."""
    customer_id: int
    lines: Tuple[LineInput, ...]
    terms: PricingTerms = field(default_factory=PricingTerms)
    due_date: Optional[date] = None
    payment_deadline: Optional[date] = None
    delivery_address: str = ""
    notes: str = ""
    requires_confirmation: bool = False

    def __post_init__(self):
        if self.customer_id is None:
            raise ValidationRejected(ReasonCode.MISSING_FIELD, "customer_id is required.")
        object.__setattr__(self, "lines", _coerce_lines(self.lines))


@dataclass(frozen=True)
class CreateInvoiceRequest:
    """Request to issue an invoice without a purchase order."""
    customer_id: int
    lines: Tuple[LineInput, ...]
    terms: PricingTerms = field(default_factory=PricingTerms)
    due_date: Optional[date] = None
    delivery_address: str = ""
    notes: str = ""

    def __post_init__(self):
        if self.customer_id is None:
            raise ValidationRejected(ReasonCode.MISSING_FIELD, "customer_id is required.")
        object.__setattr__(self, "lines", _coerce_lines(self.lines))

