"""
Tradeflow Pricing Primitive — Line and Document Totals
========================================================
Engine: Core Primitives
Authority: one pricing formula for every document that owns lines

The Pricing Primitive computes line totals, discounts, tax, shipping
and grand totals for Orders, Purchase Orders and Invoices.

RULES (NON-NEGOTIABLE):
- Pure functions only: no ORM access, no clock, no logging
- Every amount is Decimal, quantized to 2 places (ROUND_HALF_UP)
  at the point it is produced
- Totals are recomputed from lines on every mutation and every read
- Result is independent of line order and idempotent
- A discount larger than its base is rejected, never clamped

Formulas:
    discount_amount      = price * discount / 100   (PERCENTAGE)
                         = discount                 (AMOUNT)
    line_total           = (price - discount_amount) * quantity
    subtotal             = Σ line_total
    header_discount      = subtotal * d / 100 | d
    total_discount       = Σ line discount amounts + header_discount
    taxable_amount       = subtotal - header_discount
    tax                  = taxable_amount * tax_percentage / 100
    grand_total          = taxable_amount + tax + shipping_cost

This file contains NO persistence logic.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from enum import Enum
from typing import Iterable, Tuple

from core.commands.errors import ValidationRejected
from core.commands.rejection import ReasonCode


CENT = Decimal("0.01")
ZERO = Decimal("0")
HUNDRED = Decimal("100")


# ══════════════════════════════════════════════════════════════
# ENUMS
# ══════════════════════════════════════════════════════════════

class DiscountUnit(str, Enum):
    """Whether a discount value is a fixed amount or a percentage."""
    AMOUNT = "AMOUNT"
    PERCENTAGE = "PERCENTAGE"


# ══════════════════════════════════════════════════════════════
# COERCION HELPERS
# ══════════════════════════════════════════════════════════════

def to_decimal(value, *, field_name: str = "value") -> Decimal:
    """Coerce int/str/Decimal into Decimal. Floats go through str()."""
    if isinstance(value, Decimal):
        result = value
    elif isinstance(value, bool):
        raise ValidationRejected(
            ReasonCode.INVALID_AMOUNT, f"{field_name} must be numeric.",
            policy_name="pricing_input_must_be_numeric",
        )
    elif isinstance(value, (int, str, float)):
        try:
            result = Decimal(str(value))
        except InvalidOperation:
            raise ValidationRejected(
                ReasonCode.INVALID_AMOUNT, f"{field_name} must be numeric.",
                policy_name="pricing_input_must_be_numeric",
            ) from None
    else:
        raise ValidationRejected(
            ReasonCode.INVALID_AMOUNT, f"{field_name} must be numeric.",
            policy_name="pricing_input_must_be_numeric",
        )
    if not result.is_finite():
        raise ValidationRejected(
            ReasonCode.INVALID_AMOUNT, f"{field_name} must be finite.",
            policy_name="pricing_input_must_be_numeric",
        )
    return result


def quantize(value: Decimal) -> Decimal:
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def coerce_discount_unit(unit) -> DiscountUnit:
    if isinstance(unit, DiscountUnit):
        return unit
    try:
        return DiscountUnit(str(unit).upper())
    except ValueError:
        raise ValidationRejected(
            ReasonCode.INVALID_DISCOUNT_UNIT,
            f"discount unit '{unit}' is not valid. "
            f"Must be one of: {[u.value for u in DiscountUnit]}",
            policy_name="discount_unit_must_be_known",
        ) from None


def _discount_amount(base: Decimal, discount: Decimal, unit: DiscountUnit) -> Decimal:
    if unit is DiscountUnit.PERCENTAGE:
        return quantize(base * discount / HUNDRED)
    return quantize(discount)


def _validate_discount(discount: Decimal, unit: DiscountUnit, *, field_name: str) -> None:
    if discount < ZERO:
        raise ValidationRejected(
            ReasonCode.INVALID_DISCOUNT,
            f"{field_name} must be >= 0.",
            policy_name="discount_must_be_non_negative",
        )
    if unit is DiscountUnit.PERCENTAGE and discount > HUNDRED:
        raise ValidationRejected(
            ReasonCode.INVALID_DISCOUNT,
            f"{field_name} percentage must be between 0 and 100.",
            policy_name="discount_percentage_must_be_bounded",
        )


# ══════════════════════════════════════════════════════════════
# LINE INPUT
# ══════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class PricedLine:
    """
    One priced line, as owned by an Order, Purchase Order or Invoice.

    Fields:
        price:          Unit price snapshot (> 0)
        quantity:       Positive integer quantity
        discount:       Per-unit discount value (>= 0)
        discount_unit:  AMOUNT | PERCENTAGE
    """
    price: Decimal
    quantity: int
    discount: Decimal = ZERO
    discount_unit: DiscountUnit = DiscountUnit.AMOUNT

    def __post_init__(self):
        price = to_decimal(self.price, field_name="price")
        discount = to_decimal(self.discount, field_name="discount")
        unit = coerce_discount_unit(self.discount_unit)
        object.__setattr__(self, "price", price)
        object.__setattr__(self, "discount", discount)
        object.__setattr__(self, "discount_unit", unit)

        if price <= ZERO:
            raise ValidationRejected(
                ReasonCode.INVALID_PRICE, "price must be > 0.",
                policy_name="price_must_be_positive",
            )
        if isinstance(self.quantity, bool) or not isinstance(self.quantity, int) \
                or self.quantity <= 0:
            raise ValidationRejected(
                ReasonCode.INVALID_QUANTITY, "quantity must be positive integer.",
                policy_name="quantity_must_be_positive",
            )
        _validate_discount(discount, unit, field_name="discount")
        if self.unit_discount_amount > price:
            raise ValidationRejected(
                ReasonCode.DISCOUNT_EXCEEDS_PRICE,
                f"discount {self.unit_discount_amount} exceeds unit price {price}.",
                policy_name="line_discount_must_not_exceed_price",
            )

    @property
    def unit_discount_amount(self) -> Decimal:
        return _discount_amount(self.price, self.discount, self.discount_unit)


# ══════════════════════════════════════════════════════════════
# LINE FUNCTIONS
# ══════════════════════════════════════════════════════════════

def line_total(price, quantity: int, discount=ZERO,
               discount_unit=DiscountUnit.AMOUNT) -> Decimal:
    """(price - effective discount) * quantity."""
    line = PricedLine(price=price, quantity=quantity,
                      discount=discount, discount_unit=discount_unit)
    return _line_total(line)


def line_discount_amount(price, quantity: int, discount=ZERO,
                         discount_unit=DiscountUnit.AMOUNT) -> Decimal:
    """Total discount granted on one line (per-unit discount * quantity)."""
    line = PricedLine(price=price, quantity=quantity,
                      discount=discount, discount_unit=discount_unit)
    return quantize(line.unit_discount_amount * line.quantity)


def _line_total(line: PricedLine) -> Decimal:
    return quantize((line.price - line.unit_discount_amount) * line.quantity)


# ══════════════════════════════════════════════════════════════
# DOCUMENT TOTALS
# ══════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class DocumentTotals:
    """All derived money figures of one document."""
    subtotal: Decimal
    line_discount_total: Decimal
    header_discount_amount: Decimal
    total_discount: Decimal
    taxable_amount: Decimal
    tax: Decimal
    shipping_cost: Decimal
    grand_total: Decimal

    def to_dict(self) -> dict:
        return {
            "subtotal": str(self.subtotal),
            "line_discount_total": str(self.line_discount_total),
            "header_discount_amount": str(self.header_discount_amount),
            "total_discount": str(self.total_discount),
            "taxable_amount": str(self.taxable_amount),
            "tax": str(self.tax),
            "shipping_cost": str(self.shipping_cost),
            "grand_total": str(self.grand_total),
        }


def document_totals(
    lines: Iterable[PricedLine],
    header_discount=ZERO,
    header_discount_unit=DiscountUnit.AMOUNT,
    tax_percentage=ZERO,
    shipping_cost=ZERO,
) -> DocumentTotals:
    """
    Compute every document-level figure from its lines.

    Lines are summed as exact Decimals after per-line quantization, so
    the result does not depend on the order of `lines`.
    """
    priced: Tuple[PricedLine, ...] = tuple(lines)
    header_discount = to_decimal(header_discount, field_name="header_discount")
    header_unit = coerce_discount_unit(header_discount_unit)
    tax_percentage = to_decimal(tax_percentage, field_name="tax_percentage")
    shipping_cost = to_decimal(shipping_cost, field_name="shipping_cost")

    _validate_discount(header_discount, header_unit, field_name="header_discount")
    if tax_percentage < ZERO or tax_percentage > HUNDRED:
        raise ValidationRejected(
            ReasonCode.INVALID_TAX,
            "tax_percentage must be between 0 and 100.",
            policy_name="tax_percentage_must_be_bounded",
        )
    if shipping_cost < ZERO:
        raise ValidationRejected(
            ReasonCode.INVALID_SHIPPING_COST,
            "shipping_cost must be >= 0.",
            policy_name="shipping_cost_must_be_non_negative",
        )

    subtotal = sum((_line_total(line) for line in priced), ZERO)
    line_discount_total = sum(
        (quantize(line.unit_discount_amount * line.quantity) for line in priced),
        ZERO,
    )

    header_discount_amount = _discount_amount(subtotal, header_discount, header_unit)
    if header_discount_amount > subtotal:
        raise ValidationRejected(
            ReasonCode.DISCOUNT_EXCEEDS_SUBTOTAL,
            f"header discount {header_discount_amount} exceeds subtotal {subtotal}.",
            policy_name="header_discount_must_not_exceed_subtotal",
        )

    taxable_amount = subtotal - header_discount_amount
    tax = quantize(taxable_amount * tax_percentage / HUNDRED)
    shipping_cost = quantize(shipping_cost)
    grand_total = taxable_amount + tax + shipping_cost

    return DocumentTotals(
        subtotal=subtotal,
        line_discount_total=line_discount_total,
        header_discount_amount=header_discount_amount,
        total_discount=line_discount_total + header_discount_amount,
        taxable_amount=taxable_amount,
        tax=tax,
        shipping_cost=shipping_cost,
        grand_total=grand_total,
    )
