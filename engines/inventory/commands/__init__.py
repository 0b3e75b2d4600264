"""
Tradeflow Inventory Engine — Request Commands
===============================================
Typed inventory requests, validated at construction.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Optional

from core.commands.errors import ValidationRejected
from core.commands.rejection import ReasonCode
from core.primitives.pricing import to_decimal
from engines.inventory.models import MovementDirection


def _require_positive_int(value, field_name: str) -> None:
    if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
        raise ValidationRejected(
            ReasonCode.INVALID_QUANTITY,
            f"{field_name} must be positive integer.",
        )


def _require_non_negative_int(value, field_name: str) -> None:
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise ValidationRejected(
            ReasonCode.INVALID_QUANTITY,
            f"{field_name} must be a non-negative integer.",
        )


# ══════════════════════════════════════════════════════════════
# REQUEST COMMANDS
# ══════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class RegisterProductRequest:
    """Request to add a product to the catalogue with its opening stock."""
    name: str
    price: Decimal
    unit: str = "pcs"
    cost: Decimal = Decimal("0")
    opening_stock: int = 0
    minimum_stock: int = 0
    description: str = ""
    code: Optional[str] = None

    def __post_init__(self):
        if not self.name or not self.name.strip():
            raise ValidationRejected(ReasonCode.MISSING_FIELD, "name must be non-empty.")
        price = to_decimal(self.price, field_name="price")
        cost = to_decimal(self.cost, field_name="cost")
        if price <= 0:
            raise ValidationRejected(ReasonCode.INVALID_PRICE, "price must be > 0.")
        if cost < 0:
            raise ValidationRejected(ReasonCode.INVALID_PRICE, "cost must be >= 0.")
        _require_non_negative_int(self.opening_stock, "opening_stock")
        _require_non_negative_int(self.minimum_stock, "minimum_stock")
        object.__setattr__(self, "price", price)
        object.__setattr__(self, "cost", cost)


@dataclass(frozen=True)
class ProductionRequest:
    """Request to receive finished goods from production."""
    product_id: int
    quantity: int
    reference: str = ""
    notes: str = ""
    idempotency_key: Optional[str] = None

    def __post_init__(self):
        _require_positive_int(self.quantity, "quantity")


@dataclass(frozen=True)
class AdjustmentRequest:
    """Request for a manual stock correction."""
    product_id: int
    quantity: int
    direction: str
    reason: str
    reference: str = ""
    idempotency_key: Optional[str] = None

    def __post_init__(self):
        _require_positive_int(self.quantity, "quantity")
        if str(self.direction) not in MovementDirection.values:
            raise ValidationRejected(
                ReasonCode.INVALID_MOVEMENT,
                f"direction '{self.direction}' not valid. "
                f"Must be one of: {MovementDirection.values}",
            )
        if not self.reason or not self.reason.strip():
            raise ValidationRejected(
                ReasonCode.MISSING_FIELD, "reason must be non-empty.",
            )


@dataclass(frozen=True)
class StockCountRequest:
    """Physical count of one product (stock opname)."""
    product_id: int
    counted_quantity: int
    reference: str = ""
    notes: str = ""

    def __post_init__(self):
        _require_non_negative_int(self.counted_quantity, "counted_quantity")
