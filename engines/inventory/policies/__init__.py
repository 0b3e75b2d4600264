"""
Tradeflow Inventory Engine — Policies
=======================================
Validation policies for stock movements. Each policy returns a
RejectionReason or None; StockLedger turns a reason into an error.
"""

from __future__ import annotations

from typing import Optional

from core.commands.rejection import ReasonCode, RejectionReason
from engines.inventory.models import MovementDirection, MovementType

FIXED_DIRECTIONS = {
    MovementType.PRODUCTION_IN.value: MovementDirection.IN.value,
    MovementType.RETURN_IN.value: MovementDirection.IN.value,
    MovementType.SALES_OUT.value: MovementDirection.OUT.value,
}


def movement_quantity_policy(quantity) -> Optional[RejectionReason]:
    """Movement quantities are positive integers."""
    if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity <= 0:
        return RejectionReason(
            code=ReasonCode.INVALID_QUANTITY,
            message=f"Movement quantity must be a positive integer, got {quantity!r}.",
            policy_name="movement_quantity_policy",
        )
    return None


def movement_direction_policy(
    movement_type: str,
    direction: Optional[str],
) -> Optional[RejectionReason]:
    """
    ADJUSTMENT requires an explicit direction. Other types carry a fixed
    direction and reject a contradicting one.
    """
    if movement_type not in MovementType.values:
        return RejectionReason(
            code=ReasonCode.INVALID_MOVEMENT,
            message=f"Unknown movement type '{movement_type}'.",
            policy_name="movement_direction_policy",
        )
    if direction is not None and direction not in MovementDirection.values:
        return RejectionReason(
            code=ReasonCode.INVALID_MOVEMENT,
            message=f"Unknown movement direction '{direction}'.",
            policy_name="movement_direction_policy",
        )
    if movement_type == MovementType.ADJUSTMENT:
        if direction is None:
            return RejectionReason(
                code=ReasonCode.MISSING_FIELD,
                message="ADJUSTMENT movements require a direction (IN or OUT).",
                policy_name="movement_direction_policy",
            )
        return None
    fixed = FIXED_DIRECTIONS[str(movement_type)]
    if direction is not None and direction != fixed:
        return RejectionReason(
            code=ReasonCode.INVALID_MOVEMENT,
            message=f"{movement_type} is always {fixed}, got {direction}.",
            policy_name="movement_direction_policy",
        )
    return None


def negative_stock_policy(
    current_stock: int,
    quantity: int,
    product_code: str,
) -> Optional[RejectionReason]:
    """Reject an outbound movement larger than the stock on hand."""
    if quantity > current_stock:
        return RejectionReason(
            code=ReasonCode.INSUFFICIENT_STOCK,
            message=(
                f"Insufficient stock: {current_stock} available, "
                f"{quantity} requested for product {product_code}."
            ),
            policy_name="negative_stock_policy",
        )
    return None


def resolve_direction(movement_type: str, direction: Optional[str]) -> str:
    if movement_type == MovementType.ADJUSTMENT:
        return direction
    return FIXED_DIRECTIONS[str(movement_type)]
