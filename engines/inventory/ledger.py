"""
Tradeflow Inventory Engine — Stock Ledger
===========================================
The only writer of Product.current_stock.

apply_movement():
    1. Lock the product row and read current_stock as previous_stock
    2. Resolve the direction from the movement type
       (ADJUSTMENT takes the caller's direction)
    3. Compute new_stock; outbound movements that would go below zero
       follow the OutboundPolicy (CLAMP or REJECT)
    4. Compare-and-swap Product.current_stock on Product.version and
       insert the StockMovement, in one transaction

RULES (NON-NEGOTIABLE):
- current_stock never goes below zero
- new_stock = previous_stock ± quantity for every movement
- A movement with a known idempotency_key is never applied twice
- A version mismatch raises ConcurrencyConflict; the ledger never retries
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import List, Optional

from django.conf import settings
from django.db import IntegrityError, transaction
from django.db.models import F, Sum

from core.commands.errors import (
    ConcurrencyConflict,
    ConsistencyRejected,
    DocumentNotFound,
    ValidationRejected,
)
from core.commands.rejection import ReasonCode, RejectionReason
from core.time.clock import Clock, SystemClock
from engines.inventory.models import MovementDirection, Product, StockMovement
from engines.inventory.policies import (
    movement_direction_policy,
    movement_quantity_policy,
    negative_stock_policy,
    resolve_direction,
)

logger = logging.getLogger("tradeflow.inventory")


# ══════════════════════════════════════════════════════════════
# OUTBOUND POLICY
# ══════════════════════════════════════════════════════════════

class OutboundPolicy(str, Enum):
    """What happens when an outbound movement exceeds stock on hand."""
    CLAMP = "CLAMP"
    REJECT = "REJECT"

    @classmethod
    def from_settings(cls) -> OutboundPolicy:
        value = getattr(settings, "TRADEFLOW_OUTBOUND_POLICY", cls.CLAMP.value)
        return cls(str(value).upper())


def _raise_validation(reason: Optional[RejectionReason]) -> None:
    if reason is not None:
        raise ValidationRejected(reason.code, reason.message, reason.policy_name)


# ══════════════════════════════════════════════════════════════
# VERIFICATION RESULT
# ══════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class LedgerCheck:
    """
    Result of replaying one product's movements against its balance.

    Fields:
        product_id:     Product checked
        baseline:       previous_stock of the first movement
                        (current_stock when there are none)
        movement_total: Σ signed movement quantities
        expected_stock: baseline + movement_total
        current_stock:  Product.current_stock as stored
        chain_breaks:   ids of movements whose previous_stock does not
                        match the new_stock of the movement before them
    """
    product_id: int
    baseline: int
    movement_total: int
    expected_stock: int
    current_stock: int
    chain_breaks: tuple = ()

    @property
    def is_consistent(self) -> bool:
        return self.expected_stock == self.current_stock and not self.chain_breaks

    def to_dict(self) -> dict:
        return {
            "product_id": self.product_id,
            "baseline": self.baseline,
            "movement_total": self.movement_total,
            "expected_stock": self.expected_stock,
            "current_stock": self.current_stock,
            "chain_breaks": list(self.chain_breaks),
            "is_consistent": self.is_consistent,
        }


# ══════════════════════════════════════════════════════════════
# STOCK LEDGER
# ══════════════════════════════════════════════════════════════

class StockLedger:
    """
    Applies stock movements to products.

    Every call opens its own atomic block; when the caller already holds
    a transaction (the sales workflow does) the block becomes a savepoint
    and the movement commits or rolls back with the caller's work.
    """

    def __init__(
        self,
        clock: Clock | None = None,
        outbound_policy: OutboundPolicy | None = None,
    ):
        self._clock = clock or SystemClock()
        self._outbound_policy = outbound_policy or OutboundPolicy.from_settings()

    @property
    def outbound_policy(self) -> OutboundPolicy:
        return self._outbound_policy

    def apply_movement(
        self,
        product_id: int,
        movement_type: str,
        quantity: int,
        reference: str,
        actor_id: str,
        *,
        direction: Optional[str] = None,
        notes: str = "",
        idempotency_key: Optional[str] = None,
    ) -> StockMovement:
        movement_type = str(movement_type)
        direction = str(direction) if direction is not None else None
        _raise_validation(movement_quantity_policy(quantity))
        _raise_validation(movement_direction_policy(movement_type, direction))
        if not actor_id:
            raise ValidationRejected(
                ReasonCode.MISSING_FIELD, "actor_id is required.",
                policy_name="movement_actor_required",
            )
        direction = resolve_direction(movement_type, direction)

        with transaction.atomic():
            if idempotency_key:
                existing = StockMovement.objects.filter(
                    idempotency_key=idempotency_key,
                ).first()
                if existing is not None:
                    if existing.product_id != product_id:
                        raise ConsistencyRejected(
                            ReasonCode.INVALID_MOVEMENT,
                            f"Idempotency key '{idempotency_key}' already used "
                            f"for product {existing.product_id}.",
                            policy_name="idempotency_key_scope",
                        )
                    logger.info(
                        "Movement %s already applied (key=%s)",
                        existing.pk, idempotency_key,
                    )
                    return existing

            product = Product.objects.select_for_update().filter(pk=product_id).first()
            if product is None:
                raise DocumentNotFound("Product", product_id)

            previous_stock = product.current_stock
            applied = quantity
            if direction == MovementDirection.OUT and quantity > previous_stock:
                if self._outbound_policy is OutboundPolicy.REJECT:
                    _raise_validation(
                        negative_stock_policy(previous_stock, quantity, product.code)
                    )
                applied = previous_stock
                logger.warning(
                    "Clamped %s of %s for %s: requested %d, on hand %d",
                    movement_type, product.code, reference, quantity, previous_stock,
                )

            if direction == MovementDirection.IN:
                new_stock = previous_stock + applied
            else:
                new_stock = previous_stock - applied

            now = self._clock.now_utc()
            updated = Product.objects.filter(
                pk=product.pk, version=product.version,
            ).update(
                current_stock=new_stock,
                version=F("version") + 1,
                updated_at=now,
            )
            if updated != 1:
                raise ConcurrencyConflict(
                    f"Product {product.code} changed while applying {movement_type}."
                )

            try:
                with transaction.atomic():
                    movement = StockMovement.objects.create(
                        product=product,
                        movement_type=movement_type,
                        direction=direction,
                        quantity=applied,
                        requested_quantity=quantity,
                        previous_stock=previous_stock,
                        new_stock=new_stock,
                        reference=reference or "",
                        notes=notes or "",
                        actor_id=actor_id,
                        idempotency_key=idempotency_key or None,
                        occurred_at=now,
                    )
            except IntegrityError as exc:
                raise ConcurrencyConflict(
                    f"Movement with key '{idempotency_key}' was written concurrently."
                ) from exc

        logger.info(
            "Applied %s %s %d to %s: %d → %d (ref=%s)",
            movement_type, direction, applied, product.code,
            previous_stock, new_stock, reference,
        )
        return movement

    def applied_total(self, product_id: int, key_prefix: str) -> int:
        """Σ quantity actually moved by this product's movements whose key starts with key_prefix."""
        total = StockMovement.objects.filter(
            product_id=product_id, idempotency_key__startswith=key_prefix,
        ).aggregate(total=Sum("quantity"))["total"]
        return total or 0

    # ── Verification ──────────────────────────────────────────

    def verify_product(self, product_id: int) -> LedgerCheck:
        product = Product.objects.filter(pk=product_id).first()
        if product is None:
            raise DocumentNotFound("Product", product_id)

        movements: List[StockMovement] = list(
            StockMovement.objects.filter(product_id=product_id).order_by("occurred_at", "id")
        )
        baseline = movements[0].previous_stock if movements else product.current_stock
        total = 0
        breaks = []
        running = baseline
        for movement in movements:
            if movement.previous_stock != running:
                breaks.append(movement.pk)
            if movement.previous_stock + movement.signed_quantity != movement.new_stock:
                breaks.append(movement.pk)
            total += movement.signed_quantity
            running = movement.new_stock

        check = LedgerCheck(
            product_id=product.pk,
            baseline=baseline,
            movement_total=total,
            expected_stock=baseline + total,
            current_stock=product.current_stock,
            chain_breaks=tuple(dict.fromkeys(breaks)),
        )
        if not check.is_consistent:
            logger.error("Ledger inconsistency for %s: %s", product.code, check.to_dict())
        return check
