"""
Tradeflow Inventory Engine — Application Service
==================================================
Production receipts, manual adjustments, stock counts and the product
catalogue. Every stock change goes through StockLedger.
"""

from __future__ import annotations

import logging
from typing import List, Optional

from django.db import transaction
from django.db.models import F

from core.commands.errors import DocumentNotFound
from core.documents.numbering import DOC_PRODUCT, CodeAllocator, DbCodeAllocator
from core.primitives.actor import Actor
from core.time.clock import Clock, SystemClock
from engines.inventory.commands import (
    AdjustmentRequest,
    ProductionRequest,
    RegisterProductRequest,
    StockCountRequest,
)
from engines.inventory.ledger import StockLedger
from engines.inventory.models import (
    MovementDirection,
    MovementType,
    Product,
    StockMovement,
)

logger = logging.getLogger("tradeflow.inventory")


class InventoryService:
    """
    Inventory application service.

    Orchestrates:
    1. Request validation (request dataclasses)
    2. Product lookup and code allocation
    3. Stock Ledger movements
    """

    def __init__(
        self,
        *,
        ledger: StockLedger | None = None,
        numbering: CodeAllocator | None = None,
        clock: Clock | None = None,
    ):
        self._clock = clock or SystemClock()
        self._ledger = ledger or StockLedger(clock=self._clock)
        self._numbering = numbering or DbCodeAllocator()

    @property
    def ledger(self) -> StockLedger:
        return self._ledger

    # ── Catalogue ─────────────────────────────────────────────

    def register_product(self, request: RegisterProductRequest, actor: Actor) -> Product:
        """Create a product; opening stock enters through a PRODUCTION_IN movement."""
        with transaction.atomic():
            code = request.code or self._numbering.allocate(
                DOC_PRODUCT, self._clock.now_utc(),
            )
            product = Product.objects.create(
                code=code,
                name=request.name.strip(),
                description=request.description,
                unit=request.unit,
                price=request.price,
                cost=request.cost,
                minimum_stock=request.minimum_stock,
            )
            if request.opening_stock > 0:
                self._ledger.apply_movement(
                    product.pk,
                    MovementType.PRODUCTION_IN,
                    request.opening_stock,
                    code,
                    actor.actor_id,
                    notes="Opening stock",
                    idempotency_key=f"opening:{code}",
                )
                product.refresh_from_db()
        logger.info("Registered product %s (%s)", product.code, product.name)
        return product

    def get_product(self, product_id: int) -> Product:
        product = Product.objects.filter(pk=product_id).first()
        if product is None:
            raise DocumentNotFound("Product", product_id)
        return product

    def deactivate_product(self, product_id: int) -> Product:
        with transaction.atomic():
            product = self.get_product(product_id)
            Product.objects.filter(pk=product.pk).update(
                is_active=False, version=F("version") + 1,
            )
            product.refresh_from_db()
        logger.info("Deactivated product %s", product.code)
        return product

    # ── Movements ─────────────────────────────────────────────

    def record_production(self, request: ProductionRequest, actor: Actor) -> StockMovement:
        return self._ledger.apply_movement(
            request.product_id,
            MovementType.PRODUCTION_IN,
            request.quantity,
            request.reference,
            actor.actor_id,
            notes=request.notes,
            idempotency_key=request.idempotency_key,
        )

    def record_adjustment(self, request: AdjustmentRequest, actor: Actor) -> StockMovement:
        return self._ledger.apply_movement(
            request.product_id,
            MovementType.ADJUSTMENT,
            request.quantity,
            request.reference,
            actor.actor_id,
            direction=request.direction,
            notes=request.reason,
            idempotency_key=request.idempotency_key,
        )

    def reconcile_count(
        self,
        request: StockCountRequest,
        actor: Actor,
    ) -> Optional[StockMovement]:
        """
        Align current_stock with a physical count.

        Returns the ADJUSTMENT movement, or None when the count matches.
        """
        with transaction.atomic():
            product = Product.objects.select_for_update().filter(
                pk=request.product_id,
            ).first()
            if product is None:
                raise DocumentNotFound("Product", request.product_id)

            difference = request.counted_quantity - product.current_stock
            if difference == 0:
                logger.info("Stock count for %s matches (%d)", product.code, product.current_stock)
                return None

            direction = MovementDirection.IN if difference > 0 else MovementDirection.OUT
            notes = request.notes or (
                f"Stock count: system {product.current_stock}, "
                f"counted {request.counted_quantity}"
            )
            return self._ledger.apply_movement(
                product.pk,
                MovementType.ADJUSTMENT,
                abs(difference),
                request.reference,
                actor.actor_id,
                direction=direction,
                notes=notes,
            )

    # ── Queries ───────────────────────────────────────────────

    def low_stock_products(self) -> List[Product]:
        return list(
            Product.objects.filter(
                is_active=True,
                current_stock__lte=F("minimum_stock"),
            ).order_by("code")
        )

    def movements_for(self, product_id: int) -> List[StockMovement]:
        self.get_product(product_id)
        return list(
            StockMovement.objects.filter(product_id=product_id).order_by("occurred_at", "id")
        )
