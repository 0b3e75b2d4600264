"""
Tradeflow Inventory Engine — Persistent Models
================================================
Product carries the running stock balance. StockMovement is the
append-only ledger that explains every change to that balance.

RULES (NON-NEGOTIABLE):
- Product.current_stock is written only by StockLedger
- Product.current_stock is never negative (enforced in the schema)
- StockMovement rows are INSERT only: never updated, never deleted
- new_stock = previous_stock ± quantity for every movement
"""

from __future__ import annotations

from django.db import models


class MovementType(models.TextChoices):
    PRODUCTION_IN = "PRODUCTION_IN", "Production In"
    SALES_OUT = "SALES_OUT", "Sales Out"
    RETURN_IN = "RETURN_IN", "Return In"
    ADJUSTMENT = "ADJUSTMENT", "Adjustment"


class MovementDirection(models.TextChoices):
    IN = "IN", "In"
    OUT = "OUT", "Out"


class Product(models.Model):
    code = models.CharField(max_length=32, unique=True)
    name = models.CharField(max_length=255)
    description = models.TextField(blank=True, default="")
    unit = models.CharField(max_length=32, default="pcs")
    price = models.DecimalField(max_digits=18, decimal_places=2)
    cost = models.DecimalField(max_digits=18, decimal_places=2, default=0)
    current_stock = models.PositiveIntegerField(default=0)
    minimum_stock = models.PositiveIntegerField(default=0)
    is_active = models.BooleanField(default=True)
    version = models.PositiveIntegerField(default=0)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = "tradeflow_products"
        ordering = ["code"]
        indexes = [
            models.Index(fields=["is_active", "current_stock"], name="idx_product_active_stock"),
        ]

    def __str__(self) -> str:
        return f"{self.code} {self.name} ({self.current_stock} {self.unit})"


class StockMovement(models.Model):
    product = models.ForeignKey(
        Product,
        on_delete=models.PROTECT,
        related_name="movements",
    )
    movement_type = models.CharField(max_length=20, choices=MovementType.choices)
    direction = models.CharField(max_length=3, choices=MovementDirection.choices)
    quantity = models.PositiveIntegerField()
    requested_quantity = models.PositiveIntegerField()
    previous_stock = models.PositiveIntegerField()
    new_stock = models.PositiveIntegerField()
    reference = models.CharField(max_length=64, blank=True, default="")
    notes = models.TextField(blank=True, default="")
    actor_id = models.CharField(max_length=255)
    idempotency_key = models.CharField(
        max_length=255,
        unique=True,
        null=True,
        blank=True,
    )
    occurred_at = models.DateTimeField()

    class Meta:
        db_table = "tradeflow_stock_movements"
        ordering = ["occurred_at", "id"]
        indexes = [
            models.Index(fields=["product", "occurred_at"], name="idx_movement_product_time"),
            models.Index(fields=["reference"], name="idx_movement_reference"),
        ]

    def save(self, *args, **kwargs):
        """
        GUARD: INSERT only. Corrections are new ADJUSTMENT movements.
        """
        if not self._state.adding:
            raise PermissionError(
                "Stock movements are immutable. "
                "Record a correcting ADJUSTMENT instead."
            )
        super().save(*args, **kwargs)

    def delete(self, *args, **kwargs):
        raise PermissionError("Stock movements are never deleted.")

    @property
    def signed_quantity(self) -> int:
        if self.direction == MovementDirection.IN:
            return self.quantity
        return -self.quantity

    @property
    def was_clamped(self) -> bool:
        return self.quantity != self.requested_quantity

    def to_dict(self) -> dict:
        return {
            "id": self.pk,
            "product_id": self.product_id,
            "movement_type": self.movement_type,
            "direction": self.direction,
            "quantity": self.quantity,
            "requested_quantity": self.requested_quantity,
            "previous_stock": self.previous_stock,
            "new_stock": self.new_stock,
            "reference": self.reference,
            "notes": self.notes,
            "actor_id": self.actor_id,
            "idempotency_key": self.idempotency_key,
            "occurred_at": self.occurred_at.isoformat(),
        }

    def __str__(self) -> str:
        return (
            f"[{self.movement_type}] {self.product_id} "
            f"{self.previous_stock} → {self.new_stock}"
        )
