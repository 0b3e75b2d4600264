"""
Tradeflow Sales Engine — Repository
=====================================
Persistence seam for the workflow service. The service never touches
the ORM directly; it is handed a SalesRepository at construction.

Doctrine:
- atomic() is the single transactional boundary of one operation
- lock=True reads use SELECT ... FOR UPDATE and must run inside atomic()
- save() is a compare-and-swap on `version` for versioned documents
"""

from __future__ import annotations

from decimal import Decimal
from typing import Iterable, List, Optional, Protocol, Sequence

from django.db import transaction
from django.db.models import F, Model, Sum

from core.commands.errors import ConcurrencyConflict, DocumentNotFound
from engines.inventory.models import Product
from engines.sales.models import (
    Customer,
    DeliveryNote,
    DeliveryNoteItem,
    DeliveryStatus,
    Invoice,
    InvoiceItem,
    InvoiceStatus,
    InvoicePaymentStatus,
    Order,
    OrderItem,
    Payment,
    PaymentStatus,
    PurchaseOrder,
    PurchaseOrderItem,
)


# ══════════════════════════════════════════════════════════════
# PROTOCOL
# ══════════════════════════════════════════════════════════════

class SalesRepository(Protocol):
    def atomic(self):
        """Context manager wrapping one operation."""
        ...

    def get_customer(self, customer_id) -> Customer: ...
    def get_product(self, product_id) -> Product: ...
    def get_order(self, order_id, *, lock: bool = False) -> Order: ...
    def get_purchase_order(self, purchase_order_id, *, lock: bool = False) -> PurchaseOrder: ...
    def get_invoice(self, invoice_id, *, lock: bool = False) -> Invoice: ...
    def get_delivery_note(self, note_id, *, lock: bool = False) -> DeliveryNote: ...
    def get_delivery_item(self, item_id, *, lock: bool = False) -> DeliveryNoteItem: ...
    def get_payment(self, payment_id, *, lock: bool = False) -> Payment: ...

    def find_purchase_order_for_order(self, order_id) -> Optional[PurchaseOrder]: ...
    def find_invoice_for_purchase_order(self, purchase_order_id) -> Optional[Invoice]: ...
    def find_live_delivery_note(self, invoice_id) -> Optional[DeliveryNote]: ...
    def find_payment_by_key(self, invoice_id, idempotency_key: str) -> Optional[Payment]: ...

    def items_of(self, document, *, lock: bool = False) -> List[Model]: ...
    def payments_of(self, invoice_id, status: Optional[str] = None) -> List[Payment]: ...
    def cleared_total(self, invoice_id) -> Decimal: ...
    def sent_invoices_due_before(self, day) -> List[Invoice]: ...

    def create(self, model: type, **fields) -> Model: ...
    def create_items(self, model: type, rows: Iterable[dict]) -> List[Model]: ...
    def replace_items(self, document, model: type, rows: Iterable[dict]) -> List[Model]: ...
    def save(self, instance: Model, fields: Sequence[str]) -> None: ...


# ══════════════════════════════════════════════════════════════
# DJANGO IMPLEMENTATION
# ══════════════════════════════════════════════════════════════

ITEM_MODELS = {
    Order: (OrderItem, "order"),
    PurchaseOrder: (PurchaseOrderItem, "purchase_order"),
    Invoice: (InvoiceItem, "invoice"),
    DeliveryNote: (DeliveryNoteItem, "delivery_note"),
}


class DjangoSalesRepository:
    """SalesRepository backed by the Django ORM and the default database."""

    def atomic(self):
        return transaction.atomic()

    @staticmethod
    def _get(model, pk, label: str, lock: bool):
        manager = model.objects.select_for_update() if lock else model.objects
        instance = manager.filter(pk=pk).first()
        if instance is None:
            raise DocumentNotFound(label, pk)
        return instance

    # ── Lookups ───────────────────────────────────────────────

    def get_customer(self, customer_id) -> Customer:
        return self._get(Customer, customer_id, "Customer", False)

    def get_product(self, product_id) -> Product:
        return self._get(Product, product_id, "Product", False)

    def get_order(self, order_id, *, lock: bool = False) -> Order:
        return self._get(Order, order_id, "Order", lock)

    def get_purchase_order(self, purchase_order_id, *, lock: bool = False) -> PurchaseOrder:
        return self._get(PurchaseOrder, purchase_order_id, "PurchaseOrder", lock)

    def get_invoice(self, invoice_id, *, lock: bool = False) -> Invoice:
        return self._get(Invoice, invoice_id, "Invoice", lock)

    def get_delivery_note(self, note_id, *, lock: bool = False) -> DeliveryNote:
        return self._get(DeliveryNote, note_id, "DeliveryNote", lock)

    def get_delivery_item(self, item_id, *, lock: bool = False) -> DeliveryNoteItem:
        return self._get(DeliveryNoteItem, item_id, "DeliveryNoteItem", lock)

    def get_payment(self, payment_id, *, lock: bool = False) -> Payment:
        return self._get(Payment, payment_id, "Payment", lock)

    # ── Derivation lookups ────────────────────────────────────

    def find_purchase_order_for_order(self, order_id) -> Optional[PurchaseOrder]:
        return PurchaseOrder.objects.filter(order_id=order_id).first()

    def find_invoice_for_purchase_order(self, purchase_order_id) -> Optional[Invoice]:
        return Invoice.objects.filter(purchase_order_id=purchase_order_id).first()

    def find_live_delivery_note(self, invoice_id) -> Optional[DeliveryNote]:
        return (
            DeliveryNote.objects.filter(invoice_id=invoice_id)
            .exclude(status=DeliveryStatus.CANCELLED)
            .first()
        )

    def find_payment_by_key(self, invoice_id, idempotency_key: str) -> Optional[Payment]:
        return Payment.objects.filter(
            invoice_id=invoice_id, idempotency_key=idempotency_key,
        ).first()

    # ── Collections ───────────────────────────────────────────

    def items_of(self, document, *, lock: bool = False) -> list:
        item_model, parent_field = ITEM_MODELS[type(document)]
        manager = item_model.objects.select_for_update() if lock else item_model.objects
        return list(manager.filter(**{parent_field: document}).order_by("id"))

    def payments_of(self, invoice_id, status: Optional[str] = None) -> List[Payment]:
        queryset = Payment.objects.filter(invoice_id=invoice_id)
        if status is not None:
            queryset = queryset.filter(status=status)
        return list(queryset.order_by("payment_date", "id"))

    def cleared_total(self, invoice_id) -> Decimal:
        total = Payment.objects.filter(
            invoice_id=invoice_id, status=PaymentStatus.CLEARED,
        ).aggregate(total=Sum("amount"))["total"]
        return Decimal(total) if total is not None else Decimal("0")

    def sent_invoices_due_before(self, day) -> List[Invoice]:
        return list(
            Invoice.objects.filter(status=InvoiceStatus.SENT, due_date__lt=day)
            .exclude(payment_status=InvoicePaymentStatus.PAID)
            .order_by("due_date", "id")
        )

    # ── Writes ────────────────────────────────────────────────

    def create(self, model: type, **fields):
        return model.objects.create(**fields)

    def create_items(self, model: type, rows: Iterable[dict]) -> list:
        created = [model.objects.create(**row) for row in rows]
        return created

    def replace_items(self, document, model: type, rows: Iterable[dict]) -> list:
        _, parent_field = ITEM_MODELS[type(document)]
        model.objects.filter(**{parent_field: document}).delete()
        return self.create_items(model, rows)

    def save(self, instance, fields: Sequence[str]) -> None:
        model = type(instance)
        values = {name: getattr(instance, name) for name in fields}
        queryset = model.objects.filter(pk=instance.pk)
        versioned = hasattr(instance, "version")
        if versioned:
            queryset = queryset.filter(version=instance.version)
            values["version"] = F("version") + 1
        updated = queryset.update(**values)
        if updated != 1:
            raise ConcurrencyConflict(
                f"{model.__name__} {instance.pk} was modified concurrently."
            )
        if versioned:
            instance.version += 1
