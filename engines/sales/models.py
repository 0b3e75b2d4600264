"""
Tradeflow Sales Engine — Document Model
=========================================
The document chain Order → PurchaseOrder → Invoice → DeliveryNote,
plus Payments against an Invoice.

Every priced document stores its header pricing terms (discount, tax,
shipping) and a copy of the totals computed by core.primitives.pricing
at its last write. Reads recompute totals from the lines.

RULES (NON-NEGOTIABLE):
- Status fields are only changed through the workflow definitions
- At most one PurchaseOrder per Order, one Invoice per PurchaseOrder
  and one live (non-cancelled) DeliveryNote per Invoice
- Invoice.paid_amount + Invoice.remaining_amount == Invoice.total_amount
- 0 <= DeliveryNoteItem.delivered_qty <= DeliveryNoteItem.quantity
"""

from __future__ import annotations

from django.db import models

from core.primitives.pricing import PricedLine


# ══════════════════════════════════════════════════════════════
# STATUS AXES
# ══════════════════════════════════════════════════════════════

class DiscountUnitChoices(models.TextChoices):
    AMOUNT = "AMOUNT", "Amount"
    PERCENTAGE = "PERCENTAGE", "Percentage"


class OrderStatus(models.TextChoices):
    NEW = "NEW", "New"
    PENDING_CONFIRMATION = "PENDING_CONFIRMATION", "Pending Confirmation"
    PROCESSING = "PROCESSING", "Processing"
    COMPLETED = "COMPLETED", "Completed"
    CANCELLED = "CANCELLED", "Cancelled"


class PurchaseOrderStatus(models.TextChoices):
    PENDING = "PENDING", "Pending"
    PROCESSING = "PROCESSING", "Processing"
    READY_FOR_DELIVERY = "READY_FOR_DELIVERY", "Ready for Delivery"
    COMPLETED = "COMPLETED", "Completed"
    CANCELLED = "CANCELLED", "Cancelled"


class InvoiceStatus(models.TextChoices):
    DRAFT = "DRAFT", "Draft"
    SENT = "SENT", "Sent"
    PAID = "PAID", "Paid"
    OVERDUE = "OVERDUE", "Overdue"
    CANCELLED = "CANCELLED", "Cancelled"


class InvoicePaymentStatus(models.TextChoices):
    UNPAID = "UNPAID", "Unpaid"
    PARTIALLY_PAID = "PARTIALLY_PAID", "Partially Paid"
    PAID = "PAID", "Paid"


class PreparationStatus(models.TextChoices):
    WAITING_PREPARATION = "WAITING_PREPARATION", "Waiting Preparation"
    PREPARING = "PREPARING", "Preparing"
    READY_FOR_DELIVERY = "READY_FOR_DELIVERY", "Ready for Delivery"
    CANCELLED_PREPARATION = "CANCELLED_PREPARATION", "Cancelled Preparation"


class DeliveryStatus(models.TextChoices):
    PENDING = "PENDING", "Pending"
    IN_TRANSIT = "IN_TRANSIT", "In Transit"
    DELIVERED = "DELIVERED", "Delivered"
    CANCELLED = "CANCELLED", "Cancelled"


class PaymentStatus(models.TextChoices):
    PENDING = "PENDING", "Pending"
    CLEARED = "CLEARED", "Cleared"
    CANCELED = "CANCELED", "Canceled"


class PaymentMethod(models.TextChoices):
    CASH = "CASH", "Cash"
    TRANSFER = "TRANSFER", "Bank Transfer"
    CHECK = "CHECK", "Check"
    CREDIT_CARD = "CREDIT_CARD", "Credit Card"


# ══════════════════════════════════════════════════════════════
# ABSTRACT BASES
# ══════════════════════════════════════════════════════════════

class PricedDocument(models.Model):
    """Header pricing terms and the totals derived from the lines."""
    discount = models.DecimalField(max_digits=18, decimal_places=2, default=0)
    discount_unit = models.CharField(
        max_length=10,
        choices=DiscountUnitChoices.choices,
        default=DiscountUnitChoices.AMOUNT,
    )
    tax_percentage = models.DecimalField(max_digits=5, decimal_places=2, default=0)
    shipping_cost = models.DecimalField(max_digits=18, decimal_places=2, default=0)
    subtotal = models.DecimalField(max_digits=18, decimal_places=2, default=0)
    discount_amount = models.DecimalField(max_digits=18, decimal_places=2, default=0)
    tax_amount = models.DecimalField(max_digits=18, decimal_places=2, default=0)
    total_amount = models.DecimalField(max_digits=18, decimal_places=2, default=0)
    version = models.PositiveIntegerField(default=0)
    created_at = models.DateTimeField()
    updated_at = models.DateTimeField()

    class Meta:
        abstract = True

    def pricing_terms(self) -> dict:
        return {
            "header_discount": self.discount,
            "header_discount_unit": self.discount_unit,
            "tax_percentage": self.tax_percentage,
            "shipping_cost": self.shipping_cost,
        }


class PricedItem(models.Model):
    product = models.ForeignKey(
        "inventory.Product",
        on_delete=models.PROTECT,
        related_name="+",
    )
    quantity = models.PositiveIntegerField()
    price = models.DecimalField(max_digits=18, decimal_places=2)
    discount = models.DecimalField(max_digits=18, decimal_places=2, default=0)
    discount_unit = models.CharField(
        max_length=10,
        choices=DiscountUnitChoices.choices,
        default=DiscountUnitChoices.AMOUNT,
    )
    total_price = models.DecimalField(max_digits=18, decimal_places=2, default=0)

    class Meta:
        abstract = True

    def as_priced_line(self) -> PricedLine:
        return PricedLine(
            price=self.price,
            quantity=self.quantity,
            discount=self.discount,
            discount_unit=self.discount_unit,
        )


# ══════════════════════════════════════════════════════════════
# PARTIES
# ══════════════════════════════════════════════════════════════

class Customer(models.Model):
    code = models.CharField(max_length=32, unique=True)
    name = models.CharField(max_length=255)
    address = models.TextField(blank=True, default="")
    phone = models.CharField(max_length=32, blank=True, default="")
    email = models.CharField(max_length=255, blank=True, default="")
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = "tradeflow_customers"
        ordering = ["code"]

    def __str__(self) -> str:
        return f"{self.code} {self.name}"


# ══════════════════════════════════════════════════════════════
# ORDER
# ══════════════════════════════════════════════════════════════

class Order(PricedDocument):
    code = models.CharField(max_length=32, unique=True)
    customer = models.ForeignKey(Customer, on_delete=models.PROTECT, related_name="orders")
    sales_actor_id = models.CharField(max_length=255)
    status = models.CharField(
        max_length=24,
        choices=OrderStatus.choices,
        default=OrderStatus.NEW,
    )
    order_date = models.DateTimeField()
    due_date = models.DateField(null=True, blank=True)
    payment_deadline = models.DateField(null=True, blank=True)
    delivery_address = models.TextField(blank=True, default="")
    notes = models.TextField(blank=True, default="")
    requires_confirmation = models.BooleanField(default=False)
    confirmed_by = models.CharField(max_length=255, blank=True, default="")
    confirmed_at = models.DateTimeField(null=True, blank=True)
    cancel_reason = models.TextField(blank=True, default="")

    class Meta:
        db_table = "tradeflow_orders"
        ordering = ["order_date", "id"]
        indexes = [
            models.Index(fields=["status", "order_date"], name="idx_order_status_date"),
        ]

    def __str__(self) -> str:
        return f"{self.code} ({self.status})"


class OrderItem(PricedItem):
    order = models.ForeignKey(Order, on_delete=models.CASCADE, related_name="items")

    class Meta:
        db_table = "tradeflow_order_items"
        ordering = ["id"]


# ══════════════════════════════════════════════════════════════
# PURCHASE ORDER
# ══════════════════════════════════════════════════════════════

class PurchaseOrder(PricedDocument):
    code = models.CharField(max_length=32, unique=True)
    order = models.OneToOneField(
        Order,
        on_delete=models.PROTECT,
        related_name="purchase_order",
        null=True,
        blank=True,
    )
    customer = models.ForeignKey(
        Customer, on_delete=models.PROTECT, related_name="purchase_orders",
    )
    creator_id = models.CharField(max_length=255)
    status = models.CharField(
        max_length=24,
        choices=PurchaseOrderStatus.choices,
        default=PurchaseOrderStatus.PENDING,
    )
    po_date = models.DateTimeField()
    deadline = models.DateField(null=True, blank=True)
    payment_deadline = models.DateField(null=True, blank=True)
    notes = models.TextField(blank=True, default="")
    cancel_reason = models.TextField(blank=True, default="")

    class Meta:
        db_table = "tradeflow_purchase_orders"
        ordering = ["po_date", "id"]

    def __str__(self) -> str:
        return f"{self.code} ({self.status})"


class PurchaseOrderItem(PricedItem):
    purchase_order = models.ForeignKey(
        PurchaseOrder, on_delete=models.CASCADE, related_name="items",
    )

    class Meta:
        db_table = "tradeflow_purchase_order_items"
        ordering = ["id"]


# ══════════════════════════════════════════════════════════════
# INVOICE
# ══════════════════════════════════════════════════════════════

class Invoice(PricedDocument):
    code = models.CharField(max_length=32, unique=True)
    customer = models.ForeignKey(Customer, on_delete=models.PROTECT, related_name="invoices")
    purchase_order = models.OneToOneField(
        PurchaseOrder,
        on_delete=models.PROTECT,
        related_name="invoice",
        null=True,
        blank=True,
    )
    creator_id = models.CharField(max_length=255)
    status = models.CharField(
        max_length=16,
        choices=InvoiceStatus.choices,
        default=InvoiceStatus.DRAFT,
    )
    payment_status = models.CharField(
        max_length=16,
        choices=InvoicePaymentStatus.choices,
        default=InvoicePaymentStatus.UNPAID,
    )
    preparation_status = models.CharField(
        max_length=24,
        choices=PreparationStatus.choices,
        default=PreparationStatus.WAITING_PREPARATION,
    )
    invoice_date = models.DateTimeField()
    due_date = models.DateField(null=True, blank=True)
    delivery_address = models.TextField(blank=True, default="")
    notes = models.TextField(blank=True, default="")
    cancel_reason = models.TextField(blank=True, default="")
    paid_amount = models.DecimalField(max_digits=18, decimal_places=2, default=0)
    remaining_amount = models.DecimalField(max_digits=18, decimal_places=2, default=0)

    class Meta:
        db_table = "tradeflow_invoices"
        ordering = ["invoice_date", "id"]
        indexes = [
            models.Index(fields=["status", "due_date"], name="idx_invoice_status_due"),
        ]

    def __str__(self) -> str:
        return f"{self.code} ({self.status}/{self.payment_status}/{self.preparation_status})"


class InvoiceItem(PricedItem):
    invoice = models.ForeignKey(Invoice, on_delete=models.CASCADE, related_name="items")

    class Meta:
        db_table = "tradeflow_invoice_items"
        ordering = ["id"]


# ══════════════════════════════════════════════════════════════
# DELIVERY NOTE
# ══════════════════════════════════════════════════════════════

class DeliveryNote(models.Model):
    code = models.CharField(max_length=32, unique=True)
    invoice = models.ForeignKey(
        Invoice, on_delete=models.PROTECT, related_name="delivery_notes",
    )
    creator_id = models.CharField(max_length=255)
    status = models.CharField(
        max_length=16,
        choices=DeliveryStatus.choices,
        default=DeliveryStatus.PENDING,
    )
    driver_name = models.CharField(max_length=255, blank=True, default="")
    vehicle_number = models.CharField(max_length=32, blank=True, default="")
    delivery_address = models.TextField(blank=True, default="")
    delivery_date = models.DateField(null=True, blank=True)
    delivered_at = models.DateTimeField(null=True, blank=True)
    notes = models.TextField(blank=True, default="")
    cancel_reason = models.TextField(blank=True, default="")
    version = models.PositiveIntegerField(default=0)
    created_at = models.DateTimeField()
    updated_at = models.DateTimeField()

    class Meta:
        db_table = "tradeflow_delivery_notes"
        ordering = ["created_at", "id"]
        constraints = [
            models.UniqueConstraint(
                fields=["invoice"],
                condition=~models.Q(status="CANCELLED"),
                name="uq_live_delivery_note_per_invoice",
            ),
        ]

    def __str__(self) -> str:
        return f"{self.code} ({self.status})"


class DeliveryNoteItem(models.Model):
    delivery_note = models.ForeignKey(
        DeliveryNote, on_delete=models.CASCADE, related_name="items",
    )
    invoice_item = models.ForeignKey(
        InvoiceItem,
        on_delete=models.PROTECT,
        related_name="delivery_items",
        null=True,
        blank=True,
    )
    product = models.ForeignKey(
        "inventory.Product",
        on_delete=models.PROTECT,
        related_name="+",
    )
    quantity = models.PositiveIntegerField()
    delivered_qty = models.PositiveIntegerField(default=0)

    class Meta:
        db_table = "tradeflow_delivery_note_items"
        ordering = ["id"]

    @property
    def outstanding_qty(self) -> int:
        return self.quantity - self.delivered_qty


# ══════════════════════════════════════════════════════════════
# PAYMENT
# ══════════════════════════════════════════════════════════════

class Payment(models.Model):
    code = models.CharField(max_length=32, unique=True)
    invoice = models.ForeignKey(Invoice, on_delete=models.PROTECT, related_name="payments")
    amount = models.DecimalField(max_digits=18, decimal_places=2)
    method = models.CharField(max_length=16, choices=PaymentMethod.choices)
    status = models.CharField(
        max_length=10,
        choices=PaymentStatus.choices,
        default=PaymentStatus.PENDING,
    )
    payment_date = models.DateTimeField()
    reference = models.CharField(max_length=255, blank=True, default="")
    notes = models.TextField(blank=True, default="")
    actor_id = models.CharField(max_length=255)
    idempotency_key = models.CharField(max_length=255, null=True, blank=True)
    cleared_at = models.DateTimeField(null=True, blank=True)
    version = models.PositiveIntegerField(default=0)
    created_at = models.DateTimeField()
    updated_at = models.DateTimeField()

    class Meta:
        db_table = "tradeflow_payments"
        ordering = ["payment_date", "id"]
        constraints = [
            models.UniqueConstraint(
                fields=["invoice", "idempotency_key"],
                name="uq_payment_idempotency_key",
            ),
        ]

    def __str__(self) -> str:
        return f"{self.code} {self.amount} ({self.status})"

