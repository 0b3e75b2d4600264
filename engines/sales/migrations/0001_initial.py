from django.db import migrations, models

DISCOUNT_UNIT_CHOICES = [("AMOUNT", "Amount"), ("PERCENTAGE", "Percentage")]


def _id():
    return (
        "id",
        models.BigAutoField(
            auto_created=True,
            primary_key=True,
            serialize=False,
            verbose_name="ID",
        ),
    )


def _priced_document_fields():
    return [
        ("discount", models.DecimalField(decimal_places=2, default=0, max_digits=18)),
        (
            "discount_unit",
            models.CharField(
                choices=DISCOUNT_UNIT_CHOICES,
                default="AMOUNT",
                max_length=10,
            ),
        ),
        ("tax_percentage", models.DecimalField(decimal_places=2, default=0, max_digits=5)),
        ("shipping_cost", models.DecimalField(decimal_places=2, default=0, max_digits=18)),
        ("subtotal", models.DecimalField(decimal_places=2, default=0, max_digits=18)),
        ("discount_amount", models.DecimalField(decimal_places=2, default=0, max_digits=18)),
        ("tax_amount", models.DecimalField(decimal_places=2, default=0, max_digits=18)),
        ("total_amount", models.DecimalField(decimal_places=2, default=0, max_digits=18)),
        ("version", models.PositiveIntegerField(default=0)),
        ("created_at", models.DateTimeField()),
        ("updated_at", models.DateTimeField()),
    ]


def _priced_item_fields():
    return [
        ("quantity", models.PositiveIntegerField()),
        ("price", models.DecimalField(decimal_places=2, max_digits=18)),
        ("discount", models.DecimalField(decimal_places=2, default=0, max_digits=18)),
        (
            "discount_unit",
            models.CharField(
                choices=DISCOUNT_UNIT_CHOICES,
                default="AMOUNT",
                max_length=10,
            ),
        ),
        ("total_price", models.DecimalField(decimal_places=2, default=0, max_digits=18)),
        (
            "product",
            models.ForeignKey(
                on_delete=models.deletion.PROTECT,
                related_name="+",
                to="inventory.product",
            ),
        ),
    ]


class Migration(migrations.Migration):
    initial = True

    dependencies = [
        ("inventory", "0001_initial"),
    ]

    operations = [
        migrations.CreateModel(
            name="Customer",
            fields=[
                _id(),
                ("code", models.CharField(max_length=32, unique=True)),
                ("name", models.CharField(max_length=255)),
                ("address", models.TextField(blank=True, default="")),
                ("phone", models.CharField(blank=True, default="", max_length=32)),
                ("email", models.CharField(blank=True, default="", max_length=255)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
            ],
            options={
                "db_table": "tradeflow_customers",
                "ordering": ["code"],
            },
        ),
        migrations.CreateModel(
            name="Order",
            fields=[
                _id(),
                *_priced_document_fields(),
                ("code", models.CharField(max_length=32, unique=True)),
                ("sales_actor_id", models.CharField(max_length=255)),
                (
                    "status",
                    models.CharField(
                        choices=[
                            ("NEW", "New"),
                            ("PENDING_CONFIRMATION", "Pending Confirmation"),
                            ("PROCESSING", "Processing"),
                            ("COMPLETED", "Completed"),
                            ("CANCELLED", "Cancelled"),
                        ],
                        default="NEW",
                        max_length=24,
                    ),
                ),
                ("order_date", models.DateTimeField()),
                ("due_date", models.DateField(blank=True, null=True)),
                ("payment_deadline", models.DateField(blank=True, null=True)),
                ("delivery_address", models.TextField(blank=True, default="")),
                ("notes", models.TextField(blank=True, default="")),
                ("requires_confirmation", models.BooleanField(default=False)),
                ("confirmed_by", models.CharField(blank=True, default="", max_length=255)),
                ("confirmed_at", models.DateTimeField(blank=True, null=True)),
                ("cancel_reason", models.TextField(blank=True, default="")),
                (
                    "customer",
                    models.ForeignKey(
                        on_delete=models.deletion.PROTECT,
                        related_name="orders",
                        to="sales.customer",
                    ),
                ),
            ],
            options={
                "db_table": "tradeflow_orders",
                "ordering": ["order_date", "id"],
                "indexes": [
                    models.Index(
                        fields=["status", "order_date"],
                        name="idx_order_status_date",
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name="OrderItem",
            fields=[
                _id(),
                *_priced_item_fields(),
                (
                    "order",
                    models.ForeignKey(
                        on_delete=models.deletion.CASCADE,
                        related_name="items",
                        to="sales.order",
                    ),
                ),
            ],
            options={
                "db_table": "tradeflow_order_items",
                "ordering": ["id"],
            },
        ),
        migrations.CreateModel(
            name="PurchaseOrder",
            fields=[
                _id(),
                *_priced_document_fields(),
                ("code", models.CharField(max_length=32, unique=True)),
                ("creator_id", models.CharField(max_length=255)),
                (
                    "status",
                    models.CharField(
                        choices=[
                            ("PENDING", "Pending"),
                            ("PROCESSING", "Processing"),
                            ("READY_FOR_DELIVERY", "Ready for Delivery"),
                            ("COMPLETED", "Completed"),
                            ("CANCELLED", "Cancelled"),
                        ],
                        default="PENDING",
                        max_length=24,
                    ),
                ),
                ("po_date", models.DateTimeField()),
                ("deadline", models.DateField(blank=True, null=True)),
                ("payment_deadline", models.DateField(blank=True, null=True)),
                ("notes", models.TextField(blank=True, default="")),
                ("cancel_reason", models.TextField(blank=True, default="")),
                (
                    "order",
                    models.OneToOneField(
                        blank=True,
                        null=True,
                        on_delete=models.deletion.PROTECT,
                        related_name="purchase_order",
                        to="sales.order",
                    ),
                ),
                (
                    "customer",
                    models.ForeignKey(
                        on_delete=models.deletion.PROTECT,
                        related_name="purchase_orders",
                        to="sales.customer",
                    ),
                ),
            ],
            options={
                "db_table": "tradeflow_purchase_orders",
                "ordering": ["po_date", "id"],
            },
        ),
        migrations.CreateModel(
            name="PurchaseOrderItem",
            fields=[
                _id(),
                *_priced_item_fields(),
                (
                    "purchase_order",
                    models.ForeignKey(
                        on_delete=models.deletion.CASCADE,
                        related_name="items",
                        to="sales.purchaseorder",
                    ),
                ),
            ],
            options={
                "db_table": "tradeflow_purchase_order_items",
                "ordering": ["id"],
            },
        ),
        migrations.CreateModel(
            name="Invoice",
            fields=[
                _id(),
                *_priced_document_fields(),
                ("code", models.CharField(max_length=32, unique=True)),
                ("creator_id", models.CharField(max_length=255)),
                (
                    "status",
                    models.CharField(
                        choices=[
                            ("DRAFT", "Draft"),
                            ("SENT", "Sent"),
                            ("PAID", "Paid"),
                            ("OVERDUE", "Overdue"),
                            ("CANCELLED", "Cancelled"),
                        ],
                        default="DRAFT",
                        max_length=16,
                    ),
                ),
                (
                    "payment_status",
                    models.CharField(
                        choices=[
                            ("UNPAID", "Unpaid"),
                            ("PARTIALLY_PAID", "Partially Paid"),
                            ("PAID", "Paid"),
                        ],
                        default="UNPAID",
                        max_length=16,
                    ),
                ),
                (
                    "preparation_status",
                    models.CharField(
                        choices=[
                            ("WAITING_PREPARATION", "Waiting Preparation"),
                            ("PREPARING", "Preparing"),
                            ("READY_FOR_DELIVERY", "Ready for Delivery"),
                            ("CANCELLED_PREPARATION", "Cancelled Preparation"),
                        ],
                        default="WAITING_PREPARATION",
                        max_length=24,
                    ),
                ),
                ("invoice_date", models.DateTimeField()),
                ("due_date", models.DateField(blank=True, null=True)),
                ("delivery_address", models.TextField(blank=True, default="")),
                ("notes", models.TextField(blank=True, default="")),
                ("cancel_reason", models.TextField(blank=True, default="")),
                ("paid_amount", models.DecimalField(decimal_places=2, default=0, max_digits=18)),
                (
                    "remaining_amount",
                    models.DecimalField(decimal_places=2, default=0, max_digits=18),
                ),
                (
                    "customer",
                    models.ForeignKey(
                        on_delete=models.deletion.PROTECT,
                        related_name="invoices",
                        to="sales.customer",
                    ),
                ),
                (
                    "purchase_order",
                    models.OneToOneField(
                        blank=True,
                        null=True,
                        on_delete=models.deletion.PROTECT,
                        related_name="invoice",
                        to="sales.purchaseorder",
                    ),
                ),
            ],
            options={
                "db_table": "tradeflow_invoices",
                "ordering": ["invoice_date", "id"],
                "indexes": [
                    models.Index(
                        fields=["status", "due_date"],
                        name="idx_invoice_status_due",
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name="InvoiceItem",
            fields=[
                _id(),
                *_priced_item_fields(),
                (
                    "invoice",
                    models.ForeignKey(
                        on_delete=models.deletion.CASCADE,
                        related_name="items",
                        to="sales.invoice",
                    ),
                ),
            ],
            options={
                "db_table": "tradeflow_invoice_items",
                "ordering": ["id"],
            },
        ),
        migrations.CreateModel(
            name="DeliveryNote",
            fields=[
                _id(),
                ("code", models.CharField(max_length=32, unique=True)),
                ("creator_id", models.CharField(max_length=255)),
                (
                    "status",
                    models.CharField(
                        choices=[
                            ("PENDING", "Pending"),
                            ("IN_TRANSIT", "In Transit"),
                            ("DELIVERED", "Delivered"),
                            ("CANCELLED", "Cancelled"),
                        ],
                        default="PENDING",
                        max_length=16,
                    ),
                ),
                ("driver_name", models.CharField(blank=True, default="", max_length=255)),
                ("vehicle_number", models.CharField(blank=True, default="", max_length=32)),
                ("delivery_address", models.TextField(blank=True, default="")),
                ("delivery_date", models.DateField(blank=True, null=True)),
                ("delivered_at", models.DateTimeField(blank=True, null=True)),
                ("notes", models.TextField(blank=True, default="")),
                ("cancel_reason", models.TextField(blank=True, default="")),
                ("version", models.PositiveIntegerField(default=0)),
                ("created_at", models.DateTimeField()),
                ("updated_at", models.DateTimeField()),
                (
                    "invoice",
                    models.ForeignKey(
                        on_delete=models.deletion.PROTECT,
                        related_name="delivery_notes",
                        to="sales.invoice",
                    ),
                ),
            ],
            options={
                "db_table": "tradeflow_delivery_notes",
                "ordering": ["created_at", "id"],
                "constraints": [
                    models.UniqueConstraint(
                        condition=models.Q(("status", "CANCELLED"), _negated=True),
                        fields=("invoice",),
                        name="uq_live_delivery_note_per_invoice",
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name="DeliveryNoteItem",
            fields=[
                _id(),
                ("quantity", models.PositiveIntegerField()),
                ("delivered_qty", models.PositiveIntegerField(default=0)),
                (
                    "delivery_note",
                    models.ForeignKey(
                        on_delete=models.deletion.CASCADE,
                        related_name="items",
                        to="sales.deliverynote",
                    ),
                ),
                (
                    "invoice_item",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=models.deletion.PROTECT,
                        related_name="delivery_items",
                        to="sales.invoiceitem",
                    ),
                ),
                (
                    "product",
                    models.ForeignKey(
                        on_delete=models.deletion.PROTECT,
                        related_name="+",
                        to="inventory.product",
                    ),
                ),
            ],
            options={
                "db_table": "tradeflow_delivery_note_items",
                "ordering": ["id"],
            },
        ),
        migrations.CreateModel(
            name="Payment",
            fields=[
                _id(),
                ("code", models.CharField(max_length=32, unique=True)),
                ("amount", models.DecimalField(decimal_places=2, max_digits=18)),
                (
                    "method",
                    models.CharField(
                        choices=[
                            ("CASH", "Cash"),
                            ("TRANSFER", "Bank Transfer"),
                            ("CHECK", "Check"),
                            ("CREDIT_CARD", "Credit Card"),
                        ],
                        max_length=16,
                    ),
                ),
                (
                    "status",
                    models.CharField(
                        choices=[
                            ("PENDING", "Pending"),
                            ("CLEARED", "Cleared"),
                            ("CANCELED", "Canceled"),
                        ],
                        default="PENDING",
                        max_length=10,
                    ),
                ),
                ("payment_date", models.DateTimeField()),
                ("reference", models.CharField(blank=True, default="", max_length=255)),
                ("notes", models.TextField(blank=True, default="")),
                ("actor_id", models.CharField(max_length=255)),
                ("idempotency_key", models.CharField(blank=True, max_length=255, null=True)),
                ("cleared_at", models.DateTimeField(blank=True, null=True)),
                ("version", models.PositiveIntegerField(default=0)),
                ("created_at", models.DateTimeField()),
                ("updated_at", models.DateTimeField()),
                (
                    "invoice",
                    models.ForeignKey(
                        on_delete=models.deletion.PROTECT,
                        related_name="payments",
                        to="sales.invoice",
                    ),
                ),
            ],
            options={
                "db_table": "tradeflow_payments",
                "ordering": ["payment_date", "id"],
                "constraints": [
                    models.UniqueConstraint(
                        fields=("invoice", "idempotency_key"),
                        name="uq_payment_idempotency_key",
                    ),
                ],
            },
        ),
    ]
