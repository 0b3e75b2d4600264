from django.db import migrations, models


class Migration(migrations.Migration):
    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name="Product",
            fields=[
                (
                    "id",
                    models.BigAutoField(
                        auto_created=True,
                        primary_key=True,
                        serialize=False,
                        verbose_name="ID",
                    ),
                ),
                ("code", models.CharField(max_length=32, unique=True)),
                ("name", models.CharField(max_length=255)),
                ("description", models.TextField(blank=True, default="")),
                ("unit", models.CharField(default="pcs", max_length=32)),
                ("price", models.DecimalField(decimal_places=2, max_digits=18)),
                (
                    "cost",
                    models.DecimalField(decimal_places=2, default=0, max_digits=18),
                ),
                ("current_stock", models.PositiveIntegerField(default=0)),
                ("minimum_stock", models.PositiveIntegerField(default=0)),
                ("is_active", models.BooleanField(default=True)),
                ("version", models.PositiveIntegerField(default=0)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
            ],
            options={
                "db_table": "tradeflow_products",
                "ordering": ["code"],
                "indexes": [
                    models.Index(
                        fields=["is_active", "current_stock"],
                        name="idx_product_active_stock",
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name="StockMovement",
            fields=[
                (
                    "id",
                    models.BigAutoField(
                        auto_created=True,
                        primary_key=True,
                        serialize=False,
                        verbose_name="ID",
                    ),
                ),
                (
                    "movement_type",
                    models.CharField(
                        choices=[
                            ("PRODUCTION_IN", "Production In"),
                            ("SALES_OUT", "Sales Out"),
                            ("RETURN_IN", "Return In"),
                            ("ADJUSTMENT", "Adjustment"),
                        ],
                        max_length=20,
                    ),
                ),
                (
                    "direction",
                    models.CharField(
                        choices=[("IN", "In"), ("OUT", "Out")],
                        max_length=3,
                    ),
                ),
                ("quantity", models.PositiveIntegerField()),
                ("requested_quantity", models.PositiveIntegerField()),
                ("previous_stock", models.PositiveIntegerField()),
                ("new_stock", models.PositiveIntegerField()),
                ("reference", models.CharField(blank=True, default="", max_length=64)),
                ("notes", models.TextField(blank=True, default="")),
                ("actor_id", models.CharField(max_length=255)),
                (
                    "idempotency_key",
                    models.CharField(
                        blank=True,
                        max_length=255,
                        null=True,
                        unique=True,
                    ),
                ),
                ("occurred_at", models.DateTimeField()),
                (
                    "product",
                    models.ForeignKey(
                        on_delete=models.deletion.PROTECT,
                        related_name="movements",
                        to="inventory.product",
                    ),
                ),
            ],
            options={
                "db_table": "tradeflow_stock_movements",
                "ordering": ["occurred_at", "id"],
                "indexes": [
                    models.Index(
                        fields=["product", "occurred_at"],
                        name="idx_movement_product_time",
                    ),
                    models.Index(fields=["reference"], name="idx_movement_reference"),
                ],
            },
        ),
    ]
