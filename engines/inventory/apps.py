"""
Tradeflow Inventory Engine — App Configuration
================================================
Products and the append-only stock ledger.
"""

from django.apps import AppConfig


class InventoryConfig(AppConfig):
    default_auto_field = "django.db.models.BigAutoField"
    name = "engines.inventory"
    label = "inventory"
    verbose_name = "Tradeflow Inventory"
