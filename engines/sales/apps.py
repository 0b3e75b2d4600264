"""
Tradeflow Sales Engine — App Configuration
============================================
Orders, purchase orders, invoices, delivery notes and payments.
"""

from django.apps import AppConfig


class SalesConfig(AppConfig):
    default_auto_field = "django.db.models.BigAutoField"
    name = "engines.sales"
    label = "sales"
    verbose_name = "Tradeflow Sales"
