"""
Tradeflow Numbering Store - App Configuration
===============================================
Persistent per-month code sequences.
"""

from django.apps import AppConfig


class CoreNumberingStoreConfig(AppConfig):
    default_auto_field = "django.db.models.BigAutoField"
    name = "core.numbering_store"
    label = "core_numbering_store"
    verbose_name = "Tradeflow Numbering Store"
