"""
Tradeflow Inventory Engine
==========================
Products, the append-only Stock Ledger and the inventory service.
"""
