"""
Tradeflow Sales Engine
======================
Orders, purchase orders, invoices, delivery notes and payments, and
the workflow service that moves them through their states.
"""
