"""
Tradeflow Documents
===================
Business code numbering for orders, purchase orders, invoices,
delivery notes, payments and products. See core.documents.numbering.
"""
