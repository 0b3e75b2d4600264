"""
Tradeflow Sales Engine — Read Serializers
===========================================
Plain-dict views of documents for forms, dashboards and API adapters.
Totals are always passed in freshly computed; stored totals are never
trusted on the read path.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Iterable, Optional

from core.primitives.pricing import DocumentTotals, line_total


def _value(choice) -> Optional[str]:
    return getattr(choice, "value", choice)


def _iso(value) -> Optional[str]:
    return value.isoformat() if value is not None else None


def serialize_lines(items: Iterable) -> list:
    return [
        {
            "id": item.pk,
            "product_id": item.product_id,
            "quantity": item.quantity,
            "price": str(item.price),
            "discount": str(item.discount),
            "discount_unit": _value(item.discount_unit),
            "total_price": str(
                line_total(item.price, item.quantity, item.discount, item.discount_unit)
            ),
        }
        for item in items
    ]


def _priced_header(document, totals: DocumentTotals) -> dict:
    return {
        "id": document.pk,
        "code": document.code,
        "customer_id": document.customer_id,
        "discount": str(document.discount),
        "discount_unit": _value(document.discount_unit),
        "tax_percentage": str(document.tax_percentage),
        "shipping_cost": str(document.shipping_cost),
        "totals": totals.to_dict(),
        "total_amount": str(totals.grand_total),
        "version": document.version,
    }


def serialize_order(order, items, totals: DocumentTotals) -> dict:
    data = _priced_header(order, totals)
    data.update({
        "status": _value(order.status),
        "sales_actor_id": order.sales_actor_id,
        "order_date": _iso(order.order_date),
        "due_date": _iso(order.due_date),
        "payment_deadline": _iso(order.payment_deadline),
        "delivery_address": order.delivery_address,
        "notes": order.notes,
        "requires_confirmation": order.requires_confirmation,
        "confirmed_by": order.confirmed_by,
        "confirmed_at": _iso(order.confirmed_at),
        "cancel_reason": order.cancel_reason,
        "items": serialize_lines(items),
    })
    return data


def serialize_purchase_order(purchase_order, items, totals: DocumentTotals) -> dict:
    data = _priced_header(purchase_order, totals)
    data.update({
        "status": _value(purchase_order.status),
        "order_id": purchase_order.order_id,
        "creator_id": purchase_order.creator_id,
        "po_date": _iso(purchase_order.po_date),
        "deadline": _iso(purchase_order.deadline),
        "payment_deadline": _iso(purchase_order.payment_deadline),
        "notes": purchase_order.notes,
        "cancel_reason": purchase_order.cancel_reason,
        "items": serialize_lines(items),
    })
    return data


def serialize_invoice(
    invoice,
    items,
    totals: DocumentTotals,
    paid_amount: Decimal,
    payment_status: str,
) -> dict:
    data = _priced_header(invoice, totals)
    data.update({
        "status": _value(invoice.status),
        "payment_status": _value(payment_status),
        "preparation_status": _value(invoice.preparation_status),
        "purchase_order_id": invoice.purchase_order_id,
        "creator_id": invoice.creator_id,
        "invoice_date": _iso(invoice.invoice_date),
        "due_date": _iso(invoice.due_date),
        "delivery_address": invoice.delivery_address,
        "notes": invoice.notes,
        "cancel_reason": invoice.cancel_reason,
        "paid_amount": str(paid_amount),
        "remaining_amount": str(totals.grand_total - paid_amount),
        "items": serialize_lines(items),
    })
    return data


def serialize_delivery_note(note, items) -> dict:
    return {
        "id": note.pk,
        "code": note.code,
        "invoice_id": note.invoice_id,
        "status": _value(note.status),
        "creator_id": note.creator_id,
        "driver_name": note.driver_name,
        "vehicle_number": note.vehicle_number,
        "delivery_address": note.delivery_address,
        "delivery_date": _iso(note.delivery_date),
        "delivered_at": _iso(note.delivered_at),
        "notes": note.notes,
        "cancel_reason": note.cancel_reason,
        "version": note.version,
        "items": [
            {
                "id": item.pk,
                "product_id": item.product_id,
                "invoice_item_id": item.invoice_item_id,
                "quantity": item.quantity,
                "delivered_qty": item.delivered_qty,
                "outstanding_qty": item.outstanding_qty,
            }
            for item in items
        ],
    }


def serialize_payment(payment) -> dict:
    return {
        "id": payment.pk,
        "code": payment.code,
        "invoice_id": payment.invoice_id,
        "amount": str(payment.amount),
        "method": _value(payment.method),
        "status": _value(payment.status),
        "payment_date": _iso(payment.payment_date),
        "reference": payment.reference,
        "notes": payment.notes,
        "actor_id": payment.actor_id,
        "idempotency_key": payment.idempotency_key,
        "cleared_at": _iso(payment.cleared_at),
        "version": payment.version,
    }
