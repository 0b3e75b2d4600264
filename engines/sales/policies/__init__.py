"""
Tradeflow Sales Engine — Policies
===================================
Consistency checks for the document chain. Each policy returns a
RejectionReason or None; the workflow service raises on a reason.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Optional

from core.commands.rejection import ReasonCode, RejectionReason
from engines.sales.models import (
    DeliveryStatus,
    InvoicePaymentStatus,
    InvoiceStatus,
    OrderStatus,
    PreparationStatus,
    PurchaseOrderStatus,
)

EDITABLE_ORDER_STATES = frozenset({
    OrderStatus.NEW.value,
    OrderStatus.PENDING_CONFIRMATION.value,
})
DERIVABLE_ORDER_STATES = frozenset({
    OrderStatus.NEW.value,
    OrderStatus.PROCESSING.value,
})
PAYABLE_INVOICE_STATES = frozenset({
    InvoiceStatus.SENT.value,
    InvoiceStatus.OVERDUE.value,
})


def active_product_policy(product) -> Optional[RejectionReason]:
    if not product.is_active:
        return RejectionReason(
            code=ReasonCode.INACTIVE_PRODUCT,
            message=f"Product {product.code} is inactive.",
            policy_name="active_product_policy",
        )
    return None


def order_editable_policy(order, has_purchase_order: bool) -> Optional[RejectionReason]:
    """Lines may change only before processing starts and before a PO copies them."""
    if order.status not in EDITABLE_ORDER_STATES:
        return RejectionReason(
            code=ReasonCode.NOT_EDITABLE,
            message=f"Order {order.code} is {order.status}; lines can no longer change.",
            policy_name="order_editable_policy",
        )
    if has_purchase_order:
        return RejectionReason(
            code=ReasonCode.NOT_EDITABLE,
            message=f"Order {order.code} already has a purchase order.",
            policy_name="order_editable_policy",
        )
    return None


def order_derivable_policy(order) -> Optional[RejectionReason]:
    """A purchase order is derived from a confirmed, live order."""
    if order.status == OrderStatus.CANCELLED:
        return RejectionReason(
            code=ReasonCode.DOCUMENT_CANCELLED,
            message=f"Order {order.code} is cancelled.",
            policy_name="order_derivable_policy",
        )
    if order.status not in DERIVABLE_ORDER_STATES:
        return RejectionReason(
            code=ReasonCode.DOCUMENT_TERMINAL
            if order.status == OrderStatus.COMPLETED
            else ReasonCode.INVALID_TRANSITION,
            message=(
                f"Order {order.code} is {order.status}; "
                f"a purchase order needs a NEW or PROCESSING order."
            ),
            policy_name="order_derivable_policy",
        )
    return None


def purchase_order_invoiceable_policy(purchase_order) -> Optional[RejectionReason]:
    if purchase_order.status == PurchaseOrderStatus.CANCELLED:
        return RejectionReason(
            code=ReasonCode.DOCUMENT_CANCELLED,
            message=f"Purchase order {purchase_order.code} is cancelled.",
            policy_name="purchase_order_invoiceable_policy",
        )
    return None


def invoice_not_cancelled_policy(invoice) -> Optional[RejectionReason]:
    if invoice.status == InvoiceStatus.CANCELLED:
        return RejectionReason(
            code=ReasonCode.DOCUMENT_CANCELLED,
            message=f"Invoice {invoice.code} is cancelled.",
            policy_name="invoice_not_cancelled_policy",
        )
    return None


def invoice_open_for_payment_policy(invoice) -> Optional[RejectionReason]:
    if invoice.status not in PAYABLE_INVOICE_STATES:
        return RejectionReason(
            code=ReasonCode.INVOICE_NOT_OPEN,
            message=(
                f"Invoice {invoice.code} is {invoice.status}; "
                f"payments are accepted only when SENT or OVERDUE."
            ),
            policy_name="invoice_open_for_payment_policy",
        )
    return None


def overpayment_policy(invoice, amount: Decimal) -> Optional[RejectionReason]:
    if amount > invoice.remaining_amount:
        return RejectionReason(
            code=ReasonCode.OVERPAYMENT,
            message=(
                f"Payment {amount} exceeds remaining amount "
                f"{invoice.remaining_amount} of invoice {invoice.code}."
            ),
            policy_name="overpayment_policy",
        )
    return None


def invoice_fully_paid_policy(invoice) -> Optional[RejectionReason]:
    if invoice.payment_status != InvoicePaymentStatus.PAID:
        return RejectionReason(
            code=ReasonCode.INVOICE_NOT_PAID,
            message=(
                f"Invoice {invoice.code} payment status is "
                f"{invoice.payment_status}, not PAID."
            ),
            policy_name="invoice_fully_paid_policy",
        )
    return None


def invoice_cancellable_policy(invoice, cleared_payments: int) -> Optional[RejectionReason]:
    if cleared_payments:
        return RejectionReason(
            code=ReasonCode.INVOICE_HAS_PAYMENTS,
            message=(
                f"Invoice {invoice.code} has {cleared_payments} cleared "
                f"payment(s) and cannot be cancelled."
            ),
            policy_name="invoice_cancellable_policy",
        )
    return None


def delivery_gate_policy(invoice) -> Optional[RejectionReason]:
    """A delivery note needs a live, prepared and fully paid invoice."""
    reason = invoice_not_cancelled_policy(invoice)
    if reason is not None:
        return reason
    if invoice.preparation_status != PreparationStatus.READY_FOR_DELIVERY:
        return RejectionReason(
            code=ReasonCode.INVOICE_NOT_READY,
            message=(
                f"Invoice {invoice.code} preparation is "
                f"{invoice.preparation_status}, not READY_FOR_DELIVERY."
            ),
            policy_name="delivery_gate_policy",
        )
    return invoice_fully_paid_policy(invoice)


def delivery_in_transit_policy(note) -> Optional[RejectionReason]:
    if note.status != DeliveryStatus.IN_TRANSIT:
        return RejectionReason(
            code=ReasonCode.NOT_EDITABLE,
            message=(
                f"Delivery note {note.code} is {note.status}; "
                f"items are delivered only while IN_TRANSIT."
            ),
            policy_name="delivery_in_transit_policy",
        )
    return None


def delivered_quantity_policy(item, target) -> Optional[RejectionReason]:
    """delivered_qty is cumulative: it only grows and never passes quantity."""
    if isinstance(target, bool) or not isinstance(target, int) or target < 0:
        return RejectionReason(
            code=ReasonCode.INVALID_DELIVERED_QUANTITY,
            message=f"Delivered quantity must be a non-negative integer, got {target!r}.",
            policy_name="delivered_quantity_policy",
        )
    if target > item.quantity:
        return RejectionReason(
            code=ReasonCode.INVALID_DELIVERED_QUANTITY,
            message=f"Delivered quantity {target} exceeds ordered quantity {item.quantity}.",
            policy_name="delivered_quantity_policy",
        )
    if target < item.delivered_qty:
        return RejectionReason(
            code=ReasonCode.INVALID_DELIVERED_QUANTITY,
            message=(
                f"Delivered quantity cannot go down "
                f"({item.delivered_qty} → {target})."
            ),
            policy_name="delivered_quantity_policy",
        )
    return None


def no_live_dependent_policy(document, dependent, dependent_label: str) -> Optional[RejectionReason]:
    """A document cannot be cancelled while a derived document is still live."""
    if dependent is None or dependent.status in ("CANCELLED", "CANCELED"):
        return None
    return RejectionReason(
        code=ReasonCode.NOT_EDITABLE,
        message=(
            f"{document.code} has a live {dependent_label} {dependent.code}; "
            f"cancel it first."
        ),
        policy_name="no_live_dependent_policy",
    )
