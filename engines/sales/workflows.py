"""
Tradeflow Sales Engine — Document State Machines
==================================================
One WorkflowDefinition per status axis. Every state of each axis is a
key in its transition table, so a missing state is a definition error
rather than a silent pass.

    Order               NEW → PENDING_CONFIRMATION → NEW (approved)
                        NEW | PENDING_CONFIRMATION → PROCESSING → COMPLETED
                        any non-terminal → CANCELLED
    PurchaseOrder       PENDING → PROCESSING → READY_FOR_DELIVERY → COMPLETED
    Invoice             DRAFT → SENT → PAID | OVERDUE → PAID
    Invoice preparation WAITING_PREPARATION → PREPARING → READY_FOR_DELIVERY
    DeliveryNote        PENDING → IN_TRANSIT → DELIVERED
    Payment             PENDING → CLEARED | CANCELED

The invoice payment axis has no transition table: it is derived from
the sum of CLEARED payments by derive_payment_status().
"""

from __future__ import annotations

from decimal import Decimal

from core.primitives.workflow import WorkflowDefinition
from engines.sales.models import (
    DeliveryStatus,
    InvoicePaymentStatus,
    InvoiceStatus,
    OrderStatus,
    PaymentStatus,
    PreparationStatus,
    PurchaseOrderStatus,
)


def _table(transitions: dict) -> dict:
    return {
        str(state): frozenset(str(target) for target in targets)
        for state, targets in transitions.items()
    }


ORDER_WORKFLOW = WorkflowDefinition(
    name="Order",
    initial_state=OrderStatus.NEW.value,
    terminal_states=frozenset({OrderStatus.COMPLETED.value, OrderStatus.CANCELLED.value}),
    transitions=_table({
        OrderStatus.NEW: {
            OrderStatus.PENDING_CONFIRMATION,
            OrderStatus.PROCESSING,
            OrderStatus.CANCELLED,
        },
        OrderStatus.PENDING_CONFIRMATION: {
            OrderStatus.NEW,
            OrderStatus.PROCESSING,
            OrderStatus.CANCELLED,
        },
        OrderStatus.PROCESSING: {OrderStatus.COMPLETED, OrderStatus.CANCELLED},
        OrderStatus.COMPLETED: set(),
        OrderStatus.CANCELLED: set(),
    }),
)

PURCHASE_ORDER_WORKFLOW = WorkflowDefinition(
    name="PurchaseOrder",
    initial_state=PurchaseOrderStatus.PENDING.value,
    terminal_states=frozenset({
        PurchaseOrderStatus.COMPLETED.value,
        PurchaseOrderStatus.CANCELLED.value,
    }),
    transitions=_table({
        PurchaseOrderStatus.PENDING: {
            PurchaseOrderStatus.PROCESSING,
            PurchaseOrderStatus.CANCELLED,
        },
        PurchaseOrderStatus.PROCESSING: {
            PurchaseOrderStatus.READY_FOR_DELIVERY,
            PurchaseOrderStatus.CANCELLED,
        },
        PurchaseOrderStatus.READY_FOR_DELIVERY: {
            PurchaseOrderStatus.COMPLETED,
            PurchaseOrderStatus.CANCELLED,
        },
        PurchaseOrderStatus.COMPLETED: set(),
        PurchaseOrderStatus.CANCELLED: set(),
    }),
)

INVOICE_WORKFLOW = WorkflowDefinition(
    name="Invoice",
    initial_state=InvoiceStatus.DRAFT.value,
    terminal_states=frozenset({InvoiceStatus.PAID.value, InvoiceStatus.CANCELLED.value}),
    transitions=_table({
        InvoiceStatus.DRAFT: {InvoiceStatus.SENT, InvoiceStatus.CANCELLED},
        InvoiceStatus.SENT: {
            InvoiceStatus.PAID,
            InvoiceStatus.OVERDUE,
            InvoiceStatus.CANCELLED,
        },
        InvoiceStatus.OVERDUE: {InvoiceStatus.PAID, InvoiceStatus.CANCELLED},
        InvoiceStatus.PAID: set(),
        InvoiceStatus.CANCELLED: set(),
    }),
)

PREPARATION_WORKFLOW = WorkflowDefinition(
    name="InvoicePreparation",
    initial_state=PreparationStatus.WAITING_PREPARATION.value,
    terminal_states=frozenset({
        PreparationStatus.READY_FOR_DELIVERY.value,
        PreparationStatus.CANCELLED_PREPARATION.value,
    }),
    transitions=_table({
        PreparationStatus.WAITING_PREPARATION: {
            PreparationStatus.PREPARING,
            PreparationStatus.CANCELLED_PREPARATION,
        },
        PreparationStatus.PREPARING: {
            PreparationStatus.READY_FOR_DELIVERY,
            PreparationStatus.CANCELLED_PREPARATION,
        },
        PreparationStatus.READY_FOR_DELIVERY: set(),
        PreparationStatus.CANCELLED_PREPARATION: set(),
    }),
)

DELIVERY_WORKFLOW = WorkflowDefinition(
    name="DeliveryNote",
    initial_state=DeliveryStatus.PENDING.value,
    terminal_states=frozenset({DeliveryStatus.DELIVERED.value, DeliveryStatus.CANCELLED.value}),
    transitions=_table({
        DeliveryStatus.PENDING: {DeliveryStatus.IN_TRANSIT, DeliveryStatus.CANCELLED},
        DeliveryStatus.IN_TRANSIT: {DeliveryStatus.DELIVERED, DeliveryStatus.CANCELLED},
        DeliveryStatus.DELIVERED: set(),
        DeliveryStatus.CANCELLED: set(),
    }),
)

PAYMENT_WORKFLOW = WorkflowDefinition(
    name="Payment",
    initial_state=PaymentStatus.PENDING.value,
    terminal_states=frozenset({PaymentStatus.CLEARED.value, PaymentStatus.CANCELED.value}),
    transitions=_table({
        PaymentStatus.PENDING: {PaymentStatus.CLEARED, PaymentStatus.CANCELED},
        PaymentStatus.CLEARED: set(),
        PaymentStatus.CANCELED: set(),
    }),
)


def derive_payment_status(paid_amount: Decimal, total_amount: Decimal) -> str:
    """UNPAID at zero, PAID once the total is covered, PARTIALLY_PAID between."""
    if paid_amount >= total_amount:
        return InvoicePaymentStatus.PAID
    if paid_amount <= 0:
        return InvoicePaymentStatus.UNPAID
    return InvoicePaymentStatus.PARTIALLY_PAID
