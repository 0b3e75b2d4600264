"""
Tradeflow Sales — Workflow Orchestrator Tests
===============================================
Order → PurchaseOrder → Invoice → DeliveryNote, payments against the
invoice, and the stock movements the delivery writes.
"""

from datetime import date
from decimal import Decimal

import pytest

from core.commands.errors import (
    ConcurrencyConflict,
    ConsistencyRejected,
    DocumentNotFound,
    InvalidTransition,
    ValidationRejected,
)
from core.commands.rejection import ReasonCode
from engines.inventory.ledger import OutboundPolicy, StockLedger
from engines.inventory.models import MovementType, Product, StockMovement
from engines.sales.commands import (
    CreateInvoiceRequest,
    CreateOrderRequest,
    LineInput,
    PricingTerms,
)
from engines.sales.models import (
    DeliveryStatus,
    Invoice,
    InvoicePaymentStatus,
    InvoiceStatus,
    Order,
    OrderStatus,
    PaymentMethod,
    PaymentStatus,
    PreparationStatus,
    PurchaseOrderStatus,
)
from engines.sales.repository import DjangoSalesRepository
from engines.sales.services import SalesWorkflowService

pytestmark = pytest.mark.django_db(transaction=True)


# ══════════════════════════════════════════════════════════════
# HELPERS
# ══════════════════════════════════════════════════════════════

def _order(sales, customer, product, actor, quantity=5, **kwargs):
    return sales.create_order(
        CreateOrderRequest(
            customer_id=customer.pk,
            lines=(LineInput(product_id=product.pk, quantity=quantity, discount=Decimal("500")),),
            **kwargs,
        ),
        actor,
    )


def _sent_invoice(sales, customer, product, actor, quantity=5):
    order = _order(sales, customer, product, actor, quantity=quantity)
    purchase_order = sales.derive_purchase_order(order.pk, actor).document
    invoice = sales.derive_invoice(purchase_order.pk, actor).document
    return sales.send_invoice(invoice.pk, actor)


def _paid_ready_invoice(sales, customer, product, actor, quantity=5):
    invoice = _sent_invoice(sales, customer, product, actor, quantity=quantity)
    sales.record_payment(invoice.pk, invoice.total_amount, PaymentMethod.TRANSFER, actor)
    sales.advance_preparation(invoice.pk, PreparationStatus.PREPARING, actor)
    return sales.advance_preparation(invoice.pk, PreparationStatus.READY_FOR_DELIVERY, actor)


def _stock(product) -> int:
    return Product.objects.get(pk=product.pk).current_stock


# ══════════════════════════════════════════════════════════════
# ORDERS
# ══════════════════════════════════════════════════════════════

class TestCreateOrder:
    def test_prices_lines_from_product_snapshot(self, sales, customer, product, actor):
        order = _order(sales, customer, product, actor)
        assert order.code == "ORD/03/2026/0001"
        assert order.status == OrderStatus.NEW
        assert order.total_amount == Decimal("62500.00")
        assert order.delivery_address == customer.address
        assert order.sales_actor_id == "sales-01"
        item = order.items.get()
        assert item.price == Decimal("13000.00")
        assert item.total_price == Decimal("62500.00")

    def test_header_terms(self, sales, customer, make_product, actor):
        product = make_product(code="PDK-050", price="50000")
        order = sales.create_order(
            CreateOrderRequest(
                customer_id=customer.pk,
                lines=(LineInput(product_id=product.pk, quantity=2),),
                terms=PricingTerms(
                    discount="10", discount_unit="PERCENTAGE",
                    tax_percentage="10", shipping_cost="5000",
                ),
            ),
            actor,
        )
        assert order.subtotal == Decimal("100000.00")
        assert order.discount_amount == Decimal("10000.00")
        assert order.tax_amount == Decimal("9000.00")
        assert order.total_amount == Decimal("104000.00")

    def test_inactive_product_rejected(self, sales, inventory, customer, product, actor):
        inventory.deactivate_product(product.pk)
        with pytest.raises(ConsistencyRejected) as exc:
            _order(sales, customer, product, actor)
        assert exc.value.code == ReasonCode.INACTIVE_PRODUCT
        assert Order.objects.count() == 0

    def test_unknown_customer(self, sales, product, actor):
        with pytest.raises(DocumentNotFound):
            sales.create_order(
                CreateOrderRequest(
                    customer_id=424242,
                    lines=(LineInput(product_id=product.pk, quantity=1),),
                ),
                actor,
            )

    def test_request_needs_lines(self, customer):
        with pytest.raises(ValidationRejected, match="at least one line"):
            CreateOrderRequest(customer_id=customer.pk, lines=())

    def test_discount_above_price_rejected(self, sales, customer, product, actor):
        with pytest.raises(ValidationRejected) as exc:
            sales.create_order(
                CreateOrderRequest(
                    customer_id=customer.pk,
                    lines=(LineInput(product_id=product.pk, quantity=1, discount="13000.01"),),
                ),
                actor,
            )
        assert exc.value.code == ReasonCode.DISCOUNT_EXCEEDS_PRICE


class TestOrderLifecycle:
    def test_update_items_recomputes_totals(self, sales, customer, product, actor):
        order = _order(sales, customer, product, actor)
        updated = sales.update_order_items(
            order.pk, [LineInput(product_id=product.pk, quantity=2)], actor,
        )
        assert updated.total_amount == Decimal("26000.00")
        assert updated.version == order.version + 1
        assert [item.quantity for item in updated.items.all()] == [2]

    def test_items_frozen_once_purchase_order_exists(self, sales, customer, product, actor):
        order = _order(sales, customer, product, actor)
        sales.derive_purchase_order(order.pk, actor)
        with pytest.raises(ConsistencyRejected) as exc:
            sales.update_order_items(order.pk, [LineInput(product_id=product.pk, quantity=1)], actor)
        assert exc.value.code == ReasonCode.NOT_EDITABLE

    def test_confirmation_gate(self, sales, customer, product, actor):
        order = _order(sales, customer, product, actor, requires_confirmation=True)
        assert order.status == OrderStatus.PENDING_CONFIRMATION
        with pytest.raises(ConsistencyRejected):
            sales.derive_purchase_order(order.pk, actor)

        approved = sales.confirm_order(order.pk, True, actor)
        assert approved.status == OrderStatus.NEW
        assert approved.confirmed_by == "sales-01"
        assert sales.derive_purchase_order(order.pk, actor).created

    def test_rejected_confirmation_cancels(self, sales, customer, product, actor):
        order = _order(sales, customer, product, actor, requires_confirmation=True)
        rejected = sales.confirm_order(order.pk, False, actor, notes="Credit limit")
        assert rejected.status == OrderStatus.CANCELLED
        assert rejected.cancel_reason == "Credit limit"

    def test_confirm_requires_pending_order(self, sales, customer, product, actor):
        order = _order(sales, customer, product, actor)
        with pytest.raises(InvalidTransition):
            sales.confirm_order(order.pk, True, actor)

    def test_advance_and_complete(self, sales, customer, product, actor):
        order = _order(sales, customer, product, actor)
        sales.advance_order(order.pk, OrderStatus.PROCESSING, actor)
        done = sales.advance_order(order.pk, OrderStatus.COMPLETED, actor)
        assert done.status == OrderStatus.COMPLETED
        with pytest.raises(InvalidTransition):
            sales.advance_order(order.pk, OrderStatus.PROCESSING, actor)

    def test_cannot_cancel_with_live_purchase_order(self, sales, customer, product, actor):
        order = _order(sales, customer, product, actor)
        purchase_order = sales.derive_purchase_order(order.pk, actor).document
        with pytest.raises(ConsistencyRejected, match="cancel it first"):
            sales.cancel_order(order.pk, actor)

        sales.cancel_purchase_order(purchase_order.pk, actor)
        assert sales.cancel_order(order.pk, actor, reason="Customer withdrew").status == \
            OrderStatus.CANCELLED


# ══════════════════════════════════════════════════════════════
# DERIVATIONS
# ══════════════════════════════════════════════════════════════

class TestDerivations:
    def test_purchase_order_copies_order(self, sales, customer, product, actor):
        order = _order(sales, customer, product, actor)
        result = sales.derive_purchase_order(order.pk, actor, tax_percentage="11")
        purchase_order = result.document
        assert result.created
        assert purchase_order.code == "DPO/03/2026/0001"
        assert purchase_order.status == PurchaseOrderStatus.PENDING
        assert purchase_order.order_id == order.pk
        assert purchase_order.tax_amount == Decimal("6875.00")
        assert purchase_order.total_amount == Decimal("69375.00")
        assert purchase_order.items.count() == 1

    def test_purchase_order_derivation_is_idempotent(self, sales, customer, product, actor):
        order = _order(sales, customer, product, actor)
        first = sales.derive_purchase_order(order.pk, actor)
        again = sales.derive_purchase_order(order.pk, actor)
        assert not again.created
        assert again.document.pk == first.document.pk

    def test_cancelled_order_cannot_be_derived(self, sales, customer, product, actor):
        order = _order(sales, customer, product, actor)
        sales.cancel_order(order.pk, actor)
        with pytest.raises(ConsistencyRejected) as exc:
            sales.derive_purchase_order(order.pk, actor)
        assert exc.value.code == ReasonCode.DOCUMENT_CANCELLED

    def test_invoice_copies_purchase_order(self, sales, customer, product, actor):
        order = _order(sales, customer, product, actor)
        purchase_order = sales.derive_purchase_order(order.pk, actor).document
        invoice = sales.derive_invoice(purchase_order.pk, actor).document
        assert invoice.code == "INV/03/2026/0001"
        assert invoice.status == InvoiceStatus.DRAFT
        assert invoice.payment_status == InvoicePaymentStatus.UNPAID
        assert invoice.preparation_status == PreparationStatus.WAITING_PREPARATION
        assert invoice.total_amount == purchase_order.total_amount
        assert invoice.remaining_amount == invoice.total_amount
        assert invoice.due_date == date(2026, 4, 9)
        assert invoice.delivery_address == order.delivery_address

    def test_invoice_derivation_is_idempotent(self, sales, customer, product, actor):
        order = _order(sales, customer, product, actor)
        purchase_order = sales.derive_purchase_order(order.pk, actor).document
        first = sales.derive_invoice(purchase_order.pk, actor)
        again = sales.derive_invoice(purchase_order.pk, actor)
        assert again.document.pk == first.document.pk
        assert Invoice.objects.count() == 1

    def test_cancelled_purchase_order_cannot_be_invoiced(self, sales, customer, product, actor):
        order = _order(sales, customer, product, actor)
        purchase_order = sales.derive_purchase_order(order.pk, actor).document
        sales.cancel_purchase_order(purchase_order.pk, actor)
        with pytest.raises(ConsistencyRejected) as exc:
            sales.derive_invoice(purchase_order.pk, actor)
        assert exc.value.code == ReasonCode.DOCUMENT_CANCELLED

    def test_direct_invoice(self, sales, customer, product, actor):
        invoice = sales.create_invoice(
            CreateInvoiceRequest(
                customer_id=customer.pk,
                lines=(LineInput(product_id=product.pk, quantity=3, price="12000"),),
                due_date=date(2026, 3, 31),
            ),
            actor,
        )
        assert invoice.purchase_order_id is None
        assert invoice.total_amount == Decimal("36000.00")
        assert invoice.due_date == date(2026, 3, 31)


# ══════════════════════════════════════════════════════════════
# PAYMENTS
# ══════════════════════════════════════════════════════════════

class TestPayments:
    def test_full_payment_marks_invoice_paid(self, sales, customer, make_product, actor):
        product = make_product(code="PDK-450", price="450000", opening_stock=10)
        order = sales.create_order(
            CreateOrderRequest(
                customer_id=customer.pk,
                lines=(LineInput(product_id=product.pk, quantity=5),),
                terms=PricingTerms(discount="10", discount_unit="PERCENTAGE"),
            ),
            actor,
        )
        purchase_order = sales.derive_purchase_order(order.pk, actor).document
        invoice = sales.derive_invoice(purchase_order.pk, actor).document
        sales.send_invoice(invoice.pk, actor)
        assert invoice.total_amount == Decimal("2025000.00")

        payment = sales.record_payment(
            invoice.pk, Decimal("2025000"), PaymentMethod.TRANSFER, actor,
        ).document
        assert payment.code == "PAY/03/2026/0001"

        invoice.refresh_from_db()
        assert invoice.payment_status == InvoicePaymentStatus.PAID
        assert invoice.paid_amount == Decimal("2025000.00")
        assert invoice.remaining_amount == Decimal("0.00")

    def test_partial_payments(self, sales, customer, product, actor):
        invoice = _sent_invoice(sales, customer, product, actor)
        sales.record_payment(invoice.pk, "20000", PaymentMethod.CASH, actor)
        invoice.refresh_from_db()
        assert invoice.payment_status == InvoicePaymentStatus.PARTIALLY_PAID
        assert invoice.remaining_amount == Decimal("42500.00")
        assert invoice.paid_amount + invoice.remaining_amount == invoice.total_amount

    def test_overpayment_rejected(self, sales, customer, product, actor):
        invoice = _sent_invoice(sales, customer, product, actor)
        with pytest.raises(ConsistencyRejected) as exc:
            sales.record_payment(invoice.pk, "62500.01", PaymentMethod.CASH, actor)
        assert exc.value.code == ReasonCode.OVERPAYMENT

    def test_draft_invoice_not_payable(self, sales, customer, product, actor):
        order = _order(sales, customer, product, actor)
        purchase_order = sales.derive_purchase_order(order.pk, actor).document
        invoice = sales.derive_invoice(purchase_order.pk, actor).document
        with pytest.raises(ConsistencyRejected) as exc:
            sales.record_payment(invoice.pk, "100", PaymentMethod.CASH, actor)
        assert exc.value.code == ReasonCode.INVOICE_NOT_OPEN

    @pytest.mark.parametrize("amount", ["0", "-5"])
    def test_amount_must_be_positive(self, sales, customer, product, actor, amount):
        invoice = _sent_invoice(sales, customer, product, actor)
        with pytest.raises(ValidationRejected) as exc:
            sales.record_payment(invoice.pk, amount, PaymentMethod.CASH, actor)
        assert exc.value.code == ReasonCode.INVALID_AMOUNT

    def test_unknown_method(self, sales, customer, product, actor):
        invoice = _sent_invoice(sales, customer, product, actor)
        with pytest.raises(ValidationRejected) as exc:
            sales.record_payment(invoice.pk, "100", "BARTER", actor)
        assert exc.value.code == ReasonCode.INVALID_PAYMENT_METHOD

    def test_idempotency_key(self, sales, customer, product, actor):
        invoice = _sent_invoice(sales, customer, product, actor)
        first = sales.record_payment(
            invoice.pk, "10000", PaymentMethod.CASH, actor, idempotency_key="till-7:0042",
        )
        again = sales.record_payment(
            invoice.pk, "10000", PaymentMethod.CASH, actor, idempotency_key="till-7:0042",
        )
        assert not again.created
        assert again.document.pk == first.document.pk
        invoice.refresh_from_db()
        assert invoice.paid_amount == Decimal("10000.00")

    def test_pending_payment_counts_once_cleared(self, sales, customer, product, actor):
        invoice = _sent_invoice(sales, customer, product, actor)
        payment = sales.record_payment(
            invoice.pk, "62500", PaymentMethod.CHECK, actor, status=PaymentStatus.PENDING,
        ).document
        invoice.refresh_from_db()
        assert invoice.payment_status == InvoicePaymentStatus.UNPAID

        cleared = sales.clear_payment(payment.pk, actor)
        assert cleared.status == PaymentStatus.CLEARED
        invoice.refresh_from_db()
        assert invoice.payment_status == InvoicePaymentStatus.PAID

    def test_cancel_pending_payment(self, sales, customer, product, actor):
        invoice = _sent_invoice(sales, customer, product, actor)
        payment = sales.record_payment(
            invoice.pk, "100", PaymentMethod.CHECK, actor, status=PaymentStatus.PENDING,
        ).document
        assert sales.cancel_payment(payment.pk, actor, reason="Bounced").status == \
            PaymentStatus.CANCELED
        with pytest.raises(InvalidTransition):
            sales.clear_payment(payment.pk, actor)

    def test_mark_paid_requires_full_payment(self, sales, customer, product, actor):
        invoice = _sent_invoice(sales, customer, product, actor)
        with pytest.raises(ConsistencyRejected) as exc:
            sales.mark_invoice_paid(invoice.pk, actor)
        assert exc.value.code == ReasonCode.INVOICE_NOT_PAID

        sales.record_payment(invoice.pk, "62500", PaymentMethod.CASH, actor)
        assert sales.mark_invoice_paid(invoice.pk, actor).status == InvoiceStatus.PAID


class TestInvoiceLifecycle:
    def test_overdue_sweep(self, sales, clock, customer, product, actor):
        invoice = _sent_invoice(sales, customer, product, actor)
        assert sales.mark_overdue_invoices(actor) == []

        clock.advance(days=31)
        overdue = sales.mark_overdue_invoices(actor)
        assert [i.pk for i in overdue] == [invoice.pk]
        assert overdue[0].status == InvoiceStatus.OVERDUE

        sales.record_payment(invoice.pk, "62500", PaymentMethod.CASH, actor)
        assert sales.mark_invoice_paid(invoice.pk, actor).status == InvoiceStatus.PAID

    def test_fully_paid_invoice_is_never_overdue(self, sales, customer, product, actor):
        invoice = _sent_invoice(sales, customer, product, actor)
        sales.record_payment(invoice.pk, "62500", PaymentMethod.CASH, actor)
        with pytest.raises(ConsistencyRejected):
            sales.mark_invoice_overdue(invoice.pk, actor)

    def test_overdue_sweep_skips_invoices_that_changed(
        self, ledger, numbering, clock, customer, product, actor,
    ):
        class ListsCancelledFirst(DjangoSalesRepository):
            def __init__(self, cancelled):
                self._cancelled = cancelled

            def sent_invoices_due_before(self, day):
                return [self._cancelled] + super().sent_invoices_due_before(day)

        plain = SalesWorkflowService(ledger=ledger, numbering=numbering, clock=clock)
        cancelled = _sent_invoice(plain, customer, product, actor)
        plain.cancel_invoice(cancelled.pk, actor, reason="Duplicate")
        invoice = _sent_invoice(plain, customer, product, actor)

        sales = SalesWorkflowService(
            repository=ListsCancelledFirst(cancelled),
            ledger=ledger, numbering=numbering, clock=clock, payment_term_days=30,
        )
        clock.advance(days=31)
        overdue = sales.mark_overdue_invoices(actor)
        assert [i.pk for i in overdue] == [invoice.pk]
        assert Invoice.objects.get(pk=cancelled.pk).status == InvoiceStatus.CANCELLED
        assert Invoice.objects.get(pk=invoice.pk).status == InvoiceStatus.OVERDUE

    def test_cancel_with_cleared_payment_rejected(self, sales, customer, product, actor):
        invoice = _sent_invoice(sales, customer, product, actor)
        sales.record_payment(invoice.pk, "100", PaymentMethod.CASH, actor)
        with pytest.raises(ConsistencyRejected) as exc:
            sales.cancel_invoice(invoice.pk, actor)
        assert exc.value.code == ReasonCode.INVOICE_HAS_PAYMENTS

    def test_cancel_voids_pending_payments(self, sales, customer, product, actor):
        invoice = _sent_invoice(sales, customer, product, actor)
        payment = sales.record_payment(
            invoice.pk, "100", PaymentMethod.CHECK, actor, status=PaymentStatus.PENDING,
        ).document
        cancelled = sales.cancel_invoice(invoice.pk, actor, reason="Duplicate")
        assert cancelled.status == InvoiceStatus.CANCELLED
        assert cancelled.preparation_status == PreparationStatus.CANCELLED_PREPARATION
        payment.refresh_from_db()
        assert payment.status == PaymentStatus.CANCELED

    def test_preparation_requires_live_invoice(self, sales, customer, product, actor):
        invoice = _sent_invoice(sales, customer, product, actor)
        sales.cancel_invoice(invoice.pk, actor)
        with pytest.raises(ConsistencyRejected) as exc:
            sales.advance_preparation(invoice.pk, PreparationStatus.PREPARING, actor)
        assert exc.value.code == ReasonCode.DOCUMENT_CANCELLED

    def test_preparation_cannot_skip_preparing(self, sales, customer, product, actor):
        invoice = _sent_invoice(sales, customer, product, actor)
        with pytest.raises(InvalidTransition):
            sales.advance_preparation(invoice.pk, PreparationStatus.READY_FOR_DELIVERY, actor)


# ══════════════════════════════════════════════════════════════
# DELIVERY
# ══════════════════════════════════════════════════════════════

class TestDeliveryGate:
    def test_requires_ready_preparation(self, sales, customer, product, actor):
        invoice = _sent_invoice(sales, customer, product, actor)
        sales.record_payment(invoice.pk, "62500", PaymentMethod.CASH, actor)
        with pytest.raises(ConsistencyRejected) as exc:
            sales.create_delivery_note(invoice.pk, actor)
        assert exc.value.code == ReasonCode.INVOICE_NOT_READY

    def test_requires_full_payment(self, sales, customer, product, actor):
        invoice = _sent_invoice(sales, customer, product, actor)
        sales.record_payment(invoice.pk, "60000", PaymentMethod.CASH, actor)
        sales.advance_preparation(invoice.pk, PreparationStatus.PREPARING, actor)
        sales.advance_preparation(invoice.pk, PreparationStatus.READY_FOR_DELIVERY, actor)
        with pytest.raises(ConsistencyRejected) as exc:
            sales.create_delivery_note(invoice.pk, actor)
        assert exc.value.code == ReasonCode.INVOICE_NOT_PAID

    def test_one_live_note_per_invoice(self, sales, customer, product, actor):
        invoice = _paid_ready_invoice(sales, customer, product, actor)
        first = sales.create_delivery_note(invoice.pk, actor, driver_name="Budi")
        again = sales.create_delivery_note(invoice.pk, actor)
        assert first.created and not again.created
        assert again.document.pk == first.document.pk

        sales.cancel_delivery(first.document.pk, actor, reason="Truck broke down")
        replacement = sales.create_delivery_note(invoice.pk, actor)
        assert replacement.created
        assert replacement.document.code == "SJN/03/2026/0002"


class TestDelivery:
    def test_full_chain_moves_stock_once_per_increase(self, sales, ledger, customer, product, actor):
        invoice = _paid_ready_invoice(sales, customer, product, actor)
        note = sales.create_delivery_note(invoice.pk, actor, vehicle_number="D 1234 AB").document
        assert note.code == "SJN/03/2026/0001"
        assert note.status == DeliveryStatus.PENDING
        assert note.delivery_address == invoice.delivery_address

        with pytest.raises(ConsistencyRejected):
            sales.mark_item_delivered(note.items.get().pk, 1, actor)

        sales.dispatch_delivery(note.pk, actor)
        item = note.items.get()

        first = sales.mark_item_delivered(item.pk, 2, actor)
        assert first.movement.quantity == 2
        repeat = sales.mark_item_delivered(item.pk, 2, actor)
        assert repeat.movement is None
        second = sales.mark_item_delivered(item.pk, 5, actor)
        assert second.movement.quantity == 3
        assert second.item.outstanding_qty == 0

        delivered = sales.complete_delivery(note.pk, actor)
        assert delivered.status == DeliveryStatus.DELIVERED
        assert delivered.delivered_at is not None

        outs = StockMovement.objects.filter(
            product=product, movement_type=MovementType.SALES_OUT,
        )
        assert sorted(m.quantity for m in outs) == [2, 3]
        assert {m.reference for m in outs} == {note.code}
        assert _stock(product) == 95
        assert ledger.verify_product(product.pk).is_consistent

    def test_delivered_quantity_cannot_decrease(self, sales, customer, product, actor):
        invoice = _paid_ready_invoice(sales, customer, product, actor)
        note = sales.create_delivery_note(invoice.pk, actor).document
        sales.dispatch_delivery(note.pk, actor)
        item = note.items.get()
        sales.mark_item_delivered(item.pk, 3, actor)
        with pytest.raises(ValidationRejected) as exc:
            sales.mark_item_delivered(item.pk, 1, actor)
        assert exc.value.code == ReasonCode.INVALID_DELIVERED_QUANTITY

    def test_delivered_quantity_capped_by_line(self, sales, customer, product, actor):
        invoice = _paid_ready_invoice(sales, customer, product, actor)
        note = sales.create_delivery_note(invoice.pk, actor).document
        sales.dispatch_delivery(note.pk, actor)
        with pytest.raises(ValidationRejected, match="exceeds ordered quantity"):
            sales.mark_item_delivered(note.items.get().pk, 6, actor)

    def test_complete_can_deliver_remaining(self, sales, customer, product, actor):
        invoice = _paid_ready_invoice(sales, customer, product, actor)
        note = sales.create_delivery_note(invoice.pk, actor).document
        sales.dispatch_delivery(note.pk, actor)
        item = note.items.get()
        sales.mark_item_delivered(item.pk, 1, actor)
        sales.complete_delivery(note.pk, actor, deliver_remaining=True)
        item.refresh_from_db()
        assert item.delivered_qty == 5
        assert _stock(product) == 95

    def test_complete_requires_dispatch(self, sales, customer, product, actor):
        invoice = _paid_ready_invoice(sales, customer, product, actor)
        note = sales.create_delivery_note(invoice.pk, actor).document
        with pytest.raises(InvalidTransition):
            sales.complete_delivery(note.pk, actor)

    def test_cancel_returns_delivered_goods(self, sales, ledger, customer, product, actor):
        invoice = _paid_ready_invoice(sales, customer, product, actor)
        note = sales.create_delivery_note(invoice.pk, actor).document
        sales.dispatch_delivery(note.pk, actor)
        sales.mark_item_delivered(note.items.get().pk, 4, actor)
        assert _stock(product) == 96

        cancelled = sales.cancel_delivery(note.pk, actor, reason="Refused at gate")
        assert cancelled.status == DeliveryStatus.CANCELLED
        assert _stock(product) == 100
        assert StockMovement.objects.filter(
            product=product, movement_type=MovementType.RETURN_IN,
        ).count() == 1
        assert ledger.verify_product(product.pk).is_consistent

    def test_cancel_returns_only_what_left_the_warehouse(
        self, sales, ledger, customer, make_product, actor,
    ):
        scarce = make_product(code="PDK-002", opening_stock=2)
        invoice = _paid_ready_invoice(sales, customer, scarce, actor)
        note = sales.create_delivery_note(invoice.pk, actor).document
        sales.dispatch_delivery(note.pk, actor)
        progress = sales.mark_item_delivered(note.items.get().pk, 5, actor)
        assert progress.movement.was_clamped
        assert progress.movement.quantity == 2
        assert _stock(scarce) == 0

        sales.cancel_delivery(note.pk, actor, reason="Short shipment")
        returned = StockMovement.objects.get(
            product=scarce, movement_type=MovementType.RETURN_IN,
        )
        assert returned.quantity == 2
        assert _stock(scarce) == 2
        assert ledger.verify_product(scarce.pk).is_consistent

    def test_cancel_undelivered_note_writes_no_return(self, sales, customer, product, actor):
        invoice = _paid_ready_invoice(sales, customer, product, actor)
        note = sales.create_delivery_note(invoice.pk, actor).document
        sales.dispatch_delivery(note.pk, actor)
        sales.cancel_delivery(note.pk, actor)
        assert not StockMovement.objects.filter(
            product=product, movement_type=MovementType.RETURN_IN,
        ).exists()
        assert _stock(product) == 100

    def test_invoice_with_live_note_cannot_be_cancelled(self, sales, customer, product, actor):
        # free-of-charge replacement goods: nothing to pay, still delivered
        invoice = sales.create_invoice(
            CreateInvoiceRequest(
                customer_id=customer.pk,
                lines=(LineInput(
                    product_id=product.pk, quantity=1,
                    discount="100", discount_unit="PERCENTAGE",
                ),),
            ),
            actor,
        )
        assert invoice.payment_status == InvoicePaymentStatus.PAID
        sales.send_invoice(invoice.pk, actor)
        sales.advance_preparation(invoice.pk, PreparationStatus.PREPARING, actor)
        sales.advance_preparation(invoice.pk, PreparationStatus.READY_FOR_DELIVERY, actor)
        note = sales.create_delivery_note(invoice.pk, actor).document

        with pytest.raises(ConsistencyRejected, match=note.code):
            sales.cancel_invoice(invoice.pk, actor)


class TestRejectedDeliveryRollsBack:
    @pytest.fixture
    def strict_sales(self, numbering, clock):
        return SalesWorkflowService(
            ledger=StockLedger(clock=clock, outbound_policy=OutboundPolicy.REJECT),
            numbering=numbering, clock=clock, payment_term_days=30,
        )

    def _dispatched(self, sales, customer, products, actor):
        invoice = sales.create_invoice(
            CreateInvoiceRequest(
                customer_id=customer.pk,
                lines=tuple(LineInput(product_id=p.pk, quantity=5) for p in products),
            ),
            actor,
        )
        sales.send_invoice(invoice.pk, actor)
        sales.record_payment(invoice.pk, invoice.total_amount, PaymentMethod.TRANSFER, actor)
        sales.advance_preparation(invoice.pk, PreparationStatus.PREPARING, actor)
        sales.advance_preparation(invoice.pk, PreparationStatus.READY_FOR_DELIVERY, actor)
        note = sales.create_delivery_note(invoice.pk, actor).document
        return sales.dispatch_delivery(note.pk, actor)

    def test_item_beyond_stock_is_refused(self, strict_sales, customer, make_product, actor):
        scarce = make_product(code="PDK-002", opening_stock=2)
        note = self._dispatched(strict_sales, customer, [scarce], actor)
        item = note.items.get()

        with pytest.raises(ValidationRejected) as exc:
            strict_sales.mark_item_delivered(item.pk, 5, actor)
        assert exc.value.code == ReasonCode.INSUFFICIENT_STOCK

        item.refresh_from_db()
        assert item.delivered_qty == 0
        assert not StockMovement.objects.filter(
            product=scarce, movement_type=MovementType.SALES_OUT,
        ).exists()
        assert _stock(scarce) == 2

    def test_completion_undoes_earlier_lines(self, strict_sales, customer, make_product, actor):
        plenty = make_product(code="PDK-001", opening_stock=100)
        scarce = make_product(code="PDK-002", opening_stock=2)
        note = self._dispatched(strict_sales, customer, [plenty, scarce], actor)

        with pytest.raises(ValidationRejected) as exc:
            strict_sales.complete_delivery(note.pk, actor, deliver_remaining=True)
        assert exc.value.code == ReasonCode.INSUFFICIENT_STOCK

        assert strict_sales.get_delivery_note(note.pk)["status"] == DeliveryStatus.IN_TRANSIT
        assert [i.delivered_qty for i in note.items.order_by("id")] == [0, 0]
        assert not StockMovement.objects.filter(
            movement_type=MovementType.SALES_OUT,
        ).exists()
        assert _stock(plenty) == 100
        assert _stock(scarce) == 2


# ══════════════════════════════════════════════════════════════
# STOCK, READS AND CONCURRENCY
# ══════════════════════════════════════════════════════════════

class TestStockAdjustment:
    def test_records_adjustment(self, sales, product, actor):
        movement = sales.record_stock_adjustment(product.pk, 4, "OUT", actor, "Breakage")
        assert movement.movement_type == MovementType.ADJUSTMENT
        assert _stock(product) == 96

    def test_requires_reason(self, sales, product, actor):
        with pytest.raises(ValidationRejected, match="reason"):
            sales.record_stock_adjustment(product.pk, 4, "OUT", actor, "")


class TestReads:
    def test_invoice_view_recomputes_totals(self, sales, customer, product, actor):
        invoice = _sent_invoice(sales, customer, product, actor)
        sales.record_payment(invoice.pk, "2500", PaymentMethod.CASH, actor)
        Invoice.objects.filter(pk=invoice.pk).update(total_amount=Decimal("1"))

        view = sales.get_invoice(invoice.pk)
        assert view["total_amount"] == "62500.00"
        assert view["paid_amount"] == "2500.00"
        assert view["remaining_amount"] == "60000.00"
        assert view["payment_status"] == InvoicePaymentStatus.PARTIALLY_PAID
        assert view["items"][0]["total_price"] == "62500.00"

    def test_order_view(self, sales, customer, product, actor):
        order = _order(sales, customer, product, actor)
        view = sales.get_order(order.pk)
        assert view["code"] == order.code
        assert view["status"] == "NEW"
        assert view["totals"]["line_discount_total"] == "2500.00"

    def test_payment_and_delivery_views(self, sales, customer, product, actor):
        invoice = _paid_ready_invoice(sales, customer, product, actor)
        note = sales.create_delivery_note(invoice.pk, actor).document
        view = sales.get_delivery_note(note.pk)
        assert view["items"][0]["outstanding_qty"] == 5
        payment = invoice.payments.get()
        assert sales.get_payment(payment.pk)["status"] == "CLEARED"

    def test_missing_document(self, sales):
        with pytest.raises(DocumentNotFound, match="Invoice"):
            sales.get_invoice(31337)


class TestConcurrency:
    def test_stale_write_is_refused(self, sales, customer, product, actor):
        order = _order(sales, customer, product, actor)
        repository = DjangoSalesRepository()
        first = repository.get_order(order.pk)
        stale = repository.get_order(order.pk)

        first.notes = "first writer"
        repository.save(first, ("notes",))
        stale.notes = "second writer"
        with pytest.raises(ConcurrencyConflict) as exc:
            repository.save(stale, ("notes",))
        assert exc.value.retryable
        assert Order.objects.get(pk=order.pk).notes == "first writer"
