"""
Tradeflow Sales Engine — Workflow Orchestrator
================================================
Executes every operation on the document chain:

    Order → PurchaseOrder → Invoice → DeliveryNote
                                   ↘ Payment

Each public method is one unit of work:
1. Open the repository's atomic() boundary
2. Load the documents it reads, locking the rows it mutates
3. Check the transition and the consistency policies
4. Recompute totals with core.primitives.pricing
5. Apply Stock Ledger movements where goods physically move
6. Persist the new document state (version compare-and-swap)

Any exception rolls the whole unit back. Derivations are idempotent:
retrying one returns the document created the first time.
Nothing cascades between document types; each step is invoked
explicitly by the caller.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import timedelta
from typing import Any, List, Optional, Sequence, Tuple

from django.conf import settings
from django.db import IntegrityError, transaction

from core.commands.errors import (
    ConcurrencyConflict,
    ConsistencyRejected,
    InvalidTransition,
    ValidationRejected,
)
from core.commands.rejection import ReasonCode, RejectionReason
from core.documents.numbering import (
    DOC_DELIVERY_NOTE,
    DOC_INVOICE,
    DOC_ORDER,
    DOC_PAYMENT,
    DOC_PURCHASE_ORDER,
    CodeAllocator,
    DbCodeAllocator,
)
from core.primitives.actor import Actor
from core.primitives.pricing import (
    ZERO,
    DocumentTotals,
    PricedLine,
    document_totals,
    line_total,
    quantize,
    to_decimal,
)
from core.time.clock import Clock, SystemClock
from engines.inventory.commands import AdjustmentRequest
from engines.inventory.ledger import StockLedger
from engines.inventory.models import MovementType, StockMovement
from engines.sales.commands import (
    CreateInvoiceRequest,
    CreateOrderRequest,
    LineInput,
    PricingTerms,
)
from engines.sales.models import (
    DeliveryNote,
    DeliveryNoteItem,
    DeliveryStatus,
    Invoice,
    InvoiceItem,
    InvoicePaymentStatus,
    InvoiceStatus,
    Order,
    OrderItem,
    OrderStatus,
    Payment,
    PaymentMethod,
    PaymentStatus,
    PreparationStatus,
    PurchaseOrder,
    PurchaseOrderItem,
    PurchaseOrderStatus,
)
from engines.sales.policies import (
    active_product_policy,
    delivered_quantity_policy,
    delivery_gate_policy,
    delivery_in_transit_policy,
    invoice_cancellable_policy,
    invoice_fully_paid_policy,
    invoice_not_cancelled_policy,
    invoice_open_for_payment_policy,
    no_live_dependent_policy,
    order_derivable_policy,
    order_editable_policy,
    overpayment_policy,
    purchase_order_invoiceable_policy,
)
from engines.sales.repository import DjangoSalesRepository, SalesRepository
from engines.sales.serializers import (
    serialize_delivery_note,
    serialize_invoice,
    serialize_order,
    serialize_payment,
    serialize_purchase_order,
)
from engines.sales.workflows import (
    DELIVERY_WORKFLOW,
    INVOICE_WORKFLOW,
    ORDER_WORKFLOW,
    PAYMENT_WORKFLOW,
    PREPARATION_WORKFLOW,
    PURCHASE_ORDER_WORKFLOW,
    derive_payment_status,
)

logger = logging.getLogger("tradeflow.sales")

TOTAL_FIELDS = ("subtotal", "discount_amount", "tax_amount", "total_amount")


# ══════════════════════════════════════════════════════════════
# RESULTS
# ══════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class DocumentResult:
    """A created-or-existing document. created=False on an idempotent retry."""
    document: Any
    created: bool


@dataclass(frozen=True)
class DeliveryProgress:
    """Outcome of marking one delivery item; movement is None when nothing moved."""
    item: DeliveryNoteItem
    movement: Optional[StockMovement]


def _consistency(reason: Optional[RejectionReason]) -> None:
    if reason is not None:
        raise ConsistencyRejected(reason.code, reason.message, reason.policy_name)


def _validation(reason: Optional[RejectionReason]) -> None:
    if reason is not None:
        raise ValidationRejected(reason.code, reason.message, reason.policy_name)


def _apply_totals(document, totals: DocumentTotals) -> None:
    document.subtotal = totals.subtotal
    document.discount_amount = totals.total_discount
    document.tax_amount = totals.tax
    document.total_amount = totals.grand_total


def _total_fields(totals: DocumentTotals) -> dict:
    return {
        "subtotal": totals.subtotal,
        "discount_amount": totals.total_discount,
        "tax_amount": totals.tax,
        "total_amount": totals.grand_total,
    }


def _terms_fields(terms: PricingTerms) -> dict:
    return {
        "discount": terms.discount,
        "discount_unit": terms.discount_unit.value,
        "tax_percentage": terms.tax_percentage,
        "shipping_cost": terms.shipping_cost,
    }


def _copied_terms(document) -> dict:
    return {
        "discount": document.discount,
        "discount_unit": document.discount_unit,
        "tax_percentage": document.tax_percentage,
        "shipping_cost": document.shipping_cost,
    }


def _delivery_key_prefix(note, item) -> str:
    return f"delivery:{note.code}:{item.pk}:"


# ══════════════════════════════════════════════════════════════
# WORKFLOW SERVICE
# ══════════════════════════════════════════════════════════════

class SalesWorkflowService:
    """
    Orchestrates the sales document chain.

    Collaborators are injected; defaults are the Django repository, the
    DB-backed code allocator and a Stock Ledger sharing this clock.
    """

    def __init__(
        self,
        repository: SalesRepository | None = None,
        ledger: StockLedger | None = None,
        numbering: CodeAllocator | None = None,
        clock: Clock | None = None,
        payment_term_days: int | None = None,
    ):
        self._clock = clock or SystemClock()
        self._repository = repository or DjangoSalesRepository()
        self._ledger = ledger or StockLedger(clock=self._clock)
        self._numbering = numbering or DbCodeAllocator()
        if payment_term_days is None:
            payment_term_days = getattr(settings, "TRADEFLOW_PAYMENT_TERM_DAYS", 30)
        self._payment_term_days = int(payment_term_days)

    # ── Helpers ───────────────────────────────────────────────

    def _now(self):
        return self._clock.now_utc()

    def _allocate(self, doc_type: str) -> str:
        return self._numbering.allocate(doc_type, self._now())

    def _touch(self, document, *fields: str) -> None:
        document.updated_at = self._now()
        self._repository.save(document, (*fields, "updated_at"))

    def _price_lines(self, lines: Sequence[LineInput]) -> List[Tuple[Any, PricedLine]]:
        priced = []
        for line in lines:
            product = self._repository.get_product(line.product_id)
            _consistency(active_product_policy(product))
            priced.append((
                product,
                PricedLine(
                    price=line.price if line.price is not None else product.price,
                    quantity=line.quantity,
                    discount=line.discount,
                    discount_unit=line.discount_unit,
                ),
            ))
        return priced

    @staticmethod
    def _line_rows(parent_field: str, parent, priced) -> List[dict]:
        return [
            {
                parent_field: parent,
                "product": product,
                "quantity": line.quantity,
                "price": line.price,
                "discount": line.discount,
                "discount_unit": line.discount_unit.value,
                "total_price": line_total(
                    line.price, line.quantity, line.discount, line.discount_unit,
                ),
            }
            for product, line in priced
        ]

    @staticmethod
    def _copied_rows(parent_field: str, parent, items) -> List[dict]:
        return [
            {
                parent_field: parent,
                "product_id": item.product_id,
                "quantity": item.quantity,
                "price": item.price,
                "discount": item.discount,
                "discount_unit": item.discount_unit,
                "total_price": line_total(
                    item.price, item.quantity, item.discount, item.discount_unit,
                ),
            }
            for item in items
        ]

    def _recompute(self, document) -> Tuple[list, DocumentTotals]:
        items = self._repository.items_of(document)
        totals = document_totals(
            [item.as_priced_line() for item in items],
            **document.pricing_terms(),
        )
        return items, totals

    @staticmethod
    def _terms_or_stored(document, terms: Optional[PricingTerms]) -> PricingTerms:
        if terms is not None:
            return terms
        return PricingTerms(**_copied_terms(document))

    # ══════════════════════════════════════════════════════════
    # ORDERS
    # ══════════════════════════════════════════════════════════

    def create_order(self, request: CreateOrderRequest, actor: Actor) -> Order:
        now = self._now()
        with self._repository.atomic():
            customer = self._repository.get_customer(request.customer_id)
            priced = self._price_lines(request.lines)
            totals = document_totals(
                [line for _, line in priced],
                header_discount=request.terms.discount,
                header_discount_unit=request.terms.discount_unit,
                tax_percentage=request.terms.tax_percentage,
                shipping_cost=request.terms.shipping_cost,
            )
            status = (
                OrderStatus.PENDING_CONFIRMATION
                if request.requires_confirmation
                else OrderStatus.NEW
            )
            order = self._repository.create(
                Order,
                code=self._allocate(DOC_ORDER),
                customer=customer,
                sales_actor_id=actor.actor_id,
                status=status,
                order_date=now,
                due_date=request.due_date,
                payment_deadline=request.payment_deadline,
                delivery_address=request.delivery_address or customer.address,
                notes=request.notes,
                requires_confirmation=request.requires_confirmation,
                created_at=now,
                updated_at=now,
                **_terms_fields(request.terms),
                **_total_fields(totals),
            )
            self._repository.create_items(
                OrderItem, self._line_rows("order", order, priced),
            )
        logger.info(
            "Order %s created by %s: %s lines, total %s (%s)",
            order.code, actor.actor_id, len(priced), totals.grand_total, status,
        )
        return order

    def update_order_items(
        self,
        order_id,
        lines: Sequence[LineInput],
        actor: Actor,
        *,
        terms: Optional[PricingTerms] = None,
    ) -> Order:
        """Replace the lines (and optionally header terms) of an open order."""
        if not lines:
            raise ValidationRejected(ReasonCode.MISSING_FIELD, "at least one line is required.")
        with self._repository.atomic():
            order = self._repository.get_order(order_id, lock=True)
            has_po = self._repository.find_purchase_order_for_order(order.pk) is not None
            _consistency(order_editable_policy(order, has_po))

            terms = self._terms_or_stored(order, terms)
            priced = self._price_lines(lines)
            totals = document_totals(
                [line for _, line in priced],
                header_discount=terms.discount,
                header_discount_unit=terms.discount_unit,
                tax_percentage=terms.tax_percentage,
                shipping_cost=terms.shipping_cost,
            )
            self._repository.replace_items(
                order, OrderItem, self._line_rows("order", order, priced),
            )
            for name, value in _terms_fields(terms).items():
                setattr(order, name, value)
            _apply_totals(order, totals)
            self._touch(order, *_terms_fields(terms), *TOTAL_FIELDS)
        logger.info("Order %s lines replaced by %s, total %s", order.code, actor.actor_id, totals.grand_total)
        return order

    def confirm_order(self, order_id, approve: bool, actor: Actor, notes: str = "") -> Order:
        """Approve (→ NEW) or reject (→ CANCELLED) an order awaiting confirmation."""
        target = OrderStatus.NEW if approve else OrderStatus.CANCELLED
        with self._repository.atomic():
            order = self._repository.get_order(order_id, lock=True)
            if order.status != OrderStatus.PENDING_CONFIRMATION:
                raise InvalidTransition(ORDER_WORKFLOW.name, str(order.status), str(target))
            ORDER_WORKFLOW.assert_transition(order.status, target)
            order.status = target
            if approve:
                order.confirmed_by = actor.actor_id
                order.confirmed_at = self._now()
                self._touch(order, "status", "confirmed_by", "confirmed_at")
            else:
                order.cancel_reason = notes
                self._touch(order, "status", "cancel_reason")
        logger.info(
            "Order %s %s by %s", order.code, "approved" if approve else "rejected", actor.actor_id,
        )
        return order

    def advance_order(self, order_id, target: str, actor: Actor) -> Order:
        target = str(target)
        if target == OrderStatus.CANCELLED:
            return self.cancel_order(order_id, actor)
        with self._repository.atomic():
            order = self._repository.get_order(order_id, lock=True)
            ORDER_WORKFLOW.assert_transition(order.status, target)
            fields = ["status"]
            if order.status == OrderStatus.PENDING_CONFIRMATION:
                order.confirmed_by = actor.actor_id
                order.confirmed_at = self._now()
                fields += ["confirmed_by", "confirmed_at"]
            previous = order.status
            order.status = target
            self._touch(order, *fields)
        logger.info("Order %s %s → %s by %s", order.code, previous, target, actor.actor_id)
        return order

    def cancel_order(self, order_id, actor: Actor, reason: str = "") -> Order:
        with self._repository.atomic():
            order = self._repository.get_order(order_id, lock=True)
            ORDER_WORKFLOW.assert_transition(order.status, OrderStatus.CANCELLED)
            _consistency(no_live_dependent_policy(
                order,
                self._repository.find_purchase_order_for_order(order.pk),
                "purchase order",
            ))
            order.status = OrderStatus.CANCELLED
            order.cancel_reason = reason
            self._touch(order, "status", "cancel_reason")
        logger.info("Order %s cancelled by %s: %s", order.code, actor.actor_id, reason)
        return order

    # ══════════════════════════════════════════════════════════
    # PURCHASE ORDERS
    # ══════════════════════════════════════════════════════════

    def derive_purchase_order(
        self,
        order_id,
        actor: Actor,
        *,
        tax_percentage=None,
        deadline=None,
        payment_deadline=None,
        notes: str = "",
    ) -> DocumentResult:
        """Copy an order into its purchase order. Retrying returns the same PO."""
        now = self._now()
        with self._repository.atomic():
            order = self._repository.get_order(order_id, lock=True)
            existing = self._repository.find_purchase_order_for_order(order.pk)
            if existing is not None:
                logger.info("Order %s already derived into %s", order.code, existing.code)
                return DocumentResult(existing, created=False)
            _consistency(order_derivable_policy(order))

            terms = _copied_terms(order)
            if tax_percentage is not None:
                terms["tax_percentage"] = to_decimal(tax_percentage, field_name="tax_percentage")
            items = self._repository.items_of(order)
            totals = document_totals(
                [item.as_priced_line() for item in items],
                header_discount=terms["discount"],
                header_discount_unit=terms["discount_unit"],
                tax_percentage=terms["tax_percentage"],
                shipping_cost=terms["shipping_cost"],
            )
            try:
                with transaction.atomic():
                    purchase_order = self._repository.create(
                        PurchaseOrder,
                        code=self._allocate(DOC_PURCHASE_ORDER),
                        order=order,
                        customer_id=order.customer_id,
                        creator_id=actor.actor_id,
                        status=PurchaseOrderStatus.PENDING,
                        po_date=now,
                        deadline=deadline or order.due_date,
                        payment_deadline=payment_deadline or order.payment_deadline,
                        notes=notes,
                        created_at=now,
                        updated_at=now,
                        **terms,
                        **_total_fields(totals),
                    )
            except IntegrityError as exc:
                raise ConcurrencyConflict(
                    f"Order {order.code} was derived concurrently."
                ) from exc
            self._repository.create_items(
                PurchaseOrderItem,
                self._copied_rows("purchase_order", purchase_order, items),
            )
        logger.info(
            "Purchase order %s derived from %s by %s, total %s",
            purchase_order.code, order.code, actor.actor_id, totals.grand_total,
        )
        return DocumentResult(purchase_order, created=True)

    def advance_purchase_order(self, purchase_order_id, target: str, actor: Actor) -> PurchaseOrder:
        target = str(target)
        if target == PurchaseOrderStatus.CANCELLED:
            return self.cancel_purchase_order(purchase_order_id, actor)
        with self._repository.atomic():
            purchase_order = self._repository.get_purchase_order(purchase_order_id, lock=True)
            PURCHASE_ORDER_WORKFLOW.assert_transition(purchase_order.status, target)
            previous = purchase_order.status
            purchase_order.status = target
            self._touch(purchase_order, "status")
        logger.info(
            "Purchase order %s %s → %s by %s",
            purchase_order.code, previous, target, actor.actor_id,
        )
        return purchase_order

    def cancel_purchase_order(self, purchase_order_id, actor: Actor, reason: str = "") -> PurchaseOrder:
        with self._repository.atomic():
            purchase_order = self._repository.get_purchase_order(purchase_order_id, lock=True)
            PURCHASE_ORDER_WORKFLOW.assert_transition(
                purchase_order.status, PurchaseOrderStatus.CANCELLED,
            )
            _consistency(no_live_dependent_policy(
                purchase_order,
                self._repository.find_invoice_for_purchase_order(purchase_order.pk),
                "invoice",
            ))
            purchase_order.status = PurchaseOrderStatus.CANCELLED
            purchase_order.cancel_reason = reason
            self._touch(purchase_order, "status", "cancel_reason")
        logger.info("Purchase order %s cancelled by %s", purchase_order.code, actor.actor_id)
        return purchase_order

    # ══════════════════════════════════════════════════════════
    # INVOICES
    # ══════════════════════════════════════════════════════════

    def _default_due_date(self, due_date):
        if due_date is not None:
            return due_date
        return self._now().date() + timedelta(days=self._payment_term_days)

    def derive_invoice(
        self,
        purchase_order_id,
        actor: Actor,
        *,
        due_date=None,
        notes: str = "",
    ) -> DocumentResult:
        """Copy a purchase order into its invoice. Retrying returns the same invoice."""
        now = self._now()
        with self._repository.atomic():
            purchase_order = self._repository.get_purchase_order(purchase_order_id, lock=True)
            existing = self._repository.find_invoice_for_purchase_order(purchase_order.pk)
            if existing is not None:
                logger.info(
                    "Purchase order %s already invoiced as %s",
                    purchase_order.code, existing.code,
                )
                return DocumentResult(existing, created=False)
            _consistency(purchase_order_invoiceable_policy(purchase_order))

            items, totals = self._recompute(purchase_order)
            if purchase_order.order_id is not None:
                delivery_address = self._repository.get_order(purchase_order.order_id).delivery_address
            else:
                delivery_address = self._repository.get_customer(purchase_order.customer_id).address
            try:
                with transaction.atomic():
                    invoice = self._repository.create(
                        Invoice,
                        code=self._allocate(DOC_INVOICE),
                        customer_id=purchase_order.customer_id,
                        purchase_order=purchase_order,
                        creator_id=actor.actor_id,
                        status=InvoiceStatus.DRAFT,
                        payment_status=derive_payment_status(ZERO, totals.grand_total),
                        preparation_status=PreparationStatus.WAITING_PREPARATION,
                        invoice_date=now,
                        due_date=self._default_due_date(due_date),
                        delivery_address=delivery_address,
                        notes=notes,
                        paid_amount=ZERO,
                        remaining_amount=totals.grand_total,
                        created_at=now,
                        updated_at=now,
                        **_copied_terms(purchase_order),
                        **_total_fields(totals),
                    )
            except IntegrityError as exc:
                raise ConcurrencyConflict(
                    f"Purchase order {purchase_order.code} was invoiced concurrently."
                ) from exc
            self._repository.create_items(
                InvoiceItem, self._copied_rows("invoice", invoice, items),
            )
        logger.info(
            "Invoice %s derived from %s by %s, total %s",
            invoice.code, purchase_order.code, actor.actor_id, totals.grand_total,
        )
        return DocumentResult(invoice, created=True)

    def create_invoice(self, request: CreateInvoiceRequest, actor: Actor) -> Invoice:
        """Issue an invoice directly from lines, without a purchase order."""
        now = self._now()
        with self._repository.atomic():
            customer = self._repository.get_customer(request.customer_id)
            priced = self._price_lines(request.lines)
            totals = document_totals(
                [line for _, line in priced],
                header_discount=request.terms.discount,
                header_discount_unit=request.terms.discount_unit,
                tax_percentage=request.terms.tax_percentage,
                shipping_cost=request.terms.shipping_cost,
            )
            invoice = self._repository.create(
                Invoice,
                code=self._allocate(DOC_INVOICE),
                customer=customer,
                creator_id=actor.actor_id,
                status=InvoiceStatus.DRAFT,
                payment_status=derive_payment_status(ZERO, totals.grand_total),
                preparation_status=PreparationStatus.WAITING_PREPARATION,
                invoice_date=now,
                due_date=self._default_due_date(request.due_date),
                delivery_address=request.delivery_address or customer.address,
                notes=request.notes,
                paid_amount=ZERO,
                remaining_amount=totals.grand_total,
                created_at=now,
                updated_at=now,
                **_terms_fields(request.terms),
                **_total_fields(totals),
            )
            self._repository.create_items(
                InvoiceItem, self._line_rows("invoice", invoice, priced),
            )
        logger.info("Invoice %s created by %s, total %s", invoice.code, actor.actor_id, totals.grand_total)
        return invoice

    def _transition_invoice(self, invoice_id, target: str, actor: Actor, check=None) -> Invoice:
        with self._repository.atomic():
            invoice = self._repository.get_invoice(invoice_id, lock=True)
            INVOICE_WORKFLOW.assert_transition(invoice.status, target)
            if check is not None:
                _consistency(check(invoice))
            previous = invoice.status
            invoice.status = target
            self._touch(invoice, "status")
        logger.info("Invoice %s %s → %s by %s", invoice.code, previous, target, actor.actor_id)
        return invoice

    def send_invoice(self, invoice_id, actor: Actor) -> Invoice:
        return self._transition_invoice(invoice_id, InvoiceStatus.SENT, actor)

    def mark_invoice_overdue(self, invoice_id, actor: Actor) -> Invoice:
        def not_settled(invoice):
            if invoice.payment_status == InvoicePaymentStatus.PAID:
                return RejectionReason(
                    code=ReasonCode.INVALID_TRANSITION,
                    message=f"Invoice {invoice.code} is fully paid and cannot be overdue.",
                    policy_name="overdue_requires_outstanding_amount",
                )
            return None

        return self._transition_invoice(invoice_id, InvoiceStatus.OVERDUE, actor, not_settled)

    def mark_overdue_invoices(self, actor: Actor) -> List[Invoice]:
        """
        Move every SENT, not fully paid invoice past its due date to OVERDUE.

        Each invoice is its own unit of work. An invoice that changed
        underneath the sweep is logged and skipped; the rest still move.
        """
        today = self._now().date()
        overdue = []
        for invoice in self._repository.sent_invoices_due_before(today):
            try:
                overdue.append(self.mark_invoice_overdue(invoice.pk, actor))
            except (ConsistencyRejected, ConcurrencyConflict) as exc:
                logger.warning("Skipped overdue sweep for %s: %s", invoice.code, exc)
        if overdue:
            logger.info("Marked %d invoice(s) overdue as of %s", len(overdue), today)
        return overdue

    def mark_invoice_paid(self, invoice_id, actor: Actor) -> Invoice:
        return self._transition_invoice(
            invoice_id, InvoiceStatus.PAID, actor, invoice_fully_paid_policy,
        )

    def cancel_invoice(self, invoice_id, actor: Actor, reason: str = "") -> Invoice:
        """Cancel an invoice with no cleared payments; pending payments are cancelled too."""
        now = self._now()
        with self._repository.atomic():
            invoice = self._repository.get_invoice(invoice_id, lock=True)
            INVOICE_WORKFLOW.assert_transition(invoice.status, InvoiceStatus.CANCELLED)
            cleared = self._repository.payments_of(invoice.pk, PaymentStatus.CLEARED)
            _consistency(invoice_cancellable_policy(invoice, len(cleared)))
            _consistency(no_live_dependent_policy(
                invoice,
                self._repository.find_live_delivery_note(invoice.pk),
                "delivery note",
            ))

            for payment in self._repository.payments_of(invoice.pk, PaymentStatus.PENDING):
                payment.status = PaymentStatus.CANCELED
                payment.notes = f"Invoice {invoice.code} cancelled"
                payment.updated_at = now
                self._repository.save(payment, ("status", "notes", "updated_at"))

            fields = ["status", "cancel_reason"]
            invoice.status = InvoiceStatus.CANCELLED
            invoice.cancel_reason = reason
            if PREPARATION_WORKFLOW.is_valid_transition(
                invoice.preparation_status, PreparationStatus.CANCELLED_PREPARATION,
            ):
                invoice.preparation_status = PreparationStatus.CANCELLED_PREPARATION
                fields.append("preparation_status")
            self._touch(invoice, *fields)
        logger.info("Invoice %s cancelled by %s: %s", invoice.code, actor.actor_id, reason)
        return invoice

    def advance_preparation(self, invoice_id, target: str, actor: Actor) -> Invoice:
        target = str(target)
        with self._repository.atomic():
            invoice = self._repository.get_invoice(invoice_id, lock=True)
            if target != PreparationStatus.CANCELLED_PREPARATION:
                _consistency(invoice_not_cancelled_policy(invoice))
            PREPARATION_WORKFLOW.assert_transition(invoice.preparation_status, target)
            previous = invoice.preparation_status
            invoice.preparation_status = target
            self._touch(invoice, "preparation_status")
        logger.info(
            "Invoice %s preparation %s → %s by %s",
            invoice.code, previous, target, actor.actor_id,
        )
        return invoice

    def cancel_preparation(self, invoice_id, actor: Actor) -> Invoice:
        return self.advance_preparation(
            invoice_id, PreparationStatus.CANCELLED_PREPARATION, actor,
        )

    # ══════════════════════════════════════════════════════════
    # PAYMENTS
    # ══════════════════════════════════════════════════════════

    def _refresh_invoice_payments(self, invoice: Invoice) -> None:
        """Recompute paid/remaining/payment status from CLEARED payments."""
        paid = quantize(self._repository.cleared_total(invoice.pk))
        invoice.paid_amount = paid
        invoice.remaining_amount = invoice.total_amount - paid
        previous = invoice.payment_status
        invoice.payment_status = derive_payment_status(paid, invoice.total_amount)
        self._touch(invoice, "paid_amount", "remaining_amount", "payment_status")
        if previous != invoice.payment_status:
            logger.info(
                "Invoice %s payment status %s → %s (paid %s of %s)",
                invoice.code, previous, invoice.payment_status, paid, invoice.total_amount,
            )

    def record_payment(
        self,
        invoice_id,
        amount,
        method: str,
        actor: Actor,
        *,
        status: str = PaymentStatus.CLEARED,
        reference: str = "",
        notes: str = "",
        idempotency_key: Optional[str] = None,
    ) -> DocumentResult:
        amount = quantize(to_decimal(amount, field_name="amount"))
        if amount <= 0:
            raise ValidationRejected(ReasonCode.INVALID_AMOUNT, "amount must be > 0.")
        method = str(method)
        if method not in PaymentMethod.values:
            raise ValidationRejected(
                ReasonCode.INVALID_PAYMENT_METHOD,
                f"method '{method}' not valid. Must be one of: {PaymentMethod.values}",
            )
        status = str(status)
        if status not in (PaymentStatus.PENDING, PaymentStatus.CLEARED):
            raise ValidationRejected(
                ReasonCode.INVALID_TRANSITION,
                f"a payment is recorded as PENDING or CLEARED, not {status}.",
            )

        now = self._now()
        with self._repository.atomic():
            invoice = self._repository.get_invoice(invoice_id, lock=True)
            if idempotency_key:
                existing = self._repository.find_payment_by_key(invoice.pk, idempotency_key)
                if existing is not None:
                    logger.info("Payment %s already recorded (key=%s)", existing.code, idempotency_key)
                    return DocumentResult(existing, created=False)
            _consistency(invoice_open_for_payment_policy(invoice))
            _consistency(overpayment_policy(invoice, amount))

            try:
                with transaction.atomic():
                    payment = self._repository.create(
                        Payment,
                        code=self._allocate(DOC_PAYMENT),
                        invoice=invoice,
                        amount=amount,
                        method=method,
                        status=status,
                        payment_date=now,
                        reference=reference,
                        notes=notes,
                        actor_id=actor.actor_id,
                        idempotency_key=idempotency_key or None,
                        cleared_at=now if status == PaymentStatus.CLEARED else None,
                        created_at=now,
                        updated_at=now,
                    )
            except IntegrityError as exc:
                raise ConcurrencyConflict(
                    f"Payment with key '{idempotency_key}' was recorded concurrently."
                ) from exc
            if status == PaymentStatus.CLEARED:
                self._refresh_invoice_payments(invoice)
        logger.info(
            "Payment %s of %s (%s, %s) recorded on %s by %s",
            payment.code, amount, method, status, invoice.code, actor.actor_id,
        )
        return DocumentResult(payment, created=True)

    def clear_payment(self, payment_id, actor: Actor) -> Payment:
        with self._repository.atomic():
            invoice_id = self._repository.get_payment(payment_id).invoice_id
            invoice = self._repository.get_invoice(invoice_id, lock=True)
            payment = self._repository.get_payment(payment_id, lock=True)
            PAYMENT_WORKFLOW.assert_transition(payment.status, PaymentStatus.CLEARED)
            _consistency(invoice_open_for_payment_policy(invoice))
            _consistency(overpayment_policy(invoice, payment.amount))

            payment.status = PaymentStatus.CLEARED
            payment.cleared_at = self._now()
            self._touch(payment, "status", "cleared_at")
            self._refresh_invoice_payments(invoice)
        logger.info("Payment %s cleared by %s", payment.code, actor.actor_id)
        return payment

    def cancel_payment(self, payment_id, actor: Actor, reason: str = "") -> Payment:
        with self._repository.atomic():
            payment = self._repository.get_payment(payment_id, lock=True)
            PAYMENT_WORKFLOW.assert_transition(payment.status, PaymentStatus.CANCELED)
            payment.status = PaymentStatus.CANCELED
            if reason:
                payment.notes = reason
            self._touch(payment, "status", "notes")
        logger.info("Payment %s cancelled by %s", payment.code, actor.actor_id)
        return payment

    # ══════════════════════════════════════════════════════════
    # DELIVERY NOTES
    # ══════════════════════════════════════════════════════════

    def create_delivery_note(
        self,
        invoice_id,
        actor: Actor,
        *,
        driver_name: str = "",
        vehicle_number: str = "",
        delivery_address: Optional[str] = None,
        delivery_date=None,
        notes: str = "",
    ) -> DocumentResult:
        """
        Open the delivery note of a prepared, fully paid invoice.
        Retrying returns the live note created the first time.
        """
        now = self._now()
        with self._repository.atomic():
            invoice = self._repository.get_invoice(invoice_id, lock=True)
            existing = self._repository.find_live_delivery_note(invoice.pk)
            if existing is not None:
                logger.info("Invoice %s already has delivery note %s", invoice.code, existing.code)
                return DocumentResult(existing, created=False)
            _consistency(delivery_gate_policy(invoice))

            try:
                with transaction.atomic():
                    note = self._repository.create(
                        DeliveryNote,
                        code=self._allocate(DOC_DELIVERY_NOTE),
                        invoice=invoice,
                        creator_id=actor.actor_id,
                        status=DeliveryStatus.PENDING,
                        driver_name=driver_name,
                        vehicle_number=vehicle_number,
                        delivery_address=(
                            delivery_address
                            if delivery_address is not None
                            else invoice.delivery_address
                        ),
                        delivery_date=delivery_date or now.date(),
                        notes=notes,
                        created_at=now,
                        updated_at=now,
                    )
            except IntegrityError as exc:
                raise ConcurrencyConflict(
                    f"Invoice {invoice.code} got a delivery note concurrently."
                ) from exc
            self._repository.create_items(
                DeliveryNoteItem,
                [
                    {
                        "delivery_note": note,
                        "invoice_item": item,
                        "product_id": item.product_id,
                        "quantity": item.quantity,
                        "delivered_qty": 0,
                    }
                    for item in self._repository.items_of(invoice)
                ],
            )
        logger.info("Delivery note %s created for %s by %s", note.code, invoice.code, actor.actor_id)
        return DocumentResult(note, created=True)

    def dispatch_delivery(self, note_id, actor: Actor) -> DeliveryNote:
        with self._repository.atomic():
            note = self._repository.get_delivery_note(note_id, lock=True)
            DELIVERY_WORKFLOW.assert_transition(note.status, DeliveryStatus.IN_TRANSIT)
            note.status = DeliveryStatus.IN_TRANSIT
            self._touch(note, "status")
        logger.info("Delivery note %s dispatched by %s", note.code, actor.actor_id)
        return note

    def _deliver(self, note: DeliveryNote, item: DeliveryNoteItem, target: int, actor: Actor) -> DeliveryProgress:
        delta = target - item.delivered_qty
        if delta == 0:
            return DeliveryProgress(item=item, movement=None)
        movement = self._ledger.apply_movement(
            item.product_id,
            MovementType.SALES_OUT,
            delta,
            note.code,
            actor.actor_id,
            notes=f"Delivery {note.code}: {item.delivered_qty} → {target}",
            idempotency_key=f"{_delivery_key_prefix(note, item)}{target}",
        )
        item.delivered_qty = target
        self._repository.save(item, ("delivered_qty",))
        return DeliveryProgress(item=item, movement=movement)

    def mark_item_delivered(self, item_id, delivered_qty: int, actor: Actor) -> DeliveryProgress:
        """
        Set the cumulative delivered quantity of one item.

        Exactly one SALES_OUT movement of the increase is written; repeating
        the same quantity writes nothing.
        """
        with self._repository.atomic():
            note_id = self._repository.get_delivery_item(item_id).delivery_note_id
            note = self._repository.get_delivery_note(note_id, lock=True)
            item = self._repository.get_delivery_item(item_id, lock=True)
            _consistency(delivery_in_transit_policy(note))
            _validation(delivered_quantity_policy(item, delivered_qty))
            progress = self._deliver(note, item, delivered_qty, actor)
        if progress.movement is not None:
            logger.info(
                "Delivery note %s item %s delivered %d/%d by %s",
                note.code, item.pk, item.delivered_qty, item.quantity, actor.actor_id,
            )
        return progress

    def complete_delivery(self, note_id, actor: Actor, *, deliver_remaining: bool = False) -> DeliveryNote:
        with self._repository.atomic():
            invoice_id = self._repository.get_delivery_note(note_id).invoice_id
            invoice = self._repository.get_invoice(invoice_id, lock=True)
            note = self._repository.get_delivery_note(note_id, lock=True)
            DELIVERY_WORKFLOW.assert_transition(note.status, DeliveryStatus.DELIVERED)
            _consistency(invoice_fully_paid_policy(invoice))

            if deliver_remaining:
                for item in self._repository.items_of(note, lock=True):
                    if item.outstanding_qty:
                        self._deliver(note, item, item.quantity, actor)

            note.status = DeliveryStatus.DELIVERED
            note.delivered_at = self._now()
            self._touch(note, "status", "delivered_at")
        logger.info("Delivery note %s delivered, confirmed by %s", note.code, actor.actor_id)
        return note

    def cancel_delivery(self, note_id, actor: Actor, reason: str = "") -> DeliveryNote:
        """Cancel a delivery; goods already delivered come back as RETURN_IN."""
        with self._repository.atomic():
            note = self._repository.get_delivery_note(note_id, lock=True)
            DELIVERY_WORKFLOW.assert_transition(note.status, DeliveryStatus.CANCELLED)
            for item in self._repository.items_of(note, lock=True):
                # clamped deliveries moved less than delivered_qty
                shipped = self._ledger.applied_total(
                    item.product_id, _delivery_key_prefix(note, item),
                )
                if shipped > 0:
                    self._ledger.apply_movement(
                        item.product_id,
                        MovementType.RETURN_IN,
                        shipped,
                        note.code,
                        actor.actor_id,
                        notes=reason or f"Delivery {note.code} cancelled",
                        idempotency_key=f"delivery-return:{note.code}:{item.pk}",
                    )
            note.status = DeliveryStatus.CANCELLED
            note.cancel_reason = reason
            self._touch(note, "status", "cancel_reason")
        logger.info("Delivery note %s cancelled by %s: %s", note.code, actor.actor_id, reason)
        return note

    # ══════════════════════════════════════════════════════════
    # STOCK
    # ══════════════════════════════════════════════════════════

    def record_stock_adjustment(
        self,
        product_id,
        quantity: int,
        direction: str,
        actor: Actor,
        reason: str,
        *,
        reference: str = "",
        idempotency_key: Optional[str] = None,
    ) -> StockMovement:
        request = AdjustmentRequest(
            product_id=product_id,
            quantity=quantity,
            direction=str(direction),
            reason=reason,
            reference=reference,
            idempotency_key=idempotency_key,
        )
        return self._ledger.apply_movement(
            request.product_id,
            MovementType.ADJUSTMENT,
            request.quantity,
            request.reference,
            actor.actor_id,
            direction=request.direction,
            notes=request.reason,
            idempotency_key=request.idempotency_key,
        )

    # ══════════════════════════════════════════════════════════
    # READS (totals recomputed from lines)
    # ══════════════════════════════════════════════════════════

    def get_order(self, order_id) -> dict:
        order = self._repository.get_order(order_id)
        items, totals = self._recompute(order)
        return serialize_order(order, items, totals)

    def get_purchase_order(self, purchase_order_id) -> dict:
        purchase_order = self._repository.get_purchase_order(purchase_order_id)
        items, totals = self._recompute(purchase_order)
        return serialize_purchase_order(purchase_order, items, totals)

    def get_invoice(self, invoice_id) -> dict:
        invoice = self._repository.get_invoice(invoice_id)
        items, totals = self._recompute(invoice)
        paid = quantize(self._repository.cleared_total(invoice.pk))
        return serialize_invoice(
            invoice, items, totals, paid,
            derive_payment_status(paid, totals.grand_total),
        )

    def get_delivery_note(self, note_id) -> dict:
        note = self._repository.get_delivery_note(note_id)
        return serialize_delivery_note(note, self._repository.items_of(note))

    def get_payment(self, payment_id) -> dict:
        return serialize_payment(self._repository.get_payment(payment_id))
