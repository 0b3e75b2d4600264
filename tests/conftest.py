"""
Shared fixtures: a pinned clock, deterministic code allocation and a
small catalogue of customers and products.
"""

from datetime import datetime, timezone
from decimal import Decimal

import pytest

from core.documents.numbering import InMemoryCodeAllocator
from core.primitives.actor import Actor
from core.time.clock import FixedClock
from engines.inventory.commands import RegisterProductRequest
from engines.inventory.ledger import OutboundPolicy, StockLedger
from engines.inventory.services import InventoryService
from engines.sales.models import Customer
from engines.sales.services import SalesWorkflowService

NOW = datetime(2026, 3, 10, 9, 0, 0, tzinfo=timezone.utc)


@pytest.fixture
def clock():
    return FixedClock(NOW)


@pytest.fixture
def actor():
    return Actor.human("sales-01", "Sales Admin", role="sales")


@pytest.fixture
def numbering():
    return InMemoryCodeAllocator()


@pytest.fixture
def ledger(clock):
    return StockLedger(clock=clock, outbound_policy=OutboundPolicy.CLAMP)


@pytest.fixture
def inventory(ledger, numbering, clock):
    return InventoryService(ledger=ledger, numbering=numbering, clock=clock)


@pytest.fixture
def sales(ledger, numbering, clock):
    return SalesWorkflowService(
        ledger=ledger, numbering=numbering, clock=clock, payment_term_days=30,
    )


@pytest.fixture
def customer():
    return Customer.objects.create(
        code="CUST-001",
        name="Toko Sumber Rejeki",
        address="Jl. Merdeka 17, Bandung",
    )


@pytest.fixture
def make_product(inventory, actor):
    def _make(code="PDK-001", price="13000", opening_stock=100, minimum_stock=0):
        return inventory.register_product(
            RegisterProductRequest(
                name=f"Product {code}",
                price=Decimal(price),
                opening_stock=opening_stock,
                minimum_stock=minimum_stock,
                code=code,
            ),
            actor,
        )
    return _make


@pytest.fixture
def product(make_product):
    return make_product()
