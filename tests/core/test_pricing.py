"""
Tests for core.primitives.pricing — line and document totals.
"""

from decimal import Decimal

import pytest

from core.commands.errors import ValidationRejected
from core.commands.rejection import ReasonCode
from core.primitives.pricing import (
    DiscountUnit,
    PricedLine,
    document_totals,
    line_discount_amount,
    line_total,
)


# ══════════════════════════════════════════════════════════════
# LINE TOTALS
# ══════════════════════════════════════════════════════════════

class TestLineTotal:
    def test_amount_discount_per_unit(self):
        # 13,000 less 500 per unit, five units
        assert line_total(Decimal("13000"), 5, Decimal("500")) == Decimal("62500.00")

    def test_percentage_discount(self):
        total = line_total("200", 2, "12.5", DiscountUnit.PERCENTAGE)
        assert total == Decimal("350.00")

    def test_unit_accepts_plain_string(self):
        assert line_total("100", 1, "10", "percentage") == Decimal("90.00")

    def test_rounds_half_up(self):
        assert line_total("0.125", 1) == Decimal("0.13")

    def test_line_discount_amount(self):
        assert line_discount_amount("13000", 5, "500") == Decimal("2500.00")

    def test_full_discount_is_allowed(self):
        assert line_total("100", 3, "100", DiscountUnit.PERCENTAGE) == Decimal("0.00")


class TestPricedLineValidation:
    def test_rejects_zero_price(self):
        with pytest.raises(ValidationRejected, match="price must be > 0") as exc:
            PricedLine(price=Decimal("0"), quantity=1)
        assert exc.value.code == ReasonCode.INVALID_PRICE

    @pytest.mark.parametrize("quantity", [0, -1, 1.5, True])
    def test_rejects_bad_quantity(self, quantity):
        with pytest.raises(ValidationRejected) as exc:
            PricedLine(price=Decimal("10"), quantity=quantity)
        assert exc.value.code == ReasonCode.INVALID_QUANTITY

    def test_rejects_negative_discount(self):
        with pytest.raises(ValidationRejected) as exc:
            PricedLine(price=Decimal("10"), quantity=1, discount=Decimal("-1"))
        assert exc.value.code == ReasonCode.INVALID_DISCOUNT

    def test_rejects_percentage_above_hundred(self):
        with pytest.raises(ValidationRejected) as exc:
            PricedLine(
                price=Decimal("10"), quantity=1,
                discount=Decimal("101"), discount_unit=DiscountUnit.PERCENTAGE,
            )
        assert exc.value.code == ReasonCode.INVALID_DISCOUNT

    def test_rejects_amount_discount_above_price(self):
        with pytest.raises(ValidationRejected) as exc:
            PricedLine(price=Decimal("10"), quantity=1, discount=Decimal("10.01"))
        assert exc.value.code == ReasonCode.DISCOUNT_EXCEEDS_PRICE

    def test_rejects_unknown_unit(self):
        with pytest.raises(ValidationRejected) as exc:
            PricedLine(price=Decimal("10"), quantity=1, discount_unit="FRACTION")
        assert exc.value.code == ReasonCode.INVALID_DISCOUNT_UNIT

    def test_rejects_non_numeric_price(self):
        with pytest.raises(ValidationRejected, match="numeric"):
            PricedLine(price="ten", quantity=1)


# ══════════════════════════════════════════════════════════════
# DOCUMENT TOTALS
# ══════════════════════════════════════════════════════════════

class TestDocumentTotals:
    def test_header_discount_tax_and_shipping(self):
        totals = document_totals(
            [PricedLine(price=Decimal("50000"), quantity=2)],
            header_discount=Decimal("10"),
            header_discount_unit=DiscountUnit.PERCENTAGE,
            tax_percentage=Decimal("10"),
            shipping_cost=Decimal("5000"),
        )
        assert totals.subtotal == Decimal("100000.00")
        assert totals.header_discount_amount == Decimal("10000.00")
        assert totals.taxable_amount == Decimal("90000.00")
        assert totals.tax == Decimal("9000.00")
        assert totals.grand_total == Decimal("104000.00")

    def test_total_discount_combines_line_and_header(self):
        totals = document_totals(
            [PricedLine(price=Decimal("13000"), quantity=5, discount=Decimal("500"))],
            header_discount=Decimal("2500"),
        )
        assert totals.line_discount_total == Decimal("2500.00")
        assert totals.header_discount_amount == Decimal("2500.00")
        assert totals.total_discount == Decimal("5000.00")
        assert totals.grand_total == Decimal("60000.00")

    def test_independent_of_line_order(self):
        lines = [
            PricedLine(price=Decimal("19.99"), quantity=3),
            PricedLine(price=Decimal("7.35"), quantity=7, discount=Decimal("3"),
                       discount_unit=DiscountUnit.PERCENTAGE),
            PricedLine(price=Decimal("1200"), quantity=1, discount=Decimal("100")),
        ]
        forward = document_totals(lines, tax_percentage="11")
        backward = document_totals(list(reversed(lines)), tax_percentage="11")
        assert forward == backward

    def test_recomputing_is_idempotent(self):
        lines = [PricedLine(price=Decimal("333.33"), quantity=3)]
        assert document_totals(lines, tax_percentage="11") == \
            document_totals(lines, tax_percentage="11")

    def test_no_lines_leaves_only_shipping(self):
        totals = document_totals([], shipping_cost="15000")
        assert totals.subtotal == Decimal("0")
        assert totals.grand_total == Decimal("15000.00")

    def test_rejects_header_discount_above_subtotal(self):
        with pytest.raises(ValidationRejected) as exc:
            document_totals(
                [PricedLine(price=Decimal("100"), quantity=1)],
                header_discount=Decimal("100.01"),
            )
        assert exc.value.code == ReasonCode.DISCOUNT_EXCEEDS_SUBTOTAL

    @pytest.mark.parametrize("tax", ["-1", "100.5"])
    def test_rejects_tax_out_of_bounds(self, tax):
        with pytest.raises(ValidationRejected) as exc:
            document_totals([PricedLine(price=Decimal("10"), quantity=1)], tax_percentage=tax)
        assert exc.value.code == ReasonCode.INVALID_TAX

    def test_rejects_negative_shipping(self):
        with pytest.raises(ValidationRejected) as exc:
            document_totals([], shipping_cost="-5")
        assert exc.value.code == ReasonCode.INVALID_SHIPPING_COST

    def test_to_dict_uses_strings(self):
        totals = document_totals([PricedLine(price=Decimal("10"), quantity=2)])
        assert totals.to_dict()["grand_total"] == "20.00"
