"""
Landed cost allocation for local, import and VAT-aware purchases.
"""

import pytest

from conftest import line
from metaltrade.domain import PurchaseOverheads
from metaltrade.services.landed_cost_service import allocate_landed_cost, validate_lines
from metaltrade.services.pricing_service import PricingContext
from metaltrade.validation import ValidationError


def test_local_purchase_ignores_overheads(ctx):
    result = allocate_landed_cost(
        [line(quantity=10, price=2)],
        PurchaseOverheads(logistics=50),
        "local",
        ctx,
    )
    assert result.items[0].landed_cost == 2
    assert result.total_overheads == 0
    assert result.total_landed_value == 20
    assert result.total_invoice_value_uzs == 20 * 12800


def test_import_overheads_spread_by_value_share(ctx):
    # Line values 20 and 60 USD; 20 USD of overheads -> 5 and 15
    result = allocate_landed_cost(
        [line("A", quantity=10, price=2), line("B", quantity=20, price=3)],
        PurchaseOverheads(logistics=12, customs_duty=4, import_vat=2, other=2),
        "import",
        ctx,
    )
    a, b = result.items
    assert result.allocated_overheads == pytest.approx([5, 15])
    assert a.landed_cost == pytest.approx(2.5)
    assert b.landed_cost == pytest.approx(3.75)
    assert result.total_landed_value == pytest.approx(100)


def test_import_sum_of_allocations_equals_overheads(ctx):
    items = [line("A", 3, 7.13), line("B", 11, 0.97), line("C", 1, 250)]
    result = allocate_landed_cost(items, PurchaseOverheads(logistics=33.33), "import", ctx)
    assert sum(result.allocated_overheads) == pytest.approx(33.33)
    assert result.total_landed_value == pytest.approx(result.total_invoice_value + 33.33)


def test_expense_policy_keeps_taxes_out_of_cost():
    ctx = PricingContext(exchange_rate=12800, import_tax_policy="expense")
    result = allocate_landed_cost(
        [line(quantity=10, price=2)],
        PurchaseOverheads(logistics=10, customs_duty=4, import_vat=6),
        "import",
        ctx,
    )
    assert result.items[0].landed_cost == pytest.approx(3)
    assert result.total_overheads == pytest.approx(10)
    assert result.total_taxes == pytest.approx(10)


def test_vat_aware_extracts_vat_before_converting(ctx):
    # 28672 UZS gross -> 25600 net -> 2 USD
    result = allocate_landed_cost([line(quantity=10, price=28672)], None, "local", ctx, prices_include_vat=True)
    item = result.items[0]
    assert item.invoice_price_without_vat == pytest.approx(25600)
    assert item.vat_amount == pytest.approx(30720)
    assert item.landed_cost == pytest.approx(2)
    assert result.total_invoice_value_uzs == pytest.approx(286720)
    assert result.total_vat_amount_uzs == pytest.approx(30720)
    assert result.total_without_vat_uzs == pytest.approx(256000)


def test_zero_invoice_value_allocates_nothing(ctx):
    result = allocate_landed_cost([line(quantity=5, price=0)], PurchaseOverheads(logistics=10), "import", ctx)
    assert result.allocated_overheads == [0.0]
    assert result.items[0].landed_cost == 0


def test_inputs_are_not_mutated(ctx):
    items = [line(quantity=10, price=2)]
    allocate_landed_cost(items, PurchaseOverheads(logistics=5), "import", ctx)
    assert items[0].landed_cost == 0


def test_negative_overhead_rejected(ctx):
    with pytest.raises(ValidationError):
        allocate_landed_cost([line()], PurchaseOverheads(logistics=-1), "import", ctx)


def test_unknown_procurement_type_rejected(ctx):
    with pytest.raises(ValidationError):
        allocate_landed_cost([line()], None, "barter", ctx)


class TestValidateLines:

    def test_empty_cart(self):
        with pytest.raises(ValidationError, match="at least one line"):
            validate_lines([])

    def test_duplicate_product(self):
        with pytest.raises(ValidationError, match="already in this purchase"):
            validate_lines([line("A"), line("A")])

    @pytest.mark.parametrize("quantity,price", [(0, 1), (-1, 1), (1, 0), (1, -5)])
    def test_non_positive_values(self, quantity, price):
        with pytest.raises(ValidationError):
            validate_lines([line(quantity=quantity, price=price)])
