"""
Weighted-average receipts, stock adjustments and legacy warehouse tagging.
"""

import pytest

from conftest import line
from metaltrade.domain import Product
from metaltrade.services.inventory_service import (
    InventoryError,
    adjust_stock,
    apply_receipt,
    find_product,
    inventory_value,
    stock_on_hand,
    tag_legacy_rows,
    weighted_average_cost,
)


def test_weighted_average_blends_costs():
    assert weighted_average_cost(10, 2.0, 10, 4.0) == (20, 3.0)


def test_weighted_average_zero_result_keeps_cost():
    assert weighted_average_cost(5, 2.0, -5, 9.0) == (0, 2.0)


def test_weighted_average_from_empty_row():
    assert weighted_average_cost(0, 0, 4, 2.5) == (4, 2.5)


class TestApplyReceipt:

    def test_receipt_into_existing_row(self):
        products = [Product(id="P-1", name="Pipe", quantity=10, cost_price=2.0, warehouse="main")]
        result, deltas = apply_receipt(products, [line(quantity=10, price=4, landed_cost=4.0)])
        row = find_product(result, "P-1", "main")
        assert (row.quantity, row.cost_price) == (20, 3.0)
        assert len(deltas) == 1
        assert deltas[0].quantity_delta == 10
        assert deltas[0].cost_before == 2.0 and deltas[0].cost_after == 3.0
        # input list untouched
        assert products[0].quantity == 10

    def test_untagged_row_is_tagged_main_in_place(self):
        products = [Product(id="P-1", name="Pipe", quantity=5, cost_price=2.0)]
        result, deltas = apply_receipt(products, [line(quantity=5, landed_cost=2.0)], warehouse="main")
        assert len(result) == 1
        assert result[0].warehouse == "main"
        assert result[0].quantity == 10
        assert not deltas[0].created

    def test_cloud_receipt_creates_row_from_master_data(self):
        products = [Product(id="P-1", name="Pipe", type="Труба", dimensions="57x3", quantity=5, cost_price=2.0)]
        result, deltas = apply_receipt(products, [line(quantity=3, landed_cost=4.0)], warehouse="cloud")
        assert len(result) == 2
        cloud = find_product(result, "P-1", "cloud")
        assert (cloud.name, cloud.dimensions, cloud.quantity, cloud.cost_price) == ("Pipe", "57x3", 3, 4.0)
        # the untagged row still reads as main and is untouched
        assert find_product(result, "P-1", "main").quantity == 5
        assert deltas[0].created

    def test_unknown_product_creates_row(self):
        result, deltas = apply_receipt([], [line("NEW", quantity=2, landed_cost=1.5, unit="т")])
        assert result[0].id == "NEW"
        assert result[0].unit == "т"
        assert result[0].warehouse == "main"
        assert deltas[0].created

    def test_one_delta_per_key(self):
        items = [
            line("A", quantity=1, landed_cost=1.0),
            line("A", quantity=3, landed_cost=2.0),
            line("B", quantity=2, landed_cost=1.0),
        ]
        result, deltas = apply_receipt([], items)
        assert sorted((d.product_id, d.quantity_after) for d in deltas) == [("A", 4), ("B", 2)]
        assert find_product(result, "A", "main").cost_price == pytest.approx(1.75)

    def test_line_warehouse_overrides_default(self):
        result, _ = apply_receipt([], [line(quantity=1, landed_cost=1.0, warehouse="cloud")], warehouse="main")
        assert result[0].warehouse == "cloud"


class TestAdjustStock:

    def test_quantity_only(self):
        products = [Product(id="P-1", name="Pipe", quantity=10, cost_price=3.0, warehouse="main")]
        result, delta = adjust_stock(products, "P-1", "main", -4)
        assert result[0].quantity == 6
        assert result[0].cost_price == 3.0
        assert delta.quantity_delta == -4

    def test_missing_row(self):
        with pytest.raises(InventoryError):
            adjust_stock([], "P-1", "main", 1)


def test_stock_on_hand_spans_warehouses():
    products = [
        Product(id="P-1", name="Pipe", quantity=4, warehouse="main"),
        Product(id="P-1", name="Pipe", quantity=6, warehouse="cloud"),
        Product(id="P-2", name="Sheet", quantity=1, warehouse="main"),
    ]
    assert stock_on_hand(products, "P-1") == 10
    assert inventory_value(products) == 0


def test_inventory_value_per_warehouse():
    products = [
        Product(id="P-1", name="Pipe", quantity=4, cost_price=2.0, warehouse="main"),
        Product(id="P-1", name="Pipe", quantity=6, cost_price=3.0, warehouse="cloud"),
    ]
    assert inventory_value(products) == 26
    assert inventory_value(products, "cloud") == 18


class TestTagLegacyRows:

    def test_tags_lone_untagged_row(self):
        result, changed = tag_legacy_rows([Product(id="P-1", name="Pipe", quantity=3)])
        assert changed == 1
        assert result[0].warehouse == "main"

    def test_merges_into_existing_main_row(self):
        products = [
            Product(id="P-1", name="Pipe", quantity=10, cost_price=2.0, warehouse="main"),
            Product(id="P-1", name="Pipe", quantity=10, cost_price=4.0),
        ]
        result, changed = tag_legacy_rows(products)
        assert changed == 1
        assert len(result) == 1
        assert (result[0].quantity, result[0].cost_price) == (20, 3.0)
        assert inventory_value(result) == inventory_value(products)

    def test_tagged_rows_untouched(self):
        products = [Product(id="P-1", name="Pipe", quantity=1, warehouse="cloud")]
        result, changed = tag_legacy_rows(products)
        assert changed == 0
        assert result == products
