# Overview: Weighted-average stock updates for purchase receipts and purchase-line maintenance.

"""
Inventory Invariants (authoritative)

Keys:
- A stock row is identified by (product id, warehouse).
- Rows created before warehouse tagging have warehouse=None and are read as
  "main". The first receipt into "main" tags such a row in place instead of
  creating a second "main" row; receipts into other warehouses create a new
  row copied from the product's existing master data.

Costing:
- cost_price is the quantity-weighted average of all receipts:
    new_cost = (qty * cost + in_qty * in_cost) / (qty + in_qty)
- If the resulting quantity is zero the previous cost is kept.

Receipts:
- Exactly one ProductDelta is produced per distinct (product id, warehouse)
  touched by a purchase; lines for the same key are folded together.
- Quantity never decreases on a receipt path.

All functions are pure: they return new lists and never mutate the input
products.
"""

from __future__ import annotations

from typing import Iterable

from ..domain import (
    ORIGIN_LOCAL,
    PRODUCT_TYPE_OTHER,
    WAREHOUSE_MAIN,
    Product,
    ProductDelta,
    PurchaseItem,
    copy_product,
)
from .pricing_service import ensure_finite


class InventoryError(ValueError):
    """Raised when a stock adjustment cannot be applied."""
    pass


def weighted_average_cost(
    existing_qty: float,
    existing_cost: float,
    incoming_qty: float,
    incoming_cost: float,
) -> tuple[float, float]:
    """
    Blend an incoming receipt into the running average.

    Returns:
        (new_quantity, new_cost)
    """
    existing_qty = existing_qty or 0.0
    existing_cost = existing_cost or 0.0
    new_qty = existing_qty + incoming_qty
    if new_qty == 0:
        return new_qty, existing_cost
    new_cost = (existing_qty * existing_cost + incoming_qty * (incoming_cost or 0.0)) / new_qty
    return new_qty, ensure_finite(new_cost, "weighted average cost")


def find_product(products: Iterable[Product], product_id: str, warehouse: str | None) -> Product | None:
    """Exact (id, warehouse) match; an untagged row matches "main"."""
    target = warehouse or WAREHOUSE_MAIN
    for product in products:
        if product.id == product_id and product.effective_warehouse == target:
            return product
    return None


def _find_any(products: Iterable[Product], product_id: str) -> Product | None:
    for product in products:
        if product.id == product_id:
            return product
    return None


def stock_on_hand(products: Iterable[Product], product_id: str) -> float:
    """Quantity across all warehouses."""
    return sum(p.quantity or 0.0 for p in products if p.id == product_id)


def _index_of(products: list[Product], target: Product) -> int:
    for idx, product in enumerate(products):
        if product is target:
            return idx
    raise InventoryError(f"Product {target.id} is not in the list")


def _new_product_row(item: PurchaseItem, warehouse: str, origin: str, template: Product | None) -> Product:
    if template is not None:
        return copy_product(template, warehouse=warehouse, quantity=0.0, cost_price=0.0)
    return Product(
        id=item.product_id,
        name=item.product_name or "New product",
        type=PRODUCT_TYPE_OTHER,
        dimensions=item.dimensions or "-",
        quantity=0.0,
        unit=item.unit,
        price_per_unit=0.0,
        cost_price=0.0,
        origin=origin or ORIGIN_LOCAL,
        warehouse=warehouse,
    )


def apply_receipt(
    products: list[Product],
    items: Iterable[PurchaseItem],
    *,
    warehouse: str | None = None,
    origin: str = ORIGIN_LOCAL,
) -> tuple[list[Product], list[ProductDelta]]:
    """
    Receive purchase lines into stock.

    Each line goes to its own warehouse if set, otherwise to `warehouse`,
    otherwise to "main".

    Returns:
        (updated product list, one delta per touched (product id, warehouse))
    """
    result = list(products)
    before: dict[tuple[str, str], Product | None] = {}
    current: dict[tuple[str, str], Product] = {}

    for item in items:
        target_wh = item.warehouse or warehouse or WAREHOUSE_MAIN
        key = (item.product_id, target_wh)

        row = current.get(key)
        if row is None:
            row = find_product(result, item.product_id, target_wh)
            if row is not None and row.warehouse is None:
                # Legacy untagged row: tag it with the warehouse being received into
                tagged = copy_product(row, warehouse=target_wh)
                result[_index_of(result, row)] = tagged
                before[key] = row
                row = tagged
            elif row is None:
                row = _new_product_row(item, target_wh, origin, _find_any(result, item.product_id))
                result.append(row)
                before[key] = None
            else:
                before[key] = row

        new_qty, new_cost = weighted_average_cost(row.quantity, row.cost_price, item.quantity, item.landed_cost)
        updated = copy_product(row, quantity=new_qty, cost_price=new_cost)
        result[_index_of(result, row)] = updated
        current[key] = updated

    deltas = []
    for key, updated in current.items():
        original = before[key]
        deltas.append(ProductDelta(
            product_id=key[0],
            warehouse=key[1],
            quantity_before=original.quantity if original else 0.0,
            quantity_after=updated.quantity,
            cost_before=original.cost_price if original else 0.0,
            cost_after=updated.cost_price,
            created=original is None,
        ))
    return result, deltas


def adjust_stock(
    products: list[Product],
    product_id: str,
    warehouse: str | None,
    quantity_delta: float,
) -> tuple[list[Product], ProductDelta]:
    """
    Apply a plain quantity change (no cost blending).

    Used when a purchase line is edited or removed after receipt.

    Raises:
        InventoryError: if the stock row does not exist
    """
    row = find_product(products, product_id, warehouse)
    if row is None:
        raise InventoryError(f"No stock row for product {product_id} in warehouse {warehouse or WAREHOUSE_MAIN}")

    result = list(products)
    updated = copy_product(row, quantity=(row.quantity or 0.0) + quantity_delta)
    result[_index_of(result, row)] = updated
    delta = ProductDelta(
        product_id=product_id,
        warehouse=row.effective_warehouse,
        quantity_before=row.quantity,
        quantity_after=updated.quantity,
        cost_before=row.cost_price,
        cost_after=updated.cost_price,
    )
    return result, delta


def inventory_value(products: Iterable[Product], warehouse: str | None = None) -> float:
    """Stock value at cost, optionally for a single warehouse."""
    return sum(
        (p.quantity or 0.0) * (p.cost_price or 0.0)
        for p in products
        if warehouse is None or p.effective_warehouse == warehouse
    )


def tag_legacy_rows(products: list[Product]) -> tuple[list[Product], int]:
    """
    Move untagged stock rows into "main".

    If the product already has a "main" row, the untagged row is folded into
    it with the weighted-average rule and dropped, so each (product id,
    warehouse) key ends up with a single row.

    Returns:
        (updated product list, number of untagged rows handled)
    """
    result = list(products)
    changed = 0
    for legacy in [p for p in products if p.warehouse is None]:
        idx = _index_of(result, legacy)
        main_row = next(
            (p for p in result if p.id == legacy.id and p.warehouse == WAREHOUSE_MAIN),
            None,
        )
        if main_row is None:
            result[idx] = copy_product(legacy, warehouse=WAREHOUSE_MAIN)
        else:
            qty, cost = weighted_average_cost(
                main_row.quantity, main_row.cost_price, legacy.quantity, legacy.cost_price
            )
            result[_index_of(result, main_row)] = copy_product(main_row, quantity=qty, cost_price=cost)
            del result[idx]
        changed += 1
    return result, changed
