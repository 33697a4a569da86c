# Overview: Procurement side of sales workflow orders: shortages, the procurement queue and hand-off to the cash desk.

"""
Workflow Demand

Sales raises a workflow order; if stock is short the order is sent to
procurement. Procurement sees the queue, drafts a purchase for exactly the
shortage, and once stock covers every line sends the order on to the cash
desk.

RULES:
- Availability is the product's stock across all warehouses.
- A line for an unknown product is always missing (available = 0).
- missing_qty = max(0, ordered - available).
- An order reaches sent_to_cash only when nothing is missing.
"""

from __future__ import annotations

from dataclasses import replace
from typing import Iterable

from ..domain import (
    CURRENCY_USD,
    METHOD_DEBT,
    ORIGIN_LOCAL,
    WF_CANCELLED,
    WF_COMPLETED,
    WF_SENT_TO_CASH,
    WF_SENT_TO_PROCUREMENT,
    MissingItem,
    OrderItem,
    Product,
    PurchaseItem,
    WorkflowOrder,
)
from .inventory_service import stock_on_hand


class WorkflowError(Exception):
    """Base class for workflow order errors."""
    pass


class WorkflowNotFoundError(WorkflowError):
    pass


class WorkflowStateError(WorkflowError):
    """The order cannot move in its current state."""
    pass


_CLOSED_STATUSES = {WF_COMPLETED, WF_CANCELLED}


def missing_items(items: Iterable[OrderItem], products: list[Product]) -> list[MissingItem]:
    known = {p.id for p in products}
    missing = []
    for item in items:
        available = stock_on_hand(products, item.product_id)
        missing_qty = max(0.0, item.quantity - available)
        if item.product_id not in known or missing_qty > 0:
            missing.append(MissingItem(item=item, available=available, missing_qty=missing_qty))
    return missing


def is_fully_in_stock(order: WorkflowOrder, products: list[Product]) -> bool:
    return not missing_items(order.items, products)


def procurement_queue(orders: Iterable[WorkflowOrder]) -> list[WorkflowOrder]:
    """Orders waiting on procurement, newest first."""
    queued = [o for o in orders if o.status == WF_SENT_TO_PROCUREMENT]
    return sorted(queued, key=lambda o: o.date.timestamp() if o.date else 0.0, reverse=True)


def find_order(orders: Iterable[WorkflowOrder], order_id: str) -> WorkflowOrder:
    for order in orders:
        if order.id == order_id:
            return order
    raise WorkflowNotFoundError(f"Workflow order {order_id} not found")


def draft_purchase_lines(order: WorkflowOrder, products: list[Product]) -> list[PurchaseItem]:
    """
    Purchase lines covering the order's shortage.

    Prices are left at zero; the buyer fills them in before submitting.
    """
    lines = []
    for missing in missing_items(order.items, products):
        if missing.missing_qty <= 0:
            continue
        product = next((p for p in products if p.id == missing.item.product_id), None)
        lines.append(PurchaseItem(
            product_id=missing.item.product_id,
            product_name=missing.item.product_name,
            quantity=missing.missing_qty,
            invoice_price=0.0,
            unit=product.unit if product else missing.item.unit,
            dimensions=missing.item.dimensions,
        ))
    return lines


def draft_purchase(order: WorkflowOrder, products: list[Product]) -> dict:
    """
    A local, debt-paid purchase draft for the order's shortage.

    Raises:
        WorkflowStateError: nothing is missing
    """
    lines = draft_purchase_lines(order, products)
    if not lines:
        raise WorkflowStateError("All items are in stock; send the order to the cash desk instead")
    return {
        "supplier_name": f"Workflow: {order.customer_name} ({order.id})",
        "procurement_type": ORIGIN_LOCAL,
        "payment": {"method": METHOD_DEBT, "currency": CURRENCY_USD},
        "items": [line.to_dict() for line in lines],
    }


def send_to_cash(
    orders: list[WorkflowOrder],
    order_id: str,
    products: list[Product],
) -> tuple[list[WorkflowOrder], WorkflowOrder]:
    """
    Move an order to sent_to_cash.

    Raises:
        WorkflowNotFoundError: unknown order
        WorkflowStateError: order is closed or stock is still short
    """
    order = find_order(orders, order_id)
    if order.status in _CLOSED_STATUSES:
        raise WorkflowStateError(f"Workflow order {order_id} is {order.status}")
    missing = missing_items(order.items, products)
    if missing:
        names = ", ".join(m.item.product_name or m.item.product_id for m in missing)
        raise WorkflowStateError(f"Stock is still short for: {names}")

    updated = replace(order, status=WF_SENT_TO_CASH)
    return [updated if o.id == order_id else o for o in orders], updated
