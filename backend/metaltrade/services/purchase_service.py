# Overview: Purchase and supplier-debt ledger; pure state transitions over products, purchases and transactions.

"""
Purchase / Debt Ledger

WHY: A purchase touches three things at once: stock (weighted-average cost),
money (payment transactions) and supplier debt. Each operation here takes the
current LedgerState and returns a LedgerResult with the new state and the
events to persist. Nothing is written until the caller persists the result,
so a failure in any step leaves the previous state untouched.

STATE MACHINE (payment_status):
    unpaid -> partial -> paid
- repay() only moves forward and never re-opens a paid purchase.
- A repayment above the remaining debt (beyond tolerance) is rejected, never
  clamped.
- Line edits/deletes recompute the status from the new totals; that is the
  only path that can move a purchase back from paid.

SCHEMA VERSIONS:
- legacy:  total_invoice_amount_uzs empty; amount_paid is USD;
           payable = total_invoice_amount (USD)
- current: amount_paid is UZS, amount_paid_usd tracked separately;
           payable = total_invoice_amount_uzs / exchange_rate
Every "how much is paid / owed" read goes through normalized_paid_usd() and
payable_usd().

STOCK CONSISTENCY:
- Editing or deleting a purchase line applies the quantity difference to the
  same (product, warehouse) row, so stock keeps matching opening stock plus
  purchase history. check_stock_consistency() reports rows where it does not.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Optional

from ..domain import (
    CURRENCY_USD,
    METHOD_CASH,
    METHOD_DEBT,
    METHOD_MIXED,
    ORIGIN_LOCAL,
    STATUS_PAID,
    STATUS_PARTIAL,
    STATUS_UNPAID,
    WAREHOUSE_MAIN,
    WAREHOUSES,
    Balances,
    Product,
    ProductDelta,
    Purchase,
    PurchaseItem,
    PurchaseOverheads,
    Transaction,
    copy_purchase,
)
from ..time_utils import utcnow
from ..validation import ValidationError, coerce_number
from .identifier_service import new_purchase_id
from .inventory_service import InventoryError, adjust_stock, apply_receipt
from .landed_cost_service import AllocationResult, allocate_landed_cost, validate_lines
from .payment_service import PaymentChoice, build_transactions, resolve_payment
from .pricing_service import (
    PricingContext,
    ZERO_EPSILON,
    payment_status,
    usd_to_uzs,
)


class PurchaseError(Exception):
    """Base class for purchase ledger errors."""
    pass


class PurchaseValidationError(PurchaseError, ValidationError):
    """User-correctable purchase input problem."""
    pass


class PurchaseNotFoundError(PurchaseError):
    """Raised when a purchase or purchase line does not exist."""
    pass


_STATUS_RANK = {STATUS_UNPAID: 0, STATUS_PARTIAL: 1, STATUS_PAID: 2}

# Stock quantities closer than this count as equal
STOCK_EPSILON = 1e-6


@dataclass
class LedgerState:
    products: list[Product] = field(default_factory=list)
    purchases: list[Purchase] = field(default_factory=list)
    transactions: list[Transaction] = field(default_factory=list)


@dataclass
class LedgerResult:
    """New state plus the events that produced it."""
    state: LedgerState
    purchase: Purchase
    transactions: list[Transaction] = field(default_factory=list)
    product_deltas: list[ProductDelta] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "purchase": self.purchase.to_dict(),
            "transactions": [t.to_dict() for t in self.transactions],
            "product_deltas": [d.to_dict() for d in self.product_deltas],
        }


@dataclass
class PurchaseCommand:
    """
    Everything the purchase form submits.

    prices_include_vat: invoice prices are VAT-inclusive UZS (VAT-aware
        purchase); otherwise they are USD without VAT.
    exchange_rate: snapshot rate for this purchase; defaults to the context rate.
    """
    supplier_name: str
    items: list[PurchaseItem]
    procurement_type: str = ORIGIN_LOCAL
    warehouse: Optional[str] = None
    overheads: PurchaseOverheads = field(default_factory=PurchaseOverheads)
    payment: PaymentChoice = field(default_factory=lambda: PaymentChoice(method=METHOD_DEBT))
    prices_include_vat: bool = False
    date: Optional[datetime] = None
    exchange_rate: Optional[float] = None


# =============================================================================
# READ HELPERS
# =============================================================================

def normalized_paid_usd(purchase: Purchase) -> float:
    """
    USD paid so far, whatever schema the purchase was stored with.

    current: amount_paid_usd, or amount_paid / exchange_rate when absent
    legacy:  amount_paid_usd if present, else amount_paid (already USD)
    """
    if purchase.amount_paid_usd is not None:
        return purchase.amount_paid_usd
    if purchase.is_legacy:
        return purchase.amount_paid or 0.0
    if purchase.exchange_rate:
        return (purchase.amount_paid or 0.0) / purchase.exchange_rate
    return 0.0


def payable_usd(purchase: Purchase, default_rate: float | None = None) -> float:
    """What the supplier is owed in USD (VAT-inclusive for current-schema purchases)."""
    if purchase.is_legacy:
        return purchase.total_invoice_amount or 0.0
    rate = purchase.exchange_rate or default_rate
    if not rate:
        return purchase.total_invoice_amount or 0.0
    return purchase.total_invoice_amount_uzs / rate


def remaining_debt_usd(purchase: Purchase, default_rate: float | None = None) -> float:
    return max(0.0, payable_usd(purchase, default_rate) - normalized_paid_usd(purchase))


def find_purchase(purchases: list[Purchase], purchase_id: str) -> Purchase:
    for purchase in purchases:
        if purchase.id == purchase_id:
            return purchase
    raise PurchaseNotFoundError(f"Purchase {purchase_id} not found")


def supplier_debts(purchases: list[Purchase], default_rate: float | None = None) -> list[dict]:
    """
    Outstanding supplier debt grouped by supplier, largest first.

    Suppliers with nothing outstanding are left out.
    """
    grouped: dict[str, dict] = {}
    for purchase in purchases:
        debt = remaining_debt_usd(purchase, default_rate)
        if debt <= ZERO_EPSILON:
            continue
        entry = grouped.setdefault(purchase.supplier_name, {
            "supplier_name": purchase.supplier_name,
            "purchase_ids": [],
            "payable_usd": 0.0,
            "paid_usd": 0.0,
            "debt_usd": 0.0,
        })
        entry["purchase_ids"].append(purchase.id)
        entry["payable_usd"] += payable_usd(purchase, default_rate)
        entry["paid_usd"] += normalized_paid_usd(purchase)
        entry["debt_usd"] += debt
    return sorted(grouped.values(), key=lambda e: e["debt_usd"], reverse=True)


def _purchase_context(purchase: Purchase, ctx: PricingContext) -> PricingContext:
    return ctx.with_rate(purchase.exchange_rate)


def _status_for(purchase: Purchase, ctx: PricingContext) -> str:
    return payment_status(
        normalized_paid_usd(purchase),
        payable_usd(purchase, ctx.exchange_rate),
        ctx.tolerance_usd,
    )


def _replace_purchase(purchases: list[Purchase], updated: Purchase) -> list[Purchase]:
    return [updated if p.id == updated.id else p for p in purchases]


def _line_warehouse(purchase: Purchase, item: PurchaseItem) -> str:
    return item.warehouse or purchase.warehouse or WAREHOUSE_MAIN


# =============================================================================
# CREATE
# =============================================================================

def _validate_command(command: PurchaseCommand) -> None:
    if not (command.supplier_name or "").strip():
        raise PurchaseValidationError("Supplier name is required")
    if command.warehouse is not None and command.warehouse not in WAREHOUSES:
        raise PurchaseValidationError(f"warehouse must be one of: {', '.join(sorted(WAREHOUSES))}")
    for item in command.items:
        if item.warehouse is not None and item.warehouse not in WAREHOUSES:
            raise PurchaseValidationError(f"warehouse must be one of: {', '.join(sorted(WAREHOUSES))}")
    validate_lines(command.items)


def _allocate(command: PurchaseCommand, ctx: PricingContext) -> AllocationResult:
    return allocate_landed_cost(
        command.items,
        command.overheads,
        command.procurement_type,
        ctx,
        prices_include_vat=command.prices_include_vat,
    )


def preview_purchase(command: PurchaseCommand, ctx: PricingContext) -> dict:
    """
    Landed costs, totals and payment outcome without touching any state.

    Balances are not checked here; create_purchase() does that.
    """
    _validate_command(command)
    ctx = ctx.with_rate(command.exchange_rate)
    allocation = _allocate(command, ctx)
    resolution = resolve_payment(allocation.total_invoice_value_uzs, command.payment, ctx)
    return {
        "allocation": allocation.to_dict(),
        "payment": resolution.to_dict(),
        "pricing": ctx.to_dict(),
    }


def create_purchase(
    state: LedgerState,
    command: PurchaseCommand,
    ctx: PricingContext,
    *,
    balances: Balances | None = None,
) -> LedgerResult:
    """
    Record a supplier purchase.

    Runs landed cost allocation, then payment resolution, then the stock
    receipt. Any error leaves `state` untouched.

    Args:
        state: current products, purchases and transactions
        command: the purchase form
        ctx: pricing context (rate, VAT, tolerance, import tax policy)
        balances: till/account snapshot for the funds check; None skips it

    Returns:
        LedgerResult with the new purchase, its payment transactions and one
        ProductDelta per touched (product, warehouse)

    Raises:
        ValidationError: bad supplier, cart, overheads or payment
        InsufficientFundsError: chosen account does not cover the payment
        ConfigurationError: rates produce non-finite amounts
    """
    _validate_command(command)
    ctx = ctx.with_rate(command.exchange_rate)
    warehouse = command.warehouse or WAREHOUSE_MAIN

    allocation = _allocate(command, ctx)
    resolution = resolve_payment(
        allocation.total_invoice_value_uzs, command.payment, ctx, balances=balances
    )

    items = [replace(item, warehouse=item.warehouse or warehouse) for item in allocation.items]
    products, deltas = apply_receipt(
        state.products, items, warehouse=warehouse, origin=command.procurement_type
    )

    purchase_id = new_purchase_id()
    date = command.date or utcnow()
    purchase = Purchase(
        id=purchase_id,
        date=date,
        supplier_name=command.supplier_name.strip(),
        items=items,
        overheads=(
            PurchaseOverheads() if command.procurement_type == ORIGIN_LOCAL else replace(command.overheads)
        ),
        total_invoice_amount=allocation.total_invoice_value,
        total_landed_amount=allocation.total_landed_value,
        total_invoice_amount_uzs=allocation.total_invoice_value_uzs,
        total_vat_amount_uzs=allocation.total_vat_amount_uzs,
        total_without_vat_uzs=allocation.total_without_vat_uzs,
        payment_method=resolution.method,
        payment_currency=resolution.currency,
        payment_status=resolution.status,
        amount_paid=resolution.paid_uzs,
        amount_paid_usd=resolution.paid_usd,
        exchange_rate=ctx.exchange_rate,
        warehouse=warehouse,
        procurement_type=command.procurement_type,
        prices_include_vat=command.prices_include_vat,
    )

    transactions = build_transactions(
        resolution,
        purchase_id=purchase_id,
        description=f"Payment to supplier {purchase.supplier_name} (purchase {purchase_id})",
        date=date,
    )

    new_state = LedgerState(
        products=products,
        purchases=[*state.purchases, purchase],
        transactions=[*state.transactions, *transactions],
    )
    return LedgerResult(state=new_state, purchase=purchase, transactions=transactions, product_deltas=deltas)


# =============================================================================
# REPAY
# =============================================================================

def repay(
    state: LedgerState,
    purchase_id: str,
    amount: float | dict,
    ctx: PricingContext,
    *,
    method: str = METHOD_CASH,
    currency: str = CURRENCY_USD,
    balances: Balances | None = None,
    date: datetime | None = None,
) -> LedgerResult:
    """
    Pay down a supplier debt.

    Args:
        amount: amount in `currency`, or a mixed distribution dict
            ({cash_usd, cash_uzs, card_uzs, bank_uzs}) which implies method=mixed
        method: cash, bank or card (ignored for a distribution)
        currency: USD or UZS; bank/card are always UZS

    Amounts are converted at the purchase's snapshot rate so the UZS and USD
    paid totals stay in step.

    Raises:
        PurchaseNotFoundError: unknown purchase
        PurchaseValidationError: purchase already paid, amount <= 0, amount
            above remaining debt beyond tolerance, or method=debt
        InsufficientFundsError: chosen account does not cover the amount
    """
    purchase = find_purchase(state.purchases, purchase_id)
    pctx = _purchase_context(purchase, ctx)

    remaining = remaining_debt_usd(purchase, pctx.exchange_rate)
    if purchase.payment_status == STATUS_PAID or remaining <= pctx.tolerance_usd:
        raise PurchaseValidationError(f"Purchase {purchase_id} is already paid")

    if isinstance(amount, dict):
        choice = PaymentChoice(method=METHOD_MIXED, distribution=amount)
    else:
        if method in (METHOD_DEBT, METHOD_MIXED):
            raise PurchaseValidationError("Repayment method must be cash, bank or card")
        value = coerce_number(amount, "amount")
        if value <= 0:
            raise PurchaseValidationError("Repayment amount must be positive")
        choice = PaymentChoice(method=method, currency=currency, amount=value)

    try:
        resolution = resolve_payment(
            usd_to_uzs(remaining, pctx), choice, pctx, balances=balances
        )
    except PurchaseError:
        raise
    except ValidationError as e:
        raise PurchaseValidationError(f"{e} (remaining debt {remaining:,.2f} USD)")

    if resolution.paid_uzs <= ZERO_EPSILON:
        raise PurchaseValidationError("Repayment amount must be positive")

    paid_usd = normalized_paid_usd(purchase) + resolution.paid_usd
    if purchase.is_legacy:
        amount_paid = (purchase.amount_paid or 0.0) + resolution.paid_usd
    else:
        amount_paid = (purchase.amount_paid or 0.0) + resolution.paid_uzs

    updated = copy_purchase(purchase, amount_paid=amount_paid, amount_paid_usd=paid_usd)
    status = _status_for(updated, pctx)
    if _STATUS_RANK[status] < _STATUS_RANK.get(purchase.payment_status, 0):
        status = purchase.payment_status
    updated = copy_purchase(updated, payment_status=status)

    transactions = build_transactions(
        resolution,
        purchase_id=purchase.id,
        description=f"Debt repayment to supplier {purchase.supplier_name} (purchase {purchase.id})",
        date=date or utcnow(),
    )

    new_state = LedgerState(
        products=list(state.products),
        purchases=_replace_purchase(state.purchases, updated),
        transactions=[*state.transactions, *transactions],
    )
    return LedgerResult(state=new_state, purchase=updated, transactions=transactions)


# =============================================================================
# LINE MAINTENANCE
# =============================================================================

def _recalculate(purchase: Purchase, items: list[PurchaseItem], ctx: PricingContext) -> Purchase:
    """Re-run allocation over `items` and refresh the purchase totals and status."""
    allocation = allocate_landed_cost(
        items,
        purchase.overheads,
        purchase.procurement_type,
        ctx,
        prices_include_vat=purchase.prices_include_vat,
    )
    changes = dict(
        items=allocation.items,
        total_invoice_amount=allocation.total_invoice_value,
        total_landed_amount=allocation.total_landed_value,
    )
    if not purchase.is_legacy:
        changes.update(
            total_invoice_amount_uzs=allocation.total_invoice_value_uzs,
            total_vat_amount_uzs=allocation.total_vat_amount_uzs,
            total_without_vat_uzs=allocation.total_without_vat_uzs,
        )
    updated = copy_purchase(purchase, **changes)
    return copy_purchase(updated, payment_status=_status_for(updated, ctx))


def _find_line(purchase: Purchase, product_id: str) -> int:
    for idx, item in enumerate(purchase.items):
        if item.product_id == product_id:
            return idx
    raise PurchaseNotFoundError(f"Product {product_id} is not on purchase {purchase.id}")


def _apply_line_delta(
    products: list[Product],
    purchase: Purchase,
    item: PurchaseItem,
    quantity_delta: float,
) -> tuple[list[Product], ProductDelta]:
    warehouse = _line_warehouse(purchase, item)
    try:
        products, delta = adjust_stock(products, item.product_id, warehouse, quantity_delta)
    except InventoryError as e:
        raise PurchaseValidationError(str(e))
    if delta.quantity_after < -STOCK_EPSILON:
        raise PurchaseValidationError(
            f"Only {delta.quantity_before:g} of {item.product_name or item.product_id} left in stock; "
            f"cannot remove {-quantity_delta:g}"
        )
    return products, delta


def edit_purchase_line(
    state: LedgerState,
    purchase_id: str,
    product_id: str,
    ctx: PricingContext,
    *,
    quantity: float | None = None,
    invoice_price: float | None = None,
) -> LedgerResult:
    """
    Change quantity and/or price of one purchase line.

    Stock moves by (new quantity - old quantity); the product's cost price is
    left as it is. Totals are recomputed at the purchase's snapshot rate.

    Raises:
        PurchaseNotFoundError: unknown purchase or product not on it
        PurchaseValidationError: non-positive values, nothing to change, or
            the stock row cannot absorb the reduction
    """
    if quantity is None and invoice_price is None:
        raise PurchaseValidationError("Nothing to change: pass quantity and/or invoice_price")

    purchase = find_purchase(state.purchases, purchase_id)
    idx = _find_line(purchase, product_id)
    old_item = purchase.items[idx]

    new_quantity = old_item.quantity if quantity is None else coerce_number(quantity, "quantity", positive=True)
    new_price = old_item.invoice_price if invoice_price is None else coerce_number(
        invoice_price, "invoice_price", positive=True
    )

    items = list(purchase.items)
    items[idx] = replace(old_item, quantity=new_quantity, invoice_price=new_price)

    deltas = []
    products = list(state.products)
    quantity_delta = new_quantity - old_item.quantity
    if quantity_delta:
        products, delta = _apply_line_delta(products, purchase, old_item, quantity_delta)
        deltas.append(delta)

    updated = _recalculate(purchase, items, _purchase_context(purchase, ctx))
    new_state = LedgerState(
        products=products,
        purchases=_replace_purchase(state.purchases, updated),
        transactions=list(state.transactions),
    )
    return LedgerResult(state=new_state, purchase=updated, product_deltas=deltas)


def delete_purchase_line(
    state: LedgerState,
    purchase_id: str,
    product_id: str,
    ctx: PricingContext,
) -> LedgerResult:
    """
    Remove one line and take its quantity back out of stock.

    Raises:
        PurchaseNotFoundError: unknown purchase or product not on it
        PurchaseValidationError: it is the last line, or stock cannot absorb it
    """
    purchase = find_purchase(state.purchases, purchase_id)
    idx = _find_line(purchase, product_id)
    if len(purchase.items) == 1:
        raise PurchaseValidationError("Cannot delete the last line of a purchase")

    removed = purchase.items[idx]
    products, delta = _apply_line_delta(list(state.products), purchase, removed, -removed.quantity)

    items = [item for i, item in enumerate(purchase.items) if i != idx]
    updated = _recalculate(purchase, items, _purchase_context(purchase, ctx))
    new_state = LedgerState(
        products=products,
        purchases=_replace_purchase(state.purchases, updated),
        transactions=list(state.transactions),
    )
    return LedgerResult(state=new_state, purchase=updated, product_deltas=[delta])


# =============================================================================
# LEGACY SCHEMA / CONSISTENCY
# =============================================================================

def migrate_legacy_purchase(purchase: Purchase, ctx: PricingContext) -> Purchase:
    """
    Convert a legacy (USD-only) purchase to the current schema.

    UZS fields are filled at the purchase's snapshot rate, or the context rate
    when it has none. Legacy purchases never carried VAT, so the whole amount
    is recorded as net. Current-schema purchases are returned unchanged.
    """
    if not purchase.is_legacy:
        return purchase

    pctx = _purchase_context(purchase, ctx)
    rate = pctx.exchange_rate
    paid_usd = normalized_paid_usd(purchase)
    total_uzs = usd_to_uzs(purchase.total_invoice_amount or 0.0, pctx)

    items = [
        item if item.total_line_cost_uzs else replace(
            item, total_line_cost_uzs=usd_to_uzs(item.quantity * item.invoice_price, pctx)
        )
        for item in purchase.items
    ]
    migrated = copy_purchase(
        purchase,
        items=items,
        total_invoice_amount_uzs=total_uzs,
        total_vat_amount_uzs=0.0,
        total_without_vat_uzs=total_uzs,
        amount_paid=usd_to_uzs(paid_usd, pctx),
        amount_paid_usd=paid_usd,
        exchange_rate=rate,
    )
    if not migrated.total_invoice_amount_uzs:
        # Zero-value purchase: nothing to express in UZS, keep it as is
        return purchase
    return copy_purchase(migrated, payment_status=_status_for(migrated, pctx))


def check_stock_consistency(
    products: list[Product],
    purchases: list[Purchase],
    opening: dict | None = None,
) -> list[dict]:
    """
    Compare stock rows with opening stock plus purchase history.

    Args:
        opening: {(product_id, warehouse): quantity} present before any
            recorded purchase

    Returns:
        One dict per (product id, warehouse) whose quantity differs; empty
        when everything matches.
    """
    expected: dict[tuple[str, str], float] = dict(opening or {})
    for purchase in purchases:
        for item in purchase.items:
            key = (item.product_id, _line_warehouse(purchase, item))
            expected[key] = expected.get(key, 0.0) + item.quantity

    actual: dict[tuple[str, str], float] = {}
    for product in products:
        key = (product.id, product.effective_warehouse)
        actual[key] = actual.get(key, 0.0) + (product.quantity or 0.0)

    problems = []
    for key in sorted(set(expected) | set(actual)):
        exp = expected.get(key, 0.0)
        act = actual.get(key, 0.0)
        if abs(exp - act) > STOCK_EPSILON:
            problems.append({
                "product_id": key[0],
                "warehouse": key[1],
                "expected": exp,
                "actual": act,
                "difference": act - exp,
            })
    return problems
