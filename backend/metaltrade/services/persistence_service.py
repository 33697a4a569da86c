# Overview: Maps ledger dataclasses to SQLAlchemy records and applies ledger results in one transaction.

"""
Persistence Service

TWO-PHASE COMMIT:
1. A ledger operation builds its full LedgerResult in memory.
2. apply_result() writes every product row, the purchase with its lines and
   the new transactions in one session transaction.
3. Only after commit is the result handed back to the client.

If the database rejects anything the session is rolled back and
PersistenceError raised; nothing from the operation is visible.

PRODUCT ROWS:
- Matched by (product_id, warehouse). An untagged (NULL) row counts as
  "main" and is tagged when the ledger tags it.
"""

from __future__ import annotations

from typing import Iterable

from sqlalchemy.exc import SQLAlchemyError

from ..domain import (
    WAREHOUSE_MAIN,
    OrderItem,
    Product,
    Purchase,
    PurchaseItem,
    PurchaseOverheads,
    Transaction,
    WorkflowOrder,
)
from ..extensions import db
from ..models import (
    ProductRecord,
    PurchaseLineRecord,
    PurchaseRecord,
    TransactionRecord,
    WorkflowOrderLineRecord,
    WorkflowOrderRecord,
)
from .inventory_service import find_product
from .purchase_service import LedgerResult, LedgerState


class PersistenceError(Exception):
    """Raised when a ledger result could not be stored; nothing was written."""
    pass


# =============================================================================
# RECORD -> DOMAIN
# =============================================================================

def product_from_record(row: ProductRecord) -> Product:
    return Product(
        id=row.product_id,
        name=row.name,
        type=row.type,
        dimensions=row.dimensions,
        steel_grade=row.steel_grade,
        quantity=row.quantity or 0.0,
        unit=row.unit,
        price_per_unit=row.price_per_unit or 0.0,
        cost_price=row.cost_price or 0.0,
        min_stock_level=row.min_stock_level or 0.0,
        origin=row.origin,
        warehouse=row.warehouse,
        manufacturer=row.manufacturer,
    )


def purchase_from_record(row: PurchaseRecord) -> Purchase:
    items = [
        PurchaseItem(
            product_id=line.product_id,
            product_name=line.product_name,
            quantity=line.quantity,
            invoice_price=line.invoice_price,
            unit=line.unit,
            invoice_price_without_vat=line.invoice_price_without_vat or 0.0,
            vat_amount=line.vat_amount or 0.0,
            landed_cost=line.landed_cost or 0.0,
            total_line_cost=line.total_line_cost or 0.0,
            total_line_cost_uzs=line.total_line_cost_uzs or 0.0,
            dimensions=line.dimensions,
            warehouse=line.warehouse,
        )
        for line in row.lines
    ]
    return Purchase(
        id=row.id,
        date=row.date,
        supplier_name=row.supplier_name,
        items=items,
        overheads=PurchaseOverheads(
            logistics=row.overhead_logistics or 0.0,
            customs_duty=row.overhead_customs_duty or 0.0,
            import_vat=row.overhead_import_vat or 0.0,
            other=row.overhead_other or 0.0,
        ),
        total_invoice_amount=row.total_invoice_amount or 0.0,
        total_landed_amount=row.total_landed_amount or 0.0,
        total_invoice_amount_uzs=row.total_invoice_amount_uzs,
        total_vat_amount_uzs=row.total_vat_amount_uzs or 0.0,
        total_without_vat_uzs=row.total_without_vat_uzs or 0.0,
        payment_method=row.payment_method,
        payment_currency=row.payment_currency,
        payment_status=row.payment_status,
        amount_paid=row.amount_paid or 0.0,
        amount_paid_usd=row.amount_paid_usd,
        exchange_rate=row.exchange_rate,
        warehouse=row.warehouse,
        procurement_type=row.procurement_type,
        prices_include_vat=bool(row.prices_include_vat),
        status=row.status,
    )


def transaction_from_record(row: TransactionRecord) -> Transaction:
    return Transaction(
        id=row.id,
        date=row.date,
        type=row.type,
        amount=row.amount,
        currency=row.currency,
        method=row.method,
        description=row.description or "",
        exchange_rate=row.exchange_rate,
        related_id=row.related_id,
    )


def workflow_from_record(row: WorkflowOrderRecord) -> WorkflowOrder:
    return WorkflowOrder(
        id=row.id,
        customer_name=row.customer_name,
        status=row.status,
        date=row.date,
        items=[
            OrderItem(
                product_id=line.product_id,
                product_name=line.product_name,
                quantity=line.quantity,
                unit=line.unit,
                dimensions=line.dimensions,
                price_at_sale=line.price_at_sale or 0.0,
            )
            for line in row.lines
        ],
    )


# =============================================================================
# DOMAIN -> RECORD
# =============================================================================

_PRODUCT_FIELDS = (
    "name", "type", "dimensions", "steel_grade", "quantity", "unit",
    "price_per_unit", "cost_price", "min_stock_level", "origin", "manufacturer",
)

_PURCHASE_FIELDS = (
    "date", "supplier_name", "status", "procurement_type", "warehouse",
    "prices_include_vat", "exchange_rate", "total_invoice_amount",
    "total_landed_amount", "total_invoice_amount_uzs", "total_vat_amount_uzs",
    "total_without_vat_uzs", "payment_method", "payment_currency",
    "payment_status", "amount_paid", "amount_paid_usd",
)

_LINE_FIELDS = (
    "product_name", "unit", "dimensions", "warehouse", "quantity",
    "invoice_price", "invoice_price_without_vat", "vat_amount", "landed_cost",
    "total_line_cost", "total_line_cost_uzs",
)


def _product_record_for(product_id: str, warehouse: str) -> ProductRecord | None:
    """Exact (id, warehouse) row, else the untagged row when asking for main."""
    row = db.session.query(ProductRecord).filter_by(product_id=product_id, warehouse=warehouse).first()
    if row is None and warehouse == WAREHOUSE_MAIN:
        row = (
            db.session.query(ProductRecord)
            .filter(ProductRecord.product_id == product_id, ProductRecord.warehouse.is_(None))
            .first()
        )
    return row


def _write_product(product: Product) -> ProductRecord:
    row = _product_record_for(product.id, product.effective_warehouse)
    if row is None:
        row = ProductRecord(product_id=product.id)
        db.session.add(row)
    row.warehouse = product.warehouse
    for name in _PRODUCT_FIELDS:
        setattr(row, name, getattr(product, name))
    return row


def _write_purchase(purchase: Purchase) -> PurchaseRecord:
    row = db.session.get(PurchaseRecord, purchase.id)
    if row is None:
        row = PurchaseRecord(id=purchase.id)
        db.session.add(row)
    for name in _PURCHASE_FIELDS:
        setattr(row, name, getattr(purchase, name))
    row.overhead_logistics = purchase.overheads.logistics
    row.overhead_customs_duty = purchase.overheads.customs_duty
    row.overhead_import_vat = purchase.overheads.import_vat
    row.overhead_other = purchase.overheads.other

    # Lines are updated in place so (purchase_id, product_id) never collides
    existing = {line.product_id: line for line in row.lines}
    wanted = {item.product_id for item in purchase.items}
    for product_id, line in existing.items():
        if product_id not in wanted:
            row.lines.remove(line)
    for position, item in enumerate(purchase.items):
        line = existing.get(item.product_id)
        if line is None:
            line = PurchaseLineRecord(product_id=item.product_id)
            row.lines.append(line)
        line.position = position
        for name in _LINE_FIELDS:
            setattr(line, name, getattr(item, name))
    return row


def _write_transaction(tx: Transaction) -> TransactionRecord:
    row = TransactionRecord(
        id=tx.id,
        date=tx.date,
        type=tx.type,
        amount=tx.amount,
        currency=tx.currency,
        method=tx.method,
        description=tx.description,
        exchange_rate=tx.exchange_rate,
        related_id=tx.related_id,
    )
    db.session.add(row)
    return row


# =============================================================================
# PUBLIC API
# =============================================================================

def load_products() -> list[Product]:
    rows = db.session.query(ProductRecord).order_by(ProductRecord.id.asc()).all()
    return [product_from_record(r) for r in rows]


def load_purchases() -> list[Purchase]:
    rows = db.session.query(PurchaseRecord).order_by(PurchaseRecord.date.asc(), PurchaseRecord.id.asc()).all()
    return [purchase_from_record(r) for r in rows]


def load_transactions() -> list[Transaction]:
    rows = db.session.query(TransactionRecord).order_by(TransactionRecord.date.asc(), TransactionRecord.id.asc()).all()
    return [transaction_from_record(r) for r in rows]


def load_state() -> LedgerState:
    return LedgerState(
        products=load_products(),
        purchases=load_purchases(),
        transactions=load_transactions(),
    )


def load_workflow_orders() -> list[WorkflowOrder]:
    rows = db.session.query(WorkflowOrderRecord).all()
    return [workflow_from_record(r) for r in rows]


def apply_result(result: LedgerResult) -> LedgerResult:
    """
    Persist a ledger result atomically.

    Writes the product rows named by the result's deltas, the purchase and
    its lines, and the new transactions.

    Raises:
        PersistenceError: the write failed and was rolled back
    """
    try:
        for delta in result.product_deltas:
            product = find_product(result.state.products, delta.product_id, delta.warehouse)
            if product is not None:
                _write_product(product)
        _write_purchase(result.purchase)
        for tx in result.transactions:
            _write_transaction(tx)
        db.session.commit()
    except SQLAlchemyError as e:
        db.session.rollback()
        raise PersistenceError(f"Could not save purchase {result.purchase.id}: {e}")
    return result


def save_product(product: Product) -> Product:
    """Insert or update one stock row (master data and quantities)."""
    try:
        _write_product(product)
        db.session.commit()
    except SQLAlchemyError as e:
        db.session.rollback()
        raise PersistenceError(f"Could not save product {product.id}: {e}")
    return product


def save_purchases(purchases: Iterable[Purchase]) -> int:
    """Upsert purchases in one transaction; used by the legacy migration."""
    count = 0
    try:
        for purchase in purchases:
            _write_purchase(purchase)
            count += 1
        db.session.commit()
    except SQLAlchemyError as e:
        db.session.rollback()
        raise PersistenceError(f"Could not save purchases: {e}")
    return count


def replace_products(products: Iterable[Product]) -> int:
    """
    Rewrite the whole products table from `products` in one transaction.

    Used when rows are merged (legacy warehouse tagging), where matching old
    rows to new ones is ambiguous.
    """
    products = list(products)
    try:
        db.session.query(ProductRecord).delete()
        db.session.flush()
        for product in products:
            row = ProductRecord(product_id=product.id, warehouse=product.warehouse)
            for name in _PRODUCT_FIELDS:
                setattr(row, name, getattr(product, name))
            db.session.add(row)
        db.session.commit()
    except SQLAlchemyError as e:
        db.session.rollback()
        raise PersistenceError(f"Could not rewrite products: {e}")
    return len(products)


def save_workflow_order(order: WorkflowOrder) -> WorkflowOrder:
    """Insert or update a workflow order with its lines."""
    try:
        row = db.session.get(WorkflowOrderRecord, order.id)
        if row is None:
            row = WorkflowOrderRecord(id=order.id)
            db.session.add(row)
        row.customer_name = order.customer_name
        row.status = order.status
        row.date = order.date
        row.lines.clear()
        db.session.flush()
        for position, item in enumerate(order.items):
            row.lines.append(WorkflowOrderLineRecord(
                position=position,
                product_id=item.product_id,
                product_name=item.product_name,
                quantity=item.quantity,
                unit=item.unit,
                dimensions=item.dimensions,
                price_at_sale=item.price_at_sale,
            ))
        db.session.commit()
    except SQLAlchemyError as e:
        db.session.rollback()
        raise PersistenceError(f"Could not save workflow order {order.id}: {e}")
    return order
