# Overview: In-memory domain types exchanged between the calculation services and persistence.

"""
Domain types for procurement, inventory and supplier payments.

The calculation services (landed cost, inventory, payment, purchase ledger)
operate only on these dataclasses. They never read or write the database;
the persistence service maps them to and from SQLAlchemy records.

MONEY:
- USD amounts are VAT-exclusive unless the field name says otherwise.
- UZS amounts on a purchase are VAT-inclusive (what the supplier is owed).
- Floats are used throughout; comparisons go through the tolerances in
  pricing_service, never through ==.
"""

from __future__ import annotations

from dataclasses import dataclass, field, asdict, replace
from datetime import datetime
from typing import Optional

from .time_utils import to_utc_z


# Units
UNIT_METER = "м"
UNIT_TON = "т"
UNIT_PIECE = "шт"
UNITS = {UNIT_METER, UNIT_TON, UNIT_PIECE}

# Product types
PRODUCT_TYPE_PIPE = "Труба"
PRODUCT_TYPE_PROFILE = "Профиль"
PRODUCT_TYPE_SHEET = "Лист"
PRODUCT_TYPE_BEAM = "Балка"
PRODUCT_TYPE_OTHER = "Прочее"
PRODUCT_TYPES = {
    PRODUCT_TYPE_PIPE,
    PRODUCT_TYPE_PROFILE,
    PRODUCT_TYPE_SHEET,
    PRODUCT_TYPE_BEAM,
    PRODUCT_TYPE_OTHER,
}

# Warehouses (rows created before warehouse tagging have warehouse=None)
WAREHOUSE_MAIN = "main"
WAREHOUSE_CLOUD = "cloud"
WAREHOUSES = {WAREHOUSE_MAIN, WAREHOUSE_CLOUD}

ORIGIN_LOCAL = "local"
ORIGIN_IMPORT = "import"
PROCUREMENT_TYPES = {ORIGIN_LOCAL, ORIGIN_IMPORT}

# Payment
METHOD_CASH = "cash"
METHOD_BANK = "bank"
METHOD_CARD = "card"
METHOD_DEBT = "debt"
METHOD_MIXED = "mixed"
PAYMENT_METHODS = {METHOD_CASH, METHOD_BANK, METHOD_CARD, METHOD_DEBT, METHOD_MIXED}

CURRENCY_USD = "USD"
CURRENCY_UZS = "UZS"
CURRENCIES = {CURRENCY_USD, CURRENCY_UZS}

STATUS_PAID = "paid"
STATUS_PARTIAL = "partial"
STATUS_UNPAID = "unpaid"

# Transaction types
TX_CLIENT_PAYMENT = "client_payment"
TX_SUPPLIER_PAYMENT = "supplier_payment"
TX_CLIENT_RETURN = "client_return"
TX_CLIENT_REFUND = "client_refund"
TX_DEBT_OBLIGATION = "debt_obligation"
TX_EXPENSE = "expense"
TRANSACTION_TYPES = {
    TX_CLIENT_PAYMENT,
    TX_SUPPLIER_PAYMENT,
    TX_CLIENT_RETURN,
    TX_CLIENT_REFUND,
    TX_DEBT_OBLIGATION,
    TX_EXPENSE,
}

# Workflow order statuses
WF_DRAFT = "draft"
WF_CONFIRMED = "confirmed"
WF_SENT_TO_CASH = "sent_to_cash"
WF_SENT_TO_PROCUREMENT = "sent_to_procurement"
WF_COMPLETED = "completed"
WF_CANCELLED = "cancelled"
WORKFLOW_STATUSES = {
    WF_DRAFT,
    WF_CONFIRMED,
    WF_SENT_TO_CASH,
    WF_SENT_TO_PROCUREMENT,
    WF_COMPLETED,
    WF_CANCELLED,
}


def _serialize(value):
    if isinstance(value, datetime):
        return to_utc_z(value)
    return value


def _to_dict(obj) -> dict:
    return {k: _serialize(v) for k, v in asdict(obj).items()}


@dataclass
class Product:
    id: str
    name: str
    type: str = PRODUCT_TYPE_OTHER
    dimensions: str = "-"
    steel_grade: str = "Ст3"
    quantity: float = 0.0
    unit: str = UNIT_METER
    price_per_unit: float = 0.0  # sale price, USD
    cost_price: float = 0.0  # weighted-average cost, USD
    min_stock_level: float = 0.0
    origin: str = ORIGIN_LOCAL
    warehouse: Optional[str] = None
    manufacturer: Optional[str] = None

    @property
    def effective_warehouse(self) -> str:
        return self.warehouse or WAREHOUSE_MAIN

    def to_dict(self) -> dict:
        result = _to_dict(self)
        result["effective_warehouse"] = self.effective_warehouse
        return result


@dataclass
class OrderItem:
    product_id: str
    product_name: str
    quantity: float
    unit: str = UNIT_METER
    dimensions: Optional[str] = None
    price_at_sale: float = 0.0

    def to_dict(self) -> dict:
        return _to_dict(self)


@dataclass
class WorkflowOrder:
    id: str
    customer_name: str
    items: list[OrderItem] = field(default_factory=list)
    status: str = WF_DRAFT
    date: Optional[datetime] = None

    def to_dict(self) -> dict:
        return _to_dict(self)


@dataclass
class PurchaseOverheads:
    """Import overhead buckets, all in USD."""
    logistics: float = 0.0
    customs_duty: float = 0.0
    import_vat: float = 0.0
    other: float = 0.0

    def to_dict(self) -> dict:
        return _to_dict(self)


@dataclass
class PurchaseItem:
    """
    One invoice line.

    invoice_price is in the purchase's document currency: USD for plain
    purchases, VAT-inclusive UZS for VAT-aware ones. invoice_price_without_vat
    is per unit; vat_amount is the VAT of the whole line.
    """
    product_id: str
    product_name: str
    quantity: float
    invoice_price: float
    unit: str = UNIT_METER
    invoice_price_without_vat: float = 0.0
    vat_amount: float = 0.0
    landed_cost: float = 0.0  # USD per unit, VAT-exclusive
    total_line_cost: float = 0.0  # quantity * landed_cost (USD)
    total_line_cost_uzs: float = 0.0  # quantity * gross price (UZS)
    dimensions: Optional[str] = None
    warehouse: Optional[str] = None

    def to_dict(self) -> dict:
        return _to_dict(self)


@dataclass
class Purchase:
    """
    A completed supplier purchase.

    SCHEMA VERSIONS:
    - legacy: total_invoice_amount_uzs is None/0; amount_paid is USD.
    - current: amount_paid is UZS, amount_paid_usd is tracked separately.
    Use purchase_service.normalized_paid_usd() instead of reading either
    paid field directly.
    """
    id: str
    date: datetime
    supplier_name: str
    items: list[PurchaseItem]
    overheads: PurchaseOverheads = field(default_factory=PurchaseOverheads)
    total_invoice_amount: float = 0.0  # USD, VAT-exclusive
    total_landed_amount: float = 0.0  # USD
    total_invoice_amount_uzs: Optional[float] = None  # VAT-inclusive
    total_vat_amount_uzs: float = 0.0
    total_without_vat_uzs: float = 0.0
    payment_method: str = METHOD_DEBT
    payment_currency: Optional[str] = None
    payment_status: str = STATUS_UNPAID
    amount_paid: float = 0.0
    amount_paid_usd: Optional[float] = None
    exchange_rate: Optional[float] = None
    warehouse: Optional[str] = None
    procurement_type: str = ORIGIN_LOCAL
    prices_include_vat: bool = False
    status: str = "completed"

    @property
    def is_legacy(self) -> bool:
        return not self.total_invoice_amount_uzs

    def to_dict(self) -> dict:
        result = _to_dict(self)
        result["is_legacy"] = self.is_legacy
        return result


@dataclass
class Transaction:
    """Immutable money movement. amount is in `currency`."""
    id: str
    date: datetime
    type: str
    amount: float
    currency: str
    method: str
    description: str = ""
    exchange_rate: Optional[float] = None
    related_id: Optional[str] = None

    def to_dict(self) -> dict:
        return _to_dict(self)


@dataclass
class Balances:
    """Read-only till/account snapshot."""
    cash_usd: float = 0.0
    cash_uzs: float = 0.0
    card_uzs: float = 0.0
    bank_uzs: float = 0.0

    def to_dict(self) -> dict:
        return _to_dict(self)


@dataclass(frozen=True)
class ProductDelta:
    """Stock change produced for one (product id, warehouse) key."""
    product_id: str
    warehouse: str
    quantity_before: float
    quantity_after: float
    cost_before: float
    cost_after: float
    created: bool = False

    @property
    def quantity_delta(self) -> float:
        return self.quantity_after - self.quantity_before

    def to_dict(self) -> dict:
        result = _to_dict(self)
        result["quantity_delta"] = self.quantity_delta
        return result


@dataclass(frozen=True)
class MissingItem:
    item: OrderItem
    available: float
    missing_qty: float

    def to_dict(self) -> dict:
        return {
            "item": self.item.to_dict(),
            "available": self.available,
            "missing_qty": self.missing_qty,
        }


def copy_product(product: Product, **changes) -> Product:
    return replace(product, **changes)


def copy_purchase(purchase: Purchase, **changes) -> Purchase:
    """Copy a purchase, deep-copying its line list and overheads."""
    changes.setdefault("items", [replace(i) for i in purchase.items])
    changes.setdefault("overheads", replace(purchase.overheads))
    return replace(purchase, **changes)
