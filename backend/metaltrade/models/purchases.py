from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


class PurchaseRecord(db.Model):
    """
    A supplier purchase (header).

    SCHEMA VERSIONS:
    - legacy rows: total_invoice_amount_uzs NULL/0, amount_paid in USD
    - current rows: amount_paid in UZS, amount_paid_usd alongside
    Readers must go through purchase_service.normalized_paid_usd().
    """
    __tablename__ = "purchases"
    __table_args__ = (
        db.Index("ix_purchases_supplier_date", "supplier_name", "date"),
    )

    id = db.Column(db.String(32), primary_key=True)
    date = db.Column(db.DateTime(timezone=True), nullable=False, index=True)
    supplier_name = db.Column(db.String(255), nullable=False)
    status = db.Column(db.String(16), nullable=False, default="completed")

    procurement_type = db.Column(db.String(16), nullable=False, default="local")
    warehouse = db.Column(db.String(16), nullable=True)
    prices_include_vat = db.Column(db.Boolean, nullable=False, default=False)
    exchange_rate = db.Column(db.Float, nullable=True)

    # Overheads (USD)
    overhead_logistics = db.Column(db.Float, nullable=False, default=0.0)
    overhead_customs_duty = db.Column(db.Float, nullable=False, default=0.0)
    overhead_import_vat = db.Column(db.Float, nullable=False, default=0.0)
    overhead_other = db.Column(db.Float, nullable=False, default=0.0)

    total_invoice_amount = db.Column(db.Float, nullable=False, default=0.0)
    total_landed_amount = db.Column(db.Float, nullable=False, default=0.0)
    total_invoice_amount_uzs = db.Column(db.Float, nullable=True)
    total_vat_amount_uzs = db.Column(db.Float, nullable=False, default=0.0)
    total_without_vat_uzs = db.Column(db.Float, nullable=False, default=0.0)

    payment_method = db.Column(db.String(16), nullable=False)
    payment_currency = db.Column(db.String(8), nullable=True)
    payment_status = db.Column(db.String(16), nullable=False, index=True)
    amount_paid = db.Column(db.Float, nullable=False, default=0.0)
    amount_paid_usd = db.Column(db.Float, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    lines = db.relationship(
        "PurchaseLineRecord",
        backref="purchase",
        cascade="all, delete-orphan",
        order_by="PurchaseLineRecord.position",
        lazy="selectin",
    )

    def __repr__(self) -> str:
        return f"<PurchaseRecord id={self.id!r} supplier={self.supplier_name!r} status={self.payment_status!r}>"


class PurchaseLineRecord(db.Model):
    __tablename__ = "purchase_lines"
    __table_args__ = (
        db.UniqueConstraint("purchase_id", "product_id", name="uq_purchase_lines_product"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    purchase_id = db.Column(db.String(32), db.ForeignKey("purchases.id"), nullable=False, index=True)
    position = db.Column(db.Integer, nullable=False, default=0)

    product_id = db.Column(db.String(64), nullable=False, index=True)
    product_name = db.Column(db.String(255), nullable=False)
    unit = db.Column(db.String(8), nullable=False)
    dimensions = db.Column(db.String(128), nullable=True)
    warehouse = db.Column(db.String(16), nullable=True)

    quantity = db.Column(db.Float, nullable=False)
    invoice_price = db.Column(db.Float, nullable=False)
    invoice_price_without_vat = db.Column(db.Float, nullable=False, default=0.0)
    vat_amount = db.Column(db.Float, nullable=False, default=0.0)
    landed_cost = db.Column(db.Float, nullable=False, default=0.0)
    total_line_cost = db.Column(db.Float, nullable=False, default=0.0)
    total_line_cost_uzs = db.Column(db.Float, nullable=False, default=0.0)


class TransactionRecord(db.Model):
    """
    Append-only money movement.

    Rows are never updated or deleted; balances are recomputed from them.
    """
    __tablename__ = "transactions"

    id = db.Column(db.String(48), primary_key=True)
    date = db.Column(db.DateTime(timezone=True), nullable=False, index=True)
    type = db.Column(db.String(32), nullable=False, index=True)
    amount = db.Column(db.Float, nullable=False)
    currency = db.Column(db.String(8), nullable=False)
    method = db.Column(db.String(16), nullable=False)
    description = db.Column(db.Text, nullable=True)
    exchange_rate = db.Column(db.Float, nullable=True)
    related_id = db.Column(db.String(48), nullable=True, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "date": to_utc_z(self.date),
            "type": self.type,
            "amount": self.amount,
            "currency": self.currency,
            "method": self.method,
            "description": self.description,
            "exchange_rate": self.exchange_rate,
            "related_id": self.related_id,
        }
