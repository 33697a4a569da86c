from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


class ProductRecord(db.Model):
    """
    One stock row: a product in one warehouse.

    KEY: (product_id, warehouse). Rows created before warehouse tagging have
    warehouse NULL and are read as "main" until a receipt or the
    `purchases migrate-legacy` command tags them.

    quantity and cost_price (weighted average, USD) are only ever changed by
    the purchase ledger; master data (name, type, prices) by the products API.
    """
    __tablename__ = "products"
    __table_args__ = (
        db.UniqueConstraint("product_id", "warehouse", name="uq_products_product_warehouse"),
        db.Index("ix_products_name", "name"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.String(64), nullable=False, index=True)
    warehouse = db.Column(db.String(16), nullable=True)

    name = db.Column(db.String(255), nullable=False)
    type = db.Column(db.String(64), nullable=False)
    dimensions = db.Column(db.String(128), nullable=False, default="-")
    steel_grade = db.Column(db.String(64), nullable=False, default="Ст3")
    unit = db.Column(db.String(8), nullable=False)
    manufacturer = db.Column(db.String(255), nullable=True)
    origin = db.Column(db.String(16), nullable=False, default="local")

    quantity = db.Column(db.Float, nullable=False, default=0.0)
    price_per_unit = db.Column(db.Float, nullable=False, default=0.0)
    cost_price = db.Column(db.Float, nullable=False, default=0.0)
    min_stock_level = db.Column(db.Float, nullable=False, default=0.0)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    def __repr__(self) -> str:
        return f"<ProductRecord product_id={self.product_id!r} warehouse={self.warehouse!r} qty={self.quantity}>"

    def to_dict(self) -> dict:
        return {
            "id": self.product_id,
            "warehouse": self.warehouse,
            "effective_warehouse": self.warehouse or "main",
            "name": self.name,
            "type": self.type,
            "dimensions": self.dimensions,
            "steel_grade": self.steel_grade,
            "unit": self.unit,
            "manufacturer": self.manufacturer,
            "origin": self.origin,
            "quantity": self.quantity,
            "price_per_unit": self.price_per_unit,
            "cost_price": self.cost_price,
            "min_stock_level": self.min_stock_level,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
