from __future__ import annotations

from ..extensions import db


class WorkflowOrderRecord(db.Model):
    """Sales workflow order as seen by procurement."""
    __tablename__ = "workflow_orders"

    id = db.Column(db.String(32), primary_key=True)
    customer_name = db.Column(db.String(255), nullable=False)
    status = db.Column(db.String(32), nullable=False, index=True)
    date = db.Column(db.DateTime(timezone=True), nullable=True)

    lines = db.relationship(
        "WorkflowOrderLineRecord",
        backref="order",
        cascade="all, delete-orphan",
        order_by="WorkflowOrderLineRecord.position",
        lazy="selectin",
    )


class WorkflowOrderLineRecord(db.Model):
    __tablename__ = "workflow_order_lines"
    __table_args__ = ({"sqlite_autoincrement": True},)

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.String(32), db.ForeignKey("workflow_orders.id"), nullable=False, index=True)
    position = db.Column(db.Integer, nullable=False, default=0)

    product_id = db.Column(db.String(64), nullable=False)
    product_name = db.Column(db.String(255), nullable=False)
    quantity = db.Column(db.Float, nullable=False)
    unit = db.Column(db.String(8), nullable=False)
    dimensions = db.Column(db.String(128), nullable=True)
    price_at_sale = db.Column(db.Float, nullable=False, default=0.0)
