"""Initial procurement, ledger and workflow schema

Revision ID: 20261019_initial_procurement
Revises:
Create Date: 2026-10-19 09:00:00.000000
"""

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "20261019_initial_procurement"
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        "products",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("product_id", sa.String(length=64), nullable=False),
        sa.Column("warehouse", sa.String(length=16), nullable=True),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("type", sa.String(length=64), nullable=False),
        sa.Column("dimensions", sa.String(length=128), nullable=False),
        sa.Column("steel_grade", sa.String(length=64), nullable=False),
        sa.Column("unit", sa.String(length=8), nullable=False),
        sa.Column("manufacturer", sa.String(length=255), nullable=True),
        sa.Column("origin", sa.String(length=16), nullable=False),
        sa.Column("quantity", sa.Float(), nullable=False),
        sa.Column("price_per_unit", sa.Float(), nullable=False),
        sa.Column("cost_price", sa.Float(), nullable=False),
        sa.Column("min_stock_level", sa.Float(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("product_id", "warehouse", name="uq_products_product_warehouse"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("products", schema=None) as batch_op:
        batch_op.create_index(batch_op.f("ix_products_product_id"), ["product_id"], unique=False)
        batch_op.create_index("ix_products_name", ["name"], unique=False)

    op.create_table(
        "purchases",
        sa.Column("id", sa.String(length=32), nullable=False),
        sa.Column("date", sa.DateTime(timezone=True), nullable=False),
        sa.Column("supplier_name", sa.String(length=255), nullable=False),
        sa.Column("status", sa.String(length=16), nullable=False),
        sa.Column("procurement_type", sa.String(length=16), nullable=False),
        sa.Column("warehouse", sa.String(length=16), nullable=True),
        sa.Column("prices_include_vat", sa.Boolean(), nullable=False),
        sa.Column("exchange_rate", sa.Float(), nullable=True),
        sa.Column("overhead_logistics", sa.Float(), nullable=False),
        sa.Column("overhead_customs_duty", sa.Float(), nullable=False),
        sa.Column("overhead_import_vat", sa.Float(), nullable=False),
        sa.Column("overhead_other", sa.Float(), nullable=False),
        sa.Column("total_invoice_amount", sa.Float(), nullable=False),
        sa.Column("total_landed_amount", sa.Float(), nullable=False),
        sa.Column("total_invoice_amount_uzs", sa.Float(), nullable=True),
        sa.Column("total_vat_amount_uzs", sa.Float(), nullable=False),
        sa.Column("total_without_vat_uzs", sa.Float(), nullable=False),
        sa.Column("payment_method", sa.String(length=16), nullable=False),
        sa.Column("payment_currency", sa.String(length=8), nullable=True),
        sa.Column("payment_status", sa.String(length=16), nullable=False),
        sa.Column("amount_paid", sa.Float(), nullable=False),
        sa.Column("amount_paid_usd", sa.Float(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    with op.batch_alter_table("purchases", schema=None) as batch_op:
        batch_op.create_index(batch_op.f("ix_purchases_date"), ["date"], unique=False)
        batch_op.create_index(batch_op.f("ix_purchases_payment_status"), ["payment_status"], unique=False)
        batch_op.create_index("ix_purchases_supplier_date", ["supplier_name", "date"], unique=False)

    op.create_table(
        "purchase_lines",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("purchase_id", sa.String(length=32), nullable=False),
        sa.Column("position", sa.Integer(), nullable=False),
        sa.Column("product_id", sa.String(length=64), nullable=False),
        sa.Column("product_name", sa.String(length=255), nullable=False),
        sa.Column("unit", sa.String(length=8), nullable=False),
        sa.Column("dimensions", sa.String(length=128), nullable=True),
        sa.Column("warehouse", sa.String(length=16), nullable=True),
        sa.Column("quantity", sa.Float(), nullable=False),
        sa.Column("invoice_price", sa.Float(), nullable=False),
        sa.Column("invoice_price_without_vat", sa.Float(), nullable=False),
        sa.Column("vat_amount", sa.Float(), nullable=False),
        sa.Column("landed_cost", sa.Float(), nullable=False),
        sa.Column("total_line_cost", sa.Float(), nullable=False),
        sa.Column("total_line_cost_uzs", sa.Float(), nullable=False),
        sa.ForeignKeyConstraint(["purchase_id"], ["purchases.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("purchase_id", "product_id", name="uq_purchase_lines_product"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("purchase_lines", schema=None) as batch_op:
        batch_op.create_index(batch_op.f("ix_purchase_lines_purchase_id"), ["purchase_id"], unique=False)
        batch_op.create_index(batch_op.f("ix_purchase_lines_product_id"), ["product_id"], unique=False)

    op.create_table(
        "transactions",
        sa.Column("id", sa.String(length=48), nullable=False),
        sa.Column("date", sa.DateTime(timezone=True), nullable=False),
        sa.Column("type", sa.String(length=32), nullable=False),
        sa.Column("amount", sa.Float(), nullable=False),
        sa.Column("currency", sa.String(length=8), nullable=False),
        sa.Column("method", sa.String(length=16), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("exchange_rate", sa.Float(), nullable=True),
        sa.Column("related_id", sa.String(length=48), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    with op.batch_alter_table("transactions", schema=None) as batch_op:
        batch_op.create_index(batch_op.f("ix_transactions_date"), ["date"], unique=False)
        batch_op.create_index(batch_op.f("ix_transactions_type"), ["type"], unique=False)
        batch_op.create_index(batch_op.f("ix_transactions_related_id"), ["related_id"], unique=False)

    op.create_table(
        "workflow_orders",
        sa.Column("id", sa.String(length=32), nullable=False),
        sa.Column("customer_name", sa.String(length=255), nullable=False),
        sa.Column("status", sa.String(length=32), nullable=False),
        sa.Column("date", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )
    with op.batch_alter_table("workflow_orders", schema=None) as batch_op:
        batch_op.create_index(batch_op.f("ix_workflow_orders_status"), ["status"], unique=False)

    op.create_table(
        "workflow_order_lines",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("order_id", sa.String(length=32), nullable=False),
        sa.Column("position", sa.Integer(), nullable=False),
        sa.Column("product_id", sa.String(length=64), nullable=False),
        sa.Column("product_name", sa.String(length=255), nullable=False),
        sa.Column("quantity", sa.Float(), nullable=False),
        sa.Column("unit", sa.String(length=8), nullable=False),
        sa.Column("dimensions", sa.String(length=128), nullable=True),
        sa.Column("price_at_sale", sa.Float(), nullable=False),
        sa.ForeignKeyConstraint(["order_id"], ["workflow_orders.id"]),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("workflow_order_lines", schema=None) as batch_op:
        batch_op.create_index(batch_op.f("ix_workflow_order_lines_order_id"), ["order_id"], unique=False)

    op.create_table(
        "app_settings",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("key", sa.String(length=128), nullable=False),
        sa.Column("value", sa.Text(), nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("key", name="uq_app_settings_key"),
        sqlite_autoincrement=True,
    )


def downgrade():
    op.drop_table("app_settings")
    with op.batch_alter_table("workflow_order_lines", schema=None) as batch_op:
        batch_op.drop_index(batch_op.f("ix_workflow_order_lines_order_id"))
    op.drop_table("workflow_order_lines")
    with op.batch_alter_table("workflow_orders", schema=None) as batch_op:
        batch_op.drop_index(batch_op.f("ix_workflow_orders_status"))
    op.drop_table("workflow_orders")
    with op.batch_alter_table("transactions", schema=None) as batch_op:
        batch_op.drop_index(batch_op.f("ix_transactions_related_id"))
        batch_op.drop_index(batch_op.f("ix_transactions_type"))
        batch_op.drop_index(batch_op.f("ix_transactions_date"))
    op.drop_table("transactions")
    with op.batch_alter_table("purchase_lines", schema=None) as batch_op:
        batch_op.drop_index(batch_op.f("ix_purchase_lines_product_id"))
        batch_op.drop_index(batch_op.f("ix_purchase_lines_purchase_id"))
    op.drop_table("purchase_lines")
    with op.batch_alter_table("purchases", schema=None) as batch_op:
        batch_op.drop_index("ix_purchases_supplier_date")
        batch_op.drop_index(batch_op.f("ix_purchases_payment_status"))
        batch_op.drop_index(batch_op.f("ix_purchases_date"))
    op.drop_table("purchases")
    with op.batch_alter_table("products", schema=None) as batch_op:
        batch_op.drop_index("ix_products_name")
        batch_op.drop_index(batch_op.f("ix_products_product_id"))
    op.drop_table("products")
