"""
Round trips through the database and the atomic write of ledger results.
"""

import pytest
from sqlalchemy.exc import SQLAlchemyError

from conftest import line
from metaltrade.domain import OrderItem, Product, Purchase, WorkflowOrder
from metaltrade.models import ProductRecord, PurchaseLineRecord, PurchaseRecord, TransactionRecord
from metaltrade.services import persistence_service
from metaltrade.services.payment_service import PaymentChoice
from metaltrade.services.persistence_service import PersistenceError
from metaltrade.services.purchase_service import PurchaseCommand, create_purchase, delete_purchase_line, edit_purchase_line
from metaltrade.time_utils import utcnow


def _record_purchase(ctx, payment=None, items=None, warehouse=None):
    state = persistence_service.load_state()
    command = PurchaseCommand(
        supplier_name="Metall Trade",
        items=items or [line("P-1", 10, 10), line("P-2", 5, 4)],
        payment=payment or PaymentChoice(method="cash", currency="USD", amount=50),
        warehouse=warehouse,
    )
    return persistence_service.apply_result(create_purchase(state, command, ctx))


def test_apply_result_persists_everything(db_session, ctx, pipe):
    persistence_service.save_product(pipe)
    result = _record_purchase(ctx)

    assert db_session.query(PurchaseRecord).count() == 1
    assert db_session.query(PurchaseLineRecord).count() == 2
    assert db_session.query(TransactionRecord).count() == 1
    assert db_session.query(ProductRecord).count() == 2

    purchase = persistence_service.load_purchases()[0]
    assert purchase.id == result.purchase.id
    assert purchase.payment_status == "partial"
    assert purchase.amount_paid_usd == pytest.approx(50)
    assert [i.product_id for i in purchase.items] == ["P-1", "P-2"]

    products = {p.id: p for p in persistence_service.load_products()}
    assert products["P-1"].quantity == 10
    assert products["P-1"].name == pipe.name
    assert products["P-2"].cost_price == 4


def test_untagged_row_updated_in_place(db_session, ctx):
    db_session.add(ProductRecord(product_id="P-1", warehouse=None, name="Pipe", type="Труба", unit="м", quantity=5, cost_price=2))
    db_session.commit()

    _record_purchase(ctx, items=[line("P-1", 5, 4)], payment=PaymentChoice(method="debt"))

    rows = db_session.query(ProductRecord).all()
    assert len(rows) == 1
    assert rows[0].warehouse == "main"
    assert (rows[0].quantity, rows[0].cost_price) == (10, 3)


def test_line_edit_and_delete_update_lines_in_place(db_session, ctx):
    result = _record_purchase(ctx, payment=PaymentChoice(method="debt"))
    pid = result.purchase.id

    state = persistence_service.load_state()
    persistence_service.apply_result(edit_purchase_line(state, pid, "P-1", ctx, quantity=7))
    state = persistence_service.load_state()
    persistence_service.apply_result(delete_purchase_line(state, pid, "P-2", ctx))

    purchase = persistence_service.load_purchases()[0]
    assert [(i.product_id, i.quantity) for i in purchase.items] == [("P-1", 7)]
    assert purchase.total_invoice_amount == pytest.approx(70)
    products = {p.id: p.quantity for p in persistence_service.load_products()}
    assert products == {"P-1": 7, "P-2": 0}


def test_failed_commit_rolls_back(db_session, ctx, monkeypatch):
    state = persistence_service.load_state()
    result = create_purchase(
        state,
        PurchaseCommand(
            supplier_name="Metall Trade",
            items=[line()],
            payment=PaymentChoice(method="cash", currency="USD"),
        ),
        ctx,
    )

    def boom(tx):
        raise SQLAlchemyError("disk full")

    # products and the purchase are already staged when the transaction write fails
    monkeypatch.setattr(persistence_service, "_write_transaction", boom)

    with pytest.raises(PersistenceError):
        persistence_service.apply_result(result)

    assert db_session.query(PurchaseRecord).count() == 0
    assert db_session.query(ProductRecord).count() == 0


def test_replace_products_merges_legacy_rows(db_session):
    db_session.add(ProductRecord(product_id="P-1", warehouse="main", name="Pipe", type="Труба", unit="м", quantity=10, cost_price=2))
    db_session.add(ProductRecord(product_id="P-1", warehouse="cloud", name="Pipe", type="Труба", unit="м", quantity=1, cost_price=1))
    db_session.commit()

    merged = [
        Product(id="P-1", name="Pipe", quantity=20, cost_price=3, warehouse="main"),
        Product(id="P-1", name="Pipe", quantity=1, cost_price=1, warehouse="cloud"),
    ]
    assert persistence_service.replace_products(merged) == 2
    loaded = sorted((p.warehouse, p.quantity) for p in persistence_service.load_products())
    assert loaded == [("cloud", 1), ("main", 20)]


def test_save_purchases_round_trips_legacy_fields(db_session):
    legacy = Purchase(
        id="PUR-OLD",
        date=utcnow(),
        supplier_name="Old Supplier",
        items=[line(quantity=2, price=5)],
        total_invoice_amount=10,
        amount_paid=4,
        payment_status="partial",
    )
    persistence_service.save_purchases([legacy])
    loaded = persistence_service.load_purchases()[0]
    assert loaded.is_legacy
    assert loaded.amount_paid == 4
    assert loaded.amount_paid_usd is None


def test_workflow_order_round_trip(db_session):
    order = WorkflowOrder(
        id="WF-1",
        customer_name="ООО Стройка",
        status="sent_to_procurement",
        date=utcnow(),
        items=[OrderItem(product_id="P-1", product_name="Pipe", quantity=3)],
    )
    persistence_service.save_workflow_order(order)
    order.status = "sent_to_cash"
    order.items.append(OrderItem(product_id="P-2", product_name="Sheet", quantity=1))
    persistence_service.save_workflow_order(order)

    (loaded,) = persistence_service.load_workflow_orders()
    assert loaded.status == "sent_to_cash"
    assert [i.product_id for i in loaded.items] == ["P-1", "P-2"]
