"""
Purchase / debt ledger: create, repay, line maintenance, legacy schema and
stock consistency. All operations are pure, so no database is needed.
"""

import pytest

from conftest import line
from metaltrade.domain import Balances, Product, Purchase, PurchaseOverheads
from metaltrade.services.inventory_service import find_product
from metaltrade.services.payment_service import InsufficientFundsError, PaymentChoice
from metaltrade.services.pricing_service import PricingContext
from metaltrade.services.purchase_service import (
    LedgerState,
    PurchaseCommand,
    PurchaseNotFoundError,
    PurchaseValidationError,
    check_stock_consistency,
    create_purchase,
    delete_purchase_line,
    edit_purchase_line,
    migrate_legacy_purchase,
    normalized_paid_usd,
    payable_usd,
    preview_purchase,
    remaining_debt_usd,
    repay,
    supplier_debts,
)
from metaltrade.time_utils import utcnow
from metaltrade.validation import ValidationError


def _command(items=None, payment=None, **kwargs) -> PurchaseCommand:
    return PurchaseCommand(
        supplier_name=kwargs.pop("supplier_name", "Metall Trade"),
        items=items or [line(quantity=10, price=10)],
        payment=payment or PaymentChoice(method="debt"),
        **kwargs,
    )


@pytest.fixture
def state(pipe):
    return LedgerState(products=[pipe])


@pytest.fixture
def debt_purchase(state, ctx):
    """100 USD local purchase recorded as debt."""
    return create_purchase(state, _command(), ctx)


class TestCreatePurchase:

    def test_debt_purchase(self, state, ctx):
        result = create_purchase(state, _command(), ctx)
        p = result.purchase
        assert p.id.startswith("PUR-")
        assert p.payment_status == "unpaid"
        assert p.total_invoice_amount == 100
        assert p.total_invoice_amount_uzs == 1_280_000
        assert p.exchange_rate == 12800
        assert p.warehouse == "main"
        assert result.transactions == []
        assert remaining_debt_usd(p) == pytest.approx(100)

    def test_stock_received_at_landed_cost(self, state, ctx):
        result = create_purchase(state, _command(), ctx)
        row = find_product(result.state.products, "P-1", "main")
        assert (row.quantity, row.cost_price) == (10, 10)
        assert [d.quantity_delta for d in result.product_deltas] == [10]
        # the input state is unchanged
        assert state.products[0].quantity == 0
        assert state.purchases == []

    def test_cash_payment_creates_transaction(self, state, ctx):
        result = create_purchase(state, _command(payment=PaymentChoice(method="cash", currency="USD")), ctx)
        assert result.purchase.payment_status == "paid"
        assert result.purchase.amount_paid == pytest.approx(1_280_000)
        assert result.purchase.amount_paid_usd == pytest.approx(100)
        (tx,) = result.transactions
        assert (tx.type, tx.method, tx.currency) == ("supplier_payment", "cash", "USD")
        assert tx.related_id == result.purchase.id
        assert "Metall Trade" in tx.description
        assert result.state.transactions == [tx]

    def test_snapshot_rate_used_for_conversion(self, state, ctx):
        result = create_purchase(state, _command(exchange_rate=13000), ctx)
        assert result.purchase.exchange_rate == 13000
        assert result.purchase.total_invoice_amount_uzs == 1_300_000

    def test_import_with_overheads(self, state, ctx):
        result = create_purchase(
            state,
            _command(procurement_type="import", overheads=PurchaseOverheads(logistics=20)),
            ctx,
        )
        assert result.purchase.total_landed_amount == pytest.approx(120)
        assert find_product(result.state.products, "P-1", "main").cost_price == pytest.approx(12)

    def test_local_purchase_stores_no_overheads(self, state, ctx):
        result = create_purchase(
            state,
            _command(procurement_type="local", overheads=PurchaseOverheads(logistics=20, other=5)),
            ctx,
        )
        assert result.purchase.overheads == PurchaseOverheads()
        assert result.purchase.total_landed_amount == pytest.approx(100)

    def test_vat_aware_purchase_payable_includes_vat(self, state, ctx):
        # 143360 UZS gross per unit -> 128000 net -> 10 USD
        result = create_purchase(
            state,
            _command(items=[line(quantity=10, price=143_360)], prices_include_vat=True),
            ctx,
        )
        p = result.purchase
        assert p.total_invoice_amount == pytest.approx(100)
        assert p.total_vat_amount_uzs == pytest.approx(153_600)
        assert payable_usd(p) == pytest.approx(112)
        assert find_product(result.state.products, "P-1", "main").cost_price == pytest.approx(10)

    def test_cloud_purchase_creates_separate_row(self, state, ctx):
        result = create_purchase(state, _command(warehouse="cloud"), ctx)
        assert find_product(result.state.products, "P-1", "main").quantity == 0
        assert find_product(result.state.products, "P-1", "cloud").quantity == 10
        assert result.purchase.items[0].warehouse == "cloud"

    def test_insufficient_funds_leaves_state_untouched(self, state, ctx):
        with pytest.raises(InsufficientFundsError):
            create_purchase(
                state,
                _command(payment=PaymentChoice(method="cash", currency="USD")),
                ctx,
                balances=Balances(cash_usd=10),
            )
        assert state.products[0].quantity == 0
        assert state.purchases == []

    @pytest.mark.parametrize(
        "command",
        [
            _command(supplier_name="  "),
            _command(items=[line(quantity=0)]),
            _command(warehouse="attic"),
            _command(procurement_type="barter"),
        ],
    )
    def test_invalid_commands(self, state, ctx, command):
        with pytest.raises(ValidationError):
            create_purchase(state, command, ctx)

    def test_bad_rate_is_configuration_error(self, state):
        from metaltrade.services.pricing_service import ConfigurationError
        with pytest.raises(ConfigurationError):
            create_purchase(state, _command(exchange_rate=float("nan")), PricingContext(exchange_rate=12800))


def test_preview_does_not_touch_state(state, ctx):
    preview = preview_purchase(_command(payment=PaymentChoice(method="cash", currency="USD", amount=40)), ctx)
    assert preview["allocation"]["total_invoice_value"] == 100
    assert preview["payment"]["status"] == "partial"
    assert preview["pricing"]["exchange_rate"] == 12800
    assert state.purchases == []


class TestRepay:

    def test_partial_then_full(self, debt_purchase, ctx):
        pid = debt_purchase.purchase.id
        first = repay(debt_purchase.state, pid, 40, ctx)
        assert first.purchase.payment_status == "partial"
        assert normalized_paid_usd(first.purchase) == pytest.approx(40)
        assert first.purchase.amount_paid == pytest.approx(512_000)

        second = repay(first.state, pid, 60, ctx)
        assert second.purchase.payment_status == "paid"
        assert remaining_debt_usd(second.purchase) == pytest.approx(0)
        assert len(second.state.transactions) == 2

    def test_overpayment_rejected_not_clamped(self, debt_purchase, ctx):
        with pytest.raises(PurchaseValidationError, match="remaining debt"):
            repay(debt_purchase.state, debt_purchase.purchase.id, 150, ctx)

    def test_repay_paid_purchase_rejected(self, state, ctx):
        paid = create_purchase(state, _command(payment=PaymentChoice(method="cash", currency="USD")), ctx)
        with pytest.raises(PurchaseValidationError, match="already paid"):
            repay(paid.state, paid.purchase.id, 1, ctx)

    @pytest.mark.parametrize("amount", [0, -10])
    def test_non_positive_amount(self, debt_purchase, ctx, amount):
        with pytest.raises(PurchaseValidationError):
            repay(debt_purchase.state, debt_purchase.purchase.id, amount, ctx)

    def test_debt_method_rejected(self, debt_purchase, ctx):
        with pytest.raises(PurchaseValidationError):
            repay(debt_purchase.state, debt_purchase.purchase.id, 10, ctx, method="debt")

    def test_unknown_purchase(self, debt_purchase, ctx):
        with pytest.raises(PurchaseNotFoundError):
            repay(debt_purchase.state, "PUR-404", 10, ctx)

    def test_mixed_distribution(self, debt_purchase, ctx):
        result = repay(
            debt_purchase.state,
            debt_purchase.purchase.id,
            {"cash_usd": 20, "bank_uzs": 256_000},
            ctx,
        )
        assert normalized_paid_usd(result.purchase) == pytest.approx(40)
        assert len(result.transactions) == 2

    def test_uses_snapshot_rate_not_current(self, debt_purchase):
        later = PricingContext(exchange_rate=14000)
        result = repay(debt_purchase.state, debt_purchase.purchase.id, 100, later)
        assert result.purchase.payment_status == "paid"
        assert result.transactions[0].exchange_rate == 12800

    def test_insufficient_funds(self, debt_purchase, ctx):
        with pytest.raises(InsufficientFundsError):
            repay(debt_purchase.state, debt_purchase.purchase.id, 50, ctx, balances=Balances(cash_usd=10))

    def test_legacy_purchase_repaid_in_usd(self, ctx):
        legacy = Purchase(
            id="PUR-OLD",
            date=utcnow(),
            supplier_name="Old Supplier",
            items=[line(quantity=10, price=10)],
            total_invoice_amount=100,
            amount_paid=30,
            payment_status="partial",
        )
        result = repay(LedgerState(purchases=[legacy]), "PUR-OLD", 70, ctx)
        assert result.purchase.amount_paid == pytest.approx(100)
        assert result.purchase.amount_paid_usd == pytest.approx(100)
        assert result.purchase.payment_status == "paid"


class TestLineMaintenance:

    @pytest.fixture
    def two_lines(self, ctx):
        state = LedgerState(products=[
            Product(id="A", name="Pipe", warehouse="main"),
            Product(id="B", name="Sheet", warehouse="main"),
        ])
        return create_purchase(state, _command(items=[line("A", 10, 5), line("B", 5, 10)]), ctx)

    def test_edit_quantity_moves_stock_by_difference(self, two_lines, ctx):
        pid = two_lines.purchase.id
        result = edit_purchase_line(two_lines.state, pid, "A", ctx, quantity=6)
        row = find_product(result.state.products, "A", "main")
        assert row.quantity == 6
        assert row.cost_price == 5
        assert result.purchase.total_invoice_amount == pytest.approx(80)
        assert result.purchase.total_invoice_amount_uzs == pytest.approx(80 * 12800)
        assert check_stock_consistency(result.state.products, result.state.purchases) == []

    def test_edit_price_recomputes_totals_only(self, two_lines, ctx):
        result = edit_purchase_line(two_lines.state, two_lines.purchase.id, "B", ctx, invoice_price=12)
        assert result.product_deltas == []
        assert result.purchase.total_invoice_amount == pytest.approx(110)

    def test_edit_on_paid_purchase_reopens_status(self, ctx):
        state = LedgerState(products=[Product(id="P-1", name="Pipe", warehouse="main")])
        paid = create_purchase(state, _command(payment=PaymentChoice(method="cash", currency="USD")), ctx)
        result = edit_purchase_line(paid.state, paid.purchase.id, "P-1", ctx, quantity=20)
        assert result.purchase.payment_status == "partial"

    def test_edit_requires_a_change(self, two_lines, ctx):
        with pytest.raises(PurchaseValidationError):
            edit_purchase_line(two_lines.state, two_lines.purchase.id, "A", ctx)

    def test_edit_rejects_negative_stock(self, two_lines, ctx):
        # stock sold down to 2 after the purchase
        products = [
            p if p.id != "A" else Product(id="A", name="Pipe", warehouse="main", quantity=2, cost_price=5)
            for p in two_lines.state.products
        ]
        state = LedgerState(products=products, purchases=two_lines.state.purchases)
        with pytest.raises(PurchaseValidationError, match="left in stock"):
            edit_purchase_line(state, two_lines.purchase.id, "A", ctx, quantity=1)

    def test_delete_line_removes_stock(self, two_lines, ctx):
        result = delete_purchase_line(two_lines.state, two_lines.purchase.id, "B", ctx)
        assert [i.product_id for i in result.purchase.items] == ["A"]
        assert find_product(result.state.products, "B", "main").quantity == 0
        assert result.purchase.total_invoice_amount == pytest.approx(50)
        assert check_stock_consistency(result.state.products, result.state.purchases) == []

    def test_delete_last_line_rejected(self, two_lines, ctx):
        after = delete_purchase_line(two_lines.state, two_lines.purchase.id, "B", ctx)
        with pytest.raises(PurchaseValidationError, match="last line"):
            delete_purchase_line(after.state, two_lines.purchase.id, "A", ctx)

    def test_unknown_line(self, two_lines, ctx):
        with pytest.raises(PurchaseNotFoundError):
            delete_purchase_line(two_lines.state, two_lines.purchase.id, "Z", ctx)


class TestLegacySchema:

    def _legacy(self, **kwargs):
        return Purchase(
            id="PUR-OLD",
            date=utcnow(),
            supplier_name=kwargs.pop("supplier_name", "Old Supplier"),
            items=[line(quantity=10, price=10)],
            total_invoice_amount=100,
            **kwargs,
        )

    def test_normalized_paid_reads_usd_amount(self):
        assert normalized_paid_usd(self._legacy(amount_paid=30)) == 30
        assert payable_usd(self._legacy()) == 100

    def test_migrate_fills_uzs_fields(self, ctx):
        migrated = migrate_legacy_purchase(self._legacy(amount_paid=30, payment_status="partial"), ctx)
        assert not migrated.is_legacy
        assert migrated.total_invoice_amount_uzs == 1_280_000
        assert migrated.amount_paid == pytest.approx(384_000)
        assert migrated.amount_paid_usd == 30
        assert migrated.exchange_rate == 12800
        assert migrated.payment_status == "partial"
        assert migrated.items[0].total_line_cost_uzs == 1_280_000

    def test_migrate_keeps_paid_and_debt_amounts(self, ctx):
        original = self._legacy(amount_paid=30, exchange_rate=12500)
        migrated = migrate_legacy_purchase(original, ctx)
        assert remaining_debt_usd(migrated) == pytest.approx(remaining_debt_usd(original))

    def test_current_schema_unchanged(self, debt_purchase, ctx):
        assert migrate_legacy_purchase(debt_purchase.purchase, ctx) is debt_purchase.purchase


def test_supplier_debts_grouped_largest_first(ctx):
    state = LedgerState(products=[Product(id="P-1", name="Pipe", warehouse="main")])
    a = create_purchase(state, _command(supplier_name="Small"), ctx)
    b = create_purchase(a.state, _command(items=[line(quantity=10, price=30)], supplier_name="Big"), ctx)
    c = create_purchase(b.state, _command(items=[line(quantity=1, price=50)], supplier_name="Big"), ctx)
    d = create_purchase(
        c.state, _command(supplier_name="Settled", payment=PaymentChoice(method="cash", currency="USD")), ctx
    )
    debts = supplier_debts(d.state.purchases)
    assert [row["supplier_name"] for row in debts] == ["Big", "Small"]
    assert debts[0]["debt_usd"] == pytest.approx(350)
    assert len(debts[0]["purchase_ids"]) == 2


def test_check_stock_consistency_reports_drift(debt_purchase):
    products = [
        Product(id="P-1", name="Pipe", warehouse="main", quantity=7),
    ]
    problems = check_stock_consistency(products, debt_purchase.state.purchases)
    assert problems == [{
        "product_id": "P-1",
        "warehouse": "main",
        "expected": 10,
        "actual": 7,
        "difference": -3,
    }]
