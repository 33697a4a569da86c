"""
Payment distribution resolver: methods, forced currencies, mixed legs,
balance checks and the transactions built from a resolution.
"""

import pytest

from metaltrade.domain import Balances
from metaltrade.services.payment_service import (
    InsufficientFundsError,
    PaymentChoice,
    build_transactions,
    resolve_payment,
)
from metaltrade.time_utils import utcnow
from metaltrade.validation import ValidationError


TOTAL_UZS = 1_280_000.0  # 100 USD at 12800


class TestSingleMethod:

    def test_debt_pays_nothing(self, ctx):
        res = resolve_payment(TOTAL_UZS, PaymentChoice(method="debt"), ctx)
        assert res.legs == []
        assert res.paid_uzs == 0
        assert res.status == "unpaid"

    def test_cash_usd_full_amount(self, ctx):
        res = resolve_payment(TOTAL_UZS, PaymentChoice(method="cash", currency="USD"), ctx)
        assert len(res.legs) == 1
        leg = res.legs[0]
        assert (leg.account, leg.currency) == ("cash_usd", "USD")
        assert leg.amount == pytest.approx(100)
        assert res.paid_usd == pytest.approx(100)
        assert res.status == "paid"

    @pytest.mark.parametrize("method,account", [("bank", "bank_uzs"), ("card", "card_uzs")])
    def test_bank_and_card_forced_to_uzs(self, ctx, method, account):
        res = resolve_payment(TOTAL_UZS, PaymentChoice(method=method, currency="USD"), ctx)
        assert res.currency == "UZS"
        assert res.legs[0].account == account
        assert res.legs[0].amount == TOTAL_UZS

    def test_partial_amount(self, ctx):
        res = resolve_payment(TOTAL_UZS, PaymentChoice(method="cash", currency="USD", amount=40), ctx)
        assert res.paid_uzs == pytest.approx(512_000)
        assert res.remaining_uzs == pytest.approx(768_000)
        assert res.status == "partial"

    def test_overpayment_rejected(self, ctx):
        with pytest.raises(ValidationError, match="exceeds"):
            resolve_payment(TOTAL_UZS, PaymentChoice(method="cash", currency="USD", amount=101), ctx)

    def test_overpayment_within_tolerance_is_paid(self, ctx):
        res = resolve_payment(TOTAL_UZS, PaymentChoice(method="cash", currency="USD", amount=100.05), ctx)
        assert res.status == "paid"

    def test_unknown_method(self, ctx):
        with pytest.raises(ValidationError):
            resolve_payment(TOTAL_UZS, PaymentChoice(method="barter"), ctx)


class TestMixed:

    def test_legs_sum_to_paid(self, ctx):
        choice = PaymentChoice(method="mixed", distribution={
            "cash_usd": 50,
            "cash_uzs": 0,
            "bank_uzs": 640_000,
        })
        res = resolve_payment(TOTAL_UZS, choice, ctx)
        assert [leg.account for leg in res.legs] == ["cash_usd", "bank_uzs"]
        assert res.paid_uzs == pytest.approx(sum(leg.amount_uzs for leg in res.legs))
        assert res.paid_uzs == pytest.approx(TOTAL_UZS)
        assert res.paid_usd == pytest.approx(100)
        assert res.status == "paid"

    def test_empty_distribution_is_unpaid(self, ctx):
        res = resolve_payment(TOTAL_UZS, PaymentChoice(method="mixed", distribution={}), ctx)
        assert res.legs == []
        assert res.status == "unpaid"

    def test_negative_leg_rejected(self, ctx):
        with pytest.raises(ValidationError):
            resolve_payment(TOTAL_UZS, PaymentChoice(method="mixed", distribution={"cash_usd": -5}), ctx)

    def test_unknown_key_rejected(self, ctx):
        with pytest.raises(ValidationError, match="Unknown distribution keys"):
            resolve_payment(TOTAL_UZS, PaymentChoice(method="mixed", distribution={"crypto": 5}), ctx)


class TestBalances:

    def test_shortfall_raises_recoverable_error(self, ctx):
        with pytest.raises(InsufficientFundsError) as exc:
            resolve_payment(
                TOTAL_UZS,
                PaymentChoice(method="cash", currency="USD"),
                ctx,
                balances=Balances(cash_usd=60),
            )
        err = exc.value
        assert err.account == "cash_usd"
        assert err.required == pytest.approx(100)
        assert err.available == 60
        assert err.to_dict()["can_record_as_debt"] is True

    def test_mixed_checks_each_account(self, ctx):
        choice = PaymentChoice(method="mixed", distribution={"cash_usd": 10, "card_uzs": 500_000})
        with pytest.raises(InsufficientFundsError) as exc:
            resolve_payment(TOTAL_UZS, choice, ctx, balances=Balances(cash_usd=100, card_uzs=100_000))
        assert exc.value.account == "card_uzs"

    def test_debt_never_checks_balances(self, ctx):
        res = resolve_payment(TOTAL_UZS, PaymentChoice(method="debt"), ctx, balances=Balances())
        assert res.status == "unpaid"


def test_build_transactions_one_per_leg(ctx):
    choice = PaymentChoice(method="mixed", distribution={"cash_usd": 10, "bank_uzs": 128_000})
    res = resolve_payment(TOTAL_UZS, choice, ctx)
    txs = build_transactions(res, purchase_id="PUR-1", description="Payment", date=utcnow())
    assert len(txs) == 2
    assert len({t.id for t in txs}) == 2
    assert all(t.type == "supplier_payment" and t.related_id == "PUR-1" for t in txs)
    assert all(t.exchange_rate == 12800 for t in txs)
    assert [(t.method, t.currency, t.amount) for t in txs] == [("cash", "USD", 10), ("bank", "UZS", 128_000)]


def test_from_payload_defaults_to_debt():
    assert PaymentChoice.from_payload(None).method == "debt"
    choice = PaymentChoice.from_payload({"method": "Cash", "currency": "usd", "amount": "12,5"})
    assert (choice.method, choice.currency, choice.amount) == ("cash", "USD", 12.5)


@pytest.mark.parametrize("distribution", ["abc", 5, ["cash_usd", 10]])
def test_from_payload_rejects_non_object_distribution(distribution):
    with pytest.raises(ValidationError):
        PaymentChoice.from_payload({"method": "mixed", "distribution": distribution})
