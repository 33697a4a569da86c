# Overview: Till and account balances derived from the transaction ledger.

"""
Balance Service

Balances are never stored; they are recomputed from transactions on demand.

DIRECTION:
- in:  client_payment
- out: supplier_payment, client_return, client_refund, expense
- debt_obligation moves no money

ACCOUNTS:
- cash: USD stays in cash_usd, UZS in cash_uzs
- bank / card: always UZS; a USD transaction is converted at its own
  exchange_rate (or the context rate when it has none)
"""

from __future__ import annotations

from typing import Iterable

from ..domain import (
    CURRENCY_USD,
    METHOD_BANK,
    METHOD_CARD,
    METHOD_CASH,
    TX_CLIENT_PAYMENT,
    TX_CLIENT_REFUND,
    TX_CLIENT_RETURN,
    TX_EXPENSE,
    TX_SUPPLIER_PAYMENT,
    Balances,
    Transaction,
)
from .pricing_service import PricingContext, ensure_finite


_INCOMING = {TX_CLIENT_PAYMENT}
_OUTGOING = {TX_SUPPLIER_PAYMENT, TX_CLIENT_RETURN, TX_CLIENT_REFUND, TX_EXPENSE}


def _signed(tx: Transaction) -> float:
    if tx.type in _INCOMING:
        return 1.0
    if tx.type in _OUTGOING:
        return -1.0
    return 0.0


def compute_balances(
    transactions: Iterable[Transaction],
    ctx: PricingContext,
    opening: Balances | None = None,
) -> Balances:
    """
    Sum the ledger into a Balances snapshot.

    Args:
        transactions: all money movements
        ctx: fallback rate for USD bank/card transactions without their own rate
        opening: balances before the first transaction
    """
    opening = opening or Balances()
    cash_usd = opening.cash_usd
    cash_uzs = opening.cash_uzs
    card_uzs = opening.card_uzs
    bank_uzs = opening.bank_uzs

    for tx in transactions:
        sign = _signed(tx)
        if not sign:
            continue
        amount = ensure_finite(tx.amount or 0.0, f"transaction {tx.id} amount")
        is_usd = tx.currency == CURRENCY_USD
        rate = tx.exchange_rate if tx.exchange_rate and tx.exchange_rate > 0 else ctx.exchange_rate

        if tx.method == METHOD_CASH:
            if is_usd:
                cash_usd += sign * amount
            else:
                cash_uzs += sign * amount
        elif tx.method == METHOD_BANK:
            bank_uzs += sign * (amount * rate if is_usd else amount)
        elif tx.method == METHOD_CARD:
            card_uzs += sign * (amount * rate if is_usd else amount)

    return Balances(cash_usd=cash_usd, cash_uzs=cash_uzs, card_uzs=card_uzs, bank_uzs=bank_uzs)


def total_liquid_usd(balances: Balances, ctx: PricingContext) -> float:
    """All four buckets expressed in USD at the context rate."""
    uzs = balances.cash_uzs + balances.card_uzs + balances.bank_uzs
    return balances.cash_usd + uzs / ctx.exchange_rate
