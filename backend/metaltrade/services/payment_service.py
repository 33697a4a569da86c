# Overview: Turns a supplier payment choice into payment legs, a paid total and ledger transactions.

"""
Payment Distribution Resolver

WHY: A supplier purchase can be settled from the cash till (USD or UZS), the
bank account, the card account, any mix of those, or left as debt. Every path
has to agree on how much was paid and which accounts money left.

METHODS:
- cash:  one leg, USD or UZS
- bank:  one leg, currency forced to UZS
- card:  one leg, currency forced to UZS
- debt:  no legs, nothing paid
- mixed: up to four legs from {cash_usd, cash_uzs, card_uzs, bank_uzs};
         cash_usd is converted to UZS at the context rate

INVARIANTS:
- At most one leg (and one Transaction) per nonzero contribution.
- sum(leg.amount_uzs) == paid_uzs; paid_usd == paid_uzs / rate.
- Balance checks happen before anything is built. On a shortfall nothing is
  committed and InsufficientFundsError tells the caller it may record the
  purchase as debt instead.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

from ..domain import (
    CURRENCIES,
    CURRENCY_USD,
    CURRENCY_UZS,
    METHOD_BANK,
    METHOD_CARD,
    METHOD_CASH,
    METHOD_DEBT,
    METHOD_MIXED,
    PAYMENT_METHODS,
    TX_SUPPLIER_PAYMENT,
    Balances,
    Transaction,
)
from ..validation import ValidationError, coerce_number
from .identifier_service import new_transaction_ids
from .pricing_service import (
    PricingContext,
    ensure_finite,
    payment_status,
    to_uzs,
    tolerance_for,
    uzs_to_usd,
)


class PaymentError(Exception):
    """Raised for payment operation errors."""
    pass


class InsufficientFundsError(PaymentError):
    """
    The chosen till/account does not cover the payment.

    Recoverable: the caller may retry with method=debt.
    """

    def __init__(self, account: str, required: float, available: float):
        self.account = account
        self.required = required
        self.available = available
        self.can_record_as_debt = True
        super().__init__(
            f"Insufficient funds in {account}: required {required:.2f}, available {available:.2f}"
        )

    def to_dict(self) -> dict:
        return {
            "error": str(self),
            "account": self.account,
            "required": self.required,
            "available": self.available,
            "can_record_as_debt": self.can_record_as_debt,
        }


# =============================================================================
# ACCOUNTS (CONSTANTS)
# =============================================================================

ACCOUNT_CASH_USD = "cash_usd"
ACCOUNT_CASH_UZS = "cash_uzs"
ACCOUNT_CARD_UZS = "card_uzs"
ACCOUNT_BANK_UZS = "bank_uzs"

# Mixed distribution keys, in the order legs are emitted
MIXED_ACCOUNTS = [ACCOUNT_CASH_USD, ACCOUNT_CASH_UZS, ACCOUNT_CARD_UZS, ACCOUNT_BANK_UZS]

_ACCOUNT_ROUTING = {
    ACCOUNT_CASH_USD: (METHOD_CASH, CURRENCY_USD),
    ACCOUNT_CASH_UZS: (METHOD_CASH, CURRENCY_UZS),
    ACCOUNT_CARD_UZS: (METHOD_CARD, CURRENCY_UZS),
    ACCOUNT_BANK_UZS: (METHOD_BANK, CURRENCY_UZS),
}

# Float noise allowed when comparing a leg against an account balance
BALANCE_EPSILON = 1e-6


@dataclass(frozen=True)
class PaymentChoice:
    """
    What the user picked on the payment form.

    amount: for cash/bank/card, how much to pay in `currency`. None means
        "the full amount owed".
    distribution: for mixed, amounts keyed by MIXED_ACCOUNTS.
    """
    method: str
    currency: str = CURRENCY_UZS
    amount: Optional[float] = None
    distribution: dict = field(default_factory=dict)

    @classmethod
    def from_payload(cls, payload: dict | None) -> "PaymentChoice":
        """Build from a JSON body; missing payload means debt."""
        if not payload:
            return cls(method=METHOD_DEBT)
        if not isinstance(payload, dict):
            raise ValidationError("payment must be an object")
        amount = payload.get("amount")
        distribution = payload.get("distribution")
        if distribution is not None and not isinstance(distribution, dict):
            raise ValidationError("payment.distribution must be an object")
        return cls(
            method=str(payload.get("method") or METHOD_DEBT).strip().lower(),
            currency=str(payload.get("currency") or CURRENCY_UZS).strip().upper(),
            amount=None if amount is None else coerce_number(amount, "payment.amount"),
            distribution=dict(distribution or {}),
        )


@dataclass(frozen=True)
class PaymentLeg:
    account: str
    method: str
    currency: str
    amount: float  # in `currency`
    amount_uzs: float

    def to_dict(self) -> dict:
        return {
            "account": self.account,
            "method": self.method,
            "currency": self.currency,
            "amount": self.amount,
            "amount_uzs": self.amount_uzs,
        }


@dataclass(frozen=True)
class PaymentResolution:
    method: str
    currency: str
    legs: list[PaymentLeg]
    total_uzs: float
    paid_uzs: float
    paid_usd: float
    status: str
    exchange_rate: float

    @property
    def remaining_uzs(self) -> float:
        return max(0.0, self.total_uzs - self.paid_uzs)

    def to_dict(self) -> dict:
        return {
            "method": self.method,
            "currency": self.currency,
            "legs": [leg.to_dict() for leg in self.legs],
            "total_uzs": self.total_uzs,
            "paid_uzs": self.paid_uzs,
            "paid_usd": self.paid_usd,
            "remaining_uzs": self.remaining_uzs,
            "status": self.status,
            "exchange_rate": self.exchange_rate,
        }


def account_for(method: str, currency: str) -> str:
    """Map a single-method payment to the balance bucket it draws from."""
    if method == METHOD_CASH:
        return ACCOUNT_CASH_USD if currency == CURRENCY_USD else ACCOUNT_CASH_UZS
    if method == METHOD_CARD:
        return ACCOUNT_CARD_UZS
    if method == METHOD_BANK:
        return ACCOUNT_BANK_UZS
    raise ValidationError(f"Method {method} does not draw from an account")


def normalize_choice(choice: PaymentChoice) -> PaymentChoice:
    """
    Validate method/currency and apply the forced-currency rules.

    Raises:
        ValidationError: unknown method or currency
    """
    if choice.method not in PAYMENT_METHODS:
        raise ValidationError(f"payment method must be one of: {', '.join(sorted(PAYMENT_METHODS))}")
    if choice.method in (METHOD_BANK, METHOD_CARD, METHOD_MIXED):
        currency = CURRENCY_UZS
    else:
        currency = choice.currency
    if currency not in CURRENCIES:
        raise ValidationError(f"payment currency must be one of: {', '.join(sorted(CURRENCIES))}")
    if currency == choice.currency:
        return choice
    return PaymentChoice(
        method=choice.method,
        currency=currency,
        amount=choice.amount,
        distribution=choice.distribution,
    )


def _single_leg(choice: PaymentChoice, total_uzs: float, ctx: PricingContext) -> PaymentLeg:
    account = account_for(choice.method, choice.currency)
    if choice.amount is None:
        amount_uzs = total_uzs
        amount = amount_uzs if choice.currency == CURRENCY_UZS else uzs_to_usd(amount_uzs, ctx)
    else:
        amount = coerce_number(choice.amount, "payment amount", positive=True)
        amount_uzs = to_uzs(amount, choice.currency, ctx)
    return PaymentLeg(
        account=account,
        method=choice.method,
        currency=choice.currency,
        amount=amount,
        amount_uzs=amount_uzs,
    )


def _mixed_legs(distribution: dict, ctx: PricingContext) -> list[PaymentLeg]:
    unknown = sorted(set(distribution) - set(MIXED_ACCOUNTS))
    if unknown:
        raise ValidationError(f"Unknown distribution keys: {', '.join(unknown)}")

    legs = []
    for account in MIXED_ACCOUNTS:
        raw = distribution.get(account)
        if raw in (None, ""):
            continue
        amount = coerce_number(raw, account, minimum=0)
        if amount == 0:
            continue
        method, currency = _ACCOUNT_ROUTING[account]
        legs.append(PaymentLeg(
            account=account,
            method=method,
            currency=currency,
            amount=amount,
            amount_uzs=to_uzs(amount, currency, ctx),
        ))
    return legs


def check_balances(legs: list[PaymentLeg], balances: Balances | None) -> None:
    """
    Verify every leg is covered by its account.

    Raises:
        InsufficientFundsError: first leg that is not covered
    """
    if balances is None:
        return
    for leg in legs:
        available = getattr(balances, leg.account)
        if leg.amount > available + BALANCE_EPSILON:
            raise InsufficientFundsError(leg.account, leg.amount, available)


def resolve_payment(
    total_uzs: float,
    choice: PaymentChoice,
    ctx: PricingContext,
    *,
    balances: Balances | None = None,
) -> PaymentResolution:
    """
    Resolve a payment choice against an amount owed.

    Args:
        total_uzs: amount owed (VAT-inclusive UZS)
        choice: method, currency, optional amount or mixed distribution
        ctx: pricing context whose exchange_rate converts USD legs
        balances: till/account snapshot; None skips the funds check

    Returns:
        PaymentResolution with legs, paid totals and payment status

    Raises:
        ValidationError: bad method/currency, negative or non-numeric legs,
            or a payment above the amount owed beyond tolerance
        InsufficientFundsError: a leg exceeds its account balance
        ConfigurationError: non-finite amounts from a bad rate
    """
    total_uzs = ensure_finite(total_uzs, "amount owed")
    choice = normalize_choice(choice)

    if choice.method == METHOD_DEBT:
        legs = []
    elif choice.method == METHOD_MIXED:
        legs = _mixed_legs(choice.distribution, ctx)
    else:
        legs = [_single_leg(choice, total_uzs, ctx)]

    paid_uzs = sum(leg.amount_uzs for leg in legs)
    tolerance = tolerance_for(CURRENCY_UZS, ctx)
    if paid_uzs > total_uzs + tolerance:
        raise ValidationError(
            f"Payment {paid_uzs:,.2f} UZS exceeds the amount owed {total_uzs:,.2f} UZS"
        )

    check_balances(legs, balances)

    status = payment_status(paid_uzs, total_uzs, tolerance)

    return PaymentResolution(
        method=choice.method,
        currency=choice.currency,
        legs=legs,
        total_uzs=total_uzs,
        paid_uzs=paid_uzs,
        paid_usd=uzs_to_usd(paid_uzs, ctx),
        status=status,
        exchange_rate=ctx.exchange_rate,
    )


def build_transactions(
    resolution: PaymentResolution,
    *,
    purchase_id: str,
    description: str,
    date: datetime,
) -> list[Transaction]:
    """One supplier_payment Transaction per leg, stamped with the resolution's rate."""
    if not resolution.legs:
        return []
    ids = new_transaction_ids(len(resolution.legs))
    return [
        Transaction(
            id=tx_id,
            date=date,
            type=TX_SUPPLIER_PAYMENT,
            amount=leg.amount,
            currency=leg.currency,
            method=leg.method,
            description=description,
            exchange_rate=resolution.exchange_rate,
            related_id=purchase_id,
        )
        for tx_id, leg in zip(ids, resolution.legs)
    ]
