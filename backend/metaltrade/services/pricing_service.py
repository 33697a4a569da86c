# Overview: Currency conversion, VAT extraction and payment tolerance helpers shared by the procurement services.

from __future__ import annotations

import math
from dataclasses import dataclass

from ..domain import (
    CURRENCY_USD,
    CURRENCY_UZS,
    STATUS_PAID,
    STATUS_PARTIAL,
    STATUS_UNPAID,
)


TAX_POLICY_CAPITALIZE = "capitalize"
TAX_POLICY_EXPENSE = "expense"
TAX_POLICIES = {TAX_POLICY_CAPITALIZE, TAX_POLICY_EXPENSE}

# Below this a paid amount counts as "nothing paid"
ZERO_EPSILON = 1e-9


class ConfigurationError(ValueError):
    """Raised when rates or policies would produce non-finite or meaningless amounts."""
    pass


def ensure_finite(value: float, label: str) -> float:
    """Return value as float, raising ConfigurationError on NaN/Infinity."""
    try:
        number = float(value)
    except (TypeError, ValueError):
        raise ConfigurationError(f"{label} is not a number")
    if not math.isfinite(number):
        raise ConfigurationError(f"{label} is not finite (check exchange rate and VAT settings)")
    return number


@dataclass(frozen=True)
class PricingContext:
    """
    Rates and policies every calculation receives explicitly.

    exchange_rate: UZS per 1 USD
    vat_rate: percent, e.g. 12 for 12%
    tolerance_usd: how close a paid amount must be to count as fully paid
    import_tax_policy: whether customs duty and import VAT go into landed cost
    """
    exchange_rate: float
    vat_rate: float = 12.0
    tolerance_usd: float = 0.1
    import_tax_policy: str = TAX_POLICY_CAPITALIZE

    def __post_init__(self):
        rate = ensure_finite(self.exchange_rate, "exchange_rate")
        if rate <= 0:
            raise ConfigurationError("exchange_rate must be positive")
        vat = ensure_finite(self.vat_rate, "vat_rate")
        if vat < 0:
            raise ConfigurationError("vat_rate cannot be negative")
        tolerance = ensure_finite(self.tolerance_usd, "tolerance_usd")
        if tolerance < 0:
            raise ConfigurationError("tolerance_usd cannot be negative")
        if self.import_tax_policy not in TAX_POLICIES:
            raise ConfigurationError(
                f"import_tax_policy must be one of: {', '.join(sorted(TAX_POLICIES))}"
            )
        object.__setattr__(self, "exchange_rate", rate)
        object.__setattr__(self, "vat_rate", vat)
        object.__setattr__(self, "tolerance_usd", tolerance)

    def with_rate(self, exchange_rate: float | None) -> "PricingContext":
        """Same policies at another rate (e.g. a purchase's snapshot rate)."""
        if not exchange_rate:
            return self
        return PricingContext(
            exchange_rate=exchange_rate,
            vat_rate=self.vat_rate,
            tolerance_usd=self.tolerance_usd,
            import_tax_policy=self.import_tax_policy,
        )

    def to_dict(self) -> dict:
        return {
            "exchange_rate": self.exchange_rate,
            "vat_rate": self.vat_rate,
            "tolerance_usd": self.tolerance_usd,
            "import_tax_policy": self.import_tax_policy,
        }


def usd_to_uzs(amount: float, ctx: PricingContext) -> float:
    return ensure_finite(amount * ctx.exchange_rate, "UZS amount")


def uzs_to_usd(amount: float, ctx: PricingContext) -> float:
    return ensure_finite(amount / ctx.exchange_rate, "USD amount")


def to_uzs(amount: float, currency: str, ctx: PricingContext) -> float:
    if currency == CURRENCY_UZS:
        return ensure_finite(amount, "UZS amount")
    if currency == CURRENCY_USD:
        return usd_to_uzs(amount, ctx)
    raise ValueError(f"Unsupported currency: {currency}")


def to_usd(amount: float, currency: str, ctx: PricingContext) -> float:
    if currency == CURRENCY_USD:
        return ensure_finite(amount, "USD amount")
    if currency == CURRENCY_UZS:
        return uzs_to_usd(amount, ctx)
    raise ValueError(f"Unsupported currency: {currency}")


def split_vat(gross: float, vat_rate: float) -> tuple[float, float]:
    """
    Split a VAT-inclusive amount into (net, vat).

    net = gross / (1 + rate/100); vat = gross - net.
    """
    divisor = 1 + (vat_rate / 100.0)
    net = ensure_finite(gross / divisor, "net price")
    return net, gross - net


def tolerance_for(currency: str, ctx: PricingContext) -> float:
    """
    Rounding tolerance expressed in the given currency.

    The same real-money threshold applies to both currencies: 0.1 USD is
    0.1 * rate in UZS.
    """
    if currency == CURRENCY_USD:
        return ctx.tolerance_usd
    if currency == CURRENCY_UZS:
        return ctx.tolerance_usd * ctx.exchange_rate
    raise ValueError(f"Unsupported currency: {currency}")


def payment_status(paid: float, total: float, tolerance: float) -> str:
    """Map paid vs total (same currency) to paid / partial / unpaid."""
    if paid >= total - tolerance:
        return STATUS_PAID
    if paid <= ZERO_EPSILON:
        return STATUS_UNPAID
    return STATUS_PARTIAL
