# Overview: Landed cost allocation for purchase lines; pure calculation, no database access.

"""
Landed Cost Allocator

LOCAL purchases:
- landed_cost = unit price, no overhead spreading.

IMPORT purchases:
- Overheads (USD) are spread over lines in proportion to each line's share of
  the total invoice value: allocated = overheads * line_value / invoice_value,
  landed_cost = unit price + allocated / quantity.
- Which buckets are spread depends on the import tax policy:
    capitalize: logistics + customs_duty + import_vat + other
    expense:    logistics + other (duty and import VAT reported as total_taxes)
- If the invoice value is zero nothing is allocated and landed_cost stays at
  the unit price.

VAT-AWARE purchases (prices_include_vat=True):
- invoice_price is a VAT-inclusive UZS unit price.
- Order of operations is fixed: extract VAT -> convert to USD -> allocate.
  Overhead shares are computed on the converted USD net values.

No per-line rounding correction is applied, so the sum of allocated overheads
equals the overhead total only up to floating-point error.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import Iterable

from ..domain import ORIGIN_IMPORT, PROCUREMENT_TYPES, PurchaseItem, PurchaseOverheads
from ..validation import ValidationError
from .pricing_service import (
    TAX_POLICY_CAPITALIZE,
    PricingContext,
    ensure_finite,
    split_vat,
    usd_to_uzs,
    uzs_to_usd,
)


@dataclass
class AllocationResult:
    items: list[PurchaseItem]
    allocated_overheads: list[float]
    total_invoice_value: float  # USD, VAT-exclusive
    total_overheads: float  # USD actually spread onto lines
    total_taxes: float  # USD duty + import VAT kept out of cost (expense policy)
    total_landed_value: float  # USD
    total_invoice_value_uzs: float  # VAT-inclusive
    total_vat_amount_uzs: float = 0.0
    total_without_vat_uzs: float = 0.0

    def to_dict(self) -> dict:
        return {
            "items": [i.to_dict() for i in self.items],
            "allocated_overheads": list(self.allocated_overheads),
            "total_invoice_value": self.total_invoice_value,
            "total_overheads": self.total_overheads,
            "total_taxes": self.total_taxes,
            "total_landed_value": self.total_landed_value,
            "total_invoice_value_uzs": self.total_invoice_value_uzs,
            "total_vat_amount_uzs": self.total_vat_amount_uzs,
            "total_without_vat_uzs": self.total_without_vat_uzs,
        }


def overhead_totals(overheads: PurchaseOverheads, policy: str) -> tuple[float, float]:
    """Return (amount spread onto stock, amount kept as separate tax expense)."""
    taxes = overheads.customs_duty + overheads.import_vat
    if policy == TAX_POLICY_CAPITALIZE:
        return overheads.logistics + taxes + overheads.other, 0.0
    return overheads.logistics + overheads.other, taxes


def validate_overheads(overheads: PurchaseOverheads) -> None:
    for name in ("logistics", "customs_duty", "import_vat", "other"):
        value = getattr(overheads, name)
        ensure_finite(value, name)
        if value < 0:
            raise ValidationError(f"Overhead {name} cannot be negative")


def validate_lines(items: Iterable[PurchaseItem]) -> None:
    """
    Checks a cart before it is committed.

    Raises:
        ValidationError: empty cart, non-positive quantity/price, or the same
            product added twice
    """
    items = list(items)
    if not items:
        raise ValidationError("Purchase must contain at least one line")

    seen: set[str] = set()
    for item in items:
        if not item.product_id:
            raise ValidationError("Every line needs a product_id")
        if item.product_id in seen:
            raise ValidationError(
                f"Product {item.product_id} is already in this purchase. Remove it before adding it again."
            )
        seen.add(item.product_id)
        if item.quantity <= 0:
            raise ValidationError(f"Quantity for {item.product_name or item.product_id} must be positive")
        if item.invoice_price <= 0:
            raise ValidationError(f"Price for {item.product_name or item.product_id} must be positive")


def _net_usd_unit_price(item: PurchaseItem, ctx: PricingContext, prices_include_vat: bool) -> tuple[float, float, float]:
    """Return (net unit price in document currency, line VAT, net unit price in USD)."""
    if prices_include_vat:
        net, vat_per_unit = split_vat(item.invoice_price, ctx.vat_rate)
        return net, vat_per_unit * item.quantity, uzs_to_usd(net, ctx)
    return item.invoice_price, 0.0, item.invoice_price


def allocate_landed_cost(
    items: Iterable[PurchaseItem],
    overheads: PurchaseOverheads | None,
    procurement_type: str,
    ctx: PricingContext,
    *,
    prices_include_vat: bool = False,
) -> AllocationResult:
    """
    Compute landed cost for every line.

    The input items are not modified; copies with landed_cost, totals and VAT
    fields filled in are returned.
    """
    if procurement_type not in PROCUREMENT_TYPES:
        raise ValidationError(f"procurement_type must be one of: {', '.join(sorted(PROCUREMENT_TYPES))}")

    items = list(items)
    overheads = overheads or PurchaseOverheads()

    prepared = []
    for item in items:
        net, line_vat, net_usd = _net_usd_unit_price(item, ctx, prices_include_vat)
        prepared.append((item, net, line_vat, net_usd))

    total_invoice_value = sum(item.quantity * net_usd for item, _, _, net_usd in prepared)

    if procurement_type == ORIGIN_IMPORT:
        validate_overheads(overheads)
        total_overheads, total_taxes = overhead_totals(overheads, ctx.import_tax_policy)
    else:
        total_overheads, total_taxes = 0.0, 0.0

    result_items: list[PurchaseItem] = []
    allocated: list[float] = []
    for item, net, line_vat, net_usd in prepared:
        line_value = item.quantity * net_usd
        share = 0.0
        if total_overheads and total_invoice_value > 0 and item.quantity > 0:
            share = total_overheads * (line_value / total_invoice_value)
            landed = net_usd + share / item.quantity
        else:
            landed = net_usd

        if prices_include_vat:
            line_uzs = item.quantity * item.invoice_price
        else:
            line_uzs = usd_to_uzs(item.quantity * item.invoice_price, ctx)

        allocated.append(share)
        result_items.append(replace(
            item,
            invoice_price_without_vat=net,
            vat_amount=line_vat,
            landed_cost=ensure_finite(landed, "landed cost"),
            total_line_cost=ensure_finite(landed * item.quantity, "line cost"),
            total_line_cost_uzs=line_uzs,
        ))

    total_invoice_value_uzs = sum(i.total_line_cost_uzs for i in result_items)
    total_vat_uzs = sum(i.vat_amount for i in result_items) if prices_include_vat else 0.0

    return AllocationResult(
        items=result_items,
        allocated_overheads=allocated,
        total_invoice_value=total_invoice_value,
        total_overheads=total_overheads,
        total_taxes=total_taxes,
        total_landed_value=sum(i.total_line_cost for i in result_items),
        total_invoice_value_uzs=total_invoice_value_uzs,
        total_vat_amount_uzs=total_vat_uzs,
        total_without_vat_uzs=total_invoice_value_uzs - total_vat_uzs,
    )
