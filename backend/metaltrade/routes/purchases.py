# Overview: Flask API routes for supplier purchases, repayments and debt; parses input and returns JSON responses.

"""
Purchase Routes

Every write follows the same two steps:
1. Load the ledger state and build the full result in memory
   (purchase_service, pure).
2. Persist it in one transaction (persistence_service.apply_result).

Nothing is written when step 1 fails, and nothing is returned as committed
when step 2 fails (503).
"""

from flask import Blueprint, current_app, jsonify, request

from ..domain import (
    CURRENCY_USD,
    METHOD_CASH,
    ORIGIN_LOCAL,
    UNIT_METER,
    Purchase,
    PurchaseItem,
    PurchaseOverheads,
)
from ..errors import SERVICE_ERRORS, json_error
from ..services import persistence_service, purchase_service, settings_service
from ..services.balance_service import compute_balances
from ..services.payment_service import PaymentChoice
from ..services.pricing_service import PricingContext
from ..services.purchase_service import PurchaseCommand
from ..time_utils import parse_iso_datetime
from ..validation import ValidationError, coerce_number


purchases_bp = Blueprint("purchases", __name__, url_prefix="/api/purchases")


# =============================================================================
# PAYLOAD PARSING
# =============================================================================

def _parse_warehouse(value, name: str):
    if value is None or value == "":
        return None
    if not isinstance(value, str):
        raise ValidationError(f"{name} must be a string")
    return value.strip()


def _parse_flag(value, name: str) -> bool:
    if value is None:
        return False
    if not isinstance(value, bool):
        raise ValidationError(f"{name} must be true or false")
    return value


def _parse_items(raw_items, products) -> list[PurchaseItem]:
    if not isinstance(raw_items, list):
        raise ValidationError("items must be a list")
    known = {p.id: p for p in products}
    items = []
    for idx, raw in enumerate(raw_items):
        if not isinstance(raw, dict):
            raise ValidationError(f"items[{idx}] must be an object")
        product_id = str(raw.get("product_id") or "").strip()
        product = known.get(product_id)
        items.append(PurchaseItem(
            product_id=product_id,
            product_name=str(raw.get("product_name") or (product.name if product else product_id)),
            quantity=coerce_number(raw.get("quantity"), f"items[{idx}].quantity"),
            invoice_price=coerce_number(raw.get("invoice_price"), f"items[{idx}].invoice_price"),
            unit=raw.get("unit") or (product.unit if product else UNIT_METER),
            dimensions=raw.get("dimensions") or (product.dimensions if product else None),
            warehouse=_parse_warehouse(raw.get("warehouse"), f"items[{idx}].warehouse"),
        ))
    return items


def _parse_overheads(raw) -> PurchaseOverheads:
    if raw is None:
        return PurchaseOverheads()
    if not isinstance(raw, dict):
        raise ValidationError("overheads must be an object")
    return PurchaseOverheads(**{
        name: coerce_number(raw.get(name, 0) or 0, f"overheads.{name}")
        for name in ("logistics", "customs_duty", "import_vat", "other")
    })


def _parse_command(payload: dict, products) -> PurchaseCommand:
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")
    try:
        date = parse_iso_datetime(payload.get("date"))
    except (TypeError, ValueError):
        raise ValidationError("date must be an ISO date")
    exchange_rate = payload.get("exchange_rate")
    return PurchaseCommand(
        supplier_name=str(payload.get("supplier_name") or ""),
        items=_parse_items(payload.get("items") or [], products),
        procurement_type=str(payload.get("procurement_type") or ORIGIN_LOCAL),
        warehouse=_parse_warehouse(payload.get("warehouse"), "warehouse"),
        overheads=_parse_overheads(payload.get("overheads")),
        payment=PaymentChoice.from_payload(payload.get("payment")),
        prices_include_vat=_parse_flag(payload.get("prices_include_vat"), "prices_include_vat"),
        date=date,
        exchange_rate=None if exchange_rate is None else coerce_number(exchange_rate, "exchange_rate", positive=True),
    )


def _balances(state, ctx: PricingContext, payload: dict):
    """Current balances, or None when the caller opts out of the funds check."""
    if payload.get("check_balances", True) is False:
        return None
    return compute_balances(state.transactions, ctx, settings_service.get_opening_balances())


def _purchase_json(purchase: Purchase, ctx: PricingContext) -> dict:
    data = purchase.to_dict()
    data["payable_usd"] = purchase_service.payable_usd(purchase, ctx.exchange_rate)
    data["paid_usd"] = purchase_service.normalized_paid_usd(purchase)
    data["remaining_debt_usd"] = purchase_service.remaining_debt_usd(purchase, ctx.exchange_rate)
    return data


def _result_json(result, ctx: PricingContext) -> dict:
    data = result.to_dict()
    data["purchase"] = _purchase_json(result.purchase, ctx)
    return data


# =============================================================================
# READ
# =============================================================================

@purchases_bp.get("")
def list_purchases_route():
    """
    List purchases, newest first.

    Query parameters:
    - supplier: exact supplier name
    - status: paid | partial | unpaid
    """
    supplier = request.args.get("supplier")
    status = request.args.get("status")
    try:
        ctx = settings_service.get_pricing_context()
        purchases = persistence_service.load_purchases()
        if supplier:
            purchases = [p for p in purchases if p.supplier_name == supplier]
        if status:
            purchases = [p for p in purchases if p.payment_status == status]
        purchases.sort(key=lambda p: p.date, reverse=True)
        return jsonify({
            "items": [_purchase_json(p, ctx) for p in purchases],
            "count": len(purchases),
        })
    except SERVICE_ERRORS as e:
        return json_error(e)
    except Exception:
        current_app.logger.exception("Failed to list purchases")
        return jsonify({"error": "Internal server error"}), 500


@purchases_bp.get("/debts")
def supplier_debts_route():
    """Outstanding supplier debt grouped by supplier."""
    try:
        ctx = settings_service.get_pricing_context()
        debts = purchase_service.supplier_debts(persistence_service.load_purchases(), ctx.exchange_rate)
        return jsonify({
            "items": debts,
            "total_debt_usd": sum(d["debt_usd"] for d in debts),
        })
    except SERVICE_ERRORS as e:
        return json_error(e)
    except Exception:
        current_app.logger.exception("Failed to compute supplier debts")
        return jsonify({"error": "Internal server error"}), 500


@purchases_bp.get("/<purchase_id>")
def get_purchase_route(purchase_id: str):
    try:
        ctx = settings_service.get_pricing_context()
        purchase = purchase_service.find_purchase(persistence_service.load_purchases(), purchase_id)
        return jsonify(_purchase_json(purchase, ctx))
    except SERVICE_ERRORS as e:
        return json_error(e)
    except Exception:
        current_app.logger.exception("Failed to load purchase")
        return jsonify({"error": "Internal server error"}), 500


# =============================================================================
# WRITE
# =============================================================================

@purchases_bp.post("/preview")
def preview_purchase_route():
    """
    Landed costs and payment outcome for a purchase form, without saving.

    Same body as POST /api/purchases.
    """
    payload = request.get_json(silent=True) or {}
    try:
        ctx = settings_service.get_pricing_context()
        command = _parse_command(payload, persistence_service.load_products())
        return jsonify(purchase_service.preview_purchase(command, ctx))
    except SERVICE_ERRORS as e:
        return json_error(e)
    except Exception:
        current_app.logger.exception("Failed to preview purchase")
        return jsonify({"error": "Internal server error"}), 500


@purchases_bp.post("")
def create_purchase_route():
    """
    Record a supplier purchase.

    Request body:
    {
        "supplier_name": "Metall Trade LLC",
        "date": "2024-05-01",
        "procurement_type": "local" | "import",
        "warehouse": "main" | "cloud",
        "prices_include_vat": false,
        "exchange_rate": 12800,               // optional snapshot rate
        "overheads": {"logistics": 20, "customs_duty": 0, "import_vat": 0, "other": 0},
        "payment": {"method": "cash", "currency": "USD"}
                 | {"method": "mixed", "distribution": {"cash_usd": 10, "bank_uzs": 50000}},
        "items": [{"product_id": "P-1", "quantity": 10, "invoice_price": 2.5}],
        "check_balances": true
    }

    Returns:
        201 {purchase, transactions, product_deltas}
        409 when the chosen account cannot cover the payment
            (retry with payment.method = "debt")
    """
    payload = request.get_json(silent=True) or {}
    try:
        ctx = settings_service.get_pricing_context()
        state = persistence_service.load_state()
        command = _parse_command(payload, state.products)
        result = purchase_service.create_purchase(
            state, command, ctx, balances=_balances(state, ctx, payload)
        )
        persistence_service.apply_result(result)
        current_app.logger.info(
            "Purchase %s recorded: supplier=%s status=%s paid_usd=%.2f",
            result.purchase.id,
            result.purchase.supplier_name,
            result.purchase.payment_status,
            result.purchase.amount_paid_usd or 0.0,
        )
        return jsonify(_result_json(result, ctx)), 201
    except SERVICE_ERRORS as e:
        return json_error(e)
    except Exception:
        current_app.logger.exception("Failed to create purchase")
        return jsonify({"error": "Internal server error"}), 500


@purchases_bp.post("/<purchase_id>/repayments")
def repay_route(purchase_id: str):
    """
    Pay down a supplier debt.

    Request body:
    {"amount": 100, "method": "cash", "currency": "USD"}
    or
    {"distribution": {"cash_usd": 50, "bank_uzs": 640000}}
    """
    payload = request.get_json(silent=True) or {}
    try:
        ctx = settings_service.get_pricing_context()
        state = persistence_service.load_state()
        distribution = payload.get("distribution")
        if distribution is not None and not isinstance(distribution, dict):
            raise ValidationError("distribution must be an object")
        amount = distribution if distribution else payload.get("amount")
        if amount is None:
            raise ValidationError("amount or distribution is required")
        result = purchase_service.repay(
            state,
            purchase_id,
            amount,
            ctx,
            method=str(payload.get("method") or METHOD_CASH).lower(),
            currency=str(payload.get("currency") or CURRENCY_USD).upper(),
            balances=_balances(state, ctx, payload),
        )
        persistence_service.apply_result(result)
        current_app.logger.info(
            "Repayment on %s: status=%s paid_usd=%.2f",
            purchase_id,
            result.purchase.payment_status,
            result.purchase.amount_paid_usd or 0.0,
        )
        return jsonify(_result_json(result, ctx)), 201
    except SERVICE_ERRORS as e:
        return json_error(e)
    except Exception:
        current_app.logger.exception("Failed to record repayment")
        return jsonify({"error": "Internal server error"}), 500


@purchases_bp.patch("/<purchase_id>/lines/<product_id>")
def edit_line_route(purchase_id: str, product_id: str):
    """
    Change quantity and/or invoice price of a purchase line.

    Request body: {"quantity": 12, "invoice_price": 2.4}
    """
    payload = request.get_json(silent=True) or {}
    try:
        ctx = settings_service.get_pricing_context()
        state = persistence_service.load_state()
        result = purchase_service.edit_purchase_line(
            state,
            purchase_id,
            product_id,
            ctx,
            quantity=payload.get("quantity"),
            invoice_price=payload.get("invoice_price"),
        )
        persistence_service.apply_result(result)
        current_app.logger.info("Edited line %s on purchase %s", product_id, purchase_id)
        return jsonify(_result_json(result, ctx))
    except SERVICE_ERRORS as e:
        return json_error(e)
    except Exception:
        current_app.logger.exception("Failed to edit purchase line")
        return jsonify({"error": "Internal server error"}), 500


@purchases_bp.delete("/<purchase_id>/lines/<product_id>")
def delete_line_route(purchase_id: str, product_id: str):
    try:
        ctx = settings_service.get_pricing_context()
        state = persistence_service.load_state()
        result = purchase_service.delete_purchase_line(state, purchase_id, product_id, ctx)
        persistence_service.apply_result(result)
        current_app.logger.info("Deleted line %s from purchase %s", product_id, purchase_id)
        return jsonify(_result_json(result, ctx))
    except SERVICE_ERRORS as e:
        return json_error(e)
    except Exception:
        current_app.logger.exception("Failed to delete purchase line")
        return jsonify({"error": "Internal server error"}), 500
