# Overview: Read-only till/account balances and the transaction ledger.

from flask import Blueprint, current_app, jsonify, request

from ..errors import SERVICE_ERRORS, json_error
from ..services import persistence_service, settings_service
from ..services.balance_service import compute_balances, total_liquid_usd


balances_bp = Blueprint("balances", __name__, url_prefix="/api")


@balances_bp.get("/balances")
def balances_route():
    """Opening balances plus every recorded transaction."""
    try:
        ctx = settings_service.get_pricing_context()
        balances = compute_balances(
            persistence_service.load_transactions(),
            ctx,
            settings_service.get_opening_balances(),
        )
        data = balances.to_dict()
        data["total_liquid_usd"] = total_liquid_usd(balances, ctx)
        data["exchange_rate"] = ctx.exchange_rate
        return jsonify(data)
    except SERVICE_ERRORS as e:
        return json_error(e)
    except Exception:
        current_app.logger.exception("Failed to compute balances")
        return jsonify({"error": "Internal server error"}), 500


@balances_bp.get("/transactions")
def list_transactions_route():
    """
    Query parameters:
    - related_id: only transactions for this purchase
    """
    related_id = request.args.get("related_id")
    try:
        transactions = persistence_service.load_transactions()
        if related_id:
            transactions = [t for t in transactions if t.related_id == related_id]
        return jsonify({"items": [t.to_dict() for t in transactions], "count": len(transactions)})
    except SERVICE_ERRORS as e:
        return json_error(e)
    except Exception:
        current_app.logger.exception("Failed to list transactions")
        return jsonify({"error": "Internal server error"}), 500
