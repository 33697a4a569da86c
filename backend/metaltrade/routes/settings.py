# Overview: Flask API routes for pricing settings (exchange rate, VAT, tolerance, import tax policy).

from flask import Blueprint, current_app, jsonify, request

from ..errors import SERVICE_ERRORS, json_error
from ..services import settings_service


settings_bp = Blueprint("settings", __name__, url_prefix="/api")


@settings_bp.get("/settings")
def get_settings_route():
    try:
        return jsonify(settings_service.get_settings())
    except SERVICE_ERRORS as e:
        return json_error(e)
    except Exception:
        current_app.logger.exception("Failed to load settings")
        return jsonify({"error": "Internal server error"}), 500


@settings_bp.put("/settings")
def update_settings_route():
    """
    Request body: any subset of
    {"exchange_rate": 12850, "vat_rate": 12, "tolerance_usd": 0.1,
     "import_tax_policy": "capitalize" | "expense",
     "opening_cash_usd": 0, "opening_cash_uzs": 0, "opening_card_uzs": 0, "opening_bank_uzs": 0}
    """
    payload = request.get_json(silent=True) or {}
    try:
        values = settings_service.update_settings(payload)
        current_app.logger.info("Settings updated: %s", ", ".join(sorted(payload)))
        return jsonify(values)
    except SERVICE_ERRORS as e:
        return json_error(e)
    except Exception:
        current_app.logger.exception("Failed to update settings")
        return jsonify({"error": "Internal server error"}), 500
