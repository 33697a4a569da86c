# Overview: Flask API routes for stock rows; parses input and returns JSON responses.

"""
Product routes.

A product row is one product in one warehouse. Quantities and cost prices are
maintained by the purchase ledger; this API creates rows (with optional
opening stock) and lists them.
"""
from flask import Blueprint, current_app, jsonify, request

from ..domain import PROCUREMENT_TYPES, PRODUCT_TYPES, UNITS, WAREHOUSES, Product
from ..errors import SERVICE_ERRORS, json_error
from ..models import ProductRecord
from ..services import persistence_service
from ..services.inventory_service import find_product, inventory_value
from ..validation import (
    ConflictError,
    ModelValidationPolicy,
    ValidationError,
    enforce_rules_product,
    validate_payload,
)

PRODUCT_POLICY = ModelValidationPolicy(
    writable_fields={
        "product_id", "warehouse", "name", "type", "dimensions", "steel_grade",
        "unit", "manufacturer", "origin", "quantity", "price_per_unit",
        "cost_price", "min_stock_level",
    },
    required_on_create={"product_id", "name", "unit"},
)

products_bp = Blueprint("products", __name__, url_prefix="/api/products")


@products_bp.get("")
def list_products():
    """
    List stock rows.

    Query params:
    - warehouse: main | cloud (untagged rows count as main)
    - low_stock: true to return only rows at or below min_stock_level
    """
    warehouse = request.args.get("warehouse")
    low_stock = request.args.get("low_stock", "false").lower() == "true"

    try:
        if warehouse is not None and warehouse not in WAREHOUSES:
            raise ValidationError(f"warehouse must be one of: {', '.join(sorted(WAREHOUSES))}")
        products = persistence_service.load_products()
        if warehouse:
            products = [p for p in products if p.effective_warehouse == warehouse]
        if low_stock:
            products = [p for p in products if p.quantity <= p.min_stock_level]
        return jsonify({
            "items": [p.to_dict() for p in products],
            "count": len(products),
            "inventory_value_usd": inventory_value(products),
        })
    except SERVICE_ERRORS as e:
        return json_error(e)
    except Exception:
        current_app.logger.exception("Failed to list products")
        return jsonify({"error": "Internal server error"}), 500


@products_bp.post("")
def create_product_route():
    """
    Create a stock row.

    Request body:
    {
        "product_id": "P-100",   // required
        "name": "Труба 57x3",    // required
        "unit": "м",             // required
        "warehouse": "main",     // optional, default main
        "type": "Труба", "dimensions": "57x3", "steel_grade": "Ст3",
        "quantity": 0, "cost_price": 0, "price_per_unit": 0, "min_stock_level": 0
    }
    """
    payload = request.get_json(silent=True) or {}

    try:
        patch = validate_payload(model=ProductRecord, payload=payload, policy=PRODUCT_POLICY, partial=False)
        enforce_rules_product(patch, units=UNITS, warehouses=WAREHOUSES)
        if patch.get("type") is not None and patch["type"] not in PRODUCT_TYPES:
            raise ValidationError(f"type must be one of: {', '.join(sorted(PRODUCT_TYPES))}")
        if patch.get("origin") is not None and patch["origin"] not in PROCUREMENT_TYPES:
            raise ValidationError(f"origin must be one of: {', '.join(sorted(PROCUREMENT_TYPES))}")

        product_id = patch.pop("product_id")
        patch["warehouse"] = patch.get("warehouse") or "main"
        existing = persistence_service.load_products()
        if find_product(existing, product_id, patch["warehouse"]) is not None:
            raise ConflictError(f"Product {product_id} already exists in warehouse {patch['warehouse']}")

        fields = {k: v for k, v in patch.items() if v is not None}
        product = persistence_service.save_product(Product(id=product_id, **fields))
        current_app.logger.info("Created product %s in %s", product.id, product.warehouse)
        return jsonify(product.to_dict()), 201
    except SERVICE_ERRORS as e:
        return json_error(e)
    except Exception:
        current_app.logger.exception("Failed to create product")
        return jsonify({"error": "Internal server error"}), 500
