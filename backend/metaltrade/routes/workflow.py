# Overview: Flask API routes for workflow orders waiting on procurement.

from flask import Blueprint, current_app, jsonify, request

from ..domain import UNIT_METER, WF_SENT_TO_PROCUREMENT, WORKFLOW_STATUSES, OrderItem, WorkflowOrder
from ..errors import SERVICE_ERRORS, json_error
from ..services import persistence_service, workflow_service
from ..services.identifier_service import new_workflow_id
from ..time_utils import parse_iso_datetime, utcnow
from ..validation import ValidationError, coerce_number


workflow_bp = Blueprint("workflow", __name__, url_prefix="/api/workflow")


def _parse_order(payload: dict) -> WorkflowOrder:
    customer_name = str(payload.get("customer_name") or "").strip()
    if not customer_name:
        raise ValidationError("customer_name is required")
    status = payload.get("status") or WF_SENT_TO_PROCUREMENT
    if status not in WORKFLOW_STATUSES:
        raise ValidationError(f"status must be one of: {', '.join(sorted(WORKFLOW_STATUSES))}")
    raw_items = payload.get("items")
    if not isinstance(raw_items, list) or not raw_items:
        raise ValidationError("items must be a non-empty list")

    items = []
    for idx, raw in enumerate(raw_items):
        if not isinstance(raw, dict) or not raw.get("product_id"):
            raise ValidationError(f"items[{idx}] needs a product_id")
        items.append(OrderItem(
            product_id=str(raw["product_id"]),
            product_name=str(raw.get("product_name") or raw["product_id"]),
            quantity=coerce_number(raw.get("quantity"), f"items[{idx}].quantity", positive=True),
            unit=raw.get("unit") or UNIT_METER,
            dimensions=raw.get("dimensions"),
            price_at_sale=coerce_number(raw.get("price_at_sale", 0) or 0, f"items[{idx}].price_at_sale", minimum=0),
        ))
    try:
        date = parse_iso_datetime(payload.get("date")) or utcnow()
    except (TypeError, ValueError):
        raise ValidationError("date must be an ISO date")
    return WorkflowOrder(
        id=payload.get("id") or new_workflow_id(),
        customer_name=customer_name,
        items=items,
        status=status,
        date=date,
    )


def _load_order(order_id: str) -> WorkflowOrder:
    return workflow_service.find_order(persistence_service.load_workflow_orders(), order_id)


@workflow_bp.get("")
def list_orders_route():
    try:
        orders = persistence_service.load_workflow_orders()
        return jsonify({"items": [o.to_dict() for o in orders], "count": len(orders)})
    except SERVICE_ERRORS as e:
        return json_error(e)
    except Exception:
        current_app.logger.exception("Failed to list workflow orders")
        return jsonify({"error": "Internal server error"}), 500


@workflow_bp.post("")
def create_order_route():
    """
    Register a workflow order raised by sales.

    Request body:
    {
        "customer_name": "ООО Стройка",
        "status": "sent_to_procurement",   // default
        "items": [{"product_id": "P-1", "product_name": "Труба 57x3", "quantity": 30}]
    }
    """
    payload = request.get_json(silent=True) or {}
    try:
        order = persistence_service.save_workflow_order(_parse_order(payload))
        return jsonify(order.to_dict()), 201
    except SERVICE_ERRORS as e:
        return json_error(e)
    except Exception:
        current_app.logger.exception("Failed to create workflow order")
        return jsonify({"error": "Internal server error"}), 500


@workflow_bp.get("/queue")
def queue_route():
    """Orders waiting on procurement, newest first, with their shortages."""
    try:
        products = persistence_service.load_products()
        queue = workflow_service.procurement_queue(persistence_service.load_workflow_orders())
        items = []
        for order in queue:
            missing = workflow_service.missing_items(order.items, products)
            data = order.to_dict()
            data["missing"] = [m.to_dict() for m in missing]
            data["ready"] = not missing
            items.append(data)
        return jsonify({"items": items, "count": len(items)})
    except SERVICE_ERRORS as e:
        return json_error(e)
    except Exception:
        current_app.logger.exception("Failed to load procurement queue")
        return jsonify({"error": "Internal server error"}), 500


@workflow_bp.get("/<order_id>/missing")
def missing_route(order_id: str):
    try:
        order = _load_order(order_id)
        missing = workflow_service.missing_items(order.items, persistence_service.load_products())
        return jsonify({"items": [m.to_dict() for m in missing], "ready": not missing})
    except SERVICE_ERRORS as e:
        return json_error(e)
    except Exception:
        current_app.logger.exception("Failed to compute missing items")
        return jsonify({"error": "Internal server error"}), 500


@workflow_bp.post("/<order_id>/draft-purchase")
def draft_purchase_route(order_id: str):
    """Purchase draft (local, debt) for the order's shortage; prices still to fill in."""
    try:
        order = _load_order(order_id)
        draft = workflow_service.draft_purchase(order, persistence_service.load_products())
        return jsonify(draft)
    except SERVICE_ERRORS as e:
        return json_error(e)
    except Exception:
        current_app.logger.exception("Failed to draft purchase")
        return jsonify({"error": "Internal server error"}), 500


@workflow_bp.post("/<order_id>/send-to-cash")
def send_to_cash_route(order_id: str):
    try:
        orders = persistence_service.load_workflow_orders()
        _, order = workflow_service.send_to_cash(orders, order_id, persistence_service.load_products())
        persistence_service.save_workflow_order(order)
        current_app.logger.info("Workflow order %s sent to cash", order_id)
        return jsonify(order.to_dict())
    except SERVICE_ERRORS as e:
        return json_error(e)
    except Exception:
        current_app.logger.exception("Failed to send workflow order to cash")
        return jsonify({"error": "Internal server error"}), 500
