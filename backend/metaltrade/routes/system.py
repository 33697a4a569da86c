# Overview: Health endpoint for the procurement API.

"""
System health endpoint.

Reports database reachability and the effective pricing settings so a bad
exchange-rate override shows up before the first purchase fails.
"""

import time
from flask import Blueprint, current_app

from ..extensions import db
from ..models import ProductRecord, PurchaseRecord
from ..services import settings_service
from ..time_utils import utcnow

system_bp = Blueprint("system", __name__, url_prefix="/api")


def check_database_health() -> dict:
    """
    Check database connectivity and basic operations.

    Returns dict with status and details.
    """
    start_time = time.time()
    try:
        product_rows = db.session.query(ProductRecord).count()
        purchases = db.session.query(PurchaseRecord).count()
        elapsed_ms = (time.time() - start_time) * 1000
        return {
            "status": "healthy",
            "latency_ms": round(elapsed_ms, 2),
            "details": {
                "product_rows": product_rows,
                "purchases": purchases,
            },
        }
    except Exception:
        elapsed_ms = (time.time() - start_time) * 1000
        current_app.logger.exception("Database health check failed")
        return {
            "status": "unhealthy",
            "latency_ms": round(elapsed_ms, 2),
            "error": "Database error",
        }


def check_pricing_health() -> dict:
    try:
        ctx = settings_service.get_pricing_context()
        return {"status": "healthy", "details": ctx.to_dict()}
    except Exception as e:
        current_app.logger.exception("Pricing settings check failed")
        return {"status": "degraded", "warning": str(e)}


@system_bp.get("/health")
def health():
    """
    Returns:
    - 200: healthy or degraded (pricing settings unusable)
    - 503: database unreachable
    """
    start_time = time.time()

    database_health = check_database_health()
    pricing_health = check_pricing_health() if database_health["status"] == "healthy" else {
        "status": "unknown",
    }

    if database_health["status"] == "unhealthy":
        overall_status, http_status = "unhealthy", 503
    elif pricing_health["status"] == "degraded":
        overall_status, http_status = "degraded", 200
    else:
        overall_status, http_status = "healthy", 200

    response = {
        "status": overall_status,
        "timestamp": utcnow().isoformat() + "Z",
        "total_latency_ms": round((time.time() - start_time) * 1000, 2),
        "checks": {
            "database": database_health,
            "pricing": pricing_health,
        },
    }
    return response, http_status
