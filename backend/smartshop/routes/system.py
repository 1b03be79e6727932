# backend/smartshop/routes/system.py
"""
System health endpoint.

Reports database reachability and which external providers are configured.
"""

import time
from flask import Blueprint, current_app, jsonify

from ..extensions import db
from ..models import Inventory, Product, User
from ..time_utils import utcnow, to_utc_z

system_bp = Blueprint("system", __name__)


def check_database_health() -> dict:
    start_time = time.time()
    try:
        details = {
            "users": db.session.query(User).count(),
            "products": db.session.query(Product).count(),
            "inventory_records": db.session.query(Inventory).count(),
        }
        elapsed_ms = (time.time() - start_time) * 1000
        return {"status": "healthy", "latency_ms": round(elapsed_ms, 2), "details": details}
    except Exception:
        elapsed_ms = (time.time() - start_time) * 1000
        current_app.logger.exception("Database health check failed")
        return {"status": "unhealthy", "latency_ms": round(elapsed_ms, 2), "error": "Database error"}


def provider_configuration() -> dict:
    cfg = current_app.config
    return {
        "chat": bool(cfg.get("OPENAI_API_KEY")),
        "ocr": bool(cfg.get("OCR_API_URL")),
        "vision": bool(cfg.get("VISION_API_URL")),
    }


@system_bp.get("/api/health")
def health():
    database = check_database_health()
    healthy = database["status"] == "healthy"
    body = {
        "success": healthy,
        "status": "healthy" if healthy else "unhealthy",
        "timestamp": to_utc_z(utcnow()),
        "checks": {"database": database},
        "providers": provider_configuration(),
    }
    return jsonify(body), 200 if healthy else 503
