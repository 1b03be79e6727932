# backend/smartshop/routes/ai.py
"""
AI gateway routes.

Images are sent as the raw request body. Provider clients are built from app
config per request; tests may place prebuilt clients in app.extensions["ai"].
"""
from flask import Blueprint, current_app, request

from ..errors import ShopError
from ..validation import ValidationError
from ..decorators import require_role, require_user
from ..services import catalog_service
from ..services.ai_service import BillReader, ChatAssistant, ShelfAnalyzer
from .responses import error_response, internal_error, ok


ai_bp = Blueprint("ai", __name__, url_prefix="/api/ai")


def _provider(name: str, cls):
    prebuilt = current_app.extensions.get("ai", {}).get(name)
    if prebuilt is not None:
        return prebuilt
    return cls.from_config(current_app.config)


@ai_bp.post("/chat")
@require_user
def chat_route():
    data = request.get_json(silent=True) or {}
    message = (data.get("message") or "").strip()
    try:
        if not message:
            raise ValidationError("message is required")
        reply = _provider("chat", ChatAssistant).chat(message, data.get("context"))
        return ok(response=reply)
    except (ShopError, ValidationError) as e:
        return error_response(e)
    except Exception:
        return internal_error("answer chat message")


@ai_bp.post("/bill")
@require_user
def read_bill_route():
    try:
        result = _provider("bill", BillReader).read_bill(request.get_data())
        return ok(bill=result["data"], raw_text=result["raw_text"], confidence=result["confidence"])
    except ShopError as e:
        return error_response(e)
    except Exception:
        return internal_error("read bill")


@ai_bp.post("/shelf")
@require_user
@require_role("seller")
def analyze_shelf_route():
    try:
        result = _provider("shelf", ShelfAnalyzer).analyze(request.get_data())
        return ok(analysis=result["analysis"], recommendations=result["recommendations"])
    except ShopError as e:
        return error_response(e)
    except Exception:
        return internal_error("analyze shelf image")


@ai_bp.get("/products/<int:product_id>/insights")
@require_user
def product_insights_route(product_id: int):
    try:
        product = catalog_service.get_product(product_id)
        insights = _provider("chat", ChatAssistant).product_insights(product)
        return ok(insights=insights)
    except ShopError as e:
        return error_response(e)
    except Exception:
        return internal_error("generate product insights")
