# backend/smartshop/routes/inventory.py
"""
Inventory management routes.

All routes require the seller role and are scoped to the caller's records.

Time semantics:
- API accepts ISO-8601 datetimes with Z/offsets; backend normalizes to UTC-naive internally.
"""
from flask import Blueprint, g, request

from ..errors import ShopError
from ..time_utils import parse_iso_datetime
from ..validation import ConflictError, ValidationError, require_positive_int
from ..decorators import require_role, require_user
from ..services import inventory_service
from .responses import bool_arg, error_response, int_arg, internal_error, ok


inventory_bp = Blueprint("inventory", __name__, url_prefix="/api/inventory")


def _parse_date(data: dict, key: str):
    raw = data.get(key)
    if raw in (None, ""):
        return None
    try:
        return parse_iso_datetime(raw)
    except (TypeError, ValueError):
        raise ValidationError(f"{key} must be an ISO-8601 datetime")


@inventory_bp.get("")
@require_user
@require_role("seller")
def list_inventory_route():
    try:
        result = inventory_service.list_inventory(
            seller_id=g.current_user.id,
            search=request.args.get("search"),
            category=request.args.get("category"),
            low_stock=bool_arg(request.args, "low_stock"),
            expiring_soon=bool_arg(request.args, "expiring_soon"),
            page=int_arg(request.args, "page", 1),
            per_page=int_arg(request.args, "per_page", 20),
        )
        return ok(inventory=result["items"], summary=result["summary"], pagination={
            "page": result["page"],
            "per_page": result["per_page"],
            "total": result["total"],
            "pages": result["pages"],
        })
    except (ShopError, ValidationError) as e:
        return error_response(e)
    except Exception:
        return internal_error("list inventory")


@inventory_bp.post("")
@require_user
@require_role("seller")
def create_inventory_route():
    data = request.get_json(silent=True) or {}
    try:
        record = inventory_service.create_inventory(
            seller_id=g.current_user.id,
            product_id=require_positive_int(data, "product_id"),
            stock_level=require_positive_int(data, "stock_level", default=0, allow_zero=True),
            min_stock_level=data.get("min_stock_level"),
            max_stock_level=data.get("max_stock_level"),
            reorder_level=data.get("reorder_level"),
            reorder_quantity=data.get("reorder_quantity"),
            location=data.get("location"),
            expiry_date=_parse_date(data, "expiry_date"),
            performed_by=g.current_user.id,
        )
        return ok(201, inventory=record.to_dict())
    except (ShopError, ValidationError, ConflictError) as e:
        return error_response(e)
    except Exception:
        return internal_error("create inventory record")


@inventory_bp.post("/<int:inventory_id>/stock/add")
@require_user
@require_role("seller")
def add_stock_route(inventory_id: int):
    data = request.get_json(silent=True) or {}
    try:
        record = inventory_service.add_stock(
            inventory_id,
            require_positive_int(data, "quantity"),
            reason=data.get("reason") or "restock",
            reference=data.get("reference") or "",
            performed_by=g.current_user.id,
            seller_id=g.current_user.id,
        )
        return ok(inventory=record.to_dict())
    except (ShopError, ValidationError) as e:
        return error_response(e)
    except Exception:
        return internal_error("add stock")


@inventory_bp.post("/<int:inventory_id>/stock/remove")
@require_user
@require_role("seller")
def remove_stock_route(inventory_id: int):
    data = request.get_json(silent=True) or {}
    try:
        record = inventory_service.remove_stock(
            inventory_id,
            require_positive_int(data, "quantity"),
            reason=data.get("reason") or "sale",
            reference=data.get("reference") or "",
            performed_by=g.current_user.id,
            seller_id=g.current_user.id,
        )
        return ok(inventory=record.to_dict())
    except (ShopError, ValidationError) as e:
        return error_response(e)
    except Exception:
        return internal_error("remove stock")


@inventory_bp.post("/<int:inventory_id>/stock/adjust")
@require_user
@require_role("seller")
def adjust_stock_route(inventory_id: int):
    data = request.get_json(silent=True) or {}
    try:
        record = inventory_service.adjust_stock(
            inventory_id,
            require_positive_int(data, "new_level", allow_zero=True),
            reason=data.get("reason") or "stock count",
            performed_by=g.current_user.id,
            seller_id=g.current_user.id,
        )
        return ok(inventory=record.to_dict())
    except (ShopError, ValidationError) as e:
        return error_response(e)
    except Exception:
        return internal_error("adjust stock")


@inventory_bp.post("/<int:inventory_id>/check-alerts")
@require_user
@require_role("seller")
def check_alerts_route(inventory_id: int):
    try:
        inventory_service.get_inventory(inventory_id, seller_id=g.current_user.id)
        created = inventory_service.check_alerts(inventory_id)
        return ok(alerts=[a.to_dict() for a in created])
    except ShopError as e:
        return error_response(e)
    except Exception:
        return internal_error("check inventory alerts")


@inventory_bp.get("/alerts")
@require_user
@require_role("seller")
def list_alerts_route():
    try:
        alerts = inventory_service.list_alerts(
            seller_id=g.current_user.id,
            severity=request.args.get("severity"),
        )
        return ok(
            alerts=[a.to_dict() for a in alerts],
            counts=inventory_service.alert_counts(seller_id=g.current_user.id),
        )
    except (ShopError, ValidationError) as e:
        return error_response(e)
    except Exception:
        return internal_error("list alerts")


@inventory_bp.post("/alerts/<int:alert_id>/resolve")
@require_user
@require_role("seller")
def resolve_alert_route(alert_id: int):
    try:
        alert = inventory_service.resolve_alert(alert_id, seller_id=g.current_user.id)
        return ok(alert=alert.to_dict())
    except ShopError as e:
        return error_response(e)
    except Exception:
        return internal_error("resolve alert")


@inventory_bp.get("/<int:inventory_id>/movements")
@require_user
@require_role("seller")
def list_movements_route(inventory_id: int):
    try:
        movements = inventory_service.list_movements(
            inventory_id,
            seller_id=g.current_user.id,
            limit=int_arg(request.args, "limit", 100),
        )
        return ok(movements=[m.to_dict() for m in movements])
    except (ShopError, ValidationError) as e:
        return error_response(e)
    except Exception:
        return internal_error("list stock movements")
