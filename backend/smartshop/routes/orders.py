# backend/smartshop/routes/orders.py
"""
Order routes.

Customers check out and read their own orders. Status changes are made by
sellers and admins.
"""
from flask import Blueprint, g, request

from ..errors import ShopError
from ..validation import ValidationError
from ..decorators import require_role, require_user
from ..services import order_service
from .responses import error_response, int_arg, internal_error, ok


orders_bp = Blueprint("orders", __name__, url_prefix="/api/orders")


@orders_bp.post("/checkout")
@require_user
def checkout_route():
    data = request.get_json(silent=True) or {}
    try:
        order = order_service.create_order_from_cart(
            user_id=g.current_user.id,
            payment_method=data.get("payment_method", "online"),
            shipping_address=data.get("shipping_address"),
            notes=data.get("notes"),
        )
        return ok(201, order=order.to_dict())
    except (ShopError, ValidationError) as e:
        return error_response(e)
    except Exception:
        return internal_error("check out")


@orders_bp.get("")
@require_user
def list_orders_route():
    try:
        orders = order_service.list_orders(
            user_id=g.current_user.id,
            status=request.args.get("status"),
            limit=int_arg(request.args, "limit", 50),
        )
        return ok(orders=[o.to_dict() for o in orders])
    except (ShopError, ValidationError) as e:
        return error_response(e)
    except Exception:
        return internal_error("list orders")


@orders_bp.get("/<int:order_id>")
@require_user
def get_order_route(order_id: int):
    scope = None if g.current_user.role == "admin" else g.current_user.id
    try:
        order = order_service.get_order(order_id, user_id=scope)
        return ok(order=order.to_dict())
    except ShopError as e:
        return error_response(e)
    except Exception:
        return internal_error("get order")


@orders_bp.put("/<int:order_id>/status")
@require_user
@require_role("seller")
def update_order_status_route(order_id: int):
    data = request.get_json(silent=True) or {}
    try:
        order = None
        if data.get("status"):
            order = order_service.update_order_status(order_id, data["status"], reason=data.get("reason"))
        if data.get("payment_status"):
            order = order_service.update_payment_status(
                order_id,
                data["payment_status"],
                transaction_id=data.get("transaction_id"),
            )
        if order is None:
            raise ValidationError("status or payment_status is required")
        return ok(order=order.to_dict())
    except (ShopError, ValidationError) as e:
        return error_response(e)
    except Exception:
        return internal_error("update order status")
