# backend/smartshop/routes/cart.py
"""
Shopping cart routes. Every route acts on the caller's own cart.
"""
from flask import Blueprint, g, request

from ..errors import ShopError
from ..validation import ConflictError, ValidationError, require_positive_int
from ..decorators import require_user
from ..services import cart_service
from .responses import error_response, internal_error, ok


cart_bp = Blueprint("cart", __name__, url_prefix="/api/cart")


@cart_bp.get("")
@require_user
def get_cart_route():
    try:
        cart = cart_service.get_or_create_cart(g.current_user.id)
        return ok(cart=cart.to_dict())
    except Exception:
        return internal_error("load cart")


@cart_bp.post("/add")
@require_user
def add_to_cart_route():
    data = request.get_json(silent=True) or {}
    try:
        product_id = require_positive_int(data, "product_id")
        quantity = require_positive_int(data, "quantity", default=1)
        cart = cart_service.add_item(g.current_user.id, product_id, quantity)
        return ok(cart=cart.to_dict())
    except (ShopError, ValidationError) as e:
        return error_response(e)
    except Exception:
        return internal_error("add item to cart")


@cart_bp.put("/items/<int:product_id>")
@require_user
def update_cart_item_route(product_id: int):
    data = request.get_json(silent=True) or {}
    quantity = data.get("quantity")
    try:
        if isinstance(quantity, bool) or not isinstance(quantity, int):
            raise ValidationError("quantity must be an integer")
        cart = cart_service.update_item_quantity(g.current_user.id, product_id, quantity)
        return ok(cart=cart.to_dict())
    except (ShopError, ValidationError) as e:
        return error_response(e)
    except Exception:
        return internal_error("update cart item")


@cart_bp.delete("/items/<int:product_id>")
@require_user
def remove_cart_item_route(product_id: int):
    try:
        cart = cart_service.remove_item(g.current_user.id, product_id)
        return ok(cart=cart.to_dict())
    except ShopError as e:
        return error_response(e)
    except Exception:
        return internal_error("remove cart item")


@cart_bp.delete("/clear")
@require_user
def clear_cart_route():
    try:
        cart = cart_service.clear_cart(g.current_user.id)
        return ok(cart=cart.to_dict())
    except Exception:
        return internal_error("clear cart")


@cart_bp.post("/coupons")
@require_user
def apply_coupon_route():
    data = request.get_json(silent=True) or {}
    try:
        cart = cart_service.apply_coupon(
            g.current_user.id,
            data.get("code"),
            data.get("type"),
            data.get("value"),
        )
        return ok(cart=cart.to_dict())
    except (ShopError, ValidationError, ConflictError) as e:
        return error_response(e)
    except Exception:
        return internal_error("apply coupon")


@cart_bp.delete("/coupons/<string:code>")
@require_user
def remove_coupon_route(code: str):
    try:
        cart = cart_service.remove_coupon(g.current_user.id, code)
        return ok(cart=cart.to_dict())
    except ShopError as e:
        return error_response(e)
    except Exception:
        return internal_error("remove coupon")
