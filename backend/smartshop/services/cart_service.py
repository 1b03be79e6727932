# Overview: Service-layer operations for the shopping cart; line edits, coupons and total recomputation.

from __future__ import annotations

from dataclasses import dataclass

from ..constants import COUPON_TYPES
from ..errors import NotFoundError
from ..extensions import db
from ..models import AppliedCoupon, Cart, CartItem, Product
from ..time_utils import utcnow
from ..validation import ConflictError, ValidationError
from .analytics_service import record_event
from .concurrency import run_with_retry


@dataclass(frozen=True)
class CartTotals:
    total_amount_cents: int
    total_items: int
    savings_cents: int
    coupon_discount_cents: int


def percentage_of(amount_cents: int, basis_points: int) -> int:
    """amount x bps / 10000, rounded half-up to whole cents."""
    return (amount_cents * basis_points + 5000) // 10000


def compute_cart_totals(lines, coupons=()) -> CartTotals:
    """
    Recompute the derived cart figures.

    lines: iterables of (price_cents, quantity, original_price_cents | None).
    coupons: (type, value) pairs in application order; percentage values are
    basis points and apply to the running total, fixed values are cents.

    The running total may not go below zero; savings keeps every coupon
    discount plus the per-line list-price savings.
    """
    total = 0
    items = 0
    savings = 0
    for price_cents, quantity, original_price_cents in lines:
        total += price_cents * quantity
        items += quantity
        if original_price_cents is not None and original_price_cents > price_cents:
            savings += (original_price_cents - price_cents) * quantity

    coupon_discount = 0
    for kind, value in coupons:
        if kind == "percentage":
            discount = percentage_of(total, value)
        elif kind == "fixed":
            discount = value
        else:
            raise ValueError(f"unknown coupon type: {kind}")
        total -= discount
        savings += discount
        coupon_discount += discount

    return CartTotals(
        total_amount_cents=max(0, total),
        total_items=items,
        savings_cents=savings,
        coupon_discount_cents=coupon_discount,
    )


def cart_totals(cart: Cart) -> CartTotals:
    lines = [
        (item.price_cents, item.quantity, item.product.original_price_cents if item.product else None)
        for item in cart.items
    ]
    coupons = [(c.type, c.value) for c in sorted(cart.coupons, key=lambda c: c.position)]
    return compute_cart_totals(lines, coupons)


def _recalculate(cart: Cart) -> None:
    totals = cart_totals(cart)
    cart.total_amount_cents = totals.total_amount_cents
    cart.total_items = totals.total_items
    cart.savings_cents = totals.savings_cents
    cart.last_modified_at = utcnow()


def _load_cart(user_id: int) -> Cart | None:
    return db.session.query(Cart).filter_by(user_id=user_id).first()


def get_or_create_cart(user_id: int) -> Cart:
    cart = _load_cart(user_id)
    if cart is not None:
        return cart
    cart = Cart(user_id=user_id, total_amount_cents=0, total_items=0, savings_cents=0, last_modified_at=utcnow())
    db.session.add(cart)
    db.session.commit()
    return cart


def _active_product(product_id: int) -> Product:
    product = db.session.get(Product, product_id)
    if product is None or not product.is_active:
        raise NotFoundError("Product not found")
    return product


def _save(cart: Cart) -> Cart:
    _recalculate(cart)
    db.session.commit()
    return cart


def add_item(user_id: int, product_id: int, quantity: int = 1) -> Cart:
    """
    Add quantity of a product. An existing line is incremented; a new line
    captures the product's current price.
    """
    if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity <= 0:
        raise ValidationError("quantity must be a positive integer")

    def _op():
        product = _active_product(product_id)
        cart = get_or_create_cart(user_id)
        item = cart.find_item(product.id)
        if item is not None:
            item.quantity += quantity
        else:
            cart.items.append(CartItem(
                product_id=product.id,
                product=product,
                quantity=quantity,
                price_cents=product.price_cents,
                added_at=utcnow(),
            ))
        record_event(
            event_type="cart_add",
            user_id=user_id,
            seller_id=product.seller_id,
            product_id=product.id,
            category=product.category,
            units_sold=0,
        )
        return _save(cart)

    return run_with_retry(_op)


def remove_item(user_id: int, product_id: int) -> Cart:
    def _op():
        cart = _load_cart(user_id)
        if cart is None:
            raise NotFoundError("Cart not found")
        item = cart.find_item(product_id)
        if item is not None:
            cart.items.remove(item)
            product = item.product
            record_event(
                event_type="cart_remove",
                user_id=user_id,
                seller_id=product.seller_id if product else None,
                product_id=product_id,
                category=product.category if product else None,
            )
        return _save(cart)

    return run_with_retry(_op)


def update_item_quantity(user_id: int, product_id: int, quantity: int) -> Cart:
    """
    Set a line's quantity. quantity <= 0 removes the line; an unknown line
    leaves the items alone but still recomputes and saves.
    """
    if isinstance(quantity, bool) or not isinstance(quantity, int):
        raise ValidationError("quantity must be an integer")
    if quantity <= 0:
        return remove_item(user_id, product_id)

    def _op():
        cart = _load_cart(user_id)
        if cart is None:
            raise NotFoundError("Cart not found")
        item = cart.find_item(product_id)
        if item is not None:
            item.quantity = quantity
        return _save(cart)

    return run_with_retry(_op)


def clear_cart(user_id: int) -> Cart:
    def _op():
        cart = get_or_create_cart(user_id)
        cart.items.clear()
        cart.coupons.clear()
        return _save(cart)

    return run_with_retry(_op)


def apply_coupon(user_id: int, code: str, kind: str, value: int) -> Cart:
    """
    Attach a coupon. Percentage values are basis points (1..10000), fixed
    values are cents. Coupons apply in the order they were added.
    """
    code = (code or "").strip().upper()
    if not code:
        raise ValidationError("code is required")
    if kind not in COUPON_TYPES:
        raise ValidationError(f"type must be one of: {', '.join(COUPON_TYPES)}")
    if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
        raise ValidationError("value must be a positive integer")
    if kind == "percentage" and value > 10000:
        raise ValidationError("percentage value cannot exceed 10000 basis points")

    def _op():
        cart = get_or_create_cart(user_id)
        if any(c.code == code for c in cart.coupons):
            raise ConflictError(f"coupon {code} is already applied")
        position = max((c.position for c in cart.coupons), default=-1) + 1
        cart.coupons.append(AppliedCoupon(code=code, type=kind, value=value, position=position))
        return _save(cart)

    return run_with_retry(_op)


def remove_coupon(user_id: int, code: str) -> Cart:
    code = (code or "").strip().upper()

    def _op():
        cart = _load_cart(user_id)
        if cart is None:
            raise NotFoundError("Cart not found")
        coupon = next((c for c in cart.coupons if c.code == code), None)
        if coupon is None:
            raise NotFoundError("Coupon not applied")
        cart.coupons.remove(coupon)
        return _save(cart)

    return run_with_retry(_op)
