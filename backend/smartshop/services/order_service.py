# Overview: Service-layer operations for orders; checkout from cart, numbering and status transitions.

from __future__ import annotations

from datetime import datetime

from flask import current_app
from sqlalchemy import update
from sqlalchemy.exc import IntegrityError

from ..constants import (
    ORDER_STATUSES,
    ORDER_STATUS_TRANSITIONS,
    PAYMENT_METHODS,
    PAYMENT_STATUSES,
    PAYMENT_STATUS_TRANSITIONS,
)
from ..errors import InvalidStateError, NotFoundError
from ..extensions import db
from ..models import Cart, DocumentSequence, Order, OrderItem
from ..time_utils import utcnow
from ..validation import ValidationError
from .analytics_service import record_event
from .cart_service import cart_totals, percentage_of
from .concurrency import run_with_retry


ORDER_DOCUMENT_TYPE = "ORDER"

# The daily sequence is rendered with exactly four digits.
MAX_DAILY_ORDERS = 9999


def _current_sequence(period: str) -> int:
    return (
        db.session.query(DocumentSequence.next_number)
        .filter_by(document_type=ORDER_DOCUMENT_TYPE, period=period)
        .scalar()
    )


def next_order_number(now: datetime | None = None) -> str:
    """
    Allocate the next order number: ORD + YYMMDD + 4-digit daily sequence.

    The per-day counter is incremented with a single UPDATE; the first order of
    a day inserts the row, and a concurrent insert losing the race falls back
    to the UPDATE. Runs inside the caller's transaction.
    """
    period = (now or utcnow()).strftime("%y%m%d")
    stmt = (
        update(DocumentSequence)
        .where(
            DocumentSequence.document_type == ORDER_DOCUMENT_TYPE,
            DocumentSequence.period == period,
        )
        .values(next_number=DocumentSequence.next_number + 1)
    )

    result = db.session.execute(stmt)
    if result.rowcount:
        db.session.flush()
        next_num = _current_sequence(period) - 1
    else:
        try:
            with db.session.begin_nested():
                db.session.add(DocumentSequence(document_type=ORDER_DOCUMENT_TYPE, period=period, next_number=2))
            next_num = 1
        except IntegrityError:
            result = db.session.execute(stmt)
            if not result.rowcount:
                raise
            db.session.flush()
            next_num = _current_sequence(period) - 1

    if next_num > MAX_DAILY_ORDERS:
        raise InvalidStateError(
            "Daily order number limit reached",
            details={"period": period, "limit": MAX_DAILY_ORDERS},
        )
    return f"ORD{period}{next_num:04d}"


def compute_order_savings(items, discount_cents: int = 0) -> int:
    """
    Per-unit line discounts times quantity, plus the order-level discount.

    items: iterable of (discount_cents, quantity) pairs or objects with those
    attributes. Non-positive line discounts are ignored.
    """
    total = 0
    for item in items:
        if isinstance(item, tuple):
            line_discount, quantity = item
        else:
            line_discount, quantity = item.discount_cents, item.quantity
        if line_discount and line_discount > 0:
            total += line_discount * quantity
    return total + (discount_cents or 0)


def _shipping_fields(address: dict | None) -> dict:
    address = address or {}
    if not isinstance(address, dict):
        raise ValidationError("shipping_address must be an object")
    return {
        "shipping_street": address.get("street"),
        "shipping_city": address.get("city"),
        "shipping_state": address.get("state"),
        "shipping_zip_code": address.get("zip_code"),
        "shipping_country": address.get("country"),
    }


def create_order_from_cart(
    *,
    user_id: int,
    payment_method: str,
    shipping_address: dict | None = None,
    notes: str | None = None,
    is_from_bill_upload: bool = False,
) -> Order:
    """
    Checkout: freeze the user's cart into an order and empty the cart.

    Each line keeps its cart price; the per-unit discount is the product's
    original price minus that price (never negative). Coupon discounts become
    the order-level discount and tax applies to the discounted subtotal.
    """
    if payment_method not in PAYMENT_METHODS:
        raise ValidationError(f"payment_method must be one of: {', '.join(PAYMENT_METHODS)}")
    shipping = _shipping_fields(shipping_address)
    tax_rate_bps = int(current_app.config.get("TAX_RATE_BPS", 0) or 0)

    def _op():
        cart = db.session.query(Cart).filter_by(user_id=user_id).first()
        if cart is None or not cart.items:
            raise InvalidStateError("Cart is empty")

        now = utcnow()
        totals = cart_totals(cart)
        subtotal = sum(item.price_cents * item.quantity for item in cart.items)
        discount = min(totals.coupon_discount_cents, subtotal)
        tax = percentage_of(subtotal - discount, tax_rate_bps)

        order = Order(
            user_id=user_id,
            order_number=next_order_number(now),
            subtotal_cents=subtotal,
            discount_cents=discount,
            tax_cents=tax,
            total_amount_cents=subtotal - discount + tax,
            payment_method=payment_method,
            payment_status="pending",
            status="pending",
            notes=notes,
            is_from_bill_upload=is_from_bill_upload,
            created_at=now,
            **shipping,
        )

        for item in cart.items:
            product = item.product
            original = product.original_price_cents if product else None
            line_discount = max(0, original - item.price_cents) if original is not None else 0
            order.items.append(OrderItem(
                product_id=item.product_id,
                quantity=item.quantity,
                price_cents=item.price_cents,
                discount_cents=line_discount,
            ))

        order.savings_cents = compute_order_savings(order.items, discount)
        db.session.add(order)
        db.session.flush()

        for line in order.items:
            product = line.product
            if product is not None:
                product.purchase_count = (product.purchase_count or 0) + line.quantity
            record_event(
                event_type="sale",
                user_id=user_id,
                seller_id=product.seller_id if product else None,
                product_id=line.product_id,
                order_id=order.id,
                category=product.category if product else None,
                revenue_cents=line.price_cents * line.quantity,
                units_sold=line.quantity,
                discount_cents=line.discount_cents * line.quantity,
                occurred_at=now,
            )

        cart.items.clear()
        cart.coupons.clear()
        cart.total_amount_cents = 0
        cart.total_items = 0
        cart.savings_cents = 0
        cart.last_modified_at = now

        db.session.commit()
        return order

    return run_with_retry(_op)


def get_order(order_id: int, *, user_id: int | None = None) -> Order:
    order = db.session.get(Order, order_id)
    if order is None:
        raise NotFoundError("Order not found")
    if user_id is not None and order.user_id != user_id:
        raise NotFoundError("Order not found")
    return order


def list_orders(*, user_id: int, status: str | None = None, limit: int = 50) -> list[Order]:
    q = db.session.query(Order).filter(Order.user_id == user_id)
    if status is not None:
        if status not in ORDER_STATUSES:
            raise ValidationError(f"status must be one of: {', '.join(ORDER_STATUSES)}")
        q = q.filter(Order.status == status)
    limit = max(1, min(limit or 50, 200))
    return q.order_by(Order.created_at.desc(), Order.id.desc()).limit(limit).all()


def update_order_status(order_id: int, status: str, *, reason: str | None = None,
                        user_id: int | None = None) -> Order:
    """
    Move an order along pending -> confirmed -> processing -> completed.
    Any non-terminal order may be cancelled; cancellation requires a reason.
    """
    if status not in ORDER_STATUSES:
        raise ValidationError(f"status must be one of: {', '.join(ORDER_STATUSES)}")
    if status == "cancelled" and not (reason or "").strip():
        raise ValidationError("reason is required to cancel an order")

    def _op():
        order = get_order(order_id, user_id=user_id)
        if status not in ORDER_STATUS_TRANSITIONS[order.status]:
            raise InvalidStateError(
                f"Cannot change order status from {order.status} to {status}",
                details={"from": order.status, "to": status},
            )
        order.status = status
        if status == "completed":
            order.completed_at = utcnow()
        elif status == "cancelled":
            order.cancel_reason = reason.strip()
        db.session.commit()
        return order

    return run_with_retry(_op)


def update_payment_status(order_id: int, payment_status: str, *, transaction_id: str | None = None) -> Order:
    if payment_status not in PAYMENT_STATUSES:
        raise ValidationError(f"payment_status must be one of: {', '.join(PAYMENT_STATUSES)}")

    def _op():
        order = get_order(order_id)
        if payment_status not in PAYMENT_STATUS_TRANSITIONS[order.payment_status]:
            raise InvalidStateError(
                f"Cannot change payment status from {order.payment_status} to {payment_status}",
                details={"from": order.payment_status, "to": payment_status},
            )
        order.payment_status = payment_status
        if transaction_id:
            order.payment_transaction_id = transaction_id
        if payment_status == "completed":
            order.paid_at = utcnow()
        db.session.commit()
        return order

    return run_with_retry(_op)
