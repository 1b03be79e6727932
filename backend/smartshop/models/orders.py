from __future__ import annotations

from ..extensions import db
from smartshop.time_utils import to_utc_z


class Order(db.Model):
    """
    Purchase snapshot taken from a cart at checkout.

    Line items and amounts are frozen at creation. Only status and
    payment_status move afterwards, along the transitions declared in
    constants.ORDER_STATUS_TRANSITIONS / PAYMENT_STATUS_TRANSITIONS.
    """
    __tablename__ = "orders"
    __table_args__ = (
        db.Index("ix_orders_user_created", "user_id", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    order_number = db.Column(db.String(32), nullable=False, unique=True, index=True)

    subtotal_cents = db.Column(db.Integer, nullable=False)
    discount_cents = db.Column(db.Integer, nullable=False, default=0)
    tax_cents = db.Column(db.Integer, nullable=False, default=0)
    total_amount_cents = db.Column(db.Integer, nullable=False)
    savings_cents = db.Column(db.Integer, nullable=False, default=0)

    payment_method = db.Column(db.String(16), nullable=False)  # online, cash, card, upi
    payment_status = db.Column(db.String(16), nullable=False, default="pending", index=True)
    payment_transaction_id = db.Column(db.String(128), nullable=True)
    paid_at = db.Column(db.DateTime, nullable=True)

    status = db.Column(db.String(16), nullable=False, default="pending", index=True)

    shipping_street = db.Column(db.String(255), nullable=True)
    shipping_city = db.Column(db.String(120), nullable=True)
    shipping_state = db.Column(db.String(120), nullable=True)
    shipping_zip_code = db.Column(db.String(20), nullable=True)
    shipping_country = db.Column(db.String(64), nullable=True)

    notes = db.Column(db.Text, nullable=True)
    cancel_reason = db.Column(db.String(255), nullable=True)
    completed_at = db.Column(db.DateTime, nullable=True)
    is_from_bill_upload = db.Column(db.Boolean, nullable=False, default=False)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime, nullable=False, index=True)
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    user = db.relationship("User", backref=db.backref("orders", lazy=True))
    items = db.relationship(
        "OrderItem",
        back_populates="order",
        order_by="OrderItem.id",
        cascade="all, delete-orphan",
        lazy=True,
    )
    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<Order id={self.id} number={self.order_number!r} status={self.status}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "order_number": self.order_number,
            "items": [item.to_dict() for item in self.items],
            "subtotal_cents": self.subtotal_cents,
            "discount_cents": self.discount_cents,
            "tax_cents": self.tax_cents,
            "total_amount_cents": self.total_amount_cents,
            "savings_cents": self.savings_cents,
            "payment_method": self.payment_method,
            "payment_status": self.payment_status,
            "payment_transaction_id": self.payment_transaction_id,
            "paid_at": to_utc_z(self.paid_at),
            "status": self.status,
            "shipping_address": {
                "street": self.shipping_street,
                "city": self.shipping_city,
                "state": self.shipping_state,
                "zip_code": self.shipping_zip_code,
                "country": self.shipping_country,
            },
            "notes": self.notes,
            "cancel_reason": self.cancel_reason,
            "completed_at": to_utc_z(self.completed_at),
            "is_from_bill_upload": self.is_from_bill_upload,
            "created_at": to_utc_z(self.created_at),
        }


class OrderItem(db.Model):
    __tablename__ = "order_items"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    quantity = db.Column(db.Integer, nullable=False)
    price_cents = db.Column(db.Integer, nullable=False)
    # Per-unit discount versus the product's original price at purchase time
    discount_cents = db.Column(db.Integer, nullable=False, default=0)

    order = db.relationship("Order", back_populates="items")
    product = db.relationship("Product")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "product": self.product.to_summary() if self.product else None,
            "quantity": self.quantity,
            "price_cents": self.price_cents,
            "discount_cents": self.discount_cents,
            "line_total_cents": self.price_cents * self.quantity,
        }


class DocumentSequence(db.Model):
    """
    Atomic per-period document sequences.

    WHY: Order numbers must be unique without relying on a random suffix
    and a storage-level collision.
    """
    __tablename__ = "document_sequences"
    __table_args__ = (
        db.UniqueConstraint("document_type", "period", name="uq_doc_sequences_type_period"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    document_type = db.Column(db.String(32), nullable=False, index=True)
    period = db.Column(db.String(16), nullable=False)
    next_number = db.Column(db.Integer, nullable=False, default=1)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "document_type": self.document_type,
            "period": self.period,
            "next_number": self.next_number,
            "updated_at": to_utc_z(self.updated_at),
        }
