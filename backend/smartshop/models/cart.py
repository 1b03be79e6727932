from __future__ import annotations

from ..extensions import db
from smartshop.time_utils import to_utc_z


class Cart(db.Model):
    """
    One shopping cart per user.

    total_amount_cents, total_items and savings_cents are derived columns.
    cart_service recomputes them before every commit; nothing else writes them.
    """
    __tablename__ = "carts"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, unique=True, index=True)

    total_amount_cents = db.Column(db.Integer, nullable=False, default=0)
    total_items = db.Column(db.Integer, nullable=False, default=0)
    savings_cents = db.Column(db.Integer, nullable=False, default=0)
    last_modified_at = db.Column(db.DateTime, nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    user = db.relationship("User", backref=db.backref("cart", uselist=False, lazy=True))
    items = db.relationship(
        "CartItem",
        back_populates="cart",
        order_by="CartItem.id",
        cascade="all, delete-orphan",
        lazy=True,
    )
    coupons = db.relationship(
        "AppliedCoupon",
        back_populates="cart",
        order_by="AppliedCoupon.position",
        cascade="all, delete-orphan",
        lazy=True,
    )
    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<Cart id={self.id} user_id={self.user_id} items={len(self.items)}>"

    def find_item(self, product_id: int):
        for item in self.items:
            if item.product_id == product_id:
                return item
        return None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "items": [item.to_dict() for item in self.items],
            "applied_coupons": [coupon.to_dict() for coupon in self.coupons],
            "total_amount_cents": self.total_amount_cents,
            "total_items": self.total_items,
            "savings_cents": self.savings_cents,
            "last_modified_at": to_utc_z(self.last_modified_at),
            "version_id": self.version_id,
        }


class CartItem(db.Model):
    __tablename__ = "cart_items"
    __table_args__ = (
        db.UniqueConstraint("cart_id", "product_id", name="uq_cart_items_cart_product"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    cart_id = db.Column(db.Integer, db.ForeignKey("carts.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False)
    quantity = db.Column(db.Integer, nullable=False, default=1)
    # Price snapshot taken when the line was first added
    price_cents = db.Column(db.Integer, nullable=False)
    added_at = db.Column(db.DateTime, nullable=False)

    cart = db.relationship("Cart", back_populates="items")
    product = db.relationship("Product")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "product": self.product.to_summary() if self.product else None,
            "quantity": self.quantity,
            "price_cents": self.price_cents,
            "line_total_cents": self.price_cents * self.quantity,
            "added_at": to_utc_z(self.added_at),
        }


class AppliedCoupon(db.Model):
    """
    Coupon attached to a cart.

    value is basis points for percentage coupons (2000 = 20%) and cents for
    fixed coupons. Coupons apply in ascending position order.
    """
    __tablename__ = "cart_coupons"
    __table_args__ = (
        db.UniqueConstraint("cart_id", "code", name="uq_cart_coupons_cart_code"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    cart_id = db.Column(db.Integer, db.ForeignKey("carts.id"), nullable=False, index=True)
    code = db.Column(db.String(32), nullable=False)
    type = db.Column(db.String(16), nullable=False)  # percentage, fixed
    value = db.Column(db.Integer, nullable=False)
    position = db.Column(db.Integer, nullable=False, default=0)

    cart = db.relationship("Cart", back_populates="coupons")

    def to_dict(self) -> dict:
        return {
            "code": self.code,
            "type": self.type,
            "value": self.value,
        }
