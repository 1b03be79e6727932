from __future__ import annotations

from ..extensions import db
from smartshop.time_utils import to_utc_z


class AnalyticsEvent(db.Model):
    """
    Append-only reporting fact (sale, view, search, cart_add, cart_remove).

    Rows are never updated. The weekly cleanup job hard-deletes rows older
    than the retention window.
    """
    __tablename__ = "analytics_events"
    __table_args__ = (
        db.Index("ix_analytics_type_created", "type", "created_at"),
        db.Index("ix_analytics_seller_created", "seller_id", "created_at"),
        db.Index("ix_analytics_product_created", "product_id", "created_at"),
        db.Index("ix_analytics_user_created", "user_id", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    type = db.Column(db.String(16), nullable=False)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    seller_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=True)
    category = db.Column(db.String(32), nullable=True)

    revenue_cents = db.Column(db.Integer, nullable=False, default=0)
    units_sold = db.Column(db.Integer, nullable=False, default=0)
    discount_cents = db.Column(db.Integer, nullable=False, default=0)

    search_query = db.Column(db.String(255), nullable=True)
    search_results = db.Column(db.Integer, nullable=True)
    session_id = db.Column(db.String(64), nullable=True)

    created_at = db.Column(db.DateTime, nullable=False)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "type": self.type,
            "user_id": self.user_id,
            "seller_id": self.seller_id,
            "product_id": self.product_id,
            "order_id": self.order_id,
            "category": self.category,
            "revenue_cents": self.revenue_cents,
            "units_sold": self.units_sold,
            "discount_cents": self.discount_cents,
            "search_query": self.search_query,
            "search_results": self.search_results,
            "created_at": to_utc_z(self.created_at),
        }
