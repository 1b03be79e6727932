from __future__ import annotations

import re

from ..extensions import db
from smartshop.time_utils import to_utc_z, days_until

# Per-serving nutrition facts; sodium in mg, the rest in grams (calories in kcal)
NUTRITION_FIELDS = ("calories", "protein", "carbs", "fat", "fiber", "sugar", "sodium")


def slugify(name: str) -> str:
    return re.sub(r"[^a-z0-9]", "-", name.lower())


class Category(db.Model):
    __tablename__ = "categories"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(120), nullable=False, unique=True)
    slug = db.Column(db.String(120), nullable=False, unique=True, index=True)
    description = db.Column(db.Text, nullable=True)
    icon = db.Column(db.String(64), nullable=True)
    parent_id = db.Column(db.Integer, db.ForeignKey("categories.id"), nullable=True, index=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    sort_order = db.Column(db.Integer, nullable=False, default=0)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    parent = db.relationship("Category", remote_side=[id], backref=db.backref("children", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "slug": self.slug,
            "description": self.description,
            "icon": self.icon,
            "parent_id": self.parent_id,
            "is_active": self.is_active,
            "sort_order": self.sort_order,
        }


class Product(db.Model):
    """
    Catalog entry listed by a seller.

    Products are never hard-deleted; is_active=False hides them from the
    catalog and from alternative lookups. health_score is derived from the
    nutrition columns by catalog_service and must be recomputed whenever
    any of them changes.
    """
    __tablename__ = "products"
    __table_args__ = (
        db.Index("ix_products_category_price", "category", "price_cents"),
        db.Index("ix_products_seller_active", "seller_id", "is_active"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    seller_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)

    barcode = db.Column(db.String(32), nullable=True, unique=True, index=True)
    name = db.Column(db.String(200), nullable=False)
    description = db.Column(db.Text, nullable=True)
    brand = db.Column(db.String(120), nullable=True)
    category = db.Column(db.String(32), nullable=False, default="other", index=True)
    subcategory = db.Column(db.String(64), nullable=True)
    image_url = db.Column(db.String(512), nullable=True)

    # Authoritative storage in cents
    price_cents = db.Column(db.Integer, nullable=False)
    original_price_cents = db.Column(db.Integer, nullable=True)
    unit = db.Column(db.String(16), nullable=False, default="piece")
    pack_quantity = db.Column(db.Float, nullable=False, default=1)

    calories = db.Column(db.Float, nullable=True)
    protein = db.Column(db.Float, nullable=True)
    carbs = db.Column(db.Float, nullable=True)
    fat = db.Column(db.Float, nullable=True)
    fiber = db.Column(db.Float, nullable=True)
    sugar = db.Column(db.Float, nullable=True)
    sodium = db.Column(db.Float, nullable=True)
    serving_size = db.Column(db.String(64), nullable=True)
    ingredients = db.Column(db.JSON, nullable=True)
    allergens = db.Column(db.JSON, nullable=True)

    health_score = db.Column(db.Integer, nullable=False, default=5)
    health_insights = db.Column(db.Text, nullable=True)

    min_stock_level = db.Column(db.Integer, nullable=False, default=10)
    max_stock_level = db.Column(db.Integer, nullable=False, default=100)

    manufacturing_date = db.Column(db.DateTime, nullable=True)
    expiry_date = db.Column(db.DateTime, nullable=True, index=True)

    views = db.Column(db.Integer, nullable=False, default=0)
    purchase_count = db.Column(db.Integer, nullable=False, default=0)

    predicted_daily_demand = db.Column(db.Integer, nullable=True)
    predicted_weekly_demand = db.Column(db.Integer, nullable=True)
    predicted_monthly_demand = db.Column(db.Integer, nullable=True)
    demand_updated_at = db.Column(db.DateTime, nullable=True)

    is_active = db.Column(db.Boolean, nullable=False, default=True)
    is_promoted = db.Column(db.Boolean, nullable=False, default=False)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    seller = db.relationship("User", backref=db.backref("products", lazy=True))
    alternatives = db.relationship(
        "ProductAlternative",
        foreign_keys="ProductAlternative.product_id",
        back_populates="product",
        cascade="all, delete-orphan",
        lazy=True,
    )
    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<Product id={self.id} barcode={self.barcode!r} name={self.name!r}>"

    def nutrition(self) -> dict:
        return {field: getattr(self, field) for field in NUTRITION_FIELDS}

    def has_nutrition(self) -> bool:
        return any(getattr(self, field) is not None for field in NUTRITION_FIELDS)

    @property
    def discount_percentage(self) -> int:
        if self.original_price_cents and self.original_price_cents > self.price_cents:
            return round((self.original_price_cents - self.price_cents) / self.original_price_cents * 100)
        return 0

    @property
    def days_until_expiry(self) -> int | None:
        return days_until(self.expiry_date)

    @property
    def needs_restocking(self) -> bool:
        return any(
            r.is_active and r.stock_level <= r.min_stock_level
            for r in self.inventory_records
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "seller_id": self.seller_id,
            "barcode": self.barcode,
            "name": self.name,
            "description": self.description,
            "brand": self.brand,
            "category": self.category,
            "subcategory": self.subcategory,
            "image_url": self.image_url,
            "price_cents": self.price_cents,
            "original_price_cents": self.original_price_cents,
            "discount_percentage": self.discount_percentage,
            "unit": self.unit,
            "pack_quantity": self.pack_quantity,
            "nutrition": {**self.nutrition(), "serving_size": self.serving_size},
            "ingredients": self.ingredients or [],
            "allergens": self.allergens or [],
            "health_score": self.health_score,
            "health_insights": self.health_insights,
            "min_stock_level": self.min_stock_level,
            "max_stock_level": self.max_stock_level,
            "expiry_date": to_utc_z(self.expiry_date),
            "days_until_expiry": self.days_until_expiry,
            "needs_restocking": self.needs_restocking,
            "views": self.views,
            "purchase_count": self.purchase_count,
            "predicted_demand": {
                "daily": self.predicted_daily_demand,
                "weekly": self.predicted_weekly_demand,
                "monthly": self.predicted_monthly_demand,
                "updated_at": to_utc_z(self.demand_updated_at),
            },
            "is_active": self.is_active,
            "is_promoted": self.is_promoted,
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }

    def to_summary(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "category": self.category,
            "price_cents": self.price_cents,
            "health_score": self.health_score,
            "image_url": self.image_url,
        }


class ProductAlternative(db.Model):
    """Seller-curated alternative suggestion (healthier, cheaper or popular)."""
    __tablename__ = "product_alternatives"
    __table_args__ = (
        db.UniqueConstraint("product_id", "alternative_id", "type", name="uq_product_alternative"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    alternative_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False)
    type = db.Column(db.String(16), nullable=False)  # healthier, cheaper, popular
    reason = db.Column(db.String(255), nullable=True)

    product = db.relationship("Product", foreign_keys=[product_id], back_populates="alternatives")
    alternative = db.relationship("Product", foreign_keys=[alternative_id])

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "alternative": self.alternative.to_summary() if self.alternative else None,
            "type": self.type,
            "reason": self.reason,
        }
