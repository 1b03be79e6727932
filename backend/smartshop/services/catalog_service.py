# Overview: Service-layer operations for the product catalog; health scoring, alternatives and soft deletes.

from __future__ import annotations

from sqlalchemy import or_

from ..constants import ALTERNATIVE_TYPES, HEALTH_SCORED_CATEGORIES, PRODUCT_CATEGORIES, PRODUCT_UNITS
from ..errors import NotFoundError
from ..extensions import db
from ..models import Category, Inventory, Product, ProductAlternative, User
from ..models.catalog import NUTRITION_FIELDS, slugify
from ..validation import ConflictError, ValidationError, MAX_PRICE_CENTS
from .concurrency import run_with_retry


DEFAULT_HEALTH_SCORE = 5

PRODUCT_WRITABLE_FIELDS = {
    "barcode", "name", "description", "brand", "category", "subcategory", "image_url",
    "price_cents", "original_price_cents", "unit", "pack_quantity",
    "calories", "protein", "carbs", "fat", "fiber", "sugar", "sodium", "serving_size",
    "ingredients", "allergens", "health_insights",
    "min_stock_level", "max_stock_level", "manufacturing_date", "expiry_date",
    "is_promoted",
}


def calculate_health_score(nutrition: dict | None) -> int:
    """
    Score 0-10 from per-serving nutrition facts.

    Starts at 10, loses points for sugar > 10g (-2), sodium > 500mg (-2) and
    fat > 20g (-1), gains a point each for protein > 10g and fiber > 5g.
    Products without any nutrition data score 5.
    """
    if not nutrition or all(v is None for v in nutrition.values()):
        return DEFAULT_HEALTH_SCORE

    def value(key: str) -> float:
        return nutrition.get(key) or 0

    score = 10
    if value("sugar") > 10:
        score -= 2
    if value("sodium") > 500:
        score -= 2
    if value("fat") > 20:
        score -= 1
    if value("protein") > 10:
        score += 1
    if value("fiber") > 5:
        score += 1

    return max(0, min(10, score))


def _validate_product_fields(patch: dict) -> None:
    if "category" in patch and patch["category"] not in PRODUCT_CATEGORIES:
        raise ValidationError(f"category must be one of: {', '.join(PRODUCT_CATEGORIES)}")
    if "unit" in patch and patch["unit"] not in PRODUCT_UNITS:
        raise ValidationError(f"unit must be one of: {', '.join(PRODUCT_UNITS)}")
    for key in ("price_cents", "original_price_cents"):
        price = patch.get(key)
        if price is None:
            continue
        if price < 0:
            raise ValidationError(f"{key} must be >= 0")
        if price > MAX_PRICE_CENTS:
            raise ValidationError(f"{key} cannot exceed {MAX_PRICE_CENTS}")
    for key in ("min_stock_level", "max_stock_level"):
        if key in patch and patch[key] is not None and patch[key] < 0:
            raise ValidationError(f"{key} must be >= 0")


def _ensure_barcode_free(barcode: str | None, *, exclude_id: int | None = None) -> None:
    if not barcode:
        return
    q = db.session.query(Product.id).filter(Product.barcode == barcode)
    if exclude_id is not None:
        q = q.filter(Product.id != exclude_id)
    if q.first() is not None:
        raise ConflictError(f"barcode {barcode} is already in use")


def _apply_patch(product: Product, patch: dict) -> bool:
    """Copy writable fields onto product. Returns True if nutrition changed."""
    nutrition_changed = False
    for key, value in patch.items():
        if key not in PRODUCT_WRITABLE_FIELDS:
            continue
        if key in NUTRITION_FIELDS and getattr(product, key) != value:
            nutrition_changed = True
        setattr(product, key, value)
    return nutrition_changed


def create_product(*, seller_id: int, patch: dict) -> Product:
    seller = db.session.get(User, seller_id)
    if seller is None:
        raise NotFoundError("Seller not found")

    missing = [f for f in ("name", "price_cents") if patch.get(f) in (None, "")]
    if missing:
        raise ValidationError(f"Missing required fields: {', '.join(missing)}")
    _validate_product_fields(patch)
    _ensure_barcode_free(patch.get("barcode"))

    product = Product(seller_id=seller_id)
    _apply_patch(product, patch)
    product.health_score = calculate_health_score(product.nutrition())

    db.session.add(product)
    db.session.commit()
    return product


def update_product(*, product_id: int, seller_id: int | None, patch: dict) -> Product:
    """
    Update a product. health_score is recomputed whenever a nutrition field changes.

    seller_id restricts the update to the owning seller (None skips the check).
    """
    _validate_product_fields(patch)

    def _op():
        product = get_product(product_id, seller_id=seller_id, include_inactive=True)
        _ensure_barcode_free(patch.get("barcode"), exclude_id=product.id)
        if _apply_patch(product, patch):
            product.health_score = calculate_health_score(product.nutrition())
        db.session.commit()
        return product

    return run_with_retry(_op)


def deactivate_product(*, product_id: int, seller_id: int | None) -> Product:
    """Soft delete: hide the product and its inventory records."""
    def _op():
        product = get_product(product_id, seller_id=seller_id, include_inactive=True)
        product.is_active = False
        for record in db.session.query(Inventory).filter_by(product_id=product.id).all():
            record.is_active = False
        db.session.commit()
        return product

    return run_with_retry(_op)


def get_product(product_id: int, *, seller_id: int | None = None, include_inactive: bool = False) -> Product:
    product = db.session.get(Product, product_id)
    if product is None or (not include_inactive and not product.is_active):
        raise NotFoundError("Product not found")
    if seller_id is not None and product.seller_id != seller_id:
        raise NotFoundError("Product not found")
    return product


def get_by_barcode(barcode: str) -> Product:
    product = db.session.query(Product).filter_by(barcode=barcode.strip(), is_active=True).first()
    if product is None:
        raise NotFoundError("Product not found")
    return product


def record_view(product_id: int) -> Product:
    """Count a product page view."""
    def _op():
        product = get_product(product_id)
        product.views = (product.views or 0) + 1
        db.session.commit()
        return product

    return run_with_retry(_op)


SORT_OPTIONS = {
    "name": (Product.name.asc(),),
    "price_asc": (Product.price_cents.asc(),),
    "price_desc": (Product.price_cents.desc(),),
    "health": (Product.health_score.desc(), Product.price_cents.asc()),
    "popular": (Product.purchase_count.desc(),),
    "newest": (Product.created_at.desc(), Product.id.desc()),
}


def list_products(
    *,
    search: str | None = None,
    category: str | None = None,
    min_price_cents: int | None = None,
    max_price_cents: int | None = None,
    seller_id: int | None = None,
    sort: str = "name",
    page: int = 1,
    per_page: int = 20,
) -> dict:
    """
    List active products with filtering and pagination.

    per_page is capped at 100.
    """
    if sort not in SORT_OPTIONS:
        raise ValidationError(f"sort must be one of: {', '.join(SORT_OPTIONS)}")
    page = max(1, page or 1)
    per_page = max(1, min(per_page or 20, 100))

    q = db.session.query(Product).filter(Product.is_active.is_(True))
    if search:
        pattern = f"%{search.strip()}%"
        q = q.filter(or_(Product.name.ilike(pattern), Product.description.ilike(pattern), Product.barcode == search.strip()))
    if category and category != "all":
        q = q.filter(Product.category == category)
    if min_price_cents is not None:
        q = q.filter(Product.price_cents >= min_price_cents)
    if max_price_cents is not None:
        q = q.filter(Product.price_cents <= max_price_cents)
    if seller_id is not None:
        q = q.filter(Product.seller_id == seller_id)

    total = q.count()
    rows = q.order_by(*SORT_OPTIONS[sort], Product.id.asc()).offset((page - 1) * per_page).limit(per_page).all()

    return {
        "items": [p.to_dict() for p in rows],
        "page": page,
        "per_page": per_page,
        "total": total,
        "pages": (total + per_page - 1) // per_page,
    }


def find_alternatives(product_id: int, kind: str = "all", limit: int = 3) -> list[Product]:
    """
    Same-category active products other than product_id.

    healthier: higher health score, best first.
    cheaper:   lower price, cheapest first.
    popular:   most purchased first.
    all:       best health score, then cheapest.
    """
    product = db.session.get(Product, product_id)
    if product is None:
        return []

    q = db.session.query(Product).filter(
        Product.id != product.id,
        Product.category == product.category,
        Product.is_active.is_(True),
    )

    if kind == "healthier":
        q = q.filter(Product.health_score > product.health_score).order_by(Product.health_score.desc())
    elif kind == "cheaper":
        q = q.filter(Product.price_cents < product.price_cents).order_by(Product.price_cents.asc())
    elif kind == "popular":
        q = q.order_by(Product.purchase_count.desc())
    else:
        q = q.order_by(Product.health_score.desc(), Product.price_cents.asc())

    return q.order_by(Product.id.asc()).limit(limit).all()


def add_alternative(*, product_id: int, alternative_id: int, kind: str, reason: str | None = None) -> ProductAlternative:
    if kind not in ALTERNATIVE_TYPES:
        raise ValidationError(f"type must be one of: {', '.join(ALTERNATIVE_TYPES)}")
    if product_id == alternative_id:
        raise ValidationError("a product cannot be its own alternative")
    get_product(product_id, include_inactive=True)
    get_product(alternative_id)

    existing = db.session.query(ProductAlternative).filter_by(
        product_id=product_id, alternative_id=alternative_id, type=kind,
    ).first()
    if existing is not None:
        existing.reason = reason
        db.session.commit()
        return existing

    link = ProductAlternative(product_id=product_id, alternative_id=alternative_id, type=kind, reason=reason)
    db.session.add(link)
    db.session.commit()
    return link


def refresh_health_scores(categories=HEALTH_SCORED_CATEGORIES) -> int:
    """Recompute stored health scores for active products with nutrition data. Returns the number changed."""
    products = db.session.query(Product).filter(
        Product.is_active.is_(True),
        Product.category.in_(list(categories)),
    ).all()

    updated = 0
    for product in products:
        if not product.has_nutrition():
            continue
        score = calculate_health_score(product.nutrition())
        if score != product.health_score:
            product.health_score = score
            updated += 1

    db.session.commit()
    return updated


def create_category(*, name: str, description: str | None = None, parent_id: int | None = None,
                    icon: str | None = None, sort_order: int = 0) -> Category:
    name = (name or "").strip()
    if not name:
        raise ValidationError("name is required")
    if parent_id is not None and db.session.get(Category, parent_id) is None:
        raise NotFoundError("Parent category not found")

    category = Category(
        name=name,
        slug=slugify(name),
        description=description,
        parent_id=parent_id,
        icon=icon,
        sort_order=sort_order,
    )
    db.session.add(category)
    db.session.commit()
    return category


def list_categories(active_only: bool = True) -> list[dict]:
    q = db.session.query(Category)
    if active_only:
        q = q.filter_by(is_active=True)
    return [c.to_dict() for c in q.order_by(Category.sort_order.asc(), Category.name.asc()).all()]
