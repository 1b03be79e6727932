# Overview: Catalog import; maps spreadsheet rows onto products and their inventory records.

from __future__ import annotations

import csv
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any, Iterable

from sqlalchemy.exc import IntegrityError

from ..constants import PRODUCT_CATEGORIES
from ..errors import NotFoundError
from ..extensions import db
from ..models import Inventory, Product, StockMovement, User
from ..time_utils import utcnow
from ..validation import ValidationError, MAX_PRICE_CENTS
from .catalog_service import calculate_health_score


def _to_int(value: Any) -> int | None:
    if value is None or value == "":
        return None
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value)
    text = str(value).strip()
    if not text:
        return None
    try:
        return int(float(text))
    except ValueError:
        raise ValidationError(f"not a number: {text}")


def _to_cents(value: Any) -> int | None:
    if value is None or value == "":
        return None
    text = str(value).strip().replace("₹", "").replace("Rs.", "").replace("$", "").replace(",", "")
    if not text:
        return None
    try:
        return int((Decimal(text) * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))
    except InvalidOperation:
        raise ValidationError(f"not a price: {value}")


def _to_text(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text if text else None


def _to_category(value: Any) -> str | None:
    text = _to_text(value)
    if text is None:
        return None
    key = text.lower().replace(" ", "_")
    return key if key in PRODUCT_CATEGORIES else "other"


# field -> (accepted headers in priority order, converter, default)
COLUMN_MAP: dict[str, tuple[tuple[str, ...], Any, Any]] = {
    "name": (("Product Name", "name"), _to_text, None),
    "category": (("Category", "category"), _to_category, "other"),
    "price_cents": (("Price", "price"), _to_cents, 0),
    "barcode": (("Barcode", "barcode"), _to_text, None),
    "stock_level": (("Stock", "stock"), _to_int, 0),
    "min_stock_level": (("Min Stock", "minStock", "min_stock"), _to_int, 10),
    "max_stock_level": (("Max Stock", "maxStock", "max_stock"), _to_int, 100),
}


def normalize_row(raw_row: dict[str, Any]) -> dict[str, Any]:
    """
    Resolve each field from the first header present with a non-empty value,
    converted, or the field's default.
    """
    normalized: dict[str, Any] = {}
    for field, (headers, convert, default) in COLUMN_MAP.items():
        value = None
        for header in headers:
            raw = raw_row.get(header)
            if raw not in (None, ""):
                value = convert(raw)
                break
        normalized[field] = default if value is None else value
    return normalized


def validate_row(row: dict[str, Any]) -> list[str]:
    errors: list[str] = []
    if not row.get("name"):
        errors.append("name is required")
    if row["price_cents"] < 0 or row["price_cents"] > MAX_PRICE_CENTS:
        errors.append("price out of range")
    for key in ("stock_level", "min_stock_level", "max_stock_level"):
        if row[key] < 0:
            errors.append(f"{key} must be >= 0")
    return errors


def _upsert_product(row: dict[str, Any], seller_id: int) -> Product:
    q = db.session.query(Product).filter(Product.seller_id == seller_id)
    if row["barcode"]:
        product = q.filter(Product.barcode == row["barcode"]).first()
    else:
        product = q.filter(Product.barcode.is_(None), Product.name == row["name"]).first()

    if product is None:
        product = Product(seller_id=seller_id, barcode=row["barcode"])
        db.session.add(product)
    product.name = row["name"]
    product.category = row["category"]
    product.price_cents = row["price_cents"]
    product.min_stock_level = row["min_stock_level"]
    product.max_stock_level = row["max_stock_level"]
    product.is_active = True
    product.health_score = calculate_health_score(product.nutrition())
    db.session.flush()
    return product


def _upsert_inventory(product: Product, row: dict[str, Any], seller_id: int, performed_by: int | None) -> Inventory:
    record = db.session.query(Inventory).filter_by(product_id=product.id, seller_id=seller_id).first()
    now = utcnow()
    if record is None:
        record = Inventory(product_id=product.id, seller_id=seller_id, stock_level=0, is_active=True)
        db.session.add(record)

    delta = row["stock_level"] - (record.stock_level or 0)
    record.stock_level = row["stock_level"]
    record.min_stock_level = row["min_stock_level"]
    record.max_stock_level = row["max_stock_level"]
    record.is_active = True
    if delta:
        record.last_counted_at = now
        record.movements.append(StockMovement(
            type="adjustment",
            quantity=delta,
            reason="catalog import",
            performed_by_user_id=performed_by,
            occurred_at=now,
        ))
    db.session.flush()
    return record


def import_rows(*, seller_id: int, rows: Iterable[dict[str, Any]], performed_by: int | None = None) -> dict:
    """
    Upsert products by (barcode, seller) and set their stock.

    Each row runs in its own savepoint, so one bad row does not discard the
    others. Returns {"success", "failed", "errors": [{"row", "error"}]}.
    """
    if db.session.get(User, seller_id) is None:
        raise NotFoundError("Seller not found")

    results = {"success": 0, "failed": 0, "errors": []}
    for raw_row in rows:
        label = _to_text(raw_row.get("Product Name")) or _to_text(raw_row.get("name")) or "Unknown"
        try:
            row = normalize_row(raw_row)
            problems = validate_row(row)
            if problems:
                raise ValidationError("; ".join(problems))
            with db.session.begin_nested():
                product = _upsert_product(row, seller_id)
                _upsert_inventory(product, row, seller_id, performed_by)
            results["success"] += 1
        except ValidationError as exc:
            results["failed"] += 1
            results["errors"].append({"row": label, "error": str(exc)})
        except IntegrityError:
            results["failed"] += 1
            results["errors"].append({"row": label, "error": "barcode is already in use"})

    db.session.commit()
    return results


def import_csv(path: str, *, seller_id: int, performed_by: int | None = None) -> dict:
    with open(path, newline="", encoding="utf-8-sig") as fh:
        return import_rows(seller_id=seller_id, rows=csv.DictReader(fh), performed_by=performed_by)
