# Overview: Service-layer operations for inventory; stock movements and alert evaluation.

# backend/smartshop/services/inventory_service.py

from __future__ import annotations

from datetime import datetime, timedelta

from flask import current_app
from sqlalchemy import func, or_

from ..constants import (
    ALERT_SEVERITIES,
    EXPIRY_URGENT_DAYS,
    EXPIRY_WARNING_DAYS,
    OVERSTOCK_RATIO,
    SEVERITY_RANK,
)
from ..errors import InsufficientStockError, InvalidStateError, NotFoundError
from ..extensions import db
from ..models import Inventory, InventoryAlert, InventoryBatch, Product, StockMovement, User
from ..time_utils import days_until, utcnow
from ..validation import ConflictError, ValidationError
from .concurrency import lock_for_update, run_with_retry
"""
Inventory invariants (authoritative)

Stock model:
- stock_level is a stored counter on the Inventory row; every change to it
  appends exactly one StockMovement in the same DB transaction.
- stock_level never goes negative. remove_stock/record_damage validate before
  mutating, so a rejected call leaves the row untouched.

Alerts:
- Stock tiers are mutually exclusive: out_of_stock, else low_stock, else overstock.
- The expiry check is independent of the stock tiers.
- At most one unresolved alert per (record, type). Re-running the check never
  duplicates an open alert.
- Alerts whose condition cleared stay open unless auto-resolve is enabled.

Time:
- All datetimes are UTC-naive. days_until_expiry is the ceiling of the
  fractional day difference, so anything expiring later today counts as 1.
"""


def detect_alert_conditions(inventory, now: datetime | None = None) -> list[dict]:
    """
    Pure evaluation of the alert rules for one record.

    Returns a list of {"type", "severity", "message"} dicts, stock tier first.
    Works on anything with stock_level/min_stock_level/max_stock_level/expiry_date.
    """
    conditions: list[dict] = []
    stock = inventory.stock_level
    min_level = inventory.min_stock_level
    max_level = inventory.max_stock_level

    if stock == 0:
        conditions.append({
            "type": "out_of_stock",
            "severity": "critical",
            "message": "Product is out of stock",
        })
    elif stock <= min_level:
        conditions.append({
            "type": "low_stock",
            "severity": "high",
            "message": f"Stock level ({stock}) is below minimum ({min_level})",
        })
    elif stock >= max_level * OVERSTOCK_RATIO:
        conditions.append({
            "type": "overstock",
            "severity": "low",
            "message": f"Stock level ({stock}) is near maximum capacity ({max_level})",
        })

    remaining = days_until(inventory.expiry_date, now)
    if remaining is not None:
        if remaining <= 0:
            conditions.append({
                "type": "expired",
                "severity": "critical",
                "message": "Product has expired",
            })
        elif remaining <= EXPIRY_WARNING_DAYS:
            conditions.append({
                "type": "expiring_soon",
                "severity": "high" if remaining <= EXPIRY_URGENT_DAYS else "medium",
                "message": f"Product expires in {remaining} days",
            })

    return conditions


def _get_inventory(inventory_id: int, *, seller_id: int | None = None, lock: bool = False) -> Inventory:
    query = db.session.query(Inventory).filter_by(id=inventory_id)
    if lock:
        query = lock_for_update(query)
    record = query.first()
    if record is None:
        raise NotFoundError("Inventory record not found")
    if seller_id is not None and record.seller_id != seller_id:
        raise NotFoundError("Inventory record not found")
    return record


def get_inventory(inventory_id: int, *, seller_id: int | None = None) -> Inventory:
    return _get_inventory(inventory_id, seller_id=seller_id)


def _require_quantity(quantity) -> int:
    if isinstance(quantity, bool) or not isinstance(quantity, int):
        raise ValidationError("quantity must be an integer")
    if quantity <= 0:
        raise ValidationError("quantity must be > 0")
    return quantity


def _optional_level(name: str, value) -> int | None:
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError(f"{name} must be an integer")
    if value < 0:
        raise ValidationError(f"{name} must be >= 0")
    return value


def _append_movement(record: Inventory, *, kind: str, quantity: int, reason: str | None,
                     reference: str | None, performed_by: int | None, occurred_at: datetime) -> StockMovement:
    movement = StockMovement(
        type=kind,
        quantity=quantity,
        reason=reason,
        reference=reference or None,
        performed_by_user_id=performed_by,
        occurred_at=occurred_at,
    )
    record.movements.append(movement)
    return movement


def _evaluate_alerts(record: Inventory, *, auto_resolve: bool, now: datetime) -> list[InventoryAlert]:
    conditions = detect_alert_conditions(record, now)
    open_by_type = {a.type: a for a in record.alerts if not a.resolved}

    created: list[InventoryAlert] = []
    changed = False
    for condition in conditions:
        if condition["type"] in open_by_type:
            continue
        alert = InventoryAlert(
            type=condition["type"],
            severity=condition["severity"],
            message=condition["message"],
            created_at=now,
            resolved=False,
        )
        record.alerts.append(alert)
        created.append(alert)
        changed = True

    if auto_resolve:
        active_types = {c["type"] for c in conditions}
        for alert_type, alert in open_by_type.items():
            if alert_type not in active_types:
                alert.resolved = True
                alert.resolved_at = now
                changed = True

    # Touching the record bumps version_id; a concurrent check holding the
    # old version gets StaleDataError.
    if changed:
        record.alerts_changed_at = now

    return created


def _auto_resolve_default(auto_resolve: bool | None) -> bool:
    if auto_resolve is not None:
        return auto_resolve
    return bool(current_app.config.get("ALERT_AUTO_RESOLVE", False))


def check_alerts(inventory_id: int, *, auto_resolve: bool | None = None, now: datetime | None = None) -> list[InventoryAlert]:
    """
    Evaluate alert conditions for one record and persist any new alerts.

    Returns only the alerts created by this call.
    """
    resolve = _auto_resolve_default(auto_resolve)

    def _op():
        record = _get_inventory(inventory_id, lock=True)
        created = _evaluate_alerts(record, auto_resolve=resolve, now=now or utcnow())
        db.session.commit()
        return created

    return run_with_retry(_op)


def check_all_alerts(*, now: datetime | None = None, auto_resolve: bool | None = None) -> int:
    """Alert sweep over every active record. Returns the number of alerts created."""
    resolve = _auto_resolve_default(auto_resolve)
    ids = [rid for (rid,) in db.session.query(Inventory.id).filter(Inventory.is_active.is_(True)).order_by(Inventory.id).all()]

    created = 0
    for inventory_id in ids:
        created += len(check_alerts(inventory_id, auto_resolve=resolve, now=now))
    return created


def resolve_alert(alert_id: int, *, seller_id: int | None = None) -> InventoryAlert:
    """Mark an alert resolved. Resolving an already-resolved alert changes nothing."""
    def _op():
        alert = db.session.get(InventoryAlert, alert_id)
        if alert is None:
            raise NotFoundError("Alert not found")
        if seller_id is not None and alert.inventory.seller_id != seller_id:
            raise NotFoundError("Alert not found")
        if alert.resolved:
            return alert

        now = utcnow()
        alert.resolved = True
        alert.resolved_at = now
        alert.inventory.alerts_changed_at = now
        db.session.commit()
        return alert

    return run_with_retry(_op)


def add_stock(
    inventory_id: int,
    quantity: int,
    *,
    reason: str = "restock",
    reference: str = "",
    performed_by: int | None = None,
    seller_id: int | None = None,
) -> Inventory:
    quantity = _require_quantity(quantity)

    def _op():
        record = _get_inventory(inventory_id, seller_id=seller_id, lock=True)
        now = utcnow()
        record.stock_level += quantity
        record.last_restocked_at = now
        _append_movement(record, kind="in", quantity=quantity, reason=reason,
                         reference=reference, performed_by=performed_by, occurred_at=now)
        db.session.commit()
        return record

    return run_with_retry(_op)


def remove_stock(
    inventory_id: int,
    quantity: int,
    *,
    reason: str = "sale",
    reference: str = "",
    performed_by: int | None = None,
    seller_id: int | None = None,
) -> Inventory:
    """
    Take stock out. Raises InsufficientStockError (nothing written) when the
    record holds less than quantity.
    """
    quantity = _require_quantity(quantity)

    def _op():
        record = _get_inventory(inventory_id, seller_id=seller_id, lock=True)
        if quantity > record.stock_level:
            raise InsufficientStockError(quantity, record.stock_level)
        now = utcnow()
        record.stock_level -= quantity
        record.last_sold_at = now
        _append_movement(record, kind="out", quantity=quantity, reason=reason,
                         reference=reference, performed_by=performed_by, occurred_at=now)
        db.session.commit()
        return record

    return run_with_retry(_op)


def adjust_stock(
    inventory_id: int,
    new_level: int,
    *,
    reason: str = "stock count",
    performed_by: int | None = None,
    seller_id: int | None = None,
) -> Inventory:
    """Set stock to a counted level. The movement records the signed delta."""
    if isinstance(new_level, bool) or not isinstance(new_level, int):
        raise ValidationError("new_level must be an integer")
    if new_level < 0:
        raise ValidationError("new_level must be >= 0")

    def _op():
        record = _get_inventory(inventory_id, seller_id=seller_id, lock=True)
        now = utcnow()
        delta = new_level - record.stock_level
        record.stock_level = new_level
        record.last_counted_at = now
        _append_movement(record, kind="adjustment", quantity=delta, reason=reason,
                         reference=None, performed_by=performed_by, occurred_at=now)
        db.session.commit()
        return record

    return run_with_retry(_op)


def return_stock(inventory_id: int, quantity: int, *, reason: str = "customer return",
                 reference: str = "", performed_by: int | None = None,
                 seller_id: int | None = None) -> Inventory:
    quantity = _require_quantity(quantity)

    def _op():
        record = _get_inventory(inventory_id, seller_id=seller_id, lock=True)
        record.stock_level += quantity
        _append_movement(record, kind="return", quantity=quantity, reason=reason,
                         reference=reference, performed_by=performed_by, occurred_at=utcnow())
        db.session.commit()
        return record

    return run_with_retry(_op)


def record_damage(inventory_id: int, quantity: int, *, reason: str = "damaged",
                  performed_by: int | None = None, seller_id: int | None = None) -> Inventory:
    quantity = _require_quantity(quantity)

    def _op():
        record = _get_inventory(inventory_id, seller_id=seller_id, lock=True)
        if quantity > record.stock_level:
            raise InsufficientStockError(quantity, record.stock_level)
        record.stock_level -= quantity
        _append_movement(record, kind="damage", quantity=quantity, reason=reason,
                         reference=None, performed_by=performed_by, occurred_at=utcnow())
        db.session.commit()
        return record

    return run_with_retry(_op)


def add_batch(
    inventory_id: int,
    *,
    batch_number: str,
    quantity: int,
    manufacturing_date: datetime | None = None,
    expiry_date: datetime | None = None,
    supplier: str | None = None,
    cost_cents: int | None = None,
    performed_by: int | None = None,
    seller_id: int | None = None,
) -> InventoryBatch:
    """
    Receive a batch: stock goes up by quantity with an `in` movement referencing
    the batch. The record's expiry_date tracks the earliest batch expiry.
    """
    quantity = _require_quantity(quantity)
    batch_number = (batch_number or "").strip()
    if not batch_number:
        raise ValidationError("batch_number is required")
    if cost_cents is not None and cost_cents < 0:
        raise ValidationError("cost_cents must be >= 0")

    def _op():
        record = _get_inventory(inventory_id, seller_id=seller_id, lock=True)
        now = utcnow()
        batch = InventoryBatch(
            batch_number=batch_number,
            quantity=quantity,
            manufacturing_date=manufacturing_date,
            expiry_date=expiry_date,
            supplier=supplier,
            cost_cents=cost_cents,
        )
        record.batches.append(batch)
        record.stock_level += quantity
        record.last_restocked_at = now
        if expiry_date is not None and (record.expiry_date is None or expiry_date < record.expiry_date):
            record.expiry_date = expiry_date
        _append_movement(record, kind="in", quantity=quantity, reason="batch received",
                         reference=batch_number, performed_by=performed_by, occurred_at=now)
        db.session.commit()
        return batch

    return run_with_retry(_op)


def create_inventory(
    *,
    seller_id: int,
    product_id: int,
    stock_level: int = 0,
    min_stock_level: int | None = None,
    max_stock_level: int | None = None,
    reorder_level: int | None = None,
    reorder_quantity: int | None = None,
    location: dict | None = None,
    expiry_date: datetime | None = None,
    performed_by: int | None = None,
) -> Inventory:
    """
    Create the stock record for a seller's product.

    min/max default to the product's own levels. An opening balance is
    recorded as an `in` movement.
    """
    if db.session.get(User, seller_id) is None:
        raise NotFoundError("Seller not found")
    product = db.session.get(Product, product_id)
    if product is None or product.seller_id != seller_id:
        raise NotFoundError("Product not found")
    if not isinstance(stock_level, int) or isinstance(stock_level, bool) or stock_level < 0:
        raise ValidationError("stock_level must be an integer >= 0")
    min_stock_level = _optional_level("min_stock_level", min_stock_level)
    max_stock_level = _optional_level("max_stock_level", max_stock_level)
    reorder_level = _optional_level("reorder_level", reorder_level)
    reorder_quantity = _optional_level("reorder_quantity", reorder_quantity)
    if location is not None and not isinstance(location, dict):
        raise ValidationError("location must be an object")

    existing = db.session.query(Inventory).filter_by(product_id=product_id, seller_id=seller_id).first()
    if existing is not None:
        raise ConflictError("Inventory record already exists for this product")

    location = location or {}
    record = Inventory(
        product_id=product_id,
        seller_id=seller_id,
        stock_level=stock_level,
        min_stock_level=min_stock_level if min_stock_level is not None else product.min_stock_level,
        max_stock_level=max_stock_level if max_stock_level is not None else product.max_stock_level,
        reorder_level=reorder_level if reorder_level is not None else 20,
        reorder_quantity=reorder_quantity if reorder_quantity is not None else 50,
        warehouse=location.get("warehouse"),
        aisle=location.get("aisle"),
        shelf=location.get("shelf"),
        bin=location.get("bin"),
        section=location.get("section"),
        expiry_date=expiry_date or product.expiry_date,
        is_active=True,
    )

    if stock_level > 0:
        now = utcnow()
        record.last_restocked_at = now
        _append_movement(record, kind="in", quantity=stock_level, reason="opening balance",
                         reference=None, performed_by=performed_by, occurred_at=now)

    db.session.add(record)
    db.session.commit()
    return record


def deactivate_inventory(inventory_id: int, *, seller_id: int | None = None) -> Inventory:
    def _op():
        record = _get_inventory(inventory_id, seller_id=seller_id, lock=True)
        if not record.is_active:
            raise InvalidStateError("Inventory record is already inactive")
        record.is_active = False
        db.session.commit()
        return record

    return run_with_retry(_op)


def list_inventory(
    *,
    seller_id: int,
    search: str | None = None,
    category: str | None = None,
    low_stock: bool = False,
    expiring_soon: bool = False,
    page: int = 1,
    per_page: int = 20,
    now: datetime | None = None,
) -> dict:
    """
    Seller's active records joined to their products.

    low_stock keeps records at or below their minimum; expiring_soon keeps
    records whose expiry falls within the warning window.
    """
    page = max(1, page or 1)
    per_page = max(1, min(per_page or 20, 100))

    q = db.session.query(Inventory).join(Product, Product.id == Inventory.product_id).filter(
        Inventory.seller_id == seller_id,
        Inventory.is_active.is_(True),
    )
    if search:
        pattern = f"%{search.strip()}%"
        q = q.filter(or_(Product.name.ilike(pattern), Product.barcode == search.strip()))
    if category and category != "all":
        q = q.filter(Product.category == category)
    if low_stock:
        q = q.filter(Inventory.stock_level <= Inventory.min_stock_level)
    if expiring_soon:
        horizon = (now or utcnow()) + timedelta(days=EXPIRY_WARNING_DAYS)
        q = q.filter(Inventory.expiry_date.isnot(None), Inventory.expiry_date <= horizon)

    total = q.count()
    rows = q.order_by(Product.name.asc(), Inventory.id.asc()).offset((page - 1) * per_page).limit(per_page).all()

    return {
        "items": [r.to_dict() for r in rows],
        "page": page,
        "per_page": per_page,
        "total": total,
        "pages": (total + per_page - 1) // per_page,
        "summary": inventory_summary(seller_id=seller_id),
    }


def inventory_summary(*, seller_id: int) -> dict:
    base = db.session.query(Inventory).filter(
        Inventory.seller_id == seller_id,
        Inventory.is_active.is_(True),
    )
    total_products = base.count()
    out_of_stock = base.filter(Inventory.stock_level == 0).count()
    low_stock = base.filter(
        Inventory.stock_level > 0,
        Inventory.stock_level <= Inventory.min_stock_level,
    ).count()
    total_units = db.session.query(func.coalesce(func.sum(Inventory.stock_level), 0)).filter(
        Inventory.seller_id == seller_id,
        Inventory.is_active.is_(True),
    ).scalar()
    return {
        "total_products": total_products,
        "out_of_stock": out_of_stock,
        "low_stock": low_stock,
        "total_units": int(total_units or 0),
    }


def _open_alerts_query(seller_id: int):
    return db.session.query(InventoryAlert).join(Inventory, Inventory.id == InventoryAlert.inventory_id).filter(
        Inventory.seller_id == seller_id,
        Inventory.is_active.is_(True),
        InventoryAlert.resolved.is_(False),
    )


def list_alerts(*, seller_id: int, severity: str | None = None) -> list[InventoryAlert]:
    """
    Unresolved alerts for a seller: critical, high, medium, low; newest first
    within a severity.
    """
    q = _open_alerts_query(seller_id)
    if severity is not None:
        if severity not in ALERT_SEVERITIES:
            raise ValidationError(f"severity must be one of: {', '.join(ALERT_SEVERITIES)}")
        q = q.filter(InventoryAlert.severity == severity)

    alerts = q.all()
    alerts.sort(key=lambda a: (a.created_at, a.id), reverse=True)
    alerts.sort(key=lambda a: SEVERITY_RANK.get(a.severity, len(SEVERITY_RANK)))
    return alerts


def alert_counts(*, seller_id: int) -> dict:
    rows = _open_alerts_query(seller_id).with_entities(
        InventoryAlert.severity, func.count(InventoryAlert.id)
    ).group_by(InventoryAlert.severity).all()
    counts = {severity: 0 for severity in SEVERITY_RANK}
    for severity, count in rows:
        counts[severity] = int(count)
    counts["total"] = sum(counts.values())
    return counts


def list_movements(inventory_id: int, *, seller_id: int | None = None, limit: int = 100) -> list[StockMovement]:
    _get_inventory(inventory_id, seller_id=seller_id)
    return db.session.query(StockMovement).filter_by(inventory_id=inventory_id).order_by(
        StockMovement.occurred_at.desc(), StockMovement.id.desc()
    ).limit(limit).all()
