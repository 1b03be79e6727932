from __future__ import annotations

from ..extensions import db
from smartshop.constants import OVERSTOCK_RATIO
from smartshop.time_utils import to_utc_z


class Inventory(db.Model):
    """
    Stock record for one product held by one seller.

    INVARIANTS:
    - (product_id, seller_id) is unique.
    - stock_level never goes negative; inventory_service rejects removals
      larger than the current level.
    - movements and alerts are append-only history. Alerts are only ever
      flipped to resolved, never deleted.

    CONCURRENCY: version_id is checked on every UPDATE, so two requests that
    read the same version cannot both write. The loser gets StaleDataError
    and is re-run by run_with_retry(). Creating or resolving an alert stamps
    alerts_changed_at, so alert writes go through the same check.
    """
    __tablename__ = "inventory"
    __table_args__ = (
        db.UniqueConstraint("product_id", "seller_id", name="uq_inventory_product_seller"),
        db.Index("ix_inventory_seller_active", "seller_id", "is_active"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    seller_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)

    stock_level = db.Column(db.Integer, nullable=False, default=0, index=True)
    min_stock_level = db.Column(db.Integer, nullable=False, default=10)
    max_stock_level = db.Column(db.Integer, nullable=False, default=100)
    reorder_level = db.Column(db.Integer, nullable=False, default=20)
    reorder_quantity = db.Column(db.Integer, nullable=False, default=50)

    warehouse = db.Column(db.String(64), nullable=True)
    aisle = db.Column(db.String(32), nullable=True)
    shelf = db.Column(db.String(32), nullable=True)
    bin = db.Column(db.String(32), nullable=True)
    section = db.Column(db.String(64), nullable=True)

    last_restocked_at = db.Column(db.DateTime, nullable=True)
    last_sold_at = db.Column(db.DateTime, nullable=True)
    last_counted_at = db.Column(db.DateTime, nullable=True)
    alerts_changed_at = db.Column(db.DateTime, nullable=True)
    expiry_date = db.Column(db.DateTime, nullable=True, index=True)

    is_active = db.Column(db.Boolean, nullable=False, default=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    product = db.relationship("Product", backref=db.backref("inventory_records", lazy=True))
    seller = db.relationship("User")
    movements = db.relationship(
        "StockMovement",
        back_populates="inventory",
        order_by="StockMovement.id",
        cascade="all, delete-orphan",
        lazy=True,
    )
    alerts = db.relationship(
        "InventoryAlert",
        back_populates="inventory",
        order_by="InventoryAlert.id",
        cascade="all, delete-orphan",
        lazy=True,
    )
    batches = db.relationship(
        "InventoryBatch",
        back_populates="inventory",
        order_by="InventoryBatch.id",
        cascade="all, delete-orphan",
        lazy=True,
    )
    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<Inventory id={self.id} product_id={self.product_id} seller_id={self.seller_id} stock={self.stock_level}>"

    @property
    def stock_status(self) -> str:
        if self.stock_level == 0:
            return "out_of_stock"
        if self.stock_level <= self.min_stock_level:
            return "low_stock"
        if self.stock_level >= self.max_stock_level * OVERSTOCK_RATIO:
            return "overstock"
        return "in_stock"

    @property
    def needs_reorder(self) -> bool:
        return self.stock_level <= self.reorder_level

    def location(self) -> dict:
        return {
            "warehouse": self.warehouse,
            "aisle": self.aisle,
            "shelf": self.shelf,
            "bin": self.bin,
            "section": self.section,
        }

    def to_dict(self, *, include_history: bool = False) -> dict:
        data = {
            "id": self.id,
            "product_id": self.product_id,
            "product": self.product.to_summary() if self.product else None,
            "seller_id": self.seller_id,
            "stock_level": self.stock_level,
            "min_stock_level": self.min_stock_level,
            "max_stock_level": self.max_stock_level,
            "reorder_level": self.reorder_level,
            "reorder_quantity": self.reorder_quantity,
            "stock_status": self.stock_status,
            "location": self.location(),
            "last_restocked_at": to_utc_z(self.last_restocked_at),
            "last_sold_at": to_utc_z(self.last_sold_at),
            "last_counted_at": to_utc_z(self.last_counted_at),
            "alerts_changed_at": to_utc_z(self.alerts_changed_at),
            "expiry_date": to_utc_z(self.expiry_date),
            "is_active": self.is_active,
            "open_alerts": [a.to_dict() for a in self.alerts if not a.resolved],
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
        if include_history:
            data["movements"] = [m.to_dict() for m in self.movements]
            data["alerts"] = [a.to_dict() for a in self.alerts]
            data["batches"] = [b.to_dict() for b in self.batches]
        return data


class StockMovement(db.Model):
    """
    Append-only record of a stock change.

    quantity is always positive for in/out/return/damage; for adjustment it is
    the signed delta that was applied.
    """
    __tablename__ = "stock_movements"
    __table_args__ = (
        db.Index("ix_movements_inventory_occurred", "inventory_id", "occurred_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    inventory_id = db.Column(db.Integer, db.ForeignKey("inventory.id"), nullable=False, index=True)
    type = db.Column(db.String(16), nullable=False, index=True)  # in, out, adjustment, return, damage
    quantity = db.Column(db.Integer, nullable=False)
    reason = db.Column(db.String(255), nullable=True)
    reference = db.Column(db.String(128), nullable=True)
    performed_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    occurred_at = db.Column(db.DateTime, nullable=False, index=True)

    inventory = db.relationship("Inventory", back_populates="movements")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "inventory_id": self.inventory_id,
            "type": self.type,
            "quantity": self.quantity,
            "reason": self.reason,
            "reference": self.reference,
            "performed_by_user_id": self.performed_by_user_id,
            "occurred_at": to_utc_z(self.occurred_at),
        }


class InventoryAlert(db.Model):
    __tablename__ = "inventory_alerts"
    __table_args__ = (
        db.Index("ix_alerts_inventory_type_resolved", "inventory_id", "type", "resolved"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    inventory_id = db.Column(db.Integer, db.ForeignKey("inventory.id"), nullable=False, index=True)
    type = db.Column(db.String(32), nullable=False)  # low_stock, out_of_stock, expiring_soon, expired, overstock
    message = db.Column(db.String(255), nullable=True)
    severity = db.Column(db.String(16), nullable=False, default="medium")  # low, medium, high, critical
    created_at = db.Column(db.DateTime, nullable=False)
    resolved = db.Column(db.Boolean, nullable=False, default=False, index=True)
    resolved_at = db.Column(db.DateTime, nullable=True)

    inventory = db.relationship("Inventory", back_populates="alerts")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "inventory_id": self.inventory_id,
            "type": self.type,
            "message": self.message,
            "severity": self.severity,
            "created_at": to_utc_z(self.created_at),
            "resolved": self.resolved,
            "resolved_at": to_utc_z(self.resolved_at),
        }


class InventoryBatch(db.Model):
    __tablename__ = "inventory_batches"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    inventory_id = db.Column(db.Integer, db.ForeignKey("inventory.id"), nullable=False, index=True)
    batch_number = db.Column(db.String(64), nullable=False)
    quantity = db.Column(db.Integer, nullable=False)
    manufacturing_date = db.Column(db.DateTime, nullable=True)
    expiry_date = db.Column(db.DateTime, nullable=True)
    supplier = db.Column(db.String(120), nullable=True)
    cost_cents = db.Column(db.Integer, nullable=True)

    inventory = db.relationship("Inventory", back_populates="batches")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "batch_number": self.batch_number,
            "quantity": self.quantity,
            "manufacturing_date": to_utc_z(self.manufacturing_date),
            "expiry_date": to_utc_z(self.expiry_date),
            "supplier": self.supplier,
            "cost_cents": self.cost_cents,
        }
