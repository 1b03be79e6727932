# Overview: Pytest coverage for optimistic concurrency; conflicting writers are retried against fresh rows.

"""
Concurrency tests.

A second connection commits between our read and our flush, the way a
parallel request would. These tests use a file-backed SQLite database
because the shared in-memory database runs on a single connection.
"""

from datetime import datetime

import pytest
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from smartshop import create_app
from smartshop.errors import InsufficientStockError
from smartshop.extensions import db
from smartshop.models import Inventory, InventoryAlert, Product, StockMovement, User
from smartshop.services import concurrency, inventory_service
from smartshop.services.concurrency import run_with_retry


NOW = datetime(2024, 6, 1, 12, 0, 0)

inventory_table = Inventory.__table__
alerts_table = InventoryAlert.__table__


@pytest.fixture(scope='function')
def file_app(tmp_path):
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': f"sqlite:///{tmp_path / 'concurrency.sqlite3'}",
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'ALERT_AUTO_RESOLVE': False,
        'SCHEDULER_ENABLED': False,
    })
    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()
        db.engine.dispose()


@pytest.fixture(scope='function')
def record(file_app):
    seller = User(name="Sam Seller", email="seller@test.local", role="seller", is_active=True)
    db.session.add(seller)
    db.session.flush()
    product = Product(name="Whole Milk", price_cents=10000, category="dairy", seller_id=seller.id)
    db.session.add(product)
    db.session.flush()
    inventory = Inventory(product_id=product.id, seller_id=seller.id, stock_level=10)
    db.session.add(inventory)
    db.session.commit()
    return inventory


@pytest.fixture(autouse=True)
def no_backoff(monkeypatch):
    monkeypatch.setattr(concurrency.time, "sleep", lambda seconds: None)


def interleave(monkeypatch, write, *, times=1):
    """
    Run write(connection, record) on a second connection right after the
    service loads its Inventory row, for the first `times` loads.
    """
    real_get = inventory_service._get_inventory
    calls = []

    def racing_get(*args, **kwargs):
        loaded = real_get(*args, **kwargs)
        calls.append(loaded.version_id)
        if len(calls) <= times:
            list(loaded.alerts)
            with db.engine.begin() as connection:
                write(connection, loaded)
        return loaded

    monkeypatch.setattr(inventory_service, "_get_inventory", racing_get)
    return calls


def restock_elsewhere(connection, loaded):
    connection.execute(
        inventory_table.update()
        .where(inventory_table.c.id == loaded.id)
        .values(stock_level=inventory_table.c.stock_level + 5, version_id=inventory_table.c.version_id + 1)
    )


class TestRunWithRetry:

    def test_returns_after_transient_conflicts(self, file_app):
        attempts = []

        def flaky():
            attempts.append(1)
            if len(attempts) < 3:
                raise StaleDataError("row changed")
            return "done"

        assert run_with_retry(flaky) == "done"
        assert len(attempts) == 3

    def test_reraises_when_attempts_run_out(self, file_app):
        attempts = []

        def locked():
            attempts.append(1)
            raise OperationalError("UPDATE inventory", {}, Exception("database is locked"))

        with pytest.raises(OperationalError):
            run_with_retry(locked, attempts=2)
        assert len(attempts) == 2

    def test_other_errors_are_not_retried(self, file_app):
        attempts = []

        def broken():
            attempts.append(1)
            raise ValueError("bad input")

        with pytest.raises(ValueError):
            run_with_retry(broken)
        assert len(attempts) == 1


class TestStockConflicts:

    def test_concurrent_restock_is_not_lost(self, file_app, record, monkeypatch):
        calls = interleave(monkeypatch, restock_elsewhere)

        updated = inventory_service.add_stock(record.id, 3)

        # First load saw version 1; the retry re-read the restocked row
        assert calls == [1, 2]
        assert updated.stock_level == 18
        assert updated.version_id == 3
        movements = db.session.query(StockMovement).filter_by(inventory_id=record.id).all()
        assert [(m.type, m.quantity) for m in movements] == [("in", 3)]

    def test_removal_rechecks_stock_after_conflict(self, file_app, record, monkeypatch):
        def sell_out(connection, loaded):
            connection.execute(
                inventory_table.update()
                .where(inventory_table.c.id == loaded.id)
                .values(stock_level=2, version_id=inventory_table.c.version_id + 1)
            )

        interleave(monkeypatch, sell_out)

        with pytest.raises(InsufficientStockError):
            inventory_service.remove_stock(record.id, 5)
        assert db.session.get(Inventory, record.id).stock_level == 2

    def test_persistent_conflict_reraises(self, file_app, record, monkeypatch):
        calls = interleave(monkeypatch, restock_elsewhere, times=3)

        with pytest.raises(StaleDataError):
            inventory_service.add_stock(record.id, 3)

        assert len(calls) == 3
        db.session.expire_all()
        assert db.session.get(Inventory, record.id).stock_level == 25
        assert db.session.query(StockMovement).count() == 0


class TestAlertConflicts:

    def test_concurrent_check_does_not_duplicate_alert(self, file_app, record, monkeypatch):
        record.stock_level = 0
        db.session.commit()

        def raise_alert_elsewhere(connection, loaded):
            connection.execute(alerts_table.insert().values(
                inventory_id=loaded.id,
                type="out_of_stock",
                severity="critical",
                message="Product is out of stock",
                created_at=NOW,
                resolved=False,
            ))
            connection.execute(
                inventory_table.update()
                .where(inventory_table.c.id == loaded.id)
                .values(alerts_changed_at=NOW, version_id=inventory_table.c.version_id + 1)
            )

        interleave(monkeypatch, raise_alert_elsewhere)

        created = inventory_service.check_alerts(record.id, now=NOW)

        assert created == []
        open_alerts = db.session.query(InventoryAlert).filter_by(
            inventory_id=record.id, type="out_of_stock", resolved=False,
        ).count()
        assert open_alerts == 1
