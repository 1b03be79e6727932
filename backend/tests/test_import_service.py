# Overview: Pytest coverage for spreadsheet catalog import.

import pytest

from smartshop.errors import NotFoundError
from smartshop.models import Inventory, Product, StockMovement
from smartshop.services.import_service import import_csv, import_rows, normalize_row


class TestNormalizeRow:

    def test_title_case_headers(self):
        row = normalize_row({
            "Product Name": " Whole Milk ",
            "Category": "Dairy",
            "Price": "₹1,045.50",
            "Barcode": "890100",
            "Stock": "20",
            "Min Stock": "5",
            "Max Stock": "60",
        })
        assert row == {
            "name": "Whole Milk",
            "category": "dairy",
            "price_cents": 104550,
            "barcode": "890100",
            "stock_level": 20,
            "min_stock_level": 5,
            "max_stock_level": 60,
        }

    def test_alternate_headers_and_defaults(self):
        row = normalize_row({"name": "Soap", "price": "Rs.30", "minStock": "2", "category": "Personal Care"})
        assert row["price_cents"] == 3000
        assert row["min_stock_level"] == 2
        assert row["max_stock_level"] == 100
        assert row["stock_level"] == 0
        assert row["category"] == "personal_care"
        assert row["barcode"] is None

    def test_unknown_category_becomes_other(self):
        assert normalize_row({"name": "Widget", "category": "gadgets"})["category"] == "other"


class TestImportRows:

    def test_creates_products_and_stock(self, db_session, seller):
        results = import_rows(seller_id=seller.id, rows=[
            {"Product Name": "Milk", "Category": "dairy", "Price": "45.50", "Barcode": "111", "Stock": "20"},
            {"Product Name": "Bread", "Category": "groceries", "Price": "30", "Stock": "0"},
        ])

        assert results == {"success": 2, "failed": 0, "errors": []}
        milk = db_session.query(Product).filter_by(barcode="111").one()
        assert milk.price_cents == 4550
        record = db_session.query(Inventory).filter_by(product_id=milk.id).one()
        assert record.stock_level == 20
        movement = db_session.query(StockMovement).filter_by(inventory_id=record.id).one()
        assert (movement.type, movement.quantity, movement.reason) == ("adjustment", 20, "catalog import")

    def test_reimport_updates_by_barcode(self, db_session, seller):
        import_rows(seller_id=seller.id, rows=[{"name": "Milk", "price": "45", "barcode": "111", "stock": "20"}])
        import_rows(seller_id=seller.id, rows=[{"name": "Milk 1L", "price": "48", "barcode": "111", "stock": "15"}])

        product = db_session.query(Product).filter_by(barcode="111").one()
        assert product.name == "Milk 1L"
        assert product.price_cents == 4800
        record = db_session.query(Inventory).filter_by(product_id=product.id).one()
        assert record.stock_level == 15
        quantities = [m.quantity for m in db_session.query(StockMovement).order_by(StockMovement.id)]
        assert quantities == [20, -5]

    def test_rows_without_barcode_match_by_name(self, db_session, seller):
        import_rows(seller_id=seller.id, rows=[{"name": "Eggs", "price": "6", "stock": "12"}])
        import_rows(seller_id=seller.id, rows=[{"name": "Eggs", "price": "7", "stock": "12"}])

        assert db_session.query(Product).filter_by(name="Eggs").count() == 1
        # Unchanged stock writes no movement
        assert db_session.query(StockMovement).count() == 1

    def test_bad_rows_reported_good_rows_kept(self, db_session, seller):
        results = import_rows(seller_id=seller.id, rows=[
            {"Product Name": "", "Price": "10"},
            {"Product Name": "Rice", "Price": "abc"},
            {"Product Name": "Salt", "Price": "20", "Stock": "-4"},
            {"Product Name": "Sugar", "Price": "40", "Stock": "8"},
        ])

        assert results["success"] == 1
        assert results["failed"] == 3
        assert [e["row"] for e in results["errors"]] == ["Unknown", "Rice", "Salt"]
        assert results["errors"][0]["error"] == "name is required"
        assert db_session.query(Product).filter_by(name="Sugar").count() == 1

    def test_barcode_owned_by_other_seller(self, db_session, seller, other_seller, make_product):
        make_product(name="Theirs", barcode="222", seller_id=other_seller.id)

        results = import_rows(seller_id=seller.id, rows=[
            {"name": "Mine", "price": "10", "barcode": "222"},
            {"name": "Fine", "price": "10", "barcode": "333"},
        ])

        assert results["success"] == 1
        assert results["errors"] == [{"row": "Mine", "error": "barcode is already in use"}]
        assert db_session.query(Product).filter_by(barcode="333").one().seller_id == seller.id

    def test_unknown_seller(self, db_session):
        with pytest.raises(NotFoundError):
            import_rows(seller_id=424242, rows=[])


class TestImportCsv:

    def test_reads_file_with_bom(self, db_session, seller, tmp_path):
        path = tmp_path / "products.csv"
        path.write_text(
            "Product Name,Category,Price,Barcode,Stock\n"
            "Green Tea,beverages,120.00,444,30\n",
            encoding="utf-8-sig",
        )

        results = import_csv(str(path), seller_id=seller.id)

        assert results["success"] == 1
        product = db_session.query(Product).filter_by(barcode="444").one()
        assert product.category == "beverages"
        assert product.price_cents == 12000
