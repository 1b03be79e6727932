# Overview: Pytest coverage for product health scoring, alternatives and catalog maintenance.

import pytest

from smartshop.errors import NotFoundError
from smartshop.models import Inventory
from smartshop.services import catalog_service
from smartshop.services.catalog_service import calculate_health_score
from smartshop.validation import ConflictError, ValidationError


class TestHealthScore:
    """Score starts at 10 and moves with sugar, sodium, fat, protein and fiber."""

    def test_no_nutrition_scores_five(self):
        assert calculate_health_score(None) == 5
        assert calculate_health_score({}) == 5
        assert calculate_health_score({"sugar": None, "fat": None}) == 5

    def test_penalties(self):
        assert calculate_health_score({"sugar": 12}) == 8
        assert calculate_health_score({"sugar": 12, "sodium": 600}) == 6
        assert calculate_health_score({"sugar": 12, "sodium": 600, "fat": 25}) == 5

    def test_thresholds_are_exclusive(self):
        assert calculate_health_score({"sugar": 10, "sodium": 500, "fat": 20}) == 10

    def test_bonuses_capped_at_ten(self):
        assert calculate_health_score({"protein": 15, "fiber": 8}) == 10
        assert calculate_health_score({"sugar": 30, "protein": 15, "fiber": 8}) == 10

    def test_all_penalties_and_bonuses(self):
        assert calculate_health_score({"sugar": 50, "sodium": 2000, "fat": 60}) == 5
        assert calculate_health_score({"sugar": 50, "sodium": 2000, "fat": 60, "protein": 12, "fiber": 6}) == 7


class TestProductWrites:

    def test_create_scores_nutrition(self, db_session, seller):
        product = catalog_service.create_product(
            seller_id=seller.id,
            patch={"name": "Cola", "price_cents": 150, "category": "beverages", "sugar": 35},
        )
        assert product.health_score == 8

    def test_create_requires_name_and_price(self, db_session, seller):
        with pytest.raises(ValidationError):
            catalog_service.create_product(seller_id=seller.id, patch={"name": "Cola"})

    def test_create_rejects_unknown_category(self, db_session, seller):
        with pytest.raises(ValidationError):
            catalog_service.create_product(
                seller_id=seller.id, patch={"name": "Cola", "price_cents": 150, "category": "toys"},
            )

    def test_duplicate_barcode(self, db_session, seller, make_product):
        make_product(barcode="8901234567890")
        with pytest.raises(ConflictError):
            catalog_service.create_product(
                seller_id=seller.id, patch={"name": "Copy", "price_cents": 100, "barcode": "8901234567890"},
            )

    def test_update_recomputes_score_when_nutrition_changes(self, db_session, seller, make_product):
        product = make_product(health_score=10)
        product = catalog_service.update_product(
            product_id=product.id, seller_id=seller.id, patch={"sodium": 900},
        )
        assert product.health_score == 8

    def test_update_leaves_score_when_nutrition_untouched(self, db_session, seller, make_product):
        product = make_product(health_score=7)
        product = catalog_service.update_product(
            product_id=product.id, seller_id=seller.id, patch={"price_cents": 999},
        )
        assert product.health_score == 7
        assert product.price_cents == 999

    def test_update_by_other_seller(self, db_session, other_seller, make_product):
        product = make_product()
        with pytest.raises(NotFoundError):
            catalog_service.update_product(product_id=product.id, seller_id=other_seller.id, patch={"name": "X"})

    def test_deactivate_hides_product_and_inventory(self, db_session, seller, make_product, make_inventory):
        product = make_product()
        record = make_inventory(product)

        catalog_service.deactivate_product(product_id=product.id, seller_id=seller.id)

        with pytest.raises(NotFoundError):
            catalog_service.get_product(product.id)
        assert db_session.get(Inventory, record.id).is_active is False

    def test_record_view(self, db_session, make_product):
        product = make_product()
        catalog_service.record_view(product.id)
        assert catalog_service.record_view(product.id).views == 2

    def test_lookup_by_barcode(self, db_session, make_product):
        product = make_product(barcode="1234")
        assert catalog_service.get_by_barcode(" 1234 ").id == product.id
        with pytest.raises(NotFoundError):
            catalog_service.get_by_barcode("9999")


class TestAlternatives:

    @pytest.fixture
    def shelf(self, make_product):
        base = make_product(name="Base", price_cents=500, health_score=5, purchase_count=1)
        others = [
            make_product(name="Healthy", price_cents=700, health_score=9, purchase_count=3),
            make_product(name="Cheap", price_cents=200, health_score=4, purchase_count=10),
            make_product(name="Cheaper", price_cents=100, health_score=6, purchase_count=0),
            make_product(name="Fancy", price_cents=900, health_score=8, purchase_count=7),
            make_product(name="Hidden", price_cents=50, health_score=10, is_active=False),
            make_product(name="Soda", price_cents=50, health_score=10, category="beverages"),
        ]
        return base, others

    def test_healthier(self, db_session, shelf):
        base, _ = shelf
        names = [p.name for p in catalog_service.find_alternatives(base.id, "healthier")]
        assert names == ["Healthy", "Fancy", "Cheaper"]

    def test_cheaper(self, db_session, shelf):
        base, _ = shelf
        names = [p.name for p in catalog_service.find_alternatives(base.id, "cheaper")]
        assert names == ["Cheaper", "Cheap"]

    def test_popular(self, db_session, shelf):
        base, _ = shelf
        names = [p.name for p in catalog_service.find_alternatives(base.id, "popular")]
        assert names == ["Cheap", "Fancy", "Healthy"]

    def test_default_limit_is_three(self, db_session, shelf):
        base, _ = shelf
        results = catalog_service.find_alternatives(base.id)
        assert len(results) == 3
        assert base.id not in {p.id for p in results}

    def test_unknown_product_has_no_alternatives(self, db_session):
        assert catalog_service.find_alternatives(424242) == []

    def test_add_alternative_updates_existing_link(self, db_session, shelf):
        base, others = shelf
        first = catalog_service.add_alternative(product_id=base.id, alternative_id=others[0].id, kind="healthier")
        second = catalog_service.add_alternative(
            product_id=base.id, alternative_id=others[0].id, kind="healthier", reason="less sugar",
        )
        assert first.id == second.id
        assert second.reason == "less sugar"

    def test_add_alternative_rejects_self_link(self, db_session, shelf):
        base, _ = shelf
        with pytest.raises(ValidationError):
            catalog_service.add_alternative(product_id=base.id, alternative_id=base.id, kind="cheaper")


class TestCatalogMaintenance:

    def test_refresh_health_scores(self, db_session, make_product):
        stale = make_product(name="Chips", category="snacks", sodium=800, health_score=10)
        make_product(name="Plain", category="snacks", health_score=5)
        make_product(name="Phone", category="electronics", sugar=40, health_score=10)

        assert catalog_service.refresh_health_scores() == 1
        assert catalog_service.get_product(stale.id).health_score == 8

    def test_category_slug(self, db_session):
        category = catalog_service.create_category(name="Baby Care")
        assert category.slug == "baby-care"

    def test_list_products_filters_and_paginates(self, db_session, make_product):
        for i in range(5):
            make_product(name=f"Item {i}", price_cents=100 * (i + 1))
        page = catalog_service.list_products(max_price_cents=400, sort="price_desc", per_page=2, page=1)

        assert page["total"] == 4
        assert page["pages"] == 2
        assert [p["price_cents"] for p in page["items"]] == [400, 300]

    def test_list_products_rejects_unknown_sort(self, db_session):
        with pytest.raises(ValidationError):
            catalog_service.list_products(sort="random")
