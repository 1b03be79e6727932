# Overview: Pytest coverage for sales analytics, seller performance, health insights, demand prediction and retention.

from datetime import datetime, timedelta

import pytest

from smartshop.errors import NotFoundError
from smartshop.models import AnalyticsEvent, Product, User
from smartshop.services import analytics_service, cart_service, maintenance_service, order_service
from smartshop.services.analytics_service import (
    calculate_performance_score,
    compute_demand_prediction,
    performance_recommendations,
    period_start,
    record_event,
)
from smartshop.validation import ValidationError


NOW = datetime(2024, 6, 12, 12, 0, 0)  # a Wednesday


def _sale(db_session, product, when, revenue_cents, units):
    record_event(
        event_type="sale",
        seller_id=product.seller_id,
        product_id=product.id,
        category=product.category,
        revenue_cents=revenue_cents,
        units_sold=units,
        occurred_at=when,
    )
    db_session.commit()


class TestPeriods:

    @pytest.mark.parametrize("time_range, expected", [
        ("day", datetime(2024, 6, 12)),
        ("week", datetime(2024, 6, 10)),
        ("month", datetime(2024, 6, 1)),
        ("year", datetime(2024, 1, 1)),
    ])
    def test_period_start(self, time_range, expected):
        assert period_start(time_range, NOW) == expected

    def test_unknown_range(self):
        with pytest.raises(ValidationError):
            period_start("decade", NOW)


class TestSalesAnalytics:

    def test_dashboard(self, db_session, seller, make_product):
        milk = make_product(name="Milk")
        chips = make_product(name="Chips", category="snacks")
        _sale(db_session, milk, datetime(2024, 6, 3, 10), 1000, 2)
        _sale(db_session, chips, datetime(2024, 6, 10, 18), 3000, 1)
        # Previous period of equal length
        _sale(db_session, milk, datetime(2024, 5, 25, 9), 2000, 1)

        report = analytics_service.sales_analytics(seller_id=seller.id, time_range="month", now=NOW)

        assert [(d["date"], d["revenue_cents"]) for d in report["sales"]] == [
            ("2024-06-03", 1000),
            ("2024-06-10", 3000),
        ]
        assert [p["name"] for p in report["top_products"]] == ["Chips", "Milk"]
        assert [c["category"] for c in report["category_performance"]] == ["snacks", "dairy"]
        assert report["growth"] == {"revenue": 100.0, "orders": 100.0, "units": 200.0}
        assert report["summary"] == {
            "total_revenue_cents": 4000,
            "total_orders": 2,
            "total_units": 3,
            "average_order_value_cents": 2000,
        }

    def test_growth_is_zero_without_previous_sales(self, db_session, seller, make_product):
        _sale(db_session, make_product(), datetime(2024, 6, 11), 500, 1)
        report = analytics_service.sales_analytics(seller_id=seller.id, time_range="week", now=NOW)
        assert report["growth"]["revenue"] == 0.0

    def test_other_sellers_sales_excluded(self, db_session, seller, other_seller, make_product):
        _sale(db_session, make_product(seller_id=other_seller.id), datetime(2024, 6, 11), 500, 1)
        report = analytics_service.sales_analytics(seller_id=seller.id, now=NOW)
        assert report["sales"] == []
        assert report["summary"]["average_order_value_cents"] == 0


class TestCustomerReports:

    def test_spending_counts_completed_orders_only(self, db_session, customer, make_product):
        product = make_product(price_cents=400, original_price_cents=500)
        cart_service.add_item(customer.id, product.id, 2)
        done = order_service.create_order_from_cart(user_id=customer.id, payment_method="cash")
        for status in ("confirmed", "processing", "completed"):
            order_service.update_order_status(done.id, status)

        cart_service.add_item(customer.id, product.id, 1)
        order_service.create_order_from_cart(user_id=customer.id, payment_method="cash")

        report = analytics_service.customer_spending(user_id=customer.id)
        assert report["order_count"] == 1
        assert report["total_spent_cents"] == 800
        assert report["total_savings_cents"] == 200
        assert report["category_breakdown"] == [{"category": "dairy", "amount_cents": 800}]

    def test_savings_report_skips_cancelled(self, db_session, customer, make_product):
        product = make_product(price_cents=400, original_price_cents=500)
        cart_service.add_item(customer.id, product.id, 1)
        kept = order_service.create_order_from_cart(user_id=customer.id, payment_method="cash")
        cart_service.add_item(customer.id, product.id, 3)
        dropped = order_service.create_order_from_cart(user_id=customer.id, payment_method="cash")
        order_service.update_order_status(dropped.id, "cancelled", reason="ordered twice")

        report = analytics_service.savings_report(user_id=customer.id)
        assert report["total_savings_cents"] == 100
        assert [o["order_number"] for o in report["orders"]] == [kept.order_number]


def _completed_order(customer, product, quantity):
    cart_service.add_item(customer.id, product.id, quantity)
    order = order_service.create_order_from_cart(user_id=customer.id, payment_method="cash")
    for status in ("confirmed", "processing", "completed"):
        order = order_service.update_order_status(order.id, status)
    return order


class TestHealthInsights:

    def test_weighted_scores_and_recommendations(self, db_session, customer, make_product):
        chips = make_product(name="Chips", category="snacks", price_cents=300, health_score=3)
        milk = make_product(name="Milk", category="dairy", price_cents=500, health_score=8)
        cart_service.add_item(customer.id, chips.id, 2)
        cart_service.add_item(customer.id, milk.id, 1)
        order = order_service.create_order_from_cart(user_id=customer.id, payment_method="cash")
        for status in ("confirmed", "processing", "completed"):
            order_service.update_order_status(order.id, status)

        # Pending orders are not counted
        cart_service.add_item(customer.id, milk.id, 5)
        order_service.create_order_from_cart(user_id=customer.id, payment_method="cash")

        report = analytics_service.health_insights(user_id=customer.id)

        assert report["orders_considered"] == 1
        assert report["average_health_score"] == 4.7
        assert report["health_trend"] == "needs_attention"
        assert report["category_health"] == [
            {"category": "dairy", "average_score": 8.0, "units": 1},
            {"category": "snacks", "average_score": 3.0, "units": 2},
        ]
        assert [r["title"] for r in report["recommendations"]] == [
            "Health Score Below Target",
            "Improve snacks choices",
        ]
        assert report["recommendations"][1]["alternatives"] == [
            "Nuts", "Fresh fruits", "Yogurt", "Whole grain crackers",
        ]

    def test_old_orders_and_unscored_products_skipped(self, db_session, customer, make_product):
        fresh = make_product(name="Kale", category="groceries", health_score=9)
        unscored = make_product(name="Gift Card", category="other", health_score=0)
        stale = _completed_order(customer, make_product(name="Soda", category="beverages", health_score=1), 4)
        stale.created_at = stale.created_at - timedelta(days=45)
        db_session.commit()
        _completed_order(customer, fresh, 1)
        _completed_order(customer, unscored, 3)

        report = analytics_service.health_insights(user_id=customer.id)

        assert report["orders_considered"] == 2
        assert report["average_health_score"] == 9.0
        assert report["health_trend"] == "improving"
        assert report["recommendations"] == []

    def test_no_orders(self, db_session, customer):
        report = analytics_service.health_insights(user_id=customer.id)
        assert report["average_health_score"] == 0.0
        assert report["category_health"] == []
        assert report["recommendations"] == []


class TestSellerPerformance:

    def test_scorecard(self, db_session, seller, customer, make_product, make_inventory):
        shopper = User(name="Pat Shopper", email="pat@test.local", role="customer", is_active=True)
        db_session.add(shopper)
        db_session.commit()

        milk = make_product(name="Milk", price_cents=10000, views=10)
        chips = make_product(name="Chips", category="snacks", price_cents=500)
        _completed_order(customer, milk, 2)
        _completed_order(customer, milk, 1)
        _completed_order(shopper, chips, 3)
        db_session.query(AnalyticsEvent).update({"created_at": datetime(2024, 6, 10)})
        db_session.commit()

        make_inventory(milk, stock_level=0)
        make_inventory(chips, stock_level=50)

        report = analytics_service.seller_performance(seller_id=seller.id, time_range="month", now=NOW)

        assert report["sales_metrics"] == {
            "total_revenue_cents": 31500,
            "total_orders": 3,
            "total_units": 6,
            "average_order_value_cents": 10500,
        }
        assert report["inventory_metrics"] == {
            "total_products": 2,
            "low_stock_items": 1,
            "out_of_stock_items": 1,
            "total_stock_units": 50,
            "total_stock_value_cents": 25000,
        }
        assert report["customer_metrics"] == {
            "unique_customers": 2,
            "repeat_customers": 1,
            "customer_retention_rate": 50.0,
            "average_customer_value_cents": 15750,
        }
        assert [(p["name"], p["revenue_cents"], p["conversion_rate"]) for p in report["product_performance"]] == [
            ("Milk", 30000, 30.0),
            ("Chips", 1500, 0.0),
        ]
        assert report["performance_score"] == 60
        assert [r["type"] for r in report["recommendations"]] == ["sales"]

    def test_other_sellers_excluded(self, db_session, seller, other_seller, customer, make_product, make_inventory):
        theirs = make_product(seller_id=other_seller.id)
        _completed_order(customer, theirs, 1)
        make_inventory(theirs, stock_level=0)

        report = analytics_service.seller_performance(seller_id=seller.id)

        assert report["sales_metrics"]["total_orders"] == 0
        assert report["inventory_metrics"]["total_products"] == 0
        assert report["product_performance"] == []
        assert report["performance_score"] == 70

    def test_score_is_capped(self):
        sales = {"total_revenue_cents": 20_000_000, "average_order_value_cents": 90_000}
        inventory = {"low_stock_items": 0, "out_of_stock_items": 0}
        customers = {"customer_retention_rate": 45.0}
        assert calculate_performance_score(sales, inventory, customers) == 100

        sales["total_revenue_cents"] = 6_000_000
        inventory["out_of_stock_items"] = 2
        customers["customer_retention_rate"] = 30.0
        assert calculate_performance_score(sales, inventory, customers) == 70

    def test_restock_recommendation(self):
        recommendations = performance_recommendations(
            {"average_order_value_cents": 60_000},
            {"low_stock_items": 6},
        )
        assert recommendations == [{
            "type": "inventory",
            "priority": "high",
            "message": "Multiple items are running low on stock. Consider restocking soon.",
            "action": "View low stock items",
        }]

    def test_unknown_range(self, db_session, seller):
        with pytest.raises(ValidationError):
            analytics_service.seller_performance(seller_id=seller.id, time_range="decade")


class TestDemandPrediction:

    def test_average_rounded_up(self):
        assert compute_demand_prediction({"2024-06-01": 3, "2024-06-02": 4}) == {
            "daily": 4,
            "weekly": 25,
            "monthly": 105,
        }

    def test_no_history(self):
        assert compute_demand_prediction({}) is None

    def test_predict_from_sales_events(self, db_session, make_product):
        product = make_product()
        _sale(db_session, product, NOW - timedelta(days=1), 0, 10)
        _sale(db_session, product, NOW - timedelta(days=2), 0, 30)
        # Outside the 90-day window
        _sale(db_session, product, NOW - timedelta(days=120), 0, 500)

        prediction = analytics_service.predict_product_demand(product.id, now=NOW)
        assert prediction == {"daily": 20, "weekly": 140, "monthly": 600}

    def test_predict_unknown_product(self, db_session):
        with pytest.raises(NotFoundError):
            analytics_service.predict_product_demand(424242, now=NOW)

    def test_refresh_and_recommend(self, db_session, seller, make_product):
        busy = make_product(name="Bread")
        make_product(name="Caviar")
        _sale(db_session, busy, NOW - timedelta(days=1), 0, 20)

        assert analytics_service.refresh_demand_predictions(now=NOW) == 1
        assert db_session.get(Product, busy.id).predicted_weekly_demand == 140

        result = analytics_service.seller_demand_predictions(seller_id=seller.id)
        assert [p["name"] for p in result["predictions"]] == ["Bread"]
        assert result["recommendations"] == [{
            "product_id": busy.id,
            "action": "increase_stock",
            "reason": "High predicted demand",
            "suggested_stock": 168,
        }]


class TestRetention:

    def test_cleanup_deletes_old_events(self, db_session, make_product):
        product = make_product()
        _sale(db_session, product, NOW - timedelta(days=100), 100, 1)
        _sale(db_session, product, NOW - timedelta(days=10), 100, 1)

        assert maintenance_service.cleanup_analytics(retention_days=90, now=NOW) == 1
        assert db_session.query(AnalyticsEvent).count() == 1

    def test_negative_retention_rejected(self, db_session):
        with pytest.raises(ValidationError):
            maintenance_service.cleanup_analytics(retention_days=-1)

    def test_unknown_event_type(self, db_session):
        with pytest.raises(ValueError):
            record_event(event_type="refund")
