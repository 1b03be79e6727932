# Overview: Service-layer operations for analytics; event recording, dashboards, health insights and demand prediction.

from __future__ import annotations

import math
from datetime import datetime, timedelta

from sqlalchemy import case, func

from ..constants import (
    ANALYTICS_EVENT_TYPES,
    DEMAND_HISTORY_DAYS,
    GENERAL_HEALTHY_CHOICES,
    HEALTH_INSIGHTS_DAYS,
    HEALTH_INSIGHTS_ORDERS,
    HEALTHIER_CHOICES,
    PERFORMANCE_GOOD_REVENUE_CENTS,
    PERFORMANCE_HIGH_REVENUE_CENTS,
    PERFORMANCE_LOW_STOCK_LIMIT,
    PERFORMANCE_RETENTION_TARGET,
    PERFORMANCE_TARGET_ORDER_VALUE_CENTS,
    SALES_TIME_RANGES,
)
from ..errors import NotFoundError
from ..extensions import db
from ..models import AnalyticsEvent, Inventory, Order, Product
from ..time_utils import utcnow, to_utc_z
from ..validation import ValidationError


def record_event(
    *,
    event_type: str,
    user_id: int | None = None,
    seller_id: int | None = None,
    product_id: int | None = None,
    order_id: int | None = None,
    category: str | None = None,
    revenue_cents: int = 0,
    units_sold: int = 0,
    discount_cents: int = 0,
    search_query: str | None = None,
    search_results: int | None = None,
    session_id: str | None = None,
    occurred_at: datetime | None = None,
    commit: bool = False,
) -> AnalyticsEvent:
    """
    Append an analytics fact.

    By default the event joins the caller's transaction (flush only), so it is
    committed together with the change it describes.
    """
    if event_type not in ANALYTICS_EVENT_TYPES:
        raise ValueError(f"unknown analytics event type: {event_type}")

    event = AnalyticsEvent(
        type=event_type,
        user_id=user_id,
        seller_id=seller_id,
        product_id=product_id,
        order_id=order_id,
        category=category,
        revenue_cents=revenue_cents,
        units_sold=units_sold,
        discount_cents=discount_cents,
        search_query=search_query,
        search_results=search_results,
        session_id=session_id,
        created_at=occurred_at or utcnow(),
    )
    db.session.add(event)
    if commit:
        db.session.commit()
    else:
        db.session.flush()
    return event


def period_start(time_range: str, now: datetime) -> datetime:
    """Start of the current day, ISO week (Monday), month or year."""
    day = now.replace(hour=0, minute=0, second=0, microsecond=0)
    if time_range == "day":
        return day
    if time_range == "week":
        return day - timedelta(days=day.weekday())
    if time_range == "month":
        return day.replace(day=1)
    if time_range == "year":
        return day.replace(month=1, day=1)
    raise ValidationError(f"time_range must be one of: {', '.join(SALES_TIME_RANGES)}")


def _growth(current: int, previous: int) -> float:
    if previous <= 0:
        return 0.0
    return round((current - previous) / previous * 100, 1)


def _sale_totals(seller_id: int, start: datetime, end: datetime) -> dict:
    row = db.session.query(
        func.coalesce(func.sum(AnalyticsEvent.revenue_cents), 0).label("revenue"),
        func.count(AnalyticsEvent.id).label("orders"),
        func.coalesce(func.sum(AnalyticsEvent.units_sold), 0).label("units"),
    ).filter(
        AnalyticsEvent.seller_id == seller_id,
        AnalyticsEvent.type == "sale",
        AnalyticsEvent.created_at >= start,
        AnalyticsEvent.created_at <= end,
    ).one()
    return {"revenue": int(row.revenue or 0), "orders": int(row.orders or 0), "units": int(row.units or 0)}


def sales_analytics(*, seller_id: int, time_range: str = "month", product_id: int | None = None,
                    now: datetime | None = None) -> dict:
    """
    Seller dashboard: daily series, top products, category split and growth
    against the previous period of equal length.
    """
    end = now or utcnow()
    start = period_start(time_range, end)

    base = db.session.query(AnalyticsEvent).filter(
        AnalyticsEvent.seller_id == seller_id,
        AnalyticsEvent.type == "sale",
        AnalyticsEvent.created_at >= start,
        AnalyticsEvent.created_at <= end,
    )
    if product_id is not None:
        base = base.filter(AnalyticsEvent.product_id == product_id)

    day_expr = func.strftime("%Y-%m-%d", AnalyticsEvent.created_at)
    daily = base.with_entities(
        day_expr.label("date"),
        func.coalesce(func.sum(AnalyticsEvent.revenue_cents), 0).label("revenue"),
        func.coalesce(func.sum(AnalyticsEvent.units_sold), 0).label("units"),
        func.count(AnalyticsEvent.id).label("orders"),
    ).group_by("date").order_by("date").all()

    top = base.join(Product, Product.id == AnalyticsEvent.product_id).with_entities(
        Product.id,
        Product.name,
        Product.category,
        func.coalesce(func.sum(AnalyticsEvent.revenue_cents), 0).label("revenue"),
        func.coalesce(func.sum(AnalyticsEvent.units_sold), 0).label("units"),
    ).group_by(Product.id, Product.name, Product.category).order_by(
        func.sum(AnalyticsEvent.revenue_cents).desc()
    ).limit(10).all()

    by_category = base.with_entities(
        AnalyticsEvent.category,
        func.coalesce(func.sum(AnalyticsEvent.revenue_cents), 0).label("revenue"),
        func.coalesce(func.sum(AnalyticsEvent.units_sold), 0).label("units"),
    ).group_by(AnalyticsEvent.category).order_by(func.sum(AnalyticsEvent.revenue_cents).desc()).all()

    previous_start = start - (end - start)
    current = _sale_totals(seller_id, start, end)
    previous = _sale_totals(seller_id, previous_start, start)

    series = [
        {
            "date": row.date,
            "revenue_cents": int(row.revenue or 0),
            "units_sold": int(row.units or 0),
            "orders": int(row.orders or 0),
        }
        for row in daily
    ]
    total_revenue = sum(r["revenue_cents"] for r in series)
    total_orders = sum(r["orders"] for r in series)

    return {
        "time_range": time_range,
        "start": to_utc_z(start),
        "end": to_utc_z(end),
        "sales": series,
        "top_products": [
            {
                "product_id": row.id,
                "name": row.name,
                "category": row.category,
                "revenue_cents": int(row.revenue or 0),
                "units_sold": int(row.units or 0),
            }
            for row in top
        ],
        "category_performance": [
            {"category": row.category, "revenue_cents": int(row.revenue or 0), "units_sold": int(row.units or 0)}
            for row in by_category
        ],
        "growth": {
            "revenue": _growth(current["revenue"], previous["revenue"]),
            "orders": _growth(current["orders"], previous["orders"]),
            "units": _growth(current["units"], previous["units"]),
        },
        "summary": {
            "total_revenue_cents": total_revenue,
            "total_orders": total_orders,
            "total_units": sum(r["units_sold"] for r in series),
            "average_order_value_cents": round(total_revenue / total_orders) if total_orders else 0,
        },
    }


def customer_spending(*, user_id: int, start: datetime | None = None, end: datetime | None = None) -> dict:
    """Spending totals and category breakdown over the user's completed orders."""
    q = db.session.query(Order).filter(Order.user_id == user_id, Order.status == "completed")
    if start is not None:
        q = q.filter(Order.created_at >= start)
    if end is not None:
        q = q.filter(Order.created_at <= end)
    orders = q.order_by(Order.created_at.asc()).all()

    total = sum(o.total_amount_cents for o in orders)
    categories: dict[str, int] = {}
    for order in orders:
        for item in order.items:
            category = item.product.category if item.product else "other"
            categories[category] = categories.get(category, 0) + item.price_cents * item.quantity

    return {
        "user_id": user_id,
        "total_spent_cents": total,
        "order_count": len(orders),
        "average_order_value_cents": round(total / len(orders)) if orders else 0,
        "total_savings_cents": sum(o.savings_cents for o in orders),
        "category_breakdown": [
            {"category": name, "amount_cents": amount}
            for name, amount in sorted(categories.items(), key=lambda kv: kv[1], reverse=True)
        ],
    }


def savings_report(*, user_id: int, limit: int = 50) -> dict:
    orders = db.session.query(Order).filter(
        Order.user_id == user_id,
        Order.status != "cancelled",
    ).order_by(Order.created_at.desc(), Order.id.desc()).limit(limit).all()

    return {
        "user_id": user_id,
        "total_savings_cents": sum(o.savings_cents for o in orders),
        "orders": [
            {
                "order_number": o.order_number,
                "savings_cents": o.savings_cents,
                "total_amount_cents": o.total_amount_cents,
                "created_at": to_utc_z(o.created_at),
            }
            for o in orders
        ],
    }


def _health_trend(average: float) -> str:
    if average >= 7:
        return "improving"
    if average >= 5:
        return "stable"
    return "needs_attention"


def health_insights(*, user_id: int, now: datetime | None = None) -> dict:
    """
    Health profile of a customer's recent shopping.

    Looks at the latest HEALTH_INSIGHTS_ORDERS completed orders from the last
    HEALTH_INSIGHTS_DAYS days. Product health scores are weighted by quantity;
    lines whose product is gone or unscored are skipped.
    """
    now = now or utcnow()
    orders = db.session.query(Order).filter(
        Order.user_id == user_id,
        Order.status == "completed",
        Order.created_at >= now - timedelta(days=HEALTH_INSIGHTS_DAYS),
    ).order_by(Order.created_at.desc(), Order.id.desc()).limit(HEALTH_INSIGHTS_ORDERS).all()

    weighted = units = 0
    by_category: dict[str, list[int]] = {}
    for order in orders:
        for item in order.items:
            product = item.product
            if product is None or not product.health_score:
                continue
            weighted += product.health_score * item.quantity
            units += item.quantity
            bucket = by_category.setdefault(product.category, [0, 0])
            bucket[0] += product.health_score * item.quantity
            bucket[1] += item.quantity

    average = round(weighted / units, 1) if units else 0.0
    categories = [
        {"category": name, "average_score": round(score / count, 1), "units": count}
        for name, (score, count) in sorted(by_category.items())
    ]

    recommendations = []
    if units and average < 6:
        recommendations.append({
            "type": "warning",
            "title": "Health Score Below Target",
            "message": "Your recent purchases have a low average health score. "
                       "Consider choosing healthier alternatives.",
            "alternatives": list(GENERAL_HEALTHY_CHOICES),
        })
    for entry in categories:
        if entry["average_score"] < 5:
            label = entry["category"].replace("_", " ")
            recommendations.append({
                "type": "improvement",
                "title": f"Improve {label} choices",
                "message": f"Your {label} purchases could be healthier.",
                "alternatives": list(HEALTHIER_CHOICES.get(entry["category"], ())),
            })

    return {
        "user_id": user_id,
        "orders_considered": len(orders),
        "average_health_score": average,
        "health_trend": _health_trend(average),
        "category_health": categories,
        "recommendations": recommendations,
    }


def _inventory_metrics(seller_id: int) -> dict:
    row = db.session.query(
        func.count(Inventory.id).label("records"),
        func.coalesce(func.sum(case((Inventory.stock_level <= Inventory.min_stock_level, 1), else_=0)), 0).label("low"),
        func.coalesce(func.sum(case((Inventory.stock_level == 0, 1), else_=0)), 0).label("out"),
        func.coalesce(func.sum(Inventory.stock_level), 0).label("units"),
        func.coalesce(func.sum(Inventory.stock_level * Product.price_cents), 0).label("value"),
    ).join(Product, Product.id == Inventory.product_id).filter(
        Inventory.seller_id == seller_id,
        Inventory.is_active.is_(True),
    ).one()
    return {
        "total_products": int(row.records or 0),
        # includes out-of-stock records, which are also at or below minimum
        "low_stock_items": int(row.low or 0),
        "out_of_stock_items": int(row.out or 0),
        "total_stock_units": int(row.units or 0),
        "total_stock_value_cents": int(row.value or 0),
    }


def _customer_metrics(seller_id: int, start: datetime, end: datetime) -> dict:
    rows = db.session.query(
        AnalyticsEvent.user_id,
        func.count(func.distinct(AnalyticsEvent.order_id)).label("orders"),
        func.coalesce(func.sum(AnalyticsEvent.revenue_cents), 0).label("revenue"),
    ).filter(
        AnalyticsEvent.seller_id == seller_id,
        AnalyticsEvent.type == "sale",
        AnalyticsEvent.user_id.isnot(None),
        AnalyticsEvent.created_at >= start,
        AnalyticsEvent.created_at <= end,
    ).group_by(AnalyticsEvent.user_id).all()

    unique = len(rows)
    repeat = sum(1 for r in rows if r.orders > 1)
    revenue = sum(int(r.revenue or 0) for r in rows)
    return {
        "unique_customers": unique,
        "repeat_customers": repeat,
        "customer_retention_rate": round(repeat / unique * 100, 1) if unique else 0.0,
        "average_customer_value_cents": round(revenue / unique) if unique else 0,
    }


def _product_performance(seller_id: int, start: datetime, end: datetime, limit: int = 20) -> list[dict]:
    revenue = func.coalesce(func.sum(AnalyticsEvent.revenue_cents), 0)
    rows = db.session.query(
        Product.id,
        Product.name,
        Product.category,
        Product.views,
        revenue.label("revenue"),
        func.coalesce(func.sum(AnalyticsEvent.units_sold), 0).label("units"),
    ).join(Product, Product.id == AnalyticsEvent.product_id).filter(
        AnalyticsEvent.seller_id == seller_id,
        AnalyticsEvent.type == "sale",
        AnalyticsEvent.created_at >= start,
        AnalyticsEvent.created_at <= end,
    ).group_by(Product.id, Product.name, Product.category, Product.views).order_by(
        revenue.desc(), Product.id.asc()
    ).limit(limit).all()

    performance = []
    for row in rows:
        units = int(row.units or 0)
        views = int(row.views or 0)
        performance.append({
            "product_id": row.id,
            "name": row.name,
            "category": row.category,
            "revenue_cents": int(row.revenue or 0),
            "units_sold": units,
            "views": views,
            "conversion_rate": round(units / views * 100, 1) if views else 0.0,
        })
    return performance


def calculate_performance_score(sales: dict, inventory: dict, customers: dict) -> int:
    """Base 50, plus revenue, stock health and retention bonuses; capped at 100."""
    score = 50
    if sales["total_revenue_cents"] > PERFORMANCE_HIGH_REVENUE_CENTS:
        score += 20
    elif sales["total_revenue_cents"] > PERFORMANCE_GOOD_REVENUE_CENTS:
        score += 10
    if inventory["low_stock_items"] == 0:
        score += 10
    if inventory["out_of_stock_items"] == 0:
        score += 10
    if customers["customer_retention_rate"] > PERFORMANCE_RETENTION_TARGET:
        score += 10
    return min(100, score)


def performance_recommendations(sales: dict, inventory: dict) -> list[dict]:
    recommendations = []
    if inventory["low_stock_items"] > PERFORMANCE_LOW_STOCK_LIMIT:
        recommendations.append({
            "type": "inventory",
            "priority": "high",
            "message": "Multiple items are running low on stock. Consider restocking soon.",
            "action": "View low stock items",
        })
    if sales["average_order_value_cents"] < PERFORMANCE_TARGET_ORDER_VALUE_CENTS:
        recommendations.append({
            "type": "sales",
            "priority": "medium",
            "message": "Average order value is below target. Consider bundling products or promotions.",
            "action": "Create promotion",
        })
    return recommendations


def seller_performance(*, seller_id: int, time_range: str = "month", now: datetime | None = None) -> dict:
    """
    Seller scorecard for the current period: sales, stock health, customer
    retention, per-product performance, a 0-100 score and suggestions.
    """
    end = now or utcnow()
    start = period_start(time_range, end)

    totals = _sale_totals(seller_id, start, end)
    sales = {
        "total_revenue_cents": totals["revenue"],
        "total_orders": totals["orders"],
        "total_units": totals["units"],
        "average_order_value_cents": round(totals["revenue"] / totals["orders"]) if totals["orders"] else 0,
    }
    inventory = _inventory_metrics(seller_id)
    customers = _customer_metrics(seller_id, start, end)

    return {
        "time_range": time_range,
        "start": to_utc_z(start),
        "end": to_utc_z(end),
        "performance_score": calculate_performance_score(sales, inventory, customers),
        "sales_metrics": sales,
        "inventory_metrics": inventory,
        "customer_metrics": customers,
        "product_performance": _product_performance(seller_id, start, end),
        "recommendations": performance_recommendations(sales, inventory),
    }


def compute_demand_prediction(daily_units: dict[str, int]) -> dict | None:
    """
    Simple moving average over the days that had sales.

    daily_units maps a calendar day to units sold that day. Projections are
    rounded up. Returns None when there is no history.
    """
    if not daily_units:
        return None
    average = sum(daily_units.values()) / len(daily_units)
    return {
        "daily": math.ceil(average),
        "weekly": math.ceil(average * 7),
        "monthly": math.ceil(average * 30),
    }


def _daily_units(product_id: int, since: datetime) -> dict[str, int]:
    rows = db.session.query(
        func.strftime("%Y-%m-%d", AnalyticsEvent.created_at).label("day"),
        func.coalesce(func.sum(AnalyticsEvent.units_sold), 0).label("units"),
    ).filter(
        AnalyticsEvent.product_id == product_id,
        AnalyticsEvent.type == "sale",
        AnalyticsEvent.created_at >= since,
    ).group_by("day").all()
    return {row.day: int(row.units or 0) for row in rows}


def predict_product_demand(product_id: int, *, now: datetime | None = None) -> dict | None:
    product = db.session.get(Product, product_id)
    if product is None:
        raise NotFoundError("Product not found")
    now = now or utcnow()
    prediction = compute_demand_prediction(_daily_units(product_id, now - timedelta(days=DEMAND_HISTORY_DAYS)))
    if prediction is None:
        return None

    product.predicted_daily_demand = prediction["daily"]
    product.predicted_weekly_demand = prediction["weekly"]
    product.predicted_monthly_demand = prediction["monthly"]
    product.demand_updated_at = now
    return prediction


def refresh_demand_predictions(*, now: datetime | None = None) -> int:
    """Recompute predicted demand for every active product with sales history. Returns products updated."""
    now = now or utcnow()
    updated = 0
    product_ids = [pid for (pid,) in db.session.query(Product.id).filter(Product.is_active.is_(True)).all()]
    for product_id in product_ids:
        if predict_product_demand(product_id, now=now) is not None:
            updated += 1
    db.session.commit()
    return updated


def seller_demand_predictions(*, seller_id: int) -> dict:
    """Stored predictions for a seller's products plus restock suggestions."""
    products = db.session.query(Product).filter(
        Product.seller_id == seller_id,
        Product.is_active.is_(True),
        Product.predicted_daily_demand.isnot(None),
    ).order_by(Product.predicted_weekly_demand.desc(), Product.id.asc()).all()

    predictions = []
    recommendations = []
    for product in products:
        predictions.append({
            "product_id": product.id,
            "name": product.name,
            "category": product.category,
            "daily": product.predicted_daily_demand,
            "weekly": product.predicted_weekly_demand,
            "monthly": product.predicted_monthly_demand,
            "updated_at": to_utc_z(product.demand_updated_at),
        })
        if product.predicted_weekly_demand > 100:
            recommendations.append({
                "product_id": product.id,
                "action": "increase_stock",
                "reason": "High predicted demand",
                "suggested_stock": math.ceil(product.predicted_weekly_demand * 1.2),
            })

    return {"predictions": predictions, "recommendations": recommendations}

