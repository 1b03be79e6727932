# backend/smartshop/routes/analytics.py
"""
Analytics routes: seller sales dashboard, performance scorecard and demand
predictions; customer spending, savings and health reports.
"""
from flask import Blueprint, g, request

from ..errors import ShopError
from ..time_utils import parse_iso_datetime
from ..validation import ValidationError
from ..decorators import require_role, require_user
from ..services import analytics_service
from .responses import error_response, int_arg, internal_error, ok


analytics_bp = Blueprint("analytics", __name__, url_prefix="/api/analytics")


def _date_arg(name: str):
    raw = request.args.get(name)
    if not raw:
        return None
    try:
        return parse_iso_datetime(raw)
    except ValueError:
        raise ValidationError(f"{name} must be an ISO-8601 datetime")


@analytics_bp.get("/seller/sales")
@require_user
@require_role("seller")
def seller_sales_route():
    try:
        report = analytics_service.sales_analytics(
            seller_id=g.current_user.id,
            time_range=request.args.get("time_range", "month"),
            product_id=int_arg(request.args, "product_id"),
        )
        return ok(analytics=report)
    except (ShopError, ValidationError) as e:
        return error_response(e)
    except Exception:
        return internal_error("build sales analytics")


@analytics_bp.get("/seller/predictions")
@require_user
@require_role("seller")
def seller_predictions_route():
    try:
        return ok(**analytics_service.seller_demand_predictions(seller_id=g.current_user.id))
    except Exception:
        return internal_error("load demand predictions")


@analytics_bp.get("/customer/spending")
@require_user
def customer_spending_route():
    try:
        report = analytics_service.customer_spending(
            user_id=g.current_user.id,
            start=_date_arg("start"),
            end=_date_arg("end"),
        )
        return ok(analytics=report)
    except (ShopError, ValidationError) as e:
        return error_response(e)
    except Exception:
        return internal_error("build spending analytics")


@analytics_bp.get("/customer/savings")
@require_user
def customer_savings_route():
    try:
        return ok(analytics=analytics_service.savings_report(user_id=g.current_user.id))
    except Exception:
        return internal_error("build savings report")


@analytics_bp.get("/seller/performance")
@require_user
@require_role("seller")
def seller_performance_route():
    try:
        report = analytics_service.seller_performance(
            seller_id=g.current_user.id,
            time_range=request.args.get("time_range", "month"),
        )
        return ok(analytics=report)
    except (ShopError, ValidationError) as e:
        return error_response(e)
    except Exception:
        return internal_error("build performance metrics")


@analytics_bp.get("/customer/insights")
@require_user
def customer_insights_route():
    try:
        return ok(analytics=analytics_service.health_insights(user_id=g.current_user.id))
    except Exception:
        return internal_error("build health insights")
