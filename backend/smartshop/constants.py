# Overview: Closed vocabularies shared by models, services and routes.

USER_ROLES = ("customer", "seller", "admin")

PRODUCT_CATEGORIES = (
    "groceries",
    "dairy",
    "beverages",
    "snacks",
    "personal_care",
    "household",
    "electronics",
    "clothing",
    "health",
    "baby_care",
    "pet_supplies",
    "other",
)

PRODUCT_UNITS = ("kg", "g", "l", "ml", "piece", "pack", "dozen")

ALTERNATIVE_TYPES = ("healthier", "cheaper", "popular")

# Categories whose health score is refreshed by the nightly job
HEALTH_SCORED_CATEGORIES = ("groceries", "dairy", "beverages", "snacks")

MOVEMENT_TYPES = ("in", "out", "adjustment", "return", "damage")

ALERT_TYPES = ("low_stock", "out_of_stock", "expiring_soon", "expired", "overstock")

ALERT_SEVERITIES = ("low", "medium", "high", "critical")

# Display order for alert lists: lower rank sorts first.
SEVERITY_RANK = {"critical": 0, "high": 1, "medium": 2, "low": 3}

# Fraction of max_stock_level at which a record counts as overstocked
OVERSTOCK_RATIO = 0.9
EXPIRY_WARNING_DAYS = 30
EXPIRY_URGENT_DAYS = 7

COUPON_TYPES = ("percentage", "fixed")

ORDER_STATUSES = ("pending", "confirmed", "processing", "completed", "cancelled")

ORDER_STATUS_TRANSITIONS = {
    "pending": {"confirmed", "cancelled"},
    "confirmed": {"processing", "cancelled"},
    "processing": {"completed", "cancelled"},
    "completed": set(),
    "cancelled": set(),
}

PAYMENT_METHODS = ("online", "cash", "card", "upi")

PAYMENT_STATUSES = ("pending", "completed", "failed", "refunded")

PAYMENT_STATUS_TRANSITIONS = {
    "pending": {"completed", "failed"},
    "completed": {"refunded"},
    "failed": {"pending"},
    "refunded": set(),
}

ANALYTICS_EVENT_TYPES = ("sale", "view", "search", "cart_add", "cart_remove")

SALES_TIME_RANGES = ("day", "week", "month", "year")

DEMAND_HISTORY_DAYS = 90

HEALTH_INSIGHTS_DAYS = 30
HEALTH_INSIGHTS_ORDERS = 10

# Suggested swaps for a category whose purchases score poorly
HEALTHIER_CHOICES = {
    "snacks": ("Nuts", "Fresh fruits", "Yogurt", "Whole grain crackers"),
    "beverages": ("Water", "Green tea", "Fresh juice", "Coconut water"),
    "dairy": ("Low-fat milk", "Greek yogurt", "Cottage cheese"),
    "groceries": ("Brown rice", "Quinoa", "Whole wheat flour", "Olive oil"),
}
GENERAL_HEALTHY_CHOICES = ("Whole grains", "Fresh fruits", "Vegetables", "Lean proteins")

# Seller performance score thresholds (money in cents)
PERFORMANCE_HIGH_REVENUE_CENTS = 10_000_000
PERFORMANCE_GOOD_REVENUE_CENTS = 5_000_000
PERFORMANCE_RETENTION_TARGET = 30
PERFORMANCE_LOW_STOCK_LIMIT = 5
PERFORMANCE_TARGET_ORDER_VALUE_CENTS = 50_000
