# backend/smartshop/routes/products.py
"""
Product catalog routes.

Browsing is public. Creating, editing and removing products requires the
seller role and only touches the caller's own products.
"""
from flask import Blueprint, g, request

from ..errors import ShopError
from ..models import Product
from ..validation import ConflictError, ModelValidationPolicy, ValidationError, validate_payload
from ..decorators import require_role, require_user
from ..services import catalog_service
from ..services.catalog_service import PRODUCT_WRITABLE_FIELDS
from .responses import error_response, int_arg, internal_error, ok


products_bp = Blueprint("products", __name__, url_prefix="/api/products")

PRODUCT_POLICY = ModelValidationPolicy(
    writable_fields=PRODUCT_WRITABLE_FIELDS,
    required_on_create={"name", "price_cents"},
)


def _owner_scope():
    return None if g.current_user.role == "admin" else g.current_user.id


@products_bp.get("")
def list_products_route():
    try:
        result = catalog_service.list_products(
            search=request.args.get("search"),
            category=request.args.get("category"),
            min_price_cents=int_arg(request.args, "min_price_cents"),
            max_price_cents=int_arg(request.args, "max_price_cents"),
            seller_id=int_arg(request.args, "seller_id"),
            sort=request.args.get("sort", "name"),
            page=int_arg(request.args, "page", 1),
            per_page=int_arg(request.args, "per_page", 20),
        )
        return ok(products=result["items"], pagination={
            "page": result["page"],
            "per_page": result["per_page"],
            "total": result["total"],
            "pages": result["pages"],
        })
    except (ShopError, ValidationError) as e:
        return error_response(e)
    except Exception:
        return internal_error("list products")


@products_bp.get("/categories")
def list_categories_route():
    try:
        return ok(categories=catalog_service.list_categories())
    except Exception:
        return internal_error("list categories")


@products_bp.get("/<int:product_id>")
def get_product_route(product_id: int):
    try:
        product = catalog_service.record_view(product_id)
        return ok(product=product.to_dict())
    except ShopError as e:
        return error_response(e)
    except Exception:
        return internal_error("get product")


@products_bp.get("/barcode/<string:code>")
def get_by_barcode_route(code: str):
    try:
        product = catalog_service.get_by_barcode(code)
        return ok(product=product.to_dict())
    except ShopError as e:
        return error_response(e)
    except Exception:
        return internal_error("look up barcode")


@products_bp.get("/<int:product_id>/alternatives")
def alternatives_route(product_id: int):
    kind = request.args.get("type", "all")
    try:
        catalog_service.get_product(product_id)
        alternatives = catalog_service.find_alternatives(product_id, kind=kind)
        return ok(alternatives=[p.to_summary() for p in alternatives])
    except ShopError as e:
        return error_response(e)
    except Exception:
        return internal_error("find alternatives")


@products_bp.post("")
@require_user
@require_role("seller")
def create_product_route():
    payload = request.get_json(silent=True) or {}
    try:
        patch = validate_payload(model=Product, payload=payload, policy=PRODUCT_POLICY, partial=False)
        product = catalog_service.create_product(seller_id=g.current_user.id, patch=patch)
        return ok(201, product=product.to_dict())
    except (ShopError, ValidationError, ConflictError) as e:
        return error_response(e)
    except Exception:
        return internal_error("create product")


@products_bp.put("/<int:product_id>")
@require_user
@require_role("seller")
def update_product_route(product_id: int):
    payload = request.get_json(silent=True) or {}
    try:
        patch = validate_payload(model=Product, payload=payload, policy=PRODUCT_POLICY, partial=True)
        product = catalog_service.update_product(product_id=product_id, seller_id=_owner_scope(), patch=patch)
        return ok(product=product.to_dict())
    except (ShopError, ValidationError, ConflictError) as e:
        return error_response(e)
    except Exception:
        return internal_error("update product")


@products_bp.delete("/<int:product_id>")
@require_user
@require_role("seller")
def delete_product_route(product_id: int):
    try:
        catalog_service.deactivate_product(product_id=product_id, seller_id=_owner_scope())
        return ok(message="Product deleted")
    except ShopError as e:
        return error_response(e)
    except Exception:
        return internal_error("delete product")
