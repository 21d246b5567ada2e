# Overview: Flask API routes for the product catalog.

from flask import Blueprint, request

from ..decorators import require_auth, require_role, ROLE_ADMIN, ROLE_MANAGER
from ..errors import PosError
from ..services import products_service
from .responses import ok, fail, internal_error, query_bool


products_bp = Blueprint("products", __name__, url_prefix="/api/products")


@products_bp.post("/")
@require_auth
@require_role(ROLE_ADMIN, ROLE_MANAGER)
def create_product_route():
    try:
        product = products_service.create_product(request.get_json(silent=True) or {})
        return ok("Product created successfully", status_code=201, product=product.to_dict())
    except PosError as e:
        return fail(e)
    except Exception:
        return internal_error("Failed to create product")


@products_bp.get("/")
@require_auth
def list_products_route():
    try:
        result = products_service.list_products(
            page=request.args.get("page"),
            limit=request.args.get("limit"),
            search=request.args.get("search"),
            category=request.args.get("category"),
            include_inactive=bool(query_bool(request.args.get("include_inactive"))),
        )
        return ok("Products retrieved", **result)
    except PosError as e:
        return fail(e)
    except Exception:
        return internal_error("Failed to list products")


@products_bp.get("/<int:product_id>")
@require_auth
def get_product_route(product_id: int):
    try:
        return ok("Product retrieved", product=products_service.get_product(product_id).to_dict())
    except PosError as e:
        return fail(e)
    except Exception:
        return internal_error("Failed to load product")


@products_bp.post("/stock")
@require_auth
@require_role(ROLE_ADMIN, ROLE_MANAGER)
def adjust_stock_route():
    """
    Manual stock correction (stock count, damage, shrinkage).

    Request body:
    {
        "items": [
            {"product_id": 1, "delta": -2},
            {"product_id": 3, "variation_combination_id": 9, "delta": 5}
        ]
    }

    Returns:
        200: Resulting stock level per item
        400: Invalid items / stock would go negative
        404: Product or variation combination not found
    """
    try:
        levels = products_service.adjust_stock_levels(request.get_json(silent=True) or {})
        return ok("Stock updated successfully", stock_levels=levels)
    except PosError as e:
        return fail(e)
    except Exception:
        return internal_error("Failed to update stock")
