# Overview: Flask API routes for supplier purchase orders.

"""
Purchase Order API Routes

Admin only. Recording, editing and deleting an order moves stock, so every
write goes through the purchase order service in a single transaction.
"""

from flask import Blueprint, request, g

from ..decorators import require_auth, require_role, ROLE_ADMIN
from ..errors import PosError
from ..services import purchase_order_service
from .responses import ok, fail, internal_error


purchase_orders_bp = Blueprint("purchase_orders", __name__, url_prefix="/api/purchase-orders")


@purchase_orders_bp.post("/")
@require_auth
@require_role(ROLE_ADMIN)
def create_purchase_order_route():
    """
    Record received goods.

    Request body:
    {
        "supplier": "Acme Textiles",
        "date": "2026-10-01",
        "notes": "Autumn restock",            (optional)
        "items": [
            {"product_id": 1, "variation_combination_id": 7, "quantity": 12, "unit_cost_cents": 900}
        ]
    }

    Returns:
        201: Purchase order with its lines
        400: Missing supplier/date or invalid items
        404: Product or variation combination not found
    """
    try:
        order = purchase_order_service.create_purchase_order(
            request.get_json(silent=True) or {},
            created_by_id=g.principal.user_id,
            created_by_name=g.principal.display_name,
        )
        return ok("Purchase order created successfully", status_code=201, purchase_order=order.to_dict())
    except PosError as e:
        return fail(e)
    except Exception:
        return internal_error("Failed to create purchase order")


@purchase_orders_bp.get("/")
@require_auth
@require_role(ROLE_ADMIN)
def list_purchase_orders_route():
    try:
        result = purchase_order_service.list_purchase_orders(
            page=request.args.get("page"),
            limit=request.args.get("limit"),
            supplier=request.args.get("supplier"),
            start_date=request.args.get("start_date"),
            end_date=request.args.get("end_date"),
        )
        return ok("Purchase orders retrieved", **result)
    except PosError as e:
        return fail(e)
    except Exception:
        return internal_error("Failed to list purchase orders")


@purchase_orders_bp.get("/<int:order_id>")
@require_auth
@require_role(ROLE_ADMIN)
def get_purchase_order_route(order_id: int):
    try:
        order = purchase_order_service.get_purchase_order(order_id)
        return ok("Purchase order retrieved", purchase_order=order.to_dict())
    except PosError as e:
        return fail(e)
    except Exception:
        return internal_error("Failed to load purchase order")


@purchase_orders_bp.put("/<int:order_id>")
@require_auth
@require_role(ROLE_ADMIN)
def update_purchase_order_route(order_id: int):
    try:
        order = purchase_order_service.update_purchase_order(order_id, request.get_json(silent=True) or {})
        return ok("Purchase order updated successfully", purchase_order=order.to_dict())
    except PosError as e:
        return fail(e)
    except Exception:
        return internal_error("Failed to update purchase order")


@purchase_orders_bp.delete("/<int:order_id>")
@require_auth
@require_role(ROLE_ADMIN)
def delete_purchase_order_route(order_id: int):
    try:
        purchase_order_service.delete_purchase_order(order_id)
        return ok("Purchase order deleted successfully")
    except PosError as e:
        return fail(e)
    except Exception:
        return internal_error("Failed to delete purchase order")
