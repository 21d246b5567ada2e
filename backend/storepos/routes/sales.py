# Overview: Flask API routes for sales and the invoice counter; parses input and returns JSON responses.

"""Sales API routes"""

from flask import Blueprint, request, g

from ..decorators import require_auth, require_role, ROLE_ADMIN
from ..errors import PosError
from ..services import sales_service, sequence_service
from .responses import ok, fail, internal_error


sales_bp = Blueprint("sales", __name__, url_prefix="/api/sales")


@sales_bp.post("/")
@require_auth
def create_sale_route():
    """
    Create and commit a sale.

    Request body:
    {
        "items": [
            {"product_id": 1, "quantity": 2, "unit_price_cents": 1000, "total_price_cents": 2000,
             "variation_combination_id": 7, "variations": {"Color": "Red", "Size": "L"}}
        ],
        "customer_id": 3,                (optional)
        "subtotal_cents": 2000,
        "discount_cents": 0,
        "tax_cents": 0,
        "total_cents": 2000,
        "loyalty_points_used": 0,
        "payments": [{"method": "cash", "amount_cents": 2000}]
    }

    Returns:
        201: Sale created (invoice number assigned)
        400: Validation failed / insufficient stock
        404: Product, variation or customer not found
        503: Invoice counter or storage unavailable (safe to retry)
    """
    try:
        sale = sales_service.create_sale(
            request.get_json(silent=True) or {},
            cashier_id=g.principal.user_id,
            cashier_name=g.principal.display_name,
        )
        return ok("Sale created successfully", status_code=201, sale=sales_service.serialize_sale(sale))

    except PosError as e:
        return fail(e)
    except Exception:
        return internal_error("Failed to create sale")


@sales_bp.get("/")
@require_auth
def list_sales_route():
    try:
        result = sales_service.list_sales(
            page=request.args.get("page"),
            limit=request.args.get("limit"),
            search=request.args.get("search"),
            date=request.args.get("date"),
            status=request.args.get("status"),
        )
        return ok("Sales retrieved", **result)

    except PosError as e:
        return fail(e)
    except Exception:
        return internal_error("Failed to list sales")


@sales_bp.get("/<int:sale_id>")
@require_auth
def get_sale_route(sale_id: int):
    """Sale with lines enriched by live variation details."""
    try:
        return ok("Sale retrieved", sale=sales_service.get_sale(sale_id))
    except PosError as e:
        return fail(e)
    except Exception:
        return internal_error("Failed to load sale")


@sales_bp.delete("/<int:sale_id>")
@require_auth
@require_role(ROLE_ADMIN)
def delete_sale_route(sale_id: int):
    """
    Delete a sale and restore its net stock.

    Requires: admin
    """
    try:
        sales_service.delete_sale(sale_id)
        return ok("Sale deleted and stock restored")
    except PosError as e:
        return fail(e)
    except Exception:
        return internal_error("Failed to delete sale")


# =============================================================================
# INVOICE COUNTER
# =============================================================================

@sales_bp.get("/invoice-counter/status")
@require_auth
def invoice_counter_status_route():
    """Preview of the next invoice number (not reserved)."""
    try:
        return ok("Invoice counter status", **sequence_service.get_counter_status())
    except PosError as e:
        return fail(e)
    except Exception:
        return internal_error("Failed to read invoice counter")


@sales_bp.post("/invoice-counter/init")
@require_auth
@require_role(ROLE_ADMIN)
def init_invoice_counter_route():
    """Seed the invoice counter from existing sales (idempotent). Requires: admin"""
    try:
        current = sequence_service.initialize_counter()
        return ok("Invoice counter initialized", current_sequence=current)
    except PosError as e:
        return fail(e)
    except Exception:
        return internal_error("Failed to initialize invoice counter")
