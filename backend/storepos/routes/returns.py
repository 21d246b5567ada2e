# Overview: Flask API routes for returns against historical sales.

"""
Return Processing API Routes

DESIGN:
- A return always references an existing sale
- Lines match sale lines exactly on product + variation combination
- Refunds are prorated from the original line totals
"""

from flask import Blueprint, request, g

from ..decorators import require_auth
from ..errors import PosError
from ..services import return_service
from ..validation import ValidationError, coerce_int
from .responses import ok, fail, internal_error


returns_bp = Blueprint("returns", __name__, url_prefix="/api/returns")


@returns_bp.post("/")
@require_auth
def create_return_route():
    """
    Record a return.

    Request body:
    {
        "sale_id": 12,
        "items": [
            {"product_id": 1, "variation_combination_id": 7, "quantity": 1, "reason": "defect"}
        ],
        "reason": "Customer not satisfied",   (optional)
        "refund_method": "cash"               (optional, default: cash)
    }

    Returns:
        201: Return summary
        400: Line not in sale / over-return / invalid input
        404: Sale not found
    """
    try:
        data = request.get_json(silent=True) or {}
        if data.get("sale_id") in (None, ""):
            raise ValidationError("sale_id required")

        summary = return_service.create_return(
            coerce_int(data.get("sale_id"), "sale_id"),
            data,
            processed_by_id=g.principal.user_id,
            processed_by_name=g.principal.display_name,
        )
        return ok("Return processed successfully", status_code=201, **summary)

    except PosError as e:
        return fail(e)
    except Exception:
        return internal_error("Failed to process return")


@returns_bp.get("/")
@require_auth
def list_returns_route():
    try:
        result = return_service.list_returns(
            page=request.args.get("page"),
            limit=request.args.get("limit"),
            start_date=request.args.get("start_date"),
            end_date=request.args.get("end_date"),
        )
        return ok("Returns retrieved", **result)
    except PosError as e:
        return fail(e)
    except Exception:
        return internal_error("Failed to list returns")


@returns_bp.get("/summary")
@require_auth
def return_summary_route():
    try:
        result = return_service.get_return_summary(
            start_date=request.args.get("start_date"),
            end_date=request.args.get("end_date"),
        )
        return ok("Return summary retrieved", **result)
    except PosError as e:
        return fail(e)
    except Exception:
        return internal_error("Failed to load return summary")


@returns_bp.get("/<int:sale_id>")
@require_auth
def get_return_details_route(sale_id: int):
    try:
        return ok("Return details retrieved", **return_service.get_return_details(sale_id))
    except PosError as e:
        return fail(e)
    except Exception:
        return internal_error("Failed to load return details")
