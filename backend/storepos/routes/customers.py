# Overview: Flask API routes for customers.

from flask import Blueprint, request

from ..decorators import require_auth
from ..errors import PosError
from ..services import customer_service
from .responses import ok, fail, internal_error


customers_bp = Blueprint("customers", __name__, url_prefix="/api/customers")


@customers_bp.post("/")
@require_auth
def create_customer_route():
    try:
        customer = customer_service.create_customer(request.get_json(silent=True) or {})
        return ok("Customer created successfully", status_code=201, customer=customer.to_dict())
    except PosError as e:
        return fail(e)
    except Exception:
        return internal_error("Failed to create customer")


@customers_bp.get("/<int:customer_id>")
@require_auth
def get_customer_route(customer_id: int):
    try:
        return ok("Customer retrieved", customer=customer_service.get_customer(customer_id).to_dict())
    except PosError as e:
        return fail(e)
    except Exception:
        return internal_error("Failed to load customer")
