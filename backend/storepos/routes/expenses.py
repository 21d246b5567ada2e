# Overview: Flask API routes for expenses, including multipart receipt uploads.

from flask import Blueprint, request, g

from ..decorators import require_auth, require_role, ROLE_ADMIN, ROLE_MANAGER
from ..errors import PosError
from ..services import expense_service
from ..services.media_service import UploadedFile
from .responses import ok, fail, internal_error, query_bool


expenses_bp = Blueprint("expenses", __name__, url_prefix="/api/expenses")


def _payload_and_receipt() -> tuple[dict, UploadedFile | None]:
    """JSON body, or multipart form fields plus an optional `receipt` file."""
    if request.mimetype == "multipart/form-data":
        payload = request.form.to_dict()
        upload = request.files.get("receipt")
        receipt = None
        if upload is not None and upload.filename:
            receipt = UploadedFile(
                filename=upload.filename,
                stream=upload.stream,
                content_type=upload.mimetype,
            )
        return payload, receipt
    return request.get_json(silent=True) or {}, None


@expenses_bp.post("/")
@require_auth
@require_role(ROLE_ADMIN, ROLE_MANAGER)
def create_expense_route():
    try:
        payload, receipt = _payload_and_receipt()
        expense = expense_service.create_expense(
            payload,
            added_by_id=g.principal.user_id,
            added_by_name=g.principal.display_name,
            receipt=receipt,
        )
        return ok("Expense created successfully", status_code=201, expense=expense.to_dict())
    except PosError as e:
        return fail(e)
    except Exception:
        return internal_error("Failed to create expense")


@expenses_bp.get("/")
@require_auth
@require_role(ROLE_ADMIN, ROLE_MANAGER)
def list_expenses_route():
    try:
        result = expense_service.list_expenses(
            page=request.args.get("page"),
            limit=request.args.get("limit"),
            category=request.args.get("category"),
            start_date=request.args.get("start_date"),
            end_date=request.args.get("end_date"),
        )
        return ok("Expenses retrieved", **result)
    except PosError as e:
        return fail(e)
    except Exception:
        return internal_error("Failed to list expenses")


@expenses_bp.get("/<int:expense_id>")
@require_auth
@require_role(ROLE_ADMIN, ROLE_MANAGER)
def get_expense_route(expense_id: int):
    try:
        return ok("Expense retrieved", expense=expense_service.get_expense(expense_id).to_dict())
    except PosError as e:
        return fail(e)
    except Exception:
        return internal_error("Failed to load expense")


@expenses_bp.put("/<int:expense_id>")
@require_auth
@require_role(ROLE_ADMIN, ROLE_MANAGER)
def update_expense_route(expense_id: int):
    """
    Update an expense. A new `receipt` file replaces the old one;
    `remove_receipt=true` clears it. The old media object is deleted
    best-effort after the update commits.
    """
    try:
        payload, receipt = _payload_and_receipt()
        remove_receipt = bool(query_bool(str(payload.pop("remove_receipt", ""))))
        expense = expense_service.update_expense(
            expense_id,
            payload,
            receipt=receipt,
            remove_receipt=remove_receipt,
        )
        return ok("Expense updated successfully", expense=expense.to_dict())
    except PosError as e:
        return fail(e)
    except Exception:
        return internal_error("Failed to update expense")


@expenses_bp.delete("/<int:expense_id>")
@require_auth
@require_role(ROLE_ADMIN, ROLE_MANAGER)
def delete_expense_route(expense_id: int):
    try:
        expense_service.delete_expense(expense_id)
        return ok("Expense deleted successfully")
    except PosError as e:
        return fail(e)
    except Exception:
        return internal_error("Failed to delete expense")
