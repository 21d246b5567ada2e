# Overview: Flask API routes for product categories and expense categories.

"""
Both category kinds share one set of handlers; only the service-level
CategoryKind differs. Stats in every response are freshly recomputed.
"""

from flask import Blueprint, request, g

from ..decorators import require_auth, require_role, ROLE_ADMIN, ROLE_MANAGER
from ..errors import PosError
from ..services import category_service
from ..services.category_service import CategoryKind, EXPENSE_CATEGORIES, PRODUCT_CATEGORIES
from .responses import ok, fail, internal_error, query_bool


categories_bp = Blueprint("categories", __name__, url_prefix="/api/categories")
expense_categories_bp = Blueprint("expense_categories", __name__, url_prefix="/api/expense-categories")


def _register(bp: Blueprint, kind: CategoryKind) -> None:
    noun = kind.label

    @bp.post("/")
    @require_auth
    @require_role(ROLE_ADMIN, ROLE_MANAGER)
    def create_route():
        try:
            category = category_service.create_category(
                kind,
                request.get_json(silent=True) or {},
                created_by_id=g.principal.user_id,
                created_by_name=g.principal.display_name,
            )
            return ok(f"{noun} created successfully", status_code=201, category=category.to_dict())
        except PosError as e:
            return fail(e)
        except Exception:
            return internal_error(f"Failed to create {noun.lower()}")

    @bp.get("/")
    @require_auth
    def list_route():
        try:
            result = category_service.list_categories(
                kind,
                page=request.args.get("page"),
                limit=request.args.get("limit"),
                search=request.args.get("search"),
                is_active=query_bool(request.args.get("is_active")),
            )
            return ok(f"{noun} list retrieved", **result)
        except PosError as e:
            return fail(e)
        except Exception:
            return internal_error(f"Failed to list {noun.lower()} records")

    @bp.get("/<int:category_id>")
    @require_auth
    def get_route(category_id: int):
        try:
            category = category_service.get_category(kind, category_id)
            return ok(f"{noun} retrieved", category=category.to_dict())
        except PosError as e:
            return fail(e)
        except Exception:
            return internal_error(f"Failed to load {noun.lower()}")

    @bp.put("/<int:category_id>")
    @require_auth
    @require_role(ROLE_ADMIN, ROLE_MANAGER)
    def update_route(category_id: int):
        try:
            category = category_service.update_category(kind, category_id, request.get_json(silent=True) or {})
            return ok(f"{noun} updated successfully", category=category.to_dict())
        except PosError as e:
            return fail(e)
        except Exception:
            return internal_error(f"Failed to update {noun.lower()}")

    @bp.delete("/<int:category_id>")
    @require_auth
    @require_role(ROLE_ADMIN)
    def delete_route(category_id: int):
        try:
            category_service.delete_category(kind, category_id)
            return ok(f"{noun} deleted successfully")
        except PosError as e:
            return fail(e)
        except Exception:
            return internal_error(f"Failed to delete {noun.lower()}")


_register(categories_bp, PRODUCT_CATEGORIES)
_register(expense_categories_bp, EXPENSE_CATEGORIES)
