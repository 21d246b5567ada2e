# Overview: Flask API routes for store-wide settings.

from flask import Blueprint, request

from ..decorators import require_auth, require_role, ROLE_ADMIN
from ..errors import PosError
from ..services import settings_service
from .responses import ok, fail, internal_error


settings_bp = Blueprint("settings", __name__, url_prefix="/api/settings")


@settings_bp.get("/")
@require_auth
def get_settings_route():
    try:
        return ok("Settings retrieved", settings=settings_service.get_store_settings().to_dict())
    except PosError as e:
        return fail(e)
    except Exception:
        return internal_error("Failed to load settings")


@settings_bp.put("/")
@require_auth
@require_role(ROLE_ADMIN)
def update_settings_route():
    """Update store_name, currency or override_out_of_stock. Requires: admin"""
    try:
        settings = settings_service.update_store_settings(request.get_json(silent=True) or {})
        return ok("Settings updated successfully", settings=settings.to_dict())
    except PosError as e:
        return fail(e)
    except Exception:
        return internal_error("Failed to update settings")
