# Overview: Principal extraction and role checks for API routes.

from dataclasses import dataclass
from functools import wraps

from flask import request, jsonify, g


ROLE_ADMIN = "admin"
ROLE_MANAGER = "manager"


@dataclass(frozen=True)
class Principal:
    user_id: str
    role: str
    display_name: str


def _principal_from_headers() -> Principal | None:
    user_id = (request.headers.get("X-User-Id") or "").strip()
    role = (request.headers.get("X-User-Role") or "").strip().lower()
    if not user_id or not role:
        return None
    display_name = (request.headers.get("X-User-Name") or "").strip() or user_id
    return Principal(user_id=user_id, role=role, display_name=display_name)


def require_auth(f):
    """
    Require an authenticated principal.

    Credentials are checked upstream by the gateway, which forwards the
    identity as X-User-Id / X-User-Role / X-User-Name. Sets g.principal.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        principal = _principal_from_headers()
        if principal is None:
            return jsonify({
                "success": False,
                "message": "Authentication required",
                "error": "UNAUTHENTICATED",
            }), 401

        g.principal = principal
        return f(*args, **kwargs)

    return decorated_function


def require_role(*roles: str):
    """
    Require g.principal.role to be one of `roles`. Must be applied after
    require_auth.
    """
    allowed = {r.lower() for r in roles}

    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            principal = getattr(g, "principal", None)
            if principal is None:
                return jsonify({
                    "success": False,
                    "message": "Authentication required",
                    "error": "UNAUTHENTICATED",
                }), 401

            if principal.role not in allowed:
                return jsonify({
                    "success": False,
                    "message": "Permission denied",
                    "error": "FORBIDDEN",
                    "details": {"required_roles": sorted(allowed)},
                }), 403

            return f(*args, **kwargs)

        return decorated_function

    return decorator
