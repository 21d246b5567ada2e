# Overview: JSON response helpers shared by all blueprints.

from flask import jsonify, current_app

from ..errors import PosError


def ok(message: str, *, status_code: int = 200, **payload):
    return jsonify({"success": True, "message": message, **payload}), status_code


def fail(exc: PosError):
    return jsonify(exc.to_dict()), exc.status_code


def internal_error(log_message: str):
    current_app.logger.exception(log_message)
    return jsonify({
        "success": False,
        "message": "Internal server error",
        "error": "INTERNAL_ERROR",
    }), 500


def query_bool(value: str | None) -> bool | None:
    if value is None or value == "":
        return None
    return value.strip().lower() in {"1", "true", "yes", "on"}
