# Overview: Health endpoint reporting database connectivity and invoice counter state.

import time

from flask import Blueprint, current_app, jsonify
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from ..errors import PosError
from ..extensions import db, media
from ..services import sequence_service
from ..time_utils import utcnow, to_utc_z

system_bp = Blueprint("system", __name__)


def check_database_health() -> dict:
    start_time = time.time()
    try:
        db.session.execute(text("SELECT 1"))
        elapsed_ms = (time.time() - start_time) * 1000
        return {"status": "healthy", "latency_ms": round(elapsed_ms, 2)}
    except SQLAlchemyError:
        elapsed_ms = (time.time() - start_time) * 1000
        current_app.logger.exception("Database health check failed")
        db.session.rollback()
        return {
            "status": "unhealthy",
            "latency_ms": round(elapsed_ms, 2),
            "error": "Database error",
        }


def check_counter_health() -> dict:
    try:
        return {"status": "healthy", **sequence_service.get_counter_status()}
    except (PosError, SQLAlchemyError):
        current_app.logger.warning("Invoice counter health check failed", exc_info=True)
        db.session.rollback()
        return {"status": "unhealthy", "error": "Invoice counter unavailable"}


@system_bp.get("/health")
def health():
    database = check_database_health()
    counter = check_counter_health() if database["status"] == "healthy" else {"status": "skipped"}
    healthy = database["status"] == "healthy" and counter["status"] == "healthy"

    return jsonify({
        "success": healthy,
        "message": "ok" if healthy else "degraded",
        "checked_at": to_utc_z(utcnow()),
        "checks": {
            "database": database,
            "invoice_counter": counter,
            "media": {"status": "configured" if media.enabled else "disabled"},
        },
    }), 200 if healthy else 503
