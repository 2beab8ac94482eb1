# backend/app/routes/system.py
"""
System health and metrics endpoints.
"""

import time
from flask import Blueprint, current_app, jsonify
from ..extensions import db
from ..models import Location, LegacyTransferRow, TransferTransaction
from ..services import metrics
from app.time_utils import utcnow

system_bp = Blueprint("system", __name__, url_prefix="/api")


def check_database_health() -> dict:
    """
    Check database connectivity and that the core tables answer.

    Returns dict with status and details.
    """
    start_time = time.time()
    try:
        location_count = db.session.query(Location).count()
        transfer_count = db.session.query(TransferTransaction).count()

        elapsed_ms = (time.time() - start_time) * 1000

        return {
            "status": "healthy",
            "latency_ms": round(elapsed_ms, 2),
            "details": {
                "locations": location_count,
                "transfers": transfer_count,
            }
        }
    except Exception:
        db.session.rollback()
        elapsed_ms = (time.time() - start_time) * 1000
        current_app.logger.exception("Database health check failed")
        return {
            "status": "unhealthy",
            "latency_ms": round(elapsed_ms, 2),
            "error": "Database error"
        }


def check_mirror_health() -> dict:
    """
    Legacy mirror is best effort: failures degrade, never fail, the service.
    """
    start_time = time.time()
    try:
        mirrored_rows = db.session.query(LegacyTransferRow).count()
        failures = metrics.get("mirror_failures")
        elapsed_ms = (time.time() - start_time) * 1000
        return {
            "status": "degraded" if failures else "healthy",
            "latency_ms": round(elapsed_ms, 2),
            "details": {
                "mirrored_rows": mirrored_rows,
                "mirror_failures": failures,
            }
        }
    except Exception:
        db.session.rollback()
        elapsed_ms = (time.time() - start_time) * 1000
        current_app.logger.warning("Legacy mirror health check failed", exc_info=True)
        return {
            "status": "degraded",
            "latency_ms": round(elapsed_ms, 2),
            "error": "Legacy mirror table unavailable"
        }


@system_bp.get("/health")
def health():
    """
    Health check endpoint.

    Returns:
    - 200: healthy or degraded
    - 503: database unhealthy
    """
    start_time = time.time()

    database_health = check_database_health()
    mirror_health = check_mirror_health()

    all_checks = [database_health, mirror_health]
    unhealthy_count = sum(1 for check in all_checks if check["status"] == "unhealthy")
    degraded_count = sum(1 for check in all_checks if check["status"] == "degraded")

    if unhealthy_count > 0:
        overall_status = "unhealthy"
        http_status = 503
    elif degraded_count > 0:
        overall_status = "degraded"
        http_status = 200  # Degraded is still operational
    else:
        overall_status = "healthy"
        http_status = 200

    total_elapsed_ms = (time.time() - start_time) * 1000

    response = {
        "status": overall_status,
        "timestamp": utcnow().isoformat() + "Z",
        "total_latency_ms": round(total_elapsed_ms, 2),
        "checks": {
            "database": database_health,
            "legacy_mirror": mirror_health,
        }
    }

    return response, http_status


@system_bp.get("/metrics")
def get_metrics():
    """Process-local operational counters."""
    return jsonify(metrics.snapshot()), 200
