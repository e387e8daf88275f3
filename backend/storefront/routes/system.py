# backend/storefront/routes/system.py
"""
System health endpoint.

Reports database connectivity and whether the outbound integrations are
configured, for deployment debugging.
"""

import time
from flask import Blueprint, current_app
from sqlalchemy import text

from ..extensions import db
from ..time_utils import to_utc_z, utcnow

system_bp = Blueprint("system", __name__, url_prefix="/api")


def check_database_health() -> dict:
    """
    Check database connectivity.

    Returns dict with status and details.
    """
    start_time = time.time()
    try:
        db.session.execute(text("SELECT 1"))
        elapsed_ms = (time.time() - start_time) * 1000
        return {"status": "healthy", "latency_ms": round(elapsed_ms, 2)}
    except Exception:
        elapsed_ms = (time.time() - start_time) * 1000
        current_app.logger.exception("Database health check failed")
        return {
            "status": "unhealthy",
            "latency_ms": round(elapsed_ms, 2),
            "error": "Database error",
        }


def check_integrations() -> dict:
    """Configuration presence only; no outbound calls are made."""
    config = current_app.config
    return {
        "payments": bool(config.get("YOCO_SECRET_KEY")),
        "webhooks": bool(config.get("YOCO_WEBHOOK_SECRET")),
        "email": bool(config.get("BREVO_API_KEY") and config.get("BREVO_SENDER_EMAIL")
                      and config.get("BREVO_SENDER_NAME")),
    }


@system_bp.get("/health")
def health():
    """
    Health check endpoint.

    Returns:
    - 200: database reachable (unconfigured integrations report "degraded")
    - 503: database unreachable
    """
    database_health = check_database_health()
    integrations = check_integrations()

    if database_health["status"] == "unhealthy":
        overall_status, http_status = "unhealthy", 503
    elif not all(integrations.values()):
        overall_status, http_status = "degraded", 200
    else:
        overall_status, http_status = "healthy", 200

    return {
        "status": overall_status,
        "timestamp": to_utc_z(utcnow()),
        "checks": {
            "database": database_health,
            "integrations": integrations,
        },
    }, http_status
