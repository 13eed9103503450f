# backend/fabricstock/routes/system.py
"""
System health and version endpoints.

Health checks cover the database and the auto-completion sweeper; version
information is exposed for deployment debugging.
"""

import sys
import time

from flask import Blueprint, current_app

from ..extensions import db
from ..models import InventoryTransaction, Order, Product
from ..time_utils import to_utc_z, utcnow

system_bp = Blueprint("system", __name__)

API_VERSION = "1.0.0"


def check_database_health() -> dict:
    """
    Check database connectivity and basic operations.

    Returns dict with status and details.
    """
    start_time = time.time()
    try:
        product_count = db.session.query(Product).count()
        order_count = db.session.query(Order).count()
        entry_count = db.session.query(InventoryTransaction).count()

        elapsed_ms = (time.time() - start_time) * 1000

        return {
            "status": "healthy",
            "latency_ms": round(elapsed_ms, 2),
            "details": {
                "products": product_count,
                "orders": order_count,
                "ledger_entries": entry_count,
            }
        }
    except Exception:
        elapsed_ms = (time.time() - start_time) * 1000
        current_app.logger.exception("Database health check failed")
        db.session.rollback()
        return {
            "status": "unhealthy",
            "latency_ms": round(elapsed_ms, 2),
            "error": "Database error"
        }


def check_sweeper_health() -> dict:
    """
    Report whether the background auto-completion sweeper is running.

    A disabled sweeper is healthy (sweeps can be driven by the CLI); an
    enabled sweeper whose thread has died is degraded.
    """
    enabled = bool(current_app.config.get("AUTO_COMPLETE_SWEEPER"))
    sweeper = current_app.extensions.get("fabricstock.sweeper")
    running = bool(sweeper is not None and sweeper.running)

    if enabled and not current_app.testing and not running:
        return {
            "status": "degraded",
            "warning": "Auto-completion sweeper is not running",
            "details": {"enabled": enabled, "running": running},
        }
    return {
        "status": "healthy",
        "details": {
            "enabled": enabled,
            "running": running,
            "window_hours": current_app.config.get("AUTO_COMPLETE_HOURS"),
        },
    }


@system_bp.get("/health")
def health():
    """
    Health check endpoint.

    Returns:
    - 200: healthy or degraded
    - 503: database unreachable
    """
    start_time = time.time()

    database_health = check_database_health()
    sweeper_health = check_sweeper_health()

    all_checks = [database_health, sweeper_health]
    if any(check["status"] == "unhealthy" for check in all_checks):
        overall_status = "unhealthy"
        http_status = 503
    elif any(check["status"] == "degraded" for check in all_checks):
        overall_status = "degraded"
        http_status = 200  # Degraded is still operational
    else:
        overall_status = "healthy"
        http_status = 200

    total_elapsed_ms = (time.time() - start_time) * 1000

    response = {
        "status": overall_status,
        "timestamp": to_utc_z(utcnow()),
        "total_latency_ms": round(total_elapsed_ms, 2),
        "checks": {
            "database": database_health,
            "sweeper": sweeper_health,
        }
    }

    return response, http_status


@system_bp.get("/version")
def version():
    """
    Version endpoint for deployment debugging.

    Does NOT expose secret keys, database credentials or internal paths.
    """
    env = "production" if not current_app.debug else "development"

    return {
        "api_version": API_VERSION,
        "environment": env,
        "python_version": sys.version.split()[0],
        "business_timezone": current_app.config.get("BUSINESS_TIMEZONE"),
        "server_time": to_utc_z(utcnow()),
    }
