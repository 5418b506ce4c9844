# backend/retailops/routes/system.py
"""
System health and version endpoints.
"""

import sys
import time

from flask import Blueprint, current_app

from ..extensions import db
from ..models import InventoryBucket, SessionToken, Shop, Retailer
from ..services.cache_service import get_cache
from ..time_utils import to_utc_z, utcnow

system_bp = Blueprint("system", __name__, url_prefix="/api")


def check_database_health() -> dict:
    """
    Check database connectivity and basic operations.

    Returns dict with status and details.
    """
    start_time = time.time()
    try:
        details = {
            "shops": db.session.query(Shop).count(),
            "retailers": db.session.query(Retailer).count(),
            "inventoryBuckets": db.session.query(InventoryBucket).count(),
            "activeSessions": db.session.query(SessionToken).filter_by(is_revoked=False).count(),
        }
        elapsed_ms = (time.time() - start_time) * 1000
        return {
            "status": "healthy",
            "latencyMs": round(elapsed_ms, 2),
            "details": details,
        }
    except Exception:
        elapsed_ms = (time.time() - start_time) * 1000
        current_app.logger.exception("Database health check failed")
        return {
            "status": "unhealthy",
            "latencyMs": round(elapsed_ms, 2),
            "error": "Database error",
        }


@system_bp.get("/health")
def health():
    """
    Health check endpoint.

    Returns:
    - 200: Database reachable
    - 503: Database unhealthy
    """
    start_time = time.time()
    database_health = check_database_health()
    http_status = 200 if database_health["status"] == "healthy" else 503

    return {
        "status": database_health["status"],
        "timestamp": to_utc_z(utcnow()),
        "totalLatencyMs": round((time.time() - start_time) * 1000, 2),
        "checks": {
            "database": database_health,
            "cache": {"status": "healthy", **get_cache().stats()},
        },
    }, http_status


@system_bp.get("/version")
def version():
    """Non-sensitive deployment information."""
    return {
        "apiVersion": "1.0.0",
        "environment": "production" if not current_app.debug else "development",
        "pythonVersion": sys.version.split()[0],
        "serverTime": to_utc_z(utcnow()),
    }
