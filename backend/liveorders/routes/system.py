# Overview: Health endpoint covering the database and the delivery queue.
"""
System health endpoint.

Checks the database and reports the in-process delivery queue, for
deployment debugging and uptime probes.
"""

import time
from flask import Blueprint, current_app
from ..extensions import db
from ..models import Tenant
from ..services.delivery_queue import EXTENSION_KEY
from liveorders.time_utils import utcnow

system_bp = Blueprint("system", __name__)


def check_database_health() -> dict:
    """
    Check database connectivity and basic operations.

    Returns dict with status and details.
    """
    start_time = time.time()
    try:
        tenant_count = db.session.query(Tenant).count()
        active_count = db.session.query(Tenant).filter_by(is_active=True).count()

        elapsed_ms = (time.time() - start_time) * 1000

        return {
            "status": "healthy",
            "latency_ms": round(elapsed_ms, 2),
            "details": {
                "tenants": tenant_count,
                "active_tenants": active_count,
            }
        }
    except Exception:
        elapsed_ms = (time.time() - start_time) * 1000
        current_app.logger.exception("Database health check failed")
        return {
            "status": "unhealthy",
            "latency_ms": round(elapsed_ms, 2),
            "error": "Database error"
        }


def check_delivery_queue_health() -> dict:
    queue = current_app.extensions.get(EXTENSION_KEY)
    if queue is None:
        return {"status": "unhealthy", "error": "Delivery queue not initialized"}

    tenants = queue.tenant_ids()
    return {
        "status": "healthy",
        "details": {
            "tenants_with_queue": len(tenants),
            "pending": sum(queue.size(t) for t in tenants),
            "draining": sum(1 for t in tenants if queue.is_draining(t)),
        }
    }


@system_bp.get("/health")
def health():
    """
    Health check endpoint.

    Returns:
    - 200: All systems healthy
    - 503: One or more systems unhealthy
    """
    start_time = time.time()

    database_health = check_database_health()
    queue_health = check_delivery_queue_health()

    all_checks = [database_health, queue_health]
    if any(check["status"] == "unhealthy" for check in all_checks):
        overall_status = "unhealthy"
        http_status = 503
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
            "delivery_queue": queue_health,
        }
    }

    return response, http_status
