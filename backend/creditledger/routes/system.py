# backend/creditledger/routes/system.py
"""
System health, sync status and backup endpoints.
"""

import time

from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import json_body, ledger_endpoint, require_role, with_actor
from ..extensions import db
from ..models import AuditLog, Buyer, Transaction
from ..services import snapshot_service
from ..services.audit_service import ROLE_SUPER_ADMIN
from ..services.sync_service import get_sync_manager
from creditledger.time_utils import utcnow

system_bp = Blueprint("system", __name__)


def check_database_health() -> dict:
    """
    Check database connectivity and basic operations.

    Returns dict with status and details.
    """
    start_time = time.time()
    try:
        buyer_count = db.session.query(Buyer).count()
        transaction_count = db.session.query(Transaction).count()
        audit_count = db.session.query(AuditLog).count()

        elapsed_ms = (time.time() - start_time) * 1000

        return {
            "status": "healthy",
            "latency_ms": round(elapsed_ms, 2),
            "details": {
                "buyers": buyer_count,
                "transactions": transaction_count,
                "audit_logs": audit_count,
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


def check_sync_health() -> dict:
    """
    Sync is best-effort: a failed or pending mirror degrades, never fails, the node.
    """
    manager = get_sync_manager(current_app)
    if manager is None:
        return {"status": "healthy", "details": {"enabled": False}}

    details = {"enabled": True, **manager.describe()}
    if manager.status == "OFFLINE_PENDING" and manager.last_error:
        return {"status": "degraded", "warning": manager.last_error, "details": details}
    return {"status": "healthy", "details": details}


@system_bp.get("/health")
def health():
    """
    Health check endpoint.

    Returns:
    - 200: healthy or degraded (sync offline)
    - 503: database unreachable
    """
    start_time = time.time()

    database_health = check_database_health()
    sync_health = check_sync_health()

    if database_health["status"] == "unhealthy":
        overall_status = "unhealthy"
        http_status = 503
    elif sync_health["status"] == "degraded":
        overall_status = "degraded"
        http_status = 200
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
            "sync": sync_health,
        }
    }

    return response, http_status


@system_bp.get("/api/sync/status")
@with_actor
def sync_status():
    manager = get_sync_manager(current_app)
    if manager is None:
        return jsonify({"enabled": False, "status": "SYNCED"})
    return jsonify({"enabled": True, **manager.describe()})


@system_bp.post("/api/sync/flush")
@with_actor
def sync_flush():
    """Push a snapshot now instead of waiting for the debounce window."""
    manager = get_sync_manager(current_app)
    if manager is None:
        return jsonify({"error": "Sync is disabled"}), 409
    ok = manager.flush()
    return jsonify({"ok": ok, **manager.describe()}), (200 if ok else 503)


@system_bp.get("/api/backup")
@with_actor
@ledger_endpoint
def export_backup():
    return jsonify(snapshot_service.export_backup())


@system_bp.post("/api/backup/import")
@with_actor
@require_role(ROLE_SUPER_ADMIN)
@ledger_endpoint
def import_backup():
    """
    Restore a backup document. Overwrites everything.

    Request body:
    {
        "confirm": true,   // required
        "document": {version, timestamp, source, collections}
    }
    """
    data = json_body()
    counts = snapshot_service.import_backup(
        g.actor,
        data.get("document"),
        confirm=data.get("confirm") is True or request.args.get("confirm") == "true",
    )
    return jsonify({"restored": counts})
