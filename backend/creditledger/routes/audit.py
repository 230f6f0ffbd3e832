# Overview: Flask API route for reading the audit trail. There is no write or delete endpoint.

from flask import Blueprint, jsonify, request

from ..decorators import ledger_endpoint, with_actor
from ..services import audit_service


audit_bp = Blueprint("audit", __name__, url_prefix="/api/audit-logs")


@audit_bp.get("")
@with_actor
@ledger_endpoint
def list_audit_logs_route():
    """
    Query parameters:
    - severity: LOW, MEDIUM, HIGH, CRITICAL
    - branch
    - limit (default 100, max 1000)
    """
    limit = min(max(request.args.get("limit", 100, type=int), 1), 1000)
    entries = audit_service.list_audit_logs(
        severity=request.args.get("severity"),
        branch=request.args.get("branch"),
        limit=limit,
    )
    return jsonify({"items": [e.to_dict() for e in entries], "count": len(entries)})
