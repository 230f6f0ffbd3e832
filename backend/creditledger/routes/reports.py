# Overview: Flask API routes for reporting; read-only views over the ledger.

from flask import Blueprint, jsonify, request

from ..decorators import ledger_endpoint, with_actor
from ..services import reconciliation_service, reporting_service
from ..validation import optional_datetime, require_branch


reports_bp = Blueprint("reports", __name__, url_prefix="/api/reports")


@reports_bp.get("/scorecard")
@with_actor
@ledger_endpoint
def scorecard_route():
    rows = reporting_service.compute_branch_scorecard()
    return jsonify({"items": rows, "leader": rows[0]["branch"] if rows else None})


@reports_bp.get("/dashboard")
@with_actor
@ledger_endpoint
def dashboard_route():
    branch = request.args.get("branch")
    if branch and branch.upper() != "ALL":
        branch = require_branch(branch)
    else:
        branch = None
    return jsonify(reporting_service.dashboard_metrics(branch))


@reports_bp.get("/aging")
@with_actor
@ledger_endpoint
def aging_route():
    as_of = optional_datetime(request.args.get("as_of"), "as_of")
    return jsonify(reporting_service.aging_report(as_of))


@reports_bp.get("/fraud-alerts")
@with_actor
@ledger_endpoint
def fraud_alerts_route():
    limit = min(max(request.args.get("limit", 6, type=int), 1), 100)
    return jsonify({"items": reporting_service.fraud_alerts(limit)})


@reports_bp.get("/consistency")
@with_actor
@ledger_endpoint
def consistency_route():
    return jsonify(reconciliation_service.check_consistency())


@reports_bp.get("/analytics")
@with_actor
@ledger_endpoint
def analytics_route():
    """Profitability, top buyers, credit watchlist, item movement and payment mix."""
    return jsonify(reporting_service.analytics_summary())
