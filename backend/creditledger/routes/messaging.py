# Overview: Flask API routes for the reminder queue and the outbound message log.

from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import json_body, ledger_endpoint, with_actor
from ..services import messaging_service
from ..validation import ALL_BRANCHES, optional_date


messaging_bp = Blueprint("messaging", __name__, url_prefix="/api/messaging")


@messaging_bp.get("/reminders")
@with_actor
@ledger_endpoint
def reminders_route():
    """Query parameters: branch (defaults to the actor's branch), as_of (YYYY-MM-DD)."""
    branch = request.args.get("branch") or g.actor.branch
    as_of = optional_date(request.args.get("as_of"), "as_of")
    return jsonify({"items": messaging_service.reminder_queue(branch, as_of)})


@messaging_bp.get("/logs")
@with_actor
@ledger_endpoint
def list_logs_route():
    limit = min(max(request.args.get("limit", 100, type=int), 1), 1000)
    return jsonify({"items": [w.to_dict() for w in messaging_service.list_message_logs(limit)]})


@messaging_bp.post("/logs")
@with_actor
@ledger_endpoint
def log_message_route():
    """
    Record that a reminder went out.

    Request body:
    {"recipient_name": "...", "recipient_phone": "...", "message_type": "CREDIT_REMINDER", "branch": "B1"}
    """
    data = json_body()
    branch = data.get("branch") or g.actor.branch
    if branch.upper() == ALL_BRANCHES:
        branch = current_app.config["DEFAULT_BRANCH"]
    entry = messaging_service.log_outbound_message(
        recipient_name=data.get("recipient_name"),
        recipient_phone=data.get("recipient_phone"),
        message_type=data.get("message_type"),
        branch=branch,
    )
    return jsonify(entry.to_dict()), 201
