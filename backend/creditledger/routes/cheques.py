# Overview: Flask API routes for cheque registration and status changes.

from flask import Blueprint, g, jsonify, request

from ..decorators import json_body, ledger_endpoint, with_actor
from ..services import cheque_service


cheques_bp = Blueprint("cheques", __name__, url_prefix="/api/cheques")


@cheques_bp.get("")
@with_actor
@ledger_endpoint
def list_cheques_route():
    cheques = cheque_service.list_cheques(
        status=request.args.get("status"),
        type=request.args.get("type"),
        branch=request.args.get("branch"),
    )
    return jsonify({"items": [c.to_dict() for c in cheques], "count": len(cheques)})


@cheques_bp.get("/summary")
@with_actor
@ledger_endpoint
def cheque_summary_route():
    return jsonify(cheque_service.cheque_summary())


@cheques_bp.post("")
@with_actor
@ledger_endpoint
def register_cheque_route():
    """
    Request body:
    {
        "cheque_number": "004512",
        "bank": "Meezan Bank",
        "amount_cents": 2500000,
        "due_date": "2024-07-01",
        "type": "INWARD" | "OUTWARD",
        "reference_id": "3",    // buyer id (INWARD) or supplier id (OUTWARD), optional
        "branch": "MAIN",
        "remarks": "..."
    }
    """
    data = json_body()
    cheque = cheque_service.register_cheque(
        g.actor,
        cheque_number=data.get("cheque_number"),
        bank=data.get("bank"),
        amount_cents=data.get("amount_cents"),
        due_date=data.get("due_date"),
        type=data.get("type"),
        branch=data.get("branch"),
        reference_id=data.get("reference_id"),
        remarks=data.get("remarks"),
    )
    return jsonify(cheque.to_dict()), 201


@cheques_bp.get("/<int:cheque_id>")
@with_actor
@ledger_endpoint
def get_cheque_route(cheque_id: int):
    return jsonify(cheque_service.get_cheque(cheque_id).to_dict())


@cheques_bp.post("/<int:cheque_id>/status")
@with_actor
@ledger_endpoint
def update_cheque_status_route(cheque_id: int):
    """Request body: {"status": "CLEARED" | "BOUNCED"}. 409 unless the cheque is PENDING."""
    cheque = cheque_service.update_cheque_status(g.actor, cheque_id, json_body().get("status"))
    return jsonify(cheque.to_dict())


@cheques_bp.delete("/<int:cheque_id>")
@with_actor
@ledger_endpoint
def delete_cheque_route(cheque_id: int):
    cheque_service.delete_cheque(g.actor, cheque_id)
    return jsonify({"deleted": cheque_id})
