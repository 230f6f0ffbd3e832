# Overview: Flask API routes for credit buyers, their payments and their receivable reports.

from flask import Blueprint, g, jsonify, request

from ..decorators import json_body, ledger_endpoint, with_actor
from ..services import buyer_service, reporting_service
from ..validation import optional_datetime


buyers_bp = Blueprint("buyers", __name__, url_prefix="/api/buyers")


def _buyer_payload(buyer, include_payments: bool = False) -> dict:
    data = buyer.to_dict(include_payments=include_payments)
    data["utilization"] = round(buyer_service.utilization(buyer), 4)
    data["utilization_status"] = buyer_service.classify_utilization(buyer)
    return data


@buyers_bp.get("")
@with_actor
@ledger_endpoint
def list_buyers_route():
    """
    Query parameters:
    - search: shop, contact, code, phone or location
    - status: OVER, NEAR, HEALTHY
    """
    buyers = buyer_service.list_buyers(
        search=request.args.get("search"),
        status=request.args.get("status"),
    )
    return jsonify({"items": [_buyer_payload(b) for b in buyers], "count": len(buyers)})


@buyers_bp.post("")
@with_actor
@ledger_endpoint
def register_buyer_route():
    buyer = buyer_service.register_buyer(g.actor, json_body())
    return jsonify(_buyer_payload(buyer, include_payments=True)), 201


@buyers_bp.get("/<int:buyer_id>")
@with_actor
@ledger_endpoint
def get_buyer_route(buyer_id: int):
    return jsonify(_buyer_payload(buyer_service.get_buyer(buyer_id), include_payments=True))


@buyers_bp.patch("/<int:buyer_id>")
@with_actor
@ledger_endpoint
def update_buyer_route(buyer_id: int):
    buyer = buyer_service.update_buyer_profile(g.actor, buyer_id, json_body())
    return jsonify(_buyer_payload(buyer))


@buyers_bp.delete("/<int:buyer_id>")
@with_actor
@ledger_endpoint
def delete_buyer_route(buyer_id: int):
    """Query parameter policy overrides ORPHAN_POLICY (KEEP, CASCADE, REASSIGN, REJECT)."""
    result = buyer_service.delete_buyer(g.actor, buyer_id, policy=request.args.get("policy"))
    return jsonify({"deleted": buyer_id, **result})


@buyers_bp.get("/<int:buyer_id>/activity")
@with_actor
@ledger_endpoint
def buyer_activity_route(buyer_id: int):
    return jsonify({"items": buyer_service.get_buyer_activity(buyer_id)})


@buyers_bp.post("/<int:buyer_id>/payments")
@with_actor
@ledger_endpoint
def record_payment_route(buyer_id: int):
    """
    Request body:
    {"amount_cents": 500000, "method": "CASH", "branch": "B2", "reference": "...", "receipt_image": "..."}
    """
    data = json_body()
    payment = buyer_service.record_buyer_payment(
        g.actor,
        buyer_id=buyer_id,
        amount_cents=data.get("amount_cents"),
        branch=data.get("branch"),
        method=data.get("method", "CASH"),
        reference=data.get("reference"),
        receipt_image=data.get("receipt_image"),
        occurred_at=optional_datetime(data.get("occurred_at"), "occurred_at"),
    )
    buyer = buyer_service.get_buyer(buyer_id)
    return jsonify({"payment": payment.to_dict(), "buyer": _buyer_payload(buyer)}), 201


@buyers_bp.delete("/<int:buyer_id>/payments/<int:payment_id>")
@with_actor
@ledger_endpoint
def delete_payment_route(buyer_id: int, payment_id: int):
    buyer_service.delete_buyer_payment(g.actor, buyer_id, payment_id)
    return jsonify({"deleted": payment_id, "buyer": _buyer_payload(buyer_service.get_buyer(buyer_id))})


@buyers_bp.get("/<int:buyer_id>/aging")
@with_actor
@ledger_endpoint
def buyer_aging_route(buyer_id: int):
    buyer_service.get_buyer(buyer_id)
    as_of = optional_datetime(request.args.get("as_of"), "as_of")
    return jsonify(reporting_service.compute_aging_buckets(buyer_id, as_of))


@buyers_bp.get("/<int:buyer_id>/exposure")
@with_actor
@ledger_endpoint
def buyer_exposure_route(buyer_id: int):
    buyer_service.get_buyer(buyer_id)
    exposure = reporting_service.compute_branch_exposure(buyer_id)
    return jsonify({"items": [{"branch": b, "unpaid_cents": amount} for b, amount in exposure]})
