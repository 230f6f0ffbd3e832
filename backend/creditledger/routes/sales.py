# Overview: Flask API routes for POS sales and manual bills; parses input and returns JSON responses.

"""
Sales Routes

- POST /api/sales computes is_flagged through the installed fraud predicate
  when the caller does not send it.
- Deleting a sale reverses its credit effect; stock comes back only when
  restore_stock=true (or RESTORE_STOCK_ON_DELETE) is set.
"""

from flask import Blueprint, g, jsonify, request

from ..decorators import json_body, ledger_endpoint, with_actor
from ..services import fraud_service, sales_service
from ..validation import optional_datetime


sales_bp = Blueprint("sales", __name__, url_prefix="/api/sales")


@sales_bp.get("")
@with_actor
@ledger_endpoint
def list_sales_route():
    """
    Query parameters:
    - branch, buyer_id, status (PAID, PARTIAL, UNPAID)
    - limit (default 200, max 1000)
    """
    limit = min(max(request.args.get("limit", 200, type=int), 1), 1000)
    sales = sales_service.list_transactions(
        branch=request.args.get("branch"),
        buyer_id=request.args.get("buyer_id", type=int),
        status=request.args.get("status"),
        limit=limit,
    )
    return jsonify({"items": [s.to_dict() for s in sales], "count": len(sales)})


@sales_bp.get("/<int:transaction_id>")
@with_actor
@ledger_endpoint
def get_sale_route(transaction_id: int):
    return jsonify(sales_service.get_transaction(transaction_id).to_dict())


@sales_bp.post("")
@with_actor
@ledger_endpoint
def record_sale_route():
    """
    Post a sale.

    Request body:
    {
        "type": "WHOLESALE" | "RETAIL",
        "branch": "B1",                    // optional, defaults to actor branch
        "lines": [{"item_id": 1, "quantity": 2, "unit_price_cents": 1500}],
        "total_amount_cents": 3000,
        "paid_amount_cents": 1000,
        "discount_cents": 0,
        "tax_cents": 0,
        "payment_method": "CASH" | "CARD" | "CREDIT" | "CHEQUE",
        "buyer_id": 7,                     // optional
        "is_flagged": false,               // optional, predicate decides when absent
        "bill_image_url": "..."            // optional
    }
    """
    data = json_body()
    is_flagged = data["is_flagged"] if "is_flagged" in data else fraud_service.is_suspicious(data)

    sale = sales_service.record_sale(
        g.actor,
        branch=data.get("branch"),
        type=data.get("type"),
        lines=data.get("lines") or [],
        total_amount_cents=data.get("total_amount_cents"),
        paid_amount_cents=data.get("paid_amount_cents", data.get("total_amount_cents")),
        discount_cents=data.get("discount_cents", 0),
        tax_cents=data.get("tax_cents", 0),
        payment_method=data.get("payment_method", sales_service.METHOD_CASH),
        buyer_id=data.get("buyer_id"),
        is_flagged=bool(is_flagged),
        occurred_at=optional_datetime(data.get("occurred_at"), "occurred_at"),
        bill_image_url=data.get("bill_image_url"),
    )
    return jsonify(sale.to_dict()), 201


@sales_bp.post("/manual-bills")
@with_actor
@ledger_endpoint
def record_manual_bill_route():
    """
    Request body:
    {"buyer_id": 7, "amount_cents": 250000, "branch": "MAIN", "bill_image_url": "..."}
    """
    data = json_body()
    bill = sales_service.record_manual_bill(
        g.actor,
        buyer_id=data.get("buyer_id"),
        amount_cents=data.get("amount_cents"),
        branch=data.get("branch"),
        occurred_at=optional_datetime(data.get("occurred_at"), "occurred_at"),
        bill_image_url=data.get("bill_image_url"),
    )
    return jsonify(bill.to_dict()), 201


@sales_bp.delete("/<int:transaction_id>")
@with_actor
@ledger_endpoint
def delete_sale_route(transaction_id: int):
    restore = request.args.get("restore_stock")
    restore_stock = None if restore is None else restore.lower() == "true"
    sales_service.delete_transaction(g.actor, transaction_id, restore_stock=restore_stock)
    return jsonify({"deleted": transaction_id})
