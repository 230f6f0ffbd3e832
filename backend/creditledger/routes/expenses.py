# Overview: Flask API routes for branch expenses.

from flask import Blueprint, g, jsonify, request

from ..decorators import json_body, ledger_endpoint, with_actor
from ..services import expense_service
from ..validation import optional_datetime


expenses_bp = Blueprint("expenses", __name__, url_prefix="/api/expenses")


@expenses_bp.get("")
@with_actor
@ledger_endpoint
def list_expenses_route():
    expenses = expense_service.list_expenses(
        branch=request.args.get("branch"),
        category=request.args.get("category"),
    )
    return jsonify({"items": [e.to_dict() for e in expenses], "count": len(expenses)})


@expenses_bp.get("/totals")
@with_actor
@ledger_endpoint
def expense_totals_route():
    return jsonify(expense_service.expense_totals_by_category(branch=request.args.get("branch")))


@expenses_bp.post("")
@with_actor
@ledger_endpoint
def add_expense_route():
    """
    Request body:
    {"description": "Shop rent June", "amount_cents": 4500000, "category": "Rent", "branch": "B1"}
    """
    data = json_body()
    expense = expense_service.add_expense(
        g.actor,
        description=data.get("description"),
        amount_cents=data.get("amount_cents"),
        category=data.get("category"),
        branch=data.get("branch"),
        proof_image_url=data.get("proof_image_url"),
        occurred_at=optional_datetime(data.get("occurred_at"), "occurred_at"),
    )
    return jsonify(expense.to_dict()), 201


@expenses_bp.delete("/<int:expense_id>")
@with_actor
@ledger_endpoint
def delete_expense_route(expense_id: int):
    expense_service.delete_expense(g.actor, expense_id)
    return jsonify({"deleted": expense_id})
