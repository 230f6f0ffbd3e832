# Overview: Flask API routes for the item catalog and per-branch stock.

from flask import Blueprint, g, jsonify, request

from ..decorators import json_body, ledger_endpoint, with_actor
from ..services import inventory_service
from ..validation import require_branch


inventory_bp = Blueprint("inventory", __name__, url_prefix="/api/items")


@inventory_bp.get("")
@with_actor
@ledger_endpoint
def list_items_route():
    items = inventory_service.list_items(
        category=request.args.get("category"),
        search=request.args.get("search"),
        stock_status=request.args.get("stock_status"),
        branch=request.args.get("branch"),
    )
    return jsonify({"items": [i.to_dict() for i in items], "count": len(items)})


@inventory_bp.post("")
@with_actor
@ledger_endpoint
def create_item_route():
    """
    Request body:
    {
        "name": "Basmati Rice 5kg",
        "category": "Grains",
        "wholesale_price_cents": 120000,
        "retail_price_cents": 135000,
        "stock": {"MAIN": 50, "B1": 10}
    }
    """
    data = json_body()
    item = inventory_service.create_item(
        g.actor,
        name=data.get("name"),
        category=data.get("category"),
        wholesale_price_cents=data.get("wholesale_price_cents", 0),
        retail_price_cents=data.get("retail_price_cents", 0),
        stock=data.get("stock"),
    )
    return jsonify(item.to_dict()), 201


@inventory_bp.get("/<int:item_id>")
@with_actor
@ledger_endpoint
def get_item_route(item_id: int):
    return jsonify(inventory_service.get_item(item_id).to_dict())


@inventory_bp.patch("/<int:item_id>")
@with_actor
@ledger_endpoint
def update_item_route(item_id: int):
    item = inventory_service.update_item(g.actor, item_id, json_body())
    return jsonify(item.to_dict())


@inventory_bp.delete("/<int:item_id>")
@with_actor
@ledger_endpoint
def delete_item_route(item_id: int):
    inventory_service.delete_item(g.actor, item_id)
    return jsonify({"deleted": item_id})


@inventory_bp.get("/<int:item_id>/stock/<branch>")
@with_actor
@ledger_endpoint
def get_branch_stock_route(item_id: int, branch: str):
    inventory_service.get_item(item_id)
    branch = require_branch(branch)
    return jsonify({"item_id": item_id, "branch": branch, "quantity": inventory_service.get_branch_stock(item_id, branch)})


@inventory_bp.put("/<int:item_id>/stock/<branch>")
@with_actor
@ledger_endpoint
def set_branch_stock_route(item_id: int, branch: str):
    """Physical count. Request body: {"quantity": 42}"""
    row = inventory_service.set_branch_stock(g.actor, item_id, branch, json_body().get("quantity"))
    return jsonify({"item_id": item_id, "branch": row.branch, "quantity": row.quantity})


@inventory_bp.post("/<int:item_id>/transfers")
@with_actor
@ledger_endpoint
def transfer_stock_route(item_id: int):
    """
    Request body:
    {"source_branch": "MAIN", "target_branch": "B3", "quantity": 5}

    Returns 409 when the source branch holds less than quantity.
    """
    data = json_body()
    stock = inventory_service.transfer_stock(
        g.actor,
        item_id,
        source_branch=data.get("source_branch"),
        target_branch=data.get("target_branch"),
        quantity=data.get("quantity"),
    )
    return jsonify({"item_id": item_id, "stock": stock})
