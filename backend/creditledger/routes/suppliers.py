# Overview: Flask API routes for suppliers and their purchase/payment ledger.

from flask import Blueprint, g, jsonify, request

from ..decorators import json_body, ledger_endpoint, with_actor
from ..services import supplier_service
from ..validation import optional_datetime


suppliers_bp = Blueprint("suppliers", __name__, url_prefix="/api/suppliers")


@suppliers_bp.get("")
@with_actor
@ledger_endpoint
def list_suppliers_route():
    """
    Query parameters:
    - search, category
    - balance: DEBT (balance > 0) or SETTLED (balance <= 0)
    """
    suppliers = supplier_service.list_suppliers(
        search=request.args.get("search"),
        category=request.args.get("category"),
        balance_filter=request.args.get("balance"),
    )
    return jsonify({"items": [s.to_dict(include_ledger=False) for s in suppliers], "count": len(suppliers)})


@suppliers_bp.post("")
@with_actor
@ledger_endpoint
def register_supplier_route():
    supplier = supplier_service.register_supplier(g.actor, json_body())
    return jsonify(supplier.to_dict()), 201


@suppliers_bp.get("/<int:supplier_id>")
@with_actor
@ledger_endpoint
def get_supplier_route(supplier_id: int):
    return jsonify(supplier_service.get_supplier(supplier_id).to_dict())


@suppliers_bp.patch("/<int:supplier_id>")
@with_actor
@ledger_endpoint
def update_supplier_route(supplier_id: int):
    supplier = supplier_service.update_supplier_profile(g.actor, supplier_id, json_body())
    return jsonify(supplier.to_dict(include_ledger=False))


@suppliers_bp.delete("/<int:supplier_id>")
@with_actor
@ledger_endpoint
def delete_supplier_route(supplier_id: int):
    result = supplier_service.delete_supplier(g.actor, supplier_id, policy=request.args.get("policy"))
    return jsonify({"deleted": supplier_id, **result})


def _post_entry(supplier_id: int, purchase: bool):
    data = json_body()
    kwargs = dict(
        supplier_id=supplier_id,
        amount_cents=data.get("amount_cents"),
        branch=data.get("branch"),
        reference=data.get("reference"),
        image_url=data.get("image_url"),
        occurred_at=optional_datetime(data.get("occurred_at"), "occurred_at"),
    )
    if purchase:
        entry = supplier_service.record_supplier_purchase(g.actor, **kwargs)
    else:
        entry = supplier_service.record_supplier_payment(g.actor, method=data.get("method", "CASH"), **kwargs)
    supplier = supplier_service.get_supplier(supplier_id)
    return jsonify({"entry": entry.to_dict(), "balance_cents": supplier.balance_cents}), 201


@suppliers_bp.post("/<int:supplier_id>/purchases")
@with_actor
@ledger_endpoint
def record_purchase_route(supplier_id: int):
    return _post_entry(supplier_id, purchase=True)


@suppliers_bp.post("/<int:supplier_id>/payments")
@with_actor
@ledger_endpoint
def record_payment_route(supplier_id: int):
    return _post_entry(supplier_id, purchase=False)


@suppliers_bp.delete("/<int:supplier_id>/ledger/<int:entry_id>")
@with_actor
@ledger_endpoint
def delete_ledger_entry_route(supplier_id: int, entry_id: int):
    supplier_service.delete_supplier_ledger_entry(g.actor, supplier_id, entry_id)
    supplier = supplier_service.get_supplier(supplier_id)
    return jsonify({"deleted": entry_id, "balance_cents": supplier.balance_cents})
