# Overview: Consistency checks over the ledger; recomputes balances from their entries and reports drift.

"""
Checks (read-only, nothing is repaired):

- supplier_drift: balance_cents != sum(PURCHASE_BILL) - sum(PAYMENT). Any
  row here is a real inconsistency.
- negative_stock: an ItemStock row below zero.
- negative_credit: a buyer with current_credit_cents < 0.
- buyer_drift: stored credit vs. the naive formula (open bills minus
  payments). Informational: decrements are floored one at a time, so the
  stored value may legitimately sit above the naive figure.
"""

from __future__ import annotations

from ..extensions import db
from ..models import Buyer, ItemStock, Supplier, Transaction


def _naive_buyer_credit(buyer: Buyer) -> int:
    billed = sum(
        t.unpaid_amount_cents
        for t in db.session.query(Transaction).filter(
            Transaction.buyer_id == buyer.id,
            Transaction.type == "WHOLESALE",
        )
    )
    paid = sum(p.amount_cents for p in buyer.payments)
    return billed - paid


def check_consistency() -> dict:
    supplier_drift = []
    for supplier in db.session.query(Supplier).order_by(Supplier.id).all():
        expected = sum(e.signed_amount_cents for e in supplier.ledger_entries)
        if expected != supplier.balance_cents:
            supplier_drift.append({
                "supplier_id": supplier.id,
                "stored_cents": supplier.balance_cents,
                "expected_cents": expected,
            })

    negative_stock = [
        {"item_id": row.item_id, "branch": row.branch, "quantity": row.quantity}
        for row in db.session.query(ItemStock).filter(ItemStock.quantity < 0).all()
    ]

    negative_credit = []
    buyer_drift = []
    for buyer in db.session.query(Buyer).order_by(Buyer.id).all():
        if buyer.current_credit_cents < 0:
            negative_credit.append({"buyer_id": buyer.id, "stored_cents": buyer.current_credit_cents})
        naive = _naive_buyer_credit(buyer)
        if naive != buyer.current_credit_cents:
            buyer_drift.append({
                "buyer_id": buyer.id,
                "stored_cents": buyer.current_credit_cents,
                "naive_cents": naive,
            })

    return {
        "ok": not (supplier_drift or negative_stock or negative_credit),
        "supplier_drift": supplier_drift,
        "negative_stock": negative_stock,
        "negative_credit": negative_credit,
        "buyer_drift": buyer_drift,
    }
