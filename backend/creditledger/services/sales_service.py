# Overview: Service-layer operations for sales and manual bills; posts transactions, consumes stock and moves buyer credit.

"""
Sales Posting Service

DESIGN PRINCIPLES:
- A Transaction is written once and never edited; corrections are deletions.
- Unit prices are snapshotted on the sale line at posting time.
- Status is derived from amounts: paid >= total -> PAID, paid > 0 -> PARTIAL,
  otherwise UNPAID.
- Only WHOLESALE transactions with a buyer touch buyer credit, by their
  unpaid balance max(0, total - paid). Cash over-tender is change.
- Stock decrements for sales are clamped at zero per branch pool.
"""

from __future__ import annotations

from datetime import datetime

from flask import current_app

from ..extensions import db
from ..errors import NotFound, ValidationError
from ..models import Buyer, Item, SaleLine, Transaction
from ..validation import require_choice, require_non_negative_cents, require_positive_cents, require_positive_quantity, resolve_branch
from creditledger.time_utils import utcnow
from .audit_service import Actor, SEVERITY_CRITICAL, SEVERITY_HIGH, SEVERITY_LOW, format_cents, record_audit
from .balance_policy import buyer_credit_after
from .concurrency import get_locked, lock_for_update, run_with_retry
from .inventory_service import consume_for_sale, restore_from_sale


# =============================================================================
# CONSTANTS
# =============================================================================

TYPE_WHOLESALE = "WHOLESALE"
TYPE_RETAIL = "RETAIL"
VALID_TYPES = [TYPE_WHOLESALE, TYPE_RETAIL]

METHOD_CASH = "CASH"
METHOD_CARD = "CARD"
METHOD_CREDIT = "CREDIT"
METHOD_CHEQUE = "CHEQUE"
VALID_METHODS = [METHOD_CASH, METHOD_CARD, METHOD_CREDIT, METHOD_CHEQUE]

STATUS_PAID = "PAID"
STATUS_PARTIAL = "PARTIAL"
STATUS_UNPAID = "UNPAID"


def derive_status(total_cents: int, paid_cents: int) -> str:
    if paid_cents >= total_cents:
        return STATUS_PAID
    if paid_cents > 0:
        return STATUS_PARTIAL
    return STATUS_UNPAID


def _normalize_lines(lines) -> list[dict]:
    if not isinstance(lines, (list, tuple)):
        raise ValidationError("lines must be a list")

    normalized = []
    for idx, line in enumerate(lines):
        if not isinstance(line, dict):
            raise ValidationError(f"lines[{idx}] must be an object")
        if "item_id" not in line:
            raise ValidationError(f"lines[{idx}].item_id is required")
        item_id = line["item_id"]
        if isinstance(item_id, bool) or not isinstance(item_id, int):
            raise ValidationError(f"lines[{idx}].item_id must be an integer")
        quantity = require_positive_quantity(line.get("quantity"), f"lines[{idx}].quantity")
        unit_price = line.get("unit_price_cents")
        if unit_price is not None:
            unit_price = require_non_negative_cents(unit_price, f"lines[{idx}].unit_price_cents")
        normalized.append({"item_id": item_id, "quantity": quantity, "unit_price_cents": unit_price})
    return normalized


# =============================================================================
# POSTING
# =============================================================================

def record_sale(
    actor: Actor,
    *,
    branch: str | None,
    type: str,
    lines: list[dict],
    total_amount_cents: int,
    paid_amount_cents: int,
    discount_cents: int = 0,
    tax_cents: int = 0,
    payment_method: str = METHOD_CASH,
    buyer_id: int | None = None,
    is_flagged: bool = False,
    occurred_at: datetime | None = None,
    bill_image_url: str | None = None,
) -> Transaction:
    """
    Post a POS sale.

    Effects, all in one DB transaction:
    1. Transaction + sale lines appended (unit price snapshotted; defaults to
       the item's wholesale or retail price for the sale type)
    2. Each line decrements the sale branch's stock pool, clamped at 0
    3. WHOLESALE with buyer: buyer credit += max(0, total - paid)
    4. One LOW "POS Transaction" audit entry, plus a CRITICAL "FRAUD ALERT"
       entry when the sale is flagged

    Raises:
        ValidationError: bad amounts, type, method or lines
        NotFound: buyer or item does not exist
    """
    sale_type = require_choice(type, "type", VALID_TYPES)
    method = require_choice(payment_method, "payment_method", VALID_METHODS)
    sale_branch = resolve_branch(branch, actor.branch)
    total = require_non_negative_cents(total_amount_cents, "total_amount_cents")
    paid = require_non_negative_cents(paid_amount_cents, "paid_amount_cents")
    discount = require_non_negative_cents(discount_cents, "discount_cents")
    tax = require_non_negative_cents(tax_cents, "tax_cents")
    normalized = _normalize_lines(lines)

    if method == METHOD_CREDIT and (sale_type != TYPE_WHOLESALE or buyer_id is None):
        raise ValidationError("CREDIT payment requires a WHOLESALE sale with a buyer")

    def _op():
        buyer = get_locked(Buyer, buyer_id, "Buyer") if buyer_id is not None else None

        items: dict[int, Item] = {}
        for line in normalized:
            item = items.get(line["item_id"]) or db.session.query(Item).filter_by(id=line["item_id"]).first()
            if item is None:
                raise NotFound(f"Item {line['item_id']} not found")
            items[item.id] = item

        sale = Transaction(
            branch=sale_branch,
            occurred_at=occurred_at or utcnow(),
            buyer_id=buyer.id if buyer else None,
            type=sale_type,
            is_manual=False,
            total_amount_cents=total,
            paid_amount_cents=paid,
            discount_cents=discount,
            tax_cents=tax,
            payment_method=method,
            status=derive_status(total, paid),
            bill_image_url=bill_image_url,
            is_flagged=bool(is_flagged),
        )
        db.session.add(sale)
        db.session.flush()

        for line in normalized:
            item = items[line["item_id"]]
            unit_price = line["unit_price_cents"]
            if unit_price is None:
                unit_price = item.wholesale_price_cents if sale_type == TYPE_WHOLESALE else item.retail_price_cents
            db.session.add(SaleLine(
                transaction_id=sale.id,
                item_id=item.id,
                quantity=line["quantity"],
                unit_price_cents=unit_price,
            ))
            consume_for_sale(item.id, sale_branch, line["quantity"])

        if buyer is not None and sale_type == TYPE_WHOLESALE:
            buyer.current_credit_cents = buyer_credit_after(buyer.current_credit_cents, sale.unpaid_amount_cents)

        db.session.flush()

        record_audit(
            actor,
            action="POS Transaction",
            target=f"Sale: {sale.id}",
            old_value=None,
            new_value=f"{sale_type} {format_cents(total)} ({method}, {sale.status})",
            severity=SEVERITY_LOW,
        )
        if sale.is_flagged:
            record_audit(
                actor,
                action="FRAUD ALERT",
                target=f"Sale: {sale.id}",
                old_value=None,
                new_value=f"Discount {format_cents(discount)} on {format_cents(total)}",
                severity=SEVERITY_CRITICAL,
            )
        return sale

    return run_with_retry(_op)


def record_manual_bill(
    actor: Actor,
    *,
    buyer_id: int,
    amount_cents: int,
    branch: str | None = None,
    occurred_at: datetime | None = None,
    bill_image_url: str | None = None,
) -> Transaction:
    """
    Book a handwritten credit bill against a buyer.

    Zero-line WHOLESALE transaction, paid 0, method CREDIT. The buyer's
    credit grows by the bill amount exactly once.
    """
    amount = require_positive_cents(amount_cents, "amount_cents")
    bill_branch = resolve_branch(branch, actor.branch)

    def _op():
        buyer = get_locked(Buyer, buyer_id, "Buyer")

        bill = Transaction(
            branch=bill_branch,
            occurred_at=occurred_at or utcnow(),
            buyer_id=buyer.id,
            type=TYPE_WHOLESALE,
            is_manual=True,
            total_amount_cents=amount,
            paid_amount_cents=0,
            discount_cents=0,
            tax_cents=0,
            payment_method=METHOD_CREDIT,
            status=STATUS_UNPAID,
            bill_image_url=bill_image_url,
            is_flagged=False,
        )
        db.session.add(bill)

        before = buyer.current_credit_cents
        buyer.current_credit_cents = buyer_credit_after(before, amount)
        db.session.flush()

        record_audit(
            actor,
            action="Manual Bill",
            target=f"Buyer: {buyer.display_code}",
            old_value=format_cents(before),
            new_value=format_cents(buyer.current_credit_cents),
            severity=SEVERITY_LOW,
        )
        return bill

    return run_with_retry(_op)


# =============================================================================
# CORRECTIONS
# =============================================================================

def delete_transaction(actor: Actor, transaction_id: int, *, restore_stock: bool | None = None) -> None:
    """
    Remove a transaction.

    - WHOLESALE with an existing buyer: credit -= unpaid balance, floored at 0
    - Orphaned buyer reference: no balance effect
    - Stock is put back only when restore_stock (or RESTORE_STOCK_ON_DELETE)
      is enabled
    """
    if restore_stock is None:
        restore_stock = bool(current_app.config.get("RESTORE_STOCK_ON_DELETE", False))

    def _op():
        sale = lock_for_update(db.session.query(Transaction).filter_by(id=transaction_id)).first()
        if sale is None:
            raise NotFound(f"Transaction {transaction_id} not found")

        credit_note = "no credit effect"
        if sale.type == TYPE_WHOLESALE and sale.buyer_id is not None:
            buyer = lock_for_update(db.session.query(Buyer).filter_by(id=sale.buyer_id)).first()
            if buyer is not None:
                before = buyer.current_credit_cents
                buyer.current_credit_cents = buyer_credit_after(before, -sale.unpaid_amount_cents)
                credit_note = f"credit {format_cents(before)} -> {format_cents(buyer.current_credit_cents)}"

        if restore_stock:
            for line in sale.lines:
                restore_from_sale(line.item_id, sale.branch, line.quantity)

        summary = f"{sale.type} {format_cents(sale.total_amount_cents)} ({sale.status})"
        db.session.delete(sale)
        db.session.flush()

        record_audit(
            actor,
            action="Transaction Deletion",
            target=f"Sale: {transaction_id}",
            old_value=summary,
            new_value=credit_note,
            severity=SEVERITY_HIGH,
        )

    run_with_retry(_op)


def get_transaction(transaction_id: int) -> Transaction:
    sale = db.session.query(Transaction).filter_by(id=transaction_id).first()
    if sale is None:
        raise NotFound(f"Transaction {transaction_id} not found")
    return sale


def list_transactions(
    *,
    branch: str | None = None,
    buyer_id: int | None = None,
    status: str | None = None,
    limit: int | None = None,
) -> list[Transaction]:
    query = db.session.query(Transaction)
    if branch:
        query = query.filter(Transaction.branch == branch.upper())
    if buyer_id is not None:
        query = query.filter(Transaction.buyer_id == buyer_id)
    if status:
        query = query.filter(Transaction.status == status.upper())
    query = query.order_by(Transaction.occurred_at.desc(), Transaction.id.desc())
    if limit:
        query = query.limit(limit)
    return query.all()
