# Overview: Service-layer operations for credit buyers; profiles, payments, activity and deletion with orphan handling.

"""
Buyer Credit Service

WHY: Wholesale buyers take goods on account. Their outstanding balance must
stay consistent with the bills and payments booked against them.

BALANCE RULES:
- Increments (unpaid sale balance, manual bill, deleted payment) are applied
  in full.
- Decrements (payment, deleted bill) are floored at 0. Excess is absorbed;
  a buyer never shows a negative balance.
- Profile edits never touch current_credit_cents.

UTILIZATION (current / limit, limit 0 treated as 1):
- OVER: > 100%
- NEAR: > 80% and <= 100%
- HEALTHY: <= 80%
"""

from __future__ import annotations

from datetime import datetime

from flask import current_app
from sqlalchemy import or_

from ..extensions import db
from ..errors import ConflictError, NotFound, ValidationError
from ..models import Buyer, BuyerPayment, Transaction
from ..validation import (
    optional_date,
    optional_text,
    require_choice,
    require_non_negative_cents,
    require_positive_cents,
    require_text,
    resolve_branch,
)
from creditledger.time_utils import utcnow
from .audit_service import Actor, SEVERITY_HIGH, SEVERITY_LOW, SEVERITY_MEDIUM, format_cents, record_audit
from .balance_policy import buyer_credit_after
from .concurrency import get_locked, run_with_retry
from .orphan_policy import (
    POLICY_CASCADE,
    POLICY_REASSIGN,
    POLICY_REJECT,
    apply_to_cheques,
    referencing_cheques,
    resolve_policy,
)
from .sales_service import VALID_METHODS


UTILIZATION_OVER = "OVER"
UTILIZATION_NEAR = "NEAR"
UTILIZATION_HEALTHY = "HEALTHY"
VALID_UTILIZATION = [UTILIZATION_OVER, UTILIZATION_NEAR, UTILIZATION_HEALTHY]

PROFILE_FIELDS = {
    "shop_name",
    "contact_name",
    "location",
    "phone",
    "whatsapp_number",
    "credit_limit_cents",
    "due_date",
    "remarks",
}


def utilization(buyer: Buyer) -> float:
    return buyer.current_credit_cents / (buyer.credit_limit_cents or 1)


def classify_utilization(buyer: Buyer) -> str:
    ratio = utilization(buyer)
    if ratio > 1:
        return UTILIZATION_OVER
    if ratio > 0.8:
        return UTILIZATION_NEAR
    return UTILIZATION_HEALTHY


def get_buyer(buyer_id: int) -> Buyer:
    buyer = db.session.query(Buyer).filter_by(id=buyer_id).first()
    if buyer is None:
        raise NotFound(f"Buyer {buyer_id} not found")
    return buyer


def _clean_profile(data: dict, *, partial: bool) -> dict:
    cleaned: dict = {}
    if "shop_name" in data or not partial:
        cleaned["shop_name"] = require_text(data.get("shop_name"), "shop_name")
    if "phone" in data or not partial:
        cleaned["phone"] = require_text(data.get("phone"), "phone", max_length=32)
    for field in ("contact_name", "location"):
        if field in data or not partial:
            cleaned[field] = optional_text(data.get(field), field) or "Unspecified"
    if "whatsapp_number" in data:
        cleaned["whatsapp_number"] = optional_text(data.get("whatsapp_number"), "whatsapp_number", max_length=32)
    if "credit_limit_cents" in data:
        cleaned["credit_limit_cents"] = require_non_negative_cents(data["credit_limit_cents"], "credit_limit_cents")
    if "due_date" in data:
        cleaned["due_date"] = optional_date(data.get("due_date"), "due_date")
    if "remarks" in data:
        cleaned["remarks"] = optional_text(data.get("remarks"), "remarks", max_length=2000)
    return cleaned


# =============================================================================
# PROFILES
# =============================================================================

def register_buyer(actor: Actor, data: dict) -> Buyer:
    """
    Create a buyer with zero outstanding credit.

    Defaults: contact/location "Unspecified", WhatsApp number falls back to
    the phone, credit limit DEFAULT_CREDIT_LIMIT_CENTS. display_code is
    "<BUYER_CODE_PREFIX>-<1000 + id>".
    """
    if "current_credit_cents" in data:
        raise ValidationError("current_credit_cents cannot be set directly")
    cleaned = _clean_profile(data, partial=False)
    cleaned.setdefault("credit_limit_cents", current_app.config["DEFAULT_CREDIT_LIMIT_CENTS"])
    if not cleaned.get("whatsapp_number"):
        cleaned["whatsapp_number"] = cleaned["phone"]

    def _op():
        buyer = Buyer(current_credit_cents=0, **cleaned)
        db.session.add(buyer)
        db.session.flush()
        buyer.display_code = f"{current_app.config['BUYER_CODE_PREFIX']}-{1000 + buyer.id}"
        db.session.flush()

        record_audit(
            actor,
            action="Buyer Registered",
            target=f"Buyer: {buyer.display_code}",
            old_value=None,
            new_value=f"{buyer.shop_name} / limit {format_cents(buyer.credit_limit_cents)}",
            severity=SEVERITY_LOW,
        )
        return buyer

    return run_with_retry(_op)


def update_buyer_profile(actor: Actor, buyer_id: int, changes: dict) -> Buyer:
    """Edit profile fields. Balance fields are refused."""
    unknown = set(changes) - PROFILE_FIELDS
    if unknown:
        raise ValidationError(f"Fields not editable: {sorted(unknown)}")
    cleaned = _clean_profile(changes, partial=True)

    def _op():
        buyer = get_locked(Buyer, buyer_id, "Buyer")
        before = {k: getattr(buyer, k) for k in cleaned}
        for key, value in cleaned.items():
            setattr(buyer, key, value)
        db.session.flush()

        record_audit(
            actor,
            action="Buyer Profile Update",
            target=f"Buyer: {buyer.display_code}",
            old_value=str(before),
            new_value=str(cleaned),
            severity=SEVERITY_MEDIUM,
        )
        return buyer

    return run_with_retry(_op)


def list_buyers(*, search: str | None = None, status: str | None = None) -> list[Buyer]:
    query = db.session.query(Buyer)
    if search:
        pattern = f"%{search.strip()}%"
        query = query.filter(or_(
            Buyer.shop_name.ilike(pattern),
            Buyer.contact_name.ilike(pattern),
            Buyer.display_code.ilike(pattern),
            Buyer.phone.ilike(pattern),
            Buyer.location.ilike(pattern),
        ))
    buyers = query.order_by(Buyer.shop_name.asc(), Buyer.id.asc()).all()
    if status:
        status = require_choice(status, "status", VALID_UTILIZATION)
        buyers = [b for b in buyers if classify_utilization(b) == status]
    return buyers


def get_buyer_activity(buyer_id: int) -> list[dict]:
    """Bills and payments for one buyer, merged newest first."""
    buyer = get_buyer(buyer_id)
    bills = db.session.query(Transaction).filter(Transaction.buyer_id == buyer.id).all()

    activity = []
    for bill in bills:
        activity.append((bill.occurred_at, 0, bill.id, {**bill.to_dict(), "activity_type": "BILL"}))
    for payment in buyer.payments:
        activity.append((payment.occurred_at, 1, payment.id, {**payment.to_dict(), "activity_type": "PAYMENT"}))

    activity.sort(key=lambda row: (row[0], row[1], row[2]), reverse=True)
    return [row[3] for row in activity]


# =============================================================================
# PAYMENTS
# =============================================================================

def record_buyer_payment(
    actor: Actor,
    *,
    buyer_id: int,
    amount_cents: int,
    branch: str | None = None,
    method: str = "CASH",
    reference: str | None = None,
    receipt_image: str | None = None,
    occurred_at: datetime | None = None,
) -> BuyerPayment:
    """
    Receive a settlement from a buyer.

    current_credit = max(0, current_credit - amount). Overpayment beyond the
    outstanding balance is absorbed, not carried as a negative balance.
    """
    amount = require_positive_cents(amount_cents, "amount_cents")
    payment_method = require_choice(method, "method", VALID_METHODS)
    payment_branch = resolve_branch(branch, actor.branch)
    reference = optional_text(reference, "reference", max_length=128)

    def _op():
        buyer = get_locked(Buyer, buyer_id, "Buyer")

        payment = BuyerPayment(
            buyer_id=buyer.id,
            amount_cents=amount,
            branch=payment_branch,
            method=payment_method,
            reference=reference,
            receipt_image=receipt_image,
            occurred_at=occurred_at or utcnow(),
        )
        db.session.add(payment)

        before = buyer.current_credit_cents
        buyer.current_credit_cents = buyer_credit_after(before, -amount)
        db.session.flush()

        record_audit(
            actor,
            action="Credit Payment",
            target=f"Buyer: {buyer.display_code}",
            old_value=format_cents(before),
            new_value=format_cents(buyer.current_credit_cents),
            severity=SEVERITY_LOW,
        )
        return payment

    return run_with_retry(_op)


def delete_buyer_payment(actor: Actor, buyer_id: int, payment_id: int) -> None:
    """Remove a payment and reinstate its amount on the buyer's credit (unclamped)."""
    def _op():
        buyer = get_locked(Buyer, buyer_id, "Buyer")
        payment = db.session.query(BuyerPayment).filter_by(id=payment_id, buyer_id=buyer.id).first()
        if payment is None:
            raise NotFound(f"Payment {payment_id} not found for buyer {buyer_id}")

        before = buyer.current_credit_cents
        buyer.current_credit_cents = buyer_credit_after(before, payment.amount_cents)
        buyer.payments.remove(payment)
        db.session.flush()

        record_audit(
            actor,
            action="Payment Deletion",
            target=f"Buyer: {buyer.display_code}",
            old_value=format_cents(before),
            new_value=format_cents(buyer.current_credit_cents),
            severity=SEVERITY_HIGH,
        )

    run_with_retry(_op)


# =============================================================================
# DELETION
# =============================================================================

def delete_buyer(actor: Actor, buyer_id: int, *, policy: str | None = None) -> dict:
    """
    Remove a buyer and its payments.

    Transactions and INWARD cheques that reference the buyer follow the
    orphan policy (KEEP, CASCADE, REASSIGN, REJECT). CASCADE removes the
    records without any stock effect.

    Returns:
        Counts of affected transactions and cheques.

    Raises:
        ConflictError: REJECT policy and the buyer is still referenced
    """
    policy = resolve_policy(policy)

    def _op():
        buyer = get_locked(Buyer, buyer_id, "Buyer")
        bills = db.session.query(Transaction).filter(Transaction.buyer_id == buyer.id).all()
        cheques = referencing_cheques("INWARD", buyer.id)

        if policy == POLICY_REJECT and (bills or cheques):
            raise ConflictError(
                f"Buyer {buyer.display_code} is referenced by {len(bills)} transactions "
                f"and {len(cheques)} cheques"
            )

        if policy == POLICY_CASCADE:
            for bill in bills:
                db.session.delete(bill)
        elif policy == POLICY_REASSIGN:
            for bill in bills:
                bill.buyer_id = None
        cheques_touched = apply_to_cheques(cheques, policy)

        summary = f"{buyer.shop_name} / credit {format_cents(buyer.current_credit_cents)}"
        code = buyer.display_code
        db.session.delete(buyer)
        db.session.flush()

        record_audit(
            actor,
            action="Buyer Deletion",
            target=f"Buyer: {code}",
            old_value=summary,
            new_value=f"policy {policy}",
            severity=SEVERITY_HIGH,
        )
        return {
            "policy": policy,
            "transactions": len(bills),
            "cheques": cheques_touched if policy in (POLICY_CASCADE, POLICY_REASSIGN) else len(cheques),
        }

    return run_with_retry(_op)

