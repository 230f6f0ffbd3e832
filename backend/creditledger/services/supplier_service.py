# Overview: Service-layer operations for suppliers; profiles and the signed purchase/payment ledger.

"""
Supplier Ledger Service

BALANCE SIGN:
- positive: the business owes the supplier
- negative: the business overpaid; the supplier owes the difference back

The balance always equals the sum of PURCHASE_BILL entries minus the sum
of PAYMENT entries. It is never clamped.
"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import or_

from ..extensions import db
from ..errors import ConflictError, NotFound, ValidationError
from ..models import Supplier, SupplierLedgerEntry
from ..validation import optional_text, require_choice, require_positive_cents, require_text, resolve_branch
from creditledger.time_utils import utcnow
from .audit_service import Actor, SEVERITY_HIGH, SEVERITY_LOW, SEVERITY_MEDIUM, format_cents, record_audit
from .balance_policy import supplier_balance_after
from .concurrency import get_locked, run_with_retry
from .orphan_policy import POLICY_REJECT, apply_to_cheques, referencing_cheques, resolve_policy
from .sales_service import VALID_METHODS


ENTRY_PURCHASE_BILL = "PURCHASE_BILL"
ENTRY_PAYMENT = "PAYMENT"

BALANCE_DEBT = "DEBT"
BALANCE_SETTLED = "SETTLED"

PROFILE_FIELDS = {"shop_name", "contact_name", "location", "phone", "whatsapp_number", "category", "remarks"}


def get_supplier(supplier_id: int) -> Supplier:
    supplier = db.session.query(Supplier).filter_by(id=supplier_id).first()
    if supplier is None:
        raise NotFound(f"Supplier {supplier_id} not found")
    return supplier


def _clean_profile(data: dict, *, partial: bool) -> dict:
    cleaned: dict = {}
    if "shop_name" in data or not partial:
        cleaned["shop_name"] = require_text(data.get("shop_name"), "shop_name")
    if "phone" in data or not partial:
        cleaned["phone"] = require_text(data.get("phone"), "phone", max_length=32)
    for field in ("contact_name", "location"):
        if field in data or not partial:
            cleaned[field] = optional_text(data.get(field), field) or "Unspecified"
    if "category" in data or not partial:
        cleaned["category"] = optional_text(data.get("category"), "category", max_length=64) or "Grocery"
    if "whatsapp_number" in data:
        cleaned["whatsapp_number"] = optional_text(data.get("whatsapp_number"), "whatsapp_number", max_length=32)
    if "remarks" in data:
        cleaned["remarks"] = optional_text(data.get("remarks"), "remarks", max_length=2000)
    return cleaned


def register_supplier(actor: Actor, data: dict) -> Supplier:
    if "balance_cents" in data:
        raise ValidationError("balance_cents cannot be set directly")
    cleaned = _clean_profile(data, partial=False)
    if not cleaned.get("whatsapp_number"):
        cleaned["whatsapp_number"] = cleaned["phone"]

    def _op():
        supplier = Supplier(balance_cents=0, **cleaned)
        db.session.add(supplier)
        db.session.flush()

        record_audit(
            actor,
            action="Supplier Registered",
            target=f"Supplier: {supplier.id}",
            old_value=None,
            new_value=f"{supplier.shop_name} ({supplier.category})",
            severity=SEVERITY_LOW,
        )
        return supplier

    return run_with_retry(_op)


def update_supplier_profile(actor: Actor, supplier_id: int, changes: dict) -> Supplier:
    unknown = set(changes) - PROFILE_FIELDS
    if unknown:
        raise ValidationError(f"Fields not editable: {sorted(unknown)}")
    cleaned = _clean_profile(changes, partial=True)

    def _op():
        supplier = get_locked(Supplier, supplier_id, "Supplier")
        before = {k: getattr(supplier, k) for k in cleaned}
        for key, value in cleaned.items():
            setattr(supplier, key, value)
        db.session.flush()

        record_audit(
            actor,
            action="Supplier Profile Update",
            target=f"Supplier: {supplier.id}",
            old_value=str(before),
            new_value=str(cleaned),
            severity=SEVERITY_MEDIUM,
        )
        return supplier

    return run_with_retry(_op)


def list_suppliers(
    *,
    search: str | None = None,
    category: str | None = None,
    balance_filter: str | None = None,
) -> list[Supplier]:
    query = db.session.query(Supplier)
    if search:
        pattern = f"%{search.strip()}%"
        query = query.filter(or_(
            Supplier.shop_name.ilike(pattern),
            Supplier.contact_name.ilike(pattern),
            Supplier.category.ilike(pattern),
        ))
    if category:
        query = query.filter(Supplier.category == category)
    if balance_filter:
        balance_filter = require_choice(balance_filter, "balance_filter", [BALANCE_DEBT, BALANCE_SETTLED])
        if balance_filter == BALANCE_DEBT:
            query = query.filter(Supplier.balance_cents > 0)
        else:
            query = query.filter(Supplier.balance_cents <= 0)
    return query.order_by(Supplier.shop_name.asc(), Supplier.id.asc()).all()


def _post_entry(
    actor: Actor,
    *,
    supplier_id: int,
    entry_type: str,
    amount_cents: int,
    branch: str | None,
    method: str | None,
    reference: str | None,
    image_url: str | None,
    occurred_at: datetime | None,
) -> SupplierLedgerEntry:
    amount = require_positive_cents(amount_cents, "amount_cents")
    entry_branch = resolve_branch(branch, actor.branch)
    entry_method = require_choice(method, "method", VALID_METHODS) if method else None
    reference = optional_text(reference, "reference", max_length=128)

    def _op():
        supplier = get_locked(Supplier, supplier_id, "Supplier")

        entry = SupplierLedgerEntry(
            supplier_id=supplier.id,
            type=entry_type,
            amount_cents=amount,
            branch=entry_branch,
            method=entry_method,
            reference=reference,
            image_url=image_url,
            occurred_at=occurred_at or utcnow(),
        )
        db.session.add(entry)

        before = supplier.balance_cents
        supplier.balance_cents = supplier_balance_after(before, entry.signed_amount_cents)
        db.session.flush()

        record_audit(
            actor,
            action="Supplier Purchase" if entry_type == ENTRY_PURCHASE_BILL else "Supplier Payment",
            target=f"Supplier: {supplier.id}",
            old_value=format_cents(before),
            new_value=format_cents(supplier.balance_cents),
            severity=SEVERITY_LOW,
        )
        return entry

    return run_with_retry(_op)


def record_supplier_purchase(
    actor: Actor,
    *,
    supplier_id: int,
    amount_cents: int,
    branch: str | None = None,
    reference: str | None = None,
    image_url: str | None = None,
    occurred_at: datetime | None = None,
) -> SupplierLedgerEntry:
    """Book a purchase bill: balance += amount."""
    return _post_entry(
        actor,
        supplier_id=supplier_id,
        entry_type=ENTRY_PURCHASE_BILL,
        amount_cents=amount_cents,
        branch=branch,
        method=None,
        reference=reference,
        image_url=image_url,
        occurred_at=occurred_at,
    )


def record_supplier_payment(
    actor: Actor,
    *,
    supplier_id: int,
    amount_cents: int,
    branch: str | None = None,
    method: str = "CASH",
    reference: str | None = None,
    image_url: str | None = None,
    occurred_at: datetime | None = None,
) -> SupplierLedgerEntry:
    """Pay a supplier: balance -= amount, may go negative."""
    return _post_entry(
        actor,
        supplier_id=supplier_id,
        entry_type=ENTRY_PAYMENT,
        amount_cents=amount_cents,
        branch=branch,
        method=method,
        reference=reference,
        image_url=image_url,
        occurred_at=occurred_at,
    )


def delete_supplier_ledger_entry(actor: Actor, supplier_id: int, entry_id: int) -> None:
    """Reverse an entry's signed effect and remove it."""
    def _op():
        supplier = get_locked(Supplier, supplier_id, "Supplier")
        entry = db.session.query(SupplierLedgerEntry).filter_by(id=entry_id, supplier_id=supplier.id).first()
        if entry is None:
            raise NotFound(f"Ledger entry {entry_id} not found for supplier {supplier_id}")

        before = supplier.balance_cents
        supplier.balance_cents = supplier_balance_after(before, -entry.signed_amount_cents)
        supplier.ledger_entries.remove(entry)
        db.session.flush()

        record_audit(
            actor,
            action="Ledger Entry Deletion",
            target=f"Supplier: {supplier.id}",
            old_value=f"{entry.type} {format_cents(entry.amount_cents)} / balance {format_cents(before)}",
            new_value=format_cents(supplier.balance_cents),
            severity=SEVERITY_HIGH,
        )

    run_with_retry(_op)


def delete_supplier(actor: Actor, supplier_id: int, *, policy: str | None = None) -> dict:
    """
    Remove a supplier and its ledger.

    OUTWARD cheques that reference the supplier follow the orphan policy.

    Raises:
        ConflictError: REJECT policy and cheques still reference the supplier
    """
    policy = resolve_policy(policy)

    def _op():
        supplier = get_locked(Supplier, supplier_id, "Supplier")
        cheques = referencing_cheques("OUTWARD", supplier.id)
        if policy == POLICY_REJECT and cheques:
            raise ConflictError(f"Supplier {supplier.id} is referenced by {len(cheques)} cheques")

        apply_to_cheques(cheques, policy)

        summary = f"{supplier.shop_name} / balance {format_cents(supplier.balance_cents)}"
        db.session.delete(supplier)
        db.session.flush()

        record_audit(
            actor,
            action="Supplier Deletion",
            target=f"ID: {supplier_id}",
            old_value=summary,
            new_value=f"policy {policy}",
            severity=SEVERITY_HIGH,
        )
        return {"policy": policy, "cheques": len(cheques)}

    return run_with_retry(_op)
