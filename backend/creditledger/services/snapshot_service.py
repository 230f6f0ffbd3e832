# Overview: Whole-store snapshots for the persistence bridge and backup files.

"""
Snapshot Format

A snapshot is a JSON-ready dict with up to eight collections, each a list of
the models' to_dict() output:

    transactions, items, expenses, buyers, suppliers, cheques,
    auditLogs, whatsappLogs

Buyers carry their payments and suppliers their ledger nested inside.

LOAD SEMANTICS:
- apply_snapshot merges per key: a present key replaces that whole
  collection, a missing key leaves it untouched.
- import_backup replaces everything and requires explicit confirmation.

Ids and business timestamps are preserved, so build -> apply -> build is a
no-op.
"""

from __future__ import annotations

from flask import current_app

from ..extensions import db
from ..errors import ValidationError
from ..models import (
    AuditLog,
    Buyer,
    BuyerPayment,
    Cheque,
    Expense,
    Item,
    ItemStock,
    SaleLine,
    Supplier,
    SupplierLedgerEntry,
    Transaction,
    WhatsAppLog,
)
from creditledger.time_utils import parse_iso_date, parse_iso_datetime, to_utc_z, utcnow
from .audit_service import Actor, SEVERITY_HIGH, record_audit


COLLECTION_KEYS = [
    "transactions",
    "items",
    "expenses",
    "buyers",
    "suppliers",
    "cheques",
    "auditLogs",
    "whatsappLogs",
]

# Insert order respects sale_lines -> items; deletes run in reverse.
APPLY_ORDER = [
    "items",
    "buyers",
    "suppliers",
    "transactions",
    "cheques",
    "expenses",
    "auditLogs",
    "whatsappLogs",
]


# =============================================================================
# BUILD
# =============================================================================

def build_snapshot() -> dict:
    def _all(model):
        return db.session.query(model).order_by(model.id.asc()).all()

    return {
        "transactions": [t.to_dict() for t in _all(Transaction)],
        "items": [i.to_dict() for i in _all(Item)],
        "expenses": [e.to_dict() for e in _all(Expense)],
        "buyers": [b.to_dict(include_payments=True) for b in _all(Buyer)],
        "suppliers": [s.to_dict(include_ledger=True) for s in _all(Supplier)],
        "cheques": [c.to_dict() for c in _all(Cheque)],
        "auditLogs": [a.to_dict() for a in _all(AuditLog)],
        "whatsappLogs": [w.to_dict() for w in _all(WhatsAppLog)],
    }


# =============================================================================
# APPLY
# =============================================================================

def _field(row: dict, key: str, collection: str):
    if key not in row:
        raise ValidationError(f"{collection}: record is missing '{key}'")
    return row[key]


def _ts(row: dict, collection: str, key: str = "occurred_at"):
    value = row.get(key)
    if value is None:
        return utcnow()
    try:
        return parse_iso_datetime(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{collection}: bad {key} {value!r}")


def _day(row: dict, collection: str, key: str):
    value = row.get(key)
    try:
        return parse_iso_date(value) if value else None
    except (TypeError, ValueError):
        raise ValidationError(f"{collection}: bad {key} {value!r}")


def _clear(key: str) -> None:
    # Bulk deletes bypass ORM events, which is what lets a restore replace
    # the otherwise immutable audit log.
    if key == "transactions":
        db.session.query(SaleLine).delete(synchronize_session=False)
        db.session.query(Transaction).delete(synchronize_session=False)
    elif key == "items":
        db.session.query(ItemStock).delete(synchronize_session=False)
        db.session.query(Item).delete(synchronize_session=False)
    elif key == "buyers":
        db.session.query(BuyerPayment).delete(synchronize_session=False)
        db.session.query(Buyer).delete(synchronize_session=False)
    elif key == "suppliers":
        db.session.query(SupplierLedgerEntry).delete(synchronize_session=False)
        db.session.query(Supplier).delete(synchronize_session=False)
    elif key == "cheques":
        db.session.query(Cheque).delete(synchronize_session=False)
    elif key == "expenses":
        db.session.query(Expense).delete(synchronize_session=False)
    elif key == "auditLogs":
        db.session.query(AuditLog).delete(synchronize_session=False)
    elif key == "whatsappLogs":
        db.session.query(WhatsAppLog).delete(synchronize_session=False)


def _load(key: str, rows: list[dict]) -> None:
    if key == "items":
        for row in rows:
            item = Item(
                id=_field(row, "id", key),
                name=_field(row, "name", key),
                category=row.get("category") or "General",
                wholesale_price_cents=int(row.get("wholesale_price_cents") or 0),
                retail_price_cents=int(row.get("retail_price_cents") or 0),
            )
            db.session.add(item)
            for branch, quantity in sorted((row.get("stock") or {}).items()):
                db.session.add(ItemStock(item_id=item.id, branch=branch, quantity=max(0, int(quantity))))

    elif key == "buyers":
        for row in rows:
            db.session.add(Buyer(
                id=_field(row, "id", key),
                display_code=row.get("display_code"),
                shop_name=_field(row, "shop_name", key),
                contact_name=row.get("contact_name") or "Unspecified",
                location=row.get("location") or "Unspecified",
                phone=_field(row, "phone", key),
                whatsapp_number=row.get("whatsapp_number"),
                credit_limit_cents=int(row.get("credit_limit_cents") or 0),
                current_credit_cents=int(row.get("current_credit_cents") or 0),
                due_date=_day(row, key, "due_date"),
                remarks=row.get("remarks"),
            ))
            for p in row.get("payments") or []:
                db.session.add(BuyerPayment(
                    id=_field(p, "id", key),
                    buyer_id=row["id"],
                    amount_cents=int(_field(p, "amount_cents", key)),
                    branch=_field(p, "branch", key),
                    method=p.get("method") or "CASH",
                    reference=p.get("reference"),
                    receipt_image=p.get("receipt_image"),
                    occurred_at=_ts(p, key),
                ))

    elif key == "suppliers":
        for row in rows:
            db.session.add(Supplier(
                id=_field(row, "id", key),
                shop_name=_field(row, "shop_name", key),
                contact_name=row.get("contact_name") or "Unspecified",
                location=row.get("location") or "Unspecified",
                phone=_field(row, "phone", key),
                whatsapp_number=row.get("whatsapp_number"),
                category=row.get("category") or "Grocery",
                remarks=row.get("remarks"),
                balance_cents=int(row.get("balance_cents") or 0),
            ))
            for e in row.get("ledger") or []:
                db.session.add(SupplierLedgerEntry(
                    id=_field(e, "id", key),
                    supplier_id=row["id"],
                    type=_field(e, "type", key),
                    amount_cents=int(_field(e, "amount_cents", key)),
                    branch=_field(e, "branch", key),
                    method=e.get("method"),
                    reference=e.get("reference"),
                    image_url=e.get("image_url"),
                    occurred_at=_ts(e, key),
                ))

    elif key == "transactions":
        for row in rows:
            db.session.add(Transaction(
                id=_field(row, "id", key),
                branch=_field(row, "branch", key),
                occurred_at=_ts(row, key),
                buyer_id=row.get("buyer_id"),
                type=_field(row, "type", key),
                is_manual=bool(row.get("is_manual")),
                total_amount_cents=int(_field(row, "total_amount_cents", key)),
                paid_amount_cents=int(row.get("paid_amount_cents") or 0),
                discount_cents=int(row.get("discount_cents") or 0),
                tax_cents=int(row.get("tax_cents") or 0),
                payment_method=_field(row, "payment_method", key),
                status=_field(row, "status", key),
                bill_image_url=row.get("bill_image_url"),
                is_flagged=bool(row.get("is_flagged")),
            ))
            for line in row.get("lines") or []:
                db.session.add(SaleLine(
                    id=line.get("id"),
                    transaction_id=row["id"],
                    item_id=_field(line, "item_id", key),
                    quantity=int(_field(line, "quantity", key)),
                    unit_price_cents=int(_field(line, "unit_price_cents", key)),
                ))

    elif key == "cheques":
        for row in rows:
            due = _day(row, key, "due_date")
            if due is None:
                raise ValidationError("cheques: record is missing 'due_date'")
            db.session.add(Cheque(
                id=_field(row, "id", key),
                branch=_field(row, "branch", key),
                cheque_number=_field(row, "cheque_number", key),
                bank=_field(row, "bank", key),
                amount_cents=int(_field(row, "amount_cents", key)),
                due_date=due,
                status=row.get("status") or "PENDING",
                type=_field(row, "type", key),
                reference_id=row.get("reference_id"),
                remarks=row.get("remarks"),
            ))

    elif key == "expenses":
        for row in rows:
            db.session.add(Expense(
                id=_field(row, "id", key),
                branch=_field(row, "branch", key),
                description=_field(row, "description", key),
                amount_cents=int(_field(row, "amount_cents", key)),
                category=_field(row, "category", key),
                proof_image_url=row.get("proof_image_url"),
                occurred_at=_ts(row, key),
            ))

    elif key == "auditLogs":
        for row in rows:
            db.session.add(AuditLog(
                id=_field(row, "id", key),
                user_id=_field(row, "user_id", key),
                user_role=_field(row, "user_role", key),
                branch=_field(row, "branch", key),
                action=_field(row, "action", key),
                target=_field(row, "target", key),
                old_value=row.get("old_value"),
                new_value=row.get("new_value"),
                severity=row.get("severity") or "LOW",
                occurred_at=_ts(row, key),
            ))

    elif key == "whatsappLogs":
        for row in rows:
            db.session.add(WhatsAppLog(
                id=_field(row, "id", key),
                recipient_name=_field(row, "recipient_name", key),
                recipient_phone=_field(row, "recipient_phone", key),
                message_type=_field(row, "message_type", key),
                branch=_field(row, "branch", key),
                status=row.get("status") or "SENT",
                occurred_at=_ts(row, key),
            ))


def apply_snapshot(snapshot: dict) -> list[str]:
    """
    Merge a (possibly partial) snapshot into the store.

    Returns the collection keys that were replaced. Unknown keys are ignored.
    The caller commits.
    """
    if not isinstance(snapshot, dict):
        raise ValidationError("snapshot must be an object")

    present = [key for key in APPLY_ORDER if key in snapshot]
    for key in present:
        if not isinstance(snapshot[key], list):
            raise ValidationError(f"{key} must be a list")

    for key in reversed(present):
        _clear(key)
    db.session.expunge_all()

    for key in present:
        _load(key, snapshot[key])
    db.session.flush()
    return [key for key in COLLECTION_KEYS if key in present]


# =============================================================================
# BACKUP FILES
# =============================================================================

def export_backup() -> dict:
    return {
        "version": current_app.config["BACKUP_VERSION"],
        "timestamp": to_utc_z(utcnow()),
        "source": current_app.config["BACKUP_SOURCE"],
        "collections": build_snapshot(),
    }


def import_backup(actor: Actor, document: dict, *, confirm: bool = False) -> dict:
    """
    Replace the whole store with a backup document.

    Collections missing from the document are emptied. A HIGH "System
    Restore" entry is appended after the restored audit trail.

    Raises:
        ValidationError: confirmation missing or malformed document
    """
    if not confirm:
        raise ValidationError("Restoring a backup overwrites all data; confirmation required")
    if not isinstance(document, dict) or not isinstance(document.get("collections"), dict):
        raise ValidationError("Backup document must contain a 'collections' object")

    collections = document["collections"]
    full = {key: collections.get(key) or [] for key in COLLECTION_KEYS}
    apply_snapshot(full)

    record_audit(
        actor,
        action="System Restore",
        target="Database",
        old_value="Previous State",
        new_value=f"Backup {document.get('version', '?')} from {document.get('timestamp', '?')}",
        severity=SEVERITY_HIGH,
    )
    return {key: len(full[key]) for key in COLLECTION_KEYS}
