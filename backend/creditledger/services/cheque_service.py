# Overview: Service-layer operations for post-dated cheques; registration and the PENDING -> CLEARED/BOUNCED lifecycle.

"""
Cheque Lifecycle Invariants (authoritative)

- New cheques start PENDING.
- Allowed transitions: PENDING -> CLEARED, PENDING -> BOUNCED.
- CLEARED and BOUNCED are terminal; any other change raises InvalidTransition.
- Status changes never touch buyer credit or supplier balances. Settling a
  balance with a cheque is booked as a payment by the caller.
- INWARD cheques reference a buyer id, OUTWARD cheques a supplier id.
"""

from __future__ import annotations

from datetime import date

from ..extensions import db
from ..errors import InvalidTransition, NotFound, ValidationError
from ..models import Buyer, Cheque, Supplier
from ..validation import optional_date, optional_text, require_choice, require_positive_cents, require_text, resolve_branch
from .audit_service import Actor, SEVERITY_HIGH, SEVERITY_LOW, SEVERITY_MEDIUM, format_cents, record_audit
from .concurrency import get_locked, run_with_retry
from .orphan_policy import UNKNOWN_REFERENCE


STATUS_PENDING = "PENDING"
STATUS_CLEARED = "CLEARED"
STATUS_BOUNCED = "BOUNCED"
VALID_STATUSES = [STATUS_PENDING, STATUS_CLEARED, STATUS_BOUNCED]

TYPE_INWARD = "INWARD"
TYPE_OUTWARD = "OUTWARD"
VALID_TYPES = [TYPE_INWARD, TYPE_OUTWARD]

ALLOWED_TRANSITIONS = {
    STATUS_PENDING: {STATUS_CLEARED, STATUS_BOUNCED},
    STATUS_CLEARED: set(),
    STATUS_BOUNCED: set(),
}


def _check_reference(cheque_type: str, reference_id) -> str | None:
    if reference_id is None or not str(reference_id).strip():
        return None
    ref = str(reference_id).strip()
    if ref.upper() == UNKNOWN_REFERENCE:
        return UNKNOWN_REFERENCE

    model, label = (Buyer, "Buyer") if cheque_type == TYPE_INWARD else (Supplier, "Supplier")
    owner = db.session.query(model).filter_by(id=int(ref)).first() if ref.isdigit() else None
    if owner is None:
        raise NotFound(f"{label} {ref} not found")
    return str(owner.id)


def register_cheque(
    actor: Actor,
    *,
    cheque_number: str,
    bank: str,
    amount_cents: int,
    due_date: date | str,
    type: str,
    branch: str | None = None,
    reference_id=None,
    remarks: str | None = None,
) -> Cheque:
    cheque_type = require_choice(type, "type", VALID_TYPES)
    number = require_text(cheque_number, "cheque_number", max_length=64)
    bank = require_text(bank, "bank", max_length=128)
    amount = require_positive_cents(amount_cents, "amount_cents")
    due = optional_date(due_date, "due_date")
    if due is None:
        raise ValidationError("due_date is required")
    cheque_branch = resolve_branch(branch, actor.branch)
    remarks = optional_text(remarks, "remarks", max_length=2000)

    def _op():
        cheque = Cheque(
            branch=cheque_branch,
            cheque_number=number,
            bank=bank,
            amount_cents=amount,
            due_date=due,
            status=STATUS_PENDING,
            type=cheque_type,
            reference_id=_check_reference(cheque_type, reference_id),
            remarks=remarks,
        )
        db.session.add(cheque)
        db.session.flush()

        record_audit(
            actor,
            action="Cheque Registered",
            target=f"Cheque: {cheque.cheque_number}",
            old_value=None,
            new_value=f"{cheque_type} {format_cents(amount)} due {due.isoformat()}",
            severity=SEVERITY_LOW,
        )
        return cheque

    return run_with_retry(_op)


def update_cheque_status(actor: Actor, cheque_id: int, new_status: str) -> Cheque:
    """
    Move a PENDING cheque to CLEARED or BOUNCED.

    Raises:
        ValidationError: unknown status value
        NotFound: unknown cheque
        InvalidTransition: cheque is not PENDING, or target is PENDING
    """
    target = require_choice(new_status, "status", VALID_STATUSES)

    def _op():
        cheque = get_locked(Cheque, cheque_id, "Cheque")
        if target not in ALLOWED_TRANSITIONS.get(cheque.status, set()):
            raise InvalidTransition(f"Cannot move cheque {cheque.cheque_number} from {cheque.status} to {target}")

        before = cheque.status
        cheque.status = target
        db.session.flush()

        record_audit(
            actor,
            action="Cheque Status Update",
            target=f"Cheque: {cheque.cheque_number}",
            old_value=before,
            new_value=target,
            severity=SEVERITY_MEDIUM,
        )
        return cheque

    return run_with_retry(_op)


def delete_cheque(actor: Actor, cheque_id: int) -> None:
    def _op():
        cheque = get_locked(Cheque, cheque_id, "Cheque")
        summary = f"{cheque.type} {format_cents(cheque.amount_cents)} ({cheque.status})"
        number = cheque.cheque_number
        db.session.delete(cheque)
        db.session.flush()

        record_audit(
            actor,
            action="Cheque Deletion",
            target=f"Cheque: {number}",
            old_value=summary,
            new_value="None",
            severity=SEVERITY_HIGH,
        )

    run_with_retry(_op)


def get_cheque(cheque_id: int) -> Cheque:
    cheque = db.session.query(Cheque).filter_by(id=cheque_id).first()
    if cheque is None:
        raise NotFound(f"Cheque {cheque_id} not found")
    return cheque


def list_cheques(
    *,
    status: str | None = None,
    type: str | None = None,
    branch: str | None = None,
) -> list[Cheque]:
    query = db.session.query(Cheque)
    if status:
        query = query.filter(Cheque.status == require_choice(status, "status", VALID_STATUSES))
    if type:
        query = query.filter(Cheque.type == require_choice(type, "type", VALID_TYPES))
    if branch:
        query = query.filter(Cheque.branch == branch.upper())
    return query.order_by(Cheque.due_date.asc(), Cheque.id.asc()).all()


def cheque_summary() -> dict:
    """Totals shown on the cheque dashboard, in cents."""
    cheques = db.session.query(Cheque).all()
    return {
        "inward_pending_cents": sum(
            c.amount_cents for c in cheques if c.type == TYPE_INWARD and c.status == STATUS_PENDING
        ),
        "outward_pending_cents": sum(
            c.amount_cents for c in cheques if c.type == TYPE_OUTWARD and c.status == STATUS_PENDING
        ),
        "bounced_cents": sum(c.amount_cents for c in cheques if c.status == STATUS_BOUNCED),
    }
