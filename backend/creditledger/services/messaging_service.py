# Overview: Reminder queue and outbound message log. Message text and delivery live with the caller.

from __future__ import annotations

from datetime import date

from ..extensions import db
from ..models import Buyer, Cheque, WhatsAppLog
from ..validation import ALL_BRANCHES, require_branch, require_choice, require_text
from creditledger.time_utils import to_iso_date, utcnow
from .cheque_service import STATUS_PENDING, TYPE_INWARD
from .concurrency import run_with_retry


MESSAGE_CREDIT_REMINDER = "CREDIT_REMINDER"
MESSAGE_CHEQUE_REMINDER = "CHEQUE_REMINDER"
MESSAGE_PAYMENT_CONFIRMATION = "PAYMENT_CONFIRMATION"
VALID_MESSAGE_TYPES = [MESSAGE_CREDIT_REMINDER, MESSAGE_CHEQUE_REMINDER, MESSAGE_PAYMENT_CONFIRMATION]


def log_outbound_message(
    *,
    recipient_name: str,
    recipient_phone: str,
    message_type: str,
    branch: str,
) -> WhatsAppLog:
    """Append a SENT record. Informational only; no audit entry and no balance effect."""
    name = require_text(recipient_name, "recipient_name")
    phone = require_text(recipient_phone, "recipient_phone", max_length=32)
    kind = require_choice(message_type, "message_type", VALID_MESSAGE_TYPES)
    branch = require_branch(branch)

    def _op():
        entry = WhatsAppLog(
            recipient_name=name,
            recipient_phone=phone,
            message_type=kind,
            branch=branch,
            status="SENT",
            occurred_at=utcnow(),
        )
        db.session.add(entry)
        db.session.flush()
        return entry

    return run_with_retry(_op)


def list_message_logs(limit: int = 100) -> list[WhatsAppLog]:
    return (
        db.session.query(WhatsAppLog)
        .order_by(WhatsAppLog.occurred_at.desc(), WhatsAppLog.id.desc())
        .limit(limit)
        .all()
    )


def reminder_queue(branch: str | None = None, as_of: date | None = None) -> list[dict]:
    """
    Who should be reminded, soonest due first.

    - Buyers with outstanding credit. With a branch filter, only buyers who
      have paid at that branch before.
    - PENDING cheques (branch-filtered). INWARD cheques pick up the linked
      buyer's phone.

    Entries without a due date sort last.
    """
    as_of = as_of or utcnow().date()
    scoped = branch and branch.upper() != ALL_BRANCHES
    branch = branch.upper() if scoped else None

    queue = []
    for buyer in db.session.query(Buyer).filter(Buyer.current_credit_cents > 0).all():
        if scoped and not any(p.branch == branch for p in buyer.payments):
            continue
        queue.append({
            "kind": "CREDIT",
            "message_type": MESSAGE_CREDIT_REMINDER,
            "reference": buyer.id,
            "name": buyer.shop_name,
            "phone": buyer.phone,
            "whatsapp": buyer.whatsapp_number or buyer.phone,
            "amount_cents": buyer.current_credit_cents,
            "due_date": buyer.due_date,
            "is_overdue": bool(buyer.due_date and buyer.due_date < as_of),
        })

    cheque_query = db.session.query(Cheque).filter(Cheque.status == STATUS_PENDING)
    if scoped:
        cheque_query = cheque_query.filter(Cheque.branch == branch)
    for cheque in cheque_query.all():
        linked = None
        if cheque.type == TYPE_INWARD and cheque.reference_id and cheque.reference_id.isdigit():
            linked = db.session.query(Buyer).filter_by(id=int(cheque.reference_id)).first()
        queue.append({
            "kind": "CHEQUE",
            "message_type": MESSAGE_CHEQUE_REMINDER,
            "reference": cheque.id,
            "name": f"{cheque.bank} (CHQ-{cheque.cheque_number})",
            "phone": linked.phone if linked else "",
            "whatsapp": (linked.whatsapp_number or linked.phone) if linked else "",
            "amount_cents": cheque.amount_cents,
            "due_date": cheque.due_date,
            "is_overdue": cheque.due_date < as_of,
            "cheque_type": cheque.type,
        })

    queue.sort(key=lambda r: (r["due_date"] is None, r["due_date"] or date.max, r["kind"], r["reference"]))
    for row in queue:
        row["due_date"] = to_iso_date(row["due_date"])
    return queue
