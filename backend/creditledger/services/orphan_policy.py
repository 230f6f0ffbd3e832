# Overview: Orphan handling for records that reference a deleted buyer or supplier.

from __future__ import annotations

from flask import current_app

from ..extensions import db
from ..models import Cheque
from ..validation import require_choice


POLICY_KEEP = "KEEP"
POLICY_CASCADE = "CASCADE"
POLICY_REASSIGN = "REASSIGN"
POLICY_REJECT = "REJECT"

VALID_POLICIES = [POLICY_KEEP, POLICY_CASCADE, POLICY_REASSIGN, POLICY_REJECT]

UNKNOWN_REFERENCE = "UNKNOWN"


def resolve_policy(policy: str | None) -> str:
    """Explicit policy wins; otherwise ORPHAN_POLICY from config (KEEP when unset)."""
    if policy is None:
        policy = current_app.config.get("ORPHAN_POLICY", POLICY_KEEP)
    return require_choice(policy, "policy", VALID_POLICIES)


def referencing_cheques(cheque_type: str, owner_id: int) -> list[Cheque]:
    return (
        db.session.query(Cheque)
        .filter(Cheque.type == cheque_type, Cheque.reference_id == str(owner_id))
        .order_by(Cheque.id.asc())
        .all()
    )


def apply_to_cheques(cheques: list[Cheque], policy: str) -> int:
    """
    Apply CASCADE or REASSIGN to cheques of a deleted owner.

    Returns the number of cheques touched. KEEP and REJECT are no-ops here;
    REJECT is checked by the caller before anything is deleted.
    """
    if policy == POLICY_CASCADE:
        for cheque in cheques:
            db.session.delete(cheque)
        return len(cheques)
    if policy == POLICY_REASSIGN:
        for cheque in cheques:
            cheque.reference_id = UNKNOWN_REFERENCE
        return len(cheques)
    return 0
