# Overview: Service-layer operations for the audit trail; append-only, written inside the caller's transaction.

"""
Audit Recorder Invariants (authoritative)

- One entry per mutating ledger operation, written in the same DB
  transaction as the mutation it describes.
- No updates and no deletes. There is no API for either.
- Reads are newest first by occurred_at, then id.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from ..extensions import db
from ..models import AuditLog
from creditledger.errors import ValidationError
from creditledger.time_utils import utcnow


SEVERITY_LOW = "LOW"
SEVERITY_MEDIUM = "MEDIUM"
SEVERITY_HIGH = "HIGH"
SEVERITY_CRITICAL = "CRITICAL"

VALID_SEVERITIES = [SEVERITY_LOW, SEVERITY_MEDIUM, SEVERITY_HIGH, SEVERITY_CRITICAL]

ROLE_SUPER_ADMIN = "SUPER_ADMIN"
ROLE_BRANCH_ADMIN = "BRANCH_ADMIN"
ROLE_STAFF = "STAFF"

VALID_ROLES = [ROLE_SUPER_ADMIN, ROLE_BRANCH_ADMIN, ROLE_STAFF]


@dataclass(frozen=True)
class Actor:
    """Who performed a mutation. Recorded on every audit entry."""
    user_id: str
    role: str
    branch: str

    @classmethod
    def system(cls) -> "Actor":
        return cls(user_id="system", role=ROLE_SUPER_ADMIN, branch="ALL")


def record_audit(
    actor: Actor,
    *,
    action: str,
    target: str,
    old_value: Optional[str] = None,
    new_value: Optional[str] = None,
    severity: str = SEVERITY_LOW,
    occurred_at: Optional[datetime] = None,
) -> AuditLog:
    """
    Append an audit entry.

    - No domain logic here.
    - Flushes so the entry gets an id without committing; the caller's
      commit (or rollback) covers both the mutation and its audit entry.
    """
    entry = AuditLog(
        user_id=actor.user_id,
        user_role=actor.role,
        branch=actor.branch,
        action=action,
        target=target,
        old_value=old_value,
        new_value=new_value,
        severity=severity,
        occurred_at=occurred_at or utcnow(),
    )
    db.session.add(entry)
    db.session.flush()
    return entry


def list_audit_logs(
    *,
    severity: str | None = None,
    branch: str | None = None,
    limit: int = 100,
) -> list[AuditLog]:
    query = db.session.query(AuditLog)
    if severity:
        severity = severity.upper()
        if severity not in VALID_SEVERITIES:
            raise ValidationError(f"severity must be one of {VALID_SEVERITIES}")
        query = query.filter(AuditLog.severity == severity)
    if branch:
        query = query.filter(AuditLog.branch == branch.upper())
    return (
        query.order_by(AuditLog.occurred_at.desc(), AuditLog.id.desc())
        .limit(limit)
        .all()
    )


def format_cents(cents: int) -> str:
    """Human-readable amount for audit old/new values."""
    sign = "-" if cents < 0 else ""
    whole, frac = divmod(abs(cents), 100)
    return f"{sign}{whole:,}.{frac:02d}"
