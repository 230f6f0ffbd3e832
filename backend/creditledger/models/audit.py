from __future__ import annotations

from sqlalchemy import event

from ..extensions import db
from creditledger.errors import ConflictError
from creditledger.time_utils import to_utc_z, utcnow


class AuditLog(db.Model):
    """
    Append-only record of a mutating ledger operation.

    SEVERITY:
    - LOW: routine postings (sales, payments, new records)
    - MEDIUM: edits and status changes
    - HIGH: deletions and restores
    - CRITICAL: fraud alerts

    IMMUTABLE: ORM updates and deletes are refused (see listeners below).
    """
    __tablename__ = "audit_logs"
    __table_args__ = (
        db.Index("ix_audit_logs_severity_occurred", "severity", "occurred_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.String(64), nullable=False)
    user_role = db.Column(db.String(32), nullable=False)
    branch = db.Column(db.String(32), nullable=False, index=True)
    action = db.Column(db.String(128), nullable=False)
    target = db.Column(db.String(255), nullable=False)
    old_value = db.Column(db.Text, nullable=True)
    new_value = db.Column(db.Text, nullable=True)
    severity = db.Column(db.String(16), nullable=False, default="LOW")
    occurred_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, index=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "user_role": self.user_role,
            "branch": self.branch,
            "action": self.action,
            "target": self.target,
            "old_value": self.old_value,
            "new_value": self.new_value,
            "severity": self.severity,
            "occurred_at": to_utc_z(self.occurred_at),
        }


class WhatsAppLog(db.Model):
    """Outbound reminder/confirmation message record. Append-only, informational."""
    __tablename__ = "whatsapp_logs"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    recipient_name = db.Column(db.String(255), nullable=False)
    recipient_phone = db.Column(db.String(32), nullable=False)
    message_type = db.Column(db.String(32), nullable=False)
    branch = db.Column(db.String(32), nullable=False)
    status = db.Column(db.String(16), nullable=False, default="SENT")
    occurred_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, index=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "recipient_name": self.recipient_name,
            "recipient_phone": self.recipient_phone,
            "message_type": self.message_type,
            "branch": self.branch,
            "status": self.status,
            "occurred_at": to_utc_z(self.occurred_at),
        }


@event.listens_for(AuditLog, "before_update")
def _refuse_audit_update(mapper, connection, target):
    raise ConflictError(f"Audit log {target.id} is immutable")


@event.listens_for(AuditLog, "before_delete")
def _refuse_audit_delete(mapper, connection, target):
    raise ConflictError(f"Audit log {target.id} cannot be deleted")
