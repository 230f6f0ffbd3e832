from __future__ import annotations

from ..extensions import db
from creditledger.time_utils import to_iso_date, to_utc_z, utcnow


class Cheque(db.Model):
    """
    Post-dated cheque received (INWARD) or issued (OUTWARD).

    LIFECYCLE: PENDING -> CLEARED | BOUNCED. Both outcomes are terminal.
    reference_id points at a buyer (INWARD) or supplier (OUTWARD) id, or
    holds a free-form marker such as UNKNOWN.
    """
    __tablename__ = "cheques"
    __table_args__ = (
        db.Index("ix_cheques_status_due", "status", "due_date"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    branch = db.Column(db.String(32), nullable=False, index=True)
    cheque_number = db.Column(db.String(64), nullable=False)
    bank = db.Column(db.String(128), nullable=False)
    amount_cents = db.Column(db.Integer, nullable=False)
    due_date = db.Column(db.Date, nullable=False)
    status = db.Column(db.String(16), nullable=False, default="PENDING", index=True)
    type = db.Column(db.String(16), nullable=False)
    reference_id = db.Column(db.String(64), nullable=True, index=True)
    remarks = db.Column(db.Text, nullable=True)
    version_id = db.Column(db.Integer, nullable=False, default=1)

    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "branch": self.branch,
            "cheque_number": self.cheque_number,
            "bank": self.bank,
            "amount_cents": self.amount_cents,
            "due_date": to_iso_date(self.due_date),
            "status": self.status,
            "type": self.type,
            "reference_id": self.reference_id,
            "remarks": self.remarks,
        }


class Expense(db.Model):
    """Branch running cost. No effect on buyer or supplier balances."""
    __tablename__ = "expenses"
    __table_args__ = (
        db.Index("ix_expenses_branch_occurred", "branch", "occurred_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    branch = db.Column(db.String(32), nullable=False, index=True)
    description = db.Column(db.String(255), nullable=False)
    amount_cents = db.Column(db.Integer, nullable=False)
    category = db.Column(db.String(32), nullable=False)
    proof_image_url = db.Column(db.Text, nullable=True)
    occurred_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, index=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "branch": self.branch,
            "description": self.description,
            "amount_cents": self.amount_cents,
            "category": self.category,
            "proof_image_url": self.proof_image_url,
            "occurred_at": to_utc_z(self.occurred_at),
        }
