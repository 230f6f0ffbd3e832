from __future__ import annotations

from ..extensions import db
from creditledger.time_utils import to_utc_z, utcnow


class Transaction(db.Model):
    """
    A POS sale or a manual credit bill.

    IMMUTABLE: Transactions are never edited, only deleted. Status is
    derived from the amounts when the record is created.

    buyer_id is a soft reference (no FK): deleting a buyer under the KEEP
    orphan policy leaves the id in place.
    """
    __tablename__ = "transactions"
    __table_args__ = (
        db.Index("ix_transactions_buyer_status", "buyer_id", "status"),
        db.Index("ix_transactions_branch_occurred", "branch", "occurred_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    branch = db.Column(db.String(32), nullable=False, index=True)
    occurred_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, index=True)
    buyer_id = db.Column(db.Integer, nullable=True, index=True)

    type = db.Column(db.String(16), nullable=False)  # WHOLESALE, RETAIL
    is_manual = db.Column(db.Boolean, nullable=False, default=False)

    # Payment tracking (all amounts in cents)
    total_amount_cents = db.Column(db.Integer, nullable=False)
    paid_amount_cents = db.Column(db.Integer, nullable=False, default=0)
    discount_cents = db.Column(db.Integer, nullable=False, default=0)
    tax_cents = db.Column(db.Integer, nullable=False, default=0)
    payment_method = db.Column(db.String(16), nullable=False)
    status = db.Column(db.String(16), nullable=False, index=True)  # PAID, PARTIAL, UNPAID

    bill_image_url = db.Column(db.Text, nullable=True)
    is_flagged = db.Column(db.Boolean, nullable=False, default=False)

    lines = db.relationship(
        "SaleLine",
        backref="sale",
        lazy=True,
        cascade="all, delete-orphan",
        order_by="SaleLine.id",
    )

    def __repr__(self) -> str:
        return f"<Transaction id={self.id} type={self.type} status={self.status}>"

    @property
    def unpaid_amount_cents(self) -> int:
        """Outstanding part of the bill. Cash over-tender is change, not a credit."""
        return max(0, self.total_amount_cents - self.paid_amount_cents)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "branch": self.branch,
            "occurred_at": to_utc_z(self.occurred_at),
            "buyer_id": self.buyer_id,
            "type": self.type,
            "is_manual": self.is_manual,
            "lines": [line.to_dict() for line in self.lines],
            "total_amount_cents": self.total_amount_cents,
            "paid_amount_cents": self.paid_amount_cents,
            "discount_cents": self.discount_cents,
            "tax_cents": self.tax_cents,
            "payment_method": self.payment_method,
            "status": self.status,
            "bill_image_url": self.bill_image_url,
            "is_flagged": self.is_flagged,
        }


class SaleLine(db.Model):
    """Line item with the unit price snapshotted at sale time."""
    __tablename__ = "sale_lines"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    transaction_id = db.Column(db.Integer, db.ForeignKey("transactions.id"), nullable=False, index=True)
    item_id = db.Column(db.Integer, db.ForeignKey("items.id"), nullable=False, index=True)
    quantity = db.Column(db.Integer, nullable=False)
    unit_price_cents = db.Column(db.Integer, nullable=False)

    item = db.relationship("Item", lazy=True)

    @property
    def line_total_cents(self) -> int:
        return self.quantity * self.unit_price_cents

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "item_id": self.item_id,
            "quantity": self.quantity,
            "unit_price_cents": self.unit_price_cents,
        }
