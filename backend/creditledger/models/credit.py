from __future__ import annotations

from ..extensions import db
from creditledger.time_utils import to_iso_date, to_utc_z, utcnow


class Buyer(db.Model):
    """
    Wholesale credit customer.

    BALANCE: current_credit_cents is the running outstanding balance. It is
    only ever changed by ledger operations (sales, manual bills, payments
    and their deletions), never by profile edits.

    credit_limit_cents is informational; sales beyond it are allowed and
    surface as OVER utilization.
    """
    __tablename__ = "buyers"
    __table_args__ = (
        db.UniqueConstraint("display_code", name="uq_buyers_display_code"),
        db.Index("ix_buyers_shop_name", "shop_name"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    display_code = db.Column(db.String(32), nullable=True)

    shop_name = db.Column(db.String(255), nullable=False)
    contact_name = db.Column(db.String(255), nullable=False, default="Unspecified")
    location = db.Column(db.String(255), nullable=False, default="Unspecified")
    phone = db.Column(db.String(32), nullable=False)
    whatsapp_number = db.Column(db.String(32), nullable=True)

    credit_limit_cents = db.Column(db.Integer, nullable=False, default=0)
    current_credit_cents = db.Column(db.Integer, nullable=False, default=0)
    due_date = db.Column(db.Date, nullable=True)
    remarks = db.Column(db.Text, nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    payments = db.relationship(
        "BuyerPayment",
        backref="buyer",
        lazy=True,
        cascade="all, delete-orphan",
        order_by=lambda: [BuyerPayment.occurred_at.desc(), BuyerPayment.id.desc()],
    )
    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<Buyer id={self.id} code={self.display_code!r} credit={self.current_credit_cents}>"

    def sorted_payments(self) -> list["BuyerPayment"]:
        """Newest first by business time, then id (backfilled entries sort by their own timestamp)."""
        return sorted(self.payments, key=lambda p: (p.occurred_at, p.id or 0), reverse=True)

    def to_dict(self, include_payments: bool = True) -> dict:
        data = {
            "id": self.id,
            "display_code": self.display_code,
            "shop_name": self.shop_name,
            "contact_name": self.contact_name,
            "location": self.location,
            "phone": self.phone,
            "whatsapp_number": self.whatsapp_number,
            "credit_limit_cents": self.credit_limit_cents,
            "current_credit_cents": self.current_credit_cents,
            "due_date": to_iso_date(self.due_date),
            "remarks": self.remarks,
        }
        if include_payments:
            data["payments"] = [p.to_dict() for p in self.sorted_payments()]
        return data


class BuyerPayment(db.Model):
    """
    Settlement received from a buyer.

    IMMUTABLE: Never updated. Deleting a payment reinstates its amount on
    the buyer's outstanding credit.
    """
    __tablename__ = "buyer_payments"
    __table_args__ = (
        db.Index("ix_buyer_payments_buyer_occurred", "buyer_id", "occurred_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    buyer_id = db.Column(db.Integer, db.ForeignKey("buyers.id"), nullable=False, index=True)
    amount_cents = db.Column(db.Integer, nullable=False)
    branch = db.Column(db.String(32), nullable=False, index=True)
    method = db.Column(db.String(16), nullable=False)
    reference = db.Column(db.String(128), nullable=True)
    receipt_image = db.Column(db.Text, nullable=True)
    occurred_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, index=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "buyer_id": self.buyer_id,
            "amount_cents": self.amount_cents,
            "branch": self.branch,
            "method": self.method,
            "reference": self.reference,
            "receipt_image": self.receipt_image,
            "occurred_at": to_utc_z(self.occurred_at),
        }
