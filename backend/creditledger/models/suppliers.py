from __future__ import annotations

from ..extensions import db
from creditledger.time_utils import to_utc_z, utcnow


class Supplier(db.Model):
    """
    Upstream vendor the business buys from on account.

    BALANCE SIGN: positive = business owes the supplier; negative = the
    business overpaid and holds a credit with the supplier.
    INVARIANT: balance_cents == sum(PURCHASE_BILL) - sum(PAYMENT) over ledger.
    """
    __tablename__ = "suppliers"
    __table_args__ = (
        db.Index("ix_suppliers_category_name", "category", "shop_name"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    shop_name = db.Column(db.String(255), nullable=False)
    contact_name = db.Column(db.String(255), nullable=False, default="Unspecified")
    location = db.Column(db.String(255), nullable=False, default="Unspecified")
    phone = db.Column(db.String(32), nullable=False)
    whatsapp_number = db.Column(db.String(32), nullable=True)
    category = db.Column(db.String(64), nullable=False, default="Grocery")
    remarks = db.Column(db.Text, nullable=True)

    balance_cents = db.Column(db.Integer, nullable=False, default=0)
    version_id = db.Column(db.Integer, nullable=False, default=1)

    ledger_entries = db.relationship(
        "SupplierLedgerEntry",
        backref="supplier",
        lazy=True,
        cascade="all, delete-orphan",
        order_by=lambda: [SupplierLedgerEntry.occurred_at.desc(), SupplierLedgerEntry.id.desc()],
    )
    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<Supplier id={self.id} name={self.shop_name!r} balance={self.balance_cents}>"

    def sorted_ledger(self) -> list["SupplierLedgerEntry"]:
        return sorted(self.ledger_entries, key=lambda e: (e.occurred_at, e.id or 0), reverse=True)

    def to_dict(self, include_ledger: bool = True) -> dict:
        data = {
            "id": self.id,
            "shop_name": self.shop_name,
            "contact_name": self.contact_name,
            "location": self.location,
            "phone": self.phone,
            "whatsapp_number": self.whatsapp_number,
            "category": self.category,
            "remarks": self.remarks,
            "balance_cents": self.balance_cents,
        }
        if include_ledger:
            data["ledger"] = [e.to_dict() for e in self.sorted_ledger()]
        return data


class SupplierLedgerEntry(db.Model):
    """
    Signed movement on a supplier account.

    ENTRY TYPES:
    - PURCHASE_BILL: increases balance
    - PAYMENT: decreases balance
    """
    __tablename__ = "supplier_ledger_entries"
    __table_args__ = (
        db.Index("ix_supplier_ledger_supplier_occurred", "supplier_id", "occurred_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    supplier_id = db.Column(db.Integer, db.ForeignKey("suppliers.id"), nullable=False, index=True)
    type = db.Column(db.String(16), nullable=False)
    amount_cents = db.Column(db.Integer, nullable=False)
    branch = db.Column(db.String(32), nullable=False, index=True)
    method = db.Column(db.String(16), nullable=True)
    reference = db.Column(db.String(128), nullable=True)
    image_url = db.Column(db.Text, nullable=True)
    occurred_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, index=True)

    @property
    def signed_amount_cents(self) -> int:
        return self.amount_cents if self.type == "PURCHASE_BILL" else -self.amount_cents

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "supplier_id": self.supplier_id,
            "type": self.type,
            "amount_cents": self.amount_cents,
            "branch": self.branch,
            "method": self.method,
            "reference": self.reference,
            "image_url": self.image_url,
            "occurred_at": to_utc_z(self.occurred_at),
        }
