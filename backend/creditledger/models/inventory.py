from __future__ import annotations

from ..extensions import db


class Item(db.Model):
    """
    Catalog item sold at wholesale or retail price.

    STOCK: Quantities live in ItemStock rows, one per branch. There is no
    global scalar stock; the item's total is the sum of its branch pools.
    """
    __tablename__ = "items"
    __table_args__ = (
        db.Index("ix_items_category_name", "category", "name"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    category = db.Column(db.String(64), nullable=False, default="General")

    # Authoritative storage in cents
    wholesale_price_cents = db.Column(db.Integer, nullable=False, default=0)
    retail_price_cents = db.Column(db.Integer, nullable=False, default=0)

    stock_rows = db.relationship(
        "ItemStock",
        backref="item",
        lazy=True,
        cascade="all, delete-orphan",
        order_by="ItemStock.branch",
    )

    def __repr__(self) -> str:
        return f"<Item id={self.id} name={self.name!r}>"

    def stock_by_branch(self) -> dict[str, int]:
        return {row.branch: row.quantity for row in sorted(self.stock_rows, key=lambda r: r.branch)}

    @property
    def total_stock(self) -> int:
        return sum(row.quantity for row in self.stock_rows)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "category": self.category,
            "wholesale_price_cents": self.wholesale_price_cents,
            "retail_price_cents": self.retail_price_cents,
            "stock": self.stock_by_branch(),
            "total_stock": self.total_stock,
        }


class ItemStock(db.Model):
    """
    Per-branch stock pool for an item.

    INVARIANT: quantity >= 0 (CHECK constraint + service-side clamps).
    """
    __tablename__ = "item_stock"
    __table_args__ = (
        db.UniqueConstraint("item_id", "branch", name="uq_item_stock_item_branch"),
        db.CheckConstraint("quantity >= 0", name="ck_item_stock_non_negative"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    item_id = db.Column(db.Integer, db.ForeignKey("items.id"), nullable=False, index=True)
    branch = db.Column(db.String(32), nullable=False, index=True)
    quantity = db.Column(db.Integer, nullable=False, default=0)
    version_id = db.Column(db.Integer, nullable=False, default=1)

    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<ItemStock item_id={self.item_id} branch={self.branch} quantity={self.quantity}>"
