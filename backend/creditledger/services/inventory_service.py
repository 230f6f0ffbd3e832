# Overview: Service-layer operations for inventory; per-branch stock pools and transfers between them.

# backend/creditledger/services/inventory_service.py

from __future__ import annotations

from ..extensions import db
from ..errors import ConflictError, InsufficientStock, NotFound, ValidationError
from ..models import Item, ItemStock, SaleLine
from ..validation import (
    require_branch,
    require_choice,
    require_non_negative_cents,
    require_positive_quantity,
    require_text,
)
from .audit_service import Actor, SEVERITY_HIGH, SEVERITY_LOW, SEVERITY_MEDIUM, record_audit
from .balance_policy import stock_after_sale
from .concurrency import get_locked, lock_for_update, run_with_retry
"""
Inventory Invariants (authoritative)

Stock model:
- Stock is a mapping branch -> quantity, one ItemStock row per (item, branch).
- A missing row means zero on hand at that branch.
- quantity >= 0 always.

Movements:
- Sales consume the selling branch's pool, clamped at 0 (no backorders, no
  failure). POS checks availability when building the cart; concurrent carts
  can still oversell and the clamp absorbs it.
- Transfers are strict: the source pool must cover the quantity or the
  transfer fails with InsufficientStock and nothing moves.
- Manual counts set a branch pool to an absolute value.

Audit:
- Catalog edits, counts and transfers each append one audit entry.
- Sale consumption is covered by the sale's own audit entry.
"""


EDITABLE_ITEM_FIELDS = {"name", "category", "wholesale_price_cents", "retail_price_cents"}


def _stock_row(item_id: int, branch: str, *, lock: bool = True, create: bool = False) -> ItemStock | None:
    query = db.session.query(ItemStock).filter_by(item_id=item_id, branch=branch)
    if lock:
        query = lock_for_update(query)
    row = query.first()
    if row is None and create:
        row = ItemStock(item_id=item_id, branch=branch, quantity=0)
        db.session.add(row)
        db.session.flush()
    return row


def get_branch_stock(item_id: int, branch: str) -> int:
    row = _stock_row(item_id, branch, lock=False)
    return row.quantity if row else 0


def get_item(item_id: int) -> Item:
    item = db.session.query(Item).filter_by(id=item_id).first()
    if item is None:
        raise NotFound(f"Item {item_id} not found")
    return item


LOW_STOCK_THRESHOLD = 10

STOCK_STATUS_ALL = "ALL"
STOCK_STATUS_LOW = "LOW"
STOCK_STATUS_OUT = "OUT"
VALID_STOCK_STATUSES = [STOCK_STATUS_ALL, STOCK_STATUS_LOW, STOCK_STATUS_OUT]


def list_items(
    *,
    category: str | None = None,
    search: str | None = None,
    stock_status: str | None = None,
    branch: str | None = None,
) -> list[Item]:
    """
    Catalog listing, optionally narrowed by stock status.

    LOW means 0 < quantity < 10, OUT means quantity <= 0. The quantity is the
    given branch's pool, or the item's total across branches.
    """
    status = require_choice(stock_status or STOCK_STATUS_ALL, "stock_status", VALID_STOCK_STATUSES)
    if branch is not None:
        branch = require_branch(branch)

    query = db.session.query(Item)
    if category:
        query = query.filter(Item.category == category)
    if search:
        query = query.filter(Item.name.ilike(f"%{search.strip()}%"))
    items = query.order_by(Item.name.asc(), Item.id.asc()).all()
    if status == STOCK_STATUS_ALL:
        return items

    def _quantity(item: Item) -> int:
        if branch is None:
            return item.total_stock
        return item.stock_by_branch().get(branch, 0)

    if status == STOCK_STATUS_LOW:
        return [i for i in items if 0 < _quantity(i) < LOW_STOCK_THRESHOLD]
    return [i for i in items if _quantity(i) <= 0]


def create_item(
    actor: Actor,
    *,
    name: str,
    category: str | None = None,
    wholesale_price_cents: int = 0,
    retail_price_cents: int = 0,
    stock: dict[str, int] | None = None,
) -> Item:
    """
    Add a catalog item with optional opening stock per branch.

    Raises:
        ValidationError: bad name, negative price, unknown branch, bad quantity
    """
    name = require_text(name, "name")
    category = (category or "General").strip() or "General"
    wholesale = require_non_negative_cents(wholesale_price_cents, "wholesale_price_cents")
    retail = require_non_negative_cents(retail_price_cents, "retail_price_cents")

    opening: dict[str, int] = {}
    for branch, quantity in (stock or {}).items():
        branch = require_branch(branch)
        if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity < 0:
            raise ValidationError(f"Opening stock for {branch} must be a non-negative integer")
        opening[branch] = quantity

    def _op():
        item = Item(
            name=name,
            category=category,
            wholesale_price_cents=wholesale,
            retail_price_cents=retail,
        )
        db.session.add(item)
        db.session.flush()

        for branch, quantity in sorted(opening.items()):
            db.session.add(ItemStock(item_id=item.id, branch=branch, quantity=quantity))
        db.session.flush()

        record_audit(
            actor,
            action="Item Created",
            target=f"Item: {item.id}",
            old_value=None,
            new_value=f"{item.name} / stock {sum(opening.values())}",
            severity=SEVERITY_LOW,
        )
        return item

    return run_with_retry(_op)


def update_item(actor: Actor, item_id: int, changes: dict) -> Item:
    """Edit catalog fields. Stock is changed only through counts, sales and transfers."""
    unknown = set(changes) - EDITABLE_ITEM_FIELDS
    if unknown:
        raise ValidationError(f"Fields not editable: {sorted(unknown)}")

    cleaned: dict = {}
    if "name" in changes:
        cleaned["name"] = require_text(changes["name"], "name")
    if "category" in changes:
        cleaned["category"] = require_text(changes["category"], "category", max_length=64)
    for field in ("wholesale_price_cents", "retail_price_cents"):
        if field in changes:
            cleaned[field] = require_non_negative_cents(changes[field], field)

    def _op():
        item = get_locked(Item, item_id, "Item")
        before = {k: getattr(item, k) for k in cleaned}
        for key, value in cleaned.items():
            setattr(item, key, value)
        db.session.flush()

        record_audit(
            actor,
            action="Inventory Update",
            target=f"Item: {item.id}",
            old_value=str(before),
            new_value=str(cleaned),
            severity=SEVERITY_MEDIUM,
        )
        return item

    return run_with_retry(_op)


def set_branch_stock(actor: Actor, item_id: int, branch: str, quantity: int) -> ItemStock:
    """Physical count: set a branch pool to an absolute quantity."""
    branch = require_branch(branch)
    if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity < 0:
        raise ValidationError("quantity must be a non-negative integer")

    def _op():
        get_locked(Item, item_id, "Item")
        row = _stock_row(item_id, branch, create=True)
        before = row.quantity
        row.quantity = quantity
        db.session.flush()

        record_audit(
            actor,
            action="Stock Count",
            target=f"Item: {item_id} @ {branch}",
            old_value=str(before),
            new_value=str(quantity),
            severity=SEVERITY_MEDIUM,
        )
        return row

    return run_with_retry(_op)


def delete_item(actor: Actor, item_id: int) -> None:
    """
    Remove an item and its stock rows.

    Raises:
        ConflictError: item appears on recorded sale lines
    """
    def _op():
        item = get_locked(Item, item_id, "Item")
        referenced = db.session.query(SaleLine.id).filter_by(item_id=item_id).first()
        if referenced:
            raise ConflictError(f"Item {item_id} is referenced by recorded sales")

        summary = f"{item.name} / stock {item.total_stock}"
        db.session.delete(item)
        db.session.flush()

        record_audit(
            actor,
            action="Item Deletion",
            target=f"ID: {item_id}",
            old_value=summary,
            new_value="None",
            severity=SEVERITY_HIGH,
        )

    run_with_retry(_op)


def transfer_stock(
    actor: Actor,
    item_id: int,
    *,
    source_branch: str,
    target_branch: str,
    quantity: int,
) -> dict[str, int]:
    """
    Move stock between two branch pools atomically.

    Returns:
        The item's stock mapping after the transfer.

    Raises:
        ValidationError: bad quantity, unknown or identical branches
        NotFound: unknown item
        InsufficientStock: source pool holds less than quantity
    """
    source_branch = require_branch(source_branch, "source_branch")
    target_branch = require_branch(target_branch, "target_branch")
    quantity = require_positive_quantity(quantity)
    if source_branch == target_branch:
        raise ValidationError("Cannot transfer to the same branch")

    def _op():
        item = get_locked(Item, item_id, "Item")
        source = _stock_row(item_id, source_branch)
        on_hand = source.quantity if source else 0
        if on_hand < quantity:
            raise InsufficientStock(
                f"Insufficient stock for item {item_id} at {source_branch}. "
                f"On-hand: {on_hand}, requested: {quantity}"
            )

        target = _stock_row(item_id, target_branch, create=True)
        source.quantity = on_hand - quantity
        target.quantity = target.quantity + quantity
        db.session.flush()

        record_audit(
            actor,
            action="Stock Transfer",
            target=f"Item: {item_id}",
            old_value=f"{source_branch}: {on_hand}",
            new_value=f"{target_branch}: +{quantity}",
            severity=SEVERITY_MEDIUM,
        )
        db.session.refresh(item)
        return item.stock_by_branch()

    return run_with_retry(_op)


def consume_for_sale(item_id: int, branch: str, quantity: int) -> int:
    """
    Decrement a branch pool for a sale line, clamped at zero.

    Returns the quantity actually removed. Called inside the sale's own
    operation; no separate audit entry.
    """
    row = _stock_row(item_id, branch)
    if row is None:
        return 0
    before = row.quantity
    row.quantity = stock_after_sale(before, quantity)
    return before - row.quantity


def restore_from_sale(item_id: int, branch: str, quantity: int) -> None:
    """Put sold units back into a branch pool (optional on sale deletion)."""
    if db.session.query(Item.id).filter_by(id=item_id).first() is None:
        return
    row = _stock_row(item_id, branch, create=True)
    row.quantity = row.quantity + quantity
