# Overview: Service-layer operations for branch expenses.

from __future__ import annotations

from datetime import datetime

from ..extensions import db
from ..errors import NotFound, ValidationError
from ..models import Expense
from ..validation import optional_text, require_positive_cents, require_text, resolve_branch
from creditledger.time_utils import utcnow
from .audit_service import Actor, SEVERITY_HIGH, SEVERITY_LOW, format_cents, record_audit
from .concurrency import get_locked, run_with_retry


EXPENSE_CATEGORIES = ["Rent", "Utilities", "Transport", "Salary", "Marketing", "Maintenance", "Other"]


def normalize_category(value) -> str:
    """Match a category case-insensitively and return its canonical spelling."""
    if value is not None:
        lookup = {c.lower(): c for c in EXPENSE_CATEGORIES}
        match = lookup.get(str(value).strip().lower())
        if match:
            return match
    raise ValidationError(f"category must be one of {EXPENSE_CATEGORIES}")


def add_expense(
    actor: Actor,
    *,
    description: str,
    amount_cents: int,
    category: str,
    branch: str | None = None,
    proof_image_url: str | None = None,
    occurred_at: datetime | None = None,
) -> Expense:
    description = require_text(description, "description")
    amount = require_positive_cents(amount_cents, "amount_cents")
    category = normalize_category(category)
    expense_branch = resolve_branch(branch, actor.branch)
    proof_image_url = optional_text(proof_image_url, "proof_image_url", max_length=4096)

    def _op():
        expense = Expense(
            branch=expense_branch,
            description=description,
            amount_cents=amount,
            category=category,
            proof_image_url=proof_image_url,
            occurred_at=occurred_at or utcnow(),
        )
        db.session.add(expense)
        db.session.flush()

        record_audit(
            actor,
            action="Expense Logged",
            target=f"Expense: {expense.id}",
            old_value=None,
            new_value=f"{category} {format_cents(amount)} @ {expense_branch}",
            severity=SEVERITY_LOW,
        )
        return expense

    return run_with_retry(_op)


def delete_expense(actor: Actor, expense_id: int) -> None:
    def _op():
        expense = get_locked(Expense, expense_id, "Expense")
        summary = f"{expense.category} {format_cents(expense.amount_cents)} @ {expense.branch}"
        db.session.delete(expense)
        db.session.flush()

        record_audit(
            actor,
            action="Expense Deletion",
            target=f"Expense: {expense_id}",
            old_value=summary,
            new_value="None",
            severity=SEVERITY_HIGH,
        )

    run_with_retry(_op)


def get_expense(expense_id: int) -> Expense:
    expense = db.session.query(Expense).filter_by(id=expense_id).first()
    if expense is None:
        raise NotFound(f"Expense {expense_id} not found")
    return expense


def list_expenses(*, branch: str | None = None, category: str | None = None) -> list[Expense]:
    query = db.session.query(Expense)
    if branch:
        query = query.filter(Expense.branch == branch.upper())
    if category:
        query = query.filter(Expense.category == normalize_category(category))
    return query.order_by(Expense.occurred_at.desc(), Expense.id.desc()).all()


def expense_totals_by_category(*, branch: str | None = None) -> dict[str, int]:
    """Every category appears, zero when nothing was spent on it."""
    totals = {category: 0 for category in EXPENSE_CATEGORIES}
    for expense in list_expenses(branch=branch):
        totals[expense.category] = totals.get(expense.category, 0) + expense.amount_cents
    return totals
