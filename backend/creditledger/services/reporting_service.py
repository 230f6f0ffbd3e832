# Overview: Read-only reporting; receivable aging, branch exposure, scorecard, dashboard figures and sales analytics.

from __future__ import annotations

from datetime import datetime

from ..extensions import db
from ..models import AuditLog, Buyer, Expense, Item, SaleLine, Transaction
from ..validation import configured_branches
from creditledger.time_utils import age_in_days, to_utc_z, utcnow
from .audit_service import SEVERITY_CRITICAL, SEVERITY_HIGH
from .buyer_service import utilization
from .sales_service import METHOD_CARD, METHOD_CASH, METHOD_CHEQUE, METHOD_CREDIT, STATUS_PAID


TIER_1_MAX_DAYS = 30
TIER_2_MAX_DAYS = 60

# Scorecard weights (currency units)
REVENUE_TARGET = 100000
REVENUE_WEIGHT = 50
EXPENSE_WEIGHT = 25
CREDIT_WEIGHT = 25

ANALYTICS_TOP_N = 5
WATCHLIST_UTILIZATION = 0.9


def _open_transactions(buyer_id: int) -> list[Transaction]:
    return (
        db.session.query(Transaction)
        .filter(Transaction.buyer_id == buyer_id, Transaction.status != STATUS_PAID)
        .order_by(Transaction.occurred_at.asc(), Transaction.id.asc())
        .all()
    )


def compute_aging_buckets(buyer_id: int, as_of: datetime | None = None) -> dict:
    """
    Bucket a buyer's open balances by age.

    Tiers: [0, 30], [31, 60], [61, inf) whole days, rounded up. A bill
    dated after as_of counts as age 0. Pure read; the same as_of over the
    same data always yields the same result.
    """
    as_of = as_of or utcnow()
    buckets = {"tier_0_30_cents": 0, "tier_31_60_cents": 0, "tier_61_plus_cents": 0}

    for txn in _open_transactions(buyer_id):
        age = age_in_days(txn.occurred_at, as_of)
        if age <= TIER_1_MAX_DAYS:
            buckets["tier_0_30_cents"] += txn.unpaid_amount_cents
        elif age <= TIER_2_MAX_DAYS:
            buckets["tier_31_60_cents"] += txn.unpaid_amount_cents
        else:
            buckets["tier_61_plus_cents"] += txn.unpaid_amount_cents

    buckets["total_cents"] = sum(buckets.values())
    return buckets


def compute_branch_exposure(buyer_id: int) -> list[tuple[str, int]]:
    """Open balance per branch for one buyer, largest first (ties by branch code)."""
    exposure: dict[str, int] = {}
    for txn in _open_transactions(buyer_id):
        exposure[txn.branch] = exposure.get(txn.branch, 0) + txn.unpaid_amount_cents
    return sorted(exposure.items(), key=lambda kv: (-kv[1], kv[0]))


def compute_branch_scorecard() -> list[dict]:
    """
    Score every configured branch out of 100 and rank them.

    - revenue: min(sales / 100000 * 50, 50)
    - expense efficiency: max(0, 25 - expenses / sales * 100)
    - credit safety: max(0, 25 - credit issued / sales * 100)

    Sales of zero divide by 1. Credit issued is the unpaid part of
    CREDIT-method transactions. Rank 0 is the leading branch.
    """
    transactions = db.session.query(Transaction).all()
    expenses = db.session.query(Expense).all()

    rows = []
    for branch in configured_branches():
        sales = sum(t.total_amount_cents for t in transactions if t.branch == branch) / 100
        spent = sum(e.amount_cents for e in expenses if e.branch == branch) / 100
        credit = sum(
            t.unpaid_amount_cents
            for t in transactions
            if t.branch == branch and t.payment_method == METHOD_CREDIT
        ) / 100

        revenue_score = min(sales / REVENUE_TARGET * REVENUE_WEIGHT, REVENUE_WEIGHT)
        expense_efficiency = max(0, EXPENSE_WEIGHT - (spent / (sales or 1) * 100))
        credit_safety = max(0, CREDIT_WEIGHT - (credit / (sales or 1) * 100))

        rows.append({
            "branch": branch,
            "revenue_score": round(revenue_score, 2),
            "expense_efficiency": round(expense_efficiency, 2),
            "credit_safety": round(credit_safety, 2),
            "score": round(revenue_score + expense_efficiency + credit_safety),
        })

    rows.sort(key=lambda r: -r["score"])
    for rank, row in enumerate(rows):
        row["rank"] = rank
    return rows


def dashboard_metrics(branch: str | None = None) -> dict:
    """Headline figures for one branch, or every branch when branch is None."""
    txn_query = db.session.query(Transaction)
    expense_query = db.session.query(Expense)
    if branch:
        txn_query = txn_query.filter(Transaction.branch == branch)
        expense_query = expense_query.filter(Expense.branch == branch)
    transactions = txn_query.all()

    total_sales = sum(t.total_amount_cents for t in transactions)
    cash_in = sum(t.paid_amount_cents for t in transactions)
    total_expenses = sum(e.amount_cents for e in expense_query.all())
    return {
        "branch": branch or "ALL",
        "total_sales_cents": total_sales,
        "credit_issued_cents": sum(t.unpaid_amount_cents for t in transactions if t.payment_method == METHOD_CREDIT),
        "cash_in_cents": cash_in,
        "total_expenses_cents": total_expenses,
        # Cash actually collected minus spend; unpaid sales do not count.
        "net_cents": cash_in - total_expenses,
        "outstanding_receivables_cents": sum(b.current_credit_cents for b in db.session.query(Buyer).all()),
    }


def fraud_alerts(limit: int = 6) -> list[dict]:
    """Latest HIGH and CRITICAL audit entries."""
    entries = (
        db.session.query(AuditLog)
        .filter(AuditLog.severity.in_([SEVERITY_HIGH, SEVERITY_CRITICAL]))
        .order_by(AuditLog.occurred_at.desc(), AuditLog.id.desc())
        .limit(limit)
        .all()
    )
    return [e.to_dict() for e in entries]


def aging_report(as_of: datetime | None = None) -> dict:
    """Aging for every buyer with an open balance, plus portfolio totals."""
    as_of = as_of or utcnow()
    buyer_ids = [
        row[0]
        for row in db.session.query(Transaction.buyer_id)
        .filter(Transaction.buyer_id.isnot(None), Transaction.status != STATUS_PAID)
        .distinct()
        .order_by(Transaction.buyer_id.asc())
        .all()
    ]
    rows = []
    totals = {"tier_0_30_cents": 0, "tier_31_60_cents": 0, "tier_61_plus_cents": 0, "total_cents": 0}
    for buyer_id in buyer_ids:
        buckets = compute_aging_buckets(buyer_id, as_of)
        for key in totals:
            totals[key] += buckets[key]
        rows.append({"buyer_id": buyer_id, **buckets})
    return {"as_of": to_utc_z(as_of), "buyers": rows, "totals": totals}


# =============================================================================
# ANALYTICS
# =============================================================================

def branch_profitability() -> list[dict]:
    """Sales minus expenses per configured branch, most profitable first."""
    sales: dict[str, int] = {}
    for branch, total in db.session.query(Transaction.branch, Transaction.total_amount_cents).all():
        sales[branch] = sales.get(branch, 0) + total
    spent: dict[str, int] = {}
    for branch, amount in db.session.query(Expense.branch, Expense.amount_cents).all():
        spent[branch] = spent.get(branch, 0) + amount

    rows = [
        {
            "branch": branch,
            "sales_cents": sales.get(branch, 0),
            "expenses_cents": spent.get(branch, 0),
            "profit_cents": sales.get(branch, 0) - spent.get(branch, 0),
        }
        for branch in configured_branches()
    ]
    rows.sort(key=lambda r: (-r["profit_cents"], r["branch"]))
    return rows


def top_buyers(limit: int = ANALYTICS_TOP_N) -> list[dict]:
    """Buyers ranked by lifetime purchase total (every transaction billed to them)."""
    purchases: dict[int, int] = {}
    for buyer_id, total in (
        db.session.query(Transaction.buyer_id, Transaction.total_amount_cents)
        .filter(Transaction.buyer_id.isnot(None))
        .all()
    ):
        purchases[buyer_id] = purchases.get(buyer_id, 0) + total

    rows = [
        {**b.to_dict(include_payments=False), "total_purchase_cents": purchases.get(b.id, 0)}
        for b in db.session.query(Buyer).all()
    ]
    rows.sort(key=lambda r: (-r["total_purchase_cents"], r["id"]))
    return rows[:limit]


def credit_watchlist(limit: int = ANALYTICS_TOP_N) -> list[dict]:
    """Buyers above 90% of their credit limit, highest utilization first."""
    risky = [b for b in db.session.query(Buyer).all() if utilization(b) > WATCHLIST_UTILIZATION]
    risky.sort(key=lambda b: (-utilization(b), b.id))
    return [
        {**b.to_dict(include_payments=False), "utilization": round(utilization(b), 4)}
        for b in risky[:limit]
    ]


def _units_sold() -> dict[int, int]:
    units: dict[int, int] = {}
    for item_id, quantity in db.session.query(SaleLine.item_id, SaleLine.quantity).all():
        units[item_id] = units.get(item_id, 0) + quantity
    return units


def fast_moving_items(limit: int = ANALYTICS_TOP_N) -> list[dict]:
    units = _units_sold()
    rows = [{**i.to_dict(), "units_sold": units.get(i.id, 0)} for i in db.session.query(Item).all()]
    rows.sort(key=lambda r: (-r["units_sold"], r["name"], r["id"]))
    return rows[:limit]


def dead_stock(limit: int = ANALYTICS_TOP_N) -> list[dict]:
    """Items holding stock that have never sold, largest holding first."""
    units = _units_sold()
    rows = [
        i.to_dict()
        for i in db.session.query(Item).all()
        if units.get(i.id, 0) == 0 and i.total_stock > 0
    ]
    rows.sort(key=lambda r: (-r["total_stock"], r["name"], r["id"]))
    return rows[:limit]


def payment_mix() -> dict:
    """
    Liquid (CASH, CARD) versus receivable (CREDIT, CHEQUE) sales, by gross
    transaction total.
    """
    liquid = receivable = 0
    for method, total in db.session.query(Transaction.payment_method, Transaction.total_amount_cents).all():
        if method in (METHOD_CASH, METHOD_CARD):
            liquid += total
        elif method in (METHOD_CREDIT, METHOD_CHEQUE):
            receivable += total
    gross = liquid + receivable
    return {
        "liquid_cents": liquid,
        "receivable_cents": receivable,
        "receivable_share": round(receivable / gross, 4) if gross else 0.0,
    }


def analytics_summary() -> dict:
    return {
        "branch_profitability": branch_profitability(),
        "top_buyers": top_buyers(),
        "credit_watchlist": credit_watchlist(),
        "fast_moving_items": fast_moving_items(),
        "dead_stock": dead_stock(),
        "payment_mix": payment_mix(),
    }
