"""
Reporting tests: aging buckets, branch exposure, scorecard, dashboard,
fraud predicate and consistency checks.
"""

from datetime import datetime, timedelta

import pytest

from creditledger.models import Supplier
from creditledger.services import (
    buyer_service,
    expense_service,
    fraud_service,
    inventory_service,
    reconciliation_service,
    reporting_service,
    sales_service,
    supplier_service,
)

AS_OF = datetime(2026, 6, 30, 12, 0, 0)


def _bill(admin, buyer, amount, *, days_ago=0, branch="MAIN", seconds=0):
    return sales_service.record_manual_bill(
        admin, buyer_id=buyer.id, amount_cents=amount, branch=branch,
        occurred_at=AS_OF - timedelta(days=days_ago, seconds=seconds),
    )


# =============================================================================
# AGING
# =============================================================================


class TestAging:
    @pytest.mark.parametrize(
        "days_ago,bucket",
        [
            (0, "tier_0_30_cents"),
            (30, "tier_0_30_cents"),
            (31, "tier_31_60_cents"),
            (60, "tier_31_60_cents"),
            (61, "tier_61_plus_cents"),
            (400, "tier_61_plus_cents"),
        ],
    )
    def test_boundaries(self, db_session, admin, buyer, days_ago, bucket):
        _bill(admin, buyer, 1000, days_ago=days_ago)
        db_session.commit()

        buckets = reporting_service.compute_aging_buckets(buyer.id, AS_OF)
        assert buckets[bucket] == 1000
        assert buckets["total_cents"] == 1000

    def test_partial_day_rounds_up(self, db_session, admin, buyer):
        _bill(admin, buyer, 1000, days_ago=30, seconds=1)
        db_session.commit()
        assert reporting_service.compute_aging_buckets(buyer.id, AS_OF)["tier_31_60_cents"] == 1000

    def test_future_dated_counts_as_current(self, db_session, admin, buyer):
        _bill(admin, buyer, 1000, days_ago=-3)
        db_session.commit()
        assert reporting_service.compute_aging_buckets(buyer.id, AS_OF)["tier_0_30_cents"] == 1000

    def test_paid_transactions_excluded(self, db_session, admin, buyer):
        sales_service.record_sale(
            admin, branch="MAIN", type="WHOLESALE", lines=[], buyer_id=buyer.id,
            total_amount_cents=5000, paid_amount_cents=5000, occurred_at=AS_OF - timedelta(days=90),
        )
        sales_service.record_sale(
            admin, branch="MAIN", type="WHOLESALE", lines=[], buyer_id=buyer.id,
            total_amount_cents=5000, paid_amount_cents=2000, occurred_at=AS_OF - timedelta(days=90),
        )
        db_session.commit()
        buckets = reporting_service.compute_aging_buckets(buyer.id, AS_OF)
        assert buckets == {
            "tier_0_30_cents": 0,
            "tier_31_60_cents": 0,
            "tier_61_plus_cents": 3000,
            "total_cents": 3000,
        }

    def test_idempotent(self, db_session, admin, buyer):
        _bill(admin, buyer, 1000, days_ago=5)
        _bill(admin, buyer, 2000, days_ago=45)
        _bill(admin, buyer, 4000, days_ago=75)
        db_session.commit()

        first = reporting_service.compute_aging_buckets(buyer.id, AS_OF)
        second = reporting_service.compute_aging_buckets(buyer.id, AS_OF)
        assert first == second
        assert first["total_cents"] == 7000

    def test_report_totals(self, db_session, admin, buyer):
        other = buyer_service.register_buyer(admin, {"shop_name": "Central Supermart", "phone": "2"})
        _bill(admin, buyer, 1000, days_ago=5)
        _bill(admin, other, 2000, days_ago=45)
        db_session.commit()

        report = reporting_service.aging_report(AS_OF)
        assert report["as_of"] == "2026-06-30T12:00:00Z"
        assert [row["buyer_id"] for row in report["buyers"]] == [buyer.id, other.id]
        assert report["totals"]["total_cents"] == 3000


# =============================================================================
# EXPOSURE
# =============================================================================


class TestExposure:
    def test_largest_branch_first(self, db_session, admin, buyer):
        _bill(admin, buyer, 1500, branch="B1")
        _bill(admin, buyer, 1000, branch="B2")
        _bill(admin, buyer, 2000, branch="B2")
        db_session.commit()
        assert reporting_service.compute_branch_exposure(buyer.id) == [("B2", 3000), ("B1", 1500)]

    def test_ties_ordered_by_branch(self, db_session, admin, buyer):
        _bill(admin, buyer, 500, branch="B4")
        _bill(admin, buyer, 500, branch="B3")
        db_session.commit()
        assert reporting_service.compute_branch_exposure(buyer.id) == [("B3", 500), ("B4", 500)]

    def test_empty_for_settled_buyer(self, db_session, buyer):
        assert reporting_service.compute_branch_exposure(buyer.id) == []


# =============================================================================
# SCORECARD AND DASHBOARD
# =============================================================================


class TestScorecard:
    def test_scores_and_ranking(self, db_session, admin, buyer):
        # B1: 200000.00 cash sales, 10000.00 expenses -> 50 + 20 + 25 = 95
        sales_service.record_sale(
            admin, branch="B1", type="RETAIL", lines=[],
            total_amount_cents=20000000, paid_amount_cents=20000000,
        )
        expense_service.add_expense(admin, description="Rent", amount_cents=1000000, category="Rent", branch="B1")
        # B2: 50000.00 on credit, unpaid -> 25 + 25 + 0 = 50
        sales_service.record_sale(
            admin, branch="B2", type="WHOLESALE", lines=[], buyer_id=buyer.id,
            total_amount_cents=5000000, paid_amount_cents=0, payment_method="CREDIT",
        )
        db_session.commit()

        rows = reporting_service.compute_branch_scorecard()
        by_branch = {row["branch"]: row for row in rows}

        assert by_branch["B1"]["score"] == 95
        assert by_branch["B1"]["expense_efficiency"] == 20
        assert by_branch["B2"]["score"] == 50
        assert by_branch["B2"]["credit_safety"] == 0
        # No activity: 0 revenue, full efficiency and safety.
        assert by_branch["MAIN"]["score"] == 50

        assert rows[0]["branch"] == "B1"
        assert rows[0]["rank"] == 0
        assert [row["rank"] for row in rows] == list(range(len(rows)))
        assert len(rows) == 6

    def test_dashboard_branch_filter(self, db_session, admin, buyer):
        sales_service.record_sale(
            admin, branch="B1", type="WHOLESALE", lines=[], buyer_id=buyer.id,
            total_amount_cents=10000, paid_amount_cents=4000, payment_method="CREDIT",
        )
        expense_service.add_expense(admin, description="Fuel", amount_cents=1500, category="Transport", branch="B1")
        expense_service.add_expense(admin, description="Rent", amount_cents=9999, category="Rent", branch="MAIN")
        db_session.commit()

        metrics = reporting_service.dashboard_metrics("B1")
        assert metrics["total_sales_cents"] == 10000
        assert metrics["credit_issued_cents"] == 6000
        assert metrics["cash_in_cents"] == 4000
        assert metrics["total_expenses_cents"] == 1500
        assert metrics["net_cents"] == 2500
        assert metrics["outstanding_receivables_cents"] == 6000

    def test_fraud_alerts_list_high_and_critical(self, db_session, admin, buyer):
        sales_service.record_sale(
            admin, branch="MAIN", type="RETAIL", lines=[],
            total_amount_cents=100, paid_amount_cents=100, is_flagged=True,
        )
        buyer_service.delete_buyer(admin, buyer.id)
        db_session.commit()

        alerts = reporting_service.fraud_alerts()
        assert {a["severity"] for a in alerts} == {"HIGH", "CRITICAL"}
        assert len(alerts) == 2


# =============================================================================
# FRAUD PREDICATE
# =============================================================================


class TestFraudPredicate:
    def test_threshold(self):
        predicate = fraud_service.make_high_discount_predicate(20)
        assert predicate({"total_amount_cents": 7900, "discount_cents": 2100}) is True
        assert predicate({"total_amount_cents": 8000, "discount_cents": 2000}) is False
        assert predicate({"total_amount_cents": 8000}) is False

    def test_default_reads_config(self, app):
        app.config["FRAUD_DISCOUNT_THRESHOLD_PCT"] = 5
        assert fraud_service.is_suspicious({"total_amount_cents": 9000, "discount_cents": 1000}) is True

    def test_installed_predicate_wins(self, app):
        fraud_service.install_predicate(app, lambda sale: sale.get("type") == "WHOLESALE")
        try:
            assert fraud_service.is_suspicious({"type": "WHOLESALE"}) is True
            assert fraud_service.is_suspicious({"type": "RETAIL", "discount_cents": 999}) is False
        finally:
            fraud_service.install_predicate(app)


# =============================================================================
# CONSISTENCY
# =============================================================================


class TestConsistency:
    def test_clean_ledger_is_ok(self, db_session, admin, buyer, supplier, item):
        _bill(admin, buyer, 1000)
        supplier_service.record_supplier_purchase(admin, supplier_id=supplier.id, amount_cents=800, branch="MAIN")
        db_session.commit()

        report = reconciliation_service.check_consistency()
        assert report["ok"] is True
        assert report["supplier_drift"] == []

    def test_supplier_drift_detected(self, db_session, admin, supplier):
        supplier_service.record_supplier_purchase(admin, supplier_id=supplier.id, amount_cents=800, branch="MAIN")
        db_session.commit()
        db_session.query(Supplier).filter_by(id=supplier.id).update({"balance_cents": 1})
        db_session.commit()

        report = reconciliation_service.check_consistency()
        assert report["ok"] is False
        assert report["supplier_drift"] == [{"supplier_id": supplier.id, "stored_cents": 1, "expected_cents": 800}]

    def test_absorbed_overpayment_is_informational(self, db_session, admin, buyer):
        _bill(admin, buyer, 1000)
        buyer_service.record_buyer_payment(admin, buyer_id=buyer.id, amount_cents=3000, branch="MAIN")
        _bill(admin, buyer, 500)
        db_session.commit()

        report = reconciliation_service.check_consistency()
        assert report["ok"] is True
        assert report["buyer_drift"] == [{"buyer_id": buyer.id, "stored_cents": 500, "naive_cents": -1500}]


class TestDashboardNet:
    def test_unpaid_sale_is_not_net_cash(self, db_session, admin):
        sales_service.record_sale(
            admin, branch="MAIN", type="RETAIL", lines=[],
            total_amount_cents=10000, paid_amount_cents=0,
        )
        db_session.commit()

        metrics = reporting_service.dashboard_metrics()
        assert metrics["total_sales_cents"] == 10000
        assert metrics["cash_in_cents"] == 0
        assert metrics["net_cents"] == 0


# =============================================================================
# ANALYTICS
# =============================================================================


@pytest.fixture
def trading_history(db_session, admin, buyer, item):
    """
    Ali buys 3 rice for cash at MAIN; Central (95% of limit) and Osaka (120%)
    run up manual bills at B2 and B3; B1 only spends.
    """
    sugar = inventory_service.create_item(admin, name="Refined Sugar 1kg", stock={"MAIN": 30})
    salt = inventory_service.create_item(admin, name="Table Salt 1kg", stock={"B1": 5})
    oil = inventory_service.create_item(admin, name="Refined Oil 1L")
    central = buyer_service.register_buyer(admin, {"shop_name": "Central Supermart", "phone": "2", "credit_limit_cents": 10000})
    osaka = buyer_service.register_buyer(admin, {"shop_name": "Osaka Wholesale Hub", "phone": "3", "credit_limit_cents": 10000})

    sales_service.record_sale(
        admin, branch="MAIN", type="WHOLESALE", buyer_id=buyer.id,
        lines=[{"item_id": item.id, "quantity": 3}],
        total_amount_cents=135000, paid_amount_cents=135000,
    )
    _bill(admin, central, 9500, branch="B2")
    _bill(admin, osaka, 12000, branch="B3")
    expense_service.add_expense(admin, description="Rent", amount_cents=2000, category="Rent", branch="B1")
    db_session.commit()
    return {"sugar": sugar, "salt": salt, "oil": oil, "central": central, "osaka": osaka}


class TestAnalytics:
    def test_branch_profitability(self, db_session, trading_history):
        rows = reporting_service.branch_profitability()
        assert [(r["branch"], r["profit_cents"]) for r in rows] == [
            ("MAIN", 135000),
            ("B3", 12000),
            ("B2", 9500),
            ("B4", 0),
            ("B5", 0),
            ("B1", -2000),
        ]
        assert rows[-1]["expenses_cents"] == 2000

    def test_top_buyers(self, db_session, buyer, trading_history):
        rows = reporting_service.top_buyers()
        assert [(r["id"], r["total_purchase_cents"]) for r in rows] == [
            (buyer.id, 135000),
            (trading_history["osaka"].id, 12000),
            (trading_history["central"].id, 9500),
        ]
        assert "payments" not in rows[0]

    def test_credit_watchlist(self, db_session, trading_history):
        rows = reporting_service.credit_watchlist()
        assert [r["shop_name"] for r in rows] == ["Osaka Wholesale Hub", "Central Supermart"]
        assert rows[0]["utilization"] == 1.2

    def test_fast_moving_and_dead_stock(self, db_session, item, trading_history):
        fast = reporting_service.fast_moving_items()
        assert (fast[0]["id"], fast[0]["units_sold"]) == (item.id, 3)
        assert [r["units_sold"] for r in fast[1:]] == [0, 0, 0]

        dead = reporting_service.dead_stock()
        assert [r["name"] for r in dead] == ["Refined Sugar 1kg", "Table Salt 1kg"]

    def test_payment_mix(self, db_session, trading_history):
        mix = reporting_service.payment_mix()
        assert mix["liquid_cents"] == 135000
        assert mix["receivable_cents"] == 21500
        assert mix["receivable_share"] == 0.1374

    def test_empty_ledger(self, db_session):
        summary = reporting_service.analytics_summary()
        assert summary["top_buyers"] == []
        assert summary["dead_stock"] == []
        assert summary["payment_mix"] == {"liquid_cents": 0, "receivable_cents": 0, "receivable_share": 0.0}
        assert len(summary["branch_profitability"]) == 6
