"""
Buyer credit tests.

Verifies:
- Sale / payment / deletion sequence keeps credit consistent
- Payments and reversals never push credit below zero
- Manual bills increase credit exactly once
- Deleted payments reinstate their amount
- Every balance change leaves one audit entry
"""

import random

import pytest

from creditledger.errors import NotFound, ValidationError
from creditledger.models import AuditLog, Buyer, Transaction
from creditledger.services import buyer_service, sales_service
from creditledger.services.balance_policy import buyer_credit_after


def _credit(db_session, buyer_id):
    db_session.expire_all()
    return db_session.get(Buyer, buyer_id).current_credit_cents


def _audit_actions(db_session):
    return [a.action for a in db_session.query(AuditLog).order_by(AuditLog.id).all()]


# =============================================================================
# SALE -> PAYMENT -> DELETION SCENARIO
# =============================================================================


class TestCreditScenario:
    def test_partial_sale_payment_then_delete(self, db_session, admin, buyer):
        sale = sales_service.record_sale(
            admin,
            branch="MAIN",
            type="WHOLESALE",
            lines=[],
            total_amount_cents=20000,
            paid_amount_cents=5000,
            buyer_id=buyer.id,
        )
        db_session.commit()
        assert sale.status == "PARTIAL"
        assert _credit(db_session, buyer.id) == 15000

        buyer_service.record_buyer_payment(admin, buyer_id=buyer.id, amount_cents=10000, branch="MAIN")
        db_session.commit()
        assert _credit(db_session, buyer.id) == 5000

        sales_service.delete_transaction(admin, sale.id)
        db_session.commit()
        assert _credit(db_session, buyer.id) == 0

    def test_retail_sale_does_not_touch_credit(self, db_session, admin, buyer):
        sales_service.record_sale(
            admin,
            branch="MAIN",
            type="RETAIL",
            lines=[],
            total_amount_cents=20000,
            paid_amount_cents=0,
            buyer_id=buyer.id,
        )
        db_session.commit()
        assert _credit(db_session, buyer.id) == 0

    def test_overpaid_sale_adds_nothing(self, db_session, admin, buyer):
        sale = sales_service.record_sale(
            admin,
            branch="MAIN",
            type="WHOLESALE",
            lines=[],
            total_amount_cents=1000,
            paid_amount_cents=1500,
            buyer_id=buyer.id,
        )
        db_session.commit()
        assert sale.status == "PAID"
        assert _credit(db_session, buyer.id) == 0

    def test_credit_method_requires_wholesale_buyer(self, db_session, admin, buyer):
        with pytest.raises(ValidationError):
            sales_service.record_sale(
                admin,
                branch="MAIN",
                type="RETAIL",
                lines=[],
                total_amount_cents=1000,
                paid_amount_cents=0,
                payment_method="CREDIT",
                buyer_id=buyer.id,
            )

    def test_unknown_buyer_is_not_found(self, db_session, admin):
        with pytest.raises(NotFound):
            sales_service.record_sale(
                admin,
                branch="MAIN",
                type="WHOLESALE",
                lines=[],
                total_amount_cents=1000,
                paid_amount_cents=0,
                buyer_id=999,
            )


# =============================================================================
# CLAMPS
# =============================================================================


class TestCreditClamps:
    def test_overpayment_clamps_to_zero(self, db_session, admin, buyer):
        sales_service.record_manual_bill(admin, buyer_id=buyer.id, amount_cents=3000, branch="MAIN")
        buyer_service.record_buyer_payment(admin, buyer_id=buyer.id, amount_cents=9000, branch="MAIN")
        db_session.commit()
        assert _credit(db_session, buyer.id) == 0

    def test_payment_on_zero_balance_stays_zero(self, db_session, admin, buyer):
        buyer_service.record_buyer_payment(admin, buyer_id=buyer.id, amount_cents=100, branch="B2")
        db_session.commit()
        assert _credit(db_session, buyer.id) == 0

    def test_non_positive_payment_rejected(self, db_session, admin, buyer):
        with pytest.raises(ValidationError):
            buyer_service.record_buyer_payment(admin, buyer_id=buyer.id, amount_cents=0, branch="MAIN")

    def test_reducer_floors_decrements_only(self):
        assert buyer_credit_after(100, -500) == 0
        assert buyer_credit_after(100, 500) == 600
        assert buyer_credit_after(0, 0) == 0


# =============================================================================
# MANUAL BILLS AND PAYMENT DELETION
# =============================================================================


class TestManualBillsAndPayments:
    def test_manual_bill_applied_once(self, db_session, admin, buyer):
        bill = sales_service.record_manual_bill(admin, buyer_id=buyer.id, amount_cents=25000, branch="B3")
        db_session.commit()

        assert _credit(db_session, buyer.id) == 25000
        assert bill.is_manual is True
        assert bill.lines == []
        assert bill.status == "UNPAID"
        assert bill.payment_method == "CREDIT"
        assert db_session.query(Transaction).count() == 1

    def test_deleting_manual_bill_reverses_it(self, db_session, admin, buyer):
        bill = sales_service.record_manual_bill(admin, buyer_id=buyer.id, amount_cents=25000, branch="B3")
        db_session.commit()
        sales_service.delete_transaction(admin, bill.id)
        db_session.commit()
        assert _credit(db_session, buyer.id) == 0

    def test_deleted_payment_is_reinstated(self, db_session, admin, buyer):
        sales_service.record_manual_bill(admin, buyer_id=buyer.id, amount_cents=4000, branch="MAIN")
        payment = buyer_service.record_buyer_payment(admin, buyer_id=buyer.id, amount_cents=6000, branch="MAIN")
        db_session.commit()
        assert _credit(db_session, buyer.id) == 0

        # The absorbed 2000 does not come back; the full payment amount does.
        buyer_service.delete_buyer_payment(admin, buyer.id, payment.id)
        db_session.commit()
        assert _credit(db_session, buyer.id) == 6000

    def test_delete_payment_of_other_buyer_is_not_found(self, db_session, admin, buyer):
        other = buyer_service.register_buyer(admin, {"shop_name": "Central Supermart", "phone": "+94719876543"})
        payment = buyer_service.record_buyer_payment(admin, buyer_id=other.id, amount_cents=100, branch="MAIN")
        db_session.commit()
        with pytest.raises(NotFound):
            buyer_service.delete_buyer_payment(admin, buyer.id, payment.id)

    def test_delete_transaction_with_orphaned_buyer_has_no_credit_effect(self, db_session, admin, buyer):
        bill = sales_service.record_manual_bill(admin, buyer_id=buyer.id, amount_cents=1000, branch="MAIN")
        db_session.commit()
        buyer_service.delete_buyer(admin, buyer.id, policy="KEEP")
        db_session.commit()

        sales_service.delete_transaction(admin, bill.id)
        db_session.commit()
        assert db_session.query(Transaction).count() == 0


# =============================================================================
# AUDIT TRAIL
# =============================================================================


class TestCreditAudit:
    def test_each_mutation_writes_one_entry(self, db_session, admin, buyer):
        before = len(_audit_actions(db_session))

        sale = sales_service.record_sale(
            admin, branch="MAIN", type="WHOLESALE", lines=[],
            total_amount_cents=1000, paid_amount_cents=0, buyer_id=buyer.id,
        )
        buyer_service.record_buyer_payment(admin, buyer_id=buyer.id, amount_cents=500, branch="MAIN")
        sales_service.delete_transaction(admin, sale.id)
        db_session.commit()

        assert _audit_actions(db_session)[before:] == ["POS Transaction", "Credit Payment", "Transaction Deletion"]

    def test_flagged_sale_adds_critical_entry(self, db_session, admin, buyer):
        sales_service.record_sale(
            admin, branch="MAIN", type="RETAIL", lines=[],
            total_amount_cents=1000, paid_amount_cents=1000, discount_cents=900, is_flagged=True,
        )
        db_session.commit()

        entries = db_session.query(AuditLog).order_by(AuditLog.id.desc()).limit(2).all()
        assert [(e.action, e.severity) for e in entries] == [("FRAUD ALERT", "CRITICAL"), ("POS Transaction", "LOW")]

    def test_failed_operation_leaves_no_entry(self, db_session, admin, buyer):
        before = db_session.query(AuditLog).count()
        with pytest.raises(NotFound):
            buyer_service.record_buyer_payment(admin, buyer_id=12345, amount_cents=100, branch="MAIN")
        db_session.rollback()
        assert db_session.query(AuditLog).count() == before


# =============================================================================
# RANDOM EVENT SEQUENCES
# =============================================================================


class TestCreditProperty:
    """Random sale/bill/payment/delete sequences against a reference model."""

    @pytest.mark.parametrize("seed", [1, 7, 42, 2024, 31337])
    def test_credit_matches_reference_after_every_step(self, db_session, admin, buyer, seed):
        rng = random.Random(seed)
        expected = 0
        open_sales = []     # (transaction_id, unpaid)
        payments = []       # (payment_id, amount)

        for _ in range(40):
            op = rng.choice(["sale", "bill", "payment", "delete_sale", "delete_payment"])

            if op == "sale":
                total = rng.randint(1, 50000)
                paid = rng.randint(0, total + 2000)
                sale = sales_service.record_sale(
                    admin, branch=rng.choice(["MAIN", "B1", "B2"]), type="WHOLESALE", lines=[],
                    total_amount_cents=total, paid_amount_cents=paid, buyer_id=buyer.id,
                )
                unpaid = max(0, total - paid)
                open_sales.append((sale.id, unpaid))
                expected = expected + unpaid

            elif op == "bill":
                amount = rng.randint(1, 30000)
                bill = sales_service.record_manual_bill(admin, buyer_id=buyer.id, amount_cents=amount, branch="MAIN")
                open_sales.append((bill.id, amount))
                expected = expected + amount

            elif op == "payment":
                amount = rng.randint(1, 40000)
                payment = buyer_service.record_buyer_payment(
                    admin, buyer_id=buyer.id, amount_cents=amount, branch="MAIN",
                )
                payments.append((payment.id, amount))
                expected = max(0, expected - amount)

            elif op == "delete_sale" and open_sales:
                txn_id, unpaid = open_sales.pop(rng.randrange(len(open_sales)))
                sales_service.delete_transaction(admin, txn_id)
                expected = max(0, expected - unpaid)

            elif op == "delete_payment" and payments:
                payment_id, amount = payments.pop(rng.randrange(len(payments)))
                buyer_service.delete_buyer_payment(admin, buyer.id, payment_id)
                expected = expected + amount

            db_session.commit()
            actual = _credit(db_session, buyer.id)
            assert actual >= 0
            assert actual == expected, f"seed={seed} op={op}"
