"""
Cheque lifecycle and expense tests.
"""

from datetime import date

import pytest

from creditledger.errors import InvalidTransition, NotFound, ValidationError
from creditledger.models import Buyer, Supplier
from creditledger.services import cheque_service, expense_service


def _cheque(admin, **overrides):
    fields = {
        "cheque_number": "100245",
        "bank": "Commercial Bank",
        "amount_cents": 250000,
        "due_date": "2026-11-01",
        "type": "INWARD",
        "branch": "MAIN",
    }
    fields.update(overrides)
    return cheque_service.register_cheque(admin, **fields)


class TestChequeLifecycle:
    def test_new_cheque_is_pending(self, db_session, admin, buyer):
        cheque = _cheque(admin, reference_id=buyer.id)
        db_session.commit()
        assert cheque.status == "PENDING"
        assert cheque.due_date == date(2026, 11, 1)
        assert cheque.reference_id == str(buyer.id)

    def test_pending_to_cleared_is_terminal(self, db_session, admin):
        cheque = _cheque(admin)
        db_session.commit()

        cheque_service.update_cheque_status(admin, cheque.id, "CLEARED")
        db_session.commit()
        assert cheque_service.get_cheque(cheque.id).status == "CLEARED"

        with pytest.raises(InvalidTransition):
            cheque_service.update_cheque_status(admin, cheque.id, "BOUNCED")
        with pytest.raises(InvalidTransition):
            cheque_service.update_cheque_status(admin, cheque.id, "PENDING")

    def test_bounced_is_terminal(self, db_session, admin):
        cheque = _cheque(admin)
        cheque_service.update_cheque_status(admin, cheque.id, "bounced")
        db_session.commit()
        with pytest.raises(InvalidTransition):
            cheque_service.update_cheque_status(admin, cheque.id, "CLEARED")

    def test_status_change_leaves_balances_alone(self, db_session, admin, buyer, supplier):
        inward = _cheque(admin, reference_id=buyer.id)
        outward = _cheque(admin, cheque_number="200", type="OUTWARD", reference_id=supplier.id)
        cheque_service.update_cheque_status(admin, inward.id, "CLEARED")
        cheque_service.update_cheque_status(admin, outward.id, "BOUNCED")
        db_session.commit()
        db_session.expire_all()
        assert db_session.get(Buyer, buyer.id).current_credit_cents == 0
        assert db_session.get(Supplier, supplier.id).balance_cents == 0

    def test_reference_must_exist(self, db_session, admin, buyer):
        with pytest.raises(NotFound):
            _cheque(admin, type="OUTWARD", reference_id=buyer.id + 100)

    def test_unknown_marker_accepted(self, db_session, admin):
        cheque = _cheque(admin, reference_id="unknown")
        assert cheque.reference_id == "UNKNOWN"

    def test_due_date_required(self, db_session, admin):
        with pytest.raises(ValidationError):
            _cheque(admin, due_date=None)

    def test_summary_and_ordering(self, db_session, admin):
        late = _cheque(admin, cheque_number="1", due_date="2026-12-01", amount_cents=300)
        early = _cheque(admin, cheque_number="2", due_date="2026-10-01", amount_cents=200, type="OUTWARD")
        bounced = _cheque(admin, cheque_number="3", amount_cents=50)
        cheque_service.update_cheque_status(admin, bounced.id, "BOUNCED")
        db_session.commit()

        assert [c.id for c in cheque_service.list_cheques(status="PENDING")] == [early.id, late.id]
        assert cheque_service.cheque_summary() == {
            "inward_pending_cents": 300,
            "outward_pending_cents": 200,
            "bounced_cents": 50,
        }


class TestExpenses:
    def test_category_matched_case_insensitively(self, db_session, admin):
        expense = expense_service.add_expense(
            admin, description="Shop rent", amount_cents=4500000, category="rent", branch="B1",
        )
        db_session.commit()
        assert expense.category == "Rent"

    def test_unknown_category_rejected(self, db_session, admin):
        with pytest.raises(ValidationError):
            expense_service.add_expense(admin, description="x", amount_cents=1, category="Lottery", branch="B1")

    def test_totals_cover_every_category(self, db_session, admin, cashier):
        expense_service.add_expense(cashier, description="Power", amount_cents=700, category="Utilities")
        expense_service.add_expense(cashier, description="Fuel", amount_cents=300, category="Transport")
        expense_service.add_expense(admin, description="Rent", amount_cents=900, category="Rent", branch="MAIN")
        db_session.commit()

        totals = expense_service.expense_totals_by_category(branch="B1")
        assert set(totals) == set(expense_service.EXPENSE_CATEGORIES)
        assert totals["Utilities"] == 700
        assert totals["Transport"] == 300
        assert totals["Rent"] == 0

    def test_delete_expense(self, db_session, admin):
        expense = expense_service.add_expense(admin, description="x", amount_cents=1, category="Other")
        db_session.commit()
        expense_service.delete_expense(admin, expense.id)
        db_session.commit()
        with pytest.raises(NotFound):
            expense_service.get_expense(expense.id)
