"""
Supplier ledger tests.

Verifies:
- Purchases raise and payments lower the balance, which may go negative
- Deleting an entry reverses exactly its signed effect
- Balance always equals the sum over the ledger
"""

import pytest

from creditledger.errors import NotFound, ValidationError
from creditledger.models import Supplier
from creditledger.services import supplier_service


def _balance(db_session, supplier_id):
    db_session.expire_all()
    return db_session.get(Supplier, supplier_id).balance_cents


def _ledger_sum(db_session, supplier_id):
    db_session.expire_all()
    return sum(e.signed_amount_cents for e in db_session.get(Supplier, supplier_id).ledger_entries)


class TestSupplierBalance:
    def test_overpayment_goes_negative(self, db_session, admin, supplier):
        supplier_service.record_supplier_purchase(admin, supplier_id=supplier.id, amount_cents=80000, branch="MAIN")
        db_session.commit()
        assert _balance(db_session, supplier.id) == 80000

        supplier_service.record_supplier_payment(
            admin, supplier_id=supplier.id, amount_cents=95000, branch="MAIN", method="CHEQUE", reference="CHQ-9910",
        )
        db_session.commit()
        assert _balance(db_session, supplier.id) == -15000
        assert _ledger_sum(db_session, supplier.id) == -15000

    def test_delete_entry_reverses_signed_effect(self, db_session, admin, supplier):
        purchase = supplier_service.record_supplier_purchase(
            admin, supplier_id=supplier.id, amount_cents=12000, branch="MAIN", reference="INV-8822",
        )
        payment = supplier_service.record_supplier_payment(admin, supplier_id=supplier.id, amount_cents=3500)
        db_session.commit()
        assert _balance(db_session, supplier.id) == 8500

        supplier_service.delete_supplier_ledger_entry(admin, supplier.id, payment.id)
        db_session.commit()
        assert _balance(db_session, supplier.id) == 12000

        supplier_service.delete_supplier_ledger_entry(admin, supplier.id, purchase.id)
        db_session.commit()
        assert _balance(db_session, supplier.id) == 0
        assert _ledger_sum(db_session, supplier.id) == 0

    def test_payment_defaults_to_actor_branch(self, db_session, cashier, supplier):
        entry = supplier_service.record_supplier_payment(cashier, supplier_id=supplier.id, amount_cents=100)
        db_session.commit()
        assert entry.branch == "B1"
        assert entry.method == "CASH"

    def test_unknown_entry_is_not_found(self, db_session, admin, supplier):
        with pytest.raises(NotFound):
            supplier_service.delete_supplier_ledger_entry(admin, supplier.id, 4040)

    def test_balance_cannot_be_set_on_registration(self, db_session, admin):
        with pytest.raises(ValidationError):
            supplier_service.register_supplier(admin, {"shop_name": "X", "phone": "1", "balance_cents": 500})


class TestSupplierDirectory:
    def test_defaults_on_registration(self, db_session, admin):
        supplier = supplier_service.register_supplier(admin, {"shop_name": "Osaka Wholesale Hub", "phone": "+94711223344"})
        db_session.commit()
        assert supplier.category == "Grocery"
        assert supplier.whatsapp_number == "+94711223344"
        assert supplier.contact_name == "Unspecified"

    def test_balance_filter(self, db_session, admin, supplier):
        settled = supplier_service.register_supplier(admin, {"shop_name": "Osaka Wholesale Hub", "phone": "1"})
        supplier_service.record_supplier_purchase(admin, supplier_id=supplier.id, amount_cents=100, branch="MAIN")
        db_session.commit()

        assert [s.id for s in supplier_service.list_suppliers(balance_filter="DEBT")] == [supplier.id]
        assert [s.id for s in supplier_service.list_suppliers(balance_filter="settled")] == [settled.id]

    def test_profile_update_refuses_balance(self, db_session, admin, supplier):
        with pytest.raises(ValidationError):
            supplier_service.update_supplier_profile(admin, supplier.id, {"balance_cents": 0})
