"""
Retry and locking helper tests.
"""

import pytest
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from creditledger.errors import NotFound, ValidationError
from creditledger.models import Buyer
from creditledger.services.concurrency import get_locked, run_with_retry


def _flaky(failures):
    calls = {"n": 0}

    def op():
        calls["n"] += 1
        if calls["n"] <= len(failures):
            raise failures[calls["n"] - 1]
        return "done"

    return op, calls


class TestRunWithRetry:
    def test_retries_lock_and_version_conflicts(self, db_session):
        op, calls = _flaky([
            OperationalError("UPDATE buyers", {}, Exception("database is locked")),
            StaleDataError("version mismatch"),
        ])
        assert run_with_retry(op, backoff_base=0) == "done"
        assert calls["n"] == 3

    def test_gives_up_after_attempts(self, db_session):
        op, calls = _flaky([StaleDataError("lost")] * 5)
        with pytest.raises(StaleDataError):
            run_with_retry(op, attempts=2, backoff_base=0)
        assert calls["n"] == 2

    def test_ledger_errors_are_not_retried(self, db_session):
        op, calls = _flaky([ValidationError("amount_cents must be positive")])
        with pytest.raises(ValidationError):
            run_with_retry(op, backoff_base=0)
        assert calls["n"] == 1


class TestGetLocked:
    def test_returns_row(self, db_session, buyer):
        assert get_locked(Buyer, buyer.id).shop_name == "Ali Traders"

    def test_missing_row_uses_label(self, db_session):
        with pytest.raises(NotFound, match="Buyer 404 not found"):
            get_locked(Buyer, 404, "Buyer")
