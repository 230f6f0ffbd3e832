"""
Snapshot, backup and sync tests.

Verifies:
- build -> apply -> build is a no-op
- Partial snapshots merge per collection
- Backup restore needs confirmation and replaces everything
- SyncManager debounces, survives bridge failures and reports status
- File and HTTP bridges honour the load/save contract
"""

import json
import threading
import time

import httpx
import pytest

from creditledger.errors import PersistenceUnavailable, ValidationError
from creditledger.models import AuditLog, Buyer, Expense
from creditledger.services import buyer_service, cheque_service, expense_service, sales_service, snapshot_service
from creditledger.services.sync_service import (
    STATUS_OFFLINE_PENDING,
    STATUS_SYNCED,
    HttpSnapshotBridge,
    JsonFileBridge,
    PersistenceBridge,
    SyncManager,
)


@pytest.fixture
def populated(db_session, admin, buyer, supplier, item):
    """A little of everything."""
    sales_service.record_sale(
        admin, branch="MAIN", type="WHOLESALE", buyer_id=buyer.id,
        lines=[{"item_id": item.id, "quantity": 2}],
        total_amount_cents=90000, paid_amount_cents=30000,
    )
    buyer_service.record_buyer_payment(admin, buyer_id=buyer.id, amount_cents=10000, branch="B2")
    cheque_service.register_cheque(
        admin, cheque_number="55", bank="NSB", amount_cents=4000,
        due_date="2026-12-24", type="INWARD", branch="MAIN", reference_id=buyer.id,
    )
    expense_service.add_expense(admin, description="Fuel", amount_cents=300, category="Transport", branch="B1")
    db_session.commit()


class TestSnapshotRoundTrip:
    def test_apply_then_build_is_stable(self, db_session, populated):
        first = snapshot_service.build_snapshot()
        snapshot_service.apply_snapshot(json.loads(json.dumps(first)))
        db_session.commit()
        db_session.expire_all()

        assert snapshot_service.build_snapshot() == first

    def test_snapshot_has_every_collection(self, db_session, populated):
        snapshot = snapshot_service.build_snapshot()
        assert list(snapshot) == snapshot_service.COLLECTION_KEYS
        buyer = snapshot["buyers"][0]
        assert buyer["current_credit_cents"] == 50000
        assert buyer["payments"][0]["amount_cents"] == 10000

    def test_missing_keys_are_left_alone(self, db_session, admin, populated):
        replaced = snapshot_service.apply_snapshot({"expenses": []})
        db_session.commit()

        assert replaced == ["expenses"]
        assert db_session.query(Expense).count() == 0
        assert db_session.query(Buyer).count() == 1

    def test_bad_collection_type_rejected(self, db_session):
        with pytest.raises(ValidationError):
            snapshot_service.apply_snapshot({"buyers": {"not": "a list"}})


class TestBackup:
    def test_import_requires_confirmation(self, db_session, admin, populated):
        document = snapshot_service.export_backup()
        with pytest.raises(ValidationError):
            snapshot_service.import_backup(admin, document)

    def test_import_replaces_everything_and_logs(self, db_session, admin, populated):
        document = snapshot_service.export_backup()
        document["collections"].pop("expenses")
        audit_count = len(document["collections"]["auditLogs"])

        counts = snapshot_service.import_backup(admin, document, confirm=True)
        db_session.commit()

        assert counts["expenses"] == 0
        assert db_session.query(Expense).count() == 0
        last = db_session.query(AuditLog).order_by(AuditLog.id.desc()).first()
        assert (last.action, last.severity) == ("System Restore", "HIGH")
        assert db_session.query(AuditLog).count() == audit_count + 1

    def test_export_metadata(self, app, db_session):
        document = snapshot_service.export_backup()
        assert document["version"] == app.config["BACKUP_VERSION"]
        assert document["source"] == app.config["BACKUP_SOURCE"]
        assert document["timestamp"].endswith("Z")


# =============================================================================
# SYNC MANAGER
# =============================================================================


def _wait_for(predicate, timeout=5.0):
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.02)
    return predicate()


class RecordingBridge(PersistenceBridge):
    def __init__(self, fail=False):
        self.saved = []
        self.fail = fail
        self.saved_event = threading.Event()

    def load(self):
        return self.saved[-1] if self.saved else {}

    def save(self, snapshot):
        if self.fail:
            raise PersistenceUnavailable("mirror offline")
        self.saved.append(snapshot)
        self.saved_event.set()
        return True


class TestSyncManager:
    def test_burst_produces_one_save_of_latest_state(self):
        bridge = RecordingBridge()
        state = {"n": 0}
        manager = SyncManager(bridge, lambda: {"n": state["n"]}, debounce_seconds=0.2)

        for n in range(1, 6):
            state["n"] = n
            manager.schedule()
        assert manager.status == STATUS_OFFLINE_PENDING

        assert bridge.saved_event.wait(5)
        # Let any stray timer fire before counting.
        threading.Event().wait(0.4)
        assert bridge.saved == [{"n": 5}]
        assert manager.status == STATUS_SYNCED
        assert manager.last_synced_at is not None

    def test_cancel_drops_pending_save(self):
        bridge = RecordingBridge()
        manager = SyncManager(bridge, dict, debounce_seconds=0.1)
        manager.schedule()
        manager.cancel()
        threading.Event().wait(0.3)
        assert bridge.saved == []
        assert manager.pending is False

    def test_failure_marks_offline_pending(self):
        manager = SyncManager(RecordingBridge(fail=True), dict, debounce_seconds=10)
        assert manager.flush() is False
        assert manager.status == STATUS_OFFLINE_PENDING
        assert manager.last_error == "mirror offline"

    def test_unexpected_error_does_not_raise(self):
        def boom():
            raise RuntimeError("snapshot exploded")

        manager = SyncManager(RecordingBridge(), boom)
        assert manager.flush() is False
        assert manager.status == STATUS_OFFLINE_PENDING

    def test_recovers_after_failure(self):
        bridge = RecordingBridge(fail=True)
        manager = SyncManager(bridge, lambda: {"ok": True})
        manager.flush()
        bridge.fail = False
        assert manager.flush() is True
        assert manager.status == STATUS_SYNCED
        assert manager.last_error is None

    def test_newer_schedule_during_save_is_written_last(self):
        class SlowFirstSave(RecordingBridge):
            def __init__(self):
                super().__init__()
                self.entered = threading.Event()
                self.release = threading.Event()

            def save(self, snapshot):
                if not self.entered.is_set():
                    self.entered.set()
                    self.release.wait(5)
                return super().save(snapshot)

        bridge = SlowFirstSave()
        state = {"v": 1}
        manager = SyncManager(bridge, lambda: {"v": state["v"]}, debounce_seconds=0.05)

        manager.schedule()
        assert bridge.entered.wait(5)

        state["v"] = 2
        manager.schedule()
        # Second timer fires and waits behind the running save.
        threading.Event().wait(0.3)
        assert manager.status == STATUS_OFFLINE_PENDING
        assert bridge.saved == []

        bridge.release.set()
        assert _wait_for(lambda: len(bridge.saved) == 2 and manager.status == STATUS_SYNCED)
        assert bridge.saved == [{"v": 1}, {"v": 2}]

    def test_save_finishing_after_newer_schedule_stays_pending(self):
        bridge = RecordingBridge()
        manager = SyncManager(bridge, dict, debounce_seconds=60)

        def save_and_reschedule(snapshot):
            manager.schedule()
            bridge.saved.append(snapshot)
            return True

        bridge.save = save_and_reschedule
        try:
            assert manager.flush() is True
            assert manager.status == STATUS_OFFLINE_PENDING
            assert manager.pending is True
        finally:
            manager.cancel()

    def test_load_failure_returns_empty(self):
        class Offline(PersistenceBridge):
            def load(self):
                raise PersistenceUnavailable("down")

        manager = SyncManager(Offline(), dict)
        assert manager.load() == {}
        assert manager.status == STATUS_OFFLINE_PENDING


# =============================================================================
# BRIDGES
# =============================================================================


class TestJsonFileBridge:
    def test_save_then_load(self, tmp_path):
        bridge = JsonFileBridge(str(tmp_path / "mirror" / "state.json"))
        assert bridge.load() == {}
        assert bridge.save({"items": [{"id": 1}]}) is True
        assert bridge.load() == {"items": [{"id": 1}]}

    def test_corrupt_file_loads_empty(self, tmp_path):
        path = tmp_path / "state.json"
        path.write_text("{not json", encoding="utf-8")
        assert JsonFileBridge(str(path)).load() == {}

    def test_unwritable_location_raises(self, tmp_path):
        blocker = tmp_path / "file"
        blocker.write_text("x", encoding="utf-8")
        bridge = JsonFileBridge(str(blocker / "state.json"))
        with pytest.raises(PersistenceUnavailable):
            bridge.save({})


class TestHttpSnapshotBridge:
    URL = "http://mirror.local/snapshot"

    def _bridge(self, handler):
        return HttpSnapshotBridge(self.URL, client=httpx.Client(transport=httpx.MockTransport(handler)))

    def test_put_and_get(self):
        stored = {}

        def handler(request):
            if request.method == "PUT":
                stored["body"] = json.loads(request.content)
                return httpx.Response(204)
            return httpx.Response(200, json=stored.get("body", {}))

        bridge = self._bridge(handler)
        assert bridge.save({"buyers": []}) is True
        assert bridge.load() == {"buyers": []}

    def test_missing_document_loads_empty(self):
        bridge = self._bridge(lambda request: httpx.Response(404))
        assert bridge.load() == {}

    def test_server_error_is_unavailable(self):
        bridge = self._bridge(lambda request: httpx.Response(500))
        with pytest.raises(PersistenceUnavailable):
            bridge.save({})
        with pytest.raises(PersistenceUnavailable):
            bridge.load()

    def test_network_error_is_unavailable(self):
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        bridge = self._bridge(handler)
        with pytest.raises(PersistenceUnavailable):
            bridge.save({})

    def test_non_json_body_is_unavailable(self):
        bridge = self._bridge(lambda request: httpx.Response(200, text="<html>"))
        with pytest.raises(PersistenceUnavailable):
            bridge.load()
