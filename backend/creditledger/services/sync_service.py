# Overview: Best-effort snapshot sync; persistence bridges plus a debounced, cancellable save scheduler.

"""
Persistence Sync

WHY: The ledger database is authoritative. A mirror (local JSON file or a
remote snapshot endpoint) receives a copy of the whole store after
mutations, so another node can pick it up or an operator can inspect it.

DESIGN:
- A bridge exposes load() -> dict and save(snapshot) -> bool.
- SyncManager debounces: every mutation reschedules one pending timer,
  cancelling the unfired one. Only the latest snapshot is written.
- Saves are serialized. schedule() bumps a generation counter; a save that
  finishes after a newer schedule leaves the status OFFLINE_PENDING, and a
  flush superseded while waiting for the running save never reaches the
  bridge.
- Save failures never roll back ledger state. They set the status to
  OFFLINE_PENDING, and the next scheduled save retries.

STATUS:
- SYNCED: last save succeeded (or nothing to do yet)
- SYNCING: a save is running
- OFFLINE_PENDING: the last save failed, or a save is scheduled but not run
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
import threading
from typing import Callable

import httpx
from flask import Flask

from ..errors import PersistenceUnavailable
from creditledger.time_utils import to_utc_z, utcnow


logger = logging.getLogger(__name__)

EXTENSION_KEY = "creditledger.sync"

STATUS_SYNCED = "SYNCED"
STATUS_SYNCING = "SYNCING"
STATUS_OFFLINE_PENDING = "OFFLINE_PENDING"


# =============================================================================
# BRIDGES
# =============================================================================

class PersistenceBridge:
    """Interface for snapshot storage."""

    def load(self) -> dict:
        raise NotImplementedError

    def save(self, snapshot: dict) -> bool:
        raise NotImplementedError


class JsonFileBridge(PersistenceBridge):
    """
    Local mirror file.

    Writes go to a temp file in the same directory and are moved into place,
    so a crash never leaves a half-written mirror. A missing or unreadable
    file loads as an empty snapshot.
    """

    def __init__(self, path: str):
        self.path = path

    def load(self) -> dict:
        try:
            with open(self.path, "r", encoding="utf-8") as fh:
                data = json.load(fh)
        except FileNotFoundError:
            return {}
        except (OSError, ValueError) as exc:
            logger.warning("Mirror file %s unreadable: %s", self.path, exc)
            return {}
        return data if isinstance(data, dict) else {}

    def save(self, snapshot: dict) -> bool:
        directory = os.path.dirname(os.path.abspath(self.path))
        try:
            os.makedirs(directory, exist_ok=True)
            fd, tmp_path = tempfile.mkstemp(prefix=".mirror-", suffix=".json", dir=directory)
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                json.dump(snapshot, fh, sort_keys=True)
            os.replace(tmp_path, self.path)
        except OSError as exc:
            raise PersistenceUnavailable(f"Mirror write failed: {exc}") from exc
        return True


class HttpSnapshotBridge(PersistenceBridge):
    """
    Remote snapshot document: GET to load, PUT to save.

    Network and HTTP errors surface as PersistenceUnavailable.
    """

    def __init__(self, url: str, timeout: float = 10.0, client: httpx.Client | None = None):
        if not url:
            raise ValueError("url is required")
        self.url = url
        self.timeout = timeout
        self._client = client

    def _get_client(self) -> httpx.Client:
        if self._client is None or self._client.is_closed:
            self._client = httpx.Client(timeout=self.timeout)
        return self._client

    def close(self) -> None:
        if self._client is not None and not self._client.is_closed:
            self._client.close()
            self._client = None

    def load(self) -> dict:
        try:
            response = self._get_client().get(self.url)
            if response.status_code == 404:
                return {}
            response.raise_for_status()
            data = response.json()
        except httpx.HTTPError as exc:
            raise PersistenceUnavailable(f"Snapshot load failed: {exc}") from exc
        except ValueError as exc:
            raise PersistenceUnavailable(f"Snapshot body is not JSON: {exc}") from exc
        return data if isinstance(data, dict) else {}

    def save(self, snapshot: dict) -> bool:
        try:
            response = self._get_client().put(self.url, json=snapshot)
            response.raise_for_status()
        except httpx.HTTPError as exc:
            raise PersistenceUnavailable(f"Snapshot save failed: {exc}") from exc
        return True


def bridge_from_config(config) -> PersistenceBridge:
    """Remote bridge when SYNC_REMOTE_URL is set, otherwise the local mirror file."""
    if config.get("SYNC_REMOTE_URL"):
        return HttpSnapshotBridge(config["SYNC_REMOTE_URL"], timeout=config.get("SYNC_TIMEOUT_SECONDS", 10))
    return JsonFileBridge(config.get("SYNC_MIRROR_PATH", "creditledger_mirror.json"))


# =============================================================================
# SCHEDULER
# =============================================================================

class SyncManager:
    """
    Debounced snapshot saver.

    snapshot_factory builds the snapshot when the timer fires (not when the
    save is scheduled), so a burst of mutations produces one save of the
    final state.
    """

    def __init__(
        self,
        bridge: PersistenceBridge,
        snapshot_factory: Callable[[], dict],
        *,
        debounce_seconds: float = 1.0,
    ):
        self.bridge = bridge
        self.snapshot_factory = snapshot_factory
        self.debounce_seconds = debounce_seconds
        self.status = STATUS_SYNCED
        self.last_synced_at: str | None = None
        self.last_error: str | None = None
        self._timer: threading.Timer | None = None
        self._generation = 0
        self._lock = threading.Lock()
        # Held across snapshot build and bridge.save
        self._save_lock = threading.Lock()

    def schedule(self) -> None:
        """Cancel any unfired save and start a fresh debounce window."""
        with self._lock:
            if self._timer is not None:
                self._timer.cancel()
            self._generation += 1
            self.status = STATUS_OFFLINE_PENDING
            timer = threading.Timer(self.debounce_seconds, self.flush)
            timer.daemon = True
            self._timer = timer
            timer.start()

    def cancel(self) -> None:
        with self._lock:
            if self._timer is not None:
                self._timer.cancel()
                self._timer = None

    @property
    def pending(self) -> bool:
        with self._lock:
            return self._timer is not None and self._timer.is_alive()

    def flush(self) -> bool:
        """
        Save now. Returns False (and marks OFFLINE_PENDING) on failure.

        Waits for a save already in flight. If a newer schedule() arrives
        meanwhile, this save is skipped and the newer timer owns the write.
        """
        with self._lock:
            if self._timer is not None:
                self._timer.cancel()
            self._timer = None
            generation = self._generation

        with self._save_lock:
            with self._lock:
                if self._generation != generation:
                    logger.debug("Snapshot save superseded by generation %s", self._generation)
                    return True
                self.status = STATUS_SYNCING

            try:
                ok = bool(self.bridge.save(self.snapshot_factory()))
            except PersistenceUnavailable as exc:
                logger.warning("Snapshot sync failed: %s", exc)
                ok = False
                self.last_error = str(exc)
            except Exception as exc:
                logger.exception("Snapshot sync crashed")
                ok = False
                self.last_error = str(exc)

            with self._lock:
                if ok:
                    self.last_synced_at = to_utc_z(utcnow())
                    self.last_error = None
                    logger.debug("Snapshot synced at %s", self.last_synced_at)
                if ok and self._generation == generation:
                    self.status = STATUS_SYNCED
                else:
                    self.status = STATUS_OFFLINE_PENDING
        return ok

    def load(self) -> dict:
        """Fetch the mirrored snapshot; empty dict when the bridge is unavailable."""
        try:
            return self.bridge.load()
        except PersistenceUnavailable as exc:
            logger.warning("Snapshot load failed: %s", exc)
            self.status = STATUS_OFFLINE_PENDING
            self.last_error = str(exc)
            return {}

    def describe(self) -> dict:
        return {
            "status": self.status,
            "pending": self.pending,
            "last_synced_at": self.last_synced_at,
            "last_error": self.last_error,
            "bridge": type(self.bridge).__name__,
        }


# =============================================================================
# APP WIRING
# =============================================================================

def init_sync(app: Flask, bridge: PersistenceBridge | None = None) -> SyncManager:
    """
    Attach a SyncManager to the app.

    The snapshot factory runs inside a fresh app context because timers fire
    on their own thread.
    """
    from .snapshot_service import build_snapshot

    def _snapshot() -> dict:
        with app.app_context():
            return build_snapshot()

    manager = SyncManager(
        bridge or bridge_from_config(app.config),
        _snapshot,
        debounce_seconds=float(app.config.get("SYNC_DEBOUNCE_SECONDS", 1.0)),
    )
    app.extensions[EXTENSION_KEY] = manager
    return manager


def get_sync_manager(app: Flask) -> SyncManager | None:
    return app.extensions.get(EXTENSION_KEY)


def load_on_start(app: Flask) -> list[str]:
    """Merge the mirrored snapshot into the store. Returns the replaced collections."""
    from .concurrency import commit_with_retry
    from .snapshot_service import apply_snapshot

    manager = get_sync_manager(app)
    if manager is None:
        return []
    snapshot = manager.load()
    if not snapshot:
        return []
    with app.app_context():
        replaced = apply_snapshot(snapshot)
        commit_with_retry()
    app.logger.info("Loaded mirrored collections: %s", ", ".join(replaced) or "none")
    return replaced
