# backend/creditledger/config.py
from __future__ import annotations
import os


def _env_list(name: str, default: str) -> list[str]:
    raw = os.environ.get(name, default)
    return [part.strip().upper() for part in raw.split(",") if part.strip()]


def _env_bool(name: str, default: str) -> bool:
    return os.environ.get(name, default).strip().lower() in ("1", "true", "yes", "on")


class Config:
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/creditledger.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///creditledger.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

    # Browser origins allowed to call the API (comma separated); none by default.
    CORS_ALLOWED_ORIGINS = [
        part.strip() for part in os.environ.get("CORS_ALLOWED_ORIGINS", "").split(",") if part.strip()
    ]

    # Physical branches sharing the ledger. "ALL" is an actor scope only.
    BRANCHES = _env_list("LEDGER_BRANCHES", "MAIN,B1,B2,B3,B4,B5")
    DEFAULT_BRANCH = os.environ.get("LEDGER_DEFAULT_BRANCH", "MAIN").upper()

    # Buyer registration defaults
    DEFAULT_CREDIT_LIMIT_CENTS = int(os.environ.get("DEFAULT_CREDIT_LIMIT_CENTS", "5000000"))
    BUYER_CODE_PREFIX = os.environ.get("BUYER_CODE_PREFIX", "OSA")

    # What happens to transactions/cheques that reference a deleted buyer or supplier:
    # KEEP (leave dangling ids), CASCADE, REASSIGN, REJECT
    ORPHAN_POLICY = os.environ.get("ORPHAN_POLICY", "KEEP").upper()

    # Deleting a historical sale is an accounting correction; stock stays consumed unless enabled.
    RESTORE_STOCK_ON_DELETE = _env_bool("RESTORE_STOCK_ON_DELETE", "false")

    # Discount share of gross (percent) above which a POS sale is flagged.
    FRAUD_DISCOUNT_THRESHOLD_PCT = float(os.environ.get("FRAUD_DISCOUNT_THRESHOLD_PCT", "20"))

    # Best-effort snapshot sync
    SYNC_ENABLED = _env_bool("SYNC_ENABLED", "true")
    SYNC_MIRROR_PATH = os.environ.get("SYNC_MIRROR_PATH", "creditledger_mirror.json")
    SYNC_REMOTE_URL = os.environ.get("SYNC_REMOTE_URL")
    SYNC_DEBOUNCE_SECONDS = float(os.environ.get("SYNC_DEBOUNCE_SECONDS", "1.0"))
    SYNC_TIMEOUT_SECONDS = float(os.environ.get("SYNC_TIMEOUT_SECONDS", "10"))
    SYNC_LOAD_ON_START = _env_bool("SYNC_LOAD_ON_START", "false")

    BACKUP_VERSION = "2.4.1"
    BACKUP_SOURCE = os.environ.get("BACKUP_SOURCE", "Credit Ledger Master Node")


class TestingConfig(Config):
    TESTING = True
    SQLALCHEMY_DATABASE_URI = "sqlite:///:memory:"
    BRANCHES = ["MAIN", "B1", "B2", "B3", "B4", "B5"]
    DEFAULT_BRANCH = "MAIN"
    ORPHAN_POLICY = "KEEP"
    RESTORE_STOCK_ON_DELETE = False
    SYNC_ENABLED = False
    SYNC_LOAD_ON_START = False
    LOG_LEVEL = "DEBUG"
    CORS_ALLOWED_ORIGINS = ["http://console.test"]
