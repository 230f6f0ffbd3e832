# Overview: Flask CLI command groups for bootstrap, consistency checks, backups and sync.

# backend/creditledger/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# Ledger bootstrap/inspection:
# - python -m flask ledger init-db
#   Create all tables (idempotent).
# - python -m flask ledger reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
# - python -m flask ledger seed-demo
#   Load demo items, buyers and suppliers through the normal ledger operations.
# - python -m flask ledger check
#   Recompute balances and report drift. Exits 1 on inconsistency.
#
# Backups:
# - python -m flask backup export --out backup.json
#   Write a full backup document.
# - python -m flask backup import backup.json --yes
#   Replace ALL data with the backup contents.
#
# Sync:
# - python -m flask sync status
# - python -m flask sync push
#   Save a snapshot to the configured bridge now.
# - python -m flask sync pull --yes
#   Merge the mirrored snapshot into the database (present collections are replaced).

import json
import sys
from datetime import timedelta

import click
from flask import current_app
from flask.cli import with_appcontext

from .errors import LedgerError
from .extensions import db
from .models import Buyer, Item
from .services import (
    buyer_service,
    inventory_service,
    reconciliation_service,
    sales_service,
    snapshot_service,
    supplier_service,
)
from .services.audit_service import Actor
from .services.concurrency import commit_with_retry
from .services.sync_service import get_sync_manager
from .time_utils import utcnow


@click.group('ledger')
def ledger_group():
    """Ledger bootstrap and inspection commands."""


@ledger_group.command('init-db')
@with_appcontext
def init_db():
    """Create all tables."""
    db.create_all()
    click.echo("PASS Tables created.")


@ledger_group.command('reset-db')
@click.option('--yes', is_flag=True, help='Skip confirmation')
@with_appcontext
def reset_db(yes):
    """
    DANGER: Drop all tables and recreate schema.

    This will DELETE ALL DATA!
    """
    if not yes:
        click.confirm("WARN This will DELETE ALL DATA. Are you sure?", abort=True)

    click.echo("DELETE  Dropping all tables...")
    db.drop_all()

    click.echo("BUILD  Creating all tables...")
    db.create_all()

    click.echo("PASS Database reset complete. Run 'python -m flask ledger seed-demo' for sample data.")


DEMO_ITEMS = [
    ("Premium Jasmine Rice 5kg", "Grains", 45000, 52000, 120),
    ("Refined Sugar 1kg", "Grocery", 11000, 13500, 500),
    ("Refined Oil 1L", "Grocery", 18000, 21000, 300),
    ("Organic Wheat Flour 10kg", "Grains", 32000, 38000, 80),
]

DEMO_BUYERS = [
    {
        "shop_name": "Ali Traders",
        "contact_name": "Mr. Ali Hassan",
        "location": "Fort, Colombo 11",
        "phone": "+94771234567",
        "credit_limit_cents": 5000000,
        "remarks": "Long-term partner, prefers weekend deliveries.",
        "bills": [("MAIN", 2000000, 40)],
        "payments": [("MAIN", 500000, "CASH", 30), ("B2", 300000, "CHEQUE", 15)],
    },
    {
        "shop_name": "Central Supermart",
        "contact_name": "Saman Perera",
        "location": "Main Road, Negombo",
        "phone": "+94719876543",
        "credit_limit_cents": 10000000,
        "remarks": "Bulk orders only.",
        "bills": [("B5", 5500000, 25)],
        "payments": [("B5", 1000000, "CASH", 20)],
    },
]

DEMO_SUPPLIERS = [
    {
        "shop_name": "Global Foods Co.",
        "contact_name": "Jennifer Wu",
        "location": "Industrial Zone, Horana",
        "phone": "+94701234567",
        "category": "Grains",
        "remarks": "Primary grain supplier.",
        "purchases": [("MAIN", 12000000, "INV-8822", 45)],
        "payments": [("MAIN", 3500000, "CHEQUE", "CHQ-9910", 30)],
    },
    {
        "shop_name": "Osaka Wholesale Hub",
        "contact_name": "Manager Osaka",
        "location": "Colombo 01",
        "phone": "+94711223344",
        "category": "Grocery",
        "remarks": "Internal supply node.",
        "purchases": [],
        "payments": [],
    },
]


@ledger_group.command('seed-demo')
@with_appcontext
def seed_demo():
    """
    Load demo data through ledger operations so every balance has its entries.

    Skips when items or buyers already exist.
    """
    if db.session.query(Item).count() or db.session.query(Buyer).count():
        click.echo("WARN  Data already present, skipping seed.")
        return

    actor = Actor.system()
    default_branch = current_app.config["DEFAULT_BRANCH"]
    now = utcnow()

    try:
        for name, category, wholesale, retail, stock in DEMO_ITEMS:
            inventory_service.create_item(
                actor,
                name=name,
                category=category,
                wholesale_price_cents=wholesale,
                retail_price_cents=retail,
                stock={default_branch: stock},
            )

        for entry in DEMO_BUYERS:
            profile = {k: v for k, v in entry.items() if k not in ("bills", "payments")}
            buyer = buyer_service.register_buyer(actor, profile)
            for branch, amount, days_ago in entry["bills"]:
                sales_service.record_manual_bill(
                    actor, buyer_id=buyer.id, amount_cents=amount, branch=branch,
                    occurred_at=now - timedelta(days=days_ago),
                )
            for branch, amount, method, days_ago in entry["payments"]:
                buyer_service.record_buyer_payment(
                    actor, buyer_id=buyer.id, amount_cents=amount, branch=branch, method=method,
                    occurred_at=now - timedelta(days=days_ago),
                )

        for entry in DEMO_SUPPLIERS:
            profile = {k: v for k, v in entry.items() if k not in ("purchases", "payments")}
            supplier = supplier_service.register_supplier(actor, profile)
            for branch, amount, reference, days_ago in entry["purchases"]:
                supplier_service.record_supplier_purchase(
                    actor, supplier_id=supplier.id, amount_cents=amount, branch=branch,
                    reference=reference, occurred_at=now - timedelta(days=days_ago),
                )
            for branch, amount, method, reference, days_ago in entry["payments"]:
                supplier_service.record_supplier_payment(
                    actor, supplier_id=supplier.id, amount_cents=amount, branch=branch,
                    method=method, reference=reference, occurred_at=now - timedelta(days=days_ago),
                )

        commit_with_retry()
    except LedgerError as e:
        db.session.rollback()
        raise click.ClickException(f"Seed failed: {e}")

    click.echo(
        f"PASS Seeded {len(DEMO_ITEMS)} items, {len(DEMO_BUYERS)} buyers, {len(DEMO_SUPPLIERS)} suppliers."
    )


@ledger_group.command('check')
@with_appcontext
def check_ledger():
    """Recompute balances from entries and report drift."""
    report = reconciliation_service.check_consistency()

    for row in report["supplier_drift"]:
        click.echo(f"FAIL Supplier {row['supplier_id']}: stored {row['stored_cents']} expected {row['expected_cents']}")
    for row in report["negative_stock"]:
        click.echo(f"FAIL Item {row['item_id']} @ {row['branch']}: quantity {row['quantity']}")
    for row in report["negative_credit"]:
        click.echo(f"FAIL Buyer {row['buyer_id']}: credit {row['stored_cents']}")
    for row in report["buyer_drift"]:
        click.echo(f"INFO Buyer {row['buyer_id']}: stored {row['stored_cents']} naive {row['naive_cents']}")

    if not report["ok"]:
        sys.exit(1)
    click.echo("PASS Ledger consistent.")


@click.group('backup')
def backup_group():
    """Backup export and restore."""


@backup_group.command('export')
@click.option('--out', 'out_path', required=True, type=click.Path(dir_okay=False), help='Backup file to write')
@with_appcontext
def export_backup(out_path):
    document = snapshot_service.export_backup()
    with open(out_path, "w", encoding="utf-8") as fh:
        json.dump(document, fh, indent=2)
    counts = ", ".join(f"{k}={len(v)}" for k, v in document["collections"].items())
    click.echo(f"PASS Backup written to {out_path} ({counts})")


@backup_group.command('import')
@click.argument('path', type=click.Path(exists=True, dir_okay=False))
@click.option('--yes', is_flag=True, help='Skip confirmation')
@with_appcontext
def import_backup(path, yes):
    """Replace ALL data with a backup document."""
    if not yes:
        click.confirm("WARN Restoring overwrites ALL current data. Are you sure?", abort=True)

    with open(path, "r", encoding="utf-8") as fh:
        document = json.load(fh)

    try:
        counts = snapshot_service.import_backup(Actor.system(), document, confirm=True)
        commit_with_retry()
    except LedgerError as e:
        db.session.rollback()
        raise click.ClickException(f"Restore failed: {e}")

    click.echo("PASS Restored " + ", ".join(f"{k}={v}" for k, v in counts.items()))


@click.group('sync')
def sync_group():
    """Snapshot sync commands."""


def _manager():
    manager = get_sync_manager(current_app)
    if manager is None:
        raise click.ClickException("Sync is disabled (SYNC_ENABLED=false)")
    return manager


@sync_group.command('status')
@with_appcontext
def sync_status():
    manager = get_sync_manager(current_app)
    if manager is None:
        click.echo("Sync disabled.")
        return
    for key, value in manager.describe().items():
        click.echo(f"{key}: {value}")


@sync_group.command('push')
@with_appcontext
def sync_push():
    manager = _manager()
    if manager.flush():
        click.echo(f"PASS Snapshot saved at {manager.last_synced_at}")
    else:
        raise click.ClickException(f"Sync failed: {manager.last_error}")


@sync_group.command('pull')
@click.option('--yes', is_flag=True, help='Skip confirmation')
@with_appcontext
def sync_pull(yes):
    """Merge the mirrored snapshot; collections present in it replace local ones."""
    manager = _manager()
    if not yes:
        click.confirm("WARN Mirrored collections will replace local data. Continue?", abort=True)
    try:
        snapshot = manager.load()
        replaced = snapshot_service.apply_snapshot(snapshot) if snapshot else []
        commit_with_retry()
    except LedgerError as e:
        db.session.rollback()
        raise click.ClickException(f"Pull failed: {e}")
    click.echo(f"PASS Replaced: {', '.join(replaced) or 'nothing'}")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(ledger_group)
    app.cli.add_command(backup_group)
    app.cli.add_command(sync_group)
