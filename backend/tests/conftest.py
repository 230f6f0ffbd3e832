"""
Pytest fixtures for credit ledger backend tests.

Provides test database setup, actors, seeded ledger entities and test client.
"""

import pytest

from creditledger import create_app
from creditledger.config import TestingConfig
from creditledger.extensions import db
from creditledger.services import buyer_service, inventory_service, supplier_service
from creditledger.services.audit_service import Actor, ROLE_BRANCH_ADMIN, ROLE_STAFF, ROLE_SUPER_ADMIN


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app(TestingConfig)

    with app.app_context():
        db.create_all()
        yield app
        db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def db_session(app):
    """Create fresh database for each test."""
    with app.app_context():
        # Clear all data but keep schema
        meta = db.metadata
        for table in reversed(meta.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()

        yield db.session

        # Cleanup after test
        db.session.rollback()


@pytest.fixture(autouse=True)
def restore_config(app):
    """Tests may flip config flags; put them back afterwards."""
    saved = dict(app.config)
    yield
    app.config.clear()
    app.config.update(saved)


@pytest.fixture
def admin():
    return Actor(user_id="admin-1", role=ROLE_SUPER_ADMIN, branch="ALL")


@pytest.fixture
def cashier():
    return Actor(user_id="cashier-1", role=ROLE_STAFF, branch="B1")


@pytest.fixture
def branch_admin():
    return Actor(user_id="manager-1", role=ROLE_BRANCH_ADMIN, branch="MAIN")


@pytest.fixture
def buyer(db_session, admin):
    """Ali Traders with a 50000 cent limit and no outstanding credit."""
    buyer = buyer_service.register_buyer(admin, {
        "shop_name": "Ali Traders",
        "contact_name": "Mr. Ali Hassan",
        "location": "Fort, Colombo 11",
        "phone": "+94771234567",
        "credit_limit_cents": 50000,
    })
    db_session.commit()
    return buyer


@pytest.fixture
def supplier(db_session, admin):
    supplier = supplier_service.register_supplier(admin, {
        "shop_name": "Global Foods Co.",
        "contact_name": "Jennifer Wu",
        "phone": "+94701234567",
        "category": "Grains",
    })
    db_session.commit()
    return supplier


@pytest.fixture
def item(db_session, admin):
    """Rice with 10 units at MAIN and 4 at B1."""
    item = inventory_service.create_item(
        admin,
        name="Premium Jasmine Rice 5kg",
        category="Grains",
        wholesale_price_cents=45000,
        retail_price_cents=52000,
        stock={"MAIN": 10, "B1": 4},
    )
    db_session.commit()
    return item


def actor_headers(user_id: str = "admin-1", role: str = ROLE_SUPER_ADMIN, branch: str | None = None) -> dict:
    """Helper to create actor headers for API calls."""
    headers = {"X-User-Id": user_id, "X-User-Role": role}
    if branch:
        headers["X-Branch"] = branch
    return headers


@pytest.fixture
def admin_headers():
    return actor_headers()


@pytest.fixture
def staff_headers():
    return actor_headers("cashier-1", ROLE_STAFF, "B1")
