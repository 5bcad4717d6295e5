"""
Pytest fixtures for mfgledger backend tests.

Provides test database setup, two tenants with members of every role,
seeded items and a test client.
"""

import pytest

from mfgledger import create_app
from mfgledger.extensions import db
from mfgledger.services import catalog_service, tenant_service


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'LEDGER_RETRY_BACKOFF': 0,
    })

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
        db.session.remove()


@pytest.fixture(scope='function')
def org_a(db_session):
    """Create Organization A (first tenant); 'alice' is its admin."""
    org, _ = tenant_service.create_organization(
        name="Org A - Acme Manufacturing",
        slug="acme",
        creator_user_id="alice",
    )
    return org


@pytest.fixture(scope='function')
def org_b(db_session):
    """Create Organization B (second tenant); 'bert' is its admin."""
    org, _ = tenant_service.create_organization(
        name="Org B - Beta Works",
        slug="beta",
        creator_user_id="bert",
    )
    return org


@pytest.fixture(scope='function')
def manager_a(org_a):
    """'mona' manages Organization A."""
    return tenant_service.add_member(org_a.id, "mona", "manager")


@pytest.fixture(scope='function')
def operator_a(org_a):
    """'oscar' operates in Organization A."""
    return tenant_service.add_member(org_a.id, "oscar", "operator")


@pytest.fixture(scope='function')
def item_a(org_a):
    """Raw material in Organization A with a reorder point of 20."""
    return catalog_service.create_item(
        org_id=org_a.id,
        actor_id="alice",
        sku="STEEL-001",
        name="Steel Sheet",
        item_type="raw_material",
        unit="kg",
        category="Metals",
        reorder_point="20",
    )


@pytest.fixture(scope='function')
def item_b(org_b):
    """Finished good in Organization B."""
    return catalog_service.create_item(
        org_id=org_b.id,
        actor_id="bert",
        sku="WIDGET-001",
        name="Widget",
        item_type="finished_good",
        unit="pcs",
    )


def actor_headers(user_id: str, org_id: int | None = None) -> dict:
    """Helper to create identity headers for API calls."""
    headers = {'X-User-Id': user_id}
    if org_id is not None:
        headers['X-Org-Id'] = str(org_id)
    return headers
