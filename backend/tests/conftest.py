"""
Pytest fixtures for stockflow backend tests.

Provides test database setup, two tenants with branches, catalog rows, and
the Scope / header helpers used by service and route tests.
"""

import pytest
from stockflow import create_app
from stockflow.extensions import db
from stockflow.models import Organization, Branch, Product, Supplier, Customer
from stockflow.services.tenant_service import Scope
from stockflow.services import adjustment_service


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'STOCKFLOW_RETRY_ATTEMPTS': 1,
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


@pytest.fixture(scope='function')
def org_a(db_session):
    """Create Organization A (first tenant)."""
    org = Organization(name="Org A - Acme Corp", code="ACME", is_active=True)
    db_session.add(org)
    db_session.commit()
    return org


@pytest.fixture(scope='function')
def org_b(db_session):
    """Create Organization B (second tenant)."""
    org = Organization(name="Org B - Beta Inc", code="BETA", is_active=True)
    db_session.add(org)
    db_session.commit()
    return org


@pytest.fixture(scope='function')
def branch_a(db_session, org_a):
    """Create Branch A1 in Organization A."""
    branch = Branch(org_id=org_a.id, name="Branch A1", code="A1")
    db_session.add(branch)
    db_session.commit()
    return branch


@pytest.fixture(scope='function')
def branch_a2(db_session, org_a):
    """Create a second branch in Organization A."""
    branch = Branch(org_id=org_a.id, name="Branch A2", code="A2")
    db_session.add(branch)
    db_session.commit()
    return branch


@pytest.fixture(scope='function')
def branch_b(db_session, org_b):
    """Create Branch B1 in Organization B."""
    branch = Branch(org_id=org_b.id, name="Branch B1", code="B1")
    db_session.add(branch)
    db_session.commit()
    return branch


@pytest.fixture(scope='function')
def scope_a(org_a, branch_a):
    return Scope(org_id=org_a.id, branch_id=branch_a.id)


@pytest.fixture(scope='function')
def scope_a2(org_a, branch_a2):
    return Scope(org_id=org_a.id, branch_id=branch_a2.id)


@pytest.fixture(scope='function')
def scope_b(org_b, branch_b):
    return Scope(org_id=org_b.id, branch_id=branch_b.id)


@pytest.fixture(scope='function')
def product_a(db_session, org_a):
    """Create Product in Organization A (price 10.00, cost 4.00)."""
    product = Product(
        org_id=org_a.id,
        sku="PROD-A-001",
        name="Product A",
        price_cents=1000,
        cost_cents=400,
    )
    db_session.add(product)
    db_session.commit()
    return product


@pytest.fixture(scope='function')
def product_a2(db_session, org_a):
    """Create a second Product in Organization A."""
    product = Product(
        org_id=org_a.id,
        sku="PROD-A-002",
        name="Product A2",
        price_cents=2500,
        cost_cents=1200,
    )
    db_session.add(product)
    db_session.commit()
    return product


@pytest.fixture(scope='function')
def product_b(db_session, org_b):
    """Create Product in Organization B."""
    product = Product(
        org_id=org_b.id,
        sku="PROD-B-001",
        name="Product B",
        price_cents=2000,
        cost_cents=900,
    )
    db_session.add(product)
    db_session.commit()
    return product


@pytest.fixture(scope='function')
def supplier_a(db_session, org_a):
    supplier = Supplier(org_id=org_a.id, name="Acme Wholesale")
    db_session.add(supplier)
    db_session.commit()
    return supplier


@pytest.fixture(scope='function')
def customer_a(db_session, org_a):
    customer = Customer(org_id=org_a.id, name="Jane Buyer", phone="555-0100")
    db_session.add(customer)
    db_session.commit()
    return customer


def stock_in(scope, product, quantity: int):
    """Helper to put physical stock on hand at the scope's branch."""
    return adjustment_service.adjust_stock(
        scope, product_id=product.id, quantity=quantity, adjustment_type="STOCK_IN"
    )


def scope_headers(scope) -> dict:
    """Helper to create tenant context headers for a Scope."""
    headers = {'X-Org-Id': str(scope.org_id)}
    if scope.branch_id is not None:
        headers['X-Branch-Id'] = str(scope.branch_id)
    return headers
