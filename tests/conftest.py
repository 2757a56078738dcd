"""
Pytest fixtures for posledger tests.

Provides an in-memory database, tenant and product factories, and a test
client that sends the gateway tenant headers.
"""

import pytest

from posledger import create_app
from posledger.extensions import db
from posledger.services.products_service import create_product
from posledger.services.tenant_service import create_tenant


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'LOCK_RETRY_ATTEMPTS': 1,
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
def tenant_a(db_session):
    """First tenant."""
    return create_tenant("Toko Acme", code="ACME")


@pytest.fixture(scope='function')
def tenant_b(db_session):
    """Second tenant, for isolation checks."""
    return create_tenant("Toko Beta", code="BETA")


@pytest.fixture(scope='function')
def make_product(db_session, tenant_a):
    """Factory: products in tenant A unless another tenant is given."""
    counter = {"n": 0}

    def _make(quantity=10, price="100.00", cost="60.00", min_stock=0, tenant=None, **kwargs):
        counter["n"] += 1
        return create_product(
            (tenant or tenant_a).id,
            name=kwargs.pop("name", f"Product {counter['n']}"),
            sku=kwargs.pop("sku", f"SKU-{counter['n']:03d}"),
            price=price,
            cost=cost,
            initial_quantity=quantity,
            min_stock=min_stock,
            **kwargs,
        )

    return _make


@pytest.fixture(scope='function')
def headers(tenant_a):
    """Gateway headers for tenant A, user 7."""
    return {"X-Tenant-ID": str(tenant_a.id), "X-User-ID": "7"}
