"""
Pytest fixtures for Oro POS backend tests.

Provides an in-memory database, two tenants for isolation checks, employees
with each role, a small catalog, an open cash-drawer session and the Flask
test client.
"""

import pytest

from oropos import create_app
from oropos.extensions import db
from oropos.models import CashDrawerSession, Location, Product, Service, Tenant
from oropos.models.auth import ROLE_CASHIER, ROLE_MANAGER, ROLE_OWNER
from oropos.services.auth_service import create_employee
from oropos.services.display_sync_service import get_hub
from oropos.services.session_service import create_session
from oropos.time_utils import utcnow

PASSWORD = "Password123"


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'BCRYPT_ROUNDS': 4,
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
        get_hub().clear()

        yield db.session

        # Cleanup after test
        db.session.rollback()


@pytest.fixture(scope='function')
def tenant(db_session):
    tenant = Tenant(name="Acme Salon", code="ACME", is_active=True)
    db_session.add(tenant)
    db_session.commit()
    return tenant


@pytest.fixture(scope='function')
def other_tenant(db_session):
    tenant = Tenant(name="Beta Barbers", code="BETA", is_active=True)
    db_session.add(tenant)
    db_session.commit()
    return tenant


@pytest.fixture(scope='function')
def location(db_session, tenant):
    """Location taxed at 8%."""
    location = Location(tenant_id=tenant.id, name="Main Street", code="MAIN", tax_rate_bps=800)
    db_session.add(location)
    db_session.commit()
    return location


@pytest.fixture(scope='function')
def other_location(db_session, other_tenant):
    location = Location(tenant_id=other_tenant.id, name="Beta Downtown", code="DT", tax_rate_bps=0)
    db_session.add(location)
    db_session.commit()
    return location


@pytest.fixture(scope='function')
def owner(db_session, tenant, location):
    return create_employee(tenant.id, "owner", PASSWORD, name="Olive Owner", role=ROLE_OWNER, location_id=location.id)


@pytest.fixture(scope='function')
def manager(db_session, tenant, location):
    return create_employee(
        tenant.id, "manager", PASSWORD, name="Max Manager", role=ROLE_MANAGER,
        location_id=location.id, can_refund=True,
    )


@pytest.fixture(scope='function')
def cashier(db_session, tenant, location):
    return create_employee(tenant.id, "cashier", PASSWORD, name="Cass Cashier", role=ROLE_CASHIER, location_id=location.id)


@pytest.fixture(scope='function')
def other_cashier(db_session, other_tenant, other_location):
    return create_employee(
        other_tenant.id, "beta_cashier", PASSWORD, name="Bea Cashier",
        role=ROLE_CASHIER, location_id=other_location.id, can_refund=True,
    )


@pytest.fixture(scope='function')
def product(db_session, tenant):
    """$10.00 shampoo with 20 in stock."""
    product = Product(tenant_id=tenant.id, name="Shampoo", sku="SHAM-001", barcode="0001112223334",
                      price_cents=1000, stock=20, is_active=True)
    db_session.add(product)
    db_session.commit()
    return product


@pytest.fixture(scope='function')
def second_product(db_session, tenant):
    product = Product(tenant_id=tenant.id, name="Conditioner", sku="COND-001", barcode="0001112229999",
                      price_cents=1250, stock=20, is_active=True)
    db_session.add(product)
    db_session.commit()
    return product


@pytest.fixture(scope='function')
def service(db_session, tenant):
    service = Service(tenant_id=tenant.id, name="Haircut", price_cents=3000, is_active=True)
    db_session.add(service)
    db_session.commit()
    return service


@pytest.fixture(scope='function')
def open_session(db_session, tenant, location, cashier):
    """Open shift on the main drawer with $100.00 float."""
    session = CashDrawerSession(
        tenant_id=tenant.id,
        location_id=location.id,
        drawer_id="main",
        employee_id=cashier.id,
        opening_cash_cents=10000,
        start_time=utcnow(),
    )
    db_session.add(session)
    db_session.commit()
    return session


@pytest.fixture(scope='function')
def closed_session(db_session, tenant, location, cashier):
    session = CashDrawerSession(
        tenant_id=tenant.id,
        location_id=location.id,
        drawer_id="back",
        employee_id=cashier.id,
        opening_cash_cents=5000,
        closing_cash_cents=5000,
        start_time=utcnow(),
        end_time=utcnow(),
    )
    db_session.add(session)
    db_session.commit()
    return session


def _bearer(employee):
    _, token = create_session(employee.id)
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture(scope='function')
def cashier_headers(cashier):
    return _bearer(cashier)


@pytest.fixture(scope='function')
def manager_headers(manager):
    return _bearer(manager)


@pytest.fixture(scope='function')
def owner_headers(owner):
    return _bearer(owner)


@pytest.fixture(scope='function')
def other_headers(other_cashier):
    return _bearer(other_cashier)
