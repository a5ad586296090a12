"""
Pytest fixtures for laundrypos backend tests.

Provides the test database, two branches with a customer each, actors for
every role and a recording notification gateway.
"""

import pytest

from laundrypos import create_app
from laundrypos.extensions import db
from laundrypos.models import Branch, Customer
from laundrypos.services import notification_service
from laundrypos.services.branch_scope_service import Actor, resolve_scope


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'DAILY_REPORT_RECIPIENT': '+255700000999',
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


class RecordingGateway:
    """Notification gateway that keeps every message; optionally fails."""

    def __init__(self):
        self.sent = []
        self.fail = False

    def send(self, recipient, message):
        if self.fail:
            raise RuntimeError("SMS provider unavailable")
        self.sent.append((recipient, message))


@pytest.fixture(scope='function')
def gateway(app):
    """Swap the notification gateway for a recording one."""
    previous = app.extensions.get(notification_service.GATEWAY_EXTENSION_KEY)
    recorder = RecordingGateway()
    notification_service.init_gateway(app, recorder)
    yield recorder
    app.extensions[notification_service.GATEWAY_EXTENSION_KEY] = previous


@pytest.fixture(scope='function')
def branch_a(db_session):
    """Create Branch A."""
    branch = Branch(name="Mikocheni", code="MIK", phone="+255700000001")
    db_session.add(branch)
    db_session.commit()
    return branch


@pytest.fixture(scope='function')
def branch_b(db_session):
    """Create Branch B."""
    branch = Branch(name="Sinza", code="SIN", phone="+255700000002")
    db_session.add(branch)
    db_session.commit()
    return branch


@pytest.fixture(scope='function')
def customer(db_session, branch_a):
    customer = Customer(branch_id=branch_a.id, name="Amina", phone="+255711000001")
    db_session.add(customer)
    db_session.commit()
    return customer


@pytest.fixture(scope='function')
def cashier_a(branch_a):
    return Actor(role="cashier", name="Cashier A", id=10, fixed_branch_id=branch_a.id)


@pytest.fixture(scope='function')
def cashier_b(branch_b):
    return Actor(role="cashier", name="Cashier B", id=20, fixed_branch_id=branch_b.id)


@pytest.fixture(scope='function')
def admin():
    return Actor(role="admin", name="Owner", id=1)


@pytest.fixture(scope='function')
def scope_a(cashier_a):
    return resolve_scope(cashier_a)


@pytest.fixture(scope='function')
def scope_b(cashier_b):
    return resolve_scope(cashier_b)


def headers_for(role: str, *, branch_id=None, pin=None, name="Test User", actor_id=None) -> dict:
    """Identity headers as sent by the upstream authentication layer."""
    headers = {"X-Actor-Role": role, "X-Actor-Name": name}
    if actor_id is not None:
        headers["X-Actor-Id"] = str(actor_id)
    if branch_id is not None:
        headers["X-Actor-Branch-Id"] = str(branch_id)
    if pin is not None:
        headers["X-Branch-Id"] = str(pin)
    return headers
