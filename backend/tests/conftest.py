"""
Pytest fixtures for the invoicing backend tests.

Provides an in-memory application, per-test table wipe, a LedgerService
bound to the test session and small factories for clients, sales,
invoices and payments.
"""

import pytest

from invoicing import create_app
from invoicing.extensions import db
from invoicing.models import Client
from invoicing.services.audit_service import DatabaseAuditSink
from invoicing.services.ledger_service import LedgerService


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
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
def service(db_session):
    """LedgerService writing audit entries to the test database."""
    return LedgerService(db_session, audit_sink=DatabaseAuditSink(db_session))


@pytest.fixture(scope='function')
def acme(db_session):
    """Client that owns most test sales."""
    client = Client(name="Acme Steel", company="Acme SARL", nif="000123456789")
    db_session.add(client)
    db_session.commit()
    return client


@pytest.fixture(scope='function')
def other_client(db_session):
    client = Client(name="Beta Metal")
    db_session.add(client)
    db_session.commit()
    return client


@pytest.fixture(scope='function')
def make_sale(service, acme):
    """Create a sale with a single flat-priced item; TTC defaults to the amount."""
    def _make(ttc_cents=12000, client=None, **overrides):
        data = {
            "client_id": (client or acme).id,
            "date": "2024-06-10",
            "items": [{
                "description": "Cutting service",
                "product_type": "service",
                "total_amount_cents": ttc_cents,
            }],
        }
        data.update(overrides)
        return service.create_sale(data)
    return _make


@pytest.fixture(scope='function')
def make_invoice(service, acme):
    counter = {"n": 0}

    def _make(sales, client=None, **overrides):
        counter["n"] += 1
        data = {
            "invoice_number": f"F-2024-{counter['n']:03d}",
            "client_id": (client or acme).id,
            "date": "2024-06-10",
            "sale_ids": [s.id for s in sales],
        }
        data.update(overrides)
        return service.create_invoice(data)
    return _make


@pytest.fixture(scope='function')
def make_payment(service, acme):
    def _make(amount_cents, sale=None, invoice=None, client=None, **overrides):
        data = {
            "client_id": (client or acme).id,
            "amount_cents": amount_cents,
            "date": "2024-06-15",
            "method": "cash",
        }
        if sale is not None:
            data["sale_id"] = sale.id
        if invoice is not None:
            data["invoice_id"] = invoice.id
        data.update(overrides)
        return service.create_payment(data)
    return _make
