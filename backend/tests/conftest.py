"""
Pytest fixtures for partsledger backend tests.

Provides the app on in-memory SQLite, a per-test clean database, catalog
fixtures and small builders for invoice requests.
"""

from datetime import date
from decimal import Decimal

import pytest
from partsledger import create_app
from partsledger.extensions import db
from partsledger.models import Customer, Part, Supplier
from partsledger.services import cache_service
from partsledger.validation import parse_invoice_request


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'READ_CACHE_TTL_SECONDS': 60,
        'ENFORCE_STOCK_FLOOR': False,
        'INVOICE_NUMBER_PREFIX': 'JCB',
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
        cache_service.clear()
        app.config['ENFORCE_STOCK_FLOOR'] = False

        yield db.session

        # Cleanup after test
        db.session.rollback()


@pytest.fixture(scope='function')
def supplier(db_session):
    supplier = Supplier(name="Bharat Spares", gstin="33AAACB1234F1Z5", state="Tamil Nadu")
    db_session.add(supplier)
    db_session.commit()
    return supplier


@pytest.fixture(scope='function')
def customer(db_session):
    customer = Customer(name="Sri Murugan Earthmovers", state="Tamil Nadu")
    db_session.add(customer)
    db_session.commit()
    return customer


@pytest.fixture(scope='function')
def make_part(db_session):
    """Factory: make_part("550/42835C", mrp="1200.00")."""
    def _make(part_number: str, **overrides) -> Part:
        values = {
            "item_name": f"Part {part_number}",
            "hsn_code": "84314390",
            "gst_percent": Decimal("18"),
            "unit": "Nos",
            "mrp": Decimal("100.00"),
        }
        values.update(overrides)
        part = Part(part_number=part_number, **values)
        db_session.add(part)
        db_session.commit()
        return part

    return _make


@pytest.fixture(scope='function')
def part_a(make_part):
    return make_part("550/42835C", item_name="Hydraulic Filter", mrp=Decimal("1200.00"))


@pytest.fixture(scope='function')
def part_b(make_part):
    return make_part("336/E8026", item_name="Fuel Pump", mrp=Decimal("450.00"))


def invoice_payload(
    invoice_type: str,
    counterparty_id: int,
    items: list,
    *,
    invoice_date: date = date(2025, 11, 14),
    **extra,
) -> dict:
    """Build a JSON-shaped invoice payload; items are (part_id, quantity, rate) tuples."""
    payload = {
        "type": invoice_type,
        "date": invoice_date.isoformat(),
        "items": [
            {"part_id": part_id, "quantity": quantity, "rate": str(rate)}
            for part_id, quantity, rate in items
        ],
    }
    if invoice_type == "PURCHASE":
        payload["supplier_id"] = counterparty_id
    else:
        payload["customer_id"] = counterparty_id
    payload.update(extra)
    return payload


def invoice_request(invoice_type: str, counterparty_id: int, items: list, **kwargs):
    return parse_invoice_request(invoice_payload(invoice_type, counterparty_id, items, **kwargs))


def auth_headers(user_id: int = 1, role: str = "admin") -> dict:
    """Headers the upstream gateway forwards for an authenticated caller."""
    return {"X-User-Id": str(user_id), "X-User-Role": role}
