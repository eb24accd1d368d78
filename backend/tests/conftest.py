"""
Pytest fixtures for live-orders backend tests.

Provides an in-memory database, two tenants with a small catalog, a fresh
delivery queue per test and a fake WhatsApp transport server.
"""

import json

import httpx
import pytest
from liveorders import create_app
from liveorders.extensions import db
from liveorders.models import Product, Tenant
from liveorders.models.catalog import SALE_TYPE_BAZAR, SALE_TYPE_LIVE
from liveorders.services import delivery_queue as delivery_queue_module
from liveorders.services import whatsapp_client as whatsapp_client_module
from liveorders.services.delivery_queue import DeliveryQueue
from liveorders.services.whatsapp_client import WhatsAppClient


class RecordingSleep:
    """Async sleep stand-in that records requested waits (seconds) and returns at once."""

    def __init__(self):
        self.calls = []

    async def __call__(self, seconds):
        self.calls.append(seconds)


class FakeTransport:
    """
    In-process stand-in for the WhatsApp transport server.

    - POST /send records {tenant, phone, message}; set send_error to fail sends
    - GET /status answers with status_payload (None -> 404)
    """

    def __init__(self):
        self.sent = []
        self.send_error = None
        self.send_status = 500
        self.status_payload = {
            "connected": True,
            "me": {"id": "553177776666@s.whatsapp.net"},
            "has_keys": True,
            "keys_readable": True,
        }

    def handler(self, request: httpx.Request) -> httpx.Response:
        tenant = request.headers.get("x-tenant-id")
        if request.url.path == "/send":
            if self.send_error:
                return httpx.Response(self.send_status, text=self.send_error)
            payload = json.loads(request.content)
            self.sent.append({"tenant": tenant, **payload})
            return httpx.Response(200, json={"success": True})
        if request.url.path == "/status":
            if self.status_payload is None:
                return httpx.Response(404, json={"error": "No session"})
            return httpx.Response(200, json=self.status_payload)
        return httpx.Response(404)


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'QUEUE_DEFAULT_DELAY_MS': 0,
        'QUEUE_BACKOFF_STEP_MS': 0,
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
def fake_sleep():
    return RecordingSleep()


@pytest.fixture(scope='function')
def queue(app, fake_sleep):
    """Fresh app-owned delivery queue that never really sleeps."""
    q = DeliveryQueue(default_delay_ms=0, backoff_step_ms=2000, max_attempts=3, sleep=fake_sleep)
    app.extensions[delivery_queue_module.EXTENSION_KEY] = q
    return q


@pytest.fixture(scope='function')
def transport(app):
    """Route the app's WhatsApp client to an in-process fake server."""
    fake = FakeTransport()
    app.extensions[whatsapp_client_module.EXTENSION_KEY] = WhatsAppClient(
        "http://transport.test",
        timeout=5.0,
        transport=httpx.MockTransport(fake.handler),
    )
    yield fake
    app.extensions.pop(whatsapp_client_module.EXTENSION_KEY, None)


@pytest.fixture(scope='function')
def tenant_a(db_session):
    """Tenant A, with a registered bot number."""
    tenant = Tenant(
        name="Loja A",
        slug="loja-a",
        is_active=True,
        whatsapp_bot_phone="31977776666",
        timezone="America/Sao_Paulo",
    )
    db_session.add(tenant)
    db_session.commit()
    return tenant


@pytest.fixture(scope='function')
def tenant_b(db_session):
    tenant = Tenant(name="Loja B", slug="loja-b", is_active=True)
    db_session.add(tenant)
    db_session.commit()
    return tenant


def make_product(db_session, tenant, code, name, price_cents, stock=10, sale_type=SALE_TYPE_BAZAR, is_active=True):
    product = Product(
        tenant_id=tenant.id,
        code=code,
        name=name,
        price_cents=price_cents,
        stock=stock,
        sale_type=sale_type,
        is_active=is_active,
    )
    db_session.add(product)
    db_session.commit()
    return product


@pytest.fixture(scope='function')
def bazar_product(db_session, tenant_a):
    """C101 - BAZAR, R$ 10.00, stock 5."""
    return make_product(db_session, tenant_a, "C101", "Blusa Floral", 1000, stock=5)


@pytest.fixture(scope='function')
def live_product(db_session, tenant_a):
    """C205 - LIVE, R$ 25.50, stock 5."""
    return make_product(db_session, tenant_a, "C205", "Vestido Longo", 2550, stock=5, sale_type=SALE_TYPE_LIVE)


def tenant_headers(tenant) -> dict:
    """Helper to create tenant headers."""
    return {'X-Tenant-Id': str(tenant.id)}
