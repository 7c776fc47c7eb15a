"""Shared test fixtures for the payhook test suite.

Provides:
- app: Flask app configured for testing (in-memory SQLite, no notify delay)
- client: Flask test client
- db_session: clean payments table per test (tables created/dropped)
- orchestrator / store: the pipeline objects wired by create_app()
- mock_telegram: autouse patch of the Telegram HTTP call
- verified: PayPal signature verification forced to succeed
- make_event: builder for PAYMENT.SALE.COMPLETED bodies
"""

import copy
from unittest.mock import MagicMock, patch

import pytest

from payhook import create_app
from payhook.extensions import db as _db
from payhook.services.paypal_service import SignatureVerifier

PAYPAL_HEADERS = {
    "PayPal-Transmission-Id": "69cd13f0-d67a-11e5-baa3-778b53f4ae55",
    "PayPal-Transmission-Time": "2026-10-19T12:00:00Z",
    "PayPal-Cert-Url": "https://api.paypal.com/v1/notifications/certs/CERT-360caa42-fca2a594-a5cafa77",
    "PayPal-Auth-Algo": "SHA256withRSA",
    "PayPal-Transmission-Sig": "c2lnbmF0dXJl",
}

SALE_COMPLETED_EVENT = {
    "id": "WH-2WR32451HC0233532-67976317FL4543714",
    "event_type": "PAYMENT.SALE.COMPLETED",
    "resource": {
        "id": "PAY-1",
        "state": "completed",
        "amount": {"total": "10.00", "currency": "USD"},
        "create_time": "2026-10-19T11:59:30Z",
    },
}


@pytest.fixture(scope="session")
def app():
    """Create the Flask application configured for testing."""
    app = create_app("testing")
    yield app


@pytest.fixture(autouse=True)
def db_session(app):
    """Create all tables before each test, drop after."""
    with app.app_context():
        _db.create_all()
        yield _db.session
        _db.session.rollback()
        _db.drop_all()


@pytest.fixture
def client(app):
    """Flask test client."""
    return app.test_client()


@pytest.fixture
def orchestrator(app):
    return app.extensions["payhook"]


@pytest.fixture
def store(orchestrator):
    return orchestrator.store


@pytest.fixture(autouse=True)
def mock_telegram():
    """Never hit Telegram from tests. Yields the requests.post mock."""
    with patch("payhook.services.telegram_service.requests.post") as mock_post:
        response = MagicMock(status_code=200)
        response.json.return_value = {"ok": True, "result": {"message_id": 1}}
        mock_post.return_value = response
        yield mock_post


@pytest.fixture
def verified():
    """Make every PayPal signature check pass. Yields the verify mock."""
    with patch.object(SignatureVerifier, "verify", return_value=True) as mock_verify:
        yield mock_verify


@pytest.fixture
def paypal_headers():
    return dict(PAYPAL_HEADERS)


@pytest.fixture
def make_event():
    """Return a builder: make_event(payment_id=..., total=..., **resource_overrides)."""

    def _make(payment_id="PAY-1", total="10.00", currency="USD", **resource_overrides):
        event = copy.deepcopy(SALE_COMPLETED_EVENT)
        resource = event["resource"]
        resource["id"] = payment_id
        resource["amount"] = {"total": total, "currency": currency}
        resource.update(resource_overrides)
        return event

    return _make
