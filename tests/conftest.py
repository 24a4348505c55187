# pytest fixtures for the CharityHub app, storage and intake pipeline
from urllib.parse import urlsplit

import pytest
import requests
from requests.structures import CaseInsensitiveDict

from charityhub import create_app
from charityhub.client import DonationApiClient
from charityhub.config import IMPACT_DEFAULTS, TestingConfig
from charityhub.services.payments import ChargeResult, PaymentProcessor
from charityhub.services.storage import MemoryStorage

CARD = {"name": "A Donor", "number": "4242424242424242", "expiry": "12/30", "cvv": "123"}


class StubProcessor(PaymentProcessor):
    """Records every charge and answers with a fixed result (or raises)."""

    name = "stub"

    def __init__(self, status="succeeded", message=None, exc=None):
        self.result = ChargeResult(status=status, processor_transaction_id="pi_stub_123", message=message)
        self.exc = exc
        self.calls = []

    def charge(self, amount_minor_units, currency, card, **metadata):
        self.calls.append({"amount": amount_minor_units, "currency": currency, "card": card, "metadata": metadata})
        if self.exc is not None:
            raise self.exc
        return self.result


class OfflineDatabaseConfig(TestingConfig):
    SQLALCHEMY_DATABASE_URI = "sqlite:////nonexistent-charityhub-dir/charityhub.db"


@pytest.fixture
def card_payload():
    def _build(**overrides):
        payload = {
            "amount": 50,
            "frequency": "once",
            "method": "card",
            "channel": "online",
            "cardDetails": dict(CARD),
        }
        payload.update(overrides)
        return payload

    return _build


@pytest.fixture
def stub_processor():
    return StubProcessor()


@pytest.fixture
def app(stub_processor):
    """App on a private in-memory SQLite database with a succeeding processor."""
    return create_app(TestingConfig, processor=stub_processor)


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def memory_app(stub_processor):
    """App wired straight to MemoryStorage."""
    return create_app(TestingConfig, storage=MemoryStorage(IMPACT_DEFAULTS), processor=stub_processor)


@pytest.fixture
def offline_app(stub_processor):
    """App whose database file can never be opened."""
    return create_app(OfflineDatabaseConfig, processor=stub_processor)


@pytest.fixture
def admin_headers(client):
    resp = client.post("/api/admin/login", json={"password": TestingConfig.ADMIN_PASSWORD})
    assert resp.status_code == 200
    return {"Authorization": resp.get_json()["token"]}


class FlaskTransport(requests.adapters.BaseAdapter):
    """requests transport that hands each request to a Flask test client."""

    def __init__(self, flask_client):
        super().__init__()
        self.flask_client = flask_client

    def send(self, request, **kwargs):
        parts = urlsplit(request.url)
        headers = {k: v for k, v in request.headers.items() if k.lower() not in ("content-length", "content-type")}
        flask_resp = self.flask_client.open(
            parts.path,
            method=request.method,
            query_string=parts.query,
            headers=headers,
            data=request.body,
            content_type=request.headers.get("Content-Type"),
        )

        resp = requests.Response()
        resp.status_code = flask_resp.status_code
        resp._content = flask_resp.get_data()
        resp.headers = CaseInsensitiveDict(flask_resp.headers.items())
        resp.encoding = "utf-8"
        resp.url = request.url
        resp.request = request
        return resp

    def close(self):
        pass


@pytest.fixture
def api_client(client):
    """DonationApiClient whose HTTP traffic is served by the test app."""
    session = requests.Session()
    session.mount("http://testserver", FlaskTransport(client))
    return DonationApiClient("http://testserver", session=session)
