# Admin API: shared-secret login, protected history, virtual terminal
import re

import pytest

from charityhub import create_app
from charityhub.config import IMPACT_DEFAULTS, TestingConfig

UNAUTHORIZED = {"success": False, "message": "Unauthorized access"}


class NoPasswordConfig(TestingConfig):
    ADMIN_PASSWORD = ""


def test_login_returns_process_token(client):
    first = client.post("/api/admin/login", json={"password": "letmein"}).get_json()
    second = client.post("/api/admin/login", json={"password": "letmein"}).get_json()

    assert first["success"] is True
    assert first["token"] == second["token"]


@pytest.mark.parametrize("body", [{"password": "wrong"}, {}, {"password": None}, None])
def test_login_rejects_bad_password(client, body):
    resp = client.post("/api/admin/login", json=body)
    assert resp.status_code == 401
    assert resp.get_json()["success"] is False


def test_empty_admin_password_disables_login():
    client = create_app(NoPasswordConfig).test_client()
    resp = client.post("/api/admin/login", json={"password": ""})
    assert resp.status_code == 401


@pytest.mark.parametrize("method", ["get", "post"])
def test_history_requires_token(client, method):
    resp = getattr(client, method)("/api/admin/history")
    assert resp.status_code == 401
    assert resp.get_json() == UNAUTHORIZED


def test_history_rejects_wrong_token(client):
    resp = client.get("/api/admin/history", headers={"Authorization": "GUESS"})
    assert resp.status_code == 401
    assert resp.get_json() == UNAUTHORIZED


def test_history_lists_masked_donations(client, admin_headers, card_payload):
    client.post("/api/donate", json=card_payload(channel="phone", reference="Gala"))

    body = client.get("/api/admin/history", headers=admin_headers).get_json()

    assert body["stats"]["raised"] == IMPACT_DEFAULTS["raised"] + 50
    [donation] = body["donations"]
    assert donation["cardNumber"] == "**** **** **** 4242"
    assert donation["method"] == "card:phone"
    assert donation["name"] == "A Donor (Gala) [Phone]"
    assert "cvv" not in donation
    assert "expiryDate" not in donation


def test_history_accepts_bearer_prefix_and_post(client, admin_headers):
    headers = {"Authorization": "Bearer " + admin_headers["Authorization"]}
    resp = client.post("/api/admin/history", headers=headers)
    assert resp.status_code == 200
    assert resp.get_json()["donations"] == []


def test_history_is_capped(client, admin_headers, app):
    app.config["HISTORY_LIMIT"] = 3
    for i in range(5):
        client.post("/api/donate", json={"amount": i + 1, "method": "stripe_redirect"})

    donations = client.get("/api/admin/history", headers=admin_headers).get_json()["donations"]
    assert [d["amount"] for d in donations] == [5, 4, 3]
    assert donations[0]["cardNumber"] == "N/A"


def test_virtual_terminal_requires_token(client):
    resp = client.post("/api/admin/virtual-terminal", json={"amount": 10})
    assert resp.status_code == 401


def test_virtual_terminal_records_entry(client, admin_headers):
    resp = client.post(
        "/api/admin/virtual-terminal",
        headers=admin_headers,
        json={"amount": 40, "channel": "in-person", "reference": "Bake sale"},
    )
    body = resp.get_json()

    assert resp.status_code == 200
    assert body["success"] is True
    assert re.match(r"^VT_[A-Z0-9]{9}$", body["transactionId"])

    [donation] = client.get("/api/admin/history", headers=admin_headers).get_json()["donations"]
    assert donation["name"] == "VT: Bake sale"
    assert donation["method"] == "virtual:in-person"
    assert donation["frequency"] == "once"


def test_virtual_terminal_validation_error(client, admin_headers):
    resp = client.post("/api/admin/virtual-terminal", headers=admin_headers, json={"amount": "-3"})
    assert resp.status_code == 400
    assert resp.get_json()["success"] is False
