# DonationApiClient over a real requests.Session, served by the test app
import pytest
import requests

from charityhub.client import DonationApiClient, DonationFormController
from charityhub.config import IMPACT_DEFAULTS, TestingConfig


def test_get_stats(api_client):
    assert api_client.get_stats() == IMPACT_DEFAULTS


def test_get_stats_raises_on_non_200(api_client):
    broken = DonationApiClient("http://testserver/nowhere", session=api_client.session)
    with pytest.raises(requests.HTTPError):
        broken.get_stats()


def test_donate_then_list_donors(api_client, card_payload):
    code, body = api_client.donate(card_payload(reference="Gala"))

    assert code == 200
    assert body["success"] is True
    assert body["updatedStats"]["raised"] == IMPACT_DEFAULTS["raised"] + 50

    [donor] = api_client.get_donors()
    assert donor["name"] == "A Donor (Gala)"


def test_donate_validation_error_is_decoded(api_client):
    code, body = api_client.donate({"amount": "", "method": "card"})
    assert code == 400
    assert body["success"] is False


def test_subscribe(api_client):
    code, body = api_client.subscribe("friend@example.com")
    assert (code, body["success"]) == (200, True)


def test_admin_calls_carry_token(api_client):
    assert api_client.history()[0] == 401

    assert api_client.login("wrong") is False
    assert api_client.token is None

    assert api_client.login(TestingConfig.ADMIN_PASSWORD) is True
    code, body = api_client.virtual_terminal({"amount": 30, "reference": "Bake sale"})
    assert code == 200
    assert body["transactionId"].startswith("VT_")

    code, body = api_client.history()
    assert code == 200
    assert [d["name"] for d in body["donations"]] == ["VT: Bake sale"]


def test_wizard_against_live_app(api_client):
    wizard = DonationFormController(api_client)
    wizard.select_amount(50)

    assert wizard.submit_donation("A Donor", "4242 4242 4242 4242", "12/30", "123") is True
    assert wizard.transaction_id.startswith("TXN_")
    assert wizard.stats["raised"] == IMPACT_DEFAULTS["raised"] + 50
