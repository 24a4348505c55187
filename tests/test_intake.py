# Donation intake pipeline: ordering of steps, derived fields, failure atomicity
import re

import pytest
from conftest import StubProcessor

from charityhub.config import IMPACT_DEFAULTS
from charityhub.schemas import DonationValidationError
from charityhub.services import intake as intake_module
from charityhub.services.intake import (
    DonationIntakeService,
    PaymentDeclined,
    composite_method,
    display_name,
    generate_transaction_id,
)
from charityhub.services.storage import DuplicateTransactionId, MemoryStorage

TXN_RE = re.compile(r"^TXN_[A-Z0-9]{9}$")
VT_RE = re.compile(r"^VT_[A-Z0-9]{9}$")
DEFAULT_RAISED_CENTS = IMPACT_DEFAULTS["raised"] * 100

REDIRECTS = {
    "paypal_redirect": "https://www.paypal.com/donate/?business=TESTBUSINESS",
    "stripe_redirect": "https://buy.stripe.com/test_link",
}


@pytest.fixture
def storage():
    return MemoryStorage(IMPACT_DEFAULTS)


@pytest.fixture
def service(storage, stub_processor):
    return DonationIntakeService(storage, stub_processor, redirect_urls=REDIRECTS)


# ─── derived fields ─────────────────────────────────────────
@pytest.mark.parametrize(
    "holder,ref,channel,expected",
    [
        ("Jane", None, "online", "Jane"),
        ("", None, "online", "Anonymous Donor"),
        (None, "Gala", "online", "Anonymous Donor (Gala)"),
        ("Jane", "Gala", "phone", "Jane (Gala) [Phone]"),
        ("Jane", None, "in-person", "Jane [In-person]"),
    ],
)
def test_display_name(holder, ref, channel, expected):
    assert display_name(holder, ref, channel) == expected


def test_composite_method_tags_offline_channels():
    assert composite_method("card", "online") == "card"
    assert composite_method("card", "mail") == "card:mail"


def test_transaction_ids_have_expected_shape():
    ids = {generate_transaction_id() for _ in range(200)}
    assert all(TXN_RE.match(i) for i in ids)
    assert len(ids) == 200
    assert VT_RE.match(generate_transaction_id("VT_"))


# ─── card donations ─────────────────────────────────────────
def test_card_donation_charges_masks_and_records(service, storage, stub_processor, card_payload):
    receipt = service.process_donation(card_payload())

    assert TXN_RE.match(receipt.transaction_id)
    assert receipt.stats.raised_cents == DEFAULT_RAISED_CENTS + 5000
    assert receipt.stats.raised == IMPACT_DEFAULTS["raised"] + 50

    [record] = storage.list_donations(10)
    assert record.transaction_id == receipt.transaction_id
    assert record.card_number == "**** **** **** 4242"
    assert record.name == "A Donor"
    assert record.method == "card"
    assert record.processor_transaction_id == "pi_stub_123"

    [call] = stub_processor.calls
    assert call["amount"] == 5000
    assert call["currency"] == "usd"


def test_card_donation_never_stores_raw_card_data(service, storage, card_payload):
    service.process_donation(card_payload(reference="Gala", channel="phone"))

    [record] = storage.list_donations(10)
    flat = repr(record) + repr(record.as_admin_dict())
    assert "4242424242424242" not in flat
    assert "12/30" not in flat
    assert record.name == "A Donor (Gala) [Phone]"
    assert record.method == "card:phone"


def test_card_donation_without_processor_is_recorded(storage, card_payload):
    receipt = DonationIntakeService(storage, None).process_donation(card_payload())

    assert receipt.record.processor_transaction_id is None
    assert receipt.record.card_number == "**** **** **** 4242"


@pytest.mark.parametrize("status", ["declined", "error"])
def test_rejected_charge_writes_nothing(storage, card_payload, status):
    processor = StubProcessor(status=status, message="Your card was declined.")
    service = DonationIntakeService(storage, processor)

    with pytest.raises(PaymentDeclined) as exc:
        service.process_donation(card_payload())

    assert exc.value.message == "Your card was declined."
    assert storage.get_stats().raised_cents == DEFAULT_RAISED_CENTS
    assert storage.list_donations(10) == []


def test_processor_exception_is_a_decline(storage, card_payload):
    service = DonationIntakeService(storage, StubProcessor(exc=ConnectionError("boom")))

    with pytest.raises(PaymentDeclined):
        service.process_donation(card_payload())

    assert storage.list_donations(10) == []


def test_invalid_request_has_no_side_effects(service, storage, stub_processor, card_payload):
    with pytest.raises(DonationValidationError):
        service.process_donation(card_payload(amount=0))

    assert stub_processor.calls == []
    assert storage.get_stats().raised_cents == DEFAULT_RAISED_CENTS


# ─── transaction id collisions ──────────────────────────────
def test_duplicate_id_is_regenerated_without_recharging(service, storage, stub_processor, card_payload, monkeypatch):
    ids = iter(["TXN_AAAAAAAAA", "TXN_AAAAAAAAA", "TXN_BBBBBBBBB"])
    monkeypatch.setattr(intake_module, "generate_transaction_id", lambda prefix="TXN_": next(ids))

    first = service.process_donation(card_payload())
    second = service.process_donation(card_payload())

    assert (first.transaction_id, second.transaction_id) == ("TXN_AAAAAAAAA", "TXN_BBBBBBBBB")
    assert len(stub_processor.calls) == 2
    assert storage.get_stats().raised_cents == DEFAULT_RAISED_CENTS + 2 * 5000


def test_duplicate_id_retries_are_bounded(storage, card_payload, monkeypatch):
    monkeypatch.setattr(intake_module, "generate_transaction_id", lambda prefix="TXN_": "TXN_AAAAAAAAA")
    service = DonationIntakeService(storage, None, id_attempts=3)
    service.process_donation(card_payload())

    with pytest.raises(DuplicateTransactionId):
        service.process_donation(card_payload())

    assert len(storage.list_donations(10)) == 1


# ─── redirect intents ───────────────────────────────────────
def test_redirect_intent_is_recorded_without_charge(service, storage, stub_processor):
    receipt = service.process_donation(
        {"amount": 20, "method": "stripe_redirect", "channel": "mail", "reference": "WebDonation"}
    )

    assert stub_processor.calls == []
    assert receipt.redirect_url == REDIRECTS["stripe_redirect"]
    assert receipt.record.card_number is None
    assert receipt.record.method == "stripe_redirect:mail"
    assert receipt.record.name == "Anonymous Donor (WebDonation) [Mail]"
    assert storage.get_stats().raised_cents == DEFAULT_RAISED_CENTS + 2000


def test_redirect_url_is_optional(storage):
    receipt = DonationIntakeService(storage, None).process_donation({"amount": 5, "method": "paypal_redirect"})
    assert receipt.redirect_url is None


# ─── virtual terminal ───────────────────────────────────────
def test_virtual_terminal_manual_entry(service, storage, stub_processor):
    receipt = service.process_virtual_terminal({"amount": 75})

    assert VT_RE.match(receipt.transaction_id)
    assert receipt.record.name == "VT: Manual Entry"
    assert receipt.record.method == "virtual:phone"
    assert receipt.record.frequency == "once"
    assert receipt.record.card_number is None
    assert stub_processor.calls == []
    assert storage.get_stats().raised_cents == DEFAULT_RAISED_CENTS + 7500


def test_virtual_terminal_with_card_charges(service, stub_processor):
    receipt = service.process_virtual_terminal(
        {
            "amount": 75,
            "channel": "mail",
            "reference": "Cheque 118",
            "cardDetails": {"number": "4111111111111111", "expiry": "01/29", "cvv": "999"},
        }
    )

    assert receipt.record.name == "VT: Cheque 118"
    assert receipt.record.method == "virtual:mail"
    assert receipt.record.card_number == "**** **** **** 1111"
    assert stub_processor.calls[0]["metadata"]["source"] == "virtual_terminal"


def test_max_donation_comes_from_config(storage, stub_processor, card_payload):
    service = DonationIntakeService.from_config({"MAX_DONATION": 100}, storage, stub_processor)

    with pytest.raises(DonationValidationError):
        service.process_donation(card_payload(amount="100.01"))
    with pytest.raises(DonationValidationError):
        service.process_virtual_terminal({"amount": 250})

    assert stub_processor.calls == []
    assert service.process_donation(card_payload(amount=100)).stats.raised_cents == DEFAULT_RAISED_CENTS + 10000


def test_virtual_terminal_card_without_processor_is_recorded(storage):
    receipt = DonationIntakeService(storage, None).process_virtual_terminal(
        {"amount": 20, "cardDetails": {"number": "4111111111111111", "expiry": "01/29", "cvv": "999"}}
    )

    assert receipt.record.card_number == "**** **** **** 1111"
    assert receipt.record.processor_transaction_id is None
