# Request parsing: typed variants, field rules, error messages
import pytest

from charityhub.schemas import (
    CardDonation,
    DonationValidationError,
    RedirectDonation,
    parse_amount_cents,
    parse_card_details,
    parse_donation_request,
    parse_virtual_terminal,
)

CARD = {"name": "A Donor", "number": "4242 4242 4242 4242", "expiry": "12/30", "cvv": "123"}


@pytest.mark.parametrize("raw,cents", [(50, 5000), ("10.5", 1050), (0.015, 2), ("  25 ", 2500)])
def test_amount_parses_to_cents(raw, cents):
    """Amounts are quantized to cents with half-up rounding."""
    assert parse_amount_cents(raw) == cents


@pytest.mark.parametrize("raw", [None, "", "abc", 0, -5, "0", True, "NaN", 0.001])
def test_amount_rejects_missing_or_non_positive(raw):
    with pytest.raises(DonationValidationError):
        parse_amount_cents(raw)


def test_card_request_becomes_card_variant():
    req = parse_donation_request({"amount": 50, "method": "card", "cardDetails": CARD})

    assert isinstance(req, CardDonation)
    assert req.amount_cents == 5000
    assert req.frequency == "once"
    assert req.channel == "online"
    assert req.card.number == "4242424242424242"
    assert req.card.masked() == "**** **** **** 4242"


def test_redirect_request_needs_no_card():
    req = parse_donation_request(
        {"amount": "20", "method": "paypal_redirect", "frequency": "monthly", "channel": "mail", "reference": " Gala "}
    )

    assert isinstance(req, RedirectDonation)
    assert req.method == "paypal_redirect"
    assert req.frequency == "monthly"
    assert req.channel == "mail"
    assert req.reference == "Gala"


@pytest.mark.parametrize("missing", ["name", "number", "expiry", "cvv"])
def test_card_request_requires_all_card_fields(missing):
    card = dict(CARD)
    card[missing] = ""
    with pytest.raises(DonationValidationError, match="card details"):
        parse_donation_request({"amount": 50, "method": "card", "cardDetails": card})


def test_card_request_without_card_details_is_rejected():
    with pytest.raises(DonationValidationError):
        parse_donation_request({"amount": 50, "method": "card"})


@pytest.mark.parametrize(
    "payload",
    [
        None,
        [],
        {"amount": 50},
        {"amount": 50, "method": "bitcoin"},
        {"amount": 50, "method": "paypal_redirect", "frequency": "weekly"},
        {"amount": 50, "method": "paypal_redirect", "channel": "carrier-pigeon"},
    ],
)
def test_invalid_requests_are_rejected(payload):
    with pytest.raises(DonationValidationError):
        parse_donation_request(payload)


@pytest.mark.parametrize(
    "field,value",
    [("number", "4242-abcd"), ("number", "1234"), ("expiry", "13/30"), ("expiry", "1230"), ("cvv", "12")],
)
def test_card_field_formats(field, value):
    card = dict(CARD)
    card[field] = value
    with pytest.raises(DonationValidationError):
        parse_card_details(card)


def test_card_expiry_accepts_four_digit_year():
    card = parse_card_details(dict(CARD, expiry="07/2031"))
    assert (card.exp_month, card.exp_year) == (7, 2031)


def test_card_repr_hides_number():
    card = parse_card_details(CARD)
    assert "4242424242424242" not in repr(card)
    assert "123" not in repr(card)


def test_virtual_terminal_defaults_and_optional_card():
    entry = parse_virtual_terminal({"amount": 75})

    assert entry.amount_cents == 7500
    assert entry.channel == "phone"
    assert entry.card is None
    assert entry.reference is None


def test_virtual_terminal_card_holder_is_optional():
    entry = parse_virtual_terminal({"amount": 75, "channel": "mail", "cardDetails": dict(CARD, name="")})

    assert entry.channel == "mail"
    assert entry.card is not None
    assert entry.card.last4 == "4242"


def test_virtual_terminal_blank_card_counts_as_absent():
    entry = parse_virtual_terminal({"amount": 75, "cardDetails": {"name": "", "number": "", "expiry": "", "cvv": ""}})
    assert entry.card is None


def test_virtual_terminal_requires_amount():
    with pytest.raises(DonationValidationError):
        parse_virtual_terminal({"channel": "phone"})


def test_amount_above_cap_is_rejected():
    assert parse_amount_cents("1000000") == 100_000_000
    with pytest.raises(DonationValidationError, match="cannot exceed"):
        parse_amount_cents("1000000.01")
    with pytest.raises(DonationValidationError):
        parse_amount_cents("100000000000000000")
    with pytest.raises(DonationValidationError):
        parse_amount_cents(60, max_cents=5000)
