"""
CharityHub — inbound donation payloads
────────────────────────────────────────────────────────────
Raw JSON bodies are untrusted. They are parsed here into one of the typed
variants below (keyed by ``method``) before the intake pipeline sees them:

• CardDonation          method = card
• RedirectDonation      method = paypal_redirect | stripe_redirect
• VirtualTerminalEntry  operator-keyed donation from the admin terminal
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, Mapping, Optional, Union

from charityhub.domain import (
    CARD_METHOD,
    CHANNELS,
    DEFAULT_CHANNEL,
    FREQUENCIES,
    REDIRECT_METHODS,
    cents_to_amount,
    to_cents,
)

REFERENCE_MAX = 120
# $1,000,000; overridden per app by MAX_DONATION
MAX_DONATION_CENTS = 100_000_000
HOLDER_NAME_MAX = 160

_EXPIRY_RE = re.compile(r"^(0[1-9]|1[0-2])\s*/\s*(\d{2}|\d{4})$")
_CVV_RE = re.compile(r"^\d{3,4}$")
_CARD_SEPARATORS_RE = re.compile(r"[\s-]")


class DonationValidationError(ValueError):
    """Raised for user-correctable problems with a donation payload."""


@dataclass(frozen=True)
class CardDetails:
    holder_name: str
    number: str
    expiry: str
    cvv: str

    @property
    def last4(self) -> str:
        return self.number[-4:]

    @property
    def exp_month(self) -> int:
        return int(self.expiry.split("/")[0])

    @property
    def exp_year(self) -> int:
        year = int(self.expiry.split("/")[1])
        return 2000 + year if year < 100 else year

    def masked(self) -> str:
        return f"**** **** **** {self.last4}"

    def __repr__(self) -> str:
        return f"CardDetails(holder_name={self.holder_name!r}, number='****{self.last4}')"


@dataclass(frozen=True)
class CardDonation:
    amount_cents: int
    frequency: str
    channel: str
    reference: Optional[str]
    card: CardDetails
    method: str = CARD_METHOD


@dataclass(frozen=True)
class RedirectDonation:
    method: str
    amount_cents: int
    frequency: str
    channel: str
    reference: Optional[str]


@dataclass(frozen=True)
class VirtualTerminalEntry:
    amount_cents: int
    channel: str
    reference: Optional[str]
    card: Optional[CardDetails]


DonationRequest = Union[CardDonation, RedirectDonation]


# ─────────────────────────────────────────────────────────────
# Field parsers
# ─────────────────────────────────────────────────────────────
def parse_amount_cents(raw: Any, max_cents: int = MAX_DONATION_CENTS) -> int:
    if raw is None or isinstance(raw, bool) or (isinstance(raw, str) and not raw.strip()):
        raise DonationValidationError("Please select or enter a donation amount.")
    try:
        dec = Decimal(str(raw).strip())
    except (InvalidOperation, ValueError):
        raise DonationValidationError("Donation amount must be a number.")
    if not dec.is_finite() or dec <= 0:
        raise DonationValidationError("Donation amount must be greater than zero.")
    try:
        cents = to_cents(dec)
    except InvalidOperation:
        raise DonationValidationError("Donation amount is out of range.")
    if cents <= 0:
        raise DonationValidationError("Donation amount must be at least 0.01.")
    if cents > max_cents:
        raise DonationValidationError(f"Donation amount cannot exceed {cents_to_amount(max_cents)}.")
    return cents


def _choice(raw: Any, allowed: tuple, default: str, label: str) -> str:
    value = str(raw or "").strip().lower() or default
    if value not in allowed:
        raise DonationValidationError(f"Unsupported {label}: {value}")
    return value


def parse_frequency(raw: Any) -> str:
    return _choice(raw, FREQUENCIES, "once", "frequency")


def parse_channel(raw: Any, default: str = DEFAULT_CHANNEL) -> str:
    return _choice(raw, CHANNELS, default, "channel")


def parse_reference(raw: Any) -> Optional[str]:
    ref = str(raw or "").strip()
    return ref[:REFERENCE_MAX] if ref else None


def parse_card_details(raw: Any, *, require_holder: bool = True) -> CardDetails:
    if not isinstance(raw, Mapping):
        raise DonationValidationError("Card details are required for card donations.")

    holder = str(raw.get("name") or "").strip()[:HOLDER_NAME_MAX]
    number = _CARD_SEPARATORS_RE.sub("", str(raw.get("number") or ""))
    expiry = str(raw.get("expiry") or "").strip()
    cvv = str(raw.get("cvv") or "").strip()

    missing = [
        label
        for label, value in (
            ("cardholder name", holder if require_holder else "-"),
            ("card number", number),
            ("expiry date", expiry),
            ("CVV", cvv),
        )
        if not value
    ]
    if missing:
        raise DonationValidationError("Please fill in all card details (missing: " + ", ".join(missing) + ").")

    if not number.isdigit() or not 12 <= len(number) <= 19:
        raise DonationValidationError("Card number looks invalid.")
    m = _EXPIRY_RE.match(expiry)
    if not m:
        raise DonationValidationError("Expiry date must look like MM/YY.")
    if not _CVV_RE.match(cvv):
        raise DonationValidationError("CVV must be 3 or 4 digits.")

    return CardDetails(holder_name=holder, number=number, expiry=f"{m.group(1)}/{m.group(2)}", cvv=cvv)


# ─────────────────────────────────────────────────────────────
# Variant builders
# ─────────────────────────────────────────────────────────────
def parse_donation_request(data: Optional[Dict[str, Any]], *, max_cents: int = MAX_DONATION_CENTS) -> DonationRequest:
    if not isinstance(data, Mapping):
        raise DonationValidationError("Invalid JSON body.")

    method = str(data.get("method") or "").strip().lower()
    if method != CARD_METHOD and method not in REDIRECT_METHODS:
        raise DonationValidationError(f"Unsupported payment method: {method or 'missing'}")

    amount_cents = parse_amount_cents(data.get("amount"), max_cents)
    frequency = parse_frequency(data.get("frequency"))
    channel = parse_channel(data.get("channel"))
    reference = parse_reference(data.get("reference"))

    if method == CARD_METHOD:
        return CardDonation(
            amount_cents=amount_cents,
            frequency=frequency,
            channel=channel,
            reference=reference,
            card=parse_card_details(data.get("cardDetails")),
        )

    return RedirectDonation(
        method=method,
        amount_cents=amount_cents,
        frequency=frequency,
        channel=channel,
        reference=reference,
    )


def parse_virtual_terminal(data: Optional[Dict[str, Any]], *, max_cents: int = MAX_DONATION_CENTS) -> VirtualTerminalEntry:
    if not isinstance(data, Mapping):
        raise DonationValidationError("Invalid JSON body.")

    raw_card = data.get("cardDetails")
    card = None
    if isinstance(raw_card, Mapping) and any(str(v or "").strip() for v in raw_card.values()):
        card = parse_card_details(raw_card, require_holder=False)

    return VirtualTerminalEntry(
        amount_cents=parse_amount_cents(data.get("amount"), max_cents),
        channel=parse_channel(data.get("channel"), default="phone"),
        reference=parse_reference(data.get("reference")),
        card=card,
    )
