"""
Donation form wizard
────────────────────────────────────────────────────────────
Step 1 (amount / frequency / channel) → step 2 (payment) → step 3 (result).

State changes are plain assignments; the server is the authority on
validation. A submission is sent exactly once; a transport failure ends the
attempt with "Server connection failed." and the donor resubmits explicitly.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Union
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

import requests

from charityhub.client.api_client import DonationApiClient
from charityhub.config import IMPACT_DEFAULTS
from charityhub.domain import CARD_METHOD, CHANNELS, DEFAULT_CHANNEL, FREQUENCIES, REDIRECT_METHODS, to_cents

log = logging.getLogger(__name__)

STEP_AMOUNT = 1
STEP_PAYMENT = 2
STEP_RESULT = 3
STEPS = (STEP_AMOUNT, STEP_PAYMENT, STEP_RESULT)

CONNECTION_FAILED = "Server connection failed."
NO_AMOUNT = "Please select or enter a donation amount."

_DEFAULT_REFERENCES = {
    CARD_METHOD: "WebDonation",
    "stripe_redirect": "WebDonation",
    "paypal_redirect": "PayPal_Attempt",
}

Amount = Union[int, float]


@dataclass(frozen=True)
class Notification:
    message: str
    level: str = "info"


def _parse_amount(raw: Any) -> Optional[float]:
    try:
        value = float(str(raw).strip())
    except (TypeError, ValueError):
        return None
    if not math.isfinite(value) or value <= 0:
        return None
    return value


def _json_amount(amount: float) -> Amount:
    return int(amount) if float(amount).is_integer() else round(float(amount), 2)


def build_redirect_url(method: str, base: str, amount: float, reference: str) -> str:
    """Prefill the hosted page: PayPal takes `amount`, Stripe links take cents + a client reference."""
    parts = urlsplit(base)
    query = dict(parse_qsl(parts.query, keep_blank_values=True))
    if method == "paypal_redirect":
        query["amount"] = str(_json_amount(amount))
    else:
        query["prefilled_amount"] = str(to_cents(amount))
        query["client_reference_id"] = reference
    return urlunsplit((parts.scheme, parts.netloc, parts.path, urlencode(query), parts.fragment))


class DonationFormController:
    def __init__(
        self,
        client: DonationApiClient,
        *,
        paypal_url: Optional[str] = None,
        stripe_link: Optional[str] = None,
        notify: Optional[Callable[[Notification], None]] = None,
    ) -> None:
        self.client = client
        self.redirect_defaults = {"paypal_redirect": paypal_url, "stripe_redirect": stripe_link}
        self.notifications: List[Notification] = []
        self._notify_cb = notify
        self.stats: Dict[str, Any] = dict(IMPACT_DEFAULTS)
        self.reset()

    # -- state ----------------------------------------------------------------
    def reset(self) -> None:
        self.step = STEP_AMOUNT
        self.selected_amount: Optional[float] = None
        self.custom_amount = ""
        self.frequency = "once"
        self.channel = DEFAULT_CHANNEL
        self.reference = ""
        self.outcome: Optional[str] = None
        self.message: Optional[str] = None
        self.transaction_id: Optional[str] = None
        self.redirect_url: Optional[str] = None
        self.confirm_amount: Optional[str] = None

    def notify(self, message: str, level: str = "info") -> None:
        note = Notification(message, level)
        self.notifications.append(note)
        if self._notify_cb is not None:
            self._notify_cb(note)

    def select_amount(self, amount: Amount) -> None:
        self.selected_amount = float(amount)
        self.custom_amount = ""

    def set_custom_amount(self, raw: Any) -> None:
        self.custom_amount = "" if raw is None else str(raw)

    def set_frequency(self, frequency: str) -> None:
        if frequency not in FREQUENCIES:
            raise ValueError(f"unknown frequency: {frequency}")
        self.frequency = frequency

    def set_public_channel(self, channel: str) -> None:
        if channel not in CHANNELS:
            raise ValueError(f"unknown channel: {channel}")
        self.channel = channel

    def set_reference(self, text: Optional[str]) -> None:
        self.reference = (text or "").strip()

    def get_donation_amount(self) -> Optional[float]:
        custom = _parse_amount(self.custom_amount) if self.custom_amount else None
        return custom if custom is not None else self.selected_amount

    def goto_step(self, step: int) -> bool:
        if step not in STEPS:
            raise ValueError(f"unknown step: {step}")
        amount = self.get_donation_amount()
        if step != STEP_AMOUNT and not amount:
            self.notify(NO_AMOUNT, "error")
            return False
        self.step = step
        if step == STEP_PAYMENT and amount:
            self.confirm_amount = f"{amount:.2f}"
        return True

    # -- server interactions --------------------------------------------------
    def refresh_stats(self) -> Dict[str, Any]:
        try:
            self.stats = self.client.get_stats()
        except requests.RequestException as exc:
            log.warning("Backend not reachable, keeping current stats: %s", exc)
        return self.stats

    def _show_error(self, message: str) -> bool:
        self.outcome = "error"
        self.message = message
        self.transaction_id = None
        self.goto_step(STEP_RESULT)
        return False

    def submit_donation(self, name: str, number: str, expiry: str, cvv: str) -> bool:
        amount = self.get_donation_amount()
        if not amount:
            self.notify(NO_AMOUNT, "error")
            return False
        if not (name or "").strip():
            self.notify("Please enter the cardholder name.", "error")
            return False

        number = "".join((number or "").split())
        expiry = (expiry or "").strip()
        cvv = (cvv or "").strip()
        if not number or not expiry or not cvv:
            self.notify("Please fill in all card details.", "error")
            return False

        payload = {
            "amount": _json_amount(amount),
            "frequency": self.frequency,
            "method": CARD_METHOD,
            "reference": self.reference or _DEFAULT_REFERENCES[CARD_METHOD],
            "channel": self.channel,
            "cardDetails": {"name": name.strip(), "number": number, "expiry": expiry, "cvv": cvv},
        }

        try:
            code, result = self.client.donate(payload)
        except requests.RequestException as exc:
            log.error("Donation request failed: %s", exc)
            return self._show_error(CONNECTION_FAILED)

        if 200 <= code < 300 and isinstance(result, dict) and result.get("success"):
            self.outcome = "success"
            self.message = result.get("message") or "Thank you for your donation!"
            self.transaction_id = result.get("transactionId")
            self.goto_step(STEP_RESULT)
            self.notify("Thank you for your donation!", "success")
            self.refresh_stats()
            return True

        message = result.get("message") if isinstance(result, dict) else None
        return self._show_error(message or "Logging failed.")

    def donate_redirect(self, method: str) -> Optional[str]:
        """Log the intent with the server, then return the hosted page URL to hand off to."""
        if method not in REDIRECT_METHODS:
            raise ValueError(f"unknown redirect method: {method}")
        amount = self.get_donation_amount()
        if not amount:
            self.notify(NO_AMOUNT, "error")
            return None

        reference = self.reference or _DEFAULT_REFERENCES[method]
        payload = {
            "amount": _json_amount(amount),
            "frequency": self.frequency,
            "method": method,
            "reference": reference,
            "channel": self.channel,
        }

        server_url: Optional[str] = None
        try:
            code, body = self.client.donate(payload)
            if 200 <= code < 300 and isinstance(body, dict):
                server_url = body.get("redirectUrl")
                self.transaction_id = body.get("transactionId")
        except requests.RequestException as exc:
            log.warning("Could not log donation intent, proceeding anyway: %s", exc)

        base = server_url or self.redirect_defaults.get(method)
        if not base:
            self.notify("This payment option is not available right now.", "error")
            return None

        self.redirect_url = build_redirect_url(method, base, amount, reference)
        return self.redirect_url
