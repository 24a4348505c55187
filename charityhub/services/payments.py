# charityhub/services/payments.py
"""
External card processors behind a single capability:

    charge(amount_minor_units, currency, card) -> ChargeResult

Only ``succeeded`` and ``requires_capture`` count as an accepted charge.
"""

from __future__ import annotations

import logging
import secrets
import time
from dataclasses import dataclass
from typing import Any, Optional

import stripe

from charityhub.schemas import CardDetails

log = logging.getLogger(__name__)

CHARGE_OK_STATUSES = ("succeeded", "requires_capture")


@dataclass(frozen=True)
class ChargeResult:
    status: str
    processor_transaction_id: Optional[str] = None
    message: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.status in CHARGE_OK_STATUSES


class PaymentProcessor:
    """Capability interface for an external card processor."""

    name = "processor"

    def charge(self, amount_minor_units: int, currency: str, card: CardDetails, **metadata: Any) -> ChargeResult:
        raise NotImplementedError


# ─────────────────────────────────────────────────────────────
# Stripe
# ─────────────────────────────────────────────────────────────
class StripeProcessor(PaymentProcessor):
    """Creates and confirms a card PaymentIntent in one synchronous call."""

    name = "stripe"

    def __init__(self, api_key: str, *, max_network_retries: int = 2) -> None:
        if not api_key or not api_key.startswith(("sk_", "rk_")):
            raise RuntimeError("Stripe secret key missing or malformed (expected sk_...)")
        self.api_key = api_key
        self.max_network_retries = int(max_network_retries or 2)
        log.info("Stripe processor ready (%s mode)", self.mode)

    @property
    def mode(self) -> str:
        if self.api_key.startswith(("sk_live_", "rk_live_")):
            return "live"
        if self.api_key.startswith(("sk_test_", "rk_test_")):
            return "test"
        return "unknown"

    def charge(self, amount_minor_units: int, currency: str, card: CardDetails, **metadata: Any) -> ChargeResult:
        stripe.api_key = self.api_key
        stripe.max_network_retries = self.max_network_retries
        try:
            intent = stripe.PaymentIntent.create(
                amount=int(amount_minor_units),
                currency=currency,
                confirm=True,
                payment_method_data={
                    "type": "card",
                    "card": {
                        "number": card.number,
                        "exp_month": card.exp_month,
                        "exp_year": card.exp_year,
                        "cvc": card.cvv,
                    },
                    "billing_details": {"name": card.holder_name or None},
                },
                automatic_payment_methods={"enabled": True, "allow_redirects": "never"},
                metadata={k: str(v) for k, v in metadata.items() if v is not None},
            )
        except stripe.CardError as e:
            err = getattr(e, "error", None)
            msg = getattr(err, "message", None) or str(e)
            log.warning("Stripe declined charge: %s", msg)
            return ChargeResult(status="declined", message=msg)
        except stripe.StripeError as e:
            err = getattr(e, "error", None)
            msg = getattr(err, "message", None) or str(e)
            log.error("Stripe error: %s", msg)
            return ChargeResult(status="error", message=msg)

        status = str(getattr(intent, "status", "") or "")
        intent_id = str(getattr(intent, "id", "") or "") or None
        if status in CHARGE_OK_STATUSES:
            return ChargeResult(status=status, processor_transaction_id=intent_id)

        log.warning("Stripe intent %s ended in status %s", intent_id, status)
        return ChargeResult(
            status="declined",
            processor_transaction_id=intent_id,
            message=f"Payment was not completed (status: {status or 'unknown'}).",
        )


# ─────────────────────────────────────────────────────────────
# Demo / sandbox
# ─────────────────────────────────────────────────────────────
class DemoProcessor(PaymentProcessor):
    """
    Offline sandbox used when DEMO_MODE is on. Mirrors Stripe's test cards:
    numbers ending in 0002 are declined, everything else succeeds.
    """

    name = "demo"

    def charge(self, amount_minor_units: int, currency: str, card: CardDetails, **metadata: Any) -> ChargeResult:
        if card.number.endswith("0002"):
            return ChargeResult(status="declined", message="Your card was declined.")
        return ChargeResult(
            status="succeeded",
            processor_transaction_id=f"pi_demo_{int(time.time())}_{secrets.token_hex(4)}",
        )


def build_processor(app: Any) -> Optional[PaymentProcessor]:
    kind = str(app.config.get("PAYMENT_PROCESSOR") or "none").strip().lower()
    if kind == "stripe":
        return StripeProcessor(
            str(app.config.get("STRIPE_SECRET_KEY") or ""),
            max_network_retries=int(app.config.get("STRIPE_MAX_NETWORK_RETRIES", 2) or 2),
        )
    if kind == "demo":
        return DemoProcessor()
    if kind in {"", "none", "off", "disabled"}:
        return None
    raise RuntimeError(f"Unknown PAYMENT_PROCESSOR '{kind}' (expected stripe, demo or none)")
