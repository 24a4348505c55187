# charityhub/services/intake.py
"""
Donation intake pipeline
────────────────────────────────────────────────────────────
validate → display name → (charge) → mask → transaction id → record

• Validation and processor failures abort before anything is written
• Storage outages are absorbed by the storage layer (memory fallback)
• A transaction-id collision is retried with a fresh id, never re-charged
"""

from __future__ import annotations

import logging
import secrets
import string
from dataclasses import dataclass
from typing import Any, Dict, Mapping, Optional

from charityhub.domain import (
    ANONYMOUS_DONOR,
    DEFAULT_CHANNEL,
    DonationRecord,
    StatsSnapshot,
    to_cents,
)
from charityhub.extensions import with_retry
from charityhub.schemas import (
    MAX_DONATION_CENTS,
    CardDetails,
    CardDonation,
    DonationRequest,
    RedirectDonation,
    parse_donation_request,
    parse_virtual_terminal,
)
from charityhub.services.payments import ChargeResult, PaymentProcessor
from charityhub.services.storage import DuplicateTransactionId, StorageBackend

log = logging.getLogger(__name__)

TXN_PREFIX = "TXN_"
VT_PREFIX = "VT_"
TXN_ID_LENGTH = 9
_TXN_ALPHABET = string.ascii_uppercase + string.digits


class PaymentDeclined(Exception):
    """The processor refused (or failed) the charge; ``message`` is shown to the donor as-is."""

    def __init__(self, message: str, status: str = "declined") -> None:
        super().__init__(message)
        self.message = message
        self.status = status


@dataclass(frozen=True)
class DonationReceipt:
    transaction_id: str
    record: DonationRecord
    stats: StatsSnapshot
    redirect_url: Optional[str] = None


# ─────────────────────────────────────────────────────────────
# Derived fields
# ─────────────────────────────────────────────────────────────
def generate_transaction_id(prefix: str = TXN_PREFIX) -> str:
    return prefix + "".join(secrets.choice(_TXN_ALPHABET) for _ in range(TXN_ID_LENGTH))


def display_name(holder_name: Optional[str], reference: Optional[str], channel: str) -> str:
    """'Jane' + ref 'Gala' + channel 'phone' → 'Jane (Gala) [Phone]'"""
    name = (holder_name or "").strip() or ANONYMOUS_DONOR
    if reference:
        name = f"{name} ({reference})"
    if channel and channel != DEFAULT_CHANNEL:
        name = f"{name} [{channel[:1].upper()}{channel[1:]}]"
    return name


def composite_method(method: str, channel: str) -> str:
    if channel and channel != DEFAULT_CHANNEL:
        return f"{method}:{channel}"
    return method


def virtual_terminal_name(reference: Optional[str]) -> str:
    return f"VT: {reference or 'Manual Entry'}"


# ─────────────────────────────────────────────────────────────
# Service
# ─────────────────────────────────────────────────────────────
class DonationIntakeService:
    def __init__(
        self,
        storage: StorageBackend,
        processor: Optional[PaymentProcessor] = None,
        *,
        currency: str = "usd",
        redirect_urls: Optional[Mapping[str, str]] = None,
        id_attempts: int = 5,
        max_donation_cents: int = MAX_DONATION_CENTS,
    ) -> None:
        self.storage = storage
        self.processor = processor
        self.currency = (currency or "usd").lower()
        self.redirect_urls: Dict[str, str] = {k: v for k, v in (redirect_urls or {}).items() if v}
        self.id_attempts = max(1, int(id_attempts))
        self.max_donation_cents = int(max_donation_cents)

    @classmethod
    def from_config(cls, config: Mapping[str, Any], storage: StorageBackend, processor: Optional[PaymentProcessor]):
        return cls(
            storage,
            processor,
            currency=str(config.get("DEFAULT_CURRENCY") or "usd"),
            redirect_urls={
                "paypal_redirect": str(config.get("PAYPAL_DONATE_URL") or ""),
                "stripe_redirect": str(config.get("STRIPE_PAYMENT_LINK") or ""),
            },
            id_attempts=int(config.get("TXN_ID_ATTEMPTS", 5) or 5),
            max_donation_cents=to_cents(config.get("MAX_DONATION") or 0) or MAX_DONATION_CENTS,
        )

    # -- public entry points ----------------------------------------------
    def process_donation(self, payload: Optional[Dict[str, Any]]) -> DonationReceipt:
        request = parse_donation_request(payload, max_cents=self.max_donation_cents)
        if isinstance(request, CardDonation):
            return self._process_card(request)
        return self._process_redirect(request)

    def process_virtual_terminal(self, payload: Optional[Dict[str, Any]]) -> DonationReceipt:
        entry = parse_virtual_terminal(payload, max_cents=self.max_donation_cents)

        charge: Optional[ChargeResult] = None
        if entry.card is not None:
            charge = self._charge(entry.amount_cents, entry.card, source="virtual_terminal", channel=entry.channel)

        record = DonationRecord(
            transaction_id="",
            amount_cents=entry.amount_cents,
            frequency="once",
            method=f"virtual:{entry.channel}",
            name=virtual_terminal_name(entry.reference),
            channel=entry.channel,
            reference=entry.reference,
            processor_transaction_id=charge.processor_transaction_id if charge else None,
            card_number=entry.card.masked() if entry.card else None,
        )
        return self._record(record, prefix=VT_PREFIX)

    # -- variants -----------------------------------------------------------
    def _process_card(self, request: CardDonation) -> DonationReceipt:
        name = display_name(request.card.holder_name, request.reference, request.channel)

        charge = self._charge(
            request.amount_cents,
            request.card,
            source="donate",
            channel=request.channel,
            frequency=request.frequency,
        )

        record = DonationRecord(
            transaction_id="",
            amount_cents=request.amount_cents,
            frequency=request.frequency,
            method=composite_method(request.method, request.channel),
            name=name,
            channel=request.channel,
            reference=request.reference,
            processor_transaction_id=charge.processor_transaction_id if charge else None,
            card_number=request.card.masked(),
        )
        return self._record(record)

    def _process_redirect(self, request: RedirectDonation) -> DonationReceipt:
        record = DonationRecord(
            transaction_id="",
            amount_cents=request.amount_cents,
            frequency=request.frequency,
            method=composite_method(request.method, request.channel),
            name=display_name(None, request.reference, request.channel),
            channel=request.channel,
            reference=request.reference,
        )
        receipt = self._record(record)
        return DonationReceipt(
            transaction_id=receipt.transaction_id,
            record=receipt.record,
            stats=receipt.stats,
            redirect_url=self.redirect_urls.get(request.method),
        )

    # -- steps --------------------------------------------------------------
    def _charge(self, amount_cents: int, card: CardDetails, **metadata: Any) -> Optional[ChargeResult]:
        if self.processor is None:
            return None
        try:
            result = self.processor.charge(amount_cents, self.currency, card, **metadata)
        except Exception as exc:
            log.error("Processor %s raised during charge: %s", self.processor.name, exc, exc_info=True)
            raise PaymentDeclined("Payment processor unavailable. Please try again later.", status="error") from exc

        if not result.ok:
            log.info("Charge not accepted (status=%s, card ****%s)", result.status, card.last4)
            raise PaymentDeclined(result.message or "Payment was declined.", status=result.status)
        return result

    def _record(self, record: DonationRecord, prefix: str = TXN_PREFIX) -> DonationReceipt:
        @with_retry(retries=self.id_attempts - 1, retry_on=(DuplicateTransactionId,))
        def _attempt() -> DonationReceipt:
            candidate = record.with_transaction_id(generate_transaction_id(prefix))
            try:
                stats = self.storage.record_donation(candidate)
            except DuplicateTransactionId:
                log.warning("Transaction id %s already taken; regenerating", candidate.transaction_id)
                raise
            return DonationReceipt(transaction_id=candidate.transaction_id, record=candidate, stats=stats)

        receipt = _attempt()
        log.info(
            "Recorded donation %s (%s, %s cents)",
            receipt.transaction_id,
            receipt.record.method,
            receipt.record.amount_cents,
        )
        return receipt


__all__ = [
    "DonationIntakeService",
    "DonationReceipt",
    "DonationRequest",
    "PaymentDeclined",
    "composite_method",
    "display_name",
    "generate_transaction_id",
    "virtual_terminal_name",
]
