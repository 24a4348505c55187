"""
CharityHub — domain records
────────────────────────────────────────────────────────────
Backend-neutral values passed between the intake pipeline and the storage
layer. Money is always integer cents; JSON rendering converts back to a
currency amount.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Dict, Mapping, Optional, Union

FREQUENCIES = ("once", "monthly", "annual")
CHANNELS = ("online", "phone", "mail", "in-person")
CARD_METHOD = "card"
REDIRECT_METHODS = ("paypal_redirect", "stripe_redirect")

ANONYMOUS_DONOR = "Anonymous Donor"
DEFAULT_CHANNEL = "online"
STAT_COUNTERS = ("lives", "students", "meals", "medical", "homes")

Number = Union[int, float]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def to_cents(amount: Union[Decimal, int, float, str]) -> int:
    dec = amount if isinstance(amount, Decimal) else Decimal(str(amount))
    return int((dec * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def cents_to_amount(cents: int) -> Number:
    """2584912_00 -> 2584912, 1050 -> 10.5"""
    cents = int(cents or 0)
    if cents % 100 == 0:
        return cents // 100
    return round(cents / 100.0, 2)


def iso(ts: Optional[datetime]) -> Optional[str]:
    if ts is None:
        return None
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=timezone.utc)
    return ts.isoformat().replace("+00:00", "Z")


@dataclass(frozen=True)
class StatsSnapshot:
    raised_cents: int
    lives: int
    students: int
    meals: int
    medical: int
    homes: int

    @classmethod
    def from_defaults(cls, defaults: Mapping[str, Any]) -> "StatsSnapshot":
        return cls(
            raised_cents=to_cents(defaults.get("raised", 0)),
            **{name: int(defaults.get(name, 0) or 0) for name in STAT_COUNTERS},
        )

    @property
    def raised(self) -> Number:
        return cents_to_amount(self.raised_cents)

    def as_dict(self) -> Dict[str, Any]:
        return {
            "raised": self.raised,
            "lives": self.lives,
            "students": self.students,
            "meals": self.meals,
            "medical": self.medical,
            "homes": self.homes,
        }


@dataclass(frozen=True)
class DonationRecord:
    """An accepted donation. Holds no raw card data: only the masked number."""

    transaction_id: str
    amount_cents: int
    frequency: str
    method: str
    name: str
    channel: str = DEFAULT_CHANNEL
    reference: Optional[str] = None
    processor_transaction_id: Optional[str] = None
    card_number: Optional[str] = None
    created_at: datetime = field(default_factory=utcnow)

    @property
    def amount(self) -> Number:
        return cents_to_amount(self.amount_cents)

    def with_transaction_id(self, transaction_id: str) -> "DonationRecord":
        return replace(self, transaction_id=transaction_id)

    def as_admin_dict(self) -> Dict[str, Any]:
        return {
            "id": self.transaction_id,
            "amount": self.amount,
            "frequency": self.frequency,
            "method": self.method,
            "name": self.name,
            "channel": self.channel,
            "reference": self.reference,
            "processorTransactionId": self.processor_transaction_id,
            "timestamp": iso(self.created_at),
            "cardNumber": self.card_number or "N/A",
        }

    def as_donor_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "amount": self.amount,
            "timestamp": iso(self.created_at),
        }
