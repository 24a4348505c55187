from __future__ import annotations

# -----------------------------------------------------------------------------
# Donation Model
# Cents-based, append-only log of accepted donations. Stores the masked card
# number only; cvv / expiry never reach this table.
# -----------------------------------------------------------------------------
from datetime import timezone
from typing import Optional

from sqlalchemy import CheckConstraint, Index
from sqlalchemy.orm import Mapped, mapped_column

from charityhub.domain import DonationRecord
from charityhub.extensions import db

from .mixins import AppendOnlyMixin, CreatedAtMixin


class Donation(db.Model, CreatedAtMixin, AppendOnlyMixin):
    __tablename__ = "donations"
    __table_args__ = (
        CheckConstraint("amount_cents > 0", name="ck_donations_amount_positive"),
        Index("ix_donations_channel_created", "channel", "created_at"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    txn_id: Mapped[str] = mapped_column(
        db.String(32),
        unique=True,
        nullable=False,
        index=True,
        doc="TXN_XXXXXXXXX (public) or VT_XXXXXXXXX (virtual terminal)",
    )
    amount_cents: Mapped[int] = mapped_column(db.BigInteger, nullable=False)
    frequency: Mapped[str] = mapped_column(db.String(16), nullable=False, default="once")
    method: Mapped[str] = mapped_column(
        db.String(64),
        nullable=False,
        doc="card / paypal_redirect / stripe_redirect, suffixed with :channel when not online",
    )
    name: Mapped[str] = mapped_column(db.String(320), nullable=False)
    channel: Mapped[str] = mapped_column(db.String(16), nullable=False, default="online", index=True)
    reference: Mapped[Optional[str]] = mapped_column(db.String(120), nullable=True)
    processor_txn_id: Mapped[Optional[str]] = mapped_column(
        db.String(120),
        nullable=True,
        index=True,
        doc="External processor id (pi_...) when the card was charged",
    )
    card_number: Mapped[Optional[str]] = mapped_column(
        db.String(24),
        nullable=True,
        doc="Masked: **** **** **** 1234",
    )

    @classmethod
    def from_record(cls, record: DonationRecord) -> "Donation":
        return cls(
            txn_id=record.transaction_id,
            amount_cents=int(record.amount_cents),
            frequency=record.frequency,
            method=record.method,
            name=record.name[:320],
            channel=record.channel,
            reference=record.reference,
            processor_txn_id=record.processor_transaction_id,
            card_number=record.card_number,
            created_at=record.created_at,
        )

    def to_record(self) -> DonationRecord:
        created = self.created_at
        if created is not None and created.tzinfo is None:
            created = created.replace(tzinfo=timezone.utc)
        return DonationRecord(
            transaction_id=self.txn_id,
            amount_cents=int(self.amount_cents or 0),
            frequency=self.frequency,
            method=self.method,
            name=self.name,
            channel=self.channel,
            reference=self.reference,
            processor_transaction_id=self.processor_txn_id,
            card_number=self.card_number,
            created_at=created,
        )

    def __repr__(self) -> str:  # pragma: no cover
        return f"<Donation {self.txn_id} {self.amount_cents}c method={self.method}>"
