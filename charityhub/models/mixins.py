# charityhub/models/mixins.py
"""Shared SQLAlchemy mixins."""

from datetime import datetime, timezone

from sqlalchemy import event

from charityhub.extensions import db


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class CreatedAtMixin:
    """Adds an indexed, write-once created_at column."""

    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow, nullable=False, index=True)


class AppendOnlyMixin:
    """Rows may be inserted but never updated or deleted through the ORM."""

    @staticmethod
    def _reject_mutation(mapper, connection, target):
        raise ValueError(f"{type(target).__name__} rows are append-only")

    @classmethod
    def __declare_last__(cls):
        event.listen(cls, "before_update", cls._reject_mutation)
        event.listen(cls, "before_delete", cls._reject_mutation)
