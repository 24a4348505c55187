# charityhub/services/storage.py
"""
Stats / donation storage behind one capability (`StorageBackend`).

• MemoryStorage   — process-local mirror, lock-guarded
• SqlStorage      — Flask-SQLAlchemy; connectivity flag fed by engine events
• FallbackStorage — routes every call to SqlStorage while it is connected,
                    otherwise to the MemoryStorage mirror

Writes taken by the mirror during an outage are NOT merged back into the
database when it reconnects; they live until the process exits.
"""

from __future__ import annotations

import logging
import threading
import time
from collections import deque
from typing import Any, Callable, Deque, Dict, List, Mapping, Optional, Set

import sqlalchemy as sa
from sqlalchemy import event
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from charityhub.domain import STAT_COUNTERS, DonationRecord, StatsSnapshot, to_cents
from charityhub.extensions import safe_rollback
from charityhub.models import STATS_ROW_ID, Donation, ImpactStats, NewsletterSignup

log = logging.getLogger(__name__)


class StorageError(Exception):
    """Base class for storage failures that callers are expected to handle."""


class DuplicateTransactionId(StorageError):
    """A record with the same transaction id already exists; retry with a new id."""

    def __init__(self, transaction_id: str) -> None:
        super().__init__(f"transaction id {transaction_id} already exists")
        self.transaction_id = transaction_id


class StorageBackend:
    name = "storage"

    def get_stats(self) -> StatsSnapshot:
        raise NotImplementedError

    def increment_raised(self, amount_cents: int) -> None:
        raise NotImplementedError

    def append_donation(self, record: DonationRecord) -> None:
        raise NotImplementedError

    def record_donation(self, record: DonationRecord) -> StatsSnapshot:
        """Increment `raised` by the record amount, then append the record."""
        self.increment_raised(record.amount_cents)
        self.append_donation(record)
        return self.get_stats()

    def list_donations(self, limit: int, newest_first: bool = True) -> List[DonationRecord]:
        raise NotImplementedError

    def list_donors(self, limit: int) -> List[DonationRecord]:
        return self.list_donations(limit, newest_first=True)

    def add_subscriber(self, email: str) -> bool:
        """Returns True when the address is new, False when already subscribed."""
        raise NotImplementedError

    def ensure_seeded(self) -> bool:
        raise NotImplementedError

    def status(self) -> Dict[str, Any]:
        return {"backend": self.name}


# ─────────────────────────────────────────────────────────────
# In-memory
# ─────────────────────────────────────────────────────────────
class MemoryStorage(StorageBackend):
    name = "memory"

    def __init__(self, defaults: Mapping[str, Any]) -> None:
        self._lock = threading.RLock()
        self._raised_cents = to_cents(defaults.get("raised", 0))
        self._counters = {k: int(defaults.get(k, 0) or 0) for k in STAT_COUNTERS}
        self._donations: Deque[DonationRecord] = deque()
        self._txn_ids: Set[str] = set()
        self._subscribers: Set[str] = set()

    def get_stats(self) -> StatsSnapshot:
        with self._lock:
            return StatsSnapshot(raised_cents=self._raised_cents, **self._counters)

    def increment_raised(self, amount_cents: int) -> None:
        with self._lock:
            self._raised_cents += int(amount_cents)

    def append_donation(self, record: DonationRecord) -> None:
        with self._lock:
            if record.transaction_id in self._txn_ids:
                raise DuplicateTransactionId(record.transaction_id)
            self._txn_ids.add(record.transaction_id)
            self._donations.appendleft(record)

    def record_donation(self, record: DonationRecord) -> StatsSnapshot:
        with self._lock:
            if record.transaction_id in self._txn_ids:
                raise DuplicateTransactionId(record.transaction_id)
            self.increment_raised(record.amount_cents)
            self.append_donation(record)
            log.warning(
                "Donation %s held in memory only; it will be lost on restart",
                record.transaction_id,
            )
            return self.get_stats()

    def list_donations(self, limit: int, newest_first: bool = True) -> List[DonationRecord]:
        with self._lock:
            items = list(self._donations)
        if not newest_first:
            items.reverse()
        return items[: max(0, int(limit))]

    def add_subscriber(self, email: str) -> bool:
        with self._lock:
            if email in self._subscribers:
                return False
            self._subscribers.add(email)
            return True

    def ensure_seeded(self) -> bool:
        return False

    def status(self) -> Dict[str, Any]:
        with self._lock:
            return {"backend": self.name, "donations": len(self._donations), "subscribers": len(self._subscribers)}


# ─────────────────────────────────────────────────────────────
# SQLAlchemy
# ─────────────────────────────────────────────────────────────
class SqlStorage(StorageBackend):
    """
    Persistent store. All methods need an app context (Flask-SQLAlchemy session).
    `connected` is written only by the engine event callbacks and `ping()`.
    """

    name = "sql"

    def __init__(self, db: Any, defaults: Mapping[str, Any], *, clock: Callable[[], float] = time.monotonic) -> None:
        self.db = db
        self.defaults = dict(defaults)
        self._clock = clock
        self._connected = False
        self._checked_at = clock()

    # -- connectivity ------------------------------------------------------
    @property
    def connected(self) -> bool:
        return self._connected

    def seconds_since_check(self) -> float:
        return self._clock() - self._checked_at

    def _set_connected(self, value: bool, reason: str = "") -> None:
        self._checked_at = self._clock()
        if value == self._connected:
            return
        self._connected = value
        if value:
            log.info("DB connection active")
        else:
            log.warning("DB connection offline%s; using in-memory fallback", f" ({reason})" if reason else "")

    def mark_disconnected(self, reason: str = "") -> None:
        self._set_connected(False, reason)

    def _on_engine_connect(self, conn) -> None:
        self._set_connected(True)

    def _on_handle_error(self, context) -> None:
        if getattr(context, "is_pre_ping", False):
            return
        if context.is_disconnect or context.connection is None:
            self._set_connected(False, type(context.original_exception).__name__)

    def bind(self, app: Any) -> None:
        """Attach connectivity listeners to the app's engine and take a first reading."""
        with app.app_context():
            engine = self.db.engine
            event.listen(engine, "engine_connect", self._on_engine_connect)
            event.listen(engine, "handle_error", self._on_handle_error)
            self.ping()

    def ping(self) -> bool:
        try:
            with self.db.engine.connect() as conn:
                conn.execute(sa.text("SELECT 1"))
        except SQLAlchemyError as exc:
            self._set_connected(False, type(exc).__name__)
            return False
        self._set_connected(True)
        return True

    # -- stats -------------------------------------------------------------
    def _stats_row(self) -> Optional[ImpactStats]:
        stmt = sa.select(ImpactStats).where(ImpactStats.id == STATS_ROW_ID).execution_options(populate_existing=True)
        return self.db.session.execute(stmt).scalar_one_or_none()

    def _add_seed_row(self) -> bool:
        count = self.db.session.execute(sa.select(sa.func.count()).select_from(ImpactStats)).scalar_one()
        if count:
            return False
        self.db.session.add(ImpactStats.seeded(self.defaults))
        self.db.session.flush()
        return True

    def ensure_seeded(self) -> bool:
        try:
            created = self._add_seed_row()
            self.db.session.commit()
        except IntegrityError:
            # Another worker seeded first.
            safe_rollback()
            return False
        except SQLAlchemyError:
            safe_rollback()
            raise
        if created:
            log.info("Initialized impact stats in database")
        return created

    def get_stats(self) -> StatsSnapshot:
        row = self._stats_row()
        if row is None:
            self.ensure_seeded()
            row = self._stats_row()
        if row is None:
            raise StorageError("impact stats row missing after seeding")
        return row.snapshot()

    def _increment(self, amount_cents: int) -> None:
        result = self.db.session.execute(
            ImpactStats.increment_stmt(amount_cents).execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            self._add_seed_row()
            self.db.session.execute(
                ImpactStats.increment_stmt(amount_cents).execution_options(synchronize_session=False)
            )

    def increment_raised(self, amount_cents: int) -> None:
        try:
            self._increment(amount_cents)
            self.db.session.commit()
        except SQLAlchemyError:
            safe_rollback()
            raise
        except OverflowError as exc:
            safe_rollback()
            raise StorageError(f"amount not storable: {exc}") from exc

    # -- donations ---------------------------------------------------------
    @staticmethod
    def _is_txn_conflict(exc: IntegrityError) -> bool:
        return "txn_id" in str(getattr(exc, "orig", exc)).lower()

    def append_donation(self, record: DonationRecord) -> None:
        try:
            self.db.session.add(Donation.from_record(record))
            self.db.session.commit()
        except IntegrityError as exc:
            safe_rollback()
            if self._is_txn_conflict(exc):
                raise DuplicateTransactionId(record.transaction_id) from exc
            raise
        except SQLAlchemyError:
            safe_rollback()
            raise
        except OverflowError as exc:
            safe_rollback()
            raise StorageError(f"record not storable: {exc}") from exc

    def record_donation(self, record: DonationRecord) -> StatsSnapshot:
        # Single unit of work: the increment and the insert commit together,
        # and the snapshot is read before commit so commit is the last fallible step.
        try:
            self._increment(record.amount_cents)
            self.db.session.add(Donation.from_record(record))
            self.db.session.flush()
            row = self._stats_row()
            if row is None:
                raise StorageError("impact stats row missing")
            snapshot = row.snapshot()
            self.db.session.commit()
        except IntegrityError as exc:
            safe_rollback()
            if self._is_txn_conflict(exc):
                raise DuplicateTransactionId(record.transaction_id) from exc
            raise
        except (SQLAlchemyError, StorageError):
            safe_rollback()
            raise
        except OverflowError as exc:
            # sqlite3 raises this while binding out-of-range integers
            safe_rollback()
            raise StorageError(f"record not storable: {exc}") from exc
        return snapshot

    def list_donations(self, limit: int, newest_first: bool = True) -> List[DonationRecord]:
        order = (Donation.created_at.desc(), Donation.id.desc()) if newest_first else (Donation.created_at.asc(), Donation.id.asc())
        stmt = sa.select(Donation).order_by(*order).limit(max(0, int(limit)))
        return [row.to_record() for row in self.db.session.execute(stmt).scalars()]

    # -- newsletter --------------------------------------------------------
    def add_subscriber(self, email: str) -> bool:
        exists = self.db.session.execute(
            sa.select(NewsletterSignup.id).where(NewsletterSignup.email == email)
        ).first()
        if exists:
            return False
        try:
            self.db.session.add(NewsletterSignup(email=email))
            self.db.session.commit()
        except IntegrityError:
            safe_rollback()
            return False
        except SQLAlchemyError:
            safe_rollback()
            raise
        return True

    def status(self) -> Dict[str, Any]:
        return {"backend": self.name, "connected": self.connected}


# ─────────────────────────────────────────────────────────────
# Connectivity-aware router
# ─────────────────────────────────────────────────────────────
class FallbackStorage(StorageBackend):
    name = "fallback"

    def __init__(self, primary: SqlStorage, mirror: MemoryStorage, *, reconnect_interval: float = 15.0) -> None:
        self.primary = primary
        self.mirror = mirror
        self.reconnect_interval = float(reconnect_interval)

    @property
    def connected(self) -> bool:
        return self.primary.connected

    def active_backend(self) -> StorageBackend:
        if not self.primary.connected and self.primary.seconds_since_check() >= self.reconnect_interval:
            self.primary.ping()
        return self.primary if self.primary.connected else self.mirror

    def _dispatch(self, op: str, *args: Any, **kwargs: Any) -> Any:
        backend = self.active_backend()
        if backend is self.mirror:
            return getattr(self.mirror, op)(*args, **kwargs)
        try:
            return getattr(self.primary, op)(*args, **kwargs)
        except DuplicateTransactionId:
            raise
        except (SQLAlchemyError, StorageError) as exc:
            log.warning("Persistent store failed during %s (%s); using in-memory fallback", op, type(exc).__name__)
            return getattr(self.mirror, op)(*args, **kwargs)

    def get_stats(self) -> StatsSnapshot:
        return self._dispatch("get_stats")

    def increment_raised(self, amount_cents: int) -> None:
        return self._dispatch("increment_raised", amount_cents)

    def append_donation(self, record: DonationRecord) -> None:
        return self._dispatch("append_donation", record)

    def record_donation(self, record: DonationRecord) -> StatsSnapshot:
        return self._dispatch("record_donation", record)

    def list_donations(self, limit: int, newest_first: bool = True) -> List[DonationRecord]:
        return self._dispatch("list_donations", limit, newest_first=newest_first)

    def list_donors(self, limit: int) -> List[DonationRecord]:
        return self._dispatch("list_donors", limit)

    def add_subscriber(self, email: str) -> bool:
        return self._dispatch("add_subscriber", email)

    def ensure_seeded(self) -> bool:
        if not self.primary.connected:
            return False
        try:
            return self.primary.ensure_seeded()
        except SQLAlchemyError as exc:
            log.warning("Could not seed impact stats (%s)", type(exc).__name__)
            return False

    def status(self) -> Dict[str, Any]:
        active = self.active_backend()
        return {
            "backend": active.name,
            "connected": self.primary.connected,
            "memory": self.mirror.status(),
        }
