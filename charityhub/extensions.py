import logging
import time
from typing import Any, Callable

from flask_cors import CORS
from flask_sqlalchemy import SQLAlchemy

log = logging.getLogger(__name__)


# ─────────────────────────────────────────────────────────────
# Core singletons
# ─────────────────────────────────────────────────────────────
db = SQLAlchemy()
cors = CORS()


# ─────────────────────────────────────────────────────────────
# Safe DB helpers
# ─────────────────────────────────────────────────────────────
def safe_rollback() -> None:
    try:
        db.session.rollback()
    except Exception as e:
        log.warning("DB rollback failed: %s", e)


def with_retry(retries: int = 2, backoff: float = 0.0, retry_on: tuple = (Exception,)):
    """Re-invoke ``fn`` when it raises one of ``retry_on``; re-raise after ``retries`` extra attempts."""

    def _wrap(fn: Callable[..., Any]) -> Callable[..., Any]:
        def _inner(*args: Any, **kwargs: Any):
            attempt = 0
            while True:
                try:
                    return fn(*args, **kwargs)
                except retry_on:
                    attempt += 1
                    if attempt > retries:
                        raise
                    if backoff:
                        time.sleep(float(backoff) * attempt)

        return _inner

    return _wrap


__all__ = [
    "db",
    "cors",
    "safe_rollback",
    "with_retry",
]
